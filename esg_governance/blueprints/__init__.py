"""
ESG Governance Core
Blueprint registry and shared request helpers.
"""

from flask import request

from esg_governance.core.exceptions import ValidationError


def json_body() -> dict:
    """Return the JSON object body or raise ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_actor(data: dict) -> tuple[str, str]:
    """Pull the acting user's (user_id, user_name) out of a request body.

    Identity comes from the authenticating proxy in deployment; the core
    records whatever identity it is handed.
    """
    user_id = str(data.get("user_id") or "").strip()
    if not user_id:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    return user_id, str(data.get("user_name") or "").strip()


def require_fields(data: dict, *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} is required",
            details={n: "required" for n in missing},
        )


def parse_bool(value, default=None):
    """Query-string boolean: true/1/yes, false/0/no, anything else → default."""
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return default


def parse_limit(default=None, max_limit=1000):
    try:
        raw = request.args.get("limit")
        if raw is None:
            return default
        return max(1, min(int(raw), max_limit))
    except (ValueError, TypeError):
        return default


def register_blueprints(app) -> None:
    from esg_governance.blueprints.audit_bp import audit_bp
    from esg_governance.blueprints.break_glass_bp import break_glass_bp
    from esg_governance.blueprints.data_points_bp import data_points_bp
    from esg_governance.blueprints.periods_bp import periods_bp
    from esg_governance.blueprints.permissions_bp import permissions_bp
    from esg_governance.blueprints.sections_bp import sections_bp

    for bp in (audit_bp, permissions_bp, break_glass_bp, periods_bp, sections_bp, data_points_bp):
        app.register_blueprint(bp)
