"""
ESG Governance Core
Audit blueprint.

Endpoints:
    GET  /api/v1/audit-log                      — filter audit entries (newest first)
    GET  /api/v1/audit-log/<int:entry_id>       — single audit entry
    GET  /api/v1/audit-log/permission-changes   — role / assignment / grant history
"""

from flask import Blueprint, jsonify, request

from esg_governance.blueprints import parse_bool, parse_limit
from esg_governance.core.exceptions import NotFoundError, ValidationError
from esg_governance.services import audit_service

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit-log", methods=["GET"])
def list_audit_log():
    """
    Return audit entries matching every supplied filter.

    Query params:
        entity_type       — exact entity type (case-insensitive)
        entity_id         — exact entity id
        user_id           — acting user
        action            — exact action verb
        start_date        — ISO date/time, inclusive
        end_date          — ISO date/time, inclusive
        break_glass_only  — true | false (omit for all)
        limit             — max entries (default: all, capped at 1000)
    """
    try:
        entries = audit_service.query_entries(
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id"),
            user_id=request.args.get("user_id"),
            action=request.args.get("action"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            break_glass_only=parse_bool(request.args.get("break_glass_only")),
            limit=parse_limit(),
        )
    except ValueError as exc:
        raise ValidationError(f"Invalid date filter: {exc}") from exc

    return jsonify({
        "entries": [e.to_dict() for e in entries],
        "total": len(entries),
    })


@audit_bp.route("/audit-log/permission-changes", methods=["GET"])
def permission_change_history():
    entries = audit_service.get_permission_change_history(limit=parse_limit())
    return jsonify({"entries": [e.to_dict() for e in entries], "total": len(entries)})


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit-log/<int:entry_id>", methods=["GET"])
def get_audit_entry(entry_id):
    entry = audit_service.get_entry(entry_id)
    if entry is None:
        raise NotFoundError(resource="Audit entry", resource_id=entry_id)
    return jsonify(entry.to_dict())
