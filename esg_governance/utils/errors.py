"""JSON error bodies shared by every blueprint.

    {"error": "<message>", "code": "ERR_...", "details": {...}?}

Views either build one directly with ``api_error(E.FORBIDDEN, "...")`` or
pass through the ``(None, err)`` half of a service result with
``service_error(err)``; the code is then picked from the HTTP status.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes carried in the ``code`` field."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    LOCKED = "ERR_LOCKED"  # section awaiting or past approval
    INTERNAL = "ERR_INTERNAL"


# code -> HTTP status; the first code listed for a status is its default
_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_REQUIRED: 400,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.LOCKED: 423,
    E.INTERNAL: 500,
}

_CODE_BY_STATUS: dict[int, str] = {}
for _code, _status in _STATUS_BY_CODE.items():
    _CODE_BY_STATUS.setdefault(_status, _code)


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(response, status)`` for a Flask view.

    ``status`` defaults to the one registered for ``code`` (400 if unknown).
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def service_error(err: dict):
    """Render a service-layer ``{"error", "status", "details"?}`` dict."""
    status = err.get("status", 400)
    code = _CODE_BY_STATUS.get(status, E.VALIDATION_INVALID)
    return api_error(code, err["error"], status=status, details=err.get("details"))
