"""
ESG Governance Core
Break-glass blueprint.

Endpoints:
    GET    /api/v1/break-glass/status?user_id=            — active session + authorization
    POST   /api/v1/break-glass/activate                   — open a session
    POST   /api/v1/break-glass/sessions/<sid>/deactivate  — close a session
    POST   /api/v1/break-glass/sessions/<sid>/actions     — tally one privileged action
    GET    /api/v1/break-glass/sessions?user_id=&active_only=

Authorization (admin role) and the global on/off switch are enforced
here, before the service is called.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from esg_governance.blueprints import json_body, parse_bool, require_actor
from esg_governance.core.exceptions import ValidationError
from esg_governance.services import break_glass_service
from esg_governance.utils.errors import E, api_error, service_error

logger = logging.getLogger(__name__)

break_glass_bp = Blueprint("break_glass", __name__, url_prefix="/api/v1/break-glass")


@break_glass_bp.route("/status", methods=["GET"])
def status():
    user_id = request.args.get("user_id")
    if not user_id:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    session = break_glass_service.get_active_session(user_id)
    return jsonify({
        "is_active": session is not None,
        "is_authorized": break_glass_service.is_authorized_for_break_glass(user_id),
        "active_session": session.to_dict() if session else None,
    })


@break_glass_bp.route("/activate", methods=["POST"])
def activate():
    """Body: {"user_id", "user_name", "reason", "authentication_method"?}

    The client IP is taken from X-Forwarded-For (first hop) or remote_addr.
    """
    if not current_app.config.get("BREAK_GLASS_ENABLED", True):
        return api_error(E.FORBIDDEN, "Break-glass access is currently disabled")

    data = json_body()
    user_id, user_name = require_actor(data)
    if not break_glass_service.is_authorized_for_break_glass(user_id):
        logger.warning("Unauthorized break-glass activation attempt", extra={"user_id": user_id})
        return api_error(E.FORBIDDEN, "User is not authorized to activate break-glass access")

    forwarded_for = request.headers.get("X-Forwarded-For", "")
    ip_address = forwarded_for.split(",")[0].strip() if forwarded_for else request.remote_addr

    session, err = break_glass_service.activate_break_glass(
        user_id,
        user_name,
        data.get("reason"),
        authentication_method=data.get("authentication_method"),
        ip_address=ip_address,
    )
    if err:
        return service_error(err)
    return jsonify(session.to_dict()), 201


@break_glass_bp.route("/sessions/<session_id>/deactivate", methods=["POST"])
def deactivate(session_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    session, err = break_glass_service.deactivate_break_glass(
        session_id, user_id, user_name, note=data.get("note"),
    )
    if err:
        return service_error(err)
    return jsonify(session.to_dict())


@break_glass_bp.route("/sessions/<session_id>/actions", methods=["POST"])
def record_action(session_id):
    session, err = break_glass_service.increment_action_count(session_id)
    if err:
        return service_error(err)
    return jsonify(session.to_dict())


@break_glass_bp.route("/sessions", methods=["GET"])
def list_sessions():
    sessions = break_glass_service.get_sessions(
        request.args.get("user_id"),
        active_only=parse_bool(request.args.get("active_only"), default=False),
    )
    return jsonify([s.to_dict() for s in sessions])
