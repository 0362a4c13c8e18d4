"""
ESG Governance Core
Permissions, roles and users blueprint.

Endpoints:
    GET    /api/v1/permissions/matrix            — role → resource → actions
    POST   /api/v1/permissions/check             — evaluate (and audit) one request
    GET    /api/v1/roles                         — list roles
    POST   /api/v1/roles                         — create custom role
    PUT    /api/v1/roles/<role_id>/description   — edit description
    DELETE /api/v1/roles/<role_id>               — delete custom role
    GET    /api/v1/users                         — list users
    POST   /api/v1/users                         — create user
    PATCH  /api/v1/users/<user_id>               — partial update
    PUT    /api/v1/users/<user_id>/roles         — replace role assignments

Layer contract:
    - Blueprint: parse + validate input, call service, return JSON.
    - NO db.session calls here — all writes owned by the services.
"""

import logging

from flask import Blueprint, jsonify

from esg_governance.blueprints import json_body, require_actor, require_fields
from esg_governance.services import permission_service, role_service, user_service
from esg_governance.utils.errors import service_error

logger = logging.getLogger(__name__)

permissions_bp = Blueprint("permissions", __name__, url_prefix="/api/v1")


# ── Evaluation ───────────────────────────────────────────────────────────────


@permissions_bp.route("/permissions/matrix", methods=["GET"])
def get_permission_matrix():
    return jsonify(permission_service.get_permission_matrix())


@permissions_bp.route("/permissions/check", methods=["POST"])
def check_permission():
    """Body: {"user_id", "resource_type", "action", "resource_id"?, "user_name"?}

    Always 200: a denial is a result, not an error.
    """
    data = json_body()
    require_fields(data, "user_id", "resource_type", "action")
    result = permission_service.check_permission(
        data["user_id"],
        data["resource_type"],
        data["action"],
        resource_id=data.get("resource_id"),
        user_name=data.get("user_name"),
    )
    return jsonify(result), 200


# ── Roles ────────────────────────────────────────────────────────────────────


@permissions_bp.route("/roles", methods=["GET"])
def list_roles():
    return jsonify([r.to_dict() for r in role_service.list_roles()])


@permissions_bp.route("/roles", methods=["POST"])
def create_role():
    data = json_body()
    user_id, user_name = require_actor(data)
    role, err = role_service.create_role(
        data.get("name"), data.get("description"), data.get("permissions"), user_id, user_name,
    )
    if err:
        return service_error(err)
    return jsonify(role.to_dict()), 201


@permissions_bp.route("/roles/<role_id>/description", methods=["PUT"])
def update_role_description(role_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    role, err = role_service.update_role_description(role_id, data.get("description"), user_id, user_name)
    if err:
        return service_error(err)
    return jsonify(role.to_dict())


@permissions_bp.route("/roles/<role_id>", methods=["DELETE"])
def delete_role(role_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    result, err = role_service.delete_role(role_id, user_id, user_name)
    if err:
        return service_error(err)
    return jsonify(result)


# ── Users ────────────────────────────────────────────────────────────────────


@permissions_bp.route("/users", methods=["GET"])
def list_users():
    return jsonify([u.to_dict() for u in user_service.list_users()])


@permissions_bp.route("/users", methods=["POST"])
def create_user():
    data = json_body()
    actor_id, actor_name = require_actor(data)
    user, err = user_service.create_user(
        data.get("name"),
        data.get("email"),
        data.get("role_ids"),
        user_id=data.get("id"),
        access_expires_at=data.get("access_expires_at"),
        created_by=actor_id,
        created_by_name=actor_name,
    )
    if err:
        return service_error(err)
    return jsonify(user.to_dict()), 201


@permissions_bp.route("/users/<user_id>", methods=["PATCH"])
def update_user(user_id):
    data = json_body()
    actor_id, actor_name = require_actor(data)
    payload = {k: v for k, v in data.items() if k not in ("user_id", "user_name")}
    user, err = user_service.update_user(user_id, payload, actor_id, actor_name)
    if err:
        return service_error(err)
    return jsonify(user.to_dict())


@permissions_bp.route("/users/<user_id>/roles", methods=["PUT"])
def assign_user_roles(user_id):
    """Body: {"role_ids": [...], "user_id": <actor>, "user_name": <actor name>}"""
    data = json_body()
    actor_id, actor_name = require_actor(data)
    role_ids = data.get("role_ids")
    if not isinstance(role_ids, list):
        return service_error({"error": "role_ids must be a list", "status": 400})
    user, err = role_service.assign_user_roles(user_id, role_ids, actor_id, actor_name)
    if err:
        return service_error(err)
    return jsonify(user.to_dict())
