"""
ESG Governance Core
Report sections blueprint: creation, approval workflow and access grants.

Endpoints:
    GET  /api/v1/periods/<pid>/sections              — list sections
    POST /api/v1/periods/<pid>/sections              — create a section
    GET  /api/v1/sections/<sid>                      — single section
    GET  /api/v1/sections/<sid>/can-edit             — lock gate
    POST /api/v1/sections/<sid>/submit               — submit for approval
    POST /api/v1/sections/<sid>/approve              — approve
    POST /api/v1/sections/<sid>/request-changes      — send back
    POST /api/v1/sections/<sid>/revision             — reopen approved section
    GET  /api/v1/sections/<sid>/versions             — approval snapshots
    GET  /api/v1/sections/<sid>/access               — owner + live grants
    POST /api/v1/sections/<sid>/access/grant         — grant to user_ids
    POST /api/v1/sections/<sid>/access/revoke        — revoke from user_ids
    GET  /api/v1/users/<uid>/section-access          — live grants of a user
    GET  /api/v1/users/<uid>/accessible-sections     — sections a user may open
    POST /api/v1/users/<uid>/invite-advisor          — external advisor onboarding
"""

from flask import Blueprint, jsonify, request

from esg_governance.blueprints import json_body, require_actor, require_fields
from esg_governance.core.exceptions import NotFoundError
from esg_governance.repositories import get_store
from esg_governance.services import (
    permission_service,
    reporting_service,
    section_access_service,
    section_workflow_service,
)
from esg_governance.utils.errors import service_error

sections_bp = Blueprint("sections", __name__, url_prefix="/api/v1")


def _section_or_404(section_id):
    return get_store().sections.get_or_raise(section_id)


# ── Sections ─────────────────────────────────────────────────────────────


@sections_bp.route("/periods/<period_id>/sections", methods=["GET"])
def list_sections(period_id):
    get_store().periods.get_or_raise(period_id)
    return jsonify([s.to_dict() for s in reporting_service.list_sections(period_id)])


@sections_bp.route("/periods/<period_id>/sections", methods=["POST"])
def create_section(period_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    section, err = reporting_service.create_section(
        period_id,
        data.get("title"),
        user_id,
        user_name,
        catalog_code=data.get("catalog_code"),
        category=data.get("category"),
        description=data.get("description"),
        owner_id=data.get("owner_id"),
    )
    if err:
        return service_error(err)
    return jsonify(section.to_dict()), 201


@sections_bp.route("/sections/<section_id>", methods=["GET"])
def get_section(section_id):
    return jsonify(_section_or_404(section_id).to_dict())


@sections_bp.route("/sections/<section_id>/can-edit", methods=["GET"])
def can_edit(section_id):
    _section_or_404(section_id)
    allowed, reason = section_workflow_service.can_edit_section(section_id)
    return jsonify({"section_id": section_id, "can_edit": allowed, "reason": reason})


# ── Workflow ─────────────────────────────────────────────────────────────


def _transition(section_id, service_fn):
    data = json_body()
    user_id, user_name = require_actor(data)
    section, err = service_fn(section_id, user_id, user_name, note=data.get("note"))
    if err:
        return service_error(err)
    return jsonify(section.to_dict())


@sections_bp.route("/sections/<section_id>/submit", methods=["POST"])
def submit(section_id):
    """Body: {"user_id", "user_name", "note"?}"""
    return _transition(section_id, section_workflow_service.submit_for_approval)


@sections_bp.route("/sections/<section_id>/approve", methods=["POST"])
def approve(section_id):
    return _transition(section_id, section_workflow_service.approve_section)


@sections_bp.route("/sections/<section_id>/request-changes", methods=["POST"])
def request_changes(section_id):
    return _transition(section_id, section_workflow_service.request_changes)


@sections_bp.route("/sections/<section_id>/revision", methods=["POST"])
def create_revision(section_id):
    return _transition(section_id, section_workflow_service.create_revision)


@sections_bp.route("/sections/<section_id>/versions", methods=["GET"])
def list_versions(section_id):
    _section_or_404(section_id)
    versions = section_workflow_service.get_section_versions(section_id)
    return jsonify([v.to_dict() for v in versions])


# ── Access grants ────────────────────────────────────────────────────────


@sections_bp.route("/sections/<section_id>/access", methods=["GET"])
def access_summary(section_id):
    summary = section_access_service.get_section_access_summary(section_id)
    if summary is None:
        raise NotFoundError(resource="Section", resource_id=section_id)
    return jsonify(summary)


@sections_bp.route("/sections/<section_id>/access/grant", methods=["POST"])
def grant_access(section_id):
    """Body: {"user_ids": [...], "reason"?, "expires_at"?, actor}"""
    data = json_body()
    user_id, user_name = require_actor(data)
    require_fields(data, "user_ids")
    result, err = section_access_service.grant_section_access(
        section_id,
        data["user_ids"],
        user_id,
        user_name,
        reason=data.get("reason"),
        expires_at=data.get("expires_at"),
    )
    if err:
        return service_error(err)
    return jsonify(result), 201 if result["granted_access"] else 200


@sections_bp.route("/sections/<section_id>/access/revoke", methods=["POST"])
def revoke_access(section_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    require_fields(data, "user_ids")
    result, err = section_access_service.revoke_section_access(
        section_id, data["user_ids"], user_id, user_name, reason=data.get("reason"),
    )
    if err:
        return service_error(err)
    return jsonify(result)


@sections_bp.route("/users/<user_id>/section-access", methods=["GET"])
def user_section_access(user_id):
    grants = section_access_service.get_user_section_access(user_id)
    return jsonify([g.to_dict() for g in grants])


@sections_bp.route("/users/<user_id>/accessible-sections", methods=["GET"])
def accessible_sections(user_id):
    sections = permission_service.get_accessible_sections(user_id, request.args.get("period_id"))
    return jsonify([s.to_dict() for s in sections])


@sections_bp.route("/users/<user_id>/invite-advisor", methods=["POST"])
def invite_advisor(user_id):
    """Body: {"role_id", "section_ids": [...], "access_expires_at", "reason"?, actor}

    The actor is the inviting user; *user_id* in the path is the advisor.
    """
    data = json_body()
    actor_id, actor_name = require_actor(data)
    require_fields(data, "role_id", "access_expires_at")
    result, err = section_access_service.invite_external_advisor(
        user_id,
        data["role_id"],
        data.get("section_ids") or [],
        data["access_expires_at"],
        actor_id,
        actor_name,
        reason=data.get("reason"),
    )
    if err:
        return service_error(err)
    return jsonify(result), 201
