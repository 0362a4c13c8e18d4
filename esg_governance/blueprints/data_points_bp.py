"""
ESG Governance Core
Data points blueprint: edits gated by section lock, review and lineage.

Endpoints:
    GET  /api/v1/sections/<sid>/data-points          — list
    POST /api/v1/sections/<sid>/data-points          — create
    GET  /api/v1/data-points/<did>                   — single
    PUT  /api/v1/data-points/<did>                   — update (audited diff)
    PUT  /api/v1/data-points/<did>/completeness      — completeness status
    POST /api/v1/data-points/<did>/approve           — reviewer approval
    POST /api/v1/data-points/<did>/request-changes   — reviewer send-back
    GET  /api/v1/data-points/<did>/lineage?max_depth= — cross-period history
"""

from flask import Blueprint, jsonify, request

from esg_governance.blueprints import json_body, require_actor, require_fields
from esg_governance.core.exceptions import NotFoundError, ValidationError
from esg_governance.repositories import get_store
from esg_governance.services import data_point_service, lineage_service
from esg_governance.utils.errors import service_error

data_points_bp = Blueprint("data_points", __name__, url_prefix="/api/v1")

# Keys consumed by the endpoint itself rather than stored on the data point.
_CONTROL_KEYS = ("user_id", "user_name", "change_note")


def _payload(data):
    return {k: v for k, v in data.items() if k not in _CONTROL_KEYS}


@data_points_bp.route("/sections/<section_id>/data-points", methods=["GET"])
def list_data_points(section_id):
    get_store().sections.get_or_raise(section_id)
    return jsonify([dp.to_dict() for dp in data_point_service.list_data_points(section_id)])


@data_points_bp.route("/sections/<section_id>/data-points", methods=["POST"])
def create_data_point(section_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    data_point, err = data_point_service.create_data_point(section_id, _payload(data), user_id, user_name)
    if err:
        return service_error(err)
    return jsonify(data_point.to_dict()), 201


@data_points_bp.route("/data-points/<data_point_id>", methods=["GET"])
def get_data_point(data_point_id):
    return jsonify(get_store().data_points.get_or_raise(data_point_id).to_dict())


@data_points_bp.route("/data-points/<data_point_id>", methods=["PUT"])
def update_data_point(data_point_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    data_point, err = data_point_service.update_data_point(
        data_point_id, _payload(data), user_id, user_name, change_note=data.get("change_note"),
    )
    if err:
        return service_error(err)
    return jsonify(data_point.to_dict())


@data_points_bp.route("/data-points/<data_point_id>/completeness", methods=["PUT"])
def update_completeness(data_point_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    require_fields(data, "completeness_status")
    data_point, err = data_point_service.update_completeness_status(
        data_point_id, data["completeness_status"], user_id, user_name,
    )
    if err:
        return service_error(err)
    return jsonify(data_point.to_dict())


@data_points_bp.route("/data-points/<data_point_id>/approve", methods=["POST"])
def approve(data_point_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    data_point, err = data_point_service.approve_data_point(
        data_point_id, user_id, user_name, comments=data.get("comments"),
    )
    if err:
        return service_error(err)
    return jsonify(data_point.to_dict())


@data_points_bp.route("/data-points/<data_point_id>/request-changes", methods=["POST"])
def request_changes(data_point_id):
    data = json_body()
    user_id, user_name = require_actor(data)
    data_point, err = data_point_service.request_data_point_changes(
        data_point_id, user_id, user_name, data.get("comments"),
    )
    if err:
        return service_error(err)
    return jsonify(data_point.to_dict())


@data_points_bp.route("/data-points/<data_point_id>/lineage", methods=["GET"])
def lineage(data_point_id):
    max_depth = request.args.get("max_depth")
    if max_depth is not None:
        try:
            max_depth = int(max_depth)
        except ValueError:
            raise ValidationError("max_depth must be an integer", details={"max_depth": "invalid"})
        if max_depth < 0:
            raise ValidationError("max_depth must be non-negative", details={"max_depth": "invalid"})
    result = lineage_service.get_cross_period_lineage(data_point_id, max_depth=max_depth)
    if result is None:
        raise NotFoundError(resource="DataPoint", resource_id=data_point_id)
    return jsonify(result)
