"""
ESG Governance Core
Reporting periods blueprint.

Endpoints:
    POST /api/v1/periods                      — create a period
    GET  /api/v1/periods/<period_id>          — single period
    POST /api/v1/periods/<period_id>/rollover — create successor period
"""

from flask import Blueprint, jsonify

from esg_governance.blueprints import json_body, require_actor, require_fields
from esg_governance.repositories import get_store
from esg_governance.services import reporting_service, rollover_service
from esg_governance.utils.errors import service_error

periods_bp = Blueprint("periods", __name__, url_prefix="/api/v1")


@periods_bp.route("/periods", methods=["POST"])
def create_period():
    data = json_body()
    user_id, user_name = require_actor(data)
    period, err = reporting_service.create_period(
        data.get("name"), data.get("start_date"), data.get("end_date"), user_id, user_name,
    )
    if err:
        return service_error(err)
    return jsonify(period.to_dict()), 201


@periods_bp.route("/periods/<period_id>", methods=["GET"])
def get_period(period_id):
    return jsonify(get_store().periods.get_or_raise(period_id).to_dict())


@periods_bp.route("/periods/<period_id>/rollover", methods=["POST"])
def rollover(period_id):
    """Body: {"name", "start_date"?, "end_date"?, "copy_data_values"? (default true), actor}"""
    data = json_body()
    user_id, user_name = require_actor(data)
    require_fields(data, "name")
    result, err = rollover_service.rollover_period(
        period_id,
        data["name"],
        data.get("start_date"),
        data.get("end_date"),
        user_id,
        user_name,
        copy_data_values=bool(data.get("copy_data_values", True)),
    )
    if err:
        return service_error(err)
    return jsonify(result), 201
