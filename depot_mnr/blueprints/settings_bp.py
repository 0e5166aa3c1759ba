"""
Settings blueprint — operator-tunable workflow configuration.

Endpoints:
    GET  /api/v1/settings/auto-approval-threshold    — current threshold
    PUT  /api/v1/settings/auto-approval-threshold    — body: {threshold}
"""

from flask import Blueprint, current_app, jsonify

from depot_mnr.blueprints import current_actor, json_body
from depot_mnr.services import approval_policy
from depot_mnr.utils.errors import E, api_error

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")


@settings_bp.route("/auto-approval-threshold", methods=["GET"])
def get_threshold():
    return jsonify({
        "threshold": approval_policy.get_auto_approval_threshold(),
        "currency": current_app.config.get("DEFAULT_CURRENCY", "RM"),
    })


@settings_bp.route("/auto-approval-threshold", methods=["PUT"])
def update_threshold():
    data = json_body()
    if "threshold" not in data:
        return api_error(E.VALIDATION_REQUIRED, "threshold is required")
    return jsonify(approval_policy.set_auto_approval_threshold(data["threshold"], current_actor()))
