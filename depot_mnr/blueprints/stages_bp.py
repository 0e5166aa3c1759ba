"""
Stage-job blueprint — one set of routes shared by all seven stages.

URL segment → stage:
    surveys          survey
    estimates        estimate
    shunting         shunting
    repair-orders    repair_order
    washing-orders   washing_order
    pre-inspections  pre_inspection
    stacking         stacking

Endpoints:
    POST   /api/v1/<segment>                      — create (body: container_id, ...)
    GET    /api/v1/<segment>                      — list by container_id / container_number / transaction_id
    GET    /api/v1/<segment>/<id>                 — detail
    PUT    /api/v1/<segment>/<id>                 — edit a draft (surveys, estimates)
    POST   /api/v1/<segment>/<id>/transition      — body: {action, ...payload}
    DELETE /api/v1/<segment>/<id>                 — delete under the reverse-deletion guard
    POST   /api/v1/<segment>/batch-transition     — body: {ids, action, ...payload}
    POST   /api/v1/estimates/batch-decide         — body: {ids, action: approve|reject, ...}
    GET    /api/v1/estimates/stats                — estimate counts and values
"""

import logging

from flask import Blueprint, jsonify, request

from depot_mnr.blueprints import current_actor, json_body
from depot_mnr.models.stages import (
    STAGE_ESTIMATE,
    STAGE_PRE_INSPECTION,
    STAGE_REPAIR,
    STAGE_SHUNTING,
    STAGE_STACKING,
    STAGE_SURVEY,
    STAGE_WASHING,
)
from depot_mnr.services import estimate_service, job_registry, workflow
from depot_mnr.services.job_store import get_job
from depot_mnr.utils.errors import E, api_error

logger = logging.getLogger(__name__)

stages_bp = Blueprint("stages", __name__, url_prefix="/api/v1")

STAGE_BY_SEGMENT = {
    "surveys": STAGE_SURVEY,
    "estimates": STAGE_ESTIMATE,
    "shunting": STAGE_SHUNTING,
    "repair-orders": STAGE_REPAIR,
    "washing-orders": STAGE_WASHING,
    "pre-inspections": STAGE_PRE_INSPECTION,
    "stacking": STAGE_STACKING,
}


def _stage_or_404(segment):
    stage = STAGE_BY_SEGMENT.get(segment)
    if stage is None:
        return None, api_error(E.NOT_FOUND, f"Unknown stage '{segment}'")
    return stage, None


def _payload(data: dict) -> dict:
    return {k: v for k, v in data.items() if k not in workflow.RESERVED_PAYLOAD_KEYS}


def _ids(data: dict):
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        return None
    return [str(i) for i in ids]


# ── Estimate extras (static paths registered before the generic ones) ───────

@stages_bp.route("/estimates/stats", methods=["GET"])
def estimate_stats():
    return jsonify(estimate_service.estimate_stats())


@stages_bp.route("/estimates/batch-decide", methods=["POST"])
def batch_decide_estimates():
    data = json_body()
    ids = _ids(data)
    if ids is None:
        return api_error(E.VALIDATION_REQUIRED, "ids must be a non-empty list")
    action = (data.get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    result = estimate_service.batch_decide_estimates(ids, action, current_actor(), **_payload(data))
    return jsonify(result)


# ── Generic stage routes ─────────────────────────────────────────────────────

@stages_bp.route("/<string:segment>", methods=["POST"])
def create_job(segment):
    stage, err = _stage_or_404(segment)
    if err:
        return err
    data = json_body()
    container_id = (data.get("container_id") or "").strip()
    if not container_id:
        return api_error(E.VALIDATION_REQUIRED, "container_id is required")
    result = workflow.create_job(stage, container_id, data, current_actor())
    return jsonify(result), 201


@stages_bp.route("/<string:segment>", methods=["GET"])
def list_jobs(segment):
    """
    List jobs of one stage.

    Query params (one required):
        container_id, container_number, transaction_id
    """
    stage, err = _stage_or_404(segment)
    if err:
        return err
    container_id = request.args.get("container_id")
    container_number = request.args.get("container_number")
    transaction_id = request.args.get("transaction_id")
    if not (container_id or container_number or transaction_id):
        return api_error(
            E.VALIDATION_REQUIRED,
            "container_id, container_number or transaction_id is required",
        )
    jobs = job_registry.list_jobs(
        stage,
        container_id=container_id,
        container_number=container_number.upper() if container_number else None,
        transaction_id=transaction_id,
    )
    return jsonify({"items": [j.to_dict() for j in jobs], "total": len(jobs)})


@stages_bp.route("/<string:segment>/batch-transition", methods=["POST"])
def batch_transition(segment):
    stage, err = _stage_or_404(segment)
    if err:
        return err
    data = json_body()
    ids = _ids(data)
    if ids is None:
        return api_error(E.VALIDATION_REQUIRED, "ids must be a non-empty list")
    action = (data.get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    return jsonify(workflow.batch_transition(stage, ids, action, current_actor(), **_payload(data)))


@stages_bp.route("/<string:segment>/<string:job_id>", methods=["GET"])
def get_job_detail(segment, job_id):
    stage, err = _stage_or_404(segment)
    if err:
        return err
    return jsonify(get_job(stage, job_id).to_dict())


@stages_bp.route("/<string:segment>/<string:job_id>", methods=["PUT"])
def update_job(segment, job_id):
    stage, err = _stage_or_404(segment)
    if err:
        return err
    return jsonify(workflow.update_job(stage, job_id, json_body(), current_actor()))


@stages_bp.route("/<string:segment>/<string:job_id>/transition", methods=["POST"])
def transition_job(segment, job_id):
    stage, err = _stage_or_404(segment)
    if err:
        return err
    data = json_body()
    action = (data.get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    result = workflow.transition_job(stage, job_id, action, current_actor(), **_payload(data))
    return jsonify(result)


@stages_bp.route("/<string:segment>/<string:job_id>", methods=["DELETE"])
def delete_job(segment, job_id):
    stage, err = _stage_or_404(segment)
    if err:
        return err
    return jsonify(job_registry.delete_job(stage, job_id, current_actor()))
