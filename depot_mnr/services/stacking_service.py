"""
Stacking / release service — stage 7.

    NEW ──start──▶ IN_PROGRESS ──complete──▶ COMPLETED
     └──────────complete─────────┘

Completion issues the gate pass, moves the container to the target slot
and stamps the release; the container then resolves to AV.
"""

from depot_mnr.core.exceptions import ValidationError
from depot_mnr.models.actor import actor_name
from depot_mnr.models.stages import STAGE_STACKING, StackingRequest
from depot_mnr.services.code_generator import generate_gate_pass_number
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs
from depot_mnr.services.stage_common import (
    finish,
    locate,
    new_job,
    reload_job,
    require_transition,
    stamp_completion,
    utcnow,
)
from depot_mnr.services.workflow_ordering import check_precondition


def _target(value) -> dict:
    if not isinstance(value, dict) or not value.get("block"):
        raise ValidationError(
            "target_location with at least a block is required",
            details={"target_location": "required"},
        )
    return {
        "block": str(value["block"]).upper(),
        "row": str(value.get("row") or "01"),
        "tier": str(value.get("tier") or "1"),
    }


def create_stacking(container_id: str, data: dict, actor) -> dict:
    data = data or {}
    target = _target(data.get("target_location"))
    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        inspection = check_precondition(STAGE_STACKING, container, jobs)

        request = new_job(
            StackingRequest, container, inspection.transaction_id, "NEW", actor,
            from_location=container.yard_location,
            target_location=target,
            notes=data.get("notes"),
        )
        result = finish(container, request, "create", actor, None)
    return result


def transition_stacking(request_id: str, action: str, actor, **payload) -> dict:
    with container_unit(locate(STAGE_STACKING, request_id)) as container:
        request = reload_job(STAGE_STACKING, request_id)
        target_status = require_transition(request, action)
        previous = request.status
        now = utcnow()
        diff = {}

        if payload.get("target_location"):
            request.target_location = _target(payload["target_location"])

        if action == "start":
            request.started_at = now
        elif action == "complete":
            old_location = container.yard_location
            container.move_to(request.target_location or {})
            request.gate_pass_number = generate_gate_pass_number(now)
            request.released_at = now
            request.released_by = actor_name(actor)
            stamp_completion(request, actor, now)
            diff["gate_pass_number"] = {"old": None, "new": request.gate_pass_number}
            diff["yard_location"] = {"old": old_location, "new": container.yard_location}

        request.status = target_status
        result = finish(container, request, action, actor, previous, diff)
    return result
