"""
Shunting service — stage 3.

Moves an approved container to a repair block.

    NEW ──dispatch──▶ DISPATCHED ──start──▶ IN_PROGRESS ──complete──▶ COMPLETED
     └────────────────start─────────────────┘

A request created with a driver already assigned starts in DISPATCHED.
Completion moves the container to ``{block: to_block, row: "01", tier: "1"}``.
"""

from depot_mnr.core.exceptions import ValidationError
from depot_mnr.models.stages import SHUNTING_PRIORITIES, STAGE_SHUNTING, ShuntingRequest
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs
from depot_mnr.services.stage_common import (
    finish,
    locate,
    new_job,
    reload_job,
    require_fields,
    require_transition,
    stamp_completion,
    utcnow,
)
from depot_mnr.services.workflow_ordering import check_precondition


def _priority(value) -> str:
    priority = str(value or "NORMAL").upper()
    if priority not in SHUNTING_PRIORITIES:
        raise ValidationError(
            f"priority must be one of {sorted(SHUNTING_PRIORITIES)}",
            details={"priority": value},
        )
    return priority


def create_shunting(container_id: str, data: dict, actor) -> dict:
    data = data or {}
    require_fields(data, "to_block")
    priority = _priority(data.get("priority"))

    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        estimate = check_precondition(STAGE_SHUNTING, container, jobs)

        driver = data.get("assigned_driver")
        request = new_job(
            ShuntingRequest, container, estimate.transaction_id,
            "DISPATCHED" if driver else "NEW", actor,
            from_location=data.get("from_location") or container.yard_location,
            to_block=str(data["to_block"]).upper(),
            assigned_driver=driver,
            priority=priority,
            notes=data.get("notes"),
            dispatched_at=utcnow() if driver else None,
        )
        result = finish(container, request, "create", actor, None)
    return result


def transition_shunting(request_id: str, action: str, actor, **payload) -> dict:
    """
    Execute a shunting action: dispatch, start or complete.

    ``dispatch`` needs ``assigned_driver`` (payload or already on the record).
    """
    with container_unit(locate(STAGE_SHUNTING, request_id)) as container:
        request = reload_job(STAGE_SHUNTING, request_id)
        target = require_transition(request, action)
        previous = request.status
        now = utcnow()
        diff = {}

        if action == "dispatch":
            driver = payload.get("assigned_driver") or request.assigned_driver
            if not driver:
                raise ValidationError("assigned_driver is required to dispatch",
                                      details={"assigned_driver": "required"})
            request.assigned_driver = driver
            request.dispatched_at = now
        elif action == "start":
            if payload.get("assigned_driver"):
                request.assigned_driver = payload["assigned_driver"]
            request.started_at = now
        elif action == "complete":
            old_location = container.yard_location
            container.move_to({"block": request.to_block, "row": "01", "tier": "1"})
            stamp_completion(request, actor, now)
            diff["yard_location"] = {"old": old_location, "new": container.yard_location}

        request.status = target
        result = finish(container, request, action, actor, previous, diff)
    return result
