"""
Repair order service — stage 4.

    PENDING ──start──▶ IN_PROGRESS ──complete──▶ COMPLETED

The order copies the approved estimate's repair items as its work items.
A failed pre-inspection reopens the same order (see ``services.rework``);
completing it again clears ``rework_required``.
"""

from depot_mnr.models.stages import STAGE_REPAIR, RepairOrder
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


def create_repair_order(container_id: str, data: dict, actor) -> dict:
    data = data or {}
    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        estimate = check_precondition(STAGE_REPAIR, container, jobs)

        order = new_job(
            RepairOrder, container, estimate.transaction_id, "PENDING", actor,
            eor_id=estimate.id,
            assigned_team=data.get("assigned_team"),
            work_items=list(estimate.repair_items or []),
            notes=data.get("notes"),
        )
        result = finish(container, order, "create", actor, None)
    return result


def transition_repair_order(order_id: str, action: str, actor, **payload) -> dict:
    with container_unit(locate(STAGE_REPAIR, order_id)) as container:
        order = reload_job(STAGE_REPAIR, order_id)
        target = require_transition(order, action)
        previous = order.status
        now = utcnow()

        if payload.get("assigned_team"):
            order.assigned_team = payload["assigned_team"]
        if payload.get("notes"):
            order.notes = payload["notes"]

        if action == "start":
            order.started_at = now
        elif action == "complete":
            order.rework_required = False
            stamp_completion(order, actor, now)

        order.status = target
        result = finish(container, order, action, actor, previous)
    return result
