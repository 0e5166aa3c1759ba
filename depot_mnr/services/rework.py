"""
Rework controller — reopens a completed stage in place after a failed check.

Two loops share one pattern (reuse the record, bump ``rework_count`` by
exactly one, never create a replacement job):

  Pre-inspection failure
    - inspection  → PENDING_REWORK, result REWORK, rework_count + 1
    - container   → rework_count + 1 (status re-resolves to REPAIR)
    - the container's COMPLETED repair order → IN_PROGRESS with
      rework_required, its rework_count synced to the container's
    No estimate, shunting or repair order is created; the loop re-enters
    at the repair stage only.

  Washing QC
    - fail → REWORK, rework_count + 1, reason appended
    - pass → COMPLETED, certificate issued

Both run inside the caller's container unit; they never lock or commit.
"""

import logging

from depot_mnr.core.exceptions import InvalidStateTransition, PreconditionNotMet
from depot_mnr.models.actor import actor_name
from depot_mnr.models.audit import write_audit
from depot_mnr.models.stages import STAGE_PRE_INSPECTION, STAGE_REPAIR
from depot_mnr.services.code_generator import generate_certificate_number
from depot_mnr.services.stage_common import audit_job, stamp_completion, utcnow
from depot_mnr.services.workflow_ordering import jobs_of

logger = logging.getLogger(__name__)


def _repair_to_reopen(jobs):
    repairs = jobs_of(jobs, STAGE_REPAIR)
    completed = [r for r in repairs if r.status == "COMPLETED"]
    if completed:
        return completed[-1]
    return repairs[-1] if repairs else None


def trigger_inspection_rework(
    container,
    inspection,
    jobs,
    actor,
    *,
    failed_damage_items=None,
    failed_checks=None,
    notes=None,
    now=None,
):
    """
    Send *container* back to the repair stage after a failed inspection.

    Returns the reopened RepairOrder.

    Raises:
        PreconditionNotMet: no repair order exists to reopen.
        InvalidStateTransition: the repair order is not COMPLETED.
    """
    now = now or utcnow()
    repair = _repair_to_reopen(jobs)
    if repair is None:
        raise PreconditionNotMet(STAGE_PRE_INSPECTION, "repair order to reopen")
    if repair.status != "COMPLETED":
        raise InvalidStateTransition(
            "RepairOrder", repair.id, "reopen", repair.status,
            "only a completed repair order can be reopened",
        )

    who = actor_name(actor)
    failed_checks = list(failed_checks or [])

    # Inspection: same record, waits for the next attempt
    inspection.status = "PENDING_REWORK"
    inspection.result = "REWORK"
    inspection.rework_count = (inspection.rework_count or 0) + 1

    # Container counter; status follows from the resolver
    old_container_count = container.rework_count or 0
    container.rework_count = old_container_count + 1

    # Repair order: reopened in place
    old_repair_status = repair.status
    repair.status = "IN_PROGRESS"
    repair.rework_required = True
    repair.rework_count = container.rework_count
    repair.rework_notes = notes
    repair.failed_checks = list(failed_damage_items or []) + failed_checks
    repair.rework_requested_at = now
    repair.rework_requested_by = who
    repair.completed_at = None
    repair.completed_by = None
    repair.updated_by = who

    audit_job(repair, "reopen", actor, {
        "status": {"old": old_repair_status, "new": repair.status},
        "rework_count": {"old": repair.rework_count - 1, "new": repair.rework_count},
    })
    write_audit(
        entity_type="container",
        entity_id=container.id,
        container_id=container.id,
        action="container.rework",
        actor=who,
        diff={
            "rework_count": {"old": old_container_count, "new": container.rework_count},
            "inspection_id": inspection.id,
            "repair_order_id": repair.id,
        },
    )
    logger.info(
        "Rework triggered container=%s inspection=%s repair=%s count=%d",
        container.container_number, inspection.id, repair.id, container.rework_count,
    )
    return repair


def apply_washing_qc(
    order,
    passed: bool,
    actor,
    *,
    checklist=None,
    notes=None,
    reason=None,
    now=None,
) -> None:
    """Record a washing QC result on *order* (status must be PENDING_QC)."""
    now = now or utcnow()
    who = actor_name(actor)
    order.qc_checklist_results = checklist or {}
    order.qc_notes = notes
    order.qc_inspected_at = now
    order.qc_inspected_by = who

    if passed:
        order.status = "COMPLETED"
        order.qc_result = "PASS"
        order.certificate_number = generate_certificate_number(now)
        order.certificate_issued_at = now
        stamp_completion(order, actor, now)
        logger.info("Washing QC passed order=%s certificate=%s", order.id, order.certificate_number)
        return

    order.status = "REWORK"
    order.qc_result = "FAIL"
    order.rework_count = (order.rework_count or 0) + 1
    order.rework_reasons = list(order.rework_reasons or []) + [{
        "attempt": order.rework_count,
        "reason": reason or notes,
        "at": now.isoformat(),
        "by": who,
    }]
    logger.info("Washing QC failed order=%s rework_count=%d", order.id, order.rework_count)
