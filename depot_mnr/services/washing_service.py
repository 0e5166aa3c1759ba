"""
Washing order service — stage 5.

    PENDING_APPROVAL ──approve──▶ PENDING_SCHEDULE ──schedule──▶ SCHEDULED
           └──reject──▶ REJECTED
    SCHEDULED | REWORK ──start──▶ IN_PROGRESS ──finish──▶ PENDING_QC
    PENDING_QC ──qc(pass)──▶ COMPLETED (certificate issued)
    PENDING_QC ──qc(fail)──▶ REWORK    (rework_count + 1, same record)

Orders start in PENDING_APPROVAL only when ``WASHING_REQUIRES_APPROVAL``
is set; otherwise they go straight to PENDING_SCHEDULE.
"""

from flask import current_app

from depot_mnr.core.exceptions import ValidationError
from depot_mnr.models.actor import actor_name
from depot_mnr.models.stages import STAGE_SURVEY, STAGE_WASHING, WashingOrder
from depot_mnr.services.code_generator import generate_transaction_id
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs
from depot_mnr.services.permission import check_capability
from depot_mnr.services.rework import apply_washing_qc
from depot_mnr.services.stage_common import (
    finish,
    locate,
    new_job,
    reload_job,
    require_transition,
    stamp_completion,
    utcnow,
)
from depot_mnr.services.workflow_ordering import check_precondition, latest
from depot_mnr.utils.helpers import parse_bool, parse_datetime

WASHING_SCREEN = "washing"


def create_washing_order(container_id: str, data: dict, actor) -> dict:
    data = data or {}
    eligible = tuple(current_app.config.get("WASHING_ELIGIBLE_STATUSES", ()))
    requires_approval = current_app.config.get("WASHING_REQUIRES_APPROVAL", False)

    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        check_precondition(STAGE_WASHING, container, jobs, washing_eligible=eligible)

        survey = latest(jobs, STAGE_SURVEY)
        transaction_id = (
            survey.transaction_id if survey
            else generate_transaction_id(container.container_number, utcnow())
        )
        order = new_job(
            WashingOrder, container, transaction_id,
            "PENDING_APPROVAL" if requires_approval else "PENDING_SCHEDULE", actor,
            cleaning_program=data.get("cleaning_program"),
            contamination_level=data.get("contamination_level"),
            assigned_bay=data.get("assigned_bay"),
            worker_notes=data.get("notes"),
        )
        result = finish(container, order, "create", actor, None)
    return result


def _qc_passed(payload) -> bool:
    if "passed" in payload:
        return parse_bool(payload["passed"])
    result = str(payload.get("result") or "").upper()
    if result not in ("PASS", "FAIL"):
        raise ValidationError("qc requires result PASS or FAIL", details={"result": "required"})
    return result == "PASS"


def transition_washing_order(order_id: str, action: str, actor, **payload) -> dict:
    """
    Execute a washing action: approve, reject, schedule, start, finish, qc.

    approve / reject require the ``washing/approve`` capability.
    """
    with container_unit(locate(STAGE_WASHING, order_id)) as container:
        order = reload_job(STAGE_WASHING, order_id)
        target = require_transition(order, action)
        previous = order.status
        now = utcnow()
        who = actor_name(actor)
        audit_action = action

        if action in ("approve", "reject"):
            check_capability(actor, WASHING_SCREEN, "approve")

        if action == "approve":
            order.approved_at = now
            order.approved_by = who
            order.status = target
        elif action == "reject":
            order.rejected_at = now
            order.rejected_by = who
            order.rejection_reason = payload.get("rejection_reason") or payload.get("reason")
            stamp_completion(order, actor, now)
            order.status = target
        elif action == "schedule":
            bay = payload.get("assigned_bay") or order.assigned_bay
            if not bay:
                raise ValidationError("assigned_bay is required to schedule",
                                      details={"assigned_bay": "required"})
            order.assigned_bay = bay
            order.assigned_worker = payload.get("assigned_worker") or order.assigned_worker
            order.assigned_team = payload.get("assigned_team") or order.assigned_team
            order.scheduled_at = parse_datetime(payload.get("scheduled_at")) or now
            order.status = target
        elif action == "start":
            order.started_at = now
            order.status = target
        elif action == "finish":
            order.checklist_results = payload.get("checklist_results") or {}
            order.worker_notes = payload.get("notes") or order.worker_notes
            order.finished_at = now
            order.status = target
        elif action == "qc":
            passed = _qc_passed(payload)
            apply_washing_qc(
                order, passed, actor,
                checklist=payload.get("checklist_results"),
                notes=payload.get("notes"),
                reason=payload.get("reason"),
                now=now,
            )
            audit_action = "qc_pass" if passed else "qc_fail"

        result = finish(container, order, audit_action, actor, previous)
    return result
