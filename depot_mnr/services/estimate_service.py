"""
Estimate of Repair (EOR) service — stage 2.

Creation runs the approval policy immediately:

    total ≤ threshold → AUTO_APPROVED (need_approval=False)
    total > threshold → PENDING, or DRAFT when created with draft=True

    DRAFT ──send──▶ SENT ──approve/reject──▶ APPROVED | REJECTED
    PENDING ───────────────approve/reject──▶ APPROVED | REJECTED

Sending an edited draft whose total now sits within the threshold
auto-approves it instead of mailing it to the liner.

Usage:
    from depot_mnr.services.estimate_service import create_estimate, transition_estimate

    result = create_estimate(container_id, {"repair_items": [...]}, actor)
    result = transition_estimate(eor_id, "approve", actor, approval_notes="ok")
"""

import logging

from flask import current_app
from sqlalchemy import func

from depot_mnr.core.exceptions import InvalidStateTransition, PermissionDenied, ValidationError
from depot_mnr.models import db
from depot_mnr.models.actor import SYSTEM_ACTOR, actor_name
from depot_mnr.models.stages import (
    ESTIMATE_APPROVED_STATUSES,
    ESTIMATE_DECIDABLE_STATUSES,
    STAGE_ESTIMATE,
    EstimateOfRepair,
)
from depot_mnr.services import approval_policy
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs
from depot_mnr.services.permission import check_capability
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

logger = logging.getLogger(__name__)


# ── Totals ───────────────────────────────────────────────────────────────────

def _number(value, field, index):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"repair_items[{index}].{field} must be a number",
            details={f"repair_items[{index}].{field}": value},
        )


def compute_total(repair_items) -> float:
    """Sum of ``line_total``, or ``quantity * unit_price`` where it is absent."""
    total = 0.0
    for i, item in enumerate(repair_items or []):
        if item.get("line_total") not in (None, ""):
            total += _number(item["line_total"], "line_total", i)
        else:
            qty = _number(item.get("quantity", 1), "quantity", i)
            price = _number(item.get("unit_price", 0), "unit_price", i)
            total += qty * price
    return round(total, 2)


def _items(data: dict) -> list:
    items = data.get("repair_items") or []
    if not isinstance(items, list):
        raise ValidationError("repair_items must be a list", details={"repair_items": "list"})
    return items


def _auto_approve(estimate, now) -> None:
    estimate.status = "AUTO_APPROVED"
    estimate.need_approval = False
    estimate.auto_approved = True
    estimate.approved_at = now
    estimate.approved_by = SYSTEM_ACTOR
    stamp_completion(estimate, None, now)


# ── Create / edit ────────────────────────────────────────────────────────────

def create_estimate(container_id: str, data: dict, actor) -> dict:
    """
    Create an estimate for a container whose survey found damage.

    Args:
        data: ``repair_items`` (list), optional ``draft`` (bool), ``liner``.

    Raises:
        PreconditionNotMet, DuplicateActiveJob, ValidationError
    """
    data = data or {}
    items = _items(data)
    total = compute_total(items)

    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        survey = check_precondition(STAGE_ESTIMATE, container, jobs)

        now = utcnow()
        estimate = new_job(
            EstimateOfRepair, container, survey.transaction_id, "DRAFT", actor,
            survey_id=survey.id,
            liner=data.get("liner") or container.liner,
            repair_items=items,
            total_cost=total,
            currency=current_app.config.get("DEFAULT_CURRENCY", "RM"),
        )

        threshold = approval_policy.get_auto_approval_threshold()
        if approval_policy.decide(estimate, threshold) == approval_policy.AUTO_APPROVED:
            _auto_approve(estimate, now)
        else:
            estimate.need_approval = True
            estimate.status = "DRAFT" if data.get("draft") else "PENDING"

        result = finish(container, estimate, "create", actor, None, {
            "total_cost": {"old": None, "new": total},
            "threshold": threshold,
        })
    return result


def update_estimate(eor_id: str, data: dict, actor) -> dict:
    """Replace a DRAFT estimate's repair items; total and need_approval follow."""
    data = data or {}
    with container_unit(locate(STAGE_ESTIMATE, eor_id)) as container:
        estimate = reload_job(STAGE_ESTIMATE, eor_id)
        if estimate.status != "DRAFT":
            raise InvalidStateTransition("Estimate", estimate.id, "update", estimate.status,
                                         "only DRAFT estimates can be edited")
        old_total = estimate.total_cost
        if "repair_items" in data:
            estimate.repair_items = _items(data)
            estimate.total_cost = compute_total(estimate.repair_items)
        if data.get("liner"):
            estimate.liner = data["liner"]
        estimate.need_approval = (
            approval_policy.decide(estimate) != approval_policy.AUTO_APPROVED
        )
        result = finish(container, estimate, "update", actor, estimate.status, {
            "total_cost": {"old": old_total, "new": estimate.total_cost},
        })
    return result


# ── Transitions ──────────────────────────────────────────────────────────────

def transition_estimate(eor_id: str, action: str, actor, **payload) -> dict:
    """
    Execute an estimate lifecycle action.

    Actions:
        send    — DRAFT → SENT (internal staff with eor_detail/send)
        approve — PENDING|SENT → APPROVED (approval policy)
        reject  — PENDING|SENT → REJECTED (approval policy)

    Raises:
        PermissionDenied, InvalidStateTransition, NotFoundError
    """
    with container_unit(locate(STAGE_ESTIMATE, eor_id)) as container:
        estimate = reload_job(STAGE_ESTIMATE, eor_id)
        previous = estimate.status
        now = utcnow()
        who = actor_name(actor)
        diff = {}

        if action in approval_policy.DECISION_ACTIONS:
            approval_policy.check_decision(estimate, actor, action)
        target = require_transition(estimate, action)

        if action == "send":
            if actor is not None and actor.is_external:
                raise PermissionDenied(who, approval_policy.ESTIMATE_SCREEN, action,
                                       "external users cannot send estimates")
            check_capability(actor, approval_policy.ESTIMATE_SCREEN, "send")
            if approval_policy.decide(estimate) == approval_policy.AUTO_APPROVED:
                _auto_approve(estimate, now)
                action = "auto_approve"
            else:
                estimate.status = target
                estimate.sent_at = now
                estimate.sent_by = who
                estimate.sent_to = payload.get("sent_to") or f"mnr@{(estimate.liner or 'liner').lower()}.com"
                estimate.sent_method = payload.get("sent_method") or "EMAIL"
                diff["sent_to"] = {"old": None, "new": estimate.sent_to}
        elif action == "approve":
            estimate.status = target
            estimate.approved_at = now
            estimate.approved_by = who
            estimate.approval_notes = payload.get("approval_notes") or payload.get("notes")
            stamp_completion(estimate, actor, now)
            diff["approved_by"] = {"old": None, "new": who}
        elif action == "reject":
            estimate.status = target
            estimate.rejected_at = now
            estimate.rejected_by = who
            estimate.rejection_reason = payload.get("rejection_reason") or payload.get("reason")
            stamp_completion(estimate, actor, now)
            diff["rejection_reason"] = {"old": None, "new": estimate.rejection_reason}

        result = finish(container, estimate, action, actor, previous, diff)
    return result


def approve_estimate(eor_id: str, actor, notes: str | None = None) -> dict:
    return transition_estimate(eor_id, "approve", actor, approval_notes=notes)


def reject_estimate(eor_id: str, actor, reason: str | None = None) -> dict:
    return transition_estimate(eor_id, "reject", actor, rejection_reason=reason)


def batch_decide_estimates(eor_ids, action: str, actor, **payload) -> dict:
    """Approve or reject many estimates; each one is its own container unit."""
    from depot_mnr.services.workflow import batch_transition

    if action not in approval_policy.DECISION_ACTIONS:
        raise ValidationError("action must be 'approve' or 'reject'", details={"action": action})
    return batch_transition(STAGE_ESTIMATE, eor_ids, action, actor, **payload)


# ── Statistics ───────────────────────────────────────────────────────────────

def estimate_stats() -> dict:
    rows = db.session.execute(
        db.select(
            EstimateOfRepair.status,
            func.count(EstimateOfRepair.id),
            func.coalesce(func.sum(EstimateOfRepair.total_cost), 0.0),
        ).group_by(EstimateOfRepair.status)
    ).all()
    by_status = {status: count for status, count, _ in rows}
    value_by_status = {status: float(value) for status, _, value in rows}
    return {
        "total": sum(by_status.values()),
        "pending": sum(by_status.get(s, 0) for s in ESTIMATE_DECIDABLE_STATUSES),
        "approved": sum(by_status.get(s, 0) for s in ESTIMATE_APPROVED_STATUSES),
        "auto_approved": by_status.get("AUTO_APPROVED", 0),
        "draft": by_status.get("DRAFT", 0),
        "rejected": by_status.get("REJECTED", 0),
        "by_status": by_status,
        "total_value": round(sum(value_by_status.values()), 2),
        "approved_value": round(
            sum(value_by_status.get(s, 0.0) for s in ESTIMATE_APPROVED_STATUSES), 2
        ),
        "currency": current_app.config.get("DEFAULT_CURRENCY", "RM"),
    }
