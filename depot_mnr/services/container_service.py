"""
Container service — gate-in registration, lookup, statistics and the
derived workflow-progress view.

The container's status is never set here after registration; it moves
only through ``status_resolver``.
"""

import logging

from sqlalchemy import func

from depot_mnr.core.exceptions import ConflictError, NotFoundError, ValidationError
from depot_mnr.models import db
from depot_mnr.models.actor import actor_name
from depot_mnr.models.audit import write_audit
from depot_mnr.models.container import (
    CONTAINER_SIZES,
    CONTAINER_STATUSES,
    DEFAULT_YARD_LOCATION,
    STATUS_PENDING_WASH,
    STATUS_STACKING,
    Container,
)
from depot_mnr.models.stages import (
    ESTIMATE_APPROVED_STATUSES,
    STAGE_ESTIMATE,
    STAGE_PRE_INSPECTION,
    STAGE_REPAIR,
    STAGE_SHUNTING,
    STAGE_STACKING,
    STAGE_SURVEY,
    STAGE_WASHING,
)
from depot_mnr.services.job_store import collect_jobs
from depot_mnr.services.workflow_ordering import jobs_of

logger = logging.getLogger(__name__)


# ── Registration / lookup ────────────────────────────────────────────────────

def register_container(data: dict, actor) -> Container:
    """
    Gate a container in.

    Args:
        data: container_number (required), liner, size, type, booking,
              yard_location, pending_wash.

    Raises:
        ValidationError, ConflictError
    """
    data = data or {}
    number = str(data.get("container_number") or "").strip().upper()
    if not number:
        raise ValidationError("container_number is required",
                              details={"container_number": "required"})
    size = str(data["size"]) if data.get("size") not in (None, "") else None
    if size is not None and size not in CONTAINER_SIZES:
        raise ValidationError(f"size must be one of {sorted(CONTAINER_SIZES)}",
                              details={"size": size})

    existing = db.session.execute(
        db.select(Container.id).filter_by(container_number=number)
    ).first()
    if existing is not None:
        raise ConflictError("Container", "container_number", number)

    container = Container(
        container_number=number,
        liner=(data.get("liner") or None),
        size=size,
        container_type=data.get("type") or data.get("container_type"),
        booking=data.get("booking"),
        status=STATUS_PENDING_WASH if data.get("pending_wash") else STATUS_STACKING,
        created_by=actor_name(actor),
    )
    container.move_to({**DEFAULT_YARD_LOCATION, **(data.get("yard_location") or {})})
    db.session.add(container)
    db.session.flush()

    write_audit(
        entity_type="container",
        entity_id=container.id,
        container_id=container.id,
        action="container.register",
        actor=actor_name(actor),
        diff={"status": {"old": None, "new": container.status}},
    )
    db.session.commit()
    logger.info("Container registered id=%s number=%s status=%s",
                container.id, number, container.status)
    return container


def get_container(container_id: str) -> Container:
    container = db.session.get(Container, container_id)
    if container is None:
        raise NotFoundError(resource="Container", resource_id=container_id)
    return container


def get_container_by_number(container_number: str) -> Container:
    container = db.session.execute(
        db.select(Container).filter_by(container_number=container_number.upper())
    ).scalar_one_or_none()
    if container is None:
        raise NotFoundError(resource="Container", resource_id=container_number)
    return container


def search_containers(q: str | None = None, status: str | None = None, liner: str | None = None):
    """Return a query over containers; ``q`` matches number, booking or yard slot."""
    query = Container.query
    if q:
        like = f"%{q.strip()}%"
        slot = Container.yard_block + "-" + Container.yard_row
        query = query.filter(db.or_(
            Container.container_number.ilike(like),
            Container.booking.ilike(like),
            slot.ilike(like),
        ))
    if status:
        query = query.filter(Container.status == status.upper())
    if liner:
        query = query.filter(Container.liner == liner)
    return query.order_by(Container.created_at.desc())


def container_stats() -> dict:
    rows = db.session.execute(
        db.select(Container.status, func.count(Container.id)).group_by(Container.status)
    ).all()
    by_status = {status: 0 for status in sorted(CONTAINER_STATUSES)}
    by_status.update({status: count for status, count in rows})
    in_rework = db.session.execute(
        db.select(func.count(Container.id)).where(Container.rework_count > 0)
    ).scalar() or 0
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "with_rework": in_rework,
    }


# ── Workflow progress ────────────────────────────────────────────────────────

PROGRESS_STEPS = (
    ("registered", "Registered", None),
    ("survey_created", "Survey Created", "Create Survey"),
    ("survey_completed", "Survey Completed", "Complete Survey"),
    ("eor_created", "EOR Created", "Create EOR"),
    ("eor_approved", "EOR Approved", "Approve EOR"),
    ("shunted", "Shunted to Repair", "Shunt to Repair"),
    ("repair_started", "Repair Started", "Start Repair"),
    ("repair_completed", "Repair Completed", "Complete Repair"),
    ("washing", "Washing", "Complete Washing"),
    ("inspection_passed", "Pre-Inspection Passed", "Pre-Inspection"),
    ("released", "Released", "Release"),
)


def _done_flags(jobs) -> dict:
    def has(stage, predicate=None):
        return any(predicate is None or predicate(j) for j in jobs_of(jobs, stage))

    return {
        "registered": True,
        "survey_created": has(STAGE_SURVEY),
        "survey_completed": has(STAGE_SURVEY, lambda s: s.status in ("COMPLETED", "RELEASED")),
        "eor_created": has(STAGE_ESTIMATE),
        "eor_approved": has(STAGE_ESTIMATE, lambda e: e.status in ESTIMATE_APPROVED_STATUSES),
        "shunted": has(STAGE_SHUNTING, lambda s: s.status == "COMPLETED"),
        "repair_started": has(STAGE_REPAIR, lambda r: r.status in ("IN_PROGRESS", "COMPLETED")),
        "repair_completed": has(STAGE_REPAIR, lambda r: r.status == "COMPLETED"),
        "washing": has(STAGE_WASHING, lambda w: w.status == "COMPLETED"),
        "inspection_passed": has(STAGE_PRE_INSPECTION, lambda p: p.result == "ACCEPTED"),
        "released": has(STAGE_STACKING, lambda s: s.status == "COMPLETED"),
    }


def workflow_progress(jobs) -> dict:
    """Eleven display steps derived from a job set; never stored."""
    done = _done_flags(jobs)
    washing_active = any(w.is_active for w in jobs_of(jobs, STAGE_WASHING))
    later_done = done["inspection_passed"] or done["released"]

    steps, current_key, next_action = [], None, None
    for key, label, action in PROGRESS_STEPS:
        if done[key]:
            state = "completed"
        elif key == "washing" and not washing_active and (done["repair_completed"] or later_done):
            state = "skipped"
        elif current_key is None:
            state = "current"
            current_key, next_action = key, action
        else:
            state = "pending"
        steps.append({"key": key, "label": label, "state": state})

    completed = sum(1 for s in steps if s["state"] in ("completed", "skipped"))
    return {
        "steps": steps,
        "current_step": current_key,
        "next_action": next_action,
        "completed_steps": completed,
        "total_steps": len(steps),
    }


def get_workflow_progress(container_id: str) -> dict:
    container = get_container(container_id)
    progress = workflow_progress(collect_jobs(container))
    progress.update({
        "container_id": container.id,
        "container_number": container.container_number,
        "status": container.status,
        "rework_count": container.rework_count,
    })
    return progress
