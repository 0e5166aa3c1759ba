"""
Helpers shared by the seven stage services.

Every stage service follows the same shape inside a container unit:

    1. validate the action against the stage's transition table
    2. apply the change and its side effects
    3. write the audit row
    4. re-resolve the container status

Usage:
    target = require_transition(job, "complete")
    ...
    return finish(container, job, "complete", actor, previous_status)
"""

import logging
from datetime import datetime, timezone

from depot_mnr.core.exceptions import InvalidStateTransition, NotFoundError, ValidationError
from depot_mnr.models import db
from depot_mnr.models.actor import actor_name
from depot_mnr.models.audit import write_audit
from depot_mnr.models.container import Container
from depot_mnr.models.stages import STAGE_LABELS
from depot_mnr.services.job_store import collect_jobs, get_job, model_for
from depot_mnr.services.status_resolver import apply_resolved_status

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.now(timezone.utc)


def validate_transition(job, action: str) -> dict:
    """
    Validate whether *action* is valid for *job*'s current status.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = job.transitions.get(action)
    if not rule:
        return {"valid": False, "from": job.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if job.status not in rule["from"]:
        return {"valid": False, "from": job.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{job.status}'"}

    return {"valid": True, "from": job.status, "to": rule["to"], "reason": None}


def require_transition(job, action: str):
    """Return the table's target status or raise InvalidStateTransition."""
    validation = validate_transition(job, action)
    if not validation["valid"]:
        raise InvalidStateTransition(
            STAGE_LABELS[job.stage_type], job.id, action, job.status, validation["reason"],
        )
    return validation["to"]


def stamp_completion(job, actor, now=None) -> None:
    job.completed_at = now or utcnow()
    job.completed_by = actor_name(actor)


def audit_job(job, action: str, actor, diff: dict | None = None) -> None:
    write_audit(
        entity_type=job.stage_type,
        entity_id=job.id,
        container_id=job.container_id,
        action=f"{job.stage_type}.{action}",
        actor=actor_name(actor),
        diff=diff,
    )


def log_context(container, job, action: str, previous_status: str | None) -> dict:
    """``extra=`` fields for a stage transition log line."""
    return {
        "container_id": container.id,
        "container_number": container.container_number,
        "container_status": container.status,
        "stage": job.stage_type,
        "job_id": job.id,
        "transaction_id": job.transaction_id,
        "action": action,
        "from_status": previous_status,
        "to_status": job.status,
    }


def finish(container, job, action: str, actor, previous_status: str | None,
           diff: dict | None = None) -> dict:
    """Audit the change, re-resolve the container and build the result."""
    job.updated_by = actor_name(actor)
    _diff = {"status": {"old": previous_status, "new": job.status}}
    if diff:
        _diff.update(diff)
    audit_job(job, action, actor, _diff)

    container_status = apply_resolved_status(container, collect_jobs(container), actor_name(actor))

    logger.info(
        "%s %s id=%s container=%s %s -> %s",
        STAGE_LABELS[job.stage_type], action, job.id,
        container.container_number, previous_status, job.status,
        extra=log_context(container, job, action, previous_status),
    )
    return {
        "id": job.id,
        "stage": job.stage_type,
        "action": action,
        "previous_status": previous_status,
        "new_status": job.status,
        "container_status": container_status,
        "job": job.to_dict(),
    }


def require_fields(data: dict, *names) -> None:
    missing = [n for n in names if data.get(n) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={n: "required" for n in missing},
        )


# ── Locating a job's container unit ──────────────────────────────────────────

def container_id_of(job) -> str:
    """Owning container id; jobs that carry only the number are matched by it."""
    if job.container_id:
        return job.container_id
    container = db.session.execute(
        db.select(Container).filter_by(container_number=job.container_number)
    ).scalar_one_or_none()
    if container is None:
        raise NotFoundError(resource="Container", resource_id=job.container_number)
    return container.id


def locate(stage: str, job_id: str) -> str:
    """Container id to lock before transitioning or deleting *job_id*."""
    return container_id_of(get_job(stage, job_id))


def reload_job(stage: str, job_id: str):
    """Fresh, row-locked copy of a job; call inside the container unit."""
    model = model_for(stage)
    job = db.session.execute(
        db.select(model)
        .filter_by(id=job_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if job is None:
        raise NotFoundError(resource=STAGE_LABELS[stage], resource_id=job_id)
    return job


def new_job(model, container, transaction_id: str, status: str, actor, **fields):
    """Build, add and flush a stage job with the common envelope filled in."""
    job = model(
        container_id=container.id,
        container_number=container.container_number,
        transaction_id=transaction_id,
        status=status,
        created_by=actor_name(actor),
        updated_by=actor_name(actor),
        **fields,
    )
    db.session.add(job)
    db.session.flush()
    return job
