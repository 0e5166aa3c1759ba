"""
Job registry — cross-stage search and the reverse-deletion guard.

Lookups:
    list_jobs(stage, container_id=..., container_number=...)   by container
    list_jobs(stage, transaction_id=...)                        by transaction
    container_jobs(container_id)                                all stages
    transaction_jobs(transaction_id)                            all stages

Deletion:
    Only the most advanced job present for a container may be deleted
    (highest precedence in the ordering table). Anything earlier raises
    BlockedByDownstreamJob naming the blocking stage. A successful delete
    re-resolves the container, which is the only way a status moves
    backwards across stage boundaries.
"""

import logging

from depot_mnr.core.exceptions import BlockedByDownstreamJob, NotFoundError, ValidationError
from depot_mnr.models import db
from depot_mnr.models.actor import actor_name
from depot_mnr.models.container import Container
from depot_mnr.models.stages import STAGE_LABELS
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import (
    collect_jobs,
    collect_transaction_jobs,
    jobs_by_container,
    jobs_by_transaction,
)
from depot_mnr.services.permission import check_capability
from depot_mnr.services.stage_common import audit_job, locate, reload_job
from depot_mnr.services.status_resolver import apply_resolved_status
from depot_mnr.services.workflow_ordering import STAGE_PRECEDENCE, precedence

logger = logging.getLogger(__name__)

DELETE_SCREEN = "job_monitoring"
DELETE_ACTION = "delete_job"


# ── Lookups ──────────────────────────────────────────────────────────────────

def list_jobs(stage: str, *, container_id=None, container_number=None, transaction_id=None) -> list:
    """
    Jobs of one stage, by container (id OR number) or by transaction id.

    When only ``container_id`` is given the container's number is looked
    up too, so number-only historical records are included.
    """
    if transaction_id:
        return jobs_by_transaction(stage, transaction_id)
    if container_id and not container_number:
        container = db.session.get(Container, container_id)
        if container is not None:
            container_number = container.container_number
    if not container_id and not container_number:
        raise ValidationError(
            "container_id, container_number or transaction_id is required",
            details={"filter": "required"},
        )
    return jobs_by_container(stage, container_id=container_id, container_number=container_number)


def container_jobs(container_id: str) -> list:
    container = db.session.get(Container, container_id)
    if container is None:
        raise NotFoundError(resource="Container", resource_id=container_id)
    return collect_jobs(container)


def transaction_jobs(transaction_id: str) -> list:
    return collect_transaction_jobs(transaction_id)


def group_by_stage(jobs) -> dict:
    grouped = {stage: [] for stage in STAGE_PRECEDENCE}
    for job in jobs:
        grouped[job.stage_type].append(job.to_dict())
    return grouped


# ── Reverse-deletion guard ───────────────────────────────────────────────────

def blocking_stage(job, all_jobs) -> str | None:
    """The most advanced stage ahead of *job*, or None when *job* is the maximum."""
    if not all_jobs:
        return None
    top = max(all_jobs, key=lambda j: precedence(j.stage_type))
    if precedence(top.stage_type) > precedence(job.stage_type):
        return top.stage_type
    return None


def can_delete(job, all_jobs) -> bool:
    """True when *job* belongs to the highest-precedence stage present."""
    max_order = max((precedence(j.stage_type) for j in all_jobs), default=0)
    return precedence(job.stage_type) == max_order


def delete_job(stage: str, job_id: str, actor) -> dict:
    """
    Delete a stage job under the reverse-deletion guard.

    Requires ``job_monitoring/delete_job``.

    Raises:
        PermissionDenied, BlockedByDownstreamJob, NotFoundError
    """
    check_capability(actor, DELETE_SCREEN, DELETE_ACTION)

    with container_unit(locate(stage, job_id)) as container:
        job = reload_job(stage, job_id)
        all_jobs = collect_jobs(container)
        if not can_delete(job, all_jobs):
            raise BlockedByDownstreamJob(stage, job.id, blocking_stage(job, all_jobs))

        snapshot = job.to_dict()
        audit_job(job, "delete", actor, {"status": {"old": job.status, "new": None}})
        db.session.delete(job)
        db.session.flush()

        previous = container.status
        status = apply_resolved_status(container, collect_jobs(container), actor_name(actor))
        result = {
            "id": job_id,
            "stage": stage,
            "deleted": snapshot,
            "previous_container_status": previous,
            "container_status": status,
        }

    logger.info(
        "%s deleted id=%s container=%s status %s -> %s",
        STAGE_LABELS[stage], job_id, result["deleted"]["container_number"],
        result["previous_container_status"], result["container_status"],
    )
    return result
