"""
Container status resolver.

A container's status is a projection of its stage jobs. ``resolve_status``
walks the rules highest stage first and returns on the first match:

     1. completed stacking job            → AV
     2. any stacking job                  → COMPLETED
     3. pre-inspection result ACCEPTED    → COMPLETED
     4. any pre-inspection                → REPAIR
     5. any repair order                  → REPAIR
     6. completed shunting job            → AR
     7. approved / auto-approved estimate → AR
     8. any estimate                      → DM
     9. any survey                        → DM
    10. no jobs                           → STACKING

Washing orders take part in ordering and deletion but not in this
projection. The same function runs after create, transition and delete,
so repeated resolution over an unchanged job set is a no-op.
"""

import logging

from depot_mnr.models.actor import SYSTEM_ACTOR, actor_name
from depot_mnr.models.audit import write_audit
from depot_mnr.models.container import (
    STATUS_AVAILABLE,
    STATUS_AWAITING_REPAIR,
    STATUS_COMPLETED,
    STATUS_DAMAGED,
    STATUS_REPAIR,
    STATUS_STACKING,
)
from depot_mnr.models.stages import (
    ESTIMATE_APPROVED_STATUSES,
    STAGE_ESTIMATE,
    STAGE_PRE_INSPECTION,
    STAGE_REPAIR,
    STAGE_SHUNTING,
    STAGE_STACKING,
    STAGE_SURVEY,
)
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs

logger = logging.getLogger(__name__)


def _any(jobs, stage, predicate=None) -> bool:
    return any(
        j.stage_type == stage and (predicate is None or predicate(j))
        for j in jobs
    )


# Ordered (stage, predicate, status) rules; first match wins.
_RULES = (
    (STAGE_STACKING, lambda j: j.status == "COMPLETED", STATUS_AVAILABLE),
    (STAGE_STACKING, None, STATUS_COMPLETED),
    (STAGE_PRE_INSPECTION, lambda j: j.result == "ACCEPTED", STATUS_COMPLETED),
    (STAGE_PRE_INSPECTION, None, STATUS_REPAIR),
    (STAGE_REPAIR, None, STATUS_REPAIR),
    (STAGE_SHUNTING, lambda j: j.status == "COMPLETED", STATUS_AWAITING_REPAIR),
    (STAGE_ESTIMATE, lambda j: j.status in ESTIMATE_APPROVED_STATUSES, STATUS_AWAITING_REPAIR),
    (STAGE_ESTIMATE, None, STATUS_DAMAGED),
    (STAGE_SURVEY, None, STATUS_DAMAGED),
)


def resolve_status(jobs) -> str:
    """Pure projection of a job set onto a container status."""
    jobs = list(jobs)
    for stage, predicate, status in _RULES:
        if _any(jobs, stage, predicate):
            return status
    return STATUS_STACKING


def apply_resolved_status(container, jobs, actor_name: str = SYSTEM_ACTOR) -> str:
    """
    Recompute and persist *container*'s status from *jobs*.

    Must run inside the caller's container unit; writes one audit row
    when the status actually changes and never commits.
    """
    new_status = resolve_status(jobs)
    old_status = container.status
    if new_status != old_status:
        container.status = new_status
        write_audit(
            entity_type="container",
            entity_id=container.id,
            container_id=container.id,
            action="container.status_change",
            actor=actor_name,
            diff={"status": {"old": old_status, "new": new_status}},
        )
        logger.info(
            "Container status resolved container=%s %s -> %s",
            container.container_number, old_status, new_status,
        )
    return new_status


def resolve_container_status(container_id: str, actor=None) -> dict:
    """Public operation: recompute a container's status under its unit."""
    with container_unit(container_id) as container:
        previous = container.status
        status = apply_resolved_status(container, collect_jobs(container), actor_name(actor))
        result = {
            "container_id": container.id,
            "container_number": container.container_number,
            "previous_status": previous,
            "status": status,
        }
    return result
