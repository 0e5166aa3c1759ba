"""
Workflow ordering table — stage precedence and creation preconditions.

The seven stages and their order are fixed depot knowledge:

    survey(1) → estimate(2) → shunting(3) → repair_order(4)
              → washing_order(5) → pre_inspection(6) → stacking(7)

``check_precondition`` is consulted before every stage-job write. It
raises ``PreconditionNotMet`` when the required predecessor is missing
and ``DuplicateActiveJob`` when the stage already has an active job for
the container. The same precedence map drives the reverse-deletion guard
in ``job_registry``.

All functions here are pure over a list of stage jobs (anything with
``stage_type``, ``status`` and ``is_active``); they never query or write.
"""

from depot_mnr.core.exceptions import DuplicateActiveJob, PreconditionNotMet
from depot_mnr.models.container import STATUS_COMPLETED
from depot_mnr.models.stages import (
    ESTIMATE_APPROVED_STATUSES,
    STAGE_ESTIMATE,
    STAGE_PRE_INSPECTION,
    STAGE_REPAIR,
    STAGE_SHUNTING,
    STAGE_STACKING,
    STAGE_SURVEY,
    STAGE_WASHING,
    created_sort_key,
)

STAGE_PRECEDENCE = {
    STAGE_SURVEY: 1,
    STAGE_ESTIMATE: 2,
    STAGE_SHUNTING: 3,
    STAGE_REPAIR: 4,
    STAGE_WASHING: 5,
    STAGE_PRE_INSPECTION: 6,
    STAGE_STACKING: 7,
}


def precedence(stage: str) -> int:
    return STAGE_PRECEDENCE[stage]


def jobs_of(jobs, stage: str) -> list:
    """Jobs of one stage type, oldest first."""
    return sorted((j for j in jobs if j.stage_type == stage), key=created_sort_key)


def latest(jobs, stage: str, predicate=None):
    """Most recently created job of *stage* matching *predicate*, or None."""
    matching = [j for j in jobs_of(jobs, stage) if predicate is None or predicate(j)]
    return matching[-1] if matching else None


def find_active(jobs, stage: str, *, ignore_statuses=()):
    for job in jobs_of(jobs, stage):
        if job.is_active and job.status not in ignore_statuses:
            return job
    return None


def ensure_no_active_job(stage: str, container_id: str, jobs, *, ignore_statuses=()) -> None:
    """Raise DuplicateActiveJob if *stage* already has an active job."""
    active = find_active(jobs, stage, ignore_statuses=ignore_statuses)
    if active is not None:
        raise DuplicateActiveJob(stage, container_id, active.id)


# ── Predecessor predicates ───────────────────────────────────────────────────

def qualifying_survey(jobs):
    """Latest COMPLETED survey that found damage."""
    return latest(
        jobs, STAGE_SURVEY,
        lambda s: s.status == "COMPLETED" and s.initial_condition == "DAMAGED",
    )


def approved_estimate(jobs):
    return latest(jobs, STAGE_ESTIMATE, lambda e: e.status in ESTIMATE_APPROVED_STATUSES)


def completed_repair(jobs):
    return latest(jobs, STAGE_REPAIR, lambda r: r.status == "COMPLETED")


def accepted_inspection(jobs):
    return latest(jobs, STAGE_PRE_INSPECTION, lambda p: p.result == "ACCEPTED")


def reusable_inspection(jobs):
    """The PENDING_REWORK inspection waiting for the next attempt, if any."""
    return latest(jobs, STAGE_PRE_INSPECTION, lambda p: p.status == "PENDING_REWORK")


# ── Precondition table ───────────────────────────────────────────────────────

def check_precondition(stage: str, container, jobs, *, washing_eligible=()):
    """
    Validate that a *stage* job may be created for *container*.

    Args:
        stage: Stage identifier (``STAGE_*``).
        container: Container row (``id`` and ``status`` are read).
        jobs: Every stage job currently recorded for the container.
        washing_eligible: Container statuses that admit a washing order.

    Returns:
        The predecessor job the new one hangs off (survey for an estimate,
        approved estimate for shunting and repair, accepted inspection for
        stacking, reusable inspection for a pre-inspection), or None.

    Raises:
        PreconditionNotMet, DuplicateActiveJob
    """
    if stage == STAGE_SURVEY:
        ensure_no_active_job(stage, container.id, jobs)
        return None

    if stage == STAGE_ESTIMATE:
        survey = qualifying_survey(jobs)
        if survey is None:
            raise PreconditionNotMet(stage, "completed survey with DAMAGED condition")
        ensure_no_active_job(stage, container.id, jobs)
        return survey

    if stage == STAGE_SHUNTING:
        estimate = approved_estimate(jobs)
        if estimate is None:
            raise PreconditionNotMet(stage, "approved estimate")
        ensure_no_active_job(stage, container.id, jobs)
        return estimate

    if stage == STAGE_REPAIR:
        if not jobs_of(jobs, STAGE_SHUNTING):
            raise PreconditionNotMet(stage, "shunting request")
        estimate = approved_estimate(jobs)
        if estimate is None:
            raise PreconditionNotMet(stage, "approved estimate")
        ensure_no_active_job(stage, container.id, jobs)
        return estimate

    if stage == STAGE_WASHING:
        # A finished repair counts as COMPLETED here, as for pre-inspection.
        repair_finished = (
            completed_repair(jobs) is not None and find_active(jobs, STAGE_REPAIR) is None
        )
        eligible = container.status in washing_eligible or (
            STATUS_COMPLETED in washing_eligible and repair_finished
        )
        if not eligible:
            raise PreconditionNotMet(
                stage, f"container status in {sorted(washing_eligible)} (is {container.status})"
            )
        ensure_no_active_job(stage, container.id, jobs)
        return None

    if stage == STAGE_PRE_INSPECTION:
        if container.status != STATUS_COMPLETED and completed_repair(jobs) is None:
            raise PreconditionNotMet(stage, "completed repair order")
        ensure_no_active_job(stage, container.id, jobs, ignore_statuses=("PENDING_REWORK",))
        return reusable_inspection(jobs)

    if stage == STAGE_STACKING:
        inspection = accepted_inspection(jobs)
        if inspection is None:
            raise PreconditionNotMet(stage, "pre-inspection with result ACCEPTED")
        ensure_no_active_job(stage, container.id, jobs)
        return inspection

    raise ValueError(f"Unknown stage: {stage}")
