"""
Keyed lookups over the seven stage tables.

Jobs are matched to a container by ``container_id`` OR by
``container_number`` because older records may carry only the number.
"""

from depot_mnr.core.exceptions import NotFoundError, ValidationError
from depot_mnr.models import db
from depot_mnr.models.stages import STAGE_LABELS, STAGE_MODELS, STAGE_TYPES, created_sort_key


def model_for(stage: str):
    model = STAGE_MODELS.get(stage)
    if model is None:
        raise ValidationError(f"Unknown stage: {stage}", details={"stage": stage})
    return model


def get_job(stage: str, job_id: str):
    model = model_for(stage)
    job = db.session.get(model, job_id)
    if job is None:
        raise NotFoundError(resource=STAGE_LABELS[stage], resource_id=job_id)
    return job


def jobs_by_container(stage: str, *, container_id=None, container_number=None) -> list:
    """One stage's jobs for a container, matched by id or number."""
    model = model_for(stage)
    clauses = []
    if container_id:
        clauses.append(model.container_id == container_id)
    if container_number:
        clauses.append(model.container_number == container_number)
    if not clauses:
        return []
    stmt = (
        db.select(model)
        .where(db.or_(*clauses))
        .execution_options(populate_existing=True)
    )
    return sorted(db.session.execute(stmt).scalars().all(), key=created_sort_key)


def jobs_by_transaction(stage: str, transaction_id: str) -> list:
    model = model_for(stage)
    stmt = db.select(model).filter_by(transaction_id=transaction_id)
    return sorted(db.session.execute(stmt).scalars().all(), key=created_sort_key)


def collect_jobs(container) -> list:
    """Every stage job recorded for *container*, all stages mixed."""
    jobs = []
    for stage in STAGE_TYPES:
        jobs.extend(jobs_by_container(
            stage,
            container_id=container.id,
            container_number=container.container_number,
        ))
    return jobs


def collect_transaction_jobs(transaction_id: str) -> list:
    jobs = []
    for stage in STAGE_TYPES:
        jobs.extend(jobs_by_transaction(stage, transaction_id))
    return jobs
