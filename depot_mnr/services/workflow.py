"""
Stage dispatch — one entry point per operation across all seven stages.

    create_job(stage, container_id, data, actor)
    transition_job(stage, job_id, action, actor, **payload)
    batch_transition(stage, job_ids, action, actor, **payload)

Batches are a sequence of independent per-container units: a failure on
one item is reported and the rest carry on.
"""

import logging

from depot_mnr.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)
from depot_mnr.models.stages import (
    STAGE_ESTIMATE,
    STAGE_PRE_INSPECTION,
    STAGE_REPAIR,
    STAGE_SHUNTING,
    STAGE_STACKING,
    STAGE_SURVEY,
    STAGE_WASHING,
)
from depot_mnr.services import (
    estimate_service,
    inspection_service,
    repair_service,
    shunting_service,
    stacking_service,
    survey_service,
    washing_service,
)

logger = logging.getLogger(__name__)

CREATE_HANDLERS = {
    STAGE_SURVEY: survey_service.create_survey,
    STAGE_ESTIMATE: estimate_service.create_estimate,
    STAGE_SHUNTING: shunting_service.create_shunting,
    STAGE_REPAIR: repair_service.create_repair_order,
    STAGE_WASHING: washing_service.create_washing_order,
    STAGE_PRE_INSPECTION: inspection_service.create_pre_inspection,
    STAGE_STACKING: stacking_service.create_stacking,
}

TRANSITION_HANDLERS = {
    STAGE_SURVEY: survey_service.transition_survey,
    STAGE_ESTIMATE: estimate_service.transition_estimate,
    STAGE_SHUNTING: shunting_service.transition_shunting,
    STAGE_REPAIR: repair_service.transition_repair_order,
    STAGE_WASHING: washing_service.transition_washing_order,
    STAGE_PRE_INSPECTION: inspection_service.transition_pre_inspection,
    STAGE_STACKING: stacking_service.transition_stacking,
}

UPDATE_HANDLERS = {
    STAGE_SURVEY: survey_service.update_survey,
    STAGE_ESTIMATE: estimate_service.update_estimate,
}

# Body keys that name a dispatch or handler argument; never forwarded as payload.
RESERVED_PAYLOAD_KEYS = frozenset({
    "action", "actor", "stage", "ids",
    "job_id", "job_ids", "eor_ids",
    "survey_id", "eor_id", "request_id", "order_id", "inspection_id",
})

# Errors a batch reports per item instead of aborting.
_ITEM_ERRORS = (WorkflowError, NotFoundError, ValidationError, ConflictError)


def _handler(table: dict, stage: str):
    handler = table.get(stage)
    if handler is None:
        raise ValidationError(f"Unsupported stage: {stage}", details={"stage": stage})
    return handler


def create_job(stage: str, container_id: str, data: dict, actor) -> dict:
    return _handler(CREATE_HANDLERS, stage)(container_id, data, actor)


def transition_job(stage: str, job_id: str, action: str, actor, **payload) -> dict:
    return _handler(TRANSITION_HANDLERS, stage)(job_id, action, actor, **payload)


def update_job(stage: str, job_id: str, data: dict, actor) -> dict:
    return _handler(UPDATE_HANDLERS, stage)(job_id, data, actor)


def batch_transition(stage: str, job_ids, action: str, actor, **payload) -> dict:
    """
    Apply *action* to every job in *job_ids*, one container unit each.

    Returns:
        {"success": [result, ...], "errors": [{"id", "error", "error_type"}, ...]}
    """
    handler = _handler(TRANSITION_HANDLERS, stage)
    success, errors = [], []
    for job_id in job_ids or []:
        try:
            success.append(handler(job_id, action, actor, **payload))
        except _ITEM_ERRORS as exc:
            logger.warning("Batch %s %s failed id=%s: %s", stage, action, job_id, exc)
            errors.append({
                "id": job_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
    logger.info(
        "Batch %s %s: %d succeeded, %d failed",
        stage, action, len(success), len(errors),
    )
    return {"success": success, "errors": errors}
