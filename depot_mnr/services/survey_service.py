"""
Survey service — stage 1.

A survey opens a workflow instance: its id is the transaction id that
every later stage job carries. Lifecycle:

    DRAFT → IN_PROGRESS → COMPLETED → RELEASED (NO_DAMAGE only)

Completing a DAMAGED survey requires at least one damage item; those
items later become the mandatory checks of the pre-inspection.
"""

from depot_mnr.core.exceptions import InvalidStateTransition, ValidationError
from depot_mnr.models.stages import STAGE_SURVEY, SURVEY_CONDITIONS, Survey
from depot_mnr.services.code_generator import generate_transaction_id
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs
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

_EDITABLE = ("survey_type", "initial_condition", "damage_items", "notes")
_EDITABLE_STATUSES = {"DRAFT", "IN_PROGRESS"}


def _normalise(data: dict) -> dict:
    fields = {k: data[k] for k in _EDITABLE if k in data}
    if fields.get("initial_condition"):
        condition = str(fields["initial_condition"]).upper()
        if condition not in SURVEY_CONDITIONS:
            raise ValidationError(
                f"initial_condition must be one of {sorted(SURVEY_CONDITIONS)}",
                details={"initial_condition": fields["initial_condition"]},
            )
        fields["initial_condition"] = condition
    if "damage_items" in fields:
        items = fields["damage_items"] or []
        if not isinstance(items, list):
            raise ValidationError("damage_items must be a list", details={"damage_items": "list"})
        fields["damage_items"] = items
    return fields


def create_survey(container_id: str, data: dict, actor) -> dict:
    fields = _normalise(data or {})
    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        check_precondition(STAGE_SURVEY, container, jobs)

        transaction_id = generate_transaction_id(container.container_number, utcnow())
        survey = new_job(
            Survey, container, transaction_id, "DRAFT", actor,
            id=transaction_id,
            **fields,
        )
        result = finish(container, survey, "create", actor, None)
    return result


def update_survey(survey_id: str, data: dict, actor) -> dict:
    """Edit survey fields while it is still DRAFT or IN_PROGRESS."""
    fields = _normalise(data or {})
    with container_unit(locate(STAGE_SURVEY, survey_id)) as container:
        survey = reload_job(STAGE_SURVEY, survey_id)
        if survey.status not in _EDITABLE_STATUSES:
            raise InvalidStateTransition("Survey", survey.id, "update", survey.status)
        diff = {k: {"old": getattr(survey, k), "new": v} for k, v in fields.items()}
        for key, value in fields.items():
            setattr(survey, key, value)
        result = finish(container, survey, "update", actor, survey.status, diff)
    return result


def _validate_completion(survey) -> None:
    errors = {}
    if not survey.initial_condition:
        errors["initial_condition"] = "required"
    if not survey.survey_type:
        errors["survey_type"] = "required"
    if survey.initial_condition == "DAMAGED" and not (survey.damage_items or []):
        errors["damage_items"] = "at least one damage item is required for a DAMAGED survey"
    if errors:
        raise ValidationError("Survey is incomplete", details=errors)


def transition_survey(survey_id: str, action: str, actor, **payload) -> dict:
    """
    Execute a survey lifecycle action.

    Actions:
        start    — DRAFT → IN_PROGRESS
        complete — DRAFT|IN_PROGRESS → COMPLETED (payload may carry final fields)
        release  — COMPLETED → RELEASED, NO_DAMAGE surveys only

    Raises:
        InvalidStateTransition, ValidationError, NotFoundError
    """
    with container_unit(locate(STAGE_SURVEY, survey_id)) as container:
        survey = reload_job(STAGE_SURVEY, survey_id)
        target = require_transition(survey, action)
        previous = survey.status
        now = utcnow()

        if action == "start":
            survey.started_at = now
        elif action == "complete":
            for key, value in _normalise(payload).items():
                setattr(survey, key, value)
            _validate_completion(survey)
            stamp_completion(survey, actor, now)
            container.last_survey_id = survey.id
        elif action == "release":
            if survey.initial_condition != "NO_DAMAGE":
                raise InvalidStateTransition(
                    "Survey", survey.id, action, survey.status,
                    "only NO_DAMAGE surveys can be released",
                )

        survey.status = target
        result = finish(container, survey, action, actor, previous)
    return result
