"""
Pre-inspection service — stage 6.

    PLANNED ──start──▶ IN_PROGRESS ──complete──▶ COMPLETED      (result ACCEPTED)
                                        └───────▶ PENDING_REWORK (result REWORK)

Acceptance rule: every damage-verification item (one per damage item of
the originating survey, keyed ``damage_<index>``) must pass. The general
checklist and the cleaning checklist are advisory; their failures are
recorded but never block acceptance. A survey with no damage items
passes the damage gate automatically.

A PENDING_REWORK inspection is reused: once the repair order is
completed again, ``create_pre_inspection`` resets the same record to
PLANNED / PENDING instead of creating a new one.
"""

from depot_mnr.core.exceptions import ValidationError
from depot_mnr.models import db
from depot_mnr.models.actor import actor_name
from depot_mnr.models.stages import STAGE_PRE_INSPECTION, STAGE_SURVEY, PreInspection, Survey
from depot_mnr.services.code_generator import generate_transaction_id
from depot_mnr.services.container_lock import container_unit
from depot_mnr.services.job_store import collect_jobs
from depot_mnr.services.rework import trigger_inspection_rework
from depot_mnr.services.stage_common import (
    finish,
    locate,
    new_job,
    reload_job,
    require_transition,
    stamp_completion,
    utcnow,
)
from depot_mnr.services.workflow_ordering import check_precondition, completed_repair, latest
from depot_mnr.utils.helpers import parse_bool, parse_datetime


def damage_key(index: int) -> str:
    return f"damage_{index}"


def evaluate_damage_checks(damage_items, results) -> tuple[list, list]:
    """
    Compare inspection results against the survey's damage items.

    Returns:
        (missing_keys, failed_items) where failed_items are
        ``{"key", "index", "item"}`` dicts for each item that did not pass.
    """
    results = results or {}
    missing, failed = [], []
    for index, item in enumerate(damage_items or []):
        key = damage_key(index)
        if key not in results or results[key] is None:
            missing.append(key)
        elif not parse_bool(results[key]):
            failed.append({"key": key, "index": index, "item": item})
    return missing, failed


def _failed_advisory(checklist) -> list:
    return [k for k, v in (checklist or {}).items() if not parse_bool(v, default=True)]


def create_pre_inspection(container_id: str, data: dict, actor) -> dict:
    data = data or {}
    with container_unit(container_id) as container:
        jobs = collect_jobs(container)
        reusable = check_precondition(STAGE_PRE_INSPECTION, container, jobs)

        if reusable is not None:
            previous = reusable.status
            reusable.status = "PLANNED"
            reusable.result = "PENDING"
            reusable.damage_item_results = {}
            reusable.failed_damage_items = []
            reusable.scheduled_date = parse_datetime(data.get("scheduled_date")) or reusable.scheduled_date
            reusable.started_at = None
            reusable.completed_at = None
            reusable.completed_by = None
            return_value = finish(container, reusable, "reopen", actor, previous)
        else:
            anchor = completed_repair(jobs) or latest(jobs, STAGE_SURVEY)
            transaction_id = (
                anchor.transaction_id if anchor
                else generate_transaction_id(container.container_number, utcnow())
            )
            inspection = new_job(
                PreInspection, container, transaction_id, "PLANNED", actor,
                survey_transaction_id=transaction_id,
                result="PENDING",
                scheduled_date=parse_datetime(data.get("scheduled_date")),
                inspection_notes=data.get("notes"),
            )
            return_value = finish(container, inspection, "create", actor, None)
    return return_value


def transition_pre_inspection(inspection_id: str, action: str, actor, **payload) -> dict:
    """
    Execute a pre-inspection action: start or complete.

    ``complete`` payload:
        damage_item_results         {damage_<i>: bool}  — mandatory, all must pass
        checklist_results           {check: bool}       — advisory
        cleaning_checklist_results  {check: bool}       — advisory
        notes

    Raises:
        ValidationError: a damage item was left unverified.
        InvalidStateTransition, NotFoundError
    """
    with container_unit(locate(STAGE_PRE_INSPECTION, inspection_id)) as container:
        inspection = reload_job(STAGE_PRE_INSPECTION, inspection_id)
        require_transition(inspection, action)
        previous = inspection.status
        now = utcnow()

        if action == "start":
            inspection.started_at = now
            inspection.status = "IN_PROGRESS"
            return_value = finish(container, inspection, action, actor, previous)
        else:
            return_value = _complete(container, inspection, actor, payload, previous, now)
    return return_value


def _complete(container, inspection, actor, payload, previous, now) -> dict:
    survey = db.session.get(Survey, inspection.survey_transaction_id) if inspection.survey_transaction_id else None
    damage_items = (survey.damage_items if survey else None) or []
    results = payload.get("damage_item_results") or {}

    missing, failed = evaluate_damage_checks(damage_items, results)
    if missing:
        raise ValidationError(
            "Every damage item must be verified before completing the inspection",
            details={key: "unverified" for key in missing},
        )

    checklist = payload.get("checklist_results") or {}
    cleaning = payload.get("cleaning_checklist_results") or {}

    inspection.damage_item_results = results
    inspection.checklist_results = checklist
    inspection.cleaning_checklist_results = cleaning
    inspection.failed_checks = _failed_advisory(checklist) + _failed_advisory(cleaning)
    inspection.failed_damage_items = failed
    if payload.get("notes"):
        inspection.inspection_notes = payload["notes"]
    inspection.last_inspected_at = now
    inspection.last_inspected_by = actor_name(actor)

    if failed:
        repair = trigger_inspection_rework(
            container, inspection, collect_jobs(container), actor,
            failed_damage_items=failed,
            failed_checks=inspection.failed_checks,
            notes=payload.get("notes"),
            now=now,
        )
        return finish(container, inspection, "rework", actor, previous, {
            "result": {"old": "PENDING", "new": inspection.result},
            "repair_order_id": repair.id,
            "rework_count": inspection.rework_count,
        })

    inspection.status = "COMPLETED"
    inspection.result = "ACCEPTED"
    stamp_completion(inspection, actor, now)
    return finish(container, inspection, "complete", actor, previous, {
        "result": {"old": "PENDING", "new": "ACCEPTED"},
    })
