"""
Estimate approval policy.

- ``decide``: a total at or under the auto-approval threshold is
  AUTO_APPROVED on creation (``need_approval=False``); anything above
  needs a manual decision.
- ``can_decide`` / ``check_decision``: a manual approve/reject is allowed
  from PENDING or SENT only, by
    * INTERNAL staff holding ``eor_detail/<action>``, or
    * an EXTERNAL actor bound to the estimate's liner.

The threshold comes from the ``auto_approval_threshold`` system setting
when present, else ``AUTO_APPROVAL_THRESHOLD`` from config.
"""

import logging

from flask import current_app

from depot_mnr.core.exceptions import InvalidStateTransition, PermissionDenied, ValidationError
from depot_mnr.models import db
from depot_mnr.models.actor import actor_name
from depot_mnr.models.audit import write_audit
from depot_mnr.models.settings import AUTO_APPROVAL_THRESHOLD_KEY, SystemSetting
from depot_mnr.models.stages import ESTIMATE_DECIDABLE_STATUSES
from depot_mnr.services.permission import check_capability, has_capability

logger = logging.getLogger(__name__)

AUTO_APPROVED = "AUTO_APPROVED"
MANUAL = "MANUAL"

ESTIMATE_SCREEN = "eor_detail"
DECISION_ACTIONS = ("approve", "reject")


# ── Threshold ────────────────────────────────────────────────────────────────

def get_auto_approval_threshold() -> float:
    setting = db.session.get(SystemSetting, AUTO_APPROVAL_THRESHOLD_KEY)
    if setting is not None and setting.value not in (None, ""):
        try:
            return float(setting.value)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", AUTO_APPROVAL_THRESHOLD_KEY, setting.value)
    return float(current_app.config.get("AUTO_APPROVAL_THRESHOLD", 100))


def set_auto_approval_threshold(value, actor) -> dict:
    """Persist a runtime threshold override. Requires config_settings/update."""
    check_capability(actor, "config_settings", "update")
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        raise ValidationError("threshold must be a number", details={"threshold": value})
    if threshold < 0:
        raise ValidationError("threshold must not be negative", details={"threshold": value})

    setting = db.session.get(SystemSetting, AUTO_APPROVAL_THRESHOLD_KEY)
    old = setting.value if setting else None
    if setting is None:
        setting = SystemSetting(key=AUTO_APPROVAL_THRESHOLD_KEY)
        db.session.add(setting)
    setting.value = str(threshold)
    setting.updated_by = actor_name(actor)

    write_audit(
        entity_type="system_setting",
        entity_id=AUTO_APPROVAL_THRESHOLD_KEY,
        action="setting.update",
        actor=actor_name(actor),
        diff={"value": {"old": old, "new": setting.value}},
    )
    db.session.commit()
    logger.info("Auto-approval threshold set to %s by %s", threshold, actor_name(actor))
    return {"threshold": threshold, "updated_by": setting.updated_by}


# ── Decisions ────────────────────────────────────────────────────────────────

def decide(estimate, threshold: float | None = None) -> str:
    """Return AUTO_APPROVED or MANUAL for *estimate*'s current total."""
    if threshold is None:
        threshold = get_auto_approval_threshold()
    return AUTO_APPROVED if (estimate.total_cost or 0) <= threshold else MANUAL


def _permission_reason(estimate, actor, action: str) -> str | None:
    """None when *actor* may take *action* on *estimate*, else the reason."""
    if actor is None:
        return "no actor"
    if actor.is_external:
        if actor.liner_code and actor.liner_code == estimate.liner:
            return None
        return f"liner {actor.liner_code!r} does not own estimate liner {estimate.liner!r}"
    if has_capability(actor, ESTIMATE_SCREEN, action):
        return None
    return "missing capability"


def can_decide(estimate, actor, action: str) -> bool:
    """Boolean form of ``check_decision``."""
    if action not in DECISION_ACTIONS:
        return False
    if estimate.status not in ESTIMATE_DECIDABLE_STATUSES:
        return False
    return _permission_reason(estimate, actor, action) is None


def check_decision(estimate, actor, action: str) -> None:
    """
    Raise unless *actor* may approve/reject *estimate* now.

    Raises:
        PermissionDenied: actor lacks capability or liner binding.
        InvalidStateTransition: estimate is not PENDING or SENT.
    """
    reason = _permission_reason(estimate, actor, action)
    if reason is not None:
        raise PermissionDenied(getattr(actor, "username", None), ESTIMATE_SCREEN, action, reason)
    if estimate.status not in ESTIMATE_DECIDABLE_STATUSES:
        raise InvalidStateTransition("Estimate", estimate.id, action, estimate.status)
