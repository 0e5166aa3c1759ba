"""
Capability predicate — the single permission check every transition uses.

Screens and actions are the ones the depot UI exposes (``eor_detail``,
``washing``, ``job_monitoring``, ``config_settings``). Resolution order:

    1. member of the ``admin`` group          → allowed
    2. screen_permissions[screen][action]     → allowed
    3. action in (use, retrieve) and screen listed in ``screens`` → allowed
    4. action listed in legacy ``functions``  → allowed
    otherwise denied.

Usage:
    from depot_mnr.services.permission import check_capability, has_capability

    check_capability(actor, "eor_detail", "approve")   # raises PermissionDenied
    if has_capability(actor, "job_monitoring", "delete_job"):
        ...
"""

from depot_mnr.core.exceptions import PermissionDenied
from depot_mnr.models import db
from depot_mnr.models.actor import ADMIN_GROUP, Actor

_SCREEN_LEVEL_ACTIONS = {"use", "retrieve"}


def get_actor(username: str | None) -> Actor | None:
    """Look up an active actor by username. Unknown or inactive → None."""
    if not username:
        return None
    actor = db.session.execute(
        db.select(Actor).filter_by(username=username)
    ).scalar_one_or_none()
    if actor is None or not actor.is_active:
        return None
    return actor


def has_capability(actor: Actor | None, screen: str, action: str) -> bool:
    """
    Return True if *actor* may perform *action* on *screen*.

    Anonymous (None) and inactive actors hold no capabilities.
    """
    if actor is None or not actor.is_active:
        return False

    if ADMIN_GROUP in (actor.groups or []):
        return True

    granular = (actor.screen_permissions or {}).get(screen) or {}
    if granular.get(action):
        return True

    if action in _SCREEN_LEVEL_ACTIONS and screen in (actor.screens or []):
        return True

    return action in (actor.functions or [])


def check_capability(actor: Actor | None, screen: str, action: str) -> None:
    """Raise PermissionDenied unless *actor* holds the capability."""
    if not has_capability(actor, screen, action):
        raise PermissionDenied(getattr(actor, "username", None), screen, action)
