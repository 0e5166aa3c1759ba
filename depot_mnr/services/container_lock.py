"""
Per-container serialization unit.

Every create / transition / delete / resolve on a container runs inside
``container_unit(container_id)``:

    - an in-process re-entrant lock keyed by container id, acquired with
      ``CONTAINER_LOCK_TIMEOUT`` (ConflictError when it cannot be taken);
    - ``SELECT ... FOR UPDATE`` on the container row so that separate
      worker processes serialize on PostgreSQL as well;
    - commit on success, rollback and re-raise on any exception.

Helpers that run inside a unit (rework controller, resolver apply) never
lock or commit on their own. Different containers never share a lock.

Usage:
    with container_unit(container_id) as container:
        ...mutate jobs...
        apply_resolved_status(container, actor)
"""

import logging
import threading
from contextlib import contextmanager

from flask import current_app

from depot_mnr.core.exceptions import ConflictError, NotFoundError
from depot_mnr.models import db
from depot_mnr.models.container import Container

logger = logging.getLogger(__name__)

_registry_guard = threading.Lock()
# container id -> [lock, users]; users counts holders and waiters
_locks: dict[str, list] = {}
_depth = threading.local()


def _lock_for(container_id: str) -> threading.RLock:
    """Check out the lock for *container_id*; pair with ``_return_lock``."""
    with _registry_guard:
        entry = _locks.get(container_id)
        if entry is None:
            entry = [threading.RLock(), 0]
            _locks[container_id] = entry
        entry[1] += 1
        return entry[0]


def _return_lock(container_id: str) -> None:
    with _registry_guard:
        entry = _locks[container_id]
        entry[1] -= 1
        if entry[1] == 0:
            del _locks[container_id]


def _nesting() -> dict:
    if not hasattr(_depth, "counts"):
        _depth.counts = {}
    return _depth.counts


@contextmanager
def container_unit(container_id: str):
    """Serialize one logical transition on *container_id* and yield the row."""
    timeout = current_app.config.get("CONTAINER_LOCK_TIMEOUT", 10)
    lock = _lock_for(container_id)
    if not lock.acquire(timeout=timeout):
        _return_lock(container_id)
        logger.warning("Container lock timeout container=%s after %ss", container_id, timeout)
        raise ConflictError(
            "Container", "lock", container_id,
            message=f"Container {container_id} is busy with another transition; retry",
        )

    counts = _nesting()
    outermost = counts.get(container_id, 0) == 0
    counts[container_id] = counts.get(container_id, 0) + 1
    try:
        container = db.session.execute(
            db.select(Container)
            .filter_by(id=container_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if container is None:
            raise NotFoundError(resource="Container", resource_id=container_id)

        try:
            yield container
        except Exception:
            if outermost:
                db.session.rollback()
            raise
        if outermost:
            db.session.commit()
    finally:
        counts[container_id] -= 1
        if counts[container_id] == 0:
            del counts[container_id]
        lock.release()
        _return_lock(container_id)
