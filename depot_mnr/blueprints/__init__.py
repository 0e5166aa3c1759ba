"""
Depot M&R Workflow Engine
Blueprint registry and shared request helpers.

Services raise typed exceptions; ``register_error_handlers`` maps each one
to the same ``api_error`` payload for every blueprint.
"""

import logging

from flask import g, request

from depot_mnr.core.exceptions import (
    BlockedByDownstreamJob,
    ConflictError,
    DuplicateActiveJob,
    InvalidStateTransition,
    NotFoundError,
    PermissionDenied,
    PreconditionNotMet,
    ValidationError,
)
from depot_mnr.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_actor():
    """The Actor resolved by the actor-context middleware, or None."""
    return getattr(g, "actor", None)


def json_body() -> dict:
    """Request JSON as a dict; arrays and scalars are rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_error_handlers(app):
    """One handler per service exception type, shared by every blueprint."""

    @app.errorhandler(NotFoundError)
    def _not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _validation(error):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _conflict(error):
        code = E.CONFLICT_STATE if error.field == "lock" else E.CONFLICT_DUPLICATE
        return api_error(code, str(error),
                         details={"field": error.field, "value": error.value})

    @app.errorhandler(PermissionDenied)
    def _forbidden(error):
        logger.warning("Permission denied: %s", error)
        return api_error(E.FORBIDDEN, str(error), details=error.to_details())

    @app.errorhandler(PreconditionNotMet)
    def _precondition(error):
        logger.warning("Precondition not met: %s", error)
        return api_error(E.PRECONDITION_NOT_MET, str(error), details=error.to_details())

    @app.errorhandler(InvalidStateTransition)
    def _transition(error):
        logger.warning("Invalid transition: %s", error)
        return api_error(E.INVALID_TRANSITION, str(error), details=error.to_details())

    @app.errorhandler(BlockedByDownstreamJob)
    def _blocked(error):
        logger.warning("Delete blocked: %s", error)
        return api_error(E.BLOCKED_BY_DOWNSTREAM, str(error), details=error.to_details())

    @app.errorhandler(DuplicateActiveJob)
    def _duplicate(error):
        logger.warning("Duplicate active job: %s", error)
        return api_error(E.DUPLICATE_ACTIVE_JOB, str(error), details=error.to_details())
