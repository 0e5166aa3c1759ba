"""Standardised API error responses.

Usage
-----
    from depot_mnr.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Container not found")
    return api_error(E.VALIDATION_REQUIRED, "container_id is required")
    return api_error(E.BLOCKED_BY_DOWNSTREAM, str(exc), details=exc.to_details())
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention: every code carries the ``ERR_`` prefix.
    """

    # Validation – HTTP 400 (malformed) / 422 (business rule)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / workflow ordering – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    PRECONDITION_NOT_MET = "ERR_PRECONDITION_NOT_MET"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    BLOCKED_BY_DOWNSTREAM = "ERR_BLOCKED_BY_DOWNSTREAM"
    DUPLICATE_ACTIVE_JOB = "ERR_DUPLICATE_ACTIVE_JOB"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.PRECONDITION_NOT_MET: 409,
    E.INVALID_TRANSITION: 409,
    E.BLOCKED_BY_DOWNSTREAM: 409,
    E.DUPLICATE_ACTIVE_JOB: 409,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for operators / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (missing predecessor, blocking stage, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
