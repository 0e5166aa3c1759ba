"""
Audit blueprint — read-only access to the workflow trail.

Endpoints:
    GET  /api/v1/audit                               — list / filter audit logs
    GET  /api/v1/audit/<int:log_id>                  — single audit entry
    GET  /api/v1/containers/<id>/audit               — one container's history
"""

from flask import Blueprint, jsonify, request

from depot_mnr.models import db
from depot_mnr.models.audit import AuditLog
from depot_mnr.utils.errors import E, api_error

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


def _page(q):
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))
    paginated = q.paginate(page=page, per_page=per_page, error_out=False)
    return {
        "audit_logs": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    }


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Return paginated audit logs with optional filters.

    Query params:
        container_id — filter by container
        entity_type  — filter by entity type
        entity_id    — filter by entity key
        action       — filter by action string (prefix match)
        actor        — filter by actor
        page         — page number (default 1)
        per_page     — items per page (default 50, max 200)
    """
    q = AuditLog.query

    container_id = request.args.get("container_id")
    if container_id:
        q = q.filter(AuditLog.container_id == container_id)

    entity_type = request.args.get("entity_type")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    entity_id = request.args.get("entity_id")
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)

    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action.startswith(action))

    actor = request.args.get("actor")
    if actor:
        q = q.filter(AuditLog.actor == actor)

    q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    return jsonify(_page(q))


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    log = db.session.get(AuditLog, log_id)
    if not log:
        return api_error(E.NOT_FOUND, "Audit log not found")
    return jsonify(log.to_dict())


@audit_bp.route("/containers/<string:container_id>/audit", methods=["GET"])
def container_audit(container_id):
    q = AuditLog.query.filter(AuditLog.container_id == container_id).order_by(
        AuditLog.timestamp.asc(), AuditLog.id.asc()
    )
    return jsonify(_page(q))
