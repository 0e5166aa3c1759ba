"""
Container blueprint — gate-in, lookup and per-container workflow views.

Endpoints:
    POST /api/v1/containers                          — register (gate-in)
    GET  /api/v1/containers                          — search (q, status, liner)
    GET  /api/v1/containers/stats                    — counts by status
    GET  /api/v1/containers/by-number/<number>       — lookup by container number
    GET  /api/v1/containers/<id>                     — detail
    GET  /api/v1/containers/<id>/jobs                — every stage job, grouped
    GET  /api/v1/containers/<id>/progress            — derived workflow progress
    POST /api/v1/containers/<id>/resolve-status      — recompute status
    GET  /api/v1/transactions/<tid>/jobs             — jobs of one M&R cycle
"""

from flask import Blueprint, jsonify, request

from depot_mnr.blueprints import current_actor, json_body, paginate_query
from depot_mnr.services import container_service, job_registry
from depot_mnr.services.status_resolver import resolve_container_status
from depot_mnr.utils.errors import E, api_error

container_bp = Blueprint("containers", __name__, url_prefix="/api/v1")


@container_bp.route("/containers", methods=["POST"])
def register_container():
    data = json_body()
    if not (data.get("container_number") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "container_number is required")
    container = container_service.register_container(data, current_actor())
    return jsonify(container.to_dict()), 201


@container_bp.route("/containers", methods=["GET"])
def list_containers():
    """
    Search containers.

    Query params:
        q       — substring of container number, booking or yard slot
        status  — exact container status
        liner   — exact liner code
        limit / offset
    """
    query = container_service.search_containers(
        q=request.args.get("q"),
        status=request.args.get("status"),
        liner=request.args.get("liner"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [c.to_dict() for c in items], "total": total})


@container_bp.route("/containers/stats", methods=["GET"])
def container_stats():
    return jsonify(container_service.container_stats())


@container_bp.route("/containers/by-number/<string:container_number>", methods=["GET"])
def get_container_by_number(container_number):
    return jsonify(container_service.get_container_by_number(container_number).to_dict())


@container_bp.route("/containers/<string:container_id>", methods=["GET"])
def get_container(container_id):
    return jsonify(container_service.get_container(container_id).to_dict())


@container_bp.route("/containers/<string:container_id>/jobs", methods=["GET"])
def container_jobs(container_id):
    jobs = job_registry.container_jobs(container_id)
    return jsonify({
        "container_id": container_id,
        "jobs": job_registry.group_by_stage(jobs),
        "total": len(jobs),
    })


@container_bp.route("/containers/<string:container_id>/progress", methods=["GET"])
def container_progress(container_id):
    return jsonify(container_service.get_workflow_progress(container_id))


@container_bp.route("/containers/<string:container_id>/resolve-status", methods=["POST"])
def resolve_status(container_id):
    return jsonify(resolve_container_status(container_id, current_actor()))


@container_bp.route("/transactions/<string:transaction_id>/jobs", methods=["GET"])
def transaction_jobs(transaction_id):
    jobs = job_registry.transaction_jobs(transaction_id)
    return jsonify({
        "transaction_id": transaction_id,
        "jobs": job_registry.group_by_stage(jobs),
        "total": len(jobs),
    })
