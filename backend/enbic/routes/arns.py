# backend/enbic/routes/arns.py
"""
ARN lifecycle API routes.

Every mutation commits once and then fires the post-commit hooks collected
by the service (reminder regeneration).
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_roles
from ..services import audit_service, lifecycle_service
from ..services.access import ROLE_OPERATOR
from ..services.hooks import PostCommitHooks, commit_and_run
from ..validation import first_present, get_json_payload, optional_str, query_int, require_str


arns_bp = Blueprint("arns", __name__, url_prefix="/api/arns")


@arns_bp.get("")
@require_auth
def list_arns_route():
    rows = lifecycle_service.list_arns(
        state=request.args.get("state") or None,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
        limit=query_int("limit"),
    )
    return jsonify([r.to_dict() for r in rows]), 200


@arns_bp.get("/<arn>")
@require_auth
def get_arn_route(arn: str):
    return jsonify(lifecycle_service.get_arn(arn).to_dict()), 200


@arns_bp.get("/<arn>/history")
@require_auth
def arn_history_route(arn: str):
    lifecycle_service.get_arn(arn)
    entries = audit_service.list_audit_entries(arn=arn)
    return jsonify([e.to_dict() for e in entries]), 200


@arns_bp.post("")
@require_auth
@require_roles(ROLE_OPERATOR)
def create_arn_route():
    """
    Request body:
    {"arn": str, "state": str, "name": str (optional), "notes": str (optional)}

    Returns:
        201: {id, arn, state, status}
        400: missing arn / unknown state
        409: duplicate ARN
    """
    data = get_json_payload()
    hooks = PostCommitHooks()
    row = lifecycle_service.create_arn(
        require_str(data, "arn"),
        require_str(data, "state"),
        actor=g.actor,
        name=optional_str(data, "name"),
        notes=optional_str(data, "notes"),
        hooks=hooks,
    )
    commit_and_run(hooks)
    return jsonify({"id": row.id, "arn": row.arn, "state": row.state, "status": row.status}), 201


@arns_bp.put("/<arn>/status")
@require_auth
@require_roles(ROLE_OPERATOR)
def update_status_route(arn: str):
    """Request body: {"status": str}. 400 InvalidTransition for a non-edge."""
    data = get_json_payload()
    hooks = PostCommitHooks()
    row = lifecycle_service.transition_arn(arn, require_str(data, "status"), actor=g.actor, hooks=hooks)
    commit_and_run(hooks)
    return jsonify({"success": True, "arn": row.arn, "status": row.status}), 200


@arns_bp.put("/<arn>/document-number")
@require_auth
@require_roles(ROLE_OPERATOR)
def document_number_route(arn: str):
    data = get_json_payload()
    row = lifecycle_service.set_document_number(
        arn,
        require_str(data, "documentNumber", "document_number"),
        actor=g.actor,
    )
    commit_and_run()
    return jsonify({"success": True, "arn": row.to_dict()}), 200


@arns_bp.post("/receive")
@require_auth
@require_roles(ROLE_OPERATOR)
def receive_route():
    """
    Receive personalized cards into the store.

    Request body: {"arns": [str], "state": str (optional)}
    Returns per-item results; callers must check each item's success flag.
    """
    data = get_json_payload()
    hooks = PostCommitHooks()
    results = lifecycle_service.receive_into_store(
        first_present(data, "arns"),
        actor=g.actor,
        state=optional_str(data, "state"),
        hooks=hooks,
    )
    commit_and_run(hooks)
    return jsonify({"results": results}), 200


@arns_bp.post("/pickup")
@require_auth
@require_roles(ROLE_OPERATOR)
def pickup_route():
    """
    Record SHQ pickup.

    Request body:
    {"arns": [str], "collectorName": str?, "collectorId": str?, "phone": str?}
    """
    data = get_json_payload()
    hooks = PostCommitHooks()
    results = lifecycle_service.record_pickup(
        first_present(data, "arns"),
        actor=g.actor,
        collector_name=optional_str(data, "collectorName", "collector_name"),
        collector_id=optional_str(data, "collectorId", "collector_id"),
        phone=optional_str(data, "phone", "collectorPhone"),
        hooks=hooks,
    )
    commit_and_run(hooks)
    return jsonify({"results": results}), 200
