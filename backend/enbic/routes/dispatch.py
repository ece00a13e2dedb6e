# backend/enbic/routes/dispatch.py
"""
Dispatch batch API routes.

prepared -> ready_for_dispatch (both signatures) -> dispatched -> delivered
"""

from flask import Blueprint, g, jsonify, request, send_file

from ..decorators import require_auth, require_roles
from ..errors import InvalidArgumentError
from ..services import dispatch_service
from ..services.access import ROLE_OFFICER, ROLE_OPERATOR
from ..services.artifact_service import resolve_artifact
from ..services.hooks import PostCommitHooks, commit_and_run
from ..validation import (
    first_present,
    get_json_payload,
    optional_bool,
    optional_str,
    require_int,
    require_str,
)


dispatch_bp = Blueprint("dispatch", __name__, url_prefix="/api/dispatch")


def _batch_payload(batch) -> dict:
    data = batch.to_dict()
    data["arns"] = [a.arn for a in dispatch_service.batch_arns(batch)]
    return data


@dispatch_bp.get("/batches")
@require_auth
def list_batches_route():
    batches = dispatch_service.list_batches(
        state=request.args.get("state") or None,
        status=request.args.get("status") or None,
    )
    return jsonify([b.to_dict() for b in batches]), 200


@dispatch_bp.post("/batches")
@require_auth
@require_roles(ROLE_OPERATOR)
def create_batch_route():
    """
    Request body:
    {"batchId": str, "state": str, "cardCount": int, "batchArn": str (optional)}
    """
    data = get_json_payload()
    batch = dispatch_service.create_batch(
        require_str(data, "batchId", "batch_id"),
        require_str(data, "state"),
        require_int(data, "cardCount", "card_count"),
        actor=g.actor,
        batch_arn=optional_str(data, "batchArn", "batch_arn"),
    )
    commit_and_run()
    return jsonify(_batch_payload(batch)), 201


@dispatch_bp.get("/<batch_id>")
@require_auth
def get_batch_route(batch_id: str):
    return jsonify(_batch_payload(dispatch_service.get_batch(batch_id))), 200


@dispatch_bp.post("/<batch_id>/sign")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def sign_batch_route(batch_id: str):
    """
    Request body:
    {"signer": "operator"|"officer", "name": str, "fileData": data URL (optional),
     "overwrite": bool (optional)}
    """
    data = get_json_payload()
    batch = dispatch_service.sign_batch(
        batch_id,
        require_str(data, "signer"),
        require_str(data, "name"),
        actor=g.actor,
        file_data=first_present(data, "fileData", "file_data"),
        overwrite=optional_bool(data, "overwrite"),
    )
    commit_and_run()
    return jsonify(batch.to_dict()), 200


@dispatch_bp.post("/<batch_id>/generate-note")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def generate_note_route(batch_id: str):
    batch = dispatch_service.generate_delivery_note(batch_id, actor=g.actor)
    commit_and_run()
    return jsonify(_batch_payload(batch)), 200


@dispatch_bp.post("/<batch_id>/confirm")
@require_auth
@require_roles(ROLE_OPERATOR)
def confirm_dispatch_route(batch_id: str):
    """412 PreconditionFailed unless both signatures are present."""
    batch = dispatch_service.confirm_dispatch(batch_id, actor=g.actor)
    commit_and_run()
    return jsonify(batch.to_dict()), 200


@dispatch_bp.post("/<batch_id>/confirmation")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def upload_confirmation_route(batch_id: str):
    """
    Upload the signed confirmation note and deliver the batch's ARNs.

    Request body: {"fileData": data URL, "notes": str (optional)}
    """
    data = get_json_payload()
    hooks = PostCommitHooks()
    result = dispatch_service.upload_confirmation(
        batch_id,
        first_present(data, "fileData", "file_data"),
        actor=g.actor,
        notes=optional_str(data, "notes"),
        hooks=hooks,
    )
    commit_and_run(hooks)
    return jsonify({
        "batch": result["batch"].to_dict(),
        "arns": result["arns"],
        "history": result["history"].to_dict(),
    }), 200


@dispatch_bp.get("/<batch_id>/file/<kind>")
@require_auth
def batch_file_route(batch_id: str, kind: str):
    """Stream the delivery note or the confirmation note of a batch."""
    batch = dispatch_service.get_batch(batch_id)
    if kind == "delivery":
        path = batch.delivery_note_path
    elif kind == "confirmation":
        path = batch.confirmation_note_path
    else:
        raise InvalidArgumentError("kind must be 'delivery' or 'confirmation'")
    return send_file(resolve_artifact(path))
