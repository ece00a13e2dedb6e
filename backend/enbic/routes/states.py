# backend/enbic/routes/states.py
"""Delivery jurisdictions (states)."""

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_roles
from ..services import state_service
from ..services.concurrency import commit_with_retry
from ..validation import get_json_payload, require_str


states_bp = Blueprint("states", __name__, url_prefix="/api/states")


@states_bp.get("")
@require_auth
def list_states_route():
    return jsonify([s.to_dict() for s in state_service.list_states()]), 200


@states_bp.post("")
@require_auth
@require_roles()
def create_state_route():
    state = state_service.create_state(require_str(get_json_payload(), "name"), actor=g.actor)
    commit_with_retry()
    return jsonify(state.to_dict()), 201


@states_bp.delete("/<int:state_id>")
@require_auth
@require_roles()
def delete_state_route(state_id: int):
    state_service.delete_state(state_id, actor=g.actor)
    commit_with_retry()
    return jsonify({"success": True}), 200
