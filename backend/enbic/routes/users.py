# backend/enbic/routes/users.py
"""Admin user management."""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_roles
from ..services import auth_service, session_service
from ..services.concurrency import commit_with_retry
from ..validation import get_json_payload, optional_bool, optional_str, require_str


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_roles()
def list_users_route():
    users = auth_service.list_users(role=request.args.get("role") or None)
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.post("")
@require_auth
@require_roles()
def create_user_route():
    """
    Request body:
    {"username": str, "password": str, "role": str, "full_name": str (optional)}
    """
    data = get_json_payload()
    user = auth_service.create_user(
        require_str(data, "username"),
        require_str(data, "password"),
        role=require_str(data, "role"),
        full_name=optional_str(data, "full_name", "fullName"),
        actor=g.actor,
    )
    commit_with_retry()
    return jsonify({"user": user.to_dict()}), 201


@users_bp.patch("/<int:user_id>")
@require_auth
@require_roles()
def update_user_route(user_id: int):
    """Activate or deactivate a user. Deactivation revokes their sessions."""
    data = get_json_payload()
    is_active = optional_bool(data, "is_active", "isActive", default=True)
    user = auth_service.set_user_active(user_id, is_active, actor=g.actor)
    if not is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
    commit_with_retry()
    return jsonify({"user": user.to_dict()}), 200
