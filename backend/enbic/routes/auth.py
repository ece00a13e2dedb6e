# backend/enbic/routes/auth.py
"""
Authentication API routes.

Self-registration is disabled; users are created by an administrator
(POST /api/users or `flask users create`).
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import UnauthenticatedError
from ..services import auth_service, session_service
from ..services.concurrency import commit_with_retry
from ..validation import get_json_payload, require_str


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token goes in the Authorization header (Bearer) of every other call.
    """
    data = get_json_payload()
    username = require_str(data, "username")
    password = require_str(data, "password")

    user = auth_service.authenticate(username, password)
    if not user:
        raise UnauthenticatedError("Invalid credentials")

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    commit_with_retry()

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    commit_with_retry()
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
