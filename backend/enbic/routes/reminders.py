# backend/enbic/routes/reminders.py
"""Reminder listing, on-demand generation and resolution."""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_roles
from ..services import reminder_service
from ..services.access import ROLE_OPERATOR
from ..services.hooks import PostCommitHooks, commit_and_run


reminders_bp = Blueprint("reminders", __name__, url_prefix="/api/reminders")


@reminders_bp.get("")
@require_auth
def list_reminders_route():
    return jsonify(reminder_service.list_open_reminders(reminder_type=request.args.get("type") or None)), 200


@reminders_bp.post("/generate")
@require_auth
@require_roles(ROLE_OPERATOR)
def generate_reminders_route():
    result = reminder_service.generate_reminders()
    commit_and_run()
    return jsonify({"success": True, **result, "message": "Reminders generated"}), 200


@reminders_bp.post("/<int:reminder_id>/resolve")
@require_auth
@require_roles(ROLE_OPERATOR)
def resolve_reminder_route(reminder_id: int):
    hooks = PostCommitHooks()
    result = reminder_service.resolve_reminder(reminder_id, actor=g.actor, hooks=hooks)
    commit_and_run(hooks)
    return jsonify({
        "success": True,
        "reminder": result["reminder"].to_dict(),
        "advanced": result["advanced"],
        "arn_status": result["arn_status"],
    }), 200
