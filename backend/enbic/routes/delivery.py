# backend/enbic/routes/delivery.py
"""State-wide delivery confirmation and delivery statistics."""

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_roles
from ..services import lifecycle_service, report_service
from ..services.access import ROLE_OPERATOR
from ..services.hooks import PostCommitHooks, commit_and_run
from ..validation import get_json_payload, optional_str, require_str


delivery_bp = Blueprint("delivery", __name__, url_prefix="/api/delivery")


@delivery_bp.post("/confirm")
@require_auth
@require_roles(ROLE_OPERATOR)
def confirm_delivery_route():
    """
    Deliver every Pending Delivery ARN of a state in one transaction.

    Request body: {"state": str, "notes": str (optional)}
    """
    data = get_json_payload()
    hooks = PostCommitHooks()
    result = lifecycle_service.confirm_delivery_for_state(
        require_str(data, "state"),
        actor=g.actor,
        notes=optional_str(data, "notes"),
        hooks=hooks,
    )
    commit_and_run(hooks)

    if not result["count"]:
        return jsonify({"success": True, "message": "No pending deliveries for this state", "count": 0}), 200
    return jsonify({
        "success": True,
        "count": result["count"],
        "arns": result["arns"],
        "history": result["history"].to_dict(),
    }), 200


@delivery_bp.get("/stats")
@require_auth
def delivery_stats_route():
    return jsonify(report_service.delivery_stats()), 200
