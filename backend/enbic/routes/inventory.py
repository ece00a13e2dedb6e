# backend/enbic/routes/inventory.py
"""
Blank-card inventory API routes.

Officers only ever see and book into their own partition; admin, operator
and supervisor views default to the central pool and may ask for a specific
officer with ?user_id=.
"""

from flask import Blueprint, g, jsonify, request, send_file

from ..decorators import require_auth, require_roles
from ..errors import ForbiddenError
from ..services import blank_card_service, inventory_service
from ..services.access import ROLE_OFFICER, ROLE_OPERATOR
from ..services.artifact_service import resolve_artifact
from ..services.hooks import commit_and_run
from ..validation import (
    first_present,
    get_json_payload,
    optional_bool,
    optional_date,
    optional_datetime,
    optional_int,
    optional_str,
    query_bool,
    query_int,
    require_int,
    require_str,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _requested_partition() -> int | None:
    """Partition the caller may read: own store for officers, ?user_id or central otherwise."""
    if g.actor.role == ROLE_OFFICER:
        return g.actor.user_id
    return query_int("user_id")


def _ensure_can_view_request(req) -> None:
    if g.actor.role == ROLE_OFFICER and req.requester_id != g.actor.user_id:
        raise ForbiddenError("Officers may only view their own requests")


@inventory_bp.get("/balance")
@require_auth
def balance_route():
    if g.actor.role == ROLE_OFFICER or request.args.get("user_id"):
        partition = _requested_partition()
        return jsonify({"user_id": partition, "balance": inventory_service.get_balance(partition)}), 200
    return jsonify(inventory_service.balance_summary()), 200


@inventory_bp.get("/ledger")
@require_auth
def ledger_route():
    all_partitions = query_bool("all") and g.actor.role != ROLE_OFFICER
    movements = inventory_service.list_movements(
        partition=_requested_partition(),
        all_partitions=all_partitions,
        movement_type=request.args.get("type") or None,
        limit=query_int("limit", 500),
    )
    return jsonify([m.to_dict() for m in movements]), 200


@inventory_bp.post("/receive")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def receive_route():
    """Request body: {"qty": int, "reference": str?, "notes": str?}"""
    data = get_json_payload()
    movement = inventory_service.receive_stock(
        require_int(data, "qty", "quantity"),
        actor=g.actor,
        reference=optional_str(data, "reference"),
        notes=optional_str(data, "notes"),
    )
    commit_and_run()
    return jsonify(movement.to_dict()), 201


@inventory_bp.post("/issue-to-perso")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def issue_route():
    """
    Issue blank cards to personalization from the caller's partition.

    Request body: {"qty": int, "issued_to": str?, "reference": str?}
    400 InsufficientStock (with available/requested) when the balance is short.
    """
    data = get_json_payload()
    movement = inventory_service.issue_to_personalization(
        require_int(data, "qty", "quantity"),
        actor=g.actor,
        issued_to=optional_str(data, "issued_to", "issuedTo"),
        reference=optional_str(data, "reference"),
    )
    commit_and_run()
    return jsonify({
        "movement": movement.to_dict(),
        "balance": inventory_service.get_balance(g.actor.partition),
    }), 201


@inventory_bp.post("/adjust")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def adjust_route():
    """Request body: {"qty": int, "type": "adjustment"|"damaged"|"lost", "reference": str?, "notes": str?}"""
    data = get_json_payload()
    movement = inventory_service.adjust_stock(
        require_int(data, "qty", "quantity"),
        require_str(data, "type"),
        actor=g.actor,
        reference=optional_str(data, "reference"),
        notes=optional_str(data, "notes"),
    )
    commit_and_run()
    return jsonify(movement.to_dict()), 201


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    return jsonify(inventory_service.low_stock_check()), 200


@inventory_bp.get("/reconciliation")
@require_auth
def reconciliation_route():
    """Query params: from, to (ISO-8601), user_id (non-officers)."""
    report = inventory_service.reconcile(
        partition=_requested_partition(),
        date_from=optional_datetime(request.args.get("from"), "from"),
        date_to=optional_datetime(request.args.get("to"), "to", end_of_day=True),
    )
    report["date_from"] = request.args.get("from") or None
    report["date_to"] = request.args.get("to") or None
    return jsonify(report), 200


@inventory_bp.get("/requests")
@require_auth
def list_requests_route():
    requester_id = g.actor.user_id if g.actor.role == ROLE_OFFICER else query_int("requester_id")
    rows = blank_card_service.list_requests(
        requester_id=requester_id,
        status=request.args.get("status") or None,
    )
    return jsonify([r.to_dict() for r in rows]), 200


@inventory_bp.post("/requests")
@require_auth
@require_roles(ROLE_OFFICER)
def create_request_route():
    """Request body: {"quantity": int, "reason": str?, "needed_by": "YYYY-MM-DD"?}"""
    data = get_json_payload()
    req = blank_card_service.create_request(
        require_int(data, "quantity", "qty"),
        actor=g.actor,
        reason=optional_str(data, "reason"),
        needed_by=optional_date(first_present(data, "needed_by", "neededBy"), "needed_by"),
    )
    commit_and_run()
    return jsonify(req.to_dict()), 201


@inventory_bp.post("/requests/<int:request_id>/decide")
@require_auth
@require_roles()
def decide_request_route(request_id: int):
    """
    Request body: {"action": "approve"|"partial"|"reject", "approved_qty": int?, "decision_note": str?}

    Approval moves stock central -> requester in the same transaction.
    """
    data = get_json_payload()
    req = blank_card_service.decide_request(
        request_id,
        require_str(data, "action"),
        actor=g.actor,
        approved_qty=optional_int(data, "approved_qty", "approvedQty"),
        note=optional_str(data, "decision_note", "decisionNote"),
    )
    commit_and_run()
    return jsonify(req.to_dict()), 200


@inventory_bp.post("/requests/<int:request_id>/generate-issue")
@require_auth
@require_roles(ROLE_OPERATOR)
def generate_issue_route(request_id: int):
    note = blank_card_service.generate_issue_note(request_id, actor=g.actor)
    commit_and_run()
    return jsonify(note.to_dict()), 201


@inventory_bp.get("/issue-notes")
@require_auth
def list_issue_notes_route():
    requester_id = g.actor.user_id if g.actor.role == ROLE_OFFICER else None
    notes = blank_card_service.list_issue_notes(requester_id=requester_id)
    return jsonify([n.to_dict() for n in notes]), 200


@inventory_bp.get("/issue/<int:issue_id>")
@require_auth
def get_issue_note_route(issue_id: int):
    note = blank_card_service.get_issue_note(issue_id)
    _ensure_can_view_request(note.request)
    return jsonify(note.to_dict()), 200


@inventory_bp.post("/issue/<int:issue_id>/sign")
@require_auth
@require_roles(ROLE_OPERATOR, ROLE_OFFICER)
def sign_issue_note_route(issue_id: int):
    """
    Request body:
    {"signer": "issuer"|"receiver", "name": str, "fileData": data URL?, "overwrite": bool?}

    The second signature completes the note and credits the requester.
    """
    data = get_json_payload()
    note = blank_card_service.get_issue_note(issue_id)
    _ensure_can_view_request(note.request)
    note = blank_card_service.sign_issue_note(
        issue_id,
        require_str(data, "signer"),
        require_str(data, "name"),
        actor=g.actor,
        file_data=first_present(data, "fileData", "file_data"),
        overwrite=optional_bool(data, "overwrite"),
    )
    commit_and_run()
    return jsonify(note.to_dict()), 200


@inventory_bp.get("/issue/<int:issue_id>/file")
@require_auth
def issue_note_file_route(issue_id: int):
    note = blank_card_service.get_issue_note(issue_id)
    _ensure_can_view_request(note.request)
    return send_file(resolve_artifact(note.issue_note_path))
