# backend/enbic/services/blank_card_service.py
"""
Blank-card request and issue-note service.

WHY: Officers draw blank cards from the central pool through an auditable
pipeline: request -> decision -> issue note -> two signatures. The decision
moves stock (central -> officer) in one transaction; the signed issue note
records the physical handover.

REQUEST LIFECYCLE:
    pending -> approved | partially_approved | rejected   (decided once)

ISSUE NOTE LIFECYCLE:
    pending_signatures -> completed   (issuer AND receiver signed)

On completion one received_from_issue movement of +quantity is posted into
the requester's partition, exactly once.
"""
from __future__ import annotations

from datetime import date

from ..extensions import db
from ..errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
)
from ..models import BlankCardRequest, IssueNote, StockMovement
from enbic.time_utils import utcnow
from .access import Actor, ROLE_OFFICER, ROLE_OPERATOR, ensure_role
from .artifact_service import decode_file_data, save_file_data
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import MOVEMENT_RECEIVED_FROM_ISSUE, transfer_to_officer


REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_PARTIAL = "partially_approved"
REQUEST_STATUS_REJECTED = "rejected"

ACTION_APPROVE = "approve"
ACTION_PARTIAL = "partial"
ACTION_REJECT = "reject"
VALID_ACTIONS = {ACTION_APPROVE, ACTION_PARTIAL, ACTION_REJECT}

ISSUE_STATUS_PENDING = "pending_signatures"
ISSUE_STATUS_COMPLETED = "completed"

SIGNER_ISSUER = "issuer"
SIGNER_RECEIVER = "receiver"
SIGNER_ROLES = {
    SIGNER_ISSUER: (ROLE_OPERATOR,),
    SIGNER_RECEIVER: (ROLE_OFFICER,),
}

UPLOAD_FOLDER = "issue_notes"


def _get_request(request_id: int, *, lock: bool = False) -> BlankCardRequest:
    q = db.session.query(BlankCardRequest).filter_by(id=request_id)
    if lock:
        q = lock_for_update(q)
    req = q.first()
    if req is None:
        raise NotFoundError(f"Request {request_id} not found", request_id=request_id)
    return req


def get_request(request_id: int) -> BlankCardRequest:
    return _get_request(request_id)


def list_requests(*, requester_id: int | None = None, status: str | None = None) -> list[BlankCardRequest]:
    q = db.session.query(BlankCardRequest)
    if requester_id is not None:
        q = q.filter(BlankCardRequest.requester_id == requester_id)
    if status:
        q = q.filter(BlankCardRequest.status == status)
    return q.order_by(BlankCardRequest.created_at.desc(), BlankCardRequest.id.desc()).all()


def create_request(
    quantity: int,
    *,
    actor: Actor,
    reason: str | None = None,
    needed_by: date | None = None,
) -> BlankCardRequest:
    """Officer asks for blank cards from the central pool (status: pending)."""
    ensure_role(actor, ROLE_OFFICER)
    if actor.user_id is None:
        raise InvalidArgumentError("Requests must be made by a named user")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgumentError("quantity must be a positive integer")

    req = BlankCardRequest(
        requester_id=actor.user_id,
        quantity=quantity,
        reason=reason,
        needed_by=needed_by,
        status=REQUEST_STATUS_PENDING,
        created_at=utcnow(),
    )
    db.session.add(req)
    db.session.flush()

    append_audit_entry(
        action="REQUEST_CREATED",
        new_value=f"Request {req.id}: {quantity} blank card(s)",
        operator=actor.name,
    )
    return req


def decide_request(
    request_id: int,
    action: str,
    *,
    actor: Actor,
    approved_qty: int | None = None,
    note: str | None = None,
) -> BlankCardRequest:
    """
    Approve, partially approve or reject a pending request.

    approve -> approved_qty = quantity; partial -> approved_qty as given
    (0..quantity); reject -> 0. With approved_qty > 0 the central balance is
    checked first, then the paired transfer movements are posted in the same
    transaction.

    Raises:
        InvalidArgumentError: unknown action, bad approved_qty
        InvalidTransitionError: request already decided
        InsufficientStockError: central balance < approved_qty
    """
    ensure_role(actor)  # admin only
    if action not in VALID_ACTIONS:
        raise InvalidArgumentError("action must be approve, partial or reject")

    def _op():
        req = _get_request(request_id, lock=True)
        if req.status != REQUEST_STATUS_PENDING:
            raise InvalidTransitionError(
                f"Request {request_id} is already {req.status}",
                request_id=request_id,
                current_status=req.status,
            )

        if action == ACTION_REJECT:
            qty, status = 0, REQUEST_STATUS_REJECTED
        elif action == ACTION_APPROVE:
            qty, status = req.quantity, REQUEST_STATUS_APPROVED
        else:
            if isinstance(approved_qty, bool) or not isinstance(approved_qty, int):
                raise InvalidArgumentError("approved_qty must be an integer for a partial approval")
            if approved_qty < 0 or approved_qty > req.quantity:
                raise InvalidArgumentError(
                    f"approved_qty must be between 0 and {req.quantity}",
                    request_id=request_id,
                )
            qty, status = approved_qty, REQUEST_STATUS_PARTIAL

        if qty > 0:
            transfer_to_officer(
                qty,
                req.requester_id,
                actor=actor,
                request_id=req.id,
                reference=f"REQ-{req.id}",
            )

        req.status = status
        req.approved_qty = qty
        req.approver_id = actor.user_id
        req.decision_note = note
        req.decided_at = utcnow()
        db.session.flush()

        append_audit_entry(
            action="REQUEST_DECIDED",
            old_value=REQUEST_STATUS_PENDING,
            new_value=f"Request {req.id}: {status} ({qty})",
            operator=actor.name,
        )
        return req

    return run_with_retry(_op)


def _get_issue_note(issue_id: int, *, lock: bool = False) -> IssueNote:
    q = db.session.query(IssueNote).filter_by(id=issue_id)
    if lock:
        q = lock_for_update(q)
    note = q.first()
    if note is None:
        raise NotFoundError(f"Issue note {issue_id} not found", issue_id=issue_id)
    return note


def get_issue_note(issue_id: int) -> IssueNote:
    return _get_issue_note(issue_id)


def list_issue_notes(*, requester_id: int | None = None) -> list[IssueNote]:
    q = db.session.query(IssueNote)
    if requester_id is not None:
        q = q.join(BlankCardRequest, BlankCardRequest.id == IssueNote.request_id).filter(
            BlankCardRequest.requester_id == requester_id
        )
    return q.order_by(IssueNote.created_at.desc(), IssueNote.id.desc()).all()


def generate_issue_note(request_id: int, *, actor: Actor) -> IssueNote:
    """
    Create the handover note for an approved request (quantity = approved_qty).

    A request gets one note; a second call raises ConflictError.
    """
    ensure_role(actor, ROLE_OPERATOR)
    req = _get_request(request_id, lock=True)
    if req.status not in (REQUEST_STATUS_APPROVED, REQUEST_STATUS_PARTIAL) or not req.approved_qty:
        raise InvalidTransitionError(
            f"Request {request_id} has no approved quantity to issue",
            request_id=request_id,
            current_status=req.status,
        )

    existing = db.session.query(IssueNote.id).filter_by(request_id=req.id).first()
    if existing is not None:
        raise ConflictError(
            f"Request {request_id} already has issue note {existing.id}",
            request_id=request_id,
            issue_id=existing.id,
        )

    note = IssueNote(
        request_id=req.id,
        quantity=req.approved_qty,
        status=ISSUE_STATUS_PENDING,
        created_at=utcnow(),
    )
    db.session.add(note)
    db.session.flush()

    append_audit_entry(
        action="ISSUE_NOTE_CREATED",
        new_value=f"Issue note {note.id} for request {req.id} ({note.quantity})",
        operator=actor.name,
    )
    return note


def sign_issue_note(
    issue_id: int,
    signer: str,
    name: str,
    *,
    actor: Actor,
    file_data=None,
    overwrite: bool = False,
) -> IssueNote:
    """
    Record the issuer or receiver signature.

    The second signature completes the note and posts the received_from_issue
    movement. A completed note accepts no more signatures, so the movement
    can only be posted once.
    """
    if signer not in SIGNER_ROLES:
        raise InvalidArgumentError("signer must be 'issuer' or 'receiver'")
    ensure_role(actor, *SIGNER_ROLES[signer])
    name = (name or "").strip()
    if not name:
        raise InvalidArgumentError("name is required")
    if file_data:
        decode_file_data(file_data)

    def _op():
        note = _get_issue_note(issue_id, lock=True)
        if note.status == ISSUE_STATUS_COMPLETED:
            raise InvalidTransitionError(
                f"Issue note {issue_id} is already completed",
                issue_id=issue_id,
                current_status=note.status,
            )

        name_field = f"{signer}_name"
        previous = getattr(note, name_field)
        if previous and not overwrite:
            raise ConflictError(
                f"Issue note {issue_id} already signed by {signer} '{previous}'; pass overwrite to replace",
                issue_id=issue_id,
                signer=signer,
            )

        setattr(note, name_field, name)
        setattr(note, f"{signer}_signed_at", utcnow())

        if file_data:
            note.issue_note_path = save_file_data(
                file_data, folder=UPLOAD_FOLDER, stem=f"issue_{issue_id}_{signer}"
            )

        if note.issuer_name and note.receiver_name:
            _complete(note, actor=actor)

        db.session.flush()
        append_audit_entry(
            action="ISSUE_NOTE_SIGNED",
            old_value=previous,
            new_value=f"Issue note {issue_id} {signer}: {name}",
            operator=actor.name,
        )
        return note

    return run_with_retry(_op)


def _complete(note: IssueNote, *, actor: Actor) -> None:
    already_posted = (
        db.session.query(StockMovement.id)
        .filter_by(type=MOVEMENT_RECEIVED_FROM_ISSUE, related_request_id=note.request_id)
        .first()
    )
    note.status = ISSUE_STATUS_COMPLETED
    note.completed_at = utcnow()
    if already_posted is not None:
        return

    db.session.add(StockMovement(
        type=MOVEMENT_RECEIVED_FROM_ISSUE,
        qty=note.quantity,
        user_id=note.request.requester_id,
        related_request_id=note.request_id,
        reference=f"ISSUE-{note.id}",
        operator=actor.name,
        notes=f"Issue note {note.id} signed by {note.issuer_name} / {note.receiver_name}",
        created_at=note.completed_at,
    ))
