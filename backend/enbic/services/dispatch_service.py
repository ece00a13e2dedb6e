# backend/enbic/services/dispatch_service.py
"""
Dispatch batch service: delivery notes and two-party sign-off.

WHY: Cards leave the store only against a delivery note signed by both the
operator (dispatching side) and the store officer (receiving side). The
batch then records the dispatch and, once the signed confirmation note is
uploaded, delivers the ARNs it covers.

LIFECYCLE:
1. prepared: batch created
2. ready_for_dispatch: both signatures present (automatic after a sign)
3. dispatched: explicitly confirmed
4. delivered: confirmation note uploaded, covered ARNs Delivered (immutable)

Scope: a single ARN (batch_arn) or every Pending Delivery ARN of the batch's
state, evaluated when the note is rendered and when delivery is recorded.

Re-signing a slot that is already signed requires overwrite=True.
"""
from __future__ import annotations

from flask import render_template

from ..extensions import db
from ..errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
)
from ..models import Arn, DispatchBatch
from enbic.time_utils import utcnow
from .access import Actor, ROLE_OFFICER, ROLE_OPERATOR, ensure_role
from .artifact_service import decode_file_data, save_file_data, save_rendered
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_with_retry
from .hooks import HOOK_REGENERATE_REMINDERS, PostCommitHooks
from .lifecycle_service import STATUS_PENDING_DELIVERY, deliver_arns


# Batch status constants
BATCH_STATUS_PREPARED = "prepared"
BATCH_STATUS_READY = "ready_for_dispatch"
BATCH_STATUS_DISPATCHED = "dispatched"
BATCH_STATUS_DELIVERED = "delivered"

SIGNER_OPERATOR = "operator"
SIGNER_OFFICER = "officer"

# signer slot -> roles allowed to sign it (admin always allowed)
SIGNER_ROLES = {
    SIGNER_OPERATOR: (ROLE_OPERATOR,),
    SIGNER_OFFICER: (ROLE_OFFICER,),
}

UPLOAD_FOLDER = "dispatch"


def _get_batch(batch_id: str, *, lock: bool = False) -> DispatchBatch:
    q = db.session.query(DispatchBatch).filter_by(batch_id=batch_id)
    if lock:
        q = lock_for_update(q)
    batch = q.first()
    if batch is None:
        raise NotFoundError(f"Dispatch batch {batch_id} not found", batch_id=batch_id)
    return batch


def get_batch(batch_id: str) -> DispatchBatch:
    return _get_batch(batch_id)


def list_batches(*, state: str | None = None, status: str | None = None) -> list[DispatchBatch]:
    q = db.session.query(DispatchBatch)
    if state:
        q = q.filter(DispatchBatch.state == state)
    if status:
        q = q.filter(DispatchBatch.status == status)
    return q.order_by(DispatchBatch.created_at.desc(), DispatchBatch.id.desc()).all()


def batch_arns(batch: DispatchBatch) -> list[Arn]:
    """ARNs the batch covers right now."""
    if batch.batch_arn:
        return db.session.query(Arn).filter_by(arn=batch.batch_arn).all()
    return (
        db.session.query(Arn)
        .filter_by(state=batch.state, status=STATUS_PENDING_DELIVERY)
        .order_by(Arn.pending_delivery_at, Arn.id)
        .all()
    )


def create_batch(
    batch_id: str,
    state: str,
    card_count: int,
    *,
    actor: Actor,
    batch_arn: str | None = None,
) -> DispatchBatch:
    """
    Create a dispatch batch (status: prepared).

    Raises:
        InvalidArgumentError: missing id/state, negative count
        NotFoundError: batch_arn given but unknown
        ConflictError: batch_id already exists
    """
    ensure_role(actor, ROLE_OPERATOR)
    batch_id = (batch_id or "").strip()
    state = (state or "").strip()
    if not batch_id:
        raise InvalidArgumentError("batchId is required")
    if not state:
        raise InvalidArgumentError("state is required")
    if isinstance(card_count, bool) or not isinstance(card_count, int) or card_count < 0:
        raise InvalidArgumentError("cardCount must be a non-negative integer")

    if batch_arn:
        batch_arn = batch_arn.strip()
        arn = db.session.query(Arn).filter_by(arn=batch_arn).first()
        if arn is None:
            raise NotFoundError(f"ARN {batch_arn} not found", arn=batch_arn)
        if arn.state != state:
            raise InvalidArgumentError(
                f"ARN {batch_arn} belongs to state '{arn.state}', not '{state}'",
                arn=batch_arn,
            )

    if db.session.query(DispatchBatch.id).filter_by(batch_id=batch_id).first() is not None:
        raise ConflictError(f"Dispatch batch {batch_id} already exists", batch_id=batch_id)

    batch = DispatchBatch(
        batch_id=batch_id,
        state=state,
        card_count=card_count,
        batch_arn=batch_arn or None,
        status=BATCH_STATUS_PREPARED,
        created_by=actor.name,
        created_at=utcnow(),
    )
    db.session.add(batch)
    db.session.flush()

    append_audit_entry(
        arn=batch.batch_arn,
        action="BATCH_CREATED",
        new_value=f"Batch {batch_id} (State: {state}, cards: {card_count})",
        operator=actor.name,
    )
    return batch


def sign_batch(
    batch_id: str,
    signer: str,
    name: str,
    *,
    actor: Actor,
    file_data=None,
    overwrite: bool = False,
) -> DispatchBatch:
    """
    Record the operator or officer signature on a batch.

    - operator slot: operator/admin only; officer slot: officer/admin only
    - file_data, if present, is stored as the batch's delivery note
    - both slots filled -> status becomes ready_for_dispatch
    - an already signed slot is only replaced with overwrite=True
    """
    if signer not in SIGNER_ROLES:
        raise InvalidArgumentError("signer must be 'operator' or 'officer'")
    ensure_role(actor, *SIGNER_ROLES[signer])
    name = (name or "").strip()
    if not name:
        raise InvalidArgumentError("name is required")
    if file_data:
        decode_file_data(file_data)

    def _op():
        batch = _get_batch(batch_id, lock=True)
        if batch.status not in (BATCH_STATUS_PREPARED, BATCH_STATUS_READY):
            raise InvalidTransitionError(
                f"Cannot sign batch {batch_id} in {batch.status} status",
                batch_id=batch_id,
                current_status=batch.status,
            )

        name_field = f"{signer}_name"
        previous = getattr(batch, name_field)
        if previous and not overwrite:
            raise ConflictError(
                f"Batch {batch_id} already signed by {signer} '{previous}'; pass overwrite to replace",
                batch_id=batch_id,
                signer=signer,
            )

        setattr(batch, name_field, name)
        setattr(batch, f"{signer}_signed_at", utcnow())

        if batch.operator_name and batch.officer_name and batch.status == BATCH_STATUS_PREPARED:
            batch.status = BATCH_STATUS_READY

        if file_data:
            batch.delivery_note_path = save_file_data(
                file_data, folder=UPLOAD_FOLDER, stem=f"{batch_id}_delivery_{signer}"
            )

        db.session.flush()

        append_audit_entry(
            arn=batch.batch_arn,
            action="BATCH_SIGNED",
            old_value=previous,
            new_value=f"Batch {batch_id} {signer}: {name}",
            operator=actor.name,
        )
        return batch

    return run_with_retry(_op)


def confirm_dispatch(batch_id: str, *, actor: Actor) -> DispatchBatch:
    """
    Mark a fully signed batch as dispatched.

    Raises:
        PreconditionFailedError: operator or officer signature missing
        InvalidTransitionError: batch already dispatched/delivered
    """
    ensure_role(actor, ROLE_OPERATOR)

    def _op():
        batch = _get_batch(batch_id, lock=True)
        if batch.status in (BATCH_STATUS_DISPATCHED, BATCH_STATUS_DELIVERED):
            raise InvalidTransitionError(
                f"Cannot dispatch batch {batch_id} in {batch.status} status",
                batch_id=batch_id,
                current_status=batch.status,
            )
        if not (batch.operator_name and batch.officer_name):
            raise PreconditionFailedError(
                f"Batch {batch_id} requires both operator and officer signatures before dispatch",
                batch_id=batch_id,
            )

        old_status = batch.status
        batch.status = BATCH_STATUS_DISPATCHED
        batch.dispatched_at = utcnow()
        db.session.flush()

        append_audit_entry(
            arn=batch.batch_arn,
            action="BATCH_DISPATCHED",
            old_value=old_status,
            new_value=f"Batch {batch_id} dispatched",
            operator=actor.name,
        )
        return batch

    return run_with_retry(_op)


def upload_confirmation(
    batch_id: str,
    file_data,
    *,
    actor: Actor,
    notes: str | None = None,
    hooks: PostCommitHooks | None = None,
) -> dict:
    """
    Store the signed confirmation note and deliver the batch.

    Every covered ARN moves Pending Delivery -> Delivered, one DeliveryHistory
    row is appended and the batch becomes delivered. All in one transaction.
    """
    ensure_role(actor, ROLE_OPERATOR, ROLE_OFFICER)
    if not file_data:
        raise InvalidArgumentError("fileData is required")
    decode_file_data(file_data)

    def _op():
        batch = _get_batch(batch_id, lock=True)
        if batch.status != BATCH_STATUS_DISPATCHED:
            raise InvalidTransitionError(
                f"Cannot record delivery for batch {batch_id} in {batch.status} status",
                batch_id=batch_id,
                current_status=batch.status,
            )

        if batch.batch_arn:
            rows = lock_for_update(db.session.query(Arn).filter_by(arn=batch.batch_arn)).all()
            if not rows:
                raise NotFoundError(f"ARN {batch.batch_arn} not found", arn=batch.batch_arn)
        else:
            rows = lock_for_update(
                db.session.query(Arn).filter_by(state=batch.state, status=STATUS_PENDING_DELIVERY)
            ).order_by(Arn.id).all()

        history = deliver_arns(rows, state=batch.state, actor=actor, notes=notes, batch_id=batch_id)

        path = save_file_data(file_data, folder=UPLOAD_FOLDER, stem=f"{batch_id}_confirmation")
        batch.confirmation_note_path = path
        for row in rows:
            row.delivery_note_path = batch.delivery_note_path or path

        batch.status = BATCH_STATUS_DELIVERED
        batch.delivered_at = utcnow()
        db.session.flush()

        append_audit_entry(
            arn=batch.batch_arn,
            action="BATCH_DELIVERED",
            old_value=BATCH_STATUS_DISPATCHED,
            new_value=f"Batch {batch_id} delivered ({len(rows)} ARN(s))",
            operator=actor.name,
        )
        return {"batch": batch, "arns": [r.arn for r in rows], "history": history}

    result = run_with_retry(_op)
    if result["arns"] and hooks is not None:
        hooks.add(HOOK_REGENERATE_REMINDERS)
    return result


def generate_delivery_note(batch_id: str, *, actor: Actor) -> DispatchBatch:
    """
    Render the delivery note (HTML) and record its path on the batch.

    Idempotent: re-rendering replaces the previous file. Not allowed once the
    batch is delivered.
    """
    ensure_role(actor, ROLE_OPERATOR, ROLE_OFFICER)
    batch = _get_batch(batch_id, lock=True)
    if batch.status == BATCH_STATUS_DELIVERED:
        raise InvalidTransitionError(
            f"Batch {batch_id} is delivered and can no longer change",
            batch_id=batch_id,
            current_status=batch.status,
        )

    arns = batch_arns(batch)
    html = render_template(
        "delivery_note.html",
        batch=batch,
        arns=arns,
        generated_at=utcnow(),
        generated_by=actor.name,
    )
    batch.delivery_note_path = save_rendered(html, folder=UPLOAD_FOLDER, filename=f"{batch_id}_delivery_note.html")
    db.session.flush()
    return batch
