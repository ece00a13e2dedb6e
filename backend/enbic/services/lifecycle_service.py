# Overview: Service-layer operations for the ARN lifecycle; encapsulates business logic and database work.

"""
ENBIC ARN Lifecycle Service

================================================================================
PURPOSE: Enforce the ARN status state machine
================================================================================

STATE MACHINE:
    Awaiting Capture -> Submitted to Personalization -> Pending Delivery
    Pending Delivery -> Delivered          (terminal)
    Pending Delivery -> Collected at SHQ   (terminal)
    Stored -> Pending Delivery             (store re-entry only)

RULES (NON-NEGOTIABLE):
1. Every hop is explicit; transitions are not transitive
   (Awaiting Capture -> Pending Delivery is forbidden)
2. No backwards movement, terminal states never change
3. Entering a status stamps its timestamp once; timestamps are never cleared
4. ARNs are never deleted
5. Every change writes an audit entry and asks for reminder regeneration
   (post-commit, see hooks.py)

Services flush but never commit: the caller owns the transaction.
================================================================================
"""

from __future__ import annotations

from typing import Literal

from ..extensions import db
from ..errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from ..models import Arn, DeliveryHistory, State
from enbic.time_utils import utcnow
from .access import Actor, ROLE_OPERATOR, ensure_role
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_with_retry, savepoint
from .hooks import HOOK_REGENERATE_REMINDERS, PostCommitHooks


STATUS_AWAITING_CAPTURE = "Awaiting Capture"
STATUS_SUBMITTED = "Submitted to Personalization"
STATUS_PENDING_DELIVERY = "Pending Delivery"
STATUS_DELIVERED = "Delivered"
STATUS_COLLECTED = "Collected at SHQ"
STATUS_STORED = "Stored"

ArnStatus = Literal[
    "Awaiting Capture",
    "Submitted to Personalization",
    "Pending Delivery",
    "Delivered",
    "Collected at SHQ",
    "Stored",
]

VALID_STATUSES = {
    STATUS_AWAITING_CAPTURE,
    STATUS_SUBMITTED,
    STATUS_PENDING_DELIVERY,
    STATUS_DELIVERED,
    STATUS_COLLECTED,
    STATUS_STORED,
}

# The only edges of the graph
VALID_TRANSITIONS = {
    STATUS_AWAITING_CAPTURE: {STATUS_SUBMITTED},
    STATUS_SUBMITTED: {STATUS_PENDING_DELIVERY},
    STATUS_PENDING_DELIVERY: {STATUS_DELIVERED, STATUS_COLLECTED},
    STATUS_STORED: {STATUS_PENDING_DELIVERY},
    STATUS_DELIVERED: set(),
    STATUS_COLLECTED: set(),
}

# Status entered -> timestamp column stamped
TIMESTAMP_FIELDS = {
    STATUS_SUBMITTED: "submitted_at",
    STATUS_PENDING_DELIVERY: "pending_delivery_at",
    STATUS_DELIVERED: "delivered_at",
    STATUS_COLLECTED: "collected_at",
    STATUS_STORED: "stored_at",
}

DOCUMENT_NUMBER_STATUSES = {STATUS_SUBMITTED, STATUS_PENDING_DELIVERY}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise InvalidArgumentError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """True only for a direct edge of the graph (same-status is not an edge)."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def _stamp(arn: Arn, status: str, when) -> None:
    field = TIMESTAMP_FIELDS.get(status)
    if field and getattr(arn, field) is None:
        setattr(arn, field, when)


def _apply_transition(arn: Arn, new_status: str, *, actor: Actor, action: str = "STATUS_UPDATED", note: str | None = None) -> str:
    """Guarded in-session transition; returns the previous status."""
    old_status = arn.status
    if not can_transition(old_status, new_status):
        raise InvalidTransitionError(
            f"Invalid status transition from {old_status} to {new_status}",
            arn=arn.arn,
            current_status=old_status,
            requested_status=new_status,
        )

    arn.status = new_status
    _stamp(arn, new_status, utcnow())

    append_audit_entry(
        arn=arn.arn,
        action=action,
        old_value=old_status,
        new_value=f"{new_status} ({note})" if note else new_status,
        operator=actor.name,
    )
    return old_status


def get_arn(arn: str, *, lock: bool = False) -> Arn:
    q = db.session.query(Arn).filter_by(arn=arn)
    if lock:
        q = lock_for_update(q)
    row = q.first()
    if row is None:
        raise NotFoundError(f"ARN {arn} not found", arn=arn)
    return row


def list_arns(
    *,
    state: str | None = None,
    status: str | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> list[Arn]:
    q = db.session.query(Arn)
    if state:
        q = q.filter(Arn.state == state)
    if status:
        q = q.filter(Arn.status == status)
    if search:
        q = q.filter(Arn.arn.ilike(f"%{search.strip()}%"))
    q = q.order_by(Arn.created_at.desc(), Arn.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def _ensure_known_state(state: str) -> None:
    if not state or not state.strip():
        raise InvalidArgumentError("state is required")
    if db.session.query(State.id).filter_by(name=state).first() is None:
        raise InvalidArgumentError(f"Unknown state '{state}'", state=state)


def create_arn(
    arn: str,
    state: str,
    *,
    actor: Actor,
    name: str | None = None,
    notes: str | None = None,
    hooks: PostCommitHooks | None = None,
) -> Arn:
    """
    Register a new ARN at Awaiting Capture.

    Raises:
        InvalidArgumentError: missing arn, unknown state
        ConflictError: ARN already exists
    """
    ensure_role(actor, ROLE_OPERATOR)
    arn = (arn or "").strip()
    if not arn:
        raise InvalidArgumentError("arn is required")
    _ensure_known_state(state)

    if db.session.query(Arn.id).filter_by(arn=arn).first() is not None:
        raise ConflictError(f"ARN {arn} already exists", arn=arn)

    row = Arn(
        arn=arn,
        state=state,
        name=(name or None),
        notes=notes,
        status=STATUS_AWAITING_CAPTURE,
        created_at=utcnow(),
    )
    db.session.add(row)
    db.session.flush()

    append_audit_entry(arn=arn, action="ARN_CREATED", new_value=f"State: {state}", operator=actor.name)
    if hooks is not None:
        hooks.add(HOOK_REGENERATE_REMINDERS)
    return row


def transition_arn(
    arn: str,
    new_status: str,
    *,
    actor: Actor,
    hooks: PostCommitHooks | None = None,
) -> Arn:
    """
    Move an ARN along one edge of the lifecycle graph.

    Raises:
        InvalidArgumentError: unknown status value
        NotFoundError: ARN does not exist
        InvalidTransitionError: (current -> new_status) is not an edge
    """
    ensure_role(actor, ROLE_OPERATOR)
    validate_status(new_status)

    def _op():
        row = get_arn(arn, lock=True)
        _apply_transition(row, new_status, actor=actor)
        db.session.flush()
        return row

    row = run_with_retry(_op)
    if hooks is not None:
        hooks.add(HOOK_REGENERATE_REMINDERS)
    return row


def set_document_number(arn: str, document_number: str, *, actor: Actor) -> Arn:
    """
    Record the personalization document number.

    Only allowed while the ARN is Submitted to Personalization or Pending Delivery.
    """
    ensure_role(actor, ROLE_OPERATOR)
    document_number = (document_number or "").strip()
    if not document_number:
        raise InvalidArgumentError("document_number is required")

    row = get_arn(arn, lock=True)
    if row.status not in DOCUMENT_NUMBER_STATUSES:
        raise InvalidStateError(
            f"Cannot set document number on ARN {arn} in status '{row.status}'",
            arn=arn,
            current_status=row.status,
        )

    old = row.document_number
    row.document_number = document_number
    row.document_number_set_by = actor.name
    row.document_number_set_at = utcnow()
    db.session.flush()

    append_audit_entry(
        arn=arn,
        action="DOCUMENT_NUMBER_SET",
        old_value=old,
        new_value=document_number,
        operator=actor.name,
    )
    return row


def deliver_arns(
    rows: list[Arn],
    *,
    state: str,
    actor: Actor,
    notes: str | None = None,
    batch_id: str | None = None,
) -> DeliveryHistory:
    """
    Move every row to Delivered and append one DeliveryHistory record.

    All-or-nothing: every row is checked before any is changed.
    """
    for row in rows:
        if not can_transition(row.status, STATUS_DELIVERED):
            raise InvalidTransitionError(
                f"Invalid status transition from {row.status} to {STATUS_DELIVERED}",
                arn=row.arn,
                current_status=row.status,
            )

    now = utcnow()
    for row in rows:
        old_status = row.status
        row.status = STATUS_DELIVERED
        _stamp(row, STATUS_DELIVERED, now)
        append_audit_entry(
            arn=row.arn,
            action="BULK_DELIVERED",
            old_value=old_status,
            new_value=f"Delivered (State: {state})" + (f" Batch: {batch_id}" if batch_id else ""),
            operator=actor.name,
        )

    history = DeliveryHistory(
        state=state,
        arn_count=len(rows),
        operator_notes=notes or "",
        batch_id=batch_id,
        operator=actor.name,
        delivery_date=now,
    )
    db.session.add(history)
    db.session.flush()
    return history


def confirm_delivery_for_state(
    state: str,
    *,
    actor: Actor,
    notes: str | None = None,
    hooks: PostCommitHooks | None = None,
) -> dict:
    """
    Deliver every Pending Delivery ARN of a state in one transaction.

    Returns {"count", "arns", "history"}; count 0 writes no history row.
    """
    ensure_role(actor, ROLE_OPERATOR)
    if not state or not state.strip():
        raise InvalidArgumentError("state is required")

    def _op():
        rows = lock_for_update(
            db.session.query(Arn).filter_by(state=state, status=STATUS_PENDING_DELIVERY)
        ).order_by(Arn.id).all()
        if not rows:
            return {"count": 0, "arns": [], "history": None}
        history = deliver_arns(rows, state=state, actor=actor, notes=notes)
        return {"count": len(rows), "arns": [r.arn for r in rows], "history": history}

    result = run_with_retry(_op)
    if result["count"] and hooks is not None:
        hooks.add(HOOK_REGENERATE_REMINDERS)
    return result


def receive_into_store(
    arns: list[str],
    *,
    actor: Actor,
    state: str | None = None,
    hooks: PostCommitHooks | None = None,
) -> list[dict]:
    """
    Receive personalized cards into the store.

    Per ARN:
    - Submitted to Personalization -> Pending Delivery, stored_at stamped
    - unknown ARN with a known `state` -> registered directly at Stored
    - anything else -> item failure

    Returns one {"arn", "success", ...} dict per input; failures never abort
    the other items.
    """
    ensure_role(actor, ROLE_OPERATOR)
    cleaned = _clean_arn_list(arns)
    if state:
        _ensure_known_state(state)

    results = []
    changed = False
    for value in cleaned:
        try:
            with savepoint():
                row = db.session.query(Arn).filter_by(arn=value).first()
                if row is None:
                    if not state:
                        raise NotFoundError(f"ARN {value} not found and no state given to register it")
                    now = utcnow()
                    row = Arn(arn=value, state=state, status=STATUS_STORED, created_at=now, stored_at=now)
                    db.session.add(row)
                    db.session.flush()
                    append_audit_entry(
                        arn=value,
                        action="ARN_STORED",
                        new_value=f"Stored (State: {state})",
                        operator=actor.name,
                    )
                else:
                    _apply_transition(row, STATUS_PENDING_DELIVERY, actor=actor, action="STORE_RECEIVED")
                    if row.stored_at is None:
                        row.stored_at = utcnow()
                    db.session.flush()
            results.append({"arn": value, "success": True, "status": row.status})
            changed = True
        except (NotFoundError, InvalidTransitionError) as e:
            results.append({"arn": value, "success": False, "error": e.kind, "message": e.message})

    if changed and hooks is not None:
        hooks.add(HOOK_REGENERATE_REMINDERS)
    return results


def record_pickup(
    arns: list[str],
    *,
    actor: Actor,
    collector_name: str | None = None,
    collector_id: str | None = None,
    phone: str | None = None,
    hooks: PostCommitHooks | None = None,
) -> list[dict]:
    """
    Record SHQ pickup: Pending Delivery -> Collected at SHQ, per ARN.

    At least one collector detail is required. Returns per-item results.
    """
    ensure_role(actor, ROLE_OPERATOR)
    collector_name = (collector_name or "").strip() or None
    collector_id = (collector_id or "").strip() or None
    phone = (phone or "").strip() or None
    if not (collector_name or collector_id or phone):
        raise InvalidArgumentError("Provide collector name, ID or phone")
    cleaned = _clean_arn_list(arns)

    detail = ", ".join(
        part for part in (
            f"name={collector_name}" if collector_name else None,
            f"id={collector_id}" if collector_id else None,
            f"phone={phone}" if phone else None,
        ) if part
    )

    results = []
    changed = False
    for value in cleaned:
        try:
            with savepoint():
                row = get_arn(value, lock=True)
                _apply_transition(row, STATUS_COLLECTED, actor=actor, action="SHQ_PICKUP", note=detail)
                row.collector_name = collector_name
                row.collector_id_number = collector_id
                row.collector_phone = phone
                db.session.flush()
            results.append({"arn": value, "success": True, "status": row.status})
            changed = True
        except (NotFoundError, InvalidTransitionError) as e:
            results.append({"arn": value, "success": False, "error": e.kind, "message": e.message})

    if changed and hooks is not None:
        hooks.add(HOOK_REGENERATE_REMINDERS)
    return results


def _clean_arn_list(arns) -> list[str]:
    if not isinstance(arns, (list, tuple)):
        raise InvalidArgumentError("arns must be a list")
    cleaned = []
    for value in arns:
        value = str(value).strip()
        if value and value not in cleaned:
            cleaned.append(value)
    if not cleaned:
        raise InvalidArgumentError("Provide at least one ARN")
    return cleaned
