# Overview: Service-layer operations for the blank-card ledger; encapsulates business logic and database work.

# backend/enbic/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, InvalidArgumentError
from ..models import Setting, StockMovement, User
from enbic.time_utils import utcnow
from .access import Actor, ROLE_OFFICER, ROLE_OPERATOR, ensure_role
from .audit_service import append_audit_entry
from .concurrency import lock_for_update
from .settings_service import get_low_stock_threshold
"""
ENBIC Blank-Card Ledger Invariants (authoritative)

Ledger model:
- Stock is ledger-derived from StockMovement rows; never stored as a mutable quantity.
- A partition is either the central pool (user_id IS NULL) or one officer's
  store (user_id = officer id).
- balance(partition) = SUM(qty) over that partition's movements.
- Movements are append-only: never edited, never deleted.

Movement types and signs:
- received, received_from_issue: positive
- issued, damaged, lost: negative (damaged/lost are normalized to negative)
- adjustment: either sign

Business invariants:
- An issue may never overdraw its partition. The sufficiency check and the
  posting run in one transaction that first takes the ledger lock, so two
  concurrent issues cannot both read the same stale balance.
- A transfer (central -> officer) posts both legs in one transaction; total
  stock across partitions is unchanged.
- Adjustments (adjustment/damaged/lost) are not sufficiency-checked; shrinkage
  may take a partition negative.

Reconciliation:
- opening  = SUM(qty) strictly before date_from (0 when unbounded)
- expected = opening + received + adjustments - issued - damaged - lost
- Always recomputed from movements, never stored.
"""


MOVEMENT_RECEIVED = "received"
MOVEMENT_ISSUED = "issued"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_DAMAGED = "damaged"
MOVEMENT_LOST = "lost"
MOVEMENT_RECEIVED_FROM_ISSUE = "received_from_issue"

VALID_MOVEMENT_TYPES = {
    MOVEMENT_RECEIVED,
    MOVEMENT_ISSUED,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_DAMAGED,
    MOVEMENT_LOST,
    MOVEMENT_RECEIVED_FROM_ISSUE,
}
ADJUSTMENT_TYPES = {MOVEMENT_ADJUSTMENT, MOVEMENT_DAMAGED, MOVEMENT_LOST}

CENTRAL = None

LEDGER_LOCK_KEY = "inventory.ledger_sequence"


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{field} must be an integer")
    return value


def _acquire_ledger_lock() -> None:
    """
    Serialize sufficiency-checked ledger writes.

    Bumps a sequence row inside the current transaction: FOR UPDATE row lock on
    databases that support it, the database write lock on SQLite (the flushed
    UPDATE/INSERT). Must run before the balance is read.
    """
    row = lock_for_update(db.session.query(Setting).filter_by(key=LEDGER_LOCK_KEY)).first()
    if row is None:
        row = Setting(key=LEDGER_LOCK_KEY, value="0", updated_by="ledger")
        db.session.add(row)
    row.value = str(int(row.value or 0) + 1)
    db.session.flush()


def get_balance(partition: int | None = CENTRAL, as_of: datetime | None = None) -> int:
    """Signed sum of the partition's movements (optionally as-of, inclusive)."""
    q = db.session.query(func.coalesce(func.sum(StockMovement.qty), 0))
    if partition is None:
        q = q.filter(StockMovement.user_id.is_(None))
    else:
        q = q.filter(StockMovement.user_id == partition)
    if as_of is not None:
        q = q.filter(StockMovement.created_at <= as_of)
    return int(q.scalar() or 0)


def balance_summary() -> dict:
    """Central balance plus one entry per officer partition that has movements."""
    rows = (
        db.session.query(StockMovement.user_id, func.coalesce(func.sum(StockMovement.qty), 0))
        .filter(StockMovement.user_id.isnot(None))
        .group_by(StockMovement.user_id)
        .all()
    )
    users = {
        u.id: u for u in db.session.query(User).filter(User.id.in_([r[0] for r in rows])).all()
    } if rows else {}
    officers = [
        {
            "user_id": user_id,
            "name": users[user_id].display_name if user_id in users else None,
            "balance": int(total),
        }
        for user_id, total in sorted(rows, key=lambda r: r[0])
    ]
    central = get_balance(CENTRAL)
    return {
        "central": central,
        "officers": officers,
        "total": central + sum(o["balance"] for o in officers),
    }


def _post(
    *,
    type: str,
    qty: int,
    partition: int | None,
    actor: Actor,
    reference: str | None = None,
    notes: str | None = None,
    related_request_id: int | None = None,
    created_at: datetime | None = None,
) -> StockMovement:
    movement = StockMovement(
        type=type,
        qty=qty,
        user_id=partition,
        operator=actor.name,
        reference=reference,
        notes=notes,
        related_request_id=related_request_id,
        created_at=created_at or utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def receive_stock(
    qty: int,
    *,
    actor: Actor,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Book incoming blank cards into the actor's partition."""
    ensure_role(actor, ROLE_OPERATOR, ROLE_OFFICER)
    qty = _require_int(qty, "qty")
    if qty <= 0:
        raise InvalidArgumentError("qty must be positive")

    movement = _post(
        type=MOVEMENT_RECEIVED,
        qty=qty,
        partition=actor.partition,
        actor=actor,
        reference=reference,
        notes=notes,
    )
    append_audit_entry(
        action="STOCK_RECEIVED",
        new_value=f"+{qty} ({'central' if actor.partition is None else f'user {actor.partition}'})",
        operator=actor.name,
    )
    return movement


def issue_to_personalization(
    qty: int,
    *,
    actor: Actor,
    issued_to: str | None = None,
    reference: str | None = None,
) -> StockMovement:
    """
    Issue blank cards from the actor's partition to personalization.

    Raises:
        InvalidArgumentError: qty <= 0
        InsufficientStockError: partition balance < qty (nothing is posted)
    """
    ensure_role(actor, ROLE_OPERATOR, ROLE_OFFICER)
    qty = _require_int(qty, "qty")
    if qty <= 0:
        raise InvalidArgumentError("qty must be positive")

    partition = actor.partition
    _acquire_ledger_lock()
    available = get_balance(partition)
    if available < qty:
        raise InsufficientStockError(
            f"Insufficient stock. Available: {available}, requested: {qty}",
            available=available,
            requested=qty,
        )

    movement = _post(
        type=MOVEMENT_ISSUED,
        qty=-qty,
        partition=partition,
        actor=actor,
        reference=reference,
        notes=f"Issued to {issued_to}" if issued_to else None,
    )
    append_audit_entry(
        action="STOCK_ISSUED",
        old_value=str(available),
        new_value=str(available - qty),
        operator=actor.name,
    )
    return movement


def adjust_stock(
    qty: int,
    type: str,
    *,
    actor: Actor,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Post an adjustment/damaged/lost movement into the actor's partition.

    damaged/lost always reduce stock (sign normalized); adjustment keeps the
    caller's sign. No sufficiency check.
    """
    ensure_role(actor, ROLE_OPERATOR, ROLE_OFFICER)
    if type not in ADJUSTMENT_TYPES:
        raise InvalidArgumentError(f"type must be one of: {', '.join(sorted(ADJUSTMENT_TYPES))}")
    qty = _require_int(qty, "qty")
    if qty == 0:
        raise InvalidArgumentError("qty must not be zero")
    if type in (MOVEMENT_DAMAGED, MOVEMENT_LOST):
        qty = -abs(qty)

    movement = _post(
        type=type,
        qty=qty,
        partition=actor.partition,
        actor=actor,
        reference=reference,
        notes=notes,
    )
    append_audit_entry(action="STOCK_ADJUSTED", new_value=f"{type} {qty:+d}", operator=actor.name)
    return movement


def transfer_to_officer(
    qty: int,
    officer_id: int,
    *,
    actor: Actor,
    request_id: int | None = None,
    reference: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock from the central pool into an officer's partition.

    Posts the paired legs (issued -qty central, received +qty officer) in the
    caller's transaction after checking the central balance under the ledger lock.
    """
    qty = _require_int(qty, "qty")
    if qty <= 0:
        raise InvalidArgumentError("qty must be positive")

    _acquire_ledger_lock()
    available = get_balance(CENTRAL)
    if available < qty:
        raise InsufficientStockError(
            f"Insufficient central stock. Available: {available}, requested: {qty}",
            available=available,
            requested=qty,
        )

    now = utcnow()
    out_leg = _post(
        type=MOVEMENT_ISSUED,
        qty=-qty,
        partition=CENTRAL,
        actor=actor,
        reference=reference,
        notes=f"Transfer to user {officer_id}",
        related_request_id=request_id,
        created_at=now,
    )
    in_leg = _post(
        type=MOVEMENT_RECEIVED,
        qty=qty,
        partition=officer_id,
        actor=actor,
        reference=reference,
        notes="Transfer from central store",
        related_request_id=request_id,
        created_at=now,
    )
    return out_leg, in_leg


def list_movements(
    *,
    partition: int | None = CENTRAL,
    all_partitions: bool = False,
    movement_type: str | None = None,
    limit: int = 500,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if not all_partitions:
        if partition is None:
            q = q.filter(StockMovement.user_id.is_(None))
        else:
            q = q.filter(StockMovement.user_id == partition)
    if movement_type:
        q = q.filter(StockMovement.type == movement_type)
    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()


def reconcile(
    *,
    partition: int | None = CENTRAL,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    """
    Reconciliation report for one partition over an optional window.

    Window is date_from <= created_at <= date_to. issued/damaged/lost are
    reported as positive magnitudes.
    """
    if date_from and date_to and date_from > date_to:
        raise InvalidArgumentError("date_from must not be after date_to")

    def _scoped(q):
        if partition is None:
            return q.filter(StockMovement.user_id.is_(None))
        return q.filter(StockMovement.user_id == partition)

    opening = 0
    if date_from is not None:
        opening = int(
            _scoped(db.session.query(func.coalesce(func.sum(StockMovement.qty), 0)))
            .filter(StockMovement.created_at < date_from)
            .scalar() or 0
        )

    q = _scoped(
        db.session.query(StockMovement.type, func.coalesce(func.sum(StockMovement.qty), 0))
    )
    if date_from is not None:
        q = q.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        q = q.filter(StockMovement.created_at <= date_to)
    sums = {t: int(total) for t, total in q.group_by(StockMovement.type).all()}

    received = sums.get(MOVEMENT_RECEIVED, 0) + sums.get(MOVEMENT_RECEIVED_FROM_ISSUE, 0)
    issued = -sums.get(MOVEMENT_ISSUED, 0)
    damaged = -sums.get(MOVEMENT_DAMAGED, 0)
    lost = -sums.get(MOVEMENT_LOST, 0)
    adjustments = sums.get(MOVEMENT_ADJUSTMENT, 0)

    return {
        "partition": partition,
        "date_from": date_from,
        "date_to": date_to,
        "opening": opening,
        "received": received,
        "issued": issued,
        "damaged": damaged,
        "lost": lost,
        "adjustments": adjustments,
        "expected": opening + received + adjustments - issued - damaged - lost,
    }


def low_stock_check() -> dict:
    total = get_balance(CENTRAL)
    threshold = get_low_stock_threshold()
    return {"total": total, "threshold": threshold, "low": total < threshold}
