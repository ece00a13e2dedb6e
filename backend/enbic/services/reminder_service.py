# Overview: Reminder engine; derives outstanding-work reminders from current ARN state.

"""
Reminder Engine

Reminders are derived records, never a source of truth. generate() scans
current ARN state and makes sure exactly one unresolved reminder exists per
(reminder_type, subject_key):

- pending_capture          every ARN at Awaiting Capture          arn:<ARN>
- pending_personalization  every ARN at Submitted to Personalization
- state_delivery_threshold every state with >= STATE_DELIVERY_THRESHOLD
                           ARNs at Pending Delivery               state:<name>

generate() is idempotent and safe under concurrent runs: the partial unique
index on open reminders rejects a duplicate insert, which is skipped. Open
reminders whose subject no longer qualifies are resolved in the same pass.

resolve() marks a reminder resolved and, for ARN reminders, makes a soft
attempt to advance the ARN one step. If the ARN has already moved on the
reminder still resolves.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InvalidTransitionError, NotFoundError
from ..models import Arn, Reminder
from enbic.time_utils import utcnow
from .access import Actor, ROLE_OPERATOR, ensure_role
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, savepoint
from .hooks import HOOK_REGENERATE_REMINDERS, PostCommitHooks
from .lifecycle_service import (
    STATUS_AWAITING_CAPTURE,
    STATUS_PENDING_DELIVERY,
    STATUS_SUBMITTED,
    _apply_transition,
    get_arn,
)


logger = logging.getLogger(__name__)

TYPE_PENDING_CAPTURE = "pending_capture"
TYPE_PENDING_PERSONALIZATION = "pending_personalization"
TYPE_STATE_DELIVERY_THRESHOLD = "state_delivery_threshold"
REMINDER_TYPES = (TYPE_PENDING_CAPTURE, TYPE_PENDING_PERSONALIZATION, TYPE_STATE_DELIVERY_THRESHOLD)

# reminder type -> status the ARN is advanced to on resolve
RESOLVE_ADVANCES = {
    TYPE_PENDING_CAPTURE: STATUS_SUBMITTED,
    TYPE_PENDING_PERSONALIZATION: STATUS_PENDING_DELIVERY,
}


def arn_subject(arn: str) -> str:
    return f"arn:{arn}"


def state_subject(state: str) -> str:
    return f"state:{state}"


def _ensure_open(reminder_type: str, subject_key: str, message: str, *, arn=None, state=None) -> bool:
    """Create the reminder unless an unresolved one exists. True if created."""
    existing = (
        db.session.query(Reminder.id)
        .filter_by(reminder_type=reminder_type, subject_key=subject_key)
        .filter(Reminder.resolved_at.is_(None))
        .first()
    )
    if existing is not None:
        return False

    try:
        with savepoint():
            db.session.add(Reminder(
                arn=arn,
                state=state,
                reminder_type=reminder_type,
                subject_key=subject_key,
                message=message,
                created_at=utcnow(),
            ))
            db.session.flush()
    except IntegrityError:
        # A concurrent generate() created it first
        return False
    return True


def _resolve_stale(reminder_type: str, live_subjects: set[str], now) -> int:
    """Resolve open reminders of one type whose subject no longer qualifies."""
    open_reminders = (
        db.session.query(Reminder)
        .filter(Reminder.reminder_type == reminder_type)
        .filter(Reminder.resolved_at.is_(None))
        .all()
    )
    resolved = 0
    for reminder in open_reminders:
        if reminder.subject_key in live_subjects:
            continue
        reminder.resolved_at = now
        resolved += 1
    if resolved:
        db.session.flush()
    return resolved


def generate_reminders() -> dict:
    """
    Bring open reminders in line with current ARN state.

    Creates the reminders that are missing and resolves the open ones whose
    condition no longer holds (no ARN side effect). Returns
    {"created": {type: n}, "resolved": {type: n}}. Flushes only; the caller
    commits.
    """
    created = dict.fromkeys(REMINDER_TYPES, 0)
    live = {reminder_type: set() for reminder_type in REMINDER_TYPES}

    awaiting = db.session.query(Arn.arn, Arn.state).filter_by(status=STATUS_AWAITING_CAPTURE).all()
    for arn, state in awaiting:
        live[TYPE_PENDING_CAPTURE].add(arn_subject(arn))
        if _ensure_open(
            TYPE_PENDING_CAPTURE,
            arn_subject(arn),
            f"ARN {arn} is still awaiting capture and personalization submission",
            arn=arn,
            state=state,
        ):
            created[TYPE_PENDING_CAPTURE] += 1

    submitted = db.session.query(Arn.arn, Arn.state).filter_by(status=STATUS_SUBMITTED).all()
    for arn, state in submitted:
        live[TYPE_PENDING_PERSONALIZATION].add(arn_subject(arn))
        if _ensure_open(
            TYPE_PENDING_PERSONALIZATION,
            arn_subject(arn),
            f"ARN {arn} has been submitted to personalization and is awaiting store receipt",
            arn=arn,
            state=state,
        ):
            created[TYPE_PENDING_PERSONALIZATION] += 1

    threshold = int(current_app.config["STATE_DELIVERY_THRESHOLD"])
    per_state = (
        db.session.query(Arn.state, func.count(Arn.id))
        .filter(Arn.status == STATUS_PENDING_DELIVERY)
        .group_by(Arn.state)
        .having(func.count(Arn.id) >= threshold)
        .all()
    )
    for state, count in per_state:
        live[TYPE_STATE_DELIVERY_THRESHOLD].add(state_subject(state))
        if _ensure_open(
            TYPE_STATE_DELIVERY_THRESHOLD,
            state_subject(state),
            f"State {state} has {count} ARNs pending delivery",
            state=state,
        ):
            created[TYPE_STATE_DELIVERY_THRESHOLD] += 1

    now = utcnow()
    resolved = {
        reminder_type: _resolve_stale(reminder_type, live[reminder_type], now)
        for reminder_type in REMINDER_TYPES
    }

    if sum(created.values()) or sum(resolved.values()):
        logger.info("Reminders generated: created=%s resolved=%s", created, resolved)
    return {"created": created, "resolved": resolved}


def list_open_reminders(*, reminder_type: str | None = None) -> list[dict]:
    """Unresolved reminders, newest first, with the ARN's current state/status."""
    q = (
        db.session.query(Reminder, Arn.state, Arn.status)
        .outerjoin(Arn, Arn.arn == Reminder.arn)
        .filter(Reminder.resolved_at.is_(None))
    )
    if reminder_type:
        q = q.filter(Reminder.reminder_type == reminder_type)
    rows = q.order_by(Reminder.created_at.desc(), Reminder.id.desc()).all()

    out = []
    for reminder, arn_state, arn_status in rows:
        data = reminder.to_dict()
        data["state"] = arn_state or reminder.state
        data["status"] = arn_status
        out.append(data)
    return out


def count_open_reminders() -> int:
    return int(
        db.session.query(func.count(Reminder.id)).filter(Reminder.resolved_at.is_(None)).scalar() or 0
    )


def resolve_reminder(
    reminder_id: int,
    *,
    actor: Actor,
    hooks: PostCommitHooks | None = None,
) -> dict:
    """
    Resolve a reminder and soft-advance its ARN.

    Returns {"reminder", "advanced", "arn_status"}. An ARN that can no longer
    make the step is left untouched.

    Raises:
        NotFoundError: unknown reminder id
        InvalidTransitionError: reminder already resolved
    """
    ensure_role(actor, ROLE_OPERATOR)

    reminder = lock_for_update(db.session.query(Reminder).filter_by(id=reminder_id)).first()
    if reminder is None:
        raise NotFoundError(f"Reminder {reminder_id} not found", reminder_id=reminder_id)
    if reminder.resolved_at is not None:
        raise InvalidTransitionError(
            f"Reminder {reminder_id} is already resolved",
            reminder_id=reminder_id,
        )

    reminder.resolved_at = utcnow()
    db.session.flush()
    append_audit_entry(
        arn=reminder.arn,
        action="REMINDER_RESOLVED",
        new_value=f"{reminder.reminder_type} #{reminder.id}",
        operator=actor.name,
    )

    advanced = False
    arn_status = None
    target = RESOLVE_ADVANCES.get(reminder.reminder_type)
    if target and reminder.arn:
        try:
            # Inline so a failed step only rolls back to the savepoint
            with savepoint():
                row = get_arn(reminder.arn, lock=True)
                _apply_transition(row, target, actor=actor)
                db.session.flush()
            advanced = True
            arn_status = row.status
            if hooks is not None:
                hooks.add(HOOK_REGENERATE_REMINDERS)
        except (InvalidTransitionError, NotFoundError) as e:
            logger.info("Reminder %s resolved without advancing %s: %s", reminder.id, reminder.arn, e.message)

    return {"reminder": reminder, "advanced": advanced, "arn_status": arn_status}
