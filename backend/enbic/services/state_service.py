# Overview: Service-layer operations for delivery jurisdictions (states).

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, InvalidArgumentError, NotFoundError
from ..models import Arn, State
from enbic.time_utils import utcnow
from .access import Actor, ensure_role
from .audit_service import append_audit_entry


def list_states() -> list[State]:
    return db.session.query(State).order_by(State.name).all()


def create_state(name: str, *, actor: Actor) -> State:
    """Create a jurisdiction. Names are unique (Conflict on duplicate)."""
    ensure_role(actor)  # admin only
    name = (name or "").strip()
    if not name:
        raise InvalidArgumentError("State name is required")
    if db.session.query(State.id).filter_by(name=name).first() is not None:
        raise ConflictError(f"State '{name}' already exists", state=name)

    state = State(name=name, created_at=utcnow())
    db.session.add(state)
    db.session.flush()
    append_audit_entry(action="STATE_CREATED", new_value=name, operator=actor.name)
    return state


def delete_state(state_id: int, *, actor: Actor) -> None:
    """Delete a jurisdiction; refused while any ARN still references it."""
    ensure_role(actor)  # admin only
    state = db.session.query(State).filter_by(id=state_id).first()
    if state is None:
        raise NotFoundError(f"State {state_id} not found")

    in_use = db.session.query(Arn.id).filter_by(state=state.name).count()
    if in_use:
        raise ConflictError(
            f"State '{state.name}' is referenced by {in_use} ARN(s) and cannot be deleted",
            state=state.name,
            arn_count=in_use,
        )

    db.session.delete(state)
    db.session.flush()
    append_audit_entry(action="STATE_DELETED", old_value=state.name, operator=actor.name)
