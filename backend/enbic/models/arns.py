from __future__ import annotations

from ..extensions import db
from enbic.time_utils import to_utc_z


class State(db.Model):
    """
    Delivery jurisdiction.

    ARNs reference a state by name. A state can only be deleted while no ARN
    references it (enforced in state_service, not by FK, because ARN rows keep
    the plain name for reporting).
    """
    __tablename__ = "states"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<State id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Arn(db.Model):
    """
    A tracked card artifact.

    LIFECYCLE (see services/lifecycle_service.py):
        Awaiting Capture -> Submitted to Personalization -> Pending Delivery
        Pending Delivery -> Delivered | Collected at SHQ   (terminal)
        Stored -> Pending Delivery                          (store re-entry)

    Each *_at column is stamped once, by the transition that enters the
    matching status, and never cleared. Rows are never deleted.
    """
    __tablename__ = "arns"
    __table_args__ = (
        db.Index("ix_arns_state_status", "state", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    arn = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    state = db.Column(db.String(120), nullable=False, index=True)
    status = db.Column(db.String(40), nullable=False, default="Awaiting Capture", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pending_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    collected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stored_at = db.Column(db.DateTime(timezone=True), nullable=True)

    document_number = db.Column(db.String(64), nullable=True)
    document_number_set_by = db.Column(db.String(120), nullable=True)
    document_number_set_at = db.Column(db.DateTime(timezone=True), nullable=True)

    delivery_note_path = db.Column(db.String(512), nullable=True)

    # SHQ pickup
    collector_name = db.Column(db.String(255), nullable=True)
    collector_id_number = db.Column(db.String(120), nullable=True)
    collector_phone = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Arn arn={self.arn!r} state={self.state!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "arn": self.arn,
            "name": self.name,
            "state": self.state,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "pending_delivery_at": to_utc_z(self.pending_delivery_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "collected_at": to_utc_z(self.collected_at),
            "stored_at": to_utc_z(self.stored_at),
            "document_number": self.document_number,
            "document_number_set_by": self.document_number_set_by,
            "document_number_set_at": to_utc_z(self.document_number_set_at),
            "delivery_note_path": self.delivery_note_path,
            "collector_name": self.collector_name,
            "collector_id_number": self.collector_id_number,
            "collector_phone": self.collector_phone,
        }


class DeliveryHistory(db.Model):
    """One row per bulk delivery (state-wide confirm or dispatch batch delivery)."""
    __tablename__ = "delivery_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    state = db.Column(db.String(120), nullable=False, index=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    arn_count = db.Column(db.Integer, nullable=False)
    operator_notes = db.Column(db.Text, nullable=True)
    batch_id = db.Column(db.String(64), nullable=True, index=True)
    operator = db.Column(db.String(120), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state,
            "delivery_date": to_utc_z(self.delivery_date),
            "arn_count": self.arn_count,
            "operator_notes": self.operator_notes,
            "batch_id": self.batch_id,
            "operator": self.operator,
        }


class AuditLogEntry(db.Model):
    """
    Append-only record of every state-changing action.

    No updates, no deletes. arn is null for actions that are not about one ARN
    (stock movements, batch actions, state management).
    """
    __tablename__ = "audit_log"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    arn = db.Column(db.String(64), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    operator = db.Column(db.String(120), nullable=False, default="System")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "arn": self.arn,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": to_utc_z(self.timestamp),
            "operator": self.operator,
        }


class Reminder(db.Model):
    """
    Derived task record pointing at outstanding work.

    Reminders are re-created from current ARN state by reminder_service.generate().
    subject_key identifies what the reminder is about ("arn:<ARN>" or
    "state:<name>"); at most one unresolved reminder exists per
    (reminder_type, subject_key), enforced by a partial unique index.
    """
    __tablename__ = "reminders"
    __table_args__ = (
        db.Index(
            "uq_reminders_open_subject",
            "reminder_type",
            "subject_key",
            unique=True,
            sqlite_where=db.text("resolved_at IS NULL"),
            postgresql_where=db.text("resolved_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    arn = db.Column(db.String(64), nullable=True, index=True)
    state = db.Column(db.String(120), nullable=True)
    reminder_type = db.Column(db.String(40), nullable=False, index=True)
    subject_key = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "arn": self.arn,
            "state": self.state,
            "reminder_type": self.reminder_type,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
