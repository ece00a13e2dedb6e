from __future__ import annotations

from ..extensions import db
from enbic.time_utils import to_utc_z


class DispatchBatch(db.Model):
    """
    Delivery-note and two-party sign-off unit.

    LIFECYCLE:
    1. prepared: created, waiting for signatures
    2. ready_for_dispatch: operator AND officer have signed (automatic)
    3. dispatched: explicitly confirmed
    4. delivered: confirmation note uploaded, ARNs delivered (immutable)

    Scope is either one explicit ARN (batch_arn) or every Pending Delivery
    ARN of `state` at the time the batch is rendered/delivered.
    """
    __tablename__ = "dispatch_batches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    state = db.Column(db.String(120), nullable=False, index=True)
    card_count = db.Column(db.Integer, nullable=False, default=0)
    batch_arn = db.Column(db.String(64), nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default="prepared", index=True)

    operator_name = db.Column(db.String(255), nullable=True)
    operator_signed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    officer_name = db.Column(db.String(255), nullable=True)
    officer_signed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    delivery_note_path = db.Column(db.String(512), nullable=True)
    confirmation_note_path = db.Column(db.String(512), nullable=True)

    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DispatchBatch batch_id={self.batch_id!r} state={self.state!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "state": self.state,
            "card_count": self.card_count,
            "batch_arn": self.batch_arn,
            "status": self.status,
            "operator_name": self.operator_name,
            "operator_signed_at": to_utc_z(self.operator_signed_at),
            "officer_name": self.officer_name,
            "officer_signed_at": to_utc_z(self.officer_signed_at),
            "delivery_note_path": self.delivery_note_path,
            "confirmation_note_path": self.confirmation_note_path,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "dispatched_at": to_utc_z(self.dispatched_at),
            "delivered_at": to_utc_z(self.delivered_at),
        }
