from __future__ import annotations

from ..extensions import db
from enbic.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only blank-card ledger line.

    Partition: user_id IS NULL is the central/admin pool; a non-null user_id is
    that officer's personal store. Balance of a partition = SUM(qty) of its
    movements. Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # received, issued, adjustment, damaged, lost, received_from_issue
    type = db.Column(db.String(32), nullable=False, index=True)

    # Signed: positive increases the partition, negative decreases it
    qty = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(255), nullable=True)
    related_request_id = db.Column(db.Integer, db.ForeignKey("blank_card_requests.id"), nullable=True, index=True)
    operator = db.Column(db.String(120), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "qty": self.qty,
            "reference": self.reference,
            "related_request_id": self.related_request_id,
            "operator": self.operator,
            "user_id": self.user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class BlankCardRequest(db.Model):
    """
    An officer's request for blank-card stock from the central pool.

    LIFECYCLE:
        pending -> approved | partially_approved | rejected

    approved_qty <= quantity. Once decided, status and approved_qty never change.
    """
    __tablename__ = "blank_card_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    needed_by = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    approved_qty = db.Column(db.Integer, nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decision_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    requester = db.relationship("User", foreign_keys=[requester_id])
    approver = db.relationship("User", foreign_keys=[approver_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "requester_name": self.requester.display_name if self.requester else None,
            "quantity": self.quantity,
            "reason": self.reason,
            "needed_by": self.needed_by.isoformat() if self.needed_by else None,
            "status": self.status,
            "approved_qty": self.approved_qty,
            "approver_id": self.approver_id,
            "decision_note": self.decision_note,
            "created_at": to_utc_z(self.created_at),
            "decided_at": to_utc_z(self.decided_at),
        }


class IssueNote(db.Model):
    """
    Physical handover of approved blank cards.

    LIFECYCLE:
        pending_signatures -> completed   (when issuer AND receiver have signed)

    Completion posts exactly one received_from_issue movement into the
    requester's partition.
    """
    __tablename__ = "issue_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    # One handover note per request
    request_id = db.Column(db.Integer, db.ForeignKey("blank_card_requests.id"), nullable=False, unique=True, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    issuer_name = db.Column(db.String(255), nullable=True)
    issuer_signed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receiver_name = db.Column(db.String(255), nullable=True)
    receiver_signed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    issue_note_path = db.Column(db.String(512), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="pending_signatures", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    request = db.relationship("BlankCardRequest", backref=db.backref("issue_notes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "quantity": self.quantity,
            "issuer_name": self.issuer_name,
            "issuer_signed_at": to_utc_z(self.issuer_signed_at),
            "receiver_name": self.receiver_name,
            "receiver_signed_at": to_utc_z(self.receiver_signed_at),
            "issue_note_path": self.issue_note_path,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
