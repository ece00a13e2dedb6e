# Overview: Append-only audit log writer and reader.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLogEntry
from enbic.time_utils import utcnow
"""
Audit Log Invariants (authoritative)

- Append-only record of state-changing actions; no updates or deletes.
- Entries are written inside the same DB transaction as the change they record,
  under a SAVEPOINT: a failed audit write is logged and dropped, it never
  fails or rolls back the primary operation.
"""


logger = logging.getLogger(__name__)


def append_audit_entry(
    *,
    action: str,
    arn: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
    operator: str | None = None,
) -> AuditLogEntry | None:
    """Append one audit entry. Best-effort: returns None if the write failed."""
    entry = AuditLogEntry(
        arn=arn,
        action=action,
        old_value=old_value,
        new_value=new_value,
        operator=operator or "System",
        timestamp=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        logger.exception("Failed to write audit entry %s for %s", action, arn)
        return None
    return entry


def list_audit_entries(*, arn: str | None = None, action: str | None = None, limit: int = 1000) -> list[AuditLogEntry]:
    q = db.session.query(AuditLogEntry)
    if arn is not None:
        q = q.filter(AuditLogEntry.arn == arn)
    if action is not None:
        q = q.filter(AuditLogEntry.action == action)
    return q.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc()).limit(limit).all()
