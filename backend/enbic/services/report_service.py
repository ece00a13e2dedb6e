# Overview: Read-only reporting over ARNs, deliveries and the audit log.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from enbic.extensions import db
from enbic.errors import InvalidArgumentError
from enbic.models import Arn, AuditLogEntry, DeliveryHistory
from enbic.services.lifecycle_service import (
    STATUS_AWAITING_CAPTURE,
    STATUS_COLLECTED,
    STATUS_DELIVERED,
    STATUS_PENDING_DELIVERY,
    STATUS_SUBMITTED,
    VALID_STATUSES,
)
from enbic.services.reminder_service import count_open_reminders
from enbic.time_utils import age_days, coerce_datetime, parse_iso_datetime, utcnow, to_utc_z


ACTIVITY_LOG_LIMIT = 1000

# report type -> (status, timestamp column used for ordering/windowing, ascending, include age)
ARN_REPORTS = {
    "pending-capture": (STATUS_AWAITING_CAPTURE, "created_at", True, True),
    "submitted": (STATUS_SUBMITTED, "submitted_at", False, False),
    "pending-delivery": (STATUS_PENDING_DELIVERY, "pending_delivery_at", True, True),
    "delivered": (STATUS_DELIVERED, "delivered_at", False, False),
    "collected": (STATUS_COLLECTED, "collected_at", False, False),
}
REPORT_TYPES = set(ARN_REPORTS) | {"delivery-history", "activity-log"}


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end, end_of_day=True) if end else None
    except ValueError:
        raise InvalidArgumentError("Dates must be ISO-8601 (YYYY-MM-DD or full timestamp)")
    if start_dt and end_dt and start_dt > end_dt:
        raise InvalidArgumentError("start must not be after end")
    return start_dt, end_dt


def arn_report(
    report_type: str,
    *,
    state: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> list[dict]:
    status, ts_field, ascending, with_age = ARN_REPORTS[report_type]
    start_dt, end_dt = _parse_range(start, end)
    ts_col = getattr(Arn, ts_field)

    q = db.session.query(Arn).filter(Arn.status == status)
    if state:
        q = q.filter(Arn.state == state)
    if start_dt:
        q = q.filter(ts_col >= start_dt)
    if end_dt:
        q = q.filter(ts_col <= end_dt)

    if report_type == "pending-delivery":
        q = q.order_by(Arn.state, ts_col.asc(), Arn.id)
    else:
        q = q.order_by(ts_col.asc() if ascending else ts_col.desc(), Arn.id)

    now = utcnow()
    rows = []
    for arn in q.all():
        data = arn.to_dict()
        if with_age:
            data["age_days"] = age_days(getattr(arn, ts_field) or arn.created_at, now)
        rows.append(data)
    return rows


def delivery_history_report(
    *,
    state: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> list[dict]:
    start_dt, end_dt = _parse_range(start, end)
    q = db.session.query(DeliveryHistory)
    if state:
        q = q.filter(DeliveryHistory.state == state)
    if start_dt:
        q = q.filter(DeliveryHistory.delivery_date >= start_dt)
    if end_dt:
        q = q.filter(DeliveryHistory.delivery_date <= end_dt)
    return [h.to_dict() for h in q.order_by(DeliveryHistory.delivery_date.desc(), DeliveryHistory.id.desc()).all()]


def activity_log_report(
    *,
    arn: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> list[dict]:
    start_dt, end_dt = _parse_range(start, end)
    q = db.session.query(AuditLogEntry)
    if arn:
        q = q.filter(AuditLogEntry.arn == arn)
    if start_dt:
        q = q.filter(AuditLogEntry.timestamp >= start_dt)
    if end_dt:
        q = q.filter(AuditLogEntry.timestamp <= end_dt)
    q = q.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc()).limit(ACTIVITY_LOG_LIMIT)
    return [e.to_dict() for e in q.all()]


def run_report(report_type: str, **filters) -> list[dict]:
    """Dispatch a named report. Unknown types are an InvalidArgumentError."""
    if report_type not in REPORT_TYPES:
        raise InvalidArgumentError(
            f"Invalid report type '{report_type}'. Must be one of: {', '.join(sorted(REPORT_TYPES))}"
        )
    if report_type == "delivery-history":
        return delivery_history_report(
            state=filters.get("state"), start=filters.get("start"), end=filters.get("end")
        )
    if report_type == "activity-log":
        return activity_log_report(
            arn=filters.get("arn"), start=filters.get("start"), end=filters.get("end")
        )
    return arn_report(
        report_type, state=filters.get("state"), start=filters.get("start"), end=filters.get("end")
    )


def delivery_stats() -> list[dict]:
    """Pending Delivery count and oldest pending ARN per state."""
    rows = (
        db.session.query(
            Arn.state,
            func.count(Arn.id).label("pending_count"),
            func.min(func.coalesce(Arn.pending_delivery_at, Arn.created_at)).label("oldest_pending"),
        )
        .filter(Arn.status == STATUS_PENDING_DELIVERY)
        .group_by(Arn.state)
        .order_by(Arn.state)
        .all()
    )
    now = utcnow()
    out = []
    for state, pending_count, oldest in rows:
        oldest = coerce_datetime(oldest)
        out.append({
            "state": state,
            "pending_count": int(pending_count),
            "oldest_pending": to_utc_z(oldest),
            "oldest_pending_age_days": age_days(oldest, now),
        })
    return out


def dashboard_summary() -> dict:
    counts = dict(
        db.session.query(Arn.status, func.count(Arn.id)).group_by(Arn.status).all()
    )
    by_status = {status: int(counts.get(status, 0)) for status in sorted(VALID_STATUSES)}
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "open_reminders": count_open_reminders(),
    }
