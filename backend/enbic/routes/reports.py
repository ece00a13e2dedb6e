# backend/enbic/routes/reports.py
"""Read-only reports (supervisor allowed)."""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..services import report_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    return jsonify(report_service.dashboard_summary()), 200


@reports_bp.get("/<report_type>")
@require_auth
def report_route(report_type: str):
    """
    Query params: state, arn (activity-log), start, end (ISO-8601).

    Types: pending-capture, submitted, pending-delivery, delivered, collected,
    delivery-history, activity-log.
    """
    rows = report_service.run_report(
        report_type,
        state=request.args.get("state") or None,
        arn=request.args.get("arn") or None,
        start=request.args.get("start") or None,
        end=request.args.get("end") or None,
    )
    return jsonify(rows), 200
