# backend/enbic/routes/system.py
"""
System health endpoint.

Reports database connectivity and the reminder scheduler's state for
deployment debugging.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Arn, User
from enbic.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        arn_count = db.session.query(Arn).count()
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"arns": arn_count, "users": user_count},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
@system_bp.get("/api/health")
def health():
    database = check_database_health()
    scheduler = current_app.extensions.get("enbic_scheduler")
    body = {
        "status": "ok" if database["status"] == "healthy" else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
        "scheduler": scheduler.health() if scheduler else {"running": False},
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
