# backend/enbic/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/enbic.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///enbic.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Signed notes, confirmation scans and rendered delivery notes.
    # None -> <instance_path>/uploads (resolved in create_app)
    UPLOAD_FOLDER = os.environ.get("ENBIC_UPLOAD_FOLDER")

    # Central pool below this many blank cards is reported as low stock.
    # The "inventory.low_stock_threshold" setting overrides it at runtime.
    LOW_STOCK_THRESHOLD = int(os.environ.get("ENBIC_LOW_STOCK_THRESHOLD", "100"))

    # Pending-delivery ARNs per state that raise a state_delivery_threshold reminder
    STATE_DELIVERY_THRESHOLD = int(os.environ.get("ENBIC_STATE_DELIVERY_THRESHOLD", "3"))

    REMINDER_SCHEDULER_ENABLED = _env_bool("ENBIC_REMINDER_SCHEDULER", True)
    REMINDER_INTERVAL_SECONDS = int(os.environ.get("ENBIC_REMINDER_INTERVAL", str(24 * 60 * 60)))

    # False runs post-commit hooks inline (tests, single-connection SQLite)
    POST_COMMIT_HOOKS_ASYNC = _env_bool("ENBIC_HOOKS_ASYNC", True)

    LOG_LEVEL = os.environ.get("ENBIC_LOG_LEVEL", "INFO")
