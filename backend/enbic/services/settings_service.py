# Overview: Runtime key-value settings with typed coercion.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvalidArgumentError, NotFoundError
from ..models import Setting
from .access import Actor, ensure_role


LOW_STOCK_THRESHOLD_KEY = "inventory.low_stock_threshold"

# key -> (value type, description). Only registered keys are client-writable.
SETTINGS_CATALOG = {
    LOW_STOCK_THRESHOLD_KEY: (int, "Central blank-card balance below which stock is reported low"),
}


def _coerce(key: str, value) -> str:
    value_type, _ = SETTINGS_CATALOG[key]
    if value_type is int:
        if isinstance(value, bool):
            raise InvalidArgumentError(f"{key} must be an integer")
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"{key} must be an integer")
        if number < 0:
            raise InvalidArgumentError(f"{key} must not be negative")
        return str(number)
    return str(value)


def get_setting(key: str, default: str | None = None) -> str | None:
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None or row.value is None:
        return default
    return row.value


def get_low_stock_threshold() -> int:
    value = get_setting(LOW_STOCK_THRESHOLD_KEY)
    if value is None:
        return int(current_app.config["LOW_STOCK_THRESHOLD"])
    return int(value)


def set_setting(key: str, value, *, actor: Actor) -> Setting:
    ensure_role(actor)  # admin only
    if key not in SETTINGS_CATALOG:
        raise NotFoundError(f"Unknown setting '{key}'")

    stored = _coerce(key, value)
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None:
        row = Setting(key=key)
        db.session.add(row)
    row.value = stored
    row.updated_by = actor.name
    db.session.flush()
    return row


def list_settings() -> list[dict]:
    rows = {s.key: s for s in db.session.query(Setting).filter(Setting.key.in_(SETTINGS_CATALOG)).all()}
    out = []
    for key, (_, description) in sorted(SETTINGS_CATALOG.items()):
        row = rows.get(key)
        out.append({
            "key": key,
            "value": row.value if row else None,
            "description": description,
            "updated_by": row.updated_by if row else None,
        })
    return out
