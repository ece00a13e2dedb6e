from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import request

from enbic.errors import InvalidArgumentError
from enbic.time_utils import parse_iso_datetime


def get_json_payload() -> dict:
    """Request body as a dict. A missing body is {}; anything else that is not an object is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return data


def first_present(data: dict, *keys: str) -> Any:
    """Value of the first key present (camelCase and snake_case spellings)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def require_str(data: dict, *keys: str) -> str:
    value = first_present(data, *keys)
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{keys[0]} is required")
    return value.strip()


def optional_str(data: dict, *keys: str) -> str | None:
    value = first_present(data, *keys)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{keys[0]} must be a string")
    return value.strip() or None


def coerce_int(value: Any, field: str, *, required: bool = True) -> int | None:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals
    and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidArgumentError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise InvalidArgumentError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if 'e' in stripped.lower() or '.' in stripped:
            raise InvalidArgumentError(f"{field} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise InvalidArgumentError(f"{field} must be an integer")
    raise InvalidArgumentError(f"{field} must be an integer")


def require_int(data: dict, *keys: str) -> int:
    return coerce_int(first_present(data, *keys), keys[0])


def optional_int(data: dict, *keys: str) -> int | None:
    return coerce_int(first_present(data, *keys), keys[0], required=False)


def optional_bool(data: dict, *keys: str, default: bool = False) -> bool:
    value = first_present(data, *keys)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    raise InvalidArgumentError(f"{keys[0]} must be a boolean")


def optional_datetime(value: str | None, field: str, *, end_of_day: bool = False) -> datetime | None:
    try:
        return parse_iso_datetime(value, end_of_day=end_of_day)
    except ValueError:
        raise InvalidArgumentError(f"{field} must be an ISO-8601 date or timestamp")


def optional_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{field} must be a date (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise InvalidArgumentError(f"{field} must be a date (YYYY-MM-DD)")


def query_int(name: str, default: int | None = None) -> int | None:
    return coerce_int(request.args.get(name), name, required=False) if request.args.get(name) else default


def query_bool(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes", "on")
