# backend/enbic/routes/settings.py
"""Runtime settings (admin)."""

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_roles
from ..services import settings_service
from ..services.concurrency import commit_with_retry
from ..validation import first_present, get_json_payload


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_roles()
def list_settings_route():
    return jsonify(settings_service.list_settings()), 200


@settings_bp.put("/<key>")
@require_auth
@require_roles()
def set_setting_route(key: str):
    """Request body: {"value": ...}"""
    row = settings_service.set_setting(key, first_present(get_json_payload(), "value"), actor=g.actor)
    commit_with_retry()
    return jsonify(row.to_dict()), 200
