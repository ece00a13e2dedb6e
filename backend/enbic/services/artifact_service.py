# Overview: Durable storage for signed notes, confirmation scans and rendered documents.

"""
Artifacts are files under UPLOAD_FOLDER referenced by a relative path stored
on the owning row (batch/issue note/ARN). Clients send them as a
self-describing payload, either a data URL ("data:<mime>;base64,<data>")
or {"mime": "...", "data": "<base64>"}.

Uploaded files are written inside the unit of work that records their path.
A file written by a transaction that rolls back (failed commit, retry,
error handler) is removed again, so disk and database agree.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re

from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from ..extensions import db
from ..errors import InvalidArgumentError, NotFoundError
from enbic.time_utils import utcnow


logger = logging.getLogger(__name__)


DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^;,]+)*;base64,(?P<data>.*)$", re.S)

MIME_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "text/html": ".html",
    "text/plain": ".txt",
}

MAX_ARTIFACT_BYTES = 10 * 1024 * 1024

# session.info key: absolute paths written by the open transaction
STAGED_KEY = "enbic.staged_artifacts"


def upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def decode_file_data(file_data) -> tuple[str, bytes]:
    """Return (mime, raw bytes) for a data URL or {"mime", "data"} payload."""
    if isinstance(file_data, dict):
        mime = (file_data.get("mime") or file_data.get("type") or "").strip().lower()
        encoded = file_data.get("data") or file_data.get("base64") or ""
    elif isinstance(file_data, str):
        match = DATA_URL_RE.match(file_data.strip())
        if not match:
            raise InvalidArgumentError("fileData must be a base64 data URL")
        mime = (match.group("mime") or "").strip().lower()
        encoded = match.group("data")
    else:
        raise InvalidArgumentError("fileData must be a data URL or {mime, data} object")

    if mime not in MIME_EXTENSIONS:
        raise InvalidArgumentError(f"Unsupported file type '{mime or 'unknown'}'")

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgumentError("fileData is not valid base64")
    if not raw:
        raise InvalidArgumentError("fileData is empty")
    if len(raw) > MAX_ARTIFACT_BYTES:
        raise InvalidArgumentError(f"fileData exceeds {MAX_ARTIFACT_BYTES} bytes")
    return mime, raw


def _write(folder: str, filename: str, payload: bytes) -> str:
    target_dir = os.path.join(upload_root(), folder)
    os.makedirs(target_dir, exist_ok=True)
    with open(os.path.join(target_dir, filename), "wb") as fh:
        fh.write(payload)
    return f"{folder}/{filename}"


def save_file_data(file_data, *, folder: str, stem: str) -> str:
    """Decode and persist an uploaded payload; returns its relative path."""
    mime, raw = decode_file_data(file_data)
    stamp = utcnow().strftime("%Y%m%d%H%M%S%f")
    filename = f"{secure_filename(stem) or 'artifact'}_{stamp}{MIME_EXTENSIONS[mime]}"
    relative = _write(folder, filename, raw)
    db.session.info.setdefault(STAGED_KEY, []).append(os.path.join(upload_root(), relative))
    return relative


@event.listens_for(Session, "after_commit")
def _keep_staged(session):
    if session.in_nested_transaction():
        return
    session.info.pop(STAGED_KEY, None)


@event.listens_for(Session, "after_soft_rollback")
def _discard_staged(session, previous_transaction):
    # Outermost rollback only; a failed flush is followed by rollback()
    if previous_transaction.parent is not None:
        return
    for path in session.info.pop(STAGED_KEY, []):
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        logger.info("Removed artifact %s written by a rolled back transaction", path)


def save_rendered(content: str, *, folder: str, filename: str) -> str:
    """Persist a rendered document (overwrites the previous rendering)."""
    return _write(folder, secure_filename(filename), content.encode("utf-8"))


def resolve_artifact(relative_path: str | None) -> str:
    """Absolute path of a stored artifact; NotFound if missing or outside the upload root."""
    if not relative_path:
        raise NotFoundError("No file recorded")
    root = os.path.realpath(upload_root())
    full = os.path.realpath(os.path.join(root, relative_path))
    if os.path.commonpath([root, full]) != root or not os.path.isfile(full):
        raise NotFoundError("File not found")
    return full
