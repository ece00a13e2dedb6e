"""
Typed domain errors for the ENBIC tracking core.

Every rejected operation raises one of these. Each carries a machine-readable
``kind`` (stable, API-safe) and the HTTP ``status_code`` the JSON facade maps
it to. Callers catch by type, never by message text.

    DomainError
    +-- NotFoundError            404
    +-- ConflictError            409
    +-- InvalidTransitionError   400
    |   +-- InvalidStateError    400
    +-- InvalidArgumentError     400
    +-- InsufficientStockError   400
    +-- PreconditionFailedError  412
    +-- ForbiddenError           403
    +-- UnauthenticatedError     401
"""

from __future__ import annotations

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import db


class DomainError(Exception):
    """Base class for every structured, user-visible failure."""

    kind = "DomainError"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(DomainError):
    kind = "NotFound"
    status_code = 404


class ConflictError(DomainError):
    kind = "Conflict"
    status_code = 409


class InvalidTransitionError(DomainError):
    kind = "InvalidTransition"
    status_code = 400


class InvalidStateError(InvalidTransitionError):
    """The entity exists but its current status forbids the operation."""

    kind = "InvalidState"


class InvalidArgumentError(DomainError):
    kind = "InvalidArgument"
    status_code = 400


class InsufficientStockError(DomainError):
    kind = "InsufficientStock"
    status_code = 402

    def __init__(self, message: str, *, available: int, requested: int):
        super().__init__(message, available=available, requested=requested)
        self.available = available
        self.requested = requested


class PreconditionFailedError(DomainError):
    kind = "PreconditionFailed"
    status_code = 412


class ForbiddenError(DomainError):
    kind = "Forbidden"
    status_code = 403


class UnauthenticatedError(DomainError):
    kind = "Unauthenticated"
    status_code = 401


def register_error_handlers(app: Flask) -> None:
    """Map domain errors onto JSON responses; roll back the failed unit of work."""

    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.name, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500
