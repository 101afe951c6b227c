# Overview: Error taxonomy shared by services and routes, plus the JSON error handlers.

"""
Every failure a client can see maps to one of these kinds:

- validation_error (400): malformed or missing input, with field-level detail
- unauthenticated (401): missing, invalid or expired bearer token
- forbidden (403): authenticated but the role is not high enough
- not_found (404): a referenced entity does not exist
- conflict (409): a domain rule was violated (duplicate key, session already
  open, tab already closed, zero-delta adjustment, ...)
- insufficient_stock (409): a conflict raised when stock cannot cover a request
- internal_error (500): anything else, logged with a traceback
"""

from __future__ import annotations

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import db


class PDVError(Exception):
    """Base class for errors that carry a stable kind and HTTP status."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PDVError):
    """400-level input problem with per-field messages."""

    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str | list[dict] = "Invalid request", fields: list[dict] | None = None):
        if isinstance(message, list):
            fields, message = message, "Invalid request"
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["fields"] = self.fields
        return body


class NotFoundError(PDVError):
    kind = "not_found"
    status_code = 404


class ConflictError(PDVError):
    """409-level business rule conflict (e.g., duplicate product code)."""

    kind = "conflict"
    status_code = 409


class InsufficientStockError(ConflictError):
    kind = "insufficient_stock"


class AuthenticationError(PDVError):
    kind = "unauthenticated"
    status_code = 401


class PermissionDeniedError(PDVError):
    kind = "forbidden"
    status_code = 403


def register_error_handlers(app) -> None:
    @app.errorhandler(PDVError)
    def handle_pdv_error(exc: PDVError):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.name.lower().replace(" ", "_"), "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500
