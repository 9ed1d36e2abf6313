"""Application error taxonomy.

Services raise these; the API layer turns them into the response envelope
with the matching HTTP status.
"""
from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, errors: dict | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have permission to access this resource"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required"


class Conflict(AppError):
    status_code = 400
    default_message = "Request conflicts with the current state"


class Internal(AppError):
    status_code = 500
