"""
core/errors.py -- Error taxonomy shared by every layer.

Services raise these; api/main.py turns them into HTTP responses of the form
{"error": "<message>"} with the status code carried by the class. Nothing
below the api/ layer knows about HTTP beyond that one integer.

  ValidationError  400  malformed or missing input
  Unauthorized     401  missing, invalid or expired credential
  Forbidden        403  authenticated but not allowed
  NotFound         404  resource absent
  Conflict         409  uniqueness violation

Layer rule: core/ is the kernel -- no imports from api/, auth/, or catalog/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for every error a caller is allowed to see."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request."


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required."


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied."


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found."


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists."
