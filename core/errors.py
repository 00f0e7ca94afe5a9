"""
core/errors.py -- Typed API errors rendered at a single boundary.

Route handlers, dependencies and services raise these instead of building
error responses themselves. api/main.py registers ONE exception handler for
ApiError that renders the uniform envelope:

    {"success": false, "message": "...", ...extra}

so an error raised anywhere below the boundary terminates the request with
no partial body.

Layer rule: core/ is the kernel. No imports from api/, auth/, or tasks/.
"""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Base class for every error that maps to an HTTP status and message."""

    status_code: int = 400
    default_message: str = "Bad Request"

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, **self.extra}


class BadRequest(ApiError):
    status_code = 400
    default_message = "Bad Request"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized: Please log in to access this resource."


class InvalidCredentials(Unauthorized):
    """Login failure. Same message whether the email or the password was wrong."""

    default_message = "Invalid email or password."


class NotFound(ApiError):
    status_code = 404
    default_message = "Not Found"


class MethodNotAllowed(ApiError):
    status_code = 405
    default_message = "Method Not Allowed"


class ValidationFailed(ApiError):
    """422 carrying the per-field error map produced by the Validator."""

    status_code = 422
    default_message = "Validation failed."

    def __init__(self, errors: dict[str, list[str]], message: str | None = None) -> None:
        super().__init__(message, errors=errors)
        self.errors = errors


class ServerError(ApiError):
    """Generic 500. The detail is logged server-side, never sent to the client."""

    status_code = 500
    default_message = "An unexpected error occurred."
