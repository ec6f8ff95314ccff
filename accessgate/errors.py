"""Error taxonomy shared by the domain, store and HTTP layers.

Every :class:`AccessError` carries the HTTP status it maps to and a message
that is safe to show to API consumers as-is.
"""

from __future__ import annotations


class AccessError(Exception):
    """Base class for errors surfaced to API consumers."""

    status_code: int = 500
    default_message: str = "internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccessError):
    status_code = 400
    default_message = "invalid request"


class UnauthorizedError(AccessError):
    status_code = 401
    default_message = "unauthorized"


class ForbiddenError(AccessError):
    status_code = 403
    default_message = "forbidden"


class NotFoundError(AccessError):
    status_code = 404
    default_message = "not found"


class DuplicateEmailError(AccessError):
    status_code = 409
    default_message = "Email already registered"


class InternalError(AccessError):
    status_code = 500
    default_message = "internal error"


class HashingError(InternalError):
    """Raised when the password hash could not be computed."""

    default_message = "Failed to hash password"


class InvalidTokenError(Exception):
    """Raised when a bearer token is malformed, tampered with, or expired."""


class RecordStoreError(Exception):
    """Raised by the remote record store on connection, query or timeout failures."""
