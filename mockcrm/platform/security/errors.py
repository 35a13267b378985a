from __future__ import annotations

from typing import Any


class CRMError(Exception):
    """Base class for errors rendered as the JSON error envelope."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthenticated(CRMError):
    """No usable credential artifact.

    ``reason`` is for logs only; callers always see the same generic message.
    """

    status_code = 401
    code = "unauthenticated"
    public_message = "Authentication required"

    def __init__(self, reason: str = "missing credentials") -> None:
        super().__init__(self.public_message)
        self.reason = reason


class InvalidCredentials(Unauthenticated):
    code = "invalid_credentials"
    public_message = "Invalid email or password"

    def __init__(self, reason: str = "invalid credentials") -> None:
        super().__init__(reason)


class Forbidden(CRMError):
    status_code = 403
    code = "forbidden"


class NotFound(CRMError):
    status_code = 404
    code = "not_found"


class ValidationError(CRMError):
    status_code = 400
    code = "validation_error"


class ConflictError(CRMError):
    status_code = 409
    code = "conflict"
