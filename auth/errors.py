"""
auth/errors.py -- Typed failures raised by the auth core.

Every error carries a stable machine-readable code and a human message, the
same {"code", "message"} pair the API error envelope uses. The core raises
these and never logs or swallows them; the calling layer decides how to
surface each one.

Only TransientError is safe to retry automatically.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth core failures."""

    code: str = "auth_error"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidIdentifierError(AuthError):
    code = "invalid_identifier"


class InvalidSecretError(AuthError):
    code = "invalid_secret"


class DuplicateIdentifierError(AuthError):
    code = "duplicate_identifier"


class InvalidRoleError(AuthError):
    code = "invalid_role"


class InvalidCredentialsError(AuthError):
    """Login failure. Deliberately identical for unknown user and wrong secret."""

    code = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__("invalid user or password")


class NotFoundError(AuthError):
    code = "not_found"


class PermissionDeniedError(AuthError):
    code = "forbidden"


class TransientError(AuthError):
    """Store or role registry unreachable or timed out."""

    code = "transient"
    retryable = True
