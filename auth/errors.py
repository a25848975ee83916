"""
auth/errors.py -- Service-level error taxonomy.

Every error a client can observe is a ServiceError subclass carrying the HTTP
status it maps to and a user-safe message. The api/ and resource_api/
exception handlers render them as {"error": message}; nothing else about the
exception reaches the response body.

Layer rule: no imports from api/, resource_api/, or core/.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class. message is shown to clients verbatim -- keep it generic."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Missing or malformed input, rejected before storage is touched."""

    status_code = 400


class ResetTokenError(ValidationError):
    """A reset token could not be redeemed.

    reason is one of INVALID, EXPIRED, ALREADY_USED so callers and tests can
    branch without parsing the message.
    """

    INVALID = "invalid token"
    EXPIRED = "expired"
    ALREADY_USED = "already used"

    _MESSAGES = {
        INVALID: "Invalid reset token",
        EXPIRED: "Reset token has expired",
        ALREADY_USED: "Reset token has already been used",
    }

    def __init__(self, reason: str) -> None:
        super().__init__(self._MESSAGES[reason])
        self.reason = reason


class AuthenticationError(ServiceError):
    """Bad credentials or a bad token. Messages stay generic [enumeration]."""

    status_code = 401


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Unique constraint hit (duplicate email)."""

    status_code = 409


class UpstreamError(ServiceError):
    """The remote verifier timed out, was unreachable, or answered nonsense.

    Callers must treat this as unauthenticated, never as success.
    """

    status_code = 502


class InternalError(ServiceError):
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
