"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
constructors). Stores and services do the work; api/ models own the HTTP shape.

Layer rule: no imports from api/, resource_api/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """Represents a registered identity.

    email is unique and stored normalized (stripped, lower-cased).
    password_hash is a bcrypt string -- never the plaintext, never logged,
    never returned by any HTTP endpoint.
    """

    name: str
    email: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None

    def public_fields(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class ResetToken:
    """A persisted single-use password reset credential.

    token_hash is SHA-256 of the raw token. The raw value exists only in the
    notifier hand-off and the user's inbox; a leaked DB cannot redeem it.
    expires_at is epoch seconds (UTC).
    """

    token_hash: str
    email: str
    expires_at: float
    consumed: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of an access-token check: exactly one of two shapes.

    valid=True carries user_id; valid=False carries reason. There is no
    third state -- callers branch on valid alone.
    """

    valid: bool
    user_id: int | None = None
    reason: str | None = None

    @classmethod
    def accepted(cls, user_id: int) -> VerificationResult:
        return cls(valid=True, user_id=user_id)

    @classmethod
    def rejected(cls, reason: str) -> VerificationResult:
        return cls(valid=False, reason=reason)
