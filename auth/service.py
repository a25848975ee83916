"""
auth/service.py -- Signup, login and refresh orchestration.

AuthService ties the store, hasher, issuer and verifier together. It owns the
input policy (required fields, 6-character password minimum) so that every
check happens before storage is touched, and it maps storage conflicts to
ConflictError.

Security:
  [C1] login() always runs bcrypt, against a dummy hash when the email is
       unknown, so response time does not reveal which emails exist.
  Unknown email and wrong password produce the same AuthenticationError.

Layer rule: no imports from api/ or resource_api/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.errors import AuthenticationError, ConflictError, ValidationError
from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import Clock, TokenIssuer, TokenVerifier, utcnow

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authgate.service")

MIN_PASSWORD_LENGTH = 6
# Collaborators match on "6 characters" -- keep that substring intact.
PASSWORD_LENGTH_MESSAGE = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Credential checks and token minting for the auth service.

    Usage:
        service = AuthService(store, settings)
        user = service.signup("A", "a@x.com", "secret1")
        access, refresh = service.login("a@x.com", "secret1")
    """

    def __init__(
        self,
        store: UserStore,
        settings: Settings,
        hasher: PasswordHasher | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher or PasswordHasher(rounds=settings.bcrypt_rounds)
        self.issuer = TokenIssuer(settings, clock=clock)
        self.verifier = TokenVerifier(settings, clock=clock)

    def signup(self, name: str | None, email: str | None, password: str | None) -> User:
        """Register a new user. Returns the stored User; callers expose public_fields() only."""
        name = (name or "").strip()
        email = normalize_email(email)
        missing = [field for field, value in (("name", name), ("email", email), ("password", password)) if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(PASSWORD_LENGTH_MESSAGE)

        user = User(name=name, email=email, password_hash=self.hasher.hash(password))
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            raise ConflictError("User with this email already exists") from exc

        logger.info("User registered: user_id=%s", user.id)
        return self.store.get_by_id(user.id) or user

    def login(self, email: str | None, password: str | None) -> tuple[str, str]:
        """Return (access_token, refresh_token) for valid credentials."""
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = self.store.get_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify_dummy(password)
            logger.info("Failed login for unknown email")
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Failed login: user_id=%s", user.id)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        logger.info("Login succeeded: user_id=%s", user.id)
        return self.issuer.issue_access_token(user.id), self.issuer.issue_refresh_token(user.id)

    def refresh(self, refresh_token: str | None) -> str:
        """Exchange a valid refresh token for a new access token.

        Unlike /verify-token this consults the store: a refresh token for a
        user that no longer exists must not mint new access.
        """
        if not refresh_token:
            raise ValidationError("Refresh token is required")
        result = self.verifier.verify_refresh(refresh_token)
        if not result.valid:
            logger.info("Refresh rejected: %s", result.reason)
            raise AuthenticationError("Invalid refresh token")
        if self.store.get_by_id(result.user_id) is None:
            raise AuthenticationError("Invalid refresh token")
        return self.issuer.issue_access_token(result.user_id)
