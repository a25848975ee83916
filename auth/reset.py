"""
auth/reset.py -- Single-use password reset tokens.

Flow:
  request_reset(email) -> uniform message. For a known email a 256-bit
      URL-safe token is generated, its SHA-256 digest persisted with a short
      expiry (older outstanding tokens for the email are superseded), and
      the raw token handed to a ResetNotifier for delivery.

  redeem(token, new_password) -> None or ResetTokenError / ValidationError.
      Policy is checked before storage is touched; the new hash is computed
      before the transaction opens so bcrypt's cost never extends the lock.
      Consumption and password update commit together or not at all.

Information-leak policy: request_reset answers identically for unknown
emails. This is a deliberate hardening choice.

Layer rule: no imports from api/ or resource_api/.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING, Protocol

from auth.errors import InternalError, ResetTokenError, ValidationError
from auth.models import ResetToken
from auth.passwords import PasswordHasher
from auth.service import MIN_PASSWORD_LENGTH, PASSWORD_LENGTH_MESSAGE, normalize_email
from auth.store import REDEEMED, TOKEN_EXPIRED, TOKEN_NOT_FOUND, UserStore, UserVanishedError
from auth.tokens import Clock, utcnow

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authgate.reset")

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset token has been sent."
RESET_DONE_MESSAGE = "Password has been reset successfully."


def hash_reset_token(raw_token: str) -> str:
    """Return the SHA-256 hex digest stored in place of the raw token.

    A fast hash is enough here: the input is 256 bits of randomness, so the
    slowness bcrypt adds for low-entropy passwords buys nothing.
    """
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class ResetNotifier(Protocol):
    """Delivery collaborator (email, SMS, ...). Receives the raw token once."""

    def send_reset_token(self, email: str, raw_token: str) -> None: ...


class LogResetNotifier:
    """Default notifier: writes the token to the log in DEBUG mode only.

    Without a real delivery channel configured, production logs record the
    request but never the token itself.
    """

    def __init__(self, debug: bool = False) -> None:
        self.debug = debug

    def send_reset_token(self, email: str, raw_token: str) -> None:
        if self.debug:
            logger.info("Password reset token for %s: %s", email, raw_token)
        else:
            logger.warning("Password reset requested for %s but no delivery channel is configured", email)


class ResetTokenManager:
    """Issues and redeems reset tokens against a UserStore."""

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        settings: Settings,
        notifier: ResetNotifier | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._ttl = timedelta(seconds=settings.reset_token_expire_seconds)
        self._notifier = notifier or LogResetNotifier(debug=settings.debug)
        self._clock = clock

    def request_reset(self, email: str | None) -> str:
        """Start a reset for email. The return value never depends on whether the account exists."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")

        now = self._clock()
        # Runs for every email, registered or not.
        self._store.purge_expired_reset_tokens(now.timestamp())

        user = self._store.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return RESET_REQUESTED_MESSAGE

        raw_token = secrets.token_urlsafe(32)
        self._store.create_reset_token(
            ResetToken(
                token_hash=hash_reset_token(raw_token),
                email=email,
                expires_at=(now + self._ttl).timestamp(),
            )
        )
        self._notifier.send_reset_token(email, raw_token)
        logger.info("Password reset token issued for user_id=%s", user.id)
        return RESET_REQUESTED_MESSAGE

    def redeem(self, token: str | None, new_password: str | None) -> str:
        """Consume token exactly once and set the owner's new password."""
        if not token or not new_password:
            raise ValidationError("Token and new password are required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(PASSWORD_LENGTH_MESSAGE)

        password_hash = self._hasher.hash(new_password)
        try:
            outcome = self._store.redeem_reset_token(
                hash_reset_token(token),
                password_hash,
                self._clock().timestamp(),
            )
        except UserVanishedError as exc:
            logger.error("Reset token references a missing user; redemption rolled back")
            raise InternalError() from exc

        if outcome == REDEEMED:
            logger.info("Password reset token redeemed")
            return RESET_DONE_MESSAGE
        if outcome == TOKEN_NOT_FOUND:
            raise ResetTokenError(ResetTokenError.INVALID)
        if outcome == TOKEN_EXPIRED:
            raise ResetTokenError(ResetTokenError.EXPIRED)
        raise ResetTokenError(ResetTokenError.ALREADY_USED)
