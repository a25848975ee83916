"""
auth/tokens.py -- JWT issuance and stateless verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id), kind ("access" or
       "refresh"), iat, exp, and a random jti. The signing secret comes from
       the Settings instance handed to the issuer/verifier -- only the auth
       service holds it. Resource services verify by calling /verify-token.

  Verification order matters: signature first (so nothing about a forged
       token's contents influences the answer), then kind (a refresh token
       must never pass the access check, even unexpired), then expiry. jose's
       own exp check is disabled so the kind check runs before it and the
       clock stays injectable.

  The verifier never raises. Every failure becomes
       VerificationResult(valid=False, reason=...) with a coarse reason that
       does not describe the token's structure.

Layer rule: no imports from api/ or resource_api/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import jwt
from jose.exceptions import JOSEError

from auth.models import VerificationResult

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authgate.tokens")

ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

REASON_MALFORMED = "malformed"
REASON_WRONG_KIND = "wrong token type"
REASON_EXPIRED = "expired"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints signed, time-bounded tokens bound to a user id. Touches no storage."""

    def __init__(self, settings: Settings, clock: Clock = utcnow) -> None:
        self._secret = settings.secret_key
        self._access_ttl = settings.access_token_expire_seconds
        self._refresh_ttl = settings.refresh_token_expire_seconds
        self._clock = clock

    def issue_access_token(self, user_id: int) -> str:
        return self._issue(user_id, ACCESS, self._access_ttl)

    def issue_refresh_token(self, user_id: int) -> str:
        return self._issue(user_id, REFRESH, self._refresh_ttl)

    def _issue(self, user_id: int, kind: str, ttl_seconds: int) -> str:
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "kind": kind,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class TokenVerifier:
    """Checks signature, kind and validity window. Pure: no I/O, no storage.

    Usage:
        result = verifier.verify(bearer_token)
        if result.valid:
            serve(result.user_id)
    """

    def __init__(self, settings: Settings, clock: Clock = utcnow) -> None:
        self._secret = settings.secret_key
        self._clock = clock

    def verify(self, token: str) -> VerificationResult:
        """Validate an access token. Refresh tokens are always rejected here."""
        return self._verify(token, ACCESS)

    def verify_refresh(self, token: str) -> VerificationResult:
        """Validate a refresh token. Only POST /refresh-token calls this."""
        return self._verify(token, REFRESH)

    def _verify(self, token: str, expected_kind: str) -> VerificationResult:
        claims = self._decode(token)
        if claims is None:
            return VerificationResult.rejected(REASON_MALFORMED)

        if claims.get("kind") != expected_kind:
            logger.debug("Rejected %r token where %r was expected", claims.get("kind"), expected_kind)
            return VerificationResult.rejected(REASON_WRONG_KIND)

        exp = claims.get("exp")
        if not isinstance(exp, int) or self._clock().timestamp() >= exp:
            return VerificationResult.rejected(REASON_EXPIRED)

        try:
            user_id = int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            return VerificationResult.rejected(REASON_MALFORMED)
        return VerificationResult.accepted(user_id)

    def _decode(self, token: str) -> dict | None:
        """Return verified claims, or None on any signature/structure failure."""
        if not isinstance(token, str) or not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JOSEError:
            return None
        return claims if isinstance(claims, dict) else None
