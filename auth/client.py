"""
auth/client.py -- "Verify token" capability for resource services.

A resource service depends on one method, verify(token) -> VerificationResult.
Two implementations:

  HttpTokenVerifier   -- POSTs the bearer token to the auth service's
                         /verify-token endpoint. Production path: the resource
                         service never holds the signing secret.
  LocalTokenVerifier  -- wraps an in-process TokenVerifier. Used by tests and
                         single-process deployments.

Failure policy: a timeout, connection error, unexpected status, or
unparseable body raises UpstreamError. Callers turn that into 401; a broken
verifier never fails open.
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from auth.errors import UpstreamError
from auth.models import VerificationResult
from auth.tokens import TokenVerifier

logger = logging.getLogger("authgate.client")


class TokenVerificationClient(Protocol):
    def verify(self, token: str) -> VerificationResult: ...


class LocalTokenVerifier:
    """In-process verification. Never raises."""

    def __init__(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier

    def verify(self, token: str) -> VerificationResult:
        return self._verifier.verify(token)


class HttpTokenVerifier:
    """Remote verification over HTTP with a strict timeout.

    One requests.Session is kept per instance for connection
    pooling. max_redirects=0: the verify endpoint never redirects, and
    following one would send the bearer token somewhere unexpected.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session | None = None) -> None:
        self.url = base_url.rstrip("/") + "/verify-token"
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.max_redirects = 0

    def verify(self, token: str) -> VerificationResult:
        try:
            resp = self._session.post(
                self.url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Token verification call failed: %s", e)
            raise UpstreamError("Token verification unavailable") from e

        if resp.status_code not in (200, 401):
            logger.warning("Token verification returned unexpected status %d", resp.status_code)
            raise UpstreamError("Token verification unavailable")

        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamError("Token verification returned an unreadable response") from e

        if not isinstance(body, dict) or "valid" not in body:
            raise UpstreamError("Token verification returned an unreadable response")

        if body["valid"] is True and resp.status_code == 200:
            user_id = body.get("userId")
            if not isinstance(user_id, int):
                raise UpstreamError("Token verification returned an unreadable response")
            return VerificationResult.accepted(user_id)
        return VerificationResult.rejected(body.get("reason") or "invalid")

    def close(self) -> None:
        self._session.close()
