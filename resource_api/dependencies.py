"""
resource_api/dependencies.py -- FastAPI Depends() helper for delegated authentication.

The resource service holds no signing secret and never checks credentials
itself. For every protected request it hands the Bearer token to the
TokenVerificationClient on app.state (HTTP in production, in-process in
tests) and trusts only the returned user id.

Outcomes:
  no Bearer token            -> 401 "Access token required"
  verifier says valid=false  -> 401 "Invalid token"
  verifier call failed       -> 401 "Invalid or expired token" (never fail open)

require_user_id() is a sync dependency on purpose: FastAPI runs it in the
thread pool, so the blocking verification call does not stall the event loop.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.client import TokenVerificationClient
from auth.errors import AuthenticationError, UpstreamError

logger = logging.getLogger("authgate.resource.auth")


def require_user_id(request: Request) -> int:
    """Require a verified access token. Returns the user id it was issued to.

    Use as a FastAPI dependency:
        @app.get("/protected")
        def route(user_id: int = Depends(require_user_id)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
    if not token:
        raise AuthenticationError("Access token required")

    verifier: TokenVerificationClient = request.app.state.token_verifier
    try:
        result = verifier.verify(token)
    except UpstreamError as exc:
        logger.warning("Token verification error: %s", exc.message)
        raise AuthenticationError("Invalid or expired token") from exc

    if not result.valid:
        raise AuthenticationError("Invalid token")
    return result.user_id
