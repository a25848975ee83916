"""
api/routes/auth.py -- Auth service REST endpoints.

Routes:
  POST /signup           -- create account; 201 {id, name, email}
  POST /login            -- credentials -> {accessToken, refreshToken}
  POST /refresh-token    -- refresh token -> {accessToken}
  POST /verify-token     -- Bearer access token -> {valid, userId | reason}
  POST /forgot-password  -- issue reset token; uniform response
  POST /reset-password   -- redeem reset token and set new password

Errors raised by the auth/ layer (ServiceError subclasses) propagate to the
handler in api/main.py, which renders {"error": message} with the mapped
status. Routes only translate HTTP shapes.

Security:
  [H2] /login and /forgot-password are rate-limited per client IP.
  [C1] AuthService.login() provides timing equalization -- never inline it.
  [M5] Cache-Control: no-store on every response that carries a token.
  /verify-token is the trust boundary for every resource service. It reads
  no storage and never raises: any failure is {valid: false}.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit, reset_rate_limit
from api.models import (
    AccessTokenResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    ResetPasswordRequest,
    SignupRequest,
    TokenPairResponse,
    UserSummary,
    VerifyTokenResponse,
)
from auth.reset import ResetTokenManager
from auth.service import AuthService

logger = logging.getLogger("authgate.api.auth")

# Auth policy: every route here is public -- these endpoints are how a caller
# becomes authenticated. /verify-token authenticates the token it is handed,
# not the caller.
router = APIRouter()


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


# ---------------------------------------------------------------------------
# Account lifecycle
# ---------------------------------------------------------------------------


@router.post("/signup", response_model=UserSummary, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a user. Only public fields are returned -- never the hash."""
    service: AuthService = request.app.state.auth_service
    user = service.signup(body.name, body.email, body.password)
    return JSONResponse(status_code=201, content=UserSummary.from_user(user).model_dump())


@router.post("/login", response_model=TokenPairResponse)
@limiter.limit(login_rate_limit)  # [H2] innermost, so the router registers the limited function
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for an access/refresh token pair.

    Wrong email and wrong password produce the same 401 so the response
    never reveals which one was wrong.
    """
    service: AuthService = request.app.state.auth_service
    access, refresh = service.login(body.email, body.password)
    content = TokenPairResponse(access_token=access, refresh_token=refresh).model_dump(by_alias=True)
    return _no_store(JSONResponse(status_code=200, content=content))


@router.post("/refresh-token", response_model=AccessTokenResponse)
def refresh_token(request: Request, body: RefreshRequest) -> JSONResponse:
    """Mint a new access token from a refresh token."""
    service: AuthService = request.app.state.auth_service
    access = service.refresh(body.refresh_token)
    content = AccessTokenResponse(access_token=access).model_dump(by_alias=True)
    return _no_store(JSONResponse(status_code=200, content=content))


# ---------------------------------------------------------------------------
# Cross-service verification
# ---------------------------------------------------------------------------


@router.post("/verify-token", response_model=VerifyTokenResponse)
async def verify_token(request: Request) -> JSONResponse:
    """Validate the Bearer access token in the Authorization header.

    200 {valid: true, userId} on success; 401 {valid: false, reason} on any
    failure. Resource services branch on `valid`.
    """
    service: AuthService = request.app.state.auth_service
    token = _bearer_token(request)
    if token is None:
        result = VerifyTokenResponse(valid=False, reason="missing token")
    else:
        verdict = service.verifier.verify(token)
        result = VerifyTokenResponse(valid=verdict.valid, user_id=verdict.user_id, reason=verdict.reason)
    if not result.valid:
        logger.info("Token verification rejected: %s", result.reason)
    return JSONResponse(
        status_code=200 if result.valid else 401,
        content=result.model_dump(by_alias=True, exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(reset_rate_limit)  # [H2]
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Start a reset. Same 200 body whether or not the email is registered."""
    manager: ResetTokenManager = request.app.state.reset_manager
    return MessageResponse(message=manager.request_reset(body.email))


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Redeem a reset token. 400 on invalid, expired or already-used tokens."""
    manager: ResetTokenManager = request.app.state.reset_manager
    return MessageResponse(message=manager.redeem(body.token, body.new_password))
