"""
resource_api/main.py -- Reference resource service delegating auth to AuthGate.

Run with:      uvicorn asgi:resource_app --port 5000
               python main.py resource

Routes:
  GET /health       -- liveness (public)
  GET /public-info  -- public payload, no token required
  GET /profile      -- caller's profile (requires verified token)
  PUT /profile      -- update caller's display name (requires verified token)
  GET /users        -- newest 50 users (requires verified token)

Every protected route depends on require_user_id(), which asks the auth
service's /verify-token endpoint. This service reads profile data from the
shared users table but never uses it to decide who the caller is.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.client import HttpTokenVerifier
from auth.errors import InternalError, NotFoundError, ServiceError, ValidationError
from auth.store import UserStore
from core.config import get_settings
from resource_api.dependencies import require_user_id
from resource_api.models import (
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdatedResponse,
    PublicInfoResponse,
    UserListResponse,
)

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.resource")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the shared user store and the remote verifier; close both on shutdown."""
    settings = get_settings()
    app.state.user_store = UserStore(settings.database_url)
    app.state.token_verifier = HttpTokenVerifier(settings.auth_service_url, timeout=settings.verify_timeout_seconds)
    logger.info("Resource service delegating verification to %s", settings.auth_service_url)

    yield

    app.state.token_verifier.close()
    app.state.user_store.close()


app = FastAPI(
    title="AuthGate Resource Service",
    description="Example protected API that trusts the auth service's token verification.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "PUT"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code, ms)
    return response


# ---------------------------------------------------------------------------
# Exception handlers -- same {"error": message} envelope as the auth service
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return _error(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request body")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return _error(500, InternalError().message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, InternalError().message)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> dict:
    return {"status": "ok", "service": "resource", "version": VERSION}


@app.get("/public-info", response_model=PublicInfoResponse)
async def public_info() -> PublicInfoResponse:
    return PublicInfoResponse(
        message="This is a public endpoint",
        service="resource",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ---------------------------------------------------------------------------
# Protected endpoints
# ---------------------------------------------------------------------------


@app.get("/profile", response_model=ProfileResponse)
def get_profile(request: Request, user_id: int = Depends(require_user_id)) -> ProfileResponse:
    """Return the verified caller's profile. 404 if the account no longer exists."""
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return ProfileResponse.from_user(user)


@app.put("/profile", response_model=ProfileUpdatedResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    user_id: int = Depends(require_user_id),
) -> ProfileUpdatedResponse:
    """Change the caller's display name."""
    if not body.name:
        raise ValidationError("Name is required")
    user = request.app.state.user_store.update_name(user_id, body.name)
    if user is None:
        raise NotFoundError("User not found")
    return ProfileUpdatedResponse(message="Profile updated successfully", user=ProfileResponse.from_user(user))


@app.get("/users", response_model=UserListResponse)
def list_users(request: Request, user_id: int = Depends(require_user_id)) -> UserListResponse:
    """Newest 50 users. Any verified caller may list them (there are no roles)."""
    users = request.app.state.user_store.list_users(limit=50)
    return UserListResponse(count=len(users), users=[ProfileResponse.from_user(u) for u in users])
