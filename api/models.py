"""
API request and response models for the AuthGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request fields are Optional on purpose: presence and length rules live in
AuthService so that a missing field yields the service's 400 message naming
it, not a generic schema error. JSON keys are camelCase to match the wire
contract (accessToken, newPassword, ...).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    # name and email are trimmed by AuthService; the password is taken verbatim.
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255, json_schema_extra={"format": "password"})


class LoginRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = Field(default=None, max_length=255)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """Public fields of a user. The password hash has no field here by construction."""

    id: int
    name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(**user.public_fields())


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(serialization_alias="accessToken")
    refresh_token: str = Field(serialization_alias="refreshToken")


class AccessTokenResponse(BaseModel):
    access_token: str = Field(serialization_alias="accessToken")


class VerifyTokenResponse(BaseModel):
    """Exactly two shapes: {valid: true, userId} or {valid: false, reason}."""

    valid: bool
    user_id: Optional[int] = Field(default=None, serialization_alias="userId")
    reason: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx response."""

    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
