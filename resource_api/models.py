"""
Response and request models for the resource service.

Profile payloads mirror the users table minus the password hash, which never
leaves the auth/ layer.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User


class ProfileResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        return cls(id=user.id, name=user.name, email=user.email, created_at=user.created_at or "")


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)


class ProfileUpdatedResponse(BaseModel):
    message: str
    user: ProfileResponse


class UserListResponse(BaseModel):
    count: int
    users: list[ProfileResponse]


class PublicInfoResponse(BaseModel):
    message: str
    service: str
    timestamp: str
