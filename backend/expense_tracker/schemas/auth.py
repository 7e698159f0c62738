"""Request/response contracts for /api/auth."""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not _EMAIL_RE.match(v):
        raise ValueError("Please provide a valid email")
    return v


def _normalize_name(v: str) -> str:
    v = v.strip()
    if len(v) < 2:
        raise ValueError("Name must be at least 2 characters")
    return v


Email = Annotated[str, Field(max_length=255), AfterValidator(_normalize_email)]
Name = Annotated[str, Field(max_length=255), AfterValidator(_normalize_name)]


class RegisterRequest(BaseModel):
    email: Email
    password: str = Field(min_length=6, max_length=128)
    name: Name


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(min_length=1)


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    preferences: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_name(v) if v is not None else None


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: str = Field(alias="newPassword", min_length=6, max_length=128)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    avatar_url: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthData(BaseModel):
    user: UserResponse
    token: str


class UserData(BaseModel):
    user: UserResponse


class TokenData(BaseModel):
    token: str
