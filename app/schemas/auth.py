from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime
from uuid import UUID


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Identity(BaseModel):
    """Authentication result threaded into handlers in place of a mutable request attribute."""

    id: UUID
    email: str
    name: str
    image: Optional[str] = None


class SendOtpRequest(CamelModel):
    phone_number: str = Field(..., min_length=1, max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ResendOtpRequest(SendOtpRequest):
    pass


class VerifyOtpRequest(CamelModel):
    phone_number: str = Field(..., min_length=1, max_length=32)
    otp: str = Field(..., min_length=1, max_length=12)


class SendOtpResponse(CamelModel):
    success: bool = True
    message: str
    expires_in: int
    email: str
    can_resend_after: int
    # Only populated outside production.
    otp: Optional[str] = None


class AuthUser(CamelModel):
    id: UUID
    phone_number: Optional[str] = None
    email: str
    name: str
    image: Optional[str] = None


class VerifyOtpResponse(CamelModel):
    success: bool = True
    token: str
    user: AuthUser


class TokenResponse(CamelModel):
    success: bool = True
    token: str


class UserProfile(CamelModel):
    id: UUID
    email: str
    name: str
    image: Optional[str] = None
    phone_number: Optional[str] = None
    auth_method: str
    email_verified: bool
    phone_verified: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserProfileResponse(CamelModel):
    success: bool = True
    user: UserProfile


class AuthStatusResponse(CamelModel):
    authenticated: bool
    user: Optional[Identity] = None


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class LoginHistoryEntry(CamelModel):
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime


class GoogleProfile(BaseModel):
    """The subset of Google's userinfo payload the login flow consumes."""

    id: Optional[str] = None
    emails: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    picture: Optional[str] = None
