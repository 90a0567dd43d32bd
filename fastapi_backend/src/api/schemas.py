from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class StrictModel(BaseModel):
    """Request body base: unknown fields are rejected, values are coerced."""

    model_config = ConfigDict(extra="forbid")


class HealthStatus(BaseModel):
    status: str = Field("ok", description="Service status")
    timestamp: str = Field(..., description="Current server time, ISO-8601 UTC")


class SignUpRequest(StrictModel):
    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=128, description="Password (8-128 chars)")
    image: Optional[str] = Field(None, description="Avatar URL")


class SignInRequest(StrictModel):
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class User(BaseModel):
    id: UUID
    email: EmailStr
    name: str
    email_verified: bool
    image: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Session(BaseModel):
    id: UUID
    user_id: UUID
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuthResponse(BaseModel):
    token: str = Field(..., description="Session token (JWT)")
    user: User


class SessionResponse(BaseModel):
    session: Session
    user: User


class SuccessResponse(BaseModel):
    success: bool = True


class OkResponse(BaseModel):
    ok: bool = True
