"""Request and response bodies for the auth routes."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from product_catalog.auth.models import ADMIN_ROLE, ROLE_MAX_LENGTH


class ErrorResponse(BaseModel):
    """Error body used by the auth routes."""

    error: str = Field(..., description="Human-readable reason")


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class SessionInfoResponse(BaseModel):
    """The current web session and its user."""

    session_id: str
    user_id: UUID
    email: str
    name: str
    picture_url: Optional[str] = None
    is_admin: bool
    expires_at: datetime


class LoginRequest(BaseModel):
    """Credential login body. Blank values are rejected with 422."""

    username: str = Field(..., description="Case-insensitive username")
    password: str = Field(..., description="Account password")


class TokenResponse(BaseModel):
    """Bearer token issued by a successful credential login."""

    token: str = Field(..., description="Signed HS256 JWT")
    username: str = Field(..., description="Normalized username")
    expires_at: datetime

    model_config = {"json_schema_extra": {
        "example": {
            "token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
            "username": "admin",
            "expires_at": "2025-01-01T12:00:00Z",
        }
    }}


class RegisterRequest(BaseModel):
    """New credential account."""

    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8, max_length=72)
    role: str = Field(ADMIN_ROLE, min_length=1, max_length=ROLE_MAX_LENGTH)


class RegisterResponse(BaseModel):
    """Created credential account."""

    user_id: UUID
    username: str
    role: str
    message: str
