"""
API request and response models for TokenAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=3, max_length=255)
    # Character cap only bounds the body. A password over bcrypt's 72-byte limit
    # (e.g. 40 two-byte characters) fails as bad_credentials, never as a 500.
    password: str = Field(min_length=1, max_length=72)


class LoginResponse(BaseModel):
    """Issued bearer token. Send it back as 'Authorization: Bearer <access_token>'."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user_id: int
    email: str


class MeResponse(BaseModel):
    user_id: int
    email: str
    first_name: str
    last_name: str


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
