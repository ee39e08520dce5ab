"""
API request and response models for Queso REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
users/models.py, which own the internal domain representation. Route
handlers map between the two.

No response model has a password or password-hash field, so a hash can never
be serialized outward by accident.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from users.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9._-]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    username_or_email: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    # Not stripped: leading/trailing spaces are part of the password.
    password: str = Field(min_length=1, max_length=1024, json_schema_extra={"format": "password"})


class OAuthCallbackRequest(BaseModel):
    """Request body for POST /api/auth/oauth/google/callback."""

    code: str = Field(min_length=1, max_length=2048)
    state: str = Field(min_length=1, max_length=2048)


class UserCreate(BaseModel):
    """Request body for POST /api/users."""

    username: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=3, max_length=64, pattern=USERNAME_PATTERN)
    ]
    email: EmailStr
    # Stored exactly as typed, like LoginRequest.password.
    password: str = Field(min_length=8, max_length=1024)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for both login flows."""

    token: str
    token_type: str = "Bearer"


class OAuthUrlResponse(BaseModel):
    url: str


class MeResponse(BaseModel):
    id: int
    username: str
    email: str


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    has_password: bool
    google_linked: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives with the output model, not in each route."""
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            has_password=user.password_hash is not None,
            google_linked=user.google_id is not None,
            created_at=user.created_at or "",
        )


class ComponentStatus(BaseModel):
    app: str = "ok"
    database: str = "ok"


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: ComponentStatus


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
