"""
API request and response models for ChatLink REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one @, no whitespace, a dot in the domain. The remote
# platform performs its own validation on signup and email change.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_Email = Annotated[str, Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)]

# bcrypt ignores bytes past 72; reject rather than silently truncate.
_Password = Annotated[str, Field(min_length=1, max_length=72)]


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: _Email
    password: _Password

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _lower(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _lower(value)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    """Response for a successful registration.

    api_key is shown exactly once. Only its HMAC hash is stored.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    api_key: str
    remote_id: int


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    user_id: int
    email: str


class UserResponse(BaseModel):
    """Public view of a user. Password hash, API key hash and remote secret are never exposed."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    remote_id: Optional[int]
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            remote_id=user.remote_id,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


# ---------------------------------------------------------------------------
# Users -- request models
# ---------------------------------------------------------------------------


class EmailChangeRequest(BaseModel):
    """Request body for PUT /api/v1/users/{user_id}."""

    current_email: _Email
    new_email: _Email

    @field_validator("current_email", "new_email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _lower(value)


class DialogCreateRequest(BaseModel):
    """Request body for POST /api/v1/users/dialogs. Both ids are remote ids."""

    creator_id: int = Field(gt=0)
    target_id: int = Field(gt=0)


class PushRequest(BaseModel):
    """Request body for POST /api/v1/users/notifications."""

    model_config = ConfigDict(str_strip_whitespace=True)

    target_ids: list[Annotated[int, Field(gt=0)]] = Field(min_length=1, max_length=100)
    title: str = Field(min_length=1, max_length=100)
    content: str = Field(min_length=1, max_length=1000)

    @field_validator("target_ids", mode="after")
    @classmethod
    def dedupe_ids(cls, values: list[int]) -> list[int]:
        """Drop duplicate ids while preserving first-occurrence order."""
        return list(dict.fromkeys(values))


# ---------------------------------------------------------------------------
# Users -- response models
# ---------------------------------------------------------------------------


class SyncResponse(BaseModel):
    """Envelope for a successful sync operation (mirrors SyncResult.to_dict())."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    data: Any = None
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Shared
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
