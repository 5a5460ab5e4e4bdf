"""
API request and response models for the billing auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire names are camelCase (accessToken, sendOtp, ...); Python attribute names
stay snake_case through Field(alias=...). FastAPI serializes response models
by alias, so the camelCase names are what clients see.

Request fields are Optional on purpose: a missing field must produce the
route's own 400 message ("email and otp required"), not a generic schema
error. Identifiers (email, type, role, ...) are whitespace-stripped on every
request model; passwords never are, so the value hashed at creation is the
value compared at login.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from auth.models import ROLE_USER, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

_Stripped = Annotated[str, StringConstraints(strip_whitespace=True)]


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SendOtpRequest(_Request):
    """Request body for POST /api/auth/send-otp."""

    email: Optional[_Stripped] = None
    type: Optional[_Stripped] = None


class VerifyOtpRequest(_Request):
    """Request body for POST /api/auth/verify-otp.

    otp may arrive as a JSON string or a JSON number.
    """

    email: Optional[_Stripped] = None
    otp: Optional[_Stripped] = None

    @field_validator("otp", mode="before")
    @classmethod
    def _otp_as_text(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class LoginRequest(_Request):
    """Request body for POST /api/auth/login."""

    email: Optional[_Stripped] = None
    password: Optional[str] = Field(default=None, json_schema_extra={"format": "password"})


class RefreshTokenRequest(_Request):
    """Request body for POST /api/auth/refresh-token and POST /api/auth/logout."""

    refresh_token: Optional[_Stripped] = Field(default=None, alias="refreshToken")


class UserCreate(_Request):
    """Request body for POST /api/users/create."""

    name: Optional[_Stripped] = None
    email: Optional[_Stripped] = None
    password: Optional[str] = Field(default=None, json_schema_extra={"format": "password"})
    role: Optional[_Stripped] = ROLE_USER
    send_otp: bool = Field(default=True, alias="sendOtp")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    """Response for POST /api/auth/login."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class AccessTokenResponse(BaseModel):
    """Response for POST /api/auth/refresh-token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")


class UserCreatedResponse(BaseModel):
    """Response for POST /api/users/create."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    user_id: int = Field(alias="userId")


class UserResponse(BaseModel):
    """Public view of an account. The password hash is never part of it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    email: str
    role: str
    is_verified: bool = Field(alias="isVerified")

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role, is_verified=user.is_verified)


class MeResponse(BaseModel):
    """Response for GET /api/users/me."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response: {message, error?}."""

    model_config = ConfigDict(frozen=True)

    message: str
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
