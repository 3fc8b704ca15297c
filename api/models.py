"""
API request and response models for authcore REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Response bodies use camelCase keys (userId, profileId) for browser clients;
Python code uses snake_case and serializes with by_alias=True.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Account, SessionGrant

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is not this layer's concern.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

PASSWORD_MIN_LENGTH = 8
# bcrypt only reads the first 72 bytes and newer releases reject longer input.
PASSWORD_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Shared shape of the register and login bodies."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)


class RegisterRequest(Credentials):
    """Request body for POST /api/v1/auth/register. Password policy applies here only."""

    password: str = Field(min_length=PASSWORD_MIN_LENGTH)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
        return value


class LoginRequest(Credentials):
    """Request body for POST /api/v1/auth/login.

    Any non-empty password is accepted; one that could never have been
    registered simply fails verification with Invalid credentials.
    """


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Identity returned by register, login, and GET /auth/me."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    user_id: str
    email: str
    profile_id: Optional[str] = None

    @classmethod
    def from_grant(cls, grant: SessionGrant) -> "AccountResponse":
        return cls(user_id=grant.user_id, email=grant.email, profile_id=grant.profile_id)

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(user_id=account.user_id, email=account.email, profile_id=account.profile_id)


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response.

    A single human-readable string; never raw database or driver text.
    """

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
