"""
API request and response models for the authn-password REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from auth.models import Ambiguous

# bcrypt only looks at the first 72 bytes of a secret.
_MAX_SECRET_BYTES = 72

# Identifiers are trimmed; secrets are passed through exactly as submitted.
Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=320)]
IdentityId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/authn-password/login.

    identifier is an identity id, slug or email address. id is the explicit
    identity choice a client re-submits after an ambiguous login.
    """

    identifier: Identifier
    password: str = Field(min_length=1, max_length=255)
    id: Optional[IdentityId] = None


class PasscodeRequest(BaseModel):
    """Request body for POST /api/v1/authn-password/passcode."""

    identifier: Identifier


class PasswordResetRequest(BaseModel):
    """Request body for POST /api/v1/authn-password/reset."""

    identifier: Identifier
    passcode: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=8, max_length=255)

    @field_validator("new_password")
    @classmethod
    def fits_bcrypt(cls, value: str) -> str:
        """Reject passwords bcrypt would truncate rather than silently ignoring the tail."""
        if len(value.encode("utf-8")) > _MAX_SECRET_BYTES:
            raise ValueError(f"Password must be at most {_MAX_SECRET_BYTES} bytes when UTF-8 encoded.")
        return value


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/v1/authn-password/verify-email."""

    identifier: Identifier
    passcode: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Successful login: exactly one identity matched."""

    model_config = ConfigDict(frozen=True)

    identity: str


class AmbiguousLoginResponse(BaseModel):
    """Several identities sharing email matched; the client must pick one and re-submit with id."""

    model_config = ConfigDict(frozen=True)

    email: str
    identities: dict[str, str]

    @classmethod
    def from_outcome(cls, outcome: Ambiguous) -> "AmbiguousLoginResponse":
        return cls(email=outcome.contact_point, identities=dict(outcome.candidates))


class VerifyEmailResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool


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
