"""
API request and response models for CredGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import IdentityProjection

# bcrypt reads 72 bytes; the cap here only bounds request size.
_MAX_PASSWORD_LENGTH = 255


# ---------------------------------------------------------------------------
# Authorize callback
# ---------------------------------------------------------------------------


class AuthorizeRequest(BaseModel):
    """Body for POST /api/v1/auth/authorize -- the identity-provider callback input.

    Empty strings are accepted here and rejected by the resolver, so a blank
    field produces the same invalid_credentials denial as a wrong password
    rather than a distinguishable 422.
    """

    email: str = Field(max_length=320)
    password: str = Field(max_length=_MAX_PASSWORD_LENGTH)


class AuthorizeResponse(BaseModel):
    """Identity projection returned on successful authorization. Never carries the hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: str

    @classmethod
    def from_projection(cls, projection: IdentityProjection) -> "AuthorizeResponse":
        return cls(
            id=projection.id,
            email=projection.email,
            name=projection.name,
            image=projection.image,
            role=projection.role,
        )


# ---------------------------------------------------------------------------
# Errors and health
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
    """Response for GET /api/v1/health.

    store is "ok" when the authentication store answered a ping and
    "unavailable" otherwise. The API stays up either way.
    """

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    store: str = "ok"
