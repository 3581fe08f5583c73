"""
Traktr Auth - Schemas.

Pydantic models for the identity issued by the external identity provider.
"""

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """Decoded ID token claims."""

    sub: str = Field(..., description="Provider user id (opaque uid)")
    email: str | None = None
    aud: str | None = None
    exp: int | None = None
    iat: int | None = None


class AuthIdentity(BaseModel):
    """Authenticated principal as seen by the session resolver."""

    uid: str
    email: str | None = None
