"""
Traktr Auth - Identity Token Validation.

Validates ID tokens issued by the external identity provider. Token issuance,
sign-in and password flows stay with the provider.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from traktr.auth.schemas import AuthIdentity, TokenPayload
from traktr.config import Settings, get_settings
from traktr.exceptions import UnauthorizedException

security = HTTPBearer(auto_error=False)

DEV_TOKEN_PREFIX = "dev:"


def verify_id_token(
    token: str,
    secret: str,
    algorithms: list[str] | None = None,
    audience: str | None = None,
) -> TokenPayload:
    """
    Verify and decode an ID token.

    Args:
        token: The JWT token string
        secret: The secret key for verification
        algorithms: List of allowed algorithms (default: HS256)
        audience: Expected audience claim, if any

    Returns:
        Decoded token payload

    Raises:
        UnauthorizedException: If token is invalid or expired
    """
    if algorithms is None:
        algorithms = ["HS256"]

    options = {"verify_aud": audience is not None}
    try:
        payload = jwt.decode(token, secret, algorithms=algorithms, audience=audience, options=options)
    except JWTError as e:
        raise UnauthorizedException(f"Invalid token: {e}")

    exp = payload.get("exp")
    if exp and datetime.fromtimestamp(exp, tz=timezone.utc) < datetime.now(tz=timezone.utc):
        raise UnauthorizedException("Token has expired")

    sub = payload.get("sub") or payload.get("user_id")
    if not isinstance(sub, str) or not sub.strip():
        raise UnauthorizedException("Malformed token payload: missing subject")

    email = payload.get("email")
    return TokenPayload(
        sub=sub.strip(),
        email=email if isinstance(email, str) else None,
        aud=payload.get("aud") if isinstance(payload.get("aud"), str) else None,
        exp=exp if isinstance(exp, int) else None,
        iat=payload.get("iat") if isinstance(payload.get("iat"), int) else None,
    )


def identity_from_token(token: str, settings: Settings) -> AuthIdentity:
    """Resolve a bearer token to an authenticated identity."""
    token = (token or "").strip()
    if not token or any(ch.isspace() for ch in token):
        raise UnauthorizedException("Invalid authentication token")

    # Local convenience: 'dev:<uid>' tokens without a provider round trip.
    if settings.auth.insecure_dev_bypass and not settings.is_production and token.startswith(DEV_TOKEN_PREFIX):
        uid = token[len(DEV_TOKEN_PREFIX):]
        if not uid:
            raise UnauthorizedException("Malformed development token")
        return AuthIdentity(uid=uid, email=None)

    payload = verify_id_token(
        token=token,
        secret=settings.auth.jwt_secret,
        algorithms=[settings.auth.jwt_algorithm],
        audience=settings.auth.audience,
    )
    return AuthIdentity(uid=payload.sub, email=payload.email)


async def get_current_identity(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthIdentity:
    """
    FastAPI dependency returning the authenticated identity.

    Raises:
        UnauthorizedException: If no token or invalid token
    """
    if not credentials:
        raise UnauthorizedException("Missing authentication token")

    identity = identity_from_token(credentials.credentials, settings)
    request.state.uid = identity.uid
    return identity


async def get_optional_identity(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthIdentity | None:
    """
    Get the identity if authenticated, otherwise None.

    Session resolution uses this: an absent principal routes to LOGIN
    instead of failing the request.
    """
    if not credentials:
        return None

    try:
        return await get_current_identity(request, credentials, settings)
    except UnauthorizedException:
        return None
