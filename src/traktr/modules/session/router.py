"""
Traktr Session - Router.

API endpoints for session resolution and sign-out.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from traktr.auth import AuthIdentity, get_optional_identity
from traktr.deps import get_session_cache, get_session_provider
from traktr.modules.session.provider import SessionProvider
from traktr.modules.session.schemas import SessionResolveResponse
from traktr.stores.local_cache import LocalSessionCache

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/session",
    tags=["session"],
)


@router.post("/resolve", response_model=SessionResolveResponse)
async def resolve_session(
    identity: Annotated[AuthIdentity | None, Depends(get_optional_identity)],
    provider: Annotated[SessionProvider, Depends(get_session_provider)],
):
    """Resolve the caller's session and routing target (one focus pass)."""
    scope = provider.focus()
    refresh = await provider.refresh(scope, identity)
    resolution = refresh.resolution
    return SessionResolveResponse(
        routing_target=resolution.routing_target,
        session=resolution.session,
        source=resolution.source,
        profile_ready=resolution.profile_ready,
        remote_available=resolution.remote_available,
    )


@router.delete("", status_code=204)
async def sign_out(
    cache: Annotated[LocalSessionCache, Depends(get_session_cache)],
    provider: Annotated[SessionProvider, Depends(get_session_provider)],
):
    """Forget this device's cached identity. Local jobs are kept."""
    provider.focus()
    await cache.clear_session()
    logger.info("Cleared cached session for device")
