"""
Traktr Session - Service.

Session resolution: reconciles the local session cache against the remote
profile store and decides where the user must be routed.

Remote is authoritative. When the profile record exists it overwrites the
cached blob (write-through refresh); when it cannot be read the pass degrades
to the cached blob instead of failing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from traktr.auth.schemas import AuthIdentity
from traktr.modules.session.schemas import (
    ResolvedSession,
    RoutingTarget,
    SessionResolution,
    normalize_company_id,
    normalize_role,
)
from traktr.stores.local_cache import LocalSessionCache
from traktr.stores.remote_store import RemoteProfileStore

if TYPE_CHECKING:
    from traktr.modules.session.provider import FocusScope

logger = logging.getLogger(__name__)


def _blank(value: Any) -> bool:
    return not (isinstance(value, str) and value.strip())


def session_from_profile(identity: AuthIdentity, profile: dict[str, Any]) -> ResolvedSession:
    """Build the authoritative session from a users/{uid} record."""
    email = profile.get("email")
    name = profile.get("name")
    return ResolvedSession(
        uid=identity.uid,
        email=email if isinstance(email, str) and email else identity.email,
        name=name if isinstance(name, str) else "",
        role=normalize_role(profile.get("role")),
        company_id=normalize_company_id(profile.get("companyId")),
    )


def is_profile_complete(*profiles: dict[str, Any] | None) -> bool:
    """An employee profile is complete once it has a display name and a photo."""
    has_name = False
    has_photo = False
    for profile in profiles:
        if not profile:
            continue
        for key in ("displayName", "name"):
            if not _blank(profile.get(key)):
                has_name = True
        for key in ("photoURL", "photoUrl"):
            if not _blank(profile.get(key)):
                has_photo = True
    return has_name and has_photo


async def write_through_session(
    cache: LocalSessionCache,
    uid: str,
    **changes: Any,
) -> dict[str, Any]:
    """Apply changes to the cached session blob after a remote write succeeded.

    Used by operations that mutate the user's company binding so that the next
    resolution pass in the same process cannot observe the old value. The
    cached blob is kept only when it belongs to the same uid.
    """
    cached = await cache.read_session() or {}
    if cached.get("uid") not in (None, uid):
        cached = {}

    blob = {**cached, "uid": uid, **changes}
    await cache.write_session(blob)
    return blob


class SessionResolver:
    """Resolves {session, routing target} for one device."""

    def __init__(
        self,
        cache: LocalSessionCache,
        remote: RemoteProfileStore,
        profile_gate: bool = True,
    ):
        self.cache = cache
        self.remote = remote
        self.profile_gate = profile_gate

    async def _read_cached(self, identity: AuthIdentity) -> ResolvedSession | None:
        try:
            raw = await self.cache.read_session()
        except Exception as e:
            logger.warning(f"Local session cache read failed: {e}")
            return None
        if not raw:
            return None

        cached = ResolvedSession.from_cache(raw, uid=identity.uid)
        if cached is None or cached.uid != identity.uid:
            # Another account's blob; never reuse it for this principal.
            return None
        return cached

    async def resolve(
        self,
        identity: AuthIdentity | None,
        scope: FocusScope | None = None,
    ) -> SessionResolution:
        """Run one resolution pass.

        Args:
            identity: Authenticated principal from the identity provider, if any
            scope: Focus scope of the caller; the write-through is skipped once
                the scope is no longer active

        Returns:
            SessionResolution with the routing target
        """
        if identity is None:
            logger.info("No authenticated identity => LOGIN")
            return SessionResolution(routing_target=RoutingTarget.LOGIN, source="none")

        profile: dict[str, Any] | None = None
        remote_available = True
        try:
            profile = await self.remote.get_user(identity.uid)
        except Exception as e:
            remote_available = False
            logger.warning(f"Profile read failed for uid={identity.uid}, degrading to local cache: {e}")

        if profile is not None:
            session = session_from_profile(identity, profile)
            source = "remote"
            if scope is not None and not scope.active:
                logger.info(f"Resolution for uid={identity.uid} abandoned; skipping write-through")
            else:
                await self._write_through(session)
        else:
            cached = await self._read_cached(identity)
            if cached is not None:
                session = cached
                source = "local"
            elif remote_available:
                # Authenticated but no profile record yet.
                session = ResolvedSession(uid=identity.uid, email=identity.email)
                source = "synthesized"
            else:
                logger.warning(f"No remote or local identity for uid={identity.uid} => LOGIN")
                return SessionResolution(
                    routing_target=RoutingTarget.LOGIN,
                    source="none",
                    remote_available=False,
                )

        routing_target, profile_ready = await self._route(session, profile)
        logger.info(
            f"Resolved uid={session.uid} role={session.role} companyId={session.company_id} "
            f"source={source} => {routing_target.value}"
        )
        return SessionResolution(
            session=session,
            routing_target=routing_target,
            source=source,
            profile_ready=profile_ready,
            remote_available=remote_available,
            stale=scope is not None and not scope.active,
        )

    async def _write_through(self, session: ResolvedSession) -> None:
        try:
            await self.cache.write_session(session.to_cache())
        except Exception as e:
            logger.warning(f"Local session write-through failed for uid={session.uid}: {e}")

    async def _route(
        self,
        session: ResolvedSession,
        profile: dict[str, Any] | None,
    ) -> tuple[RoutingTarget, bool | None]:
        if session.role == "owner" and not session.company_id:
            return RoutingTarget.CREATE_COMPANY, None

        if session.role == "employee":
            if not session.company_id:
                return RoutingTarget.JOIN_COMPANY, None

            if self.profile_gate:
                ready = await self._employee_profile_ready(session, profile)
                if not ready:
                    return RoutingTarget.PROFILE_SETUP, False
                return RoutingTarget.HOME, True

        return RoutingTarget.HOME, None

    async def _employee_profile_ready(
        self,
        session: ResolvedSession,
        profile: dict[str, Any] | None,
    ) -> bool:
        # A failed read keeps the employee out of HOME.
        try:
            company_profile = await self.remote.get_company_user_profile(session.company_id, session.uid)
        except Exception as e:
            logger.warning(f"Employee profile read failed for uid={session.uid}: {e}")
            return False
        return is_profile_complete(company_profile, profile)
