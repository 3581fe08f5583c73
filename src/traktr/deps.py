"""
Traktr - Dependency Injection.

FastAPI dependencies for stores, the per-device session provider and
services.

Local caches and session providers are keyed by the caller's uid and device
id together, so two accounts on one device never share a job list, trash or
provider generation.
"""

from collections import OrderedDict
from typing import Annotated, Callable, Generic, TypeVar

from fastapi import Depends, Header

from traktr.auth import AuthIdentity, get_current_identity, get_optional_identity
from traktr.config import FeatureFlags, Settings, get_settings
from traktr.exceptions import ExternalServiceException, UnauthorizedException
from traktr.modules.chat.service import ChatService
from traktr.modules.companies.service import CompaniesService
from traktr.modules.jobs.local_jobs import LocalJobStore
from traktr.modules.jobs.repository import JobRepository
from traktr.modules.jobs.service import JobsService
from traktr.modules.session.provider import SessionProvider
from traktr.modules.session.schemas import ResolvedSession, RoutingTarget, SessionResolution
from traktr.modules.session.service import SessionResolver
from traktr.modules.tickets.service import TicketsService
from traktr.stores.local_cache import (
    InMemorySessionCache,
    LocalSessionCache,
    RedisSessionCache,
    get_redis_client,
)
from traktr.stores.remote_store import InMemoryRemoteStore, RemoteProfileStore

DEFAULT_DEVICE_ID = "default"
ANONYMOUS_UID = "anonymous"

T = TypeVar("T")


class BoundedRegistry(Generic[T]):
    """Least-recently-used map with a fixed capacity."""

    def __init__(self, max_size: int):
        self.max_size = max_size
        self._items: OrderedDict[str, T] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def get_or_create(self, key: str, factory: Callable[[], T], max_size: int | None = None) -> T:
        if max_size is not None:
            self.max_size = max_size
        item = self._items.get(key)
        if item is None:
            item = factory()
            self._items[key] = item
        self._items.move_to_end(key)
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)
        return item

    def clear(self) -> None:
        self._items.clear()


# Process-local registries; one cache slot and one provider per (uid, device).
_caches: BoundedRegistry[LocalSessionCache] = BoundedRegistry(max_size=1024)
_providers: BoundedRegistry[SessionProvider] = BoundedRegistry(max_size=1024)
_remote_store: RemoteProfileStore | None = None


def reset_backends() -> None:
    """Drop cached store instances (tests, settings reloads)."""
    global _remote_store
    _caches.clear()
    _providers.clear()
    _remote_store = None


# =============================================================================
# Settings / Request Context
# =============================================================================


def get_features(settings: Annotated[Settings, Depends(get_settings)]) -> FeatureFlags:
    """Get feature flags from settings."""
    return settings.features


def get_device_id(x_device_id: Annotated[str | None, Header()] = None) -> str:
    """Device the local session cache belongs to."""
    device_id = (x_device_id or "").strip()
    return device_id or DEFAULT_DEVICE_ID


def get_cache_namespace(
    device_id: Annotated[str, Depends(get_device_id)],
    identity: Annotated[AuthIdentity | None, Depends(get_optional_identity)],
) -> str:
    """`<uid>:<deviceId>`; unauthenticated callers share an empty anonymous slot per device."""
    uid = identity.uid if identity else ANONYMOUS_UID
    return f"{uid}:{device_id}"


# =============================================================================
# Stores
# =============================================================================


def get_remote_store(settings: Annotated[Settings, Depends(get_settings)]) -> RemoteProfileStore:
    global _remote_store
    if _remote_store is None:
        if settings.use_in_memory_backends:
            _remote_store = InMemoryRemoteStore()
        else:
            from traktr.stores.supabase_store import SupabaseRemoteStore

            _remote_store = SupabaseRemoteStore(settings=settings.supabase)
    return _remote_store


def get_session_cache(
    namespace: Annotated[str, Depends(get_cache_namespace)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LocalSessionCache:
    def build() -> LocalSessionCache:
        if settings.use_in_memory_backends:
            return InMemorySessionCache(keys=settings.storage_keys)
        return RedisSessionCache(
            get_redis_client(settings.redis.url),
            namespace=namespace,
            key_prefix=settings.redis.key_prefix,
            keys=settings.storage_keys,
        )

    return _caches.get_or_create(namespace, build, max_size=settings.device_registry_size)


# =============================================================================
# Services
# =============================================================================


def get_session_resolver(
    cache: Annotated[LocalSessionCache, Depends(get_session_cache)],
    remote: Annotated[RemoteProfileStore, Depends(get_remote_store)],
    features: Annotated[FeatureFlags, Depends(get_features)],
) -> SessionResolver:
    return SessionResolver(cache, remote, profile_gate=features.employee_profile_gate)


def get_job_repository(
    cache: Annotated[LocalSessionCache, Depends(get_session_cache)],
    remote: Annotated[RemoteProfileStore, Depends(get_remote_store)],
    features: Annotated[FeatureFlags, Depends(get_features)],
) -> JobRepository:
    return JobRepository(cache, remote, seed_example=features.seed_example_job)


def get_session_provider(
    namespace: Annotated[str, Depends(get_cache_namespace)],
    resolver: Annotated[SessionResolver, Depends(get_session_resolver)],
    jobs: Annotated[JobRepository, Depends(get_job_repository)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionProvider:
    return _providers.get_or_create(
        namespace,
        lambda: SessionProvider(resolver, jobs),
        max_size=settings.device_registry_size,
    )


def get_local_jobs(
    cache: Annotated[LocalSessionCache, Depends(get_session_cache)],
    features: Annotated[FeatureFlags, Depends(get_features)],
) -> LocalJobStore:
    return LocalJobStore(cache, seed_example=features.seed_example_job)


def get_jobs_service(
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
    remote: Annotated[RemoteProfileStore, Depends(get_remote_store)],
) -> JobsService:
    return JobsService(local_jobs, remote)


def get_companies_service(
    cache: Annotated[LocalSessionCache, Depends(get_session_cache)],
    remote: Annotated[RemoteProfileStore, Depends(get_remote_store)],
) -> CompaniesService:
    return CompaniesService(cache, remote)


def get_tickets_service(
    remote: Annotated[RemoteProfileStore, Depends(get_remote_store)],
) -> TicketsService:
    return TicketsService(remote)


def get_chat_service(
    remote: Annotated[RemoteProfileStore, Depends(get_remote_store)],
) -> ChatService:
    return ChatService(remote)


# =============================================================================
# Session Guards
# =============================================================================


async def get_session_resolution(
    identity: Annotated[AuthIdentity, Depends(get_current_identity)],
    resolver: Annotated[SessionResolver, Depends(get_session_resolver)],
) -> SessionResolution:
    resolution = await resolver.resolve(identity)
    if resolution.routing_target == RoutingTarget.LOGIN or resolution.session is None:
        raise UnauthorizedException("No usable session")
    return resolution


async def require_session(
    resolution: Annotated[SessionResolution, Depends(get_session_resolution)],
) -> ResolvedSession:
    """Resolve the caller's session for read endpoints."""
    return resolution.session


async def require_verified_session(
    resolution: Annotated[SessionResolution, Depends(get_session_resolution)],
) -> ResolvedSession:
    """Resolve the caller's session for write endpoints.

    A role read back from the local cache is display-only; writes need the
    remote store to have confirmed it during this request.
    """
    if resolution.source == "local":
        raise ExternalServiceException(
            "remote store",
            "profile could not be verified; try again when the connection is restored",
        )
    return resolution.session
