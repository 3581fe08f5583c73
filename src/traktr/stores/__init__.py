"""Traktr Stores - local session cache and remote profile store collaborators."""

from traktr.stores.local_cache import (
    InMemorySessionCache,
    LocalSessionCache,
    RedisSessionCache,
    get_redis_client,
)
from traktr.stores.remote_store import (
    InMemoryRemoteStore,
    RemoteDocument,
    RemoteProfileStore,
    RemoteStoreError,
)

__all__ = [
    "InMemorySessionCache",
    "LocalSessionCache",
    "RedisSessionCache",
    "get_redis_client",
    "InMemoryRemoteStore",
    "RemoteDocument",
    "RemoteProfileStore",
    "RemoteStoreError",
]
