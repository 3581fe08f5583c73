"""Traktr Stores - Local Session Cache.

A small key-value slot per user and device holding the last-known
identity, the local job list, the trash list and the sort preference. Values are JSON blobs
written whole; there is no schema versioning, so every reader tolerates
absent or corrupt keys by treating them as missing.

Key layout (Redis):
- key = <REDIS_KEY_PREFIX> + <uid> + ":" + <deviceId> + ":" + <storage key>
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from threading import RLock
from typing import Any

from traktr.config import StorageKeys

logger = logging.getLogger(__name__)


def _decode_json(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    text = str(raw).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class LocalSessionCache(ABC):
    """Key-value contract plus typed helpers over the fixed storage keys."""

    def __init__(self, keys: StorageKeys | None = None):
        self.keys = keys or StorageKeys()

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...

    async def set_many(self, items: dict[str, str]) -> None:
        """Write several keys; implementations may do this in one round trip."""
        for key, value in items.items():
            await self.set(key, value)

    # -------------------------------------------------------------------------
    # Session blob
    # -------------------------------------------------------------------------

    async def read_session(self) -> dict[str, Any] | None:
        data = _decode_json(await self.get(self.keys.session))
        return data if isinstance(data, dict) else None

    async def write_session(self, session: dict[str, Any]) -> None:
        await self.set(self.keys.session, json.dumps(session))

    async def clear_session(self) -> None:
        await self.remove(self.keys.session)

    # -------------------------------------------------------------------------
    # Job / trash blobs (independent mode)
    # -------------------------------------------------------------------------

    async def read_job_list(self) -> list[dict[str, Any]] | None:
        """Return the stored job list, or None when the key was never written."""
        data = _decode_json(await self.get(self.keys.jobs))
        if not isinstance(data, list):
            return None
        return [item for item in data if isinstance(item, dict)]

    async def job_list_is_unreadable(self) -> bool:
        """True when the job list key holds something other than a JSON list."""
        raw = await self.get(self.keys.jobs)
        if raw is None or not str(raw).strip():
            return False
        return not isinstance(_decode_json(raw), list)

    async def read_trash(self) -> list[dict[str, Any]]:
        data = _decode_json(await self.get(self.keys.trash))
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    async def write_jobs_and_trash(
        self,
        jobs: list[dict[str, Any]],
        trash: list[dict[str, Any]],
    ) -> None:
        await self.set_many(
            {
                self.keys.jobs: json.dumps(jobs),
                self.keys.trash: json.dumps(trash),
            }
        )

    # -------------------------------------------------------------------------
    # Sort preference
    # -------------------------------------------------------------------------

    async def read_sort(self) -> str | None:
        raw = await self.get(self.keys.sort)
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        return raw or None

    async def write_sort(self, option: str) -> None:
        await self.set(self.keys.sort, option)


class InMemorySessionCache(LocalSessionCache):
    """Process-local cache for development and tests."""

    def __init__(self, keys: StorageKeys | None = None, initial: dict[str, str] | None = None):
        super().__init__(keys)
        self._lock = RLock()
        self._values: dict[str, str] = dict(initial or {})
        self.writes: list[str] = []

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value
            self.writes.append(key)

    async def remove(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._values)


class RedisSessionCache(LocalSessionCache):
    """Redis-backed cache, one key namespace per (uid, device) slot."""

    def __init__(self, client, namespace: str, key_prefix: str = "traktr:", keys: StorageKeys | None = None):
        super().__init__(keys)
        self._client = client
        self._namespace = f"{key_prefix}{namespace}:"

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> str | None:
        raw = await self._client.get(self._key(key))
        if isinstance(raw, (bytes, bytearray)):
            return raw.decode("utf-8", errors="replace")
        return raw

    async def set(self, key: str, value: str) -> None:
        await self._client.set(self._key(key), value)

    async def remove(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def set_many(self, items: dict[str, str]) -> None:
        await self._client.mset({self._key(k): v for k, v in items.items()})


@lru_cache
def get_redis_client(url: str):
    """Create (once per URL) an asyncio Redis client."""
    import redis.asyncio as redis

    return redis.Redis.from_url(url, decode_responses=True)
