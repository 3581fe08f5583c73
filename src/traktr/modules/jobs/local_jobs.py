"""
Traktr Jobs - Local job list (independent mode).

Every mutation reads the whole job list and trash, applies the change and
writes both blobs back before returning. Mutations on the same cache are
serialized in-process; there is no conflict detection across processes, so
the last writer wins. A missing job list starts from the example seed,
which the first mutation persists; an unreadable one is never overwritten.
"""

import asyncio
import logging
import random
import string
import time
import weakref
from datetime import datetime
from typing import Callable

from traktr.exceptions import ExternalServiceException, NotFoundException
from traktr.modules.jobs.normalizer import normalize_uid_set, to_iso, utc_now
from traktr.modules.jobs.repository import example_job, load_local_jobs
from traktr.modules.jobs.schemas import JobDraft, JobRecord, JobUpdate, SortOption
from traktr.stores.local_cache import LocalSessionCache

logger = logging.getLogger(__name__)

_ALPHABET = string.digits + string.ascii_lowercase
_locks: "weakref.WeakKeyDictionary[LocalSessionCache, asyncio.Lock]" = weakref.WeakKeyDictionary()


def _lock_for(cache: LocalSessionCache) -> asyncio.Lock:
    lock = _locks.get(cache)
    if lock is None:
        lock = asyncio.Lock()
        _locks[cache] = lock
    return lock


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def new_local_job_id() -> str:
    """Millisecond clock in base36 plus a short random suffix."""
    suffix = "".join(random.choices(_ALPHABET, k=6))
    return f"{_base36(int(time.time() * 1000))}-{suffix}"


class LocalJobStore:
    """Read-modify-write operations over the local job and trash blobs."""

    def __init__(
        self,
        cache: LocalSessionCache,
        seed_example: bool = True,
        now: Callable[[], datetime] = utc_now,
    ):
        self.cache = cache
        self.seed_example = seed_example
        self.now = now

    async def _load(self, writing: bool = False) -> tuple[list[JobRecord], list[JobRecord]]:
        raw_jobs = await self.cache.read_job_list()
        if raw_jobs is None:
            if writing and await self.cache.job_list_is_unreadable():
                logger.warning("Refusing to overwrite an unreadable local job list")
                raise ExternalServiceException("local cache", "stored job list is unreadable")
            jobs = [example_job()] if self.seed_example else []
        else:
            jobs = load_local_jobs(raw_jobs, now=self.now)
        trash = load_local_jobs(await self.cache.read_trash(), now=self.now)
        return jobs, trash

    async def _persist(self, jobs: list[JobRecord], trash: list[JobRecord]) -> None:
        try:
            await self.cache.write_jobs_and_trash(
                [job.to_blob() for job in jobs],
                [job.to_blob() for job in trash],
            )
        except Exception as e:
            logger.warning(f"Failed to persist local jobs: {e}")
            raise ExternalServiceException("local cache", str(e)) from e

    @staticmethod
    def _index(jobs: list[JobRecord], job_id: str, resource: str = "job") -> int:
        for i, job in enumerate(jobs):
            if job.id == job_id:
                return i
        raise NotFoundException(resource, job_id)

    async def list_jobs(self) -> list[JobRecord]:
        jobs, _ = await self._load()
        return jobs

    async def list_trash(self) -> list[JobRecord]:
        _, trash = await self._load()
        return trash

    async def create(self, draft: JobDraft) -> JobRecord:
        async with _lock_for(self.cache):
            jobs, trash = await self._load(writing=True)
            job = JobRecord(
                id=new_local_job_id(),
                title=draft.title.strip(),
                address=draft.address,
                description=draft.description,
                created_at=to_iso(self.now()),
                is_done=False,
                client_name=draft.client_name,
                client_phone=draft.client_phone,
                client_notes=draft.client_notes,
                photo_uris=list(draft.photo_uris),
                photo_base64s=list(draft.photo_base64s),
                labor_hours=draft.labor_hours,
                hourly_rate=draft.hourly_rate,
                material_cost=draft.material_cost,
                assigned_to_uids=normalize_uid_set(draft.assigned_to_uids),
            )
            jobs.append(job)
            await self._persist(jobs, trash)
            return job

    async def edit(self, job_id: str, update: JobUpdate) -> JobRecord:
        async with _lock_for(self.cache):
            jobs, trash = await self._load(writing=True)
            i = self._index(jobs, job_id)
            changes = update.model_dump(exclude_none=True)
            jobs[i] = jobs[i].model_copy(update=changes)
            await self._persist(jobs, trash)
            return jobs[i]

    async def set_done(self, job_id: str, done: bool) -> JobRecord:
        return await self.edit(job_id, JobUpdate(is_done=done))

    async def toggle_done(self, job_id: str) -> JobRecord:
        async with _lock_for(self.cache):
            jobs, trash = await self._load(writing=True)
            i = self._index(jobs, job_id)
            jobs[i] = jobs[i].model_copy(update={"is_done": not jobs[i].is_done})
            await self._persist(jobs, trash)
            return jobs[i]

    async def soft_delete(self, job_id: str) -> JobRecord:
        """Move a job into the trash."""
        async with _lock_for(self.cache):
            jobs, trash = await self._load(writing=True)
            job = jobs.pop(self._index(jobs, job_id))
            trash = [t for t in trash if t.id != job.id] + [job]
            await self._persist(jobs, trash)
            return job

    async def restore(self, job_id: str) -> JobRecord:
        """Move a job from the trash back to the end of the job list."""
        async with _lock_for(self.cache):
            jobs, trash = await self._load(writing=True)
            job = trash.pop(self._index(trash, job_id, "trashed job"))
            jobs = [j for j in jobs if j.id != job.id] + [job]
            await self._persist(jobs, trash)
            return job

    async def purge(self, job_id: str) -> None:
        """Delete a trashed job forever."""
        async with _lock_for(self.cache):
            jobs, trash = await self._load(writing=True)
            trash.pop(self._index(trash, job_id, "trashed job"))
            await self._persist(jobs, trash)

    async def set_sort(self, option: SortOption) -> None:
        await self.cache.write_sort(option)
