"""
Traktr Jobs - Repository.

Selects a fetch strategy from the resolved session's role:

- independent: job list and trash blobs from the local session cache
- owner: every job document under the company
- employee: union of the legacy `assignedToUid == uid` query and the current
  `assignedToUids contains uid` query, issued concurrently and merged by id

Fetches never raise. Failures resolve to an empty (or partial) list plus a
status flag. No strategy writes the local job blobs; a missing list is
seeded in memory only.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from traktr.modules.jobs.normalizer import (
    normalize_job_document,
    normalize_local_job,
    utc_now,
)
from traktr.modules.jobs.schemas import JobFetchResult, JobRecord
from traktr.modules.jobs.sorting import coerce_sort_option
from traktr.modules.session.schemas import ResolvedSession
from traktr.stores.local_cache import LocalSessionCache
from traktr.stores.remote_store import RemoteDocument, RemoteProfileStore

logger = logging.getLogger(__name__)

LEGACY_ASSIGNEE_FIELD = "assignedToUid"
ASSIGNEES_FIELD = "assignedToUids"


def example_job() -> JobRecord:
    """First-run seed shown to a new independent user."""
    return JobRecord(
        id="1",
        title="Panel Upgrade - 100A to 200A",
        address="123 Main St, Brooklyn, NY",
        description="Replace existing 100A panel with 200A, label circuits.",
        created_at="2025-11-10T10:00:00.000Z",
        is_done=False,
        client_name="John Doe",
        client_phone="555-123-4567",
        client_notes="Owner works nights, schedule after 3 PM.",
    )


def merge_by_id(*result_sets: list[JobRecord]) -> list[JobRecord]:
    """Union by job id. Later sets win on conflict; first-seen position is kept."""
    by_id: dict[str, JobRecord] = {}
    for jobs in result_sets:
        for job in jobs:
            by_id[job.id] = job
    return list(by_id.values())


def load_local_jobs(raw_jobs: list[dict], now: Callable[[], datetime] = utc_now) -> list[JobRecord]:
    jobs = [job for job in (normalize_local_job(item, now=now) for item in raw_jobs) if job]
    return merge_by_id(jobs)


class JobRepository:
    """Fetches a normalized, de-duplicated job list for a resolved session."""

    def __init__(
        self,
        cache: LocalSessionCache,
        remote: RemoteProfileStore,
        seed_example: bool = True,
        now: Callable[[], datetime] = utc_now,
    ):
        self.cache = cache
        self.remote = remote
        self.seed_example = seed_example
        self.now = now

    async def fetch_jobs(self, session: ResolvedSession | None) -> JobFetchResult:
        if session is None:
            return JobFetchResult(status="skipped", warnings=["no resolved session"])

        try:
            if session.role == "owner":
                return await self._fetch_owner(session)
            if session.role == "employee":
                return await self._fetch_employee(session)
            return await self._fetch_independent()
        except Exception as e:
            logger.warning(f"Job fetch failed for uid={session.uid} role={session.role}: {e}")
            return JobFetchResult(strategy=session.role, status="error", warnings=[str(e)])

    def _normalize(self, docs: list[RemoteDocument]) -> list[JobRecord]:
        return [normalize_job_document(doc.id, doc.data, now=self.now) for doc in docs]

    # -------------------------------------------------------------------------
    # A. independent (local, read-write)
    # -------------------------------------------------------------------------

    async def _fetch_independent(self) -> JobFetchResult:
        # Read-only: the seed is persisted by the first LocalJobStore mutation.
        warnings = []
        raw_jobs = await self.cache.read_job_list()
        if raw_jobs is None:
            jobs = [example_job()] if self.seed_example else []
            if await self.cache.job_list_is_unreadable():
                logger.warning("Stored local job list is unreadable; leaving it in place")
                warnings.append("stored job list is unreadable")
        else:
            jobs = load_local_jobs(raw_jobs, now=self.now)

        trash = load_local_jobs(await self.cache.read_trash(), now=self.now)
        sort_option = coerce_sort_option(await self.cache.read_sort())
        return JobFetchResult(
            jobs=jobs,
            trash=trash,
            strategy="independent",
            status="partial" if warnings else "ok",
            warnings=warnings,
            sort_option=sort_option,
        )

    # -------------------------------------------------------------------------
    # B. owner (cloud, every job in the company)
    # -------------------------------------------------------------------------

    async def _fetch_owner(self, session: ResolvedSession) -> JobFetchResult:
        if not session.company_id:
            return JobFetchResult(strategy="owner", status="skipped", warnings=["owner has no company"])

        docs = await self.remote.list_company_jobs(session.company_id)
        jobs = merge_by_id(self._normalize(docs))
        logger.info(f"Owner jobs: uid={session.uid} companyId={session.company_id} count={len(jobs)}")
        return JobFetchResult(jobs=jobs, strategy="owner")

    # -------------------------------------------------------------------------
    # C. employee (cloud, two assignment schemas)
    # -------------------------------------------------------------------------

    async def _query(self, label: str, call) -> list[RemoteDocument] | None:
        try:
            return await call
        except Exception as e:
            logger.warning(f"Employee {label} assignment query failed: {e}")
            return None

    async def _fetch_employee(self, session: ResolvedSession) -> JobFetchResult:
        if not session.company_id:
            return JobFetchResult(strategy="employee", status="skipped", warnings=["employee has no company"])

        legacy_docs, current_docs = await asyncio.gather(
            self._query(
                "legacy",
                self.remote.query_company_jobs_equal(session.company_id, LEGACY_ASSIGNEE_FIELD, session.uid),
            ),
            self._query(
                "current",
                self.remote.query_company_jobs_contains(session.company_id, ASSIGNEES_FIELD, session.uid),
            ),
        )

        warnings = []
        if legacy_docs is None:
            warnings.append(f"{LEGACY_ASSIGNEE_FIELD} query failed")
        if current_docs is None:
            warnings.append(f"{ASSIGNEES_FIELD} query failed")

        if legacy_docs is None and current_docs is None:
            return JobFetchResult(strategy="employee", status="error", warnings=warnings)

        merged = merge_by_id(
            self._normalize(legacy_docs or []),
            self._normalize(current_docs or []),
        )
        logger.info(
            f"Employee jobs merged: uid={session.uid} companyId={session.company_id} "
            f"legacy={len(legacy_docs or [])} current={len(current_docs or [])} merged={len(merged)}"
        )
        return JobFetchResult(
            jobs=merged,
            strategy="employee",
            status="partial" if warnings else "ok",
            warnings=warnings,
        )
