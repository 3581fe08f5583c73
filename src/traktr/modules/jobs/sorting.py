"""Traktr Jobs - Sort, filter and count helpers.

The repository returns jobs in no particular order; callers sort here.
"""

from datetime import datetime, timezone

from traktr.modules.jobs.schemas import (
    DEFAULT_SORT,
    SORT_OPTIONS,
    JobCounts,
    JobRecord,
    SortOption,
    StatusFilter,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def coerce_sort_option(value: str | None) -> SortOption:
    """Unknown stored preferences fall back to Newest."""
    if value in SORT_OPTIONS:
        return value  # type: ignore[return-value]
    return DEFAULT_SORT


def _created(job: JobRecord) -> datetime:
    try:
        parsed = datetime.fromisoformat(job.created_at.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_jobs(jobs: list[JobRecord], option: SortOption = DEFAULT_SORT) -> list[JobRecord]:
    if option == "Newest":
        return sorted(jobs, key=_created, reverse=True)
    if option == "Oldest":
        return sorted(jobs, key=_created)
    if option == "A-Z":
        return sorted(jobs, key=lambda j: j.title.casefold())
    if option == "Z-A":
        return sorted(jobs, key=lambda j: j.title.casefold(), reverse=True)
    return list(jobs)


def _matches(job: JobRecord, query: str) -> bool:
    haystack = (
        job.title,
        job.address,
        job.description,
        job.client_name,
        job.client_phone,
        job.client_notes,
    )
    return any(query in field.lower() for field in haystack if field)


def filter_jobs(
    jobs: list[JobRecord],
    status: StatusFilter = "all",
    query: str | None = None,
) -> list[JobRecord]:
    """Filter by done state and free-text search over text and client fields."""
    data = list(jobs)
    if status == "open":
        data = [j for j in data if not j.is_done]
    elif status == "done":
        data = [j for j in data if j.is_done]

    q = (query or "").strip().lower()
    if q:
        data = [j for j in data if _matches(j, q)]
    return data


def count_jobs(jobs: list[JobRecord]) -> JobCounts:
    total = len(jobs)
    open_count = sum(1 for j in jobs if not j.is_done)
    return JobCounts(total=total, open=open_count, done=total - open_count)
