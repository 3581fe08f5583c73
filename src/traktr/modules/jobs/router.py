"""
Traktr Jobs - Router.

API endpoints for job listing and job writes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from traktr.auth import AuthIdentity, get_optional_identity
from traktr.deps import (
    get_jobs_service,
    get_local_jobs,
    get_session_provider,
    require_session,
    require_verified_session,
)
from traktr.exceptions import ForbiddenException, UnauthorizedException
from traktr.modules.jobs.local_jobs import LocalJobStore
from traktr.modules.jobs.schemas import (
    JobDraft,
    JobListResponse,
    JobRecord,
    JobUpdate,
    SortOption,
    StatusFilter,
)
from traktr.modules.jobs.service import JobsService
from traktr.modules.jobs.sorting import coerce_sort_option, count_jobs, filter_jobs, sort_jobs
from traktr.modules.session.provider import SessionProvider
from traktr.modules.session.schemas import ResolvedSession, RoutingTarget

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
)


class SortPreference(BaseModel):
    option: SortOption


def _require_local(session: ResolvedSession) -> None:
    if session.role != "independent":
        raise ForbiddenException("Local job list is only available in independent mode", required_role="independent")


@router.get("", response_model=JobListResponse)
async def list_jobs(
    identity: Annotated[AuthIdentity | None, Depends(get_optional_identity)],
    provider: Annotated[SessionProvider, Depends(get_session_provider)],
    sort: SortOption | None = None,
    status: StatusFilter = "all",
    q: Annotated[str | None, Query(max_length=200)] = None,
):
    """List jobs for the caller's resolved session."""
    scope = provider.focus()
    refresh = await provider.refresh(scope, identity)
    if refresh.resolution.routing_target == RoutingTarget.LOGIN:
        raise UnauthorizedException("No usable session")

    result = refresh.jobs
    option = sort or coerce_sort_option(result.sort_option)
    items = sort_jobs(filter_jobs(result.jobs, status=status, query=q), option)
    return JobListResponse(
        items=items,
        counts=count_jobs(result.jobs),
        strategy=result.strategy,
        status=result.status,
        warnings=result.warnings,
        sort_option=option,
    )


@router.post("", response_model=JobRecord, status_code=201)
async def create_job(
    draft: JobDraft,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    service: Annotated[JobsService, Depends(get_jobs_service)],
):
    """Create a local job (independent) or submit a company job (owner)."""
    return await service.submit_job(session, draft)


@router.get("/trash", response_model=list[JobRecord])
async def list_trash(
    session: Annotated[ResolvedSession, Depends(require_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    _require_local(session)
    return await local_jobs.list_trash()


@router.post("/trash/{job_id}/restore", response_model=JobRecord)
async def restore_job(
    job_id: str,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    _require_local(session)
    return await local_jobs.restore(job_id)


@router.delete("/trash/{job_id}", status_code=204)
async def purge_job(
    job_id: str,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    """Delete a trashed job forever."""
    _require_local(session)
    await local_jobs.purge(job_id)


@router.put("/sort", status_code=204)
async def set_sort_preference(
    preference: SortPreference,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    _require_local(session)
    await local_jobs.set_sort(preference.option)


@router.patch("/{job_id}", response_model=JobRecord)
async def edit_job(
    job_id: str,
    update: JobUpdate,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    _require_local(session)
    return await local_jobs.edit(job_id, update)


@router.post("/{job_id}/toggle", response_model=JobRecord)
async def toggle_job(
    job_id: str,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    """Flip a job between open and done."""
    _require_local(session)
    return await local_jobs.toggle_done(job_id)


@router.delete("/{job_id}", response_model=JobRecord)
async def trash_job(
    job_id: str,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    local_jobs: Annotated[LocalJobStore, Depends(get_local_jobs)],
):
    """Soft-delete a job into the trash."""
    _require_local(session)
    return await local_jobs.soft_delete(job_id)
