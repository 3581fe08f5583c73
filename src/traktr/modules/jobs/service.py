"""
Traktr Jobs - Service.

User-initiated job writes. Independent users write to the local job list;
owners submit job documents to the company. Failures here propagate so the
caller can offer a retry.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from traktr.exceptions import ExternalServiceException, ForbiddenException, NotFoundException
from traktr.modules.jobs.local_jobs import LocalJobStore
from traktr.modules.jobs.normalizer import (
    normalize_job_document,
    normalize_photo_locators,
    normalize_uid_set,
    to_iso,
    utc_now,
)
from traktr.modules.jobs.schemas import JobDraft, JobRecord
from traktr.modules.session.schemas import ResolvedSession
from traktr.stores.remote_store import RemoteProfileStore

logger = logging.getLogger(__name__)


def build_cloud_job_document(session: ResolvedSession, draft: JobDraft, now: datetime) -> dict[str, Any]:
    """Remote job payload. Photo locators only; inline image data stays on device."""
    return {
        "title": draft.title.strip(),
        "address": draft.address,
        "description": draft.description,
        "clientName": draft.client_name,
        "clientPhone": draft.client_phone,
        "clientNotes": draft.client_notes,
        "photoUris": normalize_photo_locators(draft.photo_uris),
        "laborHours": draft.labor_hours,
        "hourlyRate": draft.hourly_rate,
        "materialCost": draft.material_cost,
        "isDone": False,
        "createdAt": to_iso(now),
        "assignedToUids": normalize_uid_set(draft.assigned_to_uids),
        "ownerUid": session.uid,
        "createdByUid": session.uid,
    }


class JobsService:
    """Routes job submissions to the local list or the company collection."""

    def __init__(
        self,
        local_jobs: LocalJobStore,
        remote: RemoteProfileStore,
        now: Callable[[], datetime] = utc_now,
    ):
        self.local_jobs = local_jobs
        self.remote = remote
        self.now = now

    async def submit_job(self, session: ResolvedSession, draft: JobDraft) -> JobRecord:
        if session.role == "owner":
            return await self.submit_cloud_job(session, draft)
        if session.role == "employee":
            raise ForbiddenException("Employees cannot create jobs", required_role="owner")
        return await self.local_jobs.create(draft)

    async def submit_cloud_job(self, session: ResolvedSession, draft: JobDraft) -> JobRecord:
        if session.role != "owner":
            raise ForbiddenException("Only company owners can submit cloud jobs", required_role="owner")
        if not session.company_id:
            raise ForbiddenException("Create a company before adding jobs")

        document = build_cloud_job_document(session, draft, self.now())
        try:
            job_id = await self.remote.add_company_job(session.company_id, document)
        except Exception as e:
            logger.warning(f"Cloud job submit failed for companyId={session.company_id}: {e}")
            raise ExternalServiceException("remote store", str(e)) from e

        logger.info(f"Cloud job created: companyId={session.company_id} jobId={job_id}")
        return normalize_job_document(job_id, document, now=self.now)


async def load_company_job(
    remote: RemoteProfileStore,
    company_id: str,
    job_id: str,
    now: Callable[[], datetime] = utc_now,
) -> JobRecord:
    """Read one company job for a user-initiated write.

    Raises:
        NotFoundException: If the job does not exist
        ExternalServiceException: If the store read fails
    """
    try:
        data = await remote.get_company_job(company_id, job_id)
    except Exception as e:
        logger.warning(f"Job lookup failed for companyId={company_id} jobId={job_id}: {e}")
        raise ExternalServiceException("remote store", str(e)) from e
    if data is None:
        raise NotFoundException("job", job_id)
    return normalize_job_document(job_id, data, now=now)
