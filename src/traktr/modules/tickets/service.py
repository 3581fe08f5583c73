"""
Traktr Tickets - Service.

Employees file one ticket per job per day; owners read them job by job or
through a company-wide inbox, and mark them reviewed. The one-per-day rule
is enforced by the store: the ticket id is fixed and the write is
create-only.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable

from traktr.exceptions import (
    ConflictException,
    ExternalServiceException,
    ForbiddenException,
    NotFoundException,
    TraktrException,
    ValidationException,
)
from traktr.modules.jobs.normalizer import (
    coerce_bool,
    coerce_number,
    coerce_optional_str,
    coerce_str,
    normalize_created_at,
    normalize_job_document,
    to_iso,
    utc_now,
)
from traktr.modules.jobs.service import load_company_job
from traktr.modules.session.schemas import ResolvedSession
from traktr.modules.tickets.schemas import WorkTicket, WorkTicketCreate, WorkTicketList
from traktr.stores.remote_store import DocumentExistsError, RemoteProfileStore

logger = logging.getLogger(__name__)

INBOX_LIMIT = 100


def resolve_day_key(requested: str | None, now: datetime) -> str:
    """The ticket's calendar day.

    Devices report their local date; anything further than one day from the
    UTC date cannot be a local date anywhere and is rejected.
    """
    today = now.astimezone(timezone.utc).date()
    if requested is None:
        return today.isoformat()
    try:
        day = date.fromisoformat(requested)
    except ValueError:
        raise ValidationException("dayKey must be a calendar date (YYYY-MM-DD)")
    if abs((day - today).days) > 1:
        raise ValidationException("dayKey must be today's date on the device")
    return day.isoformat()


def ticket_id_for(day_key: str, uid: str) -> str:
    return f"{day_key}_{uid}"


def normalize_ticket_document(
    ticket_id: str,
    data: Any,
    now: Callable[[], datetime] = utc_now,
) -> WorkTicket:
    if not isinstance(data, dict):
        data = {}
    reviewed_at = data.get("reviewedAt")
    return WorkTicket(
        id=str(ticket_id),
        job_id=coerce_str(data.get("jobId")),
        job_title=coerce_str(data.get("jobTitle")),
        job_address=coerce_str(data.get("jobAddress")),
        work_performed=coerce_str(data.get("workPerformed")),
        labor_hours=coerce_number(data.get("laborHours")),
        materials_used=coerce_str(data.get("materialsUsed")),
        created_by_uid=coerce_optional_str(data.get("createdByUid")),
        created_by_name=coerce_optional_str(data.get("createdByName")),
        created_by_email=coerce_optional_str(data.get("createdByEmail")),
        created_by_role=coerce_optional_str(data.get("createdByRole")),
        created_at=normalize_created_at(data.get("createdAt"), now=now),
        day_key=coerce_str(data.get("dayKey")),
        is_reviewed=coerce_bool(data.get("isReviewed")),
        reviewed_at=normalize_created_at(reviewed_at, now=now) if reviewed_at is not None else None,
        reviewed_by_uid=coerce_optional_str(data.get("reviewedByUid")),
    )


def newest_first(tickets: list[WorkTicket]) -> list[WorkTicket]:
    return sorted(tickets, key=lambda t: (t.created_at, t.id), reverse=True)


def ticket_list(tickets: list[WorkTicket]) -> WorkTicketList:
    ordered = newest_first(tickets)
    return WorkTicketList(
        items=ordered,
        total=len(ordered),
        unreviewed=sum(1 for t in ordered if not t.is_reviewed),
    )


class TicketsService:
    """Work ticket submission, listing and review."""

    def __init__(self, remote: RemoteProfileStore, now: Callable[[], datetime] = utc_now):
        self.remote = remote
        self.now = now

    async def _remote(self, operation: str, call):
        try:
            return await call
        except TraktrException:
            raise
        except Exception as e:
            logger.warning(f"{operation} failed: {e}")
            raise ExternalServiceException("remote store", f"{operation} failed: {e}") from e

    @staticmethod
    def _company_of(session: ResolvedSession) -> str:
        if session.role == "independent":
            raise ForbiddenException("Work tickets belong to company jobs")
        if not session.company_id:
            raise ValidationException("Join or create a company first.")
        return session.company_id

    @staticmethod
    def _require_owner(session: ResolvedSession) -> None:
        if session.role != "owner":
            raise ForbiddenException("Only the company owner can do this", required_role="owner")

    async def submit_ticket(self, session: ResolvedSession, job_id: str, draft: WorkTicketCreate) -> WorkTicket:
        """File today's ticket for a job.

        Raises:
            ForbiddenException: If the caller is not an employee assigned to the job
            ConflictException: If a ticket for this job and day already exists
            ExternalServiceException: If the store write fails
        """
        if session.role != "employee":
            raise ForbiddenException("Only employees can submit work tickets", required_role="employee")
        company_id = self._company_of(session)

        work_performed = draft.work_performed.strip()
        if not work_performed:
            raise ValidationException("Describe the work performed.")

        job = await load_company_job(self.remote, company_id, job_id, now=self.now)
        if not job.is_assigned_to(session.uid):
            raise ForbiddenException("You are not assigned to this job")

        now = self.now()
        day_key = resolve_day_key(draft.day_key, now)
        ticket_id = ticket_id_for(day_key, session.uid)
        fields = {
            "jobId": job.id,
            "jobTitle": job.title,
            "jobAddress": job.address,
            "workPerformed": work_performed,
            "laborHours": draft.labor_hours,
            "materialsUsed": draft.materials_used.strip(),
            "createdByUid": session.uid,
            "createdByName": session.name,
            "createdByEmail": session.email,
            "createdByRole": session.role,
            "createdAt": to_iso(now),
            "dayKey": day_key,
            "isFinal": True,
            "isReviewed": False,
        }

        try:
            await self.remote.create_work_ticket(company_id, job.id, ticket_id, fields)
        except DocumentExistsError as e:
            raise ConflictException(
                "You already submitted a work ticket for this job today.",
                resource_type="work ticket",
                resource_id=ticket_id,
            ) from e
        except Exception as e:
            logger.warning(f"Work ticket submit failed for companyId={company_id} jobId={job.id}: {e}")
            raise ExternalServiceException("remote store", str(e)) from e

        logger.info(f"Work ticket submitted: companyId={company_id} jobId={job.id} ticketId={ticket_id}")
        return normalize_ticket_document(ticket_id, fields, now=self.now)

    async def list_job_tickets(self, session: ResolvedSession, job_id: str) -> WorkTicketList:
        """Tickets for one job; employees only see their own."""
        company_id = self._company_of(session)
        await load_company_job(self.remote, company_id, job_id, now=self.now)

        docs = await self._remote("ticket listing", self.remote.list_work_tickets(company_id, job_id))
        tickets = [normalize_ticket_document(doc.id, {"jobId": job_id, **doc.data}, now=self.now) for doc in docs]
        if session.role != "owner":
            tickets = [t for t in tickets if t.created_by_uid == session.uid]
        return ticket_list(tickets)

    async def inbox(self, session: ResolvedSession, limit: int = INBOX_LIMIT) -> WorkTicketList:
        """Every ticket in the owner's company, newest first across jobs."""
        self._require_owner(session)
        company_id = self._company_of(session)

        docs = await self._remote("ticket inbox", self.remote.list_work_tickets(company_id))
        tickets = [normalize_ticket_document(doc.id, doc.data, now=self.now) for doc in docs]

        if any(not t.job_title for t in tickets):
            jobs = await self._remote("job listing", self.remote.list_company_jobs(company_id))
            by_id = {doc.id: normalize_job_document(doc.id, doc.data, now=self.now) for doc in jobs}
            tickets = [
                t.model_copy(update={"job_title": by_id[t.job_id].title, "job_address": by_id[t.job_id].address})
                if not t.job_title and t.job_id in by_id
                else t
                for t in tickets
            ]

        result = ticket_list(tickets)
        result.items = result.items[:limit]
        return result

    async def get_ticket(self, session: ResolvedSession, job_id: str, ticket_id: str) -> WorkTicket:
        company_id = self._company_of(session)
        data = await self._remote("ticket lookup", self.remote.get_work_ticket(company_id, job_id, ticket_id))
        if data is None:
            raise NotFoundException("work ticket", ticket_id)

        ticket = normalize_ticket_document(ticket_id, {"jobId": job_id, **data}, now=self.now)
        if session.role != "owner" and ticket.created_by_uid != session.uid:
            raise NotFoundException("work ticket", ticket_id)
        return ticket

    async def mark_reviewed(self, session: ResolvedSession, job_id: str, ticket_id: str) -> WorkTicket:
        """Flag a ticket as reviewed by the owner. Reviewing twice is a no-op."""
        self._require_owner(session)
        ticket = await self.get_ticket(session, job_id, ticket_id)
        if ticket.is_reviewed:
            return ticket

        fields = {"isReviewed": True, "reviewedAt": to_iso(self.now()), "reviewedByUid": session.uid}
        await self._remote("ticket review", self.remote.update_work_ticket(session.company_id, job_id, ticket_id, fields))
        logger.info(f"Work ticket reviewed: companyId={session.company_id} jobId={job_id} ticketId={ticket_id}")
        return ticket.model_copy(
            update={"is_reviewed": True, "reviewed_at": fields["reviewedAt"], "reviewed_by_uid": session.uid}
        )
