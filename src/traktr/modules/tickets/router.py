"""
Traktr Tickets - Router.

API endpoints for daily work tickets on company jobs.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from traktr.deps import get_tickets_service, require_session, require_verified_session
from traktr.modules.session.schemas import ResolvedSession
from traktr.modules.tickets.schemas import WorkTicket, WorkTicketCreate, WorkTicketList
from traktr.modules.tickets.service import INBOX_LIMIT, TicketsService

router = APIRouter(
    tags=["tickets"],
)


@router.get("/tickets/inbox", response_model=WorkTicketList)
async def ticket_inbox(
    session: Annotated[ResolvedSession, Depends(require_session)],
    service: Annotated[TicketsService, Depends(get_tickets_service)],
    limit: Annotated[int, Query(ge=1, le=500)] = INBOX_LIMIT,
):
    """Owner inbox: every ticket in the company, newest first."""
    return await service.inbox(session, limit=limit)


@router.post("/jobs/{job_id}/tickets", response_model=WorkTicket, status_code=201)
async def submit_ticket(
    job_id: str,
    draft: WorkTicketCreate,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    service: Annotated[TicketsService, Depends(get_tickets_service)],
):
    """File today's ticket for a job. It cannot be edited afterwards."""
    return await service.submit_ticket(session, job_id, draft)


@router.get("/jobs/{job_id}/tickets", response_model=WorkTicketList)
async def list_job_tickets(
    job_id: str,
    session: Annotated[ResolvedSession, Depends(require_session)],
    service: Annotated[TicketsService, Depends(get_tickets_service)],
):
    return await service.list_job_tickets(session, job_id)


@router.get("/jobs/{job_id}/tickets/{ticket_id}", response_model=WorkTicket)
async def get_ticket(
    job_id: str,
    ticket_id: str,
    session: Annotated[ResolvedSession, Depends(require_session)],
    service: Annotated[TicketsService, Depends(get_tickets_service)],
):
    return await service.get_ticket(session, job_id, ticket_id)


@router.post("/jobs/{job_id}/tickets/{ticket_id}/review", response_model=WorkTicket)
async def review_ticket(
    job_id: str,
    ticket_id: str,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    service: Annotated[TicketsService, Depends(get_tickets_service)],
):
    """Mark a ticket reviewed (owner only)."""
    return await service.mark_reviewed(session, job_id, ticket_id)
