"""
Traktr Chat - Router.

API endpoints for per-job message threads.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from traktr.deps import get_chat_service, require_session, require_verified_session
from traktr.modules.chat.schemas import ChatMessage, ChatMessageCreate
from traktr.modules.chat.service import MESSAGE_LIMIT, ChatService
from traktr.modules.session.schemas import ResolvedSession

router = APIRouter(
    prefix="/jobs/{job_id}/messages",
    tags=["chat"],
)


@router.get("", response_model=list[ChatMessage])
async def list_messages(
    job_id: str,
    session: Annotated[ResolvedSession, Depends(require_session)],
    service: Annotated[ChatService, Depends(get_chat_service)],
    limit: Annotated[int, Query(ge=1, le=MESSAGE_LIMIT)] = MESSAGE_LIMIT,
):
    """Latest messages on a job thread, oldest first."""
    return await service.list_messages(session, job_id, limit=limit)


@router.post("", response_model=ChatMessage, status_code=201)
async def post_message(
    job_id: str,
    draft: ChatMessageCreate,
    session: Annotated[ResolvedSession, Depends(require_verified_session)],
    service: Annotated[ChatService, Depends(get_chat_service)],
):
    return await service.post_message(session, job_id, draft)
