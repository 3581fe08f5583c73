"""
Traktr Chat - Service.

Job threads live under companies/{companyId}/jobs/{jobId}/messages. The
owner can read and post on every company job; employees only on jobs they
are assigned to.
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, get_args

from traktr.exceptions import (
    ExternalServiceException,
    ForbiddenException,
    ValidationException,
)
from traktr.modules.chat.schemas import ChatIntent, ChatMessage, ChatMessageCreate, ChatRole
from traktr.modules.jobs.normalizer import (
    coerce_optional_str,
    coerce_str,
    normalize_created_at,
    to_iso,
    utc_now,
)
from traktr.modules.jobs.service import load_company_job
from traktr.modules.session.schemas import ResolvedSession
from traktr.stores.remote_store import RemoteProfileStore

logger = logging.getLogger(__name__)

MESSAGE_LIMIT = 250

_INTENTS = get_args(ChatIntent)
_ROLES = get_args(ChatRole)

# Checked in order; the first matching intent wins.
_INTENT_PATTERNS: tuple[tuple[ChatIntent, re.Pattern], ...] = (
    ("materials", re.compile(r"material|conduit|breakers|wire|\bbx\b|\bmc\b")),
    ("issue", re.compile(r"tripping|not working|dead|no power|issue|sparks|burning")),
    ("progress", re.compile(r"finished|done|almost|update|progress")),
)


def classify_intent(text: str) -> ChatIntent:
    """Keyword tag for a message: materials, issue, progress or other."""
    lower = (text or "").lower()
    for intent, pattern in _INTENT_PATTERNS:
        if pattern.search(lower):
            return intent
    return "other"


def normalize_message_document(
    message_id: str,
    data: Any,
    now: Callable[[], datetime] = utc_now,
) -> ChatMessage:
    if not isinstance(data, dict):
        data = {}
    role = data.get("role")
    intent = data.get("intent")
    return ChatMessage(
        id=str(message_id),
        author_label=coerce_optional_str(data.get("authorLabel")) or "Member",
        role=role if role in _ROLES else "employee",
        text=coerce_str(data.get("text")),
        created_at=normalize_created_at(data.get("createdAt"), now=now),
        intent=intent if intent in _INTENTS else "other",
        image_uri=coerce_optional_str(data.get("imageUri")),
        sender_uid=coerce_optional_str(data.get("senderUid")),
    )


class ChatService:
    """Read and post messages on a company job thread."""

    def __init__(self, remote: RemoteProfileStore, now: Callable[[], datetime] = utc_now):
        self.remote = remote
        self.now = now

    async def _open_thread(self, session: ResolvedSession, job_id: str) -> str:
        if session.role == "independent":
            raise ForbiddenException("Job chat is only available for company jobs")
        if not session.company_id:
            raise ValidationException("Join or create a company first.")

        job = await load_company_job(self.remote, session.company_id, job_id, now=self.now)
        if session.role == "employee" and not job.is_assigned_to(session.uid):
            raise ForbiddenException("You are not assigned to this job")
        return session.company_id

    async def list_messages(self, session: ResolvedSession, job_id: str, limit: int = MESSAGE_LIMIT) -> list[ChatMessage]:
        """The latest `limit` messages, oldest first."""
        company_id = await self._open_thread(session, job_id)
        try:
            docs = await self.remote.list_job_messages(company_id, job_id)
        except Exception as e:
            logger.warning(f"Chat read failed for companyId={company_id} jobId={job_id}: {e}")
            raise ExternalServiceException("remote store", str(e)) from e

        messages = [normalize_message_document(doc.id, doc.data, now=self.now) for doc in docs]
        messages.sort(key=lambda m: (m.created_at, m.id))
        return messages[-limit:]

    async def post_message(self, session: ResolvedSession, job_id: str, draft: ChatMessageCreate) -> ChatMessage:
        text = draft.text.strip()
        image_uri = (draft.image_uri or "").strip() or None
        if not text and not image_uri:
            raise ValidationException("A message needs text or a photo.")
        if image_uri and image_uri.startswith("data:"):
            raise ValidationException("Upload the photo first and send its locator.")

        company_id = await self._open_thread(session, job_id)
        fields = {
            "text": text,
            "authorLabel": session.name or session.email or "Member",
            "role": "boss" if session.role == "owner" else "employee",
            "intent": draft.intent or (classify_intent(text) if text else "progress"),
            "imageUri": image_uri,
            "senderUid": session.uid,
            "createdAt": to_iso(self.now()),
        }
        try:
            message_id = await self.remote.add_job_message(company_id, job_id, fields)
        except Exception as e:
            logger.warning(f"Chat post failed for companyId={company_id} jobId={job_id}: {e}")
            raise ExternalServiceException("remote store", str(e)) from e

        logger.info(f"Chat message posted: companyId={company_id} jobId={job_id} messageId={message_id}")
        return normalize_message_document(message_id, fields, now=self.now)
