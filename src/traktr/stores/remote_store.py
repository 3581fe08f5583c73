"""Traktr Stores - Remote Profile Store.

Authoritative document store for user profiles, companies and company jobs.

Logical document paths:
- users/{uid}
- companies/{companyId}
- companies/{companyId}/employees/{uid}   (member roster)
- companies/{companyId}/users/{uid}       (employee display profile)
- companies/{companyId}/jobs/{jobId}
- companies/{companyId}/jobs/{jobId}/workTickets/{ticketId}
- companies/{companyId}/jobs/{jobId}/messages/{messageId}

Documents are returned as untyped dicts; callers normalize every field.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class RemoteStoreError(Exception):
    """Raised when the remote store cannot serve a read or write."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class DocumentExistsError(RemoteStoreError):
    """Raised by create-only writes when the document id is already taken."""


@dataclass(frozen=True)
class RemoteDocument:
    """A document id plus its raw field payload."""

    id: str
    data: dict[str, Any]


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


class RemoteProfileStore(ABC):
    """Async contract the core issues reads, point-lookups and writes against."""

    # users/{uid}
    @abstractmethod
    async def get_user(self, uid: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def update_user(self, uid: str, fields: dict[str, Any]) -> None:
        """Merge-write fields into users/{uid}, creating it when absent."""
        ...

    # companies/{companyId}
    @abstractmethod
    async def get_company(self, company_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def find_companies_by_join_code(self, join_code: str) -> list[RemoteDocument]:
        ...

    @abstractmethod
    async def create_company(self, fields: dict[str, Any]) -> str:
        """Create a company document and return its generated id."""
        ...

    @abstractmethod
    async def set_company_member(self, company_id: str, uid: str, fields: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def get_company_user_profile(self, company_id: str, uid: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def set_company_user_profile(self, company_id: str, uid: str, fields: dict[str, Any]) -> None:
        ...

    # companies/{companyId}/jobs
    @abstractmethod
    async def list_company_jobs(self, company_id: str) -> list[RemoteDocument]:
        ...

    @abstractmethod
    async def query_company_jobs_equal(self, company_id: str, field_name: str, value: Any) -> list[RemoteDocument]:
        ...

    @abstractmethod
    async def query_company_jobs_contains(self, company_id: str, field_name: str, value: Any) -> list[RemoteDocument]:
        """Jobs whose array field contains value."""
        ...

    @abstractmethod
    async def get_company_job(self, company_id: str, job_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def add_company_job(self, company_id: str, fields: dict[str, Any]) -> str:
        ...

    # companies/{companyId}/jobs/{jobId}/workTickets
    @abstractmethod
    async def get_work_ticket(self, company_id: str, job_id: str, ticket_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def create_work_ticket(self, company_id: str, job_id: str, ticket_id: str, fields: dict[str, Any]) -> None:
        """Create-only write; raises DocumentExistsError when ticket_id is taken."""
        ...

    @abstractmethod
    async def update_work_ticket(self, company_id: str, job_id: str, ticket_id: str, fields: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def list_work_tickets(self, company_id: str, job_id: str | None = None) -> list[RemoteDocument]:
        """Tickets of one job, or of every job in the company when job_id is None."""
        ...

    # companies/{companyId}/jobs/{jobId}/messages
    @abstractmethod
    async def list_job_messages(self, company_id: str, job_id: str) -> list[RemoteDocument]:
        ...

    @abstractmethod
    async def add_job_message(self, company_id: str, job_id: str, fields: dict[str, Any]) -> str:
        ...


@dataclass
class InMemoryRemoteStore(RemoteProfileStore):
    """Test double with failure injection and concurrency tracking.

    `fail_operations` holds method names that raise RemoteStoreError.
    `latency` (seconds) is awaited by every call so concurrent fan-out is
    observable through `max_in_flight`.
    """

    users: dict[str, dict[str, Any]] = field(default_factory=dict)
    companies: dict[str, dict[str, Any]] = field(default_factory=dict)
    members: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    company_users: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    jobs: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    work_tickets: dict[tuple[str, str], dict[str, dict[str, Any]]] = field(default_factory=dict)
    messages: dict[tuple[str, str], dict[str, dict[str, Any]]] = field(default_factory=dict)

    fail_operations: set[str] = field(default_factory=set)
    latency: float = 0.0
    calls: list[str] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if operation in self.fail_operations:
                raise RemoteStoreError(operation, "injected failure")
        finally:
            self.in_flight -= 1

    def _job_docs(self, company_id: str) -> list[RemoteDocument]:
        return [
            RemoteDocument(id=job_id, data=copy.deepcopy(data))
            for job_id, data in self.jobs.get(company_id, {}).items()
        ]

    async def get_user(self, uid: str) -> dict[str, Any] | None:
        await self._enter("get_user")
        doc = self.users.get(uid)
        return copy.deepcopy(doc) if doc is not None else None

    async def update_user(self, uid: str, fields: dict[str, Any]) -> None:
        await self._enter("update_user")
        self.users.setdefault(uid, {}).update(copy.deepcopy(fields))

    async def get_company(self, company_id: str) -> dict[str, Any] | None:
        await self._enter("get_company")
        doc = self.companies.get(company_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_companies_by_join_code(self, join_code: str) -> list[RemoteDocument]:
        await self._enter("find_companies_by_join_code")
        return [
            RemoteDocument(id=cid, data=copy.deepcopy(data))
            for cid, data in self.companies.items()
            if data.get("joinCode") == join_code
        ]

    async def create_company(self, fields: dict[str, Any]) -> str:
        await self._enter("create_company")
        company_id = new_document_id()
        self.companies[company_id] = copy.deepcopy(fields)
        return company_id

    async def set_company_member(self, company_id: str, uid: str, fields: dict[str, Any]) -> None:
        await self._enter("set_company_member")
        self.members.setdefault((company_id, uid), {}).update(copy.deepcopy(fields))

    async def get_company_user_profile(self, company_id: str, uid: str) -> dict[str, Any] | None:
        await self._enter("get_company_user_profile")
        doc = self.company_users.get((company_id, uid))
        return copy.deepcopy(doc) if doc is not None else None

    async def set_company_user_profile(self, company_id: str, uid: str, fields: dict[str, Any]) -> None:
        await self._enter("set_company_user_profile")
        self.company_users.setdefault((company_id, uid), {}).update(copy.deepcopy(fields))

    async def list_company_jobs(self, company_id: str) -> list[RemoteDocument]:
        await self._enter("list_company_jobs")
        return self._job_docs(company_id)

    async def query_company_jobs_equal(self, company_id: str, field_name: str, value: Any) -> list[RemoteDocument]:
        await self._enter(f"query_equal:{field_name}")
        return [doc for doc in self._job_docs(company_id) if doc.data.get(field_name) == value]

    async def query_company_jobs_contains(self, company_id: str, field_name: str, value: Any) -> list[RemoteDocument]:
        await self._enter(f"query_contains:{field_name}")
        out = []
        for doc in self._job_docs(company_id):
            values = doc.data.get(field_name)
            if isinstance(values, list) and value in values:
                out.append(doc)
        return out

    async def add_company_job(self, company_id: str, fields: dict[str, Any]) -> str:
        await self._enter("add_company_job")
        job_id = new_document_id()
        self.jobs.setdefault(company_id, {})[job_id] = copy.deepcopy(fields)
        return job_id

    async def get_company_job(self, company_id: str, job_id: str) -> dict[str, Any] | None:
        await self._enter("get_company_job")
        doc = self.jobs.get(company_id, {}).get(job_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def get_work_ticket(self, company_id: str, job_id: str, ticket_id: str) -> dict[str, Any] | None:
        await self._enter("get_work_ticket")
        doc = self.work_tickets.get((company_id, job_id), {}).get(ticket_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def create_work_ticket(self, company_id: str, job_id: str, ticket_id: str, fields: dict[str, Any]) -> None:
        await self._enter("create_work_ticket")
        tickets = self.work_tickets.setdefault((company_id, job_id), {})
        if ticket_id in tickets:
            raise DocumentExistsError("create_work_ticket", f"{ticket_id} already exists")
        tickets[ticket_id] = copy.deepcopy(fields)

    async def update_work_ticket(self, company_id: str, job_id: str, ticket_id: str, fields: dict[str, Any]) -> None:
        await self._enter("update_work_ticket")
        tickets = self.work_tickets.get((company_id, job_id), {})
        if ticket_id not in tickets:
            raise RemoteStoreError("update_work_ticket", f"{ticket_id} does not exist")
        tickets[ticket_id].update(copy.deepcopy(fields))

    async def list_work_tickets(self, company_id: str, job_id: str | None = None) -> list[RemoteDocument]:
        await self._enter("list_work_tickets")
        out = []
        for (cid, jid), tickets in self.work_tickets.items():
            if cid != company_id or (job_id is not None and jid != job_id):
                continue
            for ticket_id, data in tickets.items():
                out.append(RemoteDocument(id=ticket_id, data={"jobId": jid, **copy.deepcopy(data)}))
        return out

    async def list_job_messages(self, company_id: str, job_id: str) -> list[RemoteDocument]:
        await self._enter("list_job_messages")
        return [
            RemoteDocument(id=message_id, data=copy.deepcopy(data))
            for message_id, data in self.messages.get((company_id, job_id), {}).items()
        ]

    async def add_job_message(self, company_id: str, job_id: str, fields: dict[str, Any]) -> str:
        await self._enter("add_job_message")
        message_id = new_document_id()
        self.messages.setdefault((company_id, job_id), {})[message_id] = copy.deepcopy(fields)
        return message_id
