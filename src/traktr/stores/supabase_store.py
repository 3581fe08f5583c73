"""
Traktr Stores - Supabase Remote Profile Store.

Each logical collection maps to one table. Subcollections carry their parent
ids as `company_id` (and, below a job, `job_id`) columns. Document fields keep their document names as
column names (e.g. "assignedToUids" text[]), so queries filter on the same
names the jobs normalizer reads.

supabase-py is synchronous; every execute() runs in a worker thread so
independent queries can be in flight at the same time.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from traktr.config import SupabaseSettings, get_settings
from traktr.stores.remote_store import (
    DocumentExistsError,
    RemoteDocument,
    RemoteProfileStore,
    RemoteStoreError,
    new_document_id,
)

logger = logging.getLogger(__name__)

_PARENT_COLUMNS = ("id", "company_id", "job_id", "uid")
_UNIQUE_VIOLATION = "23505"


@lru_cache
def get_supabase_client() -> Client:
    """
    Get configured Supabase client.

    Uses service role key for server-side operations.
    Cached to reuse the same client instance.
    """
    settings = get_settings()
    return create_client(
        supabase_url=settings.supabase.url,
        supabase_key=settings.supabase.service_role_key,
    )


class BaseTable:
    """Thin wrapper over one Supabase table."""

    def __init__(self, client: Client, table_name: str):
        self._client = client
        self.table_name = table_name

    @property
    def table(self):
        """Get the Supabase table reference."""
        return self._client.table(self.table_name)

    async def execute(self, operation: str, builder) -> list[dict[str, Any]]:
        """Run a query builder off the event loop and return its rows."""
        try:
            response = await asyncio.to_thread(builder.execute)
        except Exception as e:
            if getattr(e, "code", None) == _UNIQUE_VIOLATION:
                raise DocumentExistsError(f"{self.table_name}.{operation}", str(e)) from e
            raise RemoteStoreError(f"{self.table_name}.{operation}", str(e)) from e
        return list(response.data or [])

    async def first(self, operation: str, builder) -> dict[str, Any] | None:
        rows = await self.execute(operation, builder.limit(1))
        return rows[0] if rows else None


def _strip_keys(row: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in row.items() if k not in _PARENT_COLUMNS}


def _to_document(row: dict[str, Any]) -> RemoteDocument:
    return RemoteDocument(id=str(row.get("id")), data=_strip_keys(row))


def _to_ticket_document(row: dict[str, Any]) -> RemoteDocument:
    data = _strip_keys(row)
    data.setdefault("jobId", row.get("job_id"))
    return RemoteDocument(id=str(row.get("id")), data=data)


class SupabaseRemoteStore(RemoteProfileStore):
    """RemoteProfileStore backed by Supabase tables."""

    def __init__(self, client: Client | None = None, settings: SupabaseSettings | None = None):
        client = client or get_supabase_client()
        settings = settings or get_settings().supabase

        self.users = BaseTable(client, settings.users_table)
        self.companies = BaseTable(client, settings.companies_table)
        self.members = BaseTable(client, settings.members_table)
        self.company_users = BaseTable(client, settings.company_users_table)
        self.jobs = BaseTable(client, settings.jobs_table)
        self.work_tickets = BaseTable(client, settings.work_tickets_table)
        self.messages = BaseTable(client, settings.job_messages_table)

    # -------------------------------------------------------------------------
    # users/{uid}
    # -------------------------------------------------------------------------

    async def get_user(self, uid: str) -> dict[str, Any] | None:
        row = await self.users.first("get", self.users.table.select("*").eq("id", uid))
        return _strip_keys(row) if row else None

    async def update_user(self, uid: str, fields: dict[str, Any]) -> None:
        await self.users.execute("upsert", self.users.table.upsert({"id": uid, **fields}, on_conflict="id"))

    # -------------------------------------------------------------------------
    # companies
    # -------------------------------------------------------------------------

    async def get_company(self, company_id: str) -> dict[str, Any] | None:
        row = await self.companies.first("get", self.companies.table.select("*").eq("id", company_id))
        return _strip_keys(row) if row else None

    async def find_companies_by_join_code(self, join_code: str) -> list[RemoteDocument]:
        rows = await self.companies.execute(
            "find_by_join_code",
            self.companies.table.select("*").eq("joinCode", join_code),
        )
        return [_to_document(row) for row in rows]

    async def create_company(self, fields: dict[str, Any]) -> str:
        company_id = new_document_id()
        await self.companies.execute("insert", self.companies.table.insert({"id": company_id, **fields}))
        return company_id

    async def set_company_member(self, company_id: str, uid: str, fields: dict[str, Any]) -> None:
        await self.members.execute(
            "upsert",
            self.members.table.upsert(
                {"company_id": company_id, "uid": uid, **fields},
                on_conflict="company_id,uid",
            ),
        )

    async def get_company_user_profile(self, company_id: str, uid: str) -> dict[str, Any] | None:
        row = await self.company_users.first(
            "get",
            self.company_users.table.select("*").eq("company_id", company_id).eq("uid", uid),
        )
        return _strip_keys(row) if row else None

    async def set_company_user_profile(self, company_id: str, uid: str, fields: dict[str, Any]) -> None:
        await self.company_users.execute(
            "upsert",
            self.company_users.table.upsert(
                {"company_id": company_id, "uid": uid, **fields},
                on_conflict="company_id,uid",
            ),
        )

    # -------------------------------------------------------------------------
    # companies/{companyId}/jobs
    # -------------------------------------------------------------------------

    async def list_company_jobs(self, company_id: str) -> list[RemoteDocument]:
        rows = await self.jobs.execute("list", self.jobs.table.select("*").eq("company_id", company_id))
        return [_to_document(row) for row in rows]

    async def query_company_jobs_equal(self, company_id: str, field_name: str, value: Any) -> list[RemoteDocument]:
        rows = await self.jobs.execute(
            f"eq:{field_name}",
            self.jobs.table.select("*").eq("company_id", company_id).eq(field_name, value),
        )
        return [_to_document(row) for row in rows]

    async def query_company_jobs_contains(self, company_id: str, field_name: str, value: Any) -> list[RemoteDocument]:
        rows = await self.jobs.execute(
            f"contains:{field_name}",
            self.jobs.table.select("*").eq("company_id", company_id).contains(field_name, [value]),
        )
        return [_to_document(row) for row in rows]

    async def add_company_job(self, company_id: str, fields: dict[str, Any]) -> str:
        job_id = new_document_id()
        await self.jobs.execute("insert", self.jobs.table.insert({"id": job_id, "company_id": company_id, **fields}))
        return job_id

    async def get_company_job(self, company_id: str, job_id: str) -> dict[str, Any] | None:
        row = await self.jobs.first("get", self.jobs.table.select("*").eq("company_id", company_id).eq("id", job_id))
        return _strip_keys(row) if row else None

    # -------------------------------------------------------------------------
    # companies/{companyId}/jobs/{jobId}/workTickets
    # -------------------------------------------------------------------------

    def _tickets_of(self, company_id: str, job_id: str):
        return self.work_tickets.table.select("*").eq("company_id", company_id).eq("job_id", job_id)

    async def get_work_ticket(self, company_id: str, job_id: str, ticket_id: str) -> dict[str, Any] | None:
        row = await self.work_tickets.first("get", self._tickets_of(company_id, job_id).eq("id", ticket_id))
        return _strip_keys(row) if row else None

    async def create_work_ticket(self, company_id: str, job_id: str, ticket_id: str, fields: dict[str, Any]) -> None:
        # Plain insert: the (company_id, job_id, id) primary key rejects a second ticket.
        await self.work_tickets.execute(
            "insert",
            self.work_tickets.table.insert({"id": ticket_id, "company_id": company_id, "job_id": job_id, **fields}),
        )

    async def update_work_ticket(self, company_id: str, job_id: str, ticket_id: str, fields: dict[str, Any]) -> None:
        await self.work_tickets.execute(
            "update",
            self.work_tickets.table.update(fields).eq("company_id", company_id).eq("job_id", job_id).eq("id", ticket_id),
        )

    async def list_work_tickets(self, company_id: str, job_id: str | None = None) -> list[RemoteDocument]:
        builder = self.work_tickets.table.select("*").eq("company_id", company_id)
        if job_id is not None:
            builder = builder.eq("job_id", job_id)
        rows = await self.work_tickets.execute("list", builder.order("createdAt", desc=True))
        return [_to_ticket_document(row) for row in rows]

    # -------------------------------------------------------------------------
    # companies/{companyId}/jobs/{jobId}/messages
    # -------------------------------------------------------------------------

    async def list_job_messages(self, company_id: str, job_id: str) -> list[RemoteDocument]:
        rows = await self.messages.execute(
            "list",
            self.messages.table.select("*").eq("company_id", company_id).eq("job_id", job_id).order("createdAt"),
        )
        return [_to_document(row) for row in rows]

    async def add_job_message(self, company_id: str, job_id: str, fields: dict[str, Any]) -> str:
        message_id = new_document_id()
        await self.messages.execute(
            "insert",
            self.messages.table.insert({"id": message_id, "company_id": company_id, "job_id": job_id, **fields}),
        )
        return message_id
