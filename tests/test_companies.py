"""Tests for company create/join and employee profile completion."""

import json
import random

import pytest

from traktr.auth.schemas import AuthIdentity
from traktr.config import StorageKeys
from traktr.exceptions import (
    ExternalServiceException,
    JoinCodeNotFoundException,
    NotFoundException,
    ValidationException,
)
from traktr.modules.companies.service import (
    CompaniesService,
    make_join_code,
    normalize_join_code,
)
from traktr.modules.session.schemas import ResolvedSession, RoutingTarget
from traktr.modules.session.service import SessionResolver
from traktr.stores.local_cache import InMemorySessionCache
from traktr.stores.remote_store import InMemoryRemoteStore

KEYS = StorageKeys()
OWNER = AuthIdentity(uid="owner-1", email="boss@example.com")
WORKER = AuthIdentity(uid="worker-1", email="worker@example.com")


def cached_blob(cache: InMemorySessionCache) -> dict:
    return json.loads(cache.snapshot()[KEYS.session])


class TestJoinCodes:
    """Join code helpers."""

    def test_normalize_join_code(self):
        assert normalize_join_code("  traktr-1234 ") == "TRAKTR-1234"
        assert normalize_join_code(None) == ""

    def test_make_join_code_format(self):
        code = make_join_code(random.Random(7))
        assert code.startswith("TRAKTR-")
        assert len(code) == len("TRAKTR-") + 4

    @pytest.mark.asyncio
    async def test_taken_codes_are_retried(self):
        taken = make_join_code(random.Random(1))
        remote = InMemoryRemoteStore(companies={"C0": {"name": "Existing", "joinCode": taken}})
        service = CompaniesService(InMemorySessionCache(), remote, rng=random.Random(1))

        code = await service.generate_unique_join_code()

        assert code != taken
        assert remote.calls.count("find_companies_by_join_code") >= 2


class TestCreateCompany:
    """createCompany tests."""

    @pytest.mark.asyncio
    async def test_create_binds_owner_and_writes_through(self):
        cache = InMemorySessionCache()
        remote = InMemoryRemoteStore()
        service = CompaniesService(cache, remote, rng=random.Random(3))

        company = await service.create_company(OWNER, "  Sparks Electric ")

        assert company.name == "Sparks Electric"
        assert company.owner_uid == "owner-1"
        assert remote.users["owner-1"]["companyId"] == company.company_id
        assert remote.users["owner-1"]["role"] == "owner"
        assert remote.companies[company.company_id]["joinCode"] == company.join_code
        assert (company.company_id, "owner-1") in remote.members

        blob = cached_blob(cache)
        assert blob["companyId"] == company.company_id
        assert blob["role"] == "owner"

    @pytest.mark.asyncio
    async def test_next_resolution_goes_home(self):
        cache = InMemorySessionCache()
        remote = InMemoryRemoteStore(users={"owner-1": {"role": "owner"}})
        resolver = SessionResolver(cache, remote)
        assert (await resolver.resolve(OWNER)).routing_target == RoutingTarget.CREATE_COMPANY

        await CompaniesService(cache, remote).create_company(OWNER, "Sparks")

        assert (await resolver.resolve(OWNER)).routing_target == RoutingTarget.HOME

    @pytest.mark.asyncio
    async def test_short_name_rejected(self):
        service = CompaniesService(InMemorySessionCache(), InMemoryRemoteStore())
        with pytest.raises(ValidationException):
            await service.create_company(OWNER, " A ")

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_cache_untouched(self):
        cache = InMemorySessionCache()
        remote = InMemoryRemoteStore(fail_operations={"create_company"})

        with pytest.raises(ExternalServiceException):
            await CompaniesService(cache, remote).create_company(OWNER, "Sparks")

        assert KEYS.session not in cache.snapshot()


class TestJoinCompany:
    """joinCompany tests."""

    @pytest.mark.asyncio
    async def test_join_is_case_insensitive_and_writes_through(self):
        cache = InMemorySessionCache(initial={KEYS.session: json.dumps({"uid": "worker-1", "role": "employee"})})
        remote = InMemoryRemoteStore(
            users={"worker-1": {"role": "employee"}},
            companies={"C1": {"name": "Sparks", "joinCode": "TRAKTR-4321"}},
        )

        joined = await CompaniesService(cache, remote).join_company(WORKER, " traktr-4321 ")

        assert joined.company_id == "C1"
        assert joined.company_name == "Sparks"
        assert remote.users["worker-1"]["companyId"] == "C1"
        blob = cached_blob(cache)
        assert blob["companyId"] == "C1"
        assert blob["role"] == "employee"

    @pytest.mark.asyncio
    async def test_unknown_code_is_not_found(self):
        remote = InMemoryRemoteStore(companies={"C1": {"name": "Sparks", "joinCode": "TRAKTR-4321"}})

        with pytest.raises(JoinCodeNotFoundException):
            await CompaniesService(InMemorySessionCache(), remote).join_company(WORKER, "TRAKTR-0000")

        assert "update_user" not in remote.calls

    @pytest.mark.asyncio
    async def test_lookup_failure_is_a_service_error(self):
        remote = InMemoryRemoteStore(fail_operations={"find_companies_by_join_code"})

        with pytest.raises(ExternalServiceException):
            await CompaniesService(InMemorySessionCache(), remote).join_company(WORKER, "TRAKTR-4321")

    @pytest.mark.asyncio
    async def test_short_code_rejected(self):
        with pytest.raises(ValidationException):
            await CompaniesService(InMemorySessionCache(), InMemoryRemoteStore()).join_company(WORKER, "abc")

    @pytest.mark.asyncio
    async def test_next_resolution_sees_company(self):
        cache = InMemorySessionCache()
        remote = InMemoryRemoteStore(
            users={"worker-1": {"role": "employee"}},
            companies={"C1": {"name": "Sparks", "joinCode": "TRAKTR-4321"}},
        )
        resolver = SessionResolver(cache, remote)
        assert (await resolver.resolve(WORKER)).routing_target == RoutingTarget.JOIN_COMPANY

        await CompaniesService(cache, remote).join_company(WORKER, "TRAKTR-4321")
        resolution = await resolver.resolve(WORKER)

        assert resolution.session.company_id == "C1"
        assert resolution.routing_target == RoutingTarget.PROFILE_SETUP


class TestEmployeeProfile:
    """Employee profile completion tests."""

    @pytest.mark.asyncio
    async def test_completion_unlocks_home(self):
        cache = InMemorySessionCache()
        remote = InMemoryRemoteStore(users={"worker-1": {"role": "employee", "companyId": "C1"}})
        resolver = SessionResolver(cache, remote)
        assert (await resolver.resolve(WORKER)).routing_target == RoutingTarget.PROFILE_SETUP

        result = await CompaniesService(cache, remote).complete_employee_profile(
            WORKER, "Wren Worker", "https://cdn/wren.jpg"
        )

        assert result.company_id == "C1"
        assert remote.company_users[("C1", "worker-1")]["displayName"] == "Wren Worker"
        assert (await resolver.resolve(WORKER)).routing_target == RoutingTarget.HOME

    @pytest.mark.asyncio
    async def test_inline_photo_rejected(self):
        service = CompaniesService(InMemorySessionCache(), InMemoryRemoteStore())
        with pytest.raises(ValidationException):
            await service.complete_employee_profile(WORKER, "Wren", "data:image/png;base64,AA")

    @pytest.mark.asyncio
    async def test_requires_company(self):
        remote = InMemoryRemoteStore(users={"worker-1": {"role": "employee"}})
        with pytest.raises(ValidationException):
            await CompaniesService(InMemorySessionCache(), remote).complete_employee_profile(
                WORKER, "Wren", "https://cdn/wren.jpg"
            )


class TestCurrentCompany:
    """Current company read tests."""

    @pytest.mark.asyncio
    async def test_returns_join_code(self):
        remote = InMemoryRemoteStore(companies={"C1": {"name": "Sparks", "joinCode": "TRAKTR-4321", "ownerUid": "owner-1"}})
        session = ResolvedSession(uid="owner-1", role="owner", company_id="C1")

        company = await CompaniesService(InMemorySessionCache(), remote).get_current_company(session)

        assert company.join_code == "TRAKTR-4321"
        assert company.owner_uid == "owner-1"

    @pytest.mark.asyncio
    async def test_without_company_is_not_found(self):
        session = ResolvedSession(uid="solo", role="independent")
        with pytest.raises(NotFoundException):
            await CompaniesService(InMemorySessionCache(), InMemoryRemoteStore()).get_current_company(session)
