"""Tests for session resolution and routing."""

import json

import pytest

from traktr.auth.schemas import AuthIdentity
from traktr.config import StorageKeys
from traktr.modules.session.schemas import ResolvedSession, RoutingTarget
from traktr.modules.session.service import (
    SessionResolver,
    is_profile_complete,
    write_through_session,
)
from traktr.stores.local_cache import InMemorySessionCache
from traktr.stores.remote_store import InMemoryRemoteStore

KEYS = StorageKeys()
ALICE = AuthIdentity(uid="alice", email="alice@example.com")


def cache_with_session(**blob) -> InMemorySessionCache:
    return InMemorySessionCache(initial={KEYS.session: json.dumps(blob)})


def cached_blob(cache: InMemorySessionCache) -> dict:
    return json.loads(cache.snapshot()[KEYS.session])


class FailingWriteCache(InMemorySessionCache):
    async def set(self, key, value):
        raise OSError("disk full")


@pytest.mark.asyncio
async def test_no_identity_routes_to_login():
    resolver = SessionResolver(InMemorySessionCache(), InMemoryRemoteStore())

    resolution = await resolver.resolve(None)

    assert resolution.routing_target == RoutingTarget.LOGIN
    assert resolution.session is None


@pytest.mark.asyncio
async def test_remote_profile_overwrites_stale_local_role():
    cache = cache_with_session(uid="alice", role="independent", companyId=None)
    remote = InMemoryRemoteStore(users={"alice": {"role": "employee", "companyId": "C123", "name": "Alice"}})
    resolver = SessionResolver(cache, remote)

    resolution = await resolver.resolve(ALICE)

    assert resolution.session.role == "employee"
    assert resolution.session.company_id == "C123"
    assert resolution.source == "remote"

    blob = cached_blob(cache)
    assert blob["role"] == "employee"
    assert blob["companyId"] == "C123"


@pytest.mark.asyncio
async def test_resolution_is_idempotent():
    cache = InMemorySessionCache()
    remote = InMemoryRemoteStore(users={"alice": {"role": "owner", "companyId": "C1", "name": "Alice"}})
    resolver = SessionResolver(cache, remote)

    first = await resolver.resolve(ALICE)
    second = await resolver.resolve(ALICE)

    assert first == second
    assert first.routing_target == RoutingTarget.HOME


@pytest.mark.asyncio
async def test_owner_without_company_goes_to_create_company():
    remote = InMemoryRemoteStore(users={"alice": {"role": "owner", "companyId": None}})
    resolver = SessionResolver(InMemorySessionCache(), remote)

    resolution = await resolver.resolve(ALICE)

    assert resolution.routing_target == RoutingTarget.CREATE_COMPANY
    assert resolution.routing_target != RoutingTarget.HOME


@pytest.mark.asyncio
async def test_blank_company_id_counts_as_missing():
    remote = InMemoryRemoteStore(users={"alice": {"role": "owner", "companyId": "   "}})
    resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)
    assert resolution.routing_target == RoutingTarget.CREATE_COMPANY


@pytest.mark.asyncio
async def test_employee_without_company_goes_to_join_company():
    remote = InMemoryRemoteStore(users={"alice": {"role": "employee"}})
    resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)
    assert resolution.routing_target == RoutingTarget.JOIN_COMPANY


class TestEmployeeProfileGate:
    """Employee profile completion gate tests."""

    @pytest.mark.asyncio
    async def test_incomplete_profile_goes_to_profile_setup(self):
        remote = InMemoryRemoteStore(
            users={"alice": {"role": "employee", "companyId": "C1"}},
            company_users={("C1", "alice"): {"displayName": "Alice"}},
        )
        resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.PROFILE_SETUP
        assert resolution.profile_ready is False

    @pytest.mark.asyncio
    async def test_failed_profile_read_keeps_employee_out_of_home(self):
        remote = InMemoryRemoteStore(
            users={"alice": {"role": "employee", "companyId": "C1"}},
            company_users={("C1", "alice"): {"displayName": "Alice", "photoURL": "https://cdn/a.jpg"}},
            fail_operations={"get_company_user_profile"},
        )
        resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.PROFILE_SETUP

    @pytest.mark.asyncio
    async def test_complete_profile_goes_home(self):
        remote = InMemoryRemoteStore(
            users={"alice": {"role": "employee", "companyId": "C1"}},
            company_users={("C1", "alice"): {"displayName": "Alice", "photoURL": "https://cdn/a.jpg"}},
        )
        resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.HOME
        assert resolution.profile_ready is True

    @pytest.mark.asyncio
    async def test_gate_disabled_goes_home(self):
        remote = InMemoryRemoteStore(users={"alice": {"role": "employee", "companyId": "C1"}})
        resolver = SessionResolver(InMemorySessionCache(), remote, profile_gate=False)

        resolution = await resolver.resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.HOME
        assert "get_company_user_profile" not in remote.calls

    def test_profile_completion_needs_name_and_photo(self):
        assert is_profile_complete({"name": "A"}, {"photoUrl": "https://x"}) is True
        assert is_profile_complete({"displayName": "A"}) is False
        assert is_profile_complete({"photoURL": "https://x"}, None) is False
        assert is_profile_complete({"displayName": " ", "photoURL": "https://x"}) is False


class TestDegradation:
    """Remote failure and missing profile tests."""

    @pytest.mark.asyncio
    async def test_remote_failure_uses_local_session(self):
        cache = cache_with_session(uid="alice", role="owner", companyId="C9", name="Alice")
        remote = InMemoryRemoteStore(fail_operations={"get_user"})

        resolution = await SessionResolver(cache, remote).resolve(ALICE)

        assert resolution.source == "local"
        assert resolution.remote_available is False
        assert resolution.session.company_id == "C9"
        assert resolution.routing_target == RoutingTarget.HOME

    @pytest.mark.asyncio
    async def test_remote_failure_without_local_session_routes_to_login(self):
        remote = InMemoryRemoteStore(fail_operations={"get_user"})

        resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.LOGIN
        assert resolution.remote_available is False

    @pytest.mark.asyncio
    async def test_missing_profile_synthesizes_independent_session(self):
        cache = InMemorySessionCache()

        resolution = await SessionResolver(cache, InMemoryRemoteStore()).resolve(ALICE)

        assert resolution.source == "synthesized"
        assert resolution.session.role == "independent"
        assert resolution.session.email == "alice@example.com"
        assert resolution.routing_target == RoutingTarget.HOME
        assert KEYS.session not in cache.snapshot()

    @pytest.mark.asyncio
    async def test_missing_profile_prefers_local_session(self):
        cache = cache_with_session(uid="alice", role="employee", companyId=None)

        resolution = await SessionResolver(cache, InMemoryRemoteStore()).resolve(ALICE)

        assert resolution.source == "local"
        assert resolution.routing_target == RoutingTarget.JOIN_COMPANY

    @pytest.mark.asyncio
    async def test_other_accounts_blob_is_ignored(self):
        cache = cache_with_session(uid="bob", role="owner", companyId="BOBCO")

        resolution = await SessionResolver(cache, InMemoryRemoteStore()).resolve(ALICE)

        assert resolution.source == "synthesized"
        assert resolution.session.company_id is None

    @pytest.mark.asyncio
    async def test_corrupt_cache_blob_is_treated_as_absent(self):
        cache = InMemorySessionCache(initial={KEYS.session: "{not json"})
        remote = InMemoryRemoteStore(fail_operations={"get_user"})

        resolution = await SessionResolver(cache, remote).resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.LOGIN

    @pytest.mark.asyncio
    async def test_write_through_failure_does_not_fail_resolution(self):
        remote = InMemoryRemoteStore(users={"alice": {"role": "owner", "companyId": "C1"}})

        resolution = await SessionResolver(FailingWriteCache(), remote).resolve(ALICE)

        assert resolution.routing_target == RoutingTarget.HOME


@pytest.mark.asyncio
async def test_unknown_role_collapses_to_independent():
    remote = InMemoryRemoteStore(users={"alice": {"role": "admin", "companyId": "C1"}})
    resolution = await SessionResolver(InMemorySessionCache(), remote).resolve(ALICE)
    assert resolution.session.role == "independent"


@pytest.mark.asyncio
async def test_write_through_session_merges_same_uid_only():
    cache = cache_with_session(uid="alice", role="employee", name="Alice")
    blob = await write_through_session(cache, "alice", companyId="C1")
    assert blob == {"uid": "alice", "role": "employee", "name": "Alice", "companyId": "C1"}

    other = cache_with_session(uid="bob", role="owner")
    blob = await write_through_session(other, "alice", companyId="C2")
    assert blob == {"uid": "alice", "companyId": "C2"}


def test_cache_blob_decoding_without_uid_uses_principal():
    session = ResolvedSession.from_cache({"role": "owner", "companyId": "C1"}, uid="alice")
    assert session.uid == "alice"
    assert ResolvedSession.from_cache({"role": "owner"}) is None
