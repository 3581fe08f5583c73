"""
API tests for Traktr.
"""

import pytest
from fastapi.testclient import TestClient

from traktr import deps
from traktr.config import get_settings
from traktr.deps import get_remote_store, reset_backends
from traktr.main import app
from traktr.stores.remote_store import InMemoryRemoteStore


@pytest.fixture
def remote(monkeypatch):
    """In-memory backends, dev tokens and a fresh remote store per test."""
    monkeypatch.setenv("TRAKTR_USE_IN_MEMORY_BACKENDS", "true")
    monkeypatch.setenv("AUTH_INSECURE_DEV_BYPASS", "true")
    get_settings.cache_clear()
    reset_backends()

    store = InMemoryRemoteStore()
    app.dependency_overrides[get_remote_store] = lambda: store
    yield store

    app.dependency_overrides.clear()
    reset_backends()
    get_settings.cache_clear()


@pytest.fixture
def client(remote):
    return TestClient(app)


def auth(uid: str, device: str | None = None) -> dict:
    headers = {"Authorization": f"Bearer dev:{uid}"}
    if device:
        headers["X-Device-ID"] = device
    return headers


class TestHealthEndpoint:
    """Health endpoint tests."""

    def test_health_check(self, client):
        """Test health check returns healthy status."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["in_memory_backends"] is True
        assert "features" in data

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestSessionEndpoint:
    """Session resolution endpoint tests."""

    def test_anonymous_routes_to_login(self, client):
        response = client.post("/session/resolve")

        assert response.status_code == 200
        assert response.json()["routing_target"] == "LOGIN"

    def test_invalid_token_routes_to_login(self, client):
        response = client.post("/session/resolve", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.json()["routing_target"] == "LOGIN"

    def test_new_user_is_independent(self, client):
        response = client.post("/session/resolve", headers=auth("solo"))

        data = response.json()
        assert data["routing_target"] == "HOME"
        assert data["source"] == "synthesized"
        assert data["session"]["role"] == "independent"

    def test_owner_without_company(self, client, remote):
        remote.users["boss"] = {"role": "owner"}

        response = client.post("/session/resolve", headers=auth("boss"))

        assert response.json()["routing_target"] == "CREATE_COMPANY"

    def test_sign_out_forgets_cached_session(self, client, remote):
        remote.users["boss"] = {"role": "owner", "companyId": "C1"}
        assert client.post("/session/resolve", headers=auth("boss")).json()["source"] == "remote"

        assert client.delete("/session", headers=auth("boss")).status_code == 204

        remote.fail_operations.add("get_user")
        response = client.post("/session/resolve", headers=auth("boss"))
        assert response.json()["routing_target"] == "LOGIN"


class TestIndependentJobs:
    """Local job list over HTTP."""

    def test_first_listing_is_seeded(self, client):
        response = client.get("/jobs", headers=auth("solo"))

        assert response.status_code == 200
        data = response.json()
        assert data["strategy"] == "independent"
        assert [j["id"] for j in data["items"]] == ["1"]
        assert data["counts"] == {"total": 1, "open": 1, "done": 0}

    def test_create_toggle_trash_restore(self, client):
        created = client.post("/jobs", json={"title": "Install outlet", "laborHours": 1, "hourlyRate": 75}, headers=auth("solo"))
        assert created.status_code == 201
        job_id = created.json()["id"]

        toggled = client.post(f"/jobs/{job_id}/toggle", headers=auth("solo"))
        assert toggled.json()["isDone"] is True

        done = client.get("/jobs", params={"status": "done"}, headers=auth("solo")).json()
        assert [j["id"] for j in done["items"]] == [job_id]

        assert client.delete(f"/jobs/{job_id}", headers=auth("solo")).status_code == 200
        trash = client.get("/jobs/trash", headers=auth("solo")).json()
        assert [j["id"] for j in trash] == [job_id]

        restored = client.post(f"/jobs/trash/{job_id}/restore", headers=auth("solo"))
        assert restored.status_code == 200

        client.delete(f"/jobs/{job_id}", headers=auth("solo"))
        assert client.delete(f"/jobs/trash/{job_id}", headers=auth("solo")).status_code == 204
        assert client.get("/jobs/trash", headers=auth("solo")).json() == []

    def test_search_and_sort(self, client):
        client.post("/jobs", json={"title": "Attic fan", "clientName": "Ruiz"}, headers=auth("solo"))
        client.post("/jobs", json={"title": "Breaker swap"}, headers=auth("solo"))

        found = client.get("/jobs", params={"q": "ruiz"}, headers=auth("solo")).json()
        assert [j["title"] for j in found["items"]] == ["Attic fan"]

        assert client.put("/jobs/sort", json={"option": "Z-A"}, headers=auth("solo")).status_code == 204
        listed = client.get("/jobs", headers=auth("solo")).json()
        assert listed["sort_option"] == "Z-A"
        titles = [j["title"] for j in listed["items"]]
        assert titles == sorted(titles, key=str.casefold, reverse=True)

    def test_devices_have_separate_local_lists(self, client):
        client.post("/jobs", json={"title": "Phone only"}, headers=auth("solo", device="phone"))

        tablet = client.get("/jobs", headers=auth("solo", device="tablet")).json()
        assert [j["id"] for j in tablet["items"]] == ["1"]

    def test_unknown_job_is_404(self, client):
        response = client.post("/jobs/missing/toggle", headers=auth("solo"))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_anonymous_job_list_is_401(self, client):
        response = client.get("/jobs")
        assert response.status_code == 401

    def test_blank_title_is_rejected(self, client):
        response = client.post("/jobs", json={"title": ""}, headers=auth("solo"))
        assert response.status_code == 422


class TestCompanyFlow:
    """Owner and employee flows over HTTP."""

    def test_owner_creates_company_and_submits_job(self, client, remote):
        remote.users["boss"] = {"role": "owner"}

        created = client.post("/companies", json={"name": "Sparks Electric"}, headers=auth("boss"))
        assert created.status_code == 201
        company = created.json()
        assert company["joinCode"].startswith("TRAKTR-")

        current = client.get("/companies/current", headers=auth("boss")).json()
        assert current["joinCode"] == company["joinCode"]

        job = client.post(
            "/jobs",
            json={"title": "Service upgrade", "photoUris": ["https://cdn/a.jpg", "data:image/png;base64,AA"]},
            headers=auth("boss"),
        )
        assert job.status_code == 201
        assert job.json()["photoUris"] == ["https://cdn/a.jpg"]

        listed = client.get("/jobs", headers=auth("boss")).json()
        assert listed["strategy"] == "owner"
        assert [j["title"] for j in listed["items"]] == ["Service upgrade"]

    def test_employee_join_profile_and_jobs(self, client, remote):
        remote.users["worker"] = {"role": "employee"}
        remote.companies["C1"] = {"name": "Sparks", "joinCode": "TRAKTR-1111"}
        remote.jobs["C1"] = {
            "J1": {"title": "Legacy", "assignedToUid": "worker"},
            "J2": {"title": "Current", "assignedToUids": ["worker"]},
            "J3": {"title": "Someone else", "assignedToUids": ["other"]},
        }

        assert client.post("/session/resolve", headers=auth("worker")).json()["routing_target"] == "JOIN_COMPANY"

        joined = client.post("/companies/join", json={"joinCode": "traktr-1111"}, headers=auth("worker"))
        assert joined.status_code == 200
        assert joined.json()["companyId"] == "C1"
        assert client.post("/session/resolve", headers=auth("worker")).json()["routing_target"] == "PROFILE_SETUP"

        profile = client.post(
            "/companies/profile",
            json={"displayName": "Wren", "photoURL": "https://cdn/wren.jpg"},
            headers=auth("worker"),
        )
        assert profile.status_code == 200

        listed = client.get("/jobs", headers=auth("worker")).json()
        assert listed["strategy"] == "employee"
        assert sorted(j["id"] for j in listed["items"]) == ["J1", "J2"]

    def test_employee_cannot_create_jobs(self, client, remote):
        remote.users["worker"] = {"role": "employee", "companyId": "C1"}

        response = client.post("/jobs", json={"title": "Nope"}, headers=auth("worker"))

        assert response.status_code == 403

    def test_unknown_join_code(self, client, remote):
        remote.users["worker"] = {"role": "employee"}

        response = client.post("/companies/join", json={"joinCode": "TRAKTR-9999"}, headers=auth("worker"))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "JOIN_CODE_NOT_FOUND"

    def test_company_routes_require_auth(self, client):
        response = client.post("/companies", json={"name": "Sparks"})
        assert response.status_code == 401

    def test_remote_outage_is_502(self, client, remote):
        remote.users["boss"] = {"role": "owner"}
        remote.fail_operations.add("find_companies_by_join_code")

        response = client.post("/companies", json={"name": "Sparks"}, headers=auth("boss"))

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "EXTERNAL_SERVICE_ERROR"


class TestAccountIsolation:
    """Local state is scoped to the signed-in account as well as the device."""

    def test_two_accounts_on_one_device_do_not_share_jobs(self, client):
        created = client.post("/jobs", json={"title": "alice secret"}, headers=auth("alice"))
        assert created.status_code == 201

        bob = client.get("/jobs", headers=auth("bob")).json()
        assert [j["id"] for j in bob["items"]] == ["1"]
        assert client.get("/jobs/trash", headers=auth("bob")).json() == []

        alice = client.get("/jobs", headers=auth("alice")).json()
        assert created.json()["id"] in [j["id"] for j in alice["items"]]

    def test_registries_are_keyed_by_uid_and_device(self, client):
        client.get("/jobs", headers=auth("alice"))
        client.get("/jobs", headers=auth("bob", device="phone"))

        assert "alice:default" in deps._caches
        assert "bob:phone" in deps._caches
        assert "alice:default" in deps._providers
        assert "bob:phone" in deps._providers

    def test_registries_stay_bounded(self, client, monkeypatch):
        monkeypatch.setenv("DEVICE_REGISTRY_SIZE", "2")
        get_settings.cache_clear()

        for n in range(5):
            assert client.get("/jobs", headers=auth("solo", device=f"device-{n}")).status_code == 200

        assert len(deps._caches) <= 2
        assert len(deps._providers) <= 2
        assert "solo:device-4" in deps._caches


class TestVerifiedWrites:
    """Writes need a role confirmed by the remote store."""

    def test_cached_role_cannot_write(self, client, remote):
        remote.users["boss"] = {"role": "owner", "companyId": "C1"}
        assert client.post("/session/resolve", headers=auth("boss")).json()["source"] == "remote"

        remote.fail_operations.add("get_user")
        response = client.post("/jobs", json={"title": "Offline submit"}, headers=auth("boss"))

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "EXTERNAL_SERVICE_ERROR"
        assert remote.jobs.get("C1", {}) == {}

    def test_cached_role_can_still_read(self, client, remote):
        remote.users["boss"] = {"role": "owner", "companyId": "C1"}
        remote.jobs["C1"] = {"J1": {"title": "Service upgrade"}}
        client.post("/session/resolve", headers=auth("boss"))

        remote.fail_operations.add("get_user")
        response = client.get("/jobs", headers=auth("boss"))

        assert response.status_code == 200
        assert [j["id"] for j in response.json()["items"]] == ["J1"]


class TestJobTotals:
    """Cost fields and the derived total."""

    def test_total_is_returned(self, client):
        created = client.post(
            "/jobs",
            json={"title": "Subpanel", "laborHours": 2, "hourlyRate": 50, "materialCost": 10},
            headers=auth("solo"),
        )
        assert created.json()["total"] == 110

        listed = client.get("/jobs", headers=auth("solo")).json()
        job = next(j for j in listed["items"] if j["id"] == created.json()["id"])
        assert job["total"] == 110

    def test_overflowing_cost_is_rejected(self, client):
        response = client.post(
            "/jobs",
            content='{"title": "Overflow", "laborHours": 1e999}',
            headers={**auth("solo"), "Content-Type": "application/json"},
        )

        assert response.status_code == 422
        listed = client.get("/jobs", headers=auth("solo")).json()
        assert [j["id"] for j in listed["items"]] == ["1"]


@pytest.fixture
def crew(remote):
    """Owner `boss` and employee `worker` in company C1, with J1 assigned to the worker."""
    remote.users["boss"] = {"role": "owner", "companyId": "C1", "name": "Vic"}
    remote.users["worker"] = {"role": "employee", "companyId": "C1", "name": "Wren"}
    remote.companies["C1"] = {"name": "Sparks", "joinCode": "TRAKTR-1111"}
    remote.jobs["C1"] = {
        "J1": {"title": "Panel swap", "assignedToUids": ["worker"]},
        "J2": {"title": "Not assigned", "assignedToUids": ["other"]},
    }
    return remote


class TestWorkTickets:
    """Daily work tickets over HTTP."""

    def test_submit_review_and_inbox(self, client, crew):
        submitted = client.post(
            "/jobs/J1/tickets",
            json={"workPerformed": "Swapped the panel", "laborHours": 7},
            headers=auth("worker"),
        )
        assert submitted.status_code == 201
        ticket = submitted.json()
        assert ticket["id"].endswith("_worker")
        assert ticket["jobTitle"] == "Panel swap"

        again = client.post(
            "/jobs/J1/tickets",
            json={"workPerformed": "Changed my mind", "laborHours": 1},
            headers=auth("worker"),
        )
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "CONFLICT"

        inbox = client.get("/tickets/inbox", headers=auth("boss")).json()
        assert [t["id"] for t in inbox["items"]] == [ticket["id"]]
        assert inbox["items"][0]["workPerformed"] == "Swapped the panel"
        assert inbox["unreviewed"] == 1

        reviewed = client.post(f"/jobs/J1/tickets/{ticket['id']}/review", headers=auth("boss"))
        assert reviewed.status_code == 200
        assert reviewed.json()["isReviewed"] is True

        assert client.get("/tickets/inbox", headers=auth("boss")).json()["unreviewed"] == 0

    def test_employee_has_no_inbox(self, client, crew):
        assert client.get("/tickets/inbox", headers=auth("worker")).status_code == 403

    def test_unassigned_job_is_forbidden(self, client, crew):
        response = client.post(
            "/jobs/J2/tickets",
            json={"workPerformed": "Helped out", "laborHours": 2},
            headers=auth("worker"),
        )
        assert response.status_code == 403


class TestJobChat:
    """Per-job message threads over HTTP."""

    def test_owner_posts_and_employee_reads(self, client, crew):
        posted = client.post("/jobs/J1/messages", json={"text": "Need more wire?"}, headers=auth("boss"))
        assert posted.status_code == 201
        assert posted.json()["role"] == "boss"
        assert posted.json()["intent"] == "materials"

        thread = client.get("/jobs/J1/messages", headers=auth("worker"))
        assert thread.status_code == 200
        assert [m["text"] for m in thread.json()] == ["Need more wire?"]

    def test_unassigned_employee_cannot_read(self, client, crew):
        assert client.get("/jobs/J2/messages", headers=auth("worker")).status_code == 403
