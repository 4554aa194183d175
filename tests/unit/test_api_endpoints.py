"""
Tests for the HTTP API
Scans, queue workflow and client directory over in-memory repositories
"""
import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

from callqueue.api.v1 import dependencies  # noqa: E402
from callqueue.domain.models.call_record import CallStatus, CallType, Reservation  # noqa: E402
from callqueue.domain.models.client import Client  # noqa: E402
from callqueue.infrastructure.storage.checkpoint_store import InMemoryCheckpointStore  # noqa: E402
from callqueue.infrastructure.storage.supabase_repository import StoreError  # noqa: E402
from callqueue.main import app  # noqa: E402
from callqueue.services.call_scanner import CallLogScanner  # noqa: E402
from callqueue.services.queue_service import LifecycleService, QueueService  # noqa: E402

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
AGENT = {"X-Agent-Id": "alice"}


@pytest.fixture
def api(client_repo, call_repo, note_repo):
    checkpoints = InMemoryCheckpointStore({"alice": datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)})
    scanner = CallLogScanner(client_repo, call_repo, checkpoints, clock=lambda: NOW)

    app.dependency_overrides[dependencies.get_client_repository] = lambda: client_repo
    app.dependency_overrides[dependencies.get_queue_service] = \
        lambda: QueueService(call_repo, client_repo, note_repo, clock=lambda: NOW)
    app.dependency_overrides[dependencies.get_lifecycle_service] = \
        lambda: LifecycleService(call_repo, note_repo, clock=lambda: NOW)
    app.dependency_overrides[dependencies.get_call_scanner] = lambda: scanner

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the /health endpoint"""

    @pytest.mark.asyncio
    async def test_health_endpoint_returns_healthy(self):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_root_endpoint(self):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "Shared Missed-Call Queue"

    @pytest.mark.asyncio
    async def test_ready_with_store_configured(self):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["errors"] == []

    @pytest.mark.asyncio
    async def test_not_ready_without_store(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_SERVICE_KEY")
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["errors"] == ["SUPABASE_SERVICE_KEY"]


class TestAgentHeader:
    """Tests for the X-Agent-Id requirement"""

    def test_missing_agent_rejected(self, api):
        response = api.get("/api/v1/calls/queue")
        assert response.status_code == 401

    def test_blank_agent_rejected(self, api):
        response = api.get("/api/v1/calls/queue", headers={"X-Agent-Id": "  "})
        assert response.status_code == 401


class TestScansEndpoint:
    """Tests for /api/v1/scans"""

    def test_scan_creates_record(self, api, call_repo):
        payload = {
            "events": [
                {"phone_number": "+48 123 456 789", "call_type": "MISSED", "timestamp": 1705314600000},
                {"phone_number": "+48 123 456 789", "call_type": 3, "timestamp": "2024-01-15T10:30:10Z"},
            ]
        }

        response = api.post("/api/v1/scans", json=payload, headers=AGENT)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["owner_id"] == "alice"
        assert data["created"] == 1
        assert data["duplicates"] == 1
        assert len(call_repo.rows) == 1

    def test_scan_without_permission(self, api, call_repo):
        payload = {
            "events": [{"phone_number": "123456789", "call_type": "MISSED", "timestamp": 1705314600000}],
            "permission_granted": False,
        }

        response = api.post("/api/v1/scans", json=payload, headers=AGENT)

        assert response.status_code == 200
        assert response.json()["permission_granted"] is False
        assert call_repo.rows == {}

    def test_detect_lines(self, api):
        payload = {
            "events": [
                {"phone_number": "1", "call_type": "MISSED", "timestamp": 1, "phone_account_id": "acc-a"},
                {"phone_number": "2", "call_type": "MISSED", "timestamp": 2, "subscription_id": 2},
            ]
        }

        response = api.post("/api/v1/scans/lines", json=payload, headers=AGENT)

        assert response.status_code == 200
        assert response.json() == [
            {"id": "acc-a", "display_name": "SIM 1"},
            {"id": "2", "display_name": "SIM 2"},
        ]


class TestCallsEndpoints:
    """Tests for /api/v1/calls"""

    def test_queue_groups(self, api, call_repo, client_repo, record_factory):
        client_repo.rows["A"] = Client(id="A", phone="123456789", name="Jan Kowalski")
        call_repo.add(
            record_factory("a1", T1, client_id="A", recipients=["alice", "bob"]),
            record_factory("a2", T1.replace(minute=40), client_id="A", recipients=["bob"]),
        )

        response = api.get("/api/v1/calls/queue", headers=AGENT)

        assert response.status_code == 200
        groups = response.json()
        assert len(groups) == 1
        assert groups[0]["client"]["name"] == "Jan Kowalski"
        assert groups[0]["call_count"] == 2
        assert groups[0]["is_multi_agent"] is True
        assert groups[0]["representative"]["id"] == "a2"

    def test_reserve_group_then_conflict(self, api, call_repo, record_factory):
        call_repo.add(record_factory("a1", T1, client_id="A"))

        first = api.post("/api/v1/calls/groups/reserve", json={"client_id": "A"}, headers=AGENT)
        second = api.post("/api/v1/calls/groups/reserve", json={"client_id": "A"},
                          headers={"X-Agent-Id": "bob"})

        assert first.status_code == 200
        assert first.json()["applied_ids"] == ["a1"]
        assert second.status_code == 409
        assert call_repo.record("a1").reservation.by == "alice"

    def test_group_action_requires_caller(self, api):
        response = api.post("/api/v1/calls/groups/complete", json={}, headers=AGENT)
        assert response.status_code == 400

    def test_reserved_by_me(self, api, call_repo, record_factory):
        call_repo.add(
            record_factory("a1", T1, status=CallStatus.RESERVED, client_id="A",
                           reservation=Reservation(by="alice", at=T1)),
            record_factory("b1", T1, status=CallStatus.RESERVED, client_id="B",
                           reservation=Reservation(by="bob", at=T1)),
        )

        response = api.get("/api/v1/calls/reserved", headers=AGENT)

        assert [r["id"] for r in response.json()] == ["a1"]

    def test_complete_then_note(self, api, call_repo, note_repo, record_factory):
        call_repo.add(
            record_factory("old", T1.replace(minute=10), status=CallStatus.COMPLETED, client_id="A"),
            record_factory("a1", T1, status=CallStatus.RESERVED, client_id="A",
                           reservation=Reservation(by="alice", at=T1)),
        )

        completed = api.post("/api/v1/calls/groups/complete", json={"client_id": "A"}, headers=AGENT)
        pending = api.get("/api/v1/calls/notes/pending", headers=AGENT)
        noted = api.post("/api/v1/calls/a1/notes", json={"content": " Called back "}, headers=AGENT)

        assert completed.status_code == 200
        assert sorted(r["id"] for r in pending.json()) == ["a1", "old"]
        assert noted.status_code == 200
        assert noted.json()["merged_ids"] == ["old"]
        assert noted.json()["note"]["transcription"] == "Called back"
        assert noted.json()["note"]["created_by"] == "alice"
        assert call_repo.record("old").type == CallType.MERGED

    def test_empty_note_rejected(self, api, call_repo, record_factory):
        call_repo.add(record_factory("a1", T1, status=CallStatus.COMPLETED, client_id="A"))

        response = api.post("/api/v1/calls/a1/notes", json={"content": "   "}, headers=AGENT)

        assert response.status_code == 400

    def test_note_on_missed_call_conflict(self, api, call_repo, record_factory):
        call_repo.add(
            record_factory("old", T1.replace(minute=10), status=CallStatus.COMPLETED, client_id="A"),
            record_factory("a1", T1, client_id="A"),
        )

        response = api.post("/api/v1/calls/a1/notes", json={"content": "Called back"}, headers=AGENT)

        assert response.status_code == 409
        assert call_repo.record("old").type == CallType.COMPLETED

    def test_note_for_unknown_call(self, api):
        response = api.post("/api/v1/calls/missing/notes", json={"content": "x"}, headers=AGENT)
        assert response.status_code == 404

    def test_skip(self, api, call_repo, note_repo, record_factory):
        call_repo.add(
            record_factory("c1", T1, status=CallStatus.COMPLETED, client_id="A"),
            record_factory("c2", T1, status=CallStatus.COMPLETED, client_id="B"),
        )
        note_repo.mark_noted("c2")

        skipped = api.post("/api/v1/calls/c1/skip", headers=AGENT)
        refused = api.post("/api/v1/calls/c2/skip", headers=AGENT)
        missing = api.post("/api/v1/calls/nope/skip", headers=AGENT)

        assert skipped.status_code == 200
        assert skipped.json() == {"call_id": "c1", "applied": True, "reason": None}
        assert refused.status_code == 409
        assert missing.status_code == 404

    def test_store_failure_is_500(self, api, call_repo):
        async def broken(limit=200):
            raise StoreError("database offline")
        call_repo.list_queue = broken

        response = api.get("/api/v1/calls/queue", headers=AGENT)

        assert response.status_code == 500
        assert "database offline" in response.json()["detail"]

    def test_clear_queue(self, api, call_repo, record_factory):
        call_repo.add(record_factory("a1", T1, client_id="A"))

        response = api.delete("/api/v1/calls", headers=AGENT)

        assert response.json() == {"deleted": 1}


class TestClientsEndpoints:
    """Tests for /api/v1/clients"""

    def test_create_and_list(self, api, client_repo):
        created = api.post(
            "/api/v1/clients",
            json={"phone": "+48 123 456 789", "name": "Jan Kowalski"},
            headers=AGENT,
        )
        listed = api.get("/api/v1/clients", headers=AGENT)

        assert created.status_code == 201
        assert created.json()["phone"] == "123456789"
        assert [c["name"] for c in listed.json()] == ["Jan Kowalski"]

    def test_duplicate_phone_conflict(self, api, client_repo):
        client_repo.rows["A"] = Client(id="A", phone="123456789")

        response = api.post("/api/v1/clients", json={"phone": "0048 123 456 789"}, headers=AGENT)

        assert response.status_code == 409

    def test_phone_without_digits(self, api):
        response = api.post("/api/v1/clients", json={"phone": "unknown"}, headers=AGENT)
        assert response.status_code == 400

    def test_timeline(self, api, client_repo, call_repo, record_factory):
        client_repo.rows["A"] = Client(id="A", phone="123456789")
        call_repo.add(
            record_factory("a1", T1, client_id="A"),
            record_factory("a2", T1.replace(minute=45), status=CallStatus.COMPLETED, client_id="A"),
        )

        response = api.get("/api/v1/clients/A/timeline", headers=AGENT)

        assert response.status_code == 200
        assert [c["id"] for c in response.json()["calls"]] == ["a2", "a1"]

    def test_timeline_unknown_client(self, api):
        response = api.get("/api/v1/clients/nope/timeline", headers=AGENT)
        assert response.status_code == 404
