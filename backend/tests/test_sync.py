# Overview: Pytest coverage for the offline write queue.

import pytest

from pdv.errors import ConflictError
from pdv.services import sync_service


@pytest.fixture
def offline(app):
    app.config["OFFLINE_MODE"] = True
    yield app
    app.config["OFFLINE_MODE"] = False


class TestOfflineQueueHook:

    def test_successful_writes_are_queued(self, offline, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"code": "Q1", "name": "Queued", "category": "Misc", "price_cents": 100},
            headers=manager_headers,
        )
        assert resp.status_code == 201

        entries = sync_service.list_pending()
        assert len(entries) == 1
        assert entries[0].method == "POST"
        assert entries[0].path == "/api/products"
        assert entries[0].to_dict()["payload"]["code"] == "Q1"

    def test_reads_failures_and_auth_not_queued(self, offline, client, manager_headers):
        client.get("/api/products", headers=manager_headers)
        client.post("/api/products", json={"name": "No code"}, headers=manager_headers)
        client.post("/api/auth/logout", headers=manager_headers)

        assert sync_service.pending_count() == 0

    def test_online_mode_queues_nothing(self, client, manager_headers):
        client.post(
            "/api/products",
            json={"code": "Q2", "name": "Online", "category": "Misc", "price_cents": 100},
            headers=manager_headers,
        )
        assert sync_service.pending_count() == 0


class TestReplayBookkeeping:

    def test_pending_oldest_first(self, client, manager_headers):
        first = sync_service.enqueue(method="post", path="/api/sales", payload={"a": 1})
        second = sync_service.enqueue(method="PUT", path="/api/products/1", payload=None)

        body = client.get("/api/sync/pending", headers=manager_headers).get_json()
        assert [e["id"] for e in body["entries"]] == [first.id, second.id]
        assert body["entries"][0]["method"] == "POST"
        assert body["entries"][1]["payload"] is None

    def test_ack(self, client, manager_headers):
        entry = sync_service.enqueue(method="POST", path="/api/sales", payload={})
        resp = client.post(f"/api/sync/{entry.id}/ack", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["entry"]["status"] == "SYNCED"
        assert resp.get_json()["entry"]["attempts"] == 1
        assert sync_service.pending_count() == 0

        assert client.post(f"/api/sync/{entry.id}/ack", headers=manager_headers).status_code == 409

    def test_failure_keeps_entry_pending(self, client, manager_headers):
        entry = sync_service.enqueue(method="POST", path="/api/sales", payload={})
        resp = client.post(f"/api/sync/{entry.id}/fail", json={"error": "timeout"}, headers=manager_headers)
        body = resp.get_json()["entry"]
        assert body["status"] == "PENDING"
        assert body["attempts"] == 1
        assert body["last_error"] == "timeout"

    def test_failure_after_ack(self, app):
        entry = sync_service.enqueue(method="POST", path="/api/sales", payload={})
        sync_service.acknowledge(entry.id)
        with pytest.raises(ConflictError):
            sync_service.record_failure(entry.id, "late")

    def test_seller_denied(self, client, seller_headers):
        assert client.get("/api/sync/pending", headers=seller_headers).status_code == 403

    def test_unknown_entry(self, client, manager_headers):
        assert client.post("/api/sync/999/ack", headers=manager_headers).status_code == 404
