import json

import pytest
from fastapi.testclient import TestClient

import webhook_server
from bot.handlers import webhook
from core.push_monitor import PushMonitor

CONTRACT = "0x44c5fe0ad3e3f3a4d1a8a9a6a0ea7cf9b5e1d2a3"


def _payload(source=CONTRACT, tx="0xtx"):
    return {
        "timestamp": "2026-10-19T00:00:00Z",
        "blockIndex": 12,
        "logIndex": 3,
        "blockHash": "0xblock12",
        "transactionHash": tx,
        "sourceAddress": source,
        "abiHash": "0xabi",
        "abiSignature": "Burn(address,bytes32,uint256)",
        "args": {"named": {"sender": "0xs", "amount": "5", "recipient": "0xr"}, "ordered": []},
    }


@pytest.fixture
def client(monkeypatch):
    monitor = PushMonitor(address=CONTRACT)
    monkeypatch.setattr(webhook, "push_monitor", monitor)
    return TestClient(webhook_server.app), monitor


def test_matching_event_is_queued(client):
    http, monitor = client

    resp = http.post("/", content=json.dumps(_payload()).encode("utf-8"))

    assert resp.status_code == 200
    assert resp.content == b""
    assert monitor.pending_count == 1


def test_filtered_event_is_still_acknowledged(client):
    http, monitor = client

    resp = http.post("/", json=_payload(source="0x0000000000000000000000000000000000000001"))

    assert resp.status_code == 200
    assert resp.content == b""
    assert monitor.pending_count == 0


def test_duplicate_deliveries_queue_once(client):
    http, monitor = client

    for _ in range(3):
        assert http.post("/", json=_payload()).status_code == 200

    assert monitor.pending_count == 1


@pytest.mark.parametrize("body", [b"not json", b"{}", json.dumps({"blockIndex": "x"}).encode()])
def test_undecodable_body_is_rejected(client, body):
    http, monitor = client

    resp = http.post("/", content=body)

    assert resp.status_code == 400
    assert "Invalid event payload" in resp.json()["detail"]
    assert monitor.pending_count == 0


def test_health_reports_pending(client):
    http, _ = client
    http.post("/", json=_payload())

    resp = http.get("/health")

    assert resp.json() == {"status": "healthy", "monitor": "ready", "pending_events": 1}


def test_delivery_before_monitor_is_attached_asks_for_redelivery(monkeypatch):
    monkeypatch.setattr(webhook, "push_monitor", None)
    http = TestClient(webhook_server.app)

    resp = http.post("/", json=_payload())

    assert resp.status_code == 503
    assert http.get("/health").json()["monitor"] == "not initialized"
