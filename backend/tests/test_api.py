"""
🧪 狀態查詢 API 測試
注入預先組好的 Services，不啟動 lifespan（不連線 Telegram、不開 SQLite）
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from giftgate.catalog.commands import GrantPoints
from giftgate.chat.telegram_bot import TelegramBot
from giftgate.ledger.store import MemoryLedger
from giftgate.core.event_bus import Event, TOPIC_PROPOSAL_RESOLVED
from giftgate.main import Services, create_app, expiry_loop
from giftgate.supervisor.proposal_store import Proposal, ProposalState


@pytest.fixture
def services():
    return Services(ledger=MemoryLedger(), telegram_bot=TelegramBot(""))


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "operational", "service": "giftgate"}


def test_status_reports_components(client):
    body = client.get("/api/status").json()
    assert body["store"]["pending_count"] == 0
    assert body["dispatcher"]["available"] is True
    assert body["telegram"]["running"] is False
    assert body["telegram"]["token_set"] is False
    assert "origin_denied" in body["gate"]


def test_pending_proposals_listing(client, services):
    services.store.put(Proposal(id="42", kind=GrantPoints("555", 10), originator="100"))
    body = client.get("/api/proposals").json()
    [item] = body["pending"]
    assert item["id"] == "42"
    assert item["command"] == "givepoints"
    assert item["description"] == "/givepoints <@555> 10"
    assert item["state"] == "pending"


def test_unavailable_ledger_is_visible_in_status():
    services = Services(ledger=None, telegram_bot=TelegramBot(""))
    body = TestClient(create_app(services)).get("/api/status").json()
    assert body["dispatcher"]["available"] is False


def test_bus_stats_before_start(client):
    body = client.get("/api/bus/stats").json()
    assert body["running"] is False
    assert body["total_published"] == 0
    assert body["queue_size"] == 0


def test_history_endpoint(client, services):
    proposal = Proposal(id="7", kind=GrantPoints("555", 3), originator="100", created_at=1.0)
    proposal.resolve(ProposalState.REJECTED, resolved_by="200")
    services.history.on_closed(Event(TOPIC_PROPOSAL_RESOLVED, proposal))

    [item] = client.get("/api/history").json()["history"]
    assert item["id"] == "7"
    assert item["state"] == "rejected"
    assert client.get("/api/history", params={"limit": 0}).json() == {"history": []}
    assert client.get("/api/status").json()["history"]["outcomes"] == {"rejected": 1}


def test_expiry_loop_survives_sweep_errors():
    calls = []

    def sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("sweep failed")
        return []

    workflow = MagicMock()
    workflow.expire_stale.side_effect = sweep

    async def scenario():
        task = asyncio.create_task(expiry_loop(workflow, 0))
        while len(calls) < 3:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert len(calls) >= 3
