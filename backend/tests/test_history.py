"""
🧪 提案歷史測試
事件匯流排 → ProposalHistory：結案紀錄、保留筆數、結果統計
"""

import asyncio

from giftgate.core.effects import CommandRequest, Decision, DecisionAction
from giftgate.core.event_bus import Event, TOPIC_PROPOSAL_RESOLVED
from giftgate.catalog.commands import GrantPoints
from giftgate.supervisor.history import ProposalHistory
from giftgate.supervisor.proposal_store import Proposal, ProposalState, ProposalStore
from giftgate.supervisor.workflow import ApprovalWorkflow

from conftest import APPROVER, COMMAND_CHANNEL, FakeClock, ORIGINATOR, TARGET_USER


def closed_proposal(pid, state):
    p = Proposal(id=pid, kind=GrantPoints(TARGET_USER, 1), originator=ORIGINATOR, created_at=1.0)
    p.resolve(state, resolved_by=APPROVER)
    return p


def test_history_follows_workflow_events(gate, dispatcher, bus):
    clock = FakeClock(1_000.0)
    store = ProposalStore(expiry_seconds=60, clock=clock)
    workflow = ApprovalWorkflow(store, gate, dispatcher, bus=bus)
    history = ProposalHistory()
    history.attach(bus)

    def command(request_id):
        params = {"user": TARGET_USER, "amount": 5}
        return CommandRequest("givepoints", request_id, ORIGINATOR, COMMAND_CHANNEL, params)

    async def scenario():
        await bus.start()
        for rid in ("a", "b", "c"):
            await workflow.handle_command(command(rid))
        await workflow.handle_decision(Decision(DecisionAction.APPROVE, "a", APPROVER))
        await workflow.handle_decision(Decision(DecisionAction.REJECT, "b", APPROVER))
        clock.now = 2_000.0
        workflow.expire_stale()
        await bus.drain()
        await bus.stop()

    asyncio.run(scenario())
    assert [r["id"] for r in history.recent()] == ["c", "b", "a"]
    assert [r["state"] for r in history.recent()] == ["expired", "rejected", "approved"]
    assert history.get_stats() == {
        "created_seen": 3,
        "history_count": 3,
        "outcomes": {"approved": 1, "rejected": 1, "expired": 1},
    }


def test_retention_drops_oldest():
    history = ProposalHistory(retention=2)
    for pid in ("1", "2", "3"):
        history.on_closed(Event(TOPIC_PROPOSAL_RESOLVED, closed_proposal(pid, ProposalState.REJECTED)))
    assert [r["id"] for r in history.recent()] == ["3", "2"]
    assert history.recent(limit=1)[0]["id"] == "3"
    assert history.recent(limit=0) == []
    assert history.get_stats()["outcomes"] == {"rejected": 3}
