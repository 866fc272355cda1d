"""
🧪 共用測試夾具
以記憶體帳本 + 假身分解析器組出完整的審核流程，不需要任何外部服務。
"""

import asyncio
import sys
from pathlib import Path

import pytest

# 確保可以 import giftgate 模組
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from giftgate.core.errors import UserResolutionError
from giftgate.core.event_bus import MessageBus
from giftgate.execution.dispatcher import ExecutionDispatcher
from giftgate.ledger.store import MemoryLedger
from giftgate.supervisor.authorization import AuthorizationGate, StaticRoleDirectory
from giftgate.supervisor.proposal_store import ProposalStore
from giftgate.supervisor.workflow import ApprovalWorkflow

COMMAND_CHANNEL = "-1001"
OTHER_CHANNEL = "-2002"
ORIGINATOR = "100"
APPROVER = "200"
BOTH_ROLES = "300"
NOBODY = "400"
TARGET_USER = "555"

ROLE_MEMBERS = {
    "originator": [ORIGINATOR, BOTH_ROLES],
    "approver": [APPROVER, BOTH_ROLES],
}


class FakeIdentity:
    """假的身分解析器：user id → 顯示名稱，並記錄呼叫次數"""

    def __init__(self, names=None, delay: float = 0.0):
        self.names = names if names is not None else {TARGET_USER: "alice"}
        self.delay = delay
        self.calls = []

    async def resolve_display_name(self, user_id: str) -> str:
        self.calls.append(user_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if user_id not in self.names:
            raise UserResolutionError(f"Unknown user {user_id}")
        return self.names[user_id]


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def gate():
    return AuthorizationGate(
        roles=StaticRoleDirectory(ROLE_MEMBERS),
        command_channel_id=COMMAND_CHANNEL,
        originator_role_id="originator",
        approver_role_id="approver",
    )


@pytest.fixture
def dispatcher(ledger, identity):
    return ExecutionDispatcher(ledger=ledger, identity=identity)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ProposalStore(clock=clock)


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def workflow(store, gate, dispatcher, bus):
    return ApprovalWorkflow(store, gate, dispatcher, bus=bus)
