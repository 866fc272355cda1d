"""
🎁 GiftGate - 審核流程引擎 (Approval Workflow Engine)

架構定位:
    聊天傳輸層 (CommandRequest / Decision)
        ↓
    ApprovalWorkflow  ← ★ 本模組
        ├─ 發起: 授權檢查 → 參數驗證 → 登錄提案 → 回傳確認訊息 + 按鈕
        └─ 決策: 核准者檢查 → 原子取出提案 → 執行 / 取消 → 取代原訊息
        ↓
    SendMessage / UpdateMessage (交回傳輸層送出)

每個事件都會完整處理完畢（包含帳本寫入）才回傳；任何錯誤只影響
觸發它的那個事件，並轉成使用者看得到的訊息。
"""

import logging
from typing import List, Optional

from giftgate.catalog.commands import parse_command, command_name_of
from giftgate.core.effects import (
    CommandRequest,
    Decision,
    DecisionAction,
    Effect,
    SendMessage,
    UpdateMessage,
    decision_controls,
)
from giftgate.core.errors import (
    AuthorizationError,
    DuplicateProposalError,
    ExecutionError,
    ProposalExpiredError,
    StaleProposalError,
    ValidationError,
)
from giftgate.core.event_bus import (
    MessageBus,
    TOPIC_PROPOSAL_CREATED,
    TOPIC_PROPOSAL_EXPIRED,
    TOPIC_PROPOSAL_RESOLVED,
)
from giftgate.execution.dispatcher import ExecutionDispatcher
from giftgate.supervisor.authorization import AuthorizationGate
from giftgate.supervisor.proposal_store import MessageRef, Proposal, ProposalState, ProposalStore

logger = logging.getLogger("giftgate.supervisor.workflow")

MSG_DB_UNAVAILABLE = "Database unavailable. Please try again later."
MSG_STALE = "This command proposal has expired or was already processed."
MSG_DUPLICATE = "This command is already awaiting approval."


def role_mention(role_id: str) -> str:
    return f"<@&{role_id}>"


def expired_text(proposal: Proposal) -> str:
    return f"Command proposal expired: {proposal.description}"


class ApprovalWorkflow:
    """
    審核流程引擎

    Args:
        store: 待審提案登錄表（由本引擎擁有）
        gate: 授權守門員
        dispatcher: 執行分派器
        bus: 事件匯流排（可選）
    """

    def __init__(
        self,
        store: ProposalStore,
        gate: AuthorizationGate,
        dispatcher: ExecutionDispatcher,
        bus: Optional[MessageBus] = None,
    ):
        self._store = store
        self._gate = gate
        self._dispatcher = dispatcher
        self._bus = bus

    @property
    def store(self) -> ProposalStore:
        return self._store

    # ── 發起指令 ──────────────────────────────────────────────

    async def handle_command(self, request: CommandRequest) -> List[Effect]:
        """
        處理發起請求

        Returns:
            成功時為一則附帶核准/拒絕按鈕的確認訊息；
            被拒絕或參數錯誤時為一則說明訊息（不建立提案）
        """
        try:
            self._gate.check_origin(request.actor_id, request.channel_id)
        except AuthorizationError as e:
            return [SendMessage(text=str(e), private=True)]

        if not self._dispatcher.available:
            logger.error("❌ 帳本無法使用，拒絕建立提案")
            return [SendMessage(text=MSG_DB_UNAVAILABLE)]

        try:
            kind = parse_command(request.command_name, request.parameters)
        except ValidationError as e:
            logger.info(f"⚠️ 指令參數無效 | Request={request.request_id} | {e}")
            return [SendMessage(text=f"Invalid command: {e}", private=True)]

        proposal = Proposal(
            id=request.request_id,
            kind=kind,
            originator=request.actor_id,
            created_at=self._store.now(),
        )
        try:
            self._store.put(proposal)
        except DuplicateProposalError:
            logger.warning(f"⚠️ 重複的提案 ID | ID={proposal.id}")
            return [SendMessage(text=MSG_DUPLICATE, private=True)]

        self._publish(TOPIC_PROPOSAL_CREATED, proposal)
        logger.info(
            f"📋 新提案建立 | ID={proposal.id} | "
            f"Command={proposal.description} | Originator={proposal.originator}"
        )

        text = (
            f"Proposed command: {proposal.description}\n"
            f"Awaiting approval from {role_mention(self._gate.approver_role_id)}."
        )
        return [SendMessage(text=text, controls=decision_controls(proposal.id))]

    def bind_message(self, proposal_id: str, chat_id: str, message_id: int) -> bool:
        """記錄提案確認訊息的位置（過期時用來更新訊息）"""
        proposal = self._store.get(proposal_id)
        if proposal is None:
            return False
        proposal.message = MessageRef(chat_id=str(chat_id), message_id=message_id)
        return True

    # ── 審核決策 ──────────────────────────────────────────────

    async def handle_decision(self, decision: Decision) -> List[Effect]:
        """
        處理核准/拒絕

        提案在執行前就已從登錄表取出，因此同一提案的第二個決策
        一定會看到「已處理」，不會重複執行。
        """
        try:
            self._gate.check_approval(decision.actor_id)
        except AuthorizationError as e:
            return [SendMessage(text=str(e), private=True)]

        try:
            proposal = self._store.claim(decision.proposal_id)
        except ProposalExpiredError as e:
            # 提案已離開登錄表，之後的清理掃描不會再看到它
            self._publish(TOPIC_PROPOSAL_EXPIRED, e.proposal)
            return [SendMessage(text=MSG_STALE, private=True)]
        except StaleProposalError:
            logger.info(f"🕐 決策指向已處理的提案 | ID={decision.proposal_id} | Actor={decision.actor_id}")
            return [SendMessage(text=MSG_STALE, private=True)]

        if decision.action == DecisionAction.APPROVE:
            effects = await self._approve(proposal, decision.actor_id)
        elif decision.action == DecisionAction.REJECT:
            effects = self._reject(proposal, decision.actor_id)
        else:
            raise TypeError(f"Unsupported decision action: {decision.action!r}")

        self._store.record_resolution(proposal)
        self._publish(TOPIC_PROPOSAL_RESOLVED, proposal)
        logger.info(
            f"📋 提案解決 | ID={proposal.id} | Status={proposal.state.value} | "
            f"ResolvedBy={proposal.resolved_by} | Note={proposal.resolution_note}"
        )
        return effects

    async def _approve(self, proposal: Proposal, actor_id: str) -> List[Effect]:
        try:
            follow_ups = await self._dispatcher.execute(proposal.kind)
        except ExecutionError as e:
            proposal.resolve(ProposalState.APPROVED, resolved_by=actor_id,
                             note=f"execution failed: {e}")
            logger.error(f"❌ 核准提案執行失敗 | ID={proposal.id} | Error={e}")
            return [UpdateMessage(text=f"Error executing command: {e}")]
        except Exception as e:
            proposal.resolve(ProposalState.APPROVED, resolved_by=actor_id,
                             note=f"execution failed: {e!r}")
            logger.exception(f"❌ 核准提案執行時發生未預期錯誤 | ID={proposal.id}")
            return [UpdateMessage(text=f"Error executing command: {e}")]

        proposal.resolve(ProposalState.APPROVED, resolved_by=actor_id, note="executed")
        logger.info(f"✅ 核准提案已執行 | ID={proposal.id} | Command={command_name_of(proposal.kind)}")
        return [
            UpdateMessage(text=f"Command approved and executed: {proposal.description}"),
            *follow_ups,
        ]

    def _reject(self, proposal: Proposal, actor_id: str) -> List[Effect]:
        proposal.resolve(ProposalState.REJECTED, resolved_by=actor_id, note="rejected")
        return [UpdateMessage(text=f"Command rejected: {proposal.description}")]

    # ── 過期清理 ──────────────────────────────────────────────

    def expire_stale(self) -> List[Proposal]:
        """清理超時提案並發佈 gate.proposal_expired 事件"""
        expired = self._store.expire_stale()
        for proposal in expired:
            self._publish(TOPIC_PROPOSAL_EXPIRED, proposal)
        return expired

    # ── 狀態查詢 ──────────────────────────────────────────────

    def pending(self) -> List[dict]:
        return [p.to_dict() for p in self._store.pending()]

    def get_status(self) -> dict:
        return {
            "store": self._store.get_stats(),
            "gate": self._gate.get_stats(),
            "dispatcher": self._dispatcher.get_stats(),
        }

    def _publish(self, topic: str, data):
        if self._bus is not None:
            self._bus.publish(topic, data, source="approval_workflow")
