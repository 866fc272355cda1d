"""
🎁 GiftGate - 提案登錄表 (Proposal Store)

特權指令不會直接執行，而是被封裝成「提案 (Proposal)」等待第二位
具核准權限的人批准。

提案生命週期 (State Machine):
    PENDING  → APPROVED  (核准者批准，執行指令)
    PENDING  → REJECTED  (核准者拒絕)
    PENDING  → EXPIRED   (超時未處理，僅在啟用過期策略時)

設計原則:
    - 單一行程、純記憶體，不做持久化；程式重啟即隱性清空。
    - 離開 PENDING 的提案立即從登錄表移除，無論最終狀態為何。
    - claim() 在同一把鎖內完成「查詢 + 移除」，兩位核准者同時按下按鈕時
      只有一人能取得提案，另一人會拿到 StaleProposalError。
"""

import time
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Dict, List, Callable

from giftgate.catalog.commands import CommandKind, describe, command_name_of
from giftgate.core.errors import DuplicateProposalError, ProposalExpiredError, StaleProposalError

logger = logging.getLogger("giftgate.supervisor.store")


# ═══════════════════════════════════════════════════════════════
# 提案狀態列舉
# ═══════════════════════════════════════════════════════════════
class ProposalState(str, Enum):
    """提案狀態"""
    PENDING = "pending"     # 等待審核
    APPROVED = "approved"   # 已核准
    REJECTED = "rejected"   # 已拒絕
    EXPIRED = "expired"     # 已過期

    @property
    def is_terminal(self) -> bool:
        return self is not ProposalState.PENDING


@dataclass(frozen=True)
class MessageRef:
    """提案確認訊息在聊天室中的位置"""
    chat_id: str
    message_id: int


# ═══════════════════════════════════════════════════════════════
# 提案資料結構
# ═══════════════════════════════════════════════════════════════
@dataclass
class Proposal:
    """
    提案物件

    id 沿用原始請求的識別碼；kind 建立後不可變更。
    """
    id: str
    kind: CommandKind
    originator: str
    state: ProposalState = ProposalState.PENDING
    created_at: Optional[float] = None
    resolved_at: Optional[float] = None
    resolved_by: str = ""
    resolution_note: str = ""
    message: Optional[MessageRef] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = time.time()

    @property
    def description(self) -> str:
        return describe(self.kind)

    @property
    def is_pending(self) -> bool:
        return self.state == ProposalState.PENDING

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.created_at

    def resolve(self, state: ProposalState, resolved_by: str = "", note: str = ""):
        """將提案轉入終止狀態（只允許一次）"""
        if not self.is_pending:
            raise RuntimeError(
                f"Proposal {self.id} already left pending ({self.state.value})"
            )
        if not state.is_terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        self.state = state
        self.resolved_at = time.time()
        self.resolved_by = resolved_by
        self.resolution_note = note

    def to_dict(self) -> dict:
        """轉為可序列化的字典"""
        return {
            "id": self.id,
            "command": command_name_of(self.kind),
            "description": self.description,
            "originator": self.originator,
            "state": self.state.value,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
            "resolved_by": self.resolved_by,
            "resolution_note": self.resolution_note,
        }


# ═══════════════════════════════════════════════════════════════
# 提案登錄表
# ═══════════════════════════════════════════════════════════════
class ProposalStore:
    """
    待審提案登錄表

    負責：
    1. 登錄提案 (put)
    2. 查詢 / 移除 (get / remove)
    3. 原子性取出 (claim)：決策專用
    4. 過期清理 (expire_stale)

    Args:
        expiry_seconds: 提案存活秒數；0 = 永不過期
        clock: 時間來源（測試可替換）
    """

    def __init__(self, expiry_seconds: int = 0, clock: Callable[[], float] = time.time):
        self._pending: Dict[str, Proposal] = {}
        self._lock = threading.Lock()
        self._expiry_seconds = expiry_seconds
        self._clock = clock

        # 統計
        self._stats = {
            "total_created": 0,
            "total_approved": 0,
            "total_rejected": 0,
            "total_expired": 0,
        }

    @property
    def expiry_seconds(self) -> int:
        return self._expiry_seconds

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, proposal_id: str) -> bool:
        return proposal_id in self._pending

    # ── 基本操作 ──────────────────────────────────────────────

    def put(self, proposal: Proposal):
        """登錄新提案；同一 ID 已在等待中時拒絕"""
        with self._lock:
            if proposal.id in self._pending:
                raise DuplicateProposalError(proposal.id)
            self._pending[proposal.id] = proposal
            self._stats["total_created"] += 1

    def get(self, proposal_id: str) -> Optional[Proposal]:
        return self._pending.get(proposal_id)

    def remove(self, proposal_id: str) -> Optional[Proposal]:
        with self._lock:
            return self._pending.pop(proposal_id, None)

    def claim(self, proposal_id: str) -> Proposal:
        """
        原子性取出待審提案

        查詢與移除在同一把鎖內完成；取出後該 ID 對其他決策者而言
        已不存在。若提案已超過存活時間，則轉為 EXPIRED 並視為過期。

        Raises:
            StaleProposalError: 提案不存在或已處理
            ProposalExpiredError: 提案已過期（已轉為 EXPIRED 並移出登錄表）
        """
        with self._lock:
            proposal = self._pending.pop(proposal_id, None)
            if proposal is None:
                raise StaleProposalError(proposal_id)
            if self._is_expired(proposal):
                proposal.resolve(ProposalState.EXPIRED, resolved_by="system",
                                 note="嘗試審核時已過期")
                self._stats["total_expired"] += 1
                logger.info(f"🕐 提案已過期 | ID={proposal_id}")
                raise ProposalExpiredError(proposal)
        return proposal

    def record_resolution(self, proposal: Proposal):
        """更新已解決提案的統計"""
        stat_key = f"total_{proposal.state.value}"
        if stat_key in self._stats:
            self._stats[stat_key] += 1

    # ── 過期清理 ──────────────────────────────────────────────

    def expire_stale(self) -> List[Proposal]:
        """
        清理過期的提案

        Returns:
            被清理的提案（已轉為 EXPIRED）
        """
        if self._expiry_seconds <= 0:
            return []

        with self._lock:
            expired = [p for p in self._pending.values() if self._is_expired(p)]
            for proposal in expired:
                del self._pending[proposal.id]
                proposal.resolve(ProposalState.EXPIRED, resolved_by="system",
                                 note="超時未審核自動過期")
                self._stats["total_expired"] += 1

        if expired:
            logger.info(f"🕐 清理 {len(expired)} 筆過期提案")
        return expired

    def _is_expired(self, proposal: Proposal) -> bool:
        if self._expiry_seconds <= 0:
            return False
        return proposal.age(self._clock()) > self._expiry_seconds

    # ── 查詢方法 ──────────────────────────────────────────────

    def pending(self) -> List[Proposal]:
        """所有待審提案，依建立時間排序"""
        with self._lock:
            proposals = list(self._pending.values())
        return sorted(proposals, key=lambda p: p.created_at)

    def get_stats(self) -> dict:
        return {
            "pending_count": len(self._pending),
            "expiry_seconds": self._expiry_seconds,
            **self._stats,
        }
