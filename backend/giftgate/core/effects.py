"""
🎁 GiftGate - 傳輸層事件與效果 (Events & Effects)

核心流程與聊天傳輸層之間只透過這些資料結構溝通：
    輸入: CommandRequest (發起指令)、Decision (核准/拒絕按鈕)
    輸出: SendMessage (新訊息)、UpdateMessage (取代提案訊息並移除按鈕)

核心不直接呼叫任何聊天 API，方便在沒有真實服務的情況下測試。
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from giftgate.core.errors import ValidationError


# ═══════════════════════════════════════════════════════════════
# 輸入事件
# ═══════════════════════════════════════════════════════════════
class DecisionAction(str, Enum):
    """審核動作"""
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class CommandRequest:
    """一筆來自聊天室的特權指令請求"""
    command_name: str
    request_id: str
    actor_id: str
    channel_id: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Decision:
    """審核者按下核准/拒絕按鈕"""
    action: DecisionAction
    proposal_id: str
    actor_id: str

    @classmethod
    def from_callback(cls, data: str, actor_id: str) -> "Decision":
        """
        從按鈕回調資料解析決策

        Args:
            data: 格式 "approve:<proposal_id>" 或 "reject:<proposal_id>"
            actor_id: 按下按鈕的使用者

        Raises:
            ValidationError: 格式不符或未知動作
        """
        if not data or ":" not in data:
            raise ValidationError(f"Malformed decision data: {data!r}")
        action, proposal_id = data.split(":", 1)
        try:
            decision_action = DecisionAction(action)
        except ValueError:
            raise ValidationError(f"Unknown action: {action}")
        if not proposal_id:
            raise ValidationError("Decision is missing a proposal id")
        return cls(action=decision_action, proposal_id=proposal_id, actor_id=actor_id)


# ═══════════════════════════════════════════════════════════════
# 輸出效果
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class DecisionControl:
    """綁定到某個提案的互動按鈕"""
    label: str
    action: DecisionAction
    proposal_id: str

    @property
    def callback_data(self) -> str:
        return f"{self.action.value}:{self.proposal_id}"


@dataclass(frozen=True)
class Attachment:
    """可下載的附檔"""
    filename: str
    content: bytes


@dataclass(frozen=True)
class SendMessage:
    """
    送出新訊息

    private=True 表示只應讓觸發事件的使用者看到
    （例如權限不足、提案已處理等提示）。
    """
    text: str
    attachments: List[Attachment] = field(default_factory=list)
    controls: List[DecisionControl] = field(default_factory=list)
    private: bool = False


@dataclass(frozen=True)
class UpdateMessage:
    """取代原本的提案訊息；controls 為空代表移除所有按鈕"""
    text: str
    controls: List[DecisionControl] = field(default_factory=list)


Effect = Union[SendMessage, UpdateMessage]


def decision_controls(proposal_id: str) -> List[DecisionControl]:
    """建立提案的核准/拒絕按鈕"""
    return [
        DecisionControl("Approve", DecisionAction.APPROVE, proposal_id),
        DecisionControl("Reject", DecisionAction.REJECT, proposal_id),
    ]
