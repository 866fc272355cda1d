"""
🎁 GiftGate - 授權守門員 (Authorization Gate)

兩道彼此獨立的檢查：
    發起 (origin)   → 必須在指定頻道，且具備「發起者」角色
    核准 (approval) → 必須具備「核准者」角色，不限頻道

被拒絕是正常結果而非錯誤：呼叫端會把原因顯示給使用者，
不建立提案、不轉換狀態。

同時擁有兩種角色的人可以核准自己的提案（目前刻意保留此寬鬆行為）。
"""

import logging
from typing import Dict, Iterable, Optional, Protocol, Set

from giftgate.core.errors import AuthorizationError

logger = logging.getLogger("giftgate.supervisor.auth")

MSG_WRONG_CHANNEL = "This command can only be used in the specified channel."
MSG_NOT_ORIGINATOR = "You do not have permission to use this command."
MSG_NOT_APPROVER = "You do not have permission to approve or reject commands."


class RoleDirectory(Protocol):
    """角色查詢介面：由聊天傳輸層或設定檔提供"""

    def has_role(self, actor_id: str, role_id: str) -> bool:
        ...


class StaticRoleDirectory:
    """以設定檔名單實作的角色目錄"""

    def __init__(self, members: Optional[Dict[str, Iterable]] = None):
        self._members: Dict[str, Set[str]] = {}
        for role_id, actors in (members or {}).items():
            for actor_id in actors:
                self.grant(str(actor_id), role_id)

    def grant(self, actor_id: str, role_id: str):
        self._members.setdefault(role_id, set()).add(str(actor_id))

    def revoke(self, actor_id: str, role_id: str):
        self._members.get(role_id, set()).discard(str(actor_id))

    def has_role(self, actor_id: str, role_id: str) -> bool:
        return str(actor_id) in self._members.get(role_id, set())

    def members(self, role_id: str) -> Set[str]:
        return set(self._members.get(role_id, set()))


class AuthorizationGate:
    """
    授權守門員

    Args:
        roles: 角色目錄
        command_channel_id: 唯一允許發起指令的頻道
        originator_role_id: 發起者角色
        approver_role_id: 核准者角色
    """

    def __init__(
        self,
        roles: RoleDirectory,
        command_channel_id: str,
        originator_role_id: str,
        approver_role_id: str,
    ):
        self._roles = roles
        self.command_channel_id = str(command_channel_id)
        self.originator_role_id = originator_role_id
        self.approver_role_id = approver_role_id

        # 統計
        self._stats = {
            "origin_allowed": 0,
            "origin_denied": 0,
            "approval_allowed": 0,
            "approval_denied": 0,
        }

    # ── 布林判斷 ──────────────────────────────────────────────

    def authorize_origin(self, actor_id: str, channel_id: str) -> bool:
        try:
            self.check_origin(actor_id, channel_id)
        except AuthorizationError:
            return False
        return True

    def authorize_approval(self, actor_id: str) -> bool:
        try:
            self.check_approval(actor_id)
        except AuthorizationError:
            return False
        return True

    # ── 附帶原因的檢查 ────────────────────────────────────────

    def check_origin(self, actor_id: str, channel_id: str):
        """
        Raises:
            AuthorizationError: 頻道不符或缺少發起者角色（訊息可直接顯示給使用者）
        """
        if str(channel_id) != self.command_channel_id:
            self._stats["origin_denied"] += 1
            logger.warning(f"🚫 發起被拒 | Actor={actor_id} | Channel={channel_id} 非指定頻道")
            raise AuthorizationError(MSG_WRONG_CHANNEL)

        if not self._roles.has_role(str(actor_id), self.originator_role_id):
            self._stats["origin_denied"] += 1
            logger.warning(f"🚫 發起被拒 | Actor={actor_id} 缺少角色 {self.originator_role_id}")
            raise AuthorizationError(MSG_NOT_ORIGINATOR)

        self._stats["origin_allowed"] += 1

    def check_approval(self, actor_id: str):
        """
        Raises:
            AuthorizationError: 缺少核准者角色
        """
        if not self._roles.has_role(str(actor_id), self.approver_role_id):
            self._stats["approval_denied"] += 1
            logger.warning(f"🚫 審核被拒 | Actor={actor_id} 缺少角色 {self.approver_role_id}")
            raise AuthorizationError(MSG_NOT_APPROVER)

        self._stats["approval_allowed"] += 1

    def get_stats(self) -> dict:
        return {
            "command_channel_id": self.command_channel_id,
            "originator_role_id": self.originator_role_id,
            "approver_role_id": self.approver_role_id,
            **self._stats,
        }
