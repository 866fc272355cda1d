"""
🎁 GiftGate - 執行分派器 (Execution Dispatcher)

只處理「已核准」的指令，把它轉成對外部帳本的一次寫入或一次讀取：
    GrantPack    → set "<顯示名稱>/packs/<pack id>" = amount
    GrantPoints  → set "<顯示名稱>/currency" = amount
    InspectLedger→ 讀取整份帳本並格式化（過長改為附檔）

不做先讀後寫、不做合併；同一路徑的並行核准依到達順序互相覆蓋。
目錄層已驗證過數值範圍，這裡仍再檢查一次，避免不合法的值寫入帳本。
"""

import json
import logging
from typing import Any, List, Optional, Protocol

from giftgate.catalog.commands import CommandKind, GrantPack, GrantPoints, InspectLedger
from giftgate.core.effects import Attachment, Effect, SendMessage
from giftgate.core.errors import ExecutionError, StoreError, UserResolutionError
from giftgate.ledger.store import LedgerStore

logger = logging.getLogger("giftgate.execution")

DEFAULT_INLINE_LIMIT = 1900
DEFAULT_REPORT_FILENAME = "gifted_data.json"
MSG_REPORT_AS_FILE = "Gifted data is too large to display here. Sending as a file."


class IdentityResolver(Protocol):
    """使用者代號 → 顯示名稱"""

    async def resolve_display_name(self, user_id: str) -> str:
        ...


def pack_path(display_name: str, pack_id: str) -> str:
    return f"{display_name}/packs/{pack_id}"


def currency_path(display_name: str) -> str:
    return f"{display_name}/currency"


def format_ledger(snapshot: Any) -> str:
    """帳本快照的固定格式（2 空格縮排 JSON）"""
    return json.dumps(snapshot or {}, indent=2, ensure_ascii=False)


class ExecutionDispatcher:
    """
    執行分派器

    Args:
        ledger: 外部帳本；None 代表帳本無法使用
        identity: 身分解析器
        inline_limit: /checkgifts 內嵌顯示的字元上限
        report_filename: 過長時附檔的檔名
    """

    def __init__(
        self,
        ledger: Optional[LedgerStore],
        identity: IdentityResolver,
        inline_limit: int = DEFAULT_INLINE_LIMIT,
        report_filename: str = DEFAULT_REPORT_FILENAME,
    ):
        self._ledger = ledger
        self._identity = identity
        self._inline_limit = inline_limit
        self._report_filename = report_filename
        self._stats = {"executed": 0, "failed": 0}

    @property
    def available(self) -> bool:
        return self._ledger is not None

    async def execute(self, kind: CommandKind) -> List[Effect]:
        """
        執行已核准的指令

        Returns:
            需要額外送出的訊息（僅 InspectLedger 會有）

        Raises:
            ExecutionError: 數值不合法、身分解析失敗或帳本讀寫失敗
        """
        try:
            effects = await self._execute(kind)
        except Exception:
            self._stats["failed"] += 1
            raise
        self._stats["executed"] += 1
        return effects

    async def _execute(self, kind: CommandKind) -> List[Effect]:
        if self._ledger is None:
            raise ExecutionError("Database unavailable.")

        if isinstance(kind, GrantPack):
            if kind.amount < 1:
                raise ExecutionError("Amount must be at least 1.")
            name = await self._resolve(kind.target_user)
            path = pack_path(name, kind.pack_id)
            self._write(path, kind.amount)
            logger.info(f"[givepack] Set {path} to {kind.amount}")
            return []

        if isinstance(kind, GrantPoints):
            if kind.amount < 0:
                raise ExecutionError("Amount cannot be negative.")
            name = await self._resolve(kind.target_user)
            path = currency_path(name)
            self._write(path, kind.amount)
            logger.info(f"[givepoints] Set {path} to {kind.amount}")
            return []

        if isinstance(kind, InspectLedger):
            try:
                snapshot = self._ledger.read_all()
            except StoreError as e:
                raise ExecutionError(str(e)) from e
            logger.info("[checkgifts] Returned gifted data")
            return [self.render_report(snapshot)]

        raise TypeError(f"Unsupported command kind: {type(kind).__name__}")

    async def _resolve(self, user_id: str) -> str:
        try:
            name = await self._identity.resolve_display_name(user_id)
        except UserResolutionError as e:
            raise ExecutionError(str(e)) from e
        # 顯示名稱是帳本路徑的第一段
        if not name or "/" in name:
            raise ExecutionError(f"Unusable display name for user {user_id}: {name!r}")
        return name

    def _write(self, path: str, value: int):
        try:
            self._ledger.set_value(path, value)
        except StoreError as e:
            raise ExecutionError(str(e)) from e

    def render_report(self, snapshot: Any) -> SendMessage:
        """帳本報告：短的內嵌顯示，過長的改為附檔"""
        formatted = format_ledger(snapshot)
        if len(formatted) > self._inline_limit:
            return SendMessage(
                text=MSG_REPORT_AS_FILE,
                attachments=[Attachment(self._report_filename, formatted.encode("utf-8"))],
            )
        return SendMessage(text=f"```json\n{formatted}\n```")

    def get_stats(self) -> dict:
        return {"available": self.available, **self._stats}
