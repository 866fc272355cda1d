# 執行模組: 核准後的帳本寫入 / 讀取

from giftgate.execution.dispatcher import ExecutionDispatcher, IdentityResolver, format_ledger

__all__ = [
    "ExecutionDispatcher",
    "IdentityResolver",
    "format_ledger",
]
