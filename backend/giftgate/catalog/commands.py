"""
🎁 GiftGate - 指令目錄 (Command Catalog)

宣告所有特權指令的種類、參數與驗證規則：
    /givepack <user> <packid> [amount]   設定使用者的卡包數量（預設 1）
    /givepoints <user> <amount>          設定使用者的點數
    /checkgifts                          檢視整份贈送帳本

describe() 是純函數：提案確認訊息與決策後的訊息都靠它產生，
兩者必須逐字一致（只差狀態用語）。
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from giftgate.core.errors import ValidationError

CMD_GIVE_PACK = "givepack"
CMD_GIVE_POINTS = "givepoints"
CMD_CHECK_GIFTS = "checkgifts"

COMMAND_NAMES = (CMD_GIVE_PACK, CMD_GIVE_POINTS, CMD_CHECK_GIFTS)

# 指令說明（供 /help 與指令選單使用）
COMMAND_HELP = {
    CMD_GIVE_PACK: "Give a pack to a user: /givepack <user> <packid> [amount]",
    CMD_GIVE_POINTS: "Give points to a user: /givepoints <user> <amount>",
    CMD_CHECK_GIFTS: "Check all gifted data: /checkgifts",
}

_INT_PATTERN = re.compile(r"^[+-]?\d+$")


# ═══════════════════════════════════════════════════════════════
# 指令種類
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class GrantPack:
    target_user: str
    pack_id: str
    amount: int = 1


@dataclass(frozen=True)
class GrantPoints:
    target_user: str
    amount: int


@dataclass(frozen=True)
class InspectLedger:
    pass


CommandKind = Union[GrantPack, GrantPoints, InspectLedger]


# ═══════════════════════════════════════════════════════════════
# 參數驗證
# ═══════════════════════════════════════════════════════════════
def _require(params: Dict[str, Any], name: str) -> Any:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required option: {name}")
    return value


def _as_int(name: str, value: Any) -> int:
    """接受 int 或整數字串（聊天參數都是文字）；bool 一律拒絕"""
    if isinstance(value, bool):
        raise ValidationError(f"Option {name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_PATTERN.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"Option {name} must be an integer")


def _as_user(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError("Option user must be a user handle")
    handle = str(value).strip()
    if not handle:
        raise ValidationError("Missing required option: user")
    return handle


def _as_pack_id(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("Option packid must be a string")
    pack_id = value.strip()
    if not pack_id:
        raise ValidationError("Missing required option: packid")
    # 帳本路徑以 "/" 分段，pack id 只能是單一段落
    if "/" in pack_id or any(ch.isspace() for ch in pack_id):
        raise ValidationError(f"Invalid pack id: {pack_id!r}")
    return pack_id


def parse_command(command_name: str, params: Optional[Dict[str, Any]] = None) -> CommandKind:
    """
    將原始參數包驗證成 CommandKind

    Args:
        command_name: 指令名稱（不含 "/"）
        params: 參數包，如 {"user": "42", "packid": "P1", "amount": 3}

    Raises:
        ValidationError: 未知指令、缺少必填參數、型別錯誤或數值超出範圍
    """
    params = params or {}

    if command_name == CMD_GIVE_PACK:
        user = _as_user(_require(params, "user"))
        pack_id = _as_pack_id(_require(params, "packid"))
        raw_amount = params.get("amount")
        amount = 1 if raw_amount is None else _as_int("amount", raw_amount)
        if amount < 1:
            raise ValidationError("Amount must be at least 1.")
        return GrantPack(target_user=user, pack_id=pack_id, amount=amount)

    if command_name == CMD_GIVE_POINTS:
        user = _as_user(_require(params, "user"))
        amount = _as_int("amount", _require(params, "amount"))
        if amount < 0:
            raise ValidationError("Amount cannot be negative.")
        return GrantPoints(target_user=user, amount=amount)

    if command_name == CMD_CHECK_GIFTS:
        return InspectLedger()

    raise ValidationError(f"Unknown command: /{command_name}")


# ═══════════════════════════════════════════════════════════════
# 渲染
# ═══════════════════════════════════════════════════════════════
def mention(user: str) -> str:
    return f"<@{user}>"


def describe(kind: CommandKind) -> str:
    """指令的標準文字表示，例如 "/givepack <@42> P1 3" """
    if isinstance(kind, GrantPack):
        return f"/{CMD_GIVE_PACK} {mention(kind.target_user)} {kind.pack_id} {kind.amount}"
    if isinstance(kind, GrantPoints):
        return f"/{CMD_GIVE_POINTS} {mention(kind.target_user)} {kind.amount}"
    if isinstance(kind, InspectLedger):
        return f"/{CMD_CHECK_GIFTS}"
    raise TypeError(f"Unsupported command kind: {type(kind).__name__}")


def command_name_of(kind: CommandKind) -> str:
    if isinstance(kind, GrantPack):
        return CMD_GIVE_PACK
    if isinstance(kind, GrantPoints):
        return CMD_GIVE_POINTS
    if isinstance(kind, InspectLedger):
        return CMD_CHECK_GIFTS
    raise TypeError(f"Unsupported command kind: {type(kind).__name__}")
