"""
🎁 GiftGate - 全域設定檔
所有系統常數、環境變數、審核流程參數皆在此集中管理。
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# ── 載入環境變數 ───────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / ".env")


def _id_list(name: str) -> list:
    """讀取以逗號分隔的 ID 清單（空白會被忽略）"""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# ═══════════════════════════════════════════════════════════════
# 系統設定
# ═══════════════════════════════════════════════════════════════
APP_NAME = "GiftGate: Two-Party Approval Gate for Gift Grants"
VERSION = "1.0.0"
BACKEND_HOST = os.getenv("BACKEND_HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8890"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))
LEDGER_DB_PATH = Path(os.getenv("LEDGER_DB_PATH", str(DATA_DIR / "gifted.db")))

# 確保目錄存在
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(parents=True, exist_ok=True)

# ═══════════════════════════════════════════════════════════════
# Telegram 設定
# ═══════════════════════════════════════════════════════════════
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_ENABLED = os.getenv("TELEGRAM_ENABLED", "true").lower() == "true"

# 唯一允許發起指令的聊天室
COMMAND_CHAT_ID = os.getenv("COMMAND_CHAT_ID", "")

# ═══════════════════════════════════════════════════════════════
# 角色設定（兩級權限：發起者 / 核准者）
# ═══════════════════════════════════════════════════════════════
ORIGINATOR_ROLE_ID = os.getenv("ORIGINATOR_ROLE_ID", "originator")
APPROVER_ROLE_ID = os.getenv("APPROVER_ROLE_ID", "approver")

# 角色成員（Telegram 沒有伺服器角色，由設定檔提供名單）
ROLE_MEMBERS = {
    ORIGINATOR_ROLE_ID: _id_list("ORIGINATOR_USER_IDS"),
    APPROVER_ROLE_ID: _id_list("APPROVER_USER_IDS"),
}

# ═══════════════════════════════════════════════════════════════
# 審核流程設定
# ═══════════════════════════════════════════════════════════════
# 提案過期秒數；0 = 停用（提案持續到被決定或程式重啟）
PROPOSAL_EXPIRY_SECONDS = int(os.getenv("PROPOSAL_EXPIRY_SECONDS", "0"))
EXPIRY_SWEEP_INTERVAL = int(os.getenv("EXPIRY_SWEEP_INTERVAL", "30"))

# 已結案提案保留筆數（/api/history）
HISTORY_RETENTION = int(os.getenv("HISTORY_RETENTION", "200"))

# /checkgifts 內嵌顯示上限（字元），超過改為附檔
INLINE_REPORT_LIMIT = int(os.getenv("INLINE_REPORT_LIMIT", "1900"))
REPORT_FILENAME = "gifted_data.json"
