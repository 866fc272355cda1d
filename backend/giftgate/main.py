"""
🎁 GiftGate 兩人審核贈送系統
FastAPI 主應用程式 - 組裝各元件並提供狀態查詢 API

元件組裝順序:
    SqliteLedger → TelegramBot(身分解析) → ExecutionDispatcher
    → ProposalStore + AuthorizationGate → ApprovalWorkflow → TelegramBot.attach_workflow
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from giftgate import config
from giftgate.chat.telegram_bot import TelegramBot, TelegramIdentityResolver
from giftgate.core.errors import StoreError
from giftgate.core.event_bus import MessageBus
from giftgate.execution.dispatcher import ExecutionDispatcher
from giftgate.ledger.store import LedgerStore, SqliteLedger
from giftgate.supervisor.authorization import AuthorizationGate, StaticRoleDirectory
from giftgate.supervisor.history import ProposalHistory
from giftgate.supervisor.proposal_store import ProposalStore
from giftgate.supervisor.workflow import ApprovalWorkflow

logger = logging.getLogger("giftgate.main")


def configure_logging():
    """日誌設定：stdout + 檔案"""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s | %(name)-30s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.LOG_DIR / "giftgate.log", encoding="utf-8"),
        ],
    )


def open_ledger() -> Optional[LedgerStore]:
    """開啟帳本；失敗時回傳 None，指令會回覆「資料庫無法使用」"""
    try:
        return SqliteLedger(config.LEDGER_DB_PATH)
    except StoreError as e:
        logger.error(f"帳本初始化失敗: {e}")
        return None


class Services:
    """一次組裝好的所有元件"""

    def __init__(self, ledger: Optional[LedgerStore] = None, telegram_bot: Optional[TelegramBot] = None):
        self.bus = MessageBus()
        self.telegram_bot = telegram_bot or TelegramBot(config.TELEGRAM_BOT_TOKEN, bus=self.bus)
        self.ledger = ledger
        self.store = ProposalStore(expiry_seconds=config.PROPOSAL_EXPIRY_SECONDS)
        self.gate = AuthorizationGate(
            roles=StaticRoleDirectory(config.ROLE_MEMBERS),
            command_channel_id=config.COMMAND_CHAT_ID,
            originator_role_id=config.ORIGINATOR_ROLE_ID,
            approver_role_id=config.APPROVER_ROLE_ID,
        )
        self.dispatcher = ExecutionDispatcher(
            ledger=ledger,
            identity=TelegramIdentityResolver(self.telegram_bot),
            inline_limit=config.INLINE_REPORT_LIMIT,
            report_filename=config.REPORT_FILENAME,
        )
        self.workflow = ApprovalWorkflow(self.store, self.gate, self.dispatcher, bus=self.bus)
        self.history = ProposalHistory(retention=config.HISTORY_RETENTION)
        self.history.attach(self.bus)
        self.telegram_bot.attach_workflow(self.workflow)


async def expiry_loop(workflow: ApprovalWorkflow, interval: int):
    """定期清理過期提案（僅在啟用過期策略時啟動）"""
    while True:
        await asyncio.sleep(interval)
        try:
            workflow.expire_stale()
        except Exception:
            logger.exception("❌ 過期提案清理失敗，下一輪再試")


# ═══════════════════════════════════════════════════════════════
# 應用程式生命週期
# ═══════════════════════════════════════════════════════════════
@asynccontextmanager
async def lifespan(app: FastAPI):
    """應用程式啟動/關閉生命週期"""
    logger.info("=" * 60)
    logger.info(f"🎁 {config.APP_NAME} v{config.VERSION}")
    logger.info("=" * 60)

    if app.state.services is None:
        app.state.services = Services(ledger=open_ledger())
    services: Services = app.state.services
    await services.bus.start()

    if config.TELEGRAM_ENABLED:
        await services.telegram_bot.start()
    else:
        logger.info("⚪ Telegram Bot 未啟用 (TELEGRAM_ENABLED=false)")

    sweep_task = None
    if config.PROPOSAL_EXPIRY_SECONDS > 0:
        sweep_task = asyncio.create_task(
            expiry_loop(services.workflow, config.EXPIRY_SWEEP_INTERVAL)
        )
        logger.info(f"🕐 提案過期策略已啟用 ({config.PROPOSAL_EXPIRY_SECONDS}s)")

    logger.info("✅ 所有模組已啟動，系統就緒！")

    yield

    logger.info("🔴 正在關閉系統...")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await services.telegram_bot.stop()
    await services.bus.stop()
    logger.info("👋 系統已安全關閉")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """建立 FastAPI 應用；services 可由測試注入"""
    app = FastAPI(title=config.APP_NAME, version=config.VERSION, lifespan=lifespan)
    app.state.services = services

    @app.get("/health")
    async def health():
        return {"status": "operational", "service": "giftgate"}

    @app.get("/api/status")
    async def get_status():
        """取得審核流程狀態"""
        s: Services = app.state.services
        return {
            **s.workflow.get_status(),
            "telegram": s.telegram_bot.get_status(),
            "history": s.history.get_stats(),
        }

    @app.get("/api/proposals")
    async def get_pending_proposals():
        """取得所有待審提案"""
        return {"pending": app.state.services.workflow.pending()}

    @app.get("/api/history")
    async def get_proposal_history(limit: int = 50):
        """取得最近結案的提案"""
        return {"history": app.state.services.history.recent(limit)}

    @app.get("/api/bus/stats")
    async def get_bus_stats():
        """取得 MessageBus 統計"""
        stats = app.state.services.bus.get_stats()
        return {
            "running": stats.get("running", False),
            "total_published": stats.get("published", 0),
            "total_processed": stats.get("processed", 0),
            "total_dropped": stats.get("dropped", 0),
            "total_errors": stats.get("errors", 0),
            "queue_size": stats.get("queue_size", 0),
            "subscriber_count": stats.get("subscriber_count", {}),
        }

    return app


# ═══════════════════════════════════════════════════════════════
# 入口點
# ═══════════════════════════════════════════════════════════════
def run():
    import uvicorn
    configure_logging()
    uvicorn.run(
        create_app(),
        host=config.BACKEND_HOST,
        port=config.BACKEND_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    run()
