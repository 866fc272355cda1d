"""
🎁 GiftGate - Telegram Bot (聊天傳輸層)

把 Telegram 的指令與 Inline 按鈕轉成核心事件，再把核心回傳的效果送回聊天室：
  - /givepack, /givepoints, /checkgifts → CommandRequest
  - ✅ Approve / ❌ Reject 按鈕          → Decision
  - SendMessage   → reply_text / reply_document（private 的提示用 query.answer 彈窗）
  - UpdateMessage → edit_message_text 並移除按鈕

技術設計：
  - 使用 python-telegram-bot v20+ (async)
  - 訊息送出失敗只記錄、不重試
  - 使用者顯示名稱透過 bot.get_chat 解析
"""

import io
import logging
from typing import Any, Dict, List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, InputFile, Update
from telegram.error import TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from giftgate.catalog.commands import (
    CMD_CHECK_GIFTS,
    CMD_GIVE_PACK,
    CMD_GIVE_POINTS,
    COMMAND_HELP,
    COMMAND_NAMES,
)
from giftgate.core.effects import (
    CommandRequest,
    Decision,
    DecisionControl,
    Effect,
    SendMessage,
    UpdateMessage,
)
from giftgate.core.errors import UserResolutionError, ValidationError
from giftgate.core.event_bus import Event, MessageBus, TOPIC_PROPOSAL_EXPIRED
from giftgate.supervisor.workflow import ApprovalWorkflow, expired_text

logger = logging.getLogger("giftgate.telegram")

# 每個指令的位置參數順序
_POSITIONAL_OPTIONS = {
    CMD_GIVE_PACK: ("user", "packid", "amount"),
    CMD_GIVE_POINTS: ("user", "amount"),
    CMD_CHECK_GIFTS: (),
}


def parse_arguments(command_name: str, args: List[str], reply_to_user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    把指令文字參數對應成參數包

    回覆某人的訊息時，可以省略 user 參數：
        /givepack P1 3  (回覆 Alice 的訊息) → {"user": Alice, "packid": "P1", "amount": "3"}
    """
    names = list(_POSITIONAL_OPTIONS.get(command_name, ()))
    params: Dict[str, Any] = {}
    if reply_to_user_id is not None and names and names[0] == "user":
        params["user"] = reply_to_user_id
        names = names[1:]
    for name, value in zip(names, args):
        params[name] = value
    return params


def build_keyboard(controls: List[DecisionControl]) -> Optional[InlineKeyboardMarkup]:
    if not controls:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(c.label, callback_data=c.callback_data) for c in controls]
    ])


class TelegramIdentityResolver:
    """透過 Telegram Bot API 解析使用者顯示名稱"""

    def __init__(self, telegram_bot: "TelegramBot"):
        self._telegram_bot = telegram_bot

    async def resolve_display_name(self, user_id: str) -> str:
        bot = self._telegram_bot.bot
        if bot is None:
            raise UserResolutionError("Telegram bot is not connected")
        try:
            chat = await bot.get_chat(int(user_id))
        except ValueError:
            raise UserResolutionError(f"Invalid user handle: {user_id}")
        except TelegramError as e:
            raise UserResolutionError(f"Unknown user {user_id}: {e}")
        name = chat.username or chat.full_name
        if not name:
            raise UserResolutionError(f"User {user_id} has no display name")
        return name


class TelegramBot:
    """
    GiftGate Telegram Bot

    只負責傳輸：授權、驗證與執行全部交給 ApprovalWorkflow。
    """

    def __init__(self, token: str, workflow: Optional[ApprovalWorkflow] = None, bus: Optional[MessageBus] = None):
        self._token = token
        self._workflow = workflow
        self._bus = bus
        self._app: Optional[Application] = None
        self._bot = None
        self._running = False

        # 統計
        self._stats = {
            "messages_sent": 0,
            "commands_handled": 0,
            "callbacks_handled": 0,
            "errors": 0,
        }

        logger.info(f"🤖 TelegramBot 已初始化 | Token={'設定' if token else '未設定'}")

    @property
    def bot(self):
        return self._bot

    @property
    def running(self) -> bool:
        return self._running

    def attach_workflow(self, workflow: ApprovalWorkflow):
        """注入審核流程（身分解析器需要先有 bot，因此延後注入）"""
        self._workflow = workflow

    # ── 生命週期 ──────────────────────────────────────────────

    async def start(self) -> bool:
        """啟動 Telegram Bot（polling）"""
        if not self._token:
            logger.warning("⚠️ TELEGRAM_BOT_TOKEN 未設定，跳過啟動")
            return False
        if self._workflow is None:
            logger.error("❌ 尚未注入 ApprovalWorkflow，無法啟動")
            return False

        try:
            self._app = Application.builder().token(self._token).build()
            self._register_handlers()
            await self._app.initialize()
            self._bot = self._app.bot
            await self._app.updater.start_polling(drop_pending_updates=True)
            await self._app.start()
        except TelegramError as e:
            logger.error(f"❌ Telegram Bot 啟動失敗: {e}")
            self._stats["errors"] += 1
            return False

        self._running = True
        if self._bus is not None:
            self._bus.subscribe(TOPIC_PROPOSAL_EXPIRED, self.on_proposal_expired)
        logger.info("🟢 Telegram Bot 已啟動")
        return True

    async def stop(self):
        """停止 Telegram Bot"""
        if not self._running:
            return
        self._running = False
        if self._bus is not None:
            self._bus.unsubscribe(TOPIC_PROPOSAL_EXPIRED, self.on_proposal_expired)
        try:
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
        except TelegramError as e:
            logger.error(f"Telegram 關閉時發生錯誤: {e}")
        logger.info("🔴 Telegram Bot 已停止")

    def _register_handlers(self):
        """註冊所有指令與回調處理器"""
        for name in COMMAND_NAMES:
            self._app.add_handler(CommandHandler(name, self.handle_command))
        self._app.add_handler(CommandHandler(["help", "start"], self.handle_help))
        self._app.add_handler(CallbackQueryHandler(self.handle_callback))
        logger.info(f"📋 已註冊 {len(COMMAND_NAMES) + 1} 個指令 + 1 個回調處理器")

    # ── 指令處理器 ────────────────────────────────────────────

    async def handle_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """處理 /givepack, /givepoints, /checkgifts"""
        self._stats["commands_handled"] += 1
        message = update.effective_message
        command_name = message.text.split()[0].lstrip("/").split("@")[0].lower()

        reply_to = message.reply_to_message
        reply_user = None
        if reply_to is not None and reply_to.from_user is not None:
            reply_user = str(reply_to.from_user.id)

        request = CommandRequest(
            command_name=command_name,
            request_id=str(update.update_id),
            actor_id=str(update.effective_user.id),
            channel_id=str(update.effective_chat.id),
            parameters=parse_arguments(command_name, list(context.args or []), reply_user),
        )
        effects = await self._workflow.handle_command(request)
        await self._deliver(effects, message=message)

    async def handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """處理 /help"""
        self._stats["commands_handled"] += 1
        lines = ["GiftGate commands (each grant needs a second approver):"]
        lines += [f"/{name}: {text}" for name, text in COMMAND_HELP.items()]
        await self._deliver([SendMessage(text="\n".join(lines))], message=update.effective_message)

    # ── 回調處理器（Inline Button） ──────────────────────────

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """處理核准/拒絕按鈕"""
        self._stats["callbacks_handled"] += 1
        query = update.callback_query
        try:
            decision = Decision.from_callback(query.data, actor_id=str(query.from_user.id))
        except ValidationError as e:
            await self._deliver([SendMessage(text=str(e), private=True)], query=query)
            return

        effects = await self._workflow.handle_decision(decision)
        await self._deliver(effects, message=query.message, query=query)

    # ── 事件訂閱 ──────────────────────────────────────────────

    async def on_proposal_expired(self, event: Event):
        """提案過期 → 把原本的確認訊息改為過期並移除按鈕"""
        proposal = event.data
        if proposal.message is None or self._bot is None:
            return
        try:
            await self._bot.edit_message_text(
                expired_text(proposal),
                chat_id=proposal.message.chat_id,
                message_id=proposal.message.message_id,
                reply_markup=None,
            )
        except TelegramError as e:
            self._stats["errors"] += 1
            logger.error(f"Telegram 更新過期提案失敗 | ID={proposal.id} | {e}")

    # ── 效果送出 ──────────────────────────────────────────────

    async def _deliver(self, effects: List[Effect], message=None, query=None):
        """
        依序送出效果；任何一則失敗只記錄，不影響其餘訊息

        query 存在時，一定會呼叫一次 query.answer()（Telegram 要求回應按鈕）
        """
        answered = False
        for effect in effects:
            try:
                if isinstance(effect, UpdateMessage):
                    if query is None:
                        logger.warning("⚠️ UpdateMessage 沒有可更新的訊息，已略過")
                        continue
                    await query.edit_message_text(effect.text, reply_markup=build_keyboard(effect.controls))
                elif isinstance(effect, SendMessage):
                    if effect.private and query is not None and not answered:
                        await query.answer(effect.text, show_alert=True)
                        answered = True
                        continue
                    sent = await self._send(effect, message)
                    if sent is not None and effect.controls:
                        self._workflow.bind_message(effect.controls[0].proposal_id, sent.chat_id, sent.message_id)
                else:
                    raise TypeError(f"Unsupported effect: {type(effect).__name__}")
                self._stats["messages_sent"] += 1
            except TelegramError as e:
                self._stats["errors"] += 1
                logger.error(f"Telegram 發送失敗: {e}")

        if query is not None and not answered:
            try:
                await query.answer()
            except TelegramError as e:
                logger.error(f"Telegram 回應按鈕失敗: {e}")

    async def _send(self, effect: SendMessage, message):
        if message is None:
            logger.warning("⚠️ SendMessage 沒有目標聊天室，已略過")
            return None
        if effect.attachments:
            sent = None
            for attachment in effect.attachments:
                sent = await message.reply_document(
                    document=InputFile(io.BytesIO(attachment.content), filename=attachment.filename),
                    caption=effect.text,
                )
            return sent
        return await message.reply_text(effect.text, reply_markup=build_keyboard(effect.controls))

    # ── 狀態查詢 ──────────────────────────────────────────────

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "token_set": bool(self._token),
            "stats": self._stats.copy(),
        }
