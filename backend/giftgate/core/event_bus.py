"""
🎁 GiftGate - 提案事件匯流排

審核流程只負責發佈，誰在聽由組裝端決定：
    gate.proposal_created   新提案登錄        → ProposalHistory 計數
    gate.proposal_resolved  核准 / 拒絕完成    → ProposalHistory 紀錄
    gate.proposal_expired   提案過期          → ProposalHistory 紀錄、Telegram 改寫確認訊息

三個主題的 data 都是 Proposal 物件本身。
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("giftgate.core.bus")

TOPIC_PROPOSAL_CREATED = "gate.proposal_created"
TOPIC_PROPOSAL_RESOLVED = "gate.proposal_resolved"
TOPIC_PROPOSAL_EXPIRED = "gate.proposal_expired"


@dataclass(frozen=True)
class Event:
    topic: str
    data: Any
    source: str = ""
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[Event], Any]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", repr(handler))


class MessageBus:
    """
    單一 worker 的非同步事件匯流排

    publish() 只把事件放進佇列就返回；worker 依序呼叫訂閱者，
    訂閱者可以是一般函式或 coroutine function。未啟動時發佈的事件會被丟棄。
    """

    def __init__(self, max_queue_size: int = 1000):
        self._handlers: Dict[str, List[Handler]] = {}
        self._max_queue_size = max_queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._counters = {"published": 0, "processed": 0, "dropped": 0, "errors": 0}

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self):
        if self._worker is not None:
            return
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._worker = asyncio.create_task(self._run(self._queue))
        logger.info("🚌 MessageBus 已啟動")

    async def stop(self):
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        self._queue = None
        logger.info(f"🛑 MessageBus 已停止 | {self._counters}")

    async def drain(self):
        """等待已發佈的事件全部分發完畢"""
        if self._queue is not None:
            await self._queue.join()

    def subscribe(self, topic: str, handler: Handler):
        handlers = self._handlers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(f"📬 訂閱 {topic} → {_handler_name(handler)}")

    def unsubscribe(self, topic: str, handler: Handler):
        handlers = self._handlers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, data: Any = None, source: str = "") -> bool:
        """
        Returns:
            True = 已排入佇列；False = 未啟動或佇列已滿而丟棄
        """
        if self._queue is None:
            self._counters["dropped"] += 1
            logger.debug(f"MessageBus 未啟動，丟棄事件: {topic}")
            return False
        try:
            self._queue.put_nowait(Event(topic, data, source))
        except asyncio.QueueFull:
            self._counters["dropped"] += 1
            logger.warning(f"⚠️ 事件佇列已滿，丟棄事件: {topic}")
            return False
        self._counters["published"] += 1
        return True

    async def _run(self, queue: asyncio.Queue):
        while True:
            event = await queue.get()
            try:
                await self._notify(event)
            finally:
                self._counters["processed"] += 1
                queue.task_done()

    async def _notify(self, event: Event):
        # 複製一份，允許訂閱者在處理中取消訂閱
        for handler in list(self._handlers.get(event.topic, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._counters["errors"] += 1
                logger.exception(f"❌ 事件處理失敗 | Topic={event.topic} | Handler={_handler_name(handler)}")

    def get_stats(self) -> dict:
        return {
            "running": self.running,
            **self._counters,
            "queue_size": self._queue.qsize() if self._queue is not None else 0,
            "subscriber_count": {t: len(h) for t, h in self._handlers.items() if h},
        }
