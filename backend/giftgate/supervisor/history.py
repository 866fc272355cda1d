"""
🎁 GiftGate - 提案歷史

訂閱審核流程的事件，保留最近結案（核准 / 拒絕 / 過期）的提案供狀態 API 查詢。
登錄表只放待審提案，結案後的紀錄都在這裡。
"""

import logging
from collections import Counter, deque
from typing import List

from giftgate.core.event_bus import (
    Event,
    MessageBus,
    TOPIC_PROPOSAL_CREATED,
    TOPIC_PROPOSAL_EXPIRED,
    TOPIC_PROPOSAL_RESOLVED,
)

logger = logging.getLogger("giftgate.supervisor.history")


class ProposalHistory:
    """
    已結案提案的滾動紀錄

    Args:
        retention: 保留筆數，超過時丟棄最舊的紀錄
    """

    def __init__(self, retention: int = 200):
        self._records = deque(maxlen=retention)
        self._outcomes = Counter()
        self._created = 0

    def attach(self, bus: MessageBus):
        bus.subscribe(TOPIC_PROPOSAL_CREATED, self.on_created)
        bus.subscribe(TOPIC_PROPOSAL_RESOLVED, self.on_closed)
        bus.subscribe(TOPIC_PROPOSAL_EXPIRED, self.on_closed)

    def on_created(self, event: Event):
        self._created += 1

    def on_closed(self, event: Event):
        record = event.data.to_dict()
        self._records.append(record)
        self._outcomes[record["state"]] += 1
        logger.debug(f"🗂️ 提案結案紀錄 | ID={record['id']} | Status={record['state']}")

    def recent(self, limit: int = 50) -> List[dict]:
        """最近結案的提案，新的在前"""
        if limit <= 0:
            return []
        return list(reversed(self._records))[:limit]

    def get_stats(self) -> dict:
        return {
            "created_seen": self._created,
            "history_count": len(self._records),
            "outcomes": dict(self._outcomes),
        }
