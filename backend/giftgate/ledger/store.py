"""
🎁 GiftGate - 贈送帳本 (Gifted Ledger)

外部帳本的形狀：
    {
        "<顯示名稱>": {
            "packs": {"<pack id>": 數量},
            "currency": 點數
        }
    }

寫入一律是「絕對值覆寫」(set)，不是累加：同一路徑再次核准只會覆蓋，
最後一次寫入為準。路徑以 "/" 分段，例如 "alice/packs/P1"。
"""

import copy
import json
import sqlite3
import time
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Dict, List

from giftgate.core.errors import StoreError

logger = logging.getLogger("giftgate.ledger")


def split_path(path: str) -> List[str]:
    """把 "a/packs/P1" 拆成段落；空段落視為無效路徑"""
    segments = path.split("/") if path else []
    if not segments or any(not seg for seg in segments):
        raise StoreError(f"Invalid ledger path: {path!r}")
    return segments


def _assign(tree: Dict[str, Any], segments: List[str], value: Any):
    """在巢狀字典中設定值；途中遇到非字典節點就以字典取代"""
    node = tree
    for seg in segments[:-1]:
        child = node.get(seg)
        if not isinstance(child, dict):
            child = {}
            node[seg] = child
        node = child
    node[segments[-1]] = value


class LedgerStore(ABC):
    """帳本介面"""

    @abstractmethod
    def set_value(self, path: str, value: Any):
        """將 path 的值覆寫為 value"""

    @abstractmethod
    def read_all(self) -> Dict[str, Any]:
        """取得整份帳本快照"""


# ═══════════════════════════════════════════════════════════════
# 記憶體帳本
# ═══════════════════════════════════════════════════════════════
class MemoryLedger(LedgerStore):
    """純記憶體帳本（測試與本機試跑用）"""

    def __init__(self, initial: Dict[str, Any] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()
        self.writes: List[tuple] = []

    def set_value(self, path: str, value: Any):
        segments = split_path(path)
        with self._lock:
            _assign(self._data, segments, copy.deepcopy(value))
            self.writes.append((path, value))

    def read_all(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)


# ═══════════════════════════════════════════════════════════════
# SQLite 帳本
# ═══════════════════════════════════════════════════════════════
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ledger_values (
    path        TEXT PRIMARY KEY,
    value_json  TEXT NOT NULL,
    updated_at  REAL NOT NULL
);
"""


class SqliteLedger(LedgerStore):
    """
    SQLite 帳本

    每個路徑一列；覆寫某路徑時，同時刪除它的祖先列與子孫列，
    讓讀回的巢狀快照與「絕對值覆寫」語意一致。
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.executescript(SCHEMA_SQL)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open ledger database {self.db_path}: {e}") from e
        logger.info(f"帳本資料庫已初始化: {self.db_path}")

    @contextmanager
    def _connect(self):
        """取得資料庫連線的 Context Manager"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def set_value(self, path: str, value: Any):
        segments = split_path(path)
        normalized = "/".join(segments)
        ancestors = ["/".join(segments[:i]) for i in range(1, len(segments))]
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Value for {path} is not serializable: {e}") from e

        try:
            with self._connect() as conn:
                for ancestor in ancestors:
                    conn.execute("DELETE FROM ledger_values WHERE path = ?", (ancestor,))
                conn.execute(
                    "DELETE FROM ledger_values WHERE substr(path, 1, ?) = ?",
                    (len(normalized) + 1, normalized + "/"),
                )
                conn.execute(
                    """INSERT OR REPLACE INTO ledger_values (path, value_json, updated_at)
                       VALUES (?, ?, ?)""",
                    (normalized, payload, time.time()),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {path}: {e}") from e

    def read_all(self) -> Dict[str, Any]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT path, value_json FROM ledger_values ORDER BY path"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read ledger: {e}") from e

        snapshot: Dict[str, Any] = {}
        for row in rows:
            _assign(snapshot, row["path"].split("/"), json.loads(row["value_json"]))
        return snapshot
