"""SQLiteCache: file-backed result cache shared between invocations.

Schema:
  cache  one row per key; value stored as JSON, expiry as epoch seconds.
         Expired rows are ignored on read and purged on write.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from typing import Any, Callable

from prstack_store.base import BaseCache
from prstack_store.models import CacheEntry

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    key         TEXT PRIMARY KEY,
    value_json  TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache (expires_at);
"""


class SQLiteCache(BaseCache):
    """Stores cached values in a local SQLite file.

    Defaults to `.prstack-cache.db` in the working directory. Configure via
    .prstack.yml: `cache: sqlite` and `cache_path: /path/to/cache.db`.
    """

    def __init__(self, db_path: str = ".prstack-cache.db", clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def _entry(self, key: str) -> CacheEntry | None:
        row = self._conn.execute("SELECT * FROM cache WHERE key=?", (key,)).fetchone()
        if row is None:
            return None
        return CacheEntry(key=row["key"], value=json.loads(row["value_json"]), expires_at=row["expires_at"])

    def get(self, key: str) -> tuple[bool, Any]:
        with self._lock:
            entry = self._entry(key)
        if entry is None or entry.is_expired(self._clock()):
            return False, None
        return True, entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        with self._lock:
            self._conn.execute("DELETE FROM cache WHERE expires_at <= ?", (now,))
            self._conn.execute(
                "INSERT OR REPLACE INTO cache (key, value_json, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), now + ttl),
            )
            self._conn.commit()
        logger.debug("Cached %s for %ss.", key, ttl)

    def close(self) -> None:
        self._conn.close()
