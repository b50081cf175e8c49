import json
import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterable

from scoresquare import config
from scoresquare.errors import CacheCorrupt
from scoresquare.models import STALE, CacheSnapshot, LeaderboardEntry

logger = logging.getLogger(__name__)

ENTRIES_KEY = "scoresquare-leaderboard"
TIMESTAMP_KEY = "scoresquare-leaderboard-timestamp"

KV_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_cache (
    key          TEXT PRIMARY KEY,
    data         TEXT NOT NULL,
    last_fetched TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_kv_cache_last_fetched ON kv_cache(last_fetched);
"""


# ── Storage backends ─────────────────────────────────────────────────────────


class MemoryStore:
    """Process-local key/value store, for tests and one-off runs."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set_many(self, items: dict[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def delete(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)


def open_conn(path):
    conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=10000;")  # ms
    return conn


def ensure_schema(conn) -> None:
    conn.executescript(KV_SCHEMA_SQL)


class SQLiteStore:
    """
    Key/value rows in the kv_cache table. A short-lived connection per call,
    so Flask worker threads never share a cursor.
    """

    def __init__(self, path=None):
        self.path = path or config.DATABASE
        conn = open_conn(self.path)
        try:
            ensure_schema(conn)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> str | None:
        conn = open_conn(self.path)
        try:
            row = conn.execute("SELECT data FROM kv_cache WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def set_many(self, items: dict[str, str]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        conn = open_conn(self.path)
        try:
            with conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO kv_cache (key, data, last_fetched) VALUES (?, ?, ?)",
                    [(k, v, now) for k, v in items.items()],
                )
        finally:
            conn.close()

    def delete(self, keys: Iterable[str]) -> None:
        conn = open_conn(self.path)
        try:
            with conn:
                conn.executemany("DELETE FROM kv_cache WHERE key = ?", [(k,) for k in keys])
        finally:
            conn.close()


# ── Result cache ─────────────────────────────────────────────────────────────


class ResultCache:
    """
    TTL-bounded snapshot of the last computed leaderboard.

    Stored as two entries: the serialized entry list and an epoch-ms
    timestamp. get() never raises for missing, expired or unreadable data;
    it returns STALE and the caller recomputes.
    """

    def __init__(
        self,
        store,
        *,
        ttl_seconds: float | None = None,
        privileged_fids: Iterable[int] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = config.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        fids = config.PRIVILEGED_FIDS if privileged_fids is None else privileged_fids
        self.privileged_fids = frozenset(int(f) for f in fids)
        self.clock = clock

    def _load(self) -> CacheSnapshot | None:
        try:
            raw_entries = self.store.get(ENTRIES_KEY)
            raw_ts = self.store.get(TIMESTAMP_KEY)
        except sqlite3.DatabaseError as e:
            raise CacheCorrupt(f"store unreadable: {e}") from e
        if raw_entries is None or raw_ts is None:
            return None
        try:
            computed_at = int(raw_ts) / 1000.0
            rows = json.loads(raw_entries)
            if not isinstance(rows, list):
                raise TypeError("entries is not a list")
            entries = tuple(LeaderboardEntry.from_dict(r) for r in rows)
        except (ValueError, TypeError, KeyError, AttributeError, OverflowError) as e:
            raise CacheCorrupt(str(e)) from e
        return CacheSnapshot(entries=entries, computed_at=computed_at, ttl_seconds=self.ttl_seconds)

    def last_known(self) -> CacheSnapshot | None:
        """The stored snapshot regardless of age; None if absent or corrupt."""
        try:
            return self._load()
        except CacheCorrupt as e:
            logger.warning("[cache] unreadable snapshot ignored: %s", e)
            return None

    def get(self):
        snapshot = self.last_known()
        if snapshot is None:
            logger.debug("[cache] miss")
            return STALE
        if not snapshot.is_valid(self.clock()):
            logger.debug("[cache] expired (computed_at=%s ttl=%ss)",
                         snapshot.computed_at, self.ttl_seconds)
            return STALE
        logger.debug("[cache] hit (%d entries)", len(snapshot.entries))
        return snapshot

    def put(self, snapshot: CacheSnapshot) -> None:
        self.store.set_many({
            ENTRIES_KEY: json.dumps([e.to_dict() for e in snapshot.entries]),
            TIMESTAMP_KEY: str(int(round(snapshot.computed_at * 1000))),
        })
        logger.info("[cache] stored %d entries", len(snapshot.entries))

    def invalidate(self, caller_fid) -> None:
        """Drop the snapshot if the caller is privileged. Otherwise do nothing, quietly."""
        try:
            fid = int(caller_fid)
        except (TypeError, ValueError):
            fid = None
        if fid is None or fid not in self.privileged_fids:
            logger.debug("[cache] invalidate ignored")
            return
        self.store.delete([ENTRIES_KEY, TIMESTAMP_KEY])
        logger.info("[cache] invalidated by fid=%s", fid)
