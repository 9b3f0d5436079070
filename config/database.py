"""
BINGO47 — Persistence Layer

SQLite-backed storage for everything that outlives a round:
  - kv_store:        JSON-encoded named values (credits, bet, cards, settings)
  - jackpot_ledger:  typed bet_multiplier → count table for progressive jackpots

One connection per GameDatabase, shared across threads behind a lock, so
":memory:" databases work for tests and the web app's timer threads.

Usage:
    from config.database import GameDatabase
    db = GameDatabase("bingo47.db")
    db.set("userCredits", 500)
    credits = db.get("userCredits", 0)
    db.close()
"""

import json
import logging
import sqlite3
import threading
from typing import Any, Optional

from config.settings import DB_PATH

logger = logging.getLogger("bingo47.db")


# ── SQLite dict-row wrapper ──
class _SqliteDict(dict):
    """Makes sqlite3 rows behave like a dict with .get() support."""
    pass


def _sqlite_dict_factory(cursor, row):
    d = _SqliteDict()
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def _open_sqlite(path: str):
    """Open a raw SQLite connection."""
    conn = sqlite3.connect(path, timeout=10, check_same_thread=False)
    conn.row_factory = _sqlite_dict_factory
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT (CURRENT_TIMESTAMP)
);

CREATE TABLE IF NOT EXISTS jackpot_ledger (
    bet_multiplier INTEGER PRIMARY KEY,
    accumulated INTEGER NOT NULL,
    updated_at TEXT DEFAULT (CURRENT_TIMESTAMP)
);
"""


# ═══════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════

class GameDatabase:
    """Key/value + jackpot storage on a single SQLite connection."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or DB_PATH
        self._lock = threading.RLock()
        self._conn = _open_sqlite(self.path)
        self.init_db()

    def init_db(self):
        """Initialize the database schema."""
        with self._lock:
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        logger.info(f"Database initialized ({self.path})")

    # ── Key/value ──

    def get(self, key: str, default: Any = None) -> Any:
        """Decoded value for key, or default if missing or unreadable."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except (TypeError, ValueError):
            logger.warning(f"Unreadable value for {key!r}, using default")
            return default

    def set(self, key: str, value: Any):
        encoded = json.dumps(value)
        with self._lock:
            self._conn.execute(
                """INSERT INTO kv_store (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value, updated_at = CURRENT_TIMESTAMP""",
                (key, encoded),
            )
            self._conn.commit()

    def delete(self, key: str):
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._conn.commit()

    def has(self, key: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 AS hit FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return row is not None

    # ── Jackpot ledger rows ──

    def jackpot_count(self, bet_multiplier: int) -> Optional[int]:
        with self._lock:
            row = self._conn.execute(
                "SELECT accumulated FROM jackpot_ledger WHERE bet_multiplier = ?",
                (bet_multiplier,),
            ).fetchone()
        return None if row is None else int(row["accumulated"])

    def jackpot_counts(self) -> dict[int, int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT bet_multiplier, accumulated FROM jackpot_ledger ORDER BY bet_multiplier"
            ).fetchall()
        return {int(r["bet_multiplier"]): int(r["accumulated"]) for r in rows}

    def jackpot_add(self, bet_multiplier: int, amount: int, baseline: int) -> int:
        """Atomically add to a ledger row (seeding it at baseline). Returns new count."""
        with self._lock:
            self._conn.execute(
                """INSERT INTO jackpot_ledger (bet_multiplier, accumulated, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(bet_multiplier) DO UPDATE SET
                       accumulated = accumulated + ?, updated_at = CURRENT_TIMESTAMP""",
                (bet_multiplier, baseline + amount, amount),
            )
            self._conn.commit()
            row = self._conn.execute(
                "SELECT accumulated FROM jackpot_ledger WHERE bet_multiplier = ?",
                (bet_multiplier,),
            ).fetchone()
        return int(row["accumulated"])

    def jackpot_swap(self, bet_multiplier: int, new_count: int, default: int) -> int:
        """Atomically replace a ledger row. Returns the previous count (default if unseen)."""
        with self._lock:
            row = self._conn.execute(
                "SELECT accumulated FROM jackpot_ledger WHERE bet_multiplier = ?",
                (bet_multiplier,),
            ).fetchone()
            previous = default if row is None else int(row["accumulated"])
            self._conn.execute(
                """INSERT INTO jackpot_ledger (bet_multiplier, accumulated, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(bet_multiplier) DO UPDATE SET
                       accumulated = excluded.accumulated, updated_at = CURRENT_TIMESTAMP""",
                (bet_multiplier, new_count),
            )
            self._conn.commit()
        return previous

    def jackpot_set(self, bet_multiplier: int, count: int):
        self.jackpot_swap(bet_multiplier, count, default=count)

    def close(self):
        with self._lock:
            self._conn.close()

    # Context manager
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
