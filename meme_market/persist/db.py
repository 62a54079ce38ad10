"""SQLite persistence layer.

Single access point for the price history and the optional SQLite-backed
snapshot store. Uses WAL mode and versioned migrations tracked in the
`migrations` table (see `migrations.py`).

History writes are best-effort: a failed append is logged and swallowed so
history loss never blocks a market cycle.
"""
from __future__ import annotations
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Any, Dict, List
from loguru import logger

from meme_market.core.custom_types import HistoryRecord

_DB_PATH_ENV = "MEME_MARKET_DB_PATH"
_DEFAULT_PATH = "data/market.db"

_lock = threading.RLock()
_conn: Optional[sqlite3.Connection] = None

PRAGMAS = [
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
]

@contextmanager
def tx(immediate: bool = False) -> Iterator[sqlite3.Cursor]:
    """Context manager for a DB transaction.

    Args:
        immediate: If True issues BEGIN IMMEDIATE for early write-lock
                    acquisition (used by the snapshot replace).
    """
    cur = None
    try:
        with _lock:
            if _conn is None:
                raise RuntimeError("DB not initialised. Call init_db() first.")
            _conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            cur = _conn.cursor()
        yield cur
        with _lock:
            _conn.commit()
    except Exception:
        if _conn:
            with _lock:
                _conn.rollback()
        raise
    finally:
        if cur is not None:
            try:
                cur.close()
            except Exception:  # pragma: no cover
                pass

def init_db(path: str | None = None):
    """Initialise global connection + apply pragmas (idempotent)."""
    global _conn
    with _lock:
        if _conn is not None:
            return
        db_path = Path(path or os.environ.get(_DB_PATH_ENV) or _DEFAULT_PATH)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        _conn = sqlite3.connect(db_path, check_same_thread=False, timeout=30, isolation_level=None)
        _conn.row_factory = sqlite3.Row
        for p in PRAGMAS:
            try:
                _conn.execute(p)
            except Exception as e:  # pragma: no cover
                logger.warning(f"[DB] pragma failed {p} :: {e}")
        logger.info(f"[DB] Opened {db_path} (WAL mode)")


def close_db():
    """Close the global connection so a later init_db() can open another file."""
    global _conn
    with _lock:
        if _conn is not None:
            _conn.close()
            _conn = None


def is_initialised() -> bool:
    return _conn is not None


def get_conn() -> sqlite3.Connection:
    if _conn is None:
        raise RuntimeError("DB not initialised; call init_db()")
    return _conn


def fetchall(sql: str, params: tuple[Any, ...] = ()):
    with _lock:
        cur = get_conn().execute(sql, params)
        rows = [dict(r) for r in cur.fetchall()]
        cur.close()
    return rows

def fetchone(sql: str, params: tuple[Any, ...] = ()) -> Optional[Dict[str, Any]]:
    with _lock:
        cur = get_conn().execute(sql, params)
        row = cur.fetchone()
        cur.close()
    return dict(row) if row else None

def execute(sql: str, params: tuple[Any, ...] = ()):  # autocommit helper
    with tx() as cur:
        cur.execute(sql, params)


def record_price_history(records: Iterable[HistoryRecord]) -> int:
    """Append history tuples; returns how many were written (0 on failure)."""
    rows = [(r.symbol, float(r.price), float(r.trend_score), int(r.ts)) for r in records]
    if not rows:
        return 0
    try:
        with tx() as cur:
            cur.executemany(
                "INSERT INTO price_history(symbol, price, trend_score, ts) VALUES(?,?,?,?)",
                rows,
            )
        return len(rows)
    except Exception as e:
        logger.warning(f"[DB] price history append failed ({len(rows)} rows): {e}")
        return 0


def load_price_history(symbol: str, limit: int = 100) -> List[Dict[str, Any]]:
    """Most recent history rows for a symbol, oldest first."""
    rows = fetchall(
        "SELECT symbol, price, trend_score, ts FROM price_history WHERE symbol=? ORDER BY ts DESC, id DESC LIMIT ?",
        (symbol, int(limit)),
    )
    rows.reverse()
    return rows
