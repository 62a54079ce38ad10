"""Database migrations for the market persistence layer."""
from __future__ import annotations
from typing import List
from loguru import logger
from .db import tx, fetchall

MIGRATIONS: List[tuple[str,str]] = [
    (
        '0001_price_history',
        """
        CREATE TABLE IF NOT EXISTS price_history(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            symbol TEXT NOT NULL,
            price REAL NOT NULL,
            trend_score REAL DEFAULT 0,
            ts INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS ix_price_history_symbol_ts ON price_history(symbol, ts);
        """
    ),
    (
        '0002_market_state',
        """
        CREATE TABLE IF NOT EXISTS market_state(
            symbol TEXT PRIMARY KEY,
            price REAL NOT NULL,
            last_change REAL DEFAULT 0,
            high_24h REAL NULL,
            low_24h REAL NULL,
            volume REAL DEFAULT 0,
            updated_ts INTEGER
        );
        CREATE TABLE IF NOT EXISTS market_kv(
            key TEXT PRIMARY KEY,
            value TEXT
        );
        """
    ),
    (
        '0003_market_state_frozen_extra',
        """
        ALTER TABLE market_state ADD COLUMN frozen_until INTEGER NULL;
        ALTER TABLE market_state ADD COLUMN extra TEXT NULL;
        """
    ),
]


def applied_versions() -> set[str]:
    try:
        rows = fetchall("SELECT version FROM migrations")
        return {r['version'] for r in rows}
    except Exception:
        return set()


def apply_migrations():
    with tx() as cur:
        cur.execute("CREATE TABLE IF NOT EXISTS migrations(version TEXT PRIMARY KEY, applied_ts INTEGER)")
    done = applied_versions()
    for version, ddl in MIGRATIONS:
        if version in done:
            continue
        logger.info(f"[DB] Applying migration {version}")
        with tx() as cur:
            for stmt in filter(None, map(str.strip, ddl.split(';'))):
                cur.execute(stmt)
            cur.execute("INSERT INTO migrations(version, applied_ts) VALUES(?, strftime('%s','now')*1000)", (version,))


__all__ = ['MIGRATIONS', 'apply_migrations', 'applied_versions']
