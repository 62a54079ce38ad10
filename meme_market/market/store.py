"""Snapshot stores: JSON flat file and SQLite.

Both stores share the recovery policy of `SnapshotStore.load`:

  * missing documents are initialised to the default market first;
  * an unreadable document is reinitialised and read once more;
  * a document with no valid symbol is reinitialised as well;
  * only when the reinitialised document still cannot be read does a
    `SnapshotError` escape.

Writes replace the whole snapshot in one step (temp file + os.replace for
JSON, a single BEGIN IMMEDIATE transaction for SQLite).
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from meme_market.core.market_meta import (
    LAST_EVENT_KEY, SymbolMeta, default_market, default_meta, parse_meta,
)
from meme_market.core.timeutils import now_ms
from meme_market.persist import db
from .snapshot import Snapshot


class SnapshotError(Exception):
    """Raised when the snapshot cannot be read even after reinitialisation."""


class SnapshotStore:
    """Base class; subclasses implement the raw read / write / existence hooks."""

    def __init__(self, meta_path: Optional[str] = None):
        self.meta_path = Path(meta_path) if meta_path else None

    # ------------------------------------------------------------------
    def exists(self) -> bool:  # pragma: no cover
        raise NotImplementedError

    def read_raw(self) -> Dict[str, Any]:  # pragma: no cover
        raise NotImplementedError

    def write_raw(self, doc: Dict[str, Any]) -> None:  # pragma: no cover
        raise NotImplementedError

    # ------------------------------------------------------------------
    def initialize(self, force: bool = False) -> None:
        """Write the default market (and meta file, if configured and missing)."""
        if force or not self.exists():
            self.write_raw(default_market())
            logger.info("[store] market initialised with {} default symbols", len(default_market()) - 1)
        if self.meta_path is not None and (force or not self.meta_path.exists()):
            doc = {sym: m.model_dump(by_alias=True, exclude_none=True) for sym, m in default_meta().items()}
            _atomic_write_json(self.meta_path, doc)
            logger.info("[store] meta initialised at {}", self.meta_path)

    def load(self) -> Snapshot:
        if not self.exists():
            logger.warning("[store] market data not found, initialising")
            self.initialize()
        try:
            raw = self.read_raw()
        except Exception as e:
            logger.error("[store] error reading market data: {}; reinitialising", e)
            raw = self._reinitialize_and_read()
        snap = Snapshot.from_dict(raw)
        if snap.skipped:
            logger.warning("[store] skipped corrupted entries: {}", ", ".join(snap.skipped))
        if not snap.stocks:
            logger.warning("[store] no valid stocks found, reinitialising market")
            snap = Snapshot.from_dict(self._reinitialize_and_read())
            if not snap.stocks:
                raise SnapshotError("market reinitialised but still holds no valid symbols")
        return snap

    def _reinitialize_and_read(self) -> Dict[str, Any]:
        try:
            self.initialize(force=True)
            return self.read_raw()
        except Exception as e:
            raise SnapshotError(f"market reinitialisation failed: {e}") from e

    def save(self, snapshot: Snapshot) -> None:
        self.write_raw(snapshot.to_dict())

    def load_meta(self) -> Dict[str, SymbolMeta]:
        """Static metadata; compiled-in defaults when no readable meta file exists."""
        if self.meta_path is None or not self.meta_path.exists():
            return default_meta()
        try:
            with open(self.meta_path, "r", encoding="utf-8") as f:
                return parse_meta(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("[store] error reading meta {}: {}; using defaults", self.meta_path, e)
            return default_meta()


def _atomic_write_json(path: Path, doc: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = str(path) + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


class JsonSnapshotStore(SnapshotStore):
    """`market.json` / `meta.json` pair on disk."""

    def __init__(self, path: str, meta_path: Optional[str] = None):
        super().__init__(meta_path)
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read_raw(self) -> Dict[str, Any]:
        with open(self.path, "r", encoding="utf-8") as f:
            doc = json.load(f)
        if not isinstance(doc, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return doc

    def write_raw(self, doc: Dict[str, Any]) -> None:
        _atomic_write_json(self.path, doc)


_ROW_KEYS = ("price", "lastChange", "high24h", "low24h", "volume", "frozenUntil")


class SqliteSnapshotStore(SnapshotStore):
    """Snapshot in the `market_state` / `market_kv` tables.

    Requires `persist.db.init_db()` and `apply_migrations()` beforehand.
    """

    def exists(self) -> bool:
        row = db.fetchone("SELECT COUNT(*) AS n FROM market_state")
        return bool(row and row["n"])

    def read_raw(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        rows = db.fetchall(
            "SELECT symbol, price, last_change, high_24h, low_24h, volume, frozen_until, extra "
            "FROM market_state ORDER BY rowid"
        )
        for r in rows:
            entry: Dict[str, Any] = {}
            if r["extra"]:
                try:
                    extra = json.loads(r["extra"])
                except json.JSONDecodeError:
                    extra = None
                if isinstance(extra, dict):
                    entry.update(extra)
                else:
                    logger.warning("[store] unreadable extra fields for {}; dropped", r["symbol"])
            entry.update({
                "price": r["price"], "lastChange": r["last_change"], "high24h": r["high_24h"],
                "low24h": r["low_24h"], "volume": r["volume"],
            })
            if r["frozen_until"]:
                entry["frozenUntil"] = r["frozen_until"]
            doc[r["symbol"]] = entry
        row = db.fetchone("SELECT value FROM market_kv WHERE key=?", (LAST_EVENT_KEY,))
        doc[LAST_EVENT_KEY] = row["value"] if row else ""
        return doc

    def write_raw(self, doc: Dict[str, Any]) -> None:
        ts = now_ms()
        with db.tx(immediate=True) as cur:
            cur.execute("DELETE FROM market_state")
            for sym, st in doc.items():
                if sym == LAST_EVENT_KEY or not isinstance(st, dict):
                    continue
                extra = {k: v for k, v in st.items() if k not in _ROW_KEYS}
                cur.execute(
                    "INSERT INTO market_state(symbol, price, last_change, high_24h, low_24h, volume, frozen_until, "
                    "extra, updated_ts) VALUES(?,?,?,?,?,?,?,?,?)",
                    (sym, st.get("price"), st.get("lastChange", 0.0), st.get("high24h"), st.get("low24h"),
                     st.get("volume", 0), st.get("frozenUntil"),
                     json.dumps(extra, ensure_ascii=False) if extra else None, ts),
                )
            cur.execute(
                "INSERT INTO market_kv(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (LAST_EVENT_KEY, str(doc.get(LAST_EVENT_KEY) or "")),
            )


def build_store(market_cfg) -> SnapshotStore:
    """Store for a `MarketSettings` section."""
    if market_cfg.backend == "sqlite":
        db.init_db(market_cfg.db_path)
        from meme_market.persist.migrations import apply_migrations
        apply_migrations()
        return SqliteSnapshotStore(meta_path=market_cfg.meta_path)
    return JsonSnapshotStore(market_cfg.snapshot_path, market_cfg.meta_path)


__all__ = ["SnapshotError", "SnapshotStore", "JsonSnapshotStore", "SqliteSnapshotStore", "build_store"]
