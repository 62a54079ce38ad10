"""Price-state snapshot: the unit of persistence and exchange.

The wire form is the flat `market.json` document keyed by symbol, with the
reserved `lastEvent` key holding the display text:

    {"SKIBI": {"price": 0.75, "lastChange": 0, "high24h": 0.75, ...},
     "lastEvent": "..."}

`Snapshot.from_dict` is the single place where malformed entries are
filtered (non-dict entries, non-numeric or non-positive prices). Skipped keys
are remembered on the instance so callers can log them.
"""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from meme_market.core.market_meta import LAST_EVENT_KEY

_KNOWN_KEYS = ("price", "lastChange", "high24h", "low24h", "volume", "frozenUntil")


@dataclass
class SymbolState:
    price: float
    last_change: float = 0.0
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    volume: float = 0.0
    frozen_until: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # unknown keys round-trip untouched

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SymbolState":
        """Only `price` is trusted to be validated; malformed optional fields
        fall back to their defaults."""
        frozen_until = _opt_float(raw.get("frozenUntil"))
        return cls(
            price=float(raw["price"]),
            last_change=_opt_float(raw.get("lastChange")) or 0.0,
            high_24h=_opt_float(raw.get("high24h")),
            low_24h=_opt_float(raw.get("low24h")),
            volume=_opt_float(raw.get("volume")) or 0.0,
            frozen_until=int(frozen_until) if frozen_until else None,
            extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
        )

    def is_frozen(self, now: int) -> bool:
        return self.frozen_until is not None and now < self.frozen_until

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        out.update({"price": self.price, "lastChange": self.last_change, "volume": self.volume})
        if self.high_24h is not None:
            out["high24h"] = self.high_24h
        if self.low_24h is not None:
            out["low24h"] = self.low_24h
        if self.frozen_until:
            out["frozenUntil"] = self.frozen_until
        return out

    def record_price(self, new_price: float, old_price: float) -> None:
        """Set a new price and derive lastChange / 24h range from it."""
        self.price = new_price
        self.last_change = (new_price - old_price) / old_price * 100.0
        self.high_24h = new_price if self.high_24h is None else max(self.high_24h, new_price)
        self.low_24h = new_price if self.low_24h is None else min(self.low_24h, new_price)


def _opt_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def is_valid_entry(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    price = raw.get("price")
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return False
    return math.isfinite(price) and price > 0


@dataclass
class Snapshot:
    stocks: Dict[str, SymbolState] = field(default_factory=dict)
    last_event: str = ""
    skipped: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, doc: Optional[Dict[str, Any]]) -> "Snapshot":
        snap = cls()
        for key, raw in (doc or {}).items():
            if key == LAST_EVENT_KEY:
                snap.last_event = str(raw or "")
                continue
            if not is_valid_entry(raw):
                snap.skipped.append(key)
                continue
            snap.stocks[key] = SymbolState.from_dict(raw)
        return snap

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {sym: st.to_dict() for sym, st in self.stocks.items()}
        out[LAST_EVENT_KEY] = self.last_event
        return out

    def symbols(self) -> List[str]:
        return list(self.stocks.keys())

    def price(self, symbol: str) -> Optional[float]:
        st = self.stocks.get(symbol)
        return st.price if st else None

    def copy(self) -> "Snapshot":
        return Snapshot(copy.deepcopy(self.stocks), self.last_event, list(self.skipped))

    def __len__(self) -> int:
        return len(self.stocks)


__all__ = ["SymbolState", "Snapshot", "is_valid_entry"]
