"""
Custom Type Definitions
-----------------------

Centralized types shared by the trigger detector, the global event selector
and the price update engine.

- Symbol: a plain string alias for a meme stock ticker (e.g. "SKIBI").
- TriggerMap: the per-cycle sparse set of forced price deltas plus the
  side-channel instructions (freeze list, global time freeze, Sunday
  immunity, display text). Built fresh each cycle and consumed once.
- EventDescriptor: what a fired global event hands to the caller.
- HistoryRecord: one price history tuple for the persistence collaborator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

Symbol = str

# Reserved wire keys used by the dict form of a trigger map.
FREEZE_STOCKS = "FREEZE_STOCKS"
TIME_FREEZE = "TIME_FREEZE"
SUNDAY_IMMUNITY = "LABUB_SUNDAY_IMMUNITY"
TEXT_KEY = "lastEvent"
RESERVED_KEYS = frozenset({FREEZE_STOCKS, TIME_FREEZE, SUNDAY_IMMUNITY, TEXT_KEY})


@dataclass
class TriggerMap:
    deltas: Dict[Symbol, float] = field(default_factory=dict)
    freeze: List[Symbol] = field(default_factory=list)
    time_freeze: bool = False
    sunday_immunity: bool = False
    text: str = ""

    def add(self, symbol: Symbol, delta: float) -> None:
        """Accumulate a delta onto whatever the symbol already carries."""
        self.deltas[symbol] = self.deltas.get(symbol, 0.0) + float(delta)

    def get(self, symbol: Symbol, default: float = 0.0) -> float:
        return self.deltas.get(symbol, default)

    def overlay(self, other: "TriggerMap") -> "TriggerMap":
        """Lay `other` on top of this map in place: per-key overwrite of deltas,
        later text wins when non-empty, flags OR-ed, freeze lists unioned."""
        self.deltas.update(other.deltas)
        for sym in other.freeze:
            if sym not in self.freeze:
                self.freeze.append(sym)
        self.time_freeze = self.time_freeze or other.time_freeze
        self.sunday_immunity = self.sunday_immunity or other.sunday_immunity
        if other.text:
            self.text = other.text
        return self

    def is_empty(self) -> bool:
        return not (self.deltas or self.freeze or self.time_freeze or self.sunday_immunity or self.text)

    def copy(self) -> "TriggerMap":
        return TriggerMap(dict(self.deltas), list(self.freeze), self.time_freeze, self.sunday_immunity, self.text)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "TriggerMap":
        """Build from the flat wire form, e.g. {"SKIBI": 0.1, "lastEvent": "..."}.
        Non-numeric symbol entries are dropped."""
        tm = cls()
        for key, value in (raw or {}).items():
            if key == FREEZE_STOCKS:
                if isinstance(value, str):
                    value = [value]
                tm.freeze = [str(s) for s in (value or [])]
            elif key == TIME_FREEZE:
                tm.time_freeze = bool(value)
            elif key == SUNDAY_IMMUNITY:
                tm.sunday_immunity = bool(value)
            elif key == TEXT_KEY:
                tm.text = str(value or "")
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                tm.deltas[key] = float(value)
        return tm

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.deltas)
        if self.freeze:
            out[FREEZE_STOCKS] = list(self.freeze)
        if self.time_freeze:
            out[TIME_FREEZE] = True
        if self.sunday_immunity:
            out[SUNDAY_IMMUNITY] = True
        if self.text:
            out[TEXT_KEY] = self.text
        return out


@dataclass
class EventDescriptor:
    """A fired global event. `triggers.text` carries the display line."""
    type: str
    name: str
    description: str
    triggers: TriggerMap
    rarity: str = "common"
    duration_ms: int = 60_000
    global_impact: bool = False

    @property
    def last_event(self) -> str:
        return self.triggers.text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "triggers": self.triggers.to_dict(),
            "lastEvent": self.triggers.text,
            "rarity": self.rarity,
            "duration": self.duration_ms,
            "globalImpact": self.global_impact,
        }


class HistoryRecord(NamedTuple):
    symbol: Symbol
    price: float
    trend_score: float
    ts: int
