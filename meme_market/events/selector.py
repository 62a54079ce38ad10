from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from meme_market.core.custom_types import EventDescriptor
from meme_market.core.market_meta import SYMBOLS, default_meta
from meme_market.core.timeutils import Clock, is_weekend, now_ms
from .catalog import EVENT_TABLE, EventContext, EventSpec

DEFAULT_COOLDOWN_MS = 30_000
MIN_FORCED_DURATION_MS = 30_000
MAX_FORCED_DURATION_MS = 3_600_000


class UnknownEventError(KeyError):
    """Raised by `force_event` for a type that is not in the event table."""


@dataclass
class LastEventInfo:
    type: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    duration_ms: Optional[int] = None
    rarity: Optional[str] = None


class GlobalEventSelector:
    """Rolls the global event table behind a cooldown and owns the transient
    market modifiers (frozen symbols and merged pairs) that events leave
    behind.

    One instance lives for the life of the scheduler and is handed to the
    price engine, which asks it about frozen symbols and active merges.
    Expired modifiers are purged lazily on read and explicitly by `sweep()`.
    """

    def __init__(self, cooldown_ms: int = DEFAULT_COOLDOWN_MS, rng: Optional[random.Random] = None,
                 clock: Clock = now_ms, symbols: Optional[Sequence[str]] = None,
                 italian: Optional[Sequence[str]] = None, table: Sequence[EventSpec] = EVENT_TABLE):
        self.cooldown_ms = int(cooldown_ms)
        self.rng = rng or random.Random()
        self.clock = clock
        self.symbols: Tuple[str, ...] = tuple(symbols or SYMBOLS)
        if italian is None:
            meta = default_meta()
            italian = [s for s in self.symbols if meta.get(s) is None or meta[s].italian]
        self.italian: Tuple[str, ...] = tuple(italian)
        self.table: Sequence[EventSpec] = tuple(sorted(table, key=lambda entry: entry.priority))
        self._by_type: Dict[str, EventSpec] = {entry.type: entry for entry in self.table}
        self.last_event_time = 0
        self.frozen: Dict[str, int] = {}
        self.merged: Dict[Tuple[str, str], int] = {}
        self.last = LastEventInfo()

    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else int(now)

    # ------------------------------------------------------------------
    def check_for_global_events(self, now: Optional[int] = None) -> Optional[EventDescriptor]:
        now = self._now(now)
        if now - self.last_event_time < self.cooldown_ms:
            return None
        for entry in self.table:
            if self.rng.random() >= entry.chance(now):
                continue
            event = entry.generate(EventContext(self, self.rng, now))
            if event is None:
                continue
            self._record(event, now)
            logger.info("[events] global event fired: {} ({}, p{})", event.name, event.rarity, entry.priority)
            return event
        return None

    def force_event(self, event_type: str, duration_ms: Optional[int] = None,
                    now: Optional[int] = None) -> EventDescriptor:
        """Fire `event_type` immediately, ignoring probability and cooldown."""
        entry = self._by_type.get(event_type)
        if entry is None:
            raise UnknownEventError(event_type)
        if duration_ms is not None:
            duration_ms = int(duration_ms)
            if not MIN_FORCED_DURATION_MS <= duration_ms <= MAX_FORCED_DURATION_MS:
                raise ValueError(
                    f"duration_ms must be between {MIN_FORCED_DURATION_MS} and {MAX_FORCED_DURATION_MS}, got {duration_ms}"
                )
        now = self._now(now)
        event = entry.generate(EventContext(self, self.rng, now, hold_ms=duration_ms, forced=True))
        if duration_ms is not None:
            event.duration_ms = duration_ms
        self._record(event, now)
        logger.warning("[events] manual event forced: {} (duration={}ms)", event.name, event.duration_ms)
        return event

    def _record(self, event: EventDescriptor, now: int) -> None:
        self.last_event_time = now
        self.last = LastEventInfo(
            type=event.type,
            name=event.name,
            description=event.description,
            duration_ms=event.duration_ms or 60_000,
            rarity=event.rarity or "common",
        )

    # ------------------------------------------------------------------
    def freeze(self, symbols: Iterable[str], duration_ms: int, now: Optional[int] = None) -> List[str]:
        now = self._now(now)
        out: List[str] = []
        for sym in symbols:
            self.frozen[sym] = now + int(duration_ms)
            out.append(sym)
        if out:
            logger.info("[events] frozen {} for {}s", out, int(duration_ms) // 1000)
        return out

    def merge(self, a: str, b: str, duration_ms: int, now: Optional[int] = None) -> None:
        self.merged[(a, b)] = self._now(now) + int(duration_ms)

    def is_stock_frozen(self, symbol: str, now: Optional[int] = None) -> bool:
        expiry = self.frozen.get(symbol)
        if expiry is None:
            return False
        if self._now(now) >= expiry:
            del self.frozen[symbol]
            return False
        return True

    def get_active_merges(self, now: Optional[int] = None) -> List[Dict[str, object]]:
        now = self._now(now)
        active: List[Dict[str, object]] = []
        for (a, b), expiry in list(self.merged.items()):
            if now < expiry:
                active.append({"stock1": a, "stock2": b, "expires": expiry})
            else:
                del self.merged[(a, b)]
        return active

    def sweep(self, now: Optional[int] = None) -> int:
        """Purge expired frozen symbols and merges; returns how many were removed."""
        now = self._now(now)
        stale_f = [s for s, exp in self.frozen.items() if now >= exp]
        stale_m = [k for k, exp in self.merged.items() if now >= exp]
        for s in stale_f:
            del self.frozen[s]
        for k in stale_m:
            del self.merged[k]
        removed = len(stale_f) + len(stale_m)
        if removed:
            logger.debug("[events] swept {} expired modifiers", removed)
        return removed

    # ------------------------------------------------------------------
    def status(self, now: Optional[int] = None) -> Dict[str, object]:
        now = self._now(now)
        remaining = max(0, self.cooldown_ms - (now - self.last_event_time))
        return {
            "lastEventName": self.last.name,
            "lastEventDescription": self.last.description,
            "lastEventDuration": self.last.duration_ms,
            "lastEventRarity": self.last.rarity,
            "lastEventType": self.last.type,
            "frozenStocks": [s for s in list(self.frozen) if self.is_stock_frozen(s, now)],
            "activeMerges": self.get_active_merges(now),
            "lastEventTime": self.last_event_time,
            "eventCooldown": self.cooldown_ms,
            "cooldownRemaining": remaining,
            "weekendMode": is_weekend(now),
        }
