"""Price update engine.

`compute_update` is the pure per-cycle transition: snapshot + meta + trigger
map + trend scores in, new snapshot + history records out. `PriceUpdateEngine`
wraps it in the cycle transaction used by the scheduler:

    load snapshot -> sweep selector -> optional chaos roll -> fetch trends
    -> compute in memory -> single atomic save -> best-effort history append

Cycles are serialized by an asyncio.Lock. A concurrent caller either waits
(`on_busy="queue"`) or gets `CycleInProgressError` (`on_busy="reject"`).
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from loguru import logger

from meme_market.core.custom_types import HistoryRecord, TriggerMap
from meme_market.core.market_meta import SymbolMeta, volatility_for
from meme_market.core.timeutils import Clock, in_hour_window, now_ms
from meme_market.market.snapshot import Snapshot
from meme_market.market.store import SnapshotStore
from meme_market.persist import db
from meme_market.triggers.chaos import DEFAULT_CHAOS_PROBABILITY, random_chaos_event

if TYPE_CHECKING:  # pragma: no cover
    from meme_market.events.selector import GlobalEventSelector
    from meme_market.trends.aggregator import TrendAggregator

TIME_FREEZE_FACTOR = 0.2
BEACH_HOURS = (10, 16)


class CycleInProgressError(RuntimeError):
    """A cycle is already running and the caller asked not to wait."""


@dataclass
class UpdateResult:
    snapshot: Snapshot
    history: List[HistoryRecord] = field(default_factory=list)
    trend_scores: Dict[str, float] = field(default_factory=dict)
    triggers: TriggerMap = field(default_factory=TriggerMap)

    @property
    def last_event(self) -> str:
        return self.snapshot.last_event


def _merge_partners(selector: Optional["GlobalEventSelector"], now: int) -> Dict[str, Tuple[str, str]]:
    partners: Dict[str, Tuple[str, str]] = {}
    if selector is None:
        return partners
    for m in selector.get_active_merges(now):
        key = (str(m["stock1"]), str(m["stock2"]))
        partners.setdefault(key[0], key)
        partners.setdefault(key[1], key)
    return partners


def compute_update(snapshot: Snapshot, meta: Dict[str, SymbolMeta], triggers: Optional[TriggerMap] = None,
                   trend_scores: Optional[Dict[str, float]] = None, rng: Optional[random.Random] = None,
                   now: Optional[int] = None, selector: Optional["GlobalEventSelector"] = None,
                   ) -> Tuple[Snapshot, List[HistoryRecord]]:
    """Apply one update to every symbol of `snapshot` (which is not mutated).

    Frozen symbols (trigger map, selector, or an unexpired `frozenUntil` on
    the entry itself) keep their price and report a zero change. Both symbols of
    a merged pair share one random draw. Unknown symbols in `triggers` are
    ignored.
    """
    triggers = triggers or TriggerMap()
    trend_scores = trend_scores or {}
    rng = rng or random.Random()
    now = now_ms() if now is None else now
    out = snapshot.copy()
    history: List[HistoryRecord] = []
    partners = _merge_partners(selector, now)
    shared_draws: Dict[Tuple[str, str], float] = {}
    freeze_factor = TIME_FREEZE_FACTOR if triggers.time_freeze else 1.0

    for sym, st in out.stocks.items():
        m = meta.get(sym) or SymbolMeta()
        old = st.price

        if st.frozen_until is not None and not st.is_frozen(now):
            st.frozen_until = None
        if (sym in triggers.freeze or st.is_frozen(now)
                or (selector is not None and selector.is_stock_frozen(sym, now))):
            st.last_change = 0.0
            logger.debug("[engine] {} frozen at {:.4f}", sym, old)
            continue

        volatility = volatility_for(m.volatility) * freeze_factor
        bonus = triggers.get(sym)
        if sym == "GYATT" and bonus > 0 and in_hour_window(now, *BEACH_HOURS):
            volatility *= 2
        if sym == "LABUB" and triggers.sunday_immunity and bonus < 0:
            logger.info("[engine] LABUB Sunday immunity absorbed {:+.1%}", bonus)
            bonus = 0.0

        pair = partners.get(sym)
        if pair is not None and pair in shared_draws:
            draw = shared_draws[pair]
        else:
            draw = rng.uniform(-volatility, volatility)
            if pair is not None:
                shared_draws[pair] = draw

        trend = float(trend_scores.get(sym, 0.0))
        delta = draw + bonus + trend
        raw = old * (1 + delta)
        new = min(m.max_price, max(m.floor, raw))
        if new >= m.max_price and raw > m.max_price:
            logger.info("[engine] {} hit hard price cap at {}", sym, m.max_price)
        if raw < m.floor and m.minimum_price:
            logger.info("[engine] {} floor protection held at {:.2f}", sym, new)

        st.record_price(new, old)
        history.append(HistoryRecord(sym, new, trend, now))
        if abs(bonus + trend) > 0.01:
            logger.debug("[engine] {}: {:+.1f}% (event {:+.1%}, trend {:+.1%})", sym, st.last_change, bonus, trend)

    if triggers.text:
        out.last_event = triggers.text
    return out, history


class PriceUpdateEngine:
    def __init__(self, store: SnapshotStore, selector: Optional["GlobalEventSelector"] = None,
                 aggregator: Optional["TrendAggregator"] = None, rng: Optional[random.Random] = None,
                 clock: Clock = now_ms, history_enabled: bool = True,
                 chaos_probability: float = DEFAULT_CHAOS_PROBABILITY):
        self.store = store
        self.selector = selector
        self.aggregator = aggregator
        self.rng = rng or random.Random()
        self.clock = clock
        self.history_enabled = history_enabled
        self.chaos_probability = chaos_probability
        self._lock = asyncio.Lock()
        self.cycles = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def _acquire(self, on_busy: str) -> None:
        if on_busy not in ("queue", "reject"):
            raise ValueError(f"on_busy must be 'queue' or 'reject', got {on_busy!r}")
        if on_busy == "reject" and self._lock.locked():
            raise CycleInProgressError("price update already in progress")
        await self._lock.acquire()

    # ------------------------------------------------------------------
    async def update(self, snapshot: Snapshot, triggers: Optional[TriggerMap] = None,
                     trend_enabled: bool = True, meta: Optional[Dict[str, SymbolMeta]] = None) -> UpdateResult:
        """Compute one update in memory (no persistence)."""
        triggers = triggers or TriggerMap()
        meta = meta if meta is not None else self.store.load_meta()
        scores: Dict[str, float] = {}
        if trend_enabled and self.aggregator is not None:
            scores = await self.aggregator.scores(snapshot.symbols())
        new_snap, history = compute_update(snapshot, meta, triggers, scores, self.rng, self.clock(), self.selector)
        return UpdateResult(new_snap, history, scores, triggers)

    async def run_cycle(self, triggers: Optional[TriggerMap] = None, trend_enabled: bool = True,
                        allow_chaos: bool = True, on_busy: str = "queue") -> UpdateResult:
        await self._acquire(on_busy)
        try:
            snapshot = self.store.load()
            meta = self.store.load_meta()
            now = self.clock()
            if self.selector is not None:
                self.selector.sweep(now)
            effective = triggers.copy() if triggers is not None else TriggerMap()
            if allow_chaos:
                chaos = random_chaos_event(self.rng, self.chaos_probability)
                if not chaos.is_empty():
                    effective.overlay(chaos)
            result = await self.update(snapshot, effective, trend_enabled, meta)
            self.store.save(result.snapshot)
            self._record_history(result.history)
            self.cycles += 1
            logger.info("[engine] cycle {} updated {} symbols", self.cycles, len(result.history))
            return result
        finally:
            self._lock.release()

    async def run_light_cycle(self, provider: str = "tiktok", impact: float = 0.5, min_abs: float = 0.005,
                              on_busy: str = "queue") -> UpdateResult:
        """Single-provider nudge between full cycles. Symbols left alone keep
        their previous lastChange."""
        await self._acquire(on_busy)
        try:
            snapshot = self.store.load()
            if self.aggregator is None:
                return UpdateResult(snapshot)
            meta = self.store.load_meta()
            now = self.clock()
            if self.selector is not None:
                self.selector.sweep(now)
            live = [s for s, st in snapshot.stocks.items()
                    if not st.is_frozen(now)
                    and (self.selector is None or not self.selector.is_stock_frozen(s, now))]
            results = await asyncio.gather(*(self.aggregator.score_source(s, provider) for s in live))
            scores = dict(zip(live, results))
            history: List[HistoryRecord] = []
            for sym, score in scores.items():
                if abs(score) <= min_abs:
                    continue
                m = meta.get(sym) or SymbolMeta()
                st = snapshot.stocks[sym]
                old = st.price
                new = min(m.max_price, max(m.floor, old * (1 + score * impact)))
                st.record_price(new, old)
                history.append(HistoryRecord(sym, new, score, now))
            if history:
                self.store.save(snapshot)
                self._record_history(history)
            logger.info("[engine] light {} cycle moved {} symbols", provider, len(history))
            return UpdateResult(snapshot, history, scores)
        finally:
            self._lock.release()

    def _record_history(self, records: List[HistoryRecord]) -> None:
        if not self.history_enabled or not records:
            return
        if not db.is_initialised():
            logger.debug("[engine] no history DB; dropped {} records", len(records))
            return
        db.record_price_history(records)
