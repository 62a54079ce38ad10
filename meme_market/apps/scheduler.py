"""Market scheduler: owns the selector, aggregator, store and engine and runs
the recurring jobs.

Jobs:
  * full cycle every `full_interval_sec` (global event check + keyword
    triggers + trends + chaos roll)
  * light TikTok-only cycle every `light_interval_sec`
  * market-open boost once per local day at `market_open_hour`

Manual overrides (`apply_manual_triggers`, `trigger_event`) go through the
same engine lock as the timed jobs.
"""
from __future__ import annotations

import asyncio
import random
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from meme_market.core.config import Settings
from meme_market.core.custom_types import EventDescriptor, TriggerMap
from meme_market.core.timeutils import Clock, local_dt, now_ms
from meme_market.engine.price_updater import PriceUpdateEngine, UpdateResult
from meme_market.events.catalog import FREEZE_HOLD_MS
from meme_market.events.selector import GlobalEventSelector
from meme_market.market.store import SnapshotStore, build_store
from meme_market.trends.aggregator import TrendAggregator
from meme_market.triggers.detector import detect

MARKET_OPEN_TEXT = "🌅 Market Open! Italian stocks +5% morning pasta power!"
OPEN_CHECK_SEC = 60.0

MessageSource = Callable[[], Iterable[Any]]


class MarketScheduler:
    def __init__(self, settings: Optional[Settings] = None, store: Optional[SnapshotStore] = None,
                 selector: Optional[GlobalEventSelector] = None, aggregator: Optional[TrendAggregator] = None,
                 engine: Optional[PriceUpdateEngine] = None, rng: Optional[random.Random] = None,
                 clock: Clock = now_ms, message_source: Optional[MessageSource] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.settings = settings or Settings()
        seed = self.settings.market.seed
        self.rng = rng or (random.Random(seed) if seed is not None else random.Random())
        self.clock = clock
        self.store = store or build_store(self.settings.market)
        self.selector = selector or GlobalEventSelector(rng=self.rng, clock=clock)
        if aggregator is None and self.settings.trends.enabled:
            aggregator = TrendAggregator(self.settings.trends, rng=self.rng, clock=clock)
        self.aggregator = aggregator
        self.engine = engine or PriceUpdateEngine(
            self.store, self.selector, self.aggregator, rng=self.rng, clock=clock,
            history_enabled=self.settings.market.history_enabled,
        )
        self.message_source = message_source
        self._sleep = sleep
        self._tasks: List[asyncio.Task] = []
        self._running = False
        self._last_open_day: Optional[date] = None

    # ------------------------------------------------------------------
    async def run_full_cycle(self, messages: Optional[Iterable[Any]] = None) -> UpdateResult:
        """Keyword triggers, then the global event roll laid over them."""
        now = self.clock()
        if messages is None and self.message_source is not None:
            messages = self.message_source()
        triggers = detect(messages or [], now=now)
        event = self.selector.check_for_global_events(now)
        if event is not None:
            triggers.overlay(event.triggers)
        return await self.engine.run_cycle(
            triggers,
            trend_enabled=self.settings.trends.enabled,
            allow_chaos=self.settings.scheduler.chaos_enabled,
        )

    async def run_light_cycle(self) -> Optional[UpdateResult]:
        if not self.settings.scheduler.light_enabled:
            return None
        return await self.engine.run_light_cycle()

    async def market_open(self) -> UpdateResult:
        boost = self.settings.scheduler.market_open_boost
        triggers = TriggerMap(deltas={s: boost for s in self.selector.symbols}, text=MARKET_OPEN_TEXT)
        logger.info("[scheduler] market open boost {:+.0%}", boost)
        return await self.engine.run_cycle(triggers, trend_enabled=False, allow_chaos=False)

    async def apply_manual_triggers(self, triggers: Union[TriggerMap, Dict[str, Any]],
                                    allow_chaos: bool = False) -> UpdateResult:
        """Operator override: apply an explicit trigger map without fetching trends."""
        tm = triggers if isinstance(triggers, TriggerMap) else TriggerMap.from_dict(triggers)
        if tm.freeze:
            self.selector.freeze(tm.freeze, FREEZE_HOLD_MS)
        logger.warning("[scheduler] manual triggers: {}", tm.to_dict())
        return await self.engine.run_cycle(tm, trend_enabled=False, allow_chaos=allow_chaos)

    async def trigger_event(self, event_type: str,
                            duration_ms: Optional[int] = None) -> Tuple[EventDescriptor, UpdateResult]:
        event = self.selector.force_event(event_type, duration_ms)
        result = await self.engine.run_cycle(event.triggers, trend_enabled=False, allow_chaos=False)
        return event, result

    # ------------------------------------------------------------------
    def _open_due(self, now: int) -> bool:
        dt = local_dt(now)
        if dt.hour != self.settings.scheduler.market_open_hour:
            return False
        return self._last_open_day != dt.date()

    async def check_market_open(self) -> Optional[UpdateResult]:
        now = self.clock()
        if not self._open_due(now):
            return None
        self._last_open_day = local_dt(now).date()
        return await self.market_open()

    async def _loop(self, name: str, interval: float, job: Callable[[], Awaitable[Any]]) -> None:
        while self._running:
            await self._sleep(interval)
            if not self._running:
                break
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("[scheduler] {} job failed: {}", name, e)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        cfg = self.settings.scheduler
        self._tasks = [
            asyncio.create_task(self._loop("full", cfg.full_interval_sec, self.run_full_cycle)),
            asyncio.create_task(self._loop("open", OPEN_CHECK_SEC, self.check_market_open)),
        ]
        if cfg.light_enabled:
            self._tasks.append(asyncio.create_task(self._loop("light", cfg.light_interval_sec, self.run_light_cycle)))
        logger.info(
            "[scheduler] started: full every {}s, light every {}s ({})",
            cfg.full_interval_sec, cfg.light_interval_sec, "on" if cfg.light_enabled else "off",
        )

    async def stop(self) -> None:
        self._running = False
        for t in self._tasks:
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self.aggregator is not None:
            await self.aggregator.close()
        logger.info("[scheduler] stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def run_forever(self) -> None:
        """Run one full cycle immediately, then the timed jobs until cancelled."""
        await self.run_full_cycle()
        await self.start()
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.warning("[scheduler] cancelled; shutting down")
        finally:
            await self.stop()
