from __future__ import annotations

import asyncio
import random
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
from loguru import logger

from meme_market.core.config import TrendSettings
from meme_market.core.timeutils import Clock, now_ms
from .breaker import ProviderBreaker
from .cache import TrendCache
from .http import MinIntervalLimiter, build_client
from .keywords import search_terms
from .providers import BaseProvider, build_providers


class TrendAggregator:
    """Combines the weighted trend sources into one bounded score per symbol.

    Every source call is isolated: a failure, timeout, open breaker or
    missing credential swaps in that source's seeded fallback, so one outage
    never blocks the aggregate. The weighted sum is clamped to
    [-max_score, +max_score] (0.08 by default).
    """

    def __init__(self, settings: Optional[TrendSettings] = None, client: Optional[httpx.AsyncClient] = None,
                 rng: Optional[random.Random] = None, providers: Optional[Dict[str, BaseProvider]] = None,
                 clock: Clock = now_ms, monotonic: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.cfg = settings or TrendSettings()
        self.rng = rng or random.Random()
        self._owns_client = client is None
        self.client = client or build_client(self.cfg.timeout_sec)
        self.providers: Dict[str, BaseProvider] = providers if providers is not None else build_providers(self.cfg, self.client, clock)
        self.weights: Dict[str, float] = {name: float(self.cfg.weights.get(name, 0.0)) for name in self.providers}
        brk = self.cfg.breaker
        self.breakers: Dict[str, ProviderBreaker] = {
            name: ProviderBreaker(name, brk.fail_threshold, brk.reset_after_sec, clock=monotonic)
            for name in self.providers
        }
        self.limiters: Dict[str, MinIntervalLimiter] = {
            name: MinIntervalLimiter(p.cfg.min_interval_sec, clock=monotonic, sleep=sleep)
            for name, p in self.providers.items()
        }
        self.cache = TrendCache(self.cfg.cache_ttl_sec, clock=monotonic)

    # ------------------------------------------------------------------
    async def score(self, symbol: str, use_cache: bool = True) -> float:
        if use_cache:
            cached = self.cache.get(symbol)
            if cached is not None:
                return cached
        terms = search_terms(symbol)
        parts: Dict[str, float] = {}
        for name, provider in self.providers.items():
            parts[name] = await self._source_score(name, provider, symbol, terms)
        total = sum(parts[name] * self.weights.get(name, 0.0) for name in parts)
        cap = self.cfg.max_score
        result = max(-cap, min(cap, total))
        logger.debug(
            "[trends] {} ({}) combined={:+.2%} parts={}",
            symbol, terms[0], result, {k: round(v, 4) for k, v in parts.items()},
        )
        self.cache.put(symbol, result)
        return result

    async def score_source(self, symbol: str, name: str) -> float:
        """Single-source score (no weighting), e.g. for the light TikTok cycle."""
        provider = self.providers[name]
        return await self._source_score(name, provider, symbol, search_terms(symbol))

    async def scores(self, symbols: Iterable[str]) -> Dict[str, float]:
        syms: List[str] = list(symbols)
        results = await asyncio.gather(*(self.score(s) for s in syms))
        return dict(zip(syms, results))

    async def _source_score(self, name: str, provider: BaseProvider, symbol: str, terms: List[str]) -> float:
        if not provider.cfg.enabled or not provider.configured():
            return provider.fallback(self.rng, terms)
        breaker = self.breakers[name]
        if not breaker.allow():
            return provider.fallback(self.rng, terms)
        try:
            await self.limiters[name].wait()
            value = await provider.fetch(symbol, terms)
        except asyncio.CancelledError:
            breaker.release_trial()
            raise
        except Exception as e:
            breaker.record_failure()
            logger.debug("[trends] {} failed for {}: {}: {}", name, symbol, type(e).__name__, str(e)[:80])
            return provider.fallback(self.rng, terms)
        breaker.record_success()
        if value is None:
            return provider.fallback(self.rng, terms, quiet=True)
        return float(value)

    # ------------------------------------------------------------------
    def status(self) -> dict:
        return {
            "weights": dict(self.weights),
            "breakers": {name: b.get_telemetry() for name, b in self.breakers.items()},
            "configured": {name: p.configured() and p.cfg.enabled for name, p in self.providers.items()},
            "cache": self.cache.stats(),
        }

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
