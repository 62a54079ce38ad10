"""In-memory TTL cache for per-symbol trend scores (keeps command paths fast)."""
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple


class TrendCache:
    def __init__(self, ttl_sec: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = float(ttl_sec)
        self._clock = clock
        self._data: Dict[str, Tuple[float, float]] = {}  # symbol -> (score, stored_at)

    def get(self, symbol: str) -> Optional[float]:
        if self.ttl_sec <= 0:
            return None
        hit = self._data.get(symbol)
        if hit and self._clock() - hit[1] < self.ttl_sec:
            return hit[0]
        return None

    def put(self, symbol: str, score: float) -> None:
        self._data[symbol] = (float(score), self._clock())

    def clear(self) -> None:
        self._data.clear()

    def stats(self) -> dict:
        now = self._clock()
        return {
            "size": len(self._data),
            "entries": [
                {"symbol": sym, "score": score, "age": f"{round(now - ts)}s"}
                for sym, (score, ts) in self._data.items()
            ],
        }
