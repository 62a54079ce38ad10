"""Async HTTP helpers and a tiny min-interval limiter for the trend sources."""
from typing import Awaitable, Callable, Optional
import asyncio, time
import httpx


class MinIntervalLimiter:
    """Enforces a minimum delay between consecutive calls.

    Calls issued early block (in arrival order) until they become eligible.
    """

    def __init__(self, min_interval: float, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.min_interval = float(min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Block until eligible; returns how long the caller waited."""
        async with self._lock:
            delay = 0.0
            if self._last is not None:
                delay = self._last + self.min_interval - self._clock()
                if delay > 0:
                    await self._sleep(delay)
            self._last = self._clock()
            return max(0.0, delay)


def build_client(timeout: float = 10.0, user_agent: str = "meme-market-bot/1.0",
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared client for all providers; `transport` lets tests plug in httpx.MockTransport."""
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": user_agent},
        follow_redirects=True,
        transport=transport,
    )
