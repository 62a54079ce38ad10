"""Per-provider circuit breaker for the trend sources.

CLOSED → OPEN after `fail_threshold` consecutive failures. While OPEN the
provider is skipped and its fallback is used. After `reset_after_sec` the
breaker goes HALF_OPEN and lets exactly one trial call through: a success
closes it, a failure re-opens it for another full cooldown.
"""
from __future__ import annotations
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from loguru import logger


class BreakerStatus(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class BreakerState:
    status: BreakerStatus = BreakerStatus.CLOSED
    consecutive_failures: int = 0
    opened_at: Optional[float] = None
    trial_in_flight: bool = False
    trips: int = 0
    total_failures: int = 0
    total_successes: int = 0


class ProviderBreaker:
    def __init__(self, name: str, fail_threshold: int = 5, reset_after_sec: float = 600.0,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.fail_threshold = int(fail_threshold)
        self.reset_after_sec = float(reset_after_sec)
        self._clock = clock
        self.state = BreakerState()

    def allow(self) -> bool:
        """Whether a real call may be attempted now."""
        st = self.state
        if st.status is BreakerStatus.CLOSED:
            return True
        if st.status is BreakerStatus.OPEN:
            if st.opened_at is not None and self._clock() - st.opened_at >= self.reset_after_sec:
                st.status = BreakerStatus.HALF_OPEN
                st.trial_in_flight = True
                logger.info("[trends] {} breaker half-open, trying one call", self.name)
                return True
            return False
        # HALF_OPEN: only the single trial call
        if st.trial_in_flight:
            return False
        st.trial_in_flight = True
        return True

    def record_success(self) -> None:
        st = self.state
        st.total_successes += 1
        st.consecutive_failures = 0
        st.trial_in_flight = False
        if st.status is not BreakerStatus.CLOSED:
            logger.info("[trends] {} breaker closed after successful trial", self.name)
        st.status = BreakerStatus.CLOSED
        st.opened_at = None

    def release_trial(self) -> None:
        """Give back a half-open trial that never completed (e.g. cancelled);
        the next `allow()` may try again."""
        if self.state.trial_in_flight:
            self.state.trial_in_flight = False
            logger.debug("[trends] {} trial call abandoned", self.name)

    def record_failure(self) -> None:
        st = self.state
        st.total_failures += 1
        st.consecutive_failures += 1
        st.trial_in_flight = False
        if st.status is BreakerStatus.HALF_OPEN or (
            st.status is BreakerStatus.CLOSED and st.consecutive_failures >= self.fail_threshold
        ):
            st.status = BreakerStatus.OPEN
            st.opened_at = self._clock()
            st.trips += 1
            logger.warning(
                "[trends] {} breaker OPEN after {} consecutive failures; fallback for {:.0f}s",
                self.name, st.consecutive_failures, self.reset_after_sec,
            )

    @property
    def is_open(self) -> bool:
        return self.state.status is BreakerStatus.OPEN

    def get_telemetry(self) -> dict:
        st = self.state
        return {
            "status": st.status.value,
            "consecutive_failures": st.consecutive_failures,
            "trips": st.trips,
            "total_failures": st.total_failures,
            "total_successes": st.total_successes,
        }
