"""
Time-Related Utilities
----------------------

Every time-gated rule in the market (pasta hours, beach hours, Sunday
immunity, weekend chill, the market-open boost) is evaluated on the host's
local wall clock, while expiries and cooldowns are plain epoch milliseconds.
Components take an injectable `clock` returning epoch ms so tests can pin
the time of day.
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional

Clock = Callable[[], int]

SATURDAY = 5
SUNDAY = 6


def now_ms() -> int:
    return int(time.time() * 1000)


def local_dt(ts_ms: Optional[int] = None) -> datetime:
    if ts_ms is None:
        ts_ms = now_ms()
    return datetime.fromtimestamp(ts_ms / 1000)


def local_hour(ts_ms: Optional[int] = None) -> int:
    return local_dt(ts_ms).hour


def in_hour_window(ts_ms: Optional[int], start_hour: int, end_hour: int) -> bool:
    """Inclusive hour window on the local clock, e.g. (10, 16) is 10:00-16:59."""
    return start_hour <= local_hour(ts_ms) <= end_hour


def is_sunday(ts_ms: Optional[int] = None) -> bool:
    return local_dt(ts_ms).weekday() == SUNDAY


def is_weekend(ts_ms: Optional[int] = None) -> bool:
    return local_dt(ts_ms).weekday() in (SATURDAY, SUNDAY)


def to_ms(dt: datetime) -> int:
    """Naive datetimes are read as local time, matching `local_dt`."""
    return int(dt.timestamp() * 1000)
