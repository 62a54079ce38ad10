"""Deterministic helpers shared by the test modules."""
import random
from datetime import datetime

from meme_market.core.timeutils import to_ms


class PinnedRandom(random.Random):
    """Deterministic stand-in: uniform draws land on the midpoint (zero for a
    symmetric range), `random()` returns `roll`, choices take the first item."""

    def __init__(self, roll: float = 0.99):
        super().__init__(0)
        self.roll = roll

    def random(self):
        return self.roll

    def uniform(self, a, b):
        return (a + b) / 2

    def choice(self, seq):
        return seq[0]

    def sample(self, population, k, **kwargs):
        return list(population)[:k]

    def randint(self, a, b):
        return a


class FixedClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, ts: int):
        self.ts = int(ts)

    def __call__(self) -> int:
        return self.ts

    def advance(self, ms: int) -> None:
        self.ts += int(ms)


def at(year=2025, month=6, day=4, hour=11, minute=0) -> int:
    """Epoch ms for a local wall-clock time. 2025-06-04 is a Wednesday."""
    return to_ms(datetime(year, month, day, hour, minute))


WEDNESDAY_11 = at(2025, 6, 4, 11)
WEDNESDAY_20 = at(2025, 6, 4, 20)
SATURDAY_11 = at(2025, 6, 7, 11)
SUNDAY_11 = at(2025, 6, 8, 11)
