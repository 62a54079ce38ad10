"""Soft resistance near the price cap.

Kept apart from the production update: nothing in `compute_update` calls
into this module. It backs the `resistance` CLI command, which simulates how
a symbol would behave if dampening were switched on.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Tuple

from meme_market.core.market_meta import DEFAULT_MAX_PRICE, GLOBAL_FLOOR

STRONG_RATIO = 0.95
MEDIUM_RATIO = 0.80


def resistance_zone(price: float, max_price: float = DEFAULT_MAX_PRICE) -> str:
    ratio = price / max_price
    if ratio >= STRONG_RATIO:
        return "strong"
    if ratio >= MEDIUM_RATIO:
        return "medium"
    return "none"


def resistance_effects(zone: str, rng: Optional[random.Random] = None) -> Tuple[float, float]:
    """(volatility multiplier, downward drift) for a zone."""
    rng = rng or random.Random()
    if zone == "strong":
        return 0.25, rng.uniform(-0.02, -0.005)
    if zone == "medium":
        return 0.5, rng.uniform(-0.005, -0.001)
    return 1.0, 0.0


@dataclass
class ResistanceStep:
    step: int
    old_price: float
    new_price: float
    zone: str
    drift: float

    @property
    def change_pct(self) -> float:
        return (self.new_price - self.old_price) / self.old_price * 100.0


def resistance_step(price: float, volatility: float, bias: float = 0.0,
                    max_price: float = DEFAULT_MAX_PRICE, floor: float = GLOBAL_FLOOR,
                    rng: Optional[random.Random] = None) -> Tuple[float, str, float]:
    """One dampened update: returns (new_price, zone, drift)."""
    rng = rng or random.Random()
    zone = resistance_zone(price, max_price)
    mult, drift = resistance_effects(zone, rng)
    vol = volatility * mult
    change = rng.uniform(-vol, vol) + bias + drift
    new = min(max_price, max(floor, price * (1 + change)))
    return new, zone, drift


def simulate_resistance(price: float, steps: int = 5, volatility: float = 0.08, bias: float = 0.05,
                        max_price: float = DEFAULT_MAX_PRICE, floor: float = GLOBAL_FLOOR,
                        rng: Optional[random.Random] = None) -> List[ResistanceStep]:
    """Run `steps` consecutive resistance updates from `price` under a constant upward bias."""
    rng = rng or random.Random()
    out: List[ResistanceStep] = []
    for i in range(1, steps + 1):
        new, zone, drift = resistance_step(price, volatility, bias, max_price, floor, rng)
        out.append(ResistanceStep(i, price, new, zone, drift))
        price = new
    return out
