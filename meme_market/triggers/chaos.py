"""Random chaos flavor triggers rolled once per full cycle."""
from __future__ import annotations

import random
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from meme_market.core.custom_types import TriggerMap
from meme_market.core.market_meta import SYMBOLS

DEFAULT_CHAOS_PROBABILITY = 0.15


def _others(exclude: str) -> List[str]:
    return [s for s in SYMBOLS if s != exclude]


def _croco_nuke(rng: random.Random) -> TriggerMap:
    target = rng.choice(_others("CROCO"))
    return TriggerMap(deltas={target: -1.0}, text=f"💥 Bombardiro Crocodilo NUKE! {target} obliterated -100%!")


def _ohio_steal(rng: random.Random) -> TriggerMap:
    victim = rng.choice(_others("OHIO"))
    return TriggerMap(deltas={victim: -0.05, "OHIO": 0.05}, text=f"🌪️ Caporetto Finale steals 5% from {victim}!")


def _larila_freeze(rng: random.Random) -> TriggerMap:
    return TriggerMap(
        time_freeze=True,
        text="🧊⏰ Lirili Larila time freeze! Reduced volatility next update - cactus-elephant controls time!",
    )


def _sigma_flex(rng: random.Random) -> TriggerMap:
    return TriggerMap(deltas={"SIGMA": 0.15}, text="💪 Machio flexes on the bears! SIGMA +15% chad energy!")


def _fanum_tax(rng: random.Random) -> TriggerMap:
    taxed = rng.choice(_others("FANUM"))
    return TriggerMap(deltas={taxed: -0.15, "FANUM": 0.10}, text=f"👵💰 Tassa Nonna collects! FANUM taxes {taxed} -15%!")


def _banani_invincible(rng: random.Random) -> TriggerMap:
    return TriggerMap(deltas={"BANANI": 0.20}, text="🦍🍌 Chimpanzini Bananini is invincible! +20% ape power!")


def _bull_run(rng: random.Random) -> TriggerMap:
    return TriggerMap(deltas={s: 0.15 for s in SYMBOLS}, text="🚀 Meme bull run! All stocks +15%!")


def _bear_market(rng: random.Random) -> TriggerMap:
    deltas: Dict[str, float] = {s: -0.12 for s in SYMBOLS}
    deltas["LABUB"] = 0.0
    deltas["BANANI"] = -0.05
    return TriggerMap(deltas=deltas, text="📉 Market crash! Most stocks -12% (LABUB protected, BANANI resilient)")


CHAOS_EVENTS: Tuple[Tuple[str, Callable[[random.Random], TriggerMap]], ...] = (
    ("CROCO_NUKE", _croco_nuke),
    ("OHIO_STEAL", _ohio_steal),
    ("LARILA_FREEZE", _larila_freeze),
    ("SIGMA_FLEX", _sigma_flex),
    ("FANUM_TAX", _fanum_tax),
    ("BANANI_INVINCIBLE", _banani_invincible),
    ("BULL_RUN", _bull_run),
    ("BEAR_MARKET", _bear_market),
)


def random_chaos_event(rng: Optional[random.Random] = None,
                       probability: float = DEFAULT_CHAOS_PROBABILITY) -> TriggerMap:
    """Roll `probability`; on success return one chaos trigger, else an empty map."""
    rng = rng or random.Random()
    if rng.random() >= probability:
        return TriggerMap()
    name, effect = rng.choice(CHAOS_EVENTS)
    tm = effect(rng)
    logger.info("[triggers] chaos {}: {}", name, tm.text)
    return tm
