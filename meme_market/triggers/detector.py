"""Keyword trigger detection over recent chat activity.

Scans a bounded window of messages for keyword classes, counts hits per
class, and once a class crosses its threshold applies a fixed bonus or
penalty to the associated symbols. Some classes are time-gated on the local
clock (pasta hours 12-14 amplify SKIBI, beach hours 10-16 gate GYATT, Sunday
turns on LABUB's crash immunity).

Bonuses accumulate additively across classes. The display text keeps only
the last matching class in table order (overwrite, not append).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

from loguru import logger

from meme_market.core.custom_types import TriggerMap
from meme_market.core.market_meta import SYMBOLS
from meme_market.core.timeutils import in_hour_window, is_sunday, now_ms

DEFAULT_WINDOW = 20

PASTA_HOURS = (12, 14)
BEACH_HOURS = (10, 16)


@dataclass(frozen=True)
class KeywordClass:
    name: str
    pattern: re.Pattern
    threshold: int
    emoji: Optional[str] = None

    def matches(self, content: str) -> bool:
        if self.emoji and self.emoji in content:
            return True
        return bool(self.pattern.search(content))


def _kc(name: str, regex: str, threshold: int = 1, emoji: Optional[str] = None) -> KeywordClass:
    return KeywordClass(name, re.compile(regex, re.IGNORECASE), threshold, emoji)


KEYWORD_CLASSES: Sequence[KeywordClass] = (
    _kc("pasta", r"pasta|spaghetti|linguine|carbonara|penne|ravioli", emoji="🍝"),
    _kc("pizza", r"pizza|margherita|pepperoni", emoji="🍕"),
    _kc("romance", r"romance|love|dating|rizz|charm|flirt|casanova|amore", threshold=2),
    _kc("imposter", r"imposter|impostor|sus|suspicious|among us|vent|crewmate"),
    _kc("beach", r"beach|sand|ocean|surf|bikini|summer|vacation"),
    _kc("oil", r"oil shortage|olive oil|cooking oil|fried|deep fry|shortage"),
    _kc("sharknado", r"shark|tornado|sharknado|nike|sneakers|three.*leg"),
    _kc("espresso", r"espresso|coffee shortage|caffeine|barista|cappuccino"),
)


def _content(msg: Any) -> str:
    if isinstance(msg, str):
        return msg
    if isinstance(msg, dict):
        return str(msg.get("content") or "")
    return str(getattr(msg, "content", "") or "")


def count_matches(messages: Iterable[Any], window: int = DEFAULT_WINDOW) -> dict:
    """Hits per keyword class over the last `window` messages."""
    recent: List[Any] = list(messages)[-window:] if window > 0 else []
    counts = {kc.name: 0 for kc in KEYWORD_CLASSES}
    for msg in recent:
        content = _content(msg)
        if not content:
            continue
        for kc in KEYWORD_CLASSES:
            if kc.matches(content):
                counts[kc.name] += 1
    return counts


def detect(messages: Iterable[Any], now: Optional[int] = None, window: int = DEFAULT_WINDOW) -> TriggerMap:
    """Build the keyword trigger map for one cycle.

    `messages` may be strings, dicts with a "content" key, or objects with a
    `.content` attribute. `now` is epoch ms (defaults to the wall clock).
    """
    now = now_ms() if now is None else now
    counts = count_matches(messages, window)
    thresholds = {kc.name: kc.threshold for kc in KEYWORD_CLASSES}
    hit = lambda name: counts[name] >= thresholds[name]
    tm = TriggerMap()

    if hit("pasta"):
        n = counts["pasta"]
        for sym in SYMBOLS:
            tm.deltas[sym] = 0.25
        if in_hour_window(now, *PASTA_HOURS):
            tm.deltas["SKIBI"] = 0.50
            tm.text = f"🍝 Gabibbi Toiletto time! SKIBI gets +50% during pasta hours ({n} pasta mentions)"
        else:
            tm.deltas["SKIBI"] = 0.35
            tm.text = f"🍝 Pasta Protocol! All Italian stocks +25-35% ({n} pasta mentions)"

    if hit("pizza"):
        tm.add("SAHUR", 0.25)
        tm.text = f"🍕 Tamburello Mistico! SAHUR +25% from pizza power ({counts['pizza']} pizza mentions)"

    if hit("romance"):
        tm.add("RIZZL", 0.40)
        tm.text = f"💕 Casanova activated! RIZZL +40% from romance surge ({counts['romance']} romance mentions)"

    if hit("imposter"):
        tm.add("SUS", -0.35)
        tm.text = f"😱 Tra-I-Nostri panic! SUS -35% from imposter reports ({counts['imposter']} sus mentions)"

    if hit("beach") and in_hour_window(now, *BEACH_HOURS):
        tm.add("GYATT", 0.35)
        tm.text = f"🏖️ Culone beach time! GYATT +35% during beach hours ({counts['beach']} beach mentions)"

    if hit("oil"):
        tm.add("FRIED", 0.60)
        tm.text = f"🫒 Friggitrice shortage! FRIED +60% during oil crisis ({counts['oil']} oil mentions)"

    if hit("sharknado"):
        tm.add("TRALA", 0.75)
        tm.text = f"🦈🌪️ Sharknado event! TRALA +75%, 3-legged shark in Nikes detected! ({counts['sharknado']} shark mentions)"

    if hit("espresso"):
        tm.add("CAPPU", 0.35)
        tm.text = f"☕ Ballerina Cappuccina shortage! CAPPU +35% during espresso crisis ({counts['espresso']} coffee mentions)"

    if is_sunday(now):
        tm.sunday_immunity = True
        if not tm.text:
            tm.text = "🛡️ Mostriciattolo Sunday immunity active! LABUB protected from crashes"

    if tm.deltas:
        logger.debug("[triggers] detected {} (counts={})", tm.deltas, {k: v for k, v in counts.items() if v})
    return tm
