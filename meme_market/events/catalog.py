"""Global event table.

Each entry is an `EventSpec` with an explicit integer priority; the selector
walks the table in ascending priority and fires the first entry whose roll
succeeds and whose generator returns a descriptor. Generators receive an
`EventContext` and may register side effects (frozen symbols, merged pairs)
on the selector that owns them.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Union

from meme_market.core.custom_types import EventDescriptor, TriggerMap
from meme_market.core.timeutils import is_weekend

if TYPE_CHECKING:  # pragma: no cover
    from .selector import GlobalEventSelector

MINUTE_MS = 60_000
FREEZE_HOLD_MS = 3 * MINUTE_MS
WEEKEND_STOCKS = ("LABUB", "SIGMA", "BANANI")
CHALLENGE_NAMES = ("dance", "transition", "food", "comedy", "viral", "trend", "challenge", "brainrot")
SUBREDDITS = ("r/memes", "r/dankmemes", "r/wholesomememes", "r/memeeconomy")
OUTAGE_REGIONS = ("US East", "Europe", "Asia Pacific", "Global")


@dataclass
class EventContext:
    selector: "GlobalEventSelector"
    rng: random.Random
    now: int
    hold_ms: Optional[int] = None   # forced duration; overrides freeze/merge expiry
    forced: bool = False

    @property
    def symbols(self) -> List[str]:
        return list(self.selector.symbols)

    @property
    def italian(self) -> List[str]:
        return list(self.selector.italian)

    def pick(self, n: int) -> List[str]:
        syms = self.symbols
        return self.rng.sample(syms, min(n, len(syms)))


Generator = Callable[[EventContext], Optional[EventDescriptor]]
Chance = Union[float, Callable[[int], float]]


@dataclass(frozen=True)
class EventSpec:
    priority: int
    type: str
    probability: Chance
    generate: Generator

    def chance(self, now: int) -> float:
        p = self.probability
        return float(p(now) if callable(p) else p)


def _pct(v: float) -> str:
    return f"{v * 100:.1f}%"


# ----------------------------------------------------------------------------
def meme_market_boom(ctx: EventContext) -> EventDescriptor:
    boost = ctx.rng.uniform(0.10, 0.20)
    return EventDescriptor(
        "meme_market_boom", "Global Meme Market Boom", "Viral meme explosion across all platforms!",
        TriggerMap(deltas={s: boost for s in ctx.symbols},
                   text=f"🚀 GLOBAL MEME BOOM! All stocks +{_pct(boost)}! Internet going crazy!"),
        rarity="common", duration_ms=60_000, global_impact=True,
    )


def meme_crash(ctx: EventContext) -> EventDescriptor:
    crash = -ctx.rng.uniform(0.15, 0.30)
    return EventDescriptor(
        "meme_crash", "Global Meme Crash", "Memes are dead! Market in freefall!",
        TriggerMap(deltas={s: crash for s in ctx.symbols},
                   text=f"💥 GLOBAL MEME CRASH! All stocks {_pct(crash)}! Paper hands everywhere!"),
        rarity="uncommon", duration_ms=120_000, global_impact=True,
    )


def viral_tiktok_challenge(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(ctx.rng.randint(2, 3))
    challenge = ctx.rng.choice(CHALLENGE_NAMES)
    deltas = {s: ctx.rng.uniform(0.20, 0.50) for s in stocks}
    return EventDescriptor(
        "viral_tiktok_challenge", "Viral TikTok Challenge",
        f"#{challenge}Challenge going viral! Boosting related memes!",
        TriggerMap(deltas=deltas,
                   text=f"🎵 VIRAL TIKTOK CHALLENGE! #{challenge}Challenge boosts {', '.join(stocks)} by +20-50%!"),
        rarity="common", duration_ms=180_000,
    )


def reddit_meme_hype(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(ctx.rng.randint(1, 4))
    sub = ctx.rng.choice(SUBREDDITS)
    return EventDescriptor(
        "reddit_meme_hype", "Reddit Meme Hype", f"Trending on {sub}! Meme stonks rising!",
        TriggerMap(deltas={s: 0.10 for s in stocks},
                   text=f"🔴 REDDIT HYPE! {sub} trending boosts {', '.join(stocks)} +10%!"),
        rarity="common", duration_ms=120_000,
    )


def heatwave_meltdown(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(ctx.rng.randint(1, 2))
    deltas = {s: -ctx.rng.uniform(0.20, 0.40) for s in stocks}
    return EventDescriptor(
        "heatwave_meltdown", "Heatwave Meme Meltdown", "Extreme heat causing server meltdowns! Stocks crashing!",
        TriggerMap(deltas=deltas,
                   text=f"🔥 HEATWAVE MELTDOWN! Servers overheating! {', '.join(stocks)} crash -20-40%!"),
        rarity="uncommon", duration_ms=300_000,
    )


def global_pizza_day(ctx: EventContext) -> EventDescriptor:
    deltas: Dict[str, float] = {"SAHUR": 0.15}
    for s in ctx.italian:
        if s != "SAHUR":
            deltas[s] = 0.10
    return EventDescriptor(
        "global_pizza_day", "Global Pizza Day", "Pizza emojis flooding the internet! Italian stocks rising!",
        TriggerMap(deltas=deltas, text="🍕 GLOBAL PIZZA DAY! SAHUR +15%, all Italian stocks +10%! Mamma mia!"),
        rarity="common", duration_ms=600_000, global_impact=True,
    )


def internet_outage_panic(ctx: EventContext) -> EventDescriptor:
    drop = -ctx.rng.uniform(0.05, 0.15)
    region = ctx.rng.choice(OUTAGE_REGIONS)
    return EventDescriptor(
        "internet_outage_panic", "Internet Outage Panic", f"Major internet outage in {region}! Panic selling!",
        TriggerMap(deltas={s: drop for s in ctx.symbols},
                   text=f"📡💔 INTERNET OUTAGE! {region} connection issues! All stocks -5-15%!"),
        rarity="uncommon", duration_ms=180_000, global_impact=True,
    )


def stock_freeze_hour(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(ctx.rng.randint(1, 2))
    hold = ctx.hold_ms or FREEZE_HOLD_MS
    ctx.selector.freeze(stocks, hold, now=ctx.now)
    minutes = round(hold / MINUTE_MS)
    return EventDescriptor(
        "stock_freeze_hour", "Stock Freeze Hour", "Market manipulation detected! Some stocks frozen!",
        TriggerMap(freeze=list(stocks),
                   text=f"🧊 STOCK FREEZE! {', '.join(stocks)} frozen for {minutes} minutes! Market manipulation!"),
        rarity="common", duration_ms=FREEZE_HOLD_MS,
    )


def market_romance(ctx: EventContext) -> EventDescriptor:
    deltas: Dict[str, float] = {"RIZZL": 0.25}
    for s in ctx.symbols:
        if s != "RIZZL":
            deltas[s] = 0.10
    return EventDescriptor(
        "market_romance", "Market-wide Romance", "Love is in the air! Romance boosting all memes!",
        TriggerMap(deltas=deltas, text="💕 MARKET ROMANCE! RIZZL +25%, all stocks feeling the love +10%!"),
        rarity="common", duration_ms=300_000, global_impact=True,
    )


def trend_surge(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(3)
    deltas = {s: ctx.rng.uniform(0.10, 0.20) for s in stocks}
    return EventDescriptor(
        "trend_surge", "Global Trend Surge", "Global trends pushing select memes to the moon!",
        TriggerMap(deltas=deltas, text=f"📈 TREND SURGE! {', '.join(stocks)} surge +10-20% from global trends!"),
        rarity="common", duration_ms=240_000,
    )


def pasta_party(ctx: EventContext) -> EventDescriptor:
    return EventDescriptor(
        "pasta_party", "Global Pasta Party", "Italian cuisine celebration! All Italian memes boosted!",
        TriggerMap(deltas={s: 0.25 for s in ctx.italian}, text="🍝 PASTA PARTY! All Italian stocks +25%! Andiamo!"),
        rarity="common", duration_ms=360_000, global_impact=True,
    )


def stock_panic(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(ctx.rng.randint(2, 3))
    deltas = {s: -ctx.rng.uniform(0.10, 0.30) for s in stocks}
    return EventDescriptor(
        "stock_panic", "Stock Panic", "Panic selling hits select memes!",
        TriggerMap(deltas=deltas, text=f"😱 STOCK PANIC! {', '.join(stocks)} panic dump -10-30%!"),
        rarity="common", duration_ms=180_000,
    )


def weekend_chill(ctx: EventContext) -> Optional[EventDescriptor]:
    if not ctx.forced and not is_weekend(ctx.now):
        return None
    deltas = {s: ctx.rng.uniform(0.05, 0.10) for s in WEEKEND_STOCKS}
    return EventDescriptor(
        "weekend_chill", "Weekend Chill Mode", "Weekend vibes stabilizing low-volatility stocks!",
        TriggerMap(deltas=deltas, text=f"😎 WEEKEND CHILL! {', '.join(WEEKEND_STOCKS)} stabilize +5-10%!"),
        rarity="guaranteed", duration_ms=1_800_000,
    )


def meme_mutation(ctx: EventContext) -> Optional[EventDescriptor]:
    syms = ctx.symbols
    if ctx.forced:
        a, b = ctx.rng.sample(syms, 2)
    else:
        a, b = ctx.rng.choice(syms), ctx.rng.choice(syms)
        if a == b:
            return None
    hold = ctx.hold_ms or int(ctx.rng.uniform(5, 10) * MINUTE_MS)
    ctx.selector.merge(a, b, hold, now=ctx.now)
    boost = ctx.rng.uniform(0.15, 0.25)
    return EventDescriptor(
        "meme_mutation", "Meme Mutation Event", "Two memes have temporarily merged! Combined power!",
        TriggerMap(deltas={a: boost, b: boost},
                   text=f"🧬 MEME MUTATION! {a} + {b} merge for +{_pct(boost)} combined power!"),
        rarity="rare", duration_ms=300_000,
    )


def global_jackpot(ctx: EventContext) -> EventDescriptor:
    stocks = ctx.pick(ctx.rng.randint(1, 2))
    deltas = {s: ctx.rng.uniform(0.50, 0.75) for s in stocks}
    return EventDescriptor(
        "global_jackpot", "GLOBAL JACKPOT EVENT", "Ultra rare jackpot event! Astronomical gains!",
        TriggerMap(deltas=deltas, text=f"💎🚀 GLOBAL JACKPOT! {', '.join(stocks)} MOON +50-75%! LEGENDARY EVENT!"),
        rarity="legendary", duration_ms=600_000,
    )


def chaos_hour(ctx: EventContext) -> EventDescriptor:
    deltas = {s: ctx.rng.uniform(-0.20, 0.20) for s in ctx.symbols}
    return EventDescriptor(
        "chaos_hour", "CHAOS HOUR ACTIVATED", "Total market chaos! Random effects on all stocks!",
        TriggerMap(deltas=deltas, text="🌪️ CHAOS HOUR! Total market madness! All stocks randomized!"),
        rarity="uncommon", duration_ms=300_000, global_impact=True,
    )


# ----------------------------------------------------------------------------
EVENT_TABLE: Sequence[EventSpec] = tuple(sorted((
    EventSpec(10, "meme_market_boom", 0.10, meme_market_boom),
    EventSpec(20, "meme_crash", 0.05, meme_crash),
    EventSpec(30, "viral_tiktok_challenge", 0.15, viral_tiktok_challenge),
    EventSpec(40, "reddit_meme_hype", 0.15, reddit_meme_hype),
    EventSpec(50, "heatwave_meltdown", 0.07, heatwave_meltdown),
    EventSpec(60, "global_pizza_day", 0.20, global_pizza_day),
    EventSpec(70, "internet_outage_panic", 0.05, internet_outage_panic),
    EventSpec(80, "stock_freeze_hour", 0.10, stock_freeze_hour),
    EventSpec(90, "market_romance", 0.15, market_romance),
    EventSpec(100, "trend_surge", 0.10, trend_surge),
    EventSpec(110, "pasta_party", 0.20, pasta_party),
    EventSpec(120, "stock_panic", 0.10, stock_panic),
    EventSpec(130, "weekend_chill", lambda now: 1.0 if is_weekend(now) else 0.0, weekend_chill),
    EventSpec(140, "meme_mutation", 0.05, meme_mutation),
    EventSpec(150, "global_jackpot", 0.02, global_jackpot),
    EventSpec(160, "chaos_hour", 0.10, chaos_hour),
), key=lambda entry: entry.priority))

EVENTS_BY_TYPE: Dict[str, EventSpec] = {entry.type: entry for entry in EVENT_TABLE}
EVENT_TYPES = tuple(EVENTS_BY_TYPE)
