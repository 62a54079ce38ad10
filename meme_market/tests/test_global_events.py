import random

import pytest

from meme_market.core.market_meta import SYMBOLS
from meme_market.events.catalog import EVENT_TABLE, EVENT_TYPES, EventContext, meme_mutation, weekend_chill
from meme_market.events.selector import GlobalEventSelector, UnknownEventError
from meme_market.tests.support import FixedClock, PinnedRandom, SATURDAY_11, SUNDAY_11, WEDNESDAY_11


class ScriptedRandom(PinnedRandom):
    """`random()` walks through `rolls` (then repeats `default`)."""

    def __init__(self, rolls, default=0.99):
        super().__init__(default)
        self.rolls = list(rolls)

    def random(self):
        return self.rolls.pop(0) if self.rolls else self.roll


def test_table_is_priority_ordered_and_complete():
    priorities = [entry.priority for entry in EVENT_TABLE]
    assert priorities == sorted(priorities)
    assert len(EVENT_TYPES) == 16
    assert EVENT_TABLE[0].type == "meme_market_boom"
    assert EVENT_TABLE[-1].type == "chaos_hour"


def test_first_successful_roll_wins():
    # miss boom (0.10), hit crash (0.05)
    sel = GlobalEventSelector(rng=ScriptedRandom([0.5, 0.01]), clock=FixedClock(WEDNESDAY_11))
    event = sel.check_for_global_events()
    assert event.type == "meme_crash"
    assert event.rarity == "uncommon"
    assert event.duration_ms == 120_000
    # one shared draw: -uniform(0.15, 0.30) pinned to the midpoint
    assert len(event.triggers.deltas) == len(SYMBOLS)
    assert all(v == pytest.approx(-0.225) for v in event.triggers.deltas.values())
    assert sel.last_event_time == WEDNESDAY_11


def test_cooldown_blocks_then_releases():
    clock = FixedClock(WEDNESDAY_11)
    sel = GlobalEventSelector(rng=PinnedRandom(roll=0.0), clock=clock)
    assert sel.check_for_global_events() is not None
    clock.advance(29_999)
    assert sel.check_for_global_events() is None
    assert sel.status()["cooldownRemaining"] == 1
    clock.advance(1)
    assert sel.check_for_global_events() is not None


def test_nothing_fires_when_every_roll_misses():
    sel = GlobalEventSelector(rng=PinnedRandom(roll=0.999), clock=FixedClock(WEDNESDAY_11))
    assert sel.check_for_global_events() is None
    assert sel.last_event_time == 0


def test_weekend_chill_is_guaranteed_on_weekends_only():
    for ts in (SATURDAY_11, SUNDAY_11):
        ctx = EventContext(GlobalEventSelector(rng=PinnedRandom()), PinnedRandom(), ts)
        event = weekend_chill(ctx)
        assert event is not None
        assert set(event.triggers.deltas) == {"LABUB", "SIGMA", "BANANI"}
        assert event.rarity == "guaranteed"
    ctx = EventContext(GlobalEventSelector(rng=PinnedRandom()), PinnedRandom(), WEDNESDAY_11)
    assert weekend_chill(ctx) is None
    entry = next(s for s in EVENT_TABLE if s.type == "weekend_chill")
    assert entry.chance(SATURDAY_11) == 1.0
    assert entry.chance(WEDNESDAY_11) == 0.0


def test_weekend_chill_fires_when_earlier_entries_miss():
    # every roll below 1.0 misses the probabilistic entries; weekend chill rolls p=1.0
    sel = GlobalEventSelector(rng=PinnedRandom(roll=0.999), clock=FixedClock(SATURDAY_11))
    event = sel.check_for_global_events()
    assert event.type == "weekend_chill"
    assert sel.status()["weekendMode"] is True


def test_mutation_with_identical_draws_returns_none():
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=FixedClock(WEDNESDAY_11))
    ctx = EventContext(sel, PinnedRandom(), WEDNESDAY_11)  # choice() always returns the first symbol
    assert meme_mutation(ctx) is None
    assert sel.merged == {}


def test_freeze_registers_and_expires():
    clock = FixedClock(WEDNESDAY_11)
    sel = GlobalEventSelector(rng=PinnedRandom(roll=0.0), clock=clock)
    event = sel.force_event("stock_freeze_hour")
    frozen = event.triggers.freeze
    assert frozen == list(SYMBOLS[:1])
    assert sel.is_stock_frozen(frozen[0])
    assert sel.status()["frozenStocks"] == frozen
    clock.advance(3 * 60_000)
    assert not sel.is_stock_frozen(frozen[0])
    assert frozen[0] not in sel.frozen


def test_sweep_purges_expired_modifiers():
    clock = FixedClock(WEDNESDAY_11)
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=clock)
    sel.freeze(["SKIBI", "SUS"], 60_000)
    sel.merge("OHIO", "RIZZL", 120_000)
    clock.advance(60_000)
    assert sel.sweep() == 2
    assert sel.frozen == {}
    assert sel.get_active_merges() == [{"stock1": "OHIO", "stock2": "RIZZL", "expires": WEDNESDAY_11 + 120_000}]
    clock.advance(60_000)
    assert sel.sweep() == 1
    assert sel.get_active_merges() == []


def test_force_event_bypasses_cooldown_and_probability():
    clock = FixedClock(WEDNESDAY_11)
    sel = GlobalEventSelector(rng=PinnedRandom(roll=0.999), clock=clock)
    first = sel.force_event("global_jackpot")
    second = sel.force_event("pasta_party", duration_ms=90_000)
    assert first.rarity == "legendary"
    assert second.duration_ms == 90_000
    assert sel.status()["lastEventType"] == "pasta_party"
    assert sel.status()["lastEventDuration"] == 90_000
    assert sel.last_event_time == WEDNESDAY_11


def test_forced_mutation_always_merges_a_distinct_pair():
    clock = FixedClock(WEDNESDAY_11)
    sel = GlobalEventSelector(rng=random.Random(11), clock=clock)
    event = sel.force_event("meme_mutation", duration_ms=60_000)
    (a, b), = sel.merged
    assert a != b
    assert sel.merged[(a, b)] == WEDNESDAY_11 + 60_000
    assert set(event.triggers.deltas) == {a, b}


def test_forced_weekend_chill_on_a_weekday():
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=FixedClock(WEDNESDAY_11))
    assert sel.force_event("weekend_chill").type == "weekend_chill"


def test_force_event_validation():
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=FixedClock(WEDNESDAY_11))
    with pytest.raises(UnknownEventError):
        sel.force_event("alien_invasion")
    with pytest.raises(ValueError):
        sel.force_event("chaos_hour", duration_ms=29_999)
    with pytest.raises(ValueError):
        sel.force_event("chaos_hour", duration_ms=3_600_001)
    assert sel.force_event("chaos_hour", duration_ms=30_000).duration_ms == 30_000
    assert sel.force_event("chaos_hour", duration_ms=3_600_000).duration_ms == 3_600_000


@pytest.mark.parametrize("event_type", EVENT_TYPES)
def test_every_event_generates_known_symbols(event_type):
    sel = GlobalEventSelector(rng=random.Random(2024), clock=FixedClock(WEDNESDAY_11))
    event = sel.force_event(event_type)
    assert event.type == event_type
    assert set(event.triggers.deltas) <= set(SYMBOLS)
    assert event.last_event
