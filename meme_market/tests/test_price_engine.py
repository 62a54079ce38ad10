import asyncio
import random

import pytest

from meme_market.core.custom_types import TriggerMap
from meme_market.core.market_meta import SYMBOLS, SymbolMeta, default_meta
from meme_market.engine.price_updater import CycleInProgressError, PriceUpdateEngine, compute_update
from meme_market.events.selector import GlobalEventSelector
from meme_market.market.snapshot import Snapshot, SymbolState
from meme_market.persist import db
from meme_market.tests.support import FixedClock, PinnedRandom, WEDNESDAY_11, WEDNESDAY_20


class RecordingRandom(PinnedRandom):
    """Records every uniform() range; returns the upper bound when `upper` is set."""

    def __init__(self, upper: bool = False, roll: float = 0.99):
        super().__init__(roll)
        self.upper = upper
        self.ranges = []

    def uniform(self, a, b):
        self.ranges.append((a, b))
        return b if self.upper else (a + b) / 2


def one(symbol: str, price: float, **kw) -> Snapshot:
    return Snapshot(stocks={symbol: SymbolState(price=price, high_24h=price, low_24h=price, **kw)})


# ----------------------------------------------------------------------------
def test_trigger_moves_price_exactly_when_randomness_is_pinned():
    snap = one("X", 100.0)
    new, history = compute_update(snap, {"X": SymbolMeta(volatility="medium")},
                                  TriggerMap(deltas={"X": 0.05}), {"X": 0.0}, PinnedRandom(), WEDNESDAY_20)
    assert new.price("X") == pytest.approx(105.0)
    assert new.stocks["X"].last_change == pytest.approx(5.0)
    assert new.stocks["X"].high_24h == pytest.approx(105.0)
    assert snap.price("X") == 100.0  # input untouched
    assert history[0].symbol == "X" and history[0].price == pytest.approx(105.0)


def test_floor_protected_symbol_holds_minimum_price():
    new, _ = compute_update(one("BANANI", 0.22), default_meta(), TriggerMap(deltas={"BANANI": -0.5}),
                            rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.price("BANANI") == pytest.approx(0.20)
    assert new.stocks["BANANI"].last_change == pytest.approx((0.20 - 0.22) / 0.22 * 100)


def test_global_floor_and_hard_cap():
    snap = Snapshot(stocks={"SUS": SymbolState(price=0.02), "SKIBI": SymbolState(price=700.0)})
    new, _ = compute_update(snap, default_meta(), TriggerMap(deltas={"SUS": -0.99, "SKIBI": 0.5}),
                            rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.price("SUS") == pytest.approx(0.01)
    assert new.price("SKIBI") == pytest.approx(750.0)


def test_last_change_matches_prices_for_every_symbol(json_store):
    snap = json_store.load()
    trends = {s: 0.01 for s in SYMBOLS}
    new, history = compute_update(snap, default_meta(), TriggerMap(deltas={"SUS": -0.3, "TRALA": 0.75}),
                                  trends, random.Random(9), WEDNESDAY_20)
    assert len(history) == len(SYMBOLS)
    for sym in SYMBOLS:
        old, px = snap.price(sym), new.price(sym)
        assert new.stocks[sym].last_change == pytest.approx((px - old) / old * 100)
        meta = default_meta()[sym]
        assert meta.floor <= px <= meta.max_price


def test_frozen_symbols_do_not_move():
    clock = FixedClock(WEDNESDAY_20)
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=clock)
    sel.freeze(["SKIBI"], 60_000)
    snap = Snapshot(stocks={
        "SKIBI": SymbolState(price=1.0, last_change=7.0),
        "SUS": SymbolState(price=1.0, last_change=3.0),
        "OHIO": SymbolState(price=1.0),
    })
    triggers = TriggerMap(deltas={"SKIBI": 0.5, "SUS": 0.5, "OHIO": 0.5}, freeze=["SUS"])
    new, history = compute_update(snap, default_meta(), triggers, rng=PinnedRandom(), now=clock(), selector=sel)
    assert new.price("SKIBI") == 1.0 and new.stocks["SKIBI"].last_change == 0.0
    assert new.price("SUS") == 1.0 and new.stocks["SUS"].last_change == 0.0
    assert new.price("OHIO") == pytest.approx(1.5)
    assert [h.symbol for h in history] == ["OHIO"]


def test_frozen_symbol_moves_again_after_expiry():
    clock = FixedClock(WEDNESDAY_20)
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=clock)
    sel.freeze(["SKIBI"], 60_000)
    clock.advance(60_000)
    new, _ = compute_update(one("SKIBI", 1.0), default_meta(), TriggerMap(deltas={"SKIBI": 0.1}),
                            rng=PinnedRandom(), now=clock(), selector=sel)
    assert new.price("SKIBI") == pytest.approx(1.1)
    assert "SKIBI" not in sel.frozen


def test_frozen_until_marker_holds_price_until_expiry():
    snap = Snapshot(stocks={
        "SKIBI": SymbolState(price=1.0, last_change=4.0, frozen_until=WEDNESDAY_20 + 600_000),
        "SUS": SymbolState(price=1.0, frozen_until=WEDNESDAY_20),
    })
    triggers = TriggerMap(deltas={"SKIBI": 0.5, "SUS": 0.5})
    new, history = compute_update(snap, default_meta(), triggers, rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.price("SKIBI") == 1.0
    assert new.stocks["SKIBI"].last_change == 0.0
    assert new.stocks["SKIBI"].frozen_until == WEDNESDAY_20 + 600_000
    # expired markers are cleared and the symbol moves again
    assert new.price("SUS") == pytest.approx(1.5)
    assert new.stocks["SUS"].frozen_until is None
    assert [h.symbol for h in history] == ["SUS"]

    later, _ = compute_update(new, default_meta(), triggers, rng=PinnedRandom(), now=WEDNESDAY_20 + 600_000)
    assert later.price("SKIBI") == pytest.approx(1.5)


def test_time_freeze_dampens_volatility():
    rng = RecordingRandom()
    compute_update(one("SKIBI", 1.0), default_meta(), TriggerMap(time_freeze=True), rng=rng, now=WEDNESDAY_20)
    assert rng.ranges == [(pytest.approx(-0.45 * 0.2), pytest.approx(0.45 * 0.2))]


def test_gyatt_volatility_doubles_in_beach_hours_with_positive_trigger():
    rng = RecordingRandom()
    compute_update(one("GYATT", 1.0), default_meta(), TriggerMap(deltas={"GYATT": 0.1}), rng=rng, now=WEDNESDAY_11)
    compute_update(one("GYATT", 1.0), default_meta(), TriggerMap(deltas={"GYATT": 0.1}), rng=rng, now=WEDNESDAY_20)
    compute_update(one("GYATT", 1.0), default_meta(), TriggerMap(deltas={"GYATT": -0.1}), rng=rng, now=WEDNESDAY_11)
    assert [b for _, b in rng.ranges] == [pytest.approx(0.9), pytest.approx(0.45), pytest.approx(0.45)]


def test_labub_sunday_immunity_zeroes_negative_triggers():
    triggers = TriggerMap(deltas={"LABUB": -0.5}, sunday_immunity=True)
    new, _ = compute_update(one("LABUB", 4.5), default_meta(), triggers, rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.price("LABUB") == pytest.approx(4.5)
    triggers = TriggerMap(deltas={"LABUB": 0.1}, sunday_immunity=True)
    new, _ = compute_update(one("LABUB", 4.5), default_meta(), triggers, rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.price("LABUB") == pytest.approx(4.95)


def test_merged_pair_shares_first_draw():
    clock = FixedClock(WEDNESDAY_20)
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=clock)
    sel.merge("OHIO", "RIZZL", 300_000)
    snap = Snapshot(stocks={"OHIO": SymbolState(price=1.0), "RIZZL": SymbolState(price=1.0),
                            "SIGMA": SymbolState(price=1.0)})
    rng = RecordingRandom(upper=True)
    new, _ = compute_update(snap, default_meta(), TriggerMap(), rng=rng, now=clock(), selector=sel)
    # OHIO is high (0.25); RIZZL (medium) reuses OHIO's draw; SIGMA (low) draws its own
    assert new.price("OHIO") == pytest.approx(1.25)
    assert new.price("RIZZL") == pytest.approx(1.25)
    assert new.price("SIGMA") == pytest.approx(1.08)
    assert len(rng.ranges) == 2


def test_text_overwrites_last_event_and_unknown_symbols_are_ignored():
    snap = one("SKIBI", 1.0)
    snap.last_event = "old news"
    new, _ = compute_update(snap, default_meta(), TriggerMap(deltas={"NOPE": 5.0}), rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.last_event == "old news"
    assert "NOPE" not in new.stocks
    new, _ = compute_update(snap, default_meta(), TriggerMap(text="fresh"), rng=PinnedRandom(), now=WEDNESDAY_20)
    assert new.last_event == "fresh"


# ----------------------------------------------------------------------------
class StaticAggregator:
    def __init__(self, light=None, full=0.0):
        self.light = light or {}
        self.full = full
        self.light_calls = []

    async def scores(self, symbols):
        return {s: self.full for s in symbols}

    async def score_source(self, symbol, name):
        self.light_calls.append((symbol, name))
        return self.light.get(symbol, 0.0)


class BlockingAggregator(StaticAggregator):
    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def scores(self, symbols):
        self.entered.set()
        await self.gate.wait()
        return {s: 0.0 for s in symbols}


@pytest.mark.asyncio
async def test_run_cycle_persists_snapshot_and_history(json_store, history_db):
    engine = PriceUpdateEngine(json_store, aggregator=StaticAggregator(full=0.01), rng=PinnedRandom(),
                               clock=FixedClock(WEDNESDAY_20))
    result = await engine.run_cycle(TriggerMap(deltas={"SKIBI": 0.1}, text="manual"), allow_chaos=False)
    assert result.trend_scores["SKIBI"] == 0.01
    saved = json_store.load()
    assert saved.price("SKIBI") == pytest.approx(0.75 * 1.11)
    assert saved.last_event == "manual"
    rows = db.load_price_history("SKIBI")
    assert len(rows) == 1 and rows[0]["trend_score"] == pytest.approx(0.01)


@pytest.mark.asyncio
async def test_run_cycle_without_trends_skips_aggregator(json_store):
    agg = StaticAggregator(full=0.05)
    engine = PriceUpdateEngine(json_store, aggregator=agg, rng=PinnedRandom(), clock=FixedClock(WEDNESDAY_20),
                               history_enabled=False)
    result = await engine.run_cycle(trend_enabled=False, allow_chaos=False)
    assert result.trend_scores == {}
    assert json_store.load().price("SIGMA") == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_chaos_overwrites_operator_trigger(json_store):
    engine = PriceUpdateEngine(json_store, rng=PinnedRandom(roll=0.0), clock=FixedClock(WEDNESDAY_20),
                               history_enabled=False, chaos_probability=1.0)
    result = await engine.run_cycle(TriggerMap(deltas={"SKIBI": 0.5}), trend_enabled=False, allow_chaos=True)
    # first chaos entry nukes the first non-CROCO symbol
    assert result.triggers.get("SKIBI") == -1.0
    assert result.snapshot.price("SKIBI") == pytest.approx(0.01)
    assert "NUKE" in result.last_event


@pytest.mark.asyncio
async def test_concurrent_cycle_rejected_or_queued(json_store):
    agg = BlockingAggregator()
    engine = PriceUpdateEngine(json_store, aggregator=agg, rng=PinnedRandom(), clock=FixedClock(WEDNESDAY_20),
                               history_enabled=False)
    first = asyncio.create_task(engine.run_cycle(allow_chaos=False))
    await agg.entered.wait()
    assert engine.busy
    with pytest.raises(CycleInProgressError):
        await engine.run_cycle(allow_chaos=False, on_busy="reject")
    queued = asyncio.create_task(engine.run_cycle(TriggerMap(deltas={"SIGMA": 0.1}), trend_enabled=False,
                                                  allow_chaos=False))
    await asyncio.sleep(0)
    assert not queued.done()
    agg.gate.set()
    await first
    await queued
    assert engine.cycles == 2
    assert json_store.load().price("SIGMA") == pytest.approx(5.5)


@pytest.mark.asyncio
async def test_bad_on_busy_value(json_store):
    engine = PriceUpdateEngine(json_store, rng=PinnedRandom(), history_enabled=False)
    with pytest.raises(ValueError):
        await engine.run_cycle(on_busy="drop")


@pytest.mark.asyncio
async def test_light_cycle_applies_only_significant_scores(json_store):
    snap = json_store.load()
    snap.stocks["SUS"].last_change = 3.0
    json_store.save(snap)
    clock = FixedClock(WEDNESDAY_20)
    sel = GlobalEventSelector(rng=PinnedRandom(), clock=clock)
    sel.freeze(["OHIO"], 60_000)
    agg = StaticAggregator(light={"SKIBI": 0.02, "SUS": 0.004, "OHIO": 0.05})
    engine = PriceUpdateEngine(json_store, selector=sel, aggregator=agg, rng=PinnedRandom(), clock=clock,
                               history_enabled=False)
    result = await engine.run_light_cycle()
    after = json_store.load()
    assert after.price("SKIBI") == pytest.approx(0.75 * 1.01)
    assert after.price("SUS") == pytest.approx(0.20)
    assert after.stocks["SUS"].last_change == pytest.approx(3.0)
    assert after.price("OHIO") == pytest.approx(1.25)
    assert ("OHIO", "tiktok") not in agg.light_calls
    assert [h.symbol for h in result.history] == ["SKIBI"]


@pytest.mark.asyncio
async def test_light_cycle_skips_symbols_with_frozen_marker(json_store):
    clock = FixedClock(WEDNESDAY_20)
    snap = json_store.load()
    snap.stocks["SKIBI"].frozen_until = clock() + 60_000
    json_store.save(snap)
    agg = StaticAggregator(light={"SKIBI": 0.05, "SUS": 0.05})
    engine = PriceUpdateEngine(json_store, aggregator=agg, rng=PinnedRandom(), clock=clock, history_enabled=False)
    result = await engine.run_light_cycle()
    after = json_store.load()
    assert after.price("SKIBI") == pytest.approx(0.75)
    assert after.stocks["SKIBI"].frozen_until == clock() + 60_000
    assert after.price("SUS") == pytest.approx(0.20 * 1.025)
    assert ("SKIBI", "tiktok") not in agg.light_calls
    assert [h.symbol for h in result.history] == ["SUS"]
