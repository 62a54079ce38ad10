import json

import pytest

from meme_market.core.market_meta import (
    DEFAULT_PRICES, LAUNCH_EVENT_TEXT, SYMBOLS, SymbolMeta, default_market, default_meta, parse_meta,
)
from meme_market.market.snapshot import Snapshot, SymbolState
from meme_market.market.stats import market_stats, reset_prices
from meme_market.market.store import JsonSnapshotStore, SnapshotError, SqliteSnapshotStore, build_store
from meme_market.core.config import MarketSettings


def test_load_initialises_missing_market(json_store, tmp_path):
    snap = json_store.load()
    assert snap.symbols() == list(SYMBOLS)
    assert snap.price("SKIBI") == DEFAULT_PRICES["SKIBI"]
    assert snap.last_event == LAUNCH_EVENT_TEXT
    assert (tmp_path / "market.json").exists()
    assert (tmp_path / "meta.json").exists()


def test_corrupt_entries_are_skipped(json_store, tmp_path):
    doc = {
        "SKIBI": {"price": 1.5, "lastChange": 2.0},
        "SUS": {"price": -1},
        "OHIO": "garbage",
        "RIZZL": {"price": "1.0"},
        "lastEvent": "hello",
    }
    (tmp_path / "market.json").write_text(json.dumps(doc), encoding="utf-8")
    snap = json_store.load()
    assert snap.symbols() == ["SKIBI"]
    assert sorted(snap.skipped) == ["OHIO", "RIZZL", "SUS"]
    assert snap.last_event == "hello"


def test_malformed_optional_fields_fall_back_to_defaults(json_store, tmp_path):
    doc = default_market()
    doc["SKIBI"].update({"lastChange": "n/a", "volume": [], "frozenUntil": "soon", "high24h": "x"})
    doc["SUS"]["lastChange"] = float("nan")
    (tmp_path / "market.json").write_text(json.dumps(doc), encoding="utf-8")
    snap = json_store.load()
    assert len(snap) == len(SYMBOLS)
    st = snap.stocks["SKIBI"]
    assert st.price == DEFAULT_PRICES["SKIBI"]
    assert (st.last_change, st.volume, st.frozen_until, st.high_24h) == (0.0, 0.0, None, None)
    assert snap.stocks["SUS"].last_change == 0.0
    json_store.save(snap)
    assert json_store.load().stocks["SKIBI"].last_change == 0.0


def test_unreadable_market_is_reinitialised(json_store, tmp_path):
    (tmp_path / "market.json").write_text("{not json", encoding="utf-8")
    snap = json_store.load()
    assert len(snap) == len(SYMBOLS)
    assert snap.last_event == LAUNCH_EVENT_TEXT


def test_market_without_valid_symbols_is_reinitialised(json_store, tmp_path):
    (tmp_path / "market.json").write_text(json.dumps({"lastEvent": "x", "SKIBI": {"price": 0}}), encoding="utf-8")
    snap = json_store.load()
    assert len(snap) == len(SYMBOLS)


def test_reinitialisation_failure_raises(tmp_path):
    class BrokenStore(JsonSnapshotStore):
        def read_raw(self):
            raise OSError("disk on fire")

    store = BrokenStore(str(tmp_path / "market.json"))
    with pytest.raises(SnapshotError):
        store.load()


def test_save_round_trip_keeps_extra_keys(json_store):
    snap = json_store.load()
    snap.stocks["SKIBI"].extra["italianName"] = "Gabibbi Toiletto"
    snap.stocks["SKIBI"].record_price(1.5, 0.75)
    json_store.save(snap)
    again = json_store.load()
    st = again.stocks["SKIBI"]
    assert st.price == 1.5
    assert st.last_change == pytest.approx(100.0)
    assert st.high_24h == 1.5
    assert st.low_24h == 0.75
    assert st.extra["italianName"] == "Gabibbi Toiletto"


def test_meta_defaults_and_invalid_entries(tmp_path):
    meta = parse_meta({"SKIBI": {"volatility": "ludicrous"}, "NEWCO": {"volatility": "low", "maxPrice": 10}})
    assert meta["SKIBI"].volatility == "extreme"  # fell back to the compiled-in default
    assert meta["NEWCO"].max_price == 10
    assert set(SYMBOLS) <= set(meta)


def test_meta_floor_must_be_below_cap():
    with pytest.raises(ValueError):
        SymbolMeta.model_validate({"minimumPrice": 5, "maxPrice": 5})


def test_banani_floor_from_meta():
    meta = default_meta()
    assert meta["BANANI"].floor == pytest.approx(0.20)
    assert meta["SKIBI"].floor == pytest.approx(0.01)


def test_sqlite_store_round_trip(history_db, tmp_path):
    store = SqliteSnapshotStore(meta_path=str(tmp_path / "meta.json"))
    snap = store.load()
    assert len(snap) == len(SYMBOLS)
    snap.stocks["SUS"].record_price(0.3, 0.2)
    snap.last_event = "sqlite says hi"
    store.save(snap)
    again = store.load()
    assert again.price("SUS") == pytest.approx(0.3)
    assert again.stocks["SUS"].last_change == pytest.approx(50.0)
    assert again.last_event == "sqlite says hi"
    assert again.symbols() == list(SYMBOLS)


def test_build_store_json(tmp_path):
    cfg = MarketSettings(snapshot_path=str(tmp_path / "m.json"), meta_path=str(tmp_path / "meta.json"))
    assert isinstance(build_store(cfg), JsonSnapshotStore)


def test_market_stats():
    snap = Snapshot(stocks={
        "A": SymbolState(price=1.0, last_change=5.0),
        "B": SymbolState(price=3.0, last_change=-1.0),
        "C": SymbolState(price=2.0, last_change=0.0),
    })
    stats = market_stats(snap)
    assert stats["totalValue"] == pytest.approx(6.0)
    assert stats["averagePrice"] == pytest.approx(2.0)
    assert (stats["positiveStocks"], stats["negativeStocks"], stats["neutralStocks"]) == (1, 1, 1)
    assert stats["stockCount"] == 3
    assert market_stats(Snapshot()) is None


def test_reset_prices(json_store):
    snap = json_store.load()
    for st in snap.stocks.values():
        st.record_price(st.price * 3, st.price)
    json_store.save(snap)
    out = reset_prices(json_store)
    assert out["success"] is True
    assert out["resetCount"] == len(SYMBOLS)
    after = json_store.load()
    for sym, px in DEFAULT_PRICES.items():
        assert after.price(sym) == px
        assert after.stocks[sym].last_change == 0.0
        assert after.stocks[sym].high_24h == px
    assert "reset" in after.last_event


def test_sqlite_store_keeps_frozen_marker_and_extra_keys(history_db, tmp_path):
    store = SqliteSnapshotStore(meta_path=str(tmp_path / "meta.json"))
    snap = store.load()
    snap.stocks["SKIBI"].frozen_until = 1_700_000_000_000
    snap.stocks["SKIBI"].extra["italianName"] = "Gabibbi Toiletto"
    store.save(snap)
    again = store.load().stocks["SKIBI"]
    assert again.frozen_until == 1_700_000_000_000
    assert again.extra == {"italianName": "Gabibbi Toiletto"}
    assert store.load().stocks["SUS"].frozen_until is None
