"""
Pytest Fixtures for the Meme Market Test Suite

Shared fixtures: pinned randomness, throwaway stores under `tmp_path`, a
per-test SQLite database and isolated settings. Deterministic helpers live
in `meme_market.tests.support`.
"""
import pytest

from meme_market.core.config import MarketSettings, SchedulerSettings, Settings, TrendSettings
from meme_market.market.store import JsonSnapshotStore
from meme_market.persist import db
from meme_market.persist.migrations import apply_migrations
from meme_market.tests.support import PinnedRandom


@pytest.fixture
def pinned_rng():
    return PinnedRandom()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        market=MarketSettings(
            snapshot_path=str(tmp_path / "market.json"),
            meta_path=str(tmp_path / "meta.json"),
            db_path=str(tmp_path / "market.db"),
            seed=7,
        ),
        trends=TrendSettings(enabled=False),
        scheduler=SchedulerSettings(chaos_enabled=False, light_enabled=False),
    )


@pytest.fixture
def json_store(tmp_path) -> JsonSnapshotStore:
    return JsonSnapshotStore(str(tmp_path / "market.json"), str(tmp_path / "meta.json"))


@pytest.fixture
def history_db(tmp_path):
    db.close_db()
    db.init_db(str(tmp_path / "history.db"))
    apply_migrations()
    yield db
    db.close_db()
