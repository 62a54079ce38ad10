"""Market state: snapshot model, snapshot stores and aggregate stats."""

from .snapshot import Snapshot, SymbolState, is_valid_entry
from .store import SnapshotError, SnapshotStore, JsonSnapshotStore, SqliteSnapshotStore, build_store
from .stats import market_stats, reset_prices

__all__ = [
    'Snapshot', 'SymbolState', 'is_valid_entry', 'SnapshotError', 'SnapshotStore', 'JsonSnapshotStore',
    'SqliteSnapshotStore', 'build_store', 'market_stats', 'reset_prices',
]
