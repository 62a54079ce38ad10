from __future__ import annotations

from typing import Any, Dict, Optional

from loguru import logger

from meme_market.core.market_meta import DEFAULT_PRICES
from .snapshot import Snapshot
from .store import SnapshotStore


def market_stats(snapshot: Snapshot) -> Optional[Dict[str, Any]]:
    """Aggregate view for the presentation layer; None for an empty market."""
    if not snapshot.stocks:
        return None
    total = 0.0
    pos = neg = 0
    for st in snapshot.stocks.values():
        total += st.price
        if st.last_change > 0:
            pos += 1
        elif st.last_change < 0:
            neg += 1
    n = len(snapshot.stocks)
    return {
        "totalValue": total,
        "averagePrice": total / n,
        "positiveStocks": pos,
        "negativeStocks": neg,
        "neutralStocks": n - pos - neg,
        "stockCount": n,
    }


def reset_prices(store: SnapshotStore) -> Dict[str, Any]:
    """Return every known symbol present in the snapshot to its launch price."""
    snap = store.load()
    reset = 0
    for sym, px in DEFAULT_PRICES.items():
        st = snap.stocks.get(sym)
        if st is None:
            continue
        logger.info("[store] reset {}: {:.2f} -> {}", sym, st.price, px)
        st.price = px
        st.last_change = 0.0
        st.high_24h = px
        st.low_24h = px
        reset += 1
    snap.last_event = f"🔄 Market reset completed! {reset} stocks returned to baseline prices."
    store.save(snap)
    return {"success": True, "resetCount": reset, "message": snap.last_event}
