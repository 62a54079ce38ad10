"""Market control CLI.

Usage:
  python -m meme_market.apps.marketctl status
  python -m meme_market.apps.marketctl stats
  python -m meme_market.apps.marketctl update --no-trends --no-chaos
  python -m meme_market.apps.marketctl light
  python -m meme_market.apps.marketctl trigger SKIBI=0.25 SUS=-0.1 --text "manual pump"
  python -m meme_market.apps.marketctl event pasta_party --duration 120
  python -m meme_market.apps.marketctl reset --yes
  python -m meme_market.apps.marketctl history SKIBI --limit 20
  python -m meme_market.apps.marketctl trend SKIBI
  python -m meme_market.apps.marketctl resistance SKIBI --steps 5
  python -m meme_market.apps.marketctl run
"""
from __future__ import annotations
import argparse
import asyncio
import json
import sys
from typing import Dict, List, Optional
from dotenv import load_dotenv
from loguru import logger
from meme_market.core.config import ConfigError, Settings, load_settings
from meme_market.core.custom_types import TriggerMap
from meme_market.engine.resistance import simulate_resistance
from meme_market.events.catalog import EVENT_TYPES
from meme_market.events.selector import UnknownEventError
from meme_market.market.snapshot import Snapshot
from meme_market.market.stats import market_stats, reset_prices
from meme_market.persist import db
from meme_market.persist.migrations import apply_migrations
from meme_market.apps.scheduler import MarketScheduler


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Meme market control")
    p.add_argument("--config", default="settings.yaml", help="YAML settings file (missing file -> defaults + env)")
    p.add_argument("--log-level", default=None)
    sub = p.add_subparsers(dest="cmd", required=True)
    sub.add_parser("status")
    sub.add_parser("stats")
    up = sub.add_parser("update")
    up.add_argument("--no-trends", action="store_true")
    up.add_argument("--no-chaos", action="store_true")
    sub.add_parser("light")
    tr = sub.add_parser("trigger")
    tr.add_argument("deltas", nargs="+", help="SYMBOL=DELTA pairs, e.g. SKIBI=0.25")
    tr.add_argument("--text", default="")
    tr.add_argument("--freeze", nargs="*", default=[])
    tr.add_argument("--chaos", action="store_true", help="Allow the chaos roll on this cycle")
    ev = sub.add_parser("event")
    ev.add_argument("event_type", choices=EVENT_TYPES)
    ev.add_argument("--duration", type=int, default=None, help="Seconds (30-3600)")
    rs = sub.add_parser("reset")
    rs.add_argument("--yes", action="store_true")
    hi = sub.add_parser("history")
    hi.add_argument("symbol")
    hi.add_argument("--limit", type=int, default=20)
    tn = sub.add_parser("trend")
    tn.add_argument("symbol")
    rz = sub.add_parser("resistance")
    rz.add_argument("symbol")
    rz.add_argument("--steps", type=int, default=5)
    rz.add_argument("--price", type=float, default=None, help="Start price (defaults to current)")
    rz.add_argument("--bias", type=float, default=0.05)
    sub.add_parser("run")
    return p.parse_args(argv)


def parse_deltas(pairs: List[str]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for pair in pairs:
        sym, sep, val = pair.partition("=")
        if not sep or not sym:
            raise ValueError(f"expected SYMBOL=DELTA, got {pair!r}")
        out[sym.strip().upper()] = float(val)
    return out


def _load(config: str) -> Settings:
    try:
        return load_settings(config)
    except ConfigError as e:
        if "not found" not in str(e):
            raise
        logger.info("[marketctl] {} not found; using defaults + environment", config)
        return load_settings(None)


def _open_history(settings: Settings) -> None:
    if settings.market.history_enabled and not db.is_initialised():
        db.init_db(settings.market.db_path)
        apply_migrations()


def _print_snapshot(snap: Snapshot, title: str = "Market") -> None:
    try:
        from rich.table import Table
        from rich.console import Console
    except Exception:
        print(json.dumps(snap.to_dict(), indent=2, ensure_ascii=False))
        return
    t = Table(title=title)
    for col in ("symbol", "price", "change %", "high 24h", "low 24h"):
        t.add_column(col)
    for sym, st in snap.stocks.items():
        color = "green" if st.last_change > 0 else "red" if st.last_change < 0 else "white"
        t.add_row(
            sym, f"{st.price:.4f}", f"[{color}]{st.last_change:+.2f}[/{color}]",
            f"{(st.high_24h or st.price):.4f}", f"{(st.low_24h or st.price):.4f}",
        )
    c = Console()
    c.print(t)
    if snap.last_event:
        c.print(snap.last_event)


# ----------------------------------------------------------------------------
def cmd_status(sched: MarketScheduler):
    _print_snapshot(sched.store.load())
    print(json.dumps(sched.selector.status(), indent=2, ensure_ascii=False))


def cmd_stats(sched: MarketScheduler):
    print(json.dumps(market_stats(sched.store.load()), indent=2))


async def cmd_update(sched: MarketScheduler, no_trends: bool, no_chaos: bool):
    now = sched.clock()
    event = sched.selector.check_for_global_events(now)
    triggers = event.triggers if event is not None else TriggerMap()
    res = await sched.engine.run_cycle(
        triggers,
        trend_enabled=sched.settings.trends.enabled and not no_trends,
        allow_chaos=sched.settings.scheduler.chaos_enabled and not no_chaos,
    )
    _print_snapshot(res.snapshot, title="Market (updated)")


async def cmd_light(sched: MarketScheduler):
    res = await sched.run_light_cycle()
    if res is None:
        logger.warning("[marketctl] light cycle disabled in settings")
        return
    _print_snapshot(res.snapshot, title=f"Market (light, {len(res.history)} moved)")


async def cmd_trigger(sched: MarketScheduler, deltas: Dict[str, float], text: str, freeze: List[str], chaos: bool):
    tm = TriggerMap(deltas=deltas, freeze=[s.upper() for s in freeze], text=text)
    res = await sched.apply_manual_triggers(tm, allow_chaos=chaos)
    _print_snapshot(res.snapshot, title="Market (manual triggers)")


async def cmd_event(sched: MarketScheduler, event_type: str, duration: Optional[int]):
    event, res = await sched.trigger_event(event_type, duration * 1000 if duration else None)
    print(json.dumps({
        "success": True,
        "eventName": event.name,
        "eventType": event.type,
        "affectedStocks": sorted(event.triggers.deltas) or list(event.triggers.freeze),
        "lastEvent": event.last_event,
        "duration": event.duration_ms,
    }, indent=2, ensure_ascii=False))


def cmd_reset(sched: MarketScheduler, yes: bool):
    if not yes:
        print("Refusing to reset without --yes")
        return
    print(json.dumps(reset_prices(sched.store), indent=2, ensure_ascii=False))


def cmd_history(symbol: str, limit: int):
    rows = db.load_price_history(symbol.upper(), limit)
    try:
        from rich.table import Table
        from rich.console import Console
    except Exception:
        print(json.dumps(rows, indent=2))
        return
    t = Table(title=f"{symbol.upper()} price history")
    for col in ("ts", "price", "trend"):
        t.add_column(col)
    for r in rows:
        t.add_row(str(r["ts"]), f"{r['price']:.4f}", f"{r['trend_score']:+.4f}")
    Console().print(t)


async def cmd_trend(sched: MarketScheduler, symbol: str):
    if sched.aggregator is None:
        logger.warning("[marketctl] trends disabled in settings")
        return
    sym = symbol.upper()
    score = await sched.aggregator.score(sym, use_cache=False)
    print(json.dumps({"symbol": sym, "score": score, "status": sched.aggregator.status()}, indent=2))


def cmd_resistance(sched: MarketScheduler, symbol: str, steps: int, price: Optional[float], bias: float):
    sym = symbol.upper()
    meta = sched.store.load_meta().get(sym)
    if meta is None:
        raise SystemExit(f"unknown symbol {sym}")
    start = price if price is not None else sched.store.load().price(sym) or 1.0
    try:
        from rich.table import Table
        from rich.console import Console
    except Exception:
        Table = None  # type: ignore
    rows = simulate_resistance(start, steps=steps, bias=bias, max_price=meta.max_price, floor=meta.floor, rng=sched.rng)
    if Table is None:
        for r in rows:
            print(f"{r.step}: {r.old_price:.2f} -> {r.new_price:.2f} ({r.change_pct:+.1f}%) zone={r.zone}")
        return
    t = Table(title=f"{sym} resistance simulation (cap {meta.max_price})")
    for col in ("step", "old", "new", "change %", "zone", "ratio %"):
        t.add_column(col)
    for r in rows:
        t.add_row(str(r.step), f"{r.old_price:.2f}", f"{r.new_price:.2f}", f"{r.change_pct:+.1f}",
                  r.zone, f"{r.new_price / meta.max_price * 100:.1f}")
    Console().print(t)


async def _amain(args) -> int:
    settings = _load(args.config)
    logger.remove()
    logger.add(sys.stderr, level=args.log_level or settings.logging.level, serialize=settings.logging.json_logs)
    _open_history(settings)
    if args.cmd == "history":
        try:
            if not db.is_initialised():
                logger.warning("[marketctl] price history is disabled in settings")
                return 1
            cmd_history(args.symbol, args.limit)
            return 0
        finally:
            db.close_db()
    sched = MarketScheduler(settings)
    try:
        if args.cmd == "status":
            cmd_status(sched)
        elif args.cmd == "stats":
            cmd_stats(sched)
        elif args.cmd == "update":
            await cmd_update(sched, args.no_trends, args.no_chaos)
        elif args.cmd == "light":
            await cmd_light(sched)
        elif args.cmd == "trigger":
            await cmd_trigger(sched, parse_deltas(args.deltas), args.text, args.freeze, args.chaos)
        elif args.cmd == "event":
            await cmd_event(sched, args.event_type, args.duration)
        elif args.cmd == "reset":
            cmd_reset(sched, args.yes)
        elif args.cmd == "trend":
            await cmd_trend(sched, args.symbol)
        elif args.cmd == "resistance":
            cmd_resistance(sched, args.symbol, args.steps, args.price, args.bias)
        elif args.cmd == "run":
            await sched.run_forever()
    except (UnknownEventError, ValueError) as e:
        logger.error("[marketctl] {}", e)
        return 2
    finally:
        if sched.aggregator is not None and args.cmd != "run":
            await sched.aggregator.close()
        db.close_db()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    try:
        return asyncio.run(_amain(args))
    except ConfigError as e:
        logger.error("[marketctl] configuration error: {}", e)
        return 2
    except KeyboardInterrupt:
        logger.warning("Ctrl+C received; shutting down")
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
