#!/usr/bin/env python3
"""Xodos market CLI: drive the price simulator and inspect synthetic market data.

Commands
--------
  python -m xodos simulate [--ticks 10] [--seed 7] [--state state.json] [--json] [--summary]
  python -m xodos history  --asset mtnn [--days 30] [--seed 7]
  python -m xodos depth    --asset mtnn [--levels 8] [--seed 7]

``simulate`` with ``--state`` and ``--save`` advances the quotes stored in the
state file and writes them back, so later ``trade`` commands see the new
prices.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any, Optional

from packages.xodos.config_loader import ConfigLoadError
from packages.xodos.errors import QuoteNotFound
from packages.xodos.ledger.store import StateLoadError
from packages.xodos.marketdata.depth import DEFAULT_LEVELS, depth_ladder
from packages.xodos.marketdata.quotes import AssetQuote
from packages.xodos.marketdata.simulator import PriceSimulator, generate_price_history
from packages.xodos.marketdata.summary import market_summary
from tools.cli.ledger import DEFAULT_STATE_PATH, load_config_arg, load_engine

logger = logging.getLogger(__name__)


def _rng(seed: Optional[int]) -> random.Random:
    return random.Random(seed) if seed is not None else random.Random()


def _format_quote_row(q: AssetQuote) -> str:
    return (
        f"{q.ticker:<10} {q.price:>14.4f} {q.bid:>14.4f} {q.ask:>14.4f} "
        f"{q.change_24h:>+9.3f}%  {q.risk_tier}"
    )


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------


def _simulate(args: argparse.Namespace) -> int:
    if args.ticks < 0:
        print("Error: --ticks must be >= 0", file=sys.stderr)
        return 1

    config = load_config_arg(args.config)
    engine = load_engine(args.state, config)
    simulator = PriceSimulator(engine.quotes, config=config, rng=_rng(args.seed))
    version = simulator.run_ticks(args.ticks)
    quotes = sorted(engine.quotes.all(), key=lambda q: q.asset_id)

    if args.save:
        engine.save(args.state)

    if args.json:
        payload: dict[str, Any] = {
            "ticks": simulator.ticks,
            "version": version,
            "quotes": [q.to_dict() for q in quotes],
        }
        if args.summary:
            payload["summary"] = market_summary(quotes)
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    print(f"[xodos simulate] ticks   : {simulator.ticks}", file=sys.stderr)
    print(f"[xodos simulate] version : {version}", file=sys.stderr)
    print(f"{'TICKER':<10} {'PRICE':>14} {'BID':>14} {'ASK':>14} {'CHANGE':>10}  TIER")
    for q in quotes:
        print(_format_quote_row(q))

    if args.summary:
        summary = market_summary(quotes)
        print("")
        print(f"Average change : {summary['average_change_24h']}%")
        print("Top gainers    : " + ", ".join(m["ticker"] for m in summary["top_gainers"]))
        print("Top losers     : " + ", ".join(m["ticker"] for m in summary["top_losers"]))
    return 0


def _history(args: argparse.Namespace) -> int:
    engine = load_engine(args.state, load_config_arg(args.config))
    quote = engine.get_quote(args.asset)
    rows = generate_price_history(
        quote.price,
        days=args.days,
        rng=_rng(args.seed),
        price_floor=engine.config.price_floor,
    )
    print(json.dumps(
        [{"date": row["date"], "price": str(row["price"])} for row in rows],
        indent=2,
    ))
    return 0


def _depth(args: argparse.Namespace) -> int:
    engine = load_engine(args.state, load_config_arg(args.config))
    quote = engine.get_quote(args.asset)
    ladder = depth_ladder(
        quote,
        levels=args.levels,
        rng=_rng(args.seed),
        spread_fraction=engine.config.spread_fraction,
    )
    print(json.dumps(ladder, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--state",
        type=Path,
        default=DEFAULT_STATE_PATH,
        metavar="PATH",
        help="Read quotes from this state file (seed assets when it does not exist).",
    )
    p.add_argument("--config", default=None, metavar="PATH", help="Optional engine config JSON.")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducible output.")
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xodos",
        description="Xodos market data: simulated quotes, price history and depth.",
    )
    sub = parser.add_subparsers(dest="subcommand", required=True)

    sim = sub.add_parser("simulate", help="Advance quotes by N ticks and print them.")
    sim.add_argument("--ticks", type=int, default=10, help="Number of ticks (default: 10).")
    sim.add_argument("--json", action="store_true", default=False, help="Print JSON.")
    sim.add_argument(
        "--summary",
        action="store_true",
        default=False,
        help="Include the market summary (average drift, movers).",
    )
    sim.add_argument(
        "--save",
        action="store_true",
        default=False,
        help="Write the advanced quotes back to --state.",
    )
    _add_common(sim)

    hist = sub.add_parser("history", help="Back-fill a daily price series for one asset.")
    hist.add_argument("--asset", required=True)
    hist.add_argument("--days", type=int, default=30)
    _add_common(hist)

    dep = sub.add_parser("depth", help="Synthetic order-book ladder around the quote.")
    dep.add_argument("--asset", required=True)
    dep.add_argument("--levels", type=int, default=DEFAULT_LEVELS)
    _add_common(dep)

    return parser


def main(argv: list[str]) -> int:
    """CLI entry point.  Returns exit code (0 = success)."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.subcommand == "simulate":
            return _simulate(args)
        if args.subcommand == "history":
            return _history(args)
        if args.subcommand == "depth":
            return _depth(args)
    except (ConfigLoadError, StateLoadError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except QuoteNotFound as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
