#!/usr/bin/env python3
"""Xodos ledger CLI: accounts, trades, cash and net worth on a JSON state file.

Commands
--------
  python -m xodos account open     --state state.json --id acc-1 [--name N] [--cash 1000] [--kyc 1]
  python -m xodos account show     --state state.json --id acc-1
  python -m xodos account upgrade-kyc --state state.json --id acc-1
  python -m xodos trade    --state state.json --account acc-1 --asset mtnn (--long|--short) \\
                           --qty 10 --leverage 2 [--limit 205.0] [--preview]
  python -m xodos deposit  --state state.json --account acc-1 --amount 500 [--method "Bank Transfer"]
  python -m xodos withdraw --state state.json --account acc-1 --amount 200
  python -m xodos networth --state state.json --account acc-1
  python -m xodos list-asset --state state.json --id cowry --ticker COWRY --price 5.20 --risk High
  python -m xodos watch    --state state.json --account acc-1 --asset mtnn [--remove]

A missing state file starts a fresh session with the configured seed assets.
Every mutating command writes the state file back; rejected trades exit 1 and
leave it untouched.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from packages.xodos.config_loader import ConfigLoadError, EngineConfig, load_engine_config
from packages.xodos.errors import TradeRejected
from packages.xodos.ledger.engine import TradingEngine
from packages.xodos.ledger.rules import Direction, OrderType
from packages.xodos.ledger.store import StateLoadError, load_state
from packages.xodos.marketdata.quotes import AssetCategory, RiskTier

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path("xodos_state.json")


# ---------------------------------------------------------------------------
# Shared helpers (also used by tools/cli/market.py)
# ---------------------------------------------------------------------------


def load_config_arg(config_path: Optional[str]) -> EngineConfig:
    return load_engine_config(config_path=config_path) if config_path else EngineConfig()


def load_engine(state_path: Path, config: EngineConfig) -> TradingEngine:
    """Open *state_path*, or a seeded fresh engine when the file does not exist."""
    if state_path.exists():
        return TradingEngine.from_state(load_state(state_path), config)
    logger.info("State file %s not found; starting a fresh session", state_path)
    return TradingEngine.with_seed_assets(config)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _print_rejection(exc: TradeRejected) -> None:
    print(f"Rejected [{exc.code}]: {exc.message}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------


def _account(args: argparse.Namespace, engine: TradingEngine) -> int:
    if args.action == "open":
        engine.open_account(args.id, name=args.name, cash_balance=args.cash, kyc_level=args.kyc)
        engine.save(args.state)
    elif args.action == "upgrade-kyc":
        engine.upgrade_kyc(args.id)
        engine.save(args.state)
    _print_json(engine.portfolio(args.id))
    return 0


def _trade(args: argparse.Namespace, engine: TradingEngine) -> int:
    direction = Direction.SHORT if args.short else Direction.LONG
    order_type = OrderType.LIMIT if args.limit is not None else OrderType.MARKET

    if args.preview:
        verdict = engine.preview_trade(
            args.account, args.asset, direction, args.qty, args.leverage,
            order_type=order_type, limit_price=args.limit,
        )
        _print_json(verdict.to_dict())
        return 0 if verdict.accepted else 1

    result = engine.submit_trade(
        args.account, args.asset, direction, args.qty, args.leverage,
        order_type=order_type, limit_price=args.limit,
    )
    if not result.ok:
        print(f"Rejected [{result.rejection.code}]: {result.rejection.message}", file=sys.stderr)
        return 1
    engine.save(args.state)
    _print_json(result.trade.to_dict())
    return 0


def _cash(args: argparse.Namespace, engine: TradingEngine) -> int:
    if args.subcommand == "deposit":
        record = engine.deposit(args.account, args.amount, method=args.method)
    else:
        record = engine.withdraw(args.account, args.amount, method=args.method)
    engine.save(args.state)
    _print_json(record.to_dict())
    return 0


def _networth(args: argparse.Namespace, engine: TradingEngine) -> int:
    allocation = engine.allocation(args.account)
    _print_json({
        "account_id": args.account,
        "net_worth": str(engine.get_net_worth(args.account)),
        "allocation": {k: str(v) for k, v in sorted(allocation.items())},
    })
    return 0


def _list_asset(args: argparse.Namespace, engine: TradingEngine) -> int:
    quote = engine.list_asset(
        asset_id=args.id,
        ticker=args.ticker,
        price=args.price,
        risk_tier=args.risk,
        name=args.name,
        category=args.category,
    )
    engine.save(args.state)
    _print_json(quote.to_dict())
    return 0


def _watch(args: argparse.Namespace, engine: TradingEngine) -> int:
    if args.remove:
        watchlist = engine.unwatch(args.account, args.asset)
    else:
        watchlist = engine.watch(args.account, args.asset)
    engine.save(args.state)
    _print_json({"account_id": args.account, "watchlist": watchlist})
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
        help=f"Ledger state file (default: {DEFAULT_STATE_PATH}).",
    )
    p.add_argument(
        "--config",
        default=None,
        metavar="PATH",
        help="Optional engine config JSON (tier limits, leverage cap, volatility).",
    )
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xodos",
        description="Xodos ledger: leveraged positions, cash and net worth on a state file.",
    )
    sub = parser.add_subparsers(dest="subcommand", required=True)

    # ------------------------------------------------------------------
    # account
    # ------------------------------------------------------------------
    acct = sub.add_parser("account", help="Open, show or upgrade an account.")
    acct.add_argument("action", choices=["open", "show", "upgrade-kyc"])
    acct.add_argument("--id", required=True, help="Account id.")
    acct.add_argument("--name", default="", help="Display name (open only).")
    acct.add_argument("--cash", default="0", help="Opening cash balance (open only).")
    acct.add_argument("--kyc", type=int, default=1, choices=[1, 2, 3], help="Starting KYC tier.")
    _add_common(acct)

    # ------------------------------------------------------------------
    # trade
    # ------------------------------------------------------------------
    trade = sub.add_parser("trade", help="Submit or preview a leveraged trade.")
    trade.add_argument("--account", required=True)
    trade.add_argument("--asset", required=True, help="Asset id (e.g. mtnn).")
    side = trade.add_mutually_exclusive_group(required=True)
    side.add_argument("--long", action="store_true", help="Open/extend a LONG position.")
    side.add_argument("--short", action="store_true", help="Open/extend a SHORT position.")
    trade.add_argument("--qty", required=True, help="Quantity (> 0).")
    trade.add_argument("--leverage", default="1", help="Integer leverage multiple (default: 1).")
    trade.add_argument(
        "--limit",
        default=None,
        metavar="PRICE",
        help="Execute as a LIMIT order at this price (default: MARKET at the quote).",
    )
    trade.add_argument(
        "--preview",
        action="store_true",
        default=False,
        help="Only run pre-trade checks; nothing is written.",
    )
    _add_common(trade)

    # ------------------------------------------------------------------
    # deposit / withdraw
    # ------------------------------------------------------------------
    for name, help_text in (
        ("deposit", "Credit cash to an account."),
        ("withdraw", "Debit cash from an account (record stays Pending)."),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--account", required=True)
        p.add_argument("--amount", required=True)
        p.add_argument("--method", default="", help="Funding method label.")
        _add_common(p)

    # ------------------------------------------------------------------
    # networth
    # ------------------------------------------------------------------
    nw = sub.add_parser("networth", help="Print net worth and category allocation.")
    nw.add_argument("--account", required=True)
    _add_common(nw)

    # ------------------------------------------------------------------
    # list-asset
    # ------------------------------------------------------------------
    la = sub.add_parser("list-asset", help="List a new asset.")
    la.add_argument("--id", required=True)
    la.add_argument("--ticker", required=True)
    la.add_argument("--price", required=True)
    la.add_argument("--risk", default=RiskTier.MEDIUM, choices=list(RiskTier.ALL))
    la.add_argument("--category", default=AssetCategory.EQUITY, choices=list(AssetCategory.ALL))
    la.add_argument("--name", default=None)
    _add_common(la)

    # ------------------------------------------------------------------
    # watch
    # ------------------------------------------------------------------
    w = sub.add_parser("watch", help="Add an asset to (or remove it from) the watchlist.")
    w.add_argument("--account", required=True)
    w.add_argument("--asset", required=True)
    w.add_argument("--remove", action="store_true", default=False, help="Stop watching the asset.")
    _add_common(w)

    return parser


_HANDLERS = {
    "account": _account,
    "trade": _trade,
    "deposit": _cash,
    "withdraw": _cash,
    "networth": _networth,
    "list-asset": _list_asset,
    "watch": _watch,
}


def main(argv: list[str]) -> int:
    """CLI entry point.  Returns exit code (0 = success)."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    handler = _HANDLERS.get(args.subcommand)
    if handler is None:
        parser.print_help()
        return 1

    try:
        engine = load_engine(args.state, load_config_arg(args.config))
        return handler(args, engine)
    except (ConfigLoadError, StateLoadError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except TradeRejected as exc:
        _print_rejection(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
