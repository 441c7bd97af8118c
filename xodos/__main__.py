"""Module entrypoint for running Xodos CLI commands.

Usage: python -m xodos <command> [options]
"""

from __future__ import annotations

import sys
from typing import Optional

from tools.cli.ledger import main as ledger_main
from tools.cli.market import main as market_main

_LEDGER_COMMANDS = ("account", "trade", "deposit", "withdraw", "networth", "list-asset", "watch")


def print_usage() -> None:
    """Print CLI usage information."""
    print("Xodos - leveraged position & ledger engine")
    print("")
    print("Usage: xodos <command> [options]")
    print("       python -m xodos <command> [options]")
    print("")
    print("Commands:")
    print("  simulate          Run the price simulator and print quotes / market summary")
    print("  history           Print a back-filled daily price series for one asset")
    print("  depth             Print a synthetic order-book ladder for one asset")
    print("  account           Open an account, show it, or upgrade its KYC tier")
    print("  trade             Submit (or --preview) a leveraged LONG/SHORT trade")
    print("  deposit           Credit cash to an account")
    print("  withdraw          Debit cash from an account (pending settlement)")
    print("  networth          Print an account's net worth and allocation")
    print("  list-asset        List a new asset in the state file")
    print("  watch             Add or remove an asset on an account watchlist")
    print("  serve             Start the HTTP API (uvicorn)")
    print("")
    print("Options:")
    print("  -h, --help        Show this help message")
    print("  --version         Show version information")
    print("")
    print("Examples:")
    print("  xodos simulate --ticks 20 --seed 7")
    print("  xodos account open --state state.json --id acc-1 --cash 1000")
    print("  xodos trade --state state.json --account acc-1 --asset mtnn --long --qty 10 --leverage 2")
    print("  xodos networth --state state.json --account acc-1")


def print_version() -> None:
    """Print version information."""
    from xodos import __version__
    print(f"xodos {__version__}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entrypoint."""
    if argv is None:
        argv = sys.argv[1:]

    if len(argv) < 1:
        print_usage()
        return 1

    command = argv[0]

    if command in ("-h", "--help"):
        print_usage()
        return 0

    if command in ("-v", "--version"):
        print_version()
        return 0

    # Route to command handlers
    if command in ("simulate", "history", "depth"):
        return market_main(argv)
    if command in _LEDGER_COMMANDS:
        return ledger_main(argv)

    if command == "serve":
        try:
            from tools.cli.serve import main as serve_main
        except ImportError as exc:
            print(
                f"Error: {exc}. Run:  pip install 'fastapi' 'uvicorn'",
                file=sys.stderr,
            )
            return 1
        return serve_main(argv[1:])

    print(f"Unknown command: {command}", file=sys.stderr)
    print("Run 'xodos --help' for usage information.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
