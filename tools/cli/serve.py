"""Start the Xodos HTTP API under uvicorn.

  python -m xodos serve [--host 127.0.0.1] [--port 8000] [--reload]

Engine settings come from the ``XODOS_*`` environment variables read by
``services/api/main.py``.
"""

from __future__ import annotations

import argparse
import sys

import uvicorn


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="xodos serve", description="Run the Xodos API server.")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1).")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000).")
    parser.add_argument(
        "--reload",
        action="store_true",
        default=False,
        help="Restart on code changes (development only).",
    )
    return parser


def main(argv: list[str]) -> int:
    args = _build_parser().parse_args(argv)
    print(f"[xodos serve] http://{args.host}:{args.port}", file=sys.stderr)
    uvicorn.run(
        "services.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0
