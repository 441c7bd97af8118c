"""JSON snapshot persistence for accounts, positions and quotes.

Decimals are written as strings, so a save/load round trip reproduces every
balance, position and price exactly and net worth recomputes to the same
number.

Snapshot schema (``state.json``)::

    {
      "schema_version": 1,
      "saved_at": "2026-10-19T12:00:00+00:00",
      "quotes":   [{"asset_id": "mtnn", "price": "210.5", ...}, ...],
      "accounts": [{"account_id": "acc-1", "cash_balance": "900", ...}, ...]
    }
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Union

from ..config_loader import ConfigLoadError, load_json_from_path
from ..marketdata.quotes import AssetQuote
from .account import Account, utc_now_iso

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class StateLoadError(ValueError):
    """Raised when a state snapshot cannot be read or decoded."""


@dataclass
class LedgerState:
    accounts: list[Account] = field(default_factory=list)
    quotes: list[AssetQuote] = field(default_factory=list)


def state_to_dict(accounts: Iterable[Account], quotes: Iterable[AssetQuote]) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "saved_at": utc_now_iso(),
        "quotes": [q.to_dict() for q in quotes],
        "accounts": [a.to_dict() for a in accounts],
    }


def state_from_dict(raw: dict[str, Any]) -> LedgerState:
    """Decode a snapshot dict.

    Raises:
        StateLoadError: unsupported schema version or malformed rows.
    """
    version = raw.get("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise StateLoadError(
            f"unsupported state schema_version {version!r}; expected {SCHEMA_VERSION}"
        )
    try:
        quotes = [AssetQuote.from_dict(row) for row in raw.get("quotes", [])]
        accounts = [Account.from_dict(row) for row in raw.get("accounts", [])]
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        raise StateLoadError(f"malformed state snapshot: {exc!r}") from exc
    return LedgerState(accounts=accounts, quotes=quotes)


def save_state(
    path: Union[str, Path],
    accounts: Iterable[Account],
    quotes: Iterable[AssetQuote],
) -> Path:
    """Write a snapshot atomically (temp file + rename)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = state_to_dict(accounts, quotes)
    tmp = p.with_name(p.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
        fh.write("\n")
    os.replace(tmp, p)
    logger.debug(
        "State saved: %s (accounts=%d quotes=%d)",
        p, len(payload["accounts"]), len(payload["quotes"]),
    )
    return p


def load_state(path: Union[str, Path]) -> LedgerState:
    """Read a snapshot written by :func:`save_state`.

    Raises:
        StateLoadError: missing file, invalid JSON, or malformed contents.
    """
    try:
        raw = load_json_from_path(path)
    except ConfigLoadError as exc:
        raise StateLoadError(f"cannot load state snapshot: {exc}") from exc
    return state_from_dict(raw)
