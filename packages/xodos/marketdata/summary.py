"""Market-wide summary: average drift, movers and per-category performance."""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable

from .quotes import AssetQuote

_ZERO = Decimal("0")
TOP_MOVERS = 3


def _mover(quote: AssetQuote) -> dict[str, Any]:
    return {
        "asset_id": quote.asset_id,
        "ticker": quote.ticker,
        "price": str(quote.price),
        "change_24h": str(quote.change_24h),
    }


def market_summary(quotes: Iterable[AssetQuote], top: int = TOP_MOVERS) -> dict[str, Any]:
    """Summarise a set of quotes.

    ``top_losers`` lists the weakest asset first.  A negative *top* is treated
    as 0.  Category averages only cover categories with at least one listed
    asset.
    """
    top = max(top, 0)
    rows = list(quotes)
    if not rows:
        return {
            "asset_count": 0,
            "average_change_24h": "0",
            "top_gainers": [],
            "top_losers": [],
            "categories": {},
        }

    avg_change = sum((q.change_24h for q in rows), _ZERO) / len(rows)
    ranked = sorted(rows, key=lambda q: q.change_24h, reverse=True)
    losers = list(reversed(ranked[-top:])) if top else []

    by_category: dict[str, list[Decimal]] = defaultdict(list)
    for q in rows:
        by_category[q.category].append(q.change_24h)

    return {
        "asset_count": len(rows),
        "average_change_24h": str(avg_change),
        "top_gainers": [_mover(q) for q in ranked[:top]],
        "top_losers": [_mover(q) for q in losers],
        "categories": {
            cat: str(sum(changes, _ZERO) / len(changes))
            for cat, changes in sorted(by_category.items())
        },
    }
