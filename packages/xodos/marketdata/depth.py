"""Synthetic order-book ladder derived from a quote.

The ladder is display data only; the authorizer and ledgers never read it.
Levels step 0.2% away from the touch on each side of a 0.5% spread around
the current price.  Sizes are drawn from the injected random source::

    ask_k = (price + spread/2) * (1 + 0.002 * k)
    bid_k = (price - spread/2) / (1 + 0.002 * k)      k = 1..levels
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Optional

from .quotes import AssetQuote

_ONE = Decimal("1")
_TWO = Decimal("2")
_LEVEL_STEP = Decimal("0.002")
_PRICE_QUANT = Decimal("0.0001")

DEFAULT_LEVELS = 8
MIN_LEVEL_SIZE = 100
MAX_LEVEL_SIZE = 5099


@dataclass(frozen=True)
class DepthLevel:
    price: Decimal
    size: int

    @property
    def total(self) -> Decimal:
        return self.price * self.size

    def to_dict(self) -> dict[str, Any]:
        return {"price": str(self.price), "size": self.size, "total": str(self.total)}


def depth_ladder(
    quote: AssetQuote,
    levels: int = DEFAULT_LEVELS,
    rng: Optional[random.Random] = None,
    spread_fraction: Decimal = Decimal("0.005"),
) -> dict[str, Any]:
    """Return ``{"bids": [...], "asks": [...], "max_size": int}``.

    Bids are ordered best (highest) first and asks best (lowest) first.
    """
    rng = rng if rng is not None else random.Random()
    half_spread = quote.price * spread_fraction / _TWO
    ask_base = quote.price + half_spread
    bid_base = quote.price - half_spread

    asks: list[DepthLevel] = []
    bids: list[DepthLevel] = []
    for k in range(1, levels + 1):
        factor = _ONE + _LEVEL_STEP * k
        asks.append(
            DepthLevel(
                (ask_base * factor).quantize(_PRICE_QUANT, rounding=ROUND_HALF_EVEN),
                rng.randint(MIN_LEVEL_SIZE, MAX_LEVEL_SIZE),
            )
        )
        bids.append(
            DepthLevel(
                (bid_base / factor).quantize(_PRICE_QUANT, rounding=ROUND_HALF_EVEN),
                rng.randint(MIN_LEVEL_SIZE, MAX_LEVEL_SIZE),
            )
        )

    sizes = [lvl.size for lvl in asks + bids]
    return {
        "asset_id": quote.asset_id,
        "spread": str(quote.spread),
        "bids": [lvl.to_dict() for lvl in bids],
        "asks": [lvl.to_dict() for lvl in asks],
        "max_size": max(sizes) if sizes else 0,
    }
