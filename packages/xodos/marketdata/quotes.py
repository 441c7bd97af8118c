"""Asset quotes and the single-writer / many-reader quote store.

The store publishes a whole tick at a time: :meth:`QuoteStore.replace_all`
builds a fresh mapping and swaps it in under a lock, so a reader holding a
:class:`QuoteSnapshot` always sees every quote from the same tick.  Quotes
themselves are frozen dataclasses; nothing mutates them in place.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..errors import QuoteNotFound, ValidationError

logger = logging.getLogger(__name__)

_TWO = Decimal("2")
_ZERO = Decimal("0")


class RiskTier:
    """Risk tiers; each maps to a per-tick volatility in :class:`EngineConfig`."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    ALL = (LOW, MEDIUM, HIGH)


class AssetCategory:
    EQUITY = "Equity"
    FIXED_INCOME = "Fixed Income"
    REAL_ESTATE = "Real Estate"
    PRIVATE_MARKET = "Private Market"

    ALL = (EQUITY, FIXED_INCOME, REAL_ESTATE, PRIVATE_MARKET)


@dataclass(frozen=True)
class AssetQuote:
    """Current tradable price plus bid/ask and session extrema for one asset.

    Invariants: ``price > 0``, ``bid <= price <= ask`` and
    ``day_low <= price <= day_high``.  ``change_24h`` is the running sum of
    per-tick percentage drift since the session began, not a trailing window.
    ``volume_24h`` is the notional traded through the engine this session; the
    simulator never changes it.
    """

    asset_id: str
    ticker: str
    name: str
    category: str
    risk_tier: str
    price: Decimal
    bid: Decimal
    ask: Decimal
    day_high: Decimal
    day_low: Decimal
    change_24h: Decimal
    last_update: float
    volume_24h: Decimal = _ZERO

    @property
    def spread(self) -> Decimal:
        return self.ask - self.bid

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe dict (Decimals serialised as strings)."""
        return {
            "asset_id": self.asset_id,
            "ticker": self.ticker,
            "name": self.name,
            "category": self.category,
            "risk_tier": self.risk_tier,
            "price": str(self.price),
            "bid": str(self.bid),
            "ask": str(self.ask),
            "day_high": str(self.day_high),
            "day_low": str(self.day_low),
            "change_24h": str(self.change_24h),
            "last_update": self.last_update,
            "volume_24h": str(self.volume_24h),
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "AssetQuote":
        return cls(
            asset_id=row["asset_id"],
            ticker=row["ticker"],
            name=row.get("name", row["ticker"]),
            category=row.get("category", AssetCategory.EQUITY),
            risk_tier=row["risk_tier"],
            price=Decimal(row["price"]),
            bid=Decimal(row["bid"]),
            ask=Decimal(row["ask"]),
            day_high=Decimal(row["day_high"]),
            day_low=Decimal(row["day_low"]),
            change_24h=Decimal(row.get("change_24h", "0")),
            last_update=float(row.get("last_update", 0.0)),
            volume_24h=Decimal(row.get("volume_24h", "0")),
        )


def spread_around(price: Decimal, spread_fraction: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(bid, ask)`` straddling *price* by half the spread each side."""
    half = price * spread_fraction / _TWO
    return price - half, price + half


def new_listing(
    asset_id: str,
    ticker: str,
    price: Decimal,
    risk_tier: str = RiskTier.MEDIUM,
    name: Optional[str] = None,
    category: str = AssetCategory.EQUITY,
    spread_fraction: Decimal = Decimal("0.005"),
    now: Optional[float] = None,
) -> AssetQuote:
    """Build the first quote for a newly listed asset.

    Raises:
        ValidationError: non-positive price, unknown risk tier or category.
    """
    if price <= _ZERO:
        raise ValidationError(f"listing price must be positive, got {price}", price=price)
    if risk_tier not in RiskTier.ALL:
        raise ValidationError(f"unknown risk tier {risk_tier!r}", risk_tier=risk_tier)
    if category not in AssetCategory.ALL:
        raise ValidationError(f"unknown asset category {category!r}", category=category)
    bid, ask = spread_around(price, spread_fraction)
    return AssetQuote(
        asset_id=asset_id,
        ticker=ticker.upper(),
        name=name or ticker.upper(),
        category=category,
        risk_tier=risk_tier,
        price=price,
        bid=bid,
        ask=ask,
        day_high=price,
        day_low=price,
        change_24h=_ZERO,
        last_update=time.time() if now is None else now,
    )


class QuoteSnapshot(Mapping[str, AssetQuote]):
    """Read-only view of one published version of the quote map."""

    def __init__(self, quotes: Mapping[str, AssetQuote], version: int) -> None:
        self._quotes = quotes
        self.version = version

    def __getitem__(self, asset_id: str) -> AssetQuote:
        return self._quotes[asset_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._quotes)

    def __len__(self) -> int:
        return len(self._quotes)

    def get_quote(self, asset_id: str) -> AssetQuote:
        """Like ``snapshot[asset_id]`` but raises :class:`QuoteNotFound`."""
        try:
            return self._quotes[asset_id]
        except KeyError:
            raise QuoteNotFound(f"unknown asset: {asset_id!r}", asset_id=asset_id) from None


class QuoteStore:
    """Authoritative asset id -> :class:`AssetQuote` map.

    Thread-safety: one writer per tick (the simulator), any number of readers.
    Writers copy the current mapping, modify the copy and publish it; readers
    grab the published reference without blocking on a tick in progress.
    """

    def __init__(self, quotes: Optional[Iterable[AssetQuote]] = None) -> None:
        self._lock = threading.Lock()
        initial = {q.asset_id: q for q in (quotes or ())}
        self._quotes: Mapping[str, AssetQuote] = MappingProxyType(initial)
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> QuoteSnapshot:
        with self._lock:
            return QuoteSnapshot(self._quotes, self._version)

    def get(self, asset_id: str) -> AssetQuote:
        """Return the current quote for *asset_id*.

        Raises:
            QuoteNotFound: the asset was never listed.
        """
        quotes = self._quotes
        try:
            return quotes[asset_id]
        except KeyError:
            raise QuoteNotFound(f"unknown asset: {asset_id!r}", asset_id=asset_id) from None

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._quotes

    def __len__(self) -> int:
        return len(self._quotes)

    def all(self) -> list[AssetQuote]:
        return list(self._quotes.values())

    def upsert(self, quote: AssetQuote) -> None:
        """Replace (or insert) one quote atomically."""
        with self._lock:
            updated = dict(self._quotes)
            updated[quote.asset_id] = quote
            self._publish_locked(updated)

    def replace_all(self, quotes: Iterable[AssetQuote]) -> int:
        """Publish a full tick.  Assets missing from *quotes* are kept as-is.

        ``volume_24h`` of an already-listed asset is taken from the live map,
        so volume recorded while the tick was being computed is not lost.

        Returns:
            The new store version.
        """
        with self._lock:
            updated = dict(self._quotes)
            for quote in quotes:
                live = updated.get(quote.asset_id)
                if live is not None and live.volume_24h != quote.volume_24h:
                    quote = replace(quote, volume_24h=live.volume_24h)
                updated[quote.asset_id] = quote
            self._publish_locked(updated)
            return self._version

    def add_volume(self, asset_id: str, notional: Decimal) -> AssetQuote:
        """Add traded *notional* to the asset's ``volume_24h`` and publish it.

        Raises:
            QuoteNotFound: the asset was never listed.
        """
        with self._lock:
            current = self._quotes.get(asset_id)
            if current is None:
                raise QuoteNotFound(f"unknown asset: {asset_id!r}", asset_id=asset_id)
            quote = replace(current, volume_24h=current.volume_24h + notional)
            updated = dict(self._quotes)
            updated[asset_id] = quote
            self._publish_locked(updated)
        return quote

    def list_asset(self, quote: AssetQuote) -> AssetQuote:
        """Insert a brand-new listing.

        Raises:
            ValidationError: the asset id is already listed.
        """
        with self._lock:
            if quote.asset_id in self._quotes:
                raise ValidationError(
                    f"asset already listed: {quote.asset_id!r}", asset_id=quote.asset_id
                )
            updated = dict(self._quotes)
            updated[quote.asset_id] = quote
            self._publish_locked(updated)
        logger.info(
            "Asset listed: id=%s ticker=%s price=%s tier=%s",
            quote.asset_id, quote.ticker, quote.price, quote.risk_tier,
        )
        return quote

    def _publish_locked(self, updated: dict[str, AssetQuote]) -> None:
        self._quotes = MappingProxyType(updated)
        self._version += 1

