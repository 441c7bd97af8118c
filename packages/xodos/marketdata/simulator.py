"""Random-walk price simulator for listed assets.

Each tick draws, per asset:

  1. A direction: up with probability ``up_probability`` (0.52 by default,
     a slight bullish bias), otherwise down.
  2. A magnitude uniform in ``[0, volatility)`` where volatility comes from the
     asset's risk tier (High 1.5%, Medium 0.8%, Low 0.2%).

and then::

    new_price  = max(price * (1 + drift), price_floor)
    change_24h = change_24h + drift * 100      # session-cumulative
    day_high   = max(day_high, new_price)
    day_low    = min(day_low, new_price)
    bid, ask   = new_price -/+ new_price * spread_fraction / 2

The random source and clock are injected so a seeded ``random.Random`` gives
byte-identical tick sequences in tests.  :class:`PriceTicker` drives
:meth:`PriceSimulator.tick` from a background thread.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import replace
from datetime import date, timedelta
from decimal import ROUND_HALF_EVEN, Decimal, localcontext
from typing import Any, Callable, Optional

from ..config_loader import EngineConfig
from .quotes import AssetQuote, QuoteStore, RiskTier, spread_around

logger = logging.getLogger(__name__)

_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_PRICE_PLACES = 8
_PRICE_QUANT = Decimal("0.00000001")

#: Daily volatility used when back-filling chart history.
HISTORY_VOLATILITY = Decimal("0.02")


def _q(value: Decimal) -> Decimal:
    # 8 dp must fit in the context precision however large the integer part is
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 1 + _PRICE_PLACES)
        return value.quantize(_PRICE_QUANT, rounding=ROUND_HALF_EVEN)


def _uniform(rng: random.Random) -> Decimal:
    # repr() keeps every digit the float carries, so seeded runs reproduce exactly
    return Decimal(repr(rng.random()))


def draw_drift(rng: random.Random, volatility: Decimal, up_probability: float) -> Decimal:
    """Return a signed drift fraction in ``(-volatility, volatility)``."""
    sentiment = 1 if rng.random() < up_probability else -1
    return _uniform(rng) * volatility * sentiment


def simulate_quote(
    quote: AssetQuote,
    rng: random.Random,
    now: float,
    config: EngineConfig,
) -> AssetQuote:
    """Return the next quote for *quote*.  Total over any valid quote."""
    volatility = config.volatility.get(quote.risk_tier, config.volatility[RiskTier.LOW])
    drift = draw_drift(rng, volatility, config.up_probability)

    new_price = _q(quote.price * (_ONE + drift))
    if new_price < config.price_floor:
        new_price = config.price_floor

    bid, ask = spread_around(new_price, config.spread_fraction)
    return replace(
        quote,
        price=new_price,
        bid=_q(bid),
        ask=_q(ask),
        day_high=max(quote.day_high, new_price),
        day_low=min(quote.day_low, new_price),
        change_24h=_q(quote.change_24h + drift * _HUNDRED),
        last_update=max(now, quote.last_update),
    )


class PriceSimulator:
    """Advances every quote in a :class:`QuoteStore` together, once per tick.

    Thread-safety: a single simulator must be the only writer of its store's
    prices.  Readers of the store are unaffected by a tick in progress.
    """

    def __init__(
        self,
        store: QuoteStore,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._ticks = 0

    @property
    def store(self) -> QuoteStore:
        return self._store

    @property
    def ticks(self) -> int:
        return self._ticks

    def tick(self) -> int:
        """Advance all listed assets by one step and publish them atomically.

        Returns:
            The store version published by this tick.
        """
        snapshot = self._store.snapshot()
        now = self._clock()
        advanced = [
            simulate_quote(snapshot[asset_id], self._rng, now, self._config)
            for asset_id in snapshot
        ]
        version = self._store.replace_all(advanced)
        self._ticks += 1
        logger.debug(
            "Tick %d published version=%d assets=%d", self._ticks, version, len(advanced)
        )
        return version

    def run_ticks(self, count: int) -> int:
        """Run *count* ticks synchronously; returns the final store version."""
        version = self._store.version
        for _ in range(count):
            version = self.tick()
        return version


class PriceTicker:
    """Background thread calling :meth:`PriceSimulator.tick` on an interval.

    ``pause()`` keeps the thread alive but skips ticks (the market-closed
    switch); ``stop()`` ends the thread.
    """

    def __init__(self, simulator: PriceSimulator, interval_seconds: float = 2.5) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive; got {interval_seconds}")
        self._simulator = simulator
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._paused = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="xodos-price-ticker", daemon=True
        )
        self._thread.start()
        logger.info("Price ticker started (interval=%ss)", self._interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None
        logger.info("Price ticker stopped after %d ticks", self._simulator.ticks)

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            if self._paused.is_set():
                continue
            try:
                self._simulator.tick()
            except Exception:
                logger.exception("Price tick failed; ticker keeps running")


def generate_price_history(
    current_price: Decimal,
    days: int = 365,
    rng: Optional[random.Random] = None,
    today: Optional[date] = None,
    price_floor: Decimal = Decimal("0.01"),
) -> list[dict[str, Any]]:
    """Back-fill a daily chart series that ends at *current_price*.

    Walks backwards from today with a symmetric ±2% step per day, floored at
    *price_floor*.  Rows are returned oldest first; the last row is today.
    """
    if days <= 0:
        return []
    rng = rng if rng is not None else random.Random()
    today = today or date.today()

    rows: list[dict[str, Any]] = []
    price = current_price
    for i in range(days):
        rows.append({"date": (today - timedelta(days=i)).isoformat(), "price": _q(price)})
        step = (_uniform(rng) - Decimal("0.5")) * 2 * price * HISTORY_VOLATILITY
        price = price - step
        if price < price_floor:
            price = price_floor
    rows.reverse()
    return rows
