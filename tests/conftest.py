from __future__ import annotations

import os
import random
from dataclasses import replace
from decimal import Decimal

import pytest

from packages.xodos.config_loader import EngineConfig
from packages.xodos.ledger.account import Account
from packages.xodos.ledger.engine import TradingEngine
from packages.xodos.marketdata.quotes import (
    AssetCategory,
    AssetQuote,
    QuoteStore,
    RiskTier,
    new_listing,
    spread_around,
)


_ISOLATED_ENV_VARS = (
    "XODOS_CONFIG_PATH",
    "XODOS_STATE_PATH",
    "XODOS_TICK_INTERVAL_SECONDS",
    "XODOS_SIM_SEED",
    "XODOS_AUTOSTART_TICKER",
)

_PREVIOUS_ENV: dict[str, str | None] = {}


def pytest_configure(config: pytest.Config) -> None:
    """Run every test against default engine settings, whatever the shell exports."""
    global _PREVIOUS_ENV
    _PREVIOUS_ENV = {key: os.environ.get(key) for key in _ISOLATED_ENV_VARS}
    for key in _ISOLATED_ENV_VARS:
        os.environ.pop(key, None)
    # The API module builds its module-level app at import time.
    os.environ["XODOS_AUTOSTART_TICKER"] = "0"


def pytest_unconfigure(config: pytest.Config) -> None:
    for key, value in _PREVIOUS_ENV.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------

FIXED_NOW = 1_700_000_000.0
FIXED_ISO = "2026-01-01T00:00:00+00:00"


def make_quote(
    asset_id: str = "tok1",
    price: str = "20",
    risk_tier: str = RiskTier.MEDIUM,
    category: str = AssetCategory.EQUITY,
) -> AssetQuote:
    return new_listing(
        asset_id=asset_id,
        ticker=asset_id.upper(),
        price=Decimal(price),
        risk_tier=risk_tier,
        category=category,
        now=FIXED_NOW,
    )


def repriced(quote: AssetQuote, price: Decimal, spread_fraction: Decimal = Decimal("0.005")) -> AssetQuote:
    """Copy of *quote* re-centred on *price*, as if the market had moved there."""
    bid, ask = spread_around(price, spread_fraction)
    return replace(
        quote,
        price=price,
        bid=bid,
        ask=ask,
        day_high=max(quote.day_high, price),
        day_low=min(quote.day_low, price),
    )


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def quotes() -> QuoteStore:
    """Three listings with round prices: tok1 @ 20, tok10 @ 10, bond @ 100."""
    return QuoteStore([
        make_quote("tok1", "20"),
        make_quote("tok10", "10", risk_tier=RiskTier.HIGH),
        make_quote("bond", "100", risk_tier=RiskTier.LOW, category=AssetCategory.FIXED_INCOME),
    ])


@pytest.fixture
def engine(quotes: QuoteStore, config: EngineConfig) -> TradingEngine:
    return TradingEngine(quotes=quotes, config=config, clock=lambda: FIXED_ISO)


@pytest.fixture
def account() -> Account:
    return Account(account_id="acc-1", name="Ada", cash_balance=Decimal("1000"))


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)
