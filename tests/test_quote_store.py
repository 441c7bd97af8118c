"""Tests for AssetQuote, new listings and the copy-on-write QuoteStore."""

from __future__ import annotations

import random
import threading
from decimal import Decimal

import pytest

from conftest import FIXED_NOW, make_quote, repriced
from packages.xodos.errors import QuoteNotFound, ValidationError
from packages.xodos.marketdata.quotes import (
    AssetCategory,
    AssetQuote,
    QuoteStore,
    RiskTier,
    new_listing,
)
from packages.xodos.marketdata.simulator import PriceSimulator

_D = Decimal


class TestNewListing:
    def test_initial_quote_shape(self):
        q = new_listing("cowry", "cowry", _D("5.20"), risk_tier=RiskTier.HIGH, now=FIXED_NOW)
        assert q.ticker == "COWRY"
        assert q.name == "COWRY"
        assert q.price == q.day_high == q.day_low == _D("5.20")
        assert q.change_24h == 0
        assert q.bid == _D("5.187")
        assert q.ask == _D("5.213")
        assert q.last_update == FIXED_NOW

    @pytest.mark.parametrize("price", ["0", "-1"])
    def test_non_positive_price_rejected(self, price):
        with pytest.raises(ValidationError):
            new_listing("x", "X", _D(price))

    def test_unknown_risk_tier_rejected(self):
        with pytest.raises(ValidationError):
            new_listing("x", "X", _D("1"), risk_tier="Extreme")

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            new_listing("x", "X", _D("1"), category="Crypto")


class TestAssetQuoteSerialisation:
    def test_round_trip_exact(self):
        q = make_quote("bond", "98.40", category=AssetCategory.FIXED_INCOME)
        restored = AssetQuote.from_dict(q.to_dict())
        assert restored == q

    def test_decimals_serialised_as_strings(self):
        d = make_quote("tok1", "20").to_dict()
        assert d["price"] == "20"
        assert isinstance(d["bid"], str)

    def test_spread_property(self):
        q = make_quote("tok1", "100")
        assert q.spread == _D("0.5")


class TestQuoteStore:
    def test_get_unknown_raises_quote_not_found(self, quotes):
        with pytest.raises(QuoteNotFound) as exc_info:
            quotes.get("nope")
        assert exc_info.value.code == "quote_not_found"
        assert isinstance(exc_info.value, LookupError)

    def test_list_asset_adds_and_bumps_version(self, quotes):
        before = quotes.version
        quotes.list_asset(make_quote("new", "3"))
        assert "new" in quotes
        assert quotes.version == before + 1

    def test_list_duplicate_rejected(self, quotes):
        with pytest.raises(ValidationError):
            quotes.list_asset(make_quote("tok1", "5"))
        assert quotes.get("tok1").price == _D("20")

    def test_replace_all_keeps_unmentioned_assets(self, quotes):
        quotes.replace_all([repriced(quotes.get("tok1"), _D("21"))])
        assert quotes.get("tok1").price == _D("21")
        assert quotes.get("bond").price == _D("100")
        assert len(quotes) == 3

    def test_snapshot_is_stable_across_ticks(self, quotes):
        snap = quotes.snapshot()
        quotes.upsert(repriced(quotes.get("tok1"), _D("25")))
        assert snap["tok1"].price == _D("20")
        assert quotes.get("tok1").price == _D("25")
        assert quotes.snapshot().version == snap.version + 1

    def test_snapshot_get_quote_raises(self, quotes):
        with pytest.raises(QuoteNotFound):
            quotes.snapshot().get_quote("nope")

    def test_add_volume_accumulates(self, quotes):
        quotes.add_volume("tok1", _D("200"))
        quote = quotes.add_volume("tok1", _D("50.5"))
        assert quote.volume_24h == _D("250.5")
        assert quotes.get("tok1").volume_24h == _D("250.5")
        assert quotes.get("tok10").volume_24h == 0

    def test_add_volume_unknown_asset(self, quotes):
        with pytest.raises(QuoteNotFound):
            quotes.add_volume("nope", _D("1"))

    def test_volume_survives_dict_round_trip(self, quotes):
        quote = quotes.add_volume("tok1", _D("75"))
        assert AssetQuote.from_dict(quote.to_dict()) == quote

    def test_legacy_row_without_volume(self):
        row = make_quote("tok1", "20").to_dict()
        del row["volume_24h"]
        assert AssetQuote.from_dict(row).volume_24h == 0

    def test_readers_see_whole_ticks(self):
        """Every snapshot taken during ticking holds quotes from a single tick."""
        store = QuoteStore([make_quote(f"a{i}", "100") for i in range(5)])
        now = {"t": FIXED_NOW}
        sim = PriceSimulator(store, rng=random.Random(8), clock=lambda: now["t"])
        stop = threading.Event()
        torn: list[int] = []

        def _read():
            while not stop.is_set():
                snap = store.snapshot()
                # one tick stamps every quote with the same clock reading
                stamps = {q.last_update for q in snap.values()}
                if len(stamps) != 1:
                    torn.append(snap.version)

        reader = threading.Thread(target=_read)
        reader.start()
        try:
            for _ in range(200):
                now["t"] += 1
                sim.tick()
        finally:
            stop.set()
            reader.join()
        assert torn == []
