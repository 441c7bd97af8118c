"""Tests for TradeAuthorizer: notional, KYC tier ceilings and margin checks."""

from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import make_quote
from packages.xodos.config_loader import EngineConfig
from packages.xodos.errors import ValidationError
from packages.xodos.ledger.account import Account
from packages.xodos.ledger.authorizer import TradeAuthorizer
from packages.xodos.ledger.rules import OrderType, parse_leverage

_D = Decimal


def _account(cash: str = "100000", kyc: int = 1) -> Account:
    return Account(account_id="acc", cash_balance=_D(cash), kyc_level=kyc)


class TestTierLimits:
    def test_kyc1_rejects_6000_notional(self):
        verdict = TradeAuthorizer().authorize(_account(kyc=1), make_quote("tok10", "10"), 600, 10)
        assert not verdict.accepted
        assert verdict.rejection.code == "limit_exceeded"
        assert "Tier 1" in verdict.rejection.message
        assert verdict.notional == _D("6000")

    def test_kyc2_accepts_same_trade(self):
        verdict = TradeAuthorizer().authorize(_account(kyc=2), make_quote("tok10", "10"), 600, 10)
        assert verdict.accepted
        assert verdict.margin_required == _D("600")

    def test_kyc1_limit_is_inclusive(self):
        verdict = TradeAuthorizer().authorize(_account(kyc=1), make_quote("tok10", "10"), 500, 1)
        assert verdict.accepted

    def test_kyc3_unlimited(self):
        verdict = TradeAuthorizer().authorize(
            _account(cash="10000000", kyc=3), make_quote("tok10", "10"), 500000, 10
        )
        assert verdict.accepted

    def test_configured_limits_respected(self):
        config = EngineConfig(tier_limits={1: _D("100"), 2: _D("200"), 3: None})
        verdict = TradeAuthorizer(config).authorize(_account(kyc=2), make_quote("t", "10"), 21, 1)
        assert verdict.rejection.code == "limit_exceeded"

    def test_limit_checked_before_margin(self):
        # both the tier and margin checks would fail; the tier wins
        verdict = TradeAuthorizer().authorize(_account(cash="1", kyc=1), make_quote("t", "10"), 600, 1)
        assert verdict.rejection.code == "limit_exceeded"


class TestMargin:
    def test_insufficient_margin_unlevered(self):
        verdict = TradeAuthorizer().authorize(_account(cash="100"), make_quote("t", "10"), 50, 1)
        assert not verdict.accepted
        assert verdict.rejection.code == "insufficient_margin"
        assert verdict.rejection.detail["shortfall"] == _D("400")

    def test_leverage_10_accepts(self):
        verdict = TradeAuthorizer().authorize(_account(cash="100"), make_quote("t", "10"), 50, 10)
        assert verdict.accepted
        assert verdict.margin_required == _D("50")

    def test_margin_exactly_equal_to_cash_accepted(self):
        verdict = TradeAuthorizer().authorize(_account(cash="500"), make_quote("t", "10"), 50, 1)
        assert verdict.accepted

    def test_margin_is_notional_over_leverage(self):
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "20"), 10, 4)
        assert verdict.notional == _D("200")
        assert verdict.margin_required == verdict.notional / 4


class TestValidation:
    @pytest.mark.parametrize("qty", [0, -5, "abc", None])
    def test_bad_quantity_rejected(self, qty):
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "10"), qty, 1)
        assert verdict.rejection.code == "validation_error"

    @pytest.mark.parametrize("lev", [0, -1, 2.5, "x", True])
    def test_bad_leverage_rejected(self, lev):
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "10"), 1, lev)
        assert verdict.rejection.code == "validation_error"

    @pytest.mark.parametrize("lev", [2, 2.0, "2", "2.0", " 2 ", _D("2.00")])
    def test_whole_leverage_spellings_accepted(self, lev):
        assert parse_leverage(lev) == 2
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "10"), 10, lev)
        assert verdict.accepted
        assert verdict.leverage == 2
        assert verdict.margin_required == _D("50")

    @pytest.mark.parametrize("lev", ["2.5", "0.0", "-3", "nan", ""])
    def test_parse_leverage_rejects(self, lev):
        with pytest.raises(ValidationError):
            parse_leverage(lev)

    def test_leverage_above_cap_rejected(self):
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "10"), 1, 11)
        assert verdict.rejection.code == "validation_error"
        assert verdict.rejection.detail["max_leverage"] == 10

    def test_limit_order_uses_limit_price(self):
        verdict = TradeAuthorizer().authorize(
            _account(), make_quote("t", "10"), 10, 1, OrderType.LIMIT, "9.5"
        )
        assert verdict.accepted
        assert verdict.execution_price == _D("9.5")
        assert verdict.notional == _D("95.0")

    def test_limit_order_without_price_rejected(self):
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "10"), 10, 1, "LIMIT")
        assert verdict.rejection.code == "validation_error"

    def test_unknown_order_type_rejected(self):
        verdict = TradeAuthorizer().authorize(_account(), make_quote("t", "10"), 10, 1, "STOP")
        assert verdict.rejection.code == "validation_error"

    def test_authorizer_has_no_side_effects(self):
        account = _account(cash="100")
        TradeAuthorizer().authorize(account, make_quote("t", "10"), 50, 10)
        assert account.cash_balance == _D("100")
        assert account.positions == {}
        assert account.trade_history == []
