"""Tests for JSON state snapshots."""

from __future__ import annotations

import json
from decimal import Decimal

import pytest

from conftest import make_quote
from packages.xodos.ledger.account import Account
from packages.xodos.ledger.positions import Position
from packages.xodos.ledger.store import (
    SCHEMA_VERSION,
    StateLoadError,
    load_state,
    save_state,
    state_from_dict,
    state_to_dict,
)

_D = Decimal


def _account() -> Account:
    acc = Account("acc-1", name="Ada", cash_balance=_D("812.34"), locked_cash=_D("400"), kyc_level=2)
    acc.positions["bond"] = Position("bond", _D("-3"), _D("100"), 3, short_collateral=_D("400"))
    return acc


class TestStateRoundTrip:
    def test_save_then_load(self, tmp_path):
        quotes = [make_quote("bond", "100"), make_quote("tok1", "20.123456")]
        path = save_state(tmp_path / "nested" / "state.json", [_account()], quotes)
        state = load_state(path)
        assert state.accounts == [_account()]
        assert state.quotes == quotes

    def test_decimals_written_as_strings(self, tmp_path):
        path = save_state(tmp_path / "state.json", [_account()], [])
        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["schema_version"] == SCHEMA_VERSION
        assert raw["accounts"][0]["cash_balance"] == "812.34"
        assert raw["accounts"][0]["positions"][0]["quantity"] == "-3"

    def test_no_temp_file_left_behind(self, tmp_path):
        save_state(tmp_path / "state.json", [], [])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]

    def test_bom_prefixed_file_loads(self, tmp_path):
        path = tmp_path / "state.json"
        payload = json.dumps(state_to_dict([_account()], []))
        path.write_bytes(b"\xef\xbb\xbf" + payload.encode("utf-8"))
        assert load_state(path).accounts == [_account()]


class TestStateLoadErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(StateLoadError, match="not found"):
            load_state(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StateLoadError):
            load_state(path)

    def test_unsupported_schema_version(self):
        with pytest.raises(StateLoadError, match="schema_version"):
            state_from_dict({"schema_version": 99})

    def test_malformed_rows(self):
        with pytest.raises(StateLoadError):
            state_from_dict({"schema_version": SCHEMA_VERSION, "accounts": [{"name": "no id"}]})

    def test_bad_decimal(self):
        row = _account().to_dict()
        row["cash_balance"] = "lots"
        with pytest.raises(StateLoadError):
            state_from_dict({"schema_version": SCHEMA_VERSION, "accounts": [row]})

    def test_state_load_error_is_value_error(self):
        assert issubclass(StateLoadError, ValueError)
