"""Unit tests for the Xodos FastAPI service.

Requires fastapi and httpx.  The whole module is skipped gracefully if
fastapi is not installed.
"""

from __future__ import annotations

import random

import pytest

pytest.importorskip("fastapi", reason="fastapi not installed; skip api tests")


@pytest.fixture
def client(engine):
    from fastapi.testclient import TestClient

    from services.api.main import create_app

    app = create_app(engine=engine, start_ticker=False, rng=random.Random(1), state_path=None)
    return TestClient(app)


def _open(client, account_id="acc-1", cash="1000", kyc=1):
    resp = client.post(
        "/api/accounts",
        json={"account_id": account_id, "cash_balance": cash, "kyc_level": kyc},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestMarketEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["ticker_running"] is False

    def test_list_quotes(self, client):
        data = client.get("/api/quotes").json()
        assert [q["asset_id"] for q in data["quotes"]] == ["bond", "tok1", "tok10"]

    def test_get_quote_404(self, client):
        resp = client.get("/api/quotes/ghost")
        assert resp.status_code == 404
        assert resp.json()["code"] == "quote_not_found"

    def test_tick_moves_version(self, client):
        before = client.get("/api/quotes").json()["version"]
        resp = client.post("/api/market/tick", params={"count": 3})
        assert resp.status_code == 200
        assert resp.json()["version"] == before + 3

    def test_depth_and_history(self, client):
        depth = client.get("/api/quotes/tok1/depth", params={"levels": 4}).json()
        assert len(depth["bids"]) == 4
        history = client.get("/api/quotes/tok1/history", params={"days": 7}).json()
        assert len(history["history"]) == 7
        assert history["history"][-1]["price"] == "20.00000000"

    def test_bad_depth_levels(self, client):
        assert client.get("/api/quotes/tok1/depth", params={"levels": 0}).status_code == 400

    def test_summary(self, client):
        data = client.get("/api/market/summary").json()
        assert data["asset_count"] == 3

    def test_summary_rejects_negative_top(self, client):
        assert client.get("/api/market/summary", params={"top": -1}).status_code == 400

    def test_list_asset(self, client):
        resp = client.post("/api/assets", json={"asset_id": "cowry", "ticker": "COWRY", "price": "5.2"})
        assert resp.status_code == 201
        assert client.get("/api/quotes/cowry").json()["price"] == "5.2"
        dup = client.post("/api/assets", json={"asset_id": "cowry", "ticker": "COWRY", "price": "5.2"})
        assert dup.status_code == 422
        assert dup.json()["code"] == "validation_error"

    def test_pause_resume(self, client):
        assert client.post("/api/market/pause").json() == {"paused": True}
        assert client.get("/health").json()["ticker_paused"] is True
        assert client.post("/api/market/resume").json() == {"paused": False}


class TestAccountEndpoints:
    def test_open_and_get(self, client):
        summary = _open(client)
        assert summary["cash_balance"] == "1000"
        assert client.get("/api/accounts/acc-1").json()["net_worth"] == "1000"

    def test_unknown_account_404(self, client):
        resp = client.get("/api/accounts/ghost")
        assert resp.status_code == 404
        assert resp.json()["code"] == "account_not_found"

    def test_duplicate_account_422(self, client):
        _open(client)
        resp = client.post("/api/accounts", json={"account_id": "acc-1"})
        assert resp.status_code == 422

    def test_deposit_withdraw_and_history(self, client):
        _open(client, cash="100")
        assert client.post("/api/accounts/acc-1/deposits", json={"amount": "50"}).status_code == 201
        resp = client.post("/api/accounts/acc-1/withdrawals", json={"amount": "30", "method": "Bank"})
        assert resp.json()["status"] == "Pending"
        txs = client.get("/api/accounts/acc-1/transactions").json()["transactions"]
        assert [t["type"] for t in txs] == ["WITHDRAWAL", "DEPOSIT"]

    def test_overdrawn_withdrawal_422(self, client):
        _open(client, cash="100")
        resp = client.post("/api/accounts/acc-1/withdrawals", json={"amount": "500"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "insufficient_funds"
        assert body["detail"]["cash_balance"] == "100"

    def test_kyc_upgrade(self, client):
        _open(client)
        assert client.post("/api/accounts/acc-1/kyc/upgrade").json()["kyc_level"] == 2

    def test_watchlist_routes(self, client):
        _open(client)
        assert client.put("/api/accounts/acc-1/watchlist/tok1").json()["watchlist"] == ["tok1"]
        quotes = client.get("/api/accounts/acc-1/watchlist").json()["quotes"]
        assert [q["asset_id"] for q in quotes] == ["tok1"]
        assert client.delete("/api/accounts/acc-1/watchlist/tok1").json()["watchlist"] == []

    def test_watch_unknown_asset_404(self, client):
        _open(client)
        resp = client.put("/api/accounts/acc-1/watchlist/ghost")
        assert resp.status_code == 404
        assert resp.json()["code"] == "quote_not_found"


class TestTradeEndpoints:
    def _trade(self, client, **overrides):
        body = {
            "account_id": "acc-1",
            "asset_id": "tok10",
            "direction": "LONG",
            "quantity": "600",
            "leverage": 10,
        }
        body.update(overrides)
        return client.post("/api/trades", json=body)

    def test_tier_rejection_is_422(self, client):
        _open(client, cash="10000", kyc=1)
        resp = self._trade(client)
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "limit_exceeded"
        assert set(body) == {"code", "message", "detail"}

    def test_accepted_trade(self, client):
        _open(client, cash="10000", kyc=2)
        resp = self._trade(client)
        assert resp.status_code == 201
        trade = resp.json()
        assert trade["margin"] == "600"
        trades = client.get("/api/accounts/acc-1/trades").json()["trades"]
        assert trades[0]["trade_id"] == trade["trade_id"]

    def test_unknown_asset_404(self, client):
        _open(client)
        resp = self._trade(client, asset_id="ghost", quantity="1")
        assert resp.status_code == 404

    def test_preview(self, client):
        _open(client, cash="100")
        resp = client.post(
            "/api/trades/preview",
            json={"account_id": "acc-1", "asset_id": "tok10", "direction": "LONG", "quantity": "50"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["accepted"] is False
        assert data["rejection"]["code"] == "insufficient_margin"

    def test_net_worth_endpoint(self, client):
        _open(client, cash="1000")
        self._trade(client, asset_id="tok1", quantity="10", leverage=2)
        data = client.get("/api/accounts/acc-1/net-worth").json()
        assert data["net_worth"] == "1000"
        assert data["allocation"]["Equity"] == "200"
