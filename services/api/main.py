"""Xodos API service: quotes, market data, accounts, trades and cash movements.

Factory function ``create_app(engine, start_ticker)`` returns a FastAPI
application wired to one :class:`TradingEngine` and its price ticker.

Error bodies
------------
Every ledger rejection is returned as ``{"code", "message", "detail"}``:
unknown assets or accounts map to HTTP 404, every other rejection (tier
limit, margin, validation, leverage/direction conflicts, overdrawn
withdrawal) maps to HTTP 422.

Usage
-----
    uvicorn services.api.main:app --port 8000
    # or via CLI:
    python -m xodos serve --port 8000
"""

from __future__ import annotations

import logging
import os
import random
from contextlib import asynccontextmanager
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from packages.xodos.config_loader import EngineConfig, load_engine_config
from packages.xodos.errors import Rejection, TradeRejected
from packages.xodos.ledger.engine import TradingEngine
from packages.xodos.ledger.rules import OrderType
from packages.xodos.ledger.store import load_state
from packages.xodos.marketdata.depth import DEFAULT_LEVELS, depth_ladder
from packages.xodos.marketdata.quotes import AssetCategory, RiskTier
from packages.xodos.marketdata.simulator import (
    PriceSimulator,
    PriceTicker,
    generate_price_history,
)
from packages.xodos.marketdata.summary import market_summary

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Configuration from environment
XODOS_CONFIG_PATH = os.getenv("XODOS_CONFIG_PATH") or None
XODOS_STATE_PATH = os.getenv("XODOS_STATE_PATH") or None
XODOS_TICK_INTERVAL_SECONDS = os.getenv("XODOS_TICK_INTERVAL_SECONDS") or None
XODOS_SIM_SEED = os.getenv("XODOS_SIM_SEED") or None
XODOS_AUTOSTART_TICKER = os.getenv("XODOS_AUTOSTART_TICKER", "1").strip().lower() in ("1", "true", "yes")

_NOT_FOUND_CODES = frozenset({"quote_not_found", "account_not_found"})


def _status_for(rejection: Rejection) -> int:
    return 404 if rejection.code in _NOT_FOUND_CODES else 422


def _rejection_response(rejection: Rejection) -> JSONResponse:
    return JSONResponse(status_code=_status_for(rejection), content=rejection.to_dict())


def _decimal_map(values: dict[str, Decimal]) -> dict[str, str]:
    return {k: str(v) for k, v in sorted(values.items())}


# Request models
class OpenAccountRequest(BaseModel):
    """Request body for POST /api/accounts."""

    account_id: str = Field(..., min_length=1, description="Unique account id")
    name: str = Field(default="", description="Display name")
    cash_balance: Decimal = Field(default=Decimal("0"), description="Opening free cash")
    kyc_level: int = Field(default=1, description="KYC tier (1, 2 or 3)")


class ListAssetRequest(BaseModel):
    """Request body for POST /api/assets."""

    asset_id: str = Field(..., min_length=1)
    ticker: str = Field(..., min_length=1)
    price: Decimal
    risk_tier: str = Field(default=RiskTier.MEDIUM, description="Low, Medium or High")
    name: Optional[str] = None
    category: str = Field(default=AssetCategory.EQUITY)


class TradeRequest(BaseModel):
    """Request body for POST /api/trades and /api/trades/preview."""

    account_id: str
    asset_id: str
    direction: str = Field(..., description="LONG or SHORT")
    quantity: Decimal
    leverage: int = Field(default=1, description="Integer leverage multiple")
    order_type: str = Field(default=OrderType.MARKET, description="MARKET or LIMIT")
    limit_price: Optional[Decimal] = None


class CashRequest(BaseModel):
    """Request body for deposit and withdrawal endpoints."""

    amount: Decimal
    method: str = Field(default="", description="Funding method label")


def build_engine_from_env() -> tuple[TradingEngine, EngineConfig]:
    """Build the service engine from ``XODOS_*`` environment variables."""
    config = load_engine_config(config_path=XODOS_CONFIG_PATH)
    if XODOS_TICK_INTERVAL_SECONDS is not None:
        config = replace(config, tick_interval_seconds=float(XODOS_TICK_INTERVAL_SECONDS))
    if XODOS_STATE_PATH and Path(XODOS_STATE_PATH).exists():
        engine = TradingEngine.from_state(load_state(XODOS_STATE_PATH), config)
        logger.info("Loaded state from %s", XODOS_STATE_PATH)
    else:
        engine = TradingEngine.with_seed_assets(config)
    return engine, config


def create_app(
    engine: Optional[TradingEngine] = None,
    start_ticker: bool = XODOS_AUTOSTART_TICKER,
    rng: Optional[random.Random] = None,
    state_path: Optional[str] = XODOS_STATE_PATH,
) -> FastAPI:
    """Create and return the Xodos FastAPI application.

    Parameters
    ----------
    engine:
        Engine to serve.  Defaults to one built from the environment.
    start_ticker:
        Start the background price ticker when the app starts up.  Tests
        pass ``False`` and drive ticks through ``POST /api/market/tick``.
    rng:
        Random source for the simulator, depth ladders and history.  Defaults
        to ``random.Random(XODOS_SIM_SEED)``.
    state_path:
        When set, the engine state is written here on shutdown.
    """
    if engine is None:
        engine, _ = build_engine_from_env()
    _engine = engine
    _rng = rng if rng is not None else random.Random(
        int(XODOS_SIM_SEED) if XODOS_SIM_SEED is not None else None
    )
    _simulator = PriceSimulator(_engine.quotes, config=_engine.config, rng=_rng)
    _ticker = PriceTicker(_simulator, interval_seconds=_engine.config.tick_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_ticker:
            _ticker.start()
        try:
            yield
        finally:
            if _ticker.running:
                _ticker.stop()
            if state_path:
                _engine.save(state_path)
                logger.info("State saved to %s", state_path)

    app = FastAPI(
        title="Xodos API",
        description="Leveraged position & ledger engine with a simulated market feed",
        version="0.3.0",
        lifespan=lifespan,
    )
    app.state.engine = _engine
    app.state.simulator = _simulator
    app.state.ticker = _ticker

    @app.exception_handler(TradeRejected)
    async def _on_rejection(request: Request, exc: TradeRejected) -> JSONResponse:
        return _rejection_response(exc.to_rejection())

    # ------------------------------------------------------------------
    # Health & market
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "xodos-api",
            "ticker_running": _ticker.running,
            "ticker_paused": _ticker.paused,
            "quote_version": _engine.quotes.version,
        }

    @app.get("/api/quotes")
    def list_quotes():
        snapshot = _engine.quotes.snapshot()
        return {
            "version": snapshot.version,
            "quotes": [snapshot[a].to_dict() for a in sorted(snapshot)],
        }

    @app.get("/api/quotes/{asset_id}")
    def get_quote(asset_id: str):
        return _engine.get_quote(asset_id).to_dict()

    @app.get("/api/quotes/{asset_id}/depth")
    def get_depth(asset_id: str, levels: int = DEFAULT_LEVELS):
        if levels < 1 or levels > 50:
            raise HTTPException(status_code=400, detail="levels must be between 1 and 50")
        quote = _engine.get_quote(asset_id)
        return depth_ladder(
            quote, levels=levels, rng=_rng, spread_fraction=_engine.config.spread_fraction
        )

    @app.get("/api/quotes/{asset_id}/history")
    def get_history(asset_id: str, days: int = 365):
        if days < 1 or days > 3650:
            raise HTTPException(status_code=400, detail="days must be between 1 and 3650")
        quote = _engine.get_quote(asset_id)
        rows = generate_price_history(
            quote.price, days=days, rng=_rng, price_floor=_engine.config.price_floor
        )
        return {
            "asset_id": asset_id,
            "history": [{"date": r["date"], "price": str(r["price"])} for r in rows],
        }

    @app.get("/api/market/summary")
    def get_market_summary(top: int = 3):
        if top < 0 or top > 100:
            raise HTTPException(status_code=400, detail="top must be between 0 and 100")
        return market_summary(_engine.quotes.all(), top=top)

    @app.post("/api/market/tick")
    def tick_market(count: int = 1):
        if count < 1 or count > 1000:
            raise HTTPException(status_code=400, detail="count must be between 1 and 1000")
        version = _simulator.run_ticks(count)
        return {"version": version, "ticks": _simulator.ticks}

    @app.post("/api/market/pause")
    def pause_market():
        _ticker.pause()
        return {"paused": True}

    @app.post("/api/market/resume")
    def resume_market():
        _ticker.resume()
        return {"paused": False}

    @app.post("/api/assets", status_code=201)
    def list_asset(request: ListAssetRequest):
        quote = _engine.list_asset(
            asset_id=request.asset_id,
            ticker=request.ticker,
            price=request.price,
            risk_tier=request.risk_tier,
            name=request.name,
            category=request.category,
        )
        return quote.to_dict()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @app.post("/api/accounts", status_code=201)
    def open_account(request: OpenAccountRequest):
        _engine.open_account(
            request.account_id,
            name=request.name,
            cash_balance=request.cash_balance,
            kyc_level=request.kyc_level,
        )
        return _engine.portfolio(request.account_id)

    @app.get("/api/accounts/{account_id}")
    def get_account(account_id: str):
        return _engine.portfolio(account_id)

    @app.get("/api/accounts/{account_id}/trades")
    def get_trade_history(account_id: str):
        with _engine.account_lock(account_id) as account:
            return {"trades": [t.to_dict() for t in reversed(account.trade_history)]}

    @app.get("/api/accounts/{account_id}/transactions")
    def get_cash_history(account_id: str):
        with _engine.account_lock(account_id) as account:
            return {"transactions": [c.to_dict() for c in reversed(account.cash_history)]}

    @app.post("/api/accounts/{account_id}/kyc/upgrade")
    def upgrade_kyc(account_id: str):
        return {"account_id": account_id, "kyc_level": _engine.upgrade_kyc(account_id)}

    @app.get("/api/accounts/{account_id}/watchlist")
    def get_watchlist(account_id: str):
        return {
            "account_id": account_id,
            "quotes": [q.to_dict() for q in _engine.watchlist_quotes(account_id)],
        }

    @app.put("/api/accounts/{account_id}/watchlist/{asset_id}")
    def watch_asset(account_id: str, asset_id: str):
        return {"account_id": account_id, "watchlist": _engine.watch(account_id, asset_id)}

    @app.delete("/api/accounts/{account_id}/watchlist/{asset_id}")
    def unwatch_asset(account_id: str, asset_id: str):
        return {"account_id": account_id, "watchlist": _engine.unwatch(account_id, asset_id)}

    @app.get("/api/accounts/{account_id}/net-worth")
    def get_net_worth(account_id: str):
        return {
            "account_id": account_id,
            "net_worth": str(_engine.get_net_worth(account_id)),
            "allocation": _decimal_map(_engine.allocation(account_id)),
        }

    @app.post("/api/accounts/{account_id}/deposits", status_code=201)
    def deposit(account_id: str, request: CashRequest):
        return _engine.deposit(account_id, request.amount, method=request.method).to_dict()

    @app.post("/api/accounts/{account_id}/withdrawals", status_code=201)
    def withdraw(account_id: str, request: CashRequest):
        return _engine.withdraw(account_id, request.amount, method=request.method).to_dict()

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    @app.post("/api/trades/preview")
    def preview_trade(request: TradeRequest):
        verdict = _engine.preview_trade(
            request.account_id,
            request.asset_id,
            request.direction,
            request.quantity,
            request.leverage,
            order_type=request.order_type,
            limit_price=request.limit_price,
        )
        return verdict.to_dict()

    @app.post("/api/trades", status_code=201)
    def submit_trade(request: TradeRequest) -> Any:
        result = _engine.submit_trade(
            request.account_id,
            request.asset_id,
            request.direction,
            request.quantity,
            request.leverage,
            order_type=request.order_type,
            limit_price=request.limit_price,
        )
        if not result.ok:
            return _rejection_response(result.rejection)
        return result.trade.to_dict()

    return app


# ---------------------------------------------------------------------------
# Module-level app instance (for `uvicorn services.api.main:app`)
# ---------------------------------------------------------------------------

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
