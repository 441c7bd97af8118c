"""TradingEngine: the in-process surface the UI, CLI and HTTP layers call.

Per-trade processing (one account lock held throughout)::

    quote   = quotes.get(asset_id)                 # one consistent tick
    verdict = authorizer.authorize(account, quote, ...)
    update  = PositionLedger(account).plan_trade(...)   # raises before writing
    PositionLedger.commit(update)
    AccountLedger.apply_trade(update.margin_debit, update.collateral_credit)

Every :class:`TradeRejected` raised along the way is turned into a rejected
:class:`TradeResult`; nothing has been written at that point, so a rejected
trade leaves the account exactly as it was.

Usage::

    engine = TradingEngine.with_seed_assets()
    engine.open_account("acc-1", cash_balance=Decimal("1000"))
    result = engine.submit_trade("acc-1", "mtnn", "LONG", quantity=10, leverage=2)
    if not result.ok:
        print(result.rejection.message)
    print(engine.get_net_worth("acc-1"))
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from ..config_loader import EngineConfig
from ..errors import (
    AccountNotFound,
    InsufficientFunds,
    TradeRejected,
    ValidationError,
)
from ..marketdata.quotes import AssetCategory, AssetQuote, QuoteStore, RiskTier, new_listing
from .account import Account, AccountLedger, utc_now_iso, validate_kyc_level
from .authorizer import Authorization, TradeAuthorizer
from .positions import PositionLedger, net_worth
from .rules import (
    CashRecord,
    Direction,
    OrderType,
    Side,
    TradeRecord,
    TradeResult,
    to_decimal,
)
from .store import LedgerState, save_state

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class TradingEngine:
    """Accounts, quotes and the authorize-then-apply trade path.

    Thread-safety: every mutation of an account happens under that account's
    lock; different accounts proceed in parallel.  Quote reads go through the
    copy-on-write :class:`QuoteStore` and never block the price simulator.
    """

    def __init__(
        self,
        quotes: Optional[QuoteStore] = None,
        config: Optional[EngineConfig] = None,
        authorizer: Optional[TradeAuthorizer] = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._config = config or EngineConfig()
        self._quotes = quotes if quotes is not None else QuoteStore()
        self._authorizer = authorizer or TradeAuthorizer(self._config)
        self._clock = clock
        self._accounts: dict[str, Account] = {}
        self._account_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def with_seed_assets(cls, config: Optional[EngineConfig] = None) -> "TradingEngine":
        """Fresh engine with ``config.seed_assets`` listed and no accounts."""
        engine = cls(config=config)
        for row in engine.config.seed_assets:
            engine.list_asset(
                asset_id=row["asset_id"],
                ticker=row["ticker"],
                price=row["price"],
                risk_tier=row.get("risk_tier", RiskTier.MEDIUM),
                name=row.get("name"),
                category=row.get("category", AssetCategory.EQUITY),
            )
        return engine

    @classmethod
    def from_state(
        cls, state: LedgerState, config: Optional[EngineConfig] = None
    ) -> "TradingEngine":
        engine = cls(quotes=QuoteStore(state.quotes), config=config)
        for account in state.accounts:
            engine.add_account(account)
        return engine

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def quotes(self) -> QuoteStore:
        return self._quotes

    def save(self, path: Union[str, Path]) -> Path:
        """Persist every account (each under its lock) plus current quotes."""
        accounts = []
        for account_id in self.account_ids():
            with self.account_lock(account_id) as account:
                accounts.append(Account.from_dict(account.to_dict()))
        return save_state(path, accounts, self._quotes.all())

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def open_account(
        self,
        account_id: str,
        name: str = "",
        cash_balance: Any = _ZERO,
        kyc_level: int = 1,
    ) -> Account:
        """Register a new account.

        Raises:
            ValidationError: duplicate id, negative balance or unknown tier.
        """
        balance = to_decimal(cash_balance, "cash_balance")
        if balance < _ZERO:
            raise ValidationError(f"opening balance cannot be negative, got {balance}")
        account = Account(
            account_id=account_id,
            name=name,
            cash_balance=balance,
            kyc_level=validate_kyc_level(kyc_level),
        )
        self.add_account(account)
        logger.info("Account opened: id=%s kyc=%d cash=%s", account_id, account.kyc_level, balance)
        return account

    def add_account(self, account: Account) -> None:
        with self._registry_lock:
            if account.account_id in self._accounts:
                raise ValidationError(
                    f"account already exists: {account.account_id!r}",
                    account_id=account.account_id,
                )
            self._accounts[account.account_id] = account
            self._account_locks[account.account_id] = threading.Lock()

    def account_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._accounts)

    def get_account(self, account_id: str) -> Account:
        """Return the live account object.

        Raises:
            AccountNotFound: unknown id.
        """
        with self._registry_lock:
            account = self._accounts.get(account_id)
        if account is None:
            raise AccountNotFound(f"unknown account: {account_id!r}", account_id=account_id)
        return account

    @contextmanager
    def account_lock(self, account_id: str) -> Iterator[Account]:
        """Hold *account_id*'s mutual-exclusion scope and yield the account."""
        account = self.get_account(account_id)
        with self._registry_lock:
            lock = self._account_locks[account_id]
        with lock:
            yield account

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    def get_quote(self, asset_id: str) -> AssetQuote:
        """Raises :class:`QuoteNotFound` for unlisted assets."""
        return self._quotes.get(asset_id)

    def list_asset(
        self,
        asset_id: str,
        ticker: str,
        price: Any,
        risk_tier: str = RiskTier.MEDIUM,
        name: Optional[str] = None,
        category: str = AssetCategory.EQUITY,
    ) -> AssetQuote:
        quote = new_listing(
            asset_id=asset_id,
            ticker=ticker,
            price=to_decimal(price, "price"),
            risk_tier=risk_tier,
            name=name,
            category=category,
            spread_fraction=self._config.spread_fraction,
        )
        return self._quotes.list_asset(quote)

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def preview_trade(
        self,
        account_id: str,
        asset_id: str,
        direction: str,
        quantity: Any,
        leverage: Any,
        order_type: str = OrderType.MARKET,
        limit_price: Any = None,
    ) -> Authorization:
        """Run every pre-trade check without committing anything."""
        try:
            direction = Direction.normalize(direction)
            with self.account_lock(account_id) as account:
                quote = self._quotes.get(asset_id)
                verdict = self._authorizer.authorize(
                    account, quote, quantity, leverage, order_type, limit_price
                )
                if verdict.accepted:
                    PositionLedger(account).check(asset_id, direction, verdict.leverage)
                return verdict
        except TradeRejected as exc:
            return Authorization(accepted=False, rejection=exc.to_rejection())

    def submit_trade(
        self,
        account_id: str,
        asset_id: str,
        direction: str,
        quantity: Any,
        leverage: Any,
        order_type: str = OrderType.MARKET,
        limit_price: Any = None,
    ) -> TradeResult:
        """Authorize and apply one trade atomically.

        Returns:
            :class:`TradeResult` holding either the new :class:`TradeRecord`
            or the :class:`Rejection` explaining why nothing changed.
        """
        try:
            direction = Direction.normalize(direction)
            order_type = OrderType.normalize(order_type)
            with self.account_lock(account_id) as account:
                quote = self._quotes.get(asset_id)
                verdict = self._authorizer.authorize(
                    account, quote, quantity, leverage, order_type, limit_price
                )
                if not verdict.accepted:
                    logger.warning(
                        "Trade rejected: account=%s asset=%s %s x%s: %s",
                        account_id, asset_id, direction, quantity,
                        verdict.rejection.message if verdict.rejection else "-",
                    )
                    return TradeResult(rejection=verdict.rejection)

                positions = PositionLedger(account)
                update = positions.plan_trade(
                    asset_id,
                    direction,
                    verdict.quantity,
                    verdict.execution_price,
                    verdict.leverage,
                )
                trade = TradeRecord(
                    trade_id=f"trd-{uuid.uuid4().hex[:10]}",
                    account_id=account_id,
                    asset_id=asset_id,
                    ticker=quote.ticker,
                    side=Side.for_direction(direction),
                    direction=direction,
                    order_type=order_type,
                    leverage=verdict.leverage,
                    quantity=verdict.quantity,
                    price=verdict.execution_price,
                    total_value=update.notional,
                    margin=update.margin_debit,
                    timestamp=self._clock(),
                )

                cash = AccountLedger(account, clock=self._clock)
                positions.commit(update)
                cash.apply_trade(update.margin_debit, update.collateral_credit)
                cash.record_trade(trade)
                self._quotes.add_volume(asset_id, update.notional)
        except TradeRejected as exc:
            logger.warning(
                "Trade rejected: account=%s asset=%s: %s", account_id, asset_id, exc.message
            )
            return TradeResult(rejection=exc.to_rejection())

        logger.info(
            "Trade executed: id=%s account=%s %s %s x%s @ %s lev=%dx margin=%s",
            trade.trade_id, account_id, trade.direction, trade.ticker,
            trade.quantity, trade.price, trade.leverage, trade.margin,
        )
        return TradeResult(trade=trade)

    # ------------------------------------------------------------------
    # Cash & KYC
    # ------------------------------------------------------------------

    def deposit(self, account_id: str, amount: Any, method: str = "") -> CashRecord:
        with self.account_lock(account_id) as account:
            return AccountLedger(account, clock=self._clock).deposit(amount, method)

    def withdraw(self, account_id: str, amount: Any, method: str = "") -> CashRecord:
        """Debit free cash now; settlement happens outside the engine.

        Raises:
            InsufficientFunds: *amount* exceeds free cash.
            ValidationError: non-positive amount.
        """
        with self.account_lock(account_id) as account:
            value = to_decimal(amount, "amount")
            if value > account.cash_balance:
                raise InsufficientFunds(
                    f"cannot withdraw {value}: only {account.cash_balance} available",
                    amount=value,
                    cash_balance=account.cash_balance,
                )
            return AccountLedger(account, clock=self._clock).withdrawal(value, method)

    def upgrade_kyc(self, account_id: str) -> int:
        with self.account_lock(account_id) as account:
            level = AccountLedger(account).upgrade_kyc()
        logger.info("KYC upgraded: account=%s level=%d", account_id, level)
        return level

    def set_kyc_level(self, account_id: str, level: Any) -> int:
        with self.account_lock(account_id) as account:
            return AccountLedger(account).set_kyc_level(level)

    # ------------------------------------------------------------------
    # Watchlist
    # ------------------------------------------------------------------

    def watch(self, account_id: str, asset_id: str) -> list[str]:
        """Add a listed asset to the account's watchlist.

        Raises:
            QuoteNotFound: the asset was never listed.
        """
        self._quotes.get(asset_id)
        with self.account_lock(account_id) as account:
            AccountLedger(account).watch(asset_id)
            return list(account.watchlist)

    def unwatch(self, account_id: str, asset_id: str) -> list[str]:
        with self.account_lock(account_id) as account:
            AccountLedger(account).unwatch(asset_id)
            return list(account.watchlist)

    def toggle_watch(self, account_id: str, asset_id: str) -> bool:
        self._quotes.get(asset_id)
        with self.account_lock(account_id) as account:
            return AccountLedger(account).toggle_watch(asset_id)

    def watchlist_quotes(self, account_id: str) -> list[AssetQuote]:
        """Current quotes for the watched assets, in watchlist order."""
        snapshot = self._quotes.snapshot()
        with self.account_lock(account_id) as account:
            return [snapshot[a] for a in account.watchlist if a in snapshot]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_net_worth(self, account_id: str) -> Decimal:
        snapshot = self._quotes.snapshot()
        with self.account_lock(account_id) as account:
            return net_worth(account, snapshot)

    def allocation(self, account_id: str) -> dict[str, Decimal]:
        snapshot = self._quotes.snapshot()
        with self.account_lock(account_id) as account:
            return PositionLedger(account).allocation(snapshot)

    def portfolio(self, account_id: str) -> dict[str, Any]:
        """JSON-safe account summary with per-position marks and equity."""
        snapshot = self._quotes.snapshot()
        with self.account_lock(account_id) as account:
            rows = []
            for position in account.positions.values():
                row = position.to_dict()
                quote = snapshot.get(position.asset_id)
                if quote is not None:
                    row["mark_price"] = str(quote.price)
                    row["equity"] = str(position.equity_contribution(quote.price))
                else:
                    row["mark_price"] = None
                    row["equity"] = None
                rows.append(row)
            return {
                "account_id": account.account_id,
                "name": account.name,
                "kyc_level": account.kyc_level,
                "cash_balance": str(account.cash_balance),
                "locked_cash": str(account.locked_cash),
                "unsettled_balance": str(account.unsettled_balance),
                "net_worth": str(net_worth(account, snapshot)),
                "positions": rows,
                "watchlist": list(account.watchlist),
                "quote_version": snapshot.version,
            }
