"""Account state and the cash/collateral ledger.

:class:`AccountLedger` is pure bookkeeping.  It never checks whether a debit
is affordable: margin sufficiency is the authorizer's job and withdrawal
sufficiency is the engine's.  Audit logs are append-only, newest last.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from ..errors import ValidationError
from .positions import Position
from .rules import CashRecord, CashStatus, CashTxType, TradeRecord, to_decimal

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

KYC_LEVELS = (1, 2, 3)
MAX_KYC_LEVEL = KYC_LEVELS[-1]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Account:
    """One trading account: free cash, locked collateral, positions, history.

    ``watchlist`` holds asset ids in the order they were added, without duplicates.
    """

    account_id: str
    name: str = ""
    cash_balance: Decimal = _ZERO
    locked_cash: Decimal = _ZERO
    unsettled_balance: Decimal = _ZERO
    kyc_level: int = 1
    positions: dict[str, Position] = field(default_factory=dict)
    trade_history: list[TradeRecord] = field(default_factory=list)
    cash_history: list[CashRecord] = field(default_factory=list)
    watchlist: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe dict (Decimals serialised as strings)."""
        return {
            "account_id": self.account_id,
            "name": self.name,
            "cash_balance": str(self.cash_balance),
            "locked_cash": str(self.locked_cash),
            "unsettled_balance": str(self.unsettled_balance),
            "kyc_level": self.kyc_level,
            "positions": [p.to_dict() for p in self.positions.values()],
            "trade_history": [t.to_dict() for t in self.trade_history],
            "cash_history": [c.to_dict() for c in self.cash_history],
            "watchlist": list(self.watchlist),
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "Account":
        positions = [Position.from_dict(p) for p in row.get("positions", [])]
        return cls(
            account_id=row["account_id"],
            name=row.get("name", ""),
            cash_balance=Decimal(row.get("cash_balance", "0")),
            locked_cash=Decimal(row.get("locked_cash", "0")),
            unsettled_balance=Decimal(row.get("unsettled_balance", "0")),
            kyc_level=int(row.get("kyc_level", 1)),
            positions={p.asset_id: p for p in positions},
            trade_history=[TradeRecord.from_dict(t) for t in row.get("trade_history", [])],
            cash_history=[CashRecord.from_dict(c) for c in row.get("cash_history", [])],
            watchlist=[str(a) for a in row.get("watchlist", [])],
        )


def validate_kyc_level(level: Any) -> int:
    if isinstance(level, bool) or level not in KYC_LEVELS:
        raise ValidationError(
            f"kyc_level must be one of {KYC_LEVELS}, got {level!r}", kyc_level=level
        )
    return int(level)


class AccountLedger:
    """Cash balance and locked-collateral bookkeeping for one account.

    Thread-safety: not thread-safe; the engine holds the account lock.
    """

    def __init__(self, account: Account, clock: Callable[[], str] = utc_now_iso) -> None:
        self._account = account
        self._clock = clock

    @property
    def account(self) -> Account:
        return self._account

    def apply_trade(self, margin_debit: Decimal, collateral_credit: Decimal) -> None:
        """Debit margin from free cash and lock short collateral."""
        self._account.cash_balance -= margin_debit
        self._account.locked_cash += collateral_credit
        if self._account.cash_balance < _ZERO:
            logger.warning(
                "Account %s cash went negative (%s) after a trade debit of %s",
                self._account.account_id, self._account.cash_balance, margin_debit,
            )

    def record_trade(self, trade: TradeRecord) -> None:
        self._account.trade_history.append(trade)

    def deposit(self, amount: Any, method: str = "") -> CashRecord:
        """Credit *amount* to free cash immediately (status Success)."""
        value = self._positive_amount(amount)
        self._account.cash_balance += value
        record = self._cash_record(CashTxType.DEPOSIT, value, method, CashStatus.SUCCESS)
        logger.info(
            "Deposit: account=%s amount=%s method=%s",
            self._account.account_id, value, method or "-",
        )
        return record

    def withdrawal(self, amount: Any, method: str = "") -> CashRecord:
        """Debit *amount* immediately; the record stays Pending until settled."""
        value = self._positive_amount(amount)
        self._account.cash_balance -= value
        record = self._cash_record(CashTxType.WITHDRAWAL, value, method, CashStatus.PENDING)
        logger.info(
            "Withdrawal requested: account=%s amount=%s method=%s",
            self._account.account_id, value, method or "-",
        )
        return record

    def upgrade_kyc(self) -> int:
        """Raise the KYC tier by one, capped at the top tier."""
        self._account.kyc_level = min(MAX_KYC_LEVEL, self._account.kyc_level + 1)
        return self._account.kyc_level

    def set_kyc_level(self, level: Any) -> int:
        self._account.kyc_level = validate_kyc_level(level)
        return self._account.kyc_level

    # ------------------------------------------------------------------
    # Watchlist
    # ------------------------------------------------------------------

    def watch(self, asset_id: str) -> bool:
        """Add *asset_id* to the watchlist.  Returns False if already watched."""
        if asset_id in self._account.watchlist:
            return False
        self._account.watchlist.append(asset_id)
        return True

    def unwatch(self, asset_id: str) -> bool:
        """Drop *asset_id* from the watchlist.  Returns False if it was not there."""
        if asset_id not in self._account.watchlist:
            return False
        self._account.watchlist.remove(asset_id)
        return True

    def toggle_watch(self, asset_id: str) -> bool:
        """Flip watch state; returns True when the asset is watched afterwards."""
        if self.unwatch(asset_id):
            return False
        return self.watch(asset_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _positive_amount(amount: Any) -> Decimal:
        value = to_decimal(amount, "amount")
        if value <= _ZERO:
            raise ValidationError(f"amount must be positive, got {value}", amount=value)
        return value

    def _cash_record(self, tx_type: str, amount: Decimal, method: str, status: str) -> CashRecord:
        record = CashRecord(
            tx_id=f"cash-{uuid.uuid4().hex[:12]}",
            type=tx_type,
            amount=amount,
            method=method,
            status=status,
            timestamp=self._clock(),
        )
        self._account.cash_history.append(record)
        return record
