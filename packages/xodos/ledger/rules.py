"""Trade and cash record types for the Xodos ledger.

All monetary values use Decimal to prevent floating-point drift across
repeated weighted-average updates.  Serialisation helpers produce JSON-safe
dicts with string-encoded Decimals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..errors import Rejection, ValidationError


class Direction:
    """Position directions (string constants)."""

    LONG = "LONG"
    SHORT = "SHORT"

    _ALL = frozenset({LONG, SHORT})

    @classmethod
    def normalize(cls, value: str) -> str:
        norm = str(value).strip().upper()
        if norm not in cls._ALL:
            raise ValidationError(
                f"direction must be LONG or SHORT, got {value!r}", direction=value
            )
        return norm


class Side:
    """Order sides recorded on the trade log (LONG buys, SHORT sells)."""

    BUY = "BUY"
    SELL = "SELL"

    @staticmethod
    def for_direction(direction: str) -> str:
        return Side.BUY if direction == Direction.LONG else Side.SELL


class OrderType:
    """Order styles.  LIMIT orders execute immediately at the limit price."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"

    _ALL = frozenset({MARKET, LIMIT})

    @classmethod
    def normalize(cls, value: str) -> str:
        norm = str(value).strip().upper()
        if norm not in cls._ALL:
            raise ValidationError(
                f"order_type must be MARKET or LIMIT, got {value!r}", order_type=value
            )
        return norm


class CashTxType:
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


class CashStatus:
    """Cash record states.  Withdrawals stay Pending until settled externally."""

    SUCCESS = "Success"
    PENDING = "Pending"
    FAILED = "Failed"


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Coerce *value* to Decimal at the API boundary.

    Floats go through ``str`` first so ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.

    Raises:
        ValidationError: value is missing, not numeric, or not finite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(
                f"{field_name} is not a valid number: {value!r}"
            ) from exc
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def parse_leverage(value: Any) -> int:
    """Return *value* as an integer leverage multiple >= 1.

    Accepts any whole number spelling: ``2``, ``2.0`` and ``"2.0"`` all give 2.

    Raises:
        ValidationError: value is not a whole number or is below 1.
    """
    if isinstance(value, bool):
        raise ValidationError(f"leverage must be an integer, got {value!r}", leverage=value)
    lev = to_decimal(value, "leverage")
    if lev != lev.to_integral_value():
        raise ValidationError(f"leverage must be an integer, got {value!r}", leverage=value)
    if lev < 1:
        raise ValidationError(f"leverage must be >= 1, got {lev}", leverage=int(lev))
    return int(lev)


@dataclass(frozen=True)
class TradeRecord:
    """Immutable fact describing one accepted trade."""

    trade_id: str
    account_id: str
    asset_id: str
    ticker: str
    side: str
    direction: str
    order_type: str
    leverage: int
    quantity: Decimal
    price: Decimal          # execution price
    total_value: Decimal    # notional = quantity * price
    margin: Decimal         # cash debited = total_value / leverage
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe dict (Decimals serialised as strings)."""
        return {
            "trade_id": self.trade_id,
            "account_id": self.account_id,
            "asset_id": self.asset_id,
            "ticker": self.ticker,
            "side": self.side,
            "direction": self.direction,
            "order_type": self.order_type,
            "leverage": self.leverage,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "total_value": str(self.total_value),
            "margin": str(self.margin),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "TradeRecord":
        return cls(
            trade_id=row["trade_id"],
            account_id=row["account_id"],
            asset_id=row["asset_id"],
            ticker=row["ticker"],
            side=row["side"],
            direction=row["direction"],
            order_type=row["order_type"],
            leverage=int(row["leverage"]),
            quantity=Decimal(row["quantity"]),
            price=Decimal(row["price"]),
            total_value=Decimal(row["total_value"]),
            margin=Decimal(row["margin"]),
            timestamp=row["timestamp"],
        )


@dataclass(frozen=True)
class CashRecord:
    """Immutable deposit/withdrawal audit entry."""

    tx_id: str
    type: str
    amount: Decimal
    method: str
    status: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "type": self.type,
            "amount": str(self.amount),
            "method": self.method,
            "status": self.status,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "CashRecord":
        return cls(
            tx_id=row["tx_id"],
            type=row["type"],
            amount=Decimal(row["amount"]),
            method=row.get("method", ""),
            status=row["status"],
            timestamp=row["timestamp"],
        )


@dataclass(frozen=True)
class TradeResult:
    """Outcome of :meth:`TradingEngine.submit_trade`: a trade or a rejection."""

    trade: Optional[TradeRecord] = None
    rejection: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.trade is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "trade": self.trade.to_dict() if self.trade is not None else None,
            "rejection": self.rejection.to_dict() if self.rejection is not None else None,
        }
