"""Rejection taxonomy for the trade path.

Every error here subclasses :class:`TradeRejected` and carries a stable
``code`` string.  The authorizer hands them back as :class:`Rejection` values;
the position ledger raises them *before* touching any state, and the engine
converts them into rejected :class:`~.ledger.rules.TradeResult` objects so callers
never see a half-applied trade.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class TradeRejected(Exception):
    """Base class for every recoverable rejection in the ledger path."""

    code = "rejected"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: dict[str, Any] = detail

    def to_rejection(self) -> "Rejection":
        return Rejection(code=self.code, message=self.message, detail=dict(self.detail))


class ValidationError(TradeRejected):
    """Malformed or non-positive quantity, price, amount or leverage."""

    code = "validation_error"


class LimitExceeded(TradeRejected):
    """Trade notional is above the account's KYC tier ceiling."""

    code = "limit_exceeded"


class InsufficientMargin(TradeRejected):
    """Free cash is below the margin the trade requires."""

    code = "insufficient_margin"


class InsufficientFunds(TradeRejected):
    """Withdrawal would drive the free cash balance negative."""

    code = "insufficient_funds"


class LeverageMismatch(TradeRejected):
    """Trade leverage differs from the open position's stored leverage."""

    code = "leverage_mismatch"


class UnsupportedDirectionFlip(TradeRejected):
    """Trade direction opposes the open position (reduce/close/flip)."""

    code = "unsupported_direction_flip"


class QuoteNotFound(TradeRejected, LookupError):
    """Asset id was never listed in the quote store."""

    code = "quote_not_found"


class AccountNotFound(TradeRejected, LookupError):
    """Account id is not registered with the engine."""

    code = "account_not_found"


@dataclass(frozen=True)
class Rejection:
    """Serialisable rejection result surfaced verbatim to the caller."""

    code: str
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "detail": {k: str(v) for k, v in self.detail.items()},
        }
