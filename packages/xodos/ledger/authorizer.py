"""Pre-trade gate: notional validity, KYC tier ceiling, margin sufficiency.

Checks run in order and the first failure wins:

  1. ``quantity × execution_price`` must be a positive notional
     (``execution_price`` is the limit price for LIMIT orders, the quote price
     for MARKET orders).  Leverage must be a whole number within
     ``[1, max_leverage]``.
  2. The notional must not exceed the account's KYC tier ceiling.
  3. ``notional / leverage`` must not exceed free cash.

The authorizer never mutates anything, so it is safe to call speculatively
(e.g. to pre-validate an order form).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from ..config_loader import EngineConfig
from ..errors import (
    InsufficientMargin,
    LimitExceeded,
    Rejection,
    TradeRejected,
    ValidationError,
)
from ..marketdata.quotes import AssetQuote
from .rules import OrderType, parse_leverage, to_decimal

if TYPE_CHECKING:
    from .account import Account

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class Authorization:
    """Authorizer verdict.  Pricing fields are ``None`` when they never resolved."""

    accepted: bool
    quantity: Optional[Decimal] = None
    leverage: Optional[int] = None
    execution_price: Optional[Decimal] = None
    notional: Optional[Decimal] = None
    margin_required: Optional[Decimal] = None
    rejection: Optional[Rejection] = None

    def to_dict(self) -> dict[str, Any]:
        def _s(value: Optional[Decimal]) -> Optional[str]:
            return str(value) if value is not None else None

        return {
            "accepted": self.accepted,
            "quantity": _s(self.quantity),
            "leverage": self.leverage,
            "execution_price": _s(self.execution_price),
            "notional": _s(self.notional),
            "margin_required": _s(self.margin_required),
            "rejection": self.rejection.to_dict() if self.rejection is not None else None,
        }


class TradeAuthorizer:
    """Stateless trade gate configured with tier ceilings and a leverage cap."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()

    def authorize(
        self,
        account: "Account",
        quote: AssetQuote,
        quantity: Any,
        leverage: Any,
        order_type: str = OrderType.MARKET,
        limit_price: Any = None,
    ) -> Authorization:
        """Decide ACCEPT or REJECT for a proposed trade.  No side effects."""
        qty: Optional[Decimal] = None
        lev: Optional[int] = None
        price: Optional[Decimal] = None
        notional: Optional[Decimal] = None
        margin: Optional[Decimal] = None
        try:
            order_type = OrderType.normalize(order_type)
            qty = to_decimal(quantity, "quantity")
            price = self._execution_price(quote, order_type, limit_price)
            lev = self._leverage(leverage)

            # 1. positive notional
            notional = qty * price
            if qty <= _ZERO or notional <= _ZERO:
                raise ValidationError(
                    f"trade must have a positive notional (quantity={qty}, price={price})",
                    quantity=qty,
                    price=price,
                )

            # 2. KYC tier ceiling
            ceiling = self._config.tier_limit(account.kyc_level)
            if ceiling is not None and notional > ceiling:
                raise LimitExceeded(
                    f"Tier {account.kyc_level} limit exceeded: notional {notional} is above "
                    f"{ceiling}. Upgrade KYC to trade larger size.",
                    kyc_level=account.kyc_level,
                    notional=notional,
                    limit=ceiling,
                )

            # 3. margin sufficiency
            margin = notional / lev
            if account.cash_balance < margin:
                shortfall = margin - account.cash_balance
                raise InsufficientMargin(
                    f"Insufficient funds: {margin} required for this {lev}x trade, "
                    f"{account.cash_balance} available (short {shortfall}).",
                    margin_required=margin,
                    cash_balance=account.cash_balance,
                    shortfall=shortfall,
                )
        except TradeRejected as exc:
            logger.debug(
                "Trade rejected for account=%s asset=%s: %s",
                account.account_id, quote.asset_id, exc.message,
            )
            return Authorization(
                accepted=False,
                quantity=qty,
                leverage=lev,
                execution_price=price,
                notional=notional,
                margin_required=margin,
                rejection=exc.to_rejection(),
            )

        return Authorization(
            accepted=True,
            quantity=qty,
            leverage=lev,
            execution_price=price,
            notional=notional,
            margin_required=margin,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _leverage(self, leverage: Any) -> int:
        lev = parse_leverage(leverage)
        if lev > self._config.max_leverage:
            raise ValidationError(
                f"leverage {lev}x exceeds the maximum of {self._config.max_leverage}x",
                leverage=lev,
                max_leverage=self._config.max_leverage,
            )
        return lev

    @staticmethod
    def _execution_price(quote: AssetQuote, order_type: str, limit_price: Any) -> Decimal:
        if order_type == OrderType.LIMIT:
            if limit_price is None:
                raise ValidationError("LIMIT orders require a limit price")
            price = to_decimal(limit_price, "limit_price")
            if price <= _ZERO:
                raise ValidationError(
                    f"limit price must be positive, got {price}", limit_price=price
                )
            return price
        return quote.price
