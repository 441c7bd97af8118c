"""PositionLedger: leveraged long/short position accounting for one account.

Design invariants
-----------------
1. **Decimal arithmetic throughout**: quantities, prices and debts are Decimal;
   callers convert floats at the boundary.
2. **Add-only positions**: a trade either opens a position or adds to one in
   the same direction.  Trades against the open direction are rejected with
   :class:`UnsupportedDirectionFlip`; there is no reduce/close path.
3. **Leverage is fixed at open**: adds must use the stored leverage or they
   are rejected with :class:`LeverageMismatch`.
4. **Plan, then commit**: :meth:`PositionLedger.plan_trade` computes the new
   position without touching the account; every rejection is raised there, so
   :meth:`PositionLedger.commit` cannot fail half-way.
5. **One debt field per direction**: longs carry ``borrowed_cash`` and
   ``short_collateral == 0``; shorts carry ``short_collateral`` and
   ``borrowed_cash == 0``.

Trade arithmetic
----------------
For ``notional = quantity × price`` and ``margin = notional / leverage``::

    LONG   borrowed_cash    += notional − margin
           average           = (old_qty × old_avg + notional) / (old_qty + qty)
           cash             −= margin

    SHORT  short_collateral += margin + notional
           average           = (|old_qty| × old_avg + notional) / (|old_qty| + qty)
           cash             −= margin;  locked_cash += margin + notional

Equity contribution at mark ``p``::

    LONG   quantity × p − borrowed_cash
    SHORT  quantity × p + short_collateral      (quantity < 0)

Net worth = ``cash + locked_cash + unsettled_balance + Σ contributions``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..errors import LeverageMismatch, UnsupportedDirectionFlip, ValidationError
from ..marketdata.quotes import AssetQuote
from .rules import Direction, parse_leverage, to_decimal

if TYPE_CHECKING:
    from .account import Account

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

CASH_ALLOCATION_KEY = "Cash"


@dataclass
class Position:
    """An account's open exposure to one asset."""

    asset_id: str
    quantity: Decimal           # > 0 long, < 0 short
    average_buy_price: Decimal  # cost basis (long) / average proceeds (short)
    leverage: int
    borrowed_cash: Decimal = _ZERO
    short_collateral: Decimal = _ZERO

    @property
    def is_long(self) -> bool:
        return self.quantity > _ZERO

    @property
    def direction(self) -> str:
        return Direction.LONG if self.is_long else Direction.SHORT

    def equity_contribution(self, price: Decimal) -> Decimal:
        """Unrealized equity of this position marked at *price*."""
        if self.is_long:
            return self.quantity * price - self.borrowed_cash
        if self.quantity < _ZERO:
            return self.quantity * price + self.short_collateral
        return _ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "quantity": str(self.quantity),
            "average_buy_price": str(self.average_buy_price),
            "leverage": self.leverage,
            "borrowed_cash": str(self.borrowed_cash),
            "short_collateral": str(self.short_collateral),
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "Position":
        return cls(
            asset_id=row["asset_id"],
            quantity=Decimal(row["quantity"]),
            average_buy_price=Decimal(row["average_buy_price"]),
            leverage=int(row["leverage"]),
            borrowed_cash=Decimal(row.get("borrowed_cash", "0")),
            short_collateral=Decimal(row.get("short_collateral", "0")),
        )


@dataclass(frozen=True)
class PositionUpdate:
    """Planned effect of one trade: the new position plus the cash deltas.

    ``margin_debit`` comes off free cash; ``collateral_credit`` goes on
    ``locked_cash`` (shorts only).
    """

    position: Position
    notional: Decimal
    margin_debit: Decimal
    collateral_credit: Decimal
    created: bool


class PositionLedger:
    """Applies authorized trades to ``account.positions``.

    The ledger assumes its input already passed :class:`TradeAuthorizer`; it
    does not re-check margin or tier limits.

    Thread-safety: not thread-safe; the engine holds the account lock.
    """

    def __init__(self, account: "Account") -> None:
        self._account = account

    @property
    def positions(self) -> dict[str, Position]:
        return self._account.positions

    def get(self, asset_id: str) -> Optional[Position]:
        return self._account.positions.get(asset_id)

    # ------------------------------------------------------------------
    # Trade application
    # ------------------------------------------------------------------

    def check(self, asset_id: str, direction: str, leverage: int) -> None:
        """Raise if a *direction* trade at *leverage* cannot extend *asset_id*.

        Raises:
            UnsupportedDirectionFlip: the open position points the other way.
            LeverageMismatch: the open position uses a different leverage.
        """
        existing = self.get(asset_id)
        if existing is None or existing.quantity == _ZERO:
            return
        if existing.direction != direction:
            raise UnsupportedDirectionFlip(
                f"{direction} trade against open {existing.direction} position in "
                f"{asset_id}; reducing or flipping a position is not supported",
                asset_id=asset_id,
                open_direction=existing.direction,
                open_quantity=existing.quantity,
            )
        if existing.leverage != leverage:
            raise LeverageMismatch(
                f"position in {asset_id} is {existing.leverage}x; "
                f"cannot add at {leverage}x",
                asset_id=asset_id,
                position_leverage=existing.leverage,
                trade_leverage=leverage,
            )

    def plan_trade(
        self,
        asset_id: str,
        direction: str,
        quantity: Any,
        execution_price: Any,
        leverage: Any,
    ) -> PositionUpdate:
        """Compute the post-trade position without writing anything.

        Args:
            asset_id:        Asset being traded.
            direction:       ``Direction.LONG`` or ``Direction.SHORT``.
            quantity:        Unsigned trade size (> 0).
            execution_price: Fill price (> 0).
            leverage:        Integer multiple >= 1.

        Raises:
            ValidationError, UnsupportedDirectionFlip, LeverageMismatch.
        """
        direction = Direction.normalize(direction)
        qty = to_decimal(quantity, "quantity")
        price = to_decimal(execution_price, "execution_price")
        lev = parse_leverage(leverage)
        if qty <= _ZERO:
            raise ValidationError(f"quantity must be positive, got {qty}", quantity=qty)
        if price <= _ZERO:
            raise ValidationError(f"execution price must be positive, got {price}", price=price)

        self.check(asset_id, direction, lev)

        notional = qty * price
        margin = notional / lev
        existing = self.get(asset_id)
        created = existing is None or existing.quantity == _ZERO

        if direction == Direction.LONG:
            borrowed_delta = notional - margin
            if created:
                position = Position(
                    asset_id=asset_id,
                    quantity=qty,
                    average_buy_price=price,
                    leverage=lev,
                    borrowed_cash=borrowed_delta,
                )
            else:
                new_qty = existing.quantity + qty
                position = Position(
                    asset_id=asset_id,
                    quantity=new_qty,
                    average_buy_price=(existing.quantity * existing.average_buy_price + notional) / new_qty,
                    leverage=existing.leverage,
                    borrowed_cash=existing.borrowed_cash + borrowed_delta,
                )
            collateral_credit = _ZERO
        else:
            collateral_delta = margin + notional
            if created:
                position = Position(
                    asset_id=asset_id,
                    quantity=-qty,
                    average_buy_price=price,
                    leverage=lev,
                    short_collateral=collateral_delta,
                )
            else:
                old_abs = abs(existing.quantity)
                position = Position(
                    asset_id=asset_id,
                    quantity=existing.quantity - qty,
                    average_buy_price=(old_abs * existing.average_buy_price + notional) / (old_abs + qty),
                    leverage=existing.leverage,
                    short_collateral=existing.short_collateral + collateral_delta,
                )
            collateral_credit = collateral_delta

        return PositionUpdate(
            position=position,
            notional=notional,
            margin_debit=margin,
            collateral_credit=collateral_credit,
            created=created,
        )

    def commit(self, update: PositionUpdate) -> Position:
        """Store a planned position; zero-quantity positions are removed."""
        position = update.position
        if position.quantity == _ZERO:
            self._account.positions.pop(position.asset_id, None)
        else:
            self._account.positions[position.asset_id] = position
        logger.debug(
            "Position %s: asset=%s qty=%s avg=%s borrowed=%s collateral=%s",
            "opened" if update.created else "extended",
            position.asset_id, position.quantity, position.average_buy_price,
            position.borrowed_cash, position.short_collateral,
        )
        return position

    def apply_trade(
        self,
        asset_id: str,
        direction: str,
        quantity: Any,
        execution_price: Any,
        leverage: Any,
    ) -> PositionUpdate:
        """Plan and commit in one call; returns the cash/collateral deltas."""
        update = self.plan_trade(asset_id, direction, quantity, execution_price, leverage)
        self.commit(update)
        return update

    # ------------------------------------------------------------------
    # Read-only valuation
    # ------------------------------------------------------------------

    def unrealized_equity(self, quotes: Mapping[str, AssetQuote]) -> Decimal:
        """Sum of equity contributions at current quote prices.

        Positions whose asset has no quote are skipped with a warning.
        """
        total = _ZERO
        for asset_id, position in self._account.positions.items():
            quote = quotes.get(asset_id)
            if quote is None:
                logger.warning(
                    "No quote for %s in account %s; position excluded from equity",
                    asset_id, self._account.account_id,
                )
                continue
            total += position.equity_contribution(quote.price)
        return total

    def allocation(self, quotes: Mapping[str, AssetQuote]) -> dict[str, Decimal]:
        """Exposure by asset category (``|quantity| × price``) plus free cash."""
        buckets: dict[str, Decimal] = defaultdict(lambda: _ZERO)
        buckets[CASH_ALLOCATION_KEY] = self._account.cash_balance
        for asset_id, position in self._account.positions.items():
            quote = quotes.get(asset_id)
            if quote is None:
                continue
            buckets[quote.category] += abs(position.quantity) * quote.price
        return dict(buckets)


def net_worth(account: "Account", quotes: Mapping[str, AssetQuote]) -> Decimal:
    """``cash + locked_cash + unsettled_balance + Σ equity contributions``."""
    base = account.cash_balance + account.locked_cash + account.unsettled_balance
    return base + PositionLedger(account).unrealized_equity(quotes)
