"""Xodos ledger: trade authorization, positions, cash and persistence.

Modules:
  rules.py      - Direction/OrderType constants, TradeRecord, CashRecord, TradeResult
  authorizer.py - TradeAuthorizer: notional, KYC tier ceiling, margin checks
  positions.py  - Position + PositionLedger: weighted-average adds, net worth
  account.py    - Account + AccountLedger: cash, locked collateral, KYC tier
  engine.py     - TradingEngine: per-account locking, authorize-then-apply
  store.py      - JSON state snapshots (Decimals as strings)
"""
