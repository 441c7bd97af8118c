"""Xodos engine: leveraged position accounting driven by a synthetic market feed.

Subpackages:
  marketdata/ - quote store, random-walk price simulator, depth ladder
  ledger/     - trade authorizer, position + account ledgers, engine, store
"""
