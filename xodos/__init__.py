"""Xodos - leveraged position & ledger engine with a simulated market feed."""

__version__ = "0.3.0"
