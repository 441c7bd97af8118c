"""Xodos market data: quotes, price simulation and display helpers.

Modules:
  quotes.py    - AssetQuote + QuoteStore (copy-on-write, one version per tick)
  simulator.py - PriceSimulator random walk, PriceTicker thread, chart history
  depth.py     - synthetic bid/ask ladder around a quote
  summary.py   - movers and per-category averages
"""
