"""
TradeHub Core

Aggregates trading activity from exchange APIs and broker CSV exports into one
canonical trade, order, position and balance model.
"""

__version__ = "0.1.0"
