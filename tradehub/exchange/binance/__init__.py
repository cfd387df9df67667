"""
Binance exchange integration module.
"""

from .binance_auth import BinanceAuth
from .binance_exchange import BinanceExchange

__all__ = ['BinanceAuth', 'BinanceExchange']
