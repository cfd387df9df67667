"""
Coinbase exchange integration module.
"""

from .coinbase_auth import CoinbaseAuth
from .coinbase_exchange import CoinbaseExchange

__all__ = ['CoinbaseAuth', 'CoinbaseExchange']
