"""
Bybit exchange integration module.
"""

from .bybit_auth import BybitAuth
from .bybit_exchange import BybitExchange

__all__ = ['BybitAuth', 'BybitExchange']
