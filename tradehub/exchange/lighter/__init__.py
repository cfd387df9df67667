"""
Lighter exchange integration module.
"""

from .lighter_auth import LighterAuth
from .lighter_exchange import (
    LighterExchange, from_integer_price, from_integer_size, to_integer_price, to_integer_size
)

__all__ = ['LighterAuth', 'LighterExchange', 'to_integer_price', 'from_integer_price',
           'to_integer_size', 'from_integer_size']
