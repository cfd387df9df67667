"""
Bitget exchange integration module.
"""

from .bitget_auth import BitgetAuth
from .bitget_exchange import BitgetExchange

__all__ = ['BitgetAuth', 'BitgetExchange']
