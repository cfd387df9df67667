"""
OKX exchange integration module.
"""

from .okx_auth import OKXAuth
from .okx_exchange import OKXExchange

__all__ = ['OKXAuth', 'OKXExchange']
