"""
Kraken exchange integration module.
"""

from .kraken_auth import KrakenAuth, KrakenNonce
from .kraken_exchange import KrakenExchange, normalize_asset, normalize_pair

__all__ = ['KrakenAuth', 'KrakenNonce', 'KrakenExchange',
           'normalize_asset', 'normalize_pair']
