"""
Exchange Module

This module contains all exchange-related functionality.
"""

# Core exchange components
from .core import ExchangeClient, ExchangeConfig, ExchangeFactory, create_exchange

# Exchange implementations
from .binance import BinanceExchange
from .bitget import BitgetExchange
from .bybit import BybitExchange
from .coinbase import CoinbaseExchange
from .kraken import KrakenExchange
from .lighter import LighterExchange
from .okx import OKXExchange

# Register exchanges with factory
from .core.exchange_factory import register_exchange
register_exchange("binance", BinanceExchange)
register_exchange("bybit", BybitExchange)
register_exchange("coinbase", CoinbaseExchange)
register_exchange("kraken", KrakenExchange)
register_exchange("okx", OKXExchange)
register_exchange("bitget", BitgetExchange)
register_exchange("lighter", LighterExchange)

__all__ = [
    # Core
    'ExchangeClient',
    'ExchangeConfig',
    'ExchangeFactory',
    'create_exchange',

    # Exchanges
    'BinanceExchange',
    'BitgetExchange',
    'BybitExchange',
    'CoinbaseExchange',
    'KrakenExchange',
    'LighterExchange',
    'OKXExchange',
]
