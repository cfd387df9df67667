"""
Exchange Core Module

Contains the exchange contract, configuration, factory and HTTP transport.
"""

from .exchange_base import ExchangeClient
from .exchange_config import ExchangeConfig
from .exchange_factory import (
    EXCHANGE_REGISTRY, ExchangeFactory, ExchangeInfo, create_exchange,
    get_exchange_factory, get_exchange_info, register_exchange
)
from .http_client import ExchangeHttpClient

__all__ = [
    'ExchangeClient',
    'ExchangeConfig',
    'ExchangeFactory',
    'ExchangeInfo',
    'EXCHANGE_REGISTRY',
    'ExchangeHttpClient',
    'create_exchange',
    'get_exchange_factory',
    'get_exchange_info',
    'register_exchange',
]
