"""
Brokers Module

Broker CSV import: parser contract, parsers, registry and auto-detection.
"""

from .broker_base import (
    BrokerInfo, BrokerParser, ColumnMapping, OptionType, ParsedTrade, ParseResult, ValidationResult
)
from .broker_registry import (
    BROKER_REGISTRY, ImportResult, create_broker_parser, detect_broker,
    get_supported_brokers, parse_trades_csv
)
from .parsers import (
    GenericCSVOptions, GenericCSVParser, InteractiveBrokersParser, MetaTraderParser, TDAmeritradeParser
)

__all__ = [
    # Contract
    'BrokerInfo',
    'BrokerParser',
    'ColumnMapping',
    'OptionType',
    'ParsedTrade',
    'ParseResult',
    'ValidationResult',

    # Registry
    'BROKER_REGISTRY',
    'ImportResult',
    'create_broker_parser',
    'detect_broker',
    'get_supported_brokers',
    'parse_trades_csv',

    # Parsers
    'GenericCSVOptions',
    'GenericCSVParser',
    'InteractiveBrokersParser',
    'MetaTraderParser',
    'TDAmeritradeParser',
]
