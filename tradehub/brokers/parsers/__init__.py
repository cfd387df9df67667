"""
Broker parsers module.
"""

from .generic_csv import GenericCSVOptions, GenericCSVParser, create_generic_parser
from .interactive_brokers import InteractiveBrokersParser, create_interactive_brokers_parser
from .metatrader import MetaTraderParser, create_metatrader_parser
from .td_ameritrade import TDAmeritradeParser, create_td_ameritrade_parser

__all__ = [
    'GenericCSVOptions',
    'GenericCSVParser',
    'create_generic_parser',
    'InteractiveBrokersParser',
    'create_interactive_brokers_parser',
    'MetaTraderParser',
    'create_metatrader_parser',
    'TDAmeritradeParser',
    'create_td_ameritrade_parser',
]
