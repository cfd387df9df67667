"""
Broker Registry

Registry of supported broker export formats, parser creation, content based
broker detection and the one-call ``parse_trades_csv`` entry point.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from ..core.errors import ValidationError
from ..core.models import AssetClass
from .broker_base import BrokerInfo, BrokerParser, ParseResult
from .parsers import GenericCSVParser, InteractiveBrokersParser, MetaTraderParser, TDAmeritradeParser

logger = logging.getLogger(__name__)

BROKER_REGISTRY: Dict[str, BrokerInfo] = {
    'td_ameritrade': BrokerInfo(
        id='td_ameritrade', name='TD Ameritrade',
        supported_asset_classes=[AssetClass.STOCKS, AssetClass.OPTIONS],
        csv_format='custom', date_format='MM/DD/YYYY', delimiter=','),
    'interactive_brokers': BrokerInfo(
        id='interactive_brokers', name='Interactive Brokers',
        supported_asset_classes=[AssetClass.STOCKS, AssetClass.FOREX, AssetClass.FUTURES, AssetClass.OPTIONS],
        csv_format='custom', date_format='YYYY-MM-DD', delimiter=','),
    'metatrader': BrokerInfo(
        id='metatrader', name='MetaTrader 4/5',
        supported_asset_classes=[AssetClass.FOREX, AssetClass.CRYPTO],
        csv_format='custom', date_format='YYYY.MM.DD', delimiter='\t'),
    'robinhood': BrokerInfo(
        id='robinhood', name='Robinhood',
        supported_asset_classes=[AssetClass.STOCKS, AssetClass.OPTIONS, AssetClass.CRYPTO],
        csv_format='custom', date_format='YYYY-MM-DD', delimiter=','),
    'webull': BrokerInfo(
        id='webull', name='Webull',
        supported_asset_classes=[AssetClass.STOCKS, AssetClass.OPTIONS, AssetClass.CRYPTO],
        csv_format='custom', date_format='MM/DD/YYYY', delimiter=','),
    'generic': BrokerInfo(
        id='generic', name='Generic CSV',
        supported_asset_classes=list(AssetClass),
        csv_format='standard', delimiter=','),
}

# Brokers listed in the registry without a dedicated parser use the generic one
_PARSERS: Dict[str, Type[BrokerParser]] = {
    'td_ameritrade': TDAmeritradeParser,
    'interactive_brokers': InteractiveBrokersParser,
    'metatrader': MetaTraderParser,
}


@dataclass
class ImportResult:
    """Parse outcome together with the broker that produced it."""
    broker_id: str
    result: ParseResult

    def to_dict(self) -> Dict[str, Any]:
        return {'broker_id': self.broker_id, 'result': self.result.to_dict()}


def create_broker_parser(broker_id: str) -> BrokerParser:
    """
    Create the parser for a broker.

    Args:
        broker_id: Registry id

    Returns:
        Dedicated parser, or the generic parser for listed brokers without one

    Raises:
        ValidationError: Unknown broker id
    """
    if broker_id not in BROKER_REGISTRY:
        raise ValidationError(f"Unknown broker: {broker_id}. Available: {', '.join(BROKER_REGISTRY)}")

    parser_class = _PARSERS.get(broker_id)
    if parser_class is None:
        return GenericCSVParser()
    return parser_class()


def get_supported_brokers() -> List[Dict[str, Any]]:
    return [
        {'id': info.id, 'name': info.name, 'asset_classes': [a.value for a in info.supported_asset_classes]}
        for info in BROKER_REGISTRY.values()
    ]


def detect_broker(csv_content: str) -> str:
    """
    Guess the broker that produced an export.

    Interactive Brokers is recognised by name or its ``Trades,Header``
    section marker, TD Ameritrade by name (or Schwab), MetaTrader by name or
    by a header row holding ticket, symbol and profit or swap columns.

    Returns:
        Broker id, ``generic`` when nothing matches
    """
    if 'Interactive Brokers' in csv_content or 'Trades,Header' in csv_content:
        return 'interactive_brokers'

    if 'TD Ameritrade' in csv_content or 'Schwab' in csv_content:
        return 'td_ameritrade'

    if 'MetaTrader' in csv_content or 'MT4' in csv_content or 'MT5' in csv_content:
        return 'metatrader'

    lines = csv_content.splitlines()
    first_line = lines[0].lower() if lines else ''
    if 'ticket' in first_line and 'symbol' in first_line and ('profit' in first_line or 'swap' in first_line):
        return 'metatrader'

    return 'generic'


def parse_trades_csv(csv_content: str, broker_id: Optional[str] = None) -> ImportResult:
    """
    Parse an export with an explicit or detected broker.

    Args:
        csv_content: Raw CSV text
        broker_id: Registry id; detected from the content when omitted

    Returns:
        ImportResult with the broker id used and the parse result
    """
    selected = broker_id or detect_broker(csv_content)
    parser = create_broker_parser(selected)
    logger.info(f"Parsing trades CSV with {parser.broker_name} parser")
    return ImportResult(broker_id=selected, result=parser.parse(csv_content))
