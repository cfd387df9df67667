"""
TD Ameritrade / Charles Schwab Parser

Parses transaction history exports from TD Ameritrade (now Charles Schwab).
Symbol, side and option details are read from the free text description,
e.g. ``BOUGHT +100 AAPL @150.00`` or ``SOLD -1 AAPL 100 21 JAN 22 150 CALL @1.50``.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from ...core.models import AssetClass, OrderSide
from ..broker_base import (
    BrokerInfo, BrokerParser, OptionType, ParsedTrade, ParseResult, ValidationResult
)
from ..csv_utils import get_column_value, parse_date, parse_number, read_csv, row_to_dict

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = ('date', 'description', 'quantity', 'price', 'amount')

# Descriptions of rows that are fills rather than transfers or dividends
TRADE_KEYWORDS = ('bought', 'sold', 'buy', 'sell', 'opening', 'closing')

# SYMBOL MULTIPLIER DD MON YY STRIKE CALL|PUT
OPTION_PATTERN = re.compile(r'([A-Z]+)\s+(\d+)\s+(\d{1,2}\s+[A-Z]{3}\s+\d{2})\s+(\d+(?:\.\d+)?)\s+(CALL|PUT)')
STOCK_AT_PATTERN = re.compile(r'([A-Z]+)\s*@')
STOCK_LEADING_PATTERN = re.compile(r'^(?:BOUGHT|SOLD)\s+[+-]?\d+\s+([A-Z]+)')


@dataclass
class DescriptionInfo:
    """Fields recovered from a transaction description."""
    symbol: Optional[str]
    side: Optional[OrderSide]
    asset_class: AssetClass = AssetClass.STOCKS
    option_type: Optional[OptionType] = None
    strike_price: Optional[float] = None
    expiration_date: Optional[str] = None


def parse_description(description: str) -> DescriptionInfo:
    """
    Extract symbol, side and option leg from a TD Ameritrade description.

    Args:
        description: Transaction description text

    Returns:
        DescriptionInfo; ``symbol`` is None when nothing could be recognised
    """
    desc = description.upper()

    side = None
    if 'BOUGHT' in desc or 'BUY TO OPEN' in desc or 'BUY TO CLOSE' in desc:
        side = OrderSide.BUY
    elif 'SOLD' in desc or 'SELL TO OPEN' in desc or 'SELL TO CLOSE' in desc:
        side = OrderSide.SELL

    option_match = OPTION_PATTERN.search(desc)
    if option_match:
        return DescriptionInfo(
            symbol=option_match.group(1),
            side=side,
            asset_class=AssetClass.OPTIONS,
            option_type=OptionType(option_match.group(5).lower()),
            strike_price=float(option_match.group(4)),
            expiration_date=option_match.group(3)
        )

    stock_match = STOCK_AT_PATTERN.search(desc)
    leading_match = STOCK_LEADING_PATTERN.search(desc)
    symbol = (stock_match and stock_match.group(1)) or (leading_match and leading_match.group(1)) or None
    return DescriptionInfo(symbol=symbol, side=side)


class TDAmeritradeParser(BrokerParser):
    """Parser for TD Ameritrade transaction exports."""

    def __init__(self):
        super().__init__('td_ameritrade', 'TD Ameritrade')

    def get_broker_info(self) -> BrokerInfo:
        return BrokerInfo(
            id='td_ameritrade',
            name='TD Ameritrade / Charles Schwab',
            supported_asset_classes=[AssetClass.STOCKS, AssetClass.OPTIONS],
            csv_format='custom',
            date_format='MM/DD/YYYY',
            delimiter=','
        )

    def validate(self, csv_content: str) -> ValidationResult:
        headers, rows = read_csv(csv_content)
        if not headers:
            return ValidationResult(False, ['No headers found in CSV'])

        errors = []
        header_lower = [h.lower().strip() for h in headers]
        missing = [col for col in EXPECTED_COLUMNS if not any(col in h for h in header_lower)]
        if missing:
            errors.append(f"Missing expected columns: {', '.join(missing)}")
        if not rows:
            errors.append('No data rows found')

        return ValidationResult(not errors, errors)

    def parse(self, csv_content: str) -> ParseResult:
        result = ParseResult()

        headers, rows = read_csv(csv_content)
        if not headers:
            result.errors.append('No headers found in CSV')
            return result

        trade_rows = [row for row in rows if self._is_trade_row(row, headers)]
        result.total_rows = len(trade_rows)
        if not trade_rows:
            result.errors.append('No trade transactions found')
            return result

        for i, row in enumerate(trade_rows):
            row_num = i + 2
            try:
                trade = self._parse_row(row, headers, row_num, result)
            except (ValueError, TypeError, IndexError) as e:
                result.add_skip(row_num, f"Parse error - {e}")
                continue
            if trade is not None:
                result.add_trade(trade)

        result.success = result.parsed_rows > 0
        logger.info(f"TD Ameritrade: parsed {result.parsed_rows}/{result.total_rows} trade rows")
        return result

    @staticmethod
    def _is_trade_row(row: List[str], headers: List[str]) -> bool:
        desc = (get_column_value(row, headers, ['description', 'type', 'transaction type']) or '').lower()
        return any(keyword in desc for keyword in TRADE_KEYWORDS)

    def _parse_row(self, row: List[str], headers: List[str], row_num: int,
                   result: ParseResult) -> Optional[ParsedTrade]:
        date_str = get_column_value(row, headers, ['date', 'trade date', 'execution date'])
        entry_date = parse_date(date_str)
        if entry_date is None:
            result.add_skip(row_num, f'Invalid date "{date_str or ""}", skipping')
            return None

        description = get_column_value(row, headers, ['description', 'security description']) or ''
        info = parse_description(description)
        if not info.symbol:
            result.add_skip(row_num, f'Could not extract symbol from "{description}", skipping')
            return None

        quantity = parse_number(get_column_value(row, headers, ['quantity', 'qty', 'shares']))
        price = parse_number(get_column_value(row, headers, ['price', 'trade price', 'execution price']))
        amount = parse_number(get_column_value(row, headers, ['amount', 'net amount', 'principal']))
        fee = parse_number(get_column_value(row, headers, ['commission', 'fees', 'fee']))

        if not quantity:
            result.add_skip(row_num, 'Invalid quantity, skipping')
            return None

        if not price and amount:
            price = abs(amount / quantity)
        if not price:
            result.add_skip(row_num, 'Could not determine price, skipping')
            return None

        return ParsedTrade(
            symbol=info.symbol.upper(),
            asset_class=info.asset_class,
            side=info.side or OrderSide.BUY,
            quantity=abs(quantity),
            entry_price=price,
            option_type=info.option_type,
            strike_price=info.strike_price,
            expiration_date=info.expiration_date,
            fee=abs(fee or 0.0),
            fee_currency='USD',
            entry_date=entry_date,
            import_source='td_ameritrade',
            raw_data=row_to_dict(headers, row)
        )


def create_td_ameritrade_parser() -> TDAmeritradeParser:
    return TDAmeritradeParser()
