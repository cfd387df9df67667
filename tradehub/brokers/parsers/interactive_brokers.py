"""
Interactive Brokers Parser

Parses IBKR activity statements. Statements are sectioned CSV: every line
starts with the section name and a row kind (``Trades,Header,...`` /
``Trades,Data,...``). Only the Trades section is read. Plain trade CSVs
without section markers are accepted too.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ...core.models import AssetClass, OrderSide
from ..broker_base import (
    BrokerInfo, BrokerParser, OptionType, ParsedTrade, ParseResult, ValidationResult
)
from ..csv_utils import (
    determine_asset_class, get_column_value, parse_date, parse_number, read_csv,
    row_to_dict, split_csv_line
)

logger = logging.getLogger(__name__)

Section = Tuple[List[str], List[List[str]]]

SECTION_HEADER_PATTERN = re.compile(r'^([^,]+),header', re.IGNORECASE)

# OCC style option symbol: AAPL 230120C00150000 (YYMMDD, C/P, strike x 1000)
OCC_OPTION_PATTERN = re.compile(r'([A-Z]+)\s*(\d{6})([CP])(\d+)')


@dataclass
class OptionDetails:
    option_type: OptionType
    strike_price: float
    expiration_date: str


def parse_option_symbol(symbol: str) -> Optional[OptionDetails]:
    """
    Decode an OCC option symbol.

    Args:
        symbol: e.g. ``AAPL 230120C00150000``

    Returns:
        OptionDetails (call, strike 150.0, expiration 2023-01-20), or None
    """
    match = OCC_OPTION_PATTERN.search(symbol)
    if not match:
        return None

    expiry = match.group(2)
    return OptionDetails(
        option_type=OptionType.CALL if match.group(3) == 'C' else OptionType.PUT,
        strike_price=int(match.group(4)) / 1000,
        expiration_date=f"{2000 + int(expiry[:2])}-{expiry[2:4]}-{expiry[4:6]}"
    )


def parse_symbol_and_class(symbol: str, category: Optional[str]) -> Tuple[str, AssetClass]:
    """Resolve the traded symbol and asset class from the IB asset category."""
    cat = (category or '').lower()
    if 'forex' in cat or 'cash' in cat:
        return symbol.replace('.', ''), AssetClass.FOREX
    if 'fut' in cat:
        return symbol, AssetClass.FUTURES
    if 'opt' in cat:
        underlying = re.match(r'^([A-Z]+)', symbol)
        return (underlying.group(1) if underlying else symbol), AssetClass.OPTIONS
    if 'stock' in cat or 'stk' in cat:
        return symbol, AssetClass.STOCKS
    return symbol, determine_asset_class(symbol)


def extract_trades_sections(csv_content: str) -> List[Section]:
    """
    Extract the Trades section(s) of an activity statement.

    Each ``Trades,Header`` line starts a block whose ``Trades,Data`` lines are
    read against that header. The block ends at the next header of another
    section. The leading section name and row kind columns are dropped.

    Returns:
        List of (headers, rows); a single plain CSV block when the content
        has no section markers
    """
    lines = csv_content.splitlines()
    if not any(line.lower().startswith('trades,header') for line in lines):
        headers, rows = read_csv(csv_content)
        return [(headers, rows)] if headers else []

    sections: List[Section] = []
    current: Optional[Section] = None

    for line in lines:
        lower = line.lower()
        if lower.startswith('trades,header'):
            current = (split_csv_line(line)[2:], [])
            sections.append(current)
            continue

        if current is None:
            continue

        if lower.startswith('trades,data'):
            current[1].append(split_csv_line(line)[2:])
            continue

        header_match = SECTION_HEADER_PATTERN.match(line)
        if header_match and header_match.group(1).strip().lower() != 'trades':
            current = None

    return sections


class InteractiveBrokersParser(BrokerParser):
    """Parser for Interactive Brokers activity statements."""

    def __init__(self):
        super().__init__('interactive_brokers', 'Interactive Brokers')

    def get_broker_info(self) -> BrokerInfo:
        return BrokerInfo(
            id='interactive_brokers',
            name='Interactive Brokers',
            supported_asset_classes=[AssetClass.STOCKS, AssetClass.FOREX,
                                     AssetClass.FUTURES, AssetClass.OPTIONS],
            csv_format='custom',
            date_format='YYYY-MM-DD',
            delimiter=','
        )

    def validate(self, csv_content: str) -> ValidationResult:
        errors = []
        if 'trades' not in csv_content.lower():
            errors.append('Could not find Trades section in IBKR export')

        sections = extract_trades_sections(csv_content)
        if not sections:
            errors.append('No trade headers found')
        elif not any(rows for _, rows in sections):
            errors.append('No trade data rows found')

        return ValidationResult(not errors, errors)

    def parse(self, csv_content: str) -> ParseResult:
        result = ParseResult()

        sections = extract_trades_sections(csv_content)
        if not sections:
            result.errors.append('Could not extract trade headers from IBKR export')
            return result

        row_num = 0
        for headers, rows in sections:
            result.total_rows += len(rows)
            for row in rows:
                row_num += 1
                try:
                    trade = self._parse_row(row, headers, row_num, result)
                except (ValueError, TypeError, IndexError) as e:
                    result.add_skip(row_num, f"Parse error - {e}")
                    continue
                if trade is not None:
                    result.add_trade(trade)

        result.success = result.parsed_rows > 0
        logger.info(f"Interactive Brokers: parsed {result.parsed_rows}/{result.total_rows} rows")
        return result

    def _parse_row(self, row: List[str], headers: List[str], row_num: int,
                   result: ParseResult) -> Optional[ParsedTrade]:
        symbol_raw = get_column_value(row, headers, ['symbol', 'underlying symbol'])
        if not symbol_raw:
            result.add_skip(row_num, 'Missing symbol, skipping')
            return None

        category = get_column_value(row, headers, ['asset category', 'asset class', 'type'])
        symbol, asset_class = parse_symbol_and_class(symbol_raw, category)

        date_str = get_column_value(row, headers, ['date/time', 'date', 'trade date'])
        entry_date = parse_date(date_str)
        if entry_date is None:
            result.add_skip(row_num, f'Invalid date "{date_str or ""}", skipping')
            return None

        quantity = parse_number(get_column_value(row, headers, ['quantity', 'qty', 'shares']))
        price = parse_number(get_column_value(row, headers, ['t. price', 'trade price', 'price', 'execution price']))
        if not quantity or not price:
            result.add_skip(row_num, 'Invalid quantity or price, skipping')
            return None

        fee = parse_number(get_column_value(row, headers, ['comm/fee', 'commission', 'fee', 'ibcommission']))

        trade = ParsedTrade(
            external_id=get_column_value(row, headers, ['order id', 'orderid', 'execution id']) or None,
            symbol=symbol.upper(),
            asset_class=asset_class,
            side=OrderSide.BUY if quantity > 0 else OrderSide.SELL,
            quantity=abs(quantity),
            entry_price=price,
            fee=abs(fee or 0.0),
            fee_currency=get_column_value(row, headers, ['currency', 'cur.']) or 'USD',
            realized_pnl=parse_number(get_column_value(row, headers,
                                                       ['realized p/l', 'realized pnl', 'profit/loss', 'pnl'])),
            entry_date=entry_date,
            import_source='interactive_brokers',
            raw_data=row_to_dict(headers, row)
        )

        if asset_class is AssetClass.OPTIONS:
            details = parse_option_symbol(symbol_raw)
            if details:
                trade.option_type = details.option_type
                trade.strike_price = details.strike_price
                trade.expiration_date = details.expiration_date

        return trade


def create_interactive_brokers_parser() -> InteractiveBrokersParser:
    return InteractiveBrokersParser()
