"""
MetaTrader 4/5 Parser

Parses account history exports from MetaTrader 4 and 5. Exports may be tab,
semicolon or comma delimited and use ``YYYY.MM.DD HH:MM:SS`` timestamps.
Volumes are in lots and converted to units.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from ...core.models import AssetClass
from ..broker_base import BrokerInfo, BrokerParser, ParsedTrade, ParseResult, ValidationResult
from ..csv_utils import (
    detect_delimiter, determine_asset_class, get_column_value, parse_date, parse_number,
    parse_side, read_csv, row_to_dict
)

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = ('symbol', 'type', 'volume', 'open price', 'close price')

# Account operations that are not trades
NON_TRADE_TYPES = ('balance', 'credit', 'deposit', 'withdrawal')

MT_DATE_PATTERN = re.compile(r'(\d{4})\.(\d{2})\.(\d{2})\s*(\d{2})?:?(\d{2})?:?(\d{2})?')
SYMBOL_SUFFIX_PATTERN = re.compile(r'\.(m|pro|mini|ecn|raw|std)$', re.IGNORECASE)

STANDARD_FOREX_LOT = 100_000
GOLD_LOT = 100
SILVER_LOT = 5_000
INDEX_SYMBOLS = ('US30', 'US500', 'NAS100', 'DAX30', 'FTSE100', 'DJ30', 'SPX500')


def parse_mt_date(value: Optional[str]) -> Optional[datetime]:
    """Parse ``2023.01.15 10:30:00`` or ``2023.01.15``, falling back to generic date parsing."""
    if not value:
        return None

    match = MT_DATE_PATTERN.search(value)
    if match:
        year, month, day, hour, minute, second = match.groups()
        try:
            return datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0),
                            int(second or 0), tzinfo=timezone.utc)
        except ValueError:
            return None

    return parse_date(value)


def strip_symbol_suffix(symbol: str) -> str:
    """Drop broker account suffixes such as ``.m`` or ``.ecn``."""
    return SYMBOL_SUFFIX_PATTERN.sub('', symbol).upper()


def normalize_symbol(symbol: str) -> str:
    """``EURUSD.m`` becomes ``EUR/USD``; other symbols only lose their suffix."""
    normalized = strip_symbol_suffix(symbol)
    if len(normalized) == 6 and '/' not in normalized:
        return f"{normalized[:3]}/{normalized[3:]}"
    return normalized


def lots_to_units(lots: float, symbol: str) -> float:
    """
    Convert a lot volume into units of the underlying.

    A standard forex lot is 100,000 units, a gold lot 100 oz and a silver
    lot 5,000 oz. Indices and crypto CFDs trade one unit per lot.
    """
    sym = strip_symbol_suffix(symbol)

    if determine_asset_class(sym) is AssetClass.FOREX:
        return lots * STANDARD_FOREX_LOT
    if any(index in sym for index in INDEX_SYMBOLS):
        return lots
    if 'XAU' in sym or 'GOLD' in sym:
        return lots * GOLD_LOT
    if 'XAG' in sym or 'SILVER' in sym:
        return lots * SILVER_LOT
    return lots


class MetaTraderParser(BrokerParser):
    """Parser for MetaTrader 4/5 history exports."""

    def __init__(self):
        super().__init__('metatrader', 'MetaTrader 4/5')

    def get_broker_info(self) -> BrokerInfo:
        return BrokerInfo(
            id='metatrader',
            name='MetaTrader 4/5',
            supported_asset_classes=[AssetClass.FOREX, AssetClass.CRYPTO],
            csv_format='custom',
            date_format='YYYY.MM.DD',
            delimiter='\t'
        )

    def validate(self, csv_content: str) -> ValidationResult:
        headers, rows = read_csv(csv_content, detect_delimiter(csv_content))
        if not headers:
            return ValidationResult(False, ['No headers found in export'])

        errors = []
        header_lower = [h.lower().strip() for h in headers]
        missing = [
            col for col in EXPECTED_COLUMNS
            if not any(col in h or col.replace(' ', '') in h for h in header_lower)
        ]
        if len(missing) > 2:
            errors.append(f"Missing expected columns. Found: {', '.join(headers)}")
        if not rows:
            errors.append('No trade data found')

        return ValidationResult(not errors, errors)

    def parse(self, csv_content: str) -> ParseResult:
        result = ParseResult()

        headers, rows = read_csv(csv_content, detect_delimiter(csv_content))
        if not headers:
            result.errors.append('No headers found in export')
            return result

        trade_rows = [row for row in rows if self._is_trade_row(row, headers)]
        result.total_rows = len(trade_rows)

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
        logger.info(f"MetaTrader: parsed {result.parsed_rows}/{result.total_rows} rows "
                    f"({len(rows) - len(trade_rows)} account operations ignored)")
        return result

    @staticmethod
    def _is_trade_row(row: List[str], headers: List[str]) -> bool:
        row_type = (get_column_value(row, headers, ['type', 'order type']) or '').lower()
        return row_type not in NON_TRADE_TYPES

    def _parse_row(self, row: List[str], headers: List[str], row_num: int,
                   result: ParseResult) -> Optional[ParsedTrade]:
        symbol = get_column_value(row, headers, ['symbol', 'instrument', 'item'])
        if not symbol:
            result.add_skip(row_num, 'Missing symbol, skipping')
            return None

        type_str = get_column_value(row, headers, ['type', 'order type', 'direction'])
        side = parse_side(type_str)
        if side is None:
            result.add_skip(row_num, f'Invalid type "{type_str or ""}", skipping')
            return None

        volume_str = get_column_value(row, headers, ['volume', 'lots', 'size'])
        volume = parse_number(volume_str)
        if not volume:
            result.add_skip(row_num, f'Invalid volume "{volume_str or ""}", skipping')
            return None

        open_price = parse_number(get_column_value(row, headers, ['open price', 'openprice', 'entry price', 'price']))
        close_price = parse_number(get_column_value(row, headers, ['close price', 'closeprice', 'exit price']))
        if not open_price:
            result.add_skip(row_num, 'Invalid open price, skipping')
            return None

        open_time = get_column_value(row, headers, ['open time', 'opentime', 'time', 'open date'])
        entry_date = parse_mt_date(open_time)
        if entry_date is None:
            result.add_skip(row_num, f'Invalid open time "{open_time or ""}", skipping')
            return None
        exit_date = parse_mt_date(get_column_value(row, headers, ['close time', 'closetime', 'close date']))

        swap = parse_number(get_column_value(row, headers, ['swap', 'rollover'])) or 0.0
        commission = abs(parse_number(get_column_value(row, headers, ['commission', 'comm'])) or 0.0)

        magic = get_column_value(row, headers, ['magic', 'magic number'])
        comment = get_column_value(row, headers, ['comment', 'note', 'notes'])
        notes = ' | '.join(part for part in (magic and f"Magic: {magic}", comment) if part)

        currency = get_column_value(row, headers, ['currency', 'account currency'])

        return ParsedTrade(
            external_id=get_column_value(row, headers, ['ticket', 'order', 'order id', 'deal']) or None,
            symbol=normalize_symbol(symbol),
            asset_class=determine_asset_class(strip_symbol_suffix(symbol)),
            side=side,
            quantity=lots_to_units(volume, symbol),
            entry_price=open_price,
            exit_price=close_price,
            fee=commission + abs(swap),
            fee_currency=currency.upper() if currency else 'USD',
            realized_pnl=parse_number(get_column_value(row, headers, ['profit', 'pnl', 'result', 'net profit'])),
            entry_date=entry_date,
            exit_date=exit_date,
            notes=notes or None,
            import_source='metatrader',
            raw_data=row_to_dict(headers, row)
        )


def create_metatrader_parser() -> MetaTraderParser:
    return MetaTraderParser()
