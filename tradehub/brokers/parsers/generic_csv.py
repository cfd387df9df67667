"""
Generic CSV Parser

Flexible CSV parser with configurable column mappings, used when the broker
has no dedicated parser.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Union

from ...core.models import AssetClass, OrderSide
from ..broker_base import (
    BrokerInfo, BrokerParser, ColumnMapping, ParsedTrade, ParseResult, ValidationResult
)
from ..csv_utils import (
    determine_asset_class, get_column_value, has_column, parse_date, parse_number,
    parse_side, read_csv, row_to_dict
)

logger = logging.getLogger(__name__)

DEFAULT_COLUMN_MAPPING = ColumnMapping(
    symbol=('symbol', 'ticker', 'instrument', 'asset', 'pair', 'market'),
    side=('side', 'type', 'direction', 'action', 'trade_type'),
    quantity=('quantity', 'qty', 'size', 'amount', 'volume', 'shares'),
    price=('price', 'entry_price', 'fill_price', 'avg_price', 'execution_price'),
    date=('date', 'time', 'datetime', 'timestamp', 'executed_at', 'trade_date'),
    exit_price=('exit_price', 'close_price', 'sell_price'),
    exit_date=('exit_date', 'close_date', 'closed_at'),
    fee=('fee', 'commission', 'fees', 'commissions', 'cost'),
    pnl=('pnl', 'profit', 'pl', 'realized_pnl', 'net_pnl', 'gain_loss'),
    order_id=('order_id', 'trade_id', 'id', 'execution_id'),
    order_type=('order_type', 'type'),
    notes=('notes', 'comment', 'comments', 'description'),
)

# Columns that must be present for a file to be parseable
REQUIRED_COLUMNS = (('symbol', 'Symbol'), ('quantity', 'Quantity'), ('price', 'Price'), ('date', 'Date'))


@dataclass
class GenericCSVOptions:
    """
    Options for the generic parser.

    ``column_mapping`` overrides individual fields of the default mapping,
    e.g. ``{'symbol': ['Contract'], 'date': 'Filled At'}``.
    """
    delimiter: str = ','
    skip_rows: int = 0
    date_format: Optional[str] = None
    column_mapping: Dict[str, Union[str, Sequence[str]]] = field(default_factory=dict)
    asset_class: Optional[AssetClass] = None


def _names(value: Union[str, Sequence[str]]) -> List[str]:
    return [value] if isinstance(value, str) else list(value)


class GenericCSVParser(BrokerParser):
    """Parser for arbitrary trade CSVs with header based column matching."""

    def __init__(self, options: Optional[GenericCSVOptions] = None):
        super().__init__('generic', 'Generic CSV')
        self.options = options or GenericCSVOptions()
        self.column_mapping = replace(DEFAULT_COLUMN_MAPPING, **self.options.column_mapping)

    def set_column_mapping(self, **overrides: Union[str, Sequence[str]]) -> None:
        """Override the candidate column names of individual fields."""
        self.column_mapping = replace(self.column_mapping, **overrides)

    def get_broker_info(self) -> BrokerInfo:
        return BrokerInfo(
            id='generic',
            name='Generic CSV',
            supported_asset_classes=list(AssetClass),
            csv_format='standard',
            date_format=self.options.date_format,
            delimiter=self.options.delimiter,
            skip_rows=self.options.skip_rows
        )

    def validate(self, csv_content: str) -> ValidationResult:
        headers, rows = read_csv(csv_content, self.options.delimiter, self.options.skip_rows)

        if not headers:
            return ValidationResult(False, ['No headers found in CSV'])
        if not rows:
            return ValidationResult(False, ['No data rows found in CSV'])

        errors = []
        for attr, label in REQUIRED_COLUMNS:
            names = _names(getattr(self.column_mapping, attr))
            if not has_column(headers, names):
                errors.append(f"Missing required column: {label} (expected: {', '.join(names)})")

        return ValidationResult(not errors, errors)

    def parse(self, csv_content: str) -> ParseResult:
        result = ParseResult()

        validation = self.validate(csv_content)
        if not validation.valid:
            result.errors = validation.errors
            return result

        headers, rows = read_csv(csv_content, self.options.delimiter, self.options.skip_rows)
        result.total_rows = len(rows)
        mapping = self.column_mapping

        for i, row in enumerate(rows):
            # 1-indexed, plus the header line and any skipped preamble
            row_num = i + 2 + self.options.skip_rows
            try:
                trade = self._parse_row(row, headers, mapping, row_num, result)
            except (ValueError, TypeError, IndexError) as e:
                result.add_skip(row_num, f"Parse error - {e}")
                continue
            if trade is not None:
                result.add_trade(trade)

        result.success = result.parsed_rows > 0
        if result.parsed_rows == 0 and result.total_rows > 0:
            result.errors.append('Failed to parse any trades from CSV')

        logger.info(f"Generic CSV: parsed {result.parsed_rows}/{result.total_rows} rows "
                    f"({result.skipped_rows} skipped)")
        return result

    def _parse_row(self, row: List[str], headers: List[str], mapping: ColumnMapping,
                   row_num: int, result: ParseResult) -> Optional[ParsedTrade]:
        symbol = get_column_value(row, headers, mapping.symbol)
        if not symbol:
            result.add_skip(row_num, 'Missing symbol, skipping')
            return None

        quantity_str = get_column_value(row, headers, mapping.quantity)
        quantity = parse_number(quantity_str)
        if not quantity:
            result.add_skip(row_num, f'Invalid quantity "{quantity_str or ""}", skipping')
            return None

        price_str = get_column_value(row, headers, mapping.price)
        price = parse_number(price_str)
        if price is None:
            result.add_skip(row_num, f'Invalid price "{price_str or ""}", skipping')
            return None

        date_str = get_column_value(row, headers, mapping.date)
        entry_date = parse_date(date_str)
        if entry_date is None:
            result.add_skip(row_num, f'Invalid date "{date_str or ""}", skipping')
            return None

        side = parse_side(get_column_value(row, headers, mapping.side))
        if side is None:
            # A negative quantity marks a sell
            side = OrderSide.SELL if quantity < 0 else OrderSide.BUY

        return ParsedTrade(
            external_id=get_column_value(row, headers, mapping.order_id) or None,
            symbol=symbol.upper(),
            asset_class=self.options.asset_class or determine_asset_class(symbol),
            side=side,
            quantity=abs(quantity),
            entry_price=price,
            exit_price=parse_number(get_column_value(row, headers, mapping.exit_price)),
            fee=parse_number(get_column_value(row, headers, mapping.fee)),
            realized_pnl=parse_number(get_column_value(row, headers, mapping.pnl)),
            entry_date=entry_date,
            exit_date=parse_date(get_column_value(row, headers, mapping.exit_date)),
            order_type=get_column_value(row, headers, mapping.order_type) or None,
            notes=get_column_value(row, headers, mapping.notes) or None,
            import_source='generic_csv',
            raw_data=row_to_dict(headers, row)
        )


def create_generic_parser(options: Optional[GenericCSVOptions] = None) -> GenericCSVParser:
    return GenericCSVParser(options)
