"""
CSV Utilities

Tokenizing and value parsing helpers shared by the broker parsers.
"""

import csv
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..core.models import AssetClass, OrderSide

# Currency symbols and thousands separators stripped before number parsing
_NUMBER_NOISE = re.compile(r'[$€£¥,]')

# Explicit date-time layouts tried after ISO-8601
_DATETIME_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d, %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%m/%d/%Y %H:%M:%S',
    '%m/%d/%Y %H:%M',
)

# MDY is tried before DMY; DMY only wins when MDY validation fails
_DATE_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})'), 'MDY'),
    (re.compile(r'^(\d{1,2})-(\d{1,2})-(\d{4})'), 'MDY'),
    (re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})'), 'DMY'),
    (re.compile(r'^(\d{1,2})-(\d{1,2})-(\d{4})'), 'DMY'),
    (re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})'), 'YMD'),
    (re.compile(r'^(\d{4})/(\d{1,2})/(\d{1,2})'), 'YMD'),
)

BUY_TERMS = ('buy', 'bought', 'long', 'open long', 'b', 'bid')
SELL_TERMS = ('sell', 'sold', 'short', 'open short', 's', 'ask')

_CRYPTO_PATTERNS = (
    re.compile(r'^(BTC|ETH|XRP|SOL|ADA|DOGE|DOT|LINK|AVAX|MATIC)', re.IGNORECASE),
    re.compile(r'(USDT|USDC|BUSD|DAI)$', re.IGNORECASE),
    re.compile(r'^[A-Z]{3,5}[-/](USDT|USDC|BTC|ETH)$', re.IGNORECASE),
)

_FOREX_PATTERNS = (
    re.compile(r'^(EUR|GBP|USD|JPY|CHF|AUD|NZD|CAD)(EUR|GBP|USD|JPY|CHF|AUD|NZD|CAD)$', re.IGNORECASE),
    re.compile(r'^[A-Z]{3}/[A-Z]{3}$'),
)

_OPTION_PATTERNS = (
    re.compile(r'\d{6}[CP]\d+', re.IGNORECASE),
    re.compile(r'^[A-Z]+\s*\d+[CP]', re.IGNORECASE),
)

_FUTURES_PATTERNS = (
    re.compile(r'^(ES|NQ|YM|CL|GC|SI|ZB|ZN|6E|6J)', re.IGNORECASE),
    re.compile(r'[A-Z]+[FGHJKMNQUVXZ]\d{2}$', re.IGNORECASE),
)


def split_csv_line(line: str, delimiter: str = ',') -> List[str]:
    """
    Split one CSV line, honouring quotes and doubled quotes.

    Args:
        line: Raw line
        delimiter: Field delimiter

    Returns:
        Trimmed field values
    """
    fields = next(csv.reader([line], delimiter=delimiter), [])
    return [value.strip() for value in fields]


def read_csv(content: str, delimiter: str = ',', skip_rows: int = 0) -> Tuple[List[str], List[List[str]]]:
    """
    Read CSV text into a header row and data rows.

    Blank lines are ignored. ``skip_rows`` drops leading preamble lines
    before the header.

    Returns:
        Tuple of (headers, rows); both empty when nothing is left
    """
    lines = [line for line in content.splitlines() if line.strip()]
    lines = lines[skip_rows:]
    if not lines:
        return [], []

    headers = split_csv_line(lines[0], delimiter)
    rows = [split_csv_line(line, delimiter) for line in lines[1:]]
    return headers, rows


def get_column_value(row: Sequence[str], headers: Sequence[str],
                     names: Union[str, Sequence[str]]) -> Optional[str]:
    """
    Value of the first candidate column present in the headers.

    Args:
        row: Data row
        headers: Header row
        names: Candidate column name or names, case-insensitive

    Returns:
        Trimmed cell value, or None when no candidate column exists
    """
    if isinstance(names, str):
        names = [names]

    lowered = [h.strip().lower() for h in headers]
    for name in names:
        target = name.strip().lower()
        if target in lowered:
            index = lowered.index(target)
            if index < len(row):
                return row[index].strip()
    return None


def has_column(headers: Sequence[str], names: Union[str, Sequence[str]]) -> bool:
    if isinstance(names, str):
        names = [names]
    lowered = {h.strip().lower() for h in headers}
    return any(name.strip().lower() in lowered for name in names)


def parse_number(value: Optional[str]) -> Optional[float]:
    """
    Parse a broker number such as ``$1,234.50`` or ``(12.00)``.

    Parentheses mark negative values, as in accounting exports.

    Returns:
        Float value, or None when the value is empty or not numeric
    """
    if not value:
        return None

    cleaned = _NUMBER_NOISE.sub('', value).strip()
    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = '-' + cleaned[1:-1]

    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a broker date into an aware UTC datetime.

    ISO-8601 is tried first, then common date-time layouts, then
    month/day/year, day/month/year and year/month/day dates. A pattern only
    matches when the month, day and year (>= 1900) are valid.

    Returns:
        Aware UTC datetime, or None when the value cannot be read
    """
    if not value:
        return None
    value = value.strip()

    try:
        return _as_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
    except ValueError:
        pass

    for layout in _DATETIME_FORMATS:
        try:
            return _as_utc(datetime.strptime(value, layout))
        except ValueError:
            continue

    for pattern, order in _DATE_PATTERNS:
        match = pattern.match(value)
        if not match:
            continue
        first, second, third = (int(part) for part in match.groups())
        if order == 'MDY':
            month, day, year = first, second, third
        elif order == 'DMY':
            day, month, year = first, second, third
        else:
            year, month, day = first, second, third

        if year < 1900:
            continue
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            continue

    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_side(value: Optional[str]) -> Optional[OrderSide]:
    """Map broker side wording (buy, sold, long, s, ...) onto an order side."""
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in BUY_TERMS:
        return OrderSide.BUY
    if normalized in SELL_TERMS:
        return OrderSide.SELL
    return None


def determine_asset_class(symbol: str) -> AssetClass:
    """
    Guess the asset class of a symbol.

    Crypto, forex, option and futures patterns are checked in that order;
    anything else is treated as a stock.
    """
    if any(p.search(symbol) for p in _CRYPTO_PATTERNS):
        return AssetClass.CRYPTO
    if any(p.search(symbol) for p in _FOREX_PATTERNS):
        return AssetClass.FOREX
    if any(p.search(symbol) for p in _OPTION_PATTERNS):
        return AssetClass.OPTIONS
    if any(p.search(symbol) for p in _FUTURES_PATTERNS):
        return AssetClass.FUTURES
    return AssetClass.STOCKS


def detect_delimiter(content: str) -> str:
    """Pick tab, semicolon or comma from the counts in the first line."""
    first_line = content.splitlines()[0] if content else ''
    tabs = first_line.count('\t')
    commas = first_line.count(',')
    semicolons = first_line.count(';')

    if tabs > commas and tabs > semicolons:
        return '\t'
    if semicolons > commas:
        return ';'
    return ','


def row_to_dict(headers: Sequence[str], row: Sequence[str]) -> Dict[str, str]:
    """Raw source row keyed by header, kept on each trade for auditing."""
    return {header: row[i] if i < len(row) else '' for i, header in enumerate(headers)}
