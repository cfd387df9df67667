"""
Broker Parser Base

Contract and result records shared by every broker CSV parser.
Following Clean Code principles with clear, focused data structures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.models import AssetClass, OrderSide, SerializableModel


class OptionType(Enum):
    """Option contract type."""
    CALL = "call"
    PUT = "put"


@dataclass
class ParsedTrade(SerializableModel):
    """One trade read from a broker export."""
    symbol: str
    asset_class: AssetClass
    side: OrderSide
    quantity: float
    entry_price: float
    entry_date: datetime
    import_source: str
    external_id: Optional[str] = None
    base_asset: Optional[str] = None
    quote_asset: Optional[str] = None
    exit_price: Optional[float] = None
    option_type: Optional[OptionType] = None
    strike_price: Optional[float] = None
    expiration_date: Optional[str] = None
    fee: Optional[float] = None
    fee_currency: Optional[str] = None
    realized_pnl: Optional[float] = None
    exit_date: Optional[datetime] = None
    order_type: Optional[str] = None
    notes: Optional[str] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParseResult(SerializableModel):
    """
    Outcome of parsing one export.

    Row problems are recorded as warnings and skipped rows; ``errors`` only
    holds structural failures.
    """
    success: bool = False
    trades: List[ParsedTrade] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    total_rows: int = 0
    parsed_rows: int = 0
    skipped_rows: int = 0

    def add_trade(self, trade: ParsedTrade) -> None:
        self.trades.append(trade)
        self.parsed_rows += 1

    def add_skip(self, row_num: int, message: str) -> None:
        """Record a skipped row with its warning."""
        self.warnings.append(f"Row {row_num}: {message}")
        self.skipped_rows += 1


@dataclass
class ValidationResult(SerializableModel):
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BrokerInfo(SerializableModel):
    """Static description of a broker export format."""
    id: str
    name: str
    supported_asset_classes: List[AssetClass]
    csv_format: str = 'custom'
    date_format: Optional[str] = None
    delimiter: Optional[str] = ','
    skip_rows: int = 0


ColumnNames = Union[str, Sequence[str]]


@dataclass(frozen=True)
class ColumnMapping:
    """Candidate header names for each trade field, matched case-insensitively."""
    symbol: ColumnNames
    side: ColumnNames
    quantity: ColumnNames
    price: ColumnNames
    date: ColumnNames
    exit_price: ColumnNames = ()
    exit_date: ColumnNames = ()
    fee: ColumnNames = ()
    pnl: ColumnNames = ()
    order_id: ColumnNames = ()
    order_type: ColumnNames = ()
    notes: ColumnNames = ()


class BrokerParser(ABC):
    """
    Abstract contract for broker export parsers.

    Parsing is synchronous and never raises for a bad row; each one becomes
    a skip with a ``Row N: ...`` warning.
    """

    def __init__(self, broker_id: str, broker_name: str):
        self.broker_id = broker_id
        self.broker_name = broker_name

    @abstractmethod
    def get_broker_info(self) -> BrokerInfo:
        """Describe the export format this parser reads."""
        pass

    @abstractmethod
    def validate(self, csv_content: str) -> ValidationResult:
        """
        Check whether the content looks like this broker's export.

        Args:
            csv_content: Raw CSV text

        Returns:
            ValidationResult with the structural problems found
        """
        pass

    @abstractmethod
    def parse(self, csv_content: str) -> ParseResult:
        """
        Parse an export into trades.

        Args:
            csv_content: Raw CSV text

        Returns:
            ParseResult; ``success`` is True iff at least one row parsed
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(broker_id='{self.broker_id}')"
