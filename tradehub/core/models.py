"""
Canonical Trading Models

Exchange and broker agnostic data structures that every adapter converges on.
Following Clean Code principles with clear, focused data structures.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class AssetClass(Enum):
    """Asset class enumeration."""
    CRYPTO = "crypto"
    STOCKS = "stocks"
    FOREX = "forex"
    FUTURES = "futures"
    OPTIONS = "options"


class OrderSide(Enum):
    """Order side enumeration."""
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """Order type enumeration."""
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"


class OrderStatus(Enum):
    """Canonical order status. Closed set; adapters map onto these six values."""
    PENDING = "pending"
    OPEN = "open"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class PositionSide(Enum):
    """Position side enumeration."""
    LONG = "long"
    SHORT = "short"


class MarginMode(Enum):
    """Margin mode enumeration."""
    CROSS = "cross"
    ISOLATED = "isolated"


class TimeInForce(Enum):
    """Time in force enumeration."""
    GTC = "gtc"
    IOC = "ioc"
    FOK = "fok"
    POST_ONLY = "post_only"


class MarketStatus(Enum):
    """Trading status of a market."""
    TRADING = "trading"
    HALT = "halt"
    BREAK = "break"


def _serialize(value: Any) -> Any:
    """Convert enums, datetimes and nested records into JSON friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    return value


class SerializableModel:
    """Mixin giving dataclass records a ``to_dict`` method."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary."""
        return {f.name: _serialize(getattr(self, f.name)) for f in fields(self)}


def utc_from_ms(timestamp_ms: Any) -> datetime:
    """
    Convert an epoch milliseconds value (int, float or numeric string) to an aware UTC datetime.

    Args:
        timestamp_ms: Epoch milliseconds

    Returns:
        Aware UTC datetime, or the epoch when the value is missing
    """
    try:
        return datetime.fromtimestamp(int(float(timestamp_ms)) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.fromtimestamp(0, tz=timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_from_iso(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp such as ``2024-01-15T10:30:00.123456Z``.

    Fractional seconds longer than microseconds are truncated. Naive values are
    taken as UTC; missing or malformed values give the epoch.
    """
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)

    text = value.strip().replace('Z', '+00:00')
    if '.' in text:
        head, _, tail = text.partition('.')
        digits = ''.join(ch for ch in tail if ch.isdigit())
        offset = tail[len(digits):]
        text = f"{head}.{digits[:6].ljust(6, '0')}{offset}"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp '{value}'")
        return datetime.fromtimestamp(0, tz=timezone.utc)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_float(value: Any, default: float = 0.0) -> float:
    """Parse an exchange numeric field, falling back to ``default`` for blanks."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def map_status(table: Dict[str, OrderStatus], native: Optional[str], exchange_id: str = "") -> OrderStatus:
    """
    Map a native order status onto the canonical set.

    Unmapped statuses default to PENDING and are logged so new exchange
    states remain visible.

    Args:
        table: Native status to canonical status mapping
        native: Status string returned by the exchange
        exchange_id: Exchange identifier for logging

    Returns:
        Canonical order status
    """
    if native is not None and native in table:
        return table[native]
    logger.debug(f"[{exchange_id}] Unmapped order status '{native}', defaulting to pending")
    return OrderStatus.PENDING


@dataclass(frozen=True)
class ExchangeCredentials:
    """
    API credentials for one exchange account.

    Immutable per client instance. The secret and passphrase are masked in
    ``repr`` and ``to_dict`` so credentials never end up in logs.
    """
    api_key: str
    api_secret: str
    passphrase: Optional[str] = None
    subaccount: Optional[str] = None
    testnet: bool = False
    wallet_address: Optional[str] = None
    account_index: Optional[int] = None

    def __repr__(self) -> str:
        return (f"ExchangeCredentials(api_key={mask_key(self.api_key)!r}, api_secret='***', "
                f"passphrase={'***' if self.passphrase else None!r}, testnet={self.testnet})")

    __str__ = __repr__

    def to_dict(self) -> Dict[str, Any]:
        """Convert credentials to a dictionary with secrets hidden."""
        return {
            'api_key': mask_key(self.api_key),
            'api_secret': '***' if self.api_secret else None,
            'passphrase': '***' if self.passphrase else None,
            'subaccount': self.subaccount,
            'testnet': self.testnet,
            'wallet_address': self.wallet_address,
            'account_index': self.account_index,
        }


def mask_key(api_key: Optional[str]) -> str:
    """Show only the edges of an API key."""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "***"
    return f"{api_key[:4]}...{api_key[-4:]}"


@dataclass
class Balance(SerializableModel):
    """Balance of a single currency."""
    currency: str
    total: float
    available: float
    locked: float
    usd_value: Optional[float] = None


@dataclass
class WalletBalance(SerializableModel):
    """Aggregated account balance. Derived on every call, never cached."""
    account_type: str
    balances: List[Balance] = field(default_factory=list)
    total_equity_usd: float = 0.0
    available_margin_usd: float = 0.0
    used_margin_usd: float = 0.0
    margin_level: Optional[float] = None


@dataclass(frozen=True)
class Trade(SerializableModel):
    """A single fill. Trades are append-only facts."""
    id: str
    order_id: str
    symbol: str
    side: OrderSide
    price: float
    quantity: float
    fee: float
    fee_currency: str
    timestamp: datetime
    is_maker: bool = False
    category: Optional[str] = None
    realized_pnl: Optional[float] = None


@dataclass
class Order(SerializableModel):
    """Unified order representation."""
    id: str
    symbol: str
    side: OrderSide
    type: OrderType
    status: OrderStatus
    price: float
    quantity: float
    filled_quantity: float
    created_at: datetime
    updated_at: datetime
    client_order_id: Optional[str] = None
    average_price: Optional[float] = None
    stop_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    time_in_force: TimeInForce = TimeInForce.GTC
    leverage: Optional[float] = None
    margin_mode: Optional[MarginMode] = None


@dataclass
class Position(SerializableModel):
    """Unified position representation."""
    id: str
    symbol: str
    side: PositionSide
    quantity: float
    entry_price: float
    mark_price: float
    unrealized_pnl: float
    realized_pnl: float
    leverage: float
    margin_mode: MarginMode
    margin_used: float
    created_at: datetime
    liquidation_price: Optional[float] = None


@dataclass
class CreateOrderRequest(SerializableModel):
    """Order creation request."""
    symbol: str
    side: OrderSide
    type: OrderType
    quantity: float
    price: Optional[float] = None
    stop_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    time_in_force: Optional[TimeInForce] = None
    leverage: Optional[float] = None
    margin_mode: Optional[MarginMode] = None
    client_order_id: Optional[str] = None
    reduce_only: bool = False


@dataclass
class MarketInfo(SerializableModel):
    """Market/symbol trading rules."""
    symbol: str
    base_asset: str
    quote_asset: str
    status: MarketStatus
    min_quantity: float
    max_quantity: float
    quantity_precision: int
    min_price: float
    max_price: float
    price_precision: int
    min_notional: float
    tick_size: float
    is_spot: bool
    is_futures: bool
    is_margin_enabled: bool
    contract_size: Optional[float] = None
    max_leverage: Optional[float] = None


@dataclass
class OHLCV(SerializableModel):
    """Candlestick; timestamp in epoch milliseconds."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class RateLimits(SerializableModel):
    """Published API rate limits."""
    requests_per_second: int
    requests_per_minute: int
    orders_per_second: int
    orders_per_minute: int


@dataclass(frozen=True)
class ExchangeCapabilities(SerializableModel):
    """Static capability flags of an exchange adapter."""
    spot: bool
    futures: bool
    options: bool
    margin: bool
    cross_margin: bool
    isolated_margin: bool
    websocket: bool
    order_types: List[OrderType]
    max_leverage: float
    supported_timeframes: List[str]


@dataclass
class PositionSizeResult(SerializableModel):
    """Result of a risk based position sizing calculation."""
    position_size: float
    order_value: float
    margin_required: float
    leverage: float
    available_balance: float
    account_type: str
    can_open: bool
    reason: Optional[str] = None
    risk_reward_ratio: Optional[float] = None


@dataclass
class RiskMetrics(SerializableModel):
    """Risk ratios reported alongside a successful validation."""
    position_risk: float
    account_risk: float
    daily_loss_used: float
    total_loss_used: float


@dataclass
class RiskValidationResult(SerializableModel):
    """Result of a pre-trade risk validation."""
    valid: bool
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    risk_metrics: Optional[RiskMetrics] = None


CANONICAL_TIMEFRAMES = ['1m', '3m', '5m', '15m', '30m', '1h', '2h', '4h', '6h', '8h', '12h', '1d', '3d', '1w', '1M']
