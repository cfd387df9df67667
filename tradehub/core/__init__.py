"""
Core Module

Canonical models, error taxonomy and risk helpers shared by every adapter.
"""

from .errors import (
    ErrorCode, ErrorKind, TradeHubError, ValidationError, AuthError,
    DatabaseError, EncryptionError, NotFoundError, ExchangeError,
    AuthenticationError, InsufficientBalanceError, RateLimitError, OrderError,
    build_exchange_error, raise_for_code, redact, to_error_response
)
from .models import (
    AssetClass, OrderSide, OrderType, OrderStatus, PositionSide, MarginMode,
    TimeInForce, MarketStatus, ExchangeCredentials, Balance, WalletBalance,
    Trade, Order, Position, CreateOrderRequest, MarketInfo, OHLCV, RateLimits,
    ExchangeCapabilities, PositionSizeResult, RiskMetrics, RiskValidationResult
)
from .risk import calculate_position_size, validate_risk

__all__ = [
    # Errors
    'ErrorCode',
    'ErrorKind',
    'TradeHubError',
    'ValidationError',
    'AuthError',
    'DatabaseError',
    'EncryptionError',
    'NotFoundError',
    'ExchangeError',
    'AuthenticationError',
    'InsufficientBalanceError',
    'RateLimitError',
    'OrderError',
    'build_exchange_error',
    'raise_for_code',
    'redact',
    'to_error_response',

    # Models
    'AssetClass',
    'OrderSide',
    'OrderType',
    'OrderStatus',
    'PositionSide',
    'MarginMode',
    'TimeInForce',
    'MarketStatus',
    'ExchangeCredentials',
    'Balance',
    'WalletBalance',
    'Trade',
    'Order',
    'Position',
    'CreateOrderRequest',
    'MarketInfo',
    'OHLCV',
    'RateLimits',
    'ExchangeCapabilities',
    'PositionSizeResult',
    'RiskMetrics',
    'RiskValidationResult',

    # Risk
    'calculate_position_size',
    'validate_risk'
]
