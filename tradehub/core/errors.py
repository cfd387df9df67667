"""
Error Taxonomy

Typed errors raised at the point of failure, plus helpers that turn exchange
error codes into exceptions and exceptions into standardized error responses.
Following Clean Code principles with clear, single-purpose error types.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional
import logging

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Standardized error codes for the request layer."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    ENCRYPTION_ERROR = "ENCRYPTION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"


class TradeHubError(Exception):
    """Base class for all errors raised by this package."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(TradeHubError):
    code = ErrorCode.VALIDATION_ERROR


class AuthError(TradeHubError):
    code = ErrorCode.AUTH_ERROR


class DatabaseError(TradeHubError):
    code = ErrorCode.DATABASE_ERROR


class EncryptionError(TradeHubError):
    code = ErrorCode.ENCRYPTION_ERROR


class NotFoundError(TradeHubError):
    code = ErrorCode.NOT_FOUND


class ExchangeError(TradeHubError):
    """
    Error returned by, or while talking to, an exchange.

    ``exchange_code`` keeps the raw exchange code (or one of the local codes
    such as TIMEOUT, NETWORK_ERROR, UNKNOWN_EXCHANGE) so callers can decide
    retryability per code.
    """

    code = ErrorCode.EXTERNAL_API_ERROR

    def __init__(self, exchange_id: str, exchange_code: str, message: str, details: Any = None):
        super().__init__(f"[{exchange_id}] {message}", details)
        self.exchange_id = exchange_id
        self.exchange_code = str(exchange_code)
        self.raw_message = message


class AuthenticationError(ExchangeError):
    """Bad, expired or unauthorized exchange credentials. Not retryable."""

    code = ErrorCode.AUTH_ERROR

    def __init__(self, exchange_id: str, message: str, exchange_code: str = "AUTH_ERROR"):
        super().__init__(exchange_id, exchange_code, message)


class InsufficientBalanceError(ExchangeError):

    def __init__(self, exchange_id: str, required: Optional[float] = None,
                 available: Optional[float] = None, message: Optional[str] = None,
                 exchange_code: str = "INSUFFICIENT_BALANCE"):
        if message is None:
            message = f"Insufficient balance. Required: ${required or 0:.2f}, Available: ${available or 0:.2f}"
        super().__init__(exchange_id, exchange_code, message)
        self.required = required
        self.available = available


class RateLimitError(ExchangeError):

    def __init__(self, exchange_id: str, retry_after_ms: Optional[int] = None,
                 exchange_code: str = "RATE_LIMIT"):
        suffix = f". Retry after {retry_after_ms}ms" if retry_after_ms else ""
        super().__init__(exchange_id, exchange_code, f"Rate limit exceeded{suffix}")
        self.retry_after_ms = retry_after_ms


class OrderError(ExchangeError):

    def __init__(self, exchange_id: str, order_id: str, message: str, exchange_code: str = "ORDER_ERROR"):
        super().__init__(exchange_id, exchange_code, f"Order {order_id}: {message}")
        self.order_id = order_id


class ErrorKind(Enum):
    """Closed set of exchange failure kinds used by the per-exchange code tables."""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ORDER = "order"
    NOT_FOUND = "not_found"
    INVALID_PARAM = "invalid_param"
    UNAVAILABLE = "unavailable"


# Local code attached to each kind when the exchange-specific code is not kept
_KIND_CODES = {
    ErrorKind.NOT_FOUND: "SYMBOL_NOT_FOUND",
    ErrorKind.INVALID_PARAM: "INVALID_PARAM",
    ErrorKind.UNAVAILABLE: "SERVICE_UNAVAILABLE",
}


def build_exchange_error(exchange_id: str, code: Any, message: str,
                         table: Mapping[str, ErrorKind]) -> ExchangeError:
    """
    Build the exception matching an exchange error code.

    Args:
        exchange_id: Exchange identifier
        code: Raw exchange error code
        message: Exchange error message
        table: Exchange error code to ErrorKind lookup table

    Returns:
        ExchangeError subclass instance; unmapped codes give a plain ExchangeError
    """
    raw_code = str(code)
    kind = table.get(raw_code)

    if kind is ErrorKind.AUTH:
        return AuthenticationError(exchange_id, f"Authentication failed: {message}", exchange_code=raw_code)
    if kind is ErrorKind.RATE_LIMIT:
        return RateLimitError(exchange_id, exchange_code=raw_code)
    if kind is ErrorKind.INSUFFICIENT_BALANCE:
        return InsufficientBalanceError(exchange_id, message=message, exchange_code=raw_code)
    if kind is ErrorKind.ORDER:
        return ExchangeError(exchange_id, raw_code, message)
    if kind in _KIND_CODES:
        error = ExchangeError(exchange_id, _KIND_CODES[kind], message)
        error.details = {'exchange_code': raw_code}
        return error
    return ExchangeError(exchange_id, raw_code, message)


def raise_for_code(exchange_id: str, code: Any, message: str, table: Mapping[str, ErrorKind]) -> None:
    """Raise the exception matching an exchange error code."""
    raise build_exchange_error(exchange_id, code, message, table)


def redact(text: str, *secrets: Optional[str]) -> str:
    """
    Mask every secret value occurring in ``text``.

    Args:
        text: Message that may contain credential values
        secrets: Values to hide

    Returns:
        Text with each secret replaced by ``***``
    """
    for secret in secrets:
        if secret and len(secret) >= 4:
            text = text.replace(secret, "***")
    return text


def to_error_response(error: BaseException, include_details: bool = False) -> Dict[str, Any]:
    """
    Convert an exception into the standardized error response dictionary.

    Classification uses the exception type only. Unknown exceptions are
    reported as a generic internal error so no internal detail leaks out.

    Args:
        error: Exception to convert
        include_details: Whether to include the ``details`` payload

    Returns:
        Dictionary with error, code, timestamp and optionally details
    """
    if isinstance(error, TradeHubError):
        message = error.message
        code = error.code
        details = error.details
        if isinstance(error, ExchangeError):
            details = {'exchange': error.exchange_id, 'exchange_code': error.exchange_code}
    else:
        logger.error(f"Unhandled error: {type(error).__name__}")
        message = "An internal error occurred"
        code = ErrorCode.INTERNAL_ERROR
        details = None

    response: Dict[str, Any] = {
        'error': message,
        'code': code.value,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    if include_details and details is not None:
        response['details'] = details
    return response


def http_status_for(error: BaseException) -> int:
    """HTTP status the request layer should use for an error."""
    if not isinstance(error, TradeHubError):
        return 500
    return {
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.AUTH_ERROR: 401,
        ErrorCode.UNAUTHORIZED: 401,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.EXTERNAL_API_ERROR: 502,
    }.get(error.code, 500)
