"""
Tests for the canonical models and the error taxonomy.
"""

from datetime import datetime, timezone

import pytest

from tradehub.core.errors import (
    AuthenticationError, ErrorCode, ErrorKind, ExchangeError, InsufficientBalanceError,
    RateLimitError, ValidationError, build_exchange_error, http_status_for, redact,
    to_error_response
)
from tradehub.core.models import (
    Balance, ExchangeCredentials, OrderSide, OrderStatus, Trade, WalletBalance,
    map_status, mask_key, to_float, utc_from_iso, utc_from_ms
)

TABLE = {
    'A1': ErrorKind.AUTH,
    'R1': ErrorKind.RATE_LIMIT,
    'B1': ErrorKind.INSUFFICIENT_BALANCE,
    'O1': ErrorKind.ORDER,
    'N1': ErrorKind.NOT_FOUND,
    'P1': ErrorKind.INVALID_PARAM,
    'U1': ErrorKind.UNAVAILABLE,
}


class TestBuildExchangeError:
    """Error code tables map exchange codes onto typed exceptions."""

    def test_auth_code(self):
        error = build_exchange_error('bybit', 'A1', 'bad key', TABLE)
        assert isinstance(error, AuthenticationError)
        assert error.exchange_code == 'A1'
        assert error.raw_message == 'Authentication failed: bad key'
        assert error.code is ErrorCode.AUTH_ERROR

    def test_rate_limit_code(self):
        error = build_exchange_error('bybit', 'R1', 'slow down', TABLE)
        assert isinstance(error, RateLimitError)
        assert error.exchange_code == 'R1'

    def test_insufficient_balance_code(self):
        error = build_exchange_error('bybit', 'B1', 'not enough margin', TABLE)
        assert isinstance(error, InsufficientBalanceError)
        assert error.raw_message == 'not enough margin'

    def test_order_code_keeps_raw_code(self):
        error = build_exchange_error('okx', 'O1', 'order rejected', TABLE)
        assert type(error) is ExchangeError
        assert error.exchange_code == 'O1'

    @pytest.mark.parametrize("raw, local", [
        ('N1', 'SYMBOL_NOT_FOUND'),
        ('P1', 'INVALID_PARAM'),
        ('U1', 'SERVICE_UNAVAILABLE'),
    ])
    def test_local_codes_keep_exchange_code_in_details(self, raw, local):
        error = build_exchange_error('bitget', raw, 'message', TABLE)
        assert error.exchange_code == local
        assert error.details == {'exchange_code': raw}

    def test_unmapped_code(self):
        error = build_exchange_error('binance', -9999, 'weird', TABLE)
        assert type(error) is ExchangeError
        assert error.exchange_code == '-9999'
        assert str(error) == '[binance] weird'


class TestErrorResponses:
    """Exceptions convert into the standardized error response."""

    def test_validation_error_response(self):
        response = to_error_response(ValidationError("Bad input", {'field': 'symbol'}), include_details=True)
        assert response['error'] == 'Bad input'
        assert response['code'] == 'VALIDATION_ERROR'
        assert response['details'] == {'field': 'symbol'}
        assert 'timestamp' in response

    def test_details_omitted_by_default(self):
        response = to_error_response(ValidationError("Bad input", {'field': 'symbol'}))
        assert 'details' not in response

    def test_exchange_error_details(self):
        response = to_error_response(ExchangeError('okx', '51001', 'Instrument missing'), include_details=True)
        assert response['code'] == 'EXTERNAL_API_ERROR'
        assert response['details'] == {'exchange': 'okx', 'exchange_code': '51001'}

    def test_unknown_exception_is_generic(self):
        response = to_error_response(KeyError('secret internal detail'), include_details=True)
        assert response['error'] == 'An internal error occurred'
        assert response['code'] == 'INTERNAL_ERROR'
        assert 'details' not in response

    def test_http_status(self):
        assert http_status_for(ValidationError("x")) == 400
        assert http_status_for(AuthenticationError('bybit', 'x')) == 401
        assert http_status_for(ExchangeError('bybit', 'X', 'x')) == 502
        assert http_status_for(RuntimeError("x")) == 500

    def test_redact(self):
        text = redact("signature mismatch for secret-value-123", "secret-value-123", None, "ab")
        assert "secret-value-123" not in text
        assert "***" in text


class TestCredentials:
    """Credentials never expose secrets when printed or serialized."""

    def test_repr_hides_secret(self):
        creds = ExchangeCredentials(api_key="abcdefghijkl", api_secret="super-secret", passphrase="pass-phrase")
        text = repr(creds)
        assert "super-secret" not in text
        assert "pass-phrase" not in text
        assert "abcd...ijkl" in text

    def test_to_dict_hides_secret(self):
        creds = ExchangeCredentials(api_key="abcdefghijkl", api_secret="super-secret")
        data = creds.to_dict()
        assert data['api_secret'] == '***'
        assert data['passphrase'] is None
        assert data['api_key'] == 'abcd...ijkl'

    def test_mask_short_key(self):
        assert mask_key("short") == "***"
        assert mask_key(None) == ""


class TestModelHelpers:

    def test_utc_from_ms(self):
        assert utc_from_ms(1705314600000) == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert utc_from_ms("1705314600000") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert utc_from_ms(None) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_utc_from_iso_truncates_nanoseconds(self):
        parsed = utc_from_iso("2024-01-15T10:30:00.123456789Z")
        assert parsed == datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)

    def test_utc_from_iso_naive_is_utc(self):
        assert utc_from_iso("2024-01-15T10:30:00").tzinfo is not None

    def test_to_float(self):
        assert to_float("1.5") == 1.5
        assert to_float("") == 0.0
        assert to_float(None, 2.0) == 2.0
        assert to_float("abc") == 0.0

    def test_unmapped_status_defaults_to_pending(self):
        table = {'FILLED': OrderStatus.FILLED}
        assert map_status(table, 'FILLED') is OrderStatus.FILLED
        assert map_status(table, 'SOMETHING_NEW', 'bybit') is OrderStatus.PENDING
        assert map_status(table, None) is OrderStatus.PENDING

    def test_to_dict_serializes_enums_and_dates(self):
        trade = Trade(
            id='1', order_id='2', symbol='BTCUSDT', side=OrderSide.BUY, price=100.0,
            quantity=1.0, fee=0.1, fee_currency='USDT',
            timestamp=datetime(2024, 1, 15, tzinfo=timezone.utc)
        )
        data = trade.to_dict()
        assert data['side'] == 'buy'
        assert data['timestamp'] == '2024-01-15T00:00:00+00:00'

    def test_nested_to_dict(self):
        wallet = WalletBalance(account_type='SPOT', balances=[Balance('USDT', 10.0, 8.0, 2.0)])
        data = wallet.to_dict()
        assert data['balances'][0] == {
            'currency': 'USDT', 'total': 10.0, 'available': 8.0, 'locked': 2.0, 'usd_value': None
        }
