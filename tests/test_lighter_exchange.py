"""
Tests for the Lighter adapter: integer encoding, account index handling and
message based error classification.
"""

from unittest.mock import AsyncMock

import pytest

from tradehub.core.errors import AuthenticationError, ExchangeError, InsufficientBalanceError
from tradehub.core.models import CreateOrderRequest, ExchangeCredentials, OrderSide, OrderType
from tradehub.exchange.lighter import (
    LighterExchange, from_integer_price, from_integer_size, to_integer_price, to_integer_size
)
from tradehub.exchange.lighter.lighter_exchange import TESTNET_URL, classify_error


class TestIntegerEncoding:

    def test_price(self):
        assert to_integer_price(50000.5) == "5000050000000"
        assert from_integer_price("5000050000000") == pytest.approx(50000.5)

    def test_size(self):
        assert to_integer_size(0.01) == "1000000"
        assert from_integer_size(1000000) == pytest.approx(0.01)

    def test_rounding(self):
        assert to_integer_price(1.23456789) == "123456789"


class TestAccountIndex:

    def test_index_from_credentials(self, lighter_credentials):
        assert LighterExchange(lighter_credentials).account_index == 5

    @pytest.mark.parametrize("index", [2, 255, -1])
    def test_out_of_range(self, credentials, index):
        exchange = LighterExchange(credentials)
        with pytest.raises(ExchangeError) as exc_info:
            exchange.set_account_index(index)
        assert exc_info.value.exchange_code == 'INVALID_ACCOUNT'

    @pytest.mark.parametrize("index", [3, 254])
    def test_bounds_inclusive(self, credentials, index):
        exchange = LighterExchange(credentials)
        exchange.set_account_index(index)
        assert exchange.account_index == index

    def test_invalid_index_in_credentials(self):
        creds = ExchangeCredentials(api_key='key', api_secret='secret', account_index=1)
        with pytest.raises(ExchangeError):
            LighterExchange(creds)

    @pytest.mark.asyncio
    async def test_private_call_without_index(self, credentials):
        exchange = LighterExchange(credentials)
        exchange.http.request = AsyncMock()

        with pytest.raises(ExchangeError) as exc_info:
            await exchange.get_balance()
        assert exc_info.value.exchange_code == 'INVALID_ACCOUNT'
        exchange.http.request.assert_not_called()

    def test_testnet_url(self):
        creds = ExchangeCredentials(api_key='key', api_secret='secret', testnet=True)
        assert LighterExchange(creds).http.base_url == TESTNET_URL


class TestErrorClassification:

    @pytest.mark.parametrize("message, code", [
        ("Invalid API key provided", 'INVALID_API_KEY'),
        ("Unauthorized", 'UNAUTHORIZED'),
        ("Insufficient margin for order", 'INSUFFICIENT_BALANCE'),
        ("Rate limit hit", 'RATE_LIMIT'),
        ("Market not found: FOO-USD", 'MARKET_NOT_FOUND'),
        ("Account not found", 'ACCOUNT_NOT_FOUND'),
        ("something else", 'UNKNOWN'),
    ])
    def test_classify(self, message, code):
        assert classify_error(message) == code

    @pytest.mark.asyncio
    async def test_envelope_error_is_typed(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'success': False, 'error': 'Invalid signature'}))

        with pytest.raises(AuthenticationError) as exc_info:
            await exchange.get_balance()
        assert exc_info.value.exchange_code == 'INVALID_SIGNATURE'

    @pytest.mark.asyncio
    async def test_account_not_found_stays_plain(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'success': False, 'error': 'Account not found'}))

        with pytest.raises(ExchangeError) as exc_info:
            await exchange.get_balance()
        assert type(exc_info.value) is ExchangeError
        assert exc_info.value.exchange_code == 'ACCOUNT_NOT_FOUND'


class TestLighterRequests:

    @pytest.mark.asyncio
    async def test_trades_decoded_and_sorted(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'success': True, 'data': {'trades': [
            {'trade_id': 2, 'order_id': 9, 'market': 'ETH-USDC', 'side': 'sell', 'price': '300000000000',
             'size': '50000000', 'fee': '0.1', 'timestamp': 1700000060000},
            {'trade_id': 1, 'order_id': 8, 'market': 'ETH-USDC', 'side': 'buy', 'price': '290000000000',
             'size': '100000000', 'fee': '0.2', 'timestamp': 1700000000000, 'is_maker': True},
        ]}}))

        trades = await exchange.get_trades('ETH-USDC')

        assert [t.id for t in trades] == ['1', '2']
        assert trades[0].price == pytest.approx(2900.0)
        assert trades[0].quantity == pytest.approx(1.0)
        assert trades[1].side is OrderSide.SELL
        headers = exchange.http.request.call_args.kwargs['headers']
        assert headers['X-Account-Index'] == '5'
        assert 'lighter-api-secret-5678' not in str(headers)

    @pytest.mark.asyncio
    async def test_create_order_encodes_integers(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'success': True, 'data': {'order': {
            'order_id': 'abc', 'market': 'BTC-USDC', 'side': 'buy', 'order_type': 'limit', 'status': 'open',
            'price': '4000000000000', 'size': '10000000', 'filled_size': '0', 'created_at': 1700000000000
        }}}))

        order = await exchange.create_order(CreateOrderRequest(
            symbol='BTC-USDC', side=OrderSide.BUY, type=OrderType.LIMIT, quantity=0.1, price=40000))

        body = exchange.http.request.call_args.kwargs['body']
        assert '"size": "10000000"' in body
        assert '"price": "4000000000000"' in body
        assert '"account_index": 5' in body
        assert order.id == 'abc'

    @pytest.mark.asyncio
    async def test_cancel_all_scoped_to_market(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'success': True, 'data': {}}))

        assert await exchange.cancel_all_orders('BTC-USDC') is True
        args = exchange.http.request.call_args
        assert args.args[:2] == ('POST', '/api/v1/orders/cancel-all')
        assert '"market": "BTC-USDC"' in args.kwargs['body']

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'success': False, 'message': 'Insufficient funds'}))

        with pytest.raises(InsufficientBalanceError):
            await exchange.cancel_all_orders()
