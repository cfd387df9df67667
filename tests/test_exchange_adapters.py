"""
Adapter behaviour against mocked exchange responses.

The HTTP transport is replaced by an AsyncMock returning (status, payload)
tuples, so every test runs offline.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from tradehub.core.errors import (
    AuthenticationError, ExchangeError, InsufficientBalanceError, RateLimitError,
    build_exchange_error
)
from tradehub.core.models import (
    CreateOrderRequest, OrderSide, OrderStatus, OrderType, Trade
)
from tradehub.exchange.binance import BinanceExchange
from tradehub.exchange.binance.binance_exchange import (
    FUTURES_TESTNET_URL, FUTURES_URL, SPOT_URL
)
from tradehub.exchange.bitget import BitgetExchange
from tradehub.exchange.bitget import bitget_exchange
from tradehub.exchange.bybit import BybitExchange
from tradehub.exchange.bybit import bybit_exchange
from tradehub.exchange.coinbase import CoinbaseExchange
from tradehub.exchange.kraken import KrakenExchange, KrakenNonce
from tradehub.exchange.okx import OKXExchange

DAY_MS = 24 * 60 * 60 * 1000


def _trade(trade_id: str, ts_ms: int) -> Trade:
    return Trade(
        id=trade_id, order_id='o', symbol='BTCUSDT', side=OrderSide.BUY, price=1.0,
        quantity=1.0, fee=0.0, fee_currency='USDT',
        timestamp=datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    )


class TestBinanceExchange:

    def test_market_selects_base_url(self, credentials):
        exchange = BinanceExchange(credentials)
        assert exchange.http.base_url == SPOT_URL
        assert exchange.account_type == 'SPOT'

        exchange.set_market('futures')
        assert exchange.http.base_url == FUTURES_URL
        assert exchange.account_type == 'FUTURES'

    def test_testnet_futures_url(self):
        from tradehub.core.models import ExchangeCredentials
        creds = ExchangeCredentials(api_key='key', api_secret='secret', testnet=True)
        assert BinanceExchange(creds, market='futures').http.base_url == FUTURES_TESTNET_URL

    @pytest.mark.asyncio
    async def test_trades_require_symbol(self, credentials):
        exchange = BinanceExchange(credentials)
        with pytest.raises(ExchangeError) as exc_info:
            await exchange.get_trades()
        assert exc_info.value.exchange_code == 'MISSING_SYMBOL'

    @pytest.mark.asyncio
    async def test_spot_trades_sorted_ascending(self, credentials):
        exchange = BinanceExchange(credentials)
        exchange.http.request = AsyncMock(return_value=(200, [
            {'id': 2, 'orderId': 20, 'symbol': 'BTCUSDT', 'price': '50100', 'qty': '0.1',
             'commission': '0.0001', 'commissionAsset': 'BNB', 'time': 1700000060000,
             'isBuyer': False, 'isMaker': True},
            {'id': 1, 'orderId': 10, 'symbol': 'BTCUSDT', 'price': '50000', 'qty': '0.2',
             'commission': '0.0002', 'commissionAsset': 'BNB', 'time': 1700000000000,
             'isBuyer': True, 'isMaker': False},
        ]))

        trades = await exchange.get_trades('BTCUSDT')

        assert [t.id for t in trades] == ['1', '2']
        assert trades[0].side is OrderSide.BUY
        assert trades[1].side is OrderSide.SELL
        assert trades[1].is_maker is True
        assert trades[0].category == 'spot'
        path = exchange.http.request.call_args.args[1]
        assert path == '/api/v3/myTrades'
        assert 'signature=' in exchange.http.request.call_args.kwargs['query']

    @pytest.mark.asyncio
    async def test_error_payload_maps_to_auth_error(self, credentials):
        exchange = BinanceExchange(credentials)
        exchange.http.request = AsyncMock(return_value=(401, {'code': -2015, 'msg': 'Invalid API-key'}))

        with pytest.raises(AuthenticationError) as exc_info:
            await exchange.get_balance()
        assert exc_info.value.exchange_code == '-2015'

    @pytest.mark.asyncio
    async def test_futures_order_mapping(self, credentials):
        exchange = BinanceExchange(credentials, market='futures')
        exchange.http.request = AsyncMock(return_value=(200, {
            'orderId': 123, 'symbol': 'BTCUSDT', 'side': 'SELL', 'type': 'STOP_MARKET',
            'status': 'NEW', 'price': '0', 'origQty': '0.01', 'executedQty': '0',
            'stopPrice': '48000', 'timeInForce': 'GTC', 'updateTime': 1700000000000
        }))

        order = await exchange.create_order(CreateOrderRequest(
            symbol='BTCUSDT', side=OrderSide.SELL, type=OrderType.STOP, quantity=0.01,
            stop_price=48000, reduce_only=True))

        assert order.type is OrderType.STOP
        assert order.status is OrderStatus.OPEN
        assert order.stop_price == 48000
        query = exchange.http.request.call_args.kwargs['query']
        assert 'type=STOP_MARKET' in query
        assert 'reduceOnly=true' in query

    @pytest.mark.asyncio
    async def test_spot_has_no_positions(self, credentials):
        exchange = BinanceExchange(credentials)
        exchange.http.request = AsyncMock()
        assert await exchange.get_positions() == []
        exchange.http.request.assert_not_called()


class TestBybitExchange:

    def test_windows_are_at_most_seven_days(self):
        windows = BybitExchange.iter_windows(0, 20 * DAY_MS)
        assert windows[0] == (0, 7 * DAY_MS)
        assert windows[-1][1] == 20 * DAY_MS
        assert all(end - start <= 7 * DAY_MS for start, end in windows)
        assert len(windows) == 3

    def test_unknown_category_rejected(self, credentials):
        with pytest.raises(ValueError):
            BybitExchange(credentials, category='margin')

    @pytest.mark.asyncio
    async def test_trades_skip_unavailable_categories_and_dedupe(self, credentials):
        exchange = BybitExchange(credentials)

        async def fake_fetch(category, symbol, start, end, limit):
            if category == 'option':
                raise build_exchange_error('bybit', 10001, 'category not supported', bybit_exchange.ERROR_CODES)
            if category == 'inverse':
                raise build_exchange_error('bybit', 10005, 'permission denied', bybit_exchange.ERROR_CODES)
            return [_trade('dup', start + 2), _trade(f'{category}-{start}', start + 1)]

        exchange._fetch_executions = AsyncMock(side_effect=fake_fetch)
        with patch.object(bybit_exchange, 'WINDOW_PAUSE', 0):
            trades = await exchange.get_trades(start_time=1, end_time=10 * DAY_MS)

        ids = [t.id for t in trades]
        assert ids.count('dup') == 1
        assert 'spot-1' in ids and 'linear-1' in ids
        assert [t.timestamp for t in trades] == sorted(t.timestamp for t in trades)

    @pytest.mark.asyncio
    async def test_window_follows_next_page_cursor(self, credentials):
        exchange = BybitExchange(credentials)
        first_page = [
            {'execId': f'e{i}', 'symbol': 'BTCUSDT', 'side': 'Buy', 'execPrice': '40000',
             'execQty': '0.01', 'execTime': str(1000 + i)}
            for i in range(50)
        ]
        last_page = [{'execId': 'e50', 'symbol': 'BTCUSDT', 'side': 'Sell', 'execPrice': '40100',
                      'execQty': '0.01', 'execTime': '2000'}]

        async def fake_request(method, path, query=None, **kwargs):
            if 'category=linear' not in query:
                return 200, {'retCode': 0, 'result': {'list': [], 'nextPageCursor': ''}}
            if 'cursor=c1' in query:
                return 200, {'retCode': 0, 'result': {'list': last_page, 'nextPageCursor': ''}}
            return 200, {'retCode': 0, 'result': {'list': first_page, 'nextPageCursor': 'c1'}}

        exchange.http.request = AsyncMock(side_effect=fake_request)
        with patch.object(bybit_exchange, 'WINDOW_PAUSE', 0):
            trades = await exchange.get_trades(start_time=1, end_time=DAY_MS)

        assert len(trades) == 51
        assert trades[-1].id == 'e50'
        linear_calls = [c for c in exchange.http.request.call_args_list
                        if 'category=linear' in c.kwargs['query']]
        assert len(linear_calls) == 2

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, credentials):
        exchange = BybitExchange(credentials)
        exchange._fetch_executions = AsyncMock(
            side_effect=build_exchange_error('bybit', 10006, 'Too many visits', bybit_exchange.ERROR_CODES))

        with patch.object(bybit_exchange, 'WINDOW_PAUSE', 0):
            with pytest.raises(RateLimitError):
                await exchange.get_trades(start_time=1, end_time=DAY_MS)

    @pytest.mark.asyncio
    async def test_ret_code_error(self, credentials):
        exchange = BybitExchange(credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'retCode': 110007, 'retMsg': 'ab not enough'}))

        with pytest.raises(InsufficientBalanceError):
            await exchange.get_balance()

    @pytest.mark.asyncio
    async def test_cancel_requires_symbol(self, credentials):
        with pytest.raises(ExchangeError) as exc_info:
            await BybitExchange(credentials).cancel_order('1')
        assert exc_info.value.exchange_code == 'SYMBOL_REQUIRED'


class TestCoinbaseExchange:

    @pytest.mark.asyncio
    async def test_fills_follow_cursor(self, credentials):
        exchange = CoinbaseExchange(credentials)
        fill = {'product_id': 'BTC-USD', 'side': 'BUY', 'price': '40000', 'size': '0.1',
                'commission': '1.5', 'liquidity_indicator': 'MAKER', 'order_id': 'o1'}
        exchange.http.request = AsyncMock(side_effect=[
            (200, {'fills': [dict(fill, trade_id='b', trade_time='2024-01-15T10:31:00Z')], 'cursor': 'next'}),
            (200, {'fills': [dict(fill, trade_id='a', trade_time='2024-01-15T10:30:00Z')], 'cursor': ''}),
        ])

        trades = await exchange.get_trades('BTC-USD')

        assert [t.id for t in trades] == ['a', 'b']
        assert trades[0].fee_currency == 'USD'
        assert trades[0].is_maker is True
        assert exchange.http.request.call_count == 2
        assert 'cursor=next' in exchange.http.request.call_args_list[1].kwargs['query']

    @pytest.mark.asyncio
    async def test_fill_without_trade_id_gets_synthesized_id(self, credentials):
        exchange = CoinbaseExchange(credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'fills': [
            {'product_id': 'ETH-USD', 'side': 'SELL', 'price': '2000', 'size': '1',
             'order_id': 'o7', 'trade_time': '2024-01-15T10:30:00Z'},
        ], 'cursor': ''}))

        trades = await exchange.get_trades('ETH-USD')

        assert trades[0].id == 'o7-2024-01-15T10:30:00Z'
        assert trades[0].side is OrderSide.SELL

    @pytest.mark.asyncio
    async def test_stop_orders_not_supported(self, credentials):
        exchange = CoinbaseExchange(credentials)
        with pytest.raises(ExchangeError) as exc_info:
            await exchange.create_order(CreateOrderRequest(
                symbol='BTC-USD', side=OrderSide.BUY, type=OrderType.STOP, quantity=1, stop_price=1))
        assert exc_info.value.exchange_code == 'NOT_SUPPORTED'

    @pytest.mark.asyncio
    async def test_error_body_mapped(self, credentials):
        exchange = CoinbaseExchange(credentials)
        exchange.http.request = AsyncMock(return_value=(401, {'error': 'UNAUTHENTICATED', 'message': 'bad'}))

        with pytest.raises(AuthenticationError):
            await exchange.get_balance()


class TestKrakenExchange:

    @pytest.mark.asyncio
    async def test_trades_page_with_offset(self, kraken_credentials):
        exchange = KrakenExchange(kraken_credentials, nonce=KrakenNonce(clock=lambda: 1700000000.0))
        exchange.http.request = AsyncMock(side_effect=[
            (200, {'error': [], 'result': {'count': 3, 'trades': {
                'T2': {'pair': 'XXBTZUSD', 'type': 'sell', 'price': '42000', 'vol': '0.5',
                       'fee': '1.0', 'time': 1700000100.5, 'ordertxid': 'O2'},
                'T1': {'pair': 'XXBTZUSD', 'type': 'buy', 'price': '41000', 'vol': '0.5',
                       'fee': '1.0', 'time': 1700000000.0, 'ordertxid': 'O1'},
            }}}),
            (200, {'error': [], 'result': {'count': 3, 'trades': {
                'T3': {'pair': 'SOLUSD', 'type': 'buy', 'price': '100', 'vol': '2',
                       'fee': '0.1', 'time': 1700000200.0, 'ordertxid': 'O3'},
            }}}),
        ])

        trades = await exchange.get_trades()

        assert [t.id for t in trades] == ['T1', 'T2', 'T3']
        assert trades[0].symbol == 'BTC/USD'
        assert trades[0].fee_currency == 'USD'
        assert trades[2].symbol == 'SOL/USD'
        first_body = exchange.http.request.call_args_list[0].kwargs['body']
        second_body = exchange.http.request.call_args_list[1].kwargs['body']
        assert 'ofs=0' in first_body
        assert 'ofs=2' in second_body
        # Nonces strictly increase between calls
        first_nonce = int(first_body.split('nonce=')[1].split('&')[0])
        second_nonce = int(second_body.split('nonce=')[1].split('&')[0])
        assert second_nonce > first_nonce

    @pytest.mark.asyncio
    async def test_symbol_filter(self, kraken_credentials):
        exchange = KrakenExchange(kraken_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'error': [], 'result': {'count': 2, 'trades': {
            'T1': {'pair': 'XXBTZUSD', 'type': 'buy', 'price': '1', 'vol': '1', 'time': 1},
            'T2': {'pair': 'XETHZUSD', 'type': 'buy', 'price': '1', 'vol': '1', 'time': 2},
        }}}))

        trades = await exchange.get_trades('ETH/USD')
        assert [t.id for t in trades] == ['T2']

    @pytest.mark.asyncio
    async def test_error_prefix_classification(self, kraken_credentials):
        exchange = KrakenExchange(kraken_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'error': ['EAPI:Invalid key'], 'result': {}}))

        with pytest.raises(AuthenticationError) as exc_info:
            await exchange.get_balance()
        assert exc_info.value.exchange_code == 'EAPI:Invalid key'

    @pytest.mark.asyncio
    async def test_balance_normalizes_assets(self, kraken_credentials):
        exchange = KrakenExchange(kraken_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'error': [], 'result': {
            'XXBT': '0.5', 'ZUSD': '1000.0'}}))

        balance = await exchange.get_balance()

        assert {b.currency for b in balance.balances} == {'BTC', 'USD'}
        assert balance.available_margin_usd == 1000.0


class TestOKXExchange:

    @pytest.mark.asyncio
    async def test_item_code_preferred_over_envelope_code(self, passphrase_credentials):
        exchange = OKXExchange(passphrase_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {
            'code': '1', 'msg': 'Operation failed',
            'data': [{'sCode': '51008', 'sMsg': 'Insufficient balance'}]
        }))

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await exchange.create_order(CreateOrderRequest(
                symbol='BTC-USDT', side=OrderSide.BUY, type=OrderType.MARKET, quantity=1))
        assert exc_info.value.exchange_code == '51008'

    @pytest.mark.asyncio
    async def test_fills_fee_is_positive(self, passphrase_credentials):
        exchange = OKXExchange(passphrase_credentials, inst_type='SWAP')
        exchange.http.request = AsyncMock(return_value=(200, {'code': '0', 'data': [
            {'tradeId': '1', 'ordId': '9', 'instId': 'BTC-USDT-SWAP', 'side': 'buy', 'fillPx': '40000',
             'fillSz': '1', 'fee': '-0.2', 'feeCcy': 'USDT', 'ts': '1700000000000', 'execType': 'T',
             'fillPnl': '5'}
        ]}))

        trades = await exchange.get_trades()

        assert trades[0].fee == pytest.approx(0.2)
        assert trades[0].realized_pnl == pytest.approx(5)
        assert trades[0].category == 'swap'

    @pytest.mark.asyncio
    async def test_swap_fill_fee_currency_defaults_to_settlement_coin(self, passphrase_credentials):
        exchange = OKXExchange(passphrase_credentials, inst_type='SWAP')
        exchange.http.request = AsyncMock(return_value=(200, {'code': '0', 'data': [
            {'tradeId': '1', 'instId': 'ETH-USDC-SWAP', 'side': 'sell', 'fillPx': '2000',
             'fillSz': '2', 'fee': '-0.1', 'ts': '1700000000000'}
        ]}))

        trades = await exchange.get_trades()

        assert trades[0].fee_currency == 'USDC'
        assert trades[0].symbol == 'ETH-USDC-SWAP'

    def test_unknown_inst_type(self, passphrase_credentials):
        with pytest.raises(ValueError):
            OKXExchange(passphrase_credentials, inst_type='PERP')


class TestBitgetExchange:

    def test_split_range_is_contiguous(self):
        chunks = BitgetExchange.split_range(0, 200 * DAY_MS)
        assert chunks == [(0, 90 * DAY_MS), (90 * DAY_MS, 180 * DAY_MS), (180 * DAY_MS, 200 * DAY_MS)]

    def test_split_range_empty(self):
        assert BitgetExchange.split_range(100, 100) == []

    def test_requires_passphrase(self, credentials):
        with pytest.raises(AuthenticationError):
            BitgetExchange(credentials)

    @pytest.mark.asyncio
    async def test_trades_deduplicated_across_chunks(self, passphrase_credentials):
        exchange = BitgetExchange(passphrase_credentials)
        exchange._fetch_closed_positions = AsyncMock(side_effect=[
            [_trade('p1', 1000), _trade('p2', 2000)],
            [_trade('p2', 2000), _trade('p0', 500)],
        ])

        trades = await exchange.get_trades(start_time=1, end_time=100 * DAY_MS)

        assert [t.id for t in trades] == ['p0', 'p1', 'p2']
        assert exchange._fetch_closed_positions.call_count == 2

    @pytest.mark.asyncio
    async def test_closed_positions_paging_stops_on_40034(self, passphrase_credentials):
        exchange = BitgetExchange(passphrase_credentials)
        position = {'positionId': 'p1', 'symbol': 'BTCUSDT', 'holdSide': 'long', 'openAvgPrice': '40000',
                    'closeTotalPos': '0.1', 'openFee': '-0.5', 'closeFee': '-0.5', 'utime': '1700000000000',
                    'netProfit': '12.5'}
        exchange._request = AsyncMock(side_effect=[
            {'list': [position], 'endId': 'p1'},
            build_exchange_error('bitget', '40034', 'Parameter does not exist', bitget_exchange.ERROR_CODES),
        ])

        trades = await exchange._fetch_closed_positions(None, 0, DAY_MS, page_size=1)

        assert len(trades) == 1
        assert trades[0].fee == pytest.approx(1.0)
        assert trades[0].realized_pnl == pytest.approx(12.5)
        assert exchange._request.call_args_list[1].args[2]['idLessThan'] == 'p1'

    @pytest.mark.asyncio
    async def test_closed_positions_other_errors_propagate(self, passphrase_credentials):
        exchange = BitgetExchange(passphrase_credentials)
        exchange._request = AsyncMock(
            side_effect=build_exchange_error('bitget', '429', 'Too many requests', bitget_exchange.ERROR_CODES))

        with pytest.raises(RateLimitError):
            await exchange._fetch_closed_positions(None, 0, DAY_MS, page_size=100)

    def test_closed_position_id_fallback(self, passphrase_credentials):
        exchange = BitgetExchange(passphrase_credentials)
        trade = exchange._map_closed_position({'symbol': 'ETHUSDT', 'ctime': '1700000000000', 'holdSide': 'short'})
        assert trade.id == 'ETHUSDT-1700000000000'
        assert trade.side is OrderSide.SELL

    @pytest.mark.asyncio
    async def test_order_lookup_requires_symbol(self, passphrase_credentials):
        with pytest.raises(ExchangeError) as exc_info:
            await BitgetExchange(passphrase_credentials).get_order('1')
        assert exc_info.value.exchange_code == 'SYMBOL_REQUIRED'

    @pytest.mark.asyncio
    async def test_non_success_code(self, passphrase_credentials):
        exchange = BitgetExchange(passphrase_credentials)
        exchange.http.request = AsyncMock(return_value=(200, {'code': '40012', 'msg': 'apikey/password is incorrect'}))

        with pytest.raises(AuthenticationError):
            await exchange.get_balance()
