"""
Coinbase Exchange Adapter

Coinbase Advanced Trade (v3 brokerage) REST client. Spot only; positions are
synthesized from non-quote balances.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from ...core.errors import ErrorKind, ExchangeError, ValidationError, build_exchange_error
from ...core.models import (
    AssetClass, Balance, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, MarketStatus, OHLCV, Order, OrderSide, OrderStatus, OrderType,
    Position, PositionSide, RateLimits, TimeInForce, Trade, WalletBalance,
    map_status, to_float, utc_from_iso, utc_now
)
from ...core.risk import precision_from_step
from ..core.exchange_base import ExchangeClient
from ..core.http_client import (
    ACCOUNT_TIMEOUT, HISTORY_TIMEOUT, ExchangeHttpClient, build_query, raise_for_http_status
)
from .coinbase_auth import CoinbaseAuth

logger = logging.getLogger(__name__)

MAINNET_URL = 'https://api.coinbase.com'
SANDBOX_URL = 'https://api-sandbox.coinbase.com'
API_PREFIX = '/api/v3/brokerage'

FILLS_PAGE_SIZE = 100
QUOTE_CURRENCY = 'USD'

ERROR_CODES: Dict[str, ErrorKind] = {
    'UNAUTHENTICATED': ErrorKind.AUTH,
    'PERMISSION_DENIED': ErrorKind.AUTH,
    'INVALID_API_KEY': ErrorKind.AUTH,
    'RESOURCE_EXHAUSTED': ErrorKind.RATE_LIMIT,
    'RATE_LIMIT_EXCEEDED': ErrorKind.RATE_LIMIT,
    'INSUFFICIENT_FUND': ErrorKind.INSUFFICIENT_BALANCE,
    'NOT_FOUND': ErrorKind.NOT_FOUND,
    'INVALID_ARGUMENT': ErrorKind.INVALID_PARAM,
    'INVALID_LIMIT_PRICE': ErrorKind.INVALID_PARAM,
    'INVALID_PRODUCT_ID': ErrorKind.NOT_FOUND,
    'UNAVAILABLE': ErrorKind.UNAVAILABLE,
}

ORDER_STATUS: Dict[str, OrderStatus] = {
    'PENDING': OrderStatus.PENDING,
    'QUEUED': OrderStatus.PENDING,
    'OPEN': OrderStatus.OPEN,
    'FILLED': OrderStatus.FILLED,
    'CANCELLED': OrderStatus.CANCELLED,
    'CANCEL_QUEUED': OrderStatus.PENDING,
    'EXPIRED': OrderStatus.CANCELLED,
    'FAILED': OrderStatus.REJECTED,
}

ORDER_TYPE_FROM_COINBASE: Dict[str, OrderType] = {
    'MARKET': OrderType.MARKET,
    'LIMIT': OrderType.LIMIT,
    'STOP': OrderType.STOP,
    'STOP_LIMIT': OrderType.STOP_LIMIT,
}

TIME_IN_FORCE: Dict[str, TimeInForce] = {
    'GOOD_UNTIL_CANCELLED': TimeInForce.GTC,
    'GTC': TimeInForce.GTC,
    'IMMEDIATE_OR_CANCEL': TimeInForce.IOC,
    'IOC': TimeInForce.IOC,
    'FILL_OR_KILL': TimeInForce.FOK,
    'FOK': TimeInForce.FOK,
    'POST_ONLY': TimeInForce.POST_ONLY,
}

GRANULARITY: Dict[str, str] = {
    '1m': 'ONE_MINUTE',
    '5m': 'FIVE_MINUTE',
    '15m': 'FIFTEEN_MINUTE',
    '30m': 'THIRTY_MINUTE',
    '1h': 'ONE_HOUR',
    '2h': 'TWO_HOUR',
    '6h': 'SIX_HOUR',
    '1d': 'ONE_DAY',
}


class CoinbaseExchange(ExchangeClient):
    """Coinbase Advanced Trade implementation of the exchange client."""

    exchange_id = 'coinbase'
    account_type = 'SPOT'

    def __init__(self, credentials: ExchangeCredentials, asset_class: AssetClass = AssetClass.CRYPTO):
        super().__init__(credentials, asset_class)
        self.auth = CoinbaseAuth(credentials.api_key, credentials.api_secret, credentials.passphrase)
        base_url = SANDBOX_URL if credentials.testnet else MAINNET_URL
        self.http = ExchangeHttpClient(self.exchange_id, base_url,
                                       secrets=(credentials.api_secret, credentials.passphrase))

    async def _request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                       body: Optional[Dict[str, Any]] = None,
                       timeout: float = ACCOUNT_TIMEOUT) -> Dict[str, Any]:
        """Send a signed request; the signed path includes the query string."""
        path = f"{API_PREFIX}{endpoint}"
        query = build_query(params)
        request_path = f"{path}?{query}" if query else path
        body_str = json.dumps(body) if body is not None else ""

        headers = self.auth.get_auth_headers(method, request_path, body_str)
        status, data = await self.http.request(method, path, query=query, body=body_str or None,
                                               headers=headers, timeout=timeout)

        if status >= 400:
            if isinstance(data, dict) and data.get('error') in ERROR_CODES:
                raise build_exchange_error(self.exchange_id, data['error'],
                                           data.get('message') or data['error'], ERROR_CODES)
            raise_for_http_status(self.exchange_id, status, json.dumps(data)[:500])
        return data if isinstance(data, dict) else {'data': data}

    async def test_connection(self) -> bool:
        await self._request('GET', '/accounts')
        logger.info("Coinbase connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        data = await self._request('GET', '/accounts', {'limit': 250})

        balances = []
        for account in data.get('accounts') or []:
            available = to_float((account.get('available_balance') or {}).get('value'))
            hold = to_float((account.get('hold') or {}).get('value'))
            if available <= 0 and hold <= 0:
                continue
            balances.append(Balance(currency=account['currency'], total=available + hold,
                                    available=available, locked=hold))

        usd = next((b for b in balances if b.currency == QUOTE_CURRENCY), None)
        return WalletBalance(
            account_type='SPOT',
            balances=balances,
            total_equity_usd=usd.total if usd else 0.0,
            available_margin_usd=usd.available if usd else 0.0,
            used_margin_usd=usd.locked if usd else 0.0
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        """
        Get fills, following the response cursor until exhausted or ``limit`` is reached.
        """
        params: Dict[str, Any] = {
            'product_id': symbol,
            'start_sequence_timestamp': self._iso(start_time),
            'end_sequence_timestamp': self._iso(end_time),
            'limit': min(limit, FILLS_PAGE_SIZE) if limit else FILLS_PAGE_SIZE,
        }

        trades: List[Trade] = []
        while True:
            data = await self._request('GET', '/orders/historical/fills', params, timeout=HISTORY_TIMEOUT)
            fills = data.get('fills') or []
            trades.extend(self._map_fill(f) for f in fills)

            cursor = data.get('cursor')
            if not cursor or not fills or (limit and len(trades) >= limit):
                break
            params['cursor'] = cursor

        if limit:
            trades = trades[:limit]
        trades.sort(key=lambda t: t.timestamp)
        return trades

    @staticmethod
    def _iso(timestamp_ms: Optional[int]) -> Optional[str]:
        if not timestamp_ms:
            return None
        return time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(timestamp_ms / 1000))

    def _map_fill(self, fill: Dict[str, Any]) -> Trade:
        _, quote = self.parse_symbol(fill['product_id'])
        trade_id = fill.get('trade_id') or fill.get('entry_id')
        if not trade_id:
            trade_id = f"{fill.get('order_id', '')}-{fill.get('trade_time', '')}"
            logger.debug(f"Coinbase fill without trade id, using {trade_id}")
        return Trade(
            id=trade_id,
            order_id=fill.get('order_id', ''),
            symbol=fill['product_id'],
            side=OrderSide.BUY if fill.get('side') == 'BUY' else OrderSide.SELL,
            price=to_float(fill.get('price')),
            quantity=to_float(fill.get('size')),
            fee=to_float(fill.get('commission')),
            fee_currency=quote,
            timestamp=utc_from_iso(fill.get('trade_time')),
            is_maker=fill.get('liquidity_indicator') == 'MAKER',
            category='spot'
        )

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        data = await self._request('GET', '/orders/historical/batch',
                                   {'order_status': 'OPEN', 'product_id': symbol})
        return [self._map_order(o) for o in data.get('orders') or []]

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        data = await self._request('GET', f"/orders/historical/{order_id}")
        order = data.get('order')
        if not order:
            raise ExchangeError(self.exchange_id, 'ORDER_NOT_FOUND', f"Order {order_id} not found")
        return self._map_order(order)

    async def create_order(self, request: CreateOrderRequest) -> Order:
        size = str(request.quantity)
        if request.type is OrderType.MARKET:
            configuration = {'market_market_ioc': {'base_size': size}}
        elif request.type is OrderType.LIMIT:
            if not request.price:
                raise ValidationError("Limit orders require a price")
            if request.time_in_force is TimeInForce.FOK:
                configuration = {'limit_limit_fok': {'base_size': size, 'limit_price': str(request.price)}}
            else:
                configuration = {'limit_limit_gtc': {
                    'base_size': size,
                    'limit_price': str(request.price),
                    'post_only': request.time_in_force is TimeInForce.POST_ONLY,
                }}
        else:
            raise ExchangeError(self.exchange_id, 'NOT_SUPPORTED',
                                f"Order type {request.type.value} is not supported on Coinbase")

        body = {
            'client_order_id': request.client_order_id or f"th_{int(time.time() * 1000)}",
            'product_id': request.symbol,
            'side': request.side.value.upper(),
            'order_configuration': configuration,
        }
        data = await self._request('POST', '/orders', body=body, timeout=HISTORY_TIMEOUT)

        if not data.get('success'):
            failure = data.get('error_response') or {}
            code = failure.get('error') or 'CREATE_ORDER_FAILED'
            message = failure.get('message') or failure.get('preview_failure_reason') or 'Order creation failed'
            raise build_exchange_error(self.exchange_id, code, message, ERROR_CODES)

        order_id = (data.get('success_response') or {}).get('order_id') or data.get('order_id')
        logger.info(f"Coinbase order placed: {request.symbol} {request.side.value} {request.quantity} -> {order_id}")
        return await self.get_order(order_id)

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        data = await self._request('POST', '/orders/batch_cancel', body={'order_ids': [order_id]})
        results = data.get('results') or []
        return bool(results and results[0].get('success'))

    def _map_order(self, order: Dict[str, Any]) -> Order:
        configuration = order.get('order_configuration') or {}
        # Exactly one configuration key is present, e.g. limit_limit_gtc
        config = next(iter(configuration.values()), {})

        created = utc_from_iso(order.get('created_time'))
        return Order(
            id=order['order_id'],
            client_order_id=order.get('client_order_id') or None,
            symbol=order.get('product_id', ''),
            side=OrderSide.BUY if order.get('side') == 'BUY' else OrderSide.SELL,
            type=ORDER_TYPE_FROM_COINBASE.get(order.get('order_type'), OrderType.MARKET),
            status=map_status(ORDER_STATUS, order.get('status'), self.exchange_id),
            price=to_float(config.get('limit_price')),
            quantity=to_float(config.get('base_size')),
            filled_quantity=to_float(order.get('filled_size')),
            average_price=to_float(order.get('average_filled_price')) or None,
            stop_price=to_float(config.get('stop_price')) or None,
            time_in_force=TIME_IN_FORCE.get(order.get('time_in_force'), TimeInForce.GTC),
            created_at=created,
            updated_at=utc_from_iso(order.get('last_fill_time')) if order.get('last_fill_time') else created
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        """Synthesize one long spot position per non-USD holding."""
        balance = await self.get_balance()
        now = utc_now()

        positions = []
        for item in balance.balances:
            if item.currency == QUOTE_CURRENCY or item.total <= 0:
                continue
            pair = self.format_symbol(item.currency, QUOTE_CURRENCY)
            if symbol and symbol != pair:
                continue
            positions.append(Position(
                id=pair,
                symbol=pair,
                side=PositionSide.LONG,
                quantity=item.total,
                entry_price=0.0,
                mark_price=0.0,
                unrealized_pnl=0.0,
                realized_pnl=0.0,
                leverage=1.0,
                margin_mode=MarginMode.CROSS,
                margin_used=0.0,
                created_at=now
            ))
        return positions

    # Market Data
    async def get_market_info(self, symbol: str) -> MarketInfo:
        product = await self._request('GET', f"/products/{symbol}")
        base, quote = self.parse_symbol(product.get('product_id', symbol))
        return MarketInfo(
            symbol=product.get('product_id', symbol),
            base_asset=base,
            quote_asset=quote,
            status=MarketStatus.HALT if product.get('trading_disabled') else MarketStatus.TRADING,
            min_quantity=to_float(product.get('base_min_size')),
            max_quantity=to_float(product.get('base_max_size')),
            quantity_precision=precision_from_step(product.get('base_increment')),
            min_price=0.0,
            max_price=0.0,
            price_precision=precision_from_step(product.get('quote_increment')),
            min_notional=to_float(product.get('quote_min_size')),
            tick_size=to_float(product.get('quote_increment')),
            is_spot=True,
            is_futures=False,
            is_margin_enabled=False,
            max_leverage=1
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        params = {
            'granularity': GRANULARITY.get(timeframe, 'ONE_HOUR'),
            'start': start_time // 1000 if start_time else None,
            'end': end_time // 1000 if end_time else None,
        }
        data = await self._request('GET', f"/products/{symbol}/candles", params, timeout=HISTORY_TIMEOUT)
        candles = [
            OHLCV(timestamp=int(c['start']) * 1000, open=to_float(c.get('open')),
                  high=to_float(c.get('high')), low=to_float(c.get('low')),
                  close=to_float(c.get('close')), volume=to_float(c.get('volume')))
            for c in (data.get('candles') or [])[:limit or 500]
        ]
        candles.sort(key=lambda c: c.timestamp)
        return candles

    # Static Descriptors
    def get_capabilities(self) -> ExchangeCapabilities:
        return ExchangeCapabilities(
            spot=True,
            futures=False,
            options=False,
            margin=False,
            cross_margin=False,
            isolated_margin=False,
            websocket=True,
            order_types=[OrderType.MARKET, OrderType.LIMIT],
            max_leverage=1,
            supported_timeframes=list(GRANULARITY)
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=10, requests_per_minute=600,
                          orders_per_second=5, orders_per_minute=30)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}-{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        parts = symbol.split('-')
        if len(parts) == 2:
            return parts[0], parts[1]
        return symbol[:3], symbol[3:]
