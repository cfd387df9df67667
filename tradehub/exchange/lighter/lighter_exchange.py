"""
Lighter Exchange Adapter

Client for the Lighter perpetuals DEX. Lighter encodes prices and sizes as
integers scaled by 1e8; conversion happens here so only decimal floats leave
the adapter. Accounts are addressed by an integer index in [3, 254].
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ...core.errors import ErrorKind, ExchangeError, build_exchange_error
from ...core.models import (
    AssetClass, Balance, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, MarketStatus, OHLCV, Order, OrderSide, OrderStatus, OrderType,
    Position, PositionSide, RateLimits, TimeInForce, Trade, WalletBalance,
    map_status, to_float, utc_from_ms
)
from ..core.exchange_base import ExchangeClient
from ..core.http_client import (
    ACCOUNT_TIMEOUT, HISTORY_TIMEOUT, ExchangeHttpClient, build_query, raise_for_http_status
)
from .lighter_auth import LighterAuth

logger = logging.getLogger(__name__)

MAINNET_URL = 'https://mainnet.zklighter.elliot.ai'
TESTNET_URL = 'https://testnet.zklighter.elliot.ai'

PRICE_SCALE = 100_000_000
SIZE_SCALE = 100_000_000

MIN_ACCOUNT_INDEX = 3
MAX_ACCOUNT_INDEX = 254

# Lighter reports errors as free text; fragments are matched in order
ERROR_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ('invalid api key', 'INVALID_API_KEY'),
    ('unauthorized', 'UNAUTHORIZED'),
    ('invalid signature', 'INVALID_SIGNATURE'),
    ('account not found', 'ACCOUNT_NOT_FOUND'),
    ('insufficient', 'INSUFFICIENT_BALANCE'),
    ('rate limit', 'RATE_LIMIT'),
    ('market not found', 'MARKET_NOT_FOUND'),
)

ERROR_CODES: Dict[str, ErrorKind] = {
    'INVALID_API_KEY': ErrorKind.AUTH,
    'UNAUTHORIZED': ErrorKind.AUTH,
    'INVALID_SIGNATURE': ErrorKind.AUTH,
    'INSUFFICIENT_BALANCE': ErrorKind.INSUFFICIENT_BALANCE,
    'RATE_LIMIT': ErrorKind.RATE_LIMIT,
    'MARKET_NOT_FOUND': ErrorKind.NOT_FOUND,
}

ORDER_STATUS: Dict[str, OrderStatus] = {
    'pending': OrderStatus.PENDING,
    'new': OrderStatus.OPEN,
    'open': OrderStatus.OPEN,
    'partially_filled': OrderStatus.PARTIALLY_FILLED,
    'filled': OrderStatus.FILLED,
    'cancelled': OrderStatus.CANCELLED,
    'expired': OrderStatus.CANCELLED,
    'rejected': OrderStatus.REJECTED,
}

ORDER_TYPE_TO_LIGHTER: Dict[OrderType, str] = {
    OrderType.MARKET: 'market',
    OrderType.LIMIT: 'limit',
    OrderType.STOP: 'stop_market',
    OrderType.STOP_LIMIT: 'stop_limit',
}

ORDER_TYPE_FROM_LIGHTER = {native: order_type for order_type, native in ORDER_TYPE_TO_LIGHTER.items()}

TIME_IN_FORCE_TO_LIGHTER: Dict[TimeInForce, str] = {
    TimeInForce.GTC: 'GTC',
    TimeInForce.IOC: 'IOC',
    TimeInForce.FOK: 'FOK',
    TimeInForce.POST_ONLY: 'POST_ONLY',
}

TIME_IN_FORCE_FROM_LIGHTER = {native: tif for tif, native in TIME_IN_FORCE_TO_LIGHTER.items()}

TIMEFRAMES = ['1m', '5m', '15m', '30m', '1h', '4h', '1d', '1w']

QUOTE_ASSETS = ('USDT', 'USDC', 'USD')


def to_integer_price(price: float) -> str:
    """Encode a decimal price as Lighter's 1e8 scaled integer string."""
    return str(int(round(price * PRICE_SCALE)))


def from_integer_price(int_price: Any) -> float:
    return to_float(int_price) / PRICE_SCALE


def to_integer_size(size: float) -> str:
    """Encode a decimal size as Lighter's 1e8 scaled integer string."""
    return str(int(round(size * SIZE_SCALE)))


def from_integer_size(int_size: Any) -> float:
    return to_float(int_size) / SIZE_SCALE


def classify_error(message: str) -> str:
    """Map a Lighter error message onto a stable error code."""
    lower = message.lower()
    for fragment, code in ERROR_PATTERNS:
        if fragment in lower:
            return code
    return 'UNKNOWN'


class LighterExchange(ExchangeClient):
    """
    Lighter implementation of the exchange client.

    Private endpoints need an account index; it comes from the credentials
    or ``set_account_index``.
    """

    exchange_id = 'lighter'
    account_type = 'LIGHTER'
    warn_high_leverage = True

    def __init__(self, credentials: ExchangeCredentials, asset_class: AssetClass = AssetClass.CRYPTO):
        super().__init__(credentials, asset_class)
        self.auth = LighterAuth(credentials.api_key, credentials.api_secret)
        base_url = TESTNET_URL if credentials.testnet else MAINNET_URL
        self.http = ExchangeHttpClient(self.exchange_id, base_url, secrets=(credentials.api_secret,))
        self.account_index: Optional[int] = None
        self.wallet_address = credentials.wallet_address or ''
        if credentials.account_index is not None:
            self.set_account_index(credentials.account_index)

    def set_account_index(self, index: int) -> None:
        if not MIN_ACCOUNT_INDEX <= index <= MAX_ACCOUNT_INDEX:
            raise ExchangeError(self.exchange_id, 'INVALID_ACCOUNT',
                                f"Account index must be between {MIN_ACCOUNT_INDEX} and {MAX_ACCOUNT_INDEX}")
        self.account_index = index

    def set_wallet_address(self, address: str) -> None:
        self.wallet_address = address

    def _require_account(self) -> int:
        if self.account_index is None:
            raise ExchangeError(self.exchange_id, 'INVALID_ACCOUNT', 'Lighter account index is not set')
        return self.account_index

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       body: Optional[Dict[str, Any]] = None, signed: bool = True,
                       timeout: float = ACCOUNT_TIMEOUT) -> Any:
        """Send a request and return the ``data`` field of the response envelope."""
        query = build_query(params)
        body_str = json.dumps(body) if body is not None else None

        headers = None
        if signed:
            account_index = self._require_account()
            timestamp = self.auth.timestamp()
            if method == 'POST':
                signature = self.auth.generate_post_signature(timestamp, body_str or '')
            else:
                endpoint = f"{path}?{query}" if query else path
                signed_params = {k: v for k, v in (params or {}).items() if v is not None}
                signature = self.auth.generate_signature(timestamp, method, endpoint, signed_params)
            headers = self.auth.get_auth_headers(signature, timestamp, account_index)

        status, payload = await self.http.request(method, path, query=query, body=body_str,
                                                  headers=headers, timeout=timeout)

        if isinstance(payload, dict) and 'success' in payload:
            if not payload['success']:
                message = payload.get('error') or payload.get('message') or 'Unknown error'
                raise build_exchange_error(self.exchange_id, classify_error(message), message, ERROR_CODES)
            return payload.get('data') or {}

        if status >= 400:
            raise_for_http_status(self.exchange_id, status, str(payload))
        raise ExchangeError(self.exchange_id, 'INVALID_RESPONSE', f"Unexpected response from {path}")

    async def test_connection(self) -> bool:
        await self._request('GET', f"/api/v1/account/{self._require_account()}")
        logger.info("Lighter connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        data = await self._request('GET', f"/api/v1/account/{self._require_account()}/balances")
        account = data.get('account') or {}

        balances = [
            Balance(
                currency=b['asset'],
                total=to_float(b.get('total')),
                available=to_float(b.get('available')),
                locked=to_float(b.get('locked'))
            )
            for b in data.get('balances') or [] if to_float(b.get('total')) > 0
        ]

        return WalletBalance(
            account_type=self.account_type,
            balances=balances,
            total_equity_usd=to_float(account.get('total_value')),
            available_margin_usd=to_float(account.get('available_margin')),
            used_margin_usd=to_float(account.get('used_margin'))
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        params = {
            'limit': limit or 100,
            'market': symbol,
            'start_time': start_time,
            'end_time': end_time,
        }
        data = await self._request('GET', f"/api/v1/account/{self._require_account()}/trades", params,
                                   timeout=HISTORY_TIMEOUT)

        trades = [
            Trade(
                id=str(t['trade_id']),
                order_id=str(t.get('order_id', '')),
                symbol=t['market'],
                side=OrderSide.BUY if t.get('side') == 'buy' else OrderSide.SELL,
                price=from_integer_price(t.get('price')),
                quantity=from_integer_size(t.get('size')),
                fee=to_float(t.get('fee')),
                fee_currency=t.get('fee_asset', 'USDC'),
                timestamp=utc_from_ms(t.get('timestamp')),
                is_maker=bool(t.get('is_maker')),
                category='perpetual',
                realized_pnl=to_float(t.get('realized_pnl'))
            )
            for t in data.get('trades') or []
        ]
        trades.sort(key=lambda t: t.timestamp)
        return trades

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        data = await self._request('GET', f"/api/v1/account/{self._require_account()}/orders",
                                   {'market': symbol})
        return [self._map_order(o) for o in data.get('orders') or []]

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        data = await self._request('GET', f"/api/v1/order/{order_id}")
        order = data.get('order')
        if not order:
            raise ExchangeError(self.exchange_id, 'ORDER_NOT_FOUND', f"Order {order_id} not found")
        return self._map_order(order)

    async def create_order(self, request: CreateOrderRequest) -> Order:
        body: Dict[str, Any] = {
            'account_index': self._require_account(),
            'market': request.symbol,
            'side': request.side.value,
            'order_type': ORDER_TYPE_TO_LIGHTER[request.type],
            'size': to_integer_size(request.quantity),
        }
        if request.price and request.type is not OrderType.MARKET:
            body['price'] = to_integer_price(request.price)
        if request.stop_price:
            body['stop_price'] = to_integer_price(request.stop_price)
        if request.stop_loss:
            body['stop_loss'] = to_integer_price(request.stop_loss)
        if request.take_profit:
            body['take_profit'] = to_integer_price(request.take_profit)
        if request.time_in_force:
            body['time_in_force'] = TIME_IN_FORCE_TO_LIGHTER[request.time_in_force]
        if request.leverage:
            body['leverage'] = request.leverage
        if request.reduce_only:
            body['reduce_only'] = True
        if request.client_order_id:
            body['client_order_id'] = request.client_order_id

        data = await self._request('POST', '/api/v1/order', body=body, timeout=HISTORY_TIMEOUT)
        order = self._map_order(data['order'])
        logger.info(f"Lighter order placed: {request.symbol} {request.side.value} {request.quantity} -> {order.id}")
        return order

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        await self._request('DELETE', f"/api/v1/order/{order_id}")
        return True

    async def cancel_all_orders(self, symbol: Optional[str] = None) -> bool:
        """
        Cancel every open order of the account.

        Args:
            symbol: Limit the cancellation to one market

        Returns:
            True once Lighter accepted the request
        """
        body: Dict[str, Any] = {'account_index': self._require_account()}
        if symbol:
            body['market'] = symbol
        await self._request('POST', '/api/v1/orders/cancel-all', body=body)
        return True

    def _map_order(self, data: Dict[str, Any]) -> Order:
        return Order(
            id=str(data['order_id']),
            client_order_id=data.get('client_order_id'),
            symbol=data['market'],
            side=OrderSide.BUY if data.get('side') == 'buy' else OrderSide.SELL,
            type=ORDER_TYPE_FROM_LIGHTER.get(data.get('order_type'), OrderType.MARKET),
            status=map_status(ORDER_STATUS, (data.get('status') or '').lower(), self.exchange_id),
            price=from_integer_price(data.get('price')),
            quantity=from_integer_size(data.get('size')),
            filled_quantity=from_integer_size(data.get('filled_size')),
            average_price=from_integer_price(data['avg_fill_price']) if data.get('avg_fill_price') else None,
            time_in_force=TIME_IN_FORCE_FROM_LIGHTER.get((data.get('time_in_force') or 'GTC').upper(),
                                                        TimeInForce.GTC),
            leverage=to_float(data.get('leverage')) or None,
            created_at=utc_from_ms(data.get('created_at')),
            updated_at=utc_from_ms(data.get('updated_at'))
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        account_index = self._require_account()
        data = await self._request('GET', f"/api/v1/account/{account_index}/positions", {'market': symbol})

        positions = []
        for p in data.get('positions') or []:
            if to_float(p.get('size')) == 0:
                continue
            positions.append(Position(
                id=f"{p['market']}-{account_index}",
                symbol=p['market'],
                side=PositionSide.LONG if p.get('side') == 'long' else PositionSide.SHORT,
                quantity=abs(from_integer_size(p.get('size'))),
                entry_price=from_integer_price(p.get('entry_price')),
                mark_price=from_integer_price(p.get('mark_price')),
                unrealized_pnl=to_float(p.get('unrealized_pnl')),
                realized_pnl=to_float(p.get('realized_pnl')),
                leverage=to_float(p.get('leverage'), 1.0),
                margin_mode=MarginMode.ISOLATED if p.get('margin_mode') == 'isolated' else MarginMode.CROSS,
                liquidation_price=from_integer_price(p.get('liquidation_price')) or None,
                margin_used=to_float(p.get('margin_used')),
                created_at=utc_from_ms(p.get('created_at'))
            ))
        return positions

    # Market Data
    async def get_market_info(self, symbol: str) -> MarketInfo:
        data = await self._request('GET', f"/api/v1/markets/{symbol}", signed=False)
        market = data.get('market')
        if not market:
            raise ExchangeError(self.exchange_id, 'SYMBOL_NOT_FOUND', f"Market {symbol} not found")
        return self._map_market(market)

    async def get_markets(self) -> List[MarketInfo]:
        """List every market Lighter offers."""
        data = await self._request('GET', '/api/v1/markets', signed=False)
        return [self._map_market(m) for m in data.get('markets') or []]

    @staticmethod
    def _map_market(market: Dict[str, Any]) -> MarketInfo:
        return MarketInfo(
            symbol=market['market'],
            base_asset=market.get('base_asset', ''),
            quote_asset=market.get('quote_asset', ''),
            status=MarketStatus.TRADING if market.get('status') == 'active' else MarketStatus.HALT,
            min_quantity=to_float(market.get('min_order_size')),
            max_quantity=to_float(market.get('max_order_size')),
            quantity_precision=int(market.get('size_precision') or 0),
            min_price=to_float(market.get('min_price')),
            max_price=to_float(market.get('max_price')),
            price_precision=int(market.get('price_precision') or 0),
            min_notional=1.0,
            tick_size=to_float(market.get('tick_size')),
            is_spot=False,
            is_futures=True,
            is_margin_enabled=True,
            max_leverage=to_float(market.get('max_leverage')) or 50.0
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        params = {
            'market': symbol,
            'interval': timeframe,
            'limit': limit or 200,
            'start_time': start_time,
            'end_time': end_time,
        }
        data = await self._request('GET', '/api/v1/klines', params, signed=False, timeout=HISTORY_TIMEOUT)
        return [
            OHLCV(timestamp=int(k['timestamp']), open=to_float(k.get('open')), high=to_float(k.get('high')),
                  low=to_float(k.get('low')), close=to_float(k.get('close')), volume=to_float(k.get('volume')))
            for k in data.get('klines') or []
        ]

    # Static Descriptors
    def get_capabilities(self) -> ExchangeCapabilities:
        return ExchangeCapabilities(
            spot=False,
            futures=True,
            options=False,
            margin=True,
            cross_margin=True,
            isolated_margin=True,
            websocket=True,
            order_types=[OrderType.MARKET, OrderType.LIMIT, OrderType.STOP, OrderType.STOP_LIMIT],
            max_leverage=50,
            supported_timeframes=list(TIMEFRAMES)
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=10, requests_per_minute=600,
                          orders_per_second=5, orders_per_minute=100)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}-{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        parts = symbol.split('-')
        if len(parts) == 2:
            return parts[0], parts[1]
        for quote in QUOTE_ASSETS:
            if symbol.endswith(quote) and len(symbol) > len(quote):
                return symbol[:-len(quote)], quote
        return symbol, 'USDT'
