"""
Bybit Exchange Adapter

Bybit V5 REST client covering spot, linear, inverse and option categories.
Following Clean Code principles with clear separation of concerns.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ...core.errors import ErrorKind, ExchangeError, build_exchange_error
from ...core.models import (
    AssetClass, Balance, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, MarketStatus, OHLCV, Order, OrderSide, OrderStatus, OrderType,
    Position, PositionSide, RateLimits, TimeInForce, Trade, WalletBalance,
    CANONICAL_TIMEFRAMES, map_status, to_float, utc_from_ms, utc_now
)
from ...core.risk import precision_from_step
from ..core.exchange_base import ExchangeClient
from ..core.http_client import (
    ACCOUNT_TIMEOUT, HISTORY_TIMEOUT, ExchangeHttpClient, build_query, raise_for_http_status
)
from .bybit_auth import BybitAuth

logger = logging.getLogger(__name__)

MAINNET_URL = 'https://api.bybit.com'
TESTNET_URL = 'https://api-testnet.bybit.com'

CATEGORIES = ('spot', 'linear', 'inverse', 'option')
TRADE_WINDOW_MS = 7 * 24 * 60 * 60 * 1000
TRADE_LOOKBACK_MS = 180 * 24 * 60 * 60 * 1000
# Pause between consecutive execution-list windows, in seconds
WINDOW_PAUSE = 0.1

ERROR_CODES: Dict[str, ErrorKind] = {
    '10001': ErrorKind.INVALID_PARAM,
    '10002': ErrorKind.AUTH,
    '10003': ErrorKind.AUTH,
    '10004': ErrorKind.AUTH,
    '10005': ErrorKind.AUTH,
    '10006': ErrorKind.RATE_LIMIT,
    '10010': ErrorKind.AUTH,
    '10016': ErrorKind.UNAVAILABLE,
    '10018': ErrorKind.RATE_LIMIT,
    '110001': ErrorKind.ORDER,
    '110004': ErrorKind.INSUFFICIENT_BALANCE,
    '110007': ErrorKind.INSUFFICIENT_BALANCE,
    '110012': ErrorKind.INSUFFICIENT_BALANCE,
    '170131': ErrorKind.INSUFFICIENT_BALANCE,
}

# Codes meaning the account cannot query a category; that category is skipped
CATEGORY_SKIP_CODES = ('10001', '10005')

ORDER_STATUS: Dict[str, OrderStatus] = {
    'New': OrderStatus.OPEN,
    'PartiallyFilled': OrderStatus.PARTIALLY_FILLED,
    'PartiallyFilledCanceled': OrderStatus.CANCELLED,
    'Filled': OrderStatus.FILLED,
    'Cancelled': OrderStatus.CANCELLED,
    'Rejected': OrderStatus.REJECTED,
    'Untriggered': OrderStatus.PENDING,
    'Triggered': OrderStatus.OPEN,
    'Deactivated': OrderStatus.CANCELLED,
}

ORDER_TYPE_FROM_BYBIT: Dict[str, OrderType] = {
    'Market': OrderType.MARKET,
    'Limit': OrderType.LIMIT,
}

TIME_IN_FORCE_TO_BYBIT: Dict[TimeInForce, str] = {
    TimeInForce.GTC: 'GTC',
    TimeInForce.IOC: 'IOC',
    TimeInForce.FOK: 'FOK',
    TimeInForce.POST_ONLY: 'PostOnly',
}

TIME_IN_FORCE_FROM_BYBIT = {native: tif for tif, native in TIME_IN_FORCE_TO_BYBIT.items()}

TIMEFRAMES: Dict[str, str] = {
    '1m': '1', '3m': '3', '5m': '5', '15m': '15', '30m': '30',
    '1h': '60', '2h': '120', '4h': '240', '6h': '360', '12h': '720',
    '1d': 'D', '1w': 'W', '1M': 'M',
}

QUOTE_ASSETS = ('USDT', 'USDC', 'USD', 'BTC', 'ETH', 'EUR')


class BybitExchange(ExchangeClient):
    """
    Bybit implementation of the exchange client.

    Order, position and market calls use the configured ``category``; trade
    history always walks every category.
    """

    exchange_id = 'bybit'
    account_type = 'UNIFIED'

    def __init__(self, credentials: ExchangeCredentials, category: str = 'linear',
                 asset_class: AssetClass = AssetClass.CRYPTO):
        super().__init__(credentials, asset_class)
        self.auth = BybitAuth(credentials.api_key, credentials.api_secret)
        base_url = TESTNET_URL if credentials.testnet else MAINNET_URL
        self.http = ExchangeHttpClient(self.exchange_id, base_url, secrets=(credentials.api_secret,))
        self.category = 'linear'
        self.set_category(category)

    def set_category(self, category: str) -> None:
        """Set the market category used by order, position and market calls."""
        if category not in CATEGORIES:
            raise ValueError(f"Unknown Bybit category: {category}")
        self.category = category

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       signed: bool = True, timeout: float = ACCOUNT_TIMEOUT) -> Dict[str, Any]:
        """
        Send a request and return the ``result`` object.

        GET parameters are sent as a sorted query string, POST parameters as a
        JSON body. The signed payload is exactly what is sent.
        """
        query = ""
        body = None
        if method == 'GET':
            query = build_query(params, sort=True)
            payload = query
        else:
            body = json.dumps({k: v for k, v in (params or {}).items() if v is not None})
            payload = body

        headers = self.auth.get_auth_headers(payload) if signed else None
        status, data = await self.http.request(method, path, query=query, body=body,
                                               headers=headers, timeout=timeout)

        if isinstance(data, dict) and 'retCode' in data:
            if data['retCode'] != 0:
                raise build_exchange_error(self.exchange_id, data['retCode'],
                                           data.get('retMsg') or 'Unknown error', ERROR_CODES)
            return data.get('result') or {}

        if status >= 400:
            raise_for_http_status(self.exchange_id, status, str(data))
        raise ExchangeError(self.exchange_id, 'INVALID_RESPONSE', f"Unexpected response from {path}")

    async def test_connection(self) -> bool:
        await self._request('GET', '/v5/account/wallet-balance', {'accountType': 'UNIFIED'})
        logger.info("Bybit connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        result = await self._request('GET', '/v5/account/wallet-balance', {'accountType': 'UNIFIED'})
        accounts = result.get('list') or []
        account = accounts[0] if accounts else {}

        balances = []
        for coin in account.get('coin') or []:
            wallet = to_float(coin.get('walletBalance'))
            if wallet <= 0:
                continue
            available = to_float(coin.get('availableToWithdraw'))
            balances.append(Balance(
                currency=coin['coin'],
                total=wallet,
                available=available,
                locked=wallet - available,
                usd_value=to_float(coin.get('usdValue')) or None
            ))

        available_margin = to_float(account.get('totalAvailableBalance'))
        return WalletBalance(
            account_type='UNIFIED',
            balances=balances,
            total_equity_usd=to_float(account.get('totalEquity')),
            available_margin_usd=available_margin,
            used_margin_usd=to_float(account.get('totalMarginBalance')) - available_margin
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        """
        Get executions across every category.

        The execution endpoint accepts at most seven days per call, so the
        requested range (default: the last 180 days) is walked in 7-day
        windows. Categories the account cannot query are skipped.

        Returns:
            Trades de-duplicated by id, sorted by timestamp ascending
        """
        now = int(utc_now().timestamp() * 1000)
        until = end_time or now
        since = start_time or (now - TRADE_LOOKBACK_MS)
        page_size = limit or 50

        trades_by_id: Dict[str, Trade] = {}
        for category in CATEGORIES:
            try:
                for window_start, window_end in self.iter_windows(since, until):
                    for trade in await self._fetch_executions(category, symbol, window_start,
                                                              window_end, page_size):
                        trades_by_id[trade.id] = trade
                    if window_end < until:
                        await asyncio.sleep(WINDOW_PAUSE)
            except ExchangeError as e:
                if self._error_code(e) in CATEGORY_SKIP_CODES:
                    logger.info(f"Skipping Bybit category {category}: {e.raw_message}")
                    continue
                raise

        trades = list(trades_by_id.values())
        trades.sort(key=lambda t: t.timestamp)
        logger.info(f"Fetched {len(trades)} Bybit executions")
        return trades

    @staticmethod
    def iter_windows(since: int, until: int) -> List[Tuple[int, int]]:
        """Split [since, until] into consecutive 7-day windows."""
        windows = []
        current = since
        while current < until:
            window_end = min(current + TRADE_WINDOW_MS, until)
            windows.append((current, window_end))
            current = window_end + 1
        return windows

    @staticmethod
    def _error_code(error: ExchangeError) -> str:
        if isinstance(error.details, dict) and 'exchange_code' in error.details:
            return str(error.details['exchange_code'])
        return error.exchange_code

    async def _fetch_executions(self, category: str, symbol: Optional[str],
                                start_time: int, end_time: int, limit: int) -> List[Trade]:
        """Fetch every page of executions in one window, following ``nextPageCursor``."""
        trades: List[Trade] = []
        cursor = None
        while True:
            params = {
                'category': category,
                'symbol': symbol,
                'startTime': start_time,
                'endTime': end_time,
                'limit': limit,
                'cursor': cursor,
            }
            result = await self._request('GET', '/v5/execution/list', params, timeout=HISTORY_TIMEOUT)
            page = result.get('list') or []
            trades.extend(self._map_execution(e) for e in page)

            next_cursor = result.get('nextPageCursor')
            if not page or not next_cursor or next_cursor == cursor:
                return trades
            cursor = next_cursor

    def _map_execution(self, data: Dict[str, Any]) -> Trade:
        return Trade(
            id=data['execId'],
            order_id=data.get('orderId', ''),
            symbol=data['symbol'],
            side=OrderSide(data['side'].lower()),
            price=to_float(data.get('execPrice', data.get('price'))),
            quantity=to_float(data.get('execQty', data.get('qty'))),
            fee=to_float(data.get('execFee')),
            fee_currency=data.get('feeCurrency') or 'USDT',
            timestamp=utc_from_ms(data.get('execTime')),
            is_maker=bool(data.get('isMaker')),
            category=data.get('category')
        )

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        params = {'category': self.category, 'symbol': symbol}
        if symbol is None and self.category in ('linear', 'inverse'):
            params['settleCoin'] = 'USDT'
        result = await self._request('GET', '/v5/order/realtime', params)
        return [self._map_order(o) for o in result.get('list') or []]

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        params = {'category': self.category, 'orderId': order_id, 'symbol': symbol}
        result = await self._request('GET', '/v5/order/realtime', params)
        orders = result.get('list') or []
        if not orders:
            raise ExchangeError(self.exchange_id, 'ORDER_NOT_FOUND', f"Order {order_id} not found")
        return self._map_order(orders[0])

    async def create_order(self, request: CreateOrderRequest) -> Order:
        params: Dict[str, Any] = {
            'category': self.category,
            'symbol': request.symbol,
            'side': 'Buy' if request.side is OrderSide.BUY else 'Sell',
            'orderType': 'Market' if request.type is OrderType.MARKET else 'Limit',
            'qty': str(request.quantity),
        }
        if request.price and request.type is not OrderType.MARKET:
            params['price'] = str(request.price)
        if request.stop_price and request.type in (OrderType.STOP, OrderType.STOP_LIMIT):
            params['triggerPrice'] = str(request.stop_price)
        if request.stop_loss:
            params['stopLoss'] = str(request.stop_loss)
        if request.take_profit:
            params['takeProfit'] = str(request.take_profit)
        if request.time_in_force:
            params['timeInForce'] = TIME_IN_FORCE_TO_BYBIT.get(request.time_in_force, 'GTC')
        elif request.type is OrderType.LIMIT:
            params['timeInForce'] = 'GTC'
        if request.client_order_id:
            params['orderLinkId'] = request.client_order_id
        if request.reduce_only:
            params['reduceOnly'] = True
        if self.category == 'linear':
            # One-way position mode
            params['positionIdx'] = 0

        result = await self._request('POST', '/v5/order/create', params, timeout=HISTORY_TIMEOUT)
        order_id = result.get('orderId')
        logger.info(f"Bybit order placed: {request.symbol} {request.side.value} {request.quantity} -> {order_id}")
        return await self.get_order(order_id, request.symbol)

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        if not symbol:
            raise ExchangeError(self.exchange_id, 'SYMBOL_REQUIRED',
                                'Symbol is required for Bybit order cancellation')
        params = {'category': self.category, 'symbol': symbol, 'orderId': order_id}
        await self._request('POST', '/v5/order/cancel', params)
        return True

    def _map_order(self, data: Dict[str, Any]) -> Order:
        return Order(
            id=data['orderId'],
            client_order_id=data.get('orderLinkId') or None,
            symbol=data['symbol'],
            side=OrderSide(data['side'].lower()),
            type=ORDER_TYPE_FROM_BYBIT.get(data.get('orderType'), OrderType.MARKET),
            status=map_status(ORDER_STATUS, data.get('orderStatus'), self.exchange_id),
            price=to_float(data.get('price')),
            quantity=to_float(data.get('qty')),
            filled_quantity=to_float(data.get('cumExecQty')),
            average_price=to_float(data.get('avgPrice')) or None,
            stop_price=to_float(data.get('triggerPrice')) or None,
            stop_loss=to_float(data.get('stopLoss')) or None,
            take_profit=to_float(data.get('takeProfit')) or None,
            time_in_force=TIME_IN_FORCE_FROM_BYBIT.get(data.get('timeInForce'), TimeInForce.GTC),
            leverage=to_float(data.get('leverage')) or None,
            created_at=utc_from_ms(data.get('createdTime')),
            updated_at=utc_from_ms(data.get('updatedTime'))
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        if self.category == 'spot':
            return []

        params = {'category': self.category, 'symbol': symbol}
        if symbol is None:
            params['settleCoin'] = 'USDT'
        result = await self._request('GET', '/v5/position/list', params)

        positions = []
        for item in result.get('list') or []:
            size = to_float(item.get('size'))
            if size == 0:
                continue
            leverage = to_float(item.get('leverage'), 1.0) or 1.0
            positions.append(Position(
                id=f"{item['symbol']}-{item.get('positionIdx', 0)}",
                symbol=item['symbol'],
                side=PositionSide.LONG if item.get('side') == 'Buy' else PositionSide.SHORT,
                quantity=abs(size),
                entry_price=to_float(item.get('avgPrice')),
                mark_price=to_float(item.get('markPrice')),
                unrealized_pnl=to_float(item.get('unrealisedPnl')),
                realized_pnl=to_float(item.get('cumRealisedPnl')),
                leverage=leverage,
                margin_mode=MarginMode.CROSS if item.get('tradeMode', 0) == 0 else MarginMode.ISOLATED,
                liquidation_price=to_float(item.get('liqPrice')) or None,
                margin_used=to_float(item.get('positionValue')) / leverage,
                created_at=utc_from_ms(item.get('createdTime'))
            ))
        return positions

    # Market Data
    async def get_market_info(self, symbol: str) -> MarketInfo:
        result = await self._request('GET', '/v5/market/instruments-info',
                                     {'category': self.category, 'symbol': symbol}, signed=False)
        instruments = result.get('list') or []
        if not instruments:
            raise ExchangeError(self.exchange_id, 'SYMBOL_NOT_FOUND', f"Symbol {symbol} not found")

        instrument = instruments[0]
        lot = instrument.get('lotSizeFilter') or {}
        price = instrument.get('priceFilter') or {}
        leverage = instrument.get('leverageFilter')
        qty_step = lot.get('qtyStep') or lot.get('basePrecision')

        return MarketInfo(
            symbol=instrument['symbol'],
            base_asset=instrument.get('baseCoin', ''),
            quote_asset=instrument.get('quoteCoin', ''),
            status=MarketStatus.TRADING if instrument.get('status') == 'Trading' else MarketStatus.HALT,
            min_quantity=to_float(lot.get('minOrderQty')),
            max_quantity=to_float(lot.get('maxOrderQty')),
            quantity_precision=precision_from_step(qty_step),
            min_price=to_float(price.get('minPrice')),
            max_price=to_float(price.get('maxPrice')),
            price_precision=precision_from_step(price.get('tickSize')),
            min_notional=5.0,
            tick_size=to_float(price.get('tickSize')),
            is_spot=self.category == 'spot',
            is_futures=self.category in ('linear', 'inverse'),
            is_margin_enabled=True,
            max_leverage=to_float(leverage.get('maxLeverage'), 100.0) if leverage else 100.0
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        params = {
            'category': self.category,
            'symbol': symbol,
            'interval': TIMEFRAMES.get(timeframe, timeframe),
            'limit': limit or 200,
            'start': start_time,
            'end': end_time,
        }
        result = await self._request('GET', '/v5/market/kline', params, signed=False,
                                     timeout=HISTORY_TIMEOUT)
        candles = [
            OHLCV(timestamp=int(k[0]), open=to_float(k[1]), high=to_float(k[2]),
                  low=to_float(k[3]), close=to_float(k[4]), volume=to_float(k[5]))
            for k in result.get('list') or []
        ]
        # Newest first on the wire
        candles.reverse()
        return candles

    # Static Descriptors
    def get_capabilities(self) -> ExchangeCapabilities:
        return ExchangeCapabilities(
            spot=True,
            futures=True,
            options=True,
            margin=True,
            cross_margin=True,
            isolated_margin=True,
            websocket=True,
            order_types=list(OrderType),
            max_leverage=100,
            supported_timeframes=[tf for tf in CANONICAL_TIMEFRAMES if tf in TIMEFRAMES]
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=10, requests_per_minute=600,
                          orders_per_second=10, orders_per_minute=100)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        symbol = symbol.upper()
        for quote in QUOTE_ASSETS:
            if symbol.endswith(quote) and len(symbol) > len(quote):
                return symbol[:-len(quote)], quote
        return symbol[:-4], symbol[-4:]
