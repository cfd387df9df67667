"""
Binance Exchange Adapter

Binance spot (api/v3) and USD-M futures (fapi) REST client mapped onto the
canonical trading model.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...core.errors import ErrorKind, ExchangeError, build_exchange_error
from ...core.models import (
    AssetClass, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, MarketStatus, OHLCV, Order, OrderSide, OrderStatus,
    OrderType, Position, PositionSide, RateLimits, TimeInForce, Trade,
    Balance, WalletBalance, CANONICAL_TIMEFRAMES, map_status, to_float, utc_from_ms
)
from ...core.risk import precision_from_step
from ..core.exchange_base import ExchangeClient
from ..core.http_client import (
    ACCOUNT_TIMEOUT, HISTORY_TIMEOUT, ExchangeHttpClient, build_query, raise_for_http_status
)
from .binance_auth import BinanceAuth

logger = logging.getLogger(__name__)

SPOT_URL = 'https://api.binance.com'
SPOT_TESTNET_URL = 'https://testnet.binance.vision'
FUTURES_URL = 'https://fapi.binance.com'
FUTURES_TESTNET_URL = 'https://testnet.binancefuture.com'

# Longest first so that e.g. FDUSD wins over USD-like suffixes
QUOTE_ASSETS = sorted(
    ['USDT', 'BUSD', 'USDC', 'BTC', 'ETH', 'BNB', 'EUR', 'GBP', 'TRY', 'TUSD', 'DAI', 'FDUSD'],
    key=len, reverse=True
)

ERROR_CODES: Dict[str, ErrorKind] = {
    '-2014': ErrorKind.AUTH,
    '-2015': ErrorKind.AUTH,
    '-1022': ErrorKind.AUTH,
    '-1002': ErrorKind.AUTH,
    '-1003': ErrorKind.RATE_LIMIT,
    '-1015': ErrorKind.RATE_LIMIT,
    '-2010': ErrorKind.ORDER,
    '-2011': ErrorKind.ORDER,
    '-2013': ErrorKind.ORDER,
    '-2019': ErrorKind.INSUFFICIENT_BALANCE,
    '-1121': ErrorKind.NOT_FOUND,
    '-1100': ErrorKind.INVALID_PARAM,
    '-1102': ErrorKind.INVALID_PARAM,
    '-1111': ErrorKind.INVALID_PARAM,
    '-1013': ErrorKind.INVALID_PARAM,
    '-1001': ErrorKind.UNAVAILABLE,
}

ORDER_STATUS: Dict[str, OrderStatus] = {
    'NEW': OrderStatus.OPEN,
    'PARTIALLY_FILLED': OrderStatus.PARTIALLY_FILLED,
    'FILLED': OrderStatus.FILLED,
    'CANCELED': OrderStatus.CANCELLED,
    'PENDING_CANCEL': OrderStatus.PENDING,
    'REJECTED': OrderStatus.REJECTED,
    'EXPIRED': OrderStatus.CANCELLED,
    'EXPIRED_IN_MATCH': OrderStatus.CANCELLED,
}

ORDER_TYPE_TO_BINANCE: Dict[OrderType, str] = {
    OrderType.MARKET: 'MARKET',
    OrderType.LIMIT: 'LIMIT',
    OrderType.STOP: 'STOP_MARKET',
    OrderType.STOP_LIMIT: 'STOP',
}

ORDER_TYPE_FROM_BINANCE: Dict[str, OrderType] = {
    'MARKET': OrderType.MARKET,
    'LIMIT': OrderType.LIMIT,
    'LIMIT_MAKER': OrderType.LIMIT,
    'STOP_MARKET': OrderType.STOP,
    'STOP': OrderType.STOP_LIMIT,
    'STOP_LOSS': OrderType.STOP,
    'STOP_LOSS_LIMIT': OrderType.STOP_LIMIT,
    'TAKE_PROFIT': OrderType.STOP,
    'TAKE_PROFIT_MARKET': OrderType.STOP,
    'TAKE_PROFIT_LIMIT': OrderType.STOP_LIMIT,
}

TIME_IN_FORCE: Dict[str, TimeInForce] = {
    'GTC': TimeInForce.GTC,
    'IOC': TimeInForce.IOC,
    'FOK': TimeInForce.FOK,
    'GTX': TimeInForce.POST_ONLY,
}


class BinanceExchange(ExchangeClient):
    """
    Binance implementation of the exchange client.

    ``market`` selects the spot API or the USD-M futures API. Trade history and
    order lookups require a symbol on both markets.
    """

    exchange_id = 'binance'

    def __init__(self, credentials: ExchangeCredentials, market: str = 'spot',
                 asset_class: AssetClass = AssetClass.CRYPTO):
        super().__init__(credentials, asset_class)
        self.auth = BinanceAuth(credentials.api_key, credentials.api_secret)
        self.http = ExchangeHttpClient(self.exchange_id, SPOT_URL, secrets=(credentials.api_secret,))
        self.set_market(market)

    def set_market(self, market: str) -> None:
        """Switch between the 'spot' and 'futures' APIs."""
        if market not in ('spot', 'futures'):
            raise ValueError(f"Unknown Binance market: {market}")
        self.market = market
        self.account_type = 'FUTURES' if market == 'futures' else 'SPOT'
        self.http.base_url = self._base_url()
        logger.info(f"Binance client using {market} market (testnet={self.is_testnet()})")

    def _base_url(self) -> str:
        if self.market == 'futures':
            return FUTURES_TESTNET_URL if self.is_testnet() else FUTURES_URL
        return SPOT_TESTNET_URL if self.is_testnet() else SPOT_URL

    @property
    def is_futures(self) -> bool:
        return self.market == 'futures'

    def _endpoint(self, spot_path: str, futures_path: str) -> str:
        return futures_path if self.is_futures else spot_path

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       signed: bool = True, timeout: float = ACCOUNT_TIMEOUT) -> Any:
        if signed:
            query = self.auth.sign_params(params)
            headers = self.auth.get_auth_headers()
        else:
            query = build_query(params)
            headers = None

        status, payload = await self.http.request(method, path, query=query, headers=headers, timeout=timeout)

        if isinstance(payload, dict) and 'code' in payload and 'msg' in payload and to_float(payload['code']) < 0:
            raise build_exchange_error(self.exchange_id, payload['code'], payload['msg'], ERROR_CODES)
        if status >= 400:
            raise_for_http_status(self.exchange_id, status, str(payload))
        return payload

    def _require_symbol(self, symbol: Optional[str], action: str) -> str:
        if not symbol:
            raise ExchangeError(self.exchange_id, 'MISSING_SYMBOL', f"Symbol is required for Binance {action}")
        return symbol

    async def test_connection(self) -> bool:
        """Verify the credentials with a signed account call."""
        await self._request('GET', self._endpoint('/api/v3/account', '/fapi/v2/balance'))
        logger.info("Binance connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        if self.is_futures:
            return await self._get_futures_balance()
        return await self._get_spot_balance()

    async def _get_spot_balance(self) -> WalletBalance:
        data = await self._request('GET', '/api/v3/account')

        balances = []
        for item in data.get('balances', []):
            free = to_float(item.get('free'))
            locked = to_float(item.get('locked'))
            if free > 0 or locked > 0:
                balances.append(Balance(currency=item['asset'], total=free + locked,
                                        available=free, locked=locked))

        usdt = next((b for b in balances if b.currency == 'USDT'), None)
        return WalletBalance(
            account_type='SPOT',
            balances=balances,
            total_equity_usd=usdt.total if usdt else 0.0,
            available_margin_usd=usdt.available if usdt else 0.0,
            used_margin_usd=usdt.locked if usdt else 0.0
        )

    async def _get_futures_balance(self) -> WalletBalance:
        data = await self._request('GET', '/fapi/v2/balance')

        balances = []
        usdt: Optional[Dict[str, Any]] = None
        for item in data:
            if item.get('asset') == 'USDT':
                usdt = item
            wallet = to_float(item.get('walletBalance'))
            if wallet <= 0:
                continue
            available = to_float(item.get('availableBalance'))
            balances.append(Balance(currency=item['asset'], total=wallet,
                                    available=available, locked=wallet - available))

        if usdt is None:
            return WalletBalance(account_type='FUTURES', balances=balances)

        return WalletBalance(
            account_type='FUTURES',
            balances=balances,
            total_equity_usd=to_float(usdt.get('marginBalance')),
            available_margin_usd=to_float(usdt.get('availableBalance')),
            used_margin_usd=to_float(usdt.get('walletBalance')) - to_float(usdt.get('availableBalance'))
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        symbol = self._require_symbol(symbol, 'trade history')
        params = {
            'symbol': symbol,
            'limit': limit or 500,
            'startTime': start_time,
            'endTime': end_time,
        }
        path = self._endpoint('/api/v3/myTrades', '/fapi/v1/userTrades')
        data = await self._request('GET', path, params, timeout=HISTORY_TIMEOUT)

        trades = [self._map_trade(t) for t in data]
        trades.sort(key=lambda t: t.timestamp)
        return trades

    def _map_trade(self, data: Dict[str, Any]) -> Trade:
        if self.is_futures:
            side = OrderSide(data['side'].lower())
            is_maker = bool(data.get('maker'))
            realized = to_float(data.get('realizedPnl'))
        else:
            side = OrderSide.BUY if data.get('isBuyer') else OrderSide.SELL
            is_maker = bool(data.get('isMaker'))
            realized = None

        return Trade(
            id=str(data['id']),
            order_id=str(data.get('orderId', '')),
            symbol=data['symbol'],
            side=side,
            price=to_float(data.get('price')),
            quantity=to_float(data.get('qty')),
            fee=to_float(data.get('commission')),
            fee_currency=data.get('commissionAsset', ''),
            timestamp=utc_from_ms(data.get('time')),
            is_maker=is_maker,
            category='linear' if self.is_futures else 'spot',
            realized_pnl=realized
        )

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        path = self._endpoint('/api/v3/openOrders', '/fapi/v1/openOrders')
        data = await self._request('GET', path, {'symbol': symbol})
        return [self._map_order(o) for o in data]

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        symbol = self._require_symbol(symbol, 'order lookup')
        path = self._endpoint('/api/v3/order', '/fapi/v1/order')
        data = await self._request('GET', path, {'symbol': symbol, 'orderId': order_id})
        return self._map_order(data)

    async def create_order(self, request: CreateOrderRequest) -> Order:
        params: Dict[str, Any] = {
            'symbol': request.symbol,
            'side': request.side.value.upper(),
            'type': ORDER_TYPE_TO_BINANCE.get(request.type, 'MARKET'),
            'quantity': request.quantity,
        }
        if request.price and request.type in (OrderType.LIMIT, OrderType.STOP_LIMIT):
            params['price'] = request.price
        if request.stop_price and request.type in (OrderType.STOP, OrderType.STOP_LIMIT):
            params['stopPrice'] = request.stop_price
        if request.time_in_force:
            params['timeInForce'] = 'GTX' if request.time_in_force is TimeInForce.POST_ONLY \
                else request.time_in_force.value.upper()
        elif request.type in (OrderType.LIMIT, OrderType.STOP_LIMIT):
            params['timeInForce'] = 'GTC'
        if request.client_order_id:
            params['newClientOrderId'] = request.client_order_id
        if self.is_futures and request.reduce_only:
            params['reduceOnly'] = True

        path = self._endpoint('/api/v3/order', '/fapi/v1/order')
        data = await self._request('POST', path, params, timeout=HISTORY_TIMEOUT)
        logger.info(f"Binance order placed: {request.symbol} {request.side.value} {request.quantity} "
                    f"-> {data.get('orderId')}")
        return self._map_order(data)

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        symbol = self._require_symbol(symbol, 'order cancellation')
        path = self._endpoint('/api/v3/order', '/fapi/v1/order')
        await self._request('DELETE', path, {'symbol': symbol, 'orderId': order_id})
        return True

    def _map_order(self, data: Dict[str, Any]) -> Order:
        executed = to_float(data.get('executedQty'))
        quote_qty = to_float(data.get('cummulativeQuoteQty', data.get('cumQuote')))
        average = to_float(data.get('avgPrice')) or (quote_qty / executed if executed else 0.0)
        created = data.get('time', data.get('transactTime', data.get('updateTime')))

        return Order(
            id=str(data.get('orderId')),
            client_order_id=data.get('clientOrderId'),
            symbol=data.get('symbol', ''),
            side=OrderSide(data.get('side', 'BUY').lower()),
            type=ORDER_TYPE_FROM_BINANCE.get(data.get('type', ''), OrderType.MARKET),
            status=map_status(ORDER_STATUS, data.get('status'), self.exchange_id),
            price=to_float(data.get('price')),
            quantity=to_float(data.get('origQty')),
            filled_quantity=executed,
            average_price=average,
            stop_price=to_float(data.get('stopPrice')) or None,
            time_in_force=TIME_IN_FORCE.get(data.get('timeInForce', 'GTC'), TimeInForce.GTC),
            created_at=utc_from_ms(created),
            updated_at=utc_from_ms(data.get('updateTime', created))
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        if not self.is_futures:
            return []

        data = await self._request('GET', '/fapi/v2/positionRisk', {'symbol': symbol})

        positions = []
        for item in data:
            amount = to_float(item.get('positionAmt'))
            if amount == 0:
                continue
            positions.append(Position(
                id=f"{item['symbol']}-{item.get('positionSide', 'BOTH')}",
                symbol=item['symbol'],
                side=PositionSide.LONG if amount > 0 else PositionSide.SHORT,
                quantity=abs(amount),
                entry_price=to_float(item.get('entryPrice')),
                mark_price=to_float(item.get('markPrice')),
                unrealized_pnl=to_float(item.get('unRealizedProfit')),
                realized_pnl=0.0,
                leverage=to_float(item.get('leverage'), 1.0),
                margin_mode=MarginMode.ISOLATED if item.get('marginType') == 'isolated' else MarginMode.CROSS,
                liquidation_price=to_float(item.get('liquidationPrice')) or None,
                margin_used=to_float(item.get('isolatedMargin')),
                created_at=utc_from_ms(item.get('updateTime'))
            ))
        return positions

    # Market Data
    async def get_market_info(self, symbol: str) -> MarketInfo:
        path = self._endpoint('/api/v3/exchangeInfo', '/fapi/v1/exchangeInfo')
        data = await self._request('GET', path, signed=False)

        info = next((s for s in data.get('symbols', []) if s.get('symbol') == symbol), None)
        if info is None:
            raise ExchangeError(self.exchange_id, 'SYMBOL_NOT_FOUND', f"Symbol {symbol} not found")

        filters = {f.get('filterType'): f for f in info.get('filters', [])}
        price_filter = filters.get('PRICE_FILTER', {})
        lot_filter = filters.get('LOT_SIZE', {})
        notional_filter = filters.get('MIN_NOTIONAL') or filters.get('NOTIONAL') or {}
        tick_size = price_filter.get('tickSize', '0.01')

        return MarketInfo(
            symbol=info['symbol'],
            base_asset=info.get('baseAsset', ''),
            quote_asset=info.get('quoteAsset', ''),
            status=MarketStatus.TRADING if info.get('status') == 'TRADING' else MarketStatus.HALT,
            min_quantity=to_float(lot_filter.get('minQty')),
            max_quantity=to_float(lot_filter.get('maxQty')),
            quantity_precision=precision_from_step(lot_filter.get('stepSize', '0.00000001')),
            min_price=to_float(price_filter.get('minPrice')),
            max_price=to_float(price_filter.get('maxPrice')),
            price_precision=precision_from_step(tick_size),
            min_notional=to_float(notional_filter.get('minNotional', notional_filter.get('notional')), 10.0),
            tick_size=to_float(tick_size),
            is_spot=not self.is_futures,
            is_futures=self.is_futures,
            is_margin_enabled=bool(info.get('isMarginTradingAllowed', False)),
            max_leverage=125 if self.is_futures else 1
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        params = {
            'symbol': symbol,
            'interval': timeframe,
            'limit': limit or 500,
            'startTime': start_time,
            'endTime': end_time,
        }
        path = self._endpoint('/api/v3/klines', '/fapi/v1/klines')
        data = await self._request('GET', path, params, signed=False, timeout=HISTORY_TIMEOUT)
        return [
            OHLCV(timestamp=int(k[0]), open=to_float(k[1]), high=to_float(k[2]),
                  low=to_float(k[3]), close=to_float(k[4]), volume=to_float(k[5]))
            for k in data
        ]

    # Static Descriptors
    def get_capabilities(self) -> ExchangeCapabilities:
        return ExchangeCapabilities(
            spot=True,
            futures=True,
            options=False,
            margin=True,
            cross_margin=True,
            isolated_margin=True,
            websocket=True,
            order_types=list(OrderType),
            max_leverage=125,
            supported_timeframes=list(CANONICAL_TIMEFRAMES)
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=10, requests_per_minute=1200,
                          orders_per_second=10, orders_per_minute=100)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        symbol = symbol.upper()
        for quote in QUOTE_ASSETS:
            if symbol.endswith(quote) and len(symbol) > len(quote):
                return symbol[:-len(quote)], quote
        return symbol[:-4], symbol[-4:]
