"""
Kraken Exchange Adapter

Kraken spot REST client. Kraken reports legacy asset codes (XXBT, ZUSD) and
pair names (XXBTZUSD); both are normalized to BTC, USD and BTC/USD.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...core.errors import ErrorKind, ExchangeError, build_exchange_error
from ...core.models import (
    AssetClass, Balance, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, MarketStatus, OHLCV, Order, OrderSide, OrderStatus, OrderType,
    Position, PositionSide, RateLimits, TimeInForce, Trade, WalletBalance,
    map_status, to_float, utc_from_ms, utc_now
)
from ..core.exchange_base import ExchangeClient
from ..core.http_client import (
    ACCOUNT_TIMEOUT, HISTORY_TIMEOUT, ExchangeHttpClient, build_query, raise_for_http_status
)
from .kraken_auth import KrakenAuth, KrakenNonce

logger = logging.getLogger(__name__)

BASE_URL = 'https://api.kraken.com'

ASSET_MAP: Dict[str, str] = {
    'XXBT': 'BTC',
    'XBT': 'BTC',
    'XETH': 'ETH',
    'XXRP': 'XRP',
    'XLTC': 'LTC',
    'XXLM': 'XLM',
    'XXDG': 'DOGE',
    'ZEUR': 'EUR',
    'ZUSD': 'USD',
    'ZGBP': 'GBP',
    'ZCAD': 'CAD',
    'ZJPY': 'JPY',
}

PAIR_MAP: Dict[str, str] = {
    'XXBTZUSD': 'BTC/USD',
    'XETHZUSD': 'ETH/USD',
    'XXRPZUSD': 'XRP/USD',
    'XXBTZEUR': 'BTC/EUR',
    'XETHZEUR': 'ETH/EUR',
}

SYMBOL_TO_PAIR = {symbol: pair for pair, symbol in PAIR_MAP.items()}

# Quote currencies recognized when splitting an unmapped pair name
PAIR_QUOTES = ('USDT', 'USDC', 'ZUSD', 'ZEUR', 'ZGBP', 'USD', 'EUR', 'GBP', 'CAD', 'JPY', 'XBT', 'ETH')

FIAT = ('USD', 'EUR', 'GBP', 'CAD', 'JPY')

ERROR_CODES: Dict[str, ErrorKind] = {
    'EAPI:Invalid key': ErrorKind.AUTH,
    'EAPI:Invalid signature': ErrorKind.AUTH,
    'EAPI:Invalid nonce': ErrorKind.AUTH,
    'EGeneral:Permission denied': ErrorKind.AUTH,
    'EAPI:Rate limit exceeded': ErrorKind.RATE_LIMIT,
    'EOrder:Rate limit exceeded': ErrorKind.RATE_LIMIT,
    'EGeneral:Too many requests': ErrorKind.RATE_LIMIT,
    'EOrder:Insufficient funds': ErrorKind.INSUFFICIENT_BALANCE,
    'EOrder:Unknown order': ErrorKind.ORDER,
    'EOrder:Invalid order': ErrorKind.ORDER,
    'EQuery:Unknown asset pair': ErrorKind.NOT_FOUND,
    'EGeneral:Invalid arguments': ErrorKind.INVALID_PARAM,
    'EService:Unavailable': ErrorKind.UNAVAILABLE,
    'EService:Busy': ErrorKind.UNAVAILABLE,
}

ORDER_STATUS: Dict[str, OrderStatus] = {
    'pending': OrderStatus.PENDING,
    'open': OrderStatus.OPEN,
    'closed': OrderStatus.FILLED,
    'canceled': OrderStatus.CANCELLED,
    'cancelled': OrderStatus.CANCELLED,
    'expired': OrderStatus.CANCELLED,
}

ORDER_TYPE_FROM_KRAKEN: Dict[str, OrderType] = {
    'market': OrderType.MARKET,
    'limit': OrderType.LIMIT,
    'stop-loss': OrderType.STOP,
    'stop-loss-limit': OrderType.STOP_LIMIT,
    'take-profit': OrderType.STOP,
    'take-profit-limit': OrderType.STOP_LIMIT,
}

ORDER_TYPE_TO_KRAKEN: Dict[OrderType, str] = {
    OrderType.MARKET: 'market',
    OrderType.LIMIT: 'limit',
    OrderType.STOP: 'stop-loss',
    OrderType.STOP_LIMIT: 'stop-loss-limit',
}

INTERVALS: Dict[str, str] = {
    '1m': '1', '5m': '5', '15m': '15', '30m': '30',
    '1h': '60', '4h': '240', '1d': '1440', '1w': '10080',
}


def normalize_asset(asset: str) -> str:
    """Map a Kraken asset code to its common name (XXBT -> BTC, ZUSD -> USD)."""
    if asset in ASSET_MAP:
        return ASSET_MAP[asset]
    if asset[:1] in ('X', 'Z'):
        return asset[1:]
    return asset


def normalize_pair(pair: str) -> str:
    """Map a Kraken pair name to BASE/QUOTE (XXBTZUSD -> BTC/USD)."""
    if pair in PAIR_MAP:
        return PAIR_MAP[pair]
    if '/' in pair:
        base, quote = pair.split('/', 1)
        return f"{normalize_asset(base)}/{normalize_asset(quote)}"
    for quote in PAIR_QUOTES:
        if pair.endswith(quote) and len(pair) > len(quote):
            return f"{normalize_asset(pair[:-len(quote)])}/{normalize_asset(quote)}"
    return pair


def to_kraken_pair(symbol: str) -> str:
    """Map BASE/QUOTE back to the name Kraken accepts in requests."""
    if symbol in SYMBOL_TO_PAIR:
        return SYMBOL_TO_PAIR[symbol]
    return symbol.replace('/', '')


class KrakenExchange(ExchangeClient):
    """Kraken implementation of the exchange client (spot)."""

    exchange_id = 'kraken'
    account_type = 'SPOT'

    def __init__(self, credentials: ExchangeCredentials, asset_class: AssetClass = AssetClass.CRYPTO,
                 nonce: Optional[KrakenNonce] = None):
        super().__init__(credentials, asset_class)
        self.auth = KrakenAuth(credentials.api_key, credentials.api_secret, nonce=nonce)
        # Kraken has no public testnet
        self.http = ExchangeHttpClient(self.exchange_id, BASE_URL, secrets=(credentials.api_secret,))

    def _check(self, status: int, data: Any, path: str) -> Any:
        if isinstance(data, dict):
            errors = data.get('error') or []
            if errors:
                raise self._build_error(errors)
            if 'result' in data:
                return data['result']
        if status >= 400:
            raise_for_http_status(self.exchange_id, status, str(data))
        raise ExchangeError(self.exchange_id, 'INVALID_RESPONSE', f"Unexpected response from {path}")

    def _build_error(self, errors: List[str]) -> ExchangeError:
        """Classify the first error by its ``Category:Message`` prefix."""
        message = ', '.join(errors)
        code = ':'.join(errors[0].split(':')[:2])
        return build_exchange_error(self.exchange_id, code, message, ERROR_CODES)

    async def _public(self, method: str, params: Optional[Dict[str, Any]] = None,
                      timeout: float = ACCOUNT_TIMEOUT) -> Any:
        path = f"/0/public/{method}"
        status, data = await self.http.request('GET', path, query=build_query(params), timeout=timeout)
        return self._check(status, data, path)

    async def _private(self, method: str, params: Optional[Dict[str, Any]] = None,
                       timeout: float = ACCOUNT_TIMEOUT) -> Any:
        path = f"/0/private/{method}"
        nonce = self.auth.nonce.next()
        post_data = build_query({'nonce': nonce, **(params or {})})
        headers = self.auth.get_auth_headers(path, nonce, post_data)
        status, data = await self.http.request('POST', path, body=post_data, headers=headers, timeout=timeout)
        return self._check(status, data, path)

    async def test_connection(self) -> bool:
        await self._private('Balance')
        logger.info("Kraken connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        result = await self._private('Balance')

        balances = []
        for asset, amount in result.items():
            total = to_float(amount)
            balances.append(Balance(currency=normalize_asset(asset), total=total, available=total, locked=0.0))

        usd = next((b for b in balances if b.currency == 'USD'), None)
        return WalletBalance(
            account_type='SPOT',
            balances=balances,
            total_equity_usd=usd.total if usd else 0.0,
            available_margin_usd=usd.available if usd else 0.0,
            used_margin_usd=0.0
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        """
        Get trade history, paging with ``ofs`` until the reported count is reached.

        Kraken does not filter by pair on this endpoint, so ``symbol`` filters
        the normalized results.
        """
        params: Dict[str, Any] = {
            'start': start_time // 1000 if start_time else None,
            'end': end_time // 1000 if end_time else None,
        }

        trades: List[Trade] = []
        offset = 0
        while True:
            params['ofs'] = offset
            result = await self._private('TradesHistory', params, timeout=HISTORY_TIMEOUT)
            page = result.get('trades') or {}
            trades.extend(self._map_trade(trade_id, t) for trade_id, t in page.items())
            offset += len(page)
            if not page or offset >= int(result.get('count', 0)) or (limit and offset >= limit):
                break

        if symbol:
            trades = [t for t in trades if t.symbol == symbol]
        trades.sort(key=lambda t: t.timestamp)
        return trades[:limit] if limit else trades

    def _map_trade(self, trade_id: str, data: Dict[str, Any]) -> Trade:
        symbol = normalize_pair(data.get('pair', ''))
        _, quote = self.parse_symbol(symbol)
        return Trade(
            id=trade_id,
            order_id=data.get('ordertxid', ''),
            symbol=symbol,
            side=OrderSide.BUY if data.get('type') == 'buy' else OrderSide.SELL,
            price=to_float(data.get('price')),
            quantity=to_float(data.get('vol')),
            fee=to_float(data.get('fee')),
            fee_currency=quote or 'USD',
            timestamp=utc_from_ms(to_float(data.get('time')) * 1000),
            is_maker=bool(data.get('maker', False)),
            category='spot'
        )

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        result = await self._private('OpenOrders')
        orders = [self._map_order(order_id, o) for order_id, o in (result.get('open') or {}).items()]
        if symbol:
            orders = [o for o in orders if o.symbol == symbol]
        return orders

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        result = await self._private('QueryOrders', {'txid': order_id})
        data = result.get(order_id)
        if not data:
            raise ExchangeError(self.exchange_id, 'ORDER_NOT_FOUND', f"Order {order_id} not found")
        return self._map_order(order_id, data)

    async def create_order(self, request: CreateOrderRequest) -> Order:
        params: Dict[str, Any] = {
            'pair': to_kraken_pair(request.symbol),
            'type': request.side.value,
            'ordertype': ORDER_TYPE_TO_KRAKEN[request.type],
            'volume': request.quantity,
        }
        if request.type is OrderType.LIMIT and request.price:
            params['price'] = request.price
        if request.type in (OrderType.STOP, OrderType.STOP_LIMIT) and request.stop_price:
            params['price'] = request.stop_price
            if request.type is OrderType.STOP_LIMIT and request.price:
                params['price2'] = request.price
        if request.stop_loss:
            params['close[ordertype]'] = 'stop-loss'
            params['close[price]'] = request.stop_loss
        if request.time_in_force is TimeInForce.POST_ONLY:
            params['oflags'] = 'post'
        elif request.time_in_force in (TimeInForce.IOC, TimeInForce.GTC):
            params['timeinforce'] = request.time_in_force.value.upper()
        if request.client_order_id:
            params['cl_ord_id'] = request.client_order_id
        if request.reduce_only:
            params['reduce_only'] = True

        result = await self._private('AddOrder', params, timeout=HISTORY_TIMEOUT)
        order_id = (result.get('txid') or [''])[0]
        logger.info(f"Kraken order placed: {request.symbol} {request.side.value} {request.quantity} -> {order_id}")

        now = utc_now()
        return Order(
            id=order_id,
            client_order_id=request.client_order_id,
            symbol=request.symbol,
            side=request.side,
            type=request.type,
            status=OrderStatus.PENDING,
            price=request.price or 0.0,
            quantity=request.quantity,
            filled_quantity=0.0,
            stop_price=request.stop_price,
            stop_loss=request.stop_loss,
            time_in_force=request.time_in_force or TimeInForce.GTC,
            created_at=now,
            updated_at=now
        )

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        result = await self._private('CancelOrder', {'txid': order_id})
        return int(result.get('count', 0)) > 0

    def _map_order(self, order_id: str, data: Dict[str, Any]) -> Order:
        descr = data.get('descr') or {}
        opened = utc_from_ms(to_float(data.get('opentm')) * 1000)
        closed = data.get('closetm')
        return Order(
            id=order_id,
            client_order_id=data.get('cl_ord_id') or (str(data['userref']) if data.get('userref') else None),
            symbol=normalize_pair(descr.get('pair', '')),
            side=OrderSide.BUY if descr.get('type') == 'buy' else OrderSide.SELL,
            type=ORDER_TYPE_FROM_KRAKEN.get(descr.get('ordertype'), OrderType.MARKET),
            status=map_status(ORDER_STATUS, data.get('status'), self.exchange_id),
            price=to_float(descr.get('price')),
            quantity=to_float(data.get('vol')),
            filled_quantity=to_float(data.get('vol_exec')),
            average_price=to_float(data.get('price')) or None,
            stop_price=to_float(data.get('stopprice')) or None,
            time_in_force=TimeInForce.POST_ONLY if 'post' in (data.get('oflags') or '') else TimeInForce.GTC,
            created_at=opened,
            updated_at=utc_from_ms(to_float(closed) * 1000) if closed else opened
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        """Synthesize one long spot position per non-fiat holding."""
        balance = await self.get_balance()
        now = utc_now()

        positions = []
        for item in balance.balances:
            if item.currency in FIAT or item.total <= 0:
                continue
            pair = self.format_symbol(item.currency, 'USD')
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
        result = await self._public('AssetPairs', {'pair': to_kraken_pair(symbol)})
        if not result:
            raise ExchangeError(self.exchange_id, 'SYMBOL_NOT_FOUND', f"Symbol {symbol} not found")

        info = next(iter(result.values()))
        leverage_buy = info.get('leverage_buy') or []
        return MarketInfo(
            symbol=symbol,
            base_asset=normalize_asset(info.get('base', '')),
            quote_asset=normalize_asset(info.get('quote', '')),
            status=MarketStatus.TRADING if info.get('status', 'online') == 'online' else MarketStatus.HALT,
            min_quantity=to_float(info.get('ordermin')),
            max_quantity=0.0,
            quantity_precision=int(info.get('lot_decimals', 8)),
            min_price=0.0,
            max_price=0.0,
            price_precision=int(info.get('pair_decimals', 2)),
            min_notional=to_float(info.get('costmin')),
            tick_size=to_float(info.get('tick_size'), 0.01),
            is_spot=True,
            is_futures=False,
            is_margin_enabled=bool(leverage_buy),
            max_leverage=max(leverage_buy) if leverage_buy else 1
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        params = {
            'pair': to_kraken_pair(symbol),
            'interval': INTERVALS.get(timeframe, '60'),
            'since': start_time // 1000 if start_time else None,
        }
        result = await self._public('OHLC', params, timeout=HISTORY_TIMEOUT)
        rows = next((v for v in result.values() if isinstance(v, list)), [])

        candles = []
        for row in rows[:limit or 720]:
            timestamp = int(row[0]) * 1000
            if end_time and timestamp > end_time:
                break
            candles.append(OHLCV(timestamp=timestamp, open=to_float(row[1]), high=to_float(row[2]),
                                 low=to_float(row[3]), close=to_float(row[4]), volume=to_float(row[6])))
        return candles

    # Static Descriptors
    def get_capabilities(self) -> ExchangeCapabilities:
        return ExchangeCapabilities(
            spot=True,
            futures=False,
            options=False,
            margin=True,
            cross_margin=True,
            isolated_margin=False,
            websocket=True,
            order_types=list(OrderType),
            max_leverage=5,
            supported_timeframes=list(INTERVALS)
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=1, requests_per_minute=60,
                          orders_per_second=1, orders_per_minute=60)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}/{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        parts = symbol.split('/')
        if len(parts) == 2:
            return parts[0], parts[1]
        return symbol[:3], symbol[3:]
