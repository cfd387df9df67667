"""
Bitget Exchange Adapter

Bitget V2 mix (futures) REST client. Trade history is built from closed
positions, which Bitget serves at most 90 days per request.
"""

import json
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
from .bitget_auth import BitgetAuth

logger = logging.getLogger(__name__)

BASE_URL = 'https://api.bitget.com'
SUCCESS_CODE = '00000'
DEFAULT_PRODUCT_TYPE = 'USDT-FUTURES'
MARGIN_COIN = 'USDT'

HISTORY_CHUNK_MS = 90 * 24 * 60 * 60 * 1000
HISTORY_LOOKBACK_MS = 30 * 24 * 60 * 60 * 1000

ERROR_CODES: Dict[str, ErrorKind] = {
    '40001': ErrorKind.AUTH,
    '40002': ErrorKind.AUTH,
    '40003': ErrorKind.AUTH,
    '40004': ErrorKind.AUTH,
    '40005': ErrorKind.AUTH,
    '40006': ErrorKind.AUTH,
    '40007': ErrorKind.AUTH,
    '40012': ErrorKind.AUTH,
    '40037': ErrorKind.AUTH,
    '429': ErrorKind.RATE_LIMIT,
    '40034': ErrorKind.NOT_FOUND,
    '40017': ErrorKind.INVALID_PARAM,
    '40808': ErrorKind.INVALID_PARAM,
    '43011': ErrorKind.INSUFFICIENT_BALANCE,
    '40762': ErrorKind.INSUFFICIENT_BALANCE,
    '40754': ErrorKind.INSUFFICIENT_BALANCE,
    '40768': ErrorKind.ORDER,
    '43001': ErrorKind.ORDER,
    '40010': ErrorKind.UNAVAILABLE,
}

ORDER_STATUS: Dict[str, OrderStatus] = {
    'init': OrderStatus.PENDING,
    'live': OrderStatus.OPEN,
    'new': OrderStatus.OPEN,
    'partially_filled': OrderStatus.PARTIALLY_FILLED,
    'filled': OrderStatus.FILLED,
    'canceled': OrderStatus.CANCELLED,
    'cancelled': OrderStatus.CANCELLED,
    'rejected': OrderStatus.REJECTED,
}

TIME_IN_FORCE_TO_BITGET: Dict[TimeInForce, str] = {
    TimeInForce.GTC: 'gtc',
    TimeInForce.IOC: 'ioc',
    TimeInForce.FOK: 'fok',
    TimeInForce.POST_ONLY: 'post_only',
}

TIME_IN_FORCE_FROM_BITGET = {native: tif for tif, native in TIME_IN_FORCE_TO_BITGET.items()}

GRANULARITY: Dict[str, str] = {
    '1m': '1m', '3m': '3m', '5m': '5m', '15m': '15m', '30m': '30m',
    '1h': '1H', '4h': '4H', '6h': '6H', '12h': '12H',
    '1d': '1D', '3d': '3D', '1w': '1W', '1M': '1M',
}

QUOTE_ASSETS = ('USDT', 'USDC', 'USD', 'PERP')


class BitgetExchange(ExchangeClient):
    """
    Bitget implementation of the exchange client.

    A passphrase is mandatory; construction fails with AuthenticationError
    without one.
    """

    exchange_id = 'bitget'
    warn_high_leverage = True

    def __init__(self, credentials: ExchangeCredentials, product_type: str = DEFAULT_PRODUCT_TYPE,
                 asset_class: AssetClass = AssetClass.CRYPTO):
        super().__init__(credentials, asset_class)
        self.auth = BitgetAuth(credentials.api_key, credentials.api_secret, credentials.passphrase)
        self.http = ExchangeHttpClient(self.exchange_id, BASE_URL,
                                       secrets=(credentials.api_secret, credentials.passphrase))
        self.product_type = product_type
        self.account_type = product_type

    def set_product_type(self, product_type: str) -> None:
        self.product_type = product_type
        self.account_type = product_type

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       body: Optional[Dict[str, Any]] = None, signed: bool = True,
                       timeout: float = ACCOUNT_TIMEOUT) -> Any:
        """Send a request and return the ``data`` field."""
        query = build_query(params)
        request_path = f"{path}?{query}" if query else path
        body_str = json.dumps(body) if body is not None else ""

        headers = self.auth.get_auth_headers(method, request_path, body_str) if signed else None
        status, payload = await self.http.request(method, path, query=query, body=body_str or None,
                                                  headers=headers, timeout=timeout)

        if isinstance(payload, dict) and 'code' in payload:
            if str(payload['code']) != SUCCESS_CODE:
                raise build_exchange_error(self.exchange_id, payload['code'],
                                           payload.get('msg') or 'Unknown error', ERROR_CODES)
            return payload.get('data')

        if status >= 400:
            raise_for_http_status(self.exchange_id, status, str(payload))
        raise ExchangeError(self.exchange_id, 'EMPTY_RESPONSE', f"Empty response from {path}")

    async def test_connection(self) -> bool:
        await self._request('GET', '/api/v2/mix/account/accounts', {'productType': self.product_type})
        logger.info("Bitget connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        accounts = await self._request('GET', '/api/v2/mix/account/accounts',
                                       {'productType': self.product_type}) or []

        balances = [
            Balance(
                currency=a['marginCoin'],
                total=to_float(a.get('accountEquity')),
                available=to_float(a.get('available')),
                locked=to_float(a.get('locked')),
                usd_value=to_float(a.get('usdtEquity'))
            )
            for a in accounts if to_float(a.get('accountEquity')) > 0
        ]

        total_equity = sum(to_float(a.get('usdtEquity')) for a in accounts)
        total_available = sum(to_float(a.get('available')) for a in accounts)
        return WalletBalance(
            account_type=self.product_type,
            balances=balances,
            total_equity_usd=total_equity,
            available_margin_usd=total_available,
            used_margin_usd=total_equity - total_available
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        """
        Get closed positions as trades.

        The range (default: the last 30 days) is split into 90-day chunks and
        fetched sequentially.

        Returns:
            Trades de-duplicated by id, sorted by timestamp ascending
        """
        now = int(utc_now().timestamp() * 1000)
        until = end_time or now
        since = start_time or (now - HISTORY_LOOKBACK_MS)
        chunks = self.split_range(since, until)
        logger.info(f"Fetching Bitget history in {len(chunks)} chunk(s)")

        trades_by_id: Dict[str, Trade] = {}
        for chunk_start, chunk_end in chunks:
            for trade in await self._fetch_closed_positions(symbol, chunk_start, chunk_end, limit or 100):
                trades_by_id[trade.id] = trade

        trades = list(trades_by_id.values())
        trades.sort(key=lambda t: t.timestamp)
        logger.info(f"Fetched {len(trades)} unique Bitget trades")
        return trades

    @staticmethod
    def split_range(since: int, until: int) -> List[Tuple[int, int]]:
        """Split [since, until] into chunks of at most 90 days."""
        chunks = []
        chunk_start = since
        while chunk_start < until:
            chunk_end = min(chunk_start + HISTORY_CHUNK_MS, until)
            chunks.append((chunk_start, chunk_end))
            chunk_start = chunk_end
        return chunks

    async def _fetch_closed_positions(self, symbol: Optional[str], start_time: int,
                                      end_time: int, page_size: int) -> List[Trade]:
        params: Dict[str, Any] = {
            'productType': self.product_type,
            'symbol': symbol,
            'startTime': start_time,
            'endTime': end_time,
            'limit': page_size,
        }

        trades: List[Trade] = []
        while True:
            try:
                data = await self._request('GET', '/api/v2/mix/position/history-position', params,
                                           timeout=HISTORY_TIMEOUT) or {}
            except ExchangeError as e:
                # 40034: nothing exists for this symbol or range
                if isinstance(e.details, dict) and e.details.get('exchange_code') == '40034':
                    return trades
                raise

            page = data.get('list') or []
            trades.extend(self._map_closed_position(p) for p in page)
            end_id = data.get('endId')
            if len(page) < page_size or not end_id:
                return trades
            params['idLessThan'] = end_id

    def _map_closed_position(self, data: Dict[str, Any]) -> Trade:
        # Bitget spells the field "oderId" on this endpoint
        order_id = data.get('oderId') or data.get('orderId') or ''
        return Trade(
            id=data.get('positionId') or order_id or f"{data['symbol']}-{data.get('ctime', data.get('cTime'))}",
            order_id=order_id,
            symbol=data['symbol'],
            side=OrderSide.BUY if data.get('holdSide') == 'long' else OrderSide.SELL,
            price=to_float(data.get('openAvgPrice')),
            quantity=to_float(data.get('closeTotalPos')),
            fee=abs(to_float(data.get('openFee'))) + abs(to_float(data.get('closeFee'))),
            fee_currency=MARGIN_COIN,
            timestamp=utc_from_ms(data.get('utime', data.get('uTime'))),
            category=self.product_type,
            realized_pnl=to_float(data.get('netProfit'))
        )

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        data = await self._request('GET', '/api/v2/mix/order/orders-pending',
                                   {'productType': self.product_type, 'symbol': symbol}) or {}
        return [self._map_order(o) for o in data.get('entrustedList') or []]

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        if not symbol:
            raise ExchangeError(self.exchange_id, 'SYMBOL_REQUIRED', 'Symbol is required for Bitget order lookup')
        data = await self._request('GET', '/api/v2/mix/order/detail',
                                   {'symbol': symbol, 'productType': self.product_type, 'orderId': order_id})
        if not data:
            raise ExchangeError(self.exchange_id, 'ORDER_NOT_FOUND', f"Order {order_id} not found")
        return self._map_order(data)

    async def create_order(self, request: CreateOrderRequest) -> Order:
        body: Dict[str, Any] = {
            'symbol': request.symbol,
            'productType': self.product_type,
            'marginMode': 'isolated' if request.margin_mode is MarginMode.ISOLATED else 'crossed',
            'marginCoin': MARGIN_COIN,
            'size': str(request.quantity),
            'side': request.side.value,
            'tradeSide': 'open' if request.side is OrderSide.BUY else 'close',
            'orderType': 'market' if request.type is OrderType.MARKET else 'limit',
        }
        if request.price and request.type is not OrderType.MARKET:
            body['price'] = str(request.price)
        if request.time_in_force:
            body['force'] = TIME_IN_FORCE_TO_BITGET[request.time_in_force]
        if request.client_order_id:
            body['clientOid'] = request.client_order_id
        if request.reduce_only:
            body['reduceOnly'] = 'YES'
        if request.stop_loss:
            body['presetStopLossPrice'] = str(request.stop_loss)
        if request.take_profit:
            body['presetStopSurplusPrice'] = str(request.take_profit)

        data = await self._request('POST', '/api/v2/mix/order/place-order', body=body, timeout=HISTORY_TIMEOUT)
        order_id = (data or {}).get('orderId')
        logger.info(f"Bitget order placed: {request.symbol} {request.side.value} {request.quantity} -> {order_id}")
        return await self.get_order(order_id, request.symbol)

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        if not symbol:
            raise ExchangeError(self.exchange_id, 'SYMBOL_REQUIRED',
                                'Symbol is required for Bitget order cancellation')
        await self._request('POST', '/api/v2/mix/order/cancel-order',
                            body={'symbol': symbol, 'productType': self.product_type, 'orderId': order_id})
        return True

    def _map_order(self, data: Dict[str, Any]) -> Order:
        return Order(
            id=data['orderId'],
            client_order_id=data.get('clientOid') or None,
            symbol=data['symbol'],
            side=OrderSide.BUY if data.get('side') == 'buy' else OrderSide.SELL,
            type=OrderType.MARKET if data.get('orderType') == 'market' else OrderType.LIMIT,
            status=map_status(ORDER_STATUS, (data.get('state') or data.get('status') or '').lower(),
                              self.exchange_id),
            price=to_float(data.get('price')),
            quantity=to_float(data.get('size')),
            filled_quantity=to_float(data.get('baseVolume', data.get('filledQty'))),
            average_price=to_float(data.get('priceAvg')) or None,
            stop_loss=to_float(data.get('presetStopLossPrice')) or None,
            take_profit=to_float(data.get('presetStopSurplusPrice')) or None,
            time_in_force=TIME_IN_FORCE_FROM_BITGET.get(data.get('force'), TimeInForce.GTC),
            leverage=to_float(data.get('leverage')) or None,
            margin_mode=MarginMode.CROSS if data.get('marginMode') == 'crossed' else (
                MarginMode.ISOLATED if data.get('marginMode') == 'isolated' else None),
            created_at=utc_from_ms(data.get('cTime')),
            updated_at=utc_from_ms(data.get('uTime'))
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        if self.product_type == 'SPOT':
            return []

        if symbol:
            data = await self._request('GET', '/api/v2/mix/position/single-position',
                                       {'productType': self.product_type, 'symbol': symbol,
                                        'marginCoin': MARGIN_COIN})
        else:
            data = await self._request('GET', '/api/v2/mix/position/all-position',
                                       {'productType': self.product_type, 'marginCoin': MARGIN_COIN})

        positions = []
        for item in data or []:
            total = to_float(item.get('total'))
            if total == 0:
                continue
            positions.append(Position(
                id=f"{item['symbol']}-{item.get('holdSide')}",
                symbol=item['symbol'],
                side=PositionSide.LONG if item.get('holdSide') == 'long' else PositionSide.SHORT,
                quantity=abs(total),
                entry_price=to_float(item.get('openPriceAvg')),
                mark_price=to_float(item.get('markPrice')),
                unrealized_pnl=to_float(item.get('unrealizedPL')),
                realized_pnl=to_float(item.get('achievedProfits')),
                leverage=to_float(item.get('leverage'), 1.0),
                margin_mode=MarginMode.CROSS if item.get('marginMode') == 'crossed' else MarginMode.ISOLATED,
                liquidation_price=to_float(item.get('liquidationPrice')) or None,
                margin_used=to_float(item.get('marginSize')),
                created_at=utc_from_ms(item.get('cTime'))
            ))
        return positions

    # Market Data
    async def get_market_info(self, symbol: str) -> MarketInfo:
        data = await self._request('GET', '/api/v2/mix/market/contracts',
                                   {'productType': self.product_type, 'symbol': symbol}, signed=False)
        instrument = next((i for i in data or [] if i.get('symbol') == symbol), None)
        if instrument is None:
            raise ExchangeError(self.exchange_id, 'SYMBOL_NOT_FOUND', f"Symbol {symbol} not found")

        price_place = int(instrument.get('pricePlace', 2))
        return MarketInfo(
            symbol=instrument['symbol'],
            base_asset=instrument.get('baseCoin', ''),
            quote_asset=instrument.get('quoteCoin', ''),
            status=MarketStatus.TRADING if instrument.get('symbolStatus') == 'normal' else MarketStatus.HALT,
            min_quantity=to_float(instrument.get('minTradeNum')),
            max_quantity=to_float(instrument.get('maxMarketOrderQty', instrument.get('maxTradeNum'))),
            quantity_precision=int(instrument.get('volumePlace', instrument.get('sizePlace', 0))),
            min_price=0.0,
            max_price=0.0,
            price_precision=price_place,
            min_notional=to_float(instrument.get('minTradeUSDT')),
            tick_size=to_float(instrument.get('priceEndStep'), 1.0) / (10 ** price_place),
            is_spot=self.product_type == 'SPOT',
            is_futures=self.product_type != 'SPOT',
            is_margin_enabled=True,
            contract_size=to_float(instrument.get('sizeMultiplier')) or None,
            max_leverage=to_float(instrument.get('maxLever'), 125.0)
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        params = {
            'symbol': symbol,
            'productType': self.product_type,
            'granularity': GRANULARITY.get(timeframe, timeframe),
            'startTime': start_time,
            'endTime': end_time,
            'limit': limit or 200,
        }
        data = await self._request('GET', '/api/v2/mix/market/candles', params, signed=False,
                                   timeout=HISTORY_TIMEOUT)
        candles = [
            OHLCV(timestamp=int(k[0]), open=to_float(k[1]), high=to_float(k[2]),
                  low=to_float(k[3]), close=to_float(k[4]), volume=to_float(k[5]))
            for k in data or []
        ]
        candles.sort(key=lambda c: c.timestamp)
        return candles

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
            order_types=[OrderType.MARKET, OrderType.LIMIT],
            max_leverage=125,
            supported_timeframes=list(GRANULARITY)
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=20, requests_per_minute=1200,
                          orders_per_second=10, orders_per_minute=300)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        symbol = symbol.upper()
        for quote in QUOTE_ASSETS:
            if symbol.endswith(quote) and len(symbol) > len(quote):
                return symbol[:-len(quote)], quote
        return symbol[:-4], symbol[-4:]
