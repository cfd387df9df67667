"""
OKX Exchange Adapter

OKX V5 REST client. ``inst_type`` selects SPOT, MARGIN, SWAP, FUTURES or
OPTION instruments for trade, order, position and market calls.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ...core.errors import ErrorKind, ExchangeError, ValidationError, build_exchange_error
from ...core.models import (
    AssetClass, Balance, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, MarketStatus, OHLCV, Order, OrderSide, OrderStatus, OrderType,
    Position, PositionSide, RateLimits, TimeInForce, Trade, WalletBalance,
    map_status, to_float, utc_from_ms, utc_now
)
from ...core.risk import precision_from_step
from ..core.exchange_base import ExchangeClient
from ..core.http_client import (
    ACCOUNT_TIMEOUT, HISTORY_TIMEOUT, ExchangeHttpClient, build_query, raise_for_http_status
)
from .okx_auth import OKXAuth

logger = logging.getLogger(__name__)

BASE_URL = 'https://www.okx.com'

INST_TYPES = ('SPOT', 'MARGIN', 'SWAP', 'FUTURES', 'OPTION')

ERROR_CODES: Dict[str, ErrorKind] = {
    '50102': ErrorKind.AUTH,
    '50103': ErrorKind.AUTH,
    '50104': ErrorKind.AUTH,
    '50105': ErrorKind.AUTH,
    '50111': ErrorKind.AUTH,
    '50113': ErrorKind.AUTH,
    '50011': ErrorKind.RATE_LIMIT,
    '50061': ErrorKind.RATE_LIMIT,
    '51008': ErrorKind.INSUFFICIENT_BALANCE,
    '51001': ErrorKind.NOT_FOUND,
    '51000': ErrorKind.INVALID_PARAM,
    '50014': ErrorKind.INVALID_PARAM,
    '51603': ErrorKind.ORDER,
    '51400': ErrorKind.ORDER,
    '50001': ErrorKind.UNAVAILABLE,
    '50013': ErrorKind.UNAVAILABLE,
}

ORDER_STATUS: Dict[str, OrderStatus] = {
    'live': OrderStatus.OPEN,
    'partially_filled': OrderStatus.PARTIALLY_FILLED,
    'filled': OrderStatus.FILLED,
    'canceled': OrderStatus.CANCELLED,
    'cancelled': OrderStatus.CANCELLED,
    'mmp_canceled': OrderStatus.CANCELLED,
}

ORDER_TYPE_FROM_OKX: Dict[str, OrderType] = {
    'market': OrderType.MARKET,
    'limit': OrderType.LIMIT,
    'post_only': OrderType.LIMIT,
    'fok': OrderType.LIMIT,
    'ioc': OrderType.LIMIT,
    'optimal_limit_ioc': OrderType.MARKET,
}

TIME_IN_FORCE_FROM_OKX: Dict[str, TimeInForce] = {
    'post_only': TimeInForce.POST_ONLY,
    'fok': TimeInForce.FOK,
    'ioc': TimeInForce.IOC,
    'optimal_limit_ioc': TimeInForce.IOC,
}

LIMIT_ORDER_TYPES: Dict[Optional[TimeInForce], str] = {
    None: 'limit',
    TimeInForce.GTC: 'limit',
    TimeInForce.POST_ONLY: 'post_only',
    TimeInForce.FOK: 'fok',
    TimeInForce.IOC: 'ioc',
}

BARS: Dict[str, str] = {
    '1m': '1m', '3m': '3m', '5m': '5m', '15m': '15m', '30m': '30m',
    '1h': '1H', '2h': '2H', '4h': '4H', '6h': '6H', '12h': '12H',
    '1d': '1D', '1w': '1W', '1M': '1M',
}


class OKXExchange(ExchangeClient):
    """OKX implementation of the exchange client."""

    exchange_id = 'okx'
    warn_high_leverage = True

    def __init__(self, credentials: ExchangeCredentials, inst_type: str = 'SPOT',
                 asset_class: AssetClass = AssetClass.CRYPTO):
        super().__init__(credentials, asset_class)
        self.auth = OKXAuth(credentials.api_key, credentials.api_secret, credentials.passphrase,
                            simulated=credentials.testnet)
        self.http = ExchangeHttpClient(self.exchange_id, BASE_URL,
                                       secrets=(credentials.api_secret, credentials.passphrase))
        self.inst_type = 'SPOT'
        self.set_inst_type(inst_type)

    def set_inst_type(self, inst_type: str) -> None:
        inst_type = inst_type.upper()
        if inst_type not in INST_TYPES:
            raise ValueError(f"Unknown OKX instrument type: {inst_type}")
        self.inst_type = inst_type
        self.account_type = inst_type

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       body: Optional[Dict[str, Any]] = None, signed: bool = True,
                       timeout: float = ACCOUNT_TIMEOUT) -> List[Any]:
        """Send a request and return the ``data`` list."""
        query = build_query(params)
        request_path = f"{path}?{query}" if query else path
        body_str = json.dumps(body) if body is not None else ""

        headers = self.auth.get_auth_headers(method, request_path, body_str) if signed else None
        status, payload = await self.http.request(method, path, query=query, body=body_str or None,
                                                  headers=headers, timeout=timeout)

        if isinstance(payload, dict) and 'code' in payload:
            if str(payload['code']) != '0':
                code, message = str(payload['code']), payload.get('msg') or 'Unknown error'
                # Order endpoints report the real reason per item
                items = payload.get('data') or []
                if items and isinstance(items[0], dict) and items[0].get('sCode') not in (None, '0'):
                    code, message = str(items[0]['sCode']), items[0].get('sMsg') or message
                raise build_exchange_error(self.exchange_id, code, message, ERROR_CODES)
            return payload.get('data') or []

        if status >= 400:
            raise_for_http_status(self.exchange_id, status, str(payload))
        raise ExchangeError(self.exchange_id, 'INVALID_RESPONSE', f"Unexpected response from {path}")

    async def test_connection(self) -> bool:
        await self._request('GET', '/api/v5/account/balance')
        logger.info("OKX connection test successful")
        return True

    async def close(self) -> None:
        await self.http.close()

    # Account Operations
    async def get_balance(self) -> WalletBalance:
        data = await self._request('GET', '/api/v5/account/balance')
        if not data:
            return WalletBalance(account_type=self.inst_type)

        account = data[0]
        balances = [
            Balance(
                currency=detail['ccy'],
                total=to_float(detail.get('cashBal', detail.get('bal'))),
                available=to_float(detail.get('availBal')),
                locked=to_float(detail.get('frozenBal')),
                usd_value=to_float(detail.get('eqUsd')) or None
            )
            for detail in account.get('details') or []
        ]

        total_equity = to_float(account.get('totalEq'))
        initial_margin = to_float(account.get('imr'))
        return WalletBalance(
            account_type=self.inst_type,
            balances=balances,
            total_equity_usd=total_equity,
            available_margin_usd=total_equity - initial_margin,
            used_margin_usd=initial_margin,
            margin_level=to_float(account.get('mgnRatio')) or None
        )

    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        params = {
            'instType': self.inst_type,
            'instId': symbol,
            'begin': start_time,
            'end': end_time,
            'limit': min(limit or 100, 100),
        }
        data = await self._request('GET', '/api/v5/trade/fills', params, timeout=HISTORY_TIMEOUT)
        trades = [self._map_fill(f) for f in data]
        trades.sort(key=lambda t: t.timestamp)
        return trades

    def _map_fill(self, fill: Dict[str, Any]) -> Trade:
        quote = self.quote_currency(fill['instId'])
        return Trade(
            id=fill['tradeId'],
            order_id=fill.get('ordId', ''),
            symbol=fill['instId'],
            side=OrderSide(fill['side']),
            price=to_float(fill.get('fillPx')),
            quantity=to_float(fill.get('fillSz')),
            # Fees are reported as negative amounts
            fee=abs(to_float(fill.get('fee'))),
            fee_currency=fill.get('feeCcy') or quote,
            timestamp=utc_from_ms(fill.get('ts')),
            is_maker=fill.get('execType') == 'M',
            category=self.inst_type.lower(),
            realized_pnl=to_float(fill['fillPnl']) if fill.get('fillPnl') else None
        )

    # Order Operations
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        data = await self._request('GET', '/api/v5/trade/orders-pending',
                                   {'instType': self.inst_type, 'instId': symbol})
        return [self._map_order(o) for o in data]

    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        if not symbol:
            raise ExchangeError(self.exchange_id, 'SYMBOL_REQUIRED', 'Symbol is required for OKX order lookup')
        data = await self._request('GET', '/api/v5/trade/order', {'instId': symbol, 'ordId': order_id})
        if not data:
            raise ExchangeError(self.exchange_id, 'ORDER_NOT_FOUND', f"Order {order_id} not found")
        return self._map_order(data[0])

    async def create_order(self, request: CreateOrderRequest) -> Order:
        if request.type is OrderType.MARKET:
            ord_type = 'market'
        elif request.type is OrderType.LIMIT:
            if not request.price:
                raise ValidationError("Limit orders require a price")
            ord_type = LIMIT_ORDER_TYPES[request.time_in_force]
        else:
            raise ExchangeError(self.exchange_id, 'NOT_SUPPORTED',
                                f"Order type {request.type.value} requires the OKX algo order API")

        if self.inst_type == 'SPOT':
            td_mode = 'cash'
        else:
            td_mode = 'isolated' if request.margin_mode is MarginMode.ISOLATED else 'cross'

        body: Dict[str, Any] = {
            'instId': request.symbol,
            'tdMode': td_mode,
            'side': request.side.value,
            'ordType': ord_type,
            'sz': str(request.quantity),
        }
        if request.type is OrderType.LIMIT:
            body['px'] = str(request.price)
        if request.client_order_id:
            body['clOrdId'] = request.client_order_id
        if request.reduce_only:
            body['reduceOnly'] = True

        attached: Dict[str, str] = {}
        if request.stop_loss:
            # -1 executes the attached order at market
            attached['slTriggerPx'] = str(request.stop_loss)
            attached['slOrdPx'] = '-1'
        if request.take_profit:
            attached['tpTriggerPx'] = str(request.take_profit)
            attached['tpOrdPx'] = '-1'
        if attached:
            body['attachAlgoOrds'] = [attached]

        data = await self._request('POST', '/api/v5/trade/order', body=body, timeout=HISTORY_TIMEOUT)
        if not data:
            raise ExchangeError(self.exchange_id, 'CREATE_ORDER_FAILED', 'Empty order response')
        result = data[0]
        logger.info(f"OKX order placed: {request.symbol} {request.side.value} {request.quantity} "
                    f"-> {result.get('ordId')}")

        now = utc_now()
        return Order(
            id=result.get('ordId', ''),
            client_order_id=result.get('clOrdId') or request.client_order_id,
            symbol=request.symbol,
            side=request.side,
            type=request.type,
            status=OrderStatus.PENDING,
            price=request.price or 0.0,
            quantity=request.quantity,
            filled_quantity=0.0,
            stop_loss=request.stop_loss,
            take_profit=request.take_profit,
            time_in_force=request.time_in_force or TimeInForce.GTC,
            leverage=request.leverage,
            margin_mode=request.margin_mode,
            created_at=now,
            updated_at=now
        )

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        if not symbol:
            raise ExchangeError(self.exchange_id, 'SYMBOL_REQUIRED', 'Symbol is required to cancel OKX orders')
        data = await self._request('POST', '/api/v5/trade/cancel-order',
                                   body={'instId': symbol, 'ordId': order_id})
        return bool(data) and data[0].get('sCode') == '0'

    def _map_order(self, data: Dict[str, Any]) -> Order:
        ord_type = data.get('ordType', 'limit')
        return Order(
            id=data['ordId'],
            client_order_id=data.get('clOrdId') or None,
            symbol=data['instId'],
            side=OrderSide(data['side']),
            type=ORDER_TYPE_FROM_OKX.get(ord_type, OrderType.LIMIT),
            status=map_status(ORDER_STATUS, data.get('state'), self.exchange_id),
            price=to_float(data.get('px')),
            quantity=to_float(data.get('sz')),
            filled_quantity=to_float(data.get('accFillSz')),
            average_price=to_float(data.get('avgPx')) or None,
            stop_loss=to_float(data.get('slTriggerPx')) or None,
            take_profit=to_float(data.get('tpTriggerPx')) or None,
            time_in_force=TIME_IN_FORCE_FROM_OKX.get(ord_type, TimeInForce.GTC),
            leverage=to_float(data.get('lever')) or None,
            margin_mode=MarginMode.ISOLATED if data.get('tdMode') == 'isolated' else (
                MarginMode.CROSS if data.get('tdMode') == 'cross' else None),
            created_at=utc_from_ms(data.get('cTime')),
            updated_at=utc_from_ms(data.get('uTime'))
        )

    # Position Operations
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        params = {'instType': self.inst_type if self.inst_type != 'SPOT' else None, 'instId': symbol}
        data = await self._request('GET', '/api/v5/account/positions', params)

        positions = []
        for item in data:
            size = to_float(item.get('pos'))
            if size == 0:
                continue
            positions.append(Position(
                id=item.get('posId') or f"{item['instId']}-{item.get('posSide', 'net')}",
                symbol=item['instId'],
                side=self._position_side(item.get('posSide'), size),
                quantity=abs(size),
                entry_price=to_float(item.get('avgPx')),
                mark_price=to_float(item.get('markPx')),
                unrealized_pnl=to_float(item.get('upl')),
                realized_pnl=to_float(item.get('realizedPnl')),
                leverage=to_float(item.get('lever'), 1.0),
                margin_mode=MarginMode.CROSS if item.get('mgnMode') == 'cross' else MarginMode.ISOLATED,
                liquidation_price=to_float(item.get('liqPx')) or None,
                margin_used=to_float(item.get('margin') or item.get('imr')),
                created_at=utc_from_ms(item.get('cTime'))
            ))
        return positions

    @staticmethod
    def _position_side(pos_side: Optional[str], size: float) -> PositionSide:
        if pos_side == 'long':
            return PositionSide.LONG
        if pos_side == 'short':
            return PositionSide.SHORT
        # Net mode: the sign carries the direction
        return PositionSide.LONG if size > 0 else PositionSide.SHORT

    # Market Data
    async def get_market_info(self, symbol: str) -> MarketInfo:
        data = await self._request('GET', '/api/v5/public/instruments',
                                   {'instType': self.inst_type, 'instId': symbol}, signed=False)
        if not data:
            raise ExchangeError(self.exchange_id, 'SYMBOL_NOT_FOUND', f"Symbol {symbol} not found")

        inst = data[0]
        base, _ = self.parse_symbol(inst['instId'])
        quote = self.quote_currency(inst['instId'])
        is_spot = self.inst_type == 'SPOT'
        return MarketInfo(
            symbol=inst['instId'],
            base_asset=inst.get('baseCcy') or base,
            quote_asset=inst.get('quoteCcy') or quote,
            status=MarketStatus.TRADING if inst.get('state') == 'live' else MarketStatus.HALT,
            min_quantity=to_float(inst.get('minSz')),
            max_quantity=to_float(inst.get('maxLmtSz') or inst.get('maxMktSz')),
            quantity_precision=precision_from_step(inst.get('lotSz')),
            min_price=0.0,
            max_price=0.0,
            price_precision=precision_from_step(inst.get('tickSz')),
            min_notional=0.0,
            tick_size=to_float(inst.get('tickSz')),
            is_spot=is_spot,
            is_futures=self.inst_type in ('SWAP', 'FUTURES'),
            is_margin_enabled=not is_spot,
            contract_size=to_float(inst['ctVal']) if inst.get('ctVal') else None,
            max_leverage=to_float(inst['lever']) if inst.get('lever') else (1 if is_spot else 100)
        )

    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        # OKX paginates backwards: ``after`` returns candles older than the timestamp
        params = {
            'instId': symbol,
            'bar': BARS.get(timeframe, '1H'),
            'after': end_time,
            'before': start_time,
            'limit': min(limit or 300, 300),
        }
        data = await self._request('GET', '/api/v5/market/candles', params, signed=False,
                                   timeout=HISTORY_TIMEOUT)
        candles = [
            OHLCV(timestamp=int(c[0]), open=to_float(c[1]), high=to_float(c[2]),
                  low=to_float(c[3]), close=to_float(c[4]), volume=to_float(c[5]))
            for c in data
        ]
        candles.sort(key=lambda c: c.timestamp)
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
            order_types=[OrderType.MARKET, OrderType.LIMIT],
            max_leverage=125,
            supported_timeframes=list(BARS)
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_second=20, requests_per_minute=1200,
                          orders_per_second=60, orders_per_minute=600)

    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        return f"{base_asset}-{quote_asset}".upper()

    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        """
        Split BASE-QUOTE.

        Derivative segments (-SWAP, expiry, strike) stay on the quote so
        ``format_symbol`` rebuilds the full instrument id.
        """
        parts = symbol.upper().split('-')
        if len(parts) >= 2:
            return parts[0], '-'.join(parts[1:])
        return symbol[:3], symbol[3:]

    def quote_currency(self, symbol: str) -> str:
        """Settlement currency of an instrument id, without derivative segments."""
        _, quote = self.parse_symbol(symbol)
        return quote.split('-')[0]
