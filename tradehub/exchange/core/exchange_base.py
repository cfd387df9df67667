"""
Exchange Client Interface

Defines the contract that all exchange adapters must follow.
Following Clean Code principles with clear, single-purpose methods.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
import logging

from ...core.models import (
    AssetClass, CreateOrderRequest, ExchangeCapabilities, ExchangeCredentials,
    MarginMode, MarketInfo, OHLCV, Order, Position, PositionSizeResult,
    RateLimits, RiskValidationResult, Trade, WalletBalance
)
from ...core import risk

logger = logging.getLogger(__name__)

EXCHANGE_NAMES: Dict[str, str] = {
    'bybit': 'Bybit',
    'binance': 'Binance',
    'coinbase': 'Coinbase',
    'kraken': 'Kraken',
    'okx': 'OKX',
    'bitget': 'Bitget',
    'uniswap': 'Uniswap',
    'jupiter': 'Jupiter',
    'dydx': 'dYdX',
    'gmx': 'GMX',
    'hyperliquid': 'Hyperliquid',
    'lighter': 'Lighter',
    'interactive_brokers': 'Interactive Brokers',
    'td_ameritrade': 'TD Ameritrade',
    'robinhood': 'Robinhood',
    'webull': 'Webull',
    'fidelity': 'Fidelity',
    'oanda': 'OANDA',
    'forex_com': 'Forex.com',
    'ig': 'IG',
    'pepperstone': 'Pepperstone',
    'ninjatrader': 'NinjaTrader',
    'tradestation': 'TradeStation',
    'tradovate': 'Tradovate',
    'thinkorswim': 'thinkorswim',
    'tastyworks': 'Tastyworks',
}


class ExchangeClient(ABC):
    """
    Abstract capability contract for all exchange adapters.

    Each adapter supplies its own transport, signing and response mapping.
    This interface only holds the credentials and the pieces that must behave
    identically across exchanges (risk math, naming, lifecycle).
    All times are epoch milliseconds.
    """

    exchange_id: str = ""
    account_type: str = ""
    # Adapters that warn about leverage above 20x during risk validation
    warn_high_leverage: bool = False

    def __init__(self, credentials: ExchangeCredentials, asset_class: AssetClass = AssetClass.CRYPTO):
        self.credentials = credentials
        self.asset_class = asset_class

    # Connection
    @abstractmethod
    async def test_connection(self) -> bool:
        """
        Test connectivity and credentials.

        Returns:
            True if an authenticated call succeeded, False otherwise
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the HTTP session and cleanup resources."""
        pass

    # Account Operations
    @abstractmethod
    async def get_balance(self) -> WalletBalance:
        """
        Get the account balance.

        Returns:
            WalletBalance recomputed from live exchange data
        """
        pass

    @abstractmethod
    async def get_trades(self, symbol: Optional[str] = None,
                         start_time: Optional[int] = None,
                         end_time: Optional[int] = None,
                         limit: Optional[int] = None) -> List[Trade]:
        """
        Get trade (fill) history.

        Lookback windows imposed by the exchange are chunked internally.

        Args:
            symbol: Trading pair symbol (None for all, where supported)
            start_time: Start time in milliseconds
            end_time: End time in milliseconds
            limit: Maximum number of trades per request

        Returns:
            Trades sorted by timestamp, deduplicated by id
        """
        pass

    # Order Operations
    @abstractmethod
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        """
        Get open orders.

        Args:
            symbol: Trading pair symbol (None for all)

        Returns:
            List of open orders
        """
        pass

    @abstractmethod
    async def get_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        """
        Get an order by id.

        Args:
            order_id: Exchange order id
            symbol: Trading pair symbol, required by some exchanges

        Returns:
            Order
        """
        pass

    @abstractmethod
    async def create_order(self, request: CreateOrderRequest) -> Order:
        """
        Place a new order.

        Args:
            request: Order creation request

        Returns:
            The created order as acknowledged by the exchange
        """
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> bool:
        """
        Cancel an order.

        Args:
            order_id: Exchange order id
            symbol: Trading pair symbol, required by some exchanges

        Returns:
            True if the exchange accepted the cancellation
        """
        pass

    # Position Operations
    @abstractmethod
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        """
        Get open positions.

        Args:
            symbol: Trading pair symbol (None for all)

        Returns:
            List of positions
        """
        pass

    # Market Data
    @abstractmethod
    async def get_market_info(self, symbol: str) -> MarketInfo:
        """
        Get trading rules for a symbol.

        Args:
            symbol: Trading pair symbol

        Returns:
            MarketInfo
        """
        pass

    @abstractmethod
    async def get_ohlcv(self, symbol: str, timeframe: str,
                        start_time: Optional[int] = None,
                        end_time: Optional[int] = None,
                        limit: Optional[int] = None) -> List[OHLCV]:
        """
        Get candlestick data.

        Args:
            symbol: Trading pair symbol
            timeframe: Canonical timeframe such as '1m', '1h', '1d'
            start_time: Start time in milliseconds
            end_time: End time in milliseconds
            limit: Maximum number of candles

        Returns:
            Candles sorted by timestamp
        """
        pass

    # Static Descriptors
    @abstractmethod
    def get_capabilities(self) -> ExchangeCapabilities:
        pass

    @abstractmethod
    def get_rate_limits(self) -> RateLimits:
        pass

    @abstractmethod
    def format_symbol(self, base_asset: str, quote_asset: str) -> str:
        """Format base and quote assets in the exchange's symbol convention."""
        pass

    @abstractmethod
    def parse_symbol(self, symbol: str) -> Tuple[str, str]:
        """Split an exchange symbol into (base_asset, quote_asset)."""
        pass

    # Shared Behaviour
    def get_exchange_name(self) -> str:
        return EXCHANGE_NAMES.get(self.exchange_id, self.exchange_id)

    def is_testnet(self) -> bool:
        return bool(self.credentials.testnet)

    async def calculate_position_size(self, risk_amount: float, entry_price: float,
                                      stop_loss_price: float, leverage: float = 1,
                                      margin_mode: MarginMode = MarginMode.CROSS,
                                      symbol: Optional[str] = None,
                                      take_profit_price: Optional[float] = None) -> PositionSizeResult:
        """
        Size a position against the live available balance.

        Args:
            risk_amount: Amount the trader is willing to lose
            entry_price: Planned entry price
            stop_loss_price: Planned stop loss price
            leverage: Leverage applied to the position
            margin_mode: Margin mode (does not change the math)
            symbol: Trading pair symbol (informational)
            take_profit_price: Optional target for the risk reward ratio

        Returns:
            PositionSizeResult
        """
        balance = await self.get_balance()
        return risk.calculate_position_size(
            risk_amount,
            entry_price,
            stop_loss_price,
            available_balance=balance.available_margin_usd,
            leverage=leverage,
            account_type=self.account_type or balance.account_type,
            take_profit_price=take_profit_price
        )

    async def validate_risk(self, risk_amount: float, entry_price: float,
                            stop_loss_price: float, leverage: float,
                            margin_mode: MarginMode, symbol: str,
                            current_daily_loss: Optional[float] = None,
                            total_loss: Optional[float] = None,
                            starting_capital: Optional[float] = None) -> RiskValidationResult:
        """
        Validate a planned trade against balance and the MDL/ML circuit breakers.

        Returns:
            RiskValidationResult
        """
        sizing = await self.calculate_position_size(
            risk_amount, entry_price, stop_loss_price, leverage, margin_mode, symbol
        )
        result = risk.validate_risk(
            sizing,
            risk_amount,
            current_daily_loss=current_daily_loss,
            total_loss=total_loss,
            starting_capital=starting_capital,
            warn_high_leverage=self.warn_high_leverage
        )
        if not result.valid:
            logger.info(f"[{self.exchange_id}] Risk validation rejected {symbol}: {result.reason}")
        return result

    async def __aenter__(self) -> 'ExchangeClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(testnet={self.is_testnet()})"
