"""
Exchange Factory

Registry of known venues and factory for creating configured exchange clients.
Following Clean Code principles with clear factory pattern.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type
import logging

from ...core.errors import ExchangeError, redact
from ...core.models import AssetClass, ExchangeCredentials, WalletBalance
from .exchange_base import ExchangeClient
from .exchange_config import ExchangeConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeInfo:
    """Display metadata for a venue."""
    id: str
    name: str
    logo: str
    asset_classes: List[AssetClass]
    features: List[str]
    website: str
    api_docs: str
    supported: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'logo': self.logo,
            'asset_classes': [a.value for a in self.asset_classes],
            'features': list(self.features),
            'website': self.website,
            'api_docs': self.api_docs,
            'supported': self.supported,
        }


def _info(id: str, name: str, logo: str, asset_classes: List[str], features: List[str],
          website: str, api_docs: str, supported: bool) -> ExchangeInfo:
    return ExchangeInfo(id, name, logo, [AssetClass(a) for a in asset_classes],
                        features, website, api_docs, supported)


EXCHANGE_REGISTRY: Dict[str, ExchangeInfo] = {info.id: info for info in [
    # Crypto CEXs
    _info('bybit', 'Bybit', '/exchanges/bybit.svg', ['crypto'],
          ['spot', 'futures', 'options', 'copy_trading'],
          'https://www.bybit.com', 'https://bybit-exchange.github.io/docs/', True),
    _info('binance', 'Binance', '/exchanges/binance.svg', ['crypto'],
          ['spot', 'futures', 'margin', 'staking'],
          'https://www.binance.com', 'https://binance-docs.github.io/apidocs/', True),
    _info('coinbase', 'Coinbase', '/exchanges/coinbase.svg', ['crypto'],
          ['spot', 'advanced_trading'],
          'https://www.coinbase.com', 'https://docs.cloud.coinbase.com/', True),
    _info('kraken', 'Kraken', '/exchanges/kraken.svg', ['crypto'],
          ['spot', 'futures', 'margin', 'staking'],
          'https://www.kraken.com', 'https://docs.kraken.com/', True),
    _info('okx', 'OKX', '/exchanges/okx.svg', ['crypto'],
          ['spot', 'futures', 'options', 'copy_trading'],
          'https://www.okx.com', 'https://www.okx.com/docs/', True),
    _info('bitget', 'Bitget', '/exchanges/bitget.svg', ['crypto'],
          ['spot', 'futures', 'copy_trading'],
          'https://www.bitget.com', 'https://www.bitget.com/api-doc/', True),

    # Crypto DEXs
    _info('lighter', 'Lighter', '/exchanges/lighter.svg', ['crypto'],
          ['perpetuals', 'orderbook'],
          'https://lighter.xyz', 'https://apidocs.lighter.xyz/', True),
    _info('uniswap', 'Uniswap', '/exchanges/uniswap.svg', ['crypto'],
          ['swap', 'liquidity'],
          'https://uniswap.org', 'https://docs.uniswap.org/', False),
    _info('jupiter', 'Jupiter', '/exchanges/jupiter.svg', ['crypto'],
          ['swap', 'dca', 'limit_orders'],
          'https://jup.ag', 'https://station.jup.ag/docs/', False),
    _info('dydx', 'dYdX', '/exchanges/dydx.svg', ['crypto'],
          ['perpetuals', 'margin'],
          'https://dydx.exchange', 'https://dydxprotocol.github.io/v4-clients/', False),
    _info('gmx', 'GMX', '/exchanges/gmx.svg', ['crypto'],
          ['perpetuals', 'swap'],
          'https://gmx.io', 'https://gmxio.gitbook.io/', False),
    _info('hyperliquid', 'Hyperliquid', '/exchanges/hyperliquid.svg', ['crypto'],
          ['perpetuals', 'orderbook'],
          'https://hyperliquid.xyz', 'https://hyperliquid.gitbook.io/', False),

    # Stock Brokers
    _info('interactive_brokers', 'Interactive Brokers', '/brokers/ibkr.svg',
          ['stocks', 'forex', 'futures', 'options'],
          ['stocks', 'options', 'futures', 'forex', 'bonds'],
          'https://www.interactivebrokers.com', 'https://interactivebrokers.github.io/tws-api/', False),
    _info('td_ameritrade', 'TD Ameritrade', '/brokers/tda.svg', ['stocks', 'options'],
          ['stocks', 'options', 'etfs'],
          'https://www.tdameritrade.com', 'https://developer.tdameritrade.com/', False),
    _info('robinhood', 'Robinhood', '/brokers/robinhood.svg', ['stocks', 'crypto'],
          ['stocks', 'options', 'crypto'],
          'https://robinhood.com', 'N/A', False),
    _info('webull', 'Webull', '/brokers/webull.svg', ['stocks', 'crypto'],
          ['stocks', 'options', 'crypto'],
          'https://www.webull.com', 'N/A', False),
    _info('fidelity', 'Fidelity', '/brokers/fidelity.svg', ['stocks', 'options'],
          ['stocks', 'options', 'etfs', 'mutual_funds'],
          'https://www.fidelity.com', 'N/A', False),

    # Forex
    _info('oanda', 'OANDA', '/brokers/oanda.svg', ['forex'], ['forex', 'cfds'],
          'https://www.oanda.com', 'https://developer.oanda.com/', False),
    _info('forex_com', 'Forex.com', '/brokers/forexcom.svg', ['forex'], ['forex', 'cfds'],
          'https://www.forex.com', 'https://www.forex.com/en-us/trading-platforms/api-trading/', False),
    _info('ig', 'IG', '/brokers/ig.svg', ['forex', 'stocks'], ['forex', 'cfds', 'spread_betting'],
          'https://www.ig.com', 'https://labs.ig.com/rest-trading-api-reference', False),
    _info('pepperstone', 'Pepperstone', '/brokers/pepperstone.svg', ['forex'], ['forex', 'cfds'],
          'https://www.pepperstone.com', 'N/A', False),

    # Futures
    _info('ninjatrader', 'NinjaTrader', '/brokers/ninjatrader.svg', ['futures'], ['futures', 'forex'],
          'https://ninjatrader.com', 'https://ninjatrader.com/support/helpGuides/', False),
    _info('tradestation', 'TradeStation', '/brokers/tradestation.svg', ['stocks', 'futures', 'options'],
          ['stocks', 'options', 'futures', 'crypto'],
          'https://www.tradestation.com', 'https://api.tradestation.com/docs/', False),
    _info('tradovate', 'Tradovate', '/brokers/tradovate.svg', ['futures'], ['futures'],
          'https://www.tradovate.com', 'https://api.tradovate.com/', False),

    # Options
    _info('thinkorswim', 'thinkorswim', '/brokers/thinkorswim.svg', ['stocks', 'options', 'futures'],
          ['stocks', 'options', 'futures'],
          'https://www.schwab.com/trading/thinkorswim', 'https://developer.tdameritrade.com/', False),
    _info('tastyworks', 'Tastyworks', '/brokers/tastyworks.svg', ['stocks', 'options'],
          ['stocks', 'options', 'futures', 'crypto'],
          'https://www.tastytrade.com/platform', 'https://developer.tastytrade.com/', False),
]}


class ExchangeFactory:
    """
    Factory for creating exchange clients.

    Adapter classes are registered by id; ``create`` consults the registry so
    unknown and listed-but-unsupported venues are rejected uniformly.
    """

    def __init__(self):
        """Initialize the exchange factory."""
        self._exchanges: Dict[str, Type[ExchangeClient]] = {}

    def register_exchange(self, name: str, exchange_class: Type[ExchangeClient]) -> None:
        """
        Register an adapter class with the factory.

        Args:
            name: Exchange id
            exchange_class: Adapter class implementing ExchangeClient
        """
        if not issubclass(exchange_class, ExchangeClient):
            raise ValueError("Exchange class must implement ExchangeClient")

        self._exchanges[name.lower()] = exchange_class
        logger.debug(f"Registered exchange: {name}")

    def create(self, config: ExchangeConfig) -> ExchangeClient:
        """
        Create and configure an exchange client.

        Args:
            config: Exchange configuration

        Returns:
            Configured exchange client

        Raises:
            ExchangeError: UNKNOWN_EXCHANGE or NOT_SUPPORTED
        """
        exchange_id = config.exchange_id
        info = EXCHANGE_REGISTRY.get(exchange_id)

        if info is None:
            raise ExchangeError(exchange_id, 'UNKNOWN_EXCHANGE', f"Unknown exchange: {exchange_id}")

        if not info.supported:
            raise ExchangeError(exchange_id, 'NOT_SUPPORTED', f"{info.name} is not yet supported. Coming soon!")

        exchange_class = self._exchanges.get(exchange_id)
        if exchange_class is None:
            raise ExchangeError(exchange_id, 'NOT_SUPPORTED',
                                f"{info.name} implementation is not available yet.")

        exchange = exchange_class(config.credentials, **self._adapter_options(config))
        logger.info(f"Created exchange client: {exchange_id} ({config.market_type})")
        return exchange

    @staticmethod
    def _adapter_options(config: ExchangeConfig) -> Dict[str, Any]:
        """Translate the generic market type into each adapter's own setting."""
        exchange_id = config.exchange_id
        futures = config.is_futures
        options: Dict[str, Any] = {'asset_class': config.asset_class}

        if exchange_id == 'binance':
            options['market'] = 'futures' if futures else 'spot'
        elif exchange_id == 'bybit':
            options['category'] = 'linear' if futures else 'spot'
        elif exchange_id == 'okx':
            options['inst_type'] = 'SWAP' if futures else 'SPOT'
        elif exchange_id == 'bitget':
            options['product_type'] = config.product_type or 'USDT-FUTURES'
        return options

    def get_available_exchanges(self) -> List[str]:
        """Ids of exchanges with a registered adapter."""
        return list(self._exchanges.keys())

    def is_exchange_available(self, name: str) -> bool:
        return name.lower() in self._exchanges


# Global factory instance
_exchange_factory = ExchangeFactory()


def get_exchange_factory() -> ExchangeFactory:
    """
    Get the global exchange factory instance.

    Returns:
        Global exchange factory
    """
    return _exchange_factory


def register_exchange(name: str, exchange_class: Type[ExchangeClient]) -> None:
    """Register an adapter with the global factory."""
    _exchange_factory.register_exchange(name, exchange_class)


def create_exchange(config: ExchangeConfig) -> ExchangeClient:
    """Create an exchange client using the global factory."""
    return _exchange_factory.create(config)


def get_exchange_info(exchange_id: str) -> Optional[ExchangeInfo]:
    return EXCHANGE_REGISTRY.get(exchange_id)


def get_all_exchanges() -> List[ExchangeInfo]:
    return list(EXCHANGE_REGISTRY.values())


def get_supported_exchanges() -> List[ExchangeInfo]:
    return [info for info in EXCHANGE_REGISTRY.values() if info.supported]


def get_exchanges_by_asset_class(asset_class: AssetClass) -> List[ExchangeInfo]:
    return [info for info in EXCHANGE_REGISTRY.values() if asset_class in info.asset_classes]


def get_exchanges_by_feature(feature: str) -> List[ExchangeInfo]:
    return [info for info in EXCHANGE_REGISTRY.values() if feature in info.features]


def is_supported(exchange_id: str) -> bool:
    info = EXCHANGE_REGISTRY.get(exchange_id)
    return bool(info and info.supported)


async def test_connection(config: ExchangeConfig) -> Dict[str, Any]:
    """
    Create a client, test its connection and release it.

    Args:
        config: Exchange configuration

    Returns:
        Dict with 'success' and, on failure, a redacted 'error' message
    """
    exchange = None
    try:
        exchange = create_exchange(config)
        connected = await exchange.test_connection()
        if not connected:
            return {'success': False, 'error': 'Connection failed'}
        return {'success': True}
    except ExchangeError as e:
        creds = config.credentials
        return {'success': False, 'error': redact(str(e), creds.api_secret, creds.passphrase)}
    finally:
        if exchange is not None:
            await exchange.close()


async def get_balance(config: ExchangeConfig) -> WalletBalance:
    """Fetch the wallet balance for a configuration and release the client."""
    async with create_exchange(config) as exchange:
        return await exchange.get_balance()


def create_binance_spot(api_key: str, api_secret: str, testnet: bool = False) -> ExchangeClient:
    """Create a Binance spot client."""
    credentials = ExchangeCredentials(api_key=api_key, api_secret=api_secret, testnet=testnet)
    return create_exchange(ExchangeConfig('binance', credentials, market_type='spot'))


def create_binance_futures(api_key: str, api_secret: str, testnet: bool = False) -> ExchangeClient:
    """Create a Binance USD-M futures client."""
    credentials = ExchangeCredentials(api_key=api_key, api_secret=api_secret, testnet=testnet)
    return create_exchange(ExchangeConfig('binance', credentials, market_type='futures'))
