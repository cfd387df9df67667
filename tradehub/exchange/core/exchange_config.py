"""
Exchange Configuration

Configuration passed to the exchange factory to select and configure an adapter.
Following Clean Code principles with clear, focused configuration.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from ...core.errors import ValidationError
from ...core.models import AssetClass, ExchangeCredentials

logger = logging.getLogger(__name__)

MARKET_TYPES = ('spot', 'futures')
BITGET_PRODUCT_TYPES = ('USDT-FUTURES', 'COIN-FUTURES', 'USDC-FUTURES', 'SPOT')


@dataclass
class ExchangeConfig:
    """
    Configuration for creating an exchange client.

    ``market_type`` selects spot or futures markets where the exchange
    distinguishes them (Binance market, Bybit category, OKX instrument type,
    Bitget product type). ``product_type`` overrides the Bitget product type.
    """

    exchange_id: str
    credentials: ExchangeCredentials
    asset_class: AssetClass = AssetClass.CRYPTO
    market_type: str = 'spot'
    product_type: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.exchange_id = (self.exchange_id or '').strip().lower()
        if not self.exchange_id:
            raise ValidationError("Exchange id is required")

        if self.credentials is None or not self.credentials.api_key or not self.credentials.api_secret:
            raise ValidationError("API key and secret are required")

        if self.market_type not in MARKET_TYPES:
            raise ValidationError(f"Market type must be one of {MARKET_TYPES}, got '{self.market_type}'")

        if self.product_type is not None and self.product_type not in BITGET_PRODUCT_TYPES:
            raise ValidationError(f"Product type must be one of {BITGET_PRODUCT_TYPES}")

    @property
    def is_futures(self) -> bool:
        return self.market_type == 'futures'

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (secrets hidden)."""
        return {
            'exchange_id': self.exchange_id,
            'credentials': self.credentials.to_dict(),
            'asset_class': self.asset_class.value,
            'market_type': self.market_type,
            'product_type': self.product_type,
        }

    def log_config(self) -> None:
        """Log configuration (without sensitive data)."""
        logger.info(f"Exchange configuration: {self.to_dict()}")
