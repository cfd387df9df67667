import os
import logging
from typing import Optional

from dotenv import load_dotenv

from tradehub.core.models import ExchangeCredentials, mask_key

EXCHANGE_IDS = ('binance', 'bybit', 'coinbase', 'kraken', 'okx', 'bitget', 'lighter')


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value and value.strip().isdigit() else None


def reload_env():
    """Reload environment variables from .env file."""
    load_dotenv(override=True)  # override=True forces reload

    global BINANCE_API_KEY, BINANCE_API_SECRET, BINANCE_TESTNET
    global BYBIT_API_KEY, BYBIT_API_SECRET, BYBIT_TESTNET
    global COINBASE_API_KEY, COINBASE_API_SECRET, COINBASE_PASSPHRASE, COINBASE_TESTNET
    global KRAKEN_API_KEY, KRAKEN_API_SECRET
    global OKX_API_KEY, OKX_API_SECRET, OKX_PASSPHRASE, OKX_TESTNET
    global BITGET_API_KEY, BITGET_API_SECRET, BITGET_PASSPHRASE
    global LIGHTER_API_KEY, LIGHTER_API_SECRET, LIGHTER_TESTNET, LIGHTER_ACCOUNT_INDEX, LIGHTER_WALLET_ADDRESS
    global LOG_LEVEL, LOG_DIR

    BINANCE_API_KEY = os.getenv("BINANCE_API_KEY")
    BINANCE_API_SECRET = os.getenv("BINANCE_API_SECRET")
    BINANCE_TESTNET = _env_flag("BINANCE_TESTNET")

    BYBIT_API_KEY = os.getenv("BYBIT_API_KEY")
    BYBIT_API_SECRET = os.getenv("BYBIT_API_SECRET")
    BYBIT_TESTNET = _env_flag("BYBIT_TESTNET")

    COINBASE_API_KEY = os.getenv("COINBASE_API_KEY")
    COINBASE_API_SECRET = os.getenv("COINBASE_API_SECRET")
    COINBASE_PASSPHRASE = os.getenv("COINBASE_PASSPHRASE")
    COINBASE_TESTNET = _env_flag("COINBASE_TESTNET")

    KRAKEN_API_KEY = os.getenv("KRAKEN_API_KEY")
    KRAKEN_API_SECRET = os.getenv("KRAKEN_API_SECRET")

    OKX_API_KEY = os.getenv("OKX_API_KEY")
    OKX_API_SECRET = os.getenv("OKX_API_SECRET")
    OKX_PASSPHRASE = os.getenv("OKX_PASSPHRASE")
    OKX_TESTNET = _env_flag("OKX_TESTNET")

    BITGET_API_KEY = os.getenv("BITGET_API_KEY")
    BITGET_API_SECRET = os.getenv("BITGET_API_SECRET")
    BITGET_PASSPHRASE = os.getenv("BITGET_PASSPHRASE")

    LIGHTER_API_KEY = os.getenv("LIGHTER_API_KEY")
    LIGHTER_API_SECRET = os.getenv("LIGHTER_API_SECRET")
    LIGHTER_TESTNET = _env_flag("LIGHTER_TESTNET")
    LIGHTER_ACCOUNT_INDEX = _env_int("LIGHTER_ACCOUNT_INDEX")
    LIGHTER_WALLET_ADDRESS = os.getenv("LIGHTER_WALLET_ADDRESS")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    logging.info("Environment variables reloaded successfully")
    configured = [ex for ex in EXCHANGE_IDS if os.getenv(f"{ex.upper()}_API_KEY")]
    logging.info(f"Exchanges with credentials: {', '.join(configured) or 'none'}")


def get_exchange_credentials(exchange_id: str) -> Optional[ExchangeCredentials]:
    """
    Build credentials for an exchange from the environment.

    Reads ``<EXCHANGE>_API_KEY``, ``_API_SECRET``, ``_PASSPHRASE`` and
    ``_TESTNET``; Lighter also reads its account index and wallet address.

    Args:
        exchange_id: Exchange id, e.g. 'bybit'

    Returns:
        ExchangeCredentials, or None when key or secret is missing
    """
    prefix = exchange_id.upper()
    api_key = os.getenv(f"{prefix}_API_KEY")
    api_secret = os.getenv(f"{prefix}_API_SECRET")
    if not api_key or not api_secret:
        logging.debug(f"No credentials configured for {exchange_id}")
        return None

    credentials = ExchangeCredentials(
        api_key=api_key,
        api_secret=api_secret,
        passphrase=os.getenv(f"{prefix}_PASSPHRASE"),
        testnet=_env_flag(f"{prefix}_TESTNET"),
        wallet_address=os.getenv(f"{prefix}_WALLET_ADDRESS"),
        account_index=_env_int(f"{prefix}_ACCOUNT_INDEX")
    )
    logging.debug(f"Loaded {exchange_id} credentials for key {mask_key(api_key)}")
    return credentials


# Load on import
reload_env()
