"""
Shared fixtures for the exchange and broker tests.
"""

import base64

import pytest

from tradehub.core.models import ExchangeCredentials


@pytest.fixture
def credentials():
    """Plain key/secret credentials."""
    return ExchangeCredentials(api_key="test-api-key-1234", api_secret="test-api-secret-5678")


@pytest.fixture
def passphrase_credentials():
    """Credentials for exchanges that require a passphrase (OKX, Bitget)."""
    return ExchangeCredentials(
        api_key="test-api-key-1234",
        api_secret="test-api-secret-5678",
        passphrase="test-passphrase"
    )


@pytest.fixture
def kraken_credentials():
    """Kraken secrets are base64 encoded."""
    secret = base64.b64encode(b"kraken-private-key-bytes").decode("utf-8")
    return ExchangeCredentials(api_key="kraken-api-key-1234", api_secret=secret)


@pytest.fixture
def lighter_credentials():
    return ExchangeCredentials(
        api_key="lighter-api-key-1234",
        api_secret="lighter-api-secret-5678",
        account_index=5
    )
