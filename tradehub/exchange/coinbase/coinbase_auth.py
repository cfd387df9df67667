"""
Coinbase Authentication Handler

Handles Coinbase Advanced Trade API key authentication and request signing.
"""

import base64
import hashlib
import hmac
import time
from typing import Dict, Optional

API_VERSION = '2024-01-01'


class CoinbaseAuth:
    """Coinbase Advanced Trade authentication handler."""

    def __init__(self, api_key: str, api_secret: str, passphrase: Optional[str] = None):
        self.api_key = api_key
        self._api_secret = api_secret
        self._passphrase = passphrase

    def generate_signature(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """
        Generate the request signature.

        Args:
            timestamp: Unix timestamp in seconds as string
            method: HTTP method
            request_path: Path including the query string
            body: JSON body for POST requests

        Returns:
            Base64 encoded HMAC-SHA256 signature
        """
        message = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(
            self._api_secret.encode('utf-8'),
            message.encode('utf-8'),
            hashlib.sha256
        ).digest()
        return base64.b64encode(digest).decode('utf-8')

    def get_auth_headers(self, method: str, request_path: str, body: str = "",
                         timestamp: Optional[str] = None) -> Dict[str, str]:
        """
        Get authentication headers for a request.

        Args:
            method: HTTP method
            request_path: Path including the query string
            body: Request body
            timestamp: Optional timestamp override (seconds)

        Returns:
            Dictionary of authentication headers
        """
        timestamp = timestamp or str(int(time.time()))
        headers = {
            'CB-ACCESS-KEY': self.api_key,
            'CB-ACCESS-SIGN': self.generate_signature(timestamp, method, request_path, body),
            'CB-ACCESS-TIMESTAMP': timestamp,
            'CB-VERSION': API_VERSION,
            'Content-Type': 'application/json'
        }
        if self._passphrase:
            headers['CB-ACCESS-PASSPHRASE'] = self._passphrase
        return headers
