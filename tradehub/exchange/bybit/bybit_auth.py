"""
Bybit Authentication Handler

Handles Bybit V5 API authentication and request signing.
Following Clean Code principles with clear authentication logic.
"""

import hashlib
import hmac
import time
from typing import Dict, Optional

RECV_WINDOW = '5000'


class BybitAuth:
    """Bybit V5 authentication handler."""

    def __init__(self, api_key: str, api_secret: str, recv_window: str = RECV_WINDOW):
        self.api_key = api_key
        self._api_secret = api_secret
        self.recv_window = recv_window

    def generate_signature(self, timestamp: str, payload: str) -> str:
        """
        Generate the Bybit V5 request signature.

        Args:
            timestamp: Milliseconds timestamp as string
            payload: Sorted query string for GET requests or JSON body for POST

        Returns:
            Hex encoded HMAC-SHA256 signature
        """
        message = f"{timestamp}{self.api_key}{self.recv_window}{payload}"
        return hmac.new(
            self._api_secret.encode('utf-8'),
            message.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

    def get_auth_headers(self, payload: str = "", timestamp: Optional[str] = None) -> Dict[str, str]:
        """
        Get authentication headers for a request.

        Args:
            payload: Query string or JSON body that is being sent
            timestamp: Optional timestamp override

        Returns:
            Dictionary of authentication headers
        """
        timestamp = timestamp or str(int(time.time() * 1000))
        return {
            'X-BAPI-API-KEY': self.api_key,
            'X-BAPI-TIMESTAMP': timestamp,
            'X-BAPI-RECV-WINDOW': self.recv_window,
            'X-BAPI-SIGN': self.generate_signature(timestamp, payload),
            'Content-Type': 'application/json'
        }
