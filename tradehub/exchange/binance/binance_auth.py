"""
Binance Authentication Handler

Signs Binance REST requests: HMAC-SHA256 (hex) over the sorted query string
including the timestamp, sent with the X-MBX-APIKEY header.
"""

import hashlib
import hmac
import time
from typing import Any, Dict, Optional

from ..core.http_client import build_query

RECV_WINDOW = 5000


class BinanceAuth:
    """Binance request signer."""

    def __init__(self, api_key: str, api_secret: str):
        self.api_key = api_key
        self._api_secret = api_secret

    def generate_signature(self, query_string: str) -> str:
        """
        Generate the hex HMAC-SHA256 signature of a query string.

        Args:
            query_string: Sorted, URL encoded parameters including the timestamp

        Returns:
            Hex encoded signature
        """
        return hmac.new(
            self._api_secret.encode('utf-8'),
            query_string.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

    def sign_params(self, params: Optional[Dict[str, Any]] = None,
                    timestamp: Optional[int] = None) -> str:
        """
        Add timestamp and recvWindow, then return the signed query string.

        Args:
            params: Request parameters
            timestamp: Milliseconds timestamp (defaults to now)

        Returns:
            Query string ending with ``&signature=...``
        """
        signed = dict(params or {})
        signed['timestamp'] = timestamp if timestamp is not None else int(time.time() * 1000)
        signed.setdefault('recvWindow', RECV_WINDOW)
        query = build_query(signed, sort=True)
        return f"{query}&signature={self.generate_signature(query)}"

    def get_auth_headers(self) -> Dict[str, str]:
        return {
            'X-MBX-APIKEY': self.api_key,
            'Content-Type': 'application/json'
        }
