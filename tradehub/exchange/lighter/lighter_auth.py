"""
Lighter Authentication Handler

Hex HMAC-SHA256 signing for the Lighter (zkLighter) REST API. GET and DELETE
requests sign ``timestamp + METHOD + endpoint + sorted params``; POST
requests sign ``timestamp + "POST" + body``.
"""

import hashlib
import hmac
import time
from typing import Any, Dict, Optional


class LighterAuth:
    """Lighter authentication handler."""

    def __init__(self, api_key: str, api_secret: str):
        self.api_key = api_key
        self._api_secret = api_secret

    def _hmac(self, message: str) -> str:
        return hmac.new(
            self._api_secret.encode('utf-8'),
            message.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

    def generate_signature(self, timestamp: str, method: str, endpoint: str,
                           params: Optional[Dict[str, Any]] = None) -> str:
        """
        Sign a GET or DELETE request.

        Args:
            timestamp: Milliseconds timestamp as string
            method: HTTP method
            endpoint: Request path as sent, including any query string
            params: Query parameters, appended sorted by key

        Returns:
            Hex encoded HMAC-SHA256 signature
        """
        sorted_params = '&'.join(f"{key}={params[key]}" for key in sorted(params or {}))
        return self._hmac(f"{timestamp}{method.upper()}{endpoint}{sorted_params}")

    def generate_post_signature(self, timestamp: str, body: str) -> str:
        return self._hmac(f"{timestamp}POST{body}")

    def get_auth_headers(self, signature: str, timestamp: str, account_index: int) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            'X-API-Key': self.api_key,
            'X-Timestamp': timestamp,
            'X-Signature': signature,
            'X-Account-Index': str(account_index)
        }

    @staticmethod
    def timestamp() -> str:
        return str(int(time.time() * 1000))
