"""
Bitget Authentication Handler

Handles Bitget V2 API authentication: base64 HMAC-SHA256 over
``timestamp + METHOD + requestPath + body`` plus the mandatory passphrase.
"""

import base64
import hashlib
import hmac
import time
from typing import Dict, Optional

from ...core.errors import AuthenticationError


class BitgetAuth:
    """Bitget authentication handler."""

    def __init__(self, api_key: str, api_secret: str, passphrase: Optional[str]):
        if not passphrase:
            raise AuthenticationError('bitget', "Passphrase is required for Bitget API",
                                      exchange_code='MISSING_PASSPHRASE')
        self.api_key = api_key
        self._api_secret = api_secret
        self._passphrase = passphrase

    def generate_signature(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """
        Generate the ACCESS-SIGN value.

        Args:
            timestamp: Milliseconds timestamp as string
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
        timestamp = timestamp or str(int(time.time() * 1000))
        return {
            'ACCESS-KEY': self.api_key,
            'ACCESS-SIGN': self.generate_signature(timestamp, method, request_path, body),
            'ACCESS-TIMESTAMP': timestamp,
            'ACCESS-PASSPHRASE': self._passphrase,
            'Content-Type': 'application/json',
            'locale': 'en-US'
        }
