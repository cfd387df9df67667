"""
OKX Authentication Handler

Handles OKX V5 API authentication: base64 HMAC-SHA256 over
``timestamp + METHOD + requestPath + body`` with an ISO-8601 timestamp and
the account passphrase.
"""

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, Optional


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """Millisecond precision UTC timestamp, e.g. 2024-01-15T10:30:00.123Z."""
    now = now or datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


class OKXAuth:
    """OKX authentication handler."""

    def __init__(self, api_key: str, api_secret: str, passphrase: Optional[str] = None,
                 simulated: bool = False):
        self.api_key = api_key
        self._api_secret = api_secret
        self._passphrase = passphrase or ''
        self.simulated = simulated

    def generate_signature(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """
        Generate the OK-ACCESS-SIGN value.

        Args:
            timestamp: ISO-8601 timestamp
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
        timestamp = timestamp or iso_timestamp()
        headers = {
            'OK-ACCESS-KEY': self.api_key,
            'OK-ACCESS-SIGN': self.generate_signature(timestamp, method, request_path, body),
            'OK-ACCESS-TIMESTAMP': timestamp,
            'OK-ACCESS-PASSPHRASE': self._passphrase,
            'Content-Type': 'application/json'
        }
        if self.simulated:
            # Demo trading account
            headers['x-simulated-trading'] = '1'
        return headers
