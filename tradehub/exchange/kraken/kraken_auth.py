"""
Kraken Authentication Handler

Kraken signs private calls with HMAC-SHA512 keyed by the base64-decoded
secret over ``path + SHA256(nonce + postdata)``. Nonces must be strictly
increasing per API key. Each handler owns its KrakenNonce; clients sharing
one key should be given the same generator.
"""

import base64
import hashlib
import hmac
import threading
import time
from typing import Callable, Dict, Optional

from ...core.errors import AuthenticationError


class KrakenNonce:
    """Thread-safe, strictly increasing nonce generator."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._counter = 0
        self._last = 0

    def next(self) -> int:
        """
        Return the next nonce.

        The value is ``now_ms * 1000 + counter % 1000``, bumped past the last
        issued value when the clock has not advanced.
        """
        with self._lock:
            candidate = int(self._clock() * 1000) * 1000 + (self._counter % 1000)
            self._counter += 1
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate


class KrakenAuth:
    """Kraken authentication handler."""

    def __init__(self, api_key: str, api_secret: str, nonce: Optional[KrakenNonce] = None):
        self.api_key = api_key
        try:
            self._secret = base64.b64decode(api_secret, validate=True)
        except ValueError:
            raise AuthenticationError('kraken', "API secret is not valid base64", exchange_code='INVALID_SECRET')
        self.nonce = nonce or KrakenNonce()

    def generate_signature(self, path: str, nonce: int, post_data: str) -> str:
        """
        Generate the API-Sign value.

        Args:
            path: URI path, e.g. /0/private/Balance
            nonce: Nonce included in the post data
            post_data: Form encoded request body

        Returns:
            Base64 encoded HMAC-SHA512 signature
        """
        sha256 = hashlib.sha256(f"{nonce}{post_data}".encode('utf-8')).digest()
        mac = hmac.new(self._secret, path.encode('utf-8') + sha256, hashlib.sha512)
        return base64.b64encode(mac.digest()).decode('utf-8')

    def get_auth_headers(self, path: str, nonce: int, post_data: str) -> Dict[str, str]:
        return {
            'API-Key': self.api_key,
            'API-Sign': self.generate_signature(path, nonce, post_data),
            'Content-Type': 'application/x-www-form-urlencoded'
        }
