"""
Exchange HTTP Transport

Thin aiohttp wrapper shared by the exchange adapters. One request per call,
guarded by an explicit timeout and never retried. Transport failures are
wrapped into ExchangeError at the point of failure.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlencode

import aiohttp
from yarl import URL

from ...core.errors import (
    AuthenticationError, ExchangeError, RateLimitError, redact
)

logger = logging.getLogger(__name__)

# Account, balance and metadata calls
ACCOUNT_TIMEOUT = 15
# Trade history, order creation and candle calls
HISTORY_TIMEOUT = 30


class ExchangeHttpClient:
    """
    Session holder for one exchange adapter.

    The aiohttp session is created lazily on the first request and released
    by ``close``. The query string is passed pre-encoded so the URL sent is
    byte-identical to the one that was signed.
    """

    def __init__(self, exchange_id: str, base_url: str, secrets: Iterable[Optional[str]] = ()):
        self.exchange_id = exchange_id
        self.base_url = base_url.rstrip('/')
        self.session: Optional[aiohttp.ClientSession] = None
        self._secrets = tuple(s for s in secrets if s)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        return self.session

    def build_url(self, path: str, query: str = "") -> URL:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{query}"
        return URL(url, encoded=True)

    async def request(self, method: str, path: str, query: str = "",
                      body: Optional[str] = None,
                      headers: Optional[Dict[str, str]] = None,
                      timeout: float = ACCOUNT_TIMEOUT) -> Tuple[int, Any]:
        """
        Perform a single HTTP request.

        Args:
            method: HTTP method
            path: Endpoint path starting with '/'
            query: Pre-encoded query string without the leading '?'
            body: Request body, already serialized
            headers: Request headers including authentication
            timeout: Total timeout in seconds

        Returns:
            Tuple of (http_status, decoded_json_payload)

        Raises:
            ExchangeError: On timeout, transport failure or a non-JSON error body
        """
        session = await self._get_session()
        url = self.build_url(path, query)

        try:
            async with session.request(
                method,
                url,
                data=body.encode('utf-8') if body else None,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                status = response.status
                text = await response.text()
        except asyncio.TimeoutError:
            raise ExchangeError(self.exchange_id, "TIMEOUT", f"{method} {path} timed out after {timeout}s")
        except aiohttp.ClientError as e:
            message = redact(str(e), *self._secrets)
            logger.error(f"[{self.exchange_id}] {method} {path} failed: {message}")
            raise ExchangeError(self.exchange_id, "NETWORK_ERROR", f"Network error: {message}")

        logger.debug(f"[{self.exchange_id}] {method} {path} -> {status}")

        try:
            payload = json.loads(text) if text else {}
        except ValueError:
            if status >= 400:
                raise_for_http_status(self.exchange_id, status, redact(text[:500], *self._secrets))
            raise ExchangeError(self.exchange_id, "INVALID_RESPONSE", f"Non-JSON response from {path}")

        return status, payload

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None


def raise_for_http_status(exchange_id: str, status: int, text: str) -> None:
    """
    Raise for a non-2xx response that carried no exchange error code.

    Args:
        exchange_id: Exchange identifier
        status: HTTP status code
        text: Response body excerpt (already redacted)
    """
    if status in (401, 403):
        raise AuthenticationError(exchange_id, f"Authentication failed (HTTP {status}): {text[:200]}",
                                  exchange_code=f"HTTP_{status}")
    if status == 429:
        raise RateLimitError(exchange_id, exchange_code="HTTP_429")
    raise ExchangeError(exchange_id, f"HTTP_{status}", f"API error ({status}): {text[:500]}")


def build_query(params: Optional[Dict[str, Any]], sort: bool = False) -> str:
    """
    Encode query parameters, skipping None values.

    Args:
        params: Query parameters
        sort: Sort keys alphabetically (needed by exchanges that sign the sorted query)

    Returns:
        URL encoded query string
    """
    if not params:
        return ""
    items = [(k, _format_param(v)) for k, v in params.items() if v is not None]
    if sort:
        items.sort(key=lambda item: item[0])
    return urlencode(items)


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
