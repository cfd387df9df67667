"""
Request signing tests for every exchange authentication handler.
"""

import base64
import hashlib
import hmac
from datetime import datetime, timezone

import pytest

from tradehub.core.errors import AuthenticationError
from tradehub.exchange.binance import BinanceAuth
from tradehub.exchange.bitget import BitgetAuth
from tradehub.exchange.bybit import BybitAuth
from tradehub.exchange.coinbase import CoinbaseAuth
from tradehub.exchange.kraken import KrakenAuth, KrakenNonce
from tradehub.exchange.lighter import LighterAuth
from tradehub.exchange.okx import OKXAuth
from tradehub.exchange.okx.okx_auth import iso_timestamp


def _hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def _b64(secret: str, message: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()).decode()


class TestBinanceAuth:

    def test_signs_sorted_query_with_timestamp(self):
        auth = BinanceAuth("key", "secret")
        query = auth.sign_params({'symbol': 'BTCUSDT', 'limit': 10}, timestamp=1700000000000)

        unsigned, signature = query.rsplit('&signature=', 1)
        assert unsigned == "limit=10&recvWindow=5000&symbol=BTCUSDT&timestamp=1700000000000"
        assert signature == _hex("secret", unsigned)

    def test_headers(self):
        assert BinanceAuth("key", "secret").get_auth_headers()['X-MBX-APIKEY'] == "key"


class TestBybitAuth:

    def test_signature_covers_key_and_recv_window(self):
        auth = BybitAuth("key", "secret")
        signature = auth.generate_signature("1700000000000", "category=linear")
        assert signature == _hex("secret", "1700000000000key5000category=linear")

    def test_headers(self):
        headers = BybitAuth("key", "secret").get_auth_headers("a=1", timestamp="1700000000000")
        assert headers['X-BAPI-API-KEY'] == "key"
        assert headers['X-BAPI-TIMESTAMP'] == "1700000000000"
        assert headers['X-BAPI-RECV-WINDOW'] == "5000"
        assert headers['X-BAPI-SIGN'] == _hex("secret", "1700000000000key5000a=1")


class TestCoinbaseAuth:

    def test_signature(self):
        auth = CoinbaseAuth("key", "secret")
        signature = auth.generate_signature("1700000000", "get", "/api/v3/brokerage/accounts?limit=250")
        assert signature == _b64("secret", "1700000000GET/api/v3/brokerage/accounts?limit=250")

    def test_passphrase_header_only_when_set(self):
        without = CoinbaseAuth("key", "secret").get_auth_headers("GET", "/x", timestamp="1")
        with_pass = CoinbaseAuth("key", "secret", "phrase").get_auth_headers("GET", "/x", timestamp="1")
        assert 'CB-ACCESS-PASSPHRASE' not in without
        assert with_pass['CB-ACCESS-PASSPHRASE'] == "phrase"
        assert with_pass['CB-ACCESS-TIMESTAMP'] == "1"


class TestOKXAuth:

    def test_signature_with_body(self):
        auth = OKXAuth("key", "secret", "phrase")
        ts = "2024-01-15T10:30:00.123Z"
        body = '{"instId":"BTC-USDT"}'
        assert auth.generate_signature(ts, "POST", "/api/v5/trade/order", body) == \
            _b64("secret", f"{ts}POST/api/v5/trade/order{body}")

    def test_simulated_header(self):
        headers = OKXAuth("key", "secret", "phrase", simulated=True).get_auth_headers("GET", "/x")
        assert headers['x-simulated-trading'] == '1'
        assert headers['OK-ACCESS-PASSPHRASE'] == "phrase"

    def test_iso_timestamp_millisecond_precision(self):
        now = datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert iso_timestamp(now) == "2024-01-15T10:30:00.123Z"


class TestBitgetAuth:

    def test_signature(self):
        auth = BitgetAuth("key", "secret", "phrase")
        path = "/api/v2/mix/account/accounts?productType=USDT-FUTURES"
        assert auth.generate_signature("1700000000000", "GET", path) == \
            _b64("secret", f"1700000000000GET{path}")

    def test_headers(self):
        headers = BitgetAuth("key", "secret", "phrase").get_auth_headers("GET", "/x", timestamp="1")
        assert headers['ACCESS-KEY'] == "key"
        assert headers['ACCESS-PASSPHRASE'] == "phrase"
        assert headers['locale'] == 'en-US'

    def test_missing_passphrase_rejected(self):
        with pytest.raises(AuthenticationError) as exc_info:
            BitgetAuth("key", "secret", None)
        assert exc_info.value.exchange_code == 'MISSING_PASSPHRASE'
        assert "secret" not in str(exc_info.value)


class TestKrakenAuth:

    def test_signature(self):
        raw_secret = b"kraken-private-key-bytes"
        auth = KrakenAuth("key", base64.b64encode(raw_secret).decode())
        post_data = "nonce=1700000000000000&ofs=0"

        sha256 = hashlib.sha256(f"1700000000000000{post_data}".encode()).digest()
        expected = base64.b64encode(
            hmac.new(raw_secret, b"/0/private/TradesHistory" + sha256, hashlib.sha512).digest()
        ).decode()

        assert auth.generate_signature("/0/private/TradesHistory", 1700000000000000, post_data) == expected

    def test_invalid_base64_secret(self):
        with pytest.raises(AuthenticationError):
            KrakenAuth("key", "not base64 !!")

    def test_each_handler_owns_a_nonce(self):
        secret = base64.b64encode(b"secret").decode()
        assert KrakenAuth("key", secret).nonce is not KrakenAuth("key", secret).nonce

    def test_shared_nonce_injected(self):
        secret = base64.b64encode(b"secret").decode()
        nonce = KrakenNonce()
        assert KrakenAuth("key", secret, nonce=nonce).nonce is nonce


class TestKrakenNonce:
    """Nonces are strictly increasing even when the clock stands still."""

    def test_fixed_clock(self):
        nonce = KrakenNonce(clock=lambda: 1700000000.0)
        values = [nonce.next() for _ in range(5)]
        assert values[0] == 1700000000000 * 1000
        assert values == sorted(set(values))

    def test_clock_going_backwards(self):
        times = iter([1700000001.0, 1700000000.0])
        nonce = KrakenNonce(clock=lambda: next(times))
        first = nonce.next()
        assert nonce.next() > first

    def test_counter_wrap_stays_increasing(self):
        nonce = KrakenNonce(clock=lambda: 1700000000.0)
        values = [nonce.next() for _ in range(1500)]
        assert all(b > a for a, b in zip(values, values[1:]))


class TestLighterAuth:

    def test_get_signature_appends_sorted_params(self):
        auth = LighterAuth("key", "secret")
        signature = auth.generate_signature("1700000000000", "get", "/api/v1/account/5/trades?limit=100",
                                            {'market': 'ETH-USDC', 'limit': 100})
        expected = _hex("secret", "1700000000000GET/api/v1/account/5/trades?limit=100limit=100&market=ETH-USDC")
        assert signature == expected

    def test_post_signature(self):
        auth = LighterAuth("key", "secret")
        assert auth.generate_post_signature("1", '{"a":1}') == _hex("secret", '1POST{"a":1}')

    def test_headers(self):
        headers = LighterAuth("key", "secret").get_auth_headers("sig", "1", 5)
        assert headers == {
            'Content-Type': 'application/json',
            'X-API-Key': 'key',
            'X-Timestamp': '1',
            'X-Signature': 'sig',
            'X-Account-Index': '5',
        }
