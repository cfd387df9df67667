"""
Symbol formatting and parsing per exchange.
"""

import pytest

from tradehub.exchange.binance import BinanceExchange
from tradehub.exchange.bitget import BitgetExchange
from tradehub.exchange.bybit import BybitExchange
from tradehub.exchange.coinbase import CoinbaseExchange
from tradehub.exchange.kraken import KrakenExchange, normalize_asset, normalize_pair
from tradehub.exchange.kraken.kraken_exchange import to_kraken_pair
from tradehub.exchange.lighter import LighterExchange
from tradehub.exchange.okx import OKXExchange


@pytest.fixture
def exchanges(credentials, passphrase_credentials, kraken_credentials, lighter_credentials):
    return {
        'binance': BinanceExchange(credentials),
        'bybit': BybitExchange(credentials),
        'coinbase': CoinbaseExchange(credentials),
        'kraken': KrakenExchange(kraken_credentials),
        'okx': OKXExchange(passphrase_credentials),
        'bitget': BitgetExchange(passphrase_credentials),
        'lighter': LighterExchange(lighter_credentials),
    }


@pytest.mark.parametrize("exchange_id, symbol", [
    ('binance', 'BTCUSDT'),
    ('bybit', 'ETHUSDT'),
    ('coinbase', 'BTC-USD'),
    ('kraken', 'BTC/USD'),
    ('okx', 'BTC-USDT'),
    ('bitget', 'BTCUSDT'),
    ('lighter', 'ETH-USDC'),
])
def test_round_trip(exchanges, exchange_id, symbol):
    exchange = exchanges[exchange_id]
    base, quote = exchange.parse_symbol(symbol)
    assert exchange.format_symbol(base, quote) == symbol


class TestParseSymbol:

    def test_binance_longest_quote_wins(self, credentials):
        exchange = BinanceExchange(credentials)
        assert exchange.parse_symbol('ETHFDUSD') == ('ETH', 'FDUSD')
        assert exchange.parse_symbol('ETHBTC') == ('ETH', 'BTC')

    def test_binance_format_uppercases(self, credentials):
        assert BinanceExchange(credentials).format_symbol('btc', 'usdt') == 'BTCUSDT'

    @pytest.mark.parametrize("symbol", ['BTC-USDT-SWAP', 'BTC-USD-250627', 'BTC-USD-250627-60000-C'])
    def test_okx_derivative_round_trip(self, passphrase_credentials, symbol):
        exchange = OKXExchange(passphrase_credentials, inst_type='SWAP')
        assert exchange.format_symbol(*exchange.parse_symbol(symbol)) == symbol

    def test_okx_quote_currency_drops_suffix(self, passphrase_credentials):
        exchange = OKXExchange(passphrase_credentials)
        assert exchange.parse_symbol('BTC-USDT-SWAP') == ('BTC', 'USDT-SWAP')
        assert exchange.quote_currency('BTC-USDT-SWAP') == 'USDT'
        assert exchange.quote_currency('ETH-USDC') == 'USDC'

    def test_lighter_without_dash(self, lighter_credentials):
        exchange = LighterExchange(lighter_credentials)
        assert exchange.parse_symbol('BTCUSDC') == ('BTC', 'USDC')
        assert exchange.parse_symbol('BTC') == ('BTC', 'USDT')


class TestKrakenNormalization:
    """Kraken asset and pair codes map onto common names."""

    @pytest.mark.parametrize("asset, expected", [
        ('XXBT', 'BTC'),
        ('XBT', 'BTC'),
        ('ZUSD', 'USD'),
        ('XETH', 'ETH'),
        ('XXDG', 'DOGE'),
        ('XFOO', 'FOO'),
        ('ZABC', 'ABC'),
        ('DOT', 'DOT'),
    ])
    def test_normalize_asset(self, asset, expected):
        assert normalize_asset(asset) == expected

    @pytest.mark.parametrize("pair, expected", [
        ('XXBTZUSD', 'BTC/USD'),
        ('XETHZEUR', 'ETH/EUR'),
        ('SOLUSD', 'SOL/USD'),
        ('DOTUSDT', 'DOT/USDT'),
        ('XBT/USD', 'BTC/USD'),
    ])
    def test_normalize_pair(self, pair, expected):
        assert normalize_pair(pair) == expected

    def test_to_kraken_pair(self):
        assert to_kraken_pair('BTC/USD') == 'XXBTZUSD'
        assert to_kraken_pair('SOL/USD') == 'SOLUSD'
