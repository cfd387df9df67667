"""
Tests for environment based credentials and the logging setup.
"""

import logging

import pytest

from config import settings
from config.logging_config import (
    SensitiveDataFilter, get_broker_logger, get_exchange_logger, setup_logging
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_level = root.level
    yield
    for logger in (root, get_exchange_logger(), get_broker_logger()):
        for handler in list(logger.handlers):
            if any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
                logger.removeHandler(handler)
                handler.close()
    root.setLevel(saved_level)


class TestExchangeCredentials:
    """Credentials are read from <EXCHANGE>_* environment variables."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OKX_API_KEY", "okx-key-123456")
        monkeypatch.setenv("OKX_API_SECRET", "okx-secret")
        monkeypatch.setenv("OKX_PASSPHRASE", "okx-pass")
        monkeypatch.setenv("OKX_TESTNET", "True")

        creds = settings.get_exchange_credentials('okx')

        assert creds.api_key == "okx-key-123456"
        assert creds.passphrase == "okx-pass"
        assert creds.testnet is True

    def test_missing_secret(self, monkeypatch):
        monkeypatch.setenv("BYBIT_API_KEY", "bybit-key")
        monkeypatch.delenv("BYBIT_API_SECRET", raising=False)
        assert settings.get_exchange_credentials('bybit') is None

    def test_lighter_account_index(self, monkeypatch):
        monkeypatch.setenv("LIGHTER_API_KEY", "lighter-key")
        monkeypatch.setenv("LIGHTER_API_SECRET", "lighter-secret")
        monkeypatch.setenv("LIGHTER_ACCOUNT_INDEX", "7")
        monkeypatch.setenv("LIGHTER_WALLET_ADDRESS", "0xabc")
        monkeypatch.delenv("LIGHTER_TESTNET", raising=False)

        creds = settings.get_exchange_credentials('lighter')

        assert creds.account_index == 7
        assert creds.wallet_address == "0xabc"
        assert creds.testnet is False

    def test_non_numeric_account_index_ignored(self, monkeypatch):
        monkeypatch.setenv("LIGHTER_API_KEY", "lighter-key")
        monkeypatch.setenv("LIGHTER_API_SECRET", "lighter-secret")
        monkeypatch.setenv("LIGHTER_ACCOUNT_INDEX", "seven")
        assert settings.get_exchange_credentials('lighter').account_index is None

    def test_repr_hides_secret(self, monkeypatch):
        monkeypatch.setenv("KRAKEN_API_KEY", "kraken-key-123456")
        monkeypatch.setenv("KRAKEN_API_SECRET", "kraken-very-secret")
        assert "kraken-very-secret" not in repr(settings.get_exchange_credentials('kraken'))


class TestSensitiveDataFilter:

    def _record(self, msg, *args):
        return logging.LogRecord('tradehub.exchange', logging.INFO, __file__, 1, msg, args, None)

    def test_masks_formatted_message(self):
        log_filter = SensitiveDataFilter(["my-secret-value"])
        record = self._record("signing with %s", "my-secret-value")

        assert log_filter.filter(record) is True
        assert record.getMessage() == "signing with ***"

    def test_leaves_clean_records_untouched(self):
        log_filter = SensitiveDataFilter(["my-secret-value"])
        record = self._record("fetched %d trades", 3)

        log_filter.filter(record)
        assert record.args == (3,)

    def test_short_secrets_ignored(self):
        log_filter = SensitiveDataFilter(["abc", None, ""])
        log_filter.add_secret("xy")
        assert log_filter.secrets == []

    def test_add_secret(self):
        log_filter = SensitiveDataFilter()
        log_filter.add_secret("late-secret")
        log_filter.add_secret("late-secret")
        record = self._record("late-secret leaked")

        log_filter.filter(record)
        assert log_filter.secrets == ["late-secret"]
        assert record.getMessage() == "*** leaked"


class TestSetupLogging:

    def test_creates_layer_files(self, tmp_path, restore_logging):
        config = setup_logging(str(tmp_path), "DEBUG", secrets=["file-secret-value"])

        get_exchange_logger().info("bybit request with file-secret-value")
        get_broker_logger().info("parsed 3 rows")
        for handler in config.handlers.values():
            handler.flush()

        exchange_log = config.log_files['exchange'].read_text(encoding='utf-8')
        brokers_log = config.log_files['brokers'].read_text(encoding='utf-8')

        assert "bybit request with ***" in exchange_log
        assert "file-secret-value" not in exchange_log
        assert "parsed 3 rows" in brokers_log
        assert "bybit request" not in brokers_log
        assert config.log_files['general'].name.startswith("tradehub_")

    def test_errors_file_only_gets_errors(self, tmp_path, restore_logging):
        config = setup_logging(str(tmp_path))

        logging.getLogger('tradehub.brokers.parsers').warning("row skipped")
        logging.getLogger('tradehub.exchange.okx').error("order rejected")
        config.handlers['errors'].flush()

        errors_log = config.log_files['errors'].read_text(encoding='utf-8')
        assert "order rejected" in errors_log
        assert "row skipped" not in errors_log

    def test_repeated_setup_does_not_stack_handlers(self, tmp_path, restore_logging):
        setup_logging(str(tmp_path))
        setup_logging(str(tmp_path))
        assert len(get_exchange_logger().handlers) == 1
