"""
Centralized Logging Configuration

Separate log streams for the exchange and broker layers, with secret
masking on every record.

Log Categories:
- Console: warnings and above from every logger
- Exchange: File-based, adapter requests and results
- Brokers: File-based, CSV import summaries
- Errors: File-based, errors only
- General: File-based, application-wide logs
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional


class SensitiveDataFilter(logging.Filter):
    """Replace configured secret values in every log record with ``***``."""

    def __init__(self, secrets: Iterable[Optional[str]] = ()):
        super().__init__()
        self.secrets: List[str] = [s for s in secrets if s and len(s) >= 4]

    def add_secret(self, secret: Optional[str]) -> None:
        if secret and len(secret) >= 4 and secret not in self.secrets:
            self.secrets.append(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        masked = message
        for secret in self.secrets:
            masked = masked.replace(secret, "***")
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class TradeHubLoggingConfig:
    """Logging configuration with separated log streams."""

    def __init__(self, log_dir: str = "logs", level: str = "INFO",
                 secrets: Iterable[Optional[str]] = ()):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.level = getattr(logging, level.upper(), logging.INFO)
        self.sensitive_filter = SensitiveDataFilter(secrets)

        # Create timestamped log files for better organization
        timestamp = datetime.now().strftime("%Y%m%d")
        self.log_files = {
            'exchange': self.log_dir / f"exchange_{timestamp}.log",
            'brokers': self.log_dir / f"brokers_{timestamp}.log",
            'errors': self.log_dir / f"errors_{timestamp}.log",
            'general': self.log_dir / f"tradehub_{timestamp}.log"
        }

        self._setup_loggers()

    def _setup_loggers(self):
        """Set up all logger configurations."""
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(self.level)

        # Suppress DEBUG logging from external libraries
        for noisy in ('aiohttp', 'asyncio', 'urllib3'):
            logging.getLogger(noisy).setLevel(logging.WARNING)

        self._create_formatters()
        self._setup_handlers()
        self._configure_specific_loggers()

    def _create_formatters(self):
        """Create formatters for different log types."""
        # Detailed formatter for files
        self.file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Simple formatter for console
        self.console_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

    def _file_handler(self, key: str, level: int) -> logging.Handler:
        handler = logging.FileHandler(self.log_files[key], encoding='utf-8')
        handler.setLevel(level)
        handler.setFormatter(self.file_formatter)
        handler.addFilter(self.sensitive_filter)
        return handler

    def _setup_handlers(self):
        """Set up file and console handlers."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(self.console_formatter)
        console_handler.addFilter(self.sensitive_filter)

        self.handlers = {
            'console': console_handler,
            'general': self._file_handler('general', self.level),
            'exchange': self._file_handler('exchange', self.level),
            'brokers': self._file_handler('brokers', self.level),
            'errors': self._file_handler('errors', logging.ERROR),
        }

        root_logger = logging.getLogger()
        root_logger.addHandler(self.handlers['console'])
        root_logger.addHandler(self.handlers['general'])
        root_logger.addHandler(self.handlers['errors'])

    def _configure_specific_loggers(self):
        """Route each layer's loggers to its own file; records still reach the root handlers."""
        layer_loggers = {
            'exchange': ['tradehub.exchange'],
            'brokers': ['tradehub.brokers'],
        }

        for key, logger_names in layer_loggers.items():
            for logger_name in logger_names:
                logger = logging.getLogger(logger_name)
                for handler in list(logger.handlers):
                    logger.removeHandler(handler)
                    handler.close()
                logger.setLevel(self.level)
                logger.addHandler(self.handlers[key])

    def add_secret(self, secret: Optional[str]) -> None:
        """Mask another secret value in all future records."""
        self.sensitive_filter.add_secret(secret)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger with appropriate configuration."""
        return logging.getLogger(name)


def setup_logging(log_dir: str = "logs", level: str = "INFO",
                  secrets: Iterable[Optional[str]] = ()) -> TradeHubLoggingConfig:
    """Set up logging for the exchange and broker layers."""
    return TradeHubLoggingConfig(log_dir, level, secrets)


def get_exchange_logger() -> logging.Logger:
    """Get logger specifically for exchange adapters."""
    return logging.getLogger('tradehub.exchange')


def get_broker_logger() -> logging.Logger:
    """Get logger specifically for broker imports."""
    return logging.getLogger('tradehub.brokers')
