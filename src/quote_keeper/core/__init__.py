"""quote_keeper.core: foundation types, config, exceptions and metrics."""

from quote_keeper.core.config import (
    APIConfig,
    LoggingConfig,
    PollConfig,
    QuoteKeeperConfig,
    SourceConfig,
    StorageConfig,
    load_config,
)
from quote_keeper.core.exceptions import (
    ConfigError,
    NotFoundError,
    PartialWriteError,
    QuoteKeeperError,
    SourceUnavailableError,
    StorageError,
    WriteTransactionError,
)
from quote_keeper.core.metrics import Metrics, PollerStats
from quote_keeper.core.models import (
    DEFAULT_SYMBOLS,
    Quote,
    QuoteBatch,
    StorageBackend,
    Symbol,
    normalize_symbols,
)

__all__ = [
    # Models
    "DEFAULT_SYMBOLS",
    "Quote",
    "QuoteBatch",
    "StorageBackend",
    "Symbol",
    "normalize_symbols",
    # Config
    "QuoteKeeperConfig",
    "SourceConfig",
    "StorageConfig",
    "PollConfig",
    "APIConfig",
    "LoggingConfig",
    "load_config",
    # Exceptions
    "QuoteKeeperError",
    "ConfigError",
    "SourceUnavailableError",
    "StorageError",
    "PartialWriteError",
    "WriteTransactionError",
    "NotFoundError",
    # Metrics
    "Metrics",
    "PollerStats",
]
