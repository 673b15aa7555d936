"""Custom exception hierarchy for quote-keeper."""

from typing import Any


class QuoteKeeperError(Exception):
    """Base exception for all quote-keeper errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(QuoteKeeperError):
    """Invalid or missing configuration.

    Raised by load_config() and by component constructors (bad store path,
    bad source endpoint or token). Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class SourceUnavailableError(QuoteKeeperError):
    """The quote source could not produce a full set of quotes.

    Covers network errors, timeouts, non-200 responses and undecodable
    payloads. A fetch never returns partial results.

    Policy: the poller logs and skips the cycle. Never retried immediately.

    Context keys:
        url: str — the endpoint that was called
        status_code: int | None — HTTP status if a response arrived
        symbol: str | None — the symbol that failed to decode
    """


class StorageError(QuoteKeeperError):
    """Storage operation failed.

    Context keys:
        operation: str — "insert", "query", "initialize", etc.
        table: str — the table involved (durable engine)
    """


class PartialWriteError(StorageError):
    """The volatile engine rejected quotes for untracked symbols.

    Every quote with a tracked symbol was still stored. Raised once per
    append, after the whole batch has been processed.

    Context keys:
        rejected: list[str] — every rejected symbol, in batch order
        stored: int — number of quotes that were stored
    """


class WriteTransactionError(StorageError):
    """The durable engine failed to append a batch.

    The transaction was rolled back; nothing from the batch was persisted.

    Context keys:
        operation: str — "insert" or "commit"
        count: int — size of the rejected batch
    """


class NotFoundError(QuoteKeeperError):
    """No stored quotes for the requested symbol(s).

    Context keys:
        symbols: list[str] — the symbols that were requested
    """
