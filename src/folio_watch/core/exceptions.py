"""Custom exception hierarchy for folio-watch."""

from typing import Any


class FolioWatchError(Exception):
    """Base exception for all folio-watch errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(FolioWatchError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class SymbolError(FolioWatchError):
    """A ticker symbol or symbol list is malformed.

    Policy: reject synchronously, before any network call is made.

    Context keys:
        symbol: Any — the offending value
    """


class ProviderError(FolioWatchError):
    """A single attempt against an external quote source failed.

    Covers timeouts, transport errors, non-2xx responses and payloads that
    cannot be parsed. Policy: retried inside the provider adapter; never
    surfaces past ``BaseQuoteProvider.fetch_quote``.

    Context keys:
        provider: str — the adapter name
        symbol: str — the symbol being fetched
        status_code: int | None — HTTP status code if applicable
    """


class RateLimitError(ProviderError):
    """The quote source answered HTTP 429.

    Policy: treated like any other transient provider error.

    Context keys:
        retry_after: int | None — seconds the source asked us to wait
    """


class StorageError(FolioWatchError):
    """Database operation failed.

    Policy: raise to the caller. The refresh scheduler catches it per
    holding, logs, and moves on to the next one.

    Context keys:
        operation: str — "insert", "update", "query", "migrate", etc.
        table: str — the table involved
    """
