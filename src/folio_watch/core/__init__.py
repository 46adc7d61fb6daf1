"""folio_watch.core — Foundation types, config, and exceptions."""

from folio_watch.core.config import (
    APIConfig,
    FolioConfig,
    GoogleProviderConfig,
    MarketConfig,
    ProviderConfig,
    ProvidersConfig,
    SchedulerConfig,
    StorageConfig,
    YahooProviderConfig,
    load_config,
)
from folio_watch.core.exceptions import (
    ConfigError,
    FolioWatchError,
    ProviderError,
    RateLimitError,
    StorageError,
    SymbolError,
)
from folio_watch.core.models import (
    CacheEntry,
    CacheStats,
    Concentration,
    HealthReport,
    Holding,
    PortfolioMetrics,
    PortfolioSnapshot,
    PortfolioSummary,
    ProviderName,
    Quote,
    QuoteSource,
    RefreshRun,
    SectorSummary,
    StorageBackend,
    Symbol,
    ValuedHolding,
    normalize_symbol,
    normalize_symbols,
)

__all__ = [
    # Type aliases
    "Symbol",
    "ProviderName",
    # Enums
    "QuoteSource",
    "StorageBackend",
    "Concentration",
    # Market data models
    "Quote",
    "CacheEntry",
    "CacheStats",
    "HealthReport",
    # Portfolio models
    "Holding",
    "PortfolioSnapshot",
    "RefreshRun",
    "ValuedHolding",
    "PortfolioSummary",
    "SectorSummary",
    "PortfolioMetrics",
    # Helpers
    "normalize_symbol",
    "normalize_symbols",
    # Config
    "FolioConfig",
    "MarketConfig",
    "ProviderConfig",
    "ProvidersConfig",
    "YahooProviderConfig",
    "GoogleProviderConfig",
    "SchedulerConfig",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "FolioWatchError",
    "ConfigError",
    "SymbolError",
    "ProviderError",
    "RateLimitError",
    "StorageError",
]
