"""Market data acquisition and caching.

Architecture
------------
Quotes flow through an ordered list of provider adapters behind one cache:

    Yahoo / Google → QuoteProvider → MarketDataService ⇄ QuoteCache → Consumer

Key abstractions:

- ``QuoteProvider``: Uniform async fetch contract per external source.
- ``QuoteCache``: Per-symbol entries with freshness and stale-retention TTLs.
- ``MarketDataService``: Cache-first lookup with ordered provider fallback.
- ``PriceRefreshScheduler``: Periodic revaluation of stored holdings.
- ``PortfolioValuer``: Read-time summaries priced through the orchestrator.

Adding a new quote source:
1. Subclass ``BaseQuoteProvider`` and implement ``_fetch_once``.
2. Register it in ``_PROVIDER_FACTORIES`` and give it a config section.
3. List it in ``providers.order``. Consumers are untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import httpx

from folio_watch.core.config import FolioConfig, ProviderConfig, ProvidersConfig
from folio_watch.core.exceptions import ConfigError
from folio_watch.market.cache import QuoteCache
from folio_watch.market.google import GoogleFinancePageParser, GoogleFinanceProvider
from folio_watch.market.provider import BaseQuoteProvider, QuoteProvider
from folio_watch.market.scheduler import PriceRefreshScheduler
from folio_watch.market.service import MarketDataService
from folio_watch.market.valuation import (
    PortfolioValuer,
    quotes_for_holdings,
    value_holding,
)
from folio_watch.market.yahoo import (
    YahooFinanceAdapter,
    YahooFinanceProvider,
    to_yahoo_symbol,
)

_PROVIDER_FACTORIES: dict[str, Callable[..., BaseQuoteProvider]] = {
    "yahoo": YahooFinanceProvider,
    "google": GoogleFinanceProvider,
}


def build_providers(
    config: ProvidersConfig, client: httpx.AsyncClient | None = None
) -> list[QuoteProvider]:
    """Instantiate enabled providers in configured priority order.

    Raises:
        ConfigError: If no provider is left enabled.
    """
    providers: list[QuoteProvider] = []
    for name in config.order:
        provider_config: ProviderConfig = getattr(config, name)
        if not provider_config.enabled:
            continue
        providers.append(_PROVIDER_FACTORIES[name](provider_config, client))
    if not providers:
        raise ConfigError(
            "No quote providers enabled",
            context={"key": "providers.order", "value": config.order},
        )
    return providers


def build_service(
    config: FolioConfig,
    providers: Sequence[QuoteProvider] | None = None,
    client: httpx.AsyncClient | None = None,
) -> MarketDataService:
    """Wire providers, cache and orchestrator from configuration.

    ``providers`` replaces the configured adapters entirely when given.
    """
    cache = QuoteCache(
        freshness_ttl=config.market.freshness_ttl,
        retention_ttl=config.market.retention_ttl,
    )
    if providers is None:
        providers = build_providers(config.providers, client)
    return MarketDataService(providers, cache, config.market)


__all__ = [
    # Protocols & bases
    "QuoteProvider",
    "BaseQuoteProvider",
    # Sources
    "YahooFinanceAdapter",
    "YahooFinanceProvider",
    "to_yahoo_symbol",
    "GoogleFinancePageParser",
    "GoogleFinanceProvider",
    # Orchestration
    "QuoteCache",
    "MarketDataService",
    "PriceRefreshScheduler",
    "PortfolioValuer",
    "quotes_for_holdings",
    "value_holding",
    # Factories
    "build_providers",
    "build_service",
]
