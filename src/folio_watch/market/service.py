"""Market data orchestrator: cache first, then providers in order, then stale.

Lookup chain for a single symbol::

    cache (fresh) → provider #1 → provider #2 → … → cache (stale) → None

Providers are tried strictly one after another, never in parallel, since
each source is rate-limited on its own. Any provider success is written
through to the cache. A stale entry is only served when every provider
failed within the same call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from folio_watch.core.config import MarketConfig
from folio_watch.core.models import (
    CacheStats,
    HealthReport,
    Quote,
    Symbol,
    normalize_symbol,
    normalize_symbols,
)
from folio_watch.market.cache import QuoteCache
from folio_watch.market.provider import QuoteProvider

logger = logging.getLogger(__name__)


class MarketDataService:
    """Turns tickers into quotes using an ordered list of providers.

    Parameters
    ----------
    providers : Sequence[QuoteProvider]
        Ordered by priority. Adding, removing or reordering sources is a
        change to this list only.
    cache : QuoteCache
        Shared cache instance. The refresh scheduler and request handlers see
        the same one.
    config : MarketConfig | None
        Current-price window, secondary-source pacing, default exchange and
        cleanup interval. Defaults if None.
    """

    def __init__(
        self,
        providers: Sequence[QuoteProvider],
        cache: QuoteCache,
        config: MarketConfig | None = None,
    ) -> None:
        if not providers:
            raise ValueError("at least one quote provider is required")
        self._providers = list(providers)
        self._cache = cache
        self._config = config or MarketConfig()
        self._cleanup_task: asyncio.Task | None = None

    async def __aenter__(self) -> MarketDataService:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def providers(self) -> list[QuoteProvider]:
        return list(self._providers)

    @property
    def cache(self) -> QuoteCache:
        return self._cache

    # --- Single symbol ---

    async def get_quote(
        self,
        symbol: Symbol,
        exchange: str | None = None,
        force_refresh: bool = False,
    ) -> Quote | None:
        """Return a quote for ``symbol``, or None if no source has one.

        Raises:
            SymbolError: If ``symbol`` is malformed (before any network call).
        """
        symbol = normalize_symbol(symbol)
        exchange = self._exchange(exchange)

        if not force_refresh:
            cached = self._cache.get(symbol)
            if cached is not None:
                logger.debug("Returning cached quote for %s", symbol)
                return cached

        quote = await self._fetch_live(symbol, exchange)
        if quote is not None:
            return quote

        return self._stale_or_none(symbol)

    async def refresh(self, symbol: Symbol, exchange: str | None = None) -> Quote | None:
        """Bypass the fresh cache and fetch ``symbol`` again."""
        return await self.get_quote(symbol, exchange, force_refresh=True)

    async def get_current_price(
        self, symbol: Symbol, exchange: str | None = None
    ) -> float | None:
        """Price-only lookup with a tighter cache window.

        Only a cache entry younger than ``current_price_ttl`` is served
        without going to the providers.
        """
        symbol = normalize_symbol(symbol)
        exchange = self._exchange(exchange)

        cached = self._cache.get(symbol, max_age=self._config.current_price_ttl)
        if cached is not None:
            return cached.price

        quote = await self._fetch_live(symbol, exchange)
        if quote is None:
            quote = self._stale_or_none(symbol)
        return quote.price if quote is not None else None

    # --- Batch ---

    async def get_batch(
        self, symbols: Sequence[Symbol], exchange: str | None = None
    ) -> dict[Symbol, Quote | None]:
        """Return a quote (or None) for every requested symbol.

        The fresh/uncached split is computed once up front. Provider #1 gets
        the uncached set as one batch; every later provider is asked for the
        leftovers one symbol at a time with ``secondary_delay`` between
        requests. Whatever is still missing falls back to stale cache.

        Raises:
            SymbolError: If the list or any symbol in it is malformed.
        """
        canonical = normalize_symbols(symbols)
        exchange = self._exchange(exchange)
        results: dict[Symbol, Quote | None] = {}

        uncached: list[Symbol] = []
        for symbol in canonical:
            cached = self._cache.get(symbol)
            if cached is not None:
                results[symbol] = cached
            else:
                uncached.append(symbol)

        logger.info(
            "Batch of %d symbols: %d cached, %d to fetch",
            len(canonical), len(results), len(uncached),
        )

        if uncached:
            remaining = await self._batch_primary(uncached, exchange, results)
            for provider in self._providers[1:]:
                if not remaining:
                    break
                remaining = await self._batch_sequential(
                    provider, remaining, exchange, results
                )
            for symbol in remaining:
                results[symbol] = self._stale_or_none(symbol)

        hits = sum(1 for q in results.values() if q is not None)
        if canonical:
            logger.info(
                "Batch complete: %d/%d symbols (%.1f%%)",
                hits, len(canonical), hits / len(canonical) * 100,
            )
        return {symbol: results[symbol] for symbol in canonical}

    async def preload(self, symbols: Sequence[Symbol], exchange: str | None = None) -> None:
        """Warm the cache for ``symbols``."""
        logger.info("Preloading market data for %d symbols", len(symbols))
        await self.get_batch(symbols, exchange)

    # --- Cache & health ---

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def check_health(self) -> HealthReport:
        """Probe every provider concurrently and report cache statistics."""
        outcomes = await asyncio.gather(
            *(p.is_available() for p in self._providers),
            return_exceptions=True,
        )
        providers = {
            p.name: outcome is True for p, outcome in zip(self._providers, outcomes)
        }
        return HealthReport(providers=providers, cache=self._cache.stats())

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the periodic cache purge. Idempotent."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(), name="quote-cache-cleanup"
        )

    async def stop(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def close(self) -> None:
        """Stop the purge loop and close every provider."""
        await self.stop()
        for provider in self._providers:
            await provider.close()

    # --- Internals ---

    def _exchange(self, exchange: str | None) -> str:
        return (exchange or self._config.default_exchange).strip().upper()

    async def _fetch_live(self, symbol: Symbol, exchange: str) -> Quote | None:
        """Try each provider in order; cache and return the first hit."""
        for provider in self._providers:
            try:
                quote = await provider.fetch_quote(symbol, exchange)
            except Exception:
                logger.exception("%s failed unexpectedly for %s", provider.name, symbol)
                quote = None
            if quote is not None:
                self._cache.put(symbol, quote)
                logger.info("Fetched %s from %s: %.2f", symbol, provider.name, quote.price)
                return quote
            logger.info("%s had no quote for %s", provider.name, symbol)
        return None

    def _stale_or_none(self, symbol: Symbol) -> Quote | None:
        stale = self._cache.get_stale(symbol)
        if stale is not None:
            logger.warning("Serving stale quote for %s - all providers failed", symbol)
            return stale
        logger.error("No market data available for %s from any source", symbol)
        return None

    async def _batch_primary(
        self,
        symbols: list[Symbol],
        exchange: str,
        results: dict[Symbol, Quote | None],
    ) -> list[Symbol]:
        primary = self._providers[0]
        try:
            fetched = await primary.fetch_batch(symbols, exchange)
        except Exception:
            logger.exception("%s batch request failed", primary.name)
            fetched = {}

        remaining: list[Symbol] = []
        for symbol in symbols:
            quote = fetched.get(symbol)
            if quote is not None:
                results[symbol] = quote
                self._cache.put(symbol, quote)
            else:
                remaining.append(symbol)
        return remaining

    async def _batch_sequential(
        self,
        provider: QuoteProvider,
        symbols: list[Symbol],
        exchange: str,
        results: dict[Symbol, Quote | None],
    ) -> list[Symbol]:
        logger.info("Trying %s for %d remaining symbols", provider.name, len(symbols))
        remaining: list[Symbol] = []
        for i, symbol in enumerate(symbols):
            if i > 0:
                await asyncio.sleep(self._config.secondary_delay)
            try:
                quote = await provider.fetch_quote(symbol, exchange)
            except Exception:
                logger.exception("%s failed unexpectedly for %s", provider.name, symbol)
                quote = None
            if quote is not None:
                results[symbol] = quote
                self._cache.put(symbol, quote)
            else:
                remaining.append(symbol)
        return remaining

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.cleanup_interval)
            try:
                self._cache.purge_expired()
            except Exception:
                logger.exception("Quote cache purge failed")
