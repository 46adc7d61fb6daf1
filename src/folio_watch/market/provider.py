"""Quote provider protocol and the shared retry/batch machinery.

Architecture
------------
Every external quote source sits behind the same contract so the
orchestrator can iterate over an ordered list of them:

    QuoteProvider.fetch_quote / fetch_batch → Quote | None → MarketDataService

- **QuoteProvider** is the consumer-facing protocol. The orchestrator depends
  only on this interface.

- **BaseQuoteProvider** implements the contract once. A concrete source only
  supplies ``_fetch_once`` (one HTTP round-trip, raising ``ProviderError`` on
  anything transient) and gets retry-with-backoff, chunked batching, rate
  limiting and the liveness probe for free.

Adding a source = subclassing ``BaseQuoteProvider`` and listing it in
``build_providers``. Parsing brittleness stays inside the subclass.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter

from folio_watch.core.config import ProviderConfig
from folio_watch.core.exceptions import ProviderError, RateLimitError
from folio_watch.core.models import ProviderName, Quote, Symbol

logger = logging.getLogger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@runtime_checkable
class QuoteProvider(Protocol):
    """Uniform fetch contract for one external quote source."""

    name: ProviderName

    async def fetch_quote(self, symbol: Symbol, exchange: str) -> Quote | None:
        """Fetch one quote. Returns None when the source has no data.

        Never raises for transient failures; those are retried internally.
        """
        ...

    async def fetch_batch(
        self, symbols: list[Symbol], exchange: str
    ) -> dict[Symbol, Quote | None]:
        """Fetch many quotes. Every requested symbol appears as a key."""
        ...

    async def is_available(self) -> bool:
        """Cheap liveness probe used by health reporting."""
        ...

    async def close(self) -> None: ...


class BaseQuoteProvider(ABC):
    """Retry, batching and rate-limiting shared by all quote sources.

    Parameters
    ----------
    config : ProviderConfig
        Timeouts, retry budget, batch shape and rate limit for this source.
    client : httpx.AsyncClient | None
        Injected HTTP client (tests). A client is created when omitted and
        closed by ``close()``.
    """

    name: ProviderName = "base"
    probe_symbol: Symbol = "AAPL"
    probe_exchange: str = "NASDAQ"

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": _USER_AGENT},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> BaseQuoteProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def config(self) -> ProviderConfig:
        return self._config

    # --- Source-specific hook ---

    @abstractmethod
    async def _fetch_once(self, symbol: Symbol, exchange: str) -> Quote | None:
        """One request against the source.

        Returns None when the source answered but carries no price.

        Raises:
            ProviderError: On timeout, transport error, non-2xx status or an
                unparseable payload. Triggers a retry.
        """

    # --- Contract ---

    async def fetch_quote(self, symbol: Symbol, exchange: str) -> Quote | None:
        """Fetch one quote with linear backoff between attempts.

        Makes at most ``max_retries`` attempts, sleeping
        ``retry_delay * attempt`` after each failed one.
        """
        max_attempts = self._config.max_retries
        for attempt in range(1, max_attempts + 1):
            try:
                await self._limiter.acquire()
                return await self._fetch_once(symbol, exchange)
            except ProviderError as e:
                if attempt < max_attempts:
                    delay = self._config.retry_delay * attempt
                    logger.warning(
                        "%s attempt %d/%d failed for %s: %s; retrying in %.1fs",
                        self.name, attempt, max_attempts, symbol, e, delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    "%s gave up on %s after %d attempts: %s",
                    self.name, symbol, max_attempts, e,
                )
            except Exception:
                logger.exception("%s crashed fetching %s", self.name, symbol)
                return None
        return None

    async def fetch_batch(
        self, symbols: list[Symbol], exchange: str
    ) -> dict[Symbol, Quote | None]:
        """Fetch quotes in chunks of ``batch_size``.

        Symbols in a chunk are fetched concurrently; chunks are separated by
        ``batch_delay`` seconds. One symbol's failure never aborts the batch.
        """
        results: dict[Symbol, Quote | None] = {}
        size = self._config.batch_size

        for start in range(0, len(symbols), size):
            chunk = symbols[start : start + size]
            outcomes = await asyncio.gather(
                *(self.fetch_quote(s, exchange) for s in chunk),
                return_exceptions=True,
            )
            for symbol, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "%s batch fetch failed for %s: %r", self.name, symbol, outcome
                    )
                    results[symbol] = None
                else:
                    results[symbol] = outcome

            if start + size < len(symbols):
                await asyncio.sleep(self._config.batch_delay)

        hits = sum(1 for q in results.values() if q is not None)
        logger.info(
            "%s batch complete: %d/%d symbols", self.name, hits, len(symbols)
        )
        return results

    async def is_available(self) -> bool:
        """Fetch the probe symbol; True when a price comes back."""
        try:
            quote = await self.fetch_quote(self.probe_symbol, self.probe_exchange)
        except Exception:
            logger.exception("%s availability probe crashed", self.name)
            return False
        return quote is not None

    # --- Helpers for subclasses ---

    async def _get(self, url: str, symbol: Symbol, **kwargs: object) -> httpx.Response:
        """GET ``url``, translating every transport failure to ProviderError."""
        try:
            response = await self._client.get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Timeout fetching {url}",
                context={"provider": self.name, "symbol": symbol},
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Request error fetching {url}: {e}",
                context={"provider": self.name, "symbol": symbol},
            ) from e

        if response.status_code == 429:
            raise RateLimitError(
                f"HTTP 429 from {self.name}",
                context={
                    "provider": self.name,
                    "symbol": symbol,
                    "status_code": 429,
                    "retry_after": response.headers.get("Retry-After"),
                },
            )
        if not response.is_success:
            raise ProviderError(
                f"HTTP {response.status_code} from {self.name}",
                context={
                    "provider": self.name,
                    "symbol": symbol,
                    "status_code": response.status_code,
                },
            )
        return response
