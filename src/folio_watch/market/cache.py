"""In-memory quote cache with a freshness window and a stale-retention window.

One entry per symbol, last write wins. An entry is *fresh* for
``freshness_ttl`` seconds after insertion and may still be served as a
*stale* fallback until ``retention_ttl`` seconds, after which it is gone.
Retention is time-based only; there is no capacity bound or LRU eviction.

The cache holds no locks. All callers share one event loop and only touch
it between awaits, so every operation below is atomic.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from folio_watch.core.models import CacheEntry, CacheStats, Quote, Symbol

logger = logging.getLogger(__name__)


class QuoteCache:
    """Keyed store of the last known quote per symbol.

    Entries are keyed by canonical symbol alone. The exchange hint is not
    part of the key, so a quote fetched for ``TCS`` on NSE also answers a
    BSE request for ``TCS`` until it expires. Callers that need per-venue
    prices must bypass the cache with ``force_refresh``.

    Parameters
    ----------
    freshness_ttl : float
        Seconds after insertion during which ``get`` returns the entry.
    retention_ttl : float
        Seconds after insertion after which the entry is purged and can no
        longer serve as a stale fallback.
    clock : Callable[[], float]
        Monotonic time source in seconds. Injected by tests.
    """

    def __init__(
        self,
        freshness_ttl: float = 300.0,
        retention_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retention_ttl < freshness_ttl:
            raise ValueError("retention_ttl must be >= freshness_ttl")
        self._freshness_ttl = freshness_ttl
        self._retention_ttl = retention_ttl
        self._clock = clock
        self._entries: dict[Symbol, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._entries

    @property
    def freshness_ttl(self) -> float:
        return self._freshness_ttl

    @property
    def retention_ttl(self) -> float:
        return self._retention_ttl

    def get(self, symbol: Symbol, max_age: float | None = None) -> Quote | None:
        """Return the cached quote if it is still fresh.

        ``max_age`` tightens (or loosens) the freshness window for this one
        lookup. A stale entry is reported as absent but left in place.
        """
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        if entry.is_fresh(self._clock(), max_age):
            return entry.quote
        return None

    def get_stale(self, symbol: Symbol) -> Quote | None:
        """Return the cached quote regardless of freshness, tagged as stale.

        Entries past retention are dropped here rather than waiting for the
        next ``purge_expired`` sweep.
        """
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[symbol]
            return None
        return entry.quote.as_stale()

    def put(self, symbol: Symbol, quote: Quote) -> None:
        """Insert or replace the entry for ``symbol``."""
        self._entries[symbol] = CacheEntry(
            quote=quote,
            inserted_at=self._clock(),
            freshness_ttl=self._freshness_ttl,
            retention_ttl=self._retention_ttl,
        )

    def purge_expired(self) -> int:
        """Remove every entry past retention. Returns the number removed."""
        now = self._clock()
        expired = [s for s, e in self._entries.items() if e.is_expired(now)]
        for symbol in expired:
            del self._entries[symbol]
        if expired:
            logger.info("Purged %d expired quote(s) from cache", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        fresh = sum(1 for e in self._entries.values() if e.is_fresh(now))
        return CacheStats(
            total_entries=len(self._entries),
            fresh_entries=fresh,
            stale_entries=len(self._entries) - fresh,
        )

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Quote cache cleared")
