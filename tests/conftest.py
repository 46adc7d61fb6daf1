"""Shared pytest fixtures for folio-watch."""

from __future__ import annotations

import pytest

from folio_watch.core.config import MarketConfig, ProviderConfig, StorageConfig
from folio_watch.core.models import Quote, StorageBackend
from folio_watch.market.cache import QuoteCache
from folio_watch.storage.store import SqliteStore
from tests.fakes import FakeClock, make_quote


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QuoteCache:
    return QuoteCache(freshness_ttl=300, retention_ttl=1800, clock=clock)


@pytest.fixture
def market_config() -> MarketConfig:
    """Market settings with secondary-source pacing removed."""
    return MarketConfig(secondary_delay=0.0)


@pytest.fixture
def fast_provider_config() -> ProviderConfig:
    """Provider settings with retry and batch delays removed."""
    return ProviderConfig(
        base_url="https://quotes.test",
        max_retries=3,
        retry_delay=0.0,
        batch_delay=0.0,
        rate_limit=1000,
    )


@pytest.fixture
def sample_quote() -> Quote:
    return make_quote(
        "RELIANCE",
        2456.75,
        change=12.5,
        change_percent=0.51,
        pe_ratio=24.3,
        trailing_earnings=101.1,
    )


@pytest.fixture
async def store():
    """An initialized in-memory SqliteStore."""
    config = StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:")
    s = SqliteStore(config)
    await s.initialize()
    yield s
    await s.close()
