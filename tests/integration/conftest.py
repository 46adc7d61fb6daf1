"""Integration test fixtures: real SQLite and real adapters, mocked HTTP."""

from __future__ import annotations

from pathlib import Path

import pytest

from folio_watch.core.config import (
    FolioConfig,
    GoogleProviderConfig,
    MarketConfig,
    ProvidersConfig,
    SchedulerConfig,
    StorageConfig,
    YahooProviderConfig,
)
from folio_watch.core.models import StorageBackend
from folio_watch.storage.store import SqliteStore

YAHOO_BASE = "https://yahoo.test"
GOOGLE_BASE = "https://google.test/finance/quote"


def chart_payload(price: float, previous: float | None = None) -> dict:
    meta = {"regularMarketPrice": price, "regularMarketTime": 1705329000}
    if previous is not None:
        meta["chartPreviousClose"] = previous
    return {"chart": {"result": [{"meta": meta}], "error": None}}


EMPTY_CHART = {"chart": {"result": [], "error": None}}


def google_page(price: str, pe: str = "24.31", eps: str = "101.06") -> str:
    return f"""
<html><body>
  <div data-source="BFP"><div class="YMlKec fxKbKc">{price}</div></div>
  <div class="gyFHrc" data-test-id="P/E ratio"><div class="P6K39c ZYVHBb">{pe}</div></div>
  <div class="gyFHrc" data-test-id="EPS"><div class="P6K39c ZYVHBb">{eps}</div></div>
</body></html>
"""


@pytest.fixture
def integration_config(tmp_path: Path) -> FolioConfig:
    """Full config pointing both adapters at mock hosts."""
    fast = dict(max_retries=1, retry_delay=0.0, batch_delay=0.0, rate_limit=1000)
    return FolioConfig(
        market=MarketConfig(secondary_delay=0.0),
        providers=ProvidersConfig(
            yahoo=YahooProviderConfig(base_url=YAHOO_BASE, **fast),
            google=GoogleProviderConfig(base_url=GOOGLE_BASE, **fast),
        ),
        scheduler=SchedulerConfig(enabled=False),
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "integration.db"),
        ),
    )


@pytest.fixture
async def integration_store(integration_config: FolioConfig) -> SqliteStore:
    """An initialized file-backed SqliteStore."""
    store = SqliteStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def populated_store(integration_store: SqliteStore) -> SqliteStore:
    """Three holdings across two exchanges."""
    await integration_store.add_holding(
        "Tata Consultancy Services", "TCS", "NSE", "IT", 3000.0, 10
    )
    await integration_store.add_holding(
        "Reliance Industries", "RELIANCE", "NSE", "Energy", 2500.0, 4
    )
    await integration_store.add_holding("Apple Inc.", "AAPL", "NASDAQ", "Tech", 150.0, 20)
    return integration_store
