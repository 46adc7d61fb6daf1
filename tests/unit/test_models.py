"""Tests for folio_watch.core.models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from folio_watch.core.exceptions import SymbolError
from folio_watch.core.models import (
    CacheEntry,
    CacheStats,
    HealthReport,
    Holding,
    Quote,
    QuoteSource,
    RefreshRun,
    normalize_symbol,
    normalize_symbols,
)


def _quote(**overrides) -> Quote:
    defaults = dict(
        symbol="TCS",
        price=3650.0,
        observed_at=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
        source="yahoo",
    )
    defaults.update(overrides)
    return Quote(**defaults)


class TestNormalizeSymbol:
    def test_strips_and_uppercases(self):
        assert normalize_symbol("  infy ") == "INFY"

    @pytest.mark.parametrize("symbol", ["BRK.B", "M&M", "^NSEI", "EURUSD=X", "BAJAJ-AUTO"])
    def test_accepts_punctuated_tickers(self, symbol):
        assert normalize_symbol(symbol) == symbol

    @pytest.mark.parametrize("symbol", ["", "   ", ".AAPL", "AA PL", "A" * 21, "AAPL;DROP"])
    def test_rejects_malformed(self, symbol):
        with pytest.raises(SymbolError):
            normalize_symbol(symbol)

    def test_rejects_non_string(self):
        with pytest.raises(SymbolError, match="must be a string"):
            normalize_symbol(42)


class TestNormalizeSymbols:
    def test_deduplicates_preserving_order(self):
        assert normalize_symbols(["tcs", "INFY", "TCS ", "wipro"]) == ["TCS", "INFY", "WIPRO"]

    def test_accepts_tuple(self):
        assert normalize_symbols(("AAPL",)) == ["AAPL"]

    def test_empty_list_is_valid(self):
        assert normalize_symbols([]) == []

    def test_rejects_bare_string(self):
        with pytest.raises(SymbolError, match="list"):
            normalize_symbols("AAPL")

    def test_rejects_none(self):
        with pytest.raises(SymbolError):
            normalize_symbols(None)

    def test_one_bad_symbol_rejects_whole_list(self):
        with pytest.raises(SymbolError):
            normalize_symbols(["AAPL", ""])


class TestQuote:
    def test_symbol_canonicalised(self):
        assert _quote(symbol="tcs").symbol == "TCS"

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError, match="price must be >= 0"):
            _quote(price=-1.0)

    @pytest.mark.parametrize("price", [float("nan"), float("inf")])
    def test_non_finite_price_rejected(self, price):
        with pytest.raises(ValidationError, match="price must be finite"):
            _quote(price=price)

    def test_zero_price_allowed(self):
        assert _quote(price=0.0).price == 0.0

    def test_frozen(self):
        q = _quote()
        with pytest.raises(ValidationError):
            q.price = 1.0

    def test_as_stale_relabels_only_source(self):
        q = _quote(pe_ratio=30.1)
        stale = q.as_stale()
        assert stale.source == QuoteSource.STALE
        assert stale.price == q.price
        assert stale.pe_ratio == 30.1
        assert q.source == "yahoo"


class TestCacheEntry:
    def test_fresh_at_exact_boundary(self):
        entry = CacheEntry(quote=_quote(), inserted_at=100.0, freshness_ttl=300)
        assert entry.is_fresh(400.0)
        assert not entry.is_fresh(400.001)

    def test_max_age_overrides_freshness(self):
        entry = CacheEntry(quote=_quote(), inserted_at=100.0, freshness_ttl=300)
        assert not entry.is_fresh(161.0, max_age=60)
        assert entry.is_fresh(160.0, max_age=60)

    def test_expired_strictly_after_retention(self):
        entry = CacheEntry(quote=_quote(), inserted_at=0.0, retention_ttl=1800)
        assert not entry.is_expired(1800.0)
        assert entry.is_expired(1800.5)


class TestHealthReport:
    def test_healthy_when_any_provider_up(self):
        stats = CacheStats(total_entries=0, fresh_entries=0, stale_entries=0)
        assert HealthReport(providers={"yahoo": False, "google": True}, cache=stats).healthy
        assert not HealthReport(providers={"yahoo": False}, cache=stats).healthy


class TestHolding:
    def _make(self, **overrides):
        defaults = dict(
            id="h1",
            stock_name="Tata Consultancy",
            symbol="TCS",
            exchange="NSE",
            sector="IT",
            purchase_price=3000.0,
            quantity=10,
            investment=30000.0,
            current_market_price=3650.0,
            present_value=36500.0,
            gain_loss=6500.0,
        )
        defaults.update(overrides)
        return Holding(**defaults)

    def test_valid(self):
        h = self._make()
        assert h.portfolio_percentage == 0.0
        assert h.pe_ratio is None

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError, match="quantity must be > 0"):
            self._make(quantity=0)

    def test_purchase_price_non_negative(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            self._make(purchase_price=-5)


class TestRefreshRun:
    def test_gain_loss_and_summary(self):
        run = RefreshRun(
            run_id="abc",
            started_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
            total_investment=1000.0,
            total_present_value=1250.0,
        )
        run.symbols_degraded.append("INFY")
        assert run.total_gain_loss == 250.0
        summary = run.summary()
        assert summary["total_gain_loss"] == 250.0
        assert summary["finished_at"] is None
        assert summary["symbols_degraded"] == ["INFY"]
