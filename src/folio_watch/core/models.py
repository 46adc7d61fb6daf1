"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

from folio_watch.core.exceptions import SymbolError

# --- Type Aliases ---

Symbol = str
ProviderName = str

_SYMBOL_RE = re.compile(r"^\^?[A-Z0-9][A-Z0-9.\-&=]{0,19}$")


# --- Enumerations ---


class QuoteSource(StrEnum):
    """Well-known values of ``Quote.source``.

    Provider adapters stamp their own name; the two members below are set by
    the cache and the refresh scheduler respectively.
    """

    YAHOO = "yahoo"
    GOOGLE = "google"
    STALE = "stale"
    FALLBACK = "fallback"


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


# --- Symbol helpers ---


def normalize_symbol(symbol: object) -> Symbol:
    """Return the canonical (stripped, uppercase) form of a ticker.

    Raises:
        SymbolError: If the value is not a string or not a plausible ticker.
    """
    if not isinstance(symbol, str):
        raise SymbolError(
            f"Symbol must be a string, got {type(symbol).__name__}",
            context={"symbol": symbol},
        )
    canonical = symbol.strip().upper()
    if not _SYMBOL_RE.match(canonical):
        raise SymbolError(f"Invalid symbol: {symbol!r}", context={"symbol": symbol})
    return canonical


def normalize_symbols(symbols: object) -> list[Symbol]:
    """Canonicalise a symbol list, dropping duplicates but keeping order."""
    if isinstance(symbols, str) or not isinstance(symbols, (list, tuple, set, frozenset)):
        raise SymbolError(
            "Symbols must be a list of strings",
            context={"symbol": symbols},
        )
    seen: dict[Symbol, None] = {}
    for s in symbols:
        seen.setdefault(normalize_symbol(s), None)
    return list(seen)


# --- Market data models ---


class Quote(BaseModel):
    """One point-in-time market observation for a symbol.

    A Quote always carries a price. Sources that cannot produce one report
    "no data" (``None``) instead of constructing a Quote.
    """

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    price: float
    change: float | None = None
    change_percent: float | None = None
    pe_ratio: float | None = None
    trailing_earnings: float | None = None
    observed_at: datetime
    source: str

    @field_validator("symbol")
    @classmethod
    def symbol_is_canonical(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"price must be finite, got {v}")
        if v < 0:
            raise ValueError(f"price must be >= 0, got {v}")
        return v

    def as_stale(self) -> Quote:
        """Copy of this quote re-labelled as served from stale cache."""
        return self.model_copy(update={"source": QuoteSource.STALE.value})


class CacheEntry(BaseModel):
    """A cached Quote plus its bookkeeping.

    ``inserted_at`` is a reading of the cache's monotonic clock, not a
    wall-clock timestamp.
    """

    model_config = ConfigDict(frozen=True)

    quote: Quote
    inserted_at: float
    freshness_ttl: float = 300.0
    retention_ttl: float = 1800.0

    def age(self, now: float) -> float:
        return now - self.inserted_at

    def is_fresh(self, now: float, max_age: float | None = None) -> bool:
        limit = self.freshness_ttl if max_age is None else max_age
        return self.age(now) <= limit

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.retention_ttl


class CacheStats(BaseModel):
    """Cache entry counts by freshness."""

    model_config = ConfigDict(frozen=True)

    total_entries: int
    fresh_entries: int
    stale_entries: int


class HealthReport(BaseModel):
    """Liveness of every configured provider plus cache statistics."""

    model_config = ConfigDict(frozen=True)

    providers: dict[ProviderName, bool]
    cache: CacheStats

    @property
    def healthy(self) -> bool:
        return any(self.providers.values())


# --- Portfolio models ---


class Holding(BaseModel):
    """A persisted portfolio position."""

    model_config = ConfigDict(frozen=True)

    id: str
    stock_name: str
    symbol: Symbol
    exchange: str
    sector: str
    purchase_price: float
    quantity: int
    investment: float
    portfolio_percentage: float = 0.0
    current_market_price: float
    present_value: float
    gain_loss: float
    pe_ratio: float | None = None
    latest_earnings: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("purchase_price")
    @classmethod
    def purchase_price_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("purchase_price cannot be negative")
        return v

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be > 0")
        return v


class PortfolioSnapshot(BaseModel):
    """Aggregate portfolio totals written at the end of each refresh pass."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    total_investment: float
    total_present_value: float
    total_gain_loss: float
    snapshot_date: datetime | None = None


@dataclass
class RefreshRun:
    """Ephemeral state of one scheduled refresh pass."""

    run_id: str
    started_at: datetime
    symbols_requested: int = 0
    symbols_updated: int = 0
    symbols_degraded: list[Symbol] = field(default_factory=list)
    total_investment: float = 0.0
    total_present_value: float = 0.0
    finished_at: datetime | None = None

    @property
    def total_gain_loss(self) -> float:
        return self.total_present_value - self.total_investment

    def summary(self) -> dict:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "symbols_requested": self.symbols_requested,
            "symbols_updated": self.symbols_updated,
            "symbols_degraded": list(self.symbols_degraded),
            "total_investment": self.total_investment,
            "total_present_value": self.total_present_value,
            "total_gain_loss": self.total_gain_loss,
        }


# --- Read-time valuation models ---


class Concentration(StrEnum):
    """Weight of the largest sector in present value."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ValuedHolding(BaseModel):
    """A holding revalued at read time against the quote cache and providers.

    ``quote_source`` is None when no live or stale quote was available; the
    valuation then falls back to the stored market price.
    """

    model_config = ConfigDict(frozen=True)

    holding: Holding
    current_market_price: float
    present_value: float
    gain_loss: float
    pe_ratio: float | None = None
    latest_earnings: float | None = None
    quote_source: str | None = None

    @property
    def market_data_available(self) -> bool:
        return self.quote_source is not None

    @property
    def gain_loss_percentage(self) -> float:
        investment = self.holding.investment
        return self.gain_loss / investment * 100 if investment > 0 else 0.0


def _gain_loss_percentage(investment: float, present_value: float) -> float:
    return (present_value - investment) / investment * 100 if investment > 0 else 0.0


class PortfolioSummary(BaseModel):
    """Totals over a set of valued holdings."""

    model_config = ConfigDict(frozen=True)

    total_investment: float
    total_present_value: float
    holdings: list[ValuedHolding]

    @property
    def total_gain_loss(self) -> float:
        return self.total_present_value - self.total_investment

    @property
    def gain_loss_percentage(self) -> float:
        return _gain_loss_percentage(self.total_investment, self.total_present_value)

    @property
    def unavailable(self) -> list[Symbol]:
        return [v.holding.symbol for v in self.holdings if not v.market_data_available]


class SectorSummary(PortfolioSummary):
    """Totals for the holdings of one sector."""

    sector: str


class PortfolioMetrics(BaseModel):
    """Performance and diversification figures for the whole portfolio."""

    model_config = ConfigDict(frozen=True)

    total_holdings: int
    total_sectors: int
    total_investment: float
    total_present_value: float
    average_pe: float | None = None
    best_performer: ValuedHolding | None = None
    worst_performer: ValuedHolding | None = None
    top_sector: str | None = None
    largest_sector_weight: float = 0.0
    concentration: Concentration = Concentration.LOW

    @property
    def total_return(self) -> float:
        return self.total_present_value - self.total_investment

    @property
    def total_return_percentage(self) -> float:
        return _gain_loss_percentage(self.total_investment, self.total_present_value)
