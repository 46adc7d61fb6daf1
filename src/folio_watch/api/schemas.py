"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from folio_watch.core.models import (
    Holding,
    PortfolioMetrics,
    PortfolioSnapshot,
    PortfolioSummary,
    Quote,
    SectorSummary,
    ValuedHolding,
)


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    storage_backend: str
    storage_ok: bool
    total_holdings: int


# -- Market --


class QuoteResponse(BaseModel):
    """One quote in API response format."""

    symbol: str
    price: float
    change: float | None = None
    change_percent: float | None = None
    pe_ratio: float | None = None
    trailing_earnings: float | None = None
    observed_at: datetime
    source: str
    stale: bool

    @classmethod
    def from_quote(cls, quote: Quote) -> QuoteResponse:
        return cls(**quote.model_dump(), stale=quote.source == "stale")


class PriceResponse(BaseModel):
    symbol: str
    exchange: str
    price: float


class BatchRequest(BaseModel):
    """Request body for POST /market/batch."""

    symbols: list[str] = Field(..., min_length=1, max_length=200)
    exchange: str | None = None


class BatchResponse(BaseModel):
    requested: int
    available: int
    quotes: dict[str, QuoteResponse | None]


class CacheStatsResponse(BaseModel):
    total_entries: int
    fresh_entries: int
    stale_entries: int


class SchedulerStatusResponse(BaseModel):
    is_running: bool
    is_updating: bool
    interval_seconds: float
    last_run: dict | None = None
    next_run: datetime | None = None


class MarketStatusResponse(BaseModel):
    """Provider order, optional liveness, cache and scheduler state."""

    provider_order: list[str]
    providers: dict[str, bool] | None = None
    cache: CacheStatsResponse
    scheduler: SchedulerStatusResponse


class RefreshAcceptedResponse(BaseModel):
    status: str
    message: str


# -- Holdings --


class HoldingCreate(BaseModel):
    """Request body for POST /holdings."""

    stock_name: str = Field(..., min_length=1, max_length=200)
    symbol: str
    exchange: str | None = None
    sector: str = Field(..., min_length=1, max_length=100)
    purchase_price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    current_market_price: float | None = Field(None, ge=0)


class HoldingUpdate(BaseModel):
    """Request body for PUT /holdings/{id}. Omitted fields are left as stored."""

    stock_name: str | None = Field(None, min_length=1, max_length=200)
    sector: str | None = Field(None, min_length=1, max_length=100)
    purchase_price: float | None = Field(None, ge=0, allow_inf_nan=False)
    quantity: int | None = Field(None, gt=0)


class HoldingResponse(BaseModel):
    """Holding in API response format."""

    id: str
    stock_name: str
    symbol: str
    exchange: str
    sector: str
    purchase_price: float
    quantity: int
    investment: float
    portfolio_percentage: float
    current_market_price: float
    present_value: float
    gain_loss: float
    pe_ratio: float | None = None
    latest_earnings: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_holding(cls, holding: Holding) -> HoldingResponse:
        return cls(**holding.model_dump())


class HoldingListResponse(BaseModel):
    total: int
    total_investment: float
    total_present_value: float
    total_gain_loss: float
    items: list[HoldingResponse]


# -- Portfolio (live) --


class ValuedHoldingResponse(HoldingResponse):
    """Holding priced at request time. ``market_data_available`` is false
    when the stored price was used instead of a quote."""

    gain_loss_percentage: float
    market_data_available: bool
    quote_source: str | None = None

    @classmethod
    def from_valued(cls, valued: ValuedHolding) -> ValuedHoldingResponse:
        data = valued.holding.model_dump()
        data.update(
            current_market_price=valued.current_market_price,
            present_value=valued.present_value,
            gain_loss=valued.gain_loss,
            pe_ratio=valued.pe_ratio,
            latest_earnings=valued.latest_earnings,
        )
        return cls(
            **data,
            gain_loss_percentage=valued.gain_loss_percentage,
            market_data_available=valued.market_data_available,
            quote_source=valued.quote_source,
        )


class PortfolioSummaryResponse(BaseModel):
    total_investment: float
    total_present_value: float
    total_gain_loss: float
    gain_loss_percentage: float
    unavailable: list[str]
    items: list[ValuedHoldingResponse]

    @classmethod
    def from_summary(cls, summary: PortfolioSummary) -> PortfolioSummaryResponse:
        return cls(
            total_investment=summary.total_investment,
            total_present_value=summary.total_present_value,
            total_gain_loss=summary.total_gain_loss,
            gain_loss_percentage=summary.gain_loss_percentage,
            unavailable=summary.unavailable,
            items=[ValuedHoldingResponse.from_valued(v) for v in summary.holdings],
        )


class SectorSummaryResponse(PortfolioSummaryResponse):
    sector: str
    stock_count: int

    @classmethod
    def from_sector(cls, summary: SectorSummary) -> SectorSummaryResponse:
        base = PortfolioSummaryResponse.from_summary(summary)
        return cls(
            **base.model_dump(), sector=summary.sector, stock_count=len(summary.holdings)
        )


class PortfolioMetricsResponse(BaseModel):
    total_holdings: int
    total_sectors: int
    total_investment: float
    total_present_value: float
    total_return: float
    total_return_percentage: float
    average_pe: float | None = None
    best_performer: ValuedHoldingResponse | None = None
    worst_performer: ValuedHoldingResponse | None = None
    top_sector: str | None = None
    largest_sector_weight: float
    concentration: str

    @classmethod
    def from_metrics(cls, metrics: PortfolioMetrics) -> PortfolioMetricsResponse:
        return cls(
            total_holdings=metrics.total_holdings,
            total_sectors=metrics.total_sectors,
            total_investment=metrics.total_investment,
            total_present_value=metrics.total_present_value,
            total_return=metrics.total_return,
            total_return_percentage=metrics.total_return_percentage,
            average_pe=metrics.average_pe,
            best_performer=(
                ValuedHoldingResponse.from_valued(metrics.best_performer)
                if metrics.best_performer is not None
                else None
            ),
            worst_performer=(
                ValuedHoldingResponse.from_valued(metrics.worst_performer)
                if metrics.worst_performer is not None
                else None
            ),
            top_sector=metrics.top_sector,
            largest_sector_weight=metrics.largest_sector_weight,
            concentration=metrics.concentration.value,
        )


# -- Snapshots --


class SnapshotResponse(BaseModel):
    id: str | None
    total_investment: float
    total_present_value: float
    total_gain_loss: float
    snapshot_date: datetime | None

    @classmethod
    def from_snapshot(cls, snapshot: PortfolioSnapshot) -> SnapshotResponse:
        return cls(**snapshot.model_dump())
