"""FastAPI route definitions for the folio-watch API."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

import folio_watch
from folio_watch.api.deps import (
    get_config,
    get_scheduler,
    get_service,
    get_store,
    get_valuer,
)
from folio_watch.api.schemas import (
    BatchRequest,
    BatchResponse,
    CacheStatsResponse,
    HealthResponse,
    HoldingCreate,
    HoldingListResponse,
    HoldingResponse,
    HoldingUpdate,
    MarketStatusResponse,
    PortfolioMetricsResponse,
    PortfolioSummaryResponse,
    PriceResponse,
    QuoteResponse,
    RefreshAcceptedResponse,
    SchedulerStatusResponse,
    SectorSummaryResponse,
    SnapshotResponse,
)
from folio_watch.core.config import FolioConfig
from folio_watch.market.scheduler import PriceRefreshScheduler
from folio_watch.market.service import MarketDataService
from folio_watch.market.valuation import PortfolioValuer
from folio_watch.storage.store import SqliteStore

router = APIRouter()


def _not_available(symbol: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=f"Market data not available for '{symbol.upper()}'",
    )


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: SqliteStore = Depends(get_store),
    config: FolioConfig = Depends(get_config),
):
    """System health and basic statistics."""
    storage_ok = await store.health_check()
    total = (await store.get_statistics())["total_holdings"] if storage_ok else 0
    return HealthResponse(
        status="ok" if storage_ok else "degraded",
        version=folio_watch.__version__,
        storage_backend=str(config.storage.backend.value),
        storage_ok=storage_ok,
        total_holdings=total,
    )


# -- Market data --


@router.get("/market/price/{symbol}", response_model=PriceResponse)
async def get_current_price(
    symbol: str,
    exchange: str | None = Query(None, description="Exchange hint, e.g. NSE"),
    service: MarketDataService = Depends(get_service),
    config: FolioConfig = Depends(get_config),
):
    """Latest price only, served from a one-minute cache window."""
    price = await service.get_current_price(symbol, exchange)
    if price is None:
        raise _not_available(symbol)
    return PriceResponse(
        symbol=symbol.strip().upper(),
        exchange=(exchange or config.market.default_exchange).upper(),
        price=price,
    )


@router.get("/market/quote/{symbol}", response_model=QuoteResponse)
async def get_quote(
    symbol: str,
    exchange: str | None = Query(None, description="Exchange hint, e.g. NSE"),
    refresh: bool = Query(False, description="Bypass the fresh cache"),
    service: MarketDataService = Depends(get_service),
):
    """Full quote with change and fundamentals where the source has them."""
    quote = await service.get_quote(symbol, exchange, force_refresh=refresh)
    if quote is None:
        raise _not_available(symbol)
    return QuoteResponse.from_quote(quote)


@router.post("/market/batch", response_model=BatchResponse)
async def get_batch(
    request: BatchRequest,
    service: MarketDataService = Depends(get_service),
):
    """Quotes for many symbols. Unavailable symbols map to null."""
    quotes = await service.get_batch(request.symbols, request.exchange)
    return BatchResponse(
        requested=len(quotes),
        available=sum(1 for q in quotes.values() if q is not None),
        quotes={
            s: (QuoteResponse.from_quote(q) if q is not None else None)
            for s, q in quotes.items()
        },
    )


@router.get("/market/status", response_model=MarketStatusResponse)
async def market_status(
    probe: bool = Query(False, description="Probe each provider over the network"),
    service: MarketDataService = Depends(get_service),
    scheduler: PriceRefreshScheduler = Depends(get_scheduler),
):
    """Provider order, cache statistics and refresh scheduler state."""
    providers = None
    if probe:
        report = await service.check_health()
        providers = report.providers
    stats = service.cache_stats()
    return MarketStatusResponse(
        provider_order=[p.name for p in service.providers],
        providers=providers,
        cache=CacheStatsResponse(**stats.model_dump()),
        scheduler=SchedulerStatusResponse(**scheduler.status()),
    )


@router.delete("/market/cache", status_code=204)
async def clear_cache(service: MarketDataService = Depends(get_service)):
    service.clear_cache()


@router.post("/market/update", response_model=RefreshAcceptedResponse, status_code=202)
async def trigger_refresh(
    background_tasks: BackgroundTasks,
    scheduler: PriceRefreshScheduler = Depends(get_scheduler),
):
    """Queue one full revaluation pass."""
    if scheduler.is_updating:
        raise HTTPException(status_code=409, detail="A price refresh is already running")
    background_tasks.add_task(scheduler.run_once)
    return RefreshAcceptedResponse(
        status="accepted",
        message="Price refresh started",
    )


@router.post("/market/update/{holding_id}", response_model=HoldingResponse)
async def refresh_holding(
    holding_id: str,
    scheduler: PriceRefreshScheduler = Depends(get_scheduler),
):
    """Revalue a single holding immediately."""
    holding = await scheduler.update_holding_price(holding_id)
    if holding is None:
        raise HTTPException(status_code=404, detail=f"Holding '{holding_id}' not found")
    return HoldingResponse.from_holding(holding)


# -- Holdings --


@router.get("/holdings", response_model=HoldingListResponse)
async def list_holdings(
    sector: str | None = Query(None, description="Filter by sector"),
    store: SqliteStore = Depends(get_store),
):
    holdings = await store.list_holdings(sector=sector)
    total_investment = sum(h.investment for h in holdings)
    total_present_value = sum(h.present_value for h in holdings)
    return HoldingListResponse(
        total=len(holdings),
        total_investment=total_investment,
        total_present_value=total_present_value,
        total_gain_loss=total_present_value - total_investment,
        items=[HoldingResponse.from_holding(h) for h in holdings],
    )


@router.post("/holdings", response_model=HoldingResponse, status_code=201)
async def create_holding(
    request: HoldingCreate,
    store: SqliteStore = Depends(get_store),
    config: FolioConfig = Depends(get_config),
):
    """Add a position. Its market price starts at the purchase price unless given."""
    holding = await store.add_holding(
        stock_name=request.stock_name,
        symbol=request.symbol,
        exchange=request.exchange or config.market.default_exchange,
        sector=request.sector,
        purchase_price=request.purchase_price,
        quantity=request.quantity,
        current_market_price=request.current_market_price,
    )
    return HoldingResponse.from_holding(holding)


@router.get("/holdings/{holding_id}", response_model=HoldingResponse)
async def get_holding(holding_id: str, store: SqliteStore = Depends(get_store)):
    holding = await store.get_holding(holding_id)
    if holding is None:
        raise HTTPException(status_code=404, detail=f"Holding '{holding_id}' not found")
    return HoldingResponse.from_holding(holding)


@router.put("/holdings/{holding_id}", response_model=HoldingResponse)
async def update_holding(
    holding_id: str,
    request: HoldingUpdate,
    store: SqliteStore = Depends(get_store),
):
    """Edit name, sector, cost or quantity. Derived figures are recomputed."""
    holding = await store.update_holding(
        holding_id, **request.model_dump(exclude_none=True)
    )
    if holding is None:
        raise HTTPException(status_code=404, detail=f"Holding '{holding_id}' not found")
    return HoldingResponse.from_holding(holding)


@router.delete("/holdings/{holding_id}", status_code=204)
async def delete_holding(holding_id: str, store: SqliteStore = Depends(get_store)):
    if not await store.delete_holding(holding_id):
        raise HTTPException(status_code=404, detail=f"Holding '{holding_id}' not found")


# -- Portfolio (live) --


@router.get("/portfolio/summary", response_model=PortfolioSummaryResponse)
async def portfolio_summary(
    sector: str | None = Query(None, description="Filter by sector"),
    valuer: PortfolioValuer = Depends(get_valuer),
):
    """Holdings priced at request time. Symbols without a quote are listed
    under ``unavailable`` and valued at their stored price."""
    return PortfolioSummaryResponse.from_summary(await valuer.summary(sector))


@router.get("/portfolio/sectors", response_model=list[SectorSummaryResponse])
async def portfolio_sectors(valuer: PortfolioValuer = Depends(get_valuer)):
    return [SectorSummaryResponse.from_sector(s) for s in await valuer.sectors()]


@router.get("/portfolio/metrics", response_model=PortfolioMetricsResponse)
async def portfolio_metrics(valuer: PortfolioValuer = Depends(get_valuer)):
    """Performers, average P/E and sector concentration."""
    return PortfolioMetricsResponse.from_metrics(await valuer.metrics())


# -- Snapshots --


@router.get("/snapshots", response_model=list[SnapshotResponse])
async def list_snapshots(
    limit: int = Query(30, ge=1, le=500),
    store: SqliteStore = Depends(get_store),
):
    """Most recent portfolio snapshots first."""
    snapshots = await store.list_snapshots(limit=limit)
    return [SnapshotResponse.from_snapshot(s) for s in snapshots]
