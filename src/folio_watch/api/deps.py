"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from folio_watch.api.schemas import ErrorResponse
from folio_watch.core.config import FolioConfig
from folio_watch.market.scheduler import PriceRefreshScheduler
from folio_watch.market.service import MarketDataService
from folio_watch.market.valuation import PortfolioValuer
from folio_watch.storage.store import SqliteStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: FolioConfig
    store: SqliteStore
    service: MarketDataService
    scheduler: PriceRefreshScheduler


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_valuer(state: AppState = Depends(get_app_state)) -> PortfolioValuer:
    """Dependency: a valuer over the shared orchestrator and store."""
    return PortfolioValuer(state.service, state.store)


def get_config(request: Request) -> FolioConfig:
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    return request.app.state.app_state.store


def get_service(request: Request) -> MarketDataService:
    """Dependency: the shared market data orchestrator."""
    return request.app.state.app_state.service


def get_scheduler(request: Request) -> PriceRefreshScheduler:
    return request.app.state.app_state.scheduler


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content=ErrorResponse(
                    error="Unauthorized", detail="Invalid or missing API key"
                ).model_dump(),
            )
    return await call_next(request)
