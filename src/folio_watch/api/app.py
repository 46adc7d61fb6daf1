"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from folio_watch.api.deps import AppState, api_key_middleware
from folio_watch.api.routes import router
from folio_watch.api.schemas import ErrorResponse
from folio_watch.core.config import FolioConfig, load_config
from folio_watch.core.exceptions import (
    ConfigError,
    FolioWatchError,
    ProviderError,
    StorageError,
    SymbolError,
)
from folio_watch.market import PriceRefreshScheduler, QuoteProvider, build_service
from folio_watch.storage import create_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle.

    Owns the store, the provider clients, the shared quote cache and the
    background tasks (cache purge and price refresh).
    """
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    service = build_service(config, providers=app.state._pending_providers)
    scheduler = PriceRefreshScheduler(service, store, config.scheduler)

    app.state.app_state = AppState(
        config=config, store=store, service=service, scheduler=scheduler
    )

    service.start()
    if config.scheduler.enabled:
        scheduler.start()
    else:
        logger.info("Price refresh scheduler disabled by configuration")

    yield

    await scheduler.stop()
    await service.close()
    await store.close()


def create_app(
    config: FolioConfig | None = None,
    providers: Sequence[QuoteProvider] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``providers`` overrides the configured quote sources (tests inject fakes).
    """
    import folio_watch

    app = FastAPI(
        title="folio-watch API",
        description="Cached market quotes and portfolio revaluation",
        version=folio_watch.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config
    app.state._pending_providers = providers

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # No-op unless api.api_key is set
    app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(FolioWatchError)
    async def folio_exception_handler(request: Request, exc: FolioWatchError):
        status_map = {
            ConfigError: 400,
            SymbolError: 422,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        if isinstance(exc, ProviderError):
            status = 502
        return JSONResponse(
            status_code=status,
            content=ErrorResponse(error=type(exc).__name__, detail=str(exc)).model_dump(),
        )

    return app
