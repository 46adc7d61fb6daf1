"""Periodic portfolio revaluation.

Each pass pulls fresh quotes for every tracked holding, rewrites the
valuation columns, rebalances portfolio percentages and records one
aggregate snapshot. At most one scheduled pass runs at a time; a tick that
fires while a pass is in flight is dropped, not queued.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from folio_watch.core.config import SchedulerConfig
from folio_watch.core.exceptions import StorageError
from folio_watch.core.models import (
    Holding,
    PortfolioSnapshot,
    Quote,
    QuoteSource,
    RefreshRun,
)
from folio_watch.market.service import MarketDataService
from folio_watch.market.valuation import quotes_for_holdings, value_holding
from folio_watch.storage.store import StorageProtocol

logger = logging.getLogger(__name__)


class PriceRefreshScheduler:
    """Runs a full revaluation pass on a fixed interval.

    Parameters
    ----------
    service : MarketDataService
        Shared orchestrator (and therefore shared cache).
    store : StorageProtocol
        Holdings and snapshot persistence.
    config : SchedulerConfig | None
        Interval between passes. Defaults if None.
    """

    def __init__(
        self,
        service: MarketDataService,
        store: StorageProtocol,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._service = service
        self._store = store
        self._config = config or SchedulerConfig()
        self._updating = False
        self._task: asyncio.Task | None = None
        self._last_run: RefreshRun | None = None
        self._next_run: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_updating(self) -> bool:
        return self._updating

    @property
    def last_run(self) -> RefreshRun | None:
        return self._last_run

    # --- Lifecycle ---

    def start(self) -> None:
        """Run one pass now, then one every ``interval`` seconds. Idempotent."""
        if self.is_running:
            logger.warning("Price refresh scheduler already running")
            return
        logger.info(
            "Starting price refresh scheduler (every %ds)", self._config.interval
        )
        self._task = asyncio.create_task(self._loop(), name="price-refresh")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._next_run = None
        logger.info("Price refresh scheduler stopped")

    def status(self) -> dict:
        return {
            "is_running": self.is_running,
            "is_updating": self._updating,
            "interval_seconds": self._config.interval,
            "last_run": self._last_run.summary() if self._last_run else None,
            "next_run": self._next_run.isoformat() if self._next_run else None,
        }

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            self._next_run = datetime.now(timezone.utc) + timedelta(
                seconds=self._config.interval
            )
            await asyncio.sleep(self._config.interval)

    # --- Full pass ---

    async def run_once(self) -> RefreshRun | None:
        """Execute one revaluation pass.

        Returns None without touching the network when a pass is already in
        progress. Never raises.
        """
        if self._updating:
            logger.info("Price refresh already in progress, skipping this tick")
            return None

        self._updating = True
        run = RefreshRun(run_id=uuid4().hex, started_at=datetime.now(timezone.utc))
        try:
            await self._run_pass(run)
            self._last_run = run
            logger.info(
                "Price refresh %s complete: %d/%d holdings updated, %d degraded",
                run.run_id[:8],
                run.symbols_updated,
                run.symbols_requested,
                len(run.symbols_degraded),
            )
            return run
        except Exception:
            logger.exception("Price refresh pass failed")
            return None
        finally:
            self._updating = False

    async def _run_pass(self, run: RefreshRun) -> None:
        holdings = await self._store.list_holdings()
        run.symbols_requested = len(holdings)
        if not holdings:
            logger.info("No holdings to refresh")
            run.finished_at = datetime.now(timezone.utc)
            return

        quotes = await quotes_for_holdings(self._service, holdings)

        for holding in holdings:
            quote = quotes.get((holding.exchange, holding.symbol))
            if quote is None:
                logger.warning(
                    "No market data for %s, falling back to purchase price %.2f",
                    holding.symbol,
                    holding.purchase_price,
                )
                run.symbols_degraded.append(holding.symbol)
                quote = self._fallback_quote(holding)
            elif quote.source == QuoteSource.STALE:
                run.symbols_degraded.append(holding.symbol)

            updated = await self._apply(holding, quote)
            run.total_investment += holding.investment
            if updated is None:
                # Row keeps its previous valuation
                run.total_present_value += holding.present_value
                continue
            run.symbols_updated += 1
            run.total_present_value += updated.present_value

        await self._store.recompute_portfolio_percentages()
        await self._store.save_snapshot(
            PortfolioSnapshot(
                total_investment=run.total_investment,
                total_present_value=run.total_present_value,
                total_gain_loss=run.total_gain_loss,
            )
        )
        run.finished_at = datetime.now(timezone.utc)

    @staticmethod
    def _fallback_quote(holding: Holding) -> Quote:
        return Quote(
            symbol=holding.symbol,
            price=holding.purchase_price,
            observed_at=datetime.now(timezone.utc),
            source=QuoteSource.FALLBACK.value,
        )

    async def _apply(self, holding: Holding, quote: Quote) -> Holding | None:
        """Persist new valuation fields for one holding.

        Returns the revalued holding, or None when the write failed.
        """
        valued = value_holding(holding, quote)
        update = {
            "current_market_price": valued.current_market_price,
            "present_value": valued.present_value,
            "gain_loss": valued.gain_loss,
            "pe_ratio": valued.pe_ratio,
            "latest_earnings": valued.latest_earnings,
        }
        try:
            await self._store.update_holding_market_data(holding.id, **update)
        except StorageError as e:
            logger.error("Failed to persist prices for %s: %s", holding.symbol, e)
            return None

        return holding.model_copy(update=update)

    # --- Manual single-holding path ---

    async def update_holding_price(self, holding_id: str) -> Holding | None:
        """Revalue one holding immediately, outside the run guard.

        Percentages are rebalanced with a total derived inside the database.
        Returns None if the holding does not exist.
        """
        holding = await self._store.get_holding(holding_id)
        if holding is None:
            return None

        quote = await self._service.get_quote(holding.symbol, holding.exchange)
        if quote is None:
            logger.warning(
                "No market data for %s, keeping purchase price", holding.symbol
            )
            quote = self._fallback_quote(holding)
        if await self._apply(holding, quote) is None:
            raise StorageError(
                f"Failed to update holding {holding_id}",
                context={"operation": "update", "table": "holdings", "id": holding_id},
            )
        await self._store.recompute_portfolio_percentages()
        return await self._store.get_holding(holding_id)
