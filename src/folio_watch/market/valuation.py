"""Read-time portfolio valuation.

Stored holdings are revalued against the orchestrator on every call: one
``get_batch`` per exchange, so fresh cache entries cost nothing and only
uncached symbols reach the providers. Nothing is written back; persisting
prices is the refresh scheduler's job.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence

from folio_watch.core.models import (
    Concentration,
    Holding,
    PortfolioMetrics,
    PortfolioSummary,
    Quote,
    SectorSummary,
    ValuedHolding,
)
from folio_watch.market.service import MarketDataService
from folio_watch.storage.store import StorageProtocol

logger = logging.getLogger(__name__)

HoldingKey = tuple[str, str]

_HIGH_CONCENTRATION = 50.0
_MEDIUM_CONCENTRATION = 30.0


async def quotes_for_holdings(
    service: MarketDataService, holdings: Sequence[Holding]
) -> dict[HoldingKey, Quote | None]:
    """Fetch quotes for ``holdings``, one batch per exchange.

    Keys are ``(exchange, symbol)``.
    """
    by_exchange: dict[str, list[str]] = defaultdict(list)
    for holding in holdings:
        by_exchange[holding.exchange].append(holding.symbol)

    quotes: dict[HoldingKey, Quote | None] = {}
    for exchange, symbols in by_exchange.items():
        batch = await service.get_batch(symbols, exchange)
        for symbol, quote in batch.items():
            quotes[(exchange, symbol)] = quote
    return quotes


def value_holding(holding: Holding, quote: Quote | None) -> ValuedHolding:
    """Revalue one holding, keeping stored figures where the quote is silent."""
    if quote is None:
        price = holding.current_market_price
        pe_ratio = holding.pe_ratio
        earnings = holding.latest_earnings
        source = None
    else:
        price = quote.price
        pe_ratio = quote.pe_ratio if quote.pe_ratio is not None else holding.pe_ratio
        earnings = (
            quote.trailing_earnings
            if quote.trailing_earnings is not None
            else holding.latest_earnings
        )
        source = quote.source

    present_value = price * holding.quantity
    return ValuedHolding(
        holding=holding,
        current_market_price=price,
        present_value=present_value,
        gain_loss=present_value - holding.investment,
        pe_ratio=pe_ratio,
        latest_earnings=earnings,
        quote_source=source,
    )


def _concentration(weight: float) -> Concentration:
    if weight > _HIGH_CONCENTRATION:
        return Concentration.HIGH
    if weight > _MEDIUM_CONCENTRATION:
        return Concentration.MEDIUM
    return Concentration.LOW


class PortfolioValuer:
    """Portfolio summaries priced from the quote cache and providers.

    Parameters
    ----------
    service : MarketDataService
        Shared orchestrator.
    store : StorageProtocol
        Source of the holdings.
    """

    def __init__(self, service: MarketDataService, store: StorageProtocol) -> None:
        self._service = service
        self._store = store

    async def value(self, sector: str | None = None) -> list[ValuedHolding]:
        holdings = await self._store.list_holdings(sector=sector)
        if not holdings:
            return []
        quotes = await quotes_for_holdings(self._service, holdings)
        valued = [
            value_holding(h, quotes.get((h.exchange, h.symbol))) for h in holdings
        ]
        missing = [v.holding.symbol for v in valued if not v.market_data_available]
        if missing:
            logger.warning(
                "No market data for %s, using stored prices", ", ".join(missing)
            )
        return valued

    async def summary(self, sector: str | None = None) -> PortfolioSummary:
        return PortfolioSummary(**self._totals(await self.value(sector)))

    async def sectors(self) -> list[SectorSummary]:
        """Per-sector totals, ordered by sector name."""
        grouped: dict[str, list[ValuedHolding]] = defaultdict(list)
        for valued in await self.value():
            grouped[valued.holding.sector].append(valued)
        return [
            SectorSummary(sector=sector, **self._totals(items))
            for sector, items in sorted(grouped.items())
        ]

    async def metrics(self) -> PortfolioMetrics:
        """Best and worst performers, average P/E and sector concentration.

        A best performer is reported only when it is in profit, a worst
        performer only when it is at a loss.
        """
        valued = await self.value()
        if not valued:
            return PortfolioMetrics(
                total_holdings=0,
                total_sectors=0,
                total_investment=0.0,
                total_present_value=0.0,
            )

        best = max(valued, key=lambda v: v.gain_loss_percentage)
        worst = min(valued, key=lambda v: v.gain_loss_percentage)

        pe_ratios = [v.pe_ratio for v in valued if v.pe_ratio is not None and v.pe_ratio > 0]
        average_pe = sum(pe_ratios) / len(pe_ratios) if pe_ratios else None

        sector_values: dict[str, float] = defaultdict(float)
        for v in valued:
            sector_values[v.holding.sector] += v.present_value
        top_sector, top_value = max(sector_values.items(), key=lambda kv: kv[1])
        total_value = sum(sector_values.values())
        weight = top_value / total_value * 100 if total_value > 0 else 0.0

        return PortfolioMetrics(
            total_holdings=len(valued),
            total_sectors=len(sector_values),
            total_investment=sum(v.holding.investment for v in valued),
            total_present_value=total_value,
            average_pe=average_pe,
            best_performer=best if best.gain_loss_percentage > 0 else None,
            worst_performer=worst if worst.gain_loss_percentage < 0 else None,
            top_sector=top_sector,
            largest_sector_weight=weight,
            concentration=_concentration(weight),
        )

    @staticmethod
    def _totals(valued: list[ValuedHolding]) -> dict:
        return {
            "total_investment": sum(v.holding.investment for v in valued),
            "total_present_value": sum(v.present_value for v in valued),
            "holdings": valued,
        }
