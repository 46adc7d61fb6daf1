"""Google Finance quote provider — scrapes the rendered quote page.

Google Finance has no public API, so the price and fundamentals are read
from the HTML with BeautifulSoup. Selectors are ranked: the first one that
yields a number wins. When Google reshuffles its markup the adapter stops
finding a price and reports "no data"; it never guesses.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import ClassVar

import httpx
from bs4 import BeautifulSoup

from folio_watch.core.config import GoogleProviderConfig
from folio_watch.core.models import Quote, QuoteSource, Symbol
from folio_watch.market.provider import BaseQuoteProvider

logger = logging.getLogger(__name__)

_NUMBER_NOISE = re.compile(r"[₹$€£,\s ]")

_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


def _parse_number(text: str) -> float | None:
    cleaned = _NUMBER_NOISE.sub("", text)
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class GoogleFinancePageParser:
    """Extracts a Quote from a Google Finance quote page."""

    PRICE_SELECTORS: ClassVar[list[str]] = [
        '[data-source="BFP"] [jsname="ip4Tqd"]',
        ".YMlKec.fxKbKc",
    ]
    PE_SELECTORS: ClassVar[list[str]] = ['[data-test-id="P/E ratio"] .ZYVHBb']
    EPS_SELECTORS: ClassVar[list[str]] = ['[data-test-id="EPS"] .ZYVHBb']

    def parse(self, html: str, symbol: Symbol) -> Quote | None:
        """Return a Quote, or None if no price could be found on the page."""
        soup = BeautifulSoup(html, "lxml")

        price = self._first_number(soup, self.PRICE_SELECTORS)
        if price is None or price < 0:
            return None

        return Quote(
            symbol=symbol,
            price=price,
            pe_ratio=self._first_number(soup, self.PE_SELECTORS),
            trailing_earnings=self._first_number(soup, self.EPS_SELECTORS),
            observed_at=datetime.now(timezone.utc),
            source=QuoteSource.GOOGLE.value,
        )

    @staticmethod
    def _first_number(soup: BeautifulSoup, selectors: list[str]) -> float | None:
        for selector in selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            value = _parse_number(element.get_text())
            if value is not None:
                return value
        return None


class GoogleFinanceProvider(BaseQuoteProvider):
    """Fetches quotes by scraping ``google.com/finance/quote/SYMBOL:EXCHANGE``.

    Parameters
    ----------
    config : GoogleProviderConfig
        ``base_url`` can be overridden for testing.
    client : httpx.AsyncClient | None
        Injected HTTP client.
    parser : GoogleFinancePageParser | None
        Custom page parser. Uses default if None.
    """

    name = QuoteSource.GOOGLE.value
    probe_symbol = "RELIANCE"
    probe_exchange = "NSE"

    def __init__(
        self,
        config: GoogleProviderConfig,
        client: httpx.AsyncClient | None = None,
        parser: GoogleFinancePageParser | None = None,
    ) -> None:
        super().__init__(config, client)
        self._parser = parser or GoogleFinancePageParser()

    async def _fetch_once(self, symbol: Symbol, exchange: str) -> Quote | None:
        url = f"{self._config.base_url}/{symbol}:{exchange.upper()}"
        logger.debug("Scraping Google Finance URL: %s", url)
        response = await self._get(url, symbol, headers=_REQUEST_HEADERS)

        quote = self._parser.parse(response.text, symbol)
        if quote is None:
            logger.warning("No price found on Google Finance page for %s", symbol)
        return quote
