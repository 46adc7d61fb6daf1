"""Yahoo Finance quote provider — direct HTTP implementation.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint via httpx. The
chart ``meta`` block carries the live trade price and the previous close,
which is enough for a quote with a session delta. Fundamentals are not
available from this endpoint and are left empty.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

import httpx

from folio_watch.core.config import YahooProviderConfig
from folio_watch.core.exceptions import ProviderError
from folio_watch.core.models import Quote, QuoteSource, Symbol
from folio_watch.market.provider import BaseQuoteProvider

logger = logging.getLogger(__name__)

_CHART_PATH = "/v8/finance/chart"

# Exchange hint -> Yahoo ticker suffix. US venues carry no suffix.
_EXCHANGE_SUFFIX: dict[str, str] = {
    "NSE": ".NS",
    "BSE": ".BO",
    "LSE": ".L",
    "TSX": ".TO",
    "ASX": ".AX",
    "HKEX": ".HK",
    "XETRA": ".DE",
    "NASDAQ": "",
    "NYSE": "",
    "AMEX": "",
    "US": "",
}


def to_yahoo_symbol(symbol: Symbol, exchange: str) -> str:
    """Translate a canonical symbol + exchange hint to Yahoo's ticker form.

    Symbols that already carry a suffix or are index/FX tickers
    (``^NSEI``, ``EURUSD=X``) pass through unchanged.
    """
    if "." in symbol or symbol.startswith("^") or "=" in symbol:
        return symbol
    return symbol + _EXCHANGE_SUFFIX.get(exchange.upper(), "")


class YahooFinanceAdapter:
    """Transforms a raw Yahoo Finance chart result into a Quote.

    This adapter understands the ``chart.result[0]`` object and converts its
    ``meta`` block to the canonical Quote model.
    """

    def adapt(self, raw_data: Any, symbol: Symbol) -> Quote | None:
        """Parse a chart result into a Quote.

        Returns None when the payload carries no usable price.

        Raises:
            ProviderError: If the payload does not have the expected shape.
        """
        if not isinstance(raw_data, dict):
            raise ProviderError(
                "Yahoo chart result is not an object",
                context={"provider": QuoteSource.YAHOO.value, "symbol": symbol},
            )

        meta = raw_data.get("meta") or {}
        if not isinstance(meta, dict):
            raise ProviderError(
                "Yahoo chart meta is not an object",
                context={"provider": QuoteSource.YAHOO.value, "symbol": symbol},
            )
        price = meta.get("regularMarketPrice")
        if price is None:
            return None
        try:
            price = float(price)
        except (TypeError, ValueError) as e:
            raise ProviderError(
                f"Unparseable price {price!r}",
                context={"provider": QuoteSource.YAHOO.value, "symbol": symbol},
            ) from e
        if not math.isfinite(price) or price < 0:
            return None

        change: float | None = None
        change_percent: float | None = None
        previous = meta.get("chartPreviousClose") or meta.get("previousClose")
        if (
            isinstance(previous, (int, float))
            and math.isfinite(previous)
            and previous > 0
        ):
            change = price - float(previous)
            change_percent = change / float(previous) * 100

        observed_at = datetime.now(timezone.utc)
        market_time = meta.get("regularMarketTime")
        if isinstance(market_time, (int, float)):
            try:
                observed_at = datetime.fromtimestamp(market_time, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                logger.debug("Ignoring bad regularMarketTime %r for %s", market_time, symbol)

        return Quote(
            symbol=symbol,
            price=price,
            change=change,
            change_percent=change_percent,
            observed_at=observed_at,
            source=QuoteSource.YAHOO.value,
        )


class YahooFinanceProvider(BaseQuoteProvider):
    """Fetches quotes from Yahoo Finance's chart API.

    Parameters
    ----------
    config : YahooProviderConfig
        ``base_url`` can be overridden for testing.
    client : httpx.AsyncClient | None
        Injected HTTP client.
    adapter : YahooFinanceAdapter | None
        Custom adapter instance. Uses default if None.
    """

    name = QuoteSource.YAHOO.value
    probe_symbol = "AAPL"
    probe_exchange = "NASDAQ"

    def __init__(
        self,
        config: YahooProviderConfig,
        client: httpx.AsyncClient | None = None,
        adapter: YahooFinanceAdapter | None = None,
    ) -> None:
        super().__init__(config, client)
        self._adapter = adapter or YahooFinanceAdapter()

    async def _fetch_once(self, symbol: Symbol, exchange: str) -> Quote | None:
        yahoo_symbol = to_yahoo_symbol(symbol, exchange)
        url = f"{self._config.base_url}{_CHART_PATH}/{yahoo_symbol}"
        response = await self._get(
            url, symbol, params={"interval": "1d", "range": "1d"}
        )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                f"Yahoo returned invalid JSON for {yahoo_symbol}",
                context={"provider": self.name, "symbol": symbol},
            ) from e
        if not isinstance(data, dict) or not isinstance(data.get("chart"), dict):
            raise ProviderError(
                f"Yahoo response for {yahoo_symbol} has no chart object",
                context={"provider": self.name, "symbol": symbol},
            )

        chart = data["chart"]
        err = chart.get("error")
        if err:
            if not isinstance(err, dict):
                raise ProviderError(
                    f"Yahoo error block for {yahoo_symbol} is not an object",
                    context={"provider": self.name, "symbol": symbol},
                )
            # Unknown tickers come back as an API-level error, not a 404.
            logger.warning(
                "Yahoo Finance API error for %s: %s (%s)",
                yahoo_symbol,
                err.get("code"),
                err.get("description"),
            )
            return None

        results = chart.get("result")
        if not results:
            logger.warning("Yahoo Finance returned no results for %s", yahoo_symbol)
            return None
        if not isinstance(results, list):
            raise ProviderError(
                f"Yahoo result for {yahoo_symbol} is not a list",
                context={"provider": self.name, "symbol": symbol},
            )

        quote = self._adapter.adapt(results[0], symbol)
        if quote is None:
            logger.warning("No price in Yahoo Finance payload for %s", yahoo_symbol)
        else:
            logger.debug("Yahoo Finance %s: %.2f", yahoo_symbol, quote.price)
        return quote
