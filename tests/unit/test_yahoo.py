"""Tests for the Yahoo Finance chart provider."""

from __future__ import annotations

import httpx
import pytest
import respx

from folio_watch.core.config import YahooProviderConfig
from folio_watch.core.exceptions import ProviderError
from folio_watch.market.yahoo import (
    YahooFinanceAdapter,
    YahooFinanceProvider,
    to_yahoo_symbol,
)

BASE = "https://yahoo.test"


@pytest.fixture
def config() -> YahooProviderConfig:
    return YahooProviderConfig(base_url=BASE, retry_delay=0.0, batch_delay=0.0, rate_limit=1000)


def _chart(price=2456.75, previous=2444.25, market_time=1705329000) -> dict:
    meta = {
        "currency": "INR",
        "symbol": "RELIANCE.NS",
        "regularMarketPrice": price,
        "chartPreviousClose": previous,
        "regularMarketTime": market_time,
    }
    return {"chart": {"result": [{"meta": meta, "timestamp": [market_time]}], "error": None}}


class TestSymbolMapping:
    @pytest.mark.parametrize(
        "symbol,exchange,expected",
        [
            ("RELIANCE", "NSE", "RELIANCE.NS"),
            ("RELIANCE", "nse", "RELIANCE.NS"),
            ("SBIN", "BSE", "SBIN.BO"),
            ("AAPL", "NASDAQ", "AAPL"),
            ("VOD", "LSE", "VOD.L"),
            ("XYZ", "MOON", "XYZ"),
            ("TCS.NS", "NSE", "TCS.NS"),
            ("^NSEI", "NSE", "^NSEI"),
            ("EURUSD=X", "NSE", "EURUSD=X"),
        ],
    )
    def test_mapping(self, symbol, exchange, expected):
        assert to_yahoo_symbol(symbol, exchange) == expected


class TestAdapter:
    def test_parses_price_and_change(self):
        quote = YahooFinanceAdapter().adapt(_chart()["chart"]["result"][0], "RELIANCE")
        assert quote.symbol == "RELIANCE"
        assert quote.price == 2456.75
        assert quote.change == pytest.approx(12.5)
        assert quote.change_percent == pytest.approx(12.5 / 2444.25 * 100)
        assert quote.source == "yahoo"
        assert quote.observed_at.year == 2024
        assert quote.pe_ratio is None

    def test_missing_price_is_no_data(self):
        assert YahooFinanceAdapter().adapt({"meta": {}}, "X") is None

    def test_negative_price_is_no_data(self):
        assert YahooFinanceAdapter().adapt({"meta": {"regularMarketPrice": -3}}, "X") is None

    def test_unparseable_price_raises(self):
        with pytest.raises(ProviderError, match="Unparseable"):
            YahooFinanceAdapter().adapt({"meta": {"regularMarketPrice": "n/a"}}, "X")

    def test_non_object_raises(self):
        with pytest.raises(ProviderError):
            YahooFinanceAdapter().adapt(["nope"], "X")

    def test_no_previous_close_leaves_change_empty(self):
        quote = YahooFinanceAdapter().adapt({"meta": {"regularMarketPrice": 10}}, "X")
        assert quote.change is None
        assert quote.change_percent is None

    @pytest.mark.parametrize("price", [float("nan"), float("inf")])
    def test_non_finite_price_is_no_data(self, price):
        assert YahooFinanceAdapter().adapt({"meta": {"regularMarketPrice": price}}, "X") is None

    def test_non_object_meta_raises(self):
        with pytest.raises(ProviderError, match="meta"):
            YahooFinanceAdapter().adapt({"meta": "oops"}, "X")

    def test_out_of_range_market_time_ignored(self):
        quote = YahooFinanceAdapter().adapt(
            {"meta": {"regularMarketPrice": 10, "regularMarketTime": 1e20}}, "X"
        )
        assert quote.price == 10.0
        assert quote.observed_at.tzinfo is not None


class TestProvider:
    @respx.mock
    async def test_fetch_quote_hits_chart_endpoint(self, config):
        route = respx.get(f"{BASE}/v8/finance/chart/RELIANCE.NS").mock(
            return_value=httpx.Response(200, json=_chart())
        )
        async with YahooFinanceProvider(config) as p:
            quote = await p.fetch_quote("RELIANCE", "NSE")
        assert quote.price == 2456.75
        assert route.call_count == 1
        request = route.calls.last.request
        assert request.url.params["interval"] == "1d"
        assert request.url.params["range"] == "1d"

    @respx.mock
    async def test_api_error_is_no_data_without_retry(self, config):
        route = respx.get(f"{BASE}/v8/finance/chart/FAKE").mock(
            return_value=httpx.Response(
                200,
                json={"chart": {"result": None, "error": {"code": "Not Found", "description": "No data"}}},
            )
        )
        async with YahooFinanceProvider(config) as p:
            assert await p.fetch_quote("FAKE", "NASDAQ") is None
        assert route.call_count == 1

    @respx.mock
    async def test_empty_result_is_no_data(self, config):
        respx.get(f"{BASE}/v8/finance/chart/AAPL").mock(
            return_value=httpx.Response(200, json={"chart": {"result": [], "error": None}})
        )
        async with YahooFinanceProvider(config) as p:
            assert await p.fetch_quote("AAPL", "NASDAQ") is None

    @respx.mock
    async def test_invalid_json_retried(self, config):
        route = respx.get(f"{BASE}/v8/finance/chart/AAPL").mock(
            side_effect=[
                httpx.Response(200, text="<html>oops</html>"),
                httpx.Response(200, json=_chart(price=190.0)),
            ]
        )
        async with YahooFinanceProvider(config) as p:
            quote = await p.fetch_quote("AAPL", "NASDAQ")
        assert quote.price == 190.0
        assert route.call_count == 2

    @respx.mock
    async def test_server_error_exhausts_budget(self, config):
        route = respx.get(f"{BASE}/v8/finance/chart/AAPL").mock(
            return_value=httpx.Response(500)
        )
        async with YahooFinanceProvider(config) as p:
            assert await p.fetch_quote("AAPL", "NASDAQ") is None
        assert route.call_count == config.max_retries

    @respx.mock
    async def test_batch(self, config):
        respx.get(f"{BASE}/v8/finance/chart/TCS.NS").mock(
            return_value=httpx.Response(200, json=_chart(price=3650.0))
        )
        respx.get(f"{BASE}/v8/finance/chart/INFY.NS").mock(
            return_value=httpx.Response(200, json={"chart": {"result": [], "error": None}})
        )
        async with YahooFinanceProvider(config) as p:
            result = await p.fetch_batch(["TCS", "INFY"], "NSE")
        assert result["TCS"].price == 3650.0
        assert result["INFY"] is None

    @respx.mock
    async def test_nan_price_body_is_no_data(self, config):
        respx.get(f"{BASE}/v8/finance/chart/TCS.NS").mock(
            return_value=httpx.Response(
                200,
                content=b'{"chart":{"result":[{"meta":{"regularMarketPrice":NaN}}],"error":null}}',
                headers={"content-type": "application/json"},
            )
        )
        async with YahooFinanceProvider(config) as p:
            assert await p.fetch_quote("TCS", "NSE") is None

    @pytest.mark.parametrize(
        "body",
        [
            {"chart": {"error": "boom"}},
            {"chart": {"result": {"meta": {"regularMarketPrice": 1}}, "error": None}},
            {"chart": {"result": [{"meta": "oops"}], "error": None}},
            {"chart": {"result": ["oops"], "error": None}},
        ],
        ids=["string-error", "dict-result", "string-meta", "string-result"],
    )
    @respx.mock
    async def test_malformed_shape_retried_then_none(self, config, body):
        route = respx.get(f"{BASE}/v8/finance/chart/TCS.NS").mock(
            return_value=httpx.Response(200, json=body)
        )
        async with YahooFinanceProvider(config) as p:
            assert await p.fetch_quote("TCS", "NSE") is None
        assert route.call_count == config.max_retries

    @respx.mock
    async def test_malformed_then_good_payload(self, config):
        route = respx.get(f"{BASE}/v8/finance/chart/TCS.NS").mock(
            side_effect=[
                httpx.Response(200, json={"chart": {"error": "boom"}}),
                httpx.Response(200, json=_chart(price=3650.0)),
            ]
        )
        async with YahooFinanceProvider(config) as p:
            quote = await p.fetch_quote("TCS", "NSE")
        assert quote.price == 3650.0
        assert route.call_count == 2
