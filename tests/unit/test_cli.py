"""Tests for the CLI module."""

from __future__ import annotations

import asyncio
import json
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from folio_watch.cli import cli
from folio_watch.core.config import StorageConfig
from folio_watch.market.cache import QuoteCache
from folio_watch.market.service import MarketDataService
from folio_watch.storage.store import create_store
from tests.fakes import FakeProvider


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Run each command in an empty directory against a throwaway database."""
    for key in list(os.environ):
        if key.startswith("FOLIO_WATCH_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    db = tmp_path / "cli.db"
    monkeypatch.setenv("FOLIO_WATCH_STORAGE__SQLITE_PATH", str(db))
    return db


@pytest.fixture
def fake_service():
    provider = FakeProvider("yahoo", {"TCS": 3650.0, "INFY": 1500.0})
    return MarketDataService([provider], QuoteCache())


def _seed(db_path, *holdings):
    async def _run():
        store = await create_store(StorageConfig(sqlite_path=str(db_path)))
        for symbol, price, qty in holdings:
            await store.add_holding(f"{symbol} Ltd", symbol, "NSE", "IT", price, qty)
        await store.close()

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("quote", "refresh", "status", "serve"):
            assert command in result.output

    def test_unknown_command(self, runner):
        result = runner.invoke(cli, ["nonexistent"])
        assert result.exit_code != 0

    def test_bad_config_reported(self, runner, monkeypatch):
        monkeypatch.setenv("FOLIO_WATCH_SCHEDULER__INTERVAL", "-5")
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 1
        assert "interval" in result.output


# ---------------------------------------------------------------------------
# quote
# ---------------------------------------------------------------------------


class TestQuote:
    def test_table(self, runner, fake_service):
        with patch("folio_watch.market.build_service", return_value=fake_service):
            result = runner.invoke(cli, ["quote", "TCS", "infy"])
        assert result.exit_code == 0, result.output
        assert "3650.00" in result.output
        assert "INFY" in result.output

    def test_json(self, runner, fake_service):
        with patch("folio_watch.market.build_service", return_value=fake_service):
            result = runner.invoke(cli, ["quote", "TCS", "--format", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["TCS"]["price"] == 3650.0
        assert data["TCS"]["source"] == "yahoo"

    def test_unavailable_symbol_exit_code(self, runner, fake_service):
        with patch("folio_watch.market.build_service", return_value=fake_service):
            result = runner.invoke(cli, ["quote", "TCS", "NOPE"])
        assert result.exit_code == 1
        assert "not available" in result.output

    def test_malformed_symbol(self, runner, fake_service):
        with patch("folio_watch.market.build_service", return_value=fake_service):
            result = runner.invoke(cli, ["quote", "BAD;SYM"])
        assert result.exit_code == 2

    def test_requires_symbol(self, runner):
        result = runner.invoke(cli, ["quote"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_revalues_holdings(self, runner, fake_service, isolated_env):
        _seed(isolated_env, ("TCS", 3000.0, 2), ("INFY", 1600.0, 1))
        with patch("folio_watch.market.build_service", return_value=fake_service):
            result = runner.invoke(cli, ["refresh"])
        assert result.exit_code == 0, result.output
        assert "Updated" in result.output
        assert "+1,200.00" in result.output

    def test_empty_portfolio(self, runner, fake_service):
        with patch("folio_watch.market.build_service", return_value=fake_service):
            result = runner.invoke(cli, ["refresh"])
        assert result.exit_code == 0, result.output


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_shows_totals(self, runner, isolated_env):
        _seed(isolated_env, ("TCS", 100.0, 3))
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0, result.output
        assert "Holdings" in result.output
        assert "300.00" in result.output

    def test_probe(self, runner):
        service = MarketDataService(
            [FakeProvider("yahoo"), FakeProvider("google", available=False)], QuoteCache()
        )
        with patch("folio_watch.market.build_service", return_value=service):
            result = runner.invoke(cli, ["status", "--probe"])
        assert result.exit_code == 0, result.output
        assert "up" in result.output
        assert "down" in result.output


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


class TestServe:
    def test_uses_config_defaults(self, runner):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve"])
        assert result.exit_code == 0, result.output
        kwargs = run.call_args.kwargs
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 8000
        assert kwargs["factory"] is True
        assert run.call_args.args[0] == "folio_watch.api.app:create_app"

    def test_overrides(self, runner):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--host", "127.0.0.1", "-p", "9000"])
        assert result.exit_code == 0, result.output
        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.kwargs["host"] == "127.0.0.1"
