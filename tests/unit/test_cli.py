"""Tests for the CLI module."""

from __future__ import annotations

import asyncio
import logging
import os

import httpx
import pytest
import respx
from click.testing import CliRunner

from quote_keeper.cli import cli
from quote_keeper.core.config import DEFAULT_BATCH_ENDPOINT
from quote_keeper.history import DurableStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("QUOTE_KEEPER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def token_env(monkeypatch):
    monkeypatch.setenv("QUOTE_KEEPER_SOURCE__TOKEN", "test-token")


@pytest.fixture
def history_db(tmp_path, make_quote):
    """A database file left behind by an earlier run."""
    path = str(tmp_path / "stonks.sqlite")

    async def _seed():
        store = DurableStore(path)
        await store.initialize()
        await store.append([make_quote("fb", p) for p in (121.0, 122.5, 123.45)])
        await store.append([make_quote("goog", 2062.37)])
        await store.close()

    asyncio.run(_seed())
    return path


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("serve", "fetch", "history"):
            assert command in result.output

    def test_config_error_exits_1(self, runner):
        result = runner.invoke(cli, ["fetch"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    @respx.mock
    def test_config_file_from_env(self, runner, tmp_path, monkeypatch):
        config_file = tmp_path / "elsewhere.yml"
        config_file.write_text("source:\n  token: from-file\n")
        monkeypatch.setenv("QUOTE_KEEPER_CONFIG", str(config_file))
        route = respx.get(DEFAULT_BATCH_ENDPOINT).mock(
            return_value=httpx.Response(200, json={})
        )
        result = runner.invoke(cli, ["fetch", "-s", "fb"])

        assert result.exit_code == 0, result.output
        assert route.calls.last.request.url.params["token"] == "from-file"


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    @respx.mock
    def test_prints_quotes(self, runner, token_env):
        route = respx.get(DEFAULT_BATCH_ENDPOINT).mock(
            return_value=httpx.Response(
                200,
                json={
                    "NFLX": {
                        "quote": {
                            "symbol": "NFLX",
                            "latestPrice": 550.25,
                            "latestUpdate": 1617295200123,
                        }
                    }
                },
            )
        )
        result = runner.invoke(cli, ["fetch", "--symbols", "NFLX"])

        assert result.exit_code == 0, result.output
        assert "nflx" in result.output
        assert "550.25" in result.output
        assert route.calls.last.request.url.params["symbols"] == "nflx"

    @respx.mock
    def test_defaults_to_configured_symbols(self, runner, token_env, monkeypatch):
        monkeypatch.setenv("QUOTE_KEEPER_POLL__SYMBOLS", "fb,goog")
        route = respx.get(DEFAULT_BATCH_ENDPOINT).mock(
            return_value=httpx.Response(200, json={})
        )
        result = runner.invoke(cli, ["fetch"])

        assert result.exit_code == 0, result.output
        assert route.calls.last.request.url.params["symbols"] == "fb,goog"

    @respx.mock
    def test_source_failure_exits_1(self, runner, token_env):
        respx.get(DEFAULT_BATCH_ENDPOINT).mock(
            return_value=httpx.Response(503, text="maintenance")
        )
        result = runner.invoke(cli, ["fetch", "-s", "fb"])

        assert result.exit_code == 1
        assert "Fetch failed" in result.output

    @respx.mock
    def test_verbose_sets_debug(self, runner, token_env):
        respx.get(DEFAULT_BATCH_ENDPOINT).mock(return_value=httpx.Response(200, json={}))
        result = runner.invoke(cli, ["-v", "fetch", "-s", "fb"])

        assert result.exit_code == 0, result.output
        assert logging.getLogger("quote_keeper").level == logging.DEBUG


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


class TestHistory:
    def test_shows_archived_quotes(self, runner, history_db):
        result = runner.invoke(cli, ["history", "fb", "--last", "2", "--db", history_db])

        assert result.exit_code == 0, result.output
        assert "123.45" in result.output
        assert "122.50" in result.output
        assert "121.00" not in result.output

    def test_defaults_to_faang(self, runner, history_db):
        result = runner.invoke(cli, ["history", "--db", history_db])

        assert result.exit_code == 0, result.output
        assert "2,062.37" in result.output

    def test_does_not_reset_database(self, runner, history_db):
        runner.invoke(cli, ["history", "fb", "--db", history_db])
        result = runner.invoke(cli, ["history", "fb", "--db", history_db])
        assert result.exit_code == 0
        assert "123.45" in result.output

    def test_unknown_symbol_exits_1(self, runner, history_db):
        result = runner.invoke(cli, ["history", "tsla", "--db", history_db])
        assert result.exit_code == 1
        assert "no quotes found" in result.output

    def test_missing_db(self, runner, tmp_path):
        result = runner.invoke(cli, ["history", "--db", str(tmp_path / "nope.sqlite")])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


class TestServe:
    def test_runs_uvicorn_with_config(self, runner, token_env, monkeypatch):
        calls = {}

        def fake_run(app, host, port, log_config):
            calls.update(app=app, host=host, port=port)

        monkeypatch.setattr("uvicorn.run", fake_run)
        result = runner.invoke(cli, ["serve"])

        assert result.exit_code == 0, result.output
        assert calls["host"] == "0.0.0.0"
        assert calls["port"] == 18081
        assert calls["app"].title == "quote-keeper API"

    def test_host_port_overrides(self, runner, token_env, monkeypatch):
        calls = {}
        monkeypatch.setattr(
            "uvicorn.run",
            lambda app, host, port, log_config: calls.update(host=host, port=port),
        )
        result = runner.invoke(cli, ["serve", "--host", "127.0.0.1", "-p", "9000"])

        assert result.exit_code == 0, result.output
        assert calls == {"host": "127.0.0.1", "port": 9000}
