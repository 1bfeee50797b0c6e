"""CLI integration tests using Click's CliRunner."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from recbot.cli import cli
from recbot.storage.database import Database
from recbot.storage.repository import Repository

from conftest import KEY_1, KEY_2


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_args(tmp_path, seeded_store, monkeypatch):
    """Global options pointing the CLI at a temp database and the seeded store."""
    monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "0")
    return [
        "--db", str(tmp_path / "cli.db"),
        "--storage", "local",
        "--store-root", str(tmp_path / "bucket"),
    ]


def indexed_paths(tmp_path) -> list[str]:
    with Database(tmp_path / "cli.db") as db:
        return Repository(db).get_paths_in_date_range("2000-01-01", "2100-01-01")


class TestHelp:
    def test_main_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "recbot" in result.output
        for command in ("serve", "sync", "prune", "stats", "parse", "query"):
            assert command in result.output


class TestParse:
    def test_parse_key(self, runner):
        result = runner.invoke(cli, ["parse", KEY_1])
        assert result.exit_code == 0
        assert "Parsed Metadata" in result.output
        assert "durationMs" in result.output

    def test_parse_failure(self, runner):
        result = runner.invoke(cli, ["parse", "recordings/bad/x.wav"])
        assert result.exit_code == 0
        assert "Could not parse" in result.output


class TestSync:
    def test_full_sync(self, runner, cli_args, tmp_path):
        result = runner.invoke(cli, cli_args + ["sync"])
        assert result.exit_code == 0, result.output
        assert "Done!" in result.output
        assert len(indexed_paths(tmp_path)) == 3

    def test_range_sync(self, runner, cli_args, tmp_path):
        result = runner.invoke(cli, cli_args + ["sync", "--start", "9_26_2025", "--end", "2025-09-26"])
        assert result.exit_code == 0, result.output
        assert sorted(indexed_paths(tmp_path)) == sorted([KEY_1, KEY_2])

    def test_half_range_is_an_error(self, runner, cli_args):
        result = runner.invoke(cli, cli_args + ["sync", "--start", "9_26_2025"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_s3_without_bucket_is_an_error(self, runner, tmp_path, monkeypatch):
        monkeypatch.delenv("AWS_BUCKET", raising=False)
        result = runner.invoke(cli, ["--db", str(tmp_path / "x.db"), "--storage", "s3", "sync"])
        assert result.exit_code == 1
        assert "AWS_BUCKET" in result.output

    def test_prune(self, runner, cli_args, tmp_path):
        runner.invoke(cli, cli_args + ["sync"])
        (tmp_path / "bucket" / KEY_1).unlink()
        result = runner.invoke(cli, cli_args + ["prune", "--start", "9_26_2025", "--end", "9_27_2025"])
        assert result.exit_code == 0, result.output
        assert "Pruned" in result.output
        assert KEY_1 not in indexed_paths(tmp_path)


class TestStatsAndQuery:
    def test_stats(self, runner, cli_args):
        result = runner.invoke(cli, cli_args + ["stats"])
        assert result.exit_code == 0
        assert "Index Statistics" in result.output

    def test_query_empty(self, runner, cli_args):
        result = runner.invoke(cli, cli_args + ["query"])
        assert result.exit_code == 0
        assert "No recordings found" in result.output

    def test_query_table(self, runner, cli_args):
        runner.invoke(cli, cli_args + ["sync"])
        result = runner.invoke(cli, cli_args + ["query", "--email", "agent"])
        assert result.exit_code == 0
        assert "Recordings" in result.output
        assert "Showing" in result.output


class TestServe:
    def test_serve_runs_uvicorn(self, runner, cli_args):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, cli_args + ["serve", "--port", "9000"])
        assert result.exit_code == 0, result.output
        run.assert_called_once()
        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.kwargs["host"] == "127.0.0.1"
