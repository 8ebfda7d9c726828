"""Tests for the attributionnav command-line interface."""

import asyncio
import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from attributionnav import __version__
from attributionnav.cli import cli
from attributionnav.core.config import Settings
from attributionnav.storage.sql_repository import SQLAttributionRepository


@pytest.fixture
def cli_runner():
    """Create CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Point the CLI at a temporary data directory."""
    monkeypatch.setenv("ATN_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("ATN_LOGGING__LEVEL", "WARNING")
    with patch("attributionnav.cli.configure_logging"):
        yield tmp_path


def seed(data_dir, touchpoints, conversion):
    async def _seed():
        repository = SQLAttributionRepository(Settings(data_dir=data_dir))
        try:
            await repository.create_schema()
            for touchpoint in touchpoints:
                await repository.save_touchpoint(touchpoint)
            await repository.save_conversion(conversion)
        finally:
            await repository.dispose()

    asyncio.run(_seed())


class TestCLI:
    """Test top-level options and commands."""

    def test_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("init-db", "train", "insights", "compare"):
            assert command in result.output

    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_db_creates_database(self, cli_runner, data_dir):
        result = cli_runner.invoke(cli, ["init-db"])

        assert result.exit_code == 0, result.output
        assert "Schema ready" in result.output
        assert (data_dir / "attributionnav.db").exists()

    def test_invalid_configuration(self, cli_runner, data_dir, monkeypatch):
        monkeypatch.setenv("ATN_ATTRIBUTION__DEFAULT_MODEL", "markov")

        result = cli_runner.invoke(cli, ["init-db"])

        assert result.exit_code == 1
        assert "Configuration errors" in result.output


class TestCompareCommand:
    def test_unknown_conversion(self, cli_runner, data_dir):
        result = cli_runner.invoke(cli, ["compare", "missing"])

        assert result.exit_code == 1
        assert "Conversion not found: missing" in result.output

    def test_unknown_model(self, cli_runner, data_dir, sample_journey, sample_conversion):
        seed(data_dir, sample_journey, sample_conversion)

        result = cli_runner.invoke(cli, ["compare", "conv_1", "-m", "markov"])

        assert result.exit_code == 1
        assert "Unknown attribution model: markov" in result.output

    def test_compares_models(self, cli_runner, data_dir, sample_journey, sample_conversion):
        seed(data_dir, sample_journey, sample_conversion)

        result = cli_runner.invoke(
            cli, ["compare", "conv_1", "-m", "first_touch", "-m", "last_touch"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert set(payload) == {"first_touch", "last_touch"}
        assert payload["first_touch"]["credits"]["tp_a"]["credit"] == 1.0
        assert payload["last_touch"]["credits"]["tp_c"]["credit"] == 1.0
        assert payload["last_touch"]["credits"]["tp_a"]["credit"] == 0.0


class TestReportingCommands:
    def test_insights_on_empty_store(self, cli_runner, data_dir):
        result = cli_runner.invoke(
            cli, ["insights", "--start", "2025-01-01", "--end", "2025-02-01"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["channel_performance"] == {}
        assert payload["top_paths"] == []
        assert payload["channel_roi"] == []

    def test_train_without_data(self, cli_runner, data_dir):
        result = cli_runner.invoke(
            cli, ["train", "--start", "2025-01-01", "--end", "2025-02-01"]
        )

        assert result.exit_code == 1
        assert "Need at least 10 journeys, found 0" in result.output

    def test_train_requires_dates(self, cli_runner, data_dir):
        result = cli_runner.invoke(cli, ["train", "--start", "2025-01-01"])

        assert result.exit_code == 2
