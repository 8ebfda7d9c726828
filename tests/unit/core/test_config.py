"""Tests for configuration management."""

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from attributionnav.core.config import (
    AttributionConfig,
    ChannelCostConfig,
    Environment,
    LogFormat,
    LoggingConfig,
    Settings,
    StorageConfig,
)
from attributionnav.core.exceptions import ConfigurationError


class TestSettingsDefaults:
    def test_defaults(self, tmp_path):
        settings = Settings(data_dir=tmp_path)

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.attribution.default_model == "linear"
        assert settings.attribution.lookback_window_days == 30
        assert settings.attribution.time_decay_half_life_days == 7.0
        assert settings.ml.min_training_journeys == 10
        assert settings.logging.format == LogFormat.JSON
        assert settings.costs.rates["paid_search"] == Decimal("2.50")

    def test_database_url_falls_back_to_sqlite(self, tmp_path):
        settings = Settings(data_dir=tmp_path)

        assert settings.database_url == f"sqlite+aiosqlite:///{tmp_path / 'attributionnav.db'}"


class TestEnvironmentVariables:
    """Test ATN_ prefixed and nested environment variables."""

    def test_nested_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ATN_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ATN_ATTRIBUTION__LOOKBACK_WINDOW_DAYS", "14")
        monkeypatch.setenv("ATN_ATTRIBUTION__DEFAULT_MODEL", "TIME_DECAY")
        monkeypatch.setenv("ATN_LOGGING__LEVEL", "debug")
        monkeypatch.setenv("ATN_ML__MIN_TRAINING_JOURNEYS", "3")

        settings = Settings()

        assert settings.data_dir == tmp_path
        assert settings.attribution.lookback_window_days == 14
        assert settings.attribution.default_model == "time_decay"
        assert settings.logging.level == "DEBUG"
        assert settings.ml.min_training_journeys == 3

    def test_from_env_reads_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / "test.env"
        env_file.write_text(
            "ATN_ENVIRONMENT=staging\nATN_ATTRIBUTION__TIME_DECAY_HALF_LIFE_DAYS=3.5\n"
        )
        # load_dotenv writes into os.environ; register the keys for cleanup
        monkeypatch.setenv("ATN_ENVIRONMENT", "")
        monkeypatch.delenv("ATN_ENVIRONMENT")
        monkeypatch.setenv("ATN_ATTRIBUTION__TIME_DECAY_HALF_LIFE_DAYS", "")
        monkeypatch.delenv("ATN_ATTRIBUTION__TIME_DECAY_HALF_LIFE_DAYS")

        settings = Settings.from_env(env_file)

        assert settings.environment == Environment.STAGING
        assert settings.attribution.time_decay_half_life_days == 3.5

    def test_from_env_wraps_validation_errors(self, monkeypatch):
        monkeypatch.setenv("ATN_ATTRIBUTION__LOOKBACK_WINDOW_DAYS", "0")

        with pytest.raises(ConfigurationError, match="Configuration errors"):
            Settings.from_env()


class TestValidation:
    """Test field validators."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("sqlite:///data/atn.db", "sqlite+aiosqlite:///data/atn.db"),
            ("postgresql://u:p@db/atn", "postgresql+asyncpg://u:p@db/atn"),
            ("postgresql+asyncpg://u:p@db/atn", "postgresql+asyncpg://u:p@db/atn"),
        ],
    )
    def test_connection_string_uses_async_driver(self, url, expected):
        config = StorageConfig(connection_string=url)

        assert config.connection_string.get_secret_value() == expected

    def test_unknown_default_model(self):
        with pytest.raises(ValidationError, match="bogus"):
            AttributionConfig(default_model="bogus")

    @pytest.mark.parametrize("days", [0, 366])
    def test_lookback_bounds(self, days):
        with pytest.raises(ValidationError):
            AttributionConfig(lookback_window_days=days)

    def test_negative_channel_cost(self):
        with pytest.raises(ValidationError, match="email"):
            ChannelCostConfig(rates={"email": Decimal("-0.10")})

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="loud")


class TestRequiredSettings:
    def test_production_requires_connection_string(self, tmp_path):
        settings = Settings(data_dir=tmp_path, environment="production")

        with pytest.raises(ConfigurationError, match="CONNECTION_STRING"):
            settings.validate_required_settings()

    def test_model_path_must_not_be_directory(self, tmp_path):
        settings = Settings(data_dir=tmp_path, ml={"model_path": tmp_path})

        with pytest.raises(ConfigurationError, match="MODEL_PATH"):
            settings.validate_required_settings()

    def test_valid_development_settings(self, tmp_path):
        settings = Settings(
            data_dir=tmp_path, ml={"model_path": Path(tmp_path) / "model.json"}
        )

        settings.validate_required_settings()
