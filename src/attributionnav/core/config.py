"""Configuration management for AttributionNav."""

import logging
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from attributionnav.core.exceptions import ConfigurationError, UnknownModelError
from attributionnav.models.attribution import AttributionModelType


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    TEXT = "text"


DEFAULT_CHANNEL_COSTS: dict[str, Decimal] = {
    "paid_search": Decimal("2.50"),  # cost per click
    "display": Decimal("0.50"),  # cost per impression
    "social": Decimal("1.00"),  # cost per engagement
    "email": Decimal("0.10"),  # cost per send
    "organic": Decimal("0"),
    "direct": Decimal("0"),
    "referral": Decimal("0.25"),  # affiliate commission
}


class StorageConfig(BaseModel):
    """Attribution store configuration."""

    connection_string: SecretStr | None = Field(
        default=None,
        description="SQLAlchemy async URL, e.g. postgresql+asyncpg://... "
        "(defaults to a SQLite file under data_dir)",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: SecretStr | None) -> SecretStr | None:
        """Rewrite synchronous driver URLs to their async drivers."""
        if v is None:
            return v
        url = v.get_secret_value()
        if url.startswith("sqlite:///"):
            return SecretStr(url.replace("sqlite:///", "sqlite+aiosqlite:///", 1))
        if url.startswith("postgresql://"):
            return SecretStr(url.replace("postgresql://", "postgresql+asyncpg://", 1))
        return v


class AttributionConfig(BaseModel):
    """Defaults applied to attribution models."""

    default_model: str = Field(default="linear", description="Model used when none given")
    lookback_window_days: int = Field(
        default=30, ge=1, le=365, description="Touchpoint eligibility window in days"
    )
    time_decay_half_life_days: float = Field(
        default=7.0, gt=0.0, description="Half-life for the time-decay model"
    )
    attribution_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Upper bound for a single process_conversion call",
    )

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v: str) -> str:
        """Default model must be a known attribution model type."""
        try:
            return AttributionModelType.parse(v).value
        except UnknownModelError as e:
            raise ValueError(str(e)) from e


class MLConfig(BaseModel):
    """Data-driven model training configuration."""

    min_training_journeys: int = Field(
        default=10, ge=1, description="Minimum journeys required to train"
    )
    default_epochs: int = Field(
        default=50, ge=1, le=10000, description="Solver iterations per training run"
    )
    training_timeout_seconds: float = Field(
        default=300.0, gt=0.0, description="Training timeout in seconds"
    )
    regularization: float = Field(
        default=1.0, gt=0.0, description="Inverse regularization strength (C)"
    )
    model_path: Path | None = Field(
        default=None, description="Where trained parameters are saved and loaded"
    )


class ChannelCostConfig(BaseModel):
    """Per-channel cost-per-action table and campaign multipliers."""

    rates: dict[str, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_CHANNEL_COSTS)
    )
    premium_multiplier: Decimal = Field(default=Decimal("2"), ge=0)
    brand_multiplier: Decimal = Field(default=Decimal("1.5"), ge=0)

    @model_validator(mode="after")
    def validate_rates(self) -> "ChannelCostConfig":
        """Channel costs can never be negative."""
        negative = [channel for channel, rate in self.rates.items() if rate < 0]
        if negative:
            raise ValueError(f"Negative channel cost for: {', '.join(negative)}")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: LogFormat = LogFormat.JSON
    log_file: Path | None = None
    max_log_size_mb: int = Field(default=100, ge=1)
    backup_count: int = Field(default=5, ge=0)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Settings(BaseSettings):
    """Application settings.

    Environment Variables:
        ATN_ENVIRONMENT=development
        ATN_STORAGE__CONNECTION_STRING=postgresql+asyncpg://user:pw@host/db
        ATN_ATTRIBUTION__LOOKBACK_WINDOW_DAYS=30
        ATN_ML__MIN_TRAINING_JOURNEYS=10
        ATN_ML__MODEL_PATH=/var/lib/attributionnav/data_driven.json
        ATN_LOGGING__LEVEL=INFO
        ATN_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="ATN_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".attributionnav")
    debug: bool = False

    storage: StorageConfig = Field(default_factory=StorageConfig)
    attribution: AttributionConfig = Field(default_factory=AttributionConfig)
    ml: MLConfig = Field(default_factory=MLConfig)
    costs: ChannelCostConfig = Field(default_factory=ChannelCostConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def database_url(self) -> str:
        """Async database URL, falling back to a SQLite file in data_dir."""
        if self.storage.connection_string:
            return self.storage.connection_string.get_secret_value()
        return f"sqlite+aiosqlite:///{self.data_dir / 'attributionnav.db'}"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Load settings from the environment, optionally reading a .env file."""
        if env_file:
            load_dotenv(env_file)
        else:
            env_path = Path.cwd() / ".env"
            if env_path.exists():
                load_dotenv(env_path)

        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError(f"Configuration errors: {e}") from e

    def validate_required_settings(self) -> None:
        """Validate settings that depend on the environment."""
        errors = []
        if (
            self.environment == Environment.PRODUCTION
            and self.storage.connection_string is None
        ):
            errors.append("ATN_STORAGE__CONNECTION_STRING is required in production")
        if self.ml.model_path and self.ml.model_path.is_dir():
            errors.append(f"ATN_ML__MODEL_PATH points to a directory: {self.ml.model_path}")

        if errors:
            raise ConfigurationError(f"Configuration errors: {'; '.join(errors)}")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        settings = Settings.from_env()
        settings.validate_required_settings()
        return settings
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        raise
