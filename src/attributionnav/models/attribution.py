"""Attribution model configuration and results."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import Field, field_validator, model_validator

from attributionnav.core.exceptions import UnknownModelError
from attributionnav.models.base import FrozenATNModel, ensure_utc, utc_now
from attributionnav.models.events import Touchpoint

# Credits of a non-empty result must sum to 1.0 within this tolerance
CREDIT_TOLERANCE = 1e-9


class AttributionModelType(str, Enum):
    """The closed set of attribution model kinds."""

    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"
    LINEAR = "linear"
    TIME_DECAY = "time_decay"
    POSITION_BASED = "position_based"  # 40/20/40
    DATA_DRIVEN = "data_driven"

    @classmethod
    def parse(cls, value: "str | AttributionModelType") -> "AttributionModelType":
        """Resolve a model type, raising UnknownModelError for anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownModelError(str(value)) from None


class AttributionModel(FrozenATNModel):
    """Named, typed configuration for one attribution model."""

    model_id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1, description="Human-readable model name")
    model_type: AttributionModelType = Field(..., description="Attribution model kind")
    lookback_window: int = Field(
        default=30, ge=1, le=365, description="Eligibility window in days"
    )
    time_decay_half_life_days: float = Field(
        default=7.0, gt=0.0, description="Half-life for the time-decay model"
    )

    @field_validator("model_type", mode="before")
    @classmethod
    def parse_model_type(cls, v):
        return AttributionModelType.parse(v)

    @classmethod
    def default(
        cls,
        model_type: "str | AttributionModelType",
        lookback_window: int = 30,
        time_decay_half_life_days: float = 7.0,
    ) -> "AttributionModel":
        """Build the standard configuration for a model kind."""
        kind = AttributionModelType.parse(model_type)
        return cls(
            model_id=f"model_{kind.value}",
            name=kind.value.replace("_", " ").upper(),
            model_type=kind,
            lookback_window=lookback_window,
            time_decay_half_life_days=time_decay_half_life_days,
        )


class AttributionResult(FrozenATNModel):
    """Output of applying one model to one conversion.

    Results are append-only: recomputing produces a new ``result_id``.
    """

    result_id: str = Field(default_factory=lambda: str(uuid4()))
    conversion_id: str = Field(..., min_length=1)
    user_id: str | None = None
    conversion_value: Decimal = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    model: AttributionModel
    touchpoints: list[Touchpoint] = Field(default_factory=list)
    calculated_at: datetime = Field(default_factory=utc_now)

    @field_validator("calculated_at")
    @classmethod
    def normalize_calculated_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_credits(self) -> "AttributionResult":
        """Credits must be present and sum to 1.0 for a non-empty result."""
        if not self.touchpoints:
            return self
        missing = [tp.touchpoint_id for tp in self.touchpoints if tp.credit is None]
        if missing:
            raise ValueError(f"Touchpoints without credit: {', '.join(missing)}")
        total = sum(tp.credit for tp in self.touchpoints)
        if abs(total - 1.0) > CREDIT_TOLERANCE:
            raise ValueError(f"Credits must sum to 1.0, got {total!r}")
        return self

    @property
    def model_type(self) -> AttributionModelType:
        return AttributionModelType.parse(self.model.model_type)

    @property
    def total_credit(self) -> float:
        return sum(tp.credit or 0.0 for tp in self.touchpoints)

    def channel_path(self) -> list[str]:
        """Channels of the credited touchpoints in journey order."""
        return [tp.channel for tp in self.touchpoints]

    def channel_credit(self) -> dict[str, float]:
        """Sum of credit per channel."""
        credits: dict[str, float] = {}
        for tp in self.touchpoints:
            credits[tp.channel] = credits.get(tp.channel, 0.0) + (tp.credit or 0.0)
        return credits
