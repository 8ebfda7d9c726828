"""Training journeys and trained data-driven parameters."""

from datetime import datetime

from pydantic import Field, model_validator

from attributionnav.models.base import FrozenATNModel, utc_now
from attributionnav.models.events import Touchpoint


class TrainingJourney(FrozenATNModel):
    """One user's touchpoint sequence and whether it led to a conversion."""

    touchpoints: list[Touchpoint] = Field(default_factory=list)
    converted: bool = False
    conversion_timestamp: datetime | None = None

    @property
    def reference_time(self) -> datetime | None:
        """Moment that per-touchpoint recency is measured against."""
        if self.conversion_timestamp is not None:
            return self.conversion_timestamp
        if self.touchpoints:
            return self.touchpoints[-1].timestamp
        return None


class TrainingProvenance(FrozenATNModel):
    """Where a set of trained parameters came from."""

    period_start: datetime
    period_end: datetime
    journeys: int = Field(..., ge=0)
    converted_journeys: int = Field(..., ge=0)
    non_converted_journeys: int = Field(..., ge=0)
    sample_rows: int = Field(..., ge=0)
    epochs: int = Field(..., ge=1)
    training_accuracy: float | None = Field(None, ge=0.0, le=1.0)


class DataDrivenParameters(FrozenATNModel):
    """Immutable trained state of the data-driven model.

    A training run always builds a complete new instance; nothing ever
    mutates an instance that inference may be reading.
    """

    version: int = Field(..., ge=1)
    feature_names: tuple[str, ...]
    coefficients: tuple[float, ...]
    intercept: float
    feature_means: tuple[float, ...]
    feature_scales: tuple[float, ...]
    provenance: TrainingProvenance
    trained_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def validate_shapes(self) -> "DataDrivenParameters":
        width = len(self.feature_names)
        if not (
            len(self.coefficients) == len(self.feature_means) == len(self.feature_scales) == width
        ):
            raise ValueError("Parameter vectors must match the feature count")
        if any(scale <= 0 for scale in self.feature_scales):
            raise ValueError("Feature scales must be positive")
        return self
