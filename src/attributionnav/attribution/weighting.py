"""Static weighting models that split a conversion across its touchpoints."""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal, InvalidOperation

from attributionnav.core.exceptions import AttributionContractError
from attributionnav.models.attribution import (
    AttributionModel,
    AttributionModelType,
    AttributionResult,
)
from attributionnav.models.base import ensure_utc
from attributionnav.models.events import Touchpoint

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def _to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise AttributionContractError(f"Invalid conversion value: {value!r}") from e


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from ``earlier`` to ``later``."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / SECONDS_PER_DAY


class WeightingModel(ABC):
    """Base class for attribution weighting models.

    ``compute`` owns the shared contract: input ordering and value checks,
    the empty-journey result and result assembly. Subclasses only produce
    one raw weight per touchpoint.
    """

    model_type: AttributionModelType

    def __init__(self, model: AttributionModel | None = None):
        self.model = model or AttributionModel.default(self.model_type)

    def compute(
        self,
        touchpoints: Sequence[Touchpoint],
        conversion_value: Decimal | int | float | str,
        *,
        conversion_id: str,
        user_id: str | None = None,
        converted_at: datetime | None = None,
        currency: str = "USD",
    ) -> AttributionResult:
        """Assign credit to ``touchpoints`` for a single conversion.

        Args:
            touchpoints: Journey sorted ascending by timestamp
            conversion_value: Non-negative monetary value of the conversion
            conversion_id: Conversion being attributed
            user_id: Owning user, defaults to the first touchpoint's user
            converted_at: Conversion time, defaults to the last touchpoint
            currency: ISO currency code of the value

        Returns:
            AttributionResult whose credits sum to 1.0 unless it is empty

        Raises:
            AttributionContractError: If the input breaks the contract
        """
        value = _to_decimal(conversion_value)
        if value.is_nan() or value < 0:
            raise AttributionContractError(
                f"Conversion value must be non-negative, got {value}"
            )

        ordered = list(touchpoints)
        for previous, current in zip(ordered, ordered[1:]):
            if current.timestamp < previous.timestamp:
                raise AttributionContractError(
                    "Touchpoints must be sorted ascending by timestamp "
                    f"({current.touchpoint_id} precedes {previous.touchpoint_id})"
                )

        if user_id is None and ordered:
            user_id = ordered[0].user_id

        if not ordered:
            return self._build_result([], value, conversion_id, user_id, currency)

        reference_time = ensure_utc(converted_at or ordered[-1].timestamp)
        weights = self.weights(ordered, reference_time)
        credits = self._normalize(weights)
        credited = [tp.with_credit(credit) for tp, credit in zip(ordered, credits)]

        logger.debug(
            f"{self.model_type.value} attribution for {conversion_id}: "
            f"{len(credited)} touchpoints"
        )
        return self._build_result(credited, value, conversion_id, user_id, currency)

    @abstractmethod
    def weights(
        self, touchpoints: list[Touchpoint], converted_at: datetime
    ) -> list[float]:
        """Raw, non-negative weight for each touchpoint of a non-empty journey."""
        pass

    @staticmethod
    def _normalize(weights: list[float]) -> list[float]:
        total = math.fsum(weights)
        if not math.isfinite(total) or total <= 0:
            raise AttributionContractError("Model produced no usable weights")
        return [weight / total for weight in weights]

    def _build_result(
        self,
        touchpoints: list[Touchpoint],
        value: Decimal,
        conversion_id: str,
        user_id: str | None,
        currency: str,
    ) -> AttributionResult:
        return AttributionResult(
            conversion_id=conversion_id,
            user_id=user_id,
            conversion_value=value,
            currency=currency,
            model=self.model,
            touchpoints=touchpoints,
        )


class FirstTouchModel(WeightingModel):
    """All credit to the earliest touchpoint."""

    model_type = AttributionModelType.FIRST_TOUCH

    def weights(self, touchpoints, converted_at):
        return [1.0] + [0.0] * (len(touchpoints) - 1)


class LastTouchModel(WeightingModel):
    """All credit to the most recent touchpoint."""

    model_type = AttributionModelType.LAST_TOUCH

    def weights(self, touchpoints, converted_at):
        return [0.0] * (len(touchpoints) - 1) + [1.0]


class LinearModel(WeightingModel):
    """Equal credit to every touchpoint."""

    model_type = AttributionModelType.LINEAR

    def weights(self, touchpoints, converted_at):
        return [1.0] * len(touchpoints)


class TimeDecayModel(WeightingModel):
    """Credit halves for every half-life between touch and conversion."""

    model_type = AttributionModelType.TIME_DECAY

    @property
    def half_life_days(self) -> float:
        return self.model.time_decay_half_life_days

    def weights(self, touchpoints, converted_at):
        weights = []
        for touch in touchpoints:
            days_before_conversion = days_between(touch.timestamp, converted_at)
            # Exponential decay: weight = 2^(-days_before_conversion / half_life)
            weights.append(math.pow(2, -days_before_conversion / self.half_life_days))
        return weights


class PositionBasedModel(WeightingModel):
    """U-shaped 40/20/40 split between first, middle and last touches."""

    model_type = AttributionModelType.POSITION_BASED

    FIRST_WEIGHT = 0.4
    LAST_WEIGHT = 0.4

    def weights(self, touchpoints, converted_at):
        count = len(touchpoints)
        if count == 1:
            return [1.0]
        if count == 2:
            return [0.5, 0.5]

        middle_weight = 1.0 - self.FIRST_WEIGHT - self.LAST_WEIGHT
        weight_per_middle = middle_weight / (count - 2)
        return [self.FIRST_WEIGHT] + [weight_per_middle] * (count - 2) + [self.LAST_WEIGHT]
