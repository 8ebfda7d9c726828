"""Abstract persistence interface used by the attribution engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from attributionnav.models.attribution import AttributionModelType, AttributionResult
from attributionnav.models.events import ConversionEvent, Touchpoint
from attributionnav.models.metrics import (
    ChannelPerformance,
    ConversionPath,
    ModelPerformance,
)
from attributionnav.models.training import TrainingJourney


class AttributionRepository(ABC):
    """Durable store for touchpoints, conversions and attribution results."""

    @abstractmethod
    async def save_touchpoint(self, touchpoint: Touchpoint) -> str:
        """Insert or update a touchpoint; idempotent on its identifier."""
        pass

    @abstractmethod
    async def get_touchpoints_by_user(
        self,
        user_id: str,
        lookback_days: int,
        as_of: datetime | None = None,
    ) -> list[Touchpoint]:
        """Touchpoints of a user in ``[as_of - lookback_days, as_of]``, oldest first."""
        pass

    @abstractmethod
    async def save_conversion(self, conversion: ConversionEvent) -> str:
        """Record a conversion event; idempotent on its identifier."""
        pass

    @abstractmethod
    async def get_conversion(self, conversion_id: str) -> ConversionEvent | None:
        """Get a conversion by identifier."""
        pass

    @abstractmethod
    async def get_conversions_by_user(self, user_id: str) -> list[ConversionEvent]:
        """All conversions of a user, oldest first."""
        pass

    @abstractmethod
    async def save_attribution_result(self, result: AttributionResult) -> str:
        """Persist a result and all of its credits atomically."""
        pass

    @abstractmethod
    async def get_attribution_results(
        self,
        start_date: datetime,
        end_date: datetime,
        model_type: AttributionModelType | str | None = None,
    ) -> list[AttributionResult]:
        """Stored results calculated within the date range."""
        pass

    @abstractmethod
    async def get_training_data(
        self,
        start_date: datetime,
        end_date: datetime,
        lookback_days: int = 30,
    ) -> list[TrainingJourney]:
        """Per-user journeys labelled by whether a conversion followed."""
        pass

    @abstractmethod
    async def get_channel_performance(
        self, start_date: datetime, end_date: datetime
    ) -> dict[str, ChannelPerformance]:
        """Credit and value per channel across stored results."""
        pass

    @abstractmethod
    async def get_common_paths(
        self, start_date: datetime, end_date: datetime, limit: int = 10
    ) -> list[ConversionPath]:
        """Most frequent channel sequences among stored results."""
        pass

    @abstractmethod
    async def get_model_performance(
        self, start_date: datetime, end_date: datetime
    ) -> list[ModelPerformance]:
        """Result counts and value per model type."""
        pass
