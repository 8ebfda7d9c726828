"""Attribution engine coordinating repository, weighting models and ROI."""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal

from attributionnav.attribution.calculator import AttributionCalculator
from attributionnav.attribution.data_driven import ParameterStore, train_parameters
from attributionnav.attribution.factory import create_weighting_model
from attributionnav.attribution.weighting import WeightingModel
from attributionnav.core.config import Settings, get_settings
from attributionnav.core.exceptions import (
    AttributionNavError,
    AttributionTimeoutError,
    ConversionNotFoundError,
    InsufficientTrainingDataError,
    ModelTrainingError,
)
from attributionnav.logging.context import LogContext
from attributionnav.models.attribution import (
    AttributionModel,
    AttributionModelType,
    AttributionResult,
)
from attributionnav.models.events import ConversionEvent, Touchpoint
from attributionnav.models.metrics import (
    AttributionInsights,
    ChannelPerformance,
    ChannelSummary,
    PathSample,
)
from attributionnav.models.training import DataDrivenParameters
from attributionnav.storage.repository import AttributionRepository

logger = logging.getLogger(__name__)

DEFAULT_COMPARISON_MODELS = (
    AttributionModelType.FIRST_TOUCH,
    AttributionModelType.LAST_TOUCH,
    AttributionModelType.LINEAR,
)


class AttributionEngine:
    """Multi-touch attribution over a touchpoint repository.

    Every call is independent; the only state shared between calls is the
    data-driven ``ParameterStore`` and the repository itself.
    """

    def __init__(
        self,
        repository: AttributionRepository,
        calculator: AttributionCalculator | None = None,
        settings: Settings | None = None,
        parameter_store: ParameterStore | None = None,
    ):
        """Initialize the attribution engine.

        Args:
            repository: Storage for touchpoints, conversions and results
            calculator: ROI calculator, built from settings when omitted
            settings: Application settings, defaults to ``get_settings()``
            parameter_store: Trained data-driven state; loaded from
                ``ml.model_path`` when omitted and that file exists
        """
        self.settings = settings or get_settings()
        self.repository = repository
        self.calculator = calculator or AttributionCalculator(self.settings.costs)

        if parameter_store is None:
            model_path = self.settings.ml.model_path
            parameter_store = ParameterStore.load(model_path) if model_path else ParameterStore()
        self.parameter_store = parameter_store

    def model_config(self, model_type: AttributionModelType | str) -> AttributionModel:
        """Standard configuration for ``model_type`` with configured defaults."""
        return AttributionModel.default(
            model_type,
            lookback_window=self.settings.attribution.lookback_window_days,
            time_decay_half_life_days=self.settings.attribution.time_decay_half_life_days,
        )

    def get_weighting_model(
        self, model_type: AttributionModelType | str
    ) -> WeightingModel:
        """Weighting model for ``model_type``; raises UnknownModelError."""
        return create_weighting_model(self.model_config(model_type), self.parameter_store)

    async def track_touchpoint(self, touchpoint: Touchpoint) -> str:
        """Persist a touchpoint; re-submitting the same id never duplicates it."""
        try:
            touchpoint_id = await self.repository.save_touchpoint(touchpoint)
            logger.debug(
                f"Touchpoint tracked: {touchpoint.touchpoint_id} "
                f"(user {touchpoint.user_id}, channel {touchpoint.channel})"
            )
            return touchpoint_id
        except AttributionNavError as e:
            logger.error(f"Failed to track touchpoint {touchpoint.touchpoint_id}: {e}")
            raise

    async def record_conversion(self, conversion: ConversionEvent) -> str:
        """Persist a conversion event."""
        try:
            return await self.repository.save_conversion(conversion)
        except AttributionNavError as e:
            logger.error(f"Failed to record conversion {conversion.conversion_id}: {e}")
            raise

    async def process_conversion(
        self,
        conversion: ConversionEvent,
        model_type: AttributionModelType | str | None = None,
    ) -> AttributionResult:
        """Attribute a conversion to the user's touchpoints and persist the result.

        Touchpoints are those within the model's lookback window ending at
        the conversion timestamp. A user without touchpoints yields a result
        with an empty touchpoint list.

        Args:
            conversion: Conversion to attribute
            model_type: Model kind, defaults to ``attribution.default_model``

        Returns:
            The persisted AttributionResult

        Raises:
            UnknownModelError: If ``model_type`` is not a known kind
            ModelNotTrainedError: For data-driven before any training
            AttributionTimeoutError: If the call exceeds its time budget
            RepositoryError: If persistence fails
        """
        weighting = self.get_weighting_model(
            model_type or self.settings.attribution.default_model
        )
        timeout = self.settings.attribution.attribution_timeout_seconds

        with LogContext(
            conversion_id=conversion.conversion_id,
            user_id=conversion.user_id,
            model_type=weighting.model_type.value,
        ):
            try:
                return await asyncio.wait_for(
                    self._attribute(conversion, weighting), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.error(
                    f"Attribution of {conversion.conversion_id} timed out after {timeout}s"
                )
                raise AttributionTimeoutError("process_conversion", timeout) from None
            except AttributionNavError as e:
                logger.error(f"Failed to process conversion {conversion.conversion_id}: {e}")
                raise

    async def _attribute(
        self, conversion: ConversionEvent, weighting: WeightingModel
    ) -> AttributionResult:
        await self.repository.save_conversion(conversion)
        touchpoints = await self.repository.get_touchpoints_by_user(
            conversion.user_id,
            weighting.model.lookback_window,
            as_of=conversion.timestamp,
        )
        if not touchpoints:
            logger.warning(
                f"No touchpoints found for conversion {conversion.conversion_id}"
            )

        result = weighting.compute(
            touchpoints,
            conversion.conversion_value,
            conversion_id=conversion.conversion_id,
            user_id=conversion.user_id,
            converted_at=conversion.timestamp,
            currency=conversion.currency,
        )
        await self.repository.save_attribution_result(result)

        roi_metrics = self.calculator.calculate_roi(result)
        total_cost = sum((m.cost for m in roi_metrics), Decimal("0"))
        logger.info(
            f"Conversion attributed: {len(result.touchpoints)} touchpoints, "
            f"value {result.conversion_value} {result.currency}, cost {total_cost}"
        )
        return result

    async def analyze_journey(
        self,
        user_id: str,
        model_types: Sequence[AttributionModelType | str] = (AttributionModelType.LINEAR,),
    ) -> dict[str, list[AttributionResult]]:
        """Attribute every conversion of a user under every requested model."""
        kinds = [AttributionModelType.parse(m) for m in model_types]
        with LogContext(user_id=user_id):
            conversions = await self.repository.get_conversions_by_user(user_id)
            logger.debug(
                f"Analyzing journey of {user_id}: {len(conversions)} conversions, "
                f"models {[k.value for k in kinds]}"
            )

            results: dict[str, list[AttributionResult]] = {}
            for kind in kinds:
                results[kind.value] = [
                    await self.process_conversion(conversion, kind)
                    for conversion in conversions
                ]
            return results

    async def compare_models(
        self,
        conversion_id: str,
        model_types: Sequence[AttributionModelType | str] = DEFAULT_COMPARISON_MODELS,
    ) -> dict[str, AttributionResult]:
        """Attribute one stored conversion under several models."""
        kinds = [AttributionModelType.parse(m) for m in model_types]
        with LogContext(conversion_id=conversion_id):
            conversion = await self.repository.get_conversion(conversion_id)
            if conversion is None:
                logger.error(f"Conversion not found: {conversion_id}")
                raise ConversionNotFoundError(conversion_id)

            results = await asyncio.gather(
                *(self.process_conversion(conversion, kind) for kind in kinds)
            )
            logger.info(
                f"Model comparison completed for {conversion_id}: "
                f"{[k.value for k in kinds]}"
            )
            return {kind.value: result for kind, result in zip(kinds, results)}

    async def train_data_driven_model(
        self,
        start_date: datetime,
        end_date: datetime,
        epochs: int | None = None,
    ) -> DataDrivenParameters:
        """Fit the data-driven model on journeys in the period and activate it.

        The active parameters change only when training succeeds.

        Raises:
            InsufficientTrainingDataError: Below ``ml.min_training_journeys``
                or without both outcomes
            AttributionTimeoutError: If training exceeds its time budget
            ModelTrainingError: If fitting fails or the parameters cannot be
                saved; the active parameters stay unchanged
        """
        epochs = epochs or self.settings.ml.default_epochs
        timeout = self.settings.ml.training_timeout_seconds
        required = self.settings.ml.min_training_journeys

        with LogContext(model_type=AttributionModelType.DATA_DRIVEN.value):
            try:
                journeys = await self.repository.get_training_data(
                    start_date,
                    end_date,
                    lookback_days=self.settings.attribution.lookback_window_days,
                )
                usable = [journey for journey in journeys if journey.touchpoints]
                logger.info(
                    f"Training data-driven model on {len(usable)} journeys "
                    f"from {start_date.isoformat()} to {end_date.isoformat()}"
                )
                if len(usable) < required:
                    raise InsufficientTrainingDataError(
                        f"Need at least {required} journeys, found {len(usable)}",
                        journeys=len(usable),
                        required=required,
                    )

                candidate = await asyncio.wait_for(
                    asyncio.to_thread(
                        train_parameters,
                        usable,
                        period_start=start_date,
                        period_end=end_date,
                        epochs=epochs,
                        regularization=self.settings.ml.regularization,
                        version=self.parameter_store.version + 1,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.error(f"Data-driven training timed out after {timeout}s")
                raise AttributionTimeoutError("train_data_driven_model", timeout) from None
            except AttributionNavError as e:
                logger.error(f"Failed to train data-driven model: {e}")
                raise
            except Exception as e:
                logger.error(f"Failed to fit data-driven model: {e}")
                raise ModelTrainingError("fit", e) from e

            return self.parameter_store.swap(
                candidate, persist_to=self.settings.ml.model_path
            )

    async def get_channel_performance(
        self, start_date: datetime, end_date: datetime
    ) -> dict[str, ChannelPerformance]:
        try:
            return await self.repository.get_channel_performance(start_date, end_date)
        except AttributionNavError as e:
            logger.error(f"Failed to get channel performance: {e}")
            raise

    async def get_insights(
        self,
        start_date: datetime,
        end_date: datetime,
        model_type: AttributionModelType | str | None = None,
    ) -> AttributionInsights:
        """Channel performance, top paths, model performance, ROI and path efficiency.

        Channel ROI is computed from the results of a single model
        (``model_type`` or the configured default) so that a conversion
        attributed by several models is not counted more than once.
        """
        kind = AttributionModelType.parse(
            model_type or self.settings.attribution.default_model
        )
        try:
            channel_performance, top_paths, model_performance, results = (
                await asyncio.gather(
                    self.get_channel_performance(start_date, end_date),
                    self.repository.get_common_paths(start_date, end_date),
                    self.repository.get_model_performance(start_date, end_date),
                    self.repository.get_attribution_results(start_date, end_date, kind),
                )
            )
        except AttributionNavError as e:
            logger.error(f"Failed to get insights: {e}")
            raise

        path_efficiency = self.calculator.calculate_path_efficiency(
            PathSample(
                path=path.path,
                conversions=path.total_conversions,
                value=path.avg_conversion_value * path.total_conversions,
            )
            for path in top_paths
            if path.total_conversions > 0
        )

        return AttributionInsights(
            start_date=start_date,
            end_date=end_date,
            channel_performance=channel_performance,
            top_paths=top_paths,
            model_performance=model_performance,
            channel_roi=self.calculator.calculate_channel_roi(results),
            path_efficiency=path_efficiency,
        )

    def attribution_summary(
        self, results: Iterable[AttributionResult]
    ) -> list[ChannelSummary]:
        """Per-channel attributed revenue, conversions, share and average position.

        Sorted by attributed revenue, highest first.
        """
        revenue: dict[str, Decimal] = {}
        conversions: dict[str, int] = {}
        positions: dict[str, list[int]] = {}
        total_revenue = Decimal("0")

        for result in results:
            total_revenue += result.conversion_value
            credited_channels = set()
            for position, metric in enumerate(self.calculator.calculate_roi(result), 1):
                revenue[metric.channel] = (
                    revenue.get(metric.channel, Decimal("0")) + metric.revenue
                )
                positions.setdefault(metric.channel, []).append(position)
                if metric.revenue > 0:
                    credited_channels.add(metric.channel)
            for channel in credited_channels:
                conversions[channel] = conversions.get(channel, 0) + 1

        summary = [
            ChannelSummary(
                channel=channel,
                attributed_revenue=channel_revenue,
                conversions=conversions.get(channel, 0),
                revenue_share=float(channel_revenue / total_revenue * 100)
                if total_revenue > 0
                else 0.0,
                average_position=sum(positions[channel]) / len(positions[channel]),
            )
            for channel, channel_revenue in revenue.items()
        ]
        summary.sort(key=lambda s: (-s.attributed_revenue, s.channel))
        return summary
