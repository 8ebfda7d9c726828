"""ROI and value calculation for attribution results."""

import logging
from collections.abc import Iterable, Sequence
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from attributionnav.core.config import ChannelCostConfig
from attributionnav.core.exceptions import AttributionContractError
from attributionnav.models.attribution import AttributionResult
from attributionnav.models.events import Touchpoint
from attributionnav.models.metrics import (
    ChannelROI,
    PathEfficiency,
    PathSample,
    ROIMetrics,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PATH_SEPARATOR = " → "


def allocate_value(value: Decimal, credits: Sequence[float]) -> list[Decimal]:
    """Split ``value`` by ``credits`` into cent amounts that sum to the rounded value.

    Uses the largest-remainder method: every share is floored to the cent
    and the leftover cents go to the shares with the largest remainders.
    """
    if not credits:
        return []

    target = value.quantize(CENT, rounding=ROUND_HALF_UP)
    exact = [value * Decimal(str(credit)) for credit in credits]
    floors = [share.quantize(CENT, rounding=ROUND_FLOOR) for share in exact]
    remainders = [share - floor for share, floor in zip(exact, floors)]

    leftover = int((target - sum(floors, Decimal("0"))) / CENT)
    if leftover > 0:
        order = sorted(range(len(credits)), key=lambda i: remainders[i], reverse=True)
        for index in order[:leftover]:
            floors[index] += CENT
    elif leftover < 0:
        order = sorted(range(len(credits)), key=lambda i: remainders[i])
        for index in [i for i in order if floors[i] > 0][: -leftover]:
            floors[index] -= CENT
    return floors


def _ratios(revenue: Decimal, cost: Decimal) -> tuple[float, float]:
    """ROI percentage and ROAS; both are 0 when there is no cost."""
    if cost <= 0:
        return 0.0, 0.0
    roi = float((revenue - cost) / cost * 100)
    roas = float(revenue / cost)
    return roi, roas


class AttributionCalculator:
    """Derives ROI, ROAS, CLV, lift and path efficiency from attribution results."""

    def __init__(self, costs: ChannelCostConfig | None = None):
        """Initialize the calculator.

        Args:
            costs: Channel cost table and campaign multipliers
        """
        costs = costs or ChannelCostConfig()
        self.channel_costs: dict[str, Decimal] = {
            channel.lower(): Decimal(rate) for channel, rate in costs.rates.items()
        }
        self.premium_multiplier = Decimal(costs.premium_multiplier)
        self.brand_multiplier = Decimal(costs.brand_multiplier)

    def touchpoint_cost(self, touchpoint: Touchpoint) -> Decimal:
        """Base channel cost adjusted by the campaign multiplier."""
        base_cost = self.channel_costs.get(touchpoint.channel, Decimal("0"))

        multiplier = Decimal("1")
        if touchpoint.campaign:
            if "premium" in touchpoint.campaign:
                multiplier = self.premium_multiplier
            elif "brand" in touchpoint.campaign:
                multiplier = self.brand_multiplier

        return base_cost * multiplier

    def update_channel_cost(self, channel: str, rate: Decimal | float | str) -> None:
        """Override the cost per action of a channel."""
        cost = Decimal(str(rate))
        if cost < 0:
            raise AttributionContractError(f"Channel cost must be non-negative: {rate}")
        self.channel_costs[channel.strip().lower()] = cost
        logger.info(f"Channel cost updated: {channel} = {cost}")

    def calculate_roi(self, result: AttributionResult) -> list[ROIMetrics]:
        """Per-touchpoint cost, attributed revenue, ROI and ROAS for one result."""
        credits = [tp.credit or 0.0 for tp in result.touchpoints]
        revenues = allocate_value(result.conversion_value, credits)

        metrics = []
        for touchpoint, credit, revenue in zip(result.touchpoints, credits, revenues):
            cost = self.touchpoint_cost(touchpoint)
            roi, roas = _ratios(revenue, cost)
            metrics.append(
                ROIMetrics(
                    touchpoint_id=touchpoint.touchpoint_id,
                    channel=touchpoint.channel,
                    campaign=touchpoint.campaign,
                    credit=credit,
                    cost=cost,
                    revenue=revenue,
                    roi=roi,
                    roas=roas,
                )
            )

        logger.debug(
            f"ROI calculated for conversion {result.conversion_id}: "
            f"{len(metrics)} touchpoints"
        )
        return metrics

    def calculate_channel_roi(
        self, results: Iterable[AttributionResult]
    ) -> list[ChannelROI]:
        """Channel totals across results, with ratios recomputed from the totals.

        Sorted by ROI, highest first.
        """
        totals: dict[str, dict] = {}
        converted: dict[str, set[str]] = {}
        for result in results:
            for metric in self.calculate_roi(result):
                channel = totals.setdefault(
                    metric.channel,
                    {
                        "total_cost": Decimal("0"),
                        "total_revenue": Decimal("0"),
                        "touchpoints": 0,
                    },
                )
                channel["total_cost"] += metric.cost
                channel["total_revenue"] += metric.revenue
                channel["touchpoints"] += 1
                if metric.revenue > 0:
                    converted.setdefault(metric.channel, set()).add(result.conversion_id)

        channel_roi = []
        for name, aggregate in totals.items():
            roi, roas = _ratios(aggregate["total_revenue"], aggregate["total_cost"])
            channel_roi.append(
                ChannelROI(
                    channel=name,
                    roi=roi,
                    roas=roas,
                    conversions=len(converted.get(name, ())),
                    **aggregate,
                )
            )

        channel_roi.sort(key=lambda c: c.roi, reverse=True)

        logger.info(
            f"Channel ROI calculated for {len(channel_roi)} channels "
            f"(revenue {sum((c.total_revenue for c in channel_roi), Decimal('0'))}, "
            f"cost {sum((c.total_cost for c in channel_roi), Decimal('0'))})"
        )
        return channel_roi

    def calculate_clv_attribution(
        self,
        user_id: str,
        historical_value: Decimal | float | str,
        predicted_value: Decimal | float | str,
        touchpoints: Sequence[Touchpoint],
    ) -> dict[str, Decimal]:
        """Distribute lifetime value across channels by assigned credit."""
        total_value = Decimal(str(historical_value)) + Decimal(str(predicted_value))
        channel_values: dict[str, Decimal] = {}

        for touchpoint in touchpoints:
            attributed = (total_value * Decimal(str(touchpoint.credit or 0.0))).quantize(
                CENT, rounding=ROUND_HALF_UP
            )
            channel_values[touchpoint.channel] = (
                channel_values.get(touchpoint.channel, Decimal("0")) + attributed
            )

        logger.debug(
            f"CLV attribution for user {user_id}: {total_value} over "
            f"{len(channel_values)} channels"
        )
        return channel_values

    def calculate_incremental_lift(
        self,
        test_results: Iterable[AttributionResult],
        control_results: Iterable[AttributionResult],
    ) -> float:
        """Percent change of test conversion value over control; 0 without control value."""
        test_value = sum((r.conversion_value for r in test_results), Decimal("0"))
        control_value = sum((r.conversion_value for r in control_results), Decimal("0"))

        if control_value <= 0:
            lift = 0.0
        else:
            lift = float((test_value - control_value) / control_value * 100)

        logger.info(
            f"Incremental lift: test={test_value} control={control_value} lift={lift:.2f}%"
        )
        return lift

    def calculate_efficiency(self, result: AttributionResult) -> Decimal:
        """Conversion value per touchpoint."""
        if not result.touchpoints:
            return Decimal("0")
        return result.conversion_value / len(result.touchpoints)

    def calculate_path_efficiency(
        self, paths: Iterable[PathSample | dict]
    ) -> list[PathEfficiency]:
        """Value per touchpoint and per conversion for each path, best first."""
        efficiencies = []
        for sample in paths:
            sample = PathSample.model_validate(sample)
            length = len(sample.path)
            efficiencies.append(
                PathEfficiency(
                    path=PATH_SEPARATOR.join(sample.path),
                    efficiency=sample.value / length,
                    avg_value=sample.value / sample.conversions,
                    touchpoints=length,
                )
            )

        efficiencies.sort(key=lambda p: p.efficiency, reverse=True)
        return efficiencies
