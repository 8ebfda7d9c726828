"""Derived financial metrics and read-only aggregate views."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from attributionnav.models.base import BaseATNModel, utc_now


class ROIMetrics(BaseATNModel):
    """Return on a single credited touchpoint."""

    touchpoint_id: str
    channel: str
    campaign: str | None = None
    credit: float = Field(default=0.0, ge=0.0, le=1.0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    revenue: Decimal = Field(default=Decimal("0"), ge=0)
    roi: float = Field(default=0.0, description="(revenue - cost) / cost x 100")
    roas: float = Field(default=0.0, ge=0.0, description="revenue / cost")


class ChannelROI(BaseATNModel):
    """ROI aggregated over every touchpoint of one channel."""

    channel: str
    total_cost: Decimal = Field(default=Decimal("0"), ge=0)
    total_revenue: Decimal = Field(default=Decimal("0"), ge=0)
    roi: float = 0.0
    roas: float = Field(default=0.0, ge=0.0)
    touchpoints: int = Field(default=0, ge=0)
    conversions: int = Field(
        default=0,
        ge=0,
        description="Distinct conversions in which the channel earned revenue",
    )


class PathSample(BaseATNModel):
    """Observed conversion path used as input to path efficiency."""

    path: list[str] = Field(..., min_length=1)
    conversions: int = Field(..., ge=1)
    value: Decimal = Field(..., ge=0)


class PathEfficiency(BaseATNModel):
    """Value yield of one conversion path."""

    path: str
    efficiency: Decimal = Field(..., description="Value per touchpoint in the path")
    avg_value: Decimal = Field(..., description="Value per conversion")
    touchpoints: int = Field(..., ge=1)


class ChannelPerformance(BaseATNModel):
    """Stored-result performance of one channel over a date range."""

    channel: str
    unique_users: int = Field(default=0, ge=0)
    touchpoints: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    total_value: Decimal = Field(default=Decimal("0"), ge=0)
    avg_credit: float = Field(default=0.0, ge=0.0, le=1.0)


class ConversionPath(BaseATNModel):
    """A channel sequence shared by several attributed conversions."""

    path: list[str]
    occurrences: int = Field(..., ge=1)
    total_conversions: int = Field(..., ge=0)
    avg_conversion_value: Decimal = Field(default=Decimal("0"), ge=0)

    @property
    def label(self) -> str:
        return " → ".join(self.path)


class ModelPerformance(BaseATNModel):
    """Volume of results computed by one model type over a date range."""

    model_type: str
    calculations: int = Field(..., ge=0)
    avg_touchpoints: float = Field(default=0.0, ge=0.0)
    total_value: Decimal = Field(default=Decimal("0"), ge=0)
    avg_conversion_value: Decimal = Field(default=Decimal("0"), ge=0)


class ChannelSummary(BaseATNModel):
    """Per-channel share of attributed revenue across a set of results."""

    channel: str
    attributed_revenue: Decimal = Decimal("0")
    conversions: int = 0
    revenue_share: float = Field(default=0.0, description="Percent of total revenue")
    average_position: float = Field(
        default=0.0, description="Mean 1-based position in the journey"
    )


class AttributionInsights(BaseATNModel):
    """Combined read-only view of attribution activity for a period."""

    start_date: datetime
    end_date: datetime
    channel_performance: dict[str, ChannelPerformance] = Field(default_factory=dict)
    top_paths: list[ConversionPath] = Field(default_factory=list)
    model_performance: list[ModelPerformance] = Field(default_factory=list)
    channel_roi: list[ChannelROI] = Field(default_factory=list)
    path_efficiency: list[PathEfficiency] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)
