"""Domain models for AttributionNav."""

from attributionnav.models.attribution import (
    CREDIT_TOLERANCE,
    AttributionModel,
    AttributionModelType,
    AttributionResult,
)
from attributionnav.models.base import utc_now
from attributionnav.models.events import Channel, ConversionEvent, Touchpoint
from attributionnav.models.metrics import (
    AttributionInsights,
    ChannelPerformance,
    ChannelROI,
    ChannelSummary,
    ConversionPath,
    ModelPerformance,
    PathEfficiency,
    PathSample,
    ROIMetrics,
)
from attributionnav.models.training import (
    DataDrivenParameters,
    TrainingJourney,
    TrainingProvenance,
)

__all__ = [
    "CREDIT_TOLERANCE",
    "AttributionInsights",
    "AttributionModel",
    "AttributionModelType",
    "AttributionResult",
    "Channel",
    "ChannelPerformance",
    "ChannelROI",
    "ChannelSummary",
    "ConversionEvent",
    "ConversionPath",
    "DataDrivenParameters",
    "ModelPerformance",
    "PathEfficiency",
    "PathSample",
    "ROIMetrics",
    "Touchpoint",
    "TrainingJourney",
    "TrainingProvenance",
    "utc_now",
]
