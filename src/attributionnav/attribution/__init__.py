"""Multi-touch attribution engine.

This package provides the weighting models, the data-driven model and the
engine that applies them to recorded touchpoints, plus ROI calculation
over the results.
"""

from attributionnav.attribution.calculator import AttributionCalculator
from attributionnav.attribution.data_driven import DataDrivenModel, ParameterStore
from attributionnav.attribution.engine import AttributionEngine
from attributionnav.attribution.factory import create_weighting_model
from attributionnav.attribution.weighting import (
    FirstTouchModel,
    LastTouchModel,
    LinearModel,
    PositionBasedModel,
    TimeDecayModel,
    WeightingModel,
)

__all__ = [
    "AttributionCalculator",
    "AttributionEngine",
    "DataDrivenModel",
    "FirstTouchModel",
    "LastTouchModel",
    "LinearModel",
    "ParameterStore",
    "PositionBasedModel",
    "TimeDecayModel",
    "WeightingModel",
    "create_weighting_model",
]
