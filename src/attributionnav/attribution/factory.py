"""Selection of weighting models by attribution model type."""

from attributionnav.attribution.data_driven import DataDrivenModel, ParameterStore
from attributionnav.attribution.weighting import (
    FirstTouchModel,
    LastTouchModel,
    LinearModel,
    PositionBasedModel,
    TimeDecayModel,
    WeightingModel,
)
from attributionnav.core.exceptions import UnknownModelError
from attributionnav.models.attribution import AttributionModel, AttributionModelType


def create_weighting_model(
    model: AttributionModel | AttributionModelType | str,
    parameter_store: ParameterStore | None = None,
) -> WeightingModel:
    """Create the weighting model for a configuration or model type.

    Args:
        model: Full configuration, or a model type for the default configuration
        parameter_store: Trained state shared with the data-driven model

    Raises:
        UnknownModelError: If the model type is not one of the known kinds
    """
    if not isinstance(model, AttributionModel):
        model = AttributionModel.default(model)
    model_type = AttributionModelType.parse(model.model_type)

    if model_type == AttributionModelType.FIRST_TOUCH:
        return FirstTouchModel(model)
    elif model_type == AttributionModelType.LAST_TOUCH:
        return LastTouchModel(model)
    elif model_type == AttributionModelType.LINEAR:
        return LinearModel(model)
    elif model_type == AttributionModelType.TIME_DECAY:
        return TimeDecayModel(model)
    elif model_type == AttributionModelType.POSITION_BASED:
        return PositionBasedModel(model)
    elif model_type == AttributionModelType.DATA_DRIVEN:
        return DataDrivenModel(model, parameter_store)
    else:
        raise UnknownModelError(str(model_type))
