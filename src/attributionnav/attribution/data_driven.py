"""Trainable data-driven attribution model.

Credit comes from a logistic regression over per-touchpoint features:
each touchpoint's predicted conversion probability is normalised across
the journey. Trained state lives in immutable ``DataDrivenParameters``
values held by a ``ParameterStore``; training builds a complete new
value and swaps it in, so inference never sees a partial update.
"""

import logging
import threading
import warnings
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd
from pydantic import ValidationError
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression

from attributionnav.attribution.weighting import WeightingModel, days_between
from attributionnav.core.exceptions import (
    ConfigurationError,
    InsufficientTrainingDataError,
    ModelNotTrainedError,
    ModelTrainingError,
)
from attributionnav.models.attribution import AttributionModel, AttributionModelType
from attributionnav.models.events import Channel, Touchpoint
from attributionnav.models.training import (
    DataDrivenParameters,
    TrainingJourney,
    TrainingProvenance,
)

logger = logging.getLogger(__name__)

KNOWN_CHANNELS = [channel.value for channel in Channel]

FEATURE_NAMES: tuple[str, ...] = (
    "position",
    "is_first",
    "is_last",
    "days_before_conversion",
    "hour_of_day",
    "day_of_week",
    *(f"channel_{name}" for name in KNOWN_CHANNELS),
    "channel_other",
    "touch_count",
    "channel_diversity",
    "journey_span_days",
)


def extract_features(
    touchpoints: Sequence[Touchpoint], reference_time: datetime
) -> pd.DataFrame:
    """Build one feature row per touchpoint of a journey.

    Args:
        touchpoints: Journey sorted ascending by timestamp
        reference_time: Conversion time (or last touch when unconverted)

    Returns:
        DataFrame with columns in ``FEATURE_NAMES`` order
    """
    count = len(touchpoints)
    if count == 0:
        return pd.DataFrame(columns=list(FEATURE_NAMES), dtype=float)

    diversity = len({tp.channel for tp in touchpoints}) / count
    span_days = days_between(touchpoints[0].timestamp, touchpoints[-1].timestamp)

    rows = []
    for index, touch in enumerate(touchpoints):
        row = {
            "position": index / (count - 1) if count > 1 else 0.0,
            "is_first": 1.0 if index == 0 else 0.0,
            "is_last": 1.0 if index == count - 1 else 0.0,
            "days_before_conversion": max(
                0.0, days_between(touch.timestamp, reference_time)
            ),
            "hour_of_day": touch.timestamp.hour / 24,
            "day_of_week": touch.timestamp.weekday() / 7,
        }
        for name in KNOWN_CHANNELS:
            row[f"channel_{name}"] = 1.0 if touch.channel == name else 0.0
        row["channel_other"] = 0.0 if touch.channel in KNOWN_CHANNELS else 1.0
        row["touch_count"] = float(count)
        row["channel_diversity"] = diversity
        row["journey_span_days"] = span_days
        rows.append(row)

    return pd.DataFrame(rows, columns=list(FEATURE_NAMES), dtype=float)


def build_training_frame(
    journeys: Sequence[TrainingJourney],
) -> tuple[pd.DataFrame, pd.Series]:
    """Flatten journeys into feature rows labelled with the journey outcome."""
    frames = []
    labels = []
    for journey in journeys:
        if not journey.touchpoints:
            continue
        features = extract_features(journey.touchpoints, journey.reference_time)
        frames.append(features)
        labels.extend([int(journey.converted)] * len(features))

    if not frames:
        return pd.DataFrame(columns=list(FEATURE_NAMES), dtype=float), pd.Series(
            [], dtype=int
        )
    return pd.concat(frames, ignore_index=True), pd.Series(labels, dtype=int)


def train_parameters(
    journeys: Sequence[TrainingJourney],
    *,
    period_start: datetime,
    period_end: datetime,
    epochs: int = 50,
    regularization: float = 1.0,
    version: int = 1,
) -> DataDrivenParameters:
    """Fit a new parameter set from historical journeys.

    Runs synchronously; callers push it to a worker thread.

    Raises:
        InsufficientTrainingDataError: If both outcomes are not represented
    """
    usable = [journey for journey in journeys if journey.touchpoints]
    converted = sum(1 for journey in usable if journey.converted)
    non_converted = len(usable) - converted
    if converted == 0 or non_converted == 0:
        raise InsufficientTrainingDataError(
            "Training needs both converting and non-converting journeys "
            f"(got {converted} converting, {non_converted} non-converting)",
            journeys=len(usable),
        )

    features, labels = build_training_frame(usable)

    means = features.mean(axis=0)
    scales = features.std(axis=0, ddof=0).replace(0.0, 1.0)
    standardized = (features - means) / scales

    classifier = LogisticRegression(C=regularization, max_iter=epochs)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        classifier.fit(standardized.to_numpy(), labels.to_numpy())
    if any(issubclass(w.category, ConvergenceWarning) for w in caught):
        logger.warning(f"Data-driven model did not converge within {epochs} epochs")

    accuracy = float(classifier.score(standardized.to_numpy(), labels.to_numpy()))
    logger.info(
        f"Trained data-driven model on {len(usable)} journeys "
        f"({len(features)} touchpoints), accuracy {accuracy:.3f}"
    )

    return DataDrivenParameters(
        version=version,
        feature_names=FEATURE_NAMES,
        coefficients=tuple(float(c) for c in classifier.coef_[0]),
        intercept=float(classifier.intercept_[0]),
        feature_means=tuple(float(m) for m in means),
        feature_scales=tuple(float(s) for s in scales),
        provenance=TrainingProvenance(
            period_start=period_start,
            period_end=period_end,
            journeys=len(usable),
            converted_journeys=converted,
            non_converted_journeys=non_converted,
            sample_rows=len(features),
            epochs=epochs,
            training_accuracy=accuracy,
        ),
    )


class ParameterStore:
    """Atomic reference to the active data-driven parameters."""

    def __init__(self, parameters: DataDrivenParameters | None = None):
        self._parameters = parameters
        self._lock = threading.Lock()

    @property
    def current(self) -> DataDrivenParameters | None:
        return self._parameters

    @property
    def version(self) -> int:
        parameters = self._parameters
        return parameters.version if parameters else 0

    @property
    def is_trained(self) -> bool:
        return self._parameters is not None

    def require(self) -> DataDrivenParameters:
        """Return the active parameters or raise ModelNotTrainedError."""
        parameters = self._parameters
        if parameters is None:
            raise ModelNotTrainedError(
                "Data-driven model has not been trained; run training first"
            )
        return parameters

    def swap(
        self,
        parameters: DataDrivenParameters,
        persist_to: str | Path | None = None,
    ) -> DataDrivenParameters:
        """Install ``parameters`` as the next version and return what was installed.

        With ``persist_to`` the new version is written to that file first;
        if the write fails the active parameters stay as they were.

        Raises:
            ModelTrainingError: If the parameters cannot be written
        """
        with self._lock:
            installed = parameters.model_copy(update={"version": self.version + 1})
            if persist_to is not None:
                try:
                    _write_parameters(installed, Path(persist_to))
                except OSError as e:
                    logger.error(f"Failed to save data-driven parameters to {persist_to}: {e}")
                    raise ModelTrainingError("save", e) from e
            self._parameters = installed
        logger.info(f"Activated data-driven parameters version {installed.version}")
        return installed

    def save(self, path: str | Path) -> Path:
        """Write the active parameters to ``path`` as JSON."""
        return _write_parameters(self.require(), Path(path))

    @classmethod
    def load(cls, path: str | Path) -> "ParameterStore":
        """Build a store from a JSON file written by ``save``; empty if missing.

        Raises:
            ConfigurationError: If the file is invalid or names features
                this version does not compute
        """
        source = Path(path)
        if not source.exists():
            return cls()
        try:
            parameters = DataDrivenParameters.model_validate_json(
                source.read_text(encoding="utf-8")
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid data-driven parameters in {source}: {e}") from e

        unknown = [name for name in parameters.feature_names if name not in FEATURE_NAMES]
        if unknown:
            raise ConfigurationError(
                f"Data-driven parameters in {source} use unknown features: "
                f"{', '.join(unknown)}"
            )
        logger.info(f"Loaded data-driven parameters v{parameters.version} from {source}")
        return cls(parameters)


def _write_parameters(parameters: DataDrivenParameters, target: Path) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(parameters.model_dump_json(indent=2), encoding="utf-8")
    logger.info(f"Saved data-driven parameters v{parameters.version} to {target}")
    return target


class DataDrivenModel(WeightingModel):
    """Weighting model backed by trained logistic-regression parameters."""

    model_type = AttributionModelType.DATA_DRIVEN

    def __init__(
        self,
        model: AttributionModel | None = None,
        parameter_store: ParameterStore | None = None,
    ):
        super().__init__(model)
        self.parameter_store = parameter_store or ParameterStore()

    def weights(self, touchpoints, converted_at):
        parameters = self.parameter_store.require()
        features = extract_features(touchpoints, converted_at)
        matrix = features[list(parameters.feature_names)].to_numpy()

        standardized = (matrix - np.asarray(parameters.feature_means)) / np.asarray(
            parameters.feature_scales
        )
        logits = standardized @ np.asarray(parameters.coefficients) + parameters.intercept
        probabilities = 1.0 / (1.0 + np.exp(-logits))
        return probabilities.tolist()
