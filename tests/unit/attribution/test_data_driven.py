"""Tests for the trainable data-driven attribution model."""

from datetime import datetime, timedelta, timezone

import pytest

from attributionnav.attribution.data_driven import (
    FEATURE_NAMES,
    DataDrivenModel,
    ParameterStore,
    build_training_frame,
    extract_features,
    train_parameters,
)
from attributionnav.core.exceptions import (
    ConfigurationError,
    InsufficientTrainingDataError,
    ModelNotTrainedError,
    ModelTrainingError,
)
from attributionnav.models import Touchpoint, TrainingJourney

PERIOD_START = datetime(2025, 1, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2025, 3, 1, tzinfo=timezone.utc)


def make_journey(index: int, channels: list[str], converted: bool) -> TrainingJourney:
    start = PERIOD_START + timedelta(days=index, hours=index % 24)
    touchpoints = [
        Touchpoint(
            user_id=f"user_{index}",
            timestamp=start + timedelta(days=position),
            channel=channel,
        )
        for position, channel in enumerate(channels)
    ]
    return TrainingJourney(
        touchpoints=touchpoints,
        converted=converted,
        conversion_timestamp=touchpoints[-1].timestamp + timedelta(hours=2)
        if converted
        else None,
    )


@pytest.fixture
def training_journeys():
    """Converting journeys end on paid search; the others stay on display."""
    converted = [
        make_journey(i, ["display", "email", "paid_search"], True) for i in range(12)
    ]
    not_converted = [
        make_journey(100 + i, ["display", "display"], False) for i in range(12)
    ]
    return converted + not_converted


@pytest.fixture
def trained_parameters(training_journeys):
    return train_parameters(
        training_journeys,
        period_start=PERIOD_START,
        period_end=PERIOD_END,
        epochs=200,
    )


class TestFeatureExtraction:
    """Test per-touchpoint feature rows."""

    def test_columns_and_rows(self, sample_journey, conversion_time):
        features = extract_features(sample_journey, conversion_time)

        assert list(features.columns) == list(FEATURE_NAMES)
        assert len(features) == 3

    def test_position_flags(self, sample_journey, conversion_time):
        features = extract_features(sample_journey, conversion_time)

        assert features["position"].tolist() == [0.0, 0.5, 1.0]
        assert features["is_first"].tolist() == [1.0, 0.0, 0.0]
        assert features["is_last"].tolist() == [0.0, 0.0, 1.0]

    def test_recency_and_journey_shape(self, sample_journey, conversion_time):
        features = extract_features(sample_journey, conversion_time)

        assert features["days_before_conversion"].tolist() == pytest.approx([10, 5, 0])
        assert features["touch_count"].tolist() == [3.0, 3.0, 3.0]
        assert features["channel_diversity"].iloc[0] == pytest.approx(1.0)
        assert features["journey_span_days"].iloc[0] == pytest.approx(10.0)

    def test_channel_one_hot(self, make_touchpoint, conversion_time):
        touchpoints = [make_touchpoint("email"), make_touchpoint("podcast")]

        features = extract_features(touchpoints, conversion_time)

        assert features["channel_email"].tolist() == [1.0, 0.0]
        assert features["channel_other"].tolist() == [0.0, 1.0]

    def test_single_touchpoint_position_is_zero(self, make_touchpoint, conversion_time):
        features = extract_features([make_touchpoint()], conversion_time)

        assert features["position"].iloc[0] == 0.0

    def test_training_frame_labels(self, training_journeys):
        features, labels = build_training_frame(training_journeys)

        assert len(features) == 12 * 3 + 12 * 2
        assert labels.sum() == 12 * 3


class TestTraining:
    """Test fitting parameters from journeys."""

    def test_provenance(self, trained_parameters):
        provenance = trained_parameters.provenance

        assert provenance.journeys == 24
        assert provenance.converted_journeys == 12
        assert provenance.non_converted_journeys == 12
        assert provenance.sample_rows == 60
        assert provenance.epochs == 200
        assert 0.0 <= provenance.training_accuracy <= 1.0

    def test_parameter_shapes(self, trained_parameters):
        width = len(FEATURE_NAMES)

        assert trained_parameters.feature_names == FEATURE_NAMES
        assert len(trained_parameters.coefficients) == width
        assert len(trained_parameters.feature_means) == width
        assert all(scale > 0 for scale in trained_parameters.feature_scales)

    def test_requires_converting_journeys(self, training_journeys):
        only_negative = [j for j in training_journeys if not j.converted]

        with pytest.raises(InsufficientTrainingDataError):
            train_parameters(
                only_negative, period_start=PERIOD_START, period_end=PERIOD_END
            )

    def test_requires_non_converting_journeys(self, training_journeys):
        only_positive = [j for j in training_journeys if j.converted]

        with pytest.raises(InsufficientTrainingDataError):
            train_parameters(
                only_positive, period_start=PERIOD_START, period_end=PERIOD_END
            )


class TestParameterStore:
    """Test versioned, atomically swapped parameters."""

    def test_empty_store(self):
        store = ParameterStore()

        assert store.current is None
        assert store.version == 0
        assert not store.is_trained
        with pytest.raises(ModelNotTrainedError):
            store.require()

    def test_swap_increments_version(self, trained_parameters):
        store = ParameterStore()

        first = store.swap(trained_parameters)
        second = store.swap(trained_parameters)

        assert first.version == 1
        assert second.version == 2
        assert store.current is second

    def test_swap_does_not_mutate_previous(self, trained_parameters):
        store = ParameterStore()
        first = store.swap(trained_parameters)

        store.swap(trained_parameters)

        assert first.version == 1

    def test_save_and_load(self, trained_parameters, tmp_path):
        store = ParameterStore()
        store.swap(trained_parameters)
        path = tmp_path / "models" / "data_driven.json"

        store.save(path)
        loaded = ParameterStore.load(path)

        assert loaded.version == 1
        assert loaded.current.coefficients == store.current.coefficients
        assert loaded.current.feature_names == FEATURE_NAMES

    def test_load_missing_file_gives_empty_store(self, tmp_path):
        store = ParameterStore.load(tmp_path / "missing.json")

        assert not store.is_trained

    def test_load_rejects_unknown_features(self, trained_parameters, tmp_path):
        renamed = (*trained_parameters.feature_names[:-1], "channel_podcast")
        path = tmp_path / "data_driven.json"
        path.write_text(
            trained_parameters.model_copy(update={"feature_names": renamed}).model_dump_json()
        )

        with pytest.raises(ConfigurationError, match="channel_podcast"):
            ParameterStore.load(path)

    def test_load_rejects_malformed_file(self, tmp_path):
        path = tmp_path / "data_driven.json"
        path.write_text("{\"version\": ")

        with pytest.raises(ConfigurationError):
            ParameterStore.load(path)

    def test_swap_persists_before_activating(self, trained_parameters, tmp_path):
        store = ParameterStore()
        path = tmp_path / "models" / "data_driven.json"

        installed = store.swap(trained_parameters, persist_to=path)

        assert ParameterStore.load(path).current == installed

    def test_failed_persist_keeps_active_version(self, trained_parameters, tmp_path):
        store = ParameterStore()
        active = store.swap(trained_parameters)
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        with pytest.raises(ModelTrainingError):
            store.swap(trained_parameters, persist_to=blocker / "data_driven.json")

        assert store.current is active
        assert store.version == 1


class TestDataDrivenModel:
    """Test inference with trained parameters."""

    def test_untrained_inference_fails(self, sample_journey):
        with pytest.raises(ModelNotTrainedError):
            DataDrivenModel().compute(sample_journey, 100, conversion_id="c")

    def test_untrained_empty_journey_is_still_empty_result(self):
        result = DataDrivenModel().compute([], 100, conversion_id="c")

        assert result.touchpoints == []

    def test_credits_sum_to_one(self, trained_parameters, sample_journey, conversion_time):
        model = DataDrivenModel(parameter_store=ParameterStore(trained_parameters))

        result = model.compute(
            sample_journey, 100, conversion_id="c", converted_at=conversion_time
        )

        credits = [tp.credit for tp in result.touchpoints]
        assert abs(sum(credits) - 1.0) < 1e-9
        assert all(credit > 0 for credit in credits)
        assert result.model.model_type == "data_driven"

    def test_inference_is_deterministic(
        self, trained_parameters, sample_journey, conversion_time
    ):
        model = DataDrivenModel(parameter_store=ParameterStore(trained_parameters))

        first = model.compute(sample_journey, 100, conversion_id="c", converted_at=conversion_time)
        second = model.compute(sample_journey, 100, conversion_id="c", converted_at=conversion_time)

        assert [tp.credit for tp in first.touchpoints] == [
            tp.credit for tp in second.touchpoints
        ]

    def test_sees_swapped_parameters(self, trained_parameters, sample_journey):
        store = ParameterStore()
        model = DataDrivenModel(parameter_store=store)

        store.swap(trained_parameters)
        result = model.compute(sample_journey, 100, conversion_id="c")

        assert len(result.touchpoints) == 3
