"""Pytest configuration and shared fixtures for AttributionNav tests."""

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from attributionnav.core.config import Settings
from attributionnav.logging.context import clear_context
from attributionnav.models import ConversionEvent, Touchpoint

CONVERSION_TIME = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep ATN_* variables from the host out of tests."""
    for key in list(os.environ):
        if key.startswith("ATN_"):
            monkeypatch.delenv(key, raising=False)
    clear_context()
    yield
    clear_context()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary data directory."""
    return Settings(data_dir=tmp_path)


@pytest.fixture
def conversion_time():
    return CONVERSION_TIME


@pytest.fixture
def make_touchpoint():
    """Factory for touchpoints placed relative to the conversion time."""

    def _make(
        channel: str = "paid_search",
        days_before: float = 0.0,
        user_id: str = "user_1",
        campaign: str | None = None,
        touchpoint_id: str | None = None,
        conversion_time: datetime = CONVERSION_TIME,
    ) -> Touchpoint:
        fields = {
            "user_id": user_id,
            "timestamp": conversion_time - timedelta(days=days_before),
            "channel": channel,
            "campaign": campaign,
        }
        if touchpoint_id is not None:
            fields["touchpoint_id"] = touchpoint_id
        return Touchpoint(**fields)

    return _make


@pytest.fixture
def sample_journey(make_touchpoint):
    """Three touchpoints ten, five and zero days before conversion."""
    return [
        make_touchpoint("display", days_before=10, touchpoint_id="tp_a"),
        make_touchpoint("social", days_before=5, touchpoint_id="tp_b"),
        make_touchpoint("paid_search", days_before=0, touchpoint_id="tp_c"),
    ]


@pytest.fixture
def sample_conversion():
    return ConversionEvent(
        conversion_id="conv_1",
        user_id="user_1",
        timestamp=CONVERSION_TIME,
        conversion_value=Decimal("100.00"),
    )
