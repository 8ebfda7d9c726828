"""Touchpoint and conversion records."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import Field, field_validator

from attributionnav.models.base import FrozenATNModel, ensure_utc


class Channel(str, Enum):
    """Marketing channels with a default cost rate.

    Touchpoints may carry any other channel name; these are the ones the
    cost table and the data-driven features know about.
    """

    PAID_SEARCH = "paid_search"
    DISPLAY = "display"
    SOCIAL = "social"
    EMAIL = "email"
    ORGANIC = "organic"
    DIRECT = "direct"
    REFERRAL = "referral"


class Touchpoint(FrozenATNModel):
    """A recorded marketing interaction preceding a conversion."""

    touchpoint_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(..., min_length=1, description="Owning user identifier")
    timestamp: datetime = Field(..., description="When the interaction happened")
    channel: str = Field(..., min_length=1, description="Marketing channel")

    campaign: str | None = Field(None, description="Campaign name or identifier")
    source: str | None = Field(None, description="Traffic source tag")
    medium: str | None = Field(None, description="Traffic medium tag")
    event: dict[str, Any] = Field(
        default_factory=dict, description="Opaque event payload"
    )

    # Populated only on the copies carried by an AttributionResult
    credit: float | None = Field(None, ge=0.0, le=1.0)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("channel", mode="before")
    @classmethod
    def normalize_channel(cls, v: Any) -> Any:
        if isinstance(v, Channel):
            return v.value
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def with_credit(self, credit: float) -> "Touchpoint":
        """Return a copy of this touchpoint carrying ``credit``."""
        return self.model_copy(update={"credit": credit})


class ConversionEvent(FrozenATNModel):
    """A terminal, value-bearing event being attributed."""

    conversion_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(..., min_length=1)
    timestamp: datetime = Field(..., description="When the conversion happened")
    conversion_value: Decimal = Field(..., ge=0, description="Monetary value")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    transaction_id: str | None = None
    items: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()
