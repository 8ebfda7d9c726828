"""Base model with common configuration."""

from datetime import datetime, timezone

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseATNModel(PydanticBaseModel):
    """Base model for all AttributionNav models."""

    model_config = ConfigDict(
        # Use enum values instead of names
        use_enum_values=True,
        # Allow population by field name
        populate_by_name=True,
        # model_id / model_type are domain fields
        protected_namespaces=(),
    )


class FrozenATNModel(BaseATNModel):
    """Base model for records that are immutable once recorded."""

    model_config = ConfigDict(
        use_enum_values=True,
        populate_by_name=True,
        protected_namespaces=(),
        frozen=True,
    )
