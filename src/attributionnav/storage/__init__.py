"""Storage module for touchpoints, conversions and attribution results."""

from attributionnav.storage.models import (
    AttributionCreditRecord,
    AttributionResultRecord,
    Base,
    ConversionRecord,
    TouchpointRecord,
)
from attributionnav.storage.repository import AttributionRepository
from attributionnav.storage.sql_repository import SQLAttributionRepository

__all__ = [
    "AttributionCreditRecord",
    "AttributionRepository",
    "AttributionResultRecord",
    "Base",
    "ConversionRecord",
    "SQLAttributionRepository",
    "TouchpointRecord",
]
