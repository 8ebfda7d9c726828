"""SQLAlchemy models for storage."""

import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship

# Monetary columns keep four decimal places
MONEY = Numeric(18, 4, asdecimal=True)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class TouchpointRecord(Base):
    """A recorded marketing interaction."""

    __tablename__ = "attribution_touchpoints"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False)
    # Stored as naive UTC
    timestamp = Column(DateTime, nullable=False)
    channel = Column(String(50), nullable=False)
    campaign = Column(String(255), nullable=True)
    source = Column(String(255), nullable=True)
    medium = Column(String(255), nullable=True)
    event_data = Column(JSON, default=dict)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(
        DateTime, nullable=False, default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_touchpoint_user_time", "user_id", "timestamp"),
        Index("idx_touchpoint_time", "timestamp"),
    )


class ConversionRecord(Base):
    """A value-bearing conversion event."""

    __tablename__ = "attribution_conversions"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    conversion_value = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    transaction_id = Column(String(255), nullable=True)
    items = Column(JSON, default=list)

    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (Index("idx_conversion_user_time", "user_id", "timestamp"),)


class AttributionResultRecord(Base):
    """One model's attribution of one conversion."""

    __tablename__ = "attribution_results"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversion_id = Column(String(64), nullable=False)
    user_id = Column(String(255), nullable=True)
    conversion_value = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    model_id = Column(String(100), nullable=False)
    model_type = Column(String(50), nullable=False)
    model_name = Column(String(255), nullable=False)
    lookback_window = Column(Integer, nullable=False)
    time_decay_half_life_days = Column(Float, nullable=False)

    calculated_at = Column(DateTime, nullable=False)
    touchpoint_count = Column(Integer, nullable=False, default=0)

    credits = relationship(
        "AttributionCreditRecord",
        back_populates="result",
        cascade="all, delete-orphan",
        order_by="AttributionCreditRecord.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_result_conversion_model", "conversion_id", "model_type"),
        Index("idx_result_calculated", "calculated_at"),
    )


class AttributionCreditRecord(Base):
    """Credit given to one touchpoint within a result.

    Carries a snapshot of the touchpoint so a result can be rebuilt as it
    was computed.
    """

    __tablename__ = "attribution_credits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    result_id = Column(
        String(64),
        ForeignKey("attribution_results.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversion_id = Column(String(64), nullable=False)
    model_type = Column(String(50), nullable=False)
    position = Column(Integer, nullable=False)

    touchpoint_id = Column(String(64), nullable=False)
    user_id = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    channel = Column(String(50), nullable=False)
    campaign = Column(String(255), nullable=True)
    source = Column(String(255), nullable=True)
    medium = Column(String(255), nullable=True)

    credit = Column(Float, nullable=False)
    value_attributed = Column(MONEY, nullable=False)

    result = relationship("AttributionResultRecord", back_populates="credits")

    __table_args__ = (
        Index("idx_credit_result", "result_id", "position"),
        Index("idx_credit_touchpoint", "touchpoint_id"),
        Index("idx_credit_channel", "channel"),
    )
