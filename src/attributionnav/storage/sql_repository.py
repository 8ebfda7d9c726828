"""SQLAlchemy implementation of the attribution repository."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from sqlalchemy import and_, desc, distinct, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from attributionnav.attribution.calculator import allocate_value
from attributionnav.core.config import Settings, get_settings
from attributionnav.core.exceptions import ConfigurationError, RepositoryError
from attributionnav.models.attribution import (
    AttributionModel,
    AttributionModelType,
    AttributionResult,
)
from attributionnav.models.base import ensure_utc, utc_now
from attributionnav.models.events import ConversionEvent, Touchpoint
from attributionnav.models.metrics import (
    ChannelPerformance,
    ConversionPath,
    ModelPerformance,
)
from attributionnav.models.training import TrainingJourney
from attributionnav.storage.aggregation import build_training_journeys, summarize_paths
from attributionnav.storage.models import (
    AttributionCreditRecord,
    AttributionResultRecord,
    Base,
    ConversionRecord,
    TouchpointRecord,
)
from attributionnav.storage.repository import AttributionRepository

logger = logging.getLogger(__name__)

# Dialect insert constructs supporting ON CONFLICT
UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _to_db(value: datetime) -> datetime:
    """Naive UTC datetime for storage."""
    return ensure_utc(value).replace(tzinfo=None)


def _from_db(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _touchpoint_from_record(record: TouchpointRecord) -> Touchpoint:
    return Touchpoint(
        touchpoint_id=record.id,
        user_id=record.user_id,
        timestamp=_from_db(record.timestamp),
        channel=record.channel,
        campaign=record.campaign,
        source=record.source,
        medium=record.medium,
        event=record.event_data or {},
    )


def _conversion_from_record(record: ConversionRecord) -> ConversionEvent:
    return ConversionEvent(
        conversion_id=record.id,
        user_id=record.user_id,
        timestamp=_from_db(record.timestamp),
        conversion_value=_to_decimal(record.conversion_value),
        currency=record.currency,
        transaction_id=record.transaction_id,
        items=record.items or [],
    )


def _result_from_record(record: AttributionResultRecord) -> AttributionResult:
    model = AttributionModel(
        model_id=record.model_id,
        name=record.model_name,
        model_type=record.model_type,
        lookback_window=record.lookback_window,
        time_decay_half_life_days=record.time_decay_half_life_days,
    )
    touchpoints = [
        Touchpoint(
            touchpoint_id=credit.touchpoint_id,
            user_id=credit.user_id,
            timestamp=_from_db(credit.timestamp),
            channel=credit.channel,
            campaign=credit.campaign,
            source=credit.source,
            medium=credit.medium,
            credit=credit.credit,
        )
        for credit in record.credits
    ]
    return AttributionResult(
        result_id=record.id,
        conversion_id=record.conversion_id,
        user_id=record.user_id,
        conversion_value=_to_decimal(record.conversion_value),
        currency=record.currency,
        model=model,
        touchpoints=touchpoints,
        calculated_at=_from_db(record.calculated_at),
    )


class SQLAttributionRepository(AttributionRepository):
    """SQLAlchemy async storage for touchpoints, conversions and results."""

    def __init__(
        self, settings: Settings | None = None, database_url: str | None = None
    ):
        """Initialize the repository with a database connection.

        Args:
            settings: Application settings, defaults to ``get_settings()``
            database_url: Explicit async URL, overrides the configured one
        """
        self.settings = settings or get_settings()
        self.database_url = database_url or self.settings.database_url

        url = make_url(self.database_url)
        backend = url.get_backend_name()
        if backend not in UPSERT_INSERTS:
            raise ConfigurationError(f"Unsupported database backend: {backend}")
        self._insert = UPSERT_INSERTS[backend]

        if backend == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

        self.async_engine = create_async_engine(
            self.database_url, echo=self.settings.storage.echo
        )
        self.AsyncSessionLocal = async_sessionmaker(
            self.async_engine, expire_on_commit=False, class_=AsyncSession
        )

        logger.info(f"Storage initialized with {url.render_as_string(hide_password=True)}")

    async def create_schema(self) -> None:
        """Create all tables that do not exist yet."""
        try:
            async with self.async_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create schema: {e}")
            raise RepositoryError("create_schema", e) from e

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.async_engine.dispose()

    async def save_touchpoint(self, touchpoint: Touchpoint) -> str:
        """Insert a touchpoint, or refresh ``updated_at`` if it already exists.

        A single ``INSERT ... ON CONFLICT (id) DO UPDATE`` statement, so
        concurrent re-submissions of one touchpoint never collide.
        """
        now = _to_db(utc_now())
        statement = (
            self._insert(TouchpointRecord)
            .values(
                id=touchpoint.touchpoint_id,
                user_id=touchpoint.user_id,
                timestamp=_to_db(touchpoint.timestamp),
                channel=touchpoint.channel,
                campaign=touchpoint.campaign,
                source=touchpoint.source,
                medium=touchpoint.medium,
                event_data=touchpoint.event,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[TouchpointRecord.id], set_={"updated_at": now}
            )
        )

        async with self.AsyncSessionLocal() as session:
            try:
                await session.execute(statement)
                await session.commit()
                return touchpoint.touchpoint_id
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to save touchpoint: {e}")
                raise RepositoryError("save_touchpoint", e) from e

    async def get_touchpoints_by_user(
        self,
        user_id: str,
        lookback_days: int,
        as_of: datetime | None = None,
    ) -> list[Touchpoint]:
        """Touchpoints of a user in ``[as_of - lookback_days, as_of]``, oldest first."""
        end = ensure_utc(as_of) if as_of else utc_now()
        start = end - timedelta(days=lookback_days)

        async with self.AsyncSessionLocal() as session:
            try:
                query = (
                    select(TouchpointRecord)
                    .where(
                        and_(
                            TouchpointRecord.user_id == user_id,
                            TouchpointRecord.timestamp >= _to_db(start),
                            TouchpointRecord.timestamp <= _to_db(end),
                        )
                    )
                    .order_by(TouchpointRecord.timestamp, TouchpointRecord.id)
                )
                result = await session.execute(query)
                return [_touchpoint_from_record(r) for r in result.scalars().all()]
            except SQLAlchemyError as e:
                logger.error(f"Failed to get touchpoints for user {user_id}: {e}")
                raise RepositoryError("get_touchpoints_by_user", e) from e

    async def save_conversion(self, conversion: ConversionEvent) -> str:
        """Record a conversion; an existing identifier is left unchanged."""
        statement = (
            self._insert(ConversionRecord)
            .values(
                id=conversion.conversion_id,
                user_id=conversion.user_id,
                timestamp=_to_db(conversion.timestamp),
                conversion_value=conversion.conversion_value,
                currency=conversion.currency,
                transaction_id=conversion.transaction_id,
                items=conversion.items,
                created_at=_to_db(utc_now()),
            )
            .on_conflict_do_nothing(index_elements=[ConversionRecord.id])
        )

        async with self.AsyncSessionLocal() as session:
            try:
                await session.execute(statement)
                await session.commit()
                return conversion.conversion_id
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to save conversion: {e}")
                raise RepositoryError("save_conversion", e) from e

    async def get_conversion(self, conversion_id: str) -> ConversionEvent | None:
        async with self.AsyncSessionLocal() as session:
            try:
                record = await session.get(ConversionRecord, conversion_id)
                return _conversion_from_record(record) if record else None
            except SQLAlchemyError as e:
                logger.error(f"Failed to get conversion {conversion_id}: {e}")
                raise RepositoryError("get_conversion", e) from e

    async def get_conversions_by_user(self, user_id: str) -> list[ConversionEvent]:
        async with self.AsyncSessionLocal() as session:
            try:
                query = (
                    select(ConversionRecord)
                    .where(ConversionRecord.user_id == user_id)
                    .order_by(ConversionRecord.timestamp, ConversionRecord.id)
                )
                result = await session.execute(query)
                return [_conversion_from_record(r) for r in result.scalars().all()]
            except SQLAlchemyError as e:
                logger.error(f"Failed to get conversions for user {user_id}: {e}")
                raise RepositoryError("get_conversions_by_user", e) from e

    async def save_attribution_result(self, result: AttributionResult) -> str:
        """Persist the result row and every credit row in one transaction."""
        model_type = AttributionModelType.parse(result.model.model_type).value
        values = allocate_value(
            result.conversion_value, [tp.credit or 0.0 for tp in result.touchpoints]
        )

        record = AttributionResultRecord(
            id=result.result_id,
            conversion_id=result.conversion_id,
            user_id=result.user_id,
            conversion_value=result.conversion_value,
            currency=result.currency,
            model_id=result.model.model_id,
            model_type=model_type,
            model_name=result.model.name,
            lookback_window=result.model.lookback_window,
            time_decay_half_life_days=result.model.time_decay_half_life_days,
            calculated_at=_to_db(result.calculated_at),
            touchpoint_count=len(result.touchpoints),
        )
        record.credits = [
            AttributionCreditRecord(
                conversion_id=result.conversion_id,
                model_type=model_type,
                position=position,
                touchpoint_id=tp.touchpoint_id,
                user_id=tp.user_id,
                timestamp=_to_db(tp.timestamp),
                channel=tp.channel,
                campaign=tp.campaign,
                source=tp.source,
                medium=tp.medium,
                credit=tp.credit or 0.0,
                value_attributed=value,
            )
            for position, (tp, value) in enumerate(zip(result.touchpoints, values))
        ]

        async with self.AsyncSessionLocal() as session:
            try:
                session.add(record)
                await session.commit()
                logger.debug(
                    f"Saved attribution result {result.result_id} "
                    f"({len(record.credits)} credits)"
                )
                return result.result_id
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to save attribution result: {e}")
                raise RepositoryError("save_attribution_result", e) from e

    async def get_attribution_results(
        self,
        start_date: datetime,
        end_date: datetime,
        model_type: AttributionModelType | str | None = None,
    ) -> list[AttributionResult]:
        filters = [
            AttributionResultRecord.calculated_at >= _to_db(start_date),
            AttributionResultRecord.calculated_at <= _to_db(end_date),
        ]
        if model_type is not None:
            filters.append(
                AttributionResultRecord.model_type
                == AttributionModelType.parse(model_type).value
            )

        async with self.AsyncSessionLocal() as session:
            try:
                query = (
                    select(AttributionResultRecord)
                    .where(and_(*filters))
                    .order_by(AttributionResultRecord.calculated_at)
                )
                result = await session.execute(query)
                return [_result_from_record(r) for r in result.scalars().all()]
            except SQLAlchemyError as e:
                logger.error(f"Failed to get attribution results: {e}")
                raise RepositoryError("get_attribution_results", e) from e

    async def get_training_data(
        self,
        start_date: datetime,
        end_date: datetime,
        lookback_days: int = 30,
    ) -> list[TrainingJourney]:
        """Journeys of touchpoints in the range, labelled by a following conversion."""
        async with self.AsyncSessionLocal() as session:
            try:
                touchpoint_rows = await session.execute(
                    select(TouchpointRecord)
                    .where(
                        and_(
                            TouchpointRecord.timestamp >= _to_db(start_date),
                            TouchpointRecord.timestamp <= _to_db(end_date),
                        )
                    )
                    .order_by(TouchpointRecord.user_id, TouchpointRecord.timestamp)
                )
                touchpoints = [
                    _touchpoint_from_record(r) for r in touchpoint_rows.scalars().all()
                ]
                if not touchpoints:
                    return []

                users = {tp.user_id for tp in touchpoints}
                conversion_query = select(
                    ConversionRecord.user_id, ConversionRecord.timestamp
                ).where(
                    and_(
                        ConversionRecord.user_id.in_(users),
                        ConversionRecord.timestamp > _to_db(start_date),
                        ConversionRecord.timestamp
                        <= _to_db(end_date + timedelta(days=lookback_days)),
                    )
                )
                conversion_rows = (await session.execute(conversion_query)).all()
            except SQLAlchemyError as e:
                logger.error(f"Failed to get training data: {e}")
                raise RepositoryError("get_training_data", e) from e

        conversion_times: dict[str, list[datetime]] = {}
        for user_id, timestamp in conversion_rows:
            conversion_times.setdefault(user_id, []).append(_from_db(timestamp))

        return build_training_journeys(touchpoints, conversion_times, lookback_days)

    async def get_channel_performance(
        self, start_date: datetime, end_date: datetime
    ) -> dict[str, ChannelPerformance]:
        credit = AttributionCreditRecord
        async with self.AsyncSessionLocal() as session:
            try:
                query = (
                    select(
                        credit.channel,
                        func.count(distinct(credit.user_id)),
                        func.count(distinct(credit.touchpoint_id)),
                        func.count(distinct(credit.conversion_id)),
                        func.sum(credit.value_attributed),
                        func.avg(credit.credit),
                    )
                    .join(
                        AttributionResultRecord,
                        AttributionResultRecord.id == credit.result_id,
                    )
                    .where(
                        and_(
                            AttributionResultRecord.calculated_at >= _to_db(start_date),
                            AttributionResultRecord.calculated_at <= _to_db(end_date),
                        )
                    )
                    .group_by(credit.channel)
                )
                rows = (await session.execute(query)).all()
            except SQLAlchemyError as e:
                logger.error(f"Failed to get channel performance: {e}")
                raise RepositoryError("get_channel_performance", e) from e

        return {
            channel: ChannelPerformance(
                channel=channel,
                unique_users=users,
                touchpoints=touchpoints,
                conversions=conversions,
                total_value=_to_decimal(total_value),
                avg_credit=min(1.0, float(avg_credit or 0.0)),
            )
            for channel, users, touchpoints, conversions, total_value, avg_credit in rows
        }

    async def get_common_paths(
        self, start_date: datetime, end_date: datetime, limit: int = 10
    ) -> list[ConversionPath]:
        results = await self.get_attribution_results(start_date, end_date)
        return summarize_paths(results, limit=limit)

    async def get_model_performance(
        self, start_date: datetime, end_date: datetime
    ) -> list[ModelPerformance]:
        record = AttributionResultRecord
        async with self.AsyncSessionLocal() as session:
            try:
                query = (
                    select(
                        record.model_type,
                        func.count(record.id).label("calculations"),
                        func.avg(record.touchpoint_count),
                        func.sum(record.conversion_value),
                        func.avg(record.conversion_value),
                    )
                    .where(
                        and_(
                            record.calculated_at >= _to_db(start_date),
                            record.calculated_at <= _to_db(end_date),
                        )
                    )
                    .group_by(record.model_type)
                    .order_by(desc("calculations"), record.model_type)
                )
                rows = (await session.execute(query)).all()
            except SQLAlchemyError as e:
                logger.error(f"Failed to get model performance: {e}")
                raise RepositoryError("get_model_performance", e) from e

        return [
            ModelPerformance(
                model_type=model_type,
                calculations=calculations,
                avg_touchpoints=float(avg_touchpoints or 0.0),
                total_value=_to_decimal(total_value),
                avg_conversion_value=_to_decimal(avg_value),
            )
            for model_type, calculations, avg_touchpoints, total_value, avg_value in rows
        ]
