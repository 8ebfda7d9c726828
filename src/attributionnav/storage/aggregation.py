"""In-process aggregation over rows fetched by the SQL repository."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import Decimal

from attributionnav.models.attribution import AttributionResult
from attributionnav.models.events import Touchpoint
from attributionnav.models.metrics import ConversionPath
from attributionnav.models.training import TrainingJourney


def build_training_journeys(
    touchpoints: Iterable[Touchpoint],
    conversion_times: dict[str, list[datetime]],
    lookback_days: int = 30,
) -> list[TrainingJourney]:
    """Group touchpoints per user and label each journey.

    A journey is converted when some conversion of the user falls after
    one of its touchpoints and within ``lookback_days`` of it. Converted
    journeys end at the earliest such conversion; later touchpoints are
    dropped.
    """
    window = timedelta(days=lookback_days)
    by_user: dict[str, list[Touchpoint]] = defaultdict(list)
    for touchpoint in touchpoints:
        by_user[touchpoint.user_id].append(touchpoint)

    journeys = []
    for user_id in sorted(by_user):
        journey = sorted(by_user[user_id], key=lambda tp: tp.timestamp)
        conversions = sorted(conversion_times.get(user_id, []))

        converted_at = None
        for conversion_time in conversions:
            if any(
                tp.timestamp < conversion_time <= tp.timestamp + window
                for tp in journey
            ):
                converted_at = conversion_time
                break

        if converted_at is not None:
            journey = [tp for tp in journey if tp.timestamp <= converted_at]

        journeys.append(
            TrainingJourney(
                touchpoints=journey,
                converted=converted_at is not None,
                conversion_timestamp=converted_at,
            )
        )
    return journeys


def summarize_paths(
    results: Iterable[AttributionResult], limit: int = 10
) -> list[ConversionPath]:
    """Most frequent channel sequences among non-empty results."""
    occurrences: dict[tuple[str, ...], int] = defaultdict(int)
    conversions: dict[tuple[str, ...], dict[str, Decimal]] = defaultdict(dict)

    for result in results:
        if not result.touchpoints:
            continue
        path = tuple(result.channel_path())
        occurrences[path] += 1
        conversions[path][result.conversion_id] = result.conversion_value

    paths = []
    for path, count in occurrences.items():
        values = list(conversions[path].values())
        paths.append(
            ConversionPath(
                path=list(path),
                occurrences=count,
                total_conversions=len(values),
                avg_conversion_value=sum(values, Decimal("0")) / len(values),
            )
        )

    paths.sort(key=lambda p: (-p.occurrences, -p.total_conversions, p.label))
    return paths[:limit]
