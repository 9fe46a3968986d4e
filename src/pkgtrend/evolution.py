"""Download evolution builders: daily, rolling-weekly, monthly and yearly.

All builders are pure. Each validates its raw daily input once through
build_daily_evolution() and returns freshly built records.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from typing import Any

from .dates import add_days, parse_day, to_utc_midnight
from .errors import InvalidCountError, InvalidGranularityError, InvalidRangeError
from .types import (
    DailyEvolutionPoint,
    EvolutionBucket,
    MonthlyBucket,
    WeeklyBucket,
    YearlyBucket,
)

logger = logging.getLogger("pkgtrend")

# Supported granularities, finest first
GRANULARITIES = ("day", "week", "month", "year")

DEFAULT_GRANULARITY = "week"

# Length of a rolling window in days
ROLLING_WINDOW_DAYS = 7

# Open bounds for range filtering
_MIN_DAY = "0001-01-01"
_MAX_DAY = "9999-12-31"


def _validate_point(point: Mapping[str, Any]) -> DailyEvolutionPoint:
    """Validate a raw point and attach its UTC-midnight timestamp."""
    day = point.get("day")
    timestamp = to_utc_midnight(day)  # type: ignore[arg-type]

    downloads = point.get("downloads")
    # bool is an int subclass; reject it explicitly
    if isinstance(downloads, bool) or not isinstance(downloads, int):
        raise InvalidCountError(
            f"Invalid downloads for {day}: expected an integer, got {downloads!r}"
        )
    if downloads < 0:
        raise InvalidCountError(f"Invalid downloads for {day}: {downloads} is negative")

    return {"day": day, "downloads": downloads, "timestamp": timestamp}  # type: ignore[typeddict-item]


def _parse_range(start_date: str, end_date: str) -> tuple[date, date]:
    start, end = parse_day(start_date), parse_day(end_date)
    if start > end:
        raise InvalidRangeError(f"Start date {start_date} is after end date {end_date}")
    return start, end


def build_daily_evolution(
    points: Iterable[Mapping[str, Any]],
) -> list[DailyEvolutionPoint]:
    """Validate a raw daily series, add timestamps and sort it by day.

    Every point is validated before anything is returned, so a bad point
    never yields a partial result. The sort is stable; duplicate days keep
    their input order.

    Raises:
        InvalidDateError: If a day is missing or malformed.
        InvalidCountError: If a downloads value is missing, negative or
            not an integer.
    """
    validated = [_validate_point(point) for point in points]
    return sorted(validated, key=lambda p: p["day"])


def build_rolling_weekly_evolution(
    daily: Iterable[Mapping[str, Any]],
    start_date: str,
    end_date: str,
) -> list[WeeklyBucket]:
    """Sum a daily series into consecutive 7-day windows over a date range.

    Windows are anchored on start_date, never overlap, and the last one is
    clamped to end_date. Days missing from the series count as zero and
    points outside [start_date, end_date] are ignored. An empty series
    yields no windows at all.

    Raises:
        InvalidDateError: If a bound or a point's day is malformed.
        InvalidRangeError: If start_date is after end_date.
    """
    range_start, range_end = _parse_range(start_date, end_date)
    points = build_daily_evolution(daily)
    if not points:
        return []

    span = (range_end - range_start).days + 1
    window_count = -(-span // ROLLING_WINDOW_DAYS)
    totals = [0] * window_count

    for point in points:
        offset = (parse_day(point["day"]) - range_start).days
        if 0 <= offset < span:
            totals[offset // ROLLING_WINDOW_DAYS] += point["downloads"]

    weeks: list[WeeklyBucket] = []
    for i, downloads in enumerate(totals):
        week_start = add_days(start_date, i * ROLLING_WINDOW_DAYS)
        last_offset = min((i + 1) * ROLLING_WINDOW_DAYS, span) - 1
        weeks.append(
            {
                "week_start": week_start,
                "week_end": add_days(start_date, last_offset),
                "downloads": downloads,
            }
        )
    return weeks


def _calendar_totals(
    daily: Iterable[Mapping[str, Any]], key_length: int
) -> list[tuple[str, int]]:
    """Sum downloads by the leading key_length characters of each day."""
    totals: dict[str, int] = {}
    for point in build_daily_evolution(daily):
        key = point["day"][:key_length]
        totals[key] = totals.get(key, 0) + point["downloads"]
    return sorted(totals.items())


def build_monthly_evolution(daily: Iterable[Mapping[str, Any]]) -> list[MonthlyBucket]:
    """Sum a daily series by calendar month (YYYY-MM), oldest first."""
    return [
        {"month": month, "downloads": downloads, "timestamp": to_utc_midnight(f"{month}-01")}
        for month, downloads in _calendar_totals(daily, 7)
    ]


def build_yearly_evolution(daily: Iterable[Mapping[str, Any]]) -> list[YearlyBucket]:
    """Sum a daily series by calendar year (YYYY), oldest first."""
    return [
        {"year": year, "downloads": downloads, "timestamp": to_utc_midnight(f"{year}-01-01")}
        for year, downloads in _calendar_totals(daily, 4)
    ]


def build_evolution(
    daily: Iterable[Mapping[str, Any]],
    granularity: str = DEFAULT_GRANULARITY,
    start_date: str | None = None,
    end_date: str | None = None,
) -> Sequence[EvolutionBucket]:
    """Build the evolution of a daily series at the requested granularity.

    Args:
        daily: Raw daily series of {day, downloads} records.
        granularity: One of GRANULARITIES.
        start_date: Optional inclusive lower bound (YYYY-MM-DD).
        end_date: Optional inclusive upper bound (YYYY-MM-DD).

    For "week", a missing bound is taken from the span of the series. For
    the other granularities, points outside the given bounds are dropped
    before aggregation.

    Raises:
        InvalidGranularityError: If granularity is not supported.
    """
    if granularity not in GRANULARITIES:
        raise InvalidGranularityError(
            f"Unknown granularity {granularity!r}; expected one of {', '.join(GRANULARITIES)}"
        )

    points = build_daily_evolution(daily)

    if granularity == "week":
        if start_date is None or end_date is None:
            if not points:
                return []
            start = points[0]["day"] if start_date is None else start_date
            end = points[-1]["day"] if end_date is None else end_date
            # A bound past the data leaves nothing to aggregate
            if parse_day(start) > parse_day(end):
                return []
        else:
            start, end = start_date, end_date
        result: Sequence[EvolutionBucket] = build_rolling_weekly_evolution(points, start, end)
    else:
        if start_date is not None or end_date is not None:
            lower = _MIN_DAY if start_date is None else start_date
            upper = _MAX_DAY if end_date is None else end_date
            _parse_range(lower, upper)
            # Validated days are fixed-width, so string order is date order
            points = [p for p in points if lower <= p["day"] <= upper]

        if granularity == "day":
            result = points
        elif granularity == "month":
            result = build_monthly_evolution(points)
        else:
            result = build_yearly_evolution(points)

    logger.debug(
        "Built %d %s buckets from %d daily points", len(result), granularity, len(points)
    )
    return result
