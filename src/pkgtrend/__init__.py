"""pkgtrend - aggregate package download counts into evolution buckets."""

from .cache import EvolutionCache
from .dates import add_days, compare_days, from_utc_midnight, to_utc_midnight
from .errors import (
    EvolutionError,
    InvalidCountError,
    InvalidDateError,
    InvalidGranularityError,
    InvalidRangeError,
    InvalidTimestampError,
)
from .evolution import (
    GRANULARITIES,
    build_daily_evolution,
    build_evolution,
    build_monthly_evolution,
    build_rolling_weekly_evolution,
    build_yearly_evolution,
)
from .metadata import classify_time_key, metadata_from_pypi, resolve_creation_date

__version__ = "0.1.0"

__all__ = [
    "GRANULARITIES",
    "EvolutionCache",
    "EvolutionError",
    "InvalidCountError",
    "InvalidDateError",
    "InvalidGranularityError",
    "InvalidRangeError",
    "InvalidTimestampError",
    "add_days",
    "build_daily_evolution",
    "build_evolution",
    "build_monthly_evolution",
    "build_rolling_weekly_evolution",
    "build_yearly_evolution",
    "classify_time_key",
    "compare_days",
    "from_utc_midnight",
    "metadata_from_pypi",
    "resolve_creation_date",
    "to_utc_midnight",
]
