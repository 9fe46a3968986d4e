"""Type definitions for pkgtrend using TypedDict for known structures."""

from typing import TypedDict


class DailyDataPoint(TypedDict):
    """Raw download count for a single UTC calendar day."""

    day: str
    downloads: int


class DailyEvolutionPoint(TypedDict):
    """Daily download count with its UTC-midnight timestamp (ms)."""

    day: str
    downloads: int
    timestamp: int


class WeeklyBucket(TypedDict):
    """Downloads summed over a rolling window of at most seven days."""

    week_start: str
    week_end: str
    downloads: int


class MonthlyBucket(TypedDict):
    """Downloads summed over a calendar month."""

    month: str
    downloads: int
    timestamp: int


class YearlyBucket(TypedDict):
    """Downloads summed over a calendar year."""

    year: str
    downloads: int
    timestamp: int


class PackageMetadataDocument(TypedDict, total=False):
    """Registry metadata document, reduced to its per-version time map."""

    time: dict[str, str]


EvolutionBucket = DailyEvolutionPoint | WeeklyBucket | MonthlyBucket | YearlyBucket
