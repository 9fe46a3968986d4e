"""PyPI client functions feeding the evolution builders."""

import json
import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from json import JSONDecodeError
from typing import Any
from urllib.error import URLError
from urllib.parse import quote
from urllib.request import urlopen

import pypistats  # type: ignore[import-untyped]

from .cache import EvolutionCache
from .evolution import DEFAULT_GRANULARITY, build_evolution
from .metadata import metadata_from_pypi
from .types import DailyDataPoint, EvolutionBucket, PackageMetadataDocument

logger = logging.getLogger("pkgtrend")

# Default number of parallel workers for API calls
DEFAULT_MAX_WORKERS = 5

# PyPI JSON API endpoint for project metadata
PYPI_JSON_URL = "https://pypi.org/pypi/{package}/json"

# Seconds to wait for the PyPI JSON API
DEFAULT_TIMEOUT = 30

# Exceptions that indicate API/network errors (not programming bugs)
_API_ERRORS = (
    JSONDecodeError,  # Malformed JSON response
    URLError,  # Network/connection errors
    ValueError,  # Invalid data format
    KeyError,  # Missing expected keys
    TypeError,  # Unexpected data types
    OSError,  # Network-related OS errors
)


class _FetchFailed(Exception):
    """Internal signal that a fetch returned no data; never cached."""


def fetch_daily_downloads(
    package_name: str,
    start_date: str | None = None,
    end_date: str | None = None,
) -> list[DailyDataPoint] | None:
    """Fetch the daily download series for a package from pypistats.

    Mirror downloads are excluded. Returns None if the package doesn't
    exist or the API is unreachable.
    """
    try:
        result = pypistats.overall(
            package_name,
            mirrors=False,
            start_date=start_date,
            end_date=end_date,
            total="daily",
            format="json",
        )
        data = json.loads(result)

        daily: list[DailyDataPoint] = [
            {"day": item["date"], "downloads": item.get("downloads", 0)}
            for item in data.get("data", [])
            if item.get("category") == "without_mirrors"
        ]
        return daily
    except _API_ERRORS as e:
        logger.warning("Error fetching downloads for %s: %s", package_name, e)
        return None


def fetch_package_metadata(
    package_name: str, timeout: float = DEFAULT_TIMEOUT
) -> PackageMetadataDocument | None:
    """Fetch release times for a package from the PyPI JSON API.

    Returns None if the package doesn't exist or the API is unreachable.
    """
    url = PYPI_JSON_URL.format(package=quote(package_name))
    try:
        with urlopen(url, timeout=timeout) as response:
            project: dict[str, Any] = json.loads(response.read())
        return metadata_from_pypi(project)
    except _API_ERRORS as e:
        logger.warning("Error fetching metadata for %s: %s", package_name, e)
        return None


def fetch_evolution(
    package_name: str,
    granularity: str = DEFAULT_GRANULARITY,
    start_date: str | None = None,
    end_date: str | None = None,
    cache: EvolutionCache | None = None,
) -> Sequence[EvolutionBucket] | None:
    """Fetch a package's daily downloads and aggregate them.

    When a cache is given, identical requests share one fetch. A failed
    fetch (None) is not cached.
    """

    def compute() -> Sequence[EvolutionBucket]:
        daily = fetch_daily_downloads(package_name, start_date, end_date)
        if daily is None:
            raise _FetchFailed(package_name)
        return build_evolution(daily, granularity, start_date, end_date)

    try:
        if cache is None:
            return compute()
        key = (package_name, granularity, start_date, end_date)
        result: Sequence[EvolutionBucket] = cache.get_or_compute(key, compute)
        return result
    except _FetchFailed:
        return None


def fetch_all_evolutions(
    packages: list[str],
    granularity: str = DEFAULT_GRANULARITY,
    start_date: str | None = None,
    end_date: str | None = None,
    cache: EvolutionCache | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> dict[str, Sequence[EvolutionBucket] | None]:
    """Fetch and aggregate evolutions for multiple packages in parallel.

    Args:
        packages: List of package names to fetch.
        granularity: Aggregation granularity for every package.
        start_date: Optional inclusive lower bound.
        end_date: Optional inclusive upper bound.
        cache: Optional shared single-flight cache.
        max_workers: Maximum number of parallel API requests.

    Returns:
        Dict mapping package names to their buckets (or None if fetch failed).
    """
    results: dict[str, Sequence[EvolutionBucket] | None] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(
                fetch_evolution, pkg, granularity, start_date, end_date, cache
            ): pkg
            for pkg in packages
        }

        for future in as_completed(futures):
            pkg = futures[future]
            results[pkg] = future.result()

    return results
