"""Utility functions for pkgtrend."""

import re
from collections.abc import Mapping, Sequence
from typing import Any

# -----------------------------------------------------------------------------
# Package Validation Constants
# -----------------------------------------------------------------------------

# PyPI package name pattern (PEP 508 compatible)
_PACKAGE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?$")
_MAX_PACKAGE_NAME_LENGTH = 100

# -----------------------------------------------------------------------------
# Sparkline Constants
# -----------------------------------------------------------------------------

# Default width for sparkline charts (number of buckets shown)
SPARKLINE_WIDTH = 12

# Characters used to represent values in sparklines (low to high)
SPARKLINE_CHARS = " _.,:-=+*#"


def validate_package_name(name: str) -> tuple[bool, str]:
    """Validate that a package name follows PyPI naming conventions.

    Returns:
        Tuple of (is_valid, error_message). If valid, error_message is empty.
    """
    if not name:
        return False, "Package name cannot be empty"

    if len(name) > _MAX_PACKAGE_NAME_LENGTH:
        return False, f"Package name exceeds {_MAX_PACKAGE_NAME_LENGTH} characters"

    if not _PACKAGE_NAME_PATTERN.match(name):
        return False, (
            "Package name must start and end with alphanumeric characters "
            "and contain only letters, numbers, hyphens, underscores, or periods"
        )

    return True, ""


def bucket_label(bucket: Mapping[str, Any]) -> str:
    """Return the period a bucket covers, whatever its granularity."""
    if "week_start" in bucket:
        return f"{bucket['week_start']}..{bucket['week_end']}"
    for key in ("day", "month", "year"):
        if key in bucket:
            return str(bucket[key])
    raise KeyError("bucket has no period field")


def calculate_growth(current: int | None, previous: int | None) -> float | None:
    """Calculate percentage growth between two bucket totals."""
    if previous is None or previous == 0:
        return None
    if current is None:
        return None
    return ((current - previous) / previous) * 100


def make_sparkline(values: Sequence[int], width: int = SPARKLINE_WIDTH) -> str:
    """Render the last width values as an ASCII sparkline.

    Shorter series are left-padded with blanks rather than zeros so a young
    package doesn't read as a collapse in downloads.
    """
    if not values:
        return " " * width

    values = list(values[-width:])
    padding = " " * (width - len(values))

    low, high = min(values), max(values)
    if high == low:
        return padding + SPARKLINE_CHARS[len(SPARKLINE_CHARS) // 2] * len(values)

    scale = len(SPARKLINE_CHARS) - 1
    return padding + "".join(
        SPARKLINE_CHARS[int((v - low) / (high - low) * scale)] for v in values
    )
