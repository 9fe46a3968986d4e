"""Export functions for evolution buckets in various formats."""

import csv
import io
import json
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

# Column order per granularity
BUCKET_COLUMNS: dict[str, list[str]] = {
    "day": ["day", "downloads", "timestamp"],
    "week": ["week_start", "week_end", "downloads"],
    "month": ["month", "downloads", "timestamp"],
    "year": ["year", "downloads", "timestamp"],
}


def export_csv(
    buckets: Sequence[Mapping[str, Any]],
    granularity: str,
    output: io.StringIO | None = None,
) -> str:
    """Export buckets to CSV format, one row per bucket."""
    if output is None:
        output = io.StringIO()

    columns = BUCKET_COLUMNS[granularity]
    writer = csv.writer(output)
    writer.writerow(columns)
    for bucket in buckets:
        writer.writerow([bucket[column] for column in columns])

    return output.getvalue()


def export_json(
    buckets: Sequence[Mapping[str, Any]],
    granularity: str,
    package: str | None = None,
) -> str:
    """Export buckets to JSON with generation metadata."""
    export_data = {
        "generated": datetime.now().isoformat(),
        "package": package,
        "granularity": granularity,
        "buckets": [dict(bucket) for bucket in buckets],
    }
    return json.dumps(export_data, indent=2)


def export_markdown(buckets: Sequence[Mapping[str, Any]], granularity: str) -> str:
    """Export buckets to a Markdown table."""
    columns = BUCKET_COLUMNS[granularity]
    header = " | ".join(column.replace("_", " ").title() for column in columns)
    align = "|".join("-----:" if column == "downloads" else "------" for column in columns)
    lines = [f"| {header} |", f"|{align}|"]

    for bucket in buckets:
        cells = [
            f"{bucket[column]:,}" if column == "downloads" else str(bucket[column])
            for column in columns
        ]
        lines.append(f"| {' | '.join(cells)} |")

    return "\n".join(lines)
