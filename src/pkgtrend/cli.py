"""CLI argument parsing and command implementations."""

import argparse
import csv
import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from tabulate import tabulate

from .api import (
    DEFAULT_MAX_WORKERS,
    fetch_all_evolutions,
    fetch_evolution,
    fetch_package_metadata,
)
from .cache import EvolutionCache
from .errors import EvolutionError
from .evolution import DEFAULT_GRANULARITY, GRANULARITIES, build_evolution
from .export import export_csv, export_json, export_markdown
from .logging import setup_logging
from .metadata import resolve_creation_date
from .utils import bucket_label, calculate_growth, make_sparkline, validate_package_name


DEFAULT_PACKAGES_FILE = "packages.yml"

OUTPUT_FORMATS = ["table", "csv", "json", "markdown", "md"]


def load_packages_from_file(file_path: str) -> list[str]:
    """Load package names from a file (YAML, JSON, or plain text).

    Supports:
    - YAML (.yml, .yaml): expects 'published' or 'packages' key with a list
    - JSON (.json): list of strings or object with 'packages'/'published' key
    - Plain text: one package name per line (comments with # supported)
    """
    path = Path(file_path)
    suffix = path.suffix.lower()
    content = path.read_text()

    if suffix in (".yml", ".yaml"):
        data = yaml.safe_load(content)
        if isinstance(data, dict):
            return data.get("published", []) or data.get("packages", []) or []
        return []

    if suffix == ".json":
        data = json.loads(content)
        if isinstance(data, list):
            return [str(p) for p in data]
        if isinstance(data, dict):
            return data.get("packages", []) or data.get("published", []) or []
        return []

    packages = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            packages.append(line)
    return packages


def load_daily_from_file(file_path: str) -> list[dict[str, Any]]:
    """Load a raw daily download series from a JSON, YAML or CSV file.

    JSON and YAML files hold either a list of {day, downloads} records or an
    object with the list under 'daily' or 'data'. CSV files need 'day' and
    'downloads' columns. Values are validated later by the evolution builders.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()
    content = path.read_text()

    if suffix == ".csv":
        rows = list(csv.DictReader(content.splitlines()))
        for row in rows:
            downloads = (row.get("downloads") or "").strip()
            if downloads.isdigit():
                row["downloads"] = int(downloads)
        return rows

    data = yaml.safe_load(content) if suffix in (".yml", ".yaml") else json.loads(content)
    if isinstance(data, dict):
        data = data.get("daily") or data.get("data") or []
    if not isinstance(data, list):
        return []

    # YAML reads unquoted dates as datetime.date
    return [
        {**item, "day": str(item["day"])} if "day" in item else dict(item)
        for item in data
        if isinstance(item, dict)
    ]


def render_buckets(
    buckets: Sequence[Mapping[str, Any]],
    granularity: str,
    fmt: str,
    package: str | None = None,
) -> str:
    """Render buckets as a terminal table or an export format."""
    if fmt == "csv":
        return export_csv(buckets, granularity)
    if fmt == "json":
        return export_json(buckets, granularity, package)
    if fmt in ("markdown", "md"):
        return export_markdown(buckets, granularity)

    rows = [[bucket_label(b), f"{b['downloads']:,}"] for b in buckets]
    headers = ["Period", "Downloads"]
    return tabulate(rows, headers=headers, tablefmt="simple")


def _emit(output: str, output_file: str | None) -> None:
    """Write to file or stdout."""
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        print(f"Exported to {output_file}")
    else:
        print(output)


def _check_package_name(name: str) -> bool:
    is_valid, error = validate_package_name(name)
    if not is_valid:
        print(f"Invalid package name '{name}': {error}")
    return is_valid


def cmd_evolution(args: argparse.Namespace) -> None:
    """Evolution command: fetch daily downloads from PyPI and aggregate them."""
    if not _check_package_name(args.package):
        return

    print(f"Fetching downloads for {args.package}...", file=sys.stderr)
    buckets = fetch_evolution(args.package, args.granularity, args.start, args.end)
    if buckets is None:
        print(f"Could not fetch downloads for '{args.package}'.")
        return
    if not buckets:
        print(f"No downloads recorded for '{args.package}'.")
        return

    _emit(
        render_buckets(buckets, args.granularity, args.format, args.package),
        args.output,
    )


def cmd_aggregate(args: argparse.Namespace) -> None:
    """Aggregate command: aggregate a daily series stored in a local file."""
    try:
        daily = load_daily_from_file(args.file)
    except FileNotFoundError:
        print(f"File not found: {args.file}")
        return
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        print(f"Could not parse {args.file}: {e}")
        return

    buckets = build_evolution(daily, args.granularity, args.start, args.end)
    if not buckets:
        print("No data to aggregate.")
        return

    _emit(render_buckets(buckets, args.granularity, args.format), args.output)


def cmd_created(args: argparse.Namespace) -> None:
    """Created command: show when a package was first published."""
    if not _check_package_name(args.package):
        return

    metadata = fetch_package_metadata(args.package)
    if metadata is None:
        print(f"Could not fetch metadata for '{args.package}'.")
        return

    created = resolve_creation_date(metadata, strict=args.strict)
    if created is None:
        print(f"No release dates found for '{args.package}'.")
        return

    print(f"{args.package} was created on {created}")


def cmd_summary(args: argparse.Namespace) -> None:
    """Summary command: weekly trend for every package listed in a file."""
    try:
        packages = load_packages_from_file(args.file)
    except FileNotFoundError:
        print(f"File not found: {args.file}")
        return
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        print(f"Could not parse {args.file}: {e}")
        return

    packages = [p for p in packages if _check_package_name(p)]
    if not packages:
        print("No packages to summarize.")
        return

    print(f"Fetching downloads for {len(packages)} packages...", file=sys.stderr)
    results = fetch_all_evolutions(
        packages,
        "week",
        args.start,
        args.end,
        cache=EvolutionCache(),
        max_workers=args.workers,
    )

    rows = []
    for pkg in packages:
        weeks = results.get(pkg)
        if weeks is None:
            rows.append([pkg, "-", "", ""])
            continue

        weekly = [w["downloads"] for w in weeks]
        growth_str = ""
        # The newest window may be partial, so compare the two before it
        if len(weekly) >= 3:
            growth = calculate_growth(weekly[-2], weekly[-3])
            if growth is not None:
                sign = "+" if growth >= 0 else ""
                growth_str = f"{sign}{growth:.1f}%"

        rows.append([pkg, f"{sum(weekly):,}", make_sparkline(weekly), growth_str])

    headers = ["Package", "Downloads", "Weekly trend", "Growth"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def _add_range_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--start",
        metavar="YYYY-MM-DD",
        help="First day of the range (inclusive)",
    )
    parser.add_argument(
        "--end",
        metavar="YYYY-MM-DD",
        help="Last day of the range (inclusive)",
    )


def _add_output_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-g",
        "--granularity",
        choices=GRANULARITIES,
        default=DEFAULT_GRANULARITY,
        help=f"Bucket size (default: {DEFAULT_GRANULARITY})",
    )
    _add_range_options(parser)
    parser.add_argument(
        "-f",
        "--format",
        choices=OUTPUT_FORMATS,
        default="table",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file (default: stdout)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Aggregate PyPI package download evolution.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug messages",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # evolution command
    evolution_parser = subparsers.add_parser(
        "evolution",
        help="Fetch and aggregate daily downloads for a package",
    )
    evolution_parser.add_argument(
        "package",
        help="Package name",
    )
    _add_output_options(evolution_parser)
    evolution_parser.set_defaults(func=cmd_evolution)

    # aggregate command
    aggregate_parser = subparsers.add_parser(
        "aggregate",
        help="Aggregate a daily series from a file (JSON, YAML, or CSV)",
    )
    aggregate_parser.add_argument(
        "file",
        help="File holding {day, downloads} records",
    )
    _add_output_options(aggregate_parser)
    aggregate_parser.set_defaults(func=cmd_aggregate)

    # created command
    created_parser = subparsers.add_parser(
        "created",
        help="Show when a package was first published",
    )
    created_parser.add_argument(
        "package",
        help="Package name",
    )
    created_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on malformed release timestamps instead of skipping them",
    )
    created_parser.set_defaults(func=cmd_created)

    # summary command
    summary_parser = subparsers.add_parser(
        "summary",
        help="Show weekly download trends for a list of packages",
    )
    summary_parser.add_argument(
        "file",
        nargs="?",
        default=DEFAULT_PACKAGES_FILE,
        help=f"Package list - supports .yml, .json, or plain text (default: {DEFAULT_PACKAGES_FILE})",
    )
    _add_range_options(summary_parser)
    summary_parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=DEFAULT_MAX_WORKERS,
        help=f"Parallel API requests (default: {DEFAULT_MAX_WORKERS})",
    )
    summary_parser.set_defaults(func=cmd_summary)

    return parser


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    setup_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        args.func(args)
    except EvolutionError as e:
        print(f"Error: {e}")
        sys.exit(1)
