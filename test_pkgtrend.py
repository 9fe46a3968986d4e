"""Tests for pkgtrend's cache, PyPI client, exports and CLI."""

import json
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import MagicMock, patch
from urllib.error import URLError

import pytest
import yaml

from pkgtrend.api import (
    fetch_all_evolutions,
    fetch_daily_downloads,
    fetch_evolution,
    fetch_package_metadata,
)
from pkgtrend.cache import EvolutionCache
from pkgtrend.cli import (
    DEFAULT_PACKAGES_FILE,
    load_daily_from_file,
    load_packages_from_file,
    main,
)
from pkgtrend.export import export_csv, export_json, export_markdown
from pkgtrend.utils import (
    SPARKLINE_WIDTH,
    bucket_label,
    calculate_growth,
    make_sparkline,
    validate_package_name,
)

DAILY = [
    {"day": "2025-01-15", "downloads": 10},
    {"day": "2025-01-20", "downloads": 5},
    {"day": "2025-02-10", "downloads": 20},
]

WEEKS = [
    {"week_start": "2025-03-01", "week_end": "2025-03-07", "downloads": 1234},
    {"week_start": "2025-03-08", "week_end": "2025-03-09", "downloads": 10},
]


def overall_response(rows: list[tuple[str, str, int]]) -> str:
    """Build a pypistats overall JSON response."""
    return json.dumps(
        {
            "data": [
                {"category": category, "date": day, "downloads": downloads}
                for category, day, downloads in rows
            ],
            "package": "test-package",
            "type": "overall_downloads",
        }
    )


@pytest.fixture
def temp_file():
    """Yield a factory writing content to a temporary file with a suffix."""
    paths = []

    def make(content: str, suffix: str) -> str:
        with tempfile.NamedTemporaryFile(mode="w", suffix=suffix, delete=False) as f:
            f.write(content)
            paths.append(f.name)
        return f.name

    yield make
    for path in paths:
        Path(path).unlink(missing_ok=True)


class TestEvolutionCache:
    """Tests for the single-flight cache."""

    def test_computes_once(self):
        """Repeated calls with the same key should compute once."""
        cache = EvolutionCache()
        compute = MagicMock(return_value=[1, 2, 3])

        assert cache.get_or_compute("k", compute) == [1, 2, 3]
        assert cache.get_or_compute("k", compute) == [1, 2, 3]
        assert compute.call_count == 1
        assert "k" in cache
        assert len(cache) == 1

    def test_distinct_keys(self):
        """Different keys should compute separately."""
        cache = EvolutionCache()
        assert cache.get_or_compute(("a", "week"), lambda: "a") == "a"
        assert cache.get_or_compute(("a", "month"), lambda: "b") == "b"
        assert len(cache) == 2

    def test_concurrent_callers_share_computation(self):
        """Concurrent identical requests should share one computation."""
        cache = EvolutionCache()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def compute():
            calls.append(1)
            started.set()
            release.wait(timeout=5)
            return "result"

        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = [executor.submit(cache.get_or_compute, "k", compute) for _ in range(4)]
            assert started.wait(timeout=5)
            release.set()
            results = [f.result(timeout=5) for f in futures]

        assert results == ["result"] * 4
        assert len(calls) == 1

    def test_failure_evicted(self):
        """A failed computation should propagate and not be cached."""
        cache = EvolutionCache()

        def boom():
            raise RuntimeError("fetch failed")

        with pytest.raises(RuntimeError, match="fetch failed"):
            cache.get_or_compute("k", boom)

        assert "k" not in cache
        assert cache.get_or_compute("k", lambda: "ok") == "ok"

    def test_invalidate_and_clear(self):
        """invalidate and clear should drop entries."""
        cache = EvolutionCache()
        cache.get_or_compute("a", lambda: 1)
        cache.get_or_compute("b", lambda: 2)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert "a" not in cache

        cache.clear()
        assert len(cache) == 0


class TestFetchDailyDownloads:
    """Tests for fetching daily series from pypistats."""

    def test_parses_response(self):
        """Only without_mirrors rows should be kept."""
        response = overall_response(
            [
                ("with_mirrors", "2025-03-01", 150),
                ("without_mirrors", "2025-03-01", 100),
                ("without_mirrors", "2025-03-02", 120),
            ]
        )

        with patch("pkgtrend.api.pypistats.overall", return_value=response) as mock:
            daily = fetch_daily_downloads("test-package", "2025-03-01", "2025-03-02")

        assert daily == [
            {"day": "2025-03-01", "downloads": 100},
            {"day": "2025-03-02", "downloads": 120},
        ]
        kwargs = mock.call_args.kwargs
        assert kwargs["mirrors"] is False
        assert kwargs["total"] == "daily"
        assert kwargs["start_date"] == "2025-03-01"

    def test_handles_error(self, caplog):
        """API errors should be logged and return None."""
        with patch("pkgtrend.api.pypistats.overall", side_effect=ValueError("API error")):
            daily = fetch_daily_downloads("missing-package")

        assert daily is None
        assert "Error fetching downloads for missing-package" in caplog.text


class TestFetchPackageMetadata:
    """Tests for fetching release times from the PyPI JSON API."""

    def test_parses_response(self):
        """Release upload times should become a time map."""
        project = {
            "releases": {
                "0.1.0": [{"upload_time_iso_8601": "2019-05-01T08:00:00.000000Z"}],
                "1.0.0": [{"upload_time_iso_8601": "2020-05-01T08:00:00.000000Z"}],
            }
        }
        response = MagicMock()
        response.read.return_value = json.dumps(project).encode()

        with patch("pkgtrend.api.urlopen") as mock_urlopen:
            mock_urlopen.return_value.__enter__.return_value = response
            doc = fetch_package_metadata("test-package")

        assert doc == {
            "time": {
                "0.1.0": "2019-05-01T08:00:00.000000Z",
                "1.0.0": "2020-05-01T08:00:00.000000Z",
            }
        }
        assert mock_urlopen.call_args.args[0] == "https://pypi.org/pypi/test-package/json"

    def test_handles_error(self, caplog):
        """Network errors should be logged and return None."""
        with patch("pkgtrend.api.urlopen", side_effect=URLError("down")):
            assert fetch_package_metadata("test-package") is None

        assert "Error fetching metadata for test-package" in caplog.text


class TestFetchEvolution:
    """Tests for fetch-and-aggregate helpers."""

    def test_aggregates(self):
        """Fetched series should be aggregated at the requested granularity."""
        with patch("pkgtrend.api.fetch_daily_downloads", return_value=DAILY):
            result = fetch_evolution("pkg", "month")

        assert [(m["month"], m["downloads"]) for m in result] == [
            ("2025-01", 15),
            ("2025-02", 20),
        ]

    def test_cache_shares_fetch(self):
        """Identical cached requests should fetch once."""
        cache = EvolutionCache()
        with patch("pkgtrend.api.fetch_daily_downloads", return_value=DAILY) as mock:
            first = fetch_evolution("pkg", "year", cache=cache)
            second = fetch_evolution("pkg", "year", cache=cache)

        assert first == second
        assert mock.call_count == 1
        assert ("pkg", "year", None, None) in cache

    def test_failed_fetch_not_cached(self):
        """A failed fetch should return None and leave no cache entry."""
        cache = EvolutionCache()
        with patch("pkgtrend.api.fetch_daily_downloads", return_value=None):
            assert fetch_evolution("pkg", "week", cache=cache) is None

        assert len(cache) == 0

    def test_fetch_all(self):
        """fetch_all_evolutions should return results keyed by package."""

        def fake_fetch(pkg, start_date=None, end_date=None):
            return None if pkg == "broken" else DAILY

        with patch("pkgtrend.api.fetch_daily_downloads", side_effect=fake_fetch):
            results = fetch_all_evolutions(["pkg-a", "broken"], "year", max_workers=2)

        assert results["broken"] is None
        assert results["pkg-a"][0]["downloads"] == 35


class TestExport:
    """Tests for bucket exports."""

    def test_csv(self):
        """CSV should have granularity-specific columns."""
        lines = export_csv(WEEKS, "week").splitlines()
        assert lines[0] == "week_start,week_end,downloads"
        assert lines[1] == "2025-03-01,2025-03-07,1234"

    def test_json(self):
        """JSON should carry metadata and the buckets."""
        data = json.loads(export_json(WEEKS, "week", package="pkg"))
        assert data["package"] == "pkg"
        assert data["granularity"] == "week"
        assert data["buckets"] == WEEKS
        assert "generated" in data

    def test_markdown(self):
        """Markdown should render a table with formatted counts."""
        lines = export_markdown(WEEKS, "week").splitlines()
        assert lines[0] == "| Week Start | Week End | Downloads |"
        assert lines[2] == "| 2025-03-01 | 2025-03-07 | 1,234 |"


class TestUtils:
    """Tests for utility helpers."""

    def test_validate_package_name(self):
        """Package names should follow PyPI conventions."""
        assert validate_package_name("requests") == (True, "")
        assert validate_package_name("")[0] is False
        assert validate_package_name("-bad")[0] is False
        assert validate_package_name("a" * 101)[0] is False

    def test_bucket_label(self):
        """bucket_label should describe any granularity."""
        assert bucket_label(WEEKS[0]) == "2025-03-01..2025-03-07"
        assert bucket_label({"month": "2025-01", "downloads": 1}) == "2025-01"
        assert bucket_label({"year": "2025", "downloads": 1}) == "2025"
        assert bucket_label({"day": "2025-01-01", "downloads": 1}) == "2025-01-01"

    def test_calculate_growth(self):
        """Growth should be a percentage, or None without a baseline."""
        assert calculate_growth(150, 100) == 50.0
        assert calculate_growth(100, 0) is None
        assert calculate_growth(None, 100) is None

    def test_sparkline(self):
        """Sparklines should be fixed width and rise with the values."""
        assert make_sparkline([]) == " " * SPARKLINE_WIDTH
        line = make_sparkline([0, 5, 10], width=3)
        assert line[0] == " " and line[-1] == "#"
        assert make_sparkline([1, 2], width=4).startswith("  ")
        assert len(set(make_sparkline([3, 3, 3], width=3))) == 1


class TestLoaders:
    """Tests for file loaders."""

    def test_load_packages_yaml(self, temp_file):
        """YAML package lists should be read from 'published'."""
        path = temp_file(yaml.dump({"published": ["pkg-a", "pkg-b"]}), ".yml")
        assert load_packages_from_file(path) == ["pkg-a", "pkg-b"]

    def test_load_packages_text(self, temp_file):
        """Text package lists should skip blanks and comments."""
        path = temp_file("# mine\npkg-a\n\npkg-b\n", ".txt")
        assert load_packages_from_file(path) == ["pkg-a", "pkg-b"]

    def test_load_daily_json(self, temp_file):
        """JSON series may be a list or wrapped under 'daily'."""
        assert load_daily_from_file(temp_file(json.dumps(DAILY), ".json")) == DAILY
        wrapped = temp_file(json.dumps({"daily": DAILY}), ".json")
        assert load_daily_from_file(wrapped) == DAILY

    def test_load_daily_yaml_dates(self, temp_file):
        """Unquoted YAML dates should come back as strings."""
        path = temp_file("- day: 2025-01-15\n  downloads: 10\n", ".yaml")
        assert load_daily_from_file(path) == [{"day": "2025-01-15", "downloads": 10}]

    def test_load_daily_csv(self, temp_file):
        """CSV series should convert counts to integers."""
        path = temp_file("day,downloads\n2025-01-15,10\n2025-01-20,5\n", ".csv")
        assert load_daily_from_file(path) == [
            {"day": "2025-01-15", "downloads": 10},
            {"day": "2025-01-20", "downloads": 5},
        ]


class TestCLI:
    """Tests for CLI argument parsing and commands."""

    def test_default_values(self):
        """Default values should be set correctly."""
        assert DEFAULT_PACKAGES_FILE == "packages.yml"

    def test_main_no_command_shows_help(self, capsys):
        """main() with no command should print help."""
        with patch("sys.argv", ["pkgtrend"]):
            main()
        captured = capsys.readouterr()
        assert "usage:" in captured.out.lower()

    def test_aggregate_table(self, temp_file, capsys):
        """aggregate should print a table of buckets."""
        path = temp_file(json.dumps(DAILY), ".json")
        with patch("sys.argv", ["pkgtrend", "aggregate", path, "-g", "month"]):
            main()

        out = capsys.readouterr().out
        assert "Period" in out
        assert "2025-01" in out
        assert "15" in out

    def test_aggregate_csv_to_file(self, temp_file, capsys):
        """aggregate -o should write the export to a file."""
        path = temp_file(json.dumps(DAILY), ".json")
        output = temp_file("", ".csv")
        argv = ["pkgtrend", "aggregate", path, "-g", "year", "-f", "csv", "-o", output]
        with patch("sys.argv", argv):
            main()

        assert f"Exported to {output}" in capsys.readouterr().out
        lines = Path(output).read_text().splitlines()
        assert lines[0] == "year,downloads,timestamp"
        assert lines[1].startswith("2025,35,")

    def test_aggregate_weekly_range(self, temp_file, capsys):
        """aggregate should honour --start and --end for weeks."""
        path = temp_file(json.dumps(DAILY), ".json")
        argv = [
            "pkgtrend", "aggregate", path, "-f", "json",
            "--start", "2025-01-14", "--end", "2025-01-22",
        ]
        with patch("sys.argv", argv):
            main()

        data = json.loads(capsys.readouterr().out)
        assert data["buckets"] == [
            {"week_start": "2025-01-14", "week_end": "2025-01-20", "downloads": 15},
            {"week_start": "2025-01-21", "week_end": "2025-01-22", "downloads": 0},
        ]

    def test_aggregate_invalid_data(self, temp_file, capsys):
        """Invalid series should print an error and exit with status 1."""
        path = temp_file(json.dumps([{"day": "2025-02-30", "downloads": 1}]), ".json")
        with patch("sys.argv", ["pkgtrend", "aggregate", path]):
            with pytest.raises(SystemExit) as exc:
                main()

        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().out

    def test_aggregate_malformed_json(self, temp_file, capsys):
        """A file that is not valid JSON should be reported, not crash."""
        path = temp_file("{not json", ".json")
        with patch("sys.argv", ["pkgtrend", "aggregate", path]):
            main()
        assert f"Could not parse {path}" in capsys.readouterr().out

    def test_aggregate_malformed_yaml(self, temp_file, capsys):
        """A file that is not valid YAML should be reported, not crash."""
        path = temp_file("- day: [unclosed\n", ".yml")
        with patch("sys.argv", ["pkgtrend", "aggregate", path]):
            main()
        assert f"Could not parse {path}" in capsys.readouterr().out

    def test_summary_malformed_package_list(self, temp_file, capsys):
        """A malformed package list should be reported."""
        path = temp_file("[broken", ".json")
        with patch("pkgtrend.cli.fetch_all_evolutions") as mock:
            with patch("sys.argv", ["pkgtrend", "summary", path]):
                main()
        mock.assert_not_called()
        assert f"Could not parse {path}" in capsys.readouterr().out

    def test_aggregate_missing_file(self, capsys):
        """A missing file should be reported."""
        with patch("sys.argv", ["pkgtrend", "aggregate", "/nonexistent/daily.json"]):
            main()
        assert "File not found" in capsys.readouterr().out

    def test_evolution_command(self, capsys):
        """evolution should fetch, aggregate and print buckets."""
        with patch("pkgtrend.cli.fetch_evolution", return_value=WEEKS) as mock:
            with patch("sys.argv", ["pkgtrend", "evolution", "pkg", "-f", "md"]):
                main()

        mock.assert_called_once_with("pkg", "week", None, None)
        assert "| 2025-03-01 | 2025-03-07 | 1,234 |" in capsys.readouterr().out

    def test_evolution_fetch_failure(self, capsys):
        """evolution should report a failed fetch."""
        with patch("pkgtrend.cli.fetch_evolution", return_value=None):
            with patch("sys.argv", ["pkgtrend", "evolution", "pkg"]):
                main()
        assert "Could not fetch downloads" in capsys.readouterr().out

    def test_evolution_invalid_name(self, capsys):
        """evolution should reject invalid package names without fetching."""
        with patch("pkgtrend.cli.fetch_evolution") as mock:
            with patch("sys.argv", ["pkgtrend", "evolution", "bad name!"]):
                main()
        mock.assert_not_called()
        assert "Invalid package name" in capsys.readouterr().out

    def test_created_command(self, capsys):
        """created should print the resolved creation date."""
        doc = {"time": {"1.0": "2021-01-01T00:00:00Z", "0.1": "2020-01-01T00:00:00Z"}}
        with patch("pkgtrend.cli.fetch_package_metadata", return_value=doc):
            with patch("sys.argv", ["pkgtrend", "created", "pkg"]):
                main()
        assert "pkg was created on 2020-01-01T00:00:00Z" in capsys.readouterr().out

    def test_created_strict(self, capsys):
        """created --strict should fail on malformed timestamps."""
        doc = {"time": {"0.1": "bad", "1.0": "2021-01-01T00:00:00Z"}}
        with patch("pkgtrend.cli.fetch_package_metadata", return_value=doc):
            with patch("sys.argv", ["pkgtrend", "created", "pkg", "--strict"]):
                with pytest.raises(SystemExit):
                    main()
        assert "Error:" in capsys.readouterr().out

    def test_created_no_releases(self, capsys):
        """created should say so when nothing was released."""
        with patch("pkgtrend.cli.fetch_package_metadata", return_value={"time": {}}):
            with patch("sys.argv", ["pkgtrend", "created", "pkg"]):
                main()
        assert "No release dates found" in capsys.readouterr().out

    def test_summary_command(self, temp_file, capsys):
        """summary should tabulate weekly totals for each package."""
        path = temp_file(yaml.dump({"published": ["pkg-a", "pkg-b"]}), ".yml")
        weeks = [
            {"week_start": "2025-03-01", "week_end": "2025-03-07", "downloads": 100},
            {"week_start": "2025-03-08", "week_end": "2025-03-14", "downloads": 150},
            {"week_start": "2025-03-15", "week_end": "2025-03-16", "downloads": 10},
        ]
        with patch(
            "pkgtrend.cli.fetch_all_evolutions",
            return_value={"pkg-a": weeks, "pkg-b": None},
        ):
            with patch("sys.argv", ["pkgtrend", "summary", path]):
                main()

        out = capsys.readouterr().out
        assert "pkg-a" in out
        assert "260" in out
        assert "+50.0%" in out
        assert "pkg-b" in out
