"""Package creation date resolution from registry metadata documents."""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple

from .errors import InvalidTimestampError
from .types import PackageMetadataDocument

logger = logging.getLogger("pkgtrend")


class TimeKeyKind(Enum):
    """Kind of entry in a metadata document's time map."""

    CREATED = "created"
    MODIFIED = "modified"
    VERSION = "version"


class TimeKey(NamedTuple):
    """A classified time-map key; tag holds the version for VERSION keys."""

    kind: TimeKeyKind
    tag: str


def classify_time_key(key: str) -> TimeKey:
    """Classify a time-map key as the created/modified label or a version."""
    if key == TimeKeyKind.CREATED.value:
        return TimeKey(TimeKeyKind.CREATED, key)
    if key == TimeKeyKind.MODIFIED.value:
        return TimeKey(TimeKeyKind.MODIFIED, key)
    return TimeKey(TimeKeyKind.VERSION, key)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    A trailing "Z" is accepted and naive values are taken as UTC.

    Raises:
        InvalidTimestampError: If value is not a parseable ISO-8601 string.
    """
    if not isinstance(value, str):
        raise InvalidTimestampError(f"Invalid timestamp {value!r}: expected a string")

    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid timestamp {value!r}: {e}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _earliest(entries: Iterable[tuple[str, Any]], strict: bool) -> str | None:
    """Return the verbatim value of the earliest parseable timestamp.

    Ties keep the first entry seen. Unparseable values are skipped unless
    strict is set.
    """
    earliest_value: str | None = None
    earliest_at: datetime | None = None

    for label, value in entries:
        try:
            published = parse_timestamp(value)
        except InvalidTimestampError:
            if strict:
                raise
            logger.debug("Skipping malformed timestamp for %s: %r", label, value)
            continue

        if earliest_at is None or published < earliest_at:
            earliest_at = published
            earliest_value = value

    return earliest_value


def resolve_creation_date(
    doc: PackageMetadataDocument | Mapping[str, Any], strict: bool = False
) -> str | None:
    """Resolve a package's creation timestamp from its metadata document.

    Returns the "created" entry verbatim when present. Otherwise returns the
    verbatim timestamp of the earliest published version, ignoring the
    "modified" label. Returns None when the document has no time map or no
    version entries.

    Args:
        doc: Metadata document with an optional "time" mapping.
        strict: Raise on malformed version timestamps instead of skipping them.

    Raises:
        InvalidTimestampError: Only in strict mode.
    """
    time_map = doc.get("time")
    if not time_map:
        return None

    classified = [(classify_time_key(key), value) for key, value in time_map.items()]

    for time_key, value in classified:
        if time_key.kind is TimeKeyKind.CREATED:
            return value  # type: ignore[no-any-return]

    versions = [
        (time_key.tag, value)
        for time_key, value in classified
        if time_key.kind is TimeKeyKind.VERSION
    ]
    return _earliest(versions, strict)


def metadata_from_pypi(project: Mapping[str, Any]) -> PackageMetadataDocument:
    """Build a metadata document from a PyPI JSON API project document.

    Each release version maps to the earliest upload time among its files.
    Releases without files (yanked-and-deleted or never uploaded) are left out.
    """
    time_map: dict[str, str] = {}

    for version, files in (project.get("releases") or {}).items():
        uploads = [
            (version, f.get("upload_time_iso_8601") or f.get("upload_time"))
            for f in files or []
        ]
        first_upload = _earliest(uploads, strict=False)
        if first_upload is not None:
            time_map[version] = first_upload

    return {"time": time_map}
