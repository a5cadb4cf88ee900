"""General utility helpers."""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def load_json(path: Path, default: Any = None) -> Any:
    """Load a JSON file returning a default value if it does not exist."""

    if not path.exists():
        return default if default is not None else {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return iso_instant(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps_json(data: Any) -> str:
    """Serialize ``data`` the way snapshot files are written: two-space indent, trailing newline."""

    return json.dumps(data, indent=2, ensure_ascii=False, default=_json_default) + "\n"


def dump_json(path: Path, data: Any) -> None:
    """Persist JSON data to disk, ensuring the parent folder exists."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(dumps_json(data))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp() -> str:
    """Return an ISO-8601 timestamp in UTC."""

    return iso_instant(utc_now())


def iso_instant(value: datetime) -> str:
    """Format ``value`` as a UTC instant with millisecond precision, e.g. ``2024-05-01T10:20:30.123Z``."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def coerce_datetime(value: Any) -> datetime | None:
    """Return an aware datetime for datetimes and ISO strings, ``None`` otherwise."""

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict) and isinstance(value.get("seconds"), (int, float)):
        # Firestore timestamps exported by the JavaScript SDK.
        seconds = float(value["seconds"]) + float(value.get("nanoseconds") or 0) / 1e9
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Firestore reports nanoseconds; fromisoformat accepts at most microseconds.
    text = _EXTRA_FRACTION.sub(r"\1", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def filesystem_stamp(value: datetime) -> str:
    """Return an ISO-8601 instant with ``:`` and ``.`` replaced so it is safe in file names."""

    return iso_instant(value).replace(":", "-").replace(".", "-")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
