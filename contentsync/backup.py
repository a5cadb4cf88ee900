"""Timestamped backups of the snapshot file taken before any in-place change."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List

from .errors import BackupError, NotFoundError
from .models import BackupRecord
from .utils import filesystem_stamp, utc_now

LOGGER = logging.getLogger(__name__)


def backup_name(source: Path, created_at: datetime) -> str:
    return f"{source.stem}.{filesystem_stamp(created_at)}{source.suffix or '.json'}"


def backup(
    path: Path,
    backups_dir: Path | None = None,
    *,
    now: datetime | None = None,
) -> BackupRecord:
    """Copy ``path`` byte for byte into ``backups_dir`` and return the record.

    The copy is complete on disk when this returns. Existing backups are never
    overwritten; a name collision raises ``BackupError``.
    """

    source = Path(path)
    if not source.is_file():
        raise NotFoundError(f"Snapshot not found at {source}")
    target_dir = backups_dir or source.parent / "backups"
    created_at = now or utc_now()
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        payload = source.read_bytes()
        destination = target_dir / backup_name(source, created_at)
        with destination.open("xb") as handle:
            handle.write(payload)
    except FileExistsError as error:
        raise BackupError(f"Backup already exists: {error.filename}") from error
    except OSError as error:
        raise BackupError(f"Unable to back up {source}: {error}") from error
    LOGGER.info("Backed up %s -> %s", source, destination)
    return BackupRecord(source=source, path=destination, created_at=created_at)


def list_backups(backups_dir: Path, prefix: str = "en") -> List[Path]:
    """Return existing backups for ``prefix`` oldest first."""

    if not backups_dir.is_dir():
        return []
    return sorted(backups_dir.glob(f"{prefix}.*.json"))
