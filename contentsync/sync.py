"""Export the store into a snapshot file and push a snapshot back into the store."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from .config import COLLECTIONS, SINGLETONS, SINGLETONS_NAMESPACE
from .errors import ContentSyncError, NotFoundError
from .store import DocumentStore
from .utils import dump_json, utc_now

LOGGER = logging.getLogger(__name__)


@dataclass
class ExportResult:
    snapshot: Dict[str, Any]
    counts: Dict[str, int] = field(default_factory=dict)
    missing_singletons: List[str] = field(default_factory=list)


@dataclass
class ImportSummary:
    written: Dict[str, int] = field(default_factory=dict)
    singletons: List[str] = field(default_factory=list)
    skipped: Dict[str, int] = field(default_factory=dict)

    @property
    def total_writes(self) -> int:
        return sum(self.written.values()) + len(self.singletons)


def load_snapshot(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise NotFoundError(f"Snapshot not found at {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as error:
        raise ContentSyncError(f"Failed to parse {path}: {error}") from error
    if not isinstance(data, dict):
        raise ContentSyncError(f"Snapshot at {path} is not a JSON object")
    return data


def write_snapshot(path: Path, snapshot: Dict[str, Any]) -> None:
    """Overwrite ``path`` with ``snapshot``; nothing from the previous file is kept."""

    dump_json(path, snapshot)


def export_snapshot(
    store: DocumentStore,
    *,
    collections: Sequence[str] = COLLECTIONS,
    singletons: Sequence[str] = SINGLETONS,
) -> ExportResult:
    """Read every collection and singleton from ``store`` into one snapshot object."""

    result = ExportResult(snapshot={})
    for name in collections:
        LOGGER.info("Exporting %s...", name)
        items = [document.to_item() for document in store.list_documents(name)]
        result.snapshot[name] = items
        result.counts[name] = len(items)
        LOGGER.info("Exported %s %s", len(items), name)
    for name in singletons:
        document = store.get_document(SINGLETONS_NAMESPACE, name)
        if document is None:
            LOGGER.warning("%s not found in store", name)
            result.missing_singletons.append(name)
            continue
        result.snapshot[name] = document.to_item()
        LOGGER.info("Exported %s", name)
    return result


def item_key(item: Dict[str, Any]) -> str | None:
    """Return the store key for ``item``: its slug, falling back to its id."""

    for key in ("slug", "id"):
        value = item.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
            return str(value)
    return None


def _selected(name: str, only: Iterable[str] | None) -> bool:
    return only is None or name in only


def import_snapshot(
    snapshot: Dict[str, Any],
    store: DocumentStore,
    *,
    collections: Iterable[str] | None = None,
    clear_existing: bool = False,
    now: datetime | None = None,
) -> ImportSummary:
    """Write every item and known singleton of ``snapshot`` into ``store``.

    Each write fully replaces the target document and stamps ``updatedAt``.
    Writes happen one at a time; a store failure propagates and leaves the
    documents written so far in place.
    """

    only = set(collections) if collections is not None else None
    summary = ImportSummary()
    for name in COLLECTIONS:
        if not _selected(name, only):
            continue
        items = snapshot.get(name)
        if not isinstance(items, list):
            LOGGER.warning("No data found for %s, skipping", name)
            continue
        if clear_existing:
            existing = store.list_documents(name)
            for document in existing:
                store.delete_document(name, document.id)
            LOGGER.info("Cleared %s documents from %s", len(existing), name)
        written = 0
        for item in items:
            key = item_key(item) if isinstance(item, dict) else None
            if key is None:
                LOGGER.warning("Item in %s has no slug or id, skipping", name)
                summary.skipped[name] = summary.skipped.get(name, 0) + 1
                continue
            store.set_document(name, key, {**item, "updatedAt": now or utc_now()})
            written += 1
        summary.written[name] = written
        LOGGER.info("Synced %s items to %s", written, name)
    for name in SINGLETONS:
        if not _selected(name, only):
            continue
        data = snapshot.get(name)
        if not isinstance(data, dict):
            continue
        store.set_document(SINGLETONS_NAMESPACE, name, {**data, "updatedAt": now or utc_now()})
        summary.singletons.append(name)
        LOGGER.info("Synced %s singleton", name)
    return summary
