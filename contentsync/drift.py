"""Read-only consistency checks between the store and the snapshot."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .config import (
    COLLECTIONS,
    PAGE_KEYS,
    PAGES_NAMESPACE,
    SINGLETONS,
    SINGLETONS_NAMESPACE,
)
from .store import DocumentStore
from .sync import item_key
from .utils import dumps_json, timestamp

LOGGER = logging.getLogger(__name__)

# Stamped on every import, so it never matches the snapshot copy.
PARITY_IGNORED_FIELDS = frozenset({"updatedAt"})


@dataclass
class DriftCheck:
    store_count: int
    snapshot_count: int

    @property
    def ok(self) -> bool:
        return self.store_count == self.snapshot_count

    def to_dict(self) -> dict:
        return {
            "storeCount": self.store_count,
            "snapshotCount": self.snapshot_count,
            "ok": self.ok,
        }


@dataclass
class DriftReport:
    checks: Dict[str, DriftCheck] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(check.ok for check in self.checks.values())

    def as_dict(self) -> Dict[str, dict]:
        return {name: check.to_dict() for name, check in self.checks.items()}

    def mismatches(self) -> List[str]:
        return [name for name, check in self.checks.items() if not check.ok]


def check_drift(
    snapshot: Dict[str, Any],
    store: DocumentStore,
    *,
    collections: Sequence[str] = COLLECTIONS,
) -> DriftReport:
    """Compare per-collection document counts between ``store`` and ``snapshot``."""

    report = DriftReport()
    for name in collections:
        items = snapshot.get(name)
        snapshot_count = len(items) if isinstance(items, list) else 0
        report.checks[name] = DriftCheck(store.count(name), snapshot_count)
    page_count = sum(1 for key in PAGE_KEYS if snapshot.get(key))
    report.checks[PAGES_NAMESPACE] = DriftCheck(store.count(PAGES_NAMESPACE), page_count)
    return report


def format_drift_report(report: DriftReport) -> str:
    lines = ["Drift Summary"]
    for name, check in report.checks.items():
        if check.ok:
            lines.append(f"  {name}: {check.store_count} items (in sync)")
        else:
            lines.append(
                f"  {name}: store={check.store_count}, snapshot={check.snapshot_count} (MISMATCH)"
            )
    lines.append("")
    if report.ok:
        lines.append("All collections in sync.")
    else:
        lines.append("Sync issues detected: run the export command to refresh the snapshot.")
    return "\n".join(lines)


# ----------------------------------------------------------------------
# Field level parity


@dataclass
class ParityReport:
    collections_checked: List[str]
    missing_in_snapshot: List[Dict[str, str]] = field(default_factory=list)
    missing_in_store: List[Dict[str, str]] = field(default_factory=list)
    field_mismatches: List[Dict[str, Any]] = field(default_factory=list)
    extra_fields_in_snapshot: List[Dict[str, str]] = field(default_factory=list)
    generated_at: str = field(default_factory=timestamp)

    @property
    def ok(self) -> bool:
        return not (
            self.missing_in_snapshot
            or self.missing_in_store
            or self.field_mismatches
            or self.extra_fields_in_snapshot
        )

    def totals(self) -> Dict[str, int]:
        return {
            "missingInSnapshot": len(self.missing_in_snapshot),
            "missingInStore": len(self.missing_in_store),
            "fieldMismatches": len(self.field_mismatches),
            "extraFieldsInSnapshot": len(self.extra_fields_in_snapshot),
        }

    def to_dict(self) -> dict:
        return {
            "summary": {
                "timestamp": self.generated_at,
                "collectionsChecked": list(self.collections_checked),
                "totals": self.totals(),
            },
            "missingInSnapshot": self.missing_in_snapshot,
            "missingInStore": self.missing_in_store,
            "fieldMismatches": self.field_mismatches,
            "extraFieldsInSnapshot": self.extra_fields_in_snapshot,
        }


def _plain(value: Any) -> Any:
    """Round-trip through JSON so store datetimes compare equal to snapshot strings."""

    return json.loads(dumps_json(value))


def _keyed(items: object) -> Dict[str, Dict[str, Any]]:
    keyed: Dict[str, Dict[str, Any]] = {}
    if not isinstance(items, list):
        return keyed
    for item in items:
        if not isinstance(item, dict):
            continue
        key = item_key(item)
        if key is not None:
            keyed[key] = item
    return keyed


def _diff(
    report: ParityReport,
    collection: str,
    doc_id: str,
    store_obj: Dict[str, Any],
    snapshot_obj: Dict[str, Any],
    base_path: str = "",
) -> None:
    for key, store_value in store_obj.items():
        if not base_path and key in PARITY_IGNORED_FIELDS:
            continue
        field_path = f"{base_path}.{key}" if base_path else key
        snapshot_value = snapshot_obj.get(key)
        if isinstance(store_value, dict) and isinstance(snapshot_value, dict):
            _diff(report, collection, doc_id, store_value, snapshot_value, field_path)
        elif store_value != snapshot_value or key not in snapshot_obj:
            report.field_mismatches.append(
                {
                    "collection": collection,
                    "id": doc_id,
                    "fieldPath": field_path,
                    "storeValue": store_value,
                    "snapshotValue": snapshot_value,
                }
            )
    for key in snapshot_obj:
        if key in store_obj or (not base_path and key in PARITY_IGNORED_FIELDS):
            continue
        field_path = f"{base_path}.{key}" if base_path else key
        report.extra_fields_in_snapshot.append(
            {"collection": collection, "id": doc_id, "fieldPath": field_path}
        )


def compare_parity(
    snapshot: Dict[str, Any],
    store: DocumentStore,
    *,
    collections: Sequence[str] = COLLECTIONS,
    singletons: Sequence[str] = SINGLETONS,
) -> ParityReport:
    """Deep-compare store documents and snapshot items keyed by slug or id."""

    report = ParityReport(collections_checked=list(collections))
    for name in collections:
        store_items = _keyed(
            _plain([document.to_item() for document in store.list_documents(name)])
        )
        snapshot_items = _keyed(_plain(snapshot.get(name) or []))
        for key in store_items:
            if key not in snapshot_items:
                report.missing_in_snapshot.append({"collection": name, "id": key})
        for key in snapshot_items:
            if key not in store_items:
                report.missing_in_store.append({"collection": name, "id": key})
        for key in store_items:
            if key in snapshot_items:
                _diff(report, name, key, store_items[key], snapshot_items[key])
    for name in singletons:
        document = store.get_document(SINGLETONS_NAMESPACE, name)
        snapshot_value = snapshot.get(name)
        if document is None:
            if isinstance(snapshot_value, dict):
                report.missing_in_store.append({"collection": SINGLETONS_NAMESPACE, "id": name})
            continue
        if not isinstance(snapshot_value, dict):
            report.missing_in_snapshot.append({"collection": SINGLETONS_NAMESPACE, "id": name})
            continue
        _diff(report, SINGLETONS_NAMESPACE, name, _plain(document.to_item()), _plain(snapshot_value))
    LOGGER.info("Parity totals: %s", report.totals())
    return report


def format_parity_markdown(report: ParityReport, *, limit: int = 200) -> str:
    totals = report.totals()
    lines = ["# Parity Summary", "", f"- Timestamp: {report.generated_at}", ""]
    for name, count in totals.items():
        lines.append(f"- {name}: {count}")
    lines.append("")

    def section(title: str, entries: List[Dict[str, Any]], render) -> None:
        if not entries:
            return
        lines.append(f"## {title}")
        for entry in entries[:limit]:
            lines.append(f"- {render(entry)}")
        if len(entries) > limit:
            lines.append(f"- ... and {len(entries) - limit} more")
        lines.append("")

    section(
        "Missing In Snapshot",
        report.missing_in_snapshot,
        lambda entry: f"{entry['collection']} -> {entry['id']}",
    )
    section(
        "Missing In Store",
        report.missing_in_store,
        lambda entry: f"{entry['collection']} -> {entry['id']}",
    )
    section(
        "Field Mismatches",
        report.field_mismatches,
        lambda entry: (
            f"{entry['collection']} -> {entry['id']} :: {entry['fieldPath']} :: "
            f"store={json.dumps(entry['storeValue'])} snapshot={json.dumps(entry['snapshotValue'])}"
        ),
    )
    section(
        "Extra Fields In Snapshot",
        report.extra_fields_in_snapshot,
        lambda entry: f"{entry['collection']} -> {entry['id']} :: {entry['fieldPath']}",
    )
    return "\n".join(lines)
