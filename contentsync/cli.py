"""Command line entrypoints for the content sync pipeline."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from .backup import backup, list_backups
from .config import REPORTS_DIR, Settings, load_settings
from .drift import check_drift, compare_parity, format_drift_report, format_parity_markdown
from .errors import ContentSyncError
from .firestore import FirestoreStore
from .models import Testimonial
from .normalization import normalize_snapshot, summarize_changes
from .sitemap import generate_sitemap
from .store import DocumentStore, JsonFileStore
from .sync import export_snapshot, import_snapshot, load_snapshot, write_snapshot
from .testimonial_import import (
    SOURCES,
    auto_tag,
    format_testimonial_report,
    import_testimonials,
    read_source,
    testimonial_report,
)
from .testimonials import build_testimonial_index
from .utils import dump_json, dumps_json

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Content sync commands")
    parser.add_argument(
        "--content",
        type=Path,
        help="Snapshot file to read and write (defaults to CONTENT_FILE or content/en.json)",
    )
    parser.add_argument(
        "--store",
        type=Path,
        help="Use a local JSON store file instead of Firestore",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    backup_parser = subparsers.add_parser("backup", help="Take a timestamped copy of the snapshot")
    backup_parser.add_argument(
        "--list",
        action="store_true",
        help="List existing backups instead of creating one",
    )
    backup_parser.set_defaults(func=handle_backup)

    export_parser = subparsers.add_parser("export", help="Write the store contents to the snapshot")
    export_parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Overwrite the snapshot without backing it up first",
    )
    export_parser.set_defaults(func=handle_export)

    import_parser = subparsers.add_parser("import", help="Push the snapshot into the store")
    import_parser.add_argument(
        "--collections",
        nargs="+",
        help="Only import these collections or singletons",
    )
    import_parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete existing documents of each imported collection first",
    )
    import_parser.set_defaults(func=handle_import)

    normalize_parser = subparsers.add_parser(
        "normalize", help="Repair the snapshot schema in place"
    )
    normalize_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing",
    )
    normalize_parser.set_defaults(func=handle_normalize)

    drift_parser = subparsers.add_parser(
        "drift", help="Compare store and snapshot document counts"
    )
    drift_parser.set_defaults(func=handle_drift)

    parity_parser = subparsers.add_parser(
        "parity", help="Write a field level parity report between store and snapshot"
    )
    parity_parser.add_argument(
        "--output",
        type=Path,
        default=REPORTS_DIR,
        help="Directory for parity-report.json and parity-summary.md",
    )
    parity_parser.set_defaults(func=handle_parity)

    sitemap_parser = subparsers.add_parser("sitemap", help="Render sitemap.xml from the store")
    sitemap_parser.add_argument("--output", type=Path, help="Write to this file instead of stdout")
    sitemap_parser.add_argument("--base-url", help="Override SITEMAP_BASE_URL")
    sitemap_parser.set_defaults(func=handle_sitemap)

    testimonials_parser = subparsers.add_parser(
        "testimonials", help="Build, import, tag and report on testimonials"
    )
    testimonial_actions = testimonials_parser.add_subparsers(dest="action", required=True)

    index_parser = testimonial_actions.add_parser(
        "index", help="Write the static testimonial index for the site"
    )
    index_parser.add_argument(
        "--output",
        type=Path,
        default=REPORTS_DIR / "testimonials.json",
        help="Destination JSON file",
    )
    index_parser.add_argument(
        "--max-count",
        type=int,
        default=6,
        help="Testimonials per program, experience and audience rail",
    )
    index_parser.set_defaults(func=handle_testimonials)

    ingest_parser = testimonial_actions.add_parser(
        "import", help="Merge testimonials from a CSV export into the snapshot"
    )
    ingest_parser.add_argument("source", choices=SOURCES, help="Export format")
    ingest_parser.add_argument("--file", type=Path, required=True, help="CSV file to read")
    ingest_parser.add_argument("--min-rating", type=int, help="Drop rows rated below this")
    ingest_parser.add_argument(
        "--no-tag",
        action="store_true",
        help="Merge without keyword tagging",
    )
    ingest_parser.set_defaults(func=handle_testimonial_import)

    tag_parser = testimonial_actions.add_parser(
        "tag", help="Re-derive tags and program refs for the snapshot's testimonials"
    )
    tag_parser.set_defaults(func=handle_testimonial_tag)

    report_parser = testimonial_actions.add_parser(
        "report", help="Print mapping, rating and source counts"
    )
    report_parser.set_defaults(func=handle_testimonial_report)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP endpoints with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=handle_serve)

    return parser


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def snapshot_path(args: argparse.Namespace, settings: Settings) -> Path:
    return getattr(args, "content", None) or settings.content_file


def open_store(args: argparse.Namespace, settings: Settings) -> DocumentStore:
    store_file = getattr(args, "store", None)
    if store_file:
        LOGGER.info("Using local store %s", store_file)
        return JsonFileStore(store_file)
    return FirestoreStore.from_settings(settings)


def handle_backup(args: argparse.Namespace, settings: Settings) -> None:
    path = snapshot_path(args, settings)
    backups_dir = path.parent / "backups"
    if args.list:
        for entry in list_backups(backups_dir, prefix=path.stem):
            print(entry)
        return
    record = backup(path, backups_dir)
    print(record.path)


def handle_export(args: argparse.Namespace, settings: Settings) -> None:
    path = snapshot_path(args, settings)
    store = open_store(args, settings)
    result = export_snapshot(store)
    if path.exists() and not args.no_backup:
        backup(path)
    write_snapshot(path, result.snapshot)
    total = sum(result.counts.values())
    LOGGER.info("Export complete: %s items written to %s", total, path)
    if result.missing_singletons:
        LOGGER.warning("Missing singletons: %s", ", ".join(result.missing_singletons))


def handle_import(args: argparse.Namespace, settings: Settings) -> None:
    path = snapshot_path(args, settings)
    snapshot = load_snapshot(path)
    backup(path)
    store = open_store(args, settings)
    summary = import_snapshot(
        snapshot,
        store,
        collections=args.collections,
        clear_existing=args.clear,
    )
    for name, count in summary.written.items():
        LOGGER.info("  %s: %s", name, count)
    for name, count in summary.skipped.items():
        LOGGER.warning("  %s: %s items skipped without a slug or id", name, count)
    LOGGER.info("Import complete: %s documents written", summary.total_writes)


def handle_normalize(args: argparse.Namespace, settings: Settings) -> None:
    path = snapshot_path(args, settings)
    snapshot = load_snapshot(path)
    normalized = normalize_snapshot(snapshot)
    if dumps_json(normalized) == dumps_json(snapshot):
        LOGGER.info("%s is already normalized", path)
        return
    changes = summarize_changes(snapshot, normalized)
    for name, count in changes.items():
        LOGGER.info("  %s: %s updated", name, count)
    if args.dry_run:
        LOGGER.info("Dry run: %s left unchanged", path)
        return
    backup(path)
    write_snapshot(path, normalized)
    LOGGER.info("Normalized %s", path)


def handle_drift(args: argparse.Namespace, settings: Settings) -> None:
    snapshot = load_snapshot(snapshot_path(args, settings))
    report = check_drift(snapshot, open_store(args, settings))
    print(format_drift_report(report))
    if not report.ok:
        for name in report.mismatches():
            LOGGER.error("Drift detected in %s", name)
        raise SystemExit(1)


def handle_parity(args: argparse.Namespace, settings: Settings) -> None:
    snapshot = load_snapshot(snapshot_path(args, settings))
    report = compare_parity(snapshot, open_store(args, settings))
    json_path = args.output / "parity-report.json"
    markdown_path = args.output / "parity-summary.md"
    dump_json(json_path, report.to_dict())
    markdown_path.write_text(format_parity_markdown(report), encoding="utf-8")
    LOGGER.info("Parity report written to %s and %s", json_path, markdown_path)


def handle_sitemap(args: argparse.Namespace, settings: Settings) -> None:
    xml = generate_sitemap(open_store(args, settings), args.base_url or settings.base_url)
    if args.output is None:
        sys.stdout.write(xml)
        return
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(xml, encoding="utf-8")
    LOGGER.info("Sitemap written to %s", args.output)


def _snapshot_testimonials(snapshot: dict) -> list[dict]:
    raw = snapshot.get("testimonials")
    return [item for item in raw or [] if isinstance(item, dict)]


def handle_testimonials(args: argparse.Namespace, settings: Settings) -> None:
    if args.max_count < 1:
        raise SystemExit("--max-count must be positive")
    snapshot = load_snapshot(snapshot_path(args, settings))
    pool = [Testimonial.from_dict(item) for item in _snapshot_testimonials(snapshot)]
    dump_json(args.output, build_testimonial_index(pool, args.max_count))
    LOGGER.info("Wrote %s testimonials to %s", len(pool), args.output)


def handle_testimonial_import(args: argparse.Namespace, settings: Settings) -> None:
    path = snapshot_path(args, settings)
    snapshot = load_snapshot(path)
    incoming = read_source(args.source, args.file, min_rating=args.min_rating)
    merged, summary = import_testimonials(snapshot, incoming, tag=not args.no_tag)
    backup(path)
    write_snapshot(path, merged)
    LOGGER.info(
        "Testimonials merged into %s: %s added, %s updated, %s duplicates dropped",
        path,
        summary.added,
        summary.updated,
        summary.duplicates,
    )


def handle_testimonial_tag(args: argparse.Namespace, settings: Settings) -> None:
    path = snapshot_path(args, settings)
    snapshot = load_snapshot(path)
    tagged = dict(snapshot)
    tagged["testimonials"] = auto_tag(_snapshot_testimonials(snapshot))
    if dumps_json(tagged) == dumps_json(snapshot):
        LOGGER.info("Testimonial tags in %s are up to date", path)
        return
    backup(path)
    write_snapshot(path, tagged)
    LOGGER.info("Tagged %s testimonials in %s", len(tagged["testimonials"]), path)


def handle_testimonial_report(args: argparse.Namespace, settings: Settings) -> None:
    snapshot = load_snapshot(snapshot_path(args, settings))
    print(format_testimonial_report(testimonial_report(_snapshot_testimonials(snapshot))))


def handle_serve(args: argparse.Namespace, settings: Settings) -> None:
    uvicorn.run("contentsync.api:app", host=args.host, port=args.port, reload=args.reload)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        settings = load_settings()
        args.func(args, settings)
    except ContentSyncError as error:
        LOGGER.error("%s failed: %s", args.command, error)
        raise SystemExit(1) from error


if __name__ == "__main__":
    main()
