"""Bring testimonials exported from review platforms into the snapshot.

Two CSV shapes are supported: the Senja export (named columns) and a plain
review sheet (``author, rating, text, date, title`` by position). Incoming rows
become snapshot-shaped testimonial dicts, are de-duplicated, auto-tagged with
program and experience refs from keywords in their text, and merged into the
snapshot's ``testimonials`` list by id.
"""

from __future__ import annotations

import csv
import hashlib
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from .errors import NotFoundError, ValidationError
from .utils import coerce_datetime, iso_instant, utc_now

LOGGER = logging.getLogger(__name__)

SOURCES = ("senja-csv", "csv")
DEFAULT_REVIEW_URL = "https://www.google.com/maps/place/Breathing+Flame"
DUPLICATE_THRESHOLD = 0.8

# Keyword found in the text (or as a tag, spaces dashed) -> ref slugs it implies.
KEYWORD_REFS: Dict[str, Tuple[str, ...]] = {
    "energy": ("rac", "whm"),
    "vitality": ("rac", "whm"),
    "stress": ("rac", "whm", "9d-breathwork"),
    "breathwork": ("whm", "9d-breathwork"),
    "wim hof": ("whm",),
    "cold": ("whm",),
    "ice": ("whm",),
    "transformation": ("rac", "unblocked", "unstoppable"),
    "clarity": ("unblocked",),
    "focus": ("unblocked", "whm"),
    "coaching": ("unblocked",),
    "block": ("unblocked",),
    "momentum": ("unblocked",),
    "breakthrough": ("unstoppable",),
    "sustained": ("unstoppable",),
    "long-term": ("unstoppable",),
}
PROGRAM_SLUGS = frozenset({"rac", "unblocked", "unstoppable"})
EXPERIENCE_SLUGS = frozenset({"whm", "9d-breathwork"})

CONTENT_TAGS: Tuple[str, ...] = (
    "energy",
    "stress-relief",
    "breathwork",
    "transformation",
    "focus",
    "sleep",
    "anxiety",
    "pain-relief",
    "immune-system",
    "fitness",
)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


# ----------------------------------------------------------------------
# Readers


def _open_rows(path: Path):
    if not path.is_file():
        raise NotFoundError(f"CSV file not found at {path}")
    return path.open("r", encoding="utf-8-sig", newline="")


def _split_list(value: str | None) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _parse_rating(value: str | None, default: int | None = None) -> int | None:
    try:
        return int(float((value or "").strip()))
    except ValueError:
        return default


def _created_at(value: str | None, now: datetime) -> str:
    return iso_instant(coerce_datetime(value) or now)


def _text_signature(text: str) -> str:
    cleaned = _WHITESPACE.sub(" ", text.strip().strip('"')).strip()
    return hashlib.md5(cleaned.encode("utf-8")).hexdigest()[:10]


def senja_row_to_testimonial(row: Dict[str, str], index: int, now: datetime) -> Dict[str, Any] | None:
    """Map one Senja export row; rows with neither a name nor text yield ``None``."""

    name = (row.get("customer_name") or "").strip()
    text = (row.get("text") or "").strip()
    if not name and not text:
        return None
    integration = (row.get("integration") or "senja").strip().lower()
    platform_id = (row.get("platform_id") or "").strip()
    base_id = (platform_id or name or f"row{index}").lower()
    identifier = f"{integration}-{base_id}-{_text_signature(text)}"

    attachments = _split_list(row.get("attachments"))
    kind = "text"
    if row.get("video_mp4_url"):
        kind = "video"
    elif attachments:
        kind = "image"

    author: Dict[str, Any] = {"name": name or "Anonymous"}
    for key, column in (
        ("role", "customer_tagline"),
        ("company", "customer_company"),
        ("avatar", "customer_avatar"),
        ("url", "customer_url"),
        ("city", "city"),
    ):
        if row.get(column):
            author[key] = row[column].strip()

    return {
        "id": identifier,
        "text": text,
        "rating": _parse_rating(row.get("rating")) or 5,
        "author": author,
        "source": {
            "platform": "senja",
            "integration": row.get("integration") or "unknown",
            "originalId": platform_id or identifier,
            "url": row.get("url") or None,
        },
        "media": {
            "attachments": attachments,
            "videoMp4Url": row.get("video_mp4_url") or None,
        },
        "tags": _split_list(row.get("tags")),
        "featured": False,
        "verified": True,
        "type": kind,
        "createdAt": _created_at(row.get("date"), now),
        "refs": {"programSlugs": [], "experienceSlugs": [], "solutionSlugs": []},
    }


def read_senja_csv(path: Path, *, now: datetime | None = None) -> List[Dict[str, Any]]:
    now = now or utc_now()
    testimonials = []
    with _open_rows(path) as handle:
        for index, row in enumerate(csv.DictReader(handle)):
            item = senja_row_to_testimonial(row, index, now)
            if item is None:
                LOGGER.info("Skipping empty Senja row %s", index + 1)
                continue
            testimonials.append(item)
    LOGGER.info("Read %s testimonials from %s", len(testimonials), path)
    return testimonials


def basic_tags(text: str, rating: int) -> List[str]:
    tags = []
    if rating >= 4:
        tags.append("positive")
    if rating >= 5:
        tags.append("excellent")
    if rating <= 2:
        tags.append("negative")
    lowered = text.lower()
    for tag, words in (
        ("energy", ("energy", "vitality")),
        ("stress-relief", ("stress", "relax")),
        ("breathwork", ("breath",)),
        ("transformation", ("transform", "change")),
        ("focus", ("focus", "clarity")),
        ("sleep", ("sleep", "rest")),
    ):
        if any(word in lowered for word in words):
            tags.append(tag)
    return tags


def read_reviews_csv(
    path: Path,
    *,
    min_rating: int | None = None,
    review_url: str = DEFAULT_REVIEW_URL,
    now: datetime | None = None,
) -> List[Dict[str, Any]]:
    """Read a header-led sheet of ``author, rating, text[, date[, title]]`` rows."""

    now = now or utc_now()
    testimonials = []
    with _open_rows(path) as handle:
        reader = csv.reader(handle)
        next(reader, None)
        for line_number, columns in enumerate(reader, start=2):
            if not any(cell.strip() for cell in columns):
                continue
            if len(columns) < 3:
                LOGGER.warning("Skipping invalid row %s in %s", line_number, path)
                continue
            padded = [cell.strip() for cell in columns] + [""] * 2
            author_name, raw_rating, text, date, title = padded[:5]
            rating = _parse_rating(raw_rating, default=0)
            if min_rating is not None and rating < min_rating:
                continue
            identifier = f"csv_{line_number - 1}"
            testimonials.append(
                {
                    "id": identifier,
                    "text": text,
                    "rating": rating,
                    "author": {"name": author_name or "Anonymous", "role": title or "Google Review"},
                    "source": {"platform": "google", "originalId": identifier, "url": review_url},
                    "tags": basic_tags(text, rating),
                    "featured": False,
                    "verified": True,
                    "type": "text",
                    "createdAt": _created_at(date, now),
                    "refs": {"programSlugs": [], "experienceSlugs": [], "solutionSlugs": []},
                }
            )
    LOGGER.info("Read %s reviews from %s", len(testimonials), path)
    return testimonials


def read_source(source: str, path: Path, *, min_rating: int | None = None) -> List[Dict[str, Any]]:
    if source == "senja-csv":
        items = read_senja_csv(path)
        if min_rating is not None:
            items = [item for item in items if item["rating"] >= min_rating]
        return items
    if source == "csv":
        return read_reviews_csv(path, min_rating=min_rating)
    raise ValidationError(f"Unknown testimonial source: {source}")


# ----------------------------------------------------------------------
# Duplicate detection


@dataclass
class DuplicateMatch:
    original: Dict[str, Any]
    duplicate: Dict[str, Any]
    confidence: float


@dataclass
class DuplicateReport:
    unique: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: List[DuplicateMatch] = field(default_factory=list)


def _tokens(text: str) -> List[str]:
    return [word for word in _PUNCTUATION.sub(" ", text.lower()).split() if len(word) > 2]


def text_similarity(first: str, second: str) -> float:
    if not first or not second:
        return 0.0
    words_a = _tokens(first)
    words_b = _tokens(second)
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    shared = [word for word in words_a if word in words_b]
    return len(shared) / len(set(words_a) | set(words_b))


def name_similarity(first: str, second: str) -> float:
    """Word overlap of two names; ``John Smith`` and ``John S.`` share ``john``."""

    left = (first or "").lower().split()
    right = (second or "").lower().split()
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    matches = 0
    for word in left:
        for other in right:
            if word == other or (
                len(word) > 2 and len(other) > 2 and (word.startswith(other) or other.startswith(word))
            ):
                matches += 1
                break
    return matches / max(len(left), len(right))


def _author_name(item: Dict[str, Any]) -> str:
    author = item.get("author")
    if isinstance(author, dict):
        return str(author.get("name") or "")
    return str(author or "")


def _platform(item: Dict[str, Any]) -> str | None:
    source = item.get("source")
    return source.get("platform") if isinstance(source, dict) else None


def _rating(item: Dict[str, Any]) -> float:
    value = item.get("rating")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 5.0
    return float(value)


def similarity(first: Dict[str, Any], second: Dict[str, Any]) -> float:
    """Weighted likeness of two testimonials in ``[0, 1]``; text carries the most weight."""

    score = 0.4 * text_similarity(str(first.get("text") or ""), str(second.get("text") or ""))
    score += 0.2 * name_similarity(_author_name(first), _author_name(second))
    score += 0.1 * max(0.0, 1 - abs(_rating(first) - _rating(second)) / 5)
    if _platform(first) is not None and _platform(first) == _platform(second):
        score += 0.1
    created_a = coerce_datetime(first.get("createdAt"))
    created_b = coerce_datetime(second.get("createdAt"))
    if created_a and created_b:
        days = abs((created_a - created_b).total_seconds()) / 86400
        score += 0.1 * max(0.0, 1 - days / 7)
    tags_a = list(first.get("tags") or [])
    tags_b = list(second.get("tags") or [])
    if tags_a and tags_b:
        shared = [tag for tag in tags_a if tag in tags_b]
        score += 0.1 * len(shared) / len(set(tags_a) | set(tags_b))
    return score


def find_duplicates(
    items: Sequence[Dict[str, Any]], threshold: float = DUPLICATE_THRESHOLD
) -> DuplicateReport:
    """Keep the first of every group of near-identical testimonials."""

    report = DuplicateReport()
    absorbed: set[int] = set()
    for index, current in enumerate(items):
        if index in absorbed:
            continue
        for other_index in range(index + 1, len(items)):
            if other_index in absorbed:
                continue
            confidence = similarity(current, items[other_index])
            if confidence > threshold:
                report.duplicates.append(DuplicateMatch(current, items[other_index], confidence))
                absorbed.add(other_index)
        report.unique.append(current)
    return report


# ----------------------------------------------------------------------
# Tagging


@dataclass
class TagMapping:
    testimonial_id: str
    tags: List[str] = field(default_factory=list)
    programs: List[str] = field(default_factory=list)
    experiences: List[str] = field(default_factory=list)
    featured_spaces: List[str] = field(default_factory=list)
    priority: int = 5


def _add(values: List[str], value: str) -> None:
    if value not in values:
        values.append(value)


def calculate_priority(item: Dict[str, Any]) -> int:
    text = str(item.get("text") or "")
    priority = 5 + _rating(item) - 3
    if len(text) > 200:
        priority += 1
    if len(text) > 500:
        priority += 1
    if item.get("verified"):
        priority += 1
    platform = _platform(item)
    if platform == "google":
        priority += 1
    priority = max(1, min(10, priority))
    # Source boost on top of the clamped score.
    if platform == "google":
        priority += 2
    elif platform == "trustpilot":
        priority += 1
    return int(min(10, priority))


def tag_testimonial(item: Dict[str, Any]) -> TagMapping:
    """Derive tags, refs, featured spaces and priority from one testimonial."""

    text = str(item.get("text") or "").lower()
    existing_tags = [str(tag).lower() for tag in item.get("tags") or []]
    mapping = TagMapping(testimonial_id=str(item.get("id") or ""), priority=calculate_priority(item))

    for keyword, slugs in KEYWORD_REFS.items():
        if keyword in text or keyword.replace(" ", "-") in existing_tags:
            for slug in slugs:
                if slug in PROGRAM_SLUGS:
                    _add(mapping.programs, slug)
                elif slug in EXPERIENCE_SLUGS:
                    _add(mapping.experiences, slug)
                _add(mapping.tags, slug)
    for tag in CONTENT_TAGS:
        spoken = tag.replace("-", " ")
        if spoken in text or spoken in existing_tags or tag in existing_tags:
            _add(mapping.tags, tag)
    if _rating(item) >= 5:
        _add(mapping.tags, "excellent")
    if len(text) > 200:
        _add(mapping.tags, "detailed")
    if item.get("verified"):
        _add(mapping.tags, "verified")

    if _rating(item) >= 5 and len(text) > 100:
        mapping.featured_spaces.append("home")
    if mapping.programs:
        mapping.featured_spaces.append("programs")
    if mapping.experiences:
        mapping.featured_spaces.append("individuals")
    if mapping.priority >= 8:
        mapping.featured_spaces.append("about")
    return mapping


def apply_mapping(item: Dict[str, Any], mapping: TagMapping) -> Dict[str, Any]:
    """Return a copy of ``item`` with the mapping merged in; existing refs and tags stay."""

    tagged = dict(item)
    tags = [str(tag) for tag in item.get("tags") or []]
    for tag in mapping.tags:
        _add(tags, tag)
    refs = dict(item.get("refs") or {}) if isinstance(item.get("refs"), dict) else {}
    programs = list(refs.get("programSlugs") or [])
    experiences = list(refs.get("experienceSlugs") or [])
    for slug in mapping.programs:
        _add(programs, slug)
    for slug in mapping.experiences:
        _add(experiences, slug)
    refs["programSlugs"] = programs
    refs["experienceSlugs"] = experiences
    refs.setdefault("solutionSlugs", [])
    tagged["tags"] = tags
    tagged["refs"] = refs
    tagged["priority"] = mapping.priority
    tagged["featured"] = bool(item.get("featured")) or "home" in mapping.featured_spaces
    return tagged


def auto_tag(items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [apply_mapping(item, tag_testimonial(item)) for item in items]


# ----------------------------------------------------------------------
# Snapshot merge and report


@dataclass
class MergeSummary:
    added: int = 0
    updated: int = 0
    duplicates: int = 0


def merge_testimonials(
    snapshot: Dict[str, Any], incoming: Sequence[Dict[str, Any]]
) -> Tuple[Dict[str, Any], MergeSummary]:
    """Return a new snapshot with ``incoming`` merged into ``testimonials`` by id."""

    summary = MergeSummary()
    existing = snapshot.get("testimonials")
    merged = [item for item in existing if isinstance(item, dict)] if isinstance(existing, list) else []
    positions = {str(item.get("id")): index for index, item in enumerate(merged) if item.get("id")}
    for item in incoming:
        key = str(item["id"])
        if key in positions:
            merged[positions[key]] = item
            summary.updated += 1
        else:
            positions[key] = len(merged)
            merged.append(item)
            summary.added += 1
    result = dict(snapshot)
    result["testimonials"] = merged
    return result, summary


def import_testimonials(
    snapshot: Dict[str, Any],
    incoming: Sequence[Dict[str, Any]],
    *,
    tag: bool = True,
) -> Tuple[Dict[str, Any], MergeSummary]:
    """De-duplicate, optionally auto-tag, and merge ``incoming`` into ``snapshot``."""

    report = find_duplicates(incoming)
    for match in report.duplicates:
        LOGGER.info(
            "Dropping %s as a duplicate of %s (%.2f)",
            match.duplicate.get("id"),
            match.original.get("id"),
            match.confidence,
        )
    items = auto_tag(report.unique) if tag else list(report.unique)
    result, summary = merge_testimonials(snapshot, items)
    summary.duplicates = len(report.duplicates)
    return result, summary


def testimonial_report(items: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    programs: Counter = Counter()
    experiences: Counter = Counter()
    ratings: Counter = Counter()
    sources: Counter = Counter()
    for item in items:
        refs = item.get("refs") if isinstance(item.get("refs"), dict) else {}
        programs.update(refs.get("programSlugs") or [])
        experiences.update(refs.get("experienceSlugs") or [])
        rating = item.get("rating")
        ratings[str(rating) if isinstance(rating, (int, float)) and not isinstance(rating, bool) else "unrated"] += 1
        sources[_platform(item) or "unknown"] += 1
    return {
        "totalTestimonials": len(items),
        "programMappings": dict(sorted(programs.items())),
        "experienceMappings": dict(sorted(experiences.items())),
        "qualityDistribution": dict(sorted(ratings.items())),
        "sourceDistribution": dict(sorted(sources.items())),
    }


def format_testimonial_report(report: Dict[str, Any]) -> str:
    lines = ["Testimonial Report", f"  Total testimonials: {report['totalTestimonials']}"]
    for title, key, unit in (
        ("Program mappings", "programMappings", "testimonials"),
        ("Experience mappings", "experienceMappings", "testimonials"),
        ("Quality distribution", "qualityDistribution", "stars"),
        ("Source distribution", "sourceDistribution", "testimonials"),
    ):
        lines.append("")
        lines.append(f"{title}:")
        if not report[key]:
            lines.append("  (none)")
        for name, count in report[key].items():
            label = f"{name} {unit}" if unit == "stars" else name
            lines.append(f"  {label}: {count}")
    return "\n".join(lines)
