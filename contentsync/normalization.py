"""Schema repair for snapshot items and page singletons.

Every rule here is idempotent: running :func:`normalize_snapshot` on its own
output yields an identical snapshot. Malformed values are treated as absent and
replaced with defaults instead of raising.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from .config import SINGLETONS
from .models import Button


@dataclass(frozen=True)
class CollectionSchema:
    """Per-collection shape requirements for the product-like collections."""

    name: str
    base_path: str
    headline_template: str
    required_arrays: Tuple[str, ...] = ("outcomes", "howItWorks", "includes")
    required_objects: Tuple[str, ...] = ("format",)


COLLECTION_SCHEMAS: Tuple[CollectionSchema, ...] = (
    CollectionSchema("programs", "/programs", "Ready to start {title}?"),
    CollectionSchema("experiences", "/experiences", "Ready to explore {title}?"),
    CollectionSchema("solutions", "/solutions", "Ready to explore {title}?"),
)

DEFAULT_UI: Dict[str, str] = {
    "outcomesTitle": "What You'll Achieve",
    "howItWorksTitle": "How It Works",
    "includesTitle": "What's Included",
    "detailsTitle": "Program Details",
    "faqTitle": "Frequently Asked Questions",
    "faqSubtext": "",
}

DEPRECATED_KEYS: Tuple[str, ...] = (
    "modules",
    "highlights",
    "audience",
    "format_legacy",
    "relatedEvents",
)

# Keyed ``ctas`` objects are emitted in this order, remaining keys sorted after.
CTA_KEY_ORDER: Tuple[str, ...] = ("primary", "secondary", "tertiary")

_FAQ_LIST_KEYS: Tuple[str, ...] = ("questions", "qna", "qAndA")


def get_schema(name: str) -> CollectionSchema | None:
    for schema in COLLECTION_SCHEMAS:
        if schema.name == name:
            return schema
    return None


# ----------------------------------------------------------------------
# Item rules


def ensure_fields(item: Dict[str, Any], schema: CollectionSchema) -> None:
    for key in schema.required_arrays:
        if not isinstance(item.get(key), list):
            item[key] = []
    for key in schema.required_objects:
        if not isinstance(item.get(key), dict):
            item[key] = {}


def ensure_ui(item: Dict[str, Any]) -> None:
    if not isinstance(item.get("ui"), dict):
        item["ui"] = {}
    ui = item["ui"]
    for key, default in DEFAULT_UI.items():
        if not ui.get(key):
            ui[key] = default


def strip_deprecated(item: Dict[str, Any]) -> None:
    for key in DEPRECATED_KEYS:
        item.pop(key, None)


def ensure_video_testimonial(item: Dict[str, Any]) -> None:
    # Only a missing key is backfilled; an explicit null or "" is left alone.
    if "videoTestimonial" not in item:
        item["videoTestimonial"] = ""


def _buttons_from_list(entries: Iterable[object]) -> List[Button]:
    buttons = []
    for entry in entries:
        button = Button.from_legacy(entry)
        if button is not None:
            buttons.append(button)
    return buttons


def _ordered_cta_keys(ctas: Dict[str, Any]) -> List[str]:
    declared = [key for key in CTA_KEY_ORDER if key in ctas]
    remaining = sorted(key for key in ctas if key not in CTA_KEY_ORDER)
    return declared + remaining


def buttons_from_ctas(ctas: object) -> List[Button]:
    """Convert a legacy ``ctas`` array or keyed object into canonical buttons."""

    if isinstance(ctas, list):
        return _buttons_from_list(ctas)
    if isinstance(ctas, dict):
        return _buttons_from_list(ctas[key] for key in _ordered_cta_keys(ctas))
    return []


def fallback_buttons(item: Dict[str, Any], schema: CollectionSchema) -> List[Button]:
    buttons = [Button(label="Contact", path_or_url="/contact")]
    slug = item.get("slug")
    if slug:
        buttons.append(Button(label="Learn More", path_or_url=f"{schema.base_path}/{slug}"))
    return buttons


def _default_subtext(item: Dict[str, Any]) -> str | None:
    hero = item.get("hero") if isinstance(item.get("hero"), dict) else {}
    for candidate in (hero.get("subtext"), item.get("summary")):
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def ensure_final_cta(item: Dict[str, Any], schema: CollectionSchema) -> None:
    """Rebuild ``finalCTA`` in its canonical ``{headline, subtext?, buttons}`` shape."""

    existing = item.get("finalCTA") if isinstance(item.get("finalCTA"), dict) else {}
    final_cta = dict(existing)

    title = item.get("title") or "Get Started"
    if not existing.get("headline"):
        final_cta["headline"] = schema.headline_template.format(title=title)

    default_subtext = _default_subtext(item)
    if not existing.get("subtext") and default_subtext:
        final_cta["subtext"] = default_subtext

    raw_buttons = existing.get("buttons")
    buttons = _buttons_from_list(raw_buttons) if isinstance(raw_buttons, list) else []
    if not buttons:
        buttons = buttons_from_ctas(item.get("ctas"))
    if not buttons:
        buttons = fallback_buttons(item, schema)
    final_cta["buttons"] = [button.to_dict() for button in buttons]

    item["finalCTA"] = final_cta


def _faq_entry(raw: object) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {"q": "", "a": ""}
    if isinstance(raw.get("q"), str) or isinstance(raw.get("a"), str):
        return {"q": raw.get("q") or "", "a": raw.get("a") or ""}
    if isinstance(raw.get("question"), str) or isinstance(raw.get("answer"), str):
        return {"q": raw.get("question") or "", "a": raw.get("answer") or ""}
    return {"q": "", "a": ""}


def normalize_faq(item: Dict[str, Any]) -> None:
    """Coerce ``faq`` into ``{title, subtitle, items: [{q, a}]}``."""

    faq = item.get("faq")
    if isinstance(faq, list):
        item["faq"] = {"title": "", "subtitle": "", "items": [_faq_entry(entry) for entry in faq]}
        return
    if not isinstance(faq, dict):
        item["faq"] = {"title": "", "subtitle": "", "items": []}
        return
    faq.setdefault("title", "")
    faq.setdefault("subtitle", "")
    if isinstance(faq.get("items"), list):
        faq["items"] = [_faq_entry(entry) for entry in faq["items"]]
        return
    for key in _FAQ_LIST_KEYS:
        if isinstance(faq.get(key), list):
            faq["items"] = [_faq_entry(entry) for entry in faq.pop(key)]
            return
    faq["items"] = []


def normalize_item(item: Dict[str, Any], schema: CollectionSchema) -> Dict[str, Any]:
    """Apply every item rule to ``item`` in place and return it."""

    ensure_fields(item, schema)
    ensure_ui(item)
    strip_deprecated(item)
    ensure_video_testimonial(item)
    ensure_final_cta(item, schema)
    normalize_faq(item)
    return item


# ----------------------------------------------------------------------
# Page rules


def _ensure_visible(block: object) -> None:
    if isinstance(block, dict) and not isinstance(block.get("visible"), bool):
        block["visible"] = True


def ensure_sections(page: Dict[str, Any]) -> None:
    """Guarantee a ``sections`` container and a boolean ``visible`` on each section."""

    sections = page.get("sections")
    if isinstance(sections, list):
        for block in sections:
            _ensure_visible(block)
        return
    if not isinstance(sections, dict):
        page["sections"] = {}
        return
    for section in sections.values():
        if isinstance(section, list):
            for block in section:
                _ensure_visible(block)
        else:
            _ensure_visible(section)


def page_singletons(snapshot: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return the page objects of ``snapshot``: ``page*`` singletons and ``pages`` entries."""

    pages = [
        snapshot[name]
        for name in SINGLETONS
        if name.startswith("page") and isinstance(snapshot.get(name), dict)
    ]
    nested = snapshot.get("pages")
    if isinstance(nested, dict):
        pages.extend(page for page in nested.values() if isinstance(page, dict))
    return pages


# ----------------------------------------------------------------------
# Snapshot entry points


def normalize_snapshot(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalized deep copy of ``snapshot``; the input is left untouched."""

    result = copy.deepcopy(snapshot) if isinstance(snapshot, dict) else {}
    for schema in COLLECTION_SCHEMAS:
        items = result.get(schema.name)
        if not isinstance(items, list):
            continue
        for item in items:
            if isinstance(item, dict):
                normalize_item(item, schema)
    for page in page_singletons(result):
        ensure_sections(page)
    return result


def summarize_changes(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, int]:
    """Count items or pages that differ between two snapshots, keyed by collection."""

    summary: Dict[str, int] = {}
    for schema in COLLECTION_SCHEMAS:
        old_items = before.get(schema.name) if isinstance(before.get(schema.name), list) else []
        new_items = after.get(schema.name) if isinstance(after.get(schema.name), list) else []
        changed = sum(1 for old, new in zip(old_items, new_items) if old != new)
        if changed:
            summary[schema.name] = changed
    old_pages = page_singletons(before)
    new_pages = page_singletons(after)
    changed_pages = sum(1 for old, new in zip(old_pages, new_pages) if old != new)
    if changed_pages:
        summary["pages"] = changed_pages
    return summary
