"""Sitemap XML derived from the store's collections."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Sequence
from urllib.parse import quote

from .config import DEFAULT_BASE_URL, STATIC_ROUTES
from .models import HttpResult, SitemapEntry
from .store import DocumentStore
from .utils import coerce_datetime, iso_instant, utc_now

LOGGER = logging.getLogger(__name__)

POSTS_LIMIT = 5000
SITEMAP_HEADERS = {
    "Content-Type": "application/xml; charset=utf-8",
    "Cache-Control": "public, max-age=300, s-maxage=600",
}
ERROR_BODY = "<!-- sitemap error -->"

# encodeURIComponent leaves these unescaped.
_SLUG_SAFE = "-_.!~*'()"


def xml_escape(value: str) -> str:
    """Escape ``& < > " '``; ampersand first so produced entities are not escaped twice."""

    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def resolve_base_url(base_url: str | None) -> str:
    return (base_url or DEFAULT_BASE_URL).rstrip("/")


def _slug_entries(
    store: DocumentStore, collection: str, base: str, prefix: str
) -> List[SitemapEntry]:
    entries = []
    for document in store.list_documents(collection):
        slug = document.data.get("slug")
        if not isinstance(slug, str) or not slug:
            LOGGER.warning("Skipping %s/%s without a slug", collection, document.id)
            continue
        entries.append(
            SitemapEntry(
                loc=f"{base}{prefix}/{quote(slug, safe=_SLUG_SAFE)}",
                changefreq="weekly",
                priority=0.7,
            )
        )
    return entries


def build_entries(
    store: DocumentStore,
    base_url: str | None = None,
    *,
    now: datetime | None = None,
) -> List[SitemapEntry]:
    """Return root, static routes, programs, experiences and posts, in that order."""

    base = resolve_base_url(base_url)
    generated_at = iso_instant(now or utc_now())

    entries = [SitemapEntry(loc=f"{base}/", changefreq="weekly", priority=0.9)]
    entries.extend(
        SitemapEntry(loc=f"{base}{route}", changefreq="monthly", priority=0.8)
        for route in STATIC_ROUTES
        if route != "/"
    )
    entries.extend(_slug_entries(store, "programs", base, "/programs"))
    entries.extend(_slug_entries(store, "experiences", base, "/experiences"))

    for document in store.query_ordered("posts", "publishedAt", descending=True, limit=POSTS_LIMIT):
        slug = document.data.get("slug")
        if not isinstance(slug, str) or not slug:
            LOGGER.warning("Skipping posts/%s without a slug", document.id)
            continue
        published = coerce_datetime(document.data.get("publishedAt"))
        entries.append(
            SitemapEntry(
                loc=f"{base}/resources/{quote(slug, safe=_SLUG_SAFE)}",
                changefreq="weekly",
                priority=0.6,
                lastmod=iso_instant(published) if published else generated_at,
            )
        )
    return entries


def render_sitemap(entries: Sequence[SitemapEntry]) -> str:
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for entry in entries:
        lines.append("  <url>")
        lines.append(f"    <loc>{xml_escape(entry.loc)}</loc>")
        if entry.lastmod:
            lines.append(f"    <lastmod>{xml_escape(entry.lastmod)}</lastmod>")
        lines.append(f"    <changefreq>{entry.changefreq}</changefreq>")
        lines.append(f"    <priority>{entry.priority:.1f}</priority>")
        lines.append("  </url>")
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"


def generate_sitemap(
    store: DocumentStore,
    base_url: str | None = None,
    *,
    now: datetime | None = None,
) -> str:
    return render_sitemap(build_entries(store, base_url, now=now))


def sitemap_response(
    store: DocumentStore,
    base_url: str | None = None,
    *,
    now: datetime | None = None,
) -> HttpResult:
    """Serve the sitemap; any failure degrades to a 500 with an XML comment body."""

    try:
        body = generate_sitemap(store, base_url, now=now)
    except Exception:
        LOGGER.exception("Sitemap generation failed")
        return sitemap_error()
    return HttpResult(status=200, body=body, headers=dict(SITEMAP_HEADERS))


def sitemap_error() -> HttpResult:
    return HttpResult(
        status=500,
        body=ERROR_BODY,
        headers={"Content-Type": SITEMAP_HEADERS["Content-Type"]},
    )
