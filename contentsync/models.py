"""Data models used by the content pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Button:
    """A call-to-action button in its canonical shape."""

    label: str
    path_or_url: str
    external: bool = False

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "pathOrUrl": self.path_or_url,
            "external": self.external,
        }

    @classmethod
    def from_legacy(cls, payload: object) -> Optional["Button"]:
        """Build a button from ``{label, pathOrUrl|url, external}`` or return ``None``.

        Entries without a label or a target are dropped by returning ``None``.
        """

        if not isinstance(payload, dict):
            return None
        label = payload.get("label")
        target = payload.get("pathOrUrl")
        if target is None:
            target = payload.get("url")
        if not label or not target:
            return None
        return cls(label=label, path_or_url=target, external=bool(payload.get("external")))


@dataclass
class TestimonialAuthor:
    __test__ = False

    name: str = ""
    role: Optional[str] = None
    avatar: Optional[str] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"name": self.name}
        if self.role is not None:
            data["role"] = self.role
        if self.avatar is not None:
            data["avatar"] = self.avatar
        return data


@dataclass
class Testimonial:
    """A customer quote that can be attached to programs, experiences or solutions."""

    __test__ = False

    id: str
    text: str
    author: TestimonialAuthor = field(default_factory=TestimonialAuthor)
    rating: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    featured: bool = False
    program_slugs: List[str] = field(default_factory=list)
    experience_slugs: List[str] = field(default_factory=list)
    solution_slugs: List[str] = field(default_factory=list)

    @property
    def effective_rating(self) -> float:
        return self.rating if self.rating is not None else 5.0

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.id,
            "author": self.author.to_dict(),
            "text": self.text,
            "tags": list(self.tags),
            "featured": self.featured,
            "refs": {
                "programSlugs": list(self.program_slugs),
                "experienceSlugs": list(self.experience_slugs),
                "solutionSlugs": list(self.solution_slugs),
            },
        }
        if self.rating is not None:
            data["rating"] = self.rating
        return data

    @classmethod
    def from_dict(cls, payload: dict) -> "Testimonial":
        raw_author = payload.get("author")
        if isinstance(raw_author, dict):
            author = TestimonialAuthor(
                name=str(raw_author.get("name") or ""),
                role=raw_author.get("role") or raw_author.get("title"),
                avatar=raw_author.get("avatar"),
            )
        else:
            author = TestimonialAuthor(name=str(raw_author or ""))

        # Only numeric ratings count; strings such as "4" are treated as unrated.
        rating_value = payload.get("rating")
        if isinstance(rating_value, bool) or not isinstance(rating_value, (int, float)):
            rating_value = None

        refs = payload.get("refs") if isinstance(payload.get("refs"), dict) else {}

        return cls(
            id=str(payload.get("id") or payload.get("slug") or ""),
            text=str(payload.get("text") or payload.get("quote") or ""),
            author=author,
            rating=rating_value,
            tags=_string_list(payload.get("tags")),
            featured=bool(payload.get("featured")),
            program_slugs=_string_list(refs.get("programSlugs")),
            experience_slugs=_string_list(refs.get("experienceSlugs")),
            solution_slugs=_string_list(refs.get("solutionSlugs")),
        )


def _string_list(value: object) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if isinstance(entry, str) and entry]


@dataclass(frozen=True)
class BackupRecord:
    """An immutable copy of the snapshot taken before a mutating run."""

    source: Path
    path: Path
    created_at: datetime


@dataclass(frozen=True)
class SitemapEntry:
    loc: str
    changefreq: str
    priority: float
    lastmod: Optional[str] = None


@dataclass
class StoredDocument:
    """A document read from the store: its key plus its fields."""

    id: str
    data: Dict[str, Any]

    def to_item(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


@dataclass(frozen=True)
class AggregateRating:
    rating_value: float
    review_count: int

    def to_dict(self) -> dict:
        return {"ratingValue": self.rating_value, "reviewCount": self.review_count}


@dataclass
class HttpResult:
    """Transport independent response returned by the HTTP handlers."""

    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
