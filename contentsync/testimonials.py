"""Pick testimonials for a page and summarize their ratings."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .config import Settings
from .models import AggregateRating, Testimonial

DISPLAY_MIN_RATING = 4.0
DISPLAY_MAX_COUNT = 6
STRUCTURED_DATA_MIN_RATING = 4.0

AUDIENCE_TAGS: Dict[str, frozenset[str]] = {
    "individuals": frozenset({"individuals", "personal"}),
    "organizations": frozenset({"organizations", "teams", "leadership"}),
}


@dataclass
class SelectionContext:
    audience: Optional[str] = None
    program_slug: Optional[str] = None
    experience_slug: Optional[str] = None
    solution_slug: Optional[str] = None


@dataclass
class Diversity:
    by_author: bool = False


@dataclass
class SelectionOptions:
    """Knobs for :func:`select_testimonials`; every step is skipped when unset."""

    context: SelectionContext = field(default_factory=SelectionContext)
    min_rating: Optional[float] = None
    max_count: Optional[int] = None
    prefer_featured: bool = False
    diversity: Diversity = field(default_factory=Diversity)


def display_options(context: SelectionContext | None = None, max_count: int = DISPLAY_MAX_COUNT) -> SelectionOptions:
    """Options used by the site's testimonial rails."""

    return SelectionOptions(
        context=context or SelectionContext(),
        min_rating=DISPLAY_MIN_RATING,
        max_count=max_count,
        prefer_featured=True,
        diversity=Diversity(by_author=True),
    )


def _lower_tags(testimonial: Testimonial) -> set[str]:
    return {tag.lower() for tag in testimonial.tags}


def _matches_audience(testimonial: Testimonial, audience: str) -> bool:
    tags = AUDIENCE_TAGS.get(audience)
    if tags is None:
        return True
    if _lower_tags(testimonial) & tags:
        return True
    if audience == "individuals":
        return bool(testimonial.program_slugs)
    return bool(testimonial.solution_slugs)


def _filter_context(pool: List[Testimonial], context: SelectionContext) -> List[Testimonial]:
    if context.audience:
        pool = [item for item in pool if _matches_audience(item, context.audience)]
    if context.program_slug:
        pool = [item for item in pool if context.program_slug in item.program_slugs]
    if context.experience_slug:
        pool = [item for item in pool if context.experience_slug in item.experience_slugs]
    if context.solution_slug:
        pool = [item for item in pool if context.solution_slug in item.solution_slugs]
    return pool


def _diverse_by_author(pool: Iterable[Testimonial]) -> List[Testimonial]:
    seen: set[str] = set()
    selected = []
    for item in pool:
        if item.author.name in seen:
            continue
        seen.add(item.author.name)
        selected.append(item)
    return selected


def select_testimonials(
    pool: Sequence[Testimonial], options: SelectionOptions | None = None
) -> List[Testimonial]:
    """Filter, order, diversify and truncate ``pool``; deterministic for fixed input."""

    options = options or SelectionOptions()
    selected = list(pool)
    if options.min_rating is not None:
        selected = [item for item in selected if item.effective_rating >= options.min_rating]
    selected = _filter_context(selected, options.context)
    if options.prefer_featured:
        # sorted() is stable, so order inside each group is preserved.
        selected = sorted(selected, key=lambda item: not item.featured)
    if options.diversity.by_author:
        selected = _diverse_by_author(selected)
    if options.max_count is not None:
        selected = selected[: max(options.max_count, 0)]
    return selected


def aggregate_rating(
    pool: Iterable[Testimonial],
    predicate: Callable[[Testimonial], bool] | None = None,
) -> AggregateRating | None:
    """Mean rating rounded to two decimals plus the number of rated items used."""

    candidates = [item for item in pool if predicate is None or predicate(item)]
    ratings = [float(item.rating) for item in candidates if item.rating is not None]
    if not ratings:
        return None
    mean = Decimal(str(sum(ratings) / len(ratings)))
    return AggregateRating(
        # Ties round up, so 4.125 becomes 4.13.
        rating_value=float(mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
        review_count=len(ratings),
    )


def testimonials_for_program(pool: Sequence[Testimonial], slug: str, max_count: int = DISPLAY_MAX_COUNT) -> List[Testimonial]:
    return select_testimonials(pool, display_options(SelectionContext(program_slug=slug), max_count))


def testimonials_for_experience(pool: Sequence[Testimonial], slug: str, max_count: int = DISPLAY_MAX_COUNT) -> List[Testimonial]:
    return select_testimonials(pool, display_options(SelectionContext(experience_slug=slug), max_count))


def testimonials_for_solution(pool: Sequence[Testimonial], slug: str, max_count: int = DISPLAY_MAX_COUNT) -> List[Testimonial]:
    return select_testimonials(pool, display_options(SelectionContext(solution_slug=slug), max_count))


def testimonials_for_individuals(pool: Sequence[Testimonial], max_count: int = DISPLAY_MAX_COUNT) -> List[Testimonial]:
    return select_testimonials(pool, display_options(SelectionContext(audience="individuals"), max_count))


def testimonials_for_organizations(pool: Sequence[Testimonial], max_count: int = DISPLAY_MAX_COUNT) -> List[Testimonial]:
    return select_testimonials(pool, display_options(SelectionContext(audience="organizations"), max_count))


def testimonials_for_home(pool: Sequence[Testimonial], max_count: int = DISPLAY_MAX_COUNT) -> List[Testimonial]:
    return select_testimonials(pool, display_options(max_count=max_count))


def testimonials_jsonld(pool: Sequence[Testimonial], settings: Settings) -> List[dict]:
    """Structured data for the testimonials page, with an AggregateRating when possible."""

    base = {
        "@context": "https://schema.org",
        "@type": "CollectionPage",
        "name": "Testimonials",
        "url": f"{settings.base_url}/testimonials",
    }
    aggregate = aggregate_rating(
        pool, lambda item: item.effective_rating >= STRUCTURED_DATA_MIN_RATING
    )
    if aggregate is None:
        return [base]
    return [
        base,
        {
            "@context": "https://schema.org",
            "@type": "AggregateRating",
            "itemReviewed": {"@type": "Organization", "name": settings.site_name},
            **aggregate.to_dict(),
        },
    ]


def build_testimonial_index(pool: Sequence[Testimonial], max_count: int = DISPLAY_MAX_COUNT) -> dict:
    """Payload for the static ``testimonials.json`` consumed by the site."""

    program_slugs = sorted({slug for item in pool for slug in item.program_slugs})
    experience_slugs = sorted({slug for item in pool for slug in item.experience_slugs})
    return {
        "testimonials": [item.to_dict() for item in pool],
        "programTestimonials": {
            slug: [item.to_dict() for item in testimonials_for_program(pool, slug, max_count)]
            for slug in program_slugs
        },
        "experienceTestimonials": {
            slug: [item.to_dict() for item in testimonials_for_experience(pool, slug, max_count)]
            for slug in experience_slugs
        },
        "featuredTestimonials": {
            "home": [item.to_dict() for item in testimonials_for_home(pool, max_count)],
            "individuals": [item.to_dict() for item in testimonials_for_individuals(pool, max_count)],
            "organizations": [item.to_dict() for item in testimonials_for_organizations(pool, max_count)],
        },
    }
