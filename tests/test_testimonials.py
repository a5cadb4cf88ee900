from contentsync.config import Settings
from contentsync.models import Testimonial, TestimonialAuthor
from contentsync.testimonials import (
    Diversity,
    SelectionContext,
    SelectionOptions,
    aggregate_rating,
    build_testimonial_index,
    select_testimonials,
    testimonials_for_individuals,
    testimonials_for_organizations,
    testimonials_for_program,
    testimonials_jsonld,
)


def make(
    identifier,
    author="Sam",
    rating=None,
    featured=False,
    tags=None,
    programs=None,
    solutions=None,
    experiences=None,
):
    return Testimonial(
        id=identifier,
        text=f"Quote {identifier}",
        author=TestimonialAuthor(name=author),
        rating=rating,
        featured=featured,
        tags=tags or [],
        program_slugs=programs or [],
        solution_slugs=solutions or [],
        experience_slugs=experiences or [],
    )


def test_rating_filter_defaults_missing_rating_to_five():
    pool = [make("a", rating=5), make("b", rating=3), make("c")]

    selected = select_testimonials(pool, SelectionOptions(min_rating=4))

    assert [item.id for item in selected] == ["a", "c"]


def test_author_diversity_keeps_first_per_author():
    pool = [make("a", author="Alex"), make("b", author="Alex"), make("c", author="Bea")]

    selected = select_testimonials(pool, SelectionOptions(diversity=Diversity(by_author=True)))

    assert [item.id for item in selected] == ["a", "c"]


def test_featured_first_is_stable_and_truncates():
    pool = [make("a"), make("b", featured=True), make("c"), make("d", featured=True)]

    selected = select_testimonials(pool, SelectionOptions(prefer_featured=True, max_count=3))

    assert [item.id for item in selected] == ["b", "d", "a"]


def test_featured_sort_happens_before_diversity():
    pool = [make("plain", author="Alex"), make("star", author="Alex", featured=True)]
    selected = select_testimonials(
        pool, SelectionOptions(prefer_featured=True, diversity=Diversity(by_author=True))
    )
    assert [item.id for item in selected] == ["star"]


def test_context_filters():
    pool = [
        make("tagged", tags=["Personal"]),
        make("program", programs=["reset"]),
        make("team", tags=["teams"]),
        make("solution", solutions=["culture"]),
        make("none"),
    ]

    individuals = select_testimonials(pool, SelectionOptions(context=SelectionContext(audience="individuals")))
    organizations = select_testimonials(pool, SelectionOptions(context=SelectionContext(audience="organizations")))
    program = select_testimonials(pool, SelectionOptions(context=SelectionContext(program_slug="reset")))

    assert [item.id for item in individuals] == ["tagged", "program"]
    assert [item.id for item in organizations] == ["team", "solution"]
    assert [item.id for item in program] == ["program"]


def test_no_options_returns_copy_of_pool():
    pool = [make("a"), make("b")]
    assert select_testimonials(pool) == pool
    assert select_testimonials(pool) is not pool


def test_display_helpers_apply_defaults():
    pool = [make(str(idx), author=f"A{idx}", rating=5, programs=["reset"]) for idx in range(8)]
    pool.append(make("low", author="Low", rating=2, programs=["reset"]))

    selected = testimonials_for_program(pool, "reset")

    assert len(selected) == 6
    assert "low" not in [item.id for item in selected]
    assert testimonials_for_organizations(pool) == []
    assert len(testimonials_for_individuals(pool, max_count=2)) == 2


def test_aggregate_rating_rounds_to_two_decimals():
    pool = [make("a", rating=5), make("b", rating=5), make("c", rating=4), make("d")]

    aggregate = aggregate_rating(pool)

    assert aggregate.rating_value == 4.67
    assert aggregate.review_count == 3
    assert aggregate.to_dict() == {"ratingValue": 4.67, "reviewCount": 3}
    assert aggregate_rating([make("x")]) is None
    assert aggregate_rating(pool, lambda item: item.id == "c").rating_value == 4.0


def test_aggregate_rating_rounds_ties_up():
    pool = [make("top", rating=5)] + [make(str(idx), rating=4) for idx in range(7)]

    aggregate = aggregate_rating(pool)

    assert aggregate.rating_value == 4.13
    assert aggregate.review_count == 8


def test_string_ratings_are_left_out_of_the_aggregate():
    pool = [
        Testimonial.from_dict({"id": "a", "text": "Good", "rating": 4}),
        Testimonial.from_dict({"id": "b", "text": "Odd", "rating": "1"}),
    ]

    aggregate = aggregate_rating(pool)

    assert pool[1].rating is None
    assert aggregate.rating_value == 4.0
    assert aggregate.review_count == 1


def test_testimonials_jsonld_includes_aggregate_rating():
    settings = Settings(sitemap_base_url="https://example.com")
    pool = [make("a", rating=5), make("b", rating=4), make("c", rating=2)]

    blocks = testimonials_jsonld(pool, settings)

    assert blocks[0]["url"] == "https://example.com/testimonials"
    assert blocks[1]["@type"] == "AggregateRating"
    assert blocks[1]["ratingValue"] == 4.5
    assert blocks[1]["reviewCount"] == 2
    assert testimonials_jsonld([], settings) == [blocks[0]]


def test_build_testimonial_index_groups_by_reference():
    pool = [
        make("a", author="A", programs=["reset"], experiences=["ice"]),
        make("b", author="B", programs=["focus"], featured=True),
    ]

    index = build_testimonial_index(pool)

    assert [item["id"] for item in index["testimonials"]] == ["a", "b"]
    assert sorted(index["programTestimonials"]) == ["focus", "reset"]
    assert [item["id"] for item in index["experienceTestimonials"]["ice"]] == ["a"]
    assert [item["id"] for item in index["featuredTestimonials"]["home"]] == ["b", "a"]
    assert index["testimonials"][0]["refs"]["programSlugs"] == ["reset"]


def test_from_dict_handles_legacy_shapes():
    testimonial = Testimonial.from_dict(
        {
            "slug": "legacy",
            "quote": "Great",
            "author": "Jo",
            "rating": "4.5",
            "refs": {"programSlugs": ["reset", 3]},
        }
    )

    assert testimonial.id == "legacy"
    assert testimonial.text == "Great"
    assert testimonial.author.name == "Jo"
    assert testimonial.rating is None
    assert testimonial.program_slugs == ["reset"]
