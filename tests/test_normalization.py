import copy

import pytest

from contentsync.normalization import (
    DEFAULT_UI,
    buttons_from_ctas,
    ensure_sections,
    get_schema,
    normalize_item,
    normalize_snapshot,
    summarize_changes,
)
from contentsync.utils import dumps_json


def legacy_snapshot() -> dict:
    return {
        "programs": [
            {
                "slug": "reset",
                "title": "Reset",
                "summary": "A short reset.",
                "modules": ["old"],
                "highlights": ["old"],
                "ui": {"faqTitle": "Questions"},
                "ctas": {
                    "secondary": {"label": "Call", "url": "/call"},
                    "primary": {"label": "Book", "pathOrUrl": "/book", "external": False},
                    "zeta": {"label": "Later", "url": "/later"},
                    "alpha": {"label": "First extra", "url": "/alpha"},
                },
                "faq": [{"question": "Why?", "answer": "Because."}],
            },
            {"summary": ""},
        ],
        "experiences": [
            {
                "slug": "ice",
                "title": "Ice Bath",
                "hero": {"subtext": "Cold and calm"},
                "format": "legacy string",
                "videoTestimonial": None,
            }
        ],
        "solutions": [{"slug": "teams", "title": "Teams", "ctas": [{"label": "Talk", "url": "/talk"}]}],
        "pageHome": {"sections": {"hero": {"title": "Hi"}, "grid": [{"visible": False}, {"visible": "yes"}]}},
        "pageAbout": {"sections": "broken"},
        "pages": {"press": {}},
        "posts": [{"slug": "untouched", "modules": ["kept"]}],
    }


def test_normalize_snapshot_is_idempotent():
    once = normalize_snapshot(legacy_snapshot())
    twice = normalize_snapshot(once)
    assert dumps_json(twice) == dumps_json(once)


def test_normalize_snapshot_does_not_mutate_input():
    snapshot = legacy_snapshot()
    before = copy.deepcopy(snapshot)
    normalize_snapshot(snapshot)
    assert snapshot == before


def test_item_fields_ui_and_deprecated_keys():
    program = normalize_snapshot(legacy_snapshot())["programs"][0]

    assert program["outcomes"] == []
    assert program["howItWorks"] == []
    assert program["includes"] == []
    assert program["format"] == {}
    assert "modules" not in program
    assert "highlights" not in program
    assert program["videoTestimonial"] == ""
    assert program["ui"]["faqTitle"] == "Questions"
    assert program["ui"]["outcomesTitle"] == DEFAULT_UI["outcomesTitle"]
    assert program["ui"]["faqSubtext"] == ""


def test_other_collections_are_left_alone():
    posts = normalize_snapshot(legacy_snapshot())["posts"]
    assert posts == [{"slug": "untouched", "modules": ["kept"]}]


def test_explicit_null_video_testimonial_is_kept():
    experience = normalize_snapshot(legacy_snapshot())["experiences"][0]
    assert experience["videoTestimonial"] is None
    assert experience["format"] == {}


def test_final_cta_from_keyed_ctas_uses_declared_order():
    program = normalize_snapshot(legacy_snapshot())["programs"][0]
    final_cta = program["finalCTA"]

    assert final_cta["headline"] == "Ready to start Reset?"
    assert final_cta["subtext"] == "A short reset."
    assert [button["label"] for button in final_cta["buttons"]] == [
        "Book",
        "Call",
        "First extra",
        "Later",
    ]
    assert final_cta["buttons"][1] == {"label": "Call", "pathOrUrl": "/call", "external": False}


def test_final_cta_fallback_buttons_and_title_default():
    program = normalize_snapshot(legacy_snapshot())["programs"][1]
    final_cta = program["finalCTA"]

    assert final_cta["headline"] == "Ready to start Get Started?"
    assert "subtext" not in final_cta
    assert final_cta["buttons"] == [{"label": "Contact", "pathOrUrl": "/contact", "external": False}]


def test_final_cta_for_experience_uses_hero_subtext_and_slug_fallback():
    experience = normalize_snapshot(legacy_snapshot())["experiences"][0]
    final_cta = experience["finalCTA"]

    assert final_cta["headline"] == "Ready to explore Ice Bath?"
    assert final_cta["subtext"] == "Cold and calm"
    assert final_cta["buttons"][1] == {
        "label": "Learn More",
        "pathOrUrl": "/experiences/ice",
        "external": False,
    }


def test_final_cta_keeps_existing_values():
    schema = get_schema("solutions")
    item = {
        "title": "Teams",
        "summary": "Default",
        "finalCTA": {
            "headline": "Custom",
            "subtext": "Mine",
            "buttons": [{"label": "Go", "url": "https://example.com", "external": True}],
        },
    }
    normalize_item(item, schema)

    assert item["finalCTA"] == {
        "headline": "Custom",
        "subtext": "Mine",
        "buttons": [{"label": "Go", "pathOrUrl": "https://example.com", "external": True}],
    }


def test_buttons_from_ctas_drops_incomplete_entries():
    buttons = buttons_from_ctas([{"label": "Only label"}, {"url": "/x"}, {"label": "Ok", "url": "/ok"}, "junk"])
    assert [button.to_dict() for button in buttons] == [
        {"label": "Ok", "pathOrUrl": "/ok", "external": False}
    ]
    assert buttons_from_ctas("nonsense") == []


def test_faq_is_coerced_to_items():
    program = normalize_snapshot(legacy_snapshot())["programs"][0]
    assert program["faq"] == {"title": "", "subtitle": "", "items": [{"q": "Why?", "a": "Because."}]}

    solution = normalize_snapshot(
        {"solutions": [{"slug": "s", "faq": {"title": "FAQ", "qna": [{"q": "A?", "a": "B"}]}}]}
    )["solutions"][0]
    assert solution["faq"] == {"title": "FAQ", "subtitle": "", "items": [{"q": "A?", "a": "B"}]}


def test_page_sections_get_visibility():
    normalized = normalize_snapshot(legacy_snapshot())

    sections = normalized["pageHome"]["sections"]
    assert sections["hero"] == {"title": "Hi", "visible": True}
    assert sections["grid"] == [{"visible": False}, {"visible": True}]
    assert normalized["pageAbout"]["sections"] == {}
    assert normalized["pages"]["press"] == {"sections": {}}


@pytest.mark.parametrize(
    "page, expected",
    [
        ({}, {"sections": {}}),
        ({"sections": [{"id": "a"}]}, {"sections": [{"id": "a", "visible": True}]}),
        ({"sections": {"flag": True}}, {"sections": {"flag": True}}),
    ],
)
def test_ensure_sections_shapes(page, expected):
    ensure_sections(page)
    assert page == expected


def test_malformed_snapshot_values_never_raise():
    normalized = normalize_snapshot({"programs": "oops", "pageHome": None, "experiences": [None, 3]})
    assert normalized == {"programs": "oops", "pageHome": None, "experiences": [None, 3]}


def test_summarize_changes_counts_changed_items():
    before = legacy_snapshot()
    after = normalize_snapshot(before)
    summary = summarize_changes(before, after)

    assert summary["programs"] == 2
    assert summary["experiences"] == 1
    assert summary["solutions"] == 1
    assert summary["pages"] == 3
    assert summarize_changes(after, normalize_snapshot(after)) == {}
