import pytest
from unittest.mock import patch

from site_audit.extractor import (
    _build_corpus,
    build_page_record,
    extract_topics,
    keyword_density,
    readability_score,
    speed_score,
)
from site_audit.models import LinkRef


SAMPLE_PARSED = {
    "title": "Water Heater Repair in Springfield | Acme Plumbing",
    "meta_description": "Same-day water heater repair and installation for Springfield homes.",
    "og_title": "Water Heater Repair",
    "og_description": None,
    "headings": {
        "h1": ["Water Heater Repair"],
        "h2": ["Tankless Installation", "Emergency Service"],
        "h3": [], "h4": [], "h5": [], "h6": [],
    },
    "internal_links": [LinkRef(url="https://acmeplumbing.com/contact", anchor_text="Contact")],
    "external_links": [],
    "image_count": 3,
    "alt_texts": ["Technician installing a water heater"],
    "schema_types": ["Service"],
    "body_text": (
        "Our licensed technicians repair and replace water heaters across Springfield. "
        "We service tank and tankless water heaters from every major brand. "
        "Most water heater repairs are finished the same day."
    ),
    "mobile_friendly": True,
    "has_https": True,
    "has_phone_number": True,
    "has_address": False,
    "has_faqs": True,
    "noindex": False,
}


def make_record(**overrides):
    parsed = dict(SAMPLE_PARSED, **overrides)
    return build_page_record(
        parsed,
        url="https://acmeplumbing.com/water-heaters",
        final_url="https://acmeplumbing.com/water-heaters",
        status_code=200,
        load_time_ms=1500,
    )


# --- build_page_record ---

def test_record_basics():
    record = make_record()
    assert record.status_code == 200
    assert record.error is None
    assert record.title.startswith("Water Heater Repair")
    assert record.h1s == ["Water Heater Repair"]


def test_image_stats():
    record = make_record()
    assert record.images.total == 3
    assert record.images.with_alt == 1
    assert record.images.without_alt == 2
    assert record.accessibility.missing_alt_text == 2


def test_nap_requires_phone_and_address():
    assert make_record().has_nap is False
    assert make_record(has_address=True).has_nap is True


def test_schema_flag_follows_types():
    assert make_record().has_schema is True
    assert make_record(schema_types=[]).has_schema is False


def test_thin_content_and_missing_headings():
    record = make_record()
    assert record.word_count < 300
    assert record.seo_issues.thin_content is True
    assert record.seo_issues.missing_headings is False


def test_speed_from_load_time():
    record = make_record()
    assert record.page_load_speed.load_time_ms == 1500
    assert record.page_load_speed.score == 75


def test_topics_extracted():
    record = make_record()
    assert len(record.topics) > 0
    assert any("water" in topic or "heater" in topic for topic in record.topics)


def test_serialised_keys():
    data = make_record().to_dict()
    assert data["hasNAP"] is False
    assert data["images"]["withoutAlt"] == 2
    assert "rawHtml" not in data


# --- text metrics ---

def test_corpus_weights_title():
    corpus = _build_corpus(SAMPLE_PARSED)
    assert corpus.count(SAMPLE_PARSED["title"]) == 5


def test_extract_topics_empty():
    assert extract_topics("") == []
    assert extract_topics("the and of") == []


def test_readability_bounds():
    assert readability_score("") == 0.0
    simple = readability_score("The cat sat. The dog ran. We fix pipes.")
    dense = readability_score(
        "Comprehensive infrastructural rehabilitation necessitates considerable organizational coordination."
    )
    assert 0 <= dense < simple <= 100


def test_readability_whitespace_only():
    assert readability_score("   \n\t ") == 0.0


@pytest.mark.parametrize("raw,expected", [(121.22, 100.0), (-48.3, 0.0), (64.37, 64.4)])
def test_readability_clamps_flesch_score(raw, expected):
    with patch("site_audit.extractor.textstat.flesch_reading_ease", return_value=raw) as flesch:
        assert readability_score("We fix pipes.") == expected
    flesch.assert_called_once_with("We fix pipes.")


def test_keyword_density_ignores_single_use_terms():
    density = keyword_density("plumbing plumbing repair water water water heater")
    assert density["water"] == pytest.approx(42.86)
    assert "plumbing" in density
    assert "repair" not in density


@pytest.mark.parametrize("ms,score", [(500, 90), (1999, 75), (2500, 60), (4000, 40), (9000, 20)])
def test_speed_score(ms, score):
    assert speed_score(ms) == score
