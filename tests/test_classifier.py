import pytest
from site_audit.classifier import (
    classify_page,
    classify_site,
    count_location_mentions,
    has_url_location_marker,
)
from site_audit.models import PageRecord, SiteStructure


# --- helpers ---
def make_page(path="/", title="", body="", has_contact_form=False):
    return PageRecord(
        url=f"https://acmeplumbing.com{path}",
        status_code=200,
        title=title,
        body_text=body,
        has_contact_form=has_contact_form,
    )


# --- contact ---

def test_contact_url():
    assert classify_page(make_page("/contact-us", "Reach Acme")) == "contact"


def test_contact_form_with_contact_wording():
    page = make_page("/hello", "Say hello", "Use the form to get in touch with our team.", has_contact_form=True)
    assert classify_page(page) == "contact"


def test_two_strong_indicators_make_contact():
    page = make_page("/hello", "Hello", "Call us or email us any time during business hours.")
    assert classify_page(page) == "contact"


def test_contact_wins_over_service():
    page = make_page("/contact", "Contact our repair team", "We offer repair and installation.")
    assert classify_page(page) == "contact"


# --- service ---

def test_service_url_pattern():
    assert classify_page(make_page("/services/drain-cleaning", "Drains")) == "service"


def test_service_title_keyword():
    assert classify_page(make_page("/drains", "Drain Cleaning")) == "service"


def test_single_electrical_term_is_enough():
    page = make_page("/about-bob", "Meet Bob", "Bob is a licensed electrician with twenty years on the job.")
    assert classify_page(page) == "service"


def test_content_indicators_make_service():
    page = make_page("/what-to-expect", "What to expect", "We offer professional and experienced technicians.")
    assert classify_page(page) == "service"


# --- location ---

def test_location_url_pattern():
    assert classify_page(make_page("/locations/springfield", "Springfield")) == "location"


def test_state_suffix_in_slug():
    assert classify_page(make_page("/austin-tx", "Austin")) == "location"


def test_location_content_indicators():
    page = make_page("/near-you", "Near you", "Serving Springfield and the areas served by our crews.")
    assert classify_page(page) == "location"


# --- service area ---

def test_service_area_by_content():
    page = make_page(
        "/coverage",
        "Coverage",
        "Our service territory covers the county and nearby towns within 30 miles.",
    )
    assert classify_page(page) == "service-area"


def test_service_area_needs_distance_unit():
    page = make_page("/coverage", "Coverage", "Our service territory covers the county and nearby towns.")
    assert classify_page(page) == "other"


# --- other ---

def test_privacy_is_other():
    assert classify_page(make_page("/privacy", "Privacy Policy", "We respect your privacy.")) == "other"


# --- helpers ---

def test_url_location_marker():
    assert has_url_location_marker("https://acmeplumbing.com/plumbers-springfield")
    assert has_url_location_marker("https://acmeplumbing.com/dallas-tx/")
    assert not has_url_location_marker("https://acmeplumbing.com/about")


def test_location_mentions_whole_words():
    assert count_location_mentions("the city and nearby towns of the county") == 4
    assert count_location_mentions("velocity stated") == 0


# --- classify_site ---

def test_classify_site_buckets_and_extra_contact():
    home = make_page("/", "Acme Plumbing")
    structure = SiteStructure(
        homepage=home,
        other_pages=[
            make_page("/contact", "Contact"),
            make_page("/contact-2", "Contact again"),
            make_page("/services/leaks", "Leaks"),
            make_page("/locations/springfield", "Springfield"),
            make_page("/we-serve", "Where we work"),
            make_page("/privacy", "Privacy"),
        ],
    )
    result = classify_site(structure)

    assert result.homepage is home
    assert result.contact_page.url.endswith("/contact")
    assert [p.url for p in result.service_pages] == ["https://acmeplumbing.com/services/leaks"]
    assert [p.url for p in result.location_pages] == ["https://acmeplumbing.com/locations/springfield"]
    assert [p.url for p in result.service_area_pages] == ["https://acmeplumbing.com/we-serve"]
    assert {p.url for p in result.other_pages} == {
        "https://acmeplumbing.com/contact-2",
        "https://acmeplumbing.com/privacy",
    }


def test_classify_site_is_idempotent():
    structure = SiteStructure(
        homepage=make_page("/"),
        other_pages=[make_page("/contact"), make_page("/services/leaks"), make_page("/privacy")],
    )
    first = classify_site(structure)
    snapshot = first.to_dict()
    assert classify_site(first).to_dict() == snapshot
