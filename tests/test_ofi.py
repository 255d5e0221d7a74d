import pytest

from site_audit.analyzer import EnhancedAuditAnalyzer
from site_audit.analyzer.ofi import (
    DOWNGRADE_MARKER,
    PRIORITY_PREFIX,
    actionable_notes,
    classify_ofi,
    is_critical_issue,
    met_criteria,
    reclassify,
    reclassify_findings,
)
from site_audit.extractor import build_page_record
from site_audit.models import ENHANCED_CATEGORIES, NA, OFI, OK, PRIORITY_OFI, AuditFinding, SiteStructure
from site_audit.parser import parse_html


BASE = "https://acmeplumbing.com/"

HOME_HTML = """
<html><head><title>Acme Plumbing</title></head><body>
<p>Plumbing repairs in Springfield.</p>
<img src="/van.jpg">
</body></html>
"""


# --- helpers ---
def make_structure():
    parsed = parse_html(HOME_HTML, BASE, {})
    home = build_page_record(parsed, url=BASE, final_url=BASE, status_code=200, load_time_ms=300, raw_html=HOME_HTML)
    return SiteStructure(homepage=home)


def make_finding(name, description, status=PRIORITY_OFI, notes=None, page_type=None):
    return AuditFinding(
        name=name, description=description, status=status, importance="High",
        notes=notes, category="Technical SEO", page_url=BASE, page_type=page_type,
    )


# --- criteria ---

def test_threshold_only_finding_meets_no_criteria():
    f = make_finding("Page Title Length", "Title tag is 30-60 characters", notes="0 characters")
    assert met_criteria(f) == ()
    assert classify_ofi(f).status == OFI


def test_broken_contact_form_meets_two_criteria():
    f = make_finding("Contact Form", "Contact form is missing", status=OFI)
    assert met_criteria(f) == ("userExperienceImpact", "businessImpact")
    assert classify_ofi(f).status == PRIORITY_OFI


def test_no_does_not_match_inside_words():
    # "know" must not read as the word "no"
    f = make_finding("Privacy Policy", "Visitors know where to find the privacy policy")
    assert "complianceRisk" not in met_criteria(f)


def test_homepage_meta_issue_is_critical_alone():
    f = make_finding("Meta Description", "Page has a meta description", notes="Missing meta description")
    assert met_criteria(f) == ("seoVisibilityImpact",)
    assert not is_critical_issue(f)

    on_home = make_finding(
        "Meta Description", "Page has a meta description", notes="Missing meta description", page_type="homepage"
    )
    assert is_critical_issue(on_home)
    assert classify_ofi(on_home).status == PRIORITY_OFI


def test_noindex_is_always_critical():
    f = make_finding("Meta Robots Configuration", "Page is not blocked from indexing", notes="noindex tag present")
    assert classify_ofi(f).status == PRIORITY_OFI


def test_workaround_forces_standard_ofi():
    f = make_finding("Contact Form", "Contact form is missing", notes="Visitors can use the phone number instead")
    result = classify_ofi(f)
    assert result.status == OFI
    assert result.workaround
    assert result.reason == "Workaround available"


def test_downgrade_reason_counts_criteria():
    f = make_finding("Contact Form", "Contact form is missing", notes=None)
    f_single = make_finding("Site Search", "Search box is broken")
    assert classify_ofi(f).reason == ""
    assert classify_ofi(f_single).reason == "Only meets 1 priority criteria (requires 2+ for Priority OFI)"


# --- notes ---

def test_actionable_notes_follow_what_why_how():
    f = make_finding("Image Alt Text", "Images carry alt text", status=OFI, notes="4 of 6 images lack alt")
    notes = actionable_notes(f, OFI)
    assert notes.startswith("What: Images lack descriptive alt text.")
    assert "\n\nWhy: " in notes and "\n\nHow: " in notes
    assert notes.endswith("Observed: 4 of 6 images lack alt")


def test_priority_notes_are_flagged():
    f = make_finding("Contact Form", "Contact form is missing")
    assert actionable_notes(f, PRIORITY_OFI).startswith(PRIORITY_PREFIX + "What: Contact options")


def test_unknown_finding_uses_its_description():
    f = make_finding("Widget Count", "Page shows at most three widgets", status=OFI)
    assert actionable_notes(f, OFI).startswith("What: Page shows at most three widgets.")


# --- reclassify ---

def test_priority_ofi_downgraded_with_marker():
    f = make_finding("Page Title Length", "Title tag is 30-60 characters", notes="0 characters")
    result = reclassify(f)
    assert result.status == OFI
    assert result.notes.endswith(DOWNGRADE_MARKER)
    assert "Observed: 0 characters" in result.notes
    assert result.name == f.name and result.page_url == f.page_url


def test_standard_ofi_upgraded_without_marker():
    result = reclassify(make_finding("Contact Form", "Contact form is missing", status=OFI))
    assert result.status == PRIORITY_OFI
    assert result.notes.startswith(PRIORITY_PREFIX)
    assert DOWNGRADE_MARKER not in result.notes


@pytest.mark.parametrize("status", [OK, NA])
def test_ok_and_na_untouched(status):
    f = make_finding("Contact Form", "Contact form is missing", status=status, notes="evidence")
    assert reclassify(f) is f


def test_reclassify_findings_keeps_order():
    findings = [
        make_finding("Favicon", "Site icon is declared", status=OK),
        make_finding("Page Title Length", "Title tag is 30-60 characters"),
    ]
    assert [f.name for f in reclassify_findings(findings)] == ["Favicon", "Page Title Length"]


# --- enhanced report ---

def test_enhanced_issues_carry_recommendations():
    report = EnhancedAuditAnalyzer().analyze(make_structure())

    issues = [
        f for category in ENHANCED_CATEGORIES
        for f in report.category_view(category)
        if f.status in (OFI, PRIORITY_OFI)
    ]
    assert issues
    for f in issues:
        assert "What: " in f.notes
        if DOWNGRADE_MARKER in f.notes:
            assert f.status == OFI
