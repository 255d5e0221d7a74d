import re
import logging
from dataclasses import dataclass, replace

from ..models import OFI, PRIORITY_OFI, AuditFinding

logger = logging.getLogger(__name__)

PRIORITY_CRITERIA_REQUIRED = 2
DOWNGRADE_MARKER = "[Auto-downgraded: Did not meet critical priority criteria]"
PRIORITY_PREFIX = "HIGH PRIORITY: "


def _words(*terms: str) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(t) for t in terms) + r")\b")


_BROKEN = _words("broken", "missing", "not working", "error", "errors", "failed")
_ABSENT = _words("missing", "no", "absent", "not found", "hard to find", "without")
_VIOLATION = _words("missing", "no", "violates", "non-compliant", "not")

_CRITICAL_META = [
    re.compile(p) for p in (
        r"missing.*title", r"\bno\b.*title.*tag", r"empty.*title", r"duplicate.*title.*tags?",
        r"missing.*meta.*description", r"\bno\b.*meta.*description", r"empty.*meta.*description",
        r"duplicate.*meta.*description", r"missing.*h1", r"\bno\b.*h1.*tag", r"missing.*alt.*text",
    )
]
_HOMEPAGE_CRITICAL = [re.compile(p) for p in (r"missing.*title", r"missing.*h1", r"missing.*meta.*description")]
_ALWAYS_CRITICAL = [
    re.compile(p) for p in (
        r"blocked.*by.*robots", r"noindex.*tag", r"site.*not.*crawlable", r"ssl.*certificate.*missing",
        r"https.*not.*configured", r"duplicate.*title.*tags", r"canonical.*loop",
    )
]
_WORKAROUND = _words("workaround", "alternative", "can use", "instead", "manually")


# (topic, condition) pairs per criterion; a criterion is met when any pair matches
_SEO_VISIBILITY = [
    (_words("core web vitals", "lcp", "cls", "fid", "page speed", "loading", "performance"), _words("slow", "poor")),
    (_words("noindex", "robots.txt", "blocked", "not indexed", "crawl"), _words("blocked", "missing")),
    (_words("mobile", "responsive", "viewport", "mobile-friendly"), _words("not", "missing", "poor", "no")),
]
_USER_EXPERIENCE = [
    (_words("navigation", "menu", "breadcrumb", "sitemap"), _BROKEN),
    (_words("form", "contact", "submit", "input"), _BROKEN),
    (_words("content", "text", "readability", "accessibility"),
     _words("unreadable", "hard to read", "poor contrast", "too small")),
    (_words("search", "find", "filter"), _BROKEN),
]
_BUSINESS = [
    (_words("ranking", "serp", "position", "visibility", "organic traffic"),
     _words("drop", "decrease", "lost", "poor", "low")),
    (_words("contact", "phone", "email", "cta", "call to action", "conversion"), _ABSENT),
    (_words("professional", "trust", "credibility", "brand", "design"),
     _words("unprofessional", "poor", "outdated", "broken", "low quality")),
]
_COMPETITOR = _words("competitor", "competitors", "competition", "behind")
_COMPLIANCE = [
    (_words("privacy", "gdpr", "cookies", "tracking", "data collection"), _VIOLATION),
    (_words("accessibility", "wcag", "ada", "alt text", "screen reader"), _VIOLATION),
    (_words("https", "ssl", "security", "encryption", "secure"), _VIOLATION),
    (_words("hipaa", "pci", "compliance", "regulation"), _VIOLATION),
]


@dataclass(frozen=True)
class OfiClassification:
    status: str
    criteria: tuple[str, ...]
    critical: bool = False
    workaround: bool = False

    @property
    def reason(self) -> str:
        if self.workaround:
            return "Workaround available"
        if self.status == OFI:
            return (
                f"Only meets {len(self.criteria)} priority criteria "
                f"(requires {PRIORITY_CRITERIA_REQUIRED}+ for Priority OFI)"
            )
        return ""


def _text(f: AuditFinding) -> str:
    return f"{f.name} {f.description} {f.notes or ''}".lower()


def _any_pair(text: str, pairs: list) -> bool:
    return any(topic.search(text) and condition.search(text) for topic, condition in pairs)


def met_criteria(f: AuditFinding) -> tuple[str, ...]:
    """Names of the four priority criteria the finding's wording meets."""
    text = _text(f)
    met = []
    if any(p.search(text) for p in _CRITICAL_META) or _any_pair(text, _SEO_VISIBILITY):
        met.append("seoVisibilityImpact")
    if _any_pair(text, _USER_EXPERIENCE):
        met.append("userExperienceImpact")
    if _any_pair(text, _BUSINESS) or _COMPETITOR.search(text):
        met.append("businessImpact")
    if _any_pair(text, _COMPLIANCE):
        met.append("complianceRisk")
    return tuple(met)


def is_critical_issue(f: AuditFinding) -> bool:
    """Issues urgent enough to be Priority OFI on a single criterion."""
    text = _text(f)
    if f.page_type == "homepage" or "homepage" in text:
        if any(p.search(text) for p in _HOMEPAGE_CRITICAL):
            return True
    return any(p.search(text) for p in _ALWAYS_CRITICAL)


def classify_ofi(f: AuditFinding) -> OfiClassification:
    criteria = met_criteria(f)
    critical = is_critical_issue(f)
    if _WORKAROUND.search(_text(f)):
        return OfiClassification(OFI, criteria, critical, workaround=True)
    status = PRIORITY_OFI if len(criteria) >= PRIORITY_CRITERIA_REQUIRED or critical else OFI
    return OfiClassification(status, criteria, critical)


# first pattern matching the finding name wins
_RECOMMENDATIONS = [
    (_words("content length", "content depth", "thin content"),
     "The page copy is too brief to explain the service to visitors or search engines.",
     "Detailed copy shows expertise and gives search engines enough context to rank the page.",
     "Expand the copy to at least 300-500 words covering benefits, process and local experience."),
    (_words("keyword"),
     "Target keywords are missing or used unnaturally.",
     "Natural keyword use tells search engines what the page is about without hurting readability.",
     "Work the main keyword into the copy two or three times alongside related terms."),
    (_words("call-to-action", "cta"),
     "The page lacks a clear, action-oriented call to action.",
     "Prominent calls to action turn visitors into leads.",
     "Add buttons such as \"Get a Free Quote\" or \"Call Now\" in the header, beside service copy and at the end of the page."),
    (_words("brand"),
     "Business details appear inconsistently across pages.",
     "Consistent branding builds trust and helps search engines recognise the business.",
     "Show the same business name, logo and contact details on every page."),
    (_words("review", "reviews", "testimonials", "social proof"),
     "Customer reviews are not prominent on the site.",
     "Social proof strongly influences whether visitors get in touch.",
     "Feature named testimonials with project details on the homepage and service pages."),
    (_words("meta description", "duplicate meta", "title tag", "page title"),
     "Page titles or meta descriptions are missing, generic or too long for search results.",
     "They appear in search listings and drive click-through rates.",
     "Write titles under 60 characters and descriptions of 120-160 characters that name the service and location."),
    (_words("heading", "h1"),
     "Page headings are missing, unclear or out of order.",
     "Clear headings help visitors scan the page and tell search engines what each section covers.",
     "Use one descriptive H1 for the page topic and H2s for each major section."),
    (_words("image", "alt text"),
     "Images lack descriptive alt text.",
     "Alt text serves screen-reader users and gives search engines context for images.",
     "Describe what each image shows, including the service and location where relevant."),
    (_words("url structure"),
     "Page URLs are not short or descriptive.",
     "Readable URLs are easier to share and help search engines understand the page.",
     "Use paths such as /drain-cleaning that name the page topic."),
    (_words("schema", "structured data"),
     "The page lacks structured data describing the business.",
     "Schema markup enables rich results and clarifies business details for search engines.",
     "Add LocalBusiness markup with name, address, phone, hours and service areas."),
    (_words("mobile", "responsive", "viewport"),
     "The page does not display well on phones and tablets.",
     "Most local searches happen on mobile and Google ranks mobile-friendly pages higher.",
     "Set a responsive viewport and test buttons, forms and navigation on small screens."),
    (_words("load speed", "page speed", "render-blocking", "media weight"),
     "The page loads slowly.",
     "Slow pages lose visitors and rank lower.",
     "Compress images, enable caching and trim unused scripts to load in under three seconds."),
    (_words("ssl", "https", "mixed content"),
     "The page is not fully served over HTTPS.",
     "HTTPS protects visitor data and is a ranking signal.",
     "Install a certificate and load every resource over HTTPS."),
    (_words("nap"),
     "Business name, address and phone number are missing or inconsistent.",
     "Consistent NAP details build trust with customers and local search engines.",
     "Show the full business details identically on every page, matching the Google Business Profile."),
    (_words("location", "service area", "city"),
     "The site lacks pages for the areas the business serves.",
     "Area pages help the business rank for searches in each city it serves.",
     "Create a page per city or area with local landmarks, zip codes and area-specific copy."),
    (_words("google business", "google maps"),
     "The Google Business Profile is not connected to the site.",
     "A complete profile and embedded map improve local visibility.",
     "Link the profile, embed a map and keep hours and photos current."),
    (_words("expertise", "certifications", "years of experience", "e-e-a-t"),
     "The site does not show professional credentials.",
     "Demonstrated expertise builds customer confidence and search authority.",
     "Add certifications, years in business, team bios and completed projects."),
    (_words("community"),
     "The site does not mention local community involvement.",
     "Local ties build trust and strengthen local relevance.",
     "Feature sponsorships, partnerships and stories from local customers."),
    (_words("navigation", "links", "linking", "orphaned"),
     "Navigation is confusing or pages are hard to reach.",
     "Clear navigation keeps visitors on the site and leads them to act.",
     "Keep the main menu to key pages and link every page from at least one other."),
    (_words("breadcrumb"),
     "The page has no breadcrumb trail.",
     "Breadcrumbs show visitors where they are and describe site structure to search engines.",
     "Add breadcrumbs such as Home > Services > Drain Cleaning."),
    (_words("form", "contact"),
     "Contact options are hard to find or forms are too long.",
     "Simple, working contact paths capture leads.",
     "Keep forms to essential fields with clear labels and test them on mobile."),
    (_words("accessibility", "contrast", "focus", "keyboard"),
     "The page has accessibility problems.",
     "Accessible pages serve every visitor and are favoured by search engines.",
     "Ensure sufficient contrast, visible focus states and descriptive link text."),
    (_words("search functionality"),
     "Visitors cannot search the site.",
     "Site search helps visitors find services quickly.",
     "Add a search box to the header or main navigation."),
]


def actionable_notes(f: AuditFinding, status: str) -> str:
    """What/Why/How recommendation for an issue finding."""
    name = f.name.lower()
    for pattern, what, why, how in _RECOMMENDATIONS:
        if pattern.search(name):
            break
    else:
        what = f"{f.description}." if f.description else "This element needs attention."
        why = "Fixing it improves search visibility and the visitor experience."
        how = "Review this item and apply current SEO and usability best practice."
    text = f"What: {what}\n\nWhy: {why}\n\nHow: {how}"
    if status == PRIORITY_OFI:
        text = PRIORITY_PREFIX + text
    if f.notes:
        text += f"\n\nObserved: {f.notes}"
    return text


def reclassify(f: AuditFinding) -> AuditFinding:
    """
    Re-grade an OFI or Priority OFI finding against the impact criteria.

    A Priority OFI stands only when two or more criteria are met or the issue is
    critical on its own, and never when a workaround is mentioned. OK and N/A
    findings pass through untouched.
    """
    if f.status not in (OFI, PRIORITY_OFI):
        return f
    result = classify_ofi(f)
    notes = actionable_notes(f, result.status)
    if f.status == PRIORITY_OFI and result.status == OFI:
        logger.debug("Downgraded %r on %s: %s", f.name, f.page_url or "site", result.reason)
        notes = f"{notes} {DOWNGRADE_MARKER}"
    return replace(f, status=result.status, notes=notes)


def reclassify_findings(findings: list[AuditFinding]) -> list[AuditFinding]:
    return [reclassify(f) for f in findings]
