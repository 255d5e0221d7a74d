import re
from typing import Optional
from urllib.parse import urlparse

from ..models import NA, OFI, OK, PRIORITY_OFI, AuditFinding, PageRecord

TIER_1 = "Tier1"
TIER_2 = "Tier2"
TIER_3 = "Tier3"
PRIORITY_TIERS = (TIER_1, TIER_2, TIER_3)

PRIORITY_WEIGHTS = {TIER_1: 3.0, TIER_2: 2.0, TIER_3: 1.0}

_IMPORTANCE_RANK = {"High": 0, "Medium": 1, "Low": 2}

_PRIMARY_SERVICE_URL_PATTERNS = [re.compile(p) for p in (r"/services?/$", r"/service$", r"/what-we-do/$")]
_PRIMARY_SERVICE_TITLE_KEYWORDS = [
    "main service", "primary service", "our services", "what we do",
    "hvac services", "plumbing services", "electrical services",
]
_OVERVIEW_INDICATORS = [
    "we offer", "we provide", "our services include", "comprehensive", "full-service",
    "complete solution", "years of experience", "licensed", "certified", "insured",
]
_LANDING_PATTERNS = [
    re.compile(p) for p in (
        r"/free-estimate", r"/get-quote", r"/contact-us", r"/emergency", r"/24-7",
        r"/book-now", r"/special-offer", r"/promotion", r"/deal",
    )
]
_INFORMATIONAL_PATTERNS = [
    re.compile(p) for p in (
        r"/about", r"/our-story", r"/our-team", r"/testimonials", r"/reviews", r"/portfolio",
        r"/guarantees?", r"/warranty", r"/insurance", r"/process", r"/how-it-works", r"/methodology",
    )
]
_CATEGORY_PATTERNS = [
    re.compile(p) for p in (
        r"/category", r"/categories", r"/solutions", r"/industries", r"/residential", r"/commercial",
    )
]


def _is_homepage_path(url: str) -> bool:
    return urlparse(url).path in ("/", "/index.html", "/home")


def is_primary_service_page(page: PageRecord) -> bool:
    url = page.url.lower()
    if any(p.search(url) for p in _PRIMARY_SERVICE_URL_PATTERNS):
        return True
    if len([s for s in urlparse(url).path.split("/") if s]) <= 2:
        return True
    title = (page.title or "").lower()
    if any(k in title for k in _PRIMARY_SERVICE_TITLE_KEYWORDS):
        return True
    body = (page.body_text or "").lower()
    return len(body) > 2000 and sum(1 for i in _OVERVIEW_INDICATORS if i in body) >= 3


def page_priority(page: PageRecord, page_type: str, overrides: Optional[dict[str, str]] = None) -> str:
    """
    Tier a page by business importance. A manual override for the page URL
    always wins; otherwise:

      Tier1  homepage, primary service pages, key landing pages
      Tier2  contact, secondary service, location, service-area,
             informational and category pages
      Tier3  everything else
    """
    if overrides and page.url in overrides:
        return overrides[page.url]

    url = page.url.lower()
    if page_type == "homepage" or _is_homepage_path(url):
        return TIER_1
    if page_type == "service" and is_primary_service_page(page):
        return TIER_1
    if any(p.search(url) for p in _LANDING_PATTERNS):
        return TIER_1

    if page_type in ("contact", "service", "location", "service-area"):
        return TIER_2
    if any(p.search(url) for p in _INFORMATIONAL_PATTERNS + _CATEGORY_PATTERNS):
        return TIER_2
    return TIER_3


def _top_issues(findings: list[AuditFinding], limit: int = 3) -> list[str]:
    issues = [f for f in findings if f.status in (PRIORITY_OFI, OFI)]
    issues.sort(key=lambda f: (f.status != PRIORITY_OFI, _IMPORTANCE_RANK[f.importance]))
    return [f.name for f in issues[:limit]]


def page_issue_summaries(
    typed_pages: list[tuple[PageRecord, str]],
    findings: list[AuditFinding],
    overrides: Optional[dict[str, str]] = None,
) -> list[dict]:
    """Per-page rollup of enhanced findings, most urgent pages first."""
    by_url: dict[str, list[AuditFinding]] = {}
    for f in findings:
        if f.page_url:
            by_url.setdefault(f.page_url, []).append(f)

    summaries = []
    for page, page_type in typed_pages:
        page_findings = by_url.get(page.url, [])
        if not page_findings:
            continue
        counts = {status: 0 for status in (PRIORITY_OFI, OFI, OK, NA)}
        for f in page_findings:
            counts[f.status] += 1
        applicable = len(page_findings) - counts[NA]
        tier = page_priority(page, page_type, overrides)
        summaries.append({
            "url": page.url,
            "title": page.title,
            "pageType": page_type,
            "priority": tier,
            "weight": PRIORITY_WEIGHTS[tier],
            "priorityOfiCount": counts[PRIORITY_OFI],
            "ofiCount": counts[OFI],
            "okCount": counts[OK],
            "naCount": counts[NA],
            "totalIssues": counts[PRIORITY_OFI] + counts[OFI],
            "score": round(counts[OK] / applicable * 100) if applicable else 100,
            "topIssues": _top_issues(page_findings),
        })

    summaries.sort(key=lambda s: (PRIORITY_TIERS.index(s["priority"]), -s["priorityOfiCount"], -s["totalIssues"]))
    return summaries
