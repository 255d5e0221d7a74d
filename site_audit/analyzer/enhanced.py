import logging
from dataclasses import replace
from typing import Optional

from bs4 import BeautifulSoup

from ..classifier import ELECTRICAL_TERMS
from ..models import (
    ENHANCED_CATEGORIES,
    NA,
    OFI,
    OK,
    PRIORITY_OFI,
    REPORT_BUCKETS,
    AuditFinding,
    EnhancedAuditReport,
    PageRecord,
    SiteStructure,
)
from .baseline import analyze_site
from .content_quality import ContentQualityAnalyzer
from .local_seo import LocalSEOAnalyzer
from .ofi import reclassify_findings
from .priority import page_issue_summaries
from .sitewide import SitePage, analyze_site_wide
from .technical_seo import TechnicalSEOAnalyzer
from .ux_performance import UXPerformanceAnalyzer

logger = logging.getLogger(__name__)

MAX_MERGED_NOTES = 200

# page type -> report bucket
_BUCKET_BY_TYPE = {
    "homepage": "on_page",
    "contact": "contact_page",
    "service": "service_pages",
    "location": "location_pages",
    "service-area": "service_area_pages",
}

_STATUS_RANK = {NA: 0, OK: 1, OFI: 2, PRIORITY_OFI: 3}
_IMPORTANCE_RANK = {"Low": 0, "Medium": 1, "High": 2}

# finding score: OK and N/A are full marks, issues lose points by importance
_BASE_SCORE = {OFI: 60, PRIORITY_OFI: 30}
_IMPORTANCE_PENALTY = {"High": 15, "Medium": 10, "Low": 5}

CATEGORY_WEIGHTS = {
    "Content Quality": 0.25,
    "Technical SEO": 0.30,
    "Local SEO & E-E-A-T": 0.25,
    "UX & Performance": 0.20,
}

_SERVICE_TERMS = [
    "service", "services", "repair", "installation", "maintenance",
    "professional", "certified", "licensed", "experienced",
    "we provide", "we offer", "estimate", "quote", "consultation",
]
_LOCATION_TERMS = [
    "location", "areas served", "service area", "service areas",
    "cities", "towns", "neighborhoods", "regions", "we serve",
]


def is_likely_service_content(page: PageRecord) -> bool:
    url, title, body = page.url.lower(), (page.title or "").lower(), (page.body_text or "").lower()
    if any(term in title or term in body or term in url for term in ELECTRICAL_TERMS):
        return True
    return sum(1 for term in _SERVICE_TERMS if term in title or term in body) >= 3


def is_likely_location_content(page: PageRecord) -> bool:
    url, title, body = page.url.lower(), (page.title or "").lower(), (page.body_text or "").lower()
    return sum(1 for term in _LOCATION_TERMS if term in title or term in body or term in url) >= 2


def route_bucket(page: PageRecord, page_type: str) -> str:
    """Report bucket for a page's enhanced findings. "other" pages are routed by content."""
    if page_type in _BUCKET_BY_TYPE:
        return _BUCKET_BY_TYPE[page_type]
    if is_likely_service_content(page):
        return "service_pages"
    if is_likely_location_content(page):
        return "location_pages"
    return "on_page"


def _append_note(existing: Optional[str], addition: Optional[str]) -> Optional[str]:
    if not addition or (existing and addition in existing):
        return existing
    combined = f"{existing}; {addition}" if existing else addition
    if len(combined) > MAX_MERGED_NOTES:
        combined = combined[:MAX_MERGED_NOTES - 3] + "..."
    return combined


def _is_issue(f: AuditFinding) -> bool:
    return f.status in (OFI, PRIORITY_OFI)


def _merge_pair(kept: AuditFinding, other: AuditFinding) -> AuditFinding:
    status = max(kept.status, other.status, key=_STATUS_RANK.get)
    importance = max(kept.importance, other.importance, key=_IMPORTANCE_RANK.get)
    notes = _append_note(kept.notes, other.notes)
    if not _is_issue(kept) and _is_issue(other):
        # the first offending page becomes the one the merged finding points at
        return replace(other, status=status, importance=importance, notes=notes)
    return replace(kept, status=status, importance=importance, notes=notes)


def merge_findings(findings: list[AuditFinding]) -> list[AuditFinding]:
    """Collapse same-named findings into one, keeping first-seen order."""
    merged: dict[str, AuditFinding] = {}
    for f in findings:
        merged[f.name] = _merge_pair(merged[f.name], f) if f.name in merged else f
    return list(merged.values())


def finding_score(f: AuditFinding) -> int:
    if f.status in _BASE_SCORE:
        return _BASE_SCORE[f.status] - _IMPORTANCE_PENALTY[f.importance]
    return 100


def category_scores(report: EnhancedAuditReport) -> dict[str, int]:
    scores = {}
    for category in ENHANCED_CATEGORIES:
        items = report.category_view(category)
        scores[category] = round(sum(finding_score(f) for f in items) / len(items)) if items else 0
    return scores


def overall_score(scores: dict[str, int]) -> int:
    return round(sum(scores.get(category, 0) * weight for category, weight in CATEGORY_WEIGHTS.items()))


class EnhancedAuditAnalyzer:
    """
    Baseline audit plus the four per-page factor analyzers and the site-wide
    analyses, merged into the six report buckets. Issue findings are re-graded
    against the priority criteria after merging.
    """

    def __init__(self, analyzers: Optional[list] = None):
        self.analyzers = analyzers or [
            ContentQualityAnalyzer(),
            TechnicalSEOAnalyzer(),
            LocalSEOAnalyzer(),
            UXPerformanceAnalyzer(),
        ]

    @property
    def factor_count(self) -> int:
        return sum(a.factor_count for a in self.analyzers)

    def analyze_page(self, page: PageRecord, page_type: str, soup: Optional[BeautifulSoup] = None) -> list[AuditFinding]:
        if soup is None:
            soup = BeautifulSoup(page.raw_html or "", "lxml")
        findings = []
        for analyzer in self.analyzers:
            findings.extend(analyzer.analyze(page, soup, page_type))
        return findings

    def analyze(
        self,
        structure: SiteStructure,
        url: Optional[str] = None,
        overrides: Optional[dict[str, str]] = None,
    ) -> EnhancedAuditReport:
        baseline = analyze_site(structure, url)
        report = EnhancedAuditReport(
            url=baseline.url,
            timestamp=baseline.timestamp,
            reached_max_pages=structure.reached_max_pages,
            **{bucket: list(items) for bucket, items in baseline.buckets.items()},
        )

        per_page: list[AuditFinding] = []
        routed: dict[str, list[AuditFinding]] = {bucket: [] for bucket in REPORT_BUCKETS}
        site_pages = []

        # one DOM parse per page, shared by every analyzer and the site-wide pass
        for page, page_type in structure.typed_pages():
            soup = BeautifulSoup(page.raw_html or "", "lxml")
            findings = self.analyze_page(page, page_type, soup)
            per_page.extend(findings)
            routed[route_bucket(page, page_type)].extend(findings)
            site_pages.append(SitePage(page, page_type, soup))

        for bucket, findings in routed.items():
            getattr(report, bucket).extend(reclassify_findings(merge_findings(findings)))

        navigation, content = analyze_site_wide(site_pages)
        report.structure_navigation.extend(reclassify_findings(navigation))
        report.on_page.extend(reclassify_findings(content))

        report.category_scores = category_scores(report)
        report.overall_score = overall_score(report.category_scores)
        report.page_issues = page_issue_summaries(structure.typed_pages(), reclassify_findings(per_page), overrides)

        summary = report.summary
        logger.info(
            "Enhanced audit for %s: %d findings over %d pages, overall score %d",
            report.url, summary.total, len(site_pages), report.overall_score,
        )
        return report
