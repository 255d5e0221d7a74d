import re
from dataclasses import dataclass, replace
from functools import cached_property
from typing import Callable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from ..models import NA, OFI, OK, PRIORITY_OFI, AuditFinding, PageRecord

CTA_PHRASES = [
    "call now", "call us", "call today", "contact us", "get a quote", "free quote",
    "free estimate", "request a quote", "request service", "schedule", "book now",
    "book online", "get started", "request an estimate", "get in touch",
]

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

# minimum words a page of each role should carry
MIN_WORDS = {
    "homepage": 300,
    "contact": 150,
    "service": 500,
    "location": 400,
    "service-area": 300,
    "other": 300,
}


def grade(value: float, good: float, severe: float, higher_is_better: bool = True) -> str:
    """
    Map a measured signal onto a status with two thresholds.

    higher_is_better: value >= good is OK, value < severe is Priority OFI.
    otherwise:        value <= good is OK, value > severe is Priority OFI.
    Anything in between is OFI.
    """
    if higher_is_better:
        if value >= good:
            return OK
        if value < severe:
            return PRIORITY_OFI
        return OFI
    if value <= good:
        return OK
    if value > severe:
        return PRIORITY_OFI
    return OFI


def finding(
    name: str,
    description: str,
    status: str,
    importance: str = "Medium",
    notes: Optional[str] = None,
) -> AuditFinding:
    return AuditFinding(name=name, description=description, status=status, importance=importance, notes=notes)


@dataclass
class PageContext:
    page: PageRecord
    soup: BeautifulSoup
    page_type: str

    @cached_property
    def text(self) -> str:
        return (self.page.body_text or "").lower()

    @cached_property
    def title(self) -> str:
        return (self.page.title or "").lower()

    @cached_property
    def html(self) -> str:
        return (self.page.raw_html or "").lower()

    @cached_property
    def path(self) -> str:
        return urlparse(self.page.url).path.lower()

    @cached_property
    def h1_text(self) -> str:
        return " ".join(self.page.h1s).lower()

    @property
    def is_homepage(self) -> bool:
        return self.page_type == "homepage"

    @property
    def is_local_page(self) -> bool:
        return self.page_type in ("location", "service-area")

    def count_terms(self, terms: list[str]) -> int:
        return sum(1 for term in terms if term in self.text)

    def has_any(self, terms: list[str]) -> bool:
        return any(term in self.text for term in terms)

    @cached_property
    def cta_count(self) -> int:
        count = self.count_terms(CTA_PHRASES)
        if self.soup.find("a", href=re.compile(r"^tel:", re.I)):
            count += 1
        if self.page.has_contact_form:
            count += 1
        return count

    @cached_property
    def heading_levels(self) -> list[int]:
        return [int(tag.name[1]) for tag in self.soup.find_all(re.compile(r"^h[1-6]$"))]

    @cached_property
    def skipped_heading_levels(self) -> int:
        """Times the outline jumps down more than one level, e.g. h2 -> h4."""
        skips = 0
        previous = None
        for level in self.heading_levels:
            if previous is not None and level > previous + 1:
                skips += 1
            previous = level
        return skips

    @cached_property
    def paragraphs(self) -> list[str]:
        return [p.get_text(" ", strip=True) for p in self.soup.find_all("p") if p.get_text(strip=True)]

    @cached_property
    def has_tel_link(self) -> bool:
        return self.soup.find("a", href=re.compile(r"^tel:", re.I)) is not None

    @cached_property
    def has_email(self) -> bool:
        return (
            self.soup.find("a", href=re.compile(r"^mailto:", re.I)) is not None
            or EMAIL_RE.search(self.page.body_text or "") is not None
        )

    @cached_property
    def has_breadcrumb_markup(self) -> bool:
        if self.soup.find(attrs={"aria-label": re.compile(r"breadcrumb", re.I)}):
            return True
        return self.soup.find(class_=re.compile(r"breadcrumb", re.I)) is not None


Check = Callable[[PageContext], AuditFinding]


def check_registry(checks: list) -> Callable[[Check], Check]:
    """Decorator that appends a check function to a module's check list."""
    def register(fn: Check) -> Check:
        checks.append(fn)
        return fn
    return register


class FactorAnalyzer:
    """
    Runs a static list of independent checks over one page.
    Every check returns exactly one finding, so a page always yields len(checks) findings.
    """

    category: str = ""
    checks: list = []

    def analyze(self, page: PageRecord, soup: Optional[BeautifulSoup], page_type: str) -> list[AuditFinding]:
        if soup is None:
            soup = BeautifulSoup(page.raw_html or "", "lxml")
        ctx = PageContext(page=page, soup=soup, page_type=page_type)
        return [
            replace(
                check(ctx),
                category=self.category,
                page_url=page.url,
                page_title=page.title or page.url,
                page_type=page_type,
            )
            for check in self.checks
        ]

    @property
    def factor_count(self) -> int:
        return len(self.checks)


__all__ = [
    "CTA_PHRASES", "EMAIL_RE", "MIN_WORDS", "NA", "OFI", "OK", "PRIORITY_OFI",
    "FactorAnalyzer", "PageContext", "check_registry", "finding", "grade",
]
