import re
import logging
from collections import Counter
from dataclasses import replace
from statistics import median
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..models import NA, OFI, OK, PRIORITY_OFI, AuditFinding, PageRecord
from ..similarity import duplicate_pairs
from ..urls import crawl_key, path_segments
from .factors import finding, grade

logger = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 0.9
_TITLE_SEPARATORS_RE = re.compile(r"\s+[|\-–—:]\s+")


class SitePage:
    """One crawled page with its role and parsed DOM, as seen by the site-wide checks."""

    def __init__(self, page: PageRecord, page_type: str, soup: Optional[BeautifulSoup] = None):
        self.page = page
        self.page_type = page_type
        self.soup = soup if soup is not None else BeautifulSoup(page.raw_html or "", "lxml")

    def nav_keys(self) -> set[str]:
        nav = self.soup.find("nav")
        if nav is None:
            return set()
        return {
            crawl_key(urljoin(self.page.url, a["href"]))
            for a in nav.find_all("a", href=True)
            if not a["href"].startswith("#")
        }


def _tag(items: list[AuditFinding], category: str) -> list[AuditFinding]:
    return [replace(f, category=category) for f in items]


# --- navigation ---

def navigation_consistency(pages: list[SitePage]) -> AuditFinding:
    name, desc = "Navigation Consistency", "The same main menu appears on every page"
    if len(pages) < 2:
        return finding(name, desc, NA, "Medium", "Only one page crawled")
    reference = pages[0].nav_keys()
    if not reference:
        return finding(name, desc, OFI, "High", "Homepage has no <nav> menu")
    others = pages[1:]
    consistent = sum(1 for p in others if jaccard_keys(reference, p.nav_keys()) >= 0.6)
    ratio = consistent / len(others)
    return finding(name, desc, grade(ratio, 0.8, 0.5), "High",
                   f"{consistent} of {len(others)} pages share the homepage menu")


def jaccard_keys(a: set[str], b: set[str]) -> float:
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def navigation_depth(pages: list[SitePage]) -> AuditFinding:
    name, desc = "Navigation Depth", "Important pages sit close to the root"
    others = [p for p in pages if p.page_type != "homepage"]
    if not others:
        return finding(name, desc, NA, "Medium", "Only the homepage was crawled")
    deep = [p.page.url for p in others if len(path_segments(p.page.url)) > 3]
    share = len(deep) / len(others)
    return finding(name, desc, grade(share, 0.0, 0.5, higher_is_better=False), "Medium",
                   f"{len(deep)} pages more than 3 levels deep" if deep else None)


# --- internal linking ---

def internal_linking_quality(pages: list[SitePage]) -> AuditFinding:
    average = sum(len(p.page.links.internal) for p in pages) / len(pages)
    return finding("Internal Linking Quality", "Pages link generously to each other",
                   grade(average, 10, 3), "Medium", f"{average:.1f} internal links per page on average")


def orphaned_pages(pages: list[SitePage]) -> AuditFinding:
    name, desc = "Orphaned Pages", "Every page is linked from at least one other page"
    others = [p for p in pages if p.page_type != "homepage"]
    if not others:
        return finding(name, desc, NA, "Medium", "Only the homepage was crawled")

    inbound: Counter = Counter()
    for source in pages:
        own = crawl_key(source.page.url)
        for target in {crawl_key(link.url) for link in source.page.links.internal}:
            if target != own:
                inbound[target] += 1

    orphans = [
        p.page.url for p in others
        if not inbound[crawl_key(p.page.url)] and not inbound[crawl_key(p.page.final_url or p.page.url)]
    ]
    share = len(orphans) / len(others)
    notes = f"{len(orphans)} orphaned: {', '.join(orphans[:3])}" if orphans else None
    return finding(name, desc, grade(share, 0.0, 0.2, higher_is_better=False), "Medium", notes)


# --- consistency ---

def content_length_consistency(pages: list[SitePage]) -> AuditFinding:
    name, desc = "Content Length Consistency", "No page is far thinner than the rest of the site"
    counts = [p.page.word_count for p in pages]
    if len(counts) < 3:
        return finding(name, desc, NA, "Low", "Too few pages to compare")
    middle = median(counts)
    short = [p.page.url for p in pages if p.page.word_count < middle * 0.3]
    return finding(name, desc, OK if not short else OFI, "Low",
                   f"Median {middle:.0f} words; {len(short)} pages under 30% of it")


def brand_name(title: str) -> str:
    """Brand part of a title: the last segment after a separator, or the whole title."""
    parts = [p.strip() for p in _TITLE_SEPARATORS_RE.split(title or "") if p.strip()]
    return parts[-1] if parts else ""


def brand_consistency(pages: list[SitePage]) -> AuditFinding:
    name, desc = "Brand Consistency", "Page titles carry the brand name consistently"
    brand = brand_name(pages[0].page.title).lower()
    if not brand or len(pages) < 2:
        return finding(name, desc, NA, "Low", "No brand name could be derived")
    others = pages[1:]
    branded = sum(1 for p in others if brand in (p.page.title or "").lower())
    ratio = branded / len(others)
    return finding(name, desc, grade(ratio, 0.8, 0.5), "Low",
                   f"'{brand}' appears in {branded} of {len(others)} page titles")


# --- duplicate / thin content ---

def duplicate_content(pages: list[SitePage]) -> AuditFinding:
    name, desc = "Duplicate Content Detection", "Pages do not repeat each other's copy"
    if len(pages) < 2:
        return finding(name, desc, NA, "High", "Only one page crawled")
    pairs = duplicate_pairs([p.page.body_text for p in pages], DUPLICATE_THRESHOLD)
    if not pairs:
        return finding(name, desc, OK, "High")
    status = OFI if len(pairs) <= 2 else PRIORITY_OFI
    shown = "; ".join(f"{pages[a].page.url} ~ {pages[b].page.url} ({score})" for a, b, score in pairs[:3])
    return finding(name, desc, status, "High", f"{len(pairs)} near-duplicate pairs: {shown}")


def thin_content(pages: list[SitePage]) -> AuditFinding:
    thin = [p.page.url for p in pages if p.page.seo_issues.thin_content]
    share = len(thin) / len(pages)
    return finding("Thin Content Detection", "Most pages carry substantial copy",
                   grade(share, 0.2, 0.5, higher_is_better=False), "High",
                   f"{len(thin)} of {len(pages)} pages are thin" if thin else None)


def analyze_site_wide(pages: list[SitePage]) -> tuple[list[AuditFinding], list[AuditFinding]]:
    """
    Cross-page analyses. Returns (structure & navigation findings, on-page findings).
    The first entry of `pages` must be the homepage.
    """
    if not pages:
        return [], []
    navigation = _tag([
        navigation_consistency(pages),
        navigation_depth(pages),
        internal_linking_quality(pages),
        orphaned_pages(pages),
    ], "Technical SEO")
    content = _tag([
        content_length_consistency(pages),
        brand_consistency(pages),
        duplicate_content(pages),
        thin_content(pages),
    ], "Content Quality")
    logger.info("Site-wide analysis covered %d pages", len(pages))
    return navigation, content
