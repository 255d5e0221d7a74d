import asyncio
import re
import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .config import (
    HEAD_MAX_BYTES,
    HEAD_TIMEOUT,
    MAX_CHILD_SITEMAPS,
    MAX_NEW_LINKS_PER_PAGE,
    MAX_SITEMAP_DEPTH,
    ROBOTS_TIMEOUT,
    SITEMAP_TIMEOUT,
)
from .fetcher import CrawlSession, HeadResult, fetch_resource, head_request, is_html_content_type
from .models import PageRecord
from .urls import crawl_key, prioritize_urls, should_include_url

logger = logging.getLogger(__name__)

SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml")

_XML_PREFIXES = ("<?xml", "<urlset", "<sitemapindex")
_ROBOTS_SITEMAP_RE = re.compile(r"^\s*sitemap\s*:\s*(\S+)", re.IGNORECASE)


@dataclass
class DiscoveryResult:
    source: str                 # "sitemap" | "crawl"
    urls: list[str]
    sitemaps: list[str] = field(default_factory=list)   # sitemap documents that produced URLs
    has_robots_txt: bool = False

    @property
    def has_sitemap(self) -> bool:
        return bool(self.sitemaps)


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def looks_like_xml(text: str) -> bool:
    return text.lstrip("\ufeff \r\n\t").lower().startswith(_XML_PREFIXES)


def parse_sitemap(xml_text: str) -> tuple[list[str], list[str]]:
    """Return (page urls, child sitemap urls) from a urlset or sitemapindex document."""
    soup = BeautifulSoup(xml_text, "xml")

    if soup.find("sitemapindex"):
        children = []
        for entry in soup.find_all("sitemap"):
            loc = entry.find("loc")
            if loc and loc.get_text(strip=True):
                children.append(loc.get_text(strip=True))
        return [], children

    urls = []
    for entry in soup.find_all("url"):
        loc = entry.find("loc")
        if loc and loc.get_text(strip=True):
            urls.append(loc.get_text(strip=True))
    return urls, []


def parse_robots_sitemaps(robots_txt: str, origin: str) -> list[str]:
    found = []
    for line in robots_txt.splitlines():
        match = _ROBOTS_SITEMAP_RE.match(line)
        if match:
            found.append(urljoin(origin + "/", match.group(1)))
    return found


async def _read_robots(origin: str, session: CrawlSession) -> tuple[bool, list[str]]:
    """(robots.txt exists, sitemaps it declares)."""
    resource = await fetch_resource(f"{origin}/robots.txt", session, ROBOTS_TIMEOUT)
    if resource is None or resource.status_code != 200:
        return False, []
    # an HTML error page served at /robots.txt carries no directives
    if is_html_content_type(resource.content_type):
        return False, []
    return True, parse_robots_sitemaps(resource.text, origin)


async def _load_sitemap(url: str, session: CrawlSession, visited: set[str], depth: int = 0) -> list[str]:
    if url in visited or depth > MAX_SITEMAP_DEPTH:
        return []
    visited.add(url)

    resource = await fetch_resource(url, session, SITEMAP_TIMEOUT)
    if resource is None or resource.status_code != 200:
        return []

    content_type = resource.content_type.lower()
    if content_type and "xml" not in content_type:
        logger.warning("Rejecting sitemap candidate %s: content-type %s", url, content_type)
        return []
    if not looks_like_xml(resource.text):
        logger.warning("Rejecting sitemap candidate %s: body is not XML", url)
        return []

    urls, children = parse_sitemap(resource.text)
    if len(children) > MAX_CHILD_SITEMAPS:
        logger.info("Sitemap index %s lists %d children, following the first %d",
                    url, len(children), MAX_CHILD_SITEMAPS)
    for child in children[:MAX_CHILD_SITEMAPS]:
        urls.extend(await _load_sitemap(child, session, visited, depth + 1))
    return urls


async def discover_sitemap_urls(base_url: str, session: CrawlSession) -> tuple[list[str], list[str], bool]:
    """
    Try robots.txt-declared sitemaps first, then the conventional paths.
    Stops at the first candidate that yields at least one URL.
    Returns (page urls, sitemap used, whether robots.txt exists).
    """
    origin = _origin(base_url)
    has_robots, candidates = await _read_robots(origin, session)
    candidates.extend(origin + path for path in SITEMAP_PATHS)

    visited: set[str] = set()
    for candidate in dict.fromkeys(candidates):
        urls = await _load_sitemap(candidate, session, visited)
        urls = list(dict.fromkeys(u for u in urls if u))
        if urls:
            logger.info("Sitemap %s yielded %d URLs", candidate, len(urls))
            return urls, [candidate], has_robots
    return [], [], has_robots


def _filter_new(urls: list[str], base_url: str, exclude: set[str]) -> list[str]:
    kept = []
    seen = set(exclude)
    for url in urls:
        key = crawl_key(url)
        if key in seen or not should_include_url(url, base_url):
            continue
        seen.add(key)
        kept.append(url)
    return kept


async def discover_urls(homepage: PageRecord, session: CrawlSession, budget: int, base_url: str) -> DiscoveryResult:
    """
    Sitemap first; link-following from the homepage only when the sitemap
    yields no usable URL. Either way the list is prioritised and capped at budget.
    """
    exclude = {crawl_key(homepage.url)}
    if homepage.final_url:
        exclude.add(crawl_key(homepage.final_url))

    sitemap_urls, sitemaps, has_robots = await discover_sitemap_urls(base_url, session)
    candidates = _filter_new(sitemap_urls, base_url, exclude)
    if candidates:
        return DiscoveryResult("sitemap", prioritize_urls(candidates)[:budget], sitemaps, has_robots)

    seeds = [link.url for link in homepage.links.internal if not link.broken]
    candidates = _filter_new(seeds, base_url, exclude)
    logger.info("No usable sitemap for %s, seeding crawl with %d homepage links", base_url, len(candidates))
    return DiscoveryResult("crawl", prioritize_urls(candidates)[:budget], sitemaps, has_robots)


def harvest_links(
    pages: list[PageRecord],
    base_url: str,
    seen: set[str],
    per_page: int = MAX_NEW_LINKS_PER_PAGE,
) -> list[str]:
    """
    New internal links from freshly crawled pages, at most per_page from each.
    `seen` holds crawl keys and is updated with everything returned.
    """
    new_urls = []
    for page in pages:
        taken = 0
        for link in page.links.internal:
            if taken >= per_page:
                break
            key = crawl_key(link.url)
            if link.broken or key in seen or not should_include_url(link.url, base_url):
                continue
            seen.add(key)
            new_urls.append(link.url)
            taken += 1
    return new_urls


def _rejects(result: Optional[HeadResult]) -> bool:
    if result is None:
        return False                 # HEAD failures never exclude a URL
    if 300 <= result.status_code < 400:
        return True
    if result.content_type and not is_html_content_type(result.content_type):
        return True
    if result.content_length is not None and result.content_length > HEAD_MAX_BYTES:
        return True
    return False


async def prefilter_urls(urls: list[str], session: CrawlSession, concurrency: int) -> tuple[list[str], list[str]]:
    """HEAD-check candidates in small batches; returns (kept, rejected)."""
    batch_size = max(1, min(concurrency * 2, 10))
    kept, rejected = [], []

    for start in range(0, len(urls), batch_size):
        batch = urls[start:start + batch_size]
        results = await asyncio.gather(
            *(head_request(url, session, HEAD_TIMEOUT, False) for url in batch),
            return_exceptions=True,
        )
        for url, result in zip(batch, results):
            if isinstance(result, Exception):
                result = None
            (rejected if _rejects(result) else kept).append(url)

    if rejected:
        logger.info("HEAD pre-filter rejected %d of %d URLs", len(rejected), len(urls))
    return kept, rejected
