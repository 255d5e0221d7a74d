import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from .cms import CmsFingerprint, apply_cms_filter, detect_cms
from .config import (
    BATCH_DELAY,
    CONCURRENT_REQUESTS,
    CRAWL_DELAY,
    LINK_CHECK_DELAY,
    MAX_NEW_LINKS_PER_PAGE,
    MAX_PAGES,
    REQUEST_JITTER,
)
from .discovery import discover_urls, harvest_links, prefilter_urls
from .fetcher import CrawlSession, fetch_page
from .models import CrawlStats, PageRecord, SiteStructure
from .similarity import content_hash
from .urls import crawl_key, hostname

logger = logging.getLogger(__name__)

# crawler lifecycle
IDLE = "idle"
CRAWLING = "crawling"
COMPLETED = "completed"
FAILED = "failed"

# link harvesting stops once this share of the budget has been attempted
HARVEST_CUTOFF = 0.8


@dataclass
class CrawlState:
    base_url: str = ""
    visited: set[str] = field(default_factory=set)          # crawl keys already fetched or rejected
    frontier: deque = field(default_factory=deque)          # urls waiting to be fetched
    queued: set[str] = field(default_factory=set)           # crawl keys mirrored from frontier
    stats: CrawlStats = field(default_factory=CrawlStats)
    sitemap_discovered: bool = False
    robots_txt_found: bool = False
    sitemap_urls: set[str] = field(default_factory=set)
    source: str = "crawl"                                   # "sitemap" | "crawl"
    homepage: Optional[PageRecord] = None
    pages: list[PageRecord] = field(default_factory=list)   # successful non-homepage pages, fetch order
    content_hashes: set[str] = field(default_factory=set)
    attempted: int = 0                                      # fetches charged to this run's budget
    cms: Optional[CmsFingerprint] = None                    # set once the homepage is fetched

    def enqueue(self, url: str) -> bool:
        key = crawl_key(url)
        if key in self.visited or key in self.queued:
            return False
        self.frontier.append(url)
        self.queued.add(key)
        return True

    def next_batch(self, size: int) -> list[str]:
        batch = []
        while self.frontier and len(batch) < size:
            url = self.frontier.popleft()
            key = crawl_key(url)
            self.queued.discard(key)
            if key in self.visited:
                continue
            self.visited.add(key)
            batch.append(url)
        return batch


class SiteCrawler:
    """
    Drives the fetcher across one site in bounded concurrent batches.

    One instance per in-flight audit. Every crawl_site() call starts from a
    reset state; continue_crawl() resumes the frontier left by the previous run.
    """

    def __init__(
        self,
        max_pages: int = MAX_PAGES,
        concurrency: int = CONCURRENT_REQUESTS,
        batch_delay: float = BATCH_DELAY,
        request_jitter: float = REQUEST_JITTER,
        crawl_delay: float = CRAWL_DELAY,
        renderer=None,
        check_links: bool = True,
        link_check_delay: float = LINK_CHECK_DELAY,
    ):
        self.max_pages = max(1, max_pages)
        self.concurrency = max(1, concurrency)
        self.batch_delay = batch_delay
        self.request_jitter = request_jitter
        self.crawl_delay = crawl_delay
        self.renderer = renderer
        self.check_links = check_links
        self.link_check_delay = link_check_delay

        self.status = IDLE
        self.state = CrawlState()
        self.reached_max_pages = False

    def reset(self) -> None:
        self.state = CrawlState()
        self.status = IDLE
        self.reached_max_pages = False

    def get_stats(self) -> dict:
        stats = self.state.stats.to_dict()
        stats["cmsDetected"] = self.state.cms.cms if self.state.cms else None
        return stats

    def _open_session(self) -> CrawlSession:
        return CrawlSession(
            crawl_delay=self.crawl_delay,
            check_links=self.check_links,
            link_check_delay=self.link_check_delay,
        )

    async def crawl_site(self, url: str) -> SiteStructure:
        """Crawl one site from its homepage; returns the unclassified structure."""
        self.reset()
        self.status = CRAWLING
        state = self.state
        state.stats.start_time = time.monotonic()
        logger.info("Starting crawl of %s (budget %d pages)", url, self.max_pages)

        session = self._open_session()
        try:
            homepage = await fetch_page(url, session, self.renderer)
            state.attempted = 1
            state.homepage = homepage

            if homepage.error:
                logger.error("Homepage fetch failed for %s: %s", url, homepage.error)
                state.stats.errors_encountered += 1
                return self._finish(SiteStructure(homepage=homepage))

            state.stats.pages_crawled = 1
            state.base_url = homepage.final_url or homepage.url
            state.visited.add(crawl_key(homepage.url))
            state.visited.add(crawl_key(state.base_url))
            state.content_hashes.add(content_hash(homepage.body_text))
            state.cms = detect_cms(homepage.raw_html, homepage.headers)

            discovery = await discover_urls(homepage, session, self.max_pages - 1, state.base_url)
            state.source = discovery.source
            state.sitemap_discovered = discovery.has_sitemap
            state.robots_txt_found = discovery.has_robots_txt
            if discovery.source == "sitemap":
                state.sitemap_urls.update(discovery.urls)
            logger.info("Discovery for %s: %d URLs from %s", url, len(discovery.urls), discovery.source)

            candidates, platform_urls = apply_cms_filter(discovery.urls, state.cms)
            state.stats.pages_skipped += len(platform_urls)
            for skipped_url in platform_urls:
                state.visited.add(crawl_key(skipped_url))

            kept, rejected = await prefilter_urls(candidates, session, self.concurrency)
            state.stats.pages_skipped += len(rejected)
            for rejected_url in rejected:
                state.visited.add(crawl_key(rejected_url))
            for candidate in kept:
                state.enqueue(candidate)

            await self._run_batches(session, harvest=state.source == "crawl")
            return self._finish(self._build_structure())
        except Exception as exc:
            self.status = FAILED
            state.stats.end_time = time.monotonic()
            logger.error("Crawl failed for %s: %s", url, exc)
            raise
        finally:
            session.close()

    async def continue_crawl(self, url: str) -> SiteStructure:
        """
        Resume the frontier of the previous run for the same site with a fresh
        page budget. Falls back to a full crawl when there is nothing to resume.
        """
        state = self.state
        resumable = (
            state.homepage is not None
            and not state.homepage.error
            and state.frontier
            and hostname(url if "://" in url else f"https://{url}") == hostname(state.base_url)
        )
        if not resumable:
            return await self.crawl_site(url)

        logger.info("Resuming crawl of %s with %d queued URLs", url, len(state.frontier))
        self.status = CRAWLING
        self.reached_max_pages = False
        state.stats = CrawlStats(start_time=time.monotonic())
        state.attempted = 0

        session = self._open_session()
        try:
            await self._run_batches(session, harvest=state.source == "crawl")
            return self._finish(self._build_structure())
        except Exception as exc:
            self.status = FAILED
            state.stats.end_time = time.monotonic()
            logger.error("Continued crawl failed for %s: %s", url, exc)
            raise
        finally:
            session.close()

    async def _fetch_with_jitter(self, url: str, session: CrawlSession) -> PageRecord:
        if self.request_jitter:
            await asyncio.sleep(random.uniform(0, self.request_jitter))
        return await fetch_page(url, session, self.renderer)

    async def _run_batches(self, session: CrawlSession, harvest: bool) -> None:
        state = self.state

        while state.frontier and state.attempted < self.max_pages:
            batch = state.next_batch(min(self.concurrency, self.max_pages - state.attempted))
            if not batch:
                break
            state.attempted += len(batch)

            results = await asyncio.gather(
                *(self._fetch_with_jitter(url, session) for url in batch),
                return_exceptions=True,
            )

            fresh = []
            for url, result in zip(batch, results):
                if isinstance(result, Exception):
                    state.stats.errors_encountered += 1
                    logger.warning("Unexpected error crawling %s: %s", url, result)
                    continue
                if result.error:
                    state.stats.errors_encountered += 1
                    continue

                digest = content_hash(result.body_text)
                if digest in state.content_hashes:
                    state.stats.pages_skipped += 1
                    logger.info("Skipping %s: duplicate of an already crawled page", url)
                    continue
                state.content_hashes.add(digest)
                if result.final_url:
                    state.visited.add(crawl_key(result.final_url))

                state.pages.append(result)
                fresh.append(result)
                state.stats.pages_crawled += 1

            logger.info(
                "Batch done: %d fetched, %d/%d attempted, %d queued",
                len(fresh), state.attempted, self.max_pages, len(state.frontier),
            )

            if harvest:
                added = 0
                if state.attempted < self.max_pages * HARVEST_CUTOFF:
                    seen = state.visited | state.queued
                    harvested = harvest_links(fresh, state.base_url, seen, MAX_NEW_LINKS_PER_PAGE)
                    if state.cms is not None:
                        harvested, platform_urls = apply_cms_filter(harvested, state.cms)
                        state.visited.update(crawl_key(u) for u in platform_urls)
                    for new_url in harvested:
                        if state.enqueue(new_url):
                            added += 1
                if added == 0:
                    logger.info("No new links discovered, crawl complete")
                    break

            if state.frontier and state.attempted < self.max_pages and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

    def _build_structure(self) -> SiteStructure:
        state = self.state
        return SiteStructure(
            homepage=state.homepage,
            other_pages=list(state.pages),
            has_sitemap_xml=state.sitemap_discovered,
            has_robots_txt=state.robots_txt_found,
            reached_max_pages=state.attempted >= self.max_pages,
        )

    def _finish(self, structure: SiteStructure) -> SiteStructure:
        state = self.state
        state.stats.end_time = time.monotonic()
        self.status = COMPLETED
        self.reached_max_pages = structure.reached_max_pages
        logger.info(
            "Crawl finished: %d pages, %d skipped, %d errors in %d ms",
            state.stats.pages_crawled, state.stats.pages_skipped,
            state.stats.errors_encountered, state.stats.crawl_time_ms,
        )
        return structure
