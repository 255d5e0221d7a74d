import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional

from .analyzer import EnhancedAuditAnalyzer, analyze_site
from .classifier import classify_site
from .exceptions import SiteUnreachableError
from .models import AuditReport, EnhancedAuditReport, SiteStructure
from .orchestrator import SiteCrawler
from .urls import normalize_url

logger = logging.getLogger(__name__)

ANALYSIS_VERSION = "2.0"

# on_progress(stage, percent); may be a plain function or a coroutine function
ProgressCallback = Callable[[str, int], Any]


async def _notify(on_progress: Optional[ProgressCallback], stage: str, percent: int) -> None:
    if on_progress is None:
        return
    try:
        result = on_progress(stage, percent)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        logger.warning("Progress callback failed at %s (%d%%): %s", stage, percent, exc)


class AuditService:
    """
    Crawl -> classify -> analyze for one site at a time.

    The crawler instance is kept between calls so continue_crawl() can resume
    the frontier of the previous run.
    """

    def __init__(
        self,
        crawler: Optional[SiteCrawler] = None,
        enhanced_analyzer: Optional[EnhancedAuditAnalyzer] = None,
        override_service=None,
    ):
        self.crawler = crawler or SiteCrawler()
        self.enhanced_analyzer = enhanced_analyzer or EnhancedAuditAnalyzer()
        self.override_service = override_service

    def get_crawler_stats(self) -> dict:
        return self.crawler.get_stats()

    async def _crawl(self, url: str, resume: bool = False) -> SiteStructure:
        try:
            target = normalize_url(url)
        except ValueError as exc:
            raise SiteUnreachableError(url, str(exc)) from exc

        if resume:
            structure = await self.crawler.continue_crawl(target)
        else:
            structure = await self.crawler.crawl_site(target)

        homepage = structure.homepage
        if homepage.status_code <= 0:
            logger.error("Homepage unreachable for %s: %s", target, homepage.error)
            raise SiteUnreachableError(target, homepage.error or homepage.title)
        return structure

    async def _classify(self, structure: SiteStructure) -> SiteStructure:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, classify_site, structure)

    async def _baseline(self, url: str, on_progress: Optional[ProgressCallback], resume: bool) -> AuditReport:
        await _notify(on_progress, "Initializing", 0)
        await _notify(on_progress, "Crawling", 20)
        structure = await self._crawl(url, resume=resume)

        await _notify(on_progress, "Processing", 50)
        await _notify(on_progress, "Classifying", 70)
        structure = await self._classify(structure)

        await _notify(on_progress, "Analyzing", 85)
        loop = asyncio.get_event_loop()
        report = await loop.run_in_executor(None, analyze_site, structure, structure.homepage.url)

        await _notify(on_progress, "Completed", 100)
        return report

    async def crawl_and_audit(self, url: str, on_progress: Optional[ProgressCallback] = None) -> AuditReport:
        """Baseline audit of a fresh crawl."""
        return await self._baseline(url, on_progress, resume=False)

    async def continue_crawl(self, url: str, on_progress: Optional[ProgressCallback] = None) -> AuditReport:
        """Baseline audit after resuming the previous crawl's frontier."""
        return await self._baseline(url, on_progress, resume=True)

    async def crawl_and_audit_enhanced(
        self,
        url: str,
        on_progress: Optional[ProgressCallback] = None,
        audit_id: Optional[str] = None,
    ) -> EnhancedAuditReport:
        started = time.monotonic()
        await _notify(on_progress, "Initializing", 0)
        await _notify(on_progress, "Crawling", 10)
        structure = await self._crawl(url)

        await _notify(on_progress, "Processing", 30)
        await _notify(on_progress, "Classifying", 40)
        structure = await self._classify(structure)

        overrides = None
        loop = asyncio.get_event_loop()
        if audit_id and self.override_service is not None:
            overrides = await loop.run_in_executor(None, self.override_service.get_audit_overrides, audit_id)

        await _notify(on_progress, "Analyzing", 50)
        report = await loop.run_in_executor(
            None, self.enhanced_analyzer.analyze, structure, structure.homepage.url, overrides
        )

        await _notify(on_progress, "Finalizing results", 90)
        report.reached_max_pages = self.crawler.reached_max_pages
        report.analysis_metadata = {
            "analysisVersion": ANALYSIS_VERSION,
            "factorCount": report.summary.total,
            "analysisTimeMs": int((time.monotonic() - started) * 1000),
            "crawlerStats": self.crawler.get_stats(),
        }

        await _notify(on_progress, "Completed", 100)
        return report
