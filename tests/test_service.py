import pytest
from unittest.mock import AsyncMock, MagicMock

from site_audit.analyzer.priority import TIER_3
from site_audit.exceptions import SiteUnreachableError
from site_audit.models import AuditReport, EnhancedAuditReport, PageRecord, SiteStructure
from site_audit.service import ANALYSIS_VERSION, AuditService


BASE = "https://acmeplumbing.com/"

STATS = {"pagesCrawled": 2, "pagesSkipped": 0, "errorsEncountered": 0, "crawlTimeMs": 1200}


# --- helpers ---
def make_structure(status=200):
    homepage = PageRecord(url=BASE, final_url=BASE, status_code=status, title="Acme Plumbing")
    if status <= 0:
        homepage = PageRecord.error_record(BASE, "DNS Error", status, "Could not resolve host")
    contact = PageRecord(
        url=BASE + "contact",
        final_url=BASE + "contact",
        status_code=200,
        title="Contact Us",
        body_text="Get in touch with our team.",
    )
    return SiteStructure(homepage=homepage, other_pages=[contact])


def make_crawler(structure=None):
    crawler = MagicMock()
    crawler.crawl_site = AsyncMock(return_value=structure or make_structure())
    crawler.continue_crawl = AsyncMock(return_value=structure or make_structure())
    crawler.get_stats.return_value = dict(STATS)
    crawler.reached_max_pages = False
    return crawler


def recorder():
    stages = []

    def on_progress(stage, percent):
        stages.append((stage, percent))

    return stages, on_progress


# --- baseline audit ---

@pytest.mark.asyncio
async def test_baseline_progress_milestones():
    stages, on_progress = recorder()
    service = AuditService(crawler=make_crawler())

    report = await service.crawl_and_audit(BASE, on_progress)

    assert isinstance(report, AuditReport)
    assert stages == [
        ("Initializing", 0),
        ("Crawling", 20),
        ("Processing", 50),
        ("Classifying", 70),
        ("Analyzing", 85),
        ("Completed", 100),
    ]


@pytest.mark.asyncio
async def test_baseline_classifies_before_analyzing():
    service = AuditService(crawler=make_crawler())
    report = await service.crawl_and_audit(BASE)

    assert report.url == BASE
    assert report.summary.total == 46
    assert any(f.status != "N/A" for f in report.contact_page)


@pytest.mark.asyncio
async def test_url_is_normalised_before_crawling():
    crawler = make_crawler()
    await AuditService(crawler=crawler).crawl_and_audit("  acmeplumbing.com ")
    crawler.crawl_site.assert_awaited_once_with(BASE)


@pytest.mark.asyncio
async def test_async_progress_callback_awaited():
    seen = []

    async def on_progress(stage, percent):
        seen.append(percent)

    await AuditService(crawler=make_crawler()).crawl_and_audit(BASE, on_progress)
    assert seen == [0, 20, 50, 70, 85, 100]


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_abort():
    def on_progress(stage, percent):
        raise RuntimeError("websocket closed")

    report = await AuditService(crawler=make_crawler()).crawl_and_audit(BASE, on_progress)
    assert report.summary.total == 46


@pytest.mark.asyncio
async def test_unreachable_homepage_raises():
    stages, on_progress = recorder()
    service = AuditService(crawler=make_crawler(make_structure(status=-1)))

    with pytest.raises(SiteUnreachableError) as excinfo:
        await service.crawl_and_audit(BASE, on_progress)

    assert excinfo.value.url == BASE
    assert "Could not resolve host" in excinfo.value.reason
    assert stages[-1] == ("Crawling", 20)


@pytest.mark.asyncio
async def test_invalid_url_raises_without_crawling():
    crawler = make_crawler()
    with pytest.raises(SiteUnreachableError):
        await AuditService(crawler=crawler).crawl_and_audit("ftp://acmeplumbing.com")
    crawler.crawl_site.assert_not_called()


@pytest.mark.asyncio
async def test_continue_crawl_resumes():
    crawler = make_crawler()
    await AuditService(crawler=crawler).continue_crawl(BASE)
    crawler.continue_crawl.assert_awaited_once_with(BASE)
    crawler.crawl_site.assert_not_called()


def test_crawler_stats_passthrough():
    assert AuditService(crawler=make_crawler()).get_crawler_stats() == STATS


# --- enhanced audit ---

@pytest.mark.asyncio
async def test_enhanced_progress_and_metadata():
    stages, on_progress = recorder()
    crawler = make_crawler()
    crawler.reached_max_pages = True

    report = await AuditService(crawler=crawler).crawl_and_audit_enhanced(BASE, on_progress)

    assert isinstance(report, EnhancedAuditReport)
    assert [percent for _, percent in stages] == [0, 10, 30, 40, 50, 90, 100]
    assert stages[5] == ("Finalizing results", 90)
    assert report.reached_max_pages is True

    metadata = report.analysis_metadata
    assert metadata["analysisVersion"] == ANALYSIS_VERSION
    assert metadata["factorCount"] == report.summary.total
    assert metadata["analysisTimeMs"] >= 0
    assert metadata["crawlerStats"] == STATS


@pytest.mark.asyncio
async def test_enhanced_applies_audit_overrides():
    overrides = MagicMock()
    overrides.get_audit_overrides.return_value = {BASE: TIER_3}
    service = AuditService(crawler=make_crawler(), override_service=overrides)

    report = await service.crawl_and_audit_enhanced(BASE, audit_id="audit-1")

    overrides.get_audit_overrides.assert_called_once_with("audit-1")
    homepage = next(s for s in report.page_issues if s["url"] == BASE)
    assert homepage["priority"] == TIER_3


@pytest.mark.asyncio
async def test_enhanced_without_audit_id_skips_overrides():
    overrides = MagicMock()
    service = AuditService(crawler=make_crawler(), override_service=overrides)

    await service.crawl_and_audit_enhanced(BASE)

    overrides.get_audit_overrides.assert_not_called()


@pytest.mark.asyncio
async def test_enhanced_unreachable_homepage_raises():
    service = AuditService(crawler=make_crawler(make_structure(status=0)))
    with pytest.raises(SiteUnreachableError):
        await service.crawl_and_audit_enhanced(BASE)
