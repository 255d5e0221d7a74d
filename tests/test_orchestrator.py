import pytest
from unittest.mock import AsyncMock, patch

from site_audit.discovery import DiscoveryResult
from site_audit.models import LinkRef, Links, PageRecord
from site_audit.orchestrator import COMPLETED, FAILED, IDLE, SiteCrawler


BASE = "https://acmeplumbing.com/"


# --- helpers ---
def make_page(url, body=None, links=(), html="", headers=None):
    return PageRecord(
        url=url,
        final_url=url,
        status_code=200,
        raw_html=html,
        headers=headers or {},
        title=url.rsplit("/", 1)[-1] or "Home",
        body_text=body if body is not None else f"Unique content for {url}",
        links=Links(internal=[LinkRef(url=u) for u in links]),
    )


def make_crawler(**overrides):
    options = dict(
        max_pages=10,
        concurrency=2,
        batch_delay=0,
        request_jitter=0,
        crawl_delay=0,
        check_links=False,
        link_check_delay=0,
    )
    options.update(overrides)
    return SiteCrawler(**options)


def site(pages):
    """fetch_page stand-in serving PageRecords from a url map."""
    def fake_fetch(url, session, renderer=None):
        if url in pages:
            return pages[url]
        return PageRecord.error_record(url, "Error 404", 404, "Not Found")
    return fake_fetch


def patched(pages, discovery, rejected=()):
    """Patch the crawler's collaborators; prefilter keeps everything not listed in `rejected`."""
    fetch = patch("site_audit.orchestrator.fetch_page", new_callable=AsyncMock, side_effect=site(pages))
    discover = patch("site_audit.orchestrator.discover_urls", new_callable=AsyncMock, return_value=discovery)
    kept = [u for u in discovery.urls if u not in rejected]
    prefilter = patch(
        "site_audit.orchestrator.prefilter_urls", new_callable=AsyncMock, return_value=(kept, list(rejected))
    )
    return fetch, discover, prefilter


# --- sitemap mode ---

@pytest.mark.asyncio
async def test_sitemap_crawl_collects_pages():
    urls = [BASE + "contact", BASE + "services/drains", BASE + "about"]
    pages = {BASE: make_page(BASE), **{u: make_page(u) for u in urls}}
    fetch, discover, prefilter = patched(pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]))

    crawler = make_crawler()
    with fetch as mock_fetch, discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    assert crawler.status == COMPLETED
    assert structure.homepage.url == BASE
    assert [p.url for p in structure.other_pages] == urls
    assert structure.has_sitemap_xml is True
    assert structure.reached_max_pages is False
    assert mock_fetch.call_count == 4
    assert crawler.get_stats()["pagesCrawled"] == 4


@pytest.mark.asyncio
async def test_budget_counts_attempts():
    urls = [BASE + f"page-{i}" for i in range(5)]
    pages = {BASE: make_page(BASE), **{u: make_page(u) for u in urls}}
    fetch, discover, prefilter = patched(pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]))

    crawler = make_crawler(max_pages=3)
    with fetch as mock_fetch, discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    assert mock_fetch.call_count == 3
    assert len(structure.other_pages) == 2
    assert structure.reached_max_pages is True
    assert crawler.reached_max_pages is True


@pytest.mark.asyncio
async def test_homepage_failure_short_circuits():
    fetch, discover, prefilter = patched({}, DiscoveryResult("crawl", []))

    crawler = make_crawler()
    with fetch, discover as mock_discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    mock_discover.assert_not_called()
    assert structure.homepage.error == "Not Found"
    assert structure.other_pages == []
    assert crawler.get_stats()["errorsEncountered"] == 1


@pytest.mark.asyncio
async def test_error_pages_excluded_and_counted():
    urls = [BASE + "contact", BASE + "missing"]
    pages = {BASE: make_page(BASE), BASE + "contact": make_page(BASE + "contact")}
    fetch, discover, prefilter = patched(pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]))

    crawler = make_crawler()
    with fetch, discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    assert [p.url for p in structure.other_pages] == [BASE + "contact"]
    assert crawler.get_stats()["errorsEncountered"] == 1


@pytest.mark.asyncio
async def test_duplicate_content_skipped():
    urls = [BASE + "services", BASE + "services-copy"]
    pages = {
        BASE: make_page(BASE),
        BASE + "services": make_page(BASE + "services", "We repair   pipes."),
        BASE + "services-copy": make_page(BASE + "services-copy", "we REPAIR pipes."),
    }
    fetch, discover, prefilter = patched(pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]))

    crawler = make_crawler()
    with fetch, discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    assert len(structure.other_pages) == 1
    assert crawler.get_stats()["pagesSkipped"] == 1


@pytest.mark.asyncio
async def test_prefilter_rejections_are_skipped():
    urls = [BASE + "contact", BASE + "old-page"]
    pages = {BASE: make_page(BASE), BASE + "contact": make_page(BASE + "contact")}
    fetch, discover, prefilter = patched(
        pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]), rejected=[BASE + "old-page"]
    )

    crawler = make_crawler()
    with fetch as mock_fetch, discover, prefilter:
        await crawler.crawl_site(BASE)

    fetched = [call.args[0] for call in mock_fetch.call_args_list]
    assert BASE + "old-page" not in fetched
    assert crawler.get_stats()["pagesSkipped"] == 1


@pytest.mark.asyncio
async def test_unexpected_fetch_exception_is_counted():
    urls = [BASE + "contact", BASE + "boom"]
    pages = {BASE: make_page(BASE), BASE + "contact": make_page(BASE + "contact")}

    def flaky(url, session, renderer=None):
        if url.endswith("boom"):
            raise RuntimeError("parser exploded")
        return site(pages)(url, session, renderer)

    crawler = make_crawler()
    with patch("site_audit.orchestrator.fetch_page", new_callable=AsyncMock, side_effect=flaky), \
         patch("site_audit.orchestrator.discover_urls", new_callable=AsyncMock,
               return_value=DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"])), \
         patch("site_audit.orchestrator.prefilter_urls", new_callable=AsyncMock, return_value=(urls, [])):
        structure = await crawler.crawl_site(BASE)

    assert crawler.status == COMPLETED
    assert [p.url for p in structure.other_pages] == [BASE + "contact"]
    assert crawler.get_stats()["errorsEncountered"] == 1


# --- crawl mode ---

@pytest.mark.asyncio
async def test_link_following_until_no_new_links():
    pages = {
        BASE: make_page(BASE, links=[BASE + "about"]),
        BASE + "about": make_page(BASE + "about", links=[BASE + "team", BASE + "contact", BASE]),
        BASE + "team": make_page(BASE + "team"),
        BASE + "contact": make_page(BASE + "contact"),
    }
    fetch, discover, prefilter = patched(pages, DiscoveryResult("crawl", [BASE + "about"]))

    crawler = make_crawler()
    with fetch as mock_fetch, discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    assert {p.url for p in structure.other_pages} == {BASE + "about", BASE + "team", BASE + "contact"}
    assert structure.has_sitemap_xml is False
    assert mock_fetch.call_count == 4


# --- lifecycle ---

@pytest.mark.asyncio
async def test_discovery_failure_marks_crawler_failed():
    crawler = make_crawler()
    with patch("site_audit.orchestrator.fetch_page", new_callable=AsyncMock, return_value=make_page(BASE)), \
         patch("site_audit.orchestrator.discover_urls", new_callable=AsyncMock, side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            await crawler.crawl_site(BASE)

    assert crawler.status == FAILED


def test_new_crawler_is_idle():
    crawler = make_crawler()
    assert crawler.status == IDLE
    assert crawler.get_stats()["pagesCrawled"] == 0


@pytest.mark.asyncio
async def test_continue_crawl_resumes_frontier():
    urls = [BASE + "a", BASE + "b", BASE + "c"]
    pages = {BASE: make_page(BASE), **{u: make_page(u) for u in urls}}
    fetch, discover, prefilter = patched(pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]))

    crawler = make_crawler(max_pages=2)
    with fetch as mock_fetch, discover as mock_discover, prefilter:
        first = await crawler.crawl_site(BASE)
        assert [p.url for p in first.other_pages] == [BASE + "a"]

        resumed = await crawler.continue_crawl(BASE)

    assert mock_discover.call_count == 1
    assert mock_fetch.call_count == 4
    assert [p.url for p in resumed.other_pages] == urls
    assert crawler.get_stats()["pagesCrawled"] == 2


@pytest.mark.asyncio
async def test_continue_without_frontier_starts_fresh():
    pages = {BASE: make_page(BASE)}
    fetch, discover, prefilter = patched(pages, DiscoveryResult("crawl", []))

    crawler = make_crawler()
    with fetch as mock_fetch, discover, prefilter:
        structure = await crawler.continue_crawl(BASE)

    mock_fetch.assert_called_once()
    assert structure.homepage.url == BASE


# --- platform detection ---

def echo_prefilter():
    return patch(
        "site_audit.orchestrator.prefilter_urls",
        new_callable=AsyncMock,
        side_effect=lambda urls, session, concurrency: (list(urls), []),
    )


@pytest.mark.asyncio
async def test_wordpress_archives_filtered_and_key_pages_first():
    wordpress_home = make_page(BASE, html='<link rel="stylesheet" href="/wp-content/themes/acme/style.css">')
    urls = [BASE + "gallery", BASE + "tag/pipes", BASE + "contact", BASE + "wp-admin/"]
    pages = {BASE: wordpress_home, **{u: make_page(u) for u in urls}}
    fetch, discover, _ = patched(pages, DiscoveryResult("sitemap", urls, [BASE + "sitemap.xml"]))

    crawler = make_crawler(concurrency=1)
    with fetch as mock_fetch, discover, echo_prefilter():
        structure = await crawler.crawl_site(BASE)

    fetched = [call.args[0] for call in mock_fetch.call_args_list]
    assert fetched == [BASE, BASE + "contact", BASE + "gallery"]
    assert [p.url for p in structure.other_pages] == [BASE + "contact", BASE + "gallery"]
    stats = crawler.get_stats()
    assert stats["cmsDetected"] == "WordPress"
    assert stats["pagesSkipped"] == 2


@pytest.mark.asyncio
async def test_shopify_detected_from_headers():
    pages = {BASE: make_page(BASE, headers={"x-shopid": "4242"})}
    fetch, discover, prefilter = patched(pages, DiscoveryResult("crawl", []))

    crawler = make_crawler()
    with fetch, discover, prefilter:
        await crawler.crawl_site(BASE)

    assert crawler.get_stats()["cmsDetected"] == "Shopify"


@pytest.mark.asyncio
async def test_no_platform_before_homepage_fetch():
    assert make_crawler().get_stats()["cmsDetected"] is None

    fetch, discover, prefilter = patched({}, DiscoveryResult("crawl", []))
    crawler = make_crawler()
    with fetch, discover, prefilter:
        await crawler.crawl_site(BASE)
    assert crawler.get_stats()["cmsDetected"] is None


@pytest.mark.asyncio
async def test_robots_txt_flag_carried_to_structure():
    pages = {BASE: make_page(BASE)}
    discovery = DiscoveryResult("crawl", [], has_robots_txt=True)
    fetch, discover, prefilter = patched(pages, discovery)

    crawler = make_crawler()
    with fetch, discover, prefilter:
        structure = await crawler.crawl_site(BASE)

    assert structure.has_robots_txt is True
    assert structure.to_dict()["hasRobotsTxt"] is True
