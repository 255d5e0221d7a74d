import pytest
from unittest.mock import AsyncMock, patch

from site_audit.discovery import (
    discover_sitemap_urls,
    discover_urls,
    harvest_links,
    looks_like_xml,
    parse_robots_sitemaps,
    parse_sitemap,
    prefilter_urls,
)
from site_audit.fetcher import CrawlSession, HeadResult, Resource
from site_audit.models import LinkRef, Links, PageRecord


BASE = "https://acmeplumbing.com/"

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://acmeplumbing.com/</loc></url>
  <url><loc>https://acmeplumbing.com/privacy</loc></url>
  <url><loc>https://acmeplumbing.com/contact</loc></url>
  <url><loc>https://acmeplumbing.com/blog/winter-tips</loc></url>
  <url><loc>https://acmeplumbing.com/services/drains</loc></url>
</urlset>
"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://acmeplumbing.com/pages.xml</loc></sitemap>
  <sitemap><loc>https://acmeplumbing.com/services.xml</loc></sitemap>
</sitemapindex>
"""


def make_session():
    return CrawlSession(crawl_delay=0, check_links=False, link_check_delay=0)


def make_homepage(links=()):
    return PageRecord(
        url=BASE,
        final_url=BASE,
        status_code=200,
        links=Links(internal=[LinkRef(url=u) for u in links]),
    )


def xml(text, url):
    return Resource(status_code=200, content_type="application/xml", text=text, url=url)


def serve(resources):
    """fetch_resource stand-in answering from a url -> Resource map (404 otherwise)."""
    def fake_fetch(url, session, timeout):
        return resources.get(url, Resource(status_code=404, content_type="text/html", text="", url=url))
    return fake_fetch


# --- parsing ---

def test_parse_urlset():
    urls, children = parse_sitemap(URLSET)
    assert children == []
    assert len(urls) == 5
    assert urls[0] == "https://acmeplumbing.com/"


def test_parse_sitemap_index():
    urls, children = parse_sitemap(INDEX)
    assert urls == []
    assert children == ["https://acmeplumbing.com/pages.xml", "https://acmeplumbing.com/services.xml"]


def test_robots_sitemap_lines():
    robots = "User-agent: *\nDisallow: /admin\nSitemap: https://acmeplumbing.com/custom.xml\nsitemap: /other.xml\n"
    assert parse_robots_sitemaps(robots, "https://acmeplumbing.com") == [
        "https://acmeplumbing.com/custom.xml",
        "https://acmeplumbing.com/other.xml",
    ]


def test_looks_like_xml():
    assert looks_like_xml("\ufeff<?xml version='1.0'?><urlset/>")
    assert looks_like_xml("  <urlset>")
    assert not looks_like_xml("<!DOCTYPE html><html></html>")


# --- sitemap discovery ---

@pytest.mark.asyncio
async def test_robots_declared_sitemap_tried_first():
    resources = {
        "https://acmeplumbing.com/robots.txt": Resource(
            200, "text/plain", "Sitemap: https://acmeplumbing.com/custom.xml", "https://acmeplumbing.com/robots.txt"
        ),
        "https://acmeplumbing.com/custom.xml": xml(URLSET, "https://acmeplumbing.com/custom.xml"),
    }
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        urls, sitemaps, has_robots = await discover_sitemap_urls(BASE, make_session())

    assert sitemaps == ["https://acmeplumbing.com/custom.xml"]
    assert has_robots is True
    assert len(urls) == 5
    fetched = [call.args[0] for call in mock_fetch.call_args_list]
    assert "https://acmeplumbing.com/sitemap.xml" not in fetched


@pytest.mark.asyncio
async def test_sitemap_index_followed():
    pages = xml(
        '<?xml version="1.0"?><urlset><url><loc>https://acmeplumbing.com/about</loc></url></urlset>',
        "https://acmeplumbing.com/pages.xml",
    )
    services = xml(
        '<?xml version="1.0"?><urlset><url><loc>https://acmeplumbing.com/services/leaks</loc></url></urlset>',
        "https://acmeplumbing.com/services.xml",
    )
    resources = {
        "https://acmeplumbing.com/sitemap.xml": xml(INDEX, "https://acmeplumbing.com/sitemap.xml"),
        "https://acmeplumbing.com/pages.xml": pages,
        "https://acmeplumbing.com/services.xml": services,
    }
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        urls, sitemaps, _ = await discover_sitemap_urls(BASE, make_session())

    assert urls == ["https://acmeplumbing.com/about", "https://acmeplumbing.com/services/leaks"]
    assert sitemaps == ["https://acmeplumbing.com/sitemap.xml"]


@pytest.mark.asyncio
async def test_html_served_as_sitemap_is_rejected():
    resources = {
        "https://acmeplumbing.com/sitemap.xml": Resource(
            200, "text/html", "<html><body>Not found</body></html>", "https://acmeplumbing.com/sitemap.xml"
        ),
    }
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        urls, sitemaps, _ = await discover_sitemap_urls(BASE, make_session())

    assert urls == []
    assert sitemaps == []


# --- discover_urls ---

@pytest.mark.asyncio
async def test_discover_from_sitemap_filters_and_prioritises():
    resources = {"https://acmeplumbing.com/sitemap.xml": xml(URLSET, "https://acmeplumbing.com/sitemap.xml")}
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        result = await discover_urls(make_homepage(), make_session(), 10, BASE)

    assert result.source == "sitemap"
    assert result.has_sitemap is True
    # homepage excluded, /blog/ skipped, contact ranks first
    assert result.urls == [
        "https://acmeplumbing.com/contact",
        "https://acmeplumbing.com/services/drains",
        "https://acmeplumbing.com/privacy",
    ]


@pytest.mark.asyncio
async def test_discover_respects_budget():
    resources = {"https://acmeplumbing.com/sitemap.xml": xml(URLSET, "https://acmeplumbing.com/sitemap.xml")}
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        result = await discover_urls(make_homepage(), make_session(), 1, BASE)

    assert result.urls == ["https://acmeplumbing.com/contact"]


@pytest.mark.asyncio
async def test_falls_back_to_homepage_links():
    homepage = make_homepage(links=[
        "https://acmeplumbing.com/",
        "https://acmeplumbing.com/about",
        "https://www.acmeplumbing.com/about/",
        "https://acmeplumbing.com/quote",
        "https://acmeplumbing.com/wp-admin/",
    ])
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve({})
        result = await discover_urls(homepage, make_session(), 10, BASE)

    assert result.source == "crawl"
    assert result.has_sitemap is False
    assert result.urls == ["https://acmeplumbing.com/quote", "https://acmeplumbing.com/about"]
    assert result.has_robots_txt is False


@pytest.mark.asyncio
async def test_robots_txt_presence_reported():
    resources = {
        "https://acmeplumbing.com/robots.txt": Resource(
            200, "text/plain", "User-agent: *\nDisallow: /admin", "https://acmeplumbing.com/robots.txt"
        ),
    }
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        result = await discover_urls(make_homepage(["https://acmeplumbing.com/about"]), make_session(), 10, BASE)

    assert result.has_robots_txt is True
    assert result.has_sitemap is False


@pytest.mark.asyncio
async def test_html_error_page_is_not_a_robots_file():
    resources = {
        "https://acmeplumbing.com/robots.txt": Resource(
            200, "text/html", "<html><body>Page not found</body></html>", "https://acmeplumbing.com/robots.txt"
        ),
    }
    with patch("site_audit.discovery.fetch_resource", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = serve(resources)
        _, _, has_robots = await discover_sitemap_urls(BASE, make_session())

    assert has_robots is False


# --- harvesting ---

def test_harvest_caps_links_per_page():
    page = PageRecord(
        url="https://acmeplumbing.com/about",
        status_code=200,
        links=Links(internal=[LinkRef(url=f"https://acmeplumbing.com/team/{i}") for i in range(8)]),
    )
    seen = set()
    new = harvest_links([page], BASE, seen, per_page=5)
    assert len(new) == 5
    assert len(seen) == 5


def test_harvest_skips_seen_and_broken():
    page = PageRecord(
        url="https://acmeplumbing.com/about",
        status_code=200,
        links=Links(internal=[
            LinkRef(url="https://acmeplumbing.com/contact"),
            LinkRef(url="https://acmeplumbing.com/gone", broken=True),
            LinkRef(url="https://acmeplumbing.com/quote"),
        ]),
    )
    seen = {"acmeplumbing.com/contact"}
    assert harvest_links([page], BASE, seen) == ["https://acmeplumbing.com/quote"]


# --- HEAD pre-filter ---

@pytest.mark.asyncio
async def test_prefilter_rejects_redirects_and_non_html():
    answers = {
        "https://acmeplumbing.com/ok": HeadResult(200, "text/html"),
        "https://acmeplumbing.com/moved": HeadResult(301, "text/html"),
        "https://acmeplumbing.com/report": HeadResult(200, "application/pdf"),
        "https://acmeplumbing.com/huge": HeadResult(200, "text/html", 50 * 1024 * 1024),
        "https://acmeplumbing.com/silent": None,
    }

    def fake_head(url, session, timeout, allow_redirects):
        return answers[url]

    with patch("site_audit.discovery.head_request", new_callable=AsyncMock) as mock_head:
        mock_head.side_effect = fake_head
        kept, rejected = await prefilter_urls(list(answers), make_session(), concurrency=2)

    assert kept == ["https://acmeplumbing.com/ok", "https://acmeplumbing.com/silent"]
    assert rejected == [
        "https://acmeplumbing.com/moved",
        "https://acmeplumbing.com/report",
        "https://acmeplumbing.com/huge",
    ]
