import pytest
from unittest.mock import AsyncMock, MagicMock

from site_audit.renderer import PlaywrightRenderer, Renderer, is_js_heavy


COPY = "<p>" + "Licensed Springfield plumbers for repairs, water heaters and drain cleaning. " * 10 + "</p>"


def test_static_page_is_not_js_heavy():
    assert not is_js_heavy(f"<html><body>{COPY}</body></html>")


def test_empty_html_is_not_js_heavy():
    assert not is_js_heavy("")


def test_framework_markers():
    html = f'<html><body><div ng-app="site"></div><script src="/angular.min.js"></script>{COPY}</body></html>'
    assert is_js_heavy(html)


def test_little_visible_text():
    assert is_js_heavy('<html><body><div id="root"></div></body></html>')


def test_script_text_does_not_count_as_visible():
    scripts = "<script>var copy = '" + "x" * 800 + "';</script>"
    assert is_js_heavy(f"<html><body>{scripts}<p>Loading</p></body></html>")


def test_many_scripts():
    scripts = "".join(f'<script src="/js/chunk-{i}.js"></script>' for i in range(6))
    assert is_js_heavy(f"<html><body>{COPY}{scripts}</body></html>")


def test_playwright_renderer_satisfies_protocol():
    assert isinstance(PlaywrightRenderer(), Renderer)


@pytest.mark.asyncio
async def test_render_returns_none_when_browser_unavailable():
    renderer = PlaywrightRenderer()
    renderer.start = AsyncMock(return_value=False)
    assert await renderer.render("https://acmeplumbing.com/") is None


@pytest.mark.asyncio
async def test_render_closes_context_on_failure():
    page = MagicMock()
    page.goto = AsyncMock(side_effect=TimeoutError("navigation timeout"))
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)

    renderer = PlaywrightRenderer(pool_size=1)
    renderer._browser = browser

    assert await renderer.render("https://acmeplumbing.com/") is None
    context.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_render_returns_page_content():
    page = MagicMock()
    page.goto = AsyncMock()
    page.content = AsyncMock(return_value="<html><body>rendered</body></html>")
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)

    renderer = PlaywrightRenderer()
    renderer._browser = browser

    assert await renderer.render("https://acmeplumbing.com/") == "<html><body>rendered</body></html>"
    page.goto.assert_awaited_once()
