import asyncio
import re
import logging
from typing import Optional, Protocol, runtime_checkable

from bs4 import BeautifulSoup

from .config import RENDER_POOL_SIZE, RENDER_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

# markers of client-side rendered pages
_FRAMEWORK_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"react", r"angular", r"vue", r"backbone", r"ember",
        r"\bspa\b", r"ajax", r"xhr", r"fetch\(",
        r"document\.ready", r"window\.onload",
        r"ng-app", r"data-ng-", r"v-if", r"v-for",
    )
]

MIN_VISIBLE_TEXT = 500
MAX_STATIC_SCRIPTS = 5


def is_js_heavy(html: str) -> bool:
    """
    Cheap static check for pages whose content is built in the browser.

    Any one signal is enough:
      1. two or more framework / SPA markers in the markup
      2. under 500 characters of visible text
      3. more than 5 <script> tags
    """
    if not html:
        return False

    framework_hits = sum(1 for pattern in _FRAMEWORK_PATTERNS if pattern.search(html))
    if framework_hits >= 2:
        return True

    soup = BeautifulSoup(html, "lxml")
    script_count = len(soup.find_all("script"))
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    visible = " ".join(soup.get_text(separator=" ").split())

    return len(visible) < MIN_VISIBLE_TEXT or script_count > MAX_STATIC_SCRIPTS


@runtime_checkable
class Renderer(Protocol):
    """Renders a URL in a headless browser; None means rendering was unavailable."""

    def is_js_heavy(self, html: str) -> bool: ...

    async def render(self, url: str) -> Optional[str]: ...


class PlaywrightRenderer:
    """
    Shared headless Chromium with a fixed number of concurrent pages.
    Requests beyond pool_size queue on the semaphore instead of opening new browsers.
    """

    def __init__(self, pool_size: int = RENDER_POOL_SIZE, timeout: float = RENDER_TIMEOUT):
        self.pool_size = pool_size
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(pool_size)
        self._lock = asyncio.Lock()
        self._playwright = None
        self._browser = None

    def is_js_heavy(self, html: str) -> bool:
        return is_js_heavy(html)

    async def start(self) -> bool:
        async with self._lock:
            if self._browser is not None:
                return True
            try:
                from playwright.async_api import async_playwright
            except ImportError:
                logger.warning("playwright is not installed; rendering disabled")
                return False
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-dev-shm-usage"],
                )
                logger.info("Headless renderer started (pool size %d)", self.pool_size)
                return True
            except Exception as exc:
                logger.warning("Headless browser failed to start: %s", exc)
                await self._stop_playwright()
                return False

    async def render(self, url: str) -> Optional[str]:
        if self._browser is None and not await self.start():
            return None

        async with self._semaphore:
            context = None
            try:
                context = await self._browser.new_context(user_agent=USER_AGENT)
                page = await context.new_page()
                await page.goto(url, wait_until="networkidle", timeout=int(self.timeout * 1000))
                return await page.content()
            except Exception as exc:
                logger.warning("Render failed for %s: %s", url, exc)
                return None
            finally:
                if context is not None:
                    try:
                        await context.close()
                    except Exception as exc:
                        logger.debug("Closing render context failed: %s", exc)

    async def _stop_playwright(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = None

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except Exception as exc:
                    logger.debug("Closing browser failed: %s", exc)
                self._browser = None
            await self._stop_playwright()
