import asyncio
import functools
import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from .config import (
    CRAWL_DELAY,
    HEAD_TIMEOUT,
    LINK_CHECK_DELAY,
    LINK_CHECK_LIMIT,
    LINK_CHECK_MAX_REDIRECTS,
    LINK_CHECK_TIMEOUT,
    MAX_CONTENT_BYTES,
    MAX_REDIRECTS,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from .extractor import build_page_record
from .models import LinkRef, PageRecord
from .parser import parse_html
from .urls import normalize_url

logger = logging.getLogger(__name__)

# TLS verification is relaxed so self-signed small-business sites can still be audited
urllib3.disable_warnings(InsecureRequestWarning)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

_STATUS_DESCRIPTIONS = {
    400: "Bad Request - The server could not understand the request",
    401: "Unauthorized - Authentication is required",
    403: "Forbidden - Access to this page is denied",
    404: "Not Found - The page does not exist",
    405: "Method Not Allowed",
    406: "Not Acceptable",
    407: "Proxy Authentication Required",
    408: "Request Timeout - The server timed out waiting for the request",
    409: "Conflict",
    410: "Gone - The page has been permanently removed",
    429: "Too Many Requests - The server is rate limiting requests",
    500: "Internal Server Error",
    501: "Not Implemented",
    502: "Bad Gateway",
    503: "Service Unavailable - The server is temporarily unavailable",
    504: "Gateway Timeout",
}


def describe_status(code: int) -> str:
    return _STATUS_DESCRIPTIONS.get(code, f"HTTP error {code}")


def is_html_content_type(content_type: str) -> bool:
    content_type = (content_type or "").lower()
    return any(t in content_type for t in HTML_CONTENT_TYPES)


class ResponseTooLarge(Exception):
    def __init__(self, size: int, status_code: int = 200):
        self.size = size
        self.status_code = status_code
        super().__init__(f"Response exceeds {MAX_CONTENT_BYTES} bytes ({size} bytes)")


@dataclass
class FetchedResponse:
    status_code: int
    final_url: str
    headers: dict = field(default_factory=dict)
    text: str = ""
    elapsed_ms: int = 0

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value or ""
        return ""


@dataclass
class Resource:
    status_code: int
    content_type: str
    text: str
    url: str


@dataclass
class HeadResult:
    status_code: int
    content_type: str = ""
    content_length: Optional[int] = None


def _build_http_session(max_redirects: int, user_agent: str) -> requests.Session:
    http = requests.Session()
    http.max_redirects = max_redirects
    http.verify = False
    http.headers.update({
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
    })
    return http


class CrawlSession:
    """
    Per-run fetch state: HTTP connections plus the DNS, response and link-check caches.
    Owned by exactly one crawl; never shared between concurrent audits.
    """

    def __init__(
        self,
        crawl_delay: float = CRAWL_DELAY,
        check_links: bool = True,
        link_check_delay: float = LINK_CHECK_DELAY,
        user_agent: str = USER_AGENT,
    ):
        self.crawl_delay = crawl_delay
        self.check_links = check_links
        self.link_check_delay = link_check_delay
        self.http = _build_http_session(MAX_REDIRECTS, user_agent)
        self.head_http = _build_http_session(LINK_CHECK_MAX_REDIRECTS, user_agent)

        self.dns_cache: dict[str, bool] = {}            # hostname -> resolvable
        self.responses: dict[str, PageRecord] = {}      # normalised url -> record
        self.checked_links: dict[str, bool] = {}        # url -> broken
        self.broken_links: set[str] = set()

    def close(self) -> None:
        self.http.close()
        self.head_http.close()


# --- blocking primitives (run inside the default executor) ---

def _resolve_host(host: str) -> bool:
    socket.getaddrinfo(host, None)
    return True


def _sync_get(http: requests.Session, url: str, timeout: float, max_bytes: int) -> FetchedResponse:
    """Streamed GET that refuses to buffer more than max_bytes of an HTML body."""
    start = time.monotonic()
    with http.get(url, timeout=timeout, allow_redirects=True, stream=True) as response:
        headers = dict(response.headers)
        content_type = response.headers.get("Content-Type", "")
        declared = response.headers.get("Content-Length", "")
        if declared.isdigit() and int(declared) > max_bytes:
            raise ResponseTooLarge(int(declared), response.status_code)

        text = ""
        if response.status_code == 200 and is_html_content_type(content_type):
            chunks = []
            size = 0
            for chunk in response.iter_content(chunk_size=65536):
                size += len(chunk)
                if size > max_bytes:
                    raise ResponseTooLarge(size, response.status_code)
                chunks.append(chunk)
            encoding = response.encoding if "charset=" in content_type.lower() else "utf-8"
            try:
                text = b"".join(chunks).decode(encoding or "utf-8", errors="replace")
            except LookupError:
                text = b"".join(chunks).decode("utf-8", errors="replace")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return FetchedResponse(
            status_code=response.status_code,
            final_url=response.url,
            headers=headers,
            text=text,
            elapsed_ms=elapsed_ms,
        )


def _sync_head(http: requests.Session, url: str, timeout: float, allow_redirects: bool) -> HeadResult:
    response = http.head(url, timeout=timeout, allow_redirects=allow_redirects)
    length = response.headers.get("Content-Length", "")
    return HeadResult(
        status_code=response.status_code,
        content_type=response.headers.get("Content-Type", ""),
        content_length=int(length) if length.isdigit() else None,
    )


def _sync_resource(http: requests.Session, url: str, timeout: float) -> Resource:
    response = http.get(url, timeout=timeout, allow_redirects=True)
    return Resource(
        status_code=response.status_code,
        content_type=response.headers.get("Content-Type", ""),
        text=response.text[:MAX_CONTENT_BYTES],
        url=response.url,
    )


# --- async API ---

async def _host_resolves(host: str, session: CrawlSession) -> bool:
    if host in session.dns_cache:
        return session.dns_cache[host]
    loop = asyncio.get_event_loop()
    try:
        await loop.run_in_executor(None, _resolve_host, host)
        resolvable = True
    except (OSError, UnicodeError) as exc:
        logger.warning("DNS lookup failed for %s: %s", host, exc)
        resolvable = False
    session.dns_cache[host] = resolvable
    return resolvable


async def head_request(
    url: str,
    session: CrawlSession,
    timeout: float = HEAD_TIMEOUT,
    allow_redirects: bool = False,
) -> Optional[HeadResult]:
    """HEAD request; None when the request itself failed."""
    loop = asyncio.get_event_loop()
    try:
        return await loop.run_in_executor(None, _sync_head, session.head_http, url, timeout, allow_redirects)
    except requests.RequestException as exc:
        logger.debug("HEAD failed for %s: %s", url, exc)
        return None


async def fetch_resource(url: str, session: CrawlSession, timeout: float) -> Optional[Resource]:
    """GET a non-page resource (robots.txt, sitemaps); None on transport failure."""
    loop = asyncio.get_event_loop()
    try:
        return await loop.run_in_executor(None, _sync_resource, session.http, url, timeout)
    except requests.RequestException as exc:
        logger.debug("Resource fetch failed for %s: %s", url, exc)
        return None


async def check_link(url: str, session: CrawlSession) -> bool:
    """True when the link is broken (status >= 400 or unreachable). Cached per session."""
    if url in session.checked_links:
        return session.checked_links[url]

    loop = asyncio.get_event_loop()
    try:
        result = await loop.run_in_executor(
            None, _sync_head, session.head_http, url, LINK_CHECK_TIMEOUT, True
        )
        broken = result.status_code >= 400
    except requests.RequestException as exc:
        logger.debug("Link check failed for %s: %s", url, exc)
        broken = True

    session.checked_links[url] = broken
    if broken:
        session.broken_links.add(url)
    if session.link_check_delay:
        await asyncio.sleep(session.link_check_delay)
    return broken


async def verify_links(links: list[LinkRef], session: CrawlSession, limit: int = LINK_CHECK_LIMIT) -> list[LinkRef]:
    """HEAD-check the first `limit` links; the rest pass through untouched."""
    if not session.check_links:
        return links
    verified = []
    for index, link in enumerate(links):
        if index >= limit or link.broken:
            verified.append(link)
            continue
        if await check_link(link.url, session):
            verified.append(LinkRef(url=link.url, anchor_text=link.anchor_text, broken=True))
        else:
            verified.append(link)
    return verified


async def _fetch_uncached(url: str, session: CrawlSession, renderer) -> PageRecord:
    loop = asyncio.get_event_loop()

    host = urlparse(url).hostname
    if not await _host_resolves(host, session):
        return PageRecord.error_record(url, "DNS Error", -1, f"Domain not available: {host}")

    try:
        response = await loop.run_in_executor(
            None, _sync_get, session.http, url, REQUEST_TIMEOUT, MAX_CONTENT_BYTES
        )
    except ResponseTooLarge as exc:
        return PageRecord.error_record(url, "Response Too Large", exc.status_code, str(exc))
    except requests.Timeout:
        return PageRecord.error_record(url, "Request Timeout", 0, f"Request timed out after {REQUEST_TIMEOUT:g}s")
    except requests.TooManyRedirects:
        return PageRecord.error_record(url, "Redirect Loop", 0, f"Exceeded {MAX_REDIRECTS} redirects")
    except requests.exceptions.SSLError as exc:
        return PageRecord.error_record(url, "TLS Error", 0, str(exc))
    except requests.ConnectionError as exc:
        return PageRecord.error_record(url, "Connection Error", 0, str(exc))
    except requests.RequestException as exc:
        return PageRecord.error_record(url, "Error", 0, str(exc))

    if response.status_code != 200:
        return PageRecord.error_record(
            url, f"Error {response.status_code}", response.status_code, describe_status(response.status_code)
        )
    if not is_html_content_type(response.content_type):
        return PageRecord.error_record(
            url, "Non-HTML Content", response.status_code,
            f"Unsupported content type: {response.content_type or 'unknown'}",
        )

    html = response.text
    rendered = False
    if renderer is not None:
        try:
            if renderer.is_js_heavy(html):
                rendered_html = await renderer.render(url)
                if rendered_html:
                    html, rendered = rendered_html, True
        except Exception as exc:
            logger.warning("Render fallback failed for %s, using static HTML: %s", url, exc)

    parsed = await loop.run_in_executor(None, parse_html, html, response.final_url, response.headers)
    parsed["internal_links"] = await verify_links(parsed["internal_links"], session)

    build = functools.partial(
        build_page_record,
        parsed,
        url=url,
        final_url=response.final_url,
        status_code=response.status_code,
        load_time_ms=response.elapsed_ms,
        raw_html=html,
        rendered=rendered,
        headers=response.headers,
    )
    return await loop.run_in_executor(None, build)


async def fetch_page(url: str, session: CrawlSession, renderer=None) -> PageRecord:
    """
    Fetch, parse and assemble one page.

    Never raises: invalid URLs, DNS failures, transport errors, non-200
    statuses, non-HTML bodies and oversized responses all come back as a
    PageRecord with `error` set (status -1 before any request, 0 when the
    request itself failed).
    """
    try:
        normalized = normalize_url(url)
    except ValueError as exc:
        logger.warning("Invalid URL %r: %s", url, exc)
        return PageRecord.error_record(str(url or ""), "Invalid URL", -1, str(exc))

    cached = session.responses.get(normalized)
    if cached is not None:
        return cached

    try:
        record = await _fetch_uncached(normalized, session, renderer)
    except Exception as exc:
        logger.error("Fetch failed for %s: %s", normalized, exc)
        record = PageRecord.error_record(normalized, "Error", 0, str(exc))

    if record.error:
        logger.warning("Fetch error for %s: %s", normalized, record.error)
    session.responses[normalized] = record

    if session.crawl_delay:
        await asyncio.sleep(session.crawl_delay)
    return record
