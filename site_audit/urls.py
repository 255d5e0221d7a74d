import re
import logging
from urllib.parse import urldefrag, urlparse, urlunparse

from .config import MAX_PATH_DEPTH

logger = logging.getLogger(__name__)

_SCHEME_RUN_RE = re.compile(r"^(?:https?://)+", re.IGNORECASE)
_FIRST_SCHEME_RE = re.compile(r"^(https?)://", re.IGNORECASE)
_OTHER_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_HOSTNAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9.-]*[a-z0-9])?$")

# --- skip policy ---

_SKIP_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".tar", ".gz", ".7z", ".exe", ".dmg", ".pkg", ".msi",
    ".mp4", ".avi", ".mov", ".wmv", ".webm", ".mp3", ".wav", ".ogg",
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".bmp", ".ico", ".webp", ".tiff",
    ".css", ".js", ".json", ".xml", ".txt", ".rss",
    ".woff", ".woff2", ".ttf", ".eot",
)

# whole path segments that mark non-canonical sections for an SEO audit
_SKIP_SEGMENTS = {
    # admin / CMS internals
    "wp-admin", "wp-content", "wp-includes", "wp-json", "admin", "administrator",
    "login", "logout", "register", "signup", "cart", "checkout", "my-account", "cgi-bin",
    # blog / feeds
    "blog", "blogs", "news", "feed", "rss",
    # api / search / listing
    "api", "ajax", "search", "filter", "tag", "tags", "category", "categories", "page",
    # asset directories
    "assets", "static", "uploads", "media", "images", "css", "js",
    # non-production copies
    "test", "dev", "staging",
}

_SKIP_PATTERNS = [
    re.compile(r"/page/\d+"),                    # pagination
    re.compile(r"[?&](?:page|paged|p)=\d+"),
    re.compile(r"/\d{4}/\d{2}(?:/\d{2})?(?:/|$)"),  # date archives
    re.compile(r"/author/"),
    re.compile(r"\?.*&.*&.*&"),                  # query-heavy generated URLs
    re.compile(r"[?&](?:download|export|print)(?:=|&|$)"),
]

MAX_URL_LENGTH = 500

# --- importance scoring ---

_HIGH_VALUE_PATTERNS = [
    (re.compile(r"/contact"), 25),
    (re.compile(r"/about"), 20),
    (re.compile(r"/service"), 20),
    (re.compile(r"/product"), 18),
    (re.compile(r"/pricing"), 18),
    (re.compile(r"/quote"), 22),
    (re.compile(r"/estimate"), 22),
    (re.compile(r"/emergency"), 25),
    (re.compile(r"/location"), 15),
    (re.compile(r"/testimonial"), 12),
    (re.compile(r"/review"), 12),
    (re.compile(r"/portfolio"), 12),
    (re.compile(r"/gallery"), 10),
]

_LOW_VALUE_PATTERNS = [
    (re.compile(r"/blog/\d{4}/"), -15),
    (re.compile(r"/tag/"), -20),
    (re.compile(r"/category/"), -10),
    (re.compile(r"/author/"), -15),
    (re.compile(r"/page/\d+"), -25),
    (re.compile(r"\?page="), -25),
    (re.compile(r"/search"), -30),
    (re.compile(r"/archive"), -20),
    (re.compile(r"/feed"), -35),
    (re.compile(r"/sitemap"), -35),
    (re.compile(r"/privacy"), -5),
    (re.compile(r"/terms"), -5),
    (re.compile(r"/cookie"), -5),
]

_BUSINESS_KEYWORDS = ["hvac", "plumbing", "electrical", "roofing", "contractor", "repair", "install"]


def normalize_url(raw: str) -> str:
    """
    Normalise user input into an absolute http(s) URL.

    Trims whitespace, collapses a run of repeated protocol prefixes into the
    first one, and defaults to https:// when no scheme is given (adding a "/"
    path in that case). Raises ValueError for anything that is not a usable
    http(s) URL.
    """
    if raw is None:
        raise ValueError("URL is required")
    url = raw.strip()
    if not url:
        raise ValueError("URL is empty")

    run = _SCHEME_RUN_RE.match(url)
    if run:
        scheme = _FIRST_SCHEME_RE.match(url).group(1).lower()
        parsed = urlparse(f"{scheme}://{url[run.end():]}")
    else:
        if _OTHER_SCHEME_RE.match(url):
            raise ValueError(f"Unsupported URL scheme: {url}")
        parsed = urlparse(f"https://{url}")
        if not parsed.path:
            parsed = parsed._replace(path="/")

    host = parsed.hostname
    if not host or not _HOSTNAME_RE.match(host) or ".." in host:
        raise ValueError(f"Invalid host in URL: {raw!r}")
    try:
        parsed.port  # raises on a non-numeric port, e.g. "mailto:x"
    except ValueError as exc:
        raise ValueError(f"Invalid port in URL: {raw!r}") from exc

    return urlunparse(parsed)


def strip_fragment(url: str) -> str:
    return urldefrag(url)[0]


def _bare_host(host: str) -> str:
    host = (host or "").lower()
    return host[4:] if host.startswith("www.") else host


def hostname(url: str) -> str:
    return _bare_host(urlparse(url).hostname or "")


def is_same_domain(url: str, base_url: str) -> bool:
    """Hostname equality ignoring a leading www."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return False
    return bool(host) and _bare_host(host) == hostname(base_url)


def path_segments(url: str) -> list[str]:
    return [s for s in urlparse(url).path.split("/") if s]


def is_homepage_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return path in ("", "/", "/index.html", "/index.php", "/home")


def should_include_url(url: str, base_url: str) -> bool:
    """Same-domain + skip-pattern policy applied to every discovered URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https"):
        return False
    if not is_same_domain(url, base_url):
        return False
    if len(url) > MAX_URL_LENGTH:
        return False

    path = parsed.path.lower()
    if path.endswith(_SKIP_EXTENSIONS):
        return False

    segments = [s for s in path.split("/") if s]
    if any(segment in _SKIP_SEGMENTS for segment in segments):
        return False
    if len(segments) > MAX_PATH_DEPTH:
        return False

    target = url.lower()
    if any(pattern.search(target) for pattern in _SKIP_PATTERNS):
        return False

    return True


def score_url(url: str) -> int:
    """Importance score used to spend the page budget on the pages that matter most."""
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return 10

    if path in ("", "/", "/index.html"):
        return 100

    score = 50
    target = url.lower()
    for pattern, weight in _HIGH_VALUE_PATTERNS:
        if pattern.search(path):
            score += weight
    for pattern, weight in _LOW_VALUE_PATTERNS:
        if pattern.search(target):
            score += weight

    # deeper pages matter less
    depth = len([s for s in path.split("/") if s])
    if depth > 3:
        score -= (depth - 3) * 5

    if any(keyword in path for keyword in _BUSINESS_KEYWORDS):
        score += 10

    return max(score, 1)


def prioritize_urls(urls: list[str]) -> list[str]:
    """Sort by importance score descending, then shorter URLs first."""
    return sorted(urls, key=lambda u: (-score_url(u), len(u)))


def crawl_key(url: str) -> str:
    """Identity used for visited/frontier membership: no fragment, www or trailing slash."""
    try:
        parsed = urlparse(strip_fragment(url))
    except ValueError:
        return url
    path = parsed.path.rstrip("/")
    key = f"{_bare_host(parsed.hostname or '')}{path}"
    return f"{key}?{parsed.query}" if parsed.query else key
