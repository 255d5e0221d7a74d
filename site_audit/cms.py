import re
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

CUSTOM = "Custom"


@dataclass(frozen=True)
class CmsProfile:
    name: str
    html_markers: tuple[str, ...]
    header_markers: tuple[tuple[str, str], ...] = ()    # (header, substring); "" means present at all
    skip_patterns: tuple[str, ...] = ()
    priority_patterns: tuple[str, ...] = ()


# a later match wins, so the most specific platforms come last
PROFILES = (
    CmsProfile(
        "WordPress",
        ("/wp-content/", "/wp-includes/", "wp-json", "wordpress"),
        (("x-powered-by", "wordpress"), ("link", "wp-json")),
        skip_patterns=(
            "/wp-admin", "/wp-content/uploads", "/wp-includes", "/feed", "?replytocom=", "?preview=",
            "/tag/", "/category/", "/author/", "/page/", "?m=", "?paged=",
        ),
        priority_patterns=("/contact", "/about", "/services", "/shop", "/blog"),
    ),
    CmsProfile(
        "Shopify",
        ("cdn.shopify.com", "shopify"),
        (("x-shopid", ""), ("x-shopify-stage", ""), ("powered-by", "shopify")),
        skip_patterns=(
            "/admin", "/cart", "/account", "/collections/all", "/search", "?sort_by=", "?page=",
            "/blogs/news/tagged/",
        ),
        priority_patterns=("/products", "/collections", "/pages/contact", "/pages/about"),
    ),
    CmsProfile(
        "Squarespace",
        ("static1.squarespace.com", "assets.squarespace.com", "squarespace"),
        skip_patterns=("/config", "/universal", "?format=json"),
        priority_patterns=("/contact", "/about", "/work", "/services"),
    ),
    CmsProfile(
        "Wix",
        ("static.wixstatic.com", "wix-code", "wix.com"),
        (("x-wix-request-id", ""),),
        skip_patterns=("/_api/", "/wix-blog-backend"),
        priority_patterns=("/contact", "/about", "/services"),
    ),
    CmsProfile(
        "Joomla",
        ("/components/com_", "mootools", "joomla"),
        (("x-content-encoded-by", "joomla"),),
        skip_patterns=("/administrator", "/component/users", "?format=feed", "?tmpl=component"),
    ),
    CmsProfile(
        "Drupal",
        ("/sites/default/files/", "drupal.js", "drupal"),
        (("x-generator", "drupal"), ("x-drupal-cache", "")),
        skip_patterns=("/user/login", "/user/register", "/node/add", "/admin/", "/taxonomy/term/"),
    ),
)

# applied when no platform is recognised
DEFAULT_SKIP_PATTERNS = ("/wp-admin", "/wp-content/uploads")

_FRAMEWORKS = (
    ("React", re.compile(r"data-reactroot|_reactroot|__next_data__|react(?:-dom)?(?:\.production)?\.min\.js")),
    ("Angular", re.compile(r"ng-app|ng-version|angular(?:\.min)?\.js")),
    ("Vue.js", re.compile(r"data-v-[0-9a-f]{6,}|vue(?:\.min)?\.js|__vue")),
)

_PROFILES_BY_NAME = {profile.name: profile for profile in PROFILES}


@dataclass(frozen=True)
class CmsFingerprint:
    cms: str = CUSTOM
    framework: Optional[str] = None

    @property
    def known(self) -> bool:
        return self.cms != CUSTOM

    @property
    def profile(self) -> Optional[CmsProfile]:
        return _PROFILES_BY_NAME.get(self.cms)

    @property
    def skip_patterns(self) -> tuple[str, ...]:
        return self.profile.skip_patterns if self.profile else DEFAULT_SKIP_PATTERNS

    @property
    def priority_patterns(self) -> tuple[str, ...]:
        return self.profile.priority_patterns if self.profile else ()

    def __str__(self) -> str:
        return f"{self.cms} ({self.framework})" if self.framework else self.cms


def _header_matches(headers: dict, name: str, needle: str) -> bool:
    value = headers.get(name)
    if value is None:
        return False
    return not needle or needle in str(value).lower()


def detect_cms(html: str, headers: Optional[dict] = None) -> CmsFingerprint:
    """Identify the site's platform and front-end framework from homepage markup and headers."""
    html_lower = (html or "").lower()
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}

    cms = CUSTOM
    for profile in PROFILES:
        if any(marker in html_lower for marker in profile.html_markers) or any(
            _header_matches(lowered, name, needle) for name, needle in profile.header_markers
        ):
            cms = profile.name

    framework = next((name for name, pattern in _FRAMEWORKS if pattern.search(html_lower)), None)
    fingerprint = CmsFingerprint(cms, framework)
    logger.info("Site fingerprint: %s", fingerprint)
    return fingerprint


def apply_cms_filter(urls: list[str], fingerprint: CmsFingerprint) -> tuple[list[str], list[str]]:
    """
    Drop platform plumbing (admin, feeds, tag archives, cart...) from the
    candidate list and move the platform's key page paths to the front.
    Returns (kept, skipped); kept preserves the incoming order otherwise.
    """
    patterns = [p.lower() for p in fingerprint.skip_patterns]
    kept, skipped = [], []
    for url in urls:
        (skipped if any(p in url.lower() for p in patterns) else kept).append(url)

    priority = [p.lower() for p in fingerprint.priority_patterns]
    if priority:
        kept.sort(key=lambda url: not any(p in url.lower() for p in priority))

    if skipped:
        logger.info("CMS filter (%s) removed %d of %d URLs", fingerprint.cms, len(skipped), len(urls))
    return kept, skipped
