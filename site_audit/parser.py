import json
import re
import logging
from typing import Optional
from urllib.parse import urljoin, urlparse

import phonenumbers
from bs4 import BeautifulSoup

from .config import PHONE_REGION
from .models import LinkRef
from .urls import hostname, strip_fragment

logger = logging.getLogger(__name__)

_SKIP_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")

SECURITY_HEADERS = (
    "content-security-policy",
    "x-content-type-options",
    "x-frame-options",
    "strict-transport-security",
    "x-xss-protection",
)

_STREET_RE = re.compile(
    r"\b\d{1,6}\s+(?:[a-z0-9.']+\s+){0,4}"
    r"(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|court|ct|"
    r"place|pl|parkway|pkwy|highway|hwy|circle|cir|suite)\b",
    re.IGNORECASE,
)
_STATE_ZIP_RE = re.compile(r"\b[A-Z]{2},?\s+\d{5}(?:-\d{4})?\b")

_VIDEO_HOSTS = ("youtube.com", "youtube-nocookie.com", "youtu.be", "vimeo.com", "wistia")


def _get_meta(soup: BeautifulSoup, name: str = None, prop: str = None) -> Optional[str]:
    """Pull content from a <meta> tag by name or property attribute."""
    tag = None
    if name:
        tag = soup.find("meta", attrs={"name": re.compile(f"^{re.escape(name)}$", re.IGNORECASE)})
    if not tag and prop:
        tag = soup.find("meta", attrs={"property": prop})
    if tag:
        return (tag.get("content") or "").strip() or None
    return None


def _clean_text(raw: str) -> str:
    """Collapse whitespace and strip control characters from extracted text."""
    text = re.sub(r"[\r\n\t]+", " ", raw)
    text = re.sub(r" {2,}", " ", text)
    return text.strip()


def _collect_jsonld_types(data, found: list[str]) -> None:
    if isinstance(data, list):
        for item in data:
            _collect_jsonld_types(item, found)
        return
    if not isinstance(data, dict):
        return
    declared = data.get("@type")
    if isinstance(declared, str):
        found.append(declared)
    elif isinstance(declared, list):
        found.extend(t for t in declared if isinstance(t, str))
    if "@graph" in data:
        _collect_jsonld_types(data["@graph"], found)


def extract_schema_types(soup: BeautifulSoup, url: str = "") -> list[str]:
    """
    JSON-LD first; microdata itemtype and then RDFa only when JSON-LD yields nothing.
    Malformed JSON-LD blocks are skipped.
    """
    found: list[str] = []
    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            _collect_jsonld_types(json.loads(raw), found)
        except ValueError as exc:
            logger.warning("Malformed JSON-LD on %s: %s", url or "page", exc)

    if not found:
        for tag in soup.find_all(attrs={"itemtype": True}):
            for itemtype in tag["itemtype"].split():
                found.append(itemtype.rstrip("/").rsplit("/", 1)[-1])

    if not found:
        for tag in soup.find_all(attrs={"typeof": True}):
            found.extend(t.split(":", 1)[-1] for t in tag["typeof"].split())
        for tag in soup.find_all(attrs={"property": re.compile(r"^schema:")}):
            found.append(tag["property"].split(":", 1)[-1])

    return list(dict.fromkeys(t for t in found if t))


def _extract_links(soup: BeautifulSoup, base_url: str) -> tuple[list[LinkRef], list[LinkRef]]:
    base_host = hostname(base_url)
    internal: list[LinkRef] = []
    external: list[LinkRef] = []
    seen: set[str] = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(_SKIP_HREF_PREFIXES):
            continue
        text = _clean_text(anchor.get_text(" "))

        try:
            resolved = strip_fragment(urljoin(base_url, href))
            parsed = urlparse(resolved)
            host = parsed.hostname
        except ValueError:
            # unresolvable hrefs are kept as broken internal links
            internal.append(LinkRef(url=href, anchor_text=text, broken=True))
            continue

        if parsed.scheme not in ("http", "https") or resolved in seen:
            continue
        seen.add(resolved)

        bare = host[4:] if host and host.startswith("www.") else host
        if bare == base_host:
            internal.append(LinkRef(url=resolved, anchor_text=text))
        else:
            external.append(LinkRef(url=resolved, anchor_text=text))

    return internal, external


def _has_mixed_content(soup: BeautifulSoup) -> bool:
    for tag in soup.find_all(["img", "script", "iframe", "source", "audio", "video", "embed"], src=True):
        if tag["src"].strip().lower().startswith("http://"):
            return True
    for tag in soup.find_all("link", href=True):
        if "stylesheet" in (tag.get("rel") or []) and tag["href"].strip().lower().startswith("http://"):
            return True
    for tag in soup.find_all("object", data=True):
        if tag["data"].strip().lower().startswith("http://"):
            return True
    for tag in soup.find_all("form", action=True):
        if tag["action"].strip().lower().startswith("http://"):
            return True
    return False


def _has_contact_form(soup: BeautifulSoup) -> bool:
    for form in soup.find_all("form"):
        if form.find("input", attrs={"type": re.compile(r"^(email|tel)$", re.I)}):
            return True
        if form.find(["input", "textarea", "select"],
                     attrs={"name": re.compile(r"email|phone|message|subject", re.I)}):
            return True
        marker = " ".join([
            form.get("id") or "",
            " ".join(form.get("class") or []),
            form.get("action") or "",
        ]).lower()
        if "contact" in marker:
            return True
    return False


def _has_video(soup: BeautifulSoup) -> bool:
    if soup.find("video"):
        return True
    for frame in soup.find_all("iframe", src=True):
        if any(host in frame["src"].lower() for host in _VIDEO_HOSTS):
            return True
    return False


def has_phone_number(text: str, soup: Optional[BeautifulSoup] = None, region: str = PHONE_REGION) -> bool:
    """A dialable number in the copy, or a tel: link that parses as one."""
    if any(True for _ in phonenumbers.PhoneNumberMatcher(text or "", region)):
        return True
    if soup is None:
        return False
    for link in soup.find_all("a", href=re.compile(r"^tel:", re.I)):
        try:
            number = phonenumbers.parse(link["href"][4:], region)
        except phonenumbers.NumberParseException:
            continue
        if phonenumbers.is_valid_number(number):
            return True
    return False


def has_address(text: str, soup: Optional[BeautifulSoup] = None) -> bool:
    if soup is not None and soup.find("address"):
        return True
    return bool(_STREET_RE.search(text) or _STATE_ZIP_RE.search(text))


def parse_html(html: str, base_url: str = "", headers: Optional[dict] = None) -> dict:
    """
    Parse raw HTML and return a flat dict of every page-level signal.
    Pure: depends only on the markup, the page URL and the response headers.
    """
    soup = BeautifulSoup(html, "lxml")
    header_names = {k.lower() for k in (headers or {}).keys()}
    head = soup.head or soup

    # --- title ---
    title_tags = head.find_all("title") or soup.find_all("title", limit=1)
    title = _clean_text(title_tags[0].get_text()) if title_tags else ""

    # --- standard meta ---
    meta_description = _get_meta(soup, name="description") or ""
    description_tags = soup.find_all("meta", attrs={"name": re.compile(r"^description$", re.I)})
    robots = _get_meta(soup, name="robots")
    googlebot = _get_meta(soup, name="googlebot")
    html_tag = soup.find("html")
    language = html_tag.get("lang") if html_tag else None

    # --- open graph / twitter ---
    og_title = _get_meta(soup, prop="og:title")
    og_description = _get_meta(soup, prop="og:description")
    has_og = soup.find("meta", attrs={"property": re.compile(r"^og:")}) is not None
    has_twitter = (
        soup.find("meta", attrs={"name": re.compile(r"^twitter:")}) is not None
        or soup.find("meta", attrs={"property": re.compile(r"^twitter:")}) is not None
    )

    # --- link-rel signals ---
    canonical_tag = soup.find("link", rel="canonical")
    canonical_url = (canonical_tag.get("href") or "").strip() or None if canonical_tag else None
    has_icon = soup.find("link", rel=re.compile(r"icon", re.I)) is not None
    has_hreflang = soup.find("link", attrs={"hreflang": True}) is not None
    has_amp = soup.find("link", rel="amphtml") is not None or (
        html_tag is not None and (html_tag.has_attr("amp") or html_tag.has_attr("⚡"))
    )

    # --- headings ---
    headings = {
        f"h{level}": [_clean_text(h.get_text(" ")) for h in soup.find_all(f"h{level}") if h.get_text(strip=True)]
        for level in range(1, 7)
    }

    # --- links ---
    internal_links, external_links = _extract_links(soup, base_url)

    # --- images ---
    images = soup.find_all("img")
    alt_texts = [img.get("alt").strip() for img in images if (img.get("alt") or "").strip()]

    # --- schema ---
    schema_types = extract_schema_types(soup, base_url)

    # --- mobile ---
    viewport = _get_meta(soup, name="viewport") or ""
    mobile_friendly = "width=device-width" in viewport.lower().replace(" ", "")

    # --- security ---
    has_https = base_url.lower().startswith("https://")
    has_mixed_content = has_https and _has_mixed_content(soup)
    security_header_count = sum(1 for h in SECURITY_HEADERS if h in header_names)

    # --- accessibility ---
    has_aria = soup.select_one("[aria-label], [aria-describedby], [aria-labelledby], [role]") is not None
    has_heading_flow = soup.select_one("h1 ~ h2") is not None

    # --- content structure ---
    has_lists = soup.find(["ul", "ol"]) is not None
    has_table = soup.find("table") is not None
    has_emphasis = soup.find(["strong", "em", "b", "mark"]) is not None
    has_video = _has_video(soup)
    faq_marker = soup.find(attrs={"id": re.compile(r"faq", re.I)}) or soup.find(class_=re.compile(r"faq", re.I))
    contact_form = _has_contact_form(soup)
    address_tag = soup.find("address") is not None

    # --- body text: only non-visible elements removed, footer NAP must survive ---
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    body = soup.find("body")
    raw_body_text = body.get_text(separator=" ") if body else soup.get_text(separator=" ")
    body_text = _clean_text(raw_body_text)
    text_lower = body_text.lower()

    has_phone = has_phone_number(body_text, soup)
    address = address_tag or has_address(body_text)
    has_faqs = bool(faq_marker) or "faq" in text_lower or "frequently asked" in text_lower or "FAQPage" in schema_types

    noindex = any("noindex" in (value or "").lower() for value in (robots, googlebot))

    return {
        "title": title,
        "meta_description": meta_description,
        "robots": robots,
        "language": language,
        "og_title": og_title,
        "og_description": og_description,
        "canonical_url": canonical_url,
        "headings": headings,
        "internal_links": internal_links,
        "external_links": external_links,
        "image_count": len(images),
        "alt_texts": alt_texts,
        "schema_types": schema_types,
        "body_text": body_text,
        "mobile_friendly": mobile_friendly,
        "has_https": has_https,
        "has_canonical": canonical_url is not None,
        "has_social_tags": has_og or has_twitter,
        "has_icon": has_icon,
        "has_hreflang": has_hreflang,
        "has_amp": has_amp,
        "has_robots_meta": robots is not None,
        "has_mixed_content": has_mixed_content,
        "has_security_headers": security_header_count >= 2,
        "has_aria_labels": has_aria,
        "has_proper_heading_structure": has_heading_flow,
        "noindex": noindex,
        "duplicate_meta_tags": len(title_tags) > 1 or len(description_tags) > 1,
        "has_contact_form": contact_form,
        "has_phone_number": has_phone,
        "has_address": address,
        "has_lists": has_lists,
        "has_faqs": has_faqs,
        "has_video": has_video,
        "has_table": has_table,
        "has_emphasis": has_emphasis,
    }
