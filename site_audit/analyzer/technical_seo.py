import re
from urllib.parse import urlparse

from ..urls import crawl_key
from .factors import NA, OFI, OK, PRIORITY_OFI, FactorAnalyzer, PageContext, check_registry, finding, grade

CHECKS: list = []
check = check_registry(CHECKS)

_GENERIC_ANCHORS = {"click here", "read more", "here", "learn more", "more", "link", "this page"}
_PLACEHOLDER_ALT_RE = re.compile(r"\.(?:jpe?g|png|gif|webp)$|^(?:img|image|dsc|photo)[_\-\s]?\d*$", re.I)


@check
def url_structure(ctx: PageContext):
    parsed = urlparse(ctx.page.url)
    path = parsed.path
    problems = []
    if path != path.lower():
        problems.append("uppercase characters")
    if parsed.query:
        problems.append("query string")
    if len(ctx.page.url) > 100:
        problems.append("longer than 100 characters")
    if "_" in path:
        problems.append("underscores")
    if len([s for s in path.split("/") if s]) > 4:
        problems.append("more than 4 levels deep")
    if not problems:
        status = OK
    elif len(problems) >= 3:
        status = PRIORITY_OFI
    else:
        status = OFI
    return finding("URL Structure Optimization", "Short, lowercase, readable URL",
                   status, "Medium", "; ".join(problems) or None)


@check
def structured_data(ctx: PageContext):
    types = ctx.page.schema_types
    importance = "High" if ctx.is_homepage else "Medium"
    return finding("Structured Data Implementation", "Schema.org markup describes the page",
                   OK if types else OFI, importance, ", ".join(types) or "No schema markup found")


@check
def title_length(ctx: PageContext):
    length = len(ctx.page.title or "")
    if length == 0:
        status = PRIORITY_OFI
    elif 30 <= length <= 60:
        status = OK
    else:
        status = OFI
    return finding("Page Title Length", "Title tag is 30-60 characters", status, "High", f"{length} characters")


@check
def meta_description_length(ctx: PageContext):
    length = len(ctx.page.meta_description or "")
    if length == 0:
        status = PRIORITY_OFI
    elif 120 <= length <= 160:
        status = OK
    else:
        status = OFI
    return finding("Meta Description Length", "Meta description is 120-160 characters",
                   status, "High", f"{length} characters")


@check
def canonical_tag(ctx: PageContext):
    name, desc = "Canonical Tag Implementation", "Canonical tag points at this page"
    if not ctx.page.has_canonical or not ctx.page.canonical_url:
        return finding(name, desc, OFI, "Medium", "No canonical tag")
    target = crawl_key(ctx.page.canonical_url)
    if target in (crawl_key(ctx.page.url), crawl_key(ctx.page.final_url or ctx.page.url)):
        return finding(name, desc, OK, "Medium")
    return finding(name, desc, OFI, "Medium", f"Canonical points elsewhere: {ctx.page.canonical_url}")


@check
def meta_robots(ctx: PageContext):
    noindex = ctx.page.seo_issues.noindex
    return finding("Meta Robots Configuration", "Page is not blocked from indexing",
                   PRIORITY_OFI if noindex else OK, "High",
                   f"robots: {ctx.page.robots}" if ctx.page.robots else None)


@check
def open_graph(ctx: PageContext):
    present = [
        prop for prop in ("og:title", "og:description", "og:image")
        if ctx.soup.find("meta", attrs={"property": prop})
    ]
    return finding("Open Graph Tags", "og:title, og:description and og:image are set",
                   OK if len(present) == 3 else OFI, "Low", f"{len(present)} of 3 tags present")


@check
def twitter_card(ctx: PageContext):
    found = ctx.soup.find("meta", attrs={"name": "twitter:card"}) is not None
    return finding("Twitter Card Tags", "twitter:card meta tag is set", OK if found else OFI, "Low")


@check
def breadcrumb_schema(ctx: PageContext):
    name, desc = "Breadcrumb Structured Data", "BreadcrumbList markup describes the page trail"
    if ctx.is_homepage:
        return finding(name, desc, NA, "Low", "Not applicable to the homepage")
    found = "BreadcrumbList" in ctx.page.schema_types
    return finding(name, desc, OK if found else OFI, "Low")


@check
def duplicate_meta(ctx: PageContext):
    duplicated = ctx.page.seo_issues.duplicate_meta_tags
    return finding("Duplicate Meta Tags", "Each meta tag appears once",
                   OFI if duplicated else OK, "Medium")


@check
def https(ctx: PageContext):
    return finding("SSL Certificate (HTTPS)", "Page is served over HTTPS",
                   OK if ctx.page.has_https else PRIORITY_OFI, "High")


@check
def mixed_content(ctx: PageContext):
    name, desc = "Mixed Content", "HTTPS page loads no resources over plain HTTP"
    if not ctx.page.has_https:
        return finding(name, desc, NA, "Medium", "Page is not served over HTTPS")
    mixed = ctx.page.security.has_mixed_content
    return finding(name, desc, OFI if mixed else OK, "Medium")


@check
def security_headers(ctx: PageContext):
    found = ctx.page.security.has_security_headers
    return finding("Security Headers", "Response sets standard security headers",
                   OK if found else OFI, "Low")


@check
def hreflang(ctx: PageContext):
    name, desc = "Hreflang Implementation", "Alternate language versions are declared"
    if ctx.page.has_hreflang:
        return finding(name, desc, OK, "Low")
    return finding(name, desc, NA, "Low", "Single-language page")


@check
def amp(ctx: PageContext):
    name, desc = "AMP Version", "An accelerated mobile version is linked"
    if ctx.page.has_amp:
        return finding(name, desc, OK, "Low")
    return finding(name, desc, NA, "Low", "No AMP version linked")


@check
def favicon(ctx: PageContext):
    return finding("Favicon", "Site icon is declared", OK if ctx.page.has_icon else OFI, "Low")


@check
def h1_count(ctx: PageContext):
    count = len(ctx.page.h1s)
    if count == 0:
        status = PRIORITY_OFI
    elif count == 1:
        status = OK
    else:
        status = OFI
    return finding("H1 Tag Usage", "Exactly one H1 per page", status, "High", f"{count} H1 tags")


@check
def heading_gaps(ctx: PageContext):
    skips = ctx.skipped_heading_levels
    return finding("Heading Level Gaps", "Heading levels are not skipped",
                   OK if skips == 0 else OFI, "Low", f"{skips} skipped levels" if skips else None)


@check
def image_alt_quality(ctx: PageContext):
    name, desc = "Image Alt Text Quality", "Alt text describes images instead of naming files"
    images = ctx.page.images
    if images.total == 0:
        return finding(name, desc, NA, "Medium", "No images on page")
    weak = images.without_alt + sum(
        1 for alt in images.alt_texts
        if len(alt.strip()) < 5 or _PLACEHOLDER_ALT_RE.search(alt.strip())
    )
    ratio = weak / images.total
    return finding(name, desc, grade(ratio, 0.1, 0.5, higher_is_better=False), "Medium",
                   f"{weak} of {images.total} images lack descriptive alt text")


@check
def broken_links(ctx: PageContext):
    broken = len(ctx.page.links.broken)
    if broken == 0:
        status = OK
    elif broken <= 3:
        status = OFI
    else:
        status = PRIORITY_OFI
    return finding("Broken Links", "Checked links on the page resolve", status, "High", f"{broken} broken links")


@check
def internal_links(ctx: PageContext):
    count = len(ctx.page.links.internal)
    return finding("Internal Linking Structure", "Page links to other pages on the site",
                   grade(count, 5, 1), "Medium", f"{count} internal links")


@check
def external_links(ctx: PageContext):
    count = len(ctx.page.links.external)
    return finding("External Link Balance", "Outbound links are kept in proportion",
                   grade(count, 50, 100, higher_is_better=False), "Low", f"{count} external links")


@check
def anchor_text(ctx: PageContext):
    name, desc = "Anchor Text Quality", "Link text describes the destination"
    anchors = [
        link.anchor_text.strip().lower()
        for link in ctx.page.links.internal + ctx.page.links.external
        if link.anchor_text.strip()
    ]
    if not anchors:
        return finding(name, desc, NA, "Low", "No text links")
    generic = sum(1 for a in anchors if a in _GENERIC_ANCHORS)
    ratio = generic / len(anchors)
    return finding(name, desc, grade(ratio, 0.1, 0.3, higher_is_better=False), "Low",
                   f"{generic} of {len(anchors)} links use generic text")


@check
def inline_code(ctx: PageContext):
    inline_bytes = sum(len(tag.get_text()) for tag in ctx.soup.find_all(["style", "script"]) if not tag.get("src"))
    kb = inline_bytes / 1024
    return finding("Inline CSS and JavaScript Weight", "Inline styles and scripts are kept small",
                   grade(kb, 20, 100, higher_is_better=False), "Low", f"{kb:.1f} KB inline")


@check
def render_blocking(ctx: PageContext):
    head = ctx.soup.find("head")
    scripts = head.find_all("script", src=True) if head else []
    blocking = [s for s in scripts if not s.has_attr("async") and not s.has_attr("defer")]
    return finding("Render-Blocking Scripts", "Scripts in <head> load async or deferred",
                   grade(len(blocking), 2, 6, higher_is_better=False), "Medium",
                   f"{len(blocking)} blocking scripts in <head>")


@check
def lazy_images(ctx: PageContext):
    name, desc = "Image Lazy Loading", "Offscreen images use loading=lazy"
    images = ctx.soup.find_all("img")
    if len(images) < 4:
        return finding(name, desc, NA, "Low", "Too few images to matter")
    lazy = sum(1 for img in images if (img.get("loading") or "").lower() == "lazy")
    return finding(name, desc, OK if lazy / len(images) >= 0.5 else OFI, "Low",
                   f"{lazy} of {len(images)} images lazy-loaded")


@check
def language(ctx: PageContext):
    html = ctx.soup.find("html")
    lang = html.get("lang") if html else None
    return finding("Language Declaration", "<html> declares the page language",
                   OK if lang else OFI, "Low", f"lang={lang}" if lang else None)


@check
def charset(ctx: PageContext):
    found = ctx.soup.find("meta", charset=True) is not None or ctx.soup.find(
        "meta", attrs={"http-equiv": re.compile(r"content-type", re.I)}
    ) is not None
    return finding("Character Encoding", "Document declares its character set", OK if found else OFI, "Low")


@check
def response_status(ctx: PageContext):
    page = ctx.page
    if page.status_code != 200:
        return finding("Page Response Status", "Page answers 200 without redirects", OFI, "Medium",
                       f"HTTP {page.status_code}")
    if page.final_url and crawl_key(page.final_url) != crawl_key(page.url):
        return finding("Page Response Status", "Page answers 200 without redirects", OFI, "Medium",
                       f"Redirects to {page.final_url}")
    return finding("Page Response Status", "Page answers 200 without redirects", OK, "Medium")


class TechnicalSEOAnalyzer(FactorAnalyzer):
    category = "Technical SEO"
    checks = CHECKS
