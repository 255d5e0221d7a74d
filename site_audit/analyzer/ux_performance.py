import re

from ..parser import has_phone_number
from .factors import CTA_PHRASES, NA, OFI, OK, PRIORITY_OFI, FactorAnalyzer, PageContext, check_registry, finding, grade

CHECKS: list = []
check = check_registry(CHECKS)

_POPUP_RE = re.compile(r"\b(?:modal|popup|pop-up|lightbox|interstitial|newsletter-signup)\b", re.I)
_SMALL_FONT_RE = re.compile(r"font-size\s*:\s*(?:[0-9]|1[01])(?:\.\d+)?px", re.I)
_NO_OUTLINE_RE = re.compile(r"outline\s*:\s*(?:none|0)\b", re.I)
_FIELD_TYPES_SKIPPED = {"hidden", "submit", "button", "reset", "image"}


def _form_fields(ctx: PageContext) -> list:
    fields = []
    for tag in ctx.soup.find_all(["input", "select", "textarea"]):
        if tag.name == "input" and (tag.get("type") or "text").lower() in _FIELD_TYPES_SKIPPED:
            continue
        fields.append(tag)
    return fields


def _viewport(ctx: PageContext) -> str:
    tag = ctx.soup.find("meta", attrs={"name": "viewport"})
    return (tag.get("content") or "").lower() if tag else ""


@check
def mobile(ctx: PageContext):
    ok = ctx.page.mobile_friendly
    return finding("Mobile Optimization", "Page declares a responsive viewport",
                   OK if ok else PRIORITY_OFI, "High")


@check
def page_speed(ctx: PageContext):
    speed = ctx.page.page_load_speed
    return finding("Page Load Speed", "Page responds quickly", grade(speed.score, 75, 30), "High",
                   f"Loaded in {speed.load_time_ms} ms (score {speed.score})")


@check
def accessibility(ctx: PageContext):
    page = ctx.page
    html = ctx.soup.find("html")
    alt_ok = page.images.total == 0 or page.images.with_alt / page.images.total >= 0.9
    points = sum([
        alt_ok,
        page.accessibility.has_aria_labels,
        page.accessibility.has_proper_heading_structure,
        bool(html and html.get("lang")),
        bool(ctx.soup.find("label")) or not _form_fields(ctx),
    ])
    return finding("Accessibility Compliance", "Basic accessibility markup is in place",
                   grade(points, 4, 2), "High", f"{points} of 5 accessibility checks pass")


@check
def ux_elements(ctx: PageContext):
    soup = ctx.soup
    elements = sum([
        soup.find("nav") is not None,
        soup.find("footer") is not None,
        soup.find("header") is not None,
        ctx.page.has_phone_number or ctx.has_email,
    ])
    return finding("User Experience Elements", "Header, navigation, footer and contact details are present",
                   grade(elements, 3, 1), "Medium", f"{elements} of 4 page elements")


@check
def popups(ctx: PageContext):
    hits = len(_POPUP_RE.findall(ctx.html))
    return finding("Intrusive Pop-up Detection", "No modal or pop-up overlays interrupt the visitor",
                   OK if hits == 0 else OFI, "Medium", f"{hits} pop-up markers" if hits else None)


@check
def form_usability(ctx: PageContext):
    name, desc = "Form Usability Optimization", "Forms ask only for what is needed"
    forms = ctx.soup.find_all("form")
    if not forms:
        return finding(name, desc, NA, "Low", "No forms on page")
    longest = max(len([
        f for f in form.find_all(["input", "select", "textarea"])
        if not (f.name == "input" and (f.get("type") or "text").lower() in _FIELD_TYPES_SKIPPED)
    ]) for form in forms)
    return finding(name, desc, OK if longest <= 8 else OFI, "Medium", f"Longest form has {longest} fields")


@check
def touch_targets(ctx: PageContext):
    tiny = sum(1 for a in ctx.soup.find_all("a") if 0 < len(a.get_text(strip=True)) <= 1)
    return finding("Mobile Touch Target Size", "Links are large enough to tap",
                   grade(tiny, 3, 10, higher_is_better=False), "Low", f"{tiny} single-character links")


@check
def font_size(ctx: PageContext):
    small = len(_SMALL_FONT_RE.findall(ctx.html))
    return finding("Font Size Readability", "Text is not set below 12px",
                   grade(small, 0, 5, higher_is_better=False), "Low",
                   f"{small} font sizes under 12px" if small else None)


@check
def navigation(ctx: PageContext):
    nav = ctx.soup.find("nav")
    if nav is None:
        return finding("Navigation Usability", "A clear navigation menu is present", OFI, "High", "No <nav> element")
    count = len(nav.find_all("a"))
    status = OK if 3 <= count <= 40 else OFI
    return finding("Navigation Usability", "A clear navigation menu is present", status, "High",
                   f"{count} navigation links")


@check
def search(ctx: PageContext):
    soup = ctx.soup
    found = (
        soup.find(attrs={"role": "search"}) is not None
        or soup.find("input", attrs={"type": "search"}) is not None
        or soup.find("input", attrs={"name": re.compile(r"^(?:q|s|search)$")}) is not None
    )
    return finding("Search Functionality", "Visitors can search the site", OK if found else OFI, "Low")


@check
def breadcrumbs(ctx: PageContext):
    name, desc = "Breadcrumb Usability", "Visible breadcrumbs show where the visitor is"
    if ctx.is_homepage:
        return finding(name, desc, NA, "Low", "Not applicable to the homepage")
    return finding(name, desc, OK if ctx.has_breadcrumb_markup else OFI, "Low")


@check
def footer(ctx: PageContext):
    tag = ctx.soup.find("footer")
    if tag is None:
        return finding("Footer Information Access", "Footer carries contact details and key links", OFI, "Low",
                       "No <footer> element")
    useful = bool(tag.find("a")) or has_phone_number(tag.get_text(" "))
    return finding("Footer Information Access", "Footer carries contact details and key links",
                   OK if useful else OFI, "Low")


@check
def form_labels(ctx: PageContext):
    name, desc = "Form Field Labels", "Every form field has a label"
    fields = _form_fields(ctx)
    if not fields:
        return finding(name, desc, NA, "Low", "No form fields")
    label_targets = {label.get("for") for label in ctx.soup.find_all("label") if label.get("for")}
    labelled = sum(
        1 for f in fields
        if f.get("id") in label_targets or f.get("aria-label") or f.get("placeholder") or f.find_parent("label")
    )
    ratio = labelled / len(fields)
    return finding(name, desc, grade(ratio, 0.9, 0.5), "Medium", f"{labelled} of {len(fields)} fields labelled")


@check
def progressive_enhancement(ctx: PageContext):
    rendered = ctx.page.rendered
    return finding("Progressive Enhancement", "Content is available without running JavaScript",
                   OFI if rendered else OK, "Medium",
                   "Content only appeared after headless rendering" if rendered else None)


@check
def keyboard(ctx: PageContext):
    positive_tabindex = sum(
        1 for tag in ctx.soup.find_all(attrs={"tabindex": True})
        if str(tag.get("tabindex")).lstrip("-").isdigit() and int(tag.get("tabindex")) > 0
    )
    click_divs = sum(1 for tag in ctx.soup.find_all(["div", "span"], onclick=True) if not tag.get("role"))
    issues = positive_tabindex + click_divs
    return finding("Keyboard Navigation", "Interactive elements are reachable by keyboard",
                   OK if issues == 0 else OFI, "Medium", f"{issues} keyboard traps" if issues else None)


@check
def focus_indicator(ctx: PageContext):
    hidden = bool(_NO_OUTLINE_RE.search(ctx.html))
    return finding("Focus Indicator Visibility", "Focus outlines are not removed",
                   OFI if hidden else OK, "Low")


@check
def zoom(ctx: PageContext):
    name, desc = "Content Zoom Accessibility", "Pinch zoom is not disabled"
    viewport = _viewport(ctx)
    if not viewport:
        return finding(name, desc, NA, "Low", "No viewport meta tag")
    blocked = "user-scalable=no" in viewport.replace(" ", "") or "maximum-scale=1" in viewport.replace(" ", "")
    return finding(name, desc, OFI if blocked else OK, "Medium")


@check
def viewport_scaling(ctx: PageContext):
    viewport = _viewport(ctx)
    if not viewport:
        status = OFI
    elif "width=device-width" in viewport.replace(" ", "") and "initial-scale" in viewport:
        status = OK
    else:
        status = OFI
    return finding("Viewport Configuration", "Viewport sets device width and initial scale", status, "Medium",
                   viewport or None)


@check
def responsive_images(ctx: PageContext):
    name, desc = "Responsive Images", "Images provide srcset or picture sources"
    images = ctx.soup.find_all("img")
    if not images:
        return finding(name, desc, NA, "Low", "No images on page")
    responsive = sum(1 for img in images if img.get("srcset") or img.find_parent("picture"))
    return finding(name, desc, OK if responsive / len(images) >= 0.5 else OFI, "Low",
                   f"{responsive} of {len(images)} images responsive")


@check
def media_weight(ctx: PageContext):
    count = len(ctx.soup.find_all(["img", "video", "iframe", "audio"]))
    return finding("Media Weight", "Page does not load an excessive number of media elements",
                   grade(count, 40, 100, higher_is_better=False), "Medium", f"{count} media elements")


@check
def iframes(ctx: PageContext):
    count = len(ctx.soup.find_all("iframe"))
    return finding("Iframe Usage", "Embedded frames are kept to a minimum",
                   grade(count, 3, 8, higher_is_better=False), "Low", f"{count} iframes")


@check
def dom_size(ctx: PageContext):
    count = len(ctx.soup.find_all(True))
    return finding("DOM Size", "Document stays under 1500 elements",
                   grade(count, 1500, 3000, higher_is_better=False), "Medium", f"{count} elements")


@check
def text_ratio(ctx: PageContext):
    name, desc = "Text-to-HTML Ratio", "Visible text is a healthy share of the markup"
    html_length = len(ctx.page.raw_html or "")
    if not html_length:
        return finding(name, desc, NA, "Low", "No markup captured")
    ratio = len(ctx.page.body_text or "") / html_length
    return finding(name, desc, grade(ratio, 0.1, 0.03), "Low", f"{ratio:.1%} text")


@check
def above_fold_cta(ctx: PageContext):
    opening = " ".join(ctx.text.split()[:150])
    header = ctx.soup.find("header")
    header_text = header.get_text(" ", strip=True).lower() if header else ""
    found = any(p in opening or p in header_text for p in CTA_PHRASES)
    if not found and header is not None:
        found = header.find("a", href=re.compile(r"^tel:", re.I)) is not None
    return finding("Above-the-Fold Call-to-Action", "A call to action appears near the top of the page",
                   OK if found else OFI, "High")


class UXPerformanceAnalyzer(FactorAnalyzer):
    category = "UX & Performance"
    checks = CHECKS
