import logging
from dataclasses import replace
from typing import Optional

from ..models import NA, OFI, OK, PRIORITY_OFI, AuditFinding, AuditReport, PageRecord, SiteStructure
from ..similarity import jaccard_similarity
from ..urls import crawl_key
from .factors import finding

logger = logging.getLogger(__name__)

SERVICE_KEYWORDS = ["service", "services", "repair", "installation", "maintenance"]
LOCATION_KEYWORDS = ["city", "area", "location", "local", "near"]
AREA_KEYWORDS = ["area", "service area", "coverage", "serve", "region"]

# location pages sharing more than this share of their vocabulary count as duplicates
LOCATION_SIMILARITY_LIMIT = 0.8


def _text(page: PageRecord) -> str:
    return (page.body_text or "").lower()


def _title_and_text(page: PageRecord) -> str:
    return f"{page.title} {page.body_text}".lower()


def _average_words(pages: list[PageRecord]) -> int:
    if not pages:
        return 0
    return round(sum(p.word_count for p in pages) / len(pages))


def _linked_from_homepage(pages: list[PageRecord], homepage: PageRecord) -> bool:
    targets = {crawl_key(link.url) for link in homepage.links.internal}
    return any(crawl_key(p.url) in targets or crawl_key(p.final_url or p.url) in targets for p in pages)


def _not_applicable(names: list[tuple[str, str]], reason: str) -> list[AuditFinding]:
    return [finding(name, description, NA, "Medium", reason) for name, description in names]


# --- on-page (homepage) ---

def on_page_items(home: PageRecord) -> list[AuditFinding]:
    cs = home.content_structure
    speed = home.page_load_speed.score
    internal = len(home.links.internal)
    h1_count = len(home.h1s)
    text = _text(home)

    if speed >= 75:
        speed_status = OK
    elif speed >= 30:
        speed_status = OFI
    else:
        speed_status = PRIORITY_OFI

    if h1_count == 0:
        h1_status = PRIORITY_OFI
    elif h1_count == 1:
        h1_status = OK
    else:
        h1_status = OFI

    if home.images.total == 0:
        alt_status = NA
    elif home.images.with_alt / home.images.total >= 0.8:
        alt_status = OK
    else:
        alt_status = OFI

    return [
        finding(
            "Is the website appealing? Modern? (i.e. does not look out-of-date)",
            "The website should have a modern, professional design",
            OK if home.has_schema and home.has_social_tags and home.mobile_friendly else OFI,
            "High",
            "Page load speed is slow, which affects user experience" if speed < 50 else None,
        ),
        finding(
            "Is the website intuitive? Usable?",
            "Users should be able to easily navigate the site",
            OK if 5 <= internal <= 100 else OFI,
            "High",
            f"{internal} internal links on the homepage",
        ),
        finding(
            "Is there a clear, primary CTA?",
            "A primary call to action should be easy to find",
            OK if home.has_contact_form else OFI,
            "High",
            None if home.has_contact_form else "No contact form found on the homepage",
        ),
        finding(
            "Does the CTA stand out? (color, placement, etc.)",
            "Calls to action should be visually emphasised",
            OK if cs.has_emphasis else OFI,
            "Medium",
        ),
        finding(
            "Is the website mobile-friendly?",
            "Visitors on phones should get a usable layout",
            OK if home.mobile_friendly else OFI,
            "High",
            None if home.mobile_friendly else "No mobile viewport meta tag found",
        ),
        finding(
            "Does the website load fast?",
            "Page load speed affects user experience and SEO",
            speed_status,
            "High",
            f"Page speed score: {speed}/100. Priority OFI only if extremely slow (under 30).",
        ),
        finding(
            "Is there quality, substantial content on the homepage?",
            "The homepage should explain the business in enough words",
            OK if home.word_count >= 300 else OFI,
            "Medium",
            f"{home.word_count} words",
        ),
        finding(
            "Is the content engaging?",
            "Lists, video or FAQs keep visitors reading",
            OK if cs.has_lists or cs.has_video or cs.has_faqs else OFI,
            "Medium",
        ),
        finding(
            "Are there testimonials?",
            "Customer testimonials build trust",
            OK if "testimonial" in text or "review" in text else OFI,
            "Medium",
        ),
        finding(
            "Does the homepage have an optimized title tag?",
            "Title tags should be 30-60 characters",
            OK if 30 <= len(home.title) <= 60 else OFI,
            "High",
            f"Title length: {len(home.title)} characters",
        ),
        finding(
            "Does the homepage have an optimized meta description?",
            "Meta descriptions should be 120-160 characters",
            OK if 120 <= len(home.meta_description) <= 160 else OFI,
            "High",
            f"Meta description length: {len(home.meta_description)} characters",
        ),
        finding(
            "Does the homepage have a clear H1 tag?",
            "The homepage should have exactly one H1",
            h1_status,
            "High",
            f"Found {h1_count} H1 tag(s)",
        ),
        finding(
            "Is there a logical heading structure (H1, H2, H3)?",
            "Headings should outline the page",
            OK if home.h1s and home.h2s else OFI,
            "Medium",
        ),
        finding(
            "Are images optimized with alt text?",
            "Images should carry descriptive alt text",
            alt_status,
            "Medium",
            f"{home.images.with_alt} of {home.images.total} images have alt text" if home.images.total else "No images found",
        ),
        finding(
            "Does the site use structured data/schema markup?",
            "Schema markup helps search engines understand the business",
            OK if home.has_schema else OFI,
            "Medium",
            ", ".join(home.schema_types) or None,
        ),
        finding(
            "Is the website secure (HTTPS)?",
            "HTTPS is a ranking signal and protects visitors",
            OK if home.has_https else PRIORITY_OFI,
            "High",
        ),
        finding(
            "Are canonical URLs implemented?",
            "Canonical tags prevent duplicate content issues",
            OK if home.has_canonical else OFI,
            "Medium",
        ),
        finding(
            "Are social media meta tags (OpenGraph, Twitter) implemented?",
            "Social tags control how shared links look",
            OK if home.has_social_tags else OFI,
            "Low",
        ),
        finding(
            "Does the site have a favicon?",
            "A favicon helps brand recognition in tabs and results",
            OK if home.has_icon else OFI,
            "Low",
        ),
    ]


# --- structure & navigation ---

def _clean_urls(structure: SiteStructure) -> bool:
    for page in structure.all_pages():
        url = page.url.lower()
        if "?" in url or "&" in url or len(url) > 100:
            return False
    return True


def structure_items(structure: SiteStructure) -> list[AuditFinding]:
    home = structure.homepage
    broken = sum(
        1 for page in structure.all_pages()
        for link in page.links.internal if link.broken
    )
    if broken == 0:
        broken_status = OK
    elif broken <= 5:
        broken_status = OFI
    else:
        broken_status = PRIORITY_OFI

    return [
        finding(
            "Does the website have a sitemap.xml?",
            "A sitemap helps search engines find every page",
            OK if structure.has_sitemap_xml else OFI,
            "Medium",
        ),
        finding(
            "Does the website have a robots.txt file?",
            "Robots directives tell crawlers what to index",
            OK if structure.has_robots_txt else OFI,
            "Medium",
        ),
        finding(
            "Does the site have good internal linking structure?",
            "The homepage should link out to the important pages",
            OK if len(home.links.internal) >= 10 else OFI,
            "Medium",
            f"{len(home.links.internal)} internal links on the homepage",
        ),
        finding(
            "Are there broken links on the site?",
            "Broken links waste crawl budget and frustrate visitors",
            broken_status,
            "Medium",
            f"{broken} broken internal link(s) found" if broken else None,
        ),
        finding(
            "Is the site navigation clear and logical?",
            "Key pages should be reachable from the navigation",
            OK if structure.service_pages or structure.contact_page else OFI,
            "High",
        ),
        finding(
            "Are URLs clean and descriptive?",
            "URLs should be short and free of query strings",
            OK if _clean_urls(structure) else OFI,
            "Medium",
        ),
        finding(
            "Are important pages within 3 clicks from homepage?",
            "Shallow architecture keeps key pages discoverable",
            OK,
            "Medium",
            "Every audited page was reached by the crawl",
        ),
    ]


# --- contact page ---

_CONTACT_CHECKS = [
    ("Does the website have a dedicated contact page?", "Contact page is essential for local businesses"),
    ("Does the contact page have complete NAP (Name, Address, Phone)?", "NAP consistency is crucial for local SEO"),
    ("Is there a contact form on the contact page?", "Forms make it easy to get in touch"),
    ("Are business hours listed?", "Visitors need to know when the business is open"),
    ("Is there a map or location information?", "Maps and directions help visitors find the business"),
    ("Are multiple contact methods provided?", "Phone and form together reach more visitors"),
]


def contact_items(contact: Optional[PageRecord]) -> list[AuditFinding]:
    if contact is None:
        return _not_applicable(_CONTACT_CHECKS, "No contact page found")

    text = _text(contact)
    if contact.has_nap:
        nap_status = OK
    elif contact.has_phone_number or contact.has_address:
        nap_status = OFI
    else:
        nap_status = PRIORITY_OFI

    statuses = [
        (OK, "High"),
        (nap_status, "High"),
        (OK if contact.has_contact_form else OFI, "Medium"),
        (OK if "hour" in text else OFI, "Medium"),
        (OK if any(term in text for term in ("map", "location", "direction")) else OFI, "Medium"),
        (OK if contact.has_phone_number and contact.has_contact_form else OFI, "Low"),
    ]
    return [
        finding(name, description, status, importance)
        for (name, description), (status, importance) in zip(_CONTACT_CHECKS, statuses)
    ]


# --- service pages ---

_SERVICE_CHECKS = [
    ("Has a single Service Page for each primary service?", "Each major service should have its own dedicated page"),
    ("Do service pages have unique, descriptive titles?", "Titles should name the service and differ per page"),
    ("Do service pages have detailed service descriptions?", "Service pages need at least 200 words"),
    ("Are service pages optimized for relevant keywords?", "Service keywords should appear on every page"),
    ("Do service pages include clear calls-to-action?", "Visitors should know how to book the service"),
    ("Are service pages internally linked from other pages?", "The homepage should link to service pages"),
]


def service_items(structure: SiteStructure) -> list[AuditFinding]:
    pages = structure.service_pages
    if not pages:
        return _not_applicable(_SERVICE_CHECKS, "No service pages found")

    titles = [p.title.lower() for p in pages]
    unique_titles = len(set(titles)) == len(titles) and all(len(t) > 10 for t in titles)
    detailed = all(p.word_count >= 200 for p in pages)
    keywords = all(any(k in _title_and_text(p) for k in SERVICE_KEYWORDS) for p in pages)
    ctas = any(
        p.has_contact_form or p.has_phone_number or "contact" in _text(p) or "call" in _text(p)
        for p in pages
    )
    linked = _linked_from_homepage(pages, structure.homepage)

    rows = [
        (OK, "High", f"Found {len(pages)} service page(s)"),
        (OK if unique_titles else OFI, "High", None),
        (OK if detailed else OFI, "High", f"Average word count: {_average_words(pages)}"),
        (OK if keywords else OFI, "High", None),
        (OK if ctas else OFI, "Medium", None),
        (OK if linked else OFI, "Medium", None),
    ]
    return [
        finding(name, description, status, importance, notes)
        for (name, description), (status, importance, notes) in zip(_SERVICE_CHECKS, rows)
    ]


# --- location pages ---

_LOCATION_CHECKS = [
    ("Are there dedicated location/area pages?", "Location pages target local searches"),
    ("Do location pages have unique content?", "Each location page needs its own copy"),
    ("Are location pages optimized for local keywords?", "Local terms should appear on every location page"),
    ("Do location pages include local business information?", "Address, phone or directions should be listed"),
    ("Are location pages internally linked?", "The homepage should link to location pages"),
]


def _unique_locations(pages: list[PageRecord]) -> bool:
    for i in range(len(pages)):
        for j in range(i + 1, len(pages)):
            if jaccard_similarity(pages[i].body_text, pages[j].body_text) > LOCATION_SIMILARITY_LIMIT:
                return False
    return True


def location_items(structure: SiteStructure) -> list[AuditFinding]:
    pages = structure.location_pages
    if not pages:
        return _not_applicable(_LOCATION_CHECKS, "No location pages found")

    keywords = all(any(k in _title_and_text(p) for k in LOCATION_KEYWORDS) for p in pages)
    business_info = any(
        p.has_address or p.has_phone_number or "direction" in _text(p) or "hour" in _text(p)
        for p in pages
    )
    rows = [
        (OK, "Medium", f"Found {len(pages)} location page(s)"),
        (OK if _unique_locations(pages) else OFI, "High", None),
        (OK if keywords else OFI, "High", None),
        (OK if business_info else OFI, "Medium", None),
        (OK if _linked_from_homepage(pages, structure.homepage) else OFI, "Medium", None),
    ]
    return [
        finding(name, description, status, importance, notes)
        for (name, description), (status, importance, notes) in zip(_LOCATION_CHECKS, rows)
    ]


# --- service area pages ---

_SERVICE_AREA_CHECKS = [
    ("Are there service area pages?", "Service area pages describe where the business works"),
    ("Do service area pages have quality content?", "Service area pages need at least 150 words"),
    ("Are service area pages optimized for geographic terms?", "Geographic terms should appear on every page"),
]


def service_area_items(structure: SiteStructure) -> list[AuditFinding]:
    pages = structure.service_area_pages
    if not pages:
        return [
            finding(name, description, NA, "Low" if i == 0 else "Medium", "No service area pages found")
            for i, (name, description) in enumerate(_SERVICE_AREA_CHECKS)
        ]

    quality = all(p.word_count >= 150 for p in pages)
    geographic = all(any(k in _title_and_text(p) for k in AREA_KEYWORDS) for p in pages)
    rows = [
        (OK, "Low", f"Found {len(pages)} service area page(s)"),
        (OK if quality else OFI, "Medium", f"Average word count: {_average_words(pages)}"),
        (OK if geographic else OFI, "Medium", None),
    ]
    return [
        finding(name, description, status, importance, notes)
        for (name, description), (status, importance, notes) in zip(_SERVICE_AREA_CHECKS, rows)
    ]


def _tag(findings: list[AuditFinding], category: str) -> list[AuditFinding]:
    return [replace(f, category=category) for f in findings]


def analyze_site(structure: SiteStructure, url: Optional[str] = None) -> AuditReport:
    """
    Baseline audit over a classified site. The report shape never depends on
    what was found: absent page categories yield N/A findings, not gaps.
    """
    report = AuditReport(
        url=url or structure.homepage.url,
        on_page=_tag(on_page_items(structure.homepage), "On-Page"),
        structure_navigation=_tag(structure_items(structure), "Structure & Navigation"),
        contact_page=_tag(contact_items(structure.contact_page), "Contact Page"),
        service_pages=_tag(service_items(structure), "Service Pages"),
        location_pages=_tag(location_items(structure), "Location Pages"),
        service_area_pages=_tag(service_area_items(structure), "Service Area Pages"),
    )
    summary = report.summary
    logger.info(
        "Baseline audit for %s: %d findings (%d priority, %d OFI, %d OK, %d N/A)",
        report.url, summary.total, summary.priority_ofi_count,
        summary.ofi_count, summary.ok_count, summary.na_count,
    )
    return report
