import re
import logging
from urllib.parse import urlparse

from .models import PageRecord, SiteStructure

logger = logging.getLogger(__name__)

# Page type labels produced here; the homepage is labelled by the orchestrator
PAGE_LABELS = ("contact", "service", "location", "service-area", "other")

# --- signal tables ---

_CONTACT_TERMS = ["contact", "get in touch", "reach us", "contact us"]
_STRONG_CONTACT_INDICATORS = [
    "contact form", "get in touch", "reach out", "contact information",
    "business hours", "office hours", "call us", "email us",
]

_SERVICE_URL_PATTERNS = [
    re.compile(p) for p in (
        r"/services?/", r"/what-we-do", r"/our-services?",
        r"/offerings?", r"/solutions?", r"/products?",
    )
]
_SERVICE_TITLE_KEYWORDS = [
    "service", "services", "repair", "installation", "maintenance",
    "hvac", "plumbing", "electrical", "roofing", "cleaning",
    "landscaping", "construction", "renovation", "remodeling",
]
_SERVICE_CONTENT_INDICATORS = [
    "we provide", "we offer", "our service", "our services",
    "professional", "certified", "licensed", "experienced",
    "installation", "repair", "maintenance", "replacement",
    "inspection", "consultation", "estimate", "quote",
]
_INDUSTRY_TERMS = [
    # HVAC
    "air conditioning", "heating", "cooling", "furnace", "heat pump",
    "ductwork", "ventilation", "thermostat",
    # plumbing
    "plumbing", "drain cleaning", "pipe repair", "water heater",
    "leak detection", "bathroom remodel", "kitchen remodel",
    # electrical
    "electrical", "wiring", "outlet", "circuit breaker", "panel upgrade",
    "lighting", "electrical repair",
    # general contracting
    "roofing", "siding", "windows", "doors", "flooring",
    "painting", "drywall", "insulation",
    # cleaning
    "house cleaning", "office cleaning", "carpet cleaning",
    "pressure washing", "window cleaning",
    # landscaping
    "lawn care", "tree service", "landscape design",
    "irrigation", "hardscaping",
]
# any single one of these is enough; small trade sites rarely say much else
ELECTRICAL_TERMS = [
    "electrical", "electrician", "wiring", "outlet", "circuit", "panel",
    "lighting installation", "generator", "surge protector", "electrical repair",
    "electrical installation", "electrical service", "commercial electrical",
    "residential electrical", "electrical contractor", "licensed electrician",
]

_LOCATION_URL_PATTERNS = [
    re.compile(p) for p in (
        r"/locations?/", r"/areas?/", r"/cities/", r"/city/", r"/towns?/",
        r"/[a-z]+-(?:city|town|area)(?:/|$)",
    )
]
_LOCATION_TITLE_KEYWORDS = [
    "location", "areas served", "service area", "service areas",
    "cities", "towns", "neighborhoods", "regions",
]
_LOCATION_CONTENT_INDICATORS = [
    "we serve", "serving", "service area", "service areas",
    "areas served", "locations", "cities we serve",
    "coverage area", "service region",
]
US_STATE_ABBREVIATIONS = {
    "al", "ak", "az", "ar", "ca", "co", "ct", "de", "fl", "ga",
    "hi", "id", "il", "in", "ia", "ks", "ky", "la", "me", "md",
    "ma", "mi", "mn", "ms", "mo", "mt", "ne", "nv", "nh", "nj",
    "nm", "ny", "nc", "nd", "oh", "ok", "or", "pa", "ri", "sc",
    "sd", "tn", "tx", "ut", "vt", "va", "wa", "wv", "wi", "wy",
}
_CITY_SUFFIXES = ("ville", "town", "burg", "field", "ford")
_LOCATION_NOUNS_RE = re.compile(
    r"\b(?:city|cities|town|towns|county|counties|state|area|areas|region|regions|"
    r"neighborhood|neighborhoods|district|districts|suburb|suburbs|metro|metropolitan|"
    r"local|nearby)\b"
)

_SERVICE_AREA_URL_PATTERNS = [
    re.compile(p) for p in (
        r"/service-areas?(?:/|$)", r"/coverage-area", r"/we-serve",
        r"/areas?-served", r"/service-locations?",
    )
]
_SERVICE_AREA_TITLE_KEYWORDS = [
    "service area", "service areas", "areas served", "coverage area",
    "service locations", "we serve", "serving areas",
]
_SERVICE_AREA_INDICATORS = [
    "service area", "service areas", "areas served", "we serve",
    "coverage area", "service coverage", "service territory",
    "service locations", "service region", "service zone",
]
_DISTANCE_RE = re.compile(r"\b(?:miles?|radius|within|kilometers?|km)\b")


def _texts(page: PageRecord) -> tuple[str, str, str]:
    return page.url.lower(), (page.title or "").lower(), (page.body_text or "").lower()


def _path_tokens(url: str) -> list[str]:
    segments = [s for s in urlparse(url).path.lower().split("/") if s]
    return [token for segment in segments for token in segment.split("-") if token]


def count_location_mentions(text: str) -> int:
    return len(_LOCATION_NOUNS_RE.findall(text))


def has_url_location_marker(url: str) -> bool:
    """State abbreviation closing a hyphenated slug (/austin-tx) or a city-suffix path token."""
    segments = [s for s in urlparse(url).path.lower().split("/") if s]
    for segment in segments:
        parts = segment.split("-")
        if len(parts) > 1 and parts[-1] in US_STATE_ABBREVIATIONS:
            return True
    return any(
        token.endswith(_CITY_SUFFIXES) and len(token) > 5
        for token in _path_tokens(url)
    )


def is_contact_page(page: PageRecord) -> bool:
    url, title, body = _texts(page)
    if any(term in url or term in title for term in _CONTACT_TERMS):
        return True
    if page.has_contact_form and any(term in body for term in _CONTACT_TERMS):
        return True
    return sum(1 for indicator in _STRONG_CONTACT_INDICATORS if indicator in body) >= 2


def is_service_page(page: PageRecord) -> bool:
    url, title, body = _texts(page)
    path = urlparse(url).path

    if any(pattern.search(path) for pattern in _SERVICE_URL_PATTERNS):
        return True
    if any(keyword in title for keyword in _SERVICE_TITLE_KEYWORDS):
        return True

    indicator_count = sum(1 for phrase in _SERVICE_CONTENT_INDICATORS if phrase in body)
    industry_count = sum(1 for term in _INDUSTRY_TERMS if term in body)
    electrical_hit = any(term in body or term in title or term in path for term in ELECTRICAL_TERMS)

    segments = [s for s in path.split("/") if s]
    slug_terms = _SERVICE_TITLE_KEYWORDS + [t.replace(" ", "-") for t in _INDUSTRY_TERMS]
    url_hit = any(term in segment for segment in segments for term in slug_terms)

    return (
        indicator_count >= 3
        or (indicator_count >= 1 and industry_count >= 2)
        or industry_count >= 4
        or electrical_hit
        or url_hit
    )


def is_location_page(page: PageRecord) -> bool:
    url, title, body = _texts(page)
    path = urlparse(url).path

    if any(pattern.search(path) for pattern in _LOCATION_URL_PATTERNS):
        return True
    if has_url_location_marker(url):
        return True
    if any(keyword in title for keyword in _LOCATION_TITLE_KEYWORDS):
        return True

    indicator_count = sum(1 for phrase in _LOCATION_CONTENT_INDICATORS if phrase in body)
    return indicator_count >= 2 or (indicator_count >= 1 and count_location_mentions(body) >= 3)


def is_service_area_page(page: PageRecord) -> bool:
    """
    Requires all three of: a service-area phrase, two or more location nouns,
    and a distance unit. A URL or title marker alone also qualifies.
    """
    url, title, body = _texts(page)
    path = urlparse(url).path

    if any(pattern.search(path) for pattern in _SERVICE_AREA_URL_PATTERNS):
        return True
    if any(keyword in title for keyword in _SERVICE_AREA_TITLE_KEYWORDS):
        return True

    phrase_hit = any(phrase in body for phrase in _SERVICE_AREA_INDICATORS)
    return phrase_hit and count_location_mentions(body) >= 2 and bool(_DISTANCE_RE.search(body))


def classify_page(page: PageRecord) -> str:
    """
    Assign one role to a crawled page.

    Check order is fixed:
      1. contact       (contact pages often mention services too)
      2. service
      3. location
      4. service-area
      5. other
    """
    if is_contact_page(page):
        return "contact"
    if is_service_page(page):
        return "service"
    if is_location_page(page):
        return "location"
    if is_service_area_page(page):
        return "service-area"
    return "other"


def classify_site(structure: SiteStructure) -> SiteStructure:
    """
    Redistribute every non-homepage page into its typed bucket, in place.
    The first contact page fills contact_page; further contact pages go to other_pages.
    Pages are re-read from all buckets, so classifying twice gives the same result.
    """
    pages = structure.classified_pages()

    structure.contact_page = None
    structure.service_pages = []
    structure.location_pages = []
    structure.service_area_pages = []
    structure.other_pages = []

    for page in pages:
        label = classify_page(page)
        if label == "contact" and structure.contact_page is None:
            structure.contact_page = page
        elif label == "service":
            structure.service_pages.append(page)
        elif label == "location":
            structure.location_pages.append(page)
        elif label == "service-area":
            structure.service_area_pages.append(page)
        else:
            structure.other_pages.append(page)

    logger.info(
        "Classification complete: contact=%d service=%d location=%d service-area=%d other=%d",
        1 if structure.contact_page else 0,
        len(structure.service_pages),
        len(structure.location_pages),
        len(structure.service_area_pages),
        len(structure.other_pages),
    )
    return structure
