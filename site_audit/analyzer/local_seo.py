import re

from ..classifier import US_STATE_ABBREVIATIONS, count_location_mentions
from .factors import NA, OFI, OK, PRIORITY_OFI, FactorAnalyzer, PageContext, check_registry, finding, grade

CHECKS: list = []
check = check_registry(CHECKS)

LOCAL_BUSINESS_TYPES = {
    "LocalBusiness", "HomeAndConstructionBusiness", "Electrician", "Plumber", "HVACBusiness",
    "RoofingContractor", "GeneralContractor", "HousePainter", "Locksmith", "MovingCompany",
    "ProfessionalService", "AutoRepair", "Dentist", "LegalService",
}

_HOURS_RE = re.compile(
    r"\b(?:mon(?:day)?|tue(?:s|sday)?|wed(?:nesday)?|thu(?:rs|rsday)?|fri(?:day)?|sat(?:urday)?|sun(?:day)?)\b"
    r"|\b\d{1,2}(?::\d{2})?\s?(?:am|pm)\b|24/7"
)
_CITY_STATE_RE = re.compile(r"\b[A-Z][a-z]+(?: [A-Z][a-z]+)?,\s?([A-Z]{2})\b")
_YEARS_RE = re.compile(r"\b\d+\+?\s+years\b|\bsince (?:19|20)\d{2}\b|\bestablished\b|\bfamily[- ]owned\b")
_QUESTION_START_RE = re.compile(r"^(?:how|what|why|when|where|who|which|can|do|does|is|are)\b", re.I)

_EEAT_TERMS = [
    "years of experience", "certified", "licensed", "insured", "our team",
    "about us", "award", "review", "accredited", "expert",
]
_CERTIFICATION_TERMS = ["certified", "certification", "licensed", "accredited", "nate", "epa certified", "master electrician"]
_AWARD_TERMS = ["award", "winner", "best of", "top rated", "top-rated", "recognized", "angi super service"]
_ASSOCIATION_TERMS = ["member of", "association", "chamber of commerce", "bbb", "better business bureau"]
_INSURANCE_TERMS = ["insured", "bonded", "guarantee", "guaranteed", "warranty"]
_REVIEW_PLATFORMS = ["google reviews", "yelp", "angi", "homeadvisor", "facebook reviews", "trustpilot", "nextdoor"]
_TEAM_TERMS = ["our team", "meet the", "owner", "founder", "technicians", "our staff", "our experts"]
_COMMUNITY_TERMS = ["community", "sponsor", "volunteer", "charity", "local events", "give back"]
_LOCAL_TERMS = ["near me", "local", "nearby", "serving"]
_SOCIAL_HOSTS = ("facebook.com", "instagram.com", "linkedin.com", "twitter.com", "x.com", "youtube.com", "yelp.com", "tiktok.com")
_GBP_MARKERS = ("google.com/maps", "maps.google", "g.page", "business.google.com", "goo.gl/maps", "maps.app.goo.gl")


def _city_state_mentions(ctx: PageContext) -> int:
    return sum(
        1 for match in _CITY_STATE_RE.finditer(ctx.page.body_text or "")
        if match.group(1).lower() in US_STATE_ABBREVIATIONS
    )


def _has_local_business_schema(ctx: PageContext) -> bool:
    return any(t in LOCAL_BUSINESS_TYPES for t in ctx.page.schema_types)


def _has_map(ctx: PageContext) -> bool:
    if any(marker in ctx.html for marker in _GBP_MARKERS):
        return True
    return "get directions" in ctx.text or "driving directions" in ctx.text


@check
def nap(ctx: PageContext):
    page = ctx.page
    if page.has_nap:
        status = OK
    elif page.has_phone_number or page.has_address:
        status = OFI
    elif ctx.page_type in ("homepage", "contact"):
        status = PRIORITY_OFI
    else:
        status = OFI
    return finding("NAP (Name, Address, Phone) Consistency", "Business name, address and phone are shown",
                   status, "High", f"phone={page.has_phone_number}, address={page.has_address}")


@check
def location_signals(ctx: PageContext):
    name, desc = "Location Signal Optimization", "Page carries clear geographic signals"
    signals = sum([
        count_location_mentions(ctx.text) >= 2,
        _city_state_mentions(ctx) >= 1,
        _has_local_business_schema(ctx),
        ctx.page.has_address,
    ])
    if signals >= 2:
        return finding(name, desc, OK, "High", f"{signals} location signals")
    if not ctx.is_local_page:
        return finding(name, desc, NA, "Medium", "Location signals expected on location pages")
    return finding(name, desc, OFI, "High", f"{signals} location signals")


@check
def local_business_schema(ctx: PageContext):
    name, desc = "LocalBusiness Schema Implementation", "LocalBusiness (or subtype) markup is present"
    if _has_local_business_schema(ctx):
        return finding(name, desc, OK, "High")
    if ctx.page_type in ("homepage", "contact", "location", "service-area"):
        return finding(name, desc, OFI, "High", "No LocalBusiness markup")
    return finding(name, desc, NA, "Medium", "Not expected on this page type")


@check
def eeat(ctx: PageContext):
    count = ctx.count_terms(_EEAT_TERMS)
    return finding("E-E-A-T Signal Strength", "Experience, expertise, authority and trust are demonstrated",
                   grade(count, 4, 1), "High", f"{count} of {len(_EEAT_TERMS)} trust signals")


@check
def business_hours(ctx: PageContext):
    name, desc = "Business Hours Display", "Opening hours are listed"
    found = bool(_HOURS_RE.search(ctx.text)) or "openinghours" in ctx.html
    if found:
        return finding(name, desc, OK, "Medium")
    if ctx.page_type in ("homepage", "contact"):
        return finding(name, desc, OFI, "Medium", "No opening hours found")
    return finding(name, desc, NA, "Low", "Hours expected on the homepage or contact page")


@check
def contact_methods(ctx: PageContext):
    methods = sum([ctx.page.has_phone_number, ctx.has_email, ctx.page.has_contact_form, ctx.page.has_address])
    return finding("Multiple Contact Methods", "Visitors can reach the business more than one way",
                   grade(methods, 3, 1), "Medium", f"{methods} of 4 contact methods")


@check
def click_to_call(ctx: PageContext):
    name, desc = "Phone Number Click-to-Call", "Phone numbers are tel: links"
    if not ctx.page.has_phone_number:
        return finding(name, desc, NA, "Medium", "No phone number on page")
    return finding(name, desc, OK if ctx.has_tel_link else OFI, "Medium")


@check
def maps(ctx: PageContext):
    name, desc = "Google Maps Integration", "Embedded map or directions link"
    if _has_map(ctx):
        return finding(name, desc, OK, "Medium")
    if ctx.page_type in ("contact", "location"):
        return finding(name, desc, OFI, "Medium", "No map or directions")
    return finding(name, desc, NA, "Low", "Maps expected on contact and location pages")


@check
def address_display(ctx: PageContext):
    name, desc = "Address Display", "Street address is visible"
    if ctx.page.has_address:
        return finding(name, desc, OK, "Medium")
    if ctx.page_type in ("homepage", "contact", "location"):
        return finding(name, desc, OFI, "Medium", "No address found")
    return finding(name, desc, NA, "Low", "Address expected on homepage, contact and location pages")


@check
def city_state(ctx: PageContext):
    count = _city_state_mentions(ctx)
    return finding("City and State Mentions", "Served cities are named with their state",
                   OK if count >= 2 else OFI, "Medium", f"{count} city, state mentions")


@check
def service_area_coverage(ctx: PageContext):
    name, desc = "Service Area Coverage", "Served areas are listed explicitly"
    if not ctx.is_local_page:
        return finding(name, desc, NA, "Low", "Coverage expected on location and service-area pages")
    mentions = count_location_mentions(ctx.text) + _city_state_mentions(ctx)
    return finding(name, desc, grade(mentions, 5, 2), "High", f"{mentions} area mentions")


@check
def local_keywords(ctx: PageContext):
    target = f"{ctx.title} {ctx.h1_text}"
    states = {w.strip(",.") for w in target.split()} & US_STATE_ABBREVIATIONS
    found = any(term in target for term in _LOCAL_TERMS) or bool(states) or bool(
        _CITY_STATE_RE.search(f"{ctx.page.title} {' '.join(ctx.page.h1s)}")
    )
    importance = "High" if ctx.is_local_page else "Medium"
    return finding("Local Keyword Optimization", "Title or H1 targets a local search",
                   OK if found else OFI, importance)


@check
def certifications(ctx: PageContext):
    found = ctx.has_any(_CERTIFICATION_TERMS)
    return finding("Industry Certifications", "Licences and certifications are shown", OK if found else OFI, "Low")


@check
def awards(ctx: PageContext):
    found = ctx.has_any(_AWARD_TERMS)
    return finding("Awards and Recognition", "Awards or ratings are highlighted", OK if found else OFI, "Low")


@check
def years_in_business(ctx: PageContext):
    found = bool(_YEARS_RE.search(ctx.text))
    return finding("Years of Experience Highlight", "Time in business is stated", OK if found else OFI, "Medium")


@check
def associations(ctx: PageContext):
    found = ctx.has_any(_ASSOCIATION_TERMS)
    return finding("Industry Association Memberships", "Memberships in trade bodies are shown",
                   OK if found else OFI, "Low")


@check
def insurance(ctx: PageContext):
    found = ctx.has_any(_INSURANCE_TERMS)
    return finding("Insurance and Guarantees", "Insurance, bonding or guarantees are stated",
                   OK if found else OFI, "Medium")


@check
def reviews(ctx: PageContext):
    schema_hit = any(t in ("Review", "AggregateRating") for t in ctx.page.schema_types)
    found = schema_hit or ctx.has_any(_REVIEW_PLATFORMS) or "testimonial" in ctx.text
    return finding("Customer Reviews Integration", "Reviews from customers or review platforms are shown",
                   OK if found else OFI, "Medium")


@check
def team(ctx: PageContext):
    found = ctx.has_any(_TEAM_TERMS)
    return finding("Team and Expertise", "The people behind the business are introduced", OK if found else OFI, "Low")


@check
def community(ctx: PageContext):
    found = ctx.has_any(_COMMUNITY_TERMS)
    return finding("Community Involvement", "Local community involvement is mentioned", OK if found else OFI, "Low")


@check
def local_landing(ctx: PageContext):
    name, desc = "Local Landing Page Optimization", "Location page is a complete local landing page"
    if not ctx.is_local_page:
        return finding(name, desc, NA, "Low", "Applies to location and service-area pages")
    parts = sum([
        ctx.page.word_count >= 300,
        count_location_mentions(ctx.title) > 0 or _city_state_mentions(ctx) > 0,
        ctx.page.has_phone_number,
        ctx.page.has_address or _has_map(ctx),
    ])
    return finding(name, desc, grade(parts, 3, 1), "High", f"{parts} of 4 landing page elements")


@check
def geographic_relevance(ctx: PageContext):
    name, desc = "Geographic Content Relevance", "Copy is written about the area it targets"
    if not ctx.is_local_page:
        return finding(name, desc, NA, "Low", "Applies to location and service-area pages")
    mentions = count_location_mentions(ctx.text)
    return finding(name, desc, grade(mentions, 3, 1), "Medium", f"{mentions} location references")


@check
def email_contact(ctx: PageContext):
    importance = "Medium" if ctx.page_type == "contact" else "Low"
    return finding("Email Contact Availability", "An email address or mailto link is offered",
                   OK if ctx.has_email else OFI, importance)


@check
def social_profiles(ctx: PageContext):
    hosts = {
        host for link in ctx.page.links.external
        for host in _SOCIAL_HOSTS if host in link.url.lower()
    }
    return finding("Social Profile Links", "Page links to the business's social profiles",
                   OK if len(hosts) >= 2 else OFI, "Low", f"{len(hosts)} social networks linked")


@check
def google_business(ctx: PageContext):
    found = any(marker in ctx.html for marker in _GBP_MARKERS) or "google reviews" in ctx.text
    return finding("Google Business Profile Signals", "Google Business Profile is linked or embedded",
                   OK if found else OFI, "Low")


@check
def voice_search(ctx: PageContext):
    questions = [
        h for h in ctx.page.h2s + ctx.page.h3s
        if h.strip().endswith("?") or _QUESTION_START_RE.match(h.strip())
    ]
    found = bool(questions) or "FAQPage" in ctx.page.schema_types
    return finding("Voice Search Optimization", "Question-style headings answer spoken queries",
                   OK if found else OFI, "Low", f"{len(questions)} question headings")


class LocalSEOAnalyzer(FactorAnalyzer):
    category = "Local SEO & E-E-A-T"
    checks = CHECKS
