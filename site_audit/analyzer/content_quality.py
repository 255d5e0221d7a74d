import re
from datetime import datetime
from urllib.parse import urlparse

from .factors import MIN_WORDS, NA, OFI, OK, PRIORITY_OFI, FactorAnalyzer, PageContext, check_registry, finding, grade

CHECKS: list = []
check = check_registry(CHECKS)

_TESTIMONIAL_TERMS = [
    "testimonial", "review", "what our customers", "what our clients",
    "customer says", "client says", "rated", "stars",
]
_SOCIAL_PROOF_TERMS = [
    "years of experience", "certified", "licensed", "insured", "award",
    "bbb", "accredited", "guarantee", "warranty", "trusted by",
]
_FRESHNESS_TERMS = ["updated", "last modified", "posted on", "published"]
_SPECIFIC_RE = re.compile(r"\$\s?\d|\d+\s?%|\b\d{2,}\b")
_WORD_RE = re.compile(r"[a-z']+")
_SLUG_STOP = {"and", "the", "for", "our", "with", "html", "php", "aspx", "index"}


def _words(ctx: PageContext) -> list[str]:
    return _WORD_RE.findall(ctx.text)


@check
def readability(ctx: PageContext):
    name, desc = "Content Readability Score", "Body copy should be easy to read (Flesch reading ease)"
    if ctx.page.word_count < 50:
        return finding(name, desc, NA, notes="Not enough text to score")
    score = ctx.page.readability_score
    return finding(name, desc, grade(score, 60, 30), "Medium",
                   f"Flesch reading ease {score}. 60+ is easy to read, below 30 is very difficult.")


@check
def content_length(ctx: PageContext):
    minimum = MIN_WORDS.get(ctx.page_type, 300)
    words = ctx.page.word_count
    return finding(
        "Sufficient Content Length",
        "Page carries enough copy for its role",
        grade(words, minimum, minimum * 0.3),
        "High",
        f"{words} words; {minimum} expected for a {ctx.page_type} page",
    )


@check
def keyword_density(ctx: PageContext):
    name, desc = "Keyword Density Optimization", "Leading keyword appears often enough without stuffing"
    if not ctx.page.keyword_density:
        return finding(name, desc, NA, notes="No keywords found")
    keyword, density = max(ctx.page.keyword_density.items(), key=lambda item: item[1])
    if 1 <= density <= 3:
        status = OK
    elif density > 6:
        status = PRIORITY_OFI
    else:
        status = OFI
    return finding(name, desc, status, "Medium", f"Top keyword '{keyword}' at {density}% (target 1-3%)")


@check
def call_to_action(ctx: PageContext):
    count = ctx.cta_count
    if count >= 2:
        status = OK
    elif count == 0 and ctx.page_type in ("homepage", "service"):
        status = PRIORITY_OFI
    else:
        status = OFI
    return finding("Call-to-Action Optimization", "Clear calls to action guide the visitor",
                   status, "High", f"{count} call-to-action signals found")


@check
def testimonials(ctx: PageContext):
    schema_hit = any(t in ("Review", "AggregateRating") for t in ctx.page.schema_types)
    found = schema_hit or ctx.has_any(_TESTIMONIAL_TERMS)
    return finding("Customer Reviews/Testimonials", "Page shows customer reviews or testimonials",
                   OK if found else OFI, "Medium")


@check
def structure_formatting(ctx: PageContext):
    cs = ctx.page.content_structure
    signals = sum([cs.has_lists, cs.has_table, cs.has_emphasis, len(ctx.page.h2s) >= 2])
    return finding("Content Structure & Formatting", "Lists, subheadings and emphasis break up the copy",
                   grade(signals, 3, 1), "Medium", f"{signals} of 4 formatting signals present")


@check
def uniqueness(ctx: PageContext):
    name, desc = "Content Uniqueness", "Copy uses varied vocabulary rather than repeated boilerplate"
    words = _words(ctx)
    if len(words) < 100:
        return finding(name, desc, NA, notes="Not enough text to measure")
    ratio = round(len(set(words)) / len(words), 2)
    return finding(name, desc, grade(ratio, 0.4, 0.2), "Medium", f"Lexical diversity {ratio}")


@check
def heading_hierarchy(ctx: PageContext):
    h1_count = len(ctx.page.h1s)
    skips = ctx.skipped_heading_levels
    if h1_count == 0:
        status = PRIORITY_OFI
    elif h1_count == 1 and skips == 0:
        status = OK
    else:
        status = OFI
    return finding("Heading Structure Hierarchy", "One H1 and no skipped heading levels",
                   status, "High", f"{h1_count} H1 tags, {skips} skipped levels")


@check
def image_content(ctx: PageContext):
    name, desc = "Image Content Optimization", "Images are described with alt text"
    images = ctx.page.images
    if images.total == 0:
        return finding(name, desc, NA, notes="No images on page")
    ratio = images.with_alt / images.total
    return finding(name, desc, grade(ratio, 0.9, 0.5), "Medium",
                   f"{images.with_alt} of {images.total} images have alt text")


@check
def video_content(ctx: PageContext):
    has_video = ctx.page.content_structure.has_video
    return finding("Video Content Integration", "Video supports the page message",
                   OK if has_video else OFI, "Low")


@check
def freshness(ctx: PageContext):
    year = datetime.now().year
    found = (
        str(year) in ctx.text
        or str(year - 1) in ctx.text
        or ctx.has_any(_FRESHNESS_TERMS)
        or ctx.soup.find("time") is not None
        or "datemodified" in ctx.html
    )
    return finding("Content Freshness Indicators", "Page signals that its content is current",
                   OK if found else OFI, "Low")


@check
def depth(ctx: PageContext):
    words = ctx.page.word_count
    subheadings = len(ctx.page.h2s) + len(ctx.page.h3s)
    if words >= 600 and subheadings >= 3:
        status = OK
    elif words < 150:
        status = PRIORITY_OFI
    else:
        status = OFI
    return finding("Content Depth and Detail", "Topic is covered in depth with supporting sections",
                   status, "Medium", f"{words} words across {subheadings} subheadings")


@check
def url_relevance(ctx: PageContext):
    name, desc = "Content-URL Relevance Alignment", "URL slug words appear in the title or H1"
    tokens = [
        t for t in re.split(r"[-_/.]+", urlparse(ctx.page.url).path.lower())
        if len(t) > 2 and not t.isdigit() and t not in _SLUG_STOP
    ]
    if not tokens:
        return finding(name, desc, NA, notes="No descriptive URL slug")
    target = f"{ctx.title} {ctx.h1_text}"
    matched = sum(1 for t in tokens if t in target)
    ratio = matched / len(tokens)
    return finding(name, desc, OK if ratio >= 0.5 else OFI, "Low", f"{matched} of {len(tokens)} slug words matched")


@check
def engagement(ctx: PageContext):
    cs = ctx.page.content_structure
    elements = sum([
        cs.has_lists, cs.has_video, cs.has_faqs, cs.has_table,
        ctx.page.images.total > 0, ctx.page.has_contact_form,
    ])
    return finding("Content Engagement Elements", "Interactive and visual elements keep visitors engaged",
                   grade(elements, 3, 1), "Medium", f"{elements} engagement elements")


@check
def social_proof(ctx: PageContext):
    count = ctx.count_terms(_SOCIAL_PROOF_TERMS)
    return finding("Social Proof and Credibility", "Credentials, guarantees and trust markers are visible",
                   grade(count, 3, 1), "Medium", f"{count} credibility signals")


@check
def scannability(ctx: PageContext):
    name, desc = "Content Scannability", "Paragraphs are short enough to scan"
    if not ctx.paragraphs:
        return finding(name, desc, NA, notes="No paragraph markup")
    average = sum(len(p.split()) for p in ctx.paragraphs) / len(ctx.paragraphs)
    return finding(name, desc, grade(average, 80, 150, higher_is_better=False), "Low",
                   f"Average paragraph length {average:.0f} words")


@check
def tone(ctx: PageContext):
    name, desc = "Content Tone and Messaging", "Copy speaks to the customer, not only about the business"
    words = _words(ctx)
    if len(words) < 50:
        return finding(name, desc, NA, notes="Not enough text to judge")
    you = sum(1 for w in words if w in ("you", "your", "you're", "yours"))
    we = sum(1 for w in words if w in ("we", "our", "us", "we're"))
    status = OK if you > 0 and you >= we * 0.5 else OFI
    return finding(name, desc, status, "Low", f"'you' x{you}, 'we' x{we}")


@check
def multimedia_balance(ctx: PageContext):
    name, desc = "Multimedia Content Balance", "Text is supported by a sensible number of images"
    words = ctx.page.word_count
    if words < 100:
        return finding(name, desc, NA, notes="Not enough text to balance")
    images = ctx.page.images.total
    if images == 0:
        return finding(name, desc, OFI, "Low", "No images support the text")
    per_image = words / images
    status = OK if 50 <= per_image <= 400 else OFI
    return finding(name, desc, status, "Low", f"{per_image:.0f} words per image")


@check
def flow(ctx: PageContext):
    ok = len(ctx.paragraphs) >= 3 and len(ctx.page.h2s) >= 1
    return finding("Content Flow and Organization", "Copy is organised into sections of paragraphs",
                   OK if ok else OFI, "Low", f"{len(ctx.paragraphs)} paragraphs, {len(ctx.page.h2s)} H2 sections")


@check
def specificity(ctx: PageContext):
    count = len(_SPECIFIC_RE.findall(ctx.text))
    return finding("Content Accuracy and Specificity", "Concrete figures, prices and numbers back up claims",
                   grade(count, 5, 1), "Low", f"{count} specific figures")


@check
def faq_content(ctx: PageContext):
    importance = "Medium" if ctx.page_type == "service" else "Low"
    has_faqs = ctx.page.content_structure.has_faqs
    return finding("FAQ Content", "Frequently asked questions answer common objections",
                   OK if has_faqs else OFI, importance)


@check
def topical_focus(ctx: PageContext):
    name, desc = "Topical Focus", "Main topics of the copy are reflected in the title or H1"
    if not ctx.page.topics:
        return finding(name, desc, NA, notes="No topics extracted")
    target = f"{ctx.title} {ctx.h1_text}"
    matched = [t for t in ctx.page.topics[:5] if t in target]
    return finding(name, desc, OK if matched else OFI, "Medium",
                   f"Top topics: {', '.join(ctx.page.topics[:5])}")


class ContentQualityAnalyzer(FactorAnalyzer):
    category = "Content Quality"
    checks = CHECKS
