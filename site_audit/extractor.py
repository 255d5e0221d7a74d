import re
import logging
from collections import Counter
from typing import Optional

import nltk
import textstat
from nltk.corpus import stopwords
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS, TfidfVectorizer

from .models import (
    AccessibilityInfo,
    ContentStructure,
    ImageStats,
    Links,
    PageRecord,
    PageSpeed,
    SecurityInfo,
    SeoIssues,
)

logger = logging.getLogger(__name__)

THIN_CONTENT_WORDS = 300

# download once; no-op if already present
try:
    nltk.data.find("corpora/stopwords")
except LookupError:
    nltk.download("stopwords", quiet=True)

try:
    _STOP_WORDS = set(stopwords.words("english"))
except LookupError:
    logger.warning("nltk stopwords corpus unavailable, using scikit-learn's English list")
    _STOP_WORDS = set(ENGLISH_STOP_WORDS)

# boilerplate words common on small-business sites
_EXTRA_NOISE = {
    "click", "please", "read", "more", "also", "like", "get", "use",
    "call", "today", "home", "page", "menu", "skip", "content", "copyright",
    "rights", "reserved", "us", "re", "ve", "ll", "don",
}


def _tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation, remove short/stop words."""
    tokens = re.findall(r"[a-zA-Z]{3,}", text.lower())
    return [t for t in tokens if t not in _STOP_WORDS and t not in _EXTRA_NOISE]


def _build_corpus(parsed: dict) -> str:
    """
    Build a weighted corpus for TF-IDF by repeating high-signal fields.
    Title and headings get more weight than body text.
    """
    parts = []

    if parsed.get("title"):
        parts.extend([parsed["title"]] * 5)
    if parsed.get("meta_description"):
        parts.extend([parsed["meta_description"]] * 3)
    if parsed.get("og_title"):
        parts.extend([parsed["og_title"]] * 3)
    if parsed.get("og_description"):
        parts.extend([parsed["og_description"]] * 2)

    headings = parsed.get("headings", {})
    for h in headings.get("h1", []):
        parts.extend([h] * 4)
    for h in headings.get("h2", []):
        parts.extend([h] * 2)

    # cap body at 10k chars to keep TF-IDF fast
    if parsed.get("body_text"):
        parts.append(parsed["body_text"][:10000])

    return " ".join(parts)


def extract_topics(corpus: str, top_n: int = 15) -> list[str]:
    """Top TF-IDF terms (words and bigrams) of a single weighted document."""
    if not corpus.strip():
        return []

    tokens = _tokenize(corpus)
    if not tokens:
        return []

    try:
        vectorizer = TfidfVectorizer(
            ngram_range=(1, 2),
            max_features=200,
            sublinear_tf=True,
        )
        tfidf_matrix = vectorizer.fit_transform([" ".join(tokens)])
        scores = zip(vectorizer.get_feature_names_out(), tfidf_matrix.toarray()[0])
        ranked = sorted(scores, key=lambda x: x[1], reverse=True)
        return [term for term, score in ranked[:top_n] if score > 0]
    except Exception as exc:
        logger.warning("TF-IDF extraction failed: %s", exc)
        return []


def readability_score(text: str) -> float:
    """Flesch reading ease, clamped to 0-100. Empty text scores 0."""
    if not (text or "").strip():
        return 0.0
    score = textstat.flesch_reading_ease(text)
    return round(min(max(score, 0.0), 100.0), 1)


def keyword_density(text: str, top_n: int = 10) -> dict[str, float]:
    """Repeated non-stopword terms as a percentage of all words on the page."""
    words = re.findall(r"[a-z]+", (text or "").lower())
    if not words:
        return {}
    counts = Counter(w for w in words if len(w) > 3 and w not in _STOP_WORDS)
    return {
        word: round(count / len(words) * 100, 2)
        for word, count in counts.most_common(top_n)
        if count > 1
    }


def speed_score(load_time_ms: int) -> int:
    if load_time_ms < 1000:
        return 90
    if load_time_ms < 2000:
        return 75
    if load_time_ms < 3000:
        return 60
    if load_time_ms < 5000:
        return 40
    return 20


def build_page_record(
    parsed: dict,
    url: str,
    final_url: str,
    status_code: int,
    load_time_ms: int,
    raw_html: str = "",
    rendered: bool = False,
    headers: Optional[dict] = None,
) -> PageRecord:
    """Combine parsed HTML signals and fetch timing into an immutable PageRecord."""
    body_text = parsed.get("body_text", "") or ""
    word_count = len(body_text.split())
    headings = parsed.get("headings") or {f"h{level}": [] for level in range(1, 7)}
    alt_texts = parsed.get("alt_texts", [])
    image_count = parsed.get("image_count", 0)
    schema_types = parsed.get("schema_types", [])
    has_phone = parsed.get("has_phone_number", False)
    has_addr = parsed.get("has_address", False)

    return PageRecord(
        url=url,
        final_url=final_url,
        status_code=status_code,
        title=parsed.get("title") or "",
        meta_description=parsed.get("meta_description") or "",
        body_text=body_text,
        raw_html=raw_html,
        headers={str(k).lower(): str(v) for k, v in (headers or {}).items()},
        headings=headings,
        links=Links(
            internal=parsed.get("internal_links", []),
            external=parsed.get("external_links", []),
        ),
        images=ImageStats(
            total=image_count,
            with_alt=len(alt_texts),
            without_alt=image_count - len(alt_texts),
            alt_texts=alt_texts,
        ),
        schema_types=schema_types,
        word_count=word_count,
        mobile_friendly=parsed.get("mobile_friendly", False),
        has_https=parsed.get("has_https", False),
        has_canonical=parsed.get("has_canonical", False),
        has_schema=bool(schema_types),
        has_social_tags=parsed.get("has_social_tags", False),
        has_contact_form=parsed.get("has_contact_form", False),
        has_phone_number=has_phone,
        has_address=has_addr,
        has_nap=has_phone and has_addr,
        has_icon=parsed.get("has_icon", False),
        has_hreflang=parsed.get("has_hreflang", False),
        has_amp=parsed.get("has_amp", False),
        has_robots_meta=parsed.get("has_robots_meta", False),
        canonical_url=parsed.get("canonical_url"),
        robots=parsed.get("robots"),
        page_load_speed=PageSpeed(score=speed_score(load_time_ms), load_time_ms=load_time_ms),
        content_structure=ContentStructure(
            has_lists=parsed.get("has_lists", False),
            has_faqs=parsed.get("has_faqs", False),
            has_video=parsed.get("has_video", False),
            has_table=parsed.get("has_table", False),
            has_emphasis=parsed.get("has_emphasis", False),
        ),
        security=SecurityInfo(
            has_mixed_content=parsed.get("has_mixed_content", False),
            has_security_headers=parsed.get("has_security_headers", False),
        ),
        accessibility=AccessibilityInfo(
            missing_alt_text=image_count - len(alt_texts),
            has_aria_labels=parsed.get("has_aria_labels", False),
            has_proper_heading_structure=parsed.get("has_proper_heading_structure", False),
        ),
        seo_issues=SeoIssues(
            noindex=parsed.get("noindex", False),
            duplicate_meta_tags=parsed.get("duplicate_meta_tags", False),
            thin_content=word_count < THIN_CONTENT_WORDS,
            missing_headings=not headings.get("h1"),
        ),
        readability_score=readability_score(body_text),
        keyword_density=keyword_density(body_text),
        topics=extract_topics(_build_corpus(parsed)),
        rendered=rendered,
    )
