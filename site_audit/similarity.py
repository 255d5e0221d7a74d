import hashlib
import logging
import re

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """Stable fingerprint of page text, insensitive to case and whitespace."""
    normalized = " ".join((text or "").lower().split())
    return hashlib.sha256(normalized.encode()).hexdigest()


def _word_set(text: str) -> set[str]:
    return {w for w in (text or "").lower().split() if len(w) > 3}


def jaccard_similarity(text_a: str, text_b: str) -> float:
    words_a, words_b = _word_set(text_a), _word_set(text_b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def duplicate_pairs(texts: list[str], threshold: float = 0.9) -> list[tuple[int, int, float]]:
    """
    Index pairs whose TF-IDF cosine similarity is at or above threshold.
    Empty texts never match anything.
    """
    indexed = [(i, t) for i, t in enumerate(texts) if t and re.search(r"[A-Za-z]{3,}", t)]
    if len(indexed) < 2:
        return []

    try:
        vectorizer = TfidfVectorizer(stop_words="english", sublinear_tf=True)
        matrix = vectorizer.fit_transform([t for _, t in indexed])
    except ValueError as exc:
        # vocabulary can be empty once stop words are removed
        logger.warning("Similarity vectorisation failed: %s", exc)
        return []

    scores = cosine_similarity(matrix)
    pairs = []
    for a in range(len(indexed)):
        for b in range(a + 1, len(indexed)):
            if scores[a][b] >= threshold:
                pairs.append((indexed[a][0], indexed[b][0], round(float(scores[a][b]), 3)))
    return pairs
