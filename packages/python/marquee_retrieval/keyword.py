from __future__ import annotations

import logging
import re
import threading
from typing import List, Sequence

from nltk.corpus import stopwords
from nltk.stem import PorterStemmer

from marquee_core.types import MediaItem

log = logging.getLogger(__name__)

_stop_words_lock = threading.Lock()

try:
    _STOP_WORDS = set(stopwords.words("english"))
except Exception as _e:  # NLTK corpus not downloaded
    log.warning("Failed to preload NLTK stopwords: %s", _e)
    _STOP_WORDS = set()

_STEMMER = PorterStemmer()

MIN_TERM_LEN = 3
TITLE_HIT = 2.0
TEXT_HIT = 1.0


def tokenize(text: str) -> List[str]:
    """
    Shared tokenizer for catalog text and queries.

    Regex split on non-alphanumerics, stopword removal, Porter stemming.
    """
    if not text or not isinstance(text, str):
        return []
    tokens = re.findall(r"[a-z0-9]+", text.lower())
    with _stop_words_lock:
        sw = _STOP_WORDS
    return [_STEMMER.stem(w) for w in tokens if w not in sw]


def query_terms(query: str) -> List[str]:
    """Distinct query terms, order kept, very short tokens dropped."""
    seen: set[str] = set()
    out: List[str] = []
    for t in tokenize(query):
        if len(t) < MIN_TERM_LEN or t in seen:
            continue
        seen.add(t)
        out.append(t)
    return out


def keyword_relevance(item: MediaItem, terms: Sequence[str]) -> float:
    """
    Token-overlap relevance in [0, 1].

    A term found in the title counts twice, elsewhere (description, genres,
    director) once; normalized by the best possible score.
    """
    if not terms:
        return 0.0
    title = set(tokenize(item.title))
    body = set(
        tokenize(" ".join([item.description, " ".join(item.genres), item.director or ""]))
    )
    score = 0.0
    for term in terms:
        if term in title:
            score += TITLE_HIT
        elif term in body:
            score += TEXT_HIT
    return min(score / (len(terms) * TITLE_HIT), 1.0)
