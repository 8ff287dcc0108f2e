"""String normalization for matching track and artist names."""

import re
import unicodedata
from typing import Optional

STOP_WORDS = frozenset({"the", "a", "an", "feat", "ft", "featuring"})

_NON_WORD_RE = re.compile(r"[^\w\s]")


def normalize(s: Optional[str]) -> str:
    """Strip accents and surrounding whitespace ("Sigur Rós " -> "Sigur Ros")."""
    if not s:
        return ""
    decomposed = unicodedata.normalize("NFD", s)
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return stripped.strip()


def clean(s: Optional[str]) -> list[str]:
    """Split into significant lowercase words for fuzzy comparison.

    Punctuation, stop words and words of two characters or fewer are dropped.
    """
    if not s:
        return []
    text = _NON_WORD_RE.sub("", s.lower())
    return [w for w in text.split() if w not in STOP_WORDS and len(w) > 2]
