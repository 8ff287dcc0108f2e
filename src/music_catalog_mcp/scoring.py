"""Score catalog candidates against a requested track and artist."""

from typing import Optional

from .models import CatalogItem
from .normalize import clean, normalize

ACCEPT_THRESHOLD = 0.4

TRACK_EXACT = 0.5
TRACK_CONTAINS = 0.3
TRACK_FUZZY = 0.2

ARTIST_EXACT = 0.5
ARTIST_CONTAINS = 0.3
ARTIST_FUZZY = 0.1
ARTIST_UNSPECIFIED = 0.2

FUZZY_OVERLAP = 0.6


def fuzzy_match(a: str, b: str) -> bool:
    """True if most significant words of the shorter side appear in the other.

    A word counts as matched when it contains, or is contained in, some word
    of the other string.
    """
    words_a = clean(a)
    words_b = clean(b)
    if not words_a or not words_b:
        return False

    matches = sum(
        1 for wa in words_a
        if any(wb in wa or wa in wb for wb in words_b)
    )
    return matches >= min(len(words_a), len(words_b)) * FUZZY_OVERLAP


def _tiered(candidate: str, target: str, exact: float, contains: float, fuzzy: float) -> float:
    candidate = normalize(candidate).lower()
    target = normalize(target).lower()
    if not candidate or not target:
        return 0.0
    if candidate == target:
        return exact
    if candidate in target or target in candidate:
        return contains
    if fuzzy_match(candidate, target):
        return fuzzy
    return 0.0


def score(candidate: CatalogItem, target_track: str, target_artist: Optional[str] = None) -> float:
    """Score in [0, 1]: up to 0.5 for the track name plus up to 0.5 for the artist.

    Without a target artist the artist half is a flat 0.2.
    """
    total = _tiered(candidate.title, target_track, TRACK_EXACT, TRACK_CONTAINS, TRACK_FUZZY)

    if target_artist and target_artist.strip():
        total += _tiered(candidate.artist, target_artist, ARTIST_EXACT, ARTIST_CONTAINS, ARTIST_FUZZY)
    else:
        total += ARTIST_UNSPECIFIED

    return min(total, 1.0)
