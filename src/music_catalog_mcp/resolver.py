"""Resolve a free-text (track, artist) pair to a catalog song."""

import logging
from typing import Optional

from .client import CatalogClient
from .errors import RemoteError
from .models import NOT_FOUND, Found, ResolutionResult
from .normalize import normalize
from .pacing import NoPacing, Pacer
from .scoring import ACCEPT_THRESHOLD, score

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


def build_query_variants(track: str, artist: Optional[str] = None) -> list[str]:
    """Search queries to try, most precise first.

    Combined track/artist forms come before single-field ones, normalized
    (accent-free) forms before raw ones. Raw forms are only added when
    normalization changed the input.
    """
    track = track or ""
    artist = (artist or "").strip()
    norm_track = normalize(track)

    if artist:
        norm_artist = normalize(artist)
        queries = [
            f"{norm_track} {norm_artist}",
            f"{norm_artist} {norm_track}",
            norm_track,
            norm_artist,
        ]
        if norm_track != track or norm_artist != artist:
            queries += [
                f"{track} {artist}",
                f"{artist} {track}",
                track,
                artist,
            ]
    else:
        queries = [norm_track]
        if norm_track != track:
            queries.append(track)

    variants = []
    for q in queries:
        q = q.strip()
        if q and q not in variants:
            variants.append(q)
    return variants


class SmartResolver:
    """Tries query variants until a candidate clears ACCEPT_THRESHOLD."""

    def __init__(self, client: CatalogClient, pacer: Optional[Pacer] = None):
        self.client = client
        self.pacer = pacer or NoPacing()

    def resolve(self, track: str, artist: Optional[str] = None) -> ResolutionResult:
        queries = build_query_variants(track, artist)

        for query in queries:
            logger.info("Attempting catalog search %r for %r by %r", query, track, artist)
            self.pacer.wait()
            try:
                candidates = self.client.search(query, SEARCH_LIMIT)
            except RemoteError as e:
                logger.error("Search %r failed, trying next variant: %s", query, e)
                continue

            if not candidates:
                logger.warning("Search %r returned 0 results", query)
                continue

            best, best_score = candidates[0], score(candidates[0], track, artist)
            for candidate in candidates[1:]:
                candidate_score = score(candidate, track, artist)
                if candidate_score > best_score:
                    best, best_score = candidate, candidate_score

            if best_score >= ACCEPT_THRESHOLD:
                logger.info(
                    "Matched %r by %r to %s - %s (%s) score=%.2f",
                    track, artist, best.title, best.artist, best.id, best_score,
                )
                return Found(best, best_score)

            logger.warning(
                "Best match for %r below threshold: %s - %s score=%.2f",
                query, best.title, best.artist, best_score,
            )

        logger.error("No matching track for %r by %r after %d queries", track, artist, len(queries))
        return NOT_FOUND
