"""Records passed between the resolver, the sync coordinator and the tools.

Apple Music responses are loose JSON. Everything past the client boundary
works with these frozen dataclasses instead of raw dicts.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Union

SYNC_DELAY_REASON = "sync delay"


@dataclass(frozen=True)
class CatalogItem:
    """A song in the Apple Music catalog."""

    id: str
    title: str
    artist: str
    album: str = ""
    duration_ms: int = 0
    release_date: Optional[str] = None
    genres: tuple[str, ...] = ()
    preview_url: Optional[str] = None
    url: Optional[str] = None
    isrc: Optional[str] = None

    @classmethod
    def from_api(cls, resource: dict) -> Optional["CatalogItem"]:
        """Build from a catalog song resource. Returns None if it has no id."""
        item_id = str(resource.get("id") or "").strip()
        if not item_id:
            return None

        attrs = resource.get("attributes")
        if not isinstance(attrs, dict):
            attrs = {}
        previews = [p for p in attrs.get("previews") or [] if isinstance(p, dict)]
        duration = attrs.get("durationInMillis")
        if not isinstance(duration, int):
            duration = 0

        return cls(
            id=item_id,
            title=attrs.get("name") or "",
            artist=attrs.get("artistName") or "",
            album=attrs.get("albumName") or "",
            duration_ms=max(int(duration), 0),
            release_date=attrs.get("releaseDate") or None,
            genres=tuple(attrs.get("genreNames") or ()),
            preview_url=(previews[0].get("url") or None) if previews else None,
            url=attrs.get("url") or None,
            isrc=attrs.get("isrc") or None,
        )

    def library_search_terms(self) -> list[str]:
        """Search terms likely to find this song in the local library, best first."""
        candidates = [
            self.title,
            f"{self.title} {self.artist}",
            f"{self.artist} {self.title}",
            f"{self.title} {self.album}",
        ]
        terms = []
        for term in candidates:
            term = " ".join(term.split())
            if term and term not in terms:
                terms.append(term)
        return terms


@dataclass(frozen=True)
class ResolutionRequest:
    """A caller-supplied track reference."""

    track: str
    artist: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.track} - {self.artist}" if self.artist else self.track


@dataclass(frozen=True)
class Found:
    item: CatalogItem
    score: float


@dataclass(frozen=True)
class NotFound:
    pass


NOT_FOUND = NotFound()

ResolutionResult = Union[Found, NotFound]


@dataclass(frozen=True)
class AddedToCollection:
    request: ResolutionRequest
    item: CatalogItem
    search_term: str


@dataclass(frozen=True)
class FoundButNotAdded:
    request: ResolutionRequest
    item: CatalogItem
    reason: str = SYNC_DELAY_REASON


@dataclass(frozen=True)
class NotFoundInCatalog:
    request: ResolutionRequest


SyncOutcome = Union[AddedToCollection, FoundButNotAdded, NotFoundInCatalog]


@dataclass
class SyncReport:
    """Per-request outcomes of a batch, in input order.

    `resolved`, `not_found_in_catalog` and `failed_to_sync` partition the
    input requests.
    """

    collection_name: str
    outcomes: list = field(default_factory=list)

    @property
    def resolved(self) -> list[ResolutionRequest]:
        return [o.request for o in self.outcomes if isinstance(o, AddedToCollection)]

    @property
    def not_found_in_catalog(self) -> list[ResolutionRequest]:
        return [o.request for o in self.outcomes if isinstance(o, NotFoundInCatalog)]

    @property
    def failed_to_sync(self) -> list[ResolutionRequest]:
        return [o.request for o in self.outcomes if isinstance(o, FoundButNotAdded)]


@dataclass(frozen=True)
class PlaylistCreation:
    """Result of creating a playlist directly through the REST API."""

    playlist_id: Optional[str]
    name: str
    added: list
    not_found: list
    failed_to_map: list


@dataclass(frozen=True)
class AuthorizationToken:
    """Music User Token with its expiry (epoch seconds)."""

    value: str
    expires_at: float

    def is_valid(self, now: Optional[float] = None) -> bool:
        if not self.value:
            return False
        now = time.time() if now is None else now
        return self.expires_at > now


@dataclass(frozen=True)
class MutationResult:
    """Outcome of one call into the local automation surface."""

    ok: bool
    message: str

    @classmethod
    def from_text(cls, text: str) -> "MutationResult":
        """Classify a plain-text executor reply: "Error..." means failure."""
        text = (text or "").strip()
        return cls(ok=not text.startswith("Error"), message=text)
