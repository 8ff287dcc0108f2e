"""Apple Music REST API client.

Stateless apart from the credentials it is constructed with: no caching and
no retries. Callers decide what to do with a RemoteError.
"""

import logging
from typing import Optional

import requests

from .errors import NotConfigured, RemoteError
from .models import AuthorizationToken, CatalogItem

logger = logging.getLogger(__name__)

BASE_URL = "https://api.music.apple.com/v1"
DEFAULT_STOREFRONT = "us"
REQUEST_TIMEOUT = 30  # seconds
MAX_SEARCH_LIMIT = 25  # API maximum for song search

_OK_STATUSES = (200, 201, 202, 204)


def _resources(container) -> list[dict]:
    """Resource objects under container["data"]; missing or malformed parts give []."""
    data = container.get("data") if isinstance(container, dict) else None
    if not isinstance(data, list):
        return []
    return [resource for resource in data if isinstance(resource, dict)]


class CatalogClient:
    """Catalog search and library mutation against api.music.apple.com."""

    def __init__(
        self,
        developer_token: str,
        user_token: Optional[AuthorizationToken] = None,
        storefront: str = DEFAULT_STOREFRONT,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        base_url: str = BASE_URL,
    ):
        self.developer_token = developer_token or ""
        self.user_token = user_token
        self.storefront = storefront or DEFAULT_STOREFRONT
        self.timeout = timeout
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")

    # ============ CAPABILITIES ============

    def is_configured(self) -> bool:
        """True if catalog operations are possible."""
        return bool(self.developer_token)

    def can_modify_library(self) -> bool:
        """True if library-mutating operations are possible."""
        return self.is_configured() and self.user_token is not None and self.user_token.is_valid()

    def require_catalog_access(self) -> None:
        if not self.is_configured():
            raise NotConfigured(
                "Apple Music catalog access is not configured (no developer token).",
                "Run: music-catalog-mcp generate-token, or set APPLE_MUSIC_DEVELOPER_TOKEN.",
            )

    def require_library_access(self) -> None:
        self.require_catalog_access()
        if self.user_token is None:
            raise NotConfigured("User token required to modify your library. Authorize with Apple Music first.")
        if not self.user_token.is_valid():
            raise NotConfigured("User token has expired. Authorize with Apple Music again.")

    def _headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {self.developer_token}",
            "Content-Type": "application/json",
        }
        if self.user_token is not None and self.user_token.is_valid():
            headers["Music-User-Token"] = self.user_token.value
        return headers

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise RemoteError(None, str(e)) from e
        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        if response.status_code not in _OK_STATUSES:
            logger.error("Apple Music API returned %s: %s", response.status_code, response.text[:200])
            raise RemoteError(response.status_code, response.text)

    @staticmethod
    def _json(response: requests.Response) -> dict:
        """Decoded JSON object body. Anything else (an HTML error page) is a RemoteError."""
        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Apple Music API returned a non-JSON body: %s", response.text[:200])
            raise RemoteError(response.status_code, response.text) from e
        if not isinstance(payload, dict):
            logger.error("Apple Music API returned unexpected JSON: %s", response.text[:200])
            raise RemoteError(response.status_code, response.text)
        return payload

    # ============ CATALOG ============

    def search(self, query: str, limit: int = 10) -> list[CatalogItem]:
        """Search catalog songs, keeping the API's relevance order."""
        self.require_catalog_access()
        limit = max(1, min(limit, MAX_SEARCH_LIMIT))

        response = self._request(
            "GET",
            f"/catalog/{self.storefront}/search",
            params={"term": query, "types": "songs", "limit": limit},
        )
        self._raise_for_status(response)

        results = self._json(response).get("results")
        songs = _resources(results.get("songs") if isinstance(results, dict) else None)
        items = [item for item in (CatalogItem.from_api(s) for s in songs) if item]
        logger.info("Catalog search %r returned %d result(s)", query, len(items))
        return items

    def get_by_id(self, song_id: str) -> Optional[CatalogItem]:
        """Look up a catalog song. Returns None if the catalog has no such id."""
        self.require_catalog_access()

        response = self._request("GET", f"/catalog/{self.storefront}/songs/{song_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)

        data = _resources(self._json(response))
        return CatalogItem.from_api(data[0]) if data else None

    # ============ LIBRARY ============

    def add_to_library(self, catalog_ids: list[str]) -> None:
        """Add catalog songs to the user's library in one call."""
        self.require_library_access()
        if not catalog_ids:
            return

        response = self._request(
            "POST",
            "/me/library",
            params={"ids[songs]": ",".join(catalog_ids)},
        )
        self._raise_for_status(response)
        logger.info("Added %d song(s) to library", len(catalog_ids))

    def get_library_song_id(self, catalog_id: str) -> Optional[str]:
        """Library id of a catalog song, or None if it isn't in the library (yet)."""
        self.require_library_access()

        response = self._request("GET", f"/catalog/{self.storefront}/songs/{catalog_id}/library")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)

        data = _resources(self._json(response))
        if not data:
            return None
        return data[0].get("id") or None

    def create_playlist(
        self,
        name: str,
        description: str = "",
        track_ids: Optional[list[str]] = None,
        track_type: str = "library-songs",
    ) -> Optional[str]:
        """Create a library playlist holding the given tracks. Returns its id."""
        self.require_library_access()

        body = {
            "attributes": {"name": name, "description": description or ""},
            "relationships": {
                "tracks": {
                    "data": [{"id": tid, "type": track_type} for tid in (track_ids or [])],
                },
            },
        }
        response = self._request("POST", "/me/library/playlists", json=body)
        self._raise_for_status(response)

        data = _resources(self._json(response)) if response.content else []
        playlist_id = data[0].get("id") if data else None
        logger.info("Created playlist %r (%s) with %d track(s)", name, playlist_id, len(track_ids or []))
        return playlist_id
