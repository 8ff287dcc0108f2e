"""Library sync: resolve tracks, add them to the library, place them in a playlist.

A batch runs in four steps:

1. Resolve every request against the catalog, one at a time.
2. Add all resolved songs to the library in a single API call.
3. Wait a fixed settle delay: songs added through the API show up in the
   local Music library only after a while.
4. Optionally create the playlist, then for each added song try local
   search terms derived from its catalog metadata until the local surface
   manages to put it in the playlist.

Steps 1 and 4 are per item: one track failing never blocks the others.
Step 2 is per batch: if the library add fails nothing is placed, no
playlist is created and BatchAddFailure is raised.
"""

import logging
import time
from typing import Callable, Optional

from .applescript import LocalMutationSurface
from .client import CatalogClient
from .errors import BatchAddFailure, CollectionUnavailable, NothingResolved, RemoteError
from .models import (
    AddedToCollection,
    CatalogItem,
    Found,
    FoundButNotAdded,
    NotFoundInCatalog,
    PlaylistCreation,
    ResolutionRequest,
    SyncOutcome,
    SyncReport,
    SYNC_DELAY_REASON,
)
from .pacing import FixedDelayPacer, Pacer
from .resolver import SmartResolver

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 2.0  # seconds for the local library to see API adds


class LibrarySyncCoordinator:
    """Runs the resolve / library add / settle / playlist add pipeline."""

    def __init__(
        self,
        client: CatalogClient,
        surface: LocalMutationSurface,
        resolver: Optional[SmartResolver] = None,
        pacer: Optional[Pacer] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.surface = surface
        self.pacer = pacer or FixedDelayPacer(sleep=sleep)
        self.resolver = resolver or SmartResolver(client, self.pacer)
        self.settle_delay = settle_delay
        self._sleep = sleep

    def _resolve_all(self, requests: list[ResolutionRequest]) -> list:
        results = []
        for request in requests:
            result = self.resolver.resolve(request.track, request.artist)
            results.append(result)
        return results

    def _bulk_add(self, found: list[Found], requests: list, not_found: list) -> None:
        catalog_ids = []
        for result in found:
            if result.item.id not in catalog_ids:
                catalog_ids.append(result.item.id)

        logger.info("Adding %d song(s) to library", len(catalog_ids))
        self.pacer.wait()
        try:
            self.client.add_to_library(catalog_ids)
        except RemoteError as e:
            logger.error("Bulk library add failed: %s", e)
            raise BatchAddFailure(e, resolved=requests, not_found=not_found) from e

    def _settle(self) -> None:
        if self.settle_delay > 0:
            logger.info("Waiting %.1fs for library sync", self.settle_delay)
            self._sleep(self.settle_delay)

    def _place(self, collection_name: str, request: ResolutionRequest, item: CatalogItem) -> SyncOutcome:
        for term in item.library_search_terms():
            try:
                result = self.surface.add_to_collection(collection_name, term)
            except Exception as e:
                logger.warning("Local add with %r raised: %s", term, e)
                continue
            if result.ok:
                logger.info("Added %s - %s to %r using %r", item.title, item.artist, collection_name, term)
                return AddedToCollection(request, item, term)
            logger.debug("Local add with %r failed: %s", term, result.message)

        logger.warning("%s - %s is in the library but not yet visible locally", item.title, item.artist)
        return FoundButNotAdded(request, item, SYNC_DELAY_REASON)

    def _ensure_collection(self, collection_name: str) -> None:
        result = self.surface.ensure_collection(collection_name)
        if not result.ok:
            logger.error("Could not create %r: %s", collection_name, result.message)
            raise CollectionUnavailable(collection_name, result.message)

    def sync_batch(
        self,
        requests: list[ResolutionRequest],
        collection_name: str,
        create_if_missing: bool = False,
    ) -> SyncReport:
        """Resolve, library-add and place every request into collection_name.

        With create_if_missing the collection is created once at least one
        song made it into the library, right before placement.

        Raises:
            NotConfigured: missing developer or user token (before any call).
            BatchAddFailure: the bulk library add failed.
            CollectionUnavailable: the collection could not be created.
        """
        if not collection_name or not collection_name.strip():
            raise ValueError("collection_name is required")
        self.client.require_library_access()

        logger.info("Syncing %d track(s) into %r", len(requests), collection_name)
        results = self._resolve_all(requests)

        found = [(req, res) for req, res in zip(requests, results) if isinstance(res, Found)]
        not_found = [req for req, res in zip(requests, results) if not isinstance(res, Found)]
        logger.info("Resolved %d of %d track(s)", len(found), len(requests))

        placed = {}
        if found:
            self._bulk_add([res for _, res in found], [req for req, _ in found], not_found)
            self._settle()
            if create_if_missing:
                self._ensure_collection(collection_name)
            for index, (request, result) in enumerate(zip(requests, results)):
                if isinstance(result, Found):
                    placed[index] = self._place(collection_name, request, result.item)

        report = SyncReport(collection_name)
        for index, request in enumerate(requests):
            report.outcomes.append(placed.get(index) or NotFoundInCatalog(request))

        logger.info(
            "Sync into %r done: %d added, %d not in catalog, %d pending sync",
            collection_name,
            len(report.resolved),
            len(report.not_found_in_catalog),
            len(report.failed_to_sync),
        )
        return report

    def add_catalog_track(self, collection_name: str, catalog_id: str) -> SyncOutcome:
        """Add one catalog song (by id) to the library, then to collection_name."""
        if not collection_name or not collection_name.strip():
            raise ValueError("collection_name is required")
        self.client.require_library_access()

        item = self.client.get_by_id(catalog_id)
        request = ResolutionRequest(track=item.title if item else catalog_id, artist=item.artist if item else None)
        if item is None:
            logger.warning("Catalog id %s not found", catalog_id)
            return NotFoundInCatalog(request)

        self._bulk_add([Found(item, 1.0)], [request], [])
        self._settle()
        return self._place(collection_name, request, item)

    def create_catalog_playlist(
        self,
        requests: list[ResolutionRequest],
        name: str,
        description: str = "",
    ) -> PlaylistCreation:
        """Create a playlist through the REST API, no local surface involved.

        Resolved songs are added to the library, mapped to their library ids
        and the playlist is created holding those library songs.

        Raises:
            NotConfigured: missing developer or user token.
            NothingResolved: none of the requests matched the catalog.
            BatchAddFailure: the bulk library add failed.
            RemoteError: playlist creation failed.
        """
        if not name or not name.strip():
            raise ValueError("playlist name is required")
        self.client.require_library_access()

        results = self._resolve_all(requests)
        found = [(req, res) for req, res in zip(requests, results) if isinstance(res, Found)]
        not_found = [req for req, res in zip(requests, results) if not isinstance(res, Found)]
        if not found:
            raise NothingResolved(not_found)

        self._bulk_add([res for _, res in found], [req for req, _ in found], not_found)
        self._settle()

        library_ids = []
        added = []
        failed_to_map = []
        for request, result in found:
            self.pacer.wait()
            try:
                library_id = self.client.get_library_song_id(result.item.id)
            except RemoteError as e:
                logger.warning("Library lookup for %s failed: %s", result.item.id, e)
                library_id = None

            if library_id:
                library_ids.append(library_id)
                added.append(request)
                logger.info("Mapped catalog %s to library %s", result.item.id, library_id)
            else:
                failed_to_map.append(request)
                logger.warning("No library id yet for %s - %s", result.item.title, result.item.artist)

        if not library_ids:
            return PlaylistCreation(None, name, [], not_found, failed_to_map)

        playlist_id = self.client.create_playlist(name, description, library_ids)
        return PlaylistCreation(playlist_id, name, added, not_found, failed_to_map)
