"""MCP server: find songs in the Apple Music catalog and put them in playlists.

The assistant supplies track/artist pairs (its own recommendations); these
tools resolve them against the catalog, add them to the user's library and
place them into playlists. Placing songs into a playlist by name goes through
Music.app and is only available on macOS.
"""

import json
import logging
import time
from typing import Optional

from mcp.server.fastmcp import FastMCP

from . import applescript as asc
from . import auth
from .client import CatalogClient
from .errors import (
    SUGGEST_NOT_IN_CATALOG,
    SUGGEST_SYNC_DELAY,
    BatchAddFailure,
    NothingResolved,
    RemoteError,
    SyncError,
)
from .logging_config import setup_logging
from .models import (
    AddedToCollection,
    CatalogItem,
    Found,
    FoundButNotAdded,
    NotFoundInCatalog,
    ResolutionRequest,
    SyncReport,
)
from .pacing import FixedDelayPacer
from .resolver import SmartResolver
from .sync import LibrarySyncCoordinator

logger = logging.getLogger(__name__)

# Check if AppleScript is available (macOS only)
APPLESCRIPT_AVAILABLE = asc.is_available()

MAX_TRACKS_PER_BATCH = 100
MAX_SONGS_PER_LOOKUP = 25

mcp = FastMCP("MusicCatalog")


# ============ FORMATTING ============


def format_duration(ms: int | None) -> str:
    """Format milliseconds as m:ss (e.g., 3:45). Empty for None, 0 or negative."""
    if not ms or ms <= 0:
        return ""
    total_seconds = ms // 1000
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def format_item(item: CatalogItem) -> str:
    """One-line summary: Name - Artist (duration) Album [Year] id"""
    duration = format_duration(item.duration_ms)
    duration_str = f" ({duration})" if duration else ""
    album_str = f" {item.album}" if item.album else ""
    year_str = f" [{item.release_date[:4]}]" if item.release_date else ""
    return f"{item.title} - {item.artist}{duration_str}{album_str}{year_str} {item.id}"


def _section(prefix: str, title: str, lines: list[str]) -> list[str]:
    if not lines:
        return []
    return [f"{prefix} {title} ({len(lines)}):"] + [f"  {line}" for line in lines]


def format_sync_report(report: SyncReport) -> str:
    """Per-track outcome of a playlist sync, grouped by outcome."""
    added = [
        f"{o.item.title} - {o.item.artist}"
        for o in report.outcomes if isinstance(o, AddedToCollection)
    ]
    pending = [
        f"{o.item.title} - {o.item.artist} (requested: {o.request})"
        for o in report.outcomes if isinstance(o, FoundButNotAdded)
    ]
    missing = [str(o.request) for o in report.outcomes if isinstance(o, NotFoundInCatalog)]

    output = _section("✓", f"Added to '{report.collection_name}'", added)
    if pending:
        if output:
            output.append("")
        output += _section("⏳", "In your library but not yet in the playlist", pending)
        output.append(f"💡 {SUGGEST_SYNC_DELAY}")
    if missing:
        if output:
            output.append("")
        output += _section("✗", "Not found in catalog", missing)
        output.append(f"💡 {SUGGEST_NOT_IN_CATALOG}")

    return "\n".join(output) if output else "No tracks were processed"


# ============ INTERNAL HELPERS ============


def _parse_requests(tracks: str) -> tuple[list[ResolutionRequest], str | None]:
    """Parse a JSON array of {"track", "artist"} objects.

    Returns:
        (requests, None) on success, ([], error message) otherwise.
    """
    try:
        track_list = json.loads(tracks)
    except json.JSONDecodeError as e:
        return [], f"Error: Invalid JSON - {e}"
    if not isinstance(track_list, list):
        return [], "Error: tracks must be a JSON array"
    if not track_list:
        return [], "Error: tracks is empty"
    if len(track_list) > MAX_TRACKS_PER_BATCH:
        return [], f"Error: at most {MAX_TRACKS_PER_BATCH} tracks per call"

    requests = []
    for index, obj in enumerate(track_list):
        if not isinstance(obj, dict):
            return [], f"Error: track #{index + 1} must be an object"

        fields = {}
        for key in ("track", "name", "artist"):
            value = obj.get(key)
            # numeric titles like 1999 are fine, anything else must be a string
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if value is not None and not isinstance(value, str):
                return [], f"Error: track #{index + 1} '{key}' must be a string"
            fields[key] = (value or "").strip()

        name = fields["track"] or fields["name"]
        if not name:
            return [], f"Error: track #{index + 1} is missing 'track'"
        requests.append(ResolutionRequest(track=name, artist=fields["artist"] or None))
    return requests, None


def _build_client() -> CatalogClient:
    credentials = auth.load_credentials()
    return CatalogClient(
        credentials.developer_token,
        user_token=credentials.user_token,
        storefront=credentials.storefront,
    )


def _local_surface() -> asc.LocalMutationSurface:
    return asc.AppleScriptSurface()


def _build_coordinator(client: CatalogClient) -> LibrarySyncCoordinator:
    prefs = auth.get_preferences()
    return LibrarySyncCoordinator(
        client,
        _local_surface(),
        pacer=FixedDelayPacer(prefs["request_delay"]),
        settle_delay=prefs["settle_delay"],
    )


def _error(e: SyncError) -> str:
    return f"Error: {e.describe()}"


# ============ CATALOG ============


@mcp.tool()
def search_catalog(query: str, limit: int = 5) -> str:
    """
    Search the Apple Music catalog for songs.

    Use this after deciding what to recommend: look up each track to get
    its catalog ID and preview link. Needs only a developer token.

    Args:
        query: Track name, artist, or both ("Karma Police Radiohead")
        limit: Max results (1-25, default 5)

    Returns: Matching songs with catalog IDs
    """
    try:
        items = _build_client().search(query, limit)
    except SyncError as e:
        return _error(e)

    if not items:
        return (
            f"No results found for: \"{query}\"\n"
            "Try a different spelling, just the track name, or just the artist name."
        )

    output = [f"=== {len(items)} Songs ==="]
    for item in items:
        output.append(format_item(item))
        if item.url:
            output.append(f"  {item.url}")
    return "\n".join(output)


@mcp.tool()
def get_song_details(song_id: str) -> str:
    """
    Get details for a catalog song.

    Args:
        song_id: Catalog song ID (all digits, e.g. "1440783617")

    Returns: Song metadata
    """
    try:
        item = _build_client().get_by_id(song_id.strip())
    except SyncError as e:
        return _error(e)

    if item is None:
        return f"Error: Song with ID \"{song_id}\" not found in catalog"

    lines = [
        f"Name: {item.title}",
        f"Artist: {item.artist}",
        f"Album: {item.album}",
        f"Duration: {format_duration(item.duration_ms)}",
        f"Released: {item.release_date or 'Unknown'}",
    ]
    if item.genres:
        lines.append(f"Genres: {', '.join(item.genres)}")
    if item.isrc:
        lines.append(f"ISRC: {item.isrc}")
    if item.preview_url:
        lines.append(f"Preview: {item.preview_url}")
    if item.url:
        lines.append(f"URL: {item.url}")
    lines.append(f"Catalog ID: {item.id}")
    return "\n".join(lines)


@mcp.tool()
def get_songs_details(song_ids: str) -> str:
    """
    Look up several catalog songs at once and whether each is in your library.

    Library status is only shown once authorized (music-catalog-mcp authorize).

    Args:
        song_ids: Comma-separated catalog song IDs (from search_catalog)

    Returns: One line per song, unknown IDs listed separately
    """
    ids = []
    for song_id in song_ids.split(","):
        song_id = song_id.strip()
        if song_id and song_id not in ids:
            ids.append(song_id)
    if not ids:
        return "Error: song_ids is empty"
    if len(ids) > MAX_SONGS_PER_LOOKUP:
        return f"Error: at most {MAX_SONGS_PER_LOOKUP} song IDs per call"

    client = _build_client()
    pacer = FixedDelayPacer(auth.get_preferences()["request_delay"])
    check_library = client.can_modify_library()

    lines, unknown, failed = [], [], []
    try:
        for song_id in ids:
            pacer.wait()
            try:
                item = client.get_by_id(song_id)
            except RemoteError as e:
                failed.append(f"{song_id}: {e.message}")
                continue
            if item is None:
                unknown.append(song_id)
                continue

            line = format_item(item)
            if check_library:
                pacer.wait()
                try:
                    in_library = client.get_library_song_id(item.id) is not None
                    line += " ✓ in library" if in_library else " (not in library)"
                except RemoteError as e:
                    logger.warning("Library status for %s failed: %s", item.id, e)
                    line += " (library status unknown)"
            lines.append(line)
    except SyncError as e:
        return _error(e)

    output = [f"=== {len(lines)} of {len(ids)} Songs ==="] + lines
    if unknown:
        output.append("")
        output += _section("✗", "Not found in catalog", unknown)
    if failed:
        output.append("")
        output += _section("⚠️", "Lookup failed", failed)
    return "\n".join(output)


@mcp.tool()
def resolve_track(track: str, artist: str = "") -> str:
    """
    Find the best catalog match for a track by an artist.

    Tries several query forms (with and without accents, track/artist order)
    and only accepts a candidate that matches well enough.

    Args:
        track: Track name
        artist: Artist name (optional, improves matching)

    Returns: The matched song with its catalog ID and match score
    """
    client = _build_client()
    resolver = SmartResolver(client, FixedDelayPacer(auth.get_preferences()["request_delay"]))
    try:
        result = resolver.resolve(track, artist or None)
    except SyncError as e:
        return _error(e)

    if isinstance(result, Found):
        return f"Found (score {result.score:.2f}): {format_item(result.item)}"
    request = ResolutionRequest(track, artist or None)
    return f"Not found: {request}\n💡 {SUGGEST_NOT_IN_CATALOG}"


# ============ LIBRARY ============


@mcp.tool()
def add_catalog_track_to_library(track_id: str) -> str:
    """
    Add a catalog song to your library.

    Requires authorization (music-catalog-mcp authorize).

    Args:
        track_id: Catalog song ID (from search_catalog)

    Returns: Confirmation or error
    """
    client = _build_client()
    try:
        client.require_library_access()
        item = client.get_by_id(track_id.strip())
        if item is None:
            return f"Error: Song with ID \"{track_id}\" not found in catalog"
        client.add_to_library([item.id])
    except SyncError as e:
        return _error(e)
    return f"Added to library: {item.title} - {item.artist}"


# ============ PLAYLISTS ============


@mcp.tool()
def sync_tracks_to_playlist(playlist_name: str, tracks: str, create_if_missing: bool = True) -> str:
    """
    Find tracks in the catalog, add them to your library and to a playlist (macOS only).

    Every track is resolved separately; the result says which tracks were
    added, which don't exist in the catalog, and which made it to your
    library but not yet into the playlist (retry those shortly).

    Examples:
        sync_tracks_to_playlist("Focus", '[{"track":"Dexter","artist":"Ricardo Villalobos"}]')

    Args:
        playlist_name: Playlist name in the Music app
        tracks: JSON array of objects with "track" and "artist" fields
        create_if_missing: Create the playlist if it doesn't exist (only once a track made it into your library)

    Returns: Per-track outcome
    """
    if not APPLESCRIPT_AVAILABLE:
        return "Error: Adding to playlists by name requires macOS. Use create_catalog_playlist instead."
    if not playlist_name.strip():
        return "Error: playlist_name is required"

    requests, error = _parse_requests(tracks)
    if error:
        return error

    client = _build_client()
    try:
        report = _build_coordinator(client).sync_batch(requests, playlist_name, create_if_missing)
    except BatchAddFailure as e:
        lines = [_error(e)]
        lines += _section("✗", "Not found in catalog", [str(r) for r in e.not_found])
        return "\n".join(lines)
    except SyncError as e:
        return _error(e)

    return format_sync_report(report)


@mcp.tool()
def add_catalog_track_to_playlist(playlist_name: str, track_id: str) -> str:
    """
    Add a catalog song (by ID) to your library and then to a playlist (macOS only).

    Args:
        playlist_name: Playlist name in the Music app
        track_id: Catalog song ID (from search_catalog)

    Returns: Confirmation or error
    """
    if not APPLESCRIPT_AVAILABLE:
        return "Error: Adding to playlists by name requires macOS. Use create_catalog_playlist instead."

    client = _build_client()
    try:
        outcome = _build_coordinator(client).add_catalog_track(playlist_name, track_id.strip())
    except SyncError as e:
        return _error(e)
    except ValueError as e:
        return f"Error: {e}"

    if isinstance(outcome, AddedToCollection):
        return f"Added {outcome.item.title} - {outcome.item.artist} to '{playlist_name}'"
    if isinstance(outcome, FoundButNotAdded):
        return (
            f"Added {outcome.item.title} - {outcome.item.artist} to your library "
            f"but not yet to '{playlist_name}'.\n💡 {SUGGEST_SYNC_DELAY}"
        )
    return f"Error: Song with ID \"{track_id}\" not found in catalog"


@mcp.tool()
def create_catalog_playlist(playlist_name: str, tracks: str, description: str = "") -> str:
    """
    Create a new playlist from catalog tracks in one go (any platform).

    Finds each track, adds the matches to your library and creates the
    playlist through the Apple Music API.

    Args:
        playlist_name: Name for the new playlist
        tracks: JSON array of objects with "track" and "artist" fields
        description: Optional playlist description

    Returns: Playlist ID and per-track outcome
    """
    if not playlist_name.strip():
        return "Error: playlist_name is required"

    requests, error = _parse_requests(tracks)
    if error:
        return error

    client = _build_client()
    try:
        result = _build_coordinator(client).create_catalog_playlist(requests, playlist_name, description)
    except NothingResolved as e:
        return "\n".join([_error(e)] + _section("✗", "Not found in catalog", [str(r) for r in e.not_found]))
    except SyncError as e:
        return _error(e)

    if result.playlist_id is None:
        output = [f"Error: Tracks were added to your library but none could be mapped yet.\n💡 {SUGGEST_SYNC_DELAY}"]
    else:
        output = [f"Created playlist '{result.name}' ({result.playlist_id}) with {len(result.added)} track(s)"]
        output += [f"  + {r}" for r in result.added]

    if result.failed_to_map:
        output.append("")
        output += _section("⏳", "In your library but not in the playlist", [str(r) for r in result.failed_to_map])
    if result.not_found:
        output.append("")
        output += _section("✗", "Not found in catalog", [str(r) for r in result.not_found])
    return "\n".join(output)


# ============ STATUS ============


@mcp.tool()
def check_auth_status() -> str:
    """Check which credentials are configured and whether the API is reachable."""
    credentials = auth.load_credentials()
    status = []

    if credentials.developer_token:
        warning = auth.token_expiration_warning()
        status.append(f"Developer Token: {warning}" if warning else "Developer Token: OK")
    else:
        status.append("Developer Token: MISSING - Run: music-catalog-mcp generate-token")

    user_token = credentials.user_token
    if user_token is None:
        status.append("Music User Token: MISSING - Run: music-catalog-mcp authorize")
    elif not user_token.is_valid():
        status.append("Music User Token: EXPIRED - Run: music-catalog-mcp authorize")
    else:
        days_left = int((user_token.expires_at - time.time()) / 86400)
        status.append(f"Music User Token: OK ({days_left} days remaining)")

    status.append(f"Storefront: {credentials.storefront}")
    status.append(f"Playlist sync by name (AppleScript): {'available' if APPLESCRIPT_AVAILABLE else 'unavailable (macOS only)'}")

    if credentials.developer_token:
        client = CatalogClient(credentials.developer_token, storefront=credentials.storefront)
        try:
            client.search("test", 1)
            status.append("API Connection: OK")
        except SyncError as e:
            status.append(f"API Connection: FAILED - {e.message}")

    return "\n".join(status)


def main(log_level: Optional[str] = None):
    """Run the MCP server."""
    setup_logging(log_level)
    logger.info("Starting music catalog MCP server (AppleScript %s)", "on" if APPLESCRIPT_AVAILABLE else "off")
    mcp.run()


if __name__ == "__main__":
    main()
