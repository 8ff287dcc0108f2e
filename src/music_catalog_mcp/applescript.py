"""Local Music.app automation surface.

Playlists in the local library are modified through AppleScript, which is
eventually consistent with the remote library: a song added through the
REST API shows up in Music.app only after a delay.

Only available on macOS with the Music app installed.

Security Notes:
    - Playlist names and search terms are escaped via _escape_for_applescript()
      (backslashes first, then quotes) before being embedded in scripts.
    - Scripts run via subprocess.run() with capture_output=True and a
      30-second timeout.
"""

import logging
import shutil
import subprocess
import sys
from typing import Callable, Optional, Protocol

from .models import MutationResult

logger = logging.getLogger(__name__)

APPLESCRIPT_TIMEOUT = 30  # seconds

# Script replies are prefixed so that a track literally named "Error ..."
# is still reported as a success.
_OK_PREFIX = "OK:"
_ERROR_PREFIX = "ERROR:"


def is_available() -> bool:
    """Check if AppleScript is available (macOS with osascript)."""
    return sys.platform == "darwin" and shutil.which("osascript") is not None


def _escape_for_applescript(s: str) -> str:
    """Escape a string for safe use inside an AppleScript string literal."""
    return s.replace("\\", "\\\\").replace('"', '\\"')


def _find_playlist_applescript(safe_name: str) -> str:
    """AppleScript snippet setting targetPlaylist: exact name first, then contains."""
    return f'''
        try
            set targetPlaylist to first user playlist whose name is "{safe_name}"
        on error
            try
                set targetPlaylist to first user playlist whose name contains "{safe_name}"
            on error
                return "{_ERROR_PREFIX}Playlist not found: {safe_name}"
            end try
        end try'''


def run_applescript(script: str) -> tuple[bool, str]:
    """Execute AppleScript and return (success, output or error message)."""
    try:
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            text=True,
            timeout=APPLESCRIPT_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return False, f"AppleScript timed out after {APPLESCRIPT_TIMEOUT} seconds"
    except OSError as e:
        return False, str(e)

    if result.returncode == 0:
        return True, result.stdout.strip()
    return False, result.stderr.strip()


def _to_result(success: bool, output: str) -> MutationResult:
    if not success:
        return MutationResult(ok=False, message=output)
    if output.startswith(_ERROR_PREFIX):
        return MutationResult(ok=False, message=output[len(_ERROR_PREFIX):])
    if output.startswith(_OK_PREFIX):
        return MutationResult(ok=True, message=output[len(_OK_PREFIX):])
    return MutationResult(ok=True, message=output)


def create_playlist(name: str, description: str = "") -> MutationResult:
    """Create a user playlist unless one with this exact name exists."""
    safe_name = _escape_for_applescript(name)
    properties = f'name:"{safe_name}"'
    if description:
        properties += f', description:"{_escape_for_applescript(description)}"'

    script = f'''
    tell application "Music"
        if exists (first user playlist whose name is "{safe_name}") then
            return "{_OK_PREFIX}Playlist exists: {safe_name}"
        end if
        set newPlaylist to make new user playlist with properties {{{properties}}}
        return "{_OK_PREFIX}Created playlist: " & name of newPlaylist
    end tell
    '''
    return _to_result(*run_applescript(script))


def add_to_playlist_by_search(playlist_name: str, search_term: str) -> MutationResult:
    """Search the local library for a song and copy the first hit into a playlist."""
    safe_playlist = _escape_for_applescript(playlist_name)
    safe_term = _escape_for_applescript(search_term)

    script = f'''
    tell application "Music"
{_find_playlist_applescript(safe_playlist)}
        set searchResults to search library playlist 1 for "{safe_term}" only songs
        if (count of searchResults) is 0 then
            return "{_ERROR_PREFIX}No tracks found for: {safe_term}"
        end if
        set targetTrack to item 1 of searchResults
        duplicate targetTrack to targetPlaylist
        return "{_OK_PREFIX}" & name of targetTrack & " - " & artist of targetTrack
    end tell
    '''
    return _to_result(*run_applescript(script))


class LocalMutationSurface(Protocol):
    def ensure_collection(self, collection_name: str, description: str = "") -> MutationResult:
        """Create the collection unless it already exists."""

    def add_to_collection(self, collection_name: str, search_term: str) -> MutationResult:
        """Add the first local-library match for search_term to the collection."""


class AppleScriptSurface:
    """Music.app via osascript."""

    def ensure_collection(self, collection_name: str, description: str = "") -> MutationResult:
        result = create_playlist(collection_name, description)
        logger.debug("AppleScript ensure playlist %r: %s", collection_name, result)
        return result

    def add_to_collection(self, collection_name: str, search_term: str) -> MutationResult:
        result = add_to_playlist_by_search(collection_name, search_term)
        logger.debug("AppleScript add %r to %r: %s", search_term, collection_name, result)
        return result


class CommandSurface:
    """Wraps plain-text executors ``(collection, term) -> str``.

    Replies beginning with "Error" count as failures, as do exceptions
    raised by an executor. Without a ``creator`` executor collections are
    assumed to exist.
    """

    def __init__(
        self,
        executor: Callable[[str, str], str],
        creator: Optional[Callable[[str, str], str]] = None,
    ):
        self.executor = executor
        self.creator = creator

    @staticmethod
    def _call(executor: Callable[[str, str], str], first: str, second: str) -> MutationResult:
        try:
            reply = executor(first, second)
        except Exception as e:
            logger.debug("Executor failed for %r: %s", second, e)
            return MutationResult(ok=False, message=str(e))
        return MutationResult.from_text(reply)

    def ensure_collection(self, collection_name: str, description: str = "") -> MutationResult:
        if self.creator is None:
            return MutationResult(ok=True, message="")
        return self._call(self.creator, collection_name, description)

    def add_to_collection(self, collection_name: str, search_term: str) -> MutationResult:
        return self._call(self.executor, collection_name, search_term)
