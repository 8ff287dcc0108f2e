"""Error taxonomy for catalog resolution and library sync.

Item-scoped problems (a track not in the catalog, a track that has not
reached the local library yet) are values in the sync report. The
exceptions here are the batch-scoped ones that stop an operation.
"""

from typing import Optional

SUGGEST_NOT_IN_CATALOG = (
    "This track doesn't seem to exist in the Apple Music catalog. "
    "Check the spelling or try just the track name."
)
SUGGEST_PERMISSION = (
    "This track exists but permission to add it to your library could not be verified. "
    "Run: music-catalog-mcp authorize"
)
SUGGEST_SYNC_DELAY = (
    "The track was added to your library but the local Music library hasn't caught up yet. "
    "Retry in a few moments."
)


class SyncError(Exception):
    """Base class for errors raised by the pipeline."""

    suggestion = ""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if suggestion is not None:
            self.suggestion = suggestion

    def describe(self) -> str:
        """Message plus suggestion, for tool output."""
        if self.suggestion:
            return f"{self.message}\n\n💡 {self.suggestion}"
        return self.message


class NotConfigured(SyncError):
    """A required credential is missing or expired."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message, suggestion or SUGGEST_PERMISSION)


class RemoteError(SyncError):
    """Non-2xx response (or transport failure) from the Apple Music API."""

    def __init__(self, status_code: Optional[int], body: str = ""):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"Apple Music API request failed: {body}"
        else:
            message = f"Apple Music API error: {status_code} - {body[:500]}"
        suggestion = SUGGEST_PERMISSION if status_code in (401, 403) else ""
        super().__init__(message, suggestion)


class BatchAddFailure(SyncError):
    """The bulk library add failed, so no track of the batch can be placed."""

    def __init__(self, cause: SyncError, resolved: list, not_found: list):
        self.cause = cause
        self.resolved = resolved
        self.not_found = not_found
        super().__init__(
            f"Found {len(resolved)} track(s) but failed to add them to your library: {cause.message}",
            cause.suggestion or SUGGEST_PERMISSION,
        )


class NothingResolved(SyncError):
    """None of the requested tracks could be found in the catalog."""

    def __init__(self, not_found: list):
        self.not_found = not_found
        super().__init__(
            "No tracks found in catalog for any of the requested tracks",
            SUGGEST_NOT_IN_CATALOG,
        )


class CollectionUnavailable(SyncError):
    """The target playlist does not exist and could not be created."""

    def __init__(self, collection_name: str, reason: str):
        self.collection_name = collection_name
        super().__init__(f"Could not create playlist '{collection_name}': {reason}")
