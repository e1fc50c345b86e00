"""
Error taxonomy for the playback engine.

Fetch and playback failures are caught at the transport boundary and turned
into a non-playing state; they never escape into the UI loop.
"""

from typing import Optional


class PlayerError(Exception):
    """Base class for all player errors."""


class FetchError(PlayerError):
    """
    The byte source for a track is unavailable.

    Covers network failures, expired or missing credentials and files that
    no longer exist in remote storage.
    """

    def __init__(self, message: str, track_id: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(message)
        self.track_id = track_id
        self.status = status

    @property
    def is_auth_error(self) -> bool:
        return self.status in (401, 403)


class PlaybackError(PlayerError):
    """The sink rejected the bound bytes (unsupported codec, corrupt stream)."""

    def __init__(self, message: str, track_id: Optional[str] = None):
        super().__init__(message)
        self.track_id = track_id


class EmptyListError(PlayerError):
    """A transport command was issued with no tracks available."""
