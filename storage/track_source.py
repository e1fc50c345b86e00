"""
Interfaces for the storage collaborators of the player.

A CatalogProvider lists the ordered tracks of a library; a TrackSource turns
a track id into a stream of bytes. Every storage backend implements both so
the playback engine never needs to know where the audio lives.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator, List, Optional

from shared.models import Track


class ByteStream:
    """
    A one-shot stream of audio bytes for a single track.

    Wraps an iterable of chunks and an optional close hook (an HTTP response,
    an S3 body, an open file). Usable as a context manager.
    """

    def __init__(self, chunks: Iterable[bytes], close: Optional[Callable[[], None]] = None,
                 mime_type: Optional[str] = None, size: Optional[int] = None):
        self._chunks = chunks
        self._close = close
        self.mime_type = mime_type
        self.size = size
        self.closed = False

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: Optional[str] = None) -> 'ByteStream':
        return cls([data], mime_type=mime_type, size=len(data))

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._chunks)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._close:
            self._close()

    def __enter__(self) -> 'ByteStream':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class TrackSource(ABC):
    """Resolves track identifiers to streamable bytes."""

    @abstractmethod
    def resolve_byte_stream(self, track_id: str) -> ByteStream:
        """
        Open a fresh byte stream for a track.

        Must be idempotent and safe to call repeatedly for the same id; each
        call may use freshly authorized credentials.

        Raises:
            FetchError: If the bytes cannot be obtained
        """
        pass


class CatalogProvider(ABC):
    """Supplies the ordered track list."""

    @abstractmethod
    def fetch_tracks(self) -> List[Track]:
        """
        Fetch the current catalog.

        Raises:
            FetchError: If the catalog cannot be listed
        """
        pass


class CatalogTrackSource(TrackSource, CatalogProvider):
    """
    Base for backends whose byte locator differs from the track id.

    Keeps the id -> locator map from the last catalog fetch so
    resolve_byte_stream() can be given a plain track id.
    """

    def __init__(self):
        self._locators = {}

    def remember(self, tracks: List[Track]) -> List[Track]:
        self._locators = {t.id: t.source_ref for t in tracks}
        return tracks

    def locator_for(self, track_id: str) -> str:
        return self._locators.get(track_id, track_id)
