"""
Temporary media handles.

A track's bytes are spooled into a temporary file that the sink can open by
path. The handle owns that file: releasing it deletes the file, so switching
tracks never accumulates stale audio on disk.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

from shared.constants import DEFAULT_SPOOL_DIR, MIME_TYPES
from shared.errors import FetchError
from shared.models import Track
from storage.track_source import ByteStream

logger = logging.getLogger(__name__)

SUFFIX_BY_MIME = {mime: suffix for suffix, mime in MIME_TYPES.items()}


class MediaHandle:
    """A spooled copy of one track's bytes, tagged with the track id."""

    def __init__(self, track_id: str, path: Path, size: int):
        self.track_id = track_id
        self.path = path
        self.size = size
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Delete the backing file. Safe to call more than once."""
        with self._lock:
            if self._released:
                return
            self._released = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove spooled media %s: %s", self.path, e)

    def __repr__(self) -> str:
        state = "released" if self._released else f"{self.size} bytes"
        return f"<MediaHandle {self.track_id} {state}>"


def _suffix_for(track: Track, stream: ByteStream) -> str:
    if track.file_name and Path(track.file_name).suffix:
        return Path(track.file_name).suffix.lower()
    mime = (stream.mime_type or track.mime_type or "").split(";")[0].strip()
    return SUFFIX_BY_MIME.get(mime, ".audio")


def spool(stream: ByteStream, track: Track, spool_dir: Optional[str] = DEFAULT_SPOOL_DIR,
          is_cancelled: Optional[Callable[[], bool]] = None) -> MediaHandle:
    """
    Copy a byte stream into a temporary file.

    The stream is always closed. Any error while reading it is raised as
    FetchError and the partial file is removed. `is_cancelled` is checked
    before every chunk; once it returns True the download stops the same
    way.
    """
    directory = Path(spool_dir).expanduser() if spool_dir else Path(tempfile.gettempdir())
    directory.mkdir(parents=True, exist_ok=True)

    fd, name = tempfile.mkstemp(prefix=f"{track.id}-", suffix=_suffix_for(track, stream), dir=directory)
    path = Path(name)
    size = 0
    try:
        with stream, os.fdopen(fd, 'wb') as out:
            for chunk in stream:
                if is_cancelled is not None and is_cancelled():
                    raise FetchError(f"Download of {track.title} cancelled", track_id=track.id)
                if chunk:
                    out.write(chunk)
                    size += len(chunk)
    except Exception as e:
        try:
            os.remove(path)
        except OSError:
            pass
        if isinstance(e, FetchError):
            raise
        raise FetchError(f"Download of {track.title} interrupted: {e}", track_id=track.id) from e

    if size == 0:
        os.remove(path)
        raise FetchError(f"Empty byte stream for {track.title}", track_id=track.id)

    logger.debug("Spooled %s (%d bytes) to %s", track.id, size, path)
    return MediaHandle(track.id, path, size)
