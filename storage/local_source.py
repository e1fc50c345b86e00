"""
Local filesystem storage provider.
Serves a music folder on disk (a NAS mount, a synced Drive folder) through
the same interfaces as the cloud backends.
"""

import logging
import os
from pathlib import Path
from typing import List

from mutagen import File as MutagenFile
from mutagen import MutagenError

from shared.constants import DEFAULT_DOWNLOAD_CHUNK_SIZE, MIME_TYPES, SUPPORTED_AUDIO_FORMATS
from shared.errors import FetchError
from shared.models import Track
from .track_source import ByteStream, CatalogTrackSource

logger = logging.getLogger(__name__)


class LocalTrackSource(CatalogTrackSource):
    """Storage provider that uses a local directory."""

    def __init__(self, base_path: str, chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE):
        super().__init__()
        self.base_path = Path(base_path).expanduser().absolute()
        self.chunk_size = chunk_size

    def fetch_tracks(self) -> List[Track]:
        if not self.base_path.is_dir():
            raise FetchError(f"Music folder not found: {self.base_path}", status=404)

        tracks = []
        for root, _, filenames in os.walk(self.base_path):
            for filename in sorted(filenames):
                full_path = Path(root) / filename
                if full_path.suffix.lower() in SUPPORTED_AUDIO_FORMATS:
                    tracks.append(self._to_track(full_path))

        tracks.sort(key=lambda t: t.source_ref)
        logger.info("Local catalog %s: %d tracks", self.base_path, len(tracks))
        return self.remember(tracks)

    def _to_track(self, path: Path) -> Track:
        rel_path = path.relative_to(self.base_path).as_posix()
        title, artist, duration = path.stem, "Unknown", 0.0

        tags = self._read_tags(path)
        if tags is not None:
            if tags.tags:
                title = (tags.tags.get('title') or [title])[0]
                artist = (tags.tags.get('artist') or [artist])[0]
            if tags.info is not None and hasattr(tags.info, 'length'):
                duration = float(tags.info.length)

        return Track(
            id=Track.generate_id(rel_path),
            title=title,
            artist=artist,
            source_ref=rel_path,
            file_name=path.name,
            mime_type=MIME_TYPES.get(path.suffix.lower()),
            duration=duration,
        )

    @staticmethod
    def _read_tags(path: Path):
        try:
            return MutagenFile(path, easy=True)
        except (MutagenError, OSError) as e:
            logger.debug("No tags for %s: %s", path, e)
            return None

    def _resolve_path(self, track_id: str) -> Path:
        path = (self.base_path / self.locator_for(track_id)).resolve()
        if self.base_path.resolve() not in path.parents:
            raise FetchError(f"Path escapes music folder: {path}", track_id=track_id, status=403)
        return path

    def resolve_byte_stream(self, track_id: str) -> ByteStream:
        path = self._resolve_path(track_id)
        try:
            handle = open(path, 'rb')
        except FileNotFoundError as e:
            raise FetchError(f"File not found: {path}", track_id=track_id, status=404) from e
        except OSError as e:
            raise FetchError(f"Cannot open {path}: {e}", track_id=track_id) from e

        return ByteStream(
            iter(lambda: handle.read(self.chunk_size), b''),
            close=handle.close,
            mime_type=MIME_TYPES.get(path.suffix.lower()),
            size=path.stat().st_size,
        )
