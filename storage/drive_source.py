"""
Google Drive storage provider.

Tracks are ordinary Drive files tagged with app properties (title, artist,
mood, colour). Listing and downloading go through the Drive v3 REST API
with a bearer token supplied by the caller.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from shared.constants import (
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    DEFAULT_NETWORK_TIMEOUT,
    DRIVE_API_BASE,
    DRIVE_TRACK_PROPERTY,
)
from shared.errors import FetchError
from shared.models import Track
from .track_source import ByteStream, CatalogTrackSource

logger = logging.getLogger(__name__)

LIST_FIELDS = "nextPageToken, files(id, name, mimeType, description, appProperties, size)"


class DriveTrackSource(CatalogTrackSource):
    """
    Catalog and byte source backed by a Google Drive account.

    The access token is passed in explicitly; refreshing it is the job of
    whoever constructs this object.
    """

    def __init__(self, access_token: str, session: Optional[requests.Session] = None,
                 timeout: int = DEFAULT_NETWORK_TIMEOUT,
                 chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE):
        super().__init__()
        if not access_token:
            raise FetchError("Google Drive access token is missing", status=401)
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})

    def _get(self, path: str, params: Dict[str, Any], stream: bool = False,
             track_id: Optional[str] = None) -> requests.Response:
        url = f"{DRIVE_API_BASE}/{path}"
        try:
            response = self.session.get(url, params=params, stream=stream, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Drive request failed: {e}", track_id=track_id) from e

        if response.status_code >= 400:
            status = response.status_code
            response.close()
            raise FetchError(f"Drive returned HTTP {status} for {path}",
                             track_id=track_id, status=status)
        return response

    def fetch_tracks(self) -> List[Track]:
        """List every tagged track, following pagination."""
        query = (
            "trashed=false and appProperties has "
            f"{{ key='{DRIVE_TRACK_PROPERTY}' and value='true' }}"
        )
        params = {"q": query, "fields": LIST_FIELDS, "pageSize": 1000}
        tracks: List[Track] = []

        while True:
            response = self._get("files", params)
            try:
                data = response.json()
            except ValueError as e:
                raise FetchError(f"Drive returned an invalid listing: {e}") from e

            tracks.extend(self._to_track(f) for f in data.get("files", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        logger.info("Drive catalog: %d tracks", len(tracks))
        return self.remember(tracks)

    @staticmethod
    def _to_track(file: Dict[str, Any]) -> Track:
        props = file.get("appProperties") or {}

        # Uploads store their full metadata as JSON in the description
        duration = 0.0
        description = file.get("description")
        if description:
            try:
                duration = float(json.loads(description).get("duration") or 0)
            except (ValueError, TypeError, AttributeError):
                duration = 0.0

        return Track(
            id=file["id"],
            title=props.get("title") or file.get("name", "Untitled"),
            artist=props.get("artist") or "Unknown",
            source_ref=file["id"],
            mood=props.get("mood") or None,
            theme_color=props.get("color") or None,
            file_name=file.get("name"),
            mime_type=file.get("mimeType"),
            duration=duration,
        )

    def resolve_byte_stream(self, track_id: str) -> ByteStream:
        file_id = self.locator_for(track_id)
        response = self._get(f"files/{file_id}", {"alt": "media"}, stream=True, track_id=track_id)

        size = response.headers.get("Content-Length")
        return ByteStream(
            response.iter_content(chunk_size=self.chunk_size),
            close=response.close,
            mime_type=response.headers.get("Content-Type"),
            size=int(size) if size and size.isdigit() else None,
        )
