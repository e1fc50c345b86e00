"""
S3-compatible storage provider (AWS S3, Cloudflare R2, MinIO, ...).

The catalog comes from library.json in the bucket when present, otherwise
from a listing of the audio objects.
"""

import json
import logging
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from shared.constants import (
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    LIBRARY_METADATA_FILENAME,
    MIME_TYPES,
    SUPPORTED_AUDIO_FORMATS,
)
from shared.errors import FetchError
from shared.models import Track
from .track_source import ByteStream, CatalogTrackSource

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class S3TrackSource(CatalogTrackSource):
    """Catalog and byte source backed by an S3 bucket, using boto3."""

    def __init__(self, bucket: str, access_key_id: str, secret_access_key: str,
                 endpoint: Optional[str] = None, region: Optional[str] = None,
                 client: Any = None, chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE):
        super().__init__()
        self.bucket_name = bucket
        self.chunk_size = chunk_size
        self.s3_client = client or boto3.client(
            's3',
            endpoint_url=endpoint or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region or 'auto',
        )

    @staticmethod
    def _status(error: ClientError) -> Optional[int]:
        return error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')

    def fetch_tracks(self) -> List[Track]:
        try:
            tracks = self._tracks_from_library()
            if tracks is None:
                tracks = self._tracks_from_listing()
        except ClientError as e:
            raise FetchError(f"S3 catalog failed: {e}", status=self._status(e)) from e
        except BotoCoreError as e:
            raise FetchError(f"S3 catalog failed: {e}") from e

        logger.info("S3 catalog %s: %d tracks", self.bucket_name, len(tracks))
        return self.remember(tracks)

    def _tracks_from_library(self) -> Optional[List[Track]]:
        """Tracks listed in library.json, or None if the bucket has none."""
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=LIBRARY_METADATA_FILENAME)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in NOT_FOUND_CODES:
                return None
            raise

        try:
            data = json.loads(response['Body'].read().decode('utf-8'))
        except ValueError as e:
            raise FetchError(f"Corrupt {LIBRARY_METADATA_FILENAME}: {e}") from e

        return [self._library_entry(entry) for entry in data.get('tracks', [])]

    @staticmethod
    def _library_entry(entry: Dict[str, Any]) -> Track:
        fmt = entry.get('format', 'mp3')
        key = entry.get('source_ref') or f"tracks/{entry['id']}.{fmt}"
        return Track(
            id=entry['id'],
            title=entry.get('title') or PurePosixPath(key).stem,
            artist=entry.get('artist') or 'Unknown',
            source_ref=key,
            mood=entry.get('mood'),
            theme_color=entry.get('theme_color'),
            file_name=entry.get('original_filename') or PurePosixPath(key).name,
            mime_type=MIME_TYPES.get(f".{fmt}"),
            duration=float(entry.get('duration') or 0),
        )

    def _tracks_from_listing(self) -> List[Track]:
        tracks = []
        paginator = self.s3_client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self.bucket_name):
            for obj in page.get('Contents', []):
                key = obj['Key']
                path = PurePosixPath(key)
                suffix = path.suffix.lower()
                if suffix not in SUPPORTED_AUDIO_FORMATS:
                    continue
                tracks.append(Track(
                    id=Track.generate_id(key),
                    title=path.stem,
                    artist='Unknown',
                    source_ref=key,
                    file_name=path.name,
                    mime_type=MIME_TYPES.get(suffix),
                ))
        return sorted(tracks, key=lambda t: t.source_ref)

    def resolve_byte_stream(self, track_id: str) -> ByteStream:
        key = self.locator_for(track_id)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            raise FetchError(f"Could not fetch {key}: {e}", track_id=track_id,
                             status=self._status(e)) from e
        except BotoCoreError as e:
            raise FetchError(f"Could not fetch {key}: {e}", track_id=track_id) from e

        body = response['Body']
        return ByteStream(
            body.iter_chunks(chunk_size=self.chunk_size),
            close=body.close,
            mime_type=response.get('ContentType'),
            size=response.get('ContentLength'),
        )
