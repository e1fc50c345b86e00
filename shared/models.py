"""
Data models for tracks, transport state and player configuration.

This module defines the core data structures shared by the storage
collaborators and the playback engine.
"""

from dataclasses import dataclass, asdict, field, fields
from typing import Dict, Optional, Any, List
from enum import Enum
import hashlib
import json


class StorageProvider(Enum):
    """Supported cloud storage providers."""
    GOOGLE_DRIVE = "drive"
    AWS_S3 = "s3"
    LOCAL = "local"


class TransportState(Enum):
    """Observable states of the transport controller."""
    IDLE = "idle"
    LOADING = "loading"
    READY_PAUSED = "paused"
    READY_PLAYING = "playing"


@dataclass(frozen=True)
class Track:
    """
    Represents a single track in the remote catalog.

    Attributes:
        id: Unique, stable identifier
        title: Display title
        artist: Display artist
        source_ref: Locator of the remote bytes (Drive file id, S3 key or path)
        mood: Optional mood tag
        theme_color: Optional hex colour used to tint the UI
        file_name: Original file name
        mime_type: Audio MIME type, if known
        duration: Duration in seconds as reported by the catalog (0 if unknown)
    """
    id: str
    title: str
    artist: str
    source_ref: str
    mood: Optional[str] = None
    theme_color: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    duration: float = 0.0

    @staticmethod
    def generate_id(locator: str) -> str:
        """Derive a stable id from a storage locator."""
        return hashlib.sha1(locator.encode("utf-8")).hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        """Convert track to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Create Track from dictionary, filtering unknown keys."""
        field_names = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        return cls(**filtered_data)


def index_of(tracks: List[Track], track_id: Optional[str]) -> Optional[int]:
    """Position of the track with the given id, or None."""
    if track_id is None:
        return None
    for i, track in enumerate(tracks):
        if track.id == track_id:
            return i
    return None


@dataclass
class PlayerConfig:
    """
    Player configuration stored locally on each device.

    Contains the credentials for the storage account and local preferences.
    Credentials are passed explicitly to the track source; nothing here is
    read from global state.
    """
    provider: StorageProvider
    endpoint: str = ""
    bucket: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    access_token: str = ""
    region: Optional[str] = None
    use_audio_output: bool = True
    accent_color: Optional[str] = None
    is_encrypted: bool = False

    SECRET_FIELDS = ("access_key_id", "secret_access_key", "access_token")

    def to_dict(self, encrypt: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary, optionally encrypting credentials."""
        from shared.crypto import CredentialManager

        data = asdict(self)
        data['provider'] = self.provider.value

        if encrypt and not self.is_encrypted:
            for name in self.SECRET_FIELDS:
                if data[name]:
                    data[name] = CredentialManager.encrypt(data[name])
            data['is_encrypted'] = True

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerConfig':
        """Create PlayerConfig from dictionary, decrypting if necessary."""
        from shared.crypto import CredentialManager

        field_names = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        filtered_data['provider'] = StorageProvider(filtered_data['provider'])

        if filtered_data.get('is_encrypted', False):
            decrypted = {}
            for name in cls.SECRET_FIELDS:
                value = filtered_data.get(name)
                if value:
                    decrypted[name] = CredentialManager.decrypt(value)

            # On a different machine decryption fails; keep the encrypted
            # strings so authentication fails instead of crashing.
            if all(v is not None for v in decrypted.values()):
                filtered_data.update(decrypted)
                filtered_data['is_encrypted'] = False

        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'PlayerConfig':
        """Deserialize from JSON."""
        return cls.from_dict(json.loads(json_str))
