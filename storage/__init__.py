"""
Storage backends that feed the player: catalogs and byte sources.
"""

from .track_source import ByteStream, CatalogProvider, TrackSource
from .provider_factory import StorageProviderFactory

__all__ = ["ByteStream", "CatalogProvider", "TrackSource", "StorageProviderFactory"]
