"""
Factory for creating storage provider instances.

Simplifies provider selection and initialization.
"""

from typing import Tuple

from shared.models import PlayerConfig, StorageProvider
from .track_source import CatalogProvider, TrackSource


class StorageProviderFactory:
    """Factory for creating catalog/byte-source pairs."""

    @staticmethod
    def create(config: PlayerConfig) -> Tuple[CatalogProvider, TrackSource]:
        """
        Create the catalog and track source for a configuration.

        Args:
            config: Player configuration with decrypted credentials

        Returns:
            (catalog, source); the same object plays both roles for the
            built-in backends

        Raises:
            ValueError: If provider type is not supported
        """
        if config.provider == StorageProvider.GOOGLE_DRIVE:
            from .drive_source import DriveTrackSource
            backend = DriveTrackSource(config.access_token)

        elif config.provider == StorageProvider.AWS_S3:
            from .s3_source import S3TrackSource
            backend = S3TrackSource(
                bucket=config.bucket,
                access_key_id=config.access_key_id,
                secret_access_key=config.secret_access_key,
                endpoint=config.endpoint,
                region=config.region,
            )

        elif config.provider == StorageProvider.LOCAL:
            from .local_source import LocalTrackSource
            backend = LocalTrackSource(config.endpoint or ".")

        else:
            raise ValueError(f"Unknown provider type: {config.provider}")

        return backend, backend

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.GOOGLE_DRIVE: "Google Drive",
            StorageProvider.AWS_S3: "S3-Compatible",
            StorageProvider.LOCAL: "Local Folder",
        }
        return names.get(provider_type, "Unknown")
