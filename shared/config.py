"""
Loading and saving of the local player configuration.

The config file lives in DEFAULT_CONFIG_DIR. Environment variables (or a
.env file) override individual fields, which is handy for CI and headless
boxes where no config file exists yet.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from shared.constants import DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILENAME
from shared.models import PlayerConfig, StorageProvider

logger = logging.getLogger(__name__)

ENV_PREFIX = "CLOUDWAVE_"
ENV_FIELDS = (
    "endpoint", "bucket", "access_key_id", "secret_access_key",
    "access_token", "region", "accent_color",
)


def default_config_path() -> Path:
    return Path(DEFAULT_CONFIG_DIR).expanduser() / DEFAULT_CONFIG_FILENAME


def _env_overrides() -> dict:
    load_dotenv()
    overrides = {}
    for name in ENV_FIELDS:
        value = os.getenv(ENV_PREFIX + name.upper())
        if value:
            overrides[name] = value
    provider = os.getenv(ENV_PREFIX + "PROVIDER")
    if provider:
        overrides["provider"] = provider
    return overrides


def load_config(path: Optional[Path] = None) -> Optional[PlayerConfig]:
    """
    Load the player configuration.

    Plain-text credentials found on disk are written back encrypted.
    Returns None when neither a config file nor a provider override exists.
    """
    config_path = Path(path) if path else default_config_path()
    data = {}

    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error loading config %s: %s", config_path, e)
            data = {}

    overrides = _env_overrides()
    if not data and "provider" not in overrides:
        return None

    try:
        config = PlayerConfig.from_dict({**data, "provider": data.get("provider", "local")})
    except ValueError as e:
        logger.error("Invalid config %s: %s", config_path, e)
        return None

    if data and not data.get("is_encrypted", False):
        logger.info("Migrating config to encrypted format...")
        save_config(config, config_path)

    for name, value in overrides.items():
        if name == "provider":
            try:
                value = StorageProvider(value)
            except ValueError:
                logger.error("Ignoring unknown provider %r from environment", value)
                continue
        setattr(config, name, value)
    return config


def save_config(config: PlayerConfig, path: Optional[Path] = None) -> Path:
    """Write the config with encrypted credentials; returns the path used."""
    config_path = Path(path) if path else default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config.to_json(), encoding="utf-8")
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        logger.debug("Could not restrict permissions on %s", config_path)
    return config_path
