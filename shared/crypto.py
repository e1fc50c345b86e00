"""
Credential encryption for the local config file.

Storage tokens and keys are encrypted with a key derived from the machine
identity, so a copied config file is useless on another host.
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import binascii
import getpass
import logging
import os
import socket
from typing import Optional

logger = logging.getLogger(__name__)

MACHINE_ID_PATHS = ("/etc/machine-id", "/var/lib/dbus/machine-id")
KEY_SALT = b'cloudwave-credentials-v1'
KDF_ITERATIONS = 100000


class CredentialManager:
    """Encrypts and decrypts stored credentials."""

    _machine_key: Optional[bytes] = None

    @staticmethod
    def derive_key(secret: str, salt: bytes = KEY_SALT) -> bytes:
        """
        Derive a Fernet key from a secret using PBKDF2-SHA256.

        Args:
            secret: Secret material
            salt: Salt bytes for key derivation

        Returns:
            URL-safe base64 encoded 32-byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret.encode()))

    @classmethod
    def machine_key(cls) -> bytes:
        """Key bound to this machine and user; derived once per process."""
        if cls._machine_key is None:
            machine_id = None
            for path in MACHINE_ID_PATHS:
                try:
                    with open(path, 'r') as f:
                        machine_id = f.read().strip()
                    break
                except OSError:
                    continue
            if not machine_id:
                machine_id = socket.gethostname() or 'unknown-host'

            try:
                username = getpass.getuser()
            except (KeyError, OSError):
                username = os.getenv('USER', 'unknown-user')

            cls._machine_key = cls.derive_key(f"{machine_id}-{username}")
        return cls._machine_key

    @classmethod
    def encrypt(cls, data: str, key: Optional[bytes] = None) -> str:
        """Encrypt a string; returns a printable token."""
        token = Fernet(key or cls.machine_key()).encrypt(data.encode())
        return base64.urlsafe_b64encode(token).decode()

    @classmethod
    def decrypt(cls, encrypted_data: str, key: Optional[bytes] = None) -> Optional[str]:
        """Decrypt a token produced by encrypt(); None if it cannot be read."""
        try:
            token = base64.urlsafe_b64decode(encrypted_data.encode())
            return Fernet(key or cls.machine_key()).decrypt(token).decode()
        except (InvalidToken, binascii.Error, ValueError) as e:
            logger.warning("Credential decryption failed: %s", e.__class__.__name__)
            return None
