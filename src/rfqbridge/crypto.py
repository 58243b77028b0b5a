"""Hashing and key-at-rest helpers.

keccak256 is the order and map-key hash. Fernet (AES-128-CBC with HMAC) keeps
the order signer key encrypted in the environment.
"""

import logging
from typing import Optional

from Crypto.Hash import keccak
from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Fernet tokens are base64 of a 0x80 version byte
FERNET_PREFIX = "gAAAAA"


def keccak256(*parts: bytes) -> bytes:
    """keccak256 over the concatenation of ``parts``."""
    digest = keccak.new(digest_bits=256)
    for part in parts:
        digest.update(part)
    return digest.digest()


def generate_master_key() -> str:
    """Generate a new master encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for Fernet
    """
    return Fernet.generate_key().decode()


class KeyEncryptor:
    """Encrypts and decrypts signer keys using Fernet.

    Usage:
        encryptor = KeyEncryptor(master_key)
        encrypted = encryptor.encrypt("4c0883a6...")
        decrypted = encryptor.decrypt(encrypted)
    """

    def __init__(self, master_key: str):
        self._fernet = Fernet(master_key.encode())

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a Fernet token.

        Raises:
            InvalidToken: If decryption fails (wrong key or corrupted data)
        """
        return self._fernet.decrypt(token.encode()).decode()


def get_encryptor() -> Optional[KeyEncryptor]:
    """Get encryptor instance using MASTER_KEY from settings."""
    from rfqbridge.config import get_settings

    master_key = get_settings().master_key
    if not master_key:
        return None
    return KeyEncryptor(master_key)


def decrypt_secret(value: str) -> str:
    """Decrypt ``value`` if it is a Fernet token, else return it unchanged.

    Raises:
        ValueError: If the value is encrypted and no usable MASTER_KEY is set
    """
    if not value.startswith(FERNET_PREFIX):
        return value

    encryptor = get_encryptor()
    if encryptor is None:
        raise ValueError("Secret is encrypted but MASTER_KEY is not set")
    try:
        return encryptor.decrypt(value)
    except InvalidToken as e:
        logger.error("Failed to decrypt secret with MASTER_KEY")
        raise ValueError("Secret could not be decrypted with MASTER_KEY") from e
