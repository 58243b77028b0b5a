"""Local signing backend.

Uses an in-memory secp256k1 private key to sign order hashes. Suitable for:
- Development/testing
- A dedicated RFQ signer host

The key is loaded from SWAP_SIGNER_PRIVATE_KEY, optionally Fernet-encrypted
with MASTER_KEY.
"""

import logging
from typing import Optional

from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from rfqbridge.constants import SIGNATURE_SIZE
from rfqbridge.signing.base import (
    KeyNotFoundError,
    OrderSigner,
    SignatureResult,
    SignatureVerifier,
    SignerType,
    SigningError,
)

logger = logging.getLogger(__name__)


def parse_private_key(value: str) -> bytes:
    """Hex private key (with or without 0x) to 32 bytes."""
    raw = bytes.fromhex(value.strip().replace("0x", ""))
    if len(raw) != 32:
        raise KeyNotFoundError(f"Private key must be 32 bytes, got {len(raw)}")
    return raw


def eth_address(value: str) -> bytes:
    """0x-prefixed hex address to 20 bytes."""
    raw = bytes.fromhex(value.strip().replace("0x", ""))
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return raw


class LocalSigner(OrderSigner):
    """Local signing backend using an in-memory private key."""

    def __init__(self, private_key: Optional[bytes] = None):
        super().__init__(SignerType.LOCAL)
        if private_key is None:
            private_key = self._load_key()
        self._key = keys.PrivateKey(private_key)
        self._account = Account.from_key(private_key)
        logger.info(f"Loaded order signer {self._account.address}")

    @staticmethod
    def _load_key() -> bytes:
        """Load the signer key from settings."""
        from rfqbridge.config import get_settings
        from rfqbridge.crypto import decrypt_secret

        settings = get_settings()
        if not settings.swap_signer_private_key:
            raise KeyNotFoundError("SWAP_SIGNER_PRIVATE_KEY is not set")
        return parse_private_key(decrypt_secret(settings.swap_signer_private_key))

    @property
    def address(self) -> bytes:
        return self._key.public_key.to_canonical_address()

    @property
    def checksum_address(self) -> str:
        return self._account.address

    async def sign_hash(self, message_hash: bytes) -> SignatureResult:
        if len(message_hash) != 32:
            raise SigningError(f"Message hash must be 32 bytes, got {len(message_hash)}")

        signature = self._key.sign_msg_hash(message_hash)
        return SignatureResult(
            signature=signature.to_bytes(),
            v=signature.v,
            r=signature.r,
            s=signature.s,
            address=self.address,
        )


class Secp256k1Verifier(SignatureVerifier):
    """Recovers secp256k1 signers with eth_keys."""

    def recover_address(self, message_hash: bytes, signature: bytes) -> bytes:
        if len(signature) != SIGNATURE_SIZE:
            raise SigningError(
                f"Signature must be {SIGNATURE_SIZE} bytes, got {len(signature)}"
            )

        v = signature[64]
        if v in (27, 28):
            v -= 27
        if v not in (0, 1):
            raise SigningError(f"Invalid recovery id {signature[64]}")
        try:
            sig = keys.Signature(signature_bytes=signature[:64] + bytes([v]))
            public_key = sig.recover_public_key_from_msg_hash(message_hash)
        except (BadSignature, ValidationError) as e:
            raise SigningError(f"Cannot recover signer: {e}") from e
        return public_key.to_canonical_address()
