"""Base interfaces for order signing and signature verification.

Orders are signed with secp256k1 rather than the settlement ledger's native
scheme, so one authority key is verified identically on every ledger.

Signing flow:
1. Encode the order and hash it (keccak256)
2. Submit the hash to a signer backend
3. Backend returns a 65-byte signature r || s || recovery_id
4. The program recovers the signer address from hash and signature and
   compares it with the configured swap signer
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"           # Private key in memory


@dataclass
class SignatureResult:
    """Result of signing an order hash.

    Attributes:
        signature: 65 bytes, r (32) || s (32) || recovery id (1)
        v: Recovery id (0 or 1)
        r: R component of signature
        s: S component of signature
        address: 20-byte address of the signing key
    """
    signature: bytes
    v: int
    r: int
    s: int
    address: bytes

    @property
    def hex(self) -> str:
        return "0x" + self.signature.hex()


class OrderSigner(ABC):
    """Abstract base class for order signing backends.

    Implementations should NEVER expose raw private keys.
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def sign_hash(self, message_hash: bytes) -> SignatureResult:
        """Sign a 32-byte order hash."""
        pass

    @property
    @abstractmethod
    def address(self) -> bytes:
        """20-byte address to configure as the program's swap signer."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"


class SignatureVerifier(ABC):
    """Recovers the signer of an order hash.

    The settlement core only depends on this interface, never on a curve
    library directly.
    """

    @abstractmethod
    def recover_address(self, message_hash: bytes, signature: bytes) -> bytes:
        """Return the 20-byte address that produced ``signature``.

        Raises:
            SigningError: If the signature is malformed or recovery fails
        """
        pass

    def verify(self, message_hash: bytes, signature: bytes, expected: bytes) -> bool:
        """True when ``signature`` over ``message_hash`` recovers to ``expected``."""
        try:
            recovered = self.recover_address(message_hash, signature)
        except SigningError as e:
            logger.warning(f"Signature recovery failed: {e}")
            return False
        return recovered == expected


class SigningError(Exception):
    """Exception raised when signing or recovery fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when signing key is not found."""
    pass
