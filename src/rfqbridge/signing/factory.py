"""Signer factory.

Creates the order signing backend and the signature verifier used by the
program model.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

from rfqbridge.signing.base import OrderSigner, SignatureVerifier, SignerType
from rfqbridge.signing.local import LocalSigner, Secp256k1Verifier

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_signer_type() -> SignerType:
    """Determine which signer to use (SIGNER_BACKEND, default local)."""
    explicit = os.environ.get("SIGNER_BACKEND", "").lower()
    if explicit and explicit != SignerType.LOCAL.value:
        raise ValueError(f"Unsupported signer backend: {explicit}")
    return SignerType.LOCAL


_signer_instance: Optional[OrderSigner] = None


def get_signer() -> OrderSigner:
    """Get the configured signer instance (singleton)."""
    global _signer_instance

    if _signer_instance is None:
        signer_type = get_signer_type()
        logger.info(f"Initializing {signer_type.value} order signer")
        _signer_instance = LocalSigner()

    return _signer_instance


def get_verifier() -> SignatureVerifier:
    return Secp256k1Verifier()


def reset_signer() -> None:
    """Reset signer instance (for testing)."""
    global _signer_instance
    _signer_instance = None
    get_signer_type.cache_clear()
