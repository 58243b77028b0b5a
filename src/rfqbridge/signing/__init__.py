"""Order signing and signature recovery.

The settlement program verifies orders through ``SignatureVerifier``; the
off-ledger desk signs them through an ``OrderSigner`` backend.
"""

from rfqbridge.signing.base import (
    KeyNotFoundError,
    OrderSigner,
    SignatureResult,
    SignatureVerifier,
    SignerType,
    SigningError,
)
from rfqbridge.signing.factory import get_signer, get_verifier, reset_signer
from rfqbridge.signing.local import LocalSigner, Secp256k1Verifier, eth_address

__all__ = [
    "OrderSigner",
    "SignatureVerifier",
    "SignatureResult",
    "SignerType",
    "SigningError",
    "KeyNotFoundError",
    "LocalSigner",
    "Secp256k1Verifier",
    "eth_address",
    "get_signer",
    "get_verifier",
    "reset_signer",
]
