"""Canonical order encoding and hashing.

An order is hashed as its type descriptor followed by every field in a fixed
order (public keys raw, integers big-endian). The descriptor acts as the
domain separator, so a same-ledger signature can never be replayed as a
cross-ledger one and vice versa. The cross-ledger encoding also covers the
destination ledger id and the 32-byte maker symbol.
"""

import struct
import time
from dataclasses import dataclass, replace
from typing import Optional, Union

from solders.pubkey import Pubkey

from rfqbridge.constants import CROSS_SWAP_TYPE, NONCE_SIZE, ORDER_TYPE
from rfqbridge.crypto import keccak256
from rfqbridge.errors import ErrorCode, InvalidInput

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1


def _check_range(name: str, value: int, limit: int) -> None:
    if not 0 <= value <= limit:
        raise InvalidInput(ErrorCode.INVALID_PARAMETER, f"{name} out of range: {value}")


def _u64(value: int) -> bytes:
    return struct.pack(">Q", value)


def _u128(value: int) -> bytes:
    return value.to_bytes(16, "big")


def pad_symbol(symbol: Union[str, bytes]) -> bytes:
    """Zero-pad a ticker to 32 bytes (``"SOL"`` -> ``b"SOL" + 29 * b"\\0"``)."""
    raw = symbol.encode() if isinstance(symbol, str) else bytes(symbol)
    if len(raw) > 32:
        raise InvalidInput(ErrorCode.INVALID_PARAMETER, f"Symbol longer than 32 bytes: {raw!r}")
    return raw.ljust(32, b"\x00")


def unpad_symbol(symbol: bytes) -> str:
    return symbol.rstrip(b"\x00").decode("utf-8", errors="replace")


def generate_nonce(now_ms: Optional[int] = None) -> bytes:
    """Fresh 12-byte nonce from the current time.

    The low 4 bytes are the head of ``keccak256(str(now_ms))``. Uniqueness is
    not guaranteed here: a collision is caught when the nonce-keyed address is
    created on the ledger.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    digest = keccak256(str(now_ms).encode())
    return bytes(NONCE_SIZE - 4) + digest[:4]


def partial_fill_amount(maker_amount: int, taker_amount: int, taker_amount_provided: int) -> int:
    """Maker amount owed for a partial fill, rounded down."""
    if taker_amount_provided < taker_amount:
        return maker_amount * taker_amount_provided // taker_amount
    return maker_amount


@dataclass(frozen=True)
class Order:
    """Same-ledger RFQ order."""

    maker_asset: Pubkey
    taker_asset: Pubkey
    taker: Pubkey
    maker_amount: int
    taker_amount: int
    expiry: int
    dest_trader: Pubkey
    nonce: bytes

    def __post_init__(self):
        _check_range("maker_amount", self.maker_amount, U64_MAX)
        _check_range("taker_amount", self.taker_amount, U64_MAX)
        _check_range("expiry", self.expiry, U128_MAX)
        if len(self.nonce) != NONCE_SIZE:
            raise InvalidInput(
                ErrorCode.INVALID_PARAMETER,
                f"Nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}",
            )

    def to_bytes(self) -> bytes:
        return b"".join(
            [
                ORDER_TYPE,
                bytes(self.maker_asset),
                bytes(self.taker_asset),
                bytes(self.taker),
                _u64(self.maker_amount),
                _u64(self.taker_amount),
                _u128(self.expiry),
                bytes(self.dest_trader),
                self.nonce,
            ]
        )

    def hash(self) -> bytes:
        return keccak256(self.to_bytes())

    def with_partial_fill(self, taker_amount_provided: int) -> "Order":
        """The order as executed when only ``taker_amount_provided`` is filled.

        The signature must cover this adjusted order, not the original.
        """
        maker_amount = partial_fill_amount(
            self.maker_amount, self.taker_amount, taker_amount_provided
        )
        if maker_amount == self.maker_amount:
            return self
        return replace(self, maker_amount=maker_amount)

    def to_dict(self) -> dict:
        return {
            "maker_asset": str(self.maker_asset),
            "taker_asset": str(self.taker_asset),
            "taker": str(self.taker),
            "maker_amount": self.maker_amount,
            "taker_amount": self.taker_amount,
            "expiry": self.expiry,
            "dest_trader": str(self.dest_trader),
            "nonce": self.nonce.hex(),
        }


@dataclass(frozen=True)
class CrossOrder:
    """Cross-ledger RFQ order (XChainSwap)."""

    taker: Pubkey
    dest_trader: Pubkey
    maker_symbol: bytes
    maker_asset: Pubkey
    taker_asset: Pubkey
    maker_amount: int
    taker_amount: int
    nonce: bytes
    expiry: int
    dest_chain_id: int

    def __post_init__(self):
        _check_range("maker_amount", self.maker_amount, U64_MAX)
        _check_range("taker_amount", self.taker_amount, U64_MAX)
        _check_range("expiry", self.expiry, U128_MAX)
        _check_range("dest_chain_id", self.dest_chain_id, U32_MAX)
        if len(self.nonce) != NONCE_SIZE:
            raise InvalidInput(
                ErrorCode.INVALID_PARAMETER,
                f"Nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}",
            )
        if len(self.maker_symbol) != 32:
            raise InvalidInput(
                ErrorCode.INVALID_PARAMETER, "maker_symbol must be 32 bytes, use pad_symbol()"
            )

    def to_bytes(self) -> bytes:
        return b"".join(
            [
                CROSS_SWAP_TYPE,
                bytes(self.taker),
                bytes(self.dest_trader),
                self.maker_symbol,
                bytes(self.maker_asset),
                bytes(self.taker_asset),
                _u64(self.maker_amount),
                _u64(self.taker_amount),
                self.nonce,
                _u128(self.expiry),
                struct.pack(">I", self.dest_chain_id),
            ]
        )

    def hash(self) -> bytes:
        return keccak256(self.to_bytes())

    def to_dict(self) -> dict:
        return {
            "taker": str(self.taker),
            "dest_trader": str(self.dest_trader),
            "maker_symbol": unpad_symbol(self.maker_symbol),
            "maker_asset": str(self.maker_asset),
            "taker_asset": str(self.taker_asset),
            "maker_amount": self.maker_amount,
            "taker_amount": self.taker_amount,
            "nonce": self.nonce.hex(),
            "expiry": self.expiry,
            "dest_chain_id": self.dest_chain_id,
        }
