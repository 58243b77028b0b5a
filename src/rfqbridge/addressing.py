"""Deterministic address derivation.

Every record of the settlement program lives at a program derived address:
a seed tag plus variable key bytes, searched from bump 255 downwards until
the candidate falls off the ed25519 curve. The mapping is a pure function of
its inputs, so "does this swap already exist" becomes "is there an account at
this address", answered by the ledger when the account is created.

Composite nonce keys are first compressed with
``keccak256(nonce || counterparty)`` so every map entry uses a fixed-size seed.
"""

import struct
from dataclasses import dataclass
from typing import Union

from solders.pubkey import Pubkey

from rfqbridge.constants import (
    ADMIN_SEED,
    AIRDROP_VAULT_SEED,
    ASSOCIATED_TOKEN_PROGRAM_ID,
    BANNED_ACCOUNT_SEED,
    CCTRADE_ALLOWED_DEST_SEED,
    COMPLETED_SWAPS_SEED,
    EXPIRED_SWAPS_SEED,
    NONCE_SIZE,
    PENDING_SWAPS_SEED,
    PORTFOLIO_SEED,
    REBALANCER_SEED,
    REMOTE_SEED,
    SOL_USER_FUNDS_VAULT_SEED,
    SOL_VAULT_SEED,
    SPL_USER_FUNDS_VAULT_SEED,
    SPL_VAULT_SEED,
    TOKEN_DETAILS_SEED,
    TOKEN_LIST_SEED,
    TOKEN_PROGRAM_ID,
)
from rfqbridge.crypto import keccak256

# The default key (all zeros) stands for the native asset wherever a mint is expected
NATIVE_MINT = Pubkey.default()

TOKEN_PROGRAM = Pubkey.from_string(TOKEN_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)

PubkeyLike = Union[Pubkey, str, bytes]


def to_pubkey(value: PubkeyLike) -> Pubkey:
    """Coerce a base58 string, 32 raw bytes or a Pubkey into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValueError(f"Public key must be 32 bytes, got {len(value)}")
        return Pubkey.from_bytes(bytes(value))
    return Pubkey.from_string(value)


def is_native(mint: Pubkey) -> bool:
    return mint == NATIVE_MINT


def u32_be(value: int) -> bytes:
    return struct.pack(">I", value)


def map_entry_key(nonce: bytes, counterparty: PubkeyLike) -> bytes:
    """Fixed-size map key for a ``(nonce, counterparty)`` pair."""
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
    return keccak256(nonce, bytes(to_pubkey(counterparty)))


def associated_token_address(owner: PubkeyLike, mint: PubkeyLike) -> Pubkey:
    """Associated token account of ``owner`` for ``mint``."""
    address, _ = Pubkey.find_program_address(
        [bytes(to_pubkey(owner)), bytes(TOKEN_PROGRAM), bytes(to_pubkey(mint))],
        ASSOCIATED_TOKEN_PROGRAM,
    )
    return address


def describe_seeds(seeds: tuple[bytes, ...]) -> str:
    """Human-readable seed list: the tag as text, key material as hex."""
    if not seeds:
        return ""
    parts = [seeds[0].decode("ascii", errors="replace")]
    parts.extend(seed.hex() for seed in seeds[1:])
    return "/".join(parts)


@dataclass(frozen=True)
class DerivedAddress:
    """A derived address together with the inputs that produced it."""

    address: Pubkey
    bump: int
    seeds: tuple[bytes, ...]

    @property
    def tag(self) -> str:
        return self.seeds[0].decode("ascii")

    def describe(self) -> str:
        return describe_seeds(self.seeds)

    def __str__(self) -> str:
        return str(self.address)


class PdaDeriver:
    """Derives every record address of one settlement program."""

    def __init__(self, program_id: PubkeyLike):
        self.program_id = to_pubkey(program_id)

    def derive(self, seed: bytes, *parts: bytes) -> DerivedAddress:
        seeds = (seed, *parts)
        address, bump = Pubkey.find_program_address(list(seeds), self.program_id)
        return DerivedAddress(address=address, bump=bump, seeds=seeds)

    # Singletons
    def portfolio(self) -> DerivedAddress:
        return self.derive(PORTFOLIO_SEED)

    def token_list(self) -> DerivedAddress:
        return self.derive(TOKEN_LIST_SEED)

    # Vaults
    def sol_vault(self) -> DerivedAddress:
        return self.derive(SOL_VAULT_SEED)

    def sol_user_funds_vault(self) -> DerivedAddress:
        return self.derive(SOL_USER_FUNDS_VAULT_SEED)

    def spl_vault(self) -> DerivedAddress:
        return self.derive(SPL_VAULT_SEED)

    def spl_user_funds_vault(self) -> DerivedAddress:
        return self.derive(SPL_USER_FUNDS_VAULT_SEED)

    def airdrop_vault(self) -> DerivedAddress:
        return self.derive(AIRDROP_VAULT_SEED)

    # Keyed records
    def remote(self, dst_eid: int) -> DerivedAddress:
        return self.derive(REMOTE_SEED, u32_be(dst_eid))

    def admin(self, account: PubkeyLike) -> DerivedAddress:
        return self.derive(ADMIN_SEED, bytes(to_pubkey(account)))

    def rebalancer(self, account: PubkeyLike) -> DerivedAddress:
        return self.derive(REBALANCER_SEED, bytes(to_pubkey(account)))

    def banned(self, account: PubkeyLike) -> DerivedAddress:
        return self.derive(BANNED_ACCOUNT_SEED, bytes(to_pubkey(account)))

    def token_details(self, mint: PubkeyLike) -> DerivedAddress:
        return self.derive(TOKEN_DETAILS_SEED, bytes(to_pubkey(mint)))

    def allowed_destination(self, eid: int, mint: PubkeyLike) -> DerivedAddress:
        return self.derive(CCTRADE_ALLOWED_DEST_SEED, u32_be(eid), bytes(to_pubkey(mint)))

    # Nonce-keyed swap maps
    def completed_swap(self, nonce: bytes, dest_trader: PubkeyLike) -> DerivedAddress:
        return self.derive(COMPLETED_SWAPS_SEED, map_entry_key(nonce, dest_trader))

    def pending_swap(self, nonce: bytes, trader: PubkeyLike) -> DerivedAddress:
        return self.derive(PENDING_SWAPS_SEED, map_entry_key(nonce, trader))

    def expired_swap(self, nonce: bytes, trader: PubkeyLike) -> DerivedAddress:
        return self.derive(EXPIRED_SWAPS_SEED, map_entry_key(nonce, trader))
