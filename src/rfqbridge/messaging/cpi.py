"""Endpoint instruction building.

Endpoint instructions are Anchor instructions: an 8-byte discriminator
``sha256("global:" + name)[:8]`` followed by the borsh-encoded params.
"""

import hashlib
import struct
from typing import Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from rfqbridge.constants import (
    ENDPOINT_SEED,
    EVENT_SEED,
    NONCE_SEED,
    OAPP_SEED,
    PAYLOAD_HASH_SEED,
)
from rfqbridge.errors import ErrorCode, InvalidInput
from rfqbridge.messaging.params import BorshParams

DISCRIMINATOR_SIZE = 8


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def create_instruction_data(params: BorshParams, name: str) -> bytes:
    return instruction_discriminator(name) + params.encode()


def build_instruction(
    program_id: Pubkey,
    name: str,
    params: BorshParams,
    accounts: Sequence[AccountMeta],
) -> Instruction:
    return Instruction(program_id, create_instruction_data(params, name), list(accounts))


def endpoint_accounts(
    accounts: Sequence[AccountMeta], signer: Optional[Pubkey] = None
) -> list[AccountMeta]:
    """Accounts of an endpoint call from a forwarded list.

    The first entry of every forwarded list is the endpoint program itself and
    is dropped. ``signer`` (the program's own portfolio address) is marked as
    signing, since the program signs for it.
    """
    result = []
    for meta in accounts[1:]:
        if signer is not None and meta.pubkey == signer:
            meta = AccountMeta(meta.pubkey, is_signer=True, is_writable=meta.is_writable)
        result.append(meta)
    return result


def split_remaining_accounts(
    accounts: Sequence[AccountMeta], quote_len: int
) -> tuple[list[AccountMeta], list[AccountMeta]]:
    """Split ``quote || send`` back into its two lists."""
    if quote_len <= 0 or len(accounts) <= quote_len:
        raise InvalidInput(
            ErrorCode.ACCOUNTS_NOT_PROVIDED,
            f"expected more than {quote_len} accounts, got {len(accounts)}",
        )
    return list(accounts[:quote_len]), list(accounts[quote_len:])


def accounts_for_clear(
    endpoint_program: Pubkey,
    receiver: Pubkey,
    src_eid: int,
    sender: bytes,
    nonce: int,
) -> list[AccountMeta]:
    """The eight accounts the endpoint's ``clear`` needs, endpoint program first."""
    eid = struct.pack(">I", src_eid)
    nonce_account, _ = Pubkey.find_program_address(
        [NONCE_SEED, bytes(receiver), eid, sender], endpoint_program
    )
    payload_hash_account, _ = Pubkey.find_program_address(
        [PAYLOAD_HASH_SEED, bytes(receiver), eid, sender, struct.pack(">Q", nonce)],
        endpoint_program,
    )
    oapp_registry, _ = Pubkey.find_program_address([OAPP_SEED, bytes(receiver)], endpoint_program)
    event_authority, _ = Pubkey.find_program_address([EVENT_SEED], endpoint_program)
    endpoint_settings, _ = Pubkey.find_program_address([ENDPOINT_SEED], endpoint_program)

    accounts = [
        AccountMeta(endpoint_program, is_signer=False, is_writable=False),
        AccountMeta(receiver, is_signer=False, is_writable=False),
        AccountMeta(oapp_registry, is_signer=False, is_writable=False),
        AccountMeta(nonce_account, is_signer=False, is_writable=True),
        AccountMeta(payload_hash_account, is_signer=False, is_writable=True),
        AccountMeta(endpoint_settings, is_signer=False, is_writable=True),
        AccountMeta(event_authority, is_signer=False, is_writable=False),
        AccountMeta(endpoint_program, is_signer=False, is_writable=False),
    ]
    return accounts
