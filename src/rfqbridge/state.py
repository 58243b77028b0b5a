"""Records stored at derived addresses.

Each record is a pydantic model serialized into the JSON ``data`` column of
its ``ProgramAccount``. Public keys are kept as base58 strings and raw byte
fields as hex, so a record dump is readable as is.
"""

from enum import Enum
from typing import ClassVar, TypeVar

from pydantic import BaseModel, Field
from solders.pubkey import Pubkey

from rfqbridge.constants import DEFAULT_AIRDROP_AMOUNT, DEFAULT_DEST_CHAIN_ID
from rfqbridge.ledger.models import AccountKind, ProgramAccount

R = TypeVar("R", bound="Record")


class BanReason(str, Enum):
    """Why an account is banned."""

    NOT_BANNED = "NotBanned"
    OFAC = "Ofac"
    ABUSE = "Abuse"
    TERMS = "Terms"


class Record(BaseModel):
    """Base class for keyed records."""

    kind: ClassVar[AccountKind]

    def to_data(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_account(cls: type[R], account: ProgramAccount) -> R:
        return cls.model_validate(account.data)


class GlobalConfig(Record):
    """Portfolio singleton: program-wide switches and counters."""

    kind: ClassVar[AccountKind] = AccountKind.PORTFOLIO

    endpoint: str = Field(..., description="Messaging endpoint program id")
    authority: str = Field(..., description="Account that initialized the program")
    swap_signer: str = Field(..., description="20-byte order signer address (hex)")
    allow_deposit: bool = Field(default=True)
    program_paused: bool = Field(default=False)
    native_deposits_restricted: bool = Field(default=False)
    default_chain_id: int = Field(default=DEFAULT_DEST_CHAIN_ID, ge=0, lt=2**32)
    airdrop_amount: int = Field(default=DEFAULT_AIRDROP_AMOUNT, ge=0)
    out_nonce: int = Field(default=0, ge=0, description="Nonce of the next outbound message")

    @property
    def endpoint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.endpoint)

    @property
    def swap_signer_bytes(self) -> bytes:
        return bytes.fromhex(self.swap_signer)


class VaultRecord(Record):
    kind: ClassVar[AccountKind] = AccountKind.VAULT

    name: str = Field(..., description="Vault seed tag")


class Remote(Record):
    """Peer application address on a remote ledger."""

    kind: ClassVar[AccountKind] = AccountKind.REMOTE

    eid: int = Field(..., ge=0, lt=2**32)
    address: str = Field(..., description="32-byte remote address (hex)")

    @property
    def address_bytes(self) -> bytes:
        return bytes.fromhex(self.address)


class TokenDetails(Record):
    kind: ClassVar[AccountKind] = AccountKind.TOKEN_DETAILS

    token_address: str
    symbol: str
    decimals: int = Field(..., ge=0, le=255)


class TokenList(Record):
    kind: ClassVar[AccountKind] = AccountKind.TOKEN_LIST

    tokens: list[str] = Field(default_factory=list, description="Supported mints")


class AdminRecord(Record):
    kind: ClassVar[AccountKind] = AccountKind.ADMIN

    account: str


class RebalancerRecord(Record):
    kind: ClassVar[AccountKind] = AccountKind.REBALANCER

    account: str


class BannedAccount(Record):
    kind: ClassVar[AccountKind] = AccountKind.BANNED

    account: str
    reason: BanReason = BanReason.NOT_BANNED


class AllowedDestination(Record):
    kind: ClassVar[AccountKind] = AccountKind.ALLOWED_DESTINATION

    eid: int = Field(..., ge=0, lt=2**32)
    mint: str


class PendingSwap(Record):
    """Inbound payout waiting for vault liquidity."""

    kind: ClassVar[AccountKind] = AccountKind.PENDING_SWAP

    trader: str
    quantity: int = Field(..., gt=0)
    token_mint: str
    nonce: str = Field(..., description="12-byte order nonce (hex)")

    @property
    def trader_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.trader)

    @property
    def mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.token_mint)


class CompletedSwap(Record):
    kind: ClassVar[AccountKind] = AccountKind.COMPLETED_SWAP

    expiry: int = Field(default=0, ge=0)


class ExpiredSwap(Record):
    """Pending swap unwound by an operator rather than by its trader."""

    kind: ClassVar[AccountKind] = AccountKind.EXPIRED_SWAP

    trader: str
    token_mint: str
    quantity: int
    penalty: int = 0
    expired_at: int
    removed_by: str
