"""Borsh layouts of the messaging endpoint instructions.

Field order and widths follow the endpoint program's Anchor types; public
keys are carried as 32 raw bytes.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar

from borsh_construct import U8, U32, U64, Bool, Bytes, CStruct
from construct import Bytes as FixedBytes
from solders.pubkey import Pubkey

PUBKEY = FixedBytes(32)
BYTES32 = FixedBytes(32)


@dataclass(frozen=True)
class BorshParams:
    """Dataclass with a borsh ``layout`` of the same field names."""

    layout: ClassVar[CStruct]
    pubkey_fields: ClassVar[tuple[str, ...]] = ()

    def encode(self) -> bytes:
        return self.layout.build(self._values())

    def _values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if isinstance(value, Pubkey):
                value = bytes(value)
            elif isinstance(value, BorshParams):
                value = value._values()
            values[field.name] = value
        return values

    @classmethod
    def decode(cls, data: bytes):
        return cls._from_container(cls.layout.parse(data))

    @classmethod
    def _from_container(cls, parsed):
        values = {}
        for field in fields(cls):
            value = parsed[field.name]
            if field.name in cls.pubkey_fields:
                value = Pubkey.from_bytes(value)
            values[field.name] = value
        return cls(**values)


@dataclass(frozen=True)
class RegisterOAppParams(BorshParams):
    layout: ClassVar[CStruct] = CStruct("delegate" / PUBKEY)
    pubkey_fields: ClassVar[tuple[str, ...]] = ("delegate",)

    delegate: Pubkey


@dataclass(frozen=True)
class EndpointSendParams(BorshParams):
    layout: ClassVar[CStruct] = CStruct(
        "dst_eid" / U32,
        "receiver" / BYTES32,
        "message" / Bytes,
        "options" / Bytes,
        "native_fee" / U64,
        "lz_token_fee" / U64,
    )

    dst_eid: int
    receiver: bytes
    message: bytes
    options: bytes
    native_fee: int
    lz_token_fee: int = 0


@dataclass(frozen=True)
class EndpointQuoteParams(BorshParams):
    layout: ClassVar[CStruct] = CStruct(
        "sender" / PUBKEY,
        "dst_eid" / U32,
        "receiver" / BYTES32,
        "message" / Bytes,
        "options" / Bytes,
        "pay_in_lz_token" / Bool,
    )
    pubkey_fields: ClassVar[tuple[str, ...]] = ("sender",)

    sender: Pubkey
    dst_eid: int
    receiver: bytes
    message: bytes
    options: bytes
    pay_in_lz_token: bool = False


@dataclass(frozen=True)
class ClearParams(BorshParams):
    layout: ClassVar[CStruct] = CStruct(
        "receiver" / PUBKEY,
        "src_eid" / U32,
        "sender" / BYTES32,
        "nonce" / U64,
        "guid" / BYTES32,
        "message" / Bytes,
    )
    pubkey_fields: ClassVar[tuple[str, ...]] = ("receiver",)

    receiver: Pubkey
    src_eid: int
    sender: bytes
    nonce: int
    guid: bytes
    message: bytes


@dataclass(frozen=True)
class MessagingFee(BorshParams):
    layout: ClassVar[CStruct] = CStruct("native_fee" / U64, "lz_token_fee" / U64)

    native_fee: int
    lz_token_fee: int = 0


@dataclass(frozen=True)
class MessagingReceipt(BorshParams):
    layout: ClassVar[CStruct] = CStruct(
        "guid" / BYTES32,
        "nonce" / U64,
        "fee" / MessagingFee.layout,
    )

    guid: bytes
    nonce: int
    fee: MessagingFee

    @classmethod
    def _from_container(cls, parsed):
        return cls(
            guid=parsed.guid,
            nonce=parsed.nonce,
            fee=MessagingFee._from_container(parsed.fee),
        )


@dataclass(frozen=True)
class LzReceiveParams(BorshParams):
    """Inbound packet handed to the receiving application."""

    layout: ClassVar[CStruct] = CStruct(
        "src_eid" / U32,
        "sender" / BYTES32,
        "nonce" / U64,
        "guid" / BYTES32,
        "message" / Bytes,
        "extra_data" / Bytes,
    )

    src_eid: int
    sender: bytes
    nonce: int
    guid: bytes
    message: bytes
    extra_data: bytes = b""


@dataclass(frozen=True)
class MessageLibVersion(BorshParams):
    """Return data of a message library's ``version`` instruction."""

    layout: ClassVar[CStruct] = CStruct(
        "major" / U64,
        "minor" / U8,
        "endpoint_version" / U8,
    )

    major: int
    minor: int
    endpoint_version: int

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.endpoint_version)
