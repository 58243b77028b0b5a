"""XFER cross-ledger message codec.

Outbound messages (to the EVM side) are four 32-byte slots::

    slot0  custom_data(18) | timestamp u32 | nonce u64 | tx u8 | msg_type u8
    slot1  trader
    slot2  symbol (zero padded)
    slot3  quantity as a big-endian uint256

Inbound messages carry the token mint instead of the symbol and an 8-byte
quantity, 104 bytes in total.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

from solders.pubkey import Pubkey

from rfqbridge.constants import (
    AIRDROP_FLAG,
    CUSTOM_DATA_SIZE,
    NONCE_SIZE,
    XFER_SIZE,
)
from rfqbridge.errors import ErrorCode, InvalidInput

_SLOT0 = struct.Struct(">18sIQBB")


class Tx(IntEnum):
    """Portfolio transaction types."""

    WITHDRAW = 0
    DEPOSIT = 1
    EXECUTION = 2
    INCREASE_AVAIL = 3
    DECREASE_AVAIL = 4
    IXFER_SENT = 5
    IXFER_REC = 6
    RECOVER_FUNDS = 7
    ADD_GAS = 8
    REMOVE_GAS = 9
    AUTO_FILL = 10
    CC_TRADE = 11
    CONVERT_FROM = 12
    CONVERT_TO = 13


class XChainMsgType(IntEnum):
    XFER = 0


def nonce_to_custom_data(nonce: bytes) -> bytes:
    """18-byte custom data: six zero bytes followed by the order nonce."""
    if len(nonce) != NONCE_SIZE:
        raise InvalidInput(
            ErrorCode.XFER_ERROR, f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}"
        )
    return bytes(CUSTOM_DATA_SIZE - NONCE_SIZE) + nonce


def custom_data_to_nonce(custom_data: bytes) -> bytes:
    return bytes(custom_data[CUSTOM_DATA_SIZE - NONCE_SIZE:CUSTOM_DATA_SIZE])


def wants_airdrop(custom_data: bytes) -> bool:
    """The most significant bit of the custom data requests a gas airdrop."""
    return bool(custom_data[0] & AIRDROP_FLAG)


def _pack_slot0(
    custom_data: bytes, timestamp: int, nonce: int, tx: Tx, msg_type: XChainMsgType
) -> bytes:
    if len(custom_data) != CUSTOM_DATA_SIZE:
        raise InvalidInput(ErrorCode.XFER_ERROR, f"custom data must be {CUSTOM_DATA_SIZE} bytes")
    try:
        return _SLOT0.pack(custom_data, timestamp, nonce, int(tx), int(msg_type))
    except struct.error as e:
        raise InvalidInput(ErrorCode.XFER_ERROR, f"timestamp or nonce out of range: {e}") from e


def _unpack_enum(enum_cls, value: int):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise InvalidInput(ErrorCode.XFER_ERROR, f"unknown {enum_cls.__name__} {value}") from e


@dataclass(frozen=True)
class XFER:
    """Outbound message."""

    transaction: Tx
    trader: bytes
    symbol: bytes
    quantity: int
    timestamp: int
    custom_data: bytes
    nonce: int
    message_type: XChainMsgType = XChainMsgType.XFER

    def pack(self) -> bytes:
        if len(self.trader) != 32 or len(self.symbol) != 32:
            raise InvalidInput(ErrorCode.XFER_ERROR, "trader and symbol must be 32 bytes")
        if not 0 <= self.quantity < 1 << 256:
            raise InvalidInput(ErrorCode.XFER_ERROR, f"quantity {self.quantity} out of range")
        slot0 = _pack_slot0(
            self.custom_data, self.timestamp, self.nonce, self.transaction, self.message_type
        )
        quantity = self.quantity.to_bytes(32, "big")
        return slot0 + self.trader + self.symbol + quantity


@dataclass(frozen=True)
class XFERSolana:
    """Inbound message addressed to this ledger."""

    transaction: Tx
    trader: Pubkey
    token_mint: Pubkey
    quantity: int
    timestamp: int
    custom_data: bytes
    nonce: int
    message_type: XChainMsgType = XChainMsgType.XFER

    @property
    def order_nonce(self) -> bytes:
        return custom_data_to_nonce(self.custom_data)

    @property
    def wants_airdrop(self) -> bool:
        return wants_airdrop(self.custom_data)

    def pack(self) -> bytes:
        slot0 = _pack_slot0(
            self.custom_data, self.timestamp, self.nonce, self.transaction, self.message_type
        )
        if not 0 <= self.quantity < 1 << 64:
            raise InvalidInput(ErrorCode.XFER_ERROR, f"quantity {self.quantity} out of range")
        quantity = struct.pack(">Q", self.quantity)
        return slot0 + bytes(self.trader) + bytes(self.token_mint) + quantity

    @classmethod
    def unpack(cls, payload: bytes) -> "XFERSolana":
        """Decode an inbound message.

        Raises:
            InvalidInput: If the payload is not exactly 104 bytes or carries an
                unknown transaction or message type
        """
        if len(payload) != XFER_SIZE:
            raise InvalidInput(
                ErrorCode.XFER_ERROR, f"expected {XFER_SIZE} bytes, got {len(payload)}"
            )
        custom_data, timestamp, nonce, tx, msg_type = _SLOT0.unpack(payload[0:32])
        return cls(
            transaction=_unpack_enum(Tx, tx),
            trader=Pubkey.from_bytes(payload[32:64]),
            token_mint=Pubkey.from_bytes(payload[64:96]),
            quantity=struct.unpack(">Q", payload[96:104])[0],
            timestamp=timestamp,
            custom_data=custom_data,
            nonce=nonce,
            message_type=_unpack_enum(XChainMsgType, msg_type),
        )
