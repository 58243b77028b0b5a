"""Messaging endpoint backends.

The settlement program talks to the endpoint only through ``invoke()`` with
a fully built instruction, the way it would make a cross-program call.
``InMemoryEndpoint`` executes those instructions locally for dry runs and
tests, and doubles as the endpoint state reader the client resolves send
libraries with.
"""

import logging
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from rfqbridge.constants import ENDPOINT_CLEAR, ENDPOINT_QUOTE, ENDPOINT_SEND, REGISTER_OAPP
from rfqbridge.crypto import keccak256
from rfqbridge.errors import AccessDenied, ErrorCode, InvalidInput, NotFound, ReplayRejected
from rfqbridge.messaging.cpi import DISCRIMINATOR_SIZE, instruction_discriminator
from rfqbridge.messaging.params import (
    ClearParams,
    EndpointQuoteParams,
    EndpointSendParams,
    LzReceiveParams,
    MessageLibVersion,
    MessagingFee,
    MessagingReceipt,
    RegisterOAppParams,
)
from rfqbridge.messaging.reader import EndpointStateReader

logger = logging.getLogger(__name__)


def packet_guid(nonce: int, src_eid: int, sender: bytes, dst_eid: int, receiver: bytes) -> bytes:
    """Global packet id: keccak256(nonce || src_eid || sender || dst_eid || receiver)."""
    return keccak256(
        struct.pack(">Q", nonce),
        struct.pack(">I", src_eid),
        sender,
        struct.pack(">I", dst_eid),
        receiver,
    )


class MessagingEndpoint(ABC):
    """Executes endpoint instructions on behalf of the program."""

    def __init__(self, program_id: Pubkey):
        self.program_id = program_id

    @abstractmethod
    async def invoke(self, instruction: Instruction) -> bytes:
        """Execute ``instruction`` and return its return data."""
        pass

    def checkpoint(self) -> Any:
        """State to hand back to ``restore`` if the calling instruction fails.

        Endpoints whose state lives on the ledger roll back with it and keep
        nothing here.
        """
        return None

    def restore(self, checkpoint: Any) -> None:
        pass


@dataclass(frozen=True)
class SentPacket:
    guid: bytes
    nonce: int
    sender: Pubkey
    dst_eid: int
    receiver: bytes
    message: bytes
    options: bytes
    fee: MessagingFee


@dataclass(frozen=True)
class EndpointCheckpoint:
    delegates: dict[Pubkey, Pubkey]
    sent: int
    cleared: int
    outbound_nonces: dict[tuple[Pubkey, int, bytes], int]
    verified: dict[tuple[Pubkey, int, bytes, int], bytes]


class InMemoryEndpoint(MessagingEndpoint, EndpointStateReader):
    """Local endpoint: registers OApps, quotes flat fees, records sends.

    Inbound packets must be verified with ``verify_packet`` (or produced by
    ``inbound_packet``) before the receiver can clear them, and each one
    clears once.
    """

    def __init__(
        self, program_id: Pubkey, eid: int, native_fee: int = 1_000, lz_token_fee: int = 0
    ):
        super().__init__(program_id)
        self.eid = eid
        self.native_fee = native_fee
        self.lz_token_fee = lz_token_fee
        self.delegates: dict[Pubkey, Pubkey] = {}
        self.sent: list[SentPacket] = []
        self.cleared: list[ClearParams] = []
        self._outbound_nonces: dict[tuple[Pubkey, int, bytes], int] = {}
        self._inbound_nonces: dict[tuple[Pubkey, int, bytes], int] = {}
        self._verified: dict[tuple[Pubkey, int, bytes, int], bytes] = {}
        self._send_libraries: dict[tuple[Optional[Pubkey], int], Pubkey] = {}
        self._versions: dict[Pubkey, MessageLibVersion] = {}
        self._handlers = {
            instruction_discriminator(REGISTER_OAPP): self._register_oapp,
            instruction_discriminator(ENDPOINT_QUOTE): self._quote,
            instruction_discriminator(ENDPOINT_SEND): self._send,
            instruction_discriminator(ENDPOINT_CLEAR): self._clear,
        }

    async def invoke(self, instruction: Instruction) -> bytes:
        if instruction.program_id != self.program_id:
            raise AccessDenied(ErrorCode.INVALID_LZ_PROGRAM, str(instruction.program_id))
        data = bytes(instruction.data)
        handler = self._handlers.get(data[:DISCRIMINATOR_SIZE])
        if handler is None:
            raise InvalidInput(ErrorCode.UNSUPPORTED_TRANSACTION, data[:DISCRIMINATOR_SIZE].hex())
        return handler(instruction, data[DISCRIMINATOR_SIZE:])

    def checkpoint(self) -> EndpointCheckpoint:
        """Snapshot the state instructions mutate: registrations, sends and clears."""
        return EndpointCheckpoint(
            delegates=dict(self.delegates),
            sent=len(self.sent),
            cleared=len(self.cleared),
            outbound_nonces=dict(self._outbound_nonces),
            verified=dict(self._verified),
        )

    def restore(self, checkpoint: EndpointCheckpoint) -> None:
        """Undo everything invoked since ``checkpoint``."""
        undone = len(self.sent) - checkpoint.sent + len(self.cleared) - checkpoint.cleared
        self.delegates = dict(checkpoint.delegates)
        del self.sent[checkpoint.sent :]
        del self.cleared[checkpoint.cleared :]
        self._outbound_nonces = dict(checkpoint.outbound_nonces)
        self._verified = dict(checkpoint.verified)
        if undone:
            logger.info(f"Endpoint restored: {undone} send(s)/clear(s) undone")

    @staticmethod
    def _first_signer(instruction: Instruction) -> Pubkey:
        for meta in instruction.accounts:
            if meta.is_signer:
                return meta.pubkey
        raise AccessDenied(ErrorCode.UNAUTHORIZED_SIGNER, "no signing account")

    def _register_oapp(self, instruction: Instruction, data: bytes) -> bytes:
        params = RegisterOAppParams.decode(data)
        oapp = self._first_signer(instruction)
        if oapp in self.delegates:
            raise ReplayRejected(ErrorCode.MAP_ENTRY_ALREADY_CREATED, f"oapp {oapp} registered")
        self.delegates[oapp] = params.delegate
        logger.info(f"Registered OApp {oapp} (delegate {params.delegate})")
        return b""

    def _quote(self, instruction: Instruction, data: bytes) -> bytes:
        params = EndpointQuoteParams.decode(data)
        if params.sender not in self.delegates:
            raise NotFound(ErrorCode.LZ_QUOTE_ERROR, f"oapp {params.sender} not registered")
        return MessagingFee(native_fee=self.native_fee, lz_token_fee=self.lz_token_fee).encode()

    def _send(self, instruction: Instruction, data: bytes) -> bytes:
        params = EndpointSendParams.decode(data)
        sender = self._first_signer(instruction)
        if sender not in self.delegates:
            raise AccessDenied(ErrorCode.LZ_SEND_ERROR, f"oapp {sender} not registered")
        if params.lz_token_fee:
            raise InvalidInput(ErrorCode.POSITIVE_LZ_TOKEN_FEE)
        if params.native_fee < self.native_fee:
            raise InvalidInput(
                ErrorCode.LZ_SEND_ERROR, f"fee {params.native_fee} below {self.native_fee}"
            )

        path = (sender, params.dst_eid, params.receiver)
        nonce = self._outbound_nonces.get(path, 0) + 1
        self._outbound_nonces[path] = nonce
        guid = packet_guid(nonce, self.eid, bytes(sender), params.dst_eid, params.receiver)
        fee = MessagingFee(native_fee=params.native_fee, lz_token_fee=0)

        self.sent.append(
            SentPacket(
                guid=guid,
                nonce=nonce,
                sender=sender,
                dst_eid=params.dst_eid,
                receiver=params.receiver,
                message=params.message,
                options=params.options,
                fee=fee,
            )
        )
        logger.info(f"Sent packet {guid.hex()[:16]} nonce={nonce} to {params.dst_eid}")
        return MessagingReceipt(guid=guid, nonce=nonce, fee=fee).encode()

    def _clear(self, instruction: Instruction, data: bytes) -> bytes:
        params = ClearParams.decode(data)
        key = (params.receiver, params.src_eid, params.sender, params.nonce)
        expected = self._verified.get(key)
        if expected is None or expected != keccak256(params.guid, params.message):
            raise NotFound(
                ErrorCode.PAYLOAD_NOT_VERIFIED, f"nonce {params.nonce} from {params.src_eid}"
            )
        del self._verified[key]
        self.cleared.append(params)
        return b""

    def verify_packet(
        self, receiver: Pubkey, src_eid: int, sender: bytes, nonce: int, guid: bytes, message: bytes
    ) -> None:
        """Record an inbound payload hash, as the verifier network would."""
        self._verified[(receiver, src_eid, sender, nonce)] = keccak256(guid, message)

    def inbound_packet(
        self, receiver: Pubkey, src_eid: int, sender: bytes, message: bytes
    ) -> LzReceiveParams:
        """Verify the next inbound packet on a path and return its receive params."""
        path = (receiver, src_eid, sender)
        nonce = self._inbound_nonces.get(path, 0) + 1
        self._inbound_nonces[path] = nonce
        guid = packet_guid(nonce, src_eid, sender, self.eid, bytes(receiver))
        self.verify_packet(receiver, src_eid, sender, nonce, guid, message)
        return LzReceiveParams(
            src_eid=src_eid, sender=sender, nonce=nonce, guid=guid, message=message
        )

    # Endpoint state
    def set_send_library(self, oapp: Optional[Pubkey], dst_eid: int, lib_program: Pubkey) -> None:
        """Configure a send library; ``oapp=None`` sets the endpoint default."""
        self._send_libraries[(oapp, dst_eid)] = lib_program

    def set_message_lib_version(self, lib_program: Pubkey, version: tuple[int, int, int]) -> None:
        major, minor, endpoint_version = version
        self._versions[lib_program] = MessageLibVersion(
            major=major, minor=minor, endpoint_version=endpoint_version
        )

    async def get_send_library(self, oapp: Pubkey, dst_eid: int) -> Optional[Pubkey]:
        configured = self._send_libraries.get((oapp, dst_eid))
        return configured or self._send_libraries.get((None, dst_eid))

    async def get_message_lib_version(
        self, payer: Pubkey, lib_program: Pubkey
    ) -> Optional[MessageLibVersion]:
        return self._versions.get(lib_program)
