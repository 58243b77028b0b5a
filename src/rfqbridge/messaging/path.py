"""Packet path between this program and a remote application."""

from dataclasses import dataclass

from solders.pubkey import Pubkey


def _hex(value: bytes) -> str:
    return "0x" + value.hex()


@dataclass(frozen=True)
class PacketPath:
    """Route of one outbound packet.

    ``sender`` is the hex of the portfolio address (the OApp), ``receiver`` the
    hex of the 32-byte remote peer address.
    """

    src_eid: int
    dst_eid: int
    sender: str
    receiver: str

    @classmethod
    def outbound(cls, src_eid: int, dst_eid: int, oapp: Pubkey, remote: bytes) -> "PacketPath":
        if len(remote) != 32:
            raise ValueError(f"Remote address must be 32 bytes, got {len(remote)}")
        return cls(
            src_eid=src_eid, dst_eid=dst_eid, sender=_hex(bytes(oapp)), receiver=_hex(remote)
        )

    @property
    def sender_bytes(self) -> bytes:
        return bytes.fromhex(self.sender[2:])

    @property
    def receiver_bytes(self) -> bytes:
        return bytes.fromhex(self.receiver[2:])

    @property
    def oapp(self) -> Pubkey:
        return Pubkey.from_bytes(self.sender_bytes)
