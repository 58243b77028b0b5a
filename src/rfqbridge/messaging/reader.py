"""Reading messaging endpoint state.

The send library of an OApp is stored by the endpoint in a
``SendLibraryConfig`` account (8-byte discriminator, then the library's
``MessageLib`` settings address). The settings account is owned by the
library program, which is what the client needs. A library reports its
version through a read-only ``version`` instruction, read here by simulation.
"""

import base64
import logging
import struct
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from rfqbridge.constants import SEND_LIBRARY_CONFIG_SEED
from rfqbridge.errors import ConfigurationUnresolved, ErrorCode
from rfqbridge.messaging.cpi import instruction_discriminator
from rfqbridge.messaging.params import MessageLibVersion

logger = logging.getLogger(__name__)

ACCOUNT_DISCRIMINATOR_SIZE = 8


class EndpointStateReader(ABC):
    """Read access to the endpoint's library configuration."""

    @abstractmethod
    async def get_send_library(self, oapp: Pubkey, dst_eid: int) -> Optional[Pubkey]:
        """Program id of the send library for ``(oapp, dst_eid)``, or None."""
        pass

    @abstractmethod
    async def get_message_lib_version(
        self, payer: Pubkey, lib_program: Pubkey
    ) -> Optional[MessageLibVersion]:
        pass


def send_library_config_address(
    endpoint_program: Pubkey, oapp: Optional[Pubkey], dst_eid: int
) -> Pubkey:
    """OApp-specific config when ``oapp`` is given, else the endpoint default."""
    seeds = [SEND_LIBRARY_CONFIG_SEED]
    if oapp is not None:
        seeds.append(bytes(oapp))
    seeds.append(struct.pack(">I", dst_eid))
    address, _ = Pubkey.find_program_address(seeds, endpoint_program)
    return address


class RpcEndpointReader(EndpointStateReader):
    """Reads endpoint state from a Solana JSON-RPC node."""

    def __init__(
        self,
        rpc_url: str,
        endpoint_program: Pubkey,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.endpoint_program = endpoint_program
        self.timeout = timeout
        self.transport = transport

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} failed: {e}")
            raise ConfigurationUnresolved(ErrorCode.ENDPOINT_STATE_UNAVAILABLE, str(e)) from e

        if "error" in data:
            logger.error(f"RPC {method} error: {data['error']}")
            raise ConfigurationUnresolved(
                ErrorCode.ENDPOINT_STATE_UNAVAILABLE, str(data["error"].get("message"))
            )
        return data.get("result")

    async def _get_account(self, address: Pubkey) -> Optional[dict]:
        result = await self._call("getAccountInfo", [str(address), {"encoding": "base64"}])
        if not result or result.get("value") is None:
            return None
        return result["value"]

    @staticmethod
    def _account_data(account: dict) -> bytes:
        return base64.b64decode(account["data"][0])

    async def _configured_settings_account(self, oapp: Pubkey, dst_eid: int) -> Optional[Pubkey]:
        for owner in (oapp, None):
            address = send_library_config_address(self.endpoint_program, owner, dst_eid)
            account = await self._get_account(address)
            if account is None:
                continue
            data = self._account_data(account)
            start = ACCOUNT_DISCRIMINATOR_SIZE
            message_lib = Pubkey.from_bytes(data[start:start + 32])
            if message_lib != Pubkey.default():
                return message_lib
        return None

    async def get_send_library(self, oapp: Pubkey, dst_eid: int) -> Optional[Pubkey]:
        settings_account = await self._configured_settings_account(oapp, dst_eid)
        if settings_account is None:
            return None
        account = await self._get_account(settings_account)
        if account is None:
            return None
        return Pubkey.from_string(account["owner"])

    async def get_message_lib_version(
        self, payer: Pubkey, lib_program: Pubkey
    ) -> Optional[MessageLibVersion]:
        instruction = Instruction(lib_program, instruction_discriminator("version"), [])
        message = Message.new_with_blockhash([instruction], payer, Hash.default())
        tx = Transaction.new_unsigned(message)
        encoded = base64.b64encode(bytes(tx)).decode()

        result = await self._call(
            "simulateTransaction",
            [
                encoded,
                {"encoding": "base64", "sigVerify": False, "replaceRecentBlockhash": True},
            ],
        )
        value = (result or {}).get("value") or {}
        if value.get("err") is not None:
            logger.warning(f"version() of {lib_program} failed: {value['err']}")
            return None
        return_data = value.get("returnData")
        if not return_data:
            return None
        return MessageLibVersion.decode(base64.b64decode(return_data["data"][0]))
