"""Message libraries and the accounts their quote and send calls need.

The endpoint routes a packet through the send library configured for
``(oapp, dst_eid)``. Which accounts a quote or a send touches depends on that
library, so the off-ledger client resolves the library first and then builds
both lists. Every list starts with the endpoint program; the settlement
program drops that entry when it builds the endpoint instruction.

Quote accounts for the ULN library are always 18 entries long:

    endpoint program, send library program, send library config,
    default send library config, send library info, endpoint settings, nonce,
    uln settings, send config, default send config, executor program,
    executor config, price feed program, price feed config, dvn program,
    dvn config, dvn price feed program, dvn price feed config
"""

import logging
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Optional

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.config import Settings
from rfqbridge.constants import (
    DVN_CONFIG_SEED,
    ENDPOINT_SEED,
    EVENT_SEED,
    EXECUTOR_CONFIG_SEED,
    MESSAGE_LIB_SEED,
    NONCE_SEED,
    PRICE_FEED_SEED,
    QUOTE_REMAINING_ACCOUNTS_COUNT,
    SEND_CONFIG_SEED,
    SEND_LIBRARY_CONFIG_SEED,
    SIMPLE_MESSAGE_LIB_VERSION,
    SYSTEM_PROGRAM_ID,
    TREASURY_SEED,
    ULN_MESSAGE_LIB_VERSION,
)
from rfqbridge.errors import ConfigurationUnresolved, ErrorCode
from rfqbridge.messaging.path import PacketPath
from rfqbridge.messaging.reader import EndpointStateReader

logger = logging.getLogger(__name__)

SYSTEM_PROGRAM = Pubkey.from_string(SYSTEM_PROGRAM_ID)


def _pda(seeds: list[bytes], program_id: Pubkey) -> Pubkey:
    address, _ = Pubkey.find_program_address(seeds, program_id)
    return address


def _readonly(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=False, is_writable=False)


def _writable(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=False, is_writable=True)


@dataclass(frozen=True)
class WorkerPrograms:
    """Off-chain worker programs a ULN send pays."""

    executor: Pubkey
    dvn: Pubkey
    price_feed: Pubkey

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkerPrograms":
        executor = Pubkey.from_string(settings.executor_program_id)
        dvn = settings.dvn_program_id or settings.executor_program_id
        price_feed = settings.price_feed_program_id or settings.executor_program_id
        return cls(
            executor=executor,
            dvn=Pubkey.from_string(dvn),
            price_feed=Pubkey.from_string(price_feed),
        )


class MessageLib(ABC):
    """A send library program and its account layout."""

    version: ClassVar[tuple[int, int, int]]
    name: ClassVar[str]

    def __init__(self, program_id: Pubkey):
        self.program_id = program_id

    @property
    def settings_account(self) -> Pubkey:
        return _pda([MESSAGE_LIB_SEED], self.program_id)

    @property
    def treasury(self) -> Pubkey:
        return _pda([TREASURY_SEED], self.program_id)

    @property
    def event_authority(self) -> Pubkey:
        return _pda([EVENT_SEED], self.program_id)

    @abstractmethod
    def quote_accounts(self, path: PacketPath) -> list[AccountMeta]:
        """Library part of the quote accounts."""
        pass

    @abstractmethod
    def send_accounts(self, path: PacketPath, payer: Pubkey) -> list[AccountMeta]:
        """Library part of the send accounts."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.program_id})"


class SimpleMessageLib(MessageLib):
    """Fixed-fee library without workers (test networks)."""

    version = SIMPLE_MESSAGE_LIB_VERSION
    name = "simple"

    def quote_accounts(self, path: PacketPath) -> list[AccountMeta]:
        return [_readonly(self.settings_account)]

    def send_accounts(self, path: PacketPath, payer: Pubkey) -> list[AccountMeta]:
        return [
            _readonly(self.settings_account),
            AccountMeta(payer, is_signer=True, is_writable=True),
            _writable(self.treasury),
            _readonly(SYSTEM_PROGRAM),
            _readonly(self.event_authority),
            _readonly(self.program_id),
        ]


class UlnMessageLib(MessageLib):
    """Ultra light node library: executor, DVN and price feed workers."""

    version = ULN_MESSAGE_LIB_VERSION
    name = "uln"

    def __init__(self, program_id: Pubkey, workers: WorkerPrograms):
        super().__init__(program_id)
        self.workers = workers

    def _send_config(self, path: PacketPath) -> Pubkey:
        return _pda(
            [SEND_CONFIG_SEED, struct.pack(">I", path.dst_eid), bytes(path.oapp)], self.program_id
        )

    def _default_send_config(self, path: PacketPath) -> Pubkey:
        return _pda([SEND_CONFIG_SEED, struct.pack(">I", path.dst_eid)], self.program_id)

    def _worker_accounts(self, writable: bool) -> list[AccountMeta]:
        meta = _writable if writable else _readonly
        executor_config = _pda([EXECUTOR_CONFIG_SEED], self.workers.executor)
        dvn_config = _pda([DVN_CONFIG_SEED], self.workers.dvn)
        price_feed_config = _pda([PRICE_FEED_SEED], self.workers.price_feed)
        return [
            _readonly(self.workers.executor),
            meta(executor_config),
            _readonly(self.workers.price_feed),
            _readonly(price_feed_config),
            _readonly(self.workers.dvn),
            meta(dvn_config),
            _readonly(self.workers.price_feed),
            _readonly(price_feed_config),
        ]

    def quote_accounts(self, path: PacketPath) -> list[AccountMeta]:
        return [
            _readonly(self.settings_account),
            _readonly(self._send_config(path)),
            _readonly(self._default_send_config(path)),
            *self._worker_accounts(writable=False),
        ]

    def send_accounts(self, path: PacketPath, payer: Pubkey) -> list[AccountMeta]:
        return [
            _readonly(self.settings_account),
            _readonly(self._send_config(path)),
            _readonly(self._default_send_config(path)),
            AccountMeta(payer, is_signer=True, is_writable=True),
            _writable(self.treasury),
            _readonly(SYSTEM_PROGRAM),
            _readonly(self.event_authority),
            _readonly(self.program_id),
            *self._worker_accounts(writable=True),
        ]


def _endpoint_common(
    endpoint_program: Pubkey, path: PacketPath, lib: MessageLib
) -> list[AccountMeta]:
    dst = struct.pack(">I", path.dst_eid)
    oapp = bytes(path.oapp)
    return [
        _readonly(lib.program_id),
        _readonly(_pda([SEND_LIBRARY_CONFIG_SEED, oapp, dst], endpoint_program)),
        _readonly(_pda([SEND_LIBRARY_CONFIG_SEED, dst], endpoint_program)),
        _readonly(_pda([MESSAGE_LIB_SEED, bytes(lib.settings_account)], endpoint_program)),
        _readonly(_pda([ENDPOINT_SEED], endpoint_program)),
        _writable(_pda([NONCE_SEED, oapp, dst, path.receiver_bytes], endpoint_program)),
    ]


def get_quote_accounts(
    endpoint_program: Pubkey, path: PacketPath, lib: MessageLib
) -> list[AccountMeta]:
    """Accounts to forward for ``quote``, endpoint program first."""
    accounts = [
        _readonly(endpoint_program),
        *_endpoint_common(endpoint_program, path, lib),
        *lib.quote_accounts(path),
    ]
    if isinstance(lib, UlnMessageLib) and len(accounts) != QUOTE_REMAINING_ACCOUNTS_COUNT:
        raise ConfigurationUnresolved(
            ErrorCode.UNSUPPORTED_MESSAGE_LIBRARY,
            f"ULN quote takes {QUOTE_REMAINING_ACCOUNTS_COUNT} accounts, built {len(accounts)}",
        )
    return accounts


def get_send_accounts(
    endpoint_program: Pubkey, path: PacketPath, lib: MessageLib, payer: Pubkey
) -> list[AccountMeta]:
    """Accounts to forward for ``send``, endpoint program first.

    The OApp (portfolio) is listed as a plain account; the program marks it as
    signer when it invokes the endpoint.
    """
    return [
        _readonly(endpoint_program),
        _readonly(path.oapp),
        *_endpoint_common(endpoint_program, path, lib),
        _readonly(_pda([EVENT_SEED], endpoint_program)),
        _readonly(endpoint_program),
        *lib.send_accounts(path, payer),
    ]


async def resolve_send_library(
    reader: EndpointStateReader,
    oapp: Pubkey,
    dst_eid: int,
    payer: Pubkey,
    workers: WorkerPrograms,
) -> MessageLib:
    """Find the send library configured for ``(oapp, dst_eid)``.

    Raises:
        ConfigurationUnresolved: If no library is configured, or the library
            reports a version this client does not know
    """
    lib_program = await reader.get_send_library(oapp, dst_eid)
    if lib_program is None:
        logger.warning(f"No send library for {oapp} -> {dst_eid}")
        raise ConfigurationUnresolved(
            ErrorCode.SEND_LIBRARY_NOT_INITIALIZED, f"oapp={oapp} dst_eid={dst_eid}"
        )

    version = await reader.get_message_lib_version(payer, lib_program)
    version_tuple: Optional[tuple[int, int, int]] = version.as_tuple() if version else None

    if version_tuple == SIMPLE_MESSAGE_LIB_VERSION:
        lib: MessageLib = SimpleMessageLib(lib_program)
    elif version_tuple == ULN_MESSAGE_LIB_VERSION:
        lib = UlnMessageLib(lib_program, workers)
    else:
        raise ConfigurationUnresolved(
            ErrorCode.UNSUPPORTED_MESSAGE_LIBRARY, f"{lib_program} reports {version_tuple}"
        )

    logger.debug(f"Send library for {dst_eid}: {lib}")
    return lib
