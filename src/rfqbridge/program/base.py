"""Shared state and gates of the settlement program.

An instruction is a coroutine on ``SettlementProgram`` that takes the signing
account as its first argument. It runs against one ``LedgerRepository``, i.e.
one database transaction, and either returns or raises a ``SettlementError``;
the caller owns the transaction and rolls it back on error.
"""

import logging
import time
from typing import Callable, Optional, Sequence

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.addressing import DerivedAddress, PdaDeriver, is_native
from rfqbridge.config import Settings, get_settings
from rfqbridge.constants import CUSTOM_DATA_SIZE, QUOTE_REMAINING_ACCOUNTS_COUNT
from rfqbridge.errors import (
    AccessDenied,
    ErrorCode,
    InsufficientFunds,
    InvalidInput,
    StateGate,
)
from rfqbridge.ledger.models import ProgramAccount
from rfqbridge.ledger.repository import LedgerRepository
from rfqbridge.messaging.adapter import CrossLedgerMessenger
from rfqbridge.messaging.params import MessagingReceipt
from rfqbridge.signing.base import SignatureVerifier
from rfqbridge.state import GlobalConfig, Record, Remote, TokenList
from rfqbridge.xfer import XFER, Tx

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def unix_now() -> int:
    return int(time.time())


class ProgramBase:
    """Context every instruction group works with."""

    def __init__(
        self,
        repo: LedgerRepository,
        messenger: CrossLedgerMessenger,
        verifier: SignatureVerifier,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or get_settings()
        self.repo = repo
        self.messenger = messenger
        self.verifier = verifier
        self.pda = PdaDeriver(self.settings.program_id)
        self.clock = clock or unix_now

    @property
    def program_id(self) -> Pubkey:
        return self.pda.program_id

    @property
    def portfolio(self) -> Pubkey:
        """The program's messaging identity (OApp)."""
        return self.pda.portfolio().address

    @property
    def native_threshold(self) -> int:
        return self.settings.native_vault_min_threshold

    # Records
    async def create_record(self, derived: DerivedAddress, record: Record) -> ProgramAccount:
        return await self.repo.create_account(derived, record.kind, record.to_data())

    async def save_record(self, account: ProgramAccount, record: Record) -> ProgramAccount:
        return await self.repo.update_account(account, **record.to_data())

    async def load_config(self) -> tuple[ProgramAccount, GlobalConfig]:
        derived = self.pda.portfolio()
        account = await self.repo.require_account(derived, ErrorCode.NOT_INITIALIZED)
        return account, GlobalConfig.from_account(account)

    async def load_remote(self, dst_eid: int) -> Remote:
        account = await self.repo.require_account(self.pda.remote(dst_eid))
        return Remote.from_account(account)

    async def load_token_list(self) -> tuple[ProgramAccount, TokenList]:
        account = await self.repo.require_account(
            self.pda.token_list(), ErrorCode.NOT_INITIALIZED
        )
        return account, TokenList.from_account(account)

    async def is_token_supported(self, mint: Pubkey) -> bool:
        _, token_list = await self.load_token_list()
        return str(mint) in token_list.tokens

    # Gates
    def check_endpoint(self, config: GlobalConfig) -> None:
        if config.endpoint_pubkey != self.messenger.endpoint.program_id:
            raise AccessDenied(
                ErrorCode.INVALID_LZ_PROGRAM, f"configured {config.endpoint}"
            )

    @staticmethod
    def check_not_paused(config: GlobalConfig) -> None:
        if config.program_paused:
            logger.warning("Instruction refused: program paused")
            raise StateGate(ErrorCode.PROGRAM_PAUSED)

    @staticmethod
    def check_not_zero(account: Pubkey) -> None:
        if account == Pubkey.default():
            raise InvalidInput(ErrorCode.ZERO_ACCOUNT)

    @staticmethod
    def check_quantity(amount: int) -> None:
        if amount <= 0:
            raise InvalidInput(ErrorCode.ZERO_TOKEN_QUANTITY, f"amount={amount}")

    async def is_admin(self, account: Pubkey) -> bool:
        return await self.repo.exists(self.pda.admin(account))

    async def is_rebalancer(self, account: Pubkey) -> bool:
        return await self.repo.exists(self.pda.rebalancer(account))

    async def is_banned(self, account: Pubkey) -> bool:
        return await self.repo.exists(self.pda.banned(account))

    async def require_admin(self, signer: Pubkey) -> None:
        if not await self.is_admin(signer):
            logger.warning(f"{signer} is not an admin")
            raise AccessDenied(ErrorCode.UNAUTHORIZED_SIGNER, f"{signer} is not an admin")

    async def require_rebalancer(self, signer: Pubkey) -> None:
        if not await self.is_rebalancer(signer):
            logger.warning(f"{signer} is not a rebalancer")
            raise AccessDenied(ErrorCode.UNAUTHORIZED_SIGNER, f"{signer} is not a rebalancer")

    async def require_not_banned(self, account: Pubkey) -> None:
        if await self.is_banned(account):
            logger.warning(f"Banned account {account} refused")
            raise AccessDenied(ErrorCode.ACCOUNT_BANNED, str(account))

    async def require_balance(self, owner: Pubkey, mint: Pubkey, amount: int) -> None:
        """Fail early when ``owner`` cannot cover ``amount`` of ``mint``."""
        balance = await self.repo.balance_of(owner, mint)
        if balance < amount:
            code = (
                ErrorCode.NOT_ENOUGH_NATIVE_BALANCE
                if is_native(mint)
                else ErrorCode.NOT_ENOUGH_SPL_TOKEN_BALANCE
            )
            raise InsufficientFunds(code, f"{owner} has {balance}, needs {amount}")

    # Messaging
    async def send_xfer(
        self,
        payer: Pubkey,
        dst_eid: int,
        transaction: Tx,
        trader: bytes,
        symbol: bytes,
        quantity: int,
        remaining_accounts: Sequence[AccountMeta],
        custom_data: bytes = bytes(CUSTOM_DATA_SIZE),
        timestamp: Optional[int] = None,
        quote_accounts_len: int = QUOTE_REMAINING_ACCOUNTS_COUNT,
    ) -> MessagingReceipt:
        """Send an XFER to the remote peer of ``dst_eid`` and bump ``out_nonce``.

        ``payer`` pays the quoted messaging fee.
        """
        if quantity <= 0:
            raise InvalidInput(ErrorCode.ZERO_XFER_AMOUNT, f"quantity={quantity}")
        account, config = await self.load_config()
        remote = await self.load_remote(dst_eid)
        xfer = XFER(
            transaction=transaction,
            trader=trader,
            symbol=symbol,
            quantity=quantity,
            timestamp=self.clock() if timestamp is None else timestamp,
            custom_data=custom_data,
            nonce=config.out_nonce,
        )
        receipt = await self.messenger.send(
            self.portfolio,
            payer,
            dst_eid,
            remote.address_bytes,
            xfer.pack(),
            remaining_accounts,
            quote_accounts_len,
        )
        config.out_nonce += 1
        await self.save_record(account, config)
        logger.info(f"XFER {transaction.name} #{xfer.nonce} sent to {dst_eid}")
        return receipt
