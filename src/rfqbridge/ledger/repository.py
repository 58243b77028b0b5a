"""Repository for settlement ledger operations."""

import logging
from typing import Any, Optional

from solders.pubkey import Pubkey
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rfqbridge.addressing import DerivedAddress, associated_token_address, is_native
from rfqbridge.errors import ErrorCode, InsufficientFunds, NotFound, ReplayRejected
from rfqbridge.ledger.models import (
    AccountKind,
    BalanceMovement,
    ProgramAccount,
    ProgramEvent,
    TokenAccount,
)

logger = logging.getLogger(__name__)


class LedgerRepository:
    """Repository for all ledger-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Keyed store
    async def get_account(self, derived: DerivedAddress) -> Optional[ProgramAccount]:
        """Get the account at a derived address, if it exists."""
        return await self.session.get(ProgramAccount, str(derived.address))

    async def exists(self, derived: DerivedAddress) -> bool:
        return await self.get_account(derived) is not None

    async def create_account(
        self,
        derived: DerivedAddress,
        kind: AccountKind,
        data: Optional[dict[str, Any]] = None,
    ) -> ProgramAccount:
        """Create the account at ``derived``. Raises ReplayRejected if it exists.

        A concurrent create that wins the race surfaces here as an
        IntegrityError on flush and is reported the same way.
        """
        if await self.get_account(derived) is not None:
            raise ReplayRejected(
                ErrorCode.MAP_ENTRY_ALREADY_CREATED,
                address=str(derived.address),
                seeds=derived.describe(),
            )

        account = ProgramAccount(
            address=str(derived.address),
            seed=derived.tag,
            seeds=derived.describe(),
            bump=derived.bump,
            kind=kind.value,
            data=data or {},
        )
        self.session.add(account)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ReplayRejected(
                ErrorCode.MAP_ENTRY_ALREADY_CREATED,
                address=str(derived.address),
                seeds=derived.describe(),
            ) from e
        return account

    async def require_account(
        self,
        derived: DerivedAddress,
        code: ErrorCode = ErrorCode.MAP_ENTRY_NON_EXISTENT,
    ) -> ProgramAccount:
        """Get the account at ``derived`` or raise NotFound with ``code``."""
        account = await self.get_account(derived)
        if account is None:
            raise NotFound(code, address=str(derived.address), seeds=derived.describe())
        return account

    async def update_account(self, account: ProgramAccount, **changes: Any) -> ProgramAccount:
        # JSON columns are not mutation-tracked, so assign a new dict
        account.data = {**account.data, **changes}
        await self.session.flush()
        return account

    async def close_account(self, derived: DerivedAddress) -> ProgramAccount:
        """Delete the account at ``derived`` and return its last state."""
        account = await self.require_account(derived)
        await self.session.delete(account)
        await self.session.flush()
        return account

    async def list_accounts(self, kind: AccountKind) -> list[ProgramAccount]:
        stmt = (
            select(ProgramAccount)
            .where(ProgramAccount.kind == kind.value)
            .order_by(ProgramAccount.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Balance operations
    @staticmethod
    def token_account_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
        """Where ``owner`` holds ``mint``: its own address for the native asset."""
        if is_native(mint):
            return owner
        return associated_token_address(owner, mint)

    async def get_token_account(self, owner: Pubkey, mint: Pubkey) -> Optional[TokenAccount]:
        stmt = select(TokenAccount).where(
            TokenAccount.owner == str(owner), TokenAccount.mint == str(mint)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def open_token_account(self, owner: Pubkey, mint: Pubkey) -> TokenAccount:
        """Get or create the token account of ``owner`` for ``mint``."""
        account = await self.get_token_account(owner, mint)
        if account is None:
            account = TokenAccount(
                address=str(self.token_account_address(owner, mint)),
                owner=str(owner),
                mint=str(mint),
                amount=0,
            )
            self.session.add(account)
            await self.session.flush()
        return account

    async def balance_of(self, owner: Pubkey, mint: Pubkey) -> int:
        account = await self.get_token_account(owner, mint)
        return account.amount if account is not None else 0

    async def credit(self, owner: Pubkey, mint: Pubkey, amount: int, reason: str) -> TokenAccount:
        """Add funds arriving from outside the ledger."""
        account = await self.open_token_account(owner, mint)
        account.amount += amount
        self.session.add(
            BalanceMovement(
                source=None,
                destination=account.address,
                mint=str(mint),
                amount=amount,
                reason=reason,
            )
        )
        await self.session.flush()
        return account

    async def transfer(
        self,
        source: Pubkey,
        destination: Pubkey,
        mint: Pubkey,
        amount: int,
        reason: str,
        keep: int = 0,
    ) -> TokenAccount:
        """Move ``amount`` of ``mint`` from ``source`` to ``destination``.

        ``keep`` is a floor the source must retain after the transfer (native
        vaults keep their rent-exempt minimum).

        Raises:
            InsufficientFunds: If the source holds less than ``amount + keep``
        """
        src = await self.open_token_account(source, mint)
        if src.amount < amount + keep:
            code = (
                ErrorCode.NOT_ENOUGH_NATIVE_BALANCE
                if is_native(mint)
                else ErrorCode.NOT_ENOUGH_SPL_TOKEN_BALANCE
            )
            raise InsufficientFunds(
                code,
                f"have {src.amount}, need {amount + keep}",
                address=src.address,
                seeds=f"{src.owner}/{src.mint}",
            )

        dst = await self.open_token_account(destination, mint)
        src.amount -= amount
        dst.amount += amount
        self.session.add(
            BalanceMovement(
                source=src.address,
                destination=dst.address,
                mint=str(mint),
                amount=amount,
                reason=reason,
            )
        )
        await self.session.flush()
        logger.debug(f"{reason}: {amount} {mint} {src.owner} -> {dst.owner}")
        return dst

    async def get_all_token_accounts(self) -> list[TokenAccount]:
        result = await self.session.execute(select(TokenAccount).order_by(TokenAccount.address))
        return list(result.scalars().all())

    async def get_journal_net(self) -> dict[str, int]:
        """Net journaled flow per token account address (in minus out)."""
        net: dict[str, int] = {}

        inflow = await self.session.execute(
            select(BalanceMovement.destination, func.sum(BalanceMovement.amount)).group_by(
                BalanceMovement.destination
            )
        )
        for address, total in inflow.all():
            net[address] = net.get(address, 0) + int(total)

        outflow = await self.session.execute(
            select(BalanceMovement.source, func.sum(BalanceMovement.amount))
            .where(BalanceMovement.source.is_not(None))
            .group_by(BalanceMovement.source)
        )
        for address, total in outflow.all():
            net[address] = net.get(address, 0) - int(total)

        return net

    # Events
    async def record_event(self, name: str, payload: dict[str, Any]) -> ProgramEvent:
        event = ProgramEvent(name=name, payload=payload)
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(self, name: Optional[str] = None) -> list[ProgramEvent]:
        stmt = select(ProgramEvent).order_by(ProgramEvent.id)
        if name is not None:
            stmt = stmt.where(ProgramEvent.name == name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
