"""Roles and bans.

Admins, rebalancers and banned accounts are three independent keyed sets:
membership is the existence of a record at ``derive(<role seed>, account)``.
A banned account never holds a role.
"""

import logging

from solders.pubkey import Pubkey

from rfqbridge.constants import ADMIN_ROLE, REBALANCER_ROLE
from rfqbridge.errors import AccessDenied, ErrorCode
from rfqbridge.events import BanStatusChanged, RoleGranted, RoleRevoked, emit
from rfqbridge.program.base import ProgramBase
from rfqbridge.state import AdminRecord, BannedAccount, BanReason, RebalancerRecord

logger = logging.getLogger(__name__)


class AccessControl(ProgramBase):
    async def _check_grantable(self, account: Pubkey) -> None:
        self.check_not_zero(account)
        if await self.is_banned(account):
            raise AccessDenied(ErrorCode.ROLE_CONFLICT, f"{account} is banned")

    async def add_admin(self, signer: Pubkey, account: Pubkey) -> None:
        await self.require_admin(signer)
        await self._check_grantable(account)
        await self.create_record(self.pda.admin(account), AdminRecord(account=str(account)))
        logger.info(f"Admin role granted to {account} by {signer}")
        await emit(self.repo, RoleGranted(role=ADMIN_ROLE.hex(), account=str(account)))

    async def remove_admin(self, signer: Pubkey, account: Pubkey) -> None:
        await self.require_admin(signer)
        self.check_not_zero(account)
        await self.repo.close_account(self.pda.admin(account))
        logger.info(f"Admin role revoked from {account} by {signer}")
        await emit(self.repo, RoleRevoked(role=ADMIN_ROLE.hex(), account=str(account)))

    async def add_rebalancer(self, signer: Pubkey, account: Pubkey) -> None:
        await self.require_admin(signer)
        await self._check_grantable(account)
        await self.create_record(
            self.pda.rebalancer(account), RebalancerRecord(account=str(account))
        )
        logger.info(f"Rebalancer role granted to {account} by {signer}")
        await emit(self.repo, RoleGranted(role=REBALANCER_ROLE.hex(), account=str(account)))

    async def remove_rebalancer(self, signer: Pubkey, account: Pubkey) -> None:
        await self.require_admin(signer)
        self.check_not_zero(account)
        await self.repo.close_account(self.pda.rebalancer(account))
        logger.info(f"Rebalancer role revoked from {account} by {signer}")
        await emit(self.repo, RoleRevoked(role=REBALANCER_ROLE.hex(), account=str(account)))

    async def ban_account(self, signer: Pubkey, account: Pubkey, reason: BanReason) -> None:
        """Ban ``account`` from depositing.

        Raises:
            AccessDenied: If ``account`` currently holds a role
            ReplayRejected: If it is already banned
        """
        await self.require_admin(signer)
        self.check_not_zero(account)
        if await self.is_admin(account) or await self.is_rebalancer(account):
            raise AccessDenied(ErrorCode.ROLE_CONFLICT, f"{account} holds a role")

        await self.create_record(
            self.pda.banned(account), BannedAccount(account=str(account), reason=reason)
        )
        logger.info(f"Banned {account}: {reason.value}")
        await emit(
            self.repo, BanStatusChanged(account=str(account), reason=reason, banned=True)
        )

    async def unban_account(self, signer: Pubkey, account: Pubkey) -> None:
        await self.require_admin(signer)
        self.check_not_zero(account)
        await self.repo.close_account(self.pda.banned(account))
        logger.info(f"Unbanned {account}")
        await emit(
            self.repo,
            BanStatusChanged(account=str(account), reason=BanReason.NOT_BANNED, banned=False),
        )
