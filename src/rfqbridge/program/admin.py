"""Program initialization and the global configuration."""

import logging
from typing import Any, Optional

from pydantic import ValidationError
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT
from rfqbridge.constants import ETH_ADDRESS_SIZE
from rfqbridge.errors import AccessDenied, ErrorCode, InvalidInput
from rfqbridge.events import ParameterUpdated, emit
from rfqbridge.program.base import ProgramBase
from rfqbridge.state import (
    AdminRecord,
    AllowedDestination,
    GlobalConfig,
    Remote,
    TokenList,
    VaultRecord,
)

logger = logging.getLogger(__name__)


class AdminInstructions(ProgramBase):
    async def initialize(
        self,
        signer: Pubkey,
        swap_signer: bytes,
        default_chain_id: Optional[int] = None,
        endpoint: Optional[Pubkey] = None,
    ) -> GlobalConfig:
        """Create the portfolio, make ``signer`` the first admin and register the OApp.

        Raises:
            ReplayRejected: If the program is already initialized
        """
        if len(swap_signer) != ETH_ADDRESS_SIZE:
            raise InvalidInput(ErrorCode.INVALID_SIGNER, f"swap signer is {len(swap_signer)} bytes")
        endpoint = endpoint or self.messenger.endpoint.program_id
        if endpoint != self.messenger.endpoint.program_id:
            raise AccessDenied(ErrorCode.INVALID_LZ_PROGRAM, str(endpoint))

        config = GlobalConfig(
            endpoint=str(endpoint),
            authority=str(signer),
            swap_signer=swap_signer.hex(),
            default_chain_id=(
                default_chain_id if default_chain_id is not None else self.settings.default_chain_id
            ),
            airdrop_amount=self.settings.default_airdrop_amount,
        )
        await self.create_record(self.pda.portfolio(), config)
        await self.create_record(self.pda.token_list(), TokenList())
        await self.create_record(self.pda.admin(signer), AdminRecord(account=str(signer)))

        await self.messenger.register(self.portfolio, signer)
        logger.info(
            f"Initialized program {self.program_id}: portfolio={self.portfolio} "
            f"admin={signer} default_chain={config.default_chain_id}"
        )
        return config

    async def initialize_vaults(self, signer: Pubkey) -> list[Pubkey]:
        """Create the vault records and their native accounts."""
        await self.require_admin(signer)
        vaults = [
            self.pda.sol_vault(),
            self.pda.sol_user_funds_vault(),
            self.pda.airdrop_vault(),
            self.pda.spl_vault(),
            self.pda.spl_user_funds_vault(),
        ]
        for vault in vaults:
            await self.create_record(vault, VaultRecord(name=vault.tag))
            await self.repo.open_token_account(vault.address, NATIVE_MINT)
        logger.info(f"Initialized {len(vaults)} vaults")
        return [vault.address for vault in vaults]

    async def get_global_config(self, signer: Pubkey) -> GlobalConfig:
        await self.require_admin(signer)
        _, config = await self.load_config()
        return config

    async def _set(self, signer: Pubkey, parameter: str, value: Any) -> GlobalConfig:
        await self.require_admin(signer)
        account, config = await self.load_config()
        old_value = getattr(config, parameter)
        try:
            config = GlobalConfig.model_validate({**config.to_data(), parameter: value})
        except ValidationError as e:
            raise InvalidInput(ErrorCode.INVALID_PARAMETER, f"{parameter}={value!r}") from e
        await self.save_record(account, config)

        logger.info(f"{parameter}: {old_value} -> {value}")
        await emit(
            self.repo,
            ParameterUpdated(parameter=parameter, old_value=str(old_value), new_value=str(value)),
        )
        return config

    async def set_paused(self, signer: Pubkey, paused: bool) -> GlobalConfig:
        return await self._set(signer, "program_paused", paused)

    async def set_allow_deposit(self, signer: Pubkey, allow_deposit: bool) -> GlobalConfig:
        return await self._set(signer, "allow_deposit", allow_deposit)

    async def set_native_deposits_restricted(
        self, signer: Pubkey, restricted: bool
    ) -> GlobalConfig:
        return await self._set(signer, "native_deposits_restricted", restricted)

    async def set_default_chain(self, signer: Pubkey, chain_id: int) -> GlobalConfig:
        return await self._set(signer, "default_chain_id", chain_id)

    async def set_airdrop_amount(self, signer: Pubkey, amount: int) -> GlobalConfig:
        return await self._set(signer, "airdrop_amount", amount)

    async def set_swap_signer(self, signer: Pubkey, swap_signer: bytes) -> GlobalConfig:
        if len(swap_signer) != ETH_ADDRESS_SIZE:
            raise InvalidInput(ErrorCode.INVALID_SIGNER, f"swap signer is {len(swap_signer)} bytes")
        return await self._set(signer, "swap_signer", swap_signer.hex())

    # Remotes and destinations
    async def set_remote(self, signer: Pubkey, dst_eid: int, address: bytes) -> Remote:
        """Create or update the peer address for ``dst_eid``."""
        await self.require_admin(signer)
        if len(address) != 32:
            raise InvalidInput(ErrorCode.ZERO_ACCOUNT, f"remote address is {len(address)} bytes")

        remote = Remote(eid=dst_eid, address=address.hex())
        derived = self.pda.remote(dst_eid)
        account = await self.repo.get_account(derived)
        if account is None:
            await self.create_record(derived, remote)
        else:
            await self.save_record(account, remote)
        logger.info(f"Remote for {dst_eid} set to 0x{address.hex()}")
        return remote

    async def get_remote(self, dst_eid: int) -> Remote:
        return await self.load_remote(dst_eid)

    async def add_destination(self, signer: Pubkey, eid: int, mint: Pubkey) -> AllowedDestination:
        """Allow cross swaps paying ``mint`` out on ``eid``. Idempotent."""
        await self.require_admin(signer)
        destination = AllowedDestination(eid=eid, mint=str(mint))
        derived = self.pda.allowed_destination(eid, mint)
        if not await self.repo.exists(derived):
            await self.create_record(derived, destination)
            logger.info(f"Destination allowed: {mint} on {eid}")
        return destination
