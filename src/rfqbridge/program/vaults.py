"""Deposits, funding and claims.

Five vaults hold the program's funds:

* trading vaults ``Solv`` (native) and ``Splv`` (assets) pay out swaps and
  are topped up by rebalancers;
* user-funds vaults ``Soufv`` and ``Sufv`` receive deposits and pay out
  withdrawals arriving over the bridge;
* the airdrop vault ``Adv`` pays gas airdrops and pending-entry rent.

Native vaults never drop below the rent-exempt threshold when paying out.
"""

import logging
from typing import Sequence

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT
from rfqbridge.constants import QUOTE_REMAINING_ACCOUNTS_COUNT, SOL_NATIVE_SYMBOL
from rfqbridge.errors import ErrorCode, InvalidInput, StateGate
from rfqbridge.events import (
    PortfolioUpdated,
    SolTransfer,
    SolTransferTransaction,
    SolTransferType,
    emit,
)
from rfqbridge.messaging.params import MessagingReceipt
from rfqbridge.orders.codec import pad_symbol
from rfqbridge.program.base import ProgramBase
from rfqbridge.state import GlobalConfig, TokenDetails
from rfqbridge.xfer import Tx

logger = logging.getLogger(__name__)


def _check_trader(trader: bytes) -> None:
    if len(trader) != 32 or trader == bytes(32):
        raise InvalidInput(ErrorCode.INVALID_TRADER, f"trader 0x{trader.hex()}")


class VaultInstructions(ProgramBase):
    async def _check_deposit_gates(self, signer: Pubkey, config: GlobalConfig) -> None:
        self.check_endpoint(config)
        await self.require_not_banned(signer)
        self.check_not_paused(config)
        if not config.allow_deposit:
            logger.warning(f"Deposit by {signer} refused: deposits paused")
            raise StateGate(ErrorCode.DEPOSITS_PAUSED)

    @staticmethod
    def _check_native_allowed(config: GlobalConfig) -> None:
        if config.native_deposits_restricted:
            raise StateGate(ErrorCode.NATIVE_DEPOSIT_NOT_ALLOWED)

    async def deposit(
        self,
        signer: Pubkey,
        mint: Pubkey,
        amount: int,
        trader: bytes,
        remaining_accounts: Sequence[AccountMeta],
        quote_accounts_len: int = QUOTE_REMAINING_ACCOUNTS_COUNT,
    ) -> MessagingReceipt:
        """Deposit ``amount`` of ``mint`` for ``trader`` on the default chain.

        The tokens move into the user-funds vault and an XFER(Deposit) is
        sent; ``signer`` pays the messaging fee.
        """
        _check_trader(trader)
        self.check_quantity(amount)
        _, config = await self.load_config()
        await self._check_deposit_gates(signer, config)
        await self.require_balance(signer, mint, amount)
        details_account = await self.repo.require_account(
            self.pda.token_details(mint), ErrorCode.TOKEN_NOT_SUPPORTED
        )
        details = TokenDetails.from_account(details_account)

        await self.repo.transfer(
            signer, self.pda.spl_user_funds_vault().address, mint, amount, "deposit"
        )
        await emit(
            self.repo,
            PortfolioUpdated(
                transaction=Tx.DEPOSIT,
                wallet=str(signer),
                token_mint=str(mint),
                quantity=amount,
                total=amount,
                available=amount,
                wallet_other="0x" + trader.hex(),
            ),
        )
        return await self.send_xfer(
            signer,
            config.default_chain_id,
            Tx.DEPOSIT,
            trader,
            pad_symbol(details.symbol),
            amount,
            remaining_accounts,
            quote_accounts_len=quote_accounts_len,
        )

    async def deposit_native(
        self,
        signer: Pubkey,
        amount: int,
        trader: bytes,
        remaining_accounts: Sequence[AccountMeta],
        quote_accounts_len: int = QUOTE_REMAINING_ACCOUNTS_COUNT,
    ) -> MessagingReceipt:
        _check_trader(trader)
        self.check_quantity(amount)
        _, config = await self.load_config()
        await self._check_deposit_gates(signer, config)
        self._check_native_allowed(config)
        await self.require_balance(signer, NATIVE_MINT, amount)

        await self.repo.transfer(
            signer, self.pda.sol_user_funds_vault().address, NATIVE_MINT, amount, "deposit_native"
        )
        await emit(
            self.repo,
            PortfolioUpdated(
                transaction=Tx.DEPOSIT,
                wallet=str(signer),
                token_mint=str(NATIVE_MINT),
                quantity=amount,
                total=amount,
                available=amount,
                wallet_other="0x" + trader.hex(),
            ),
        )
        return await self.send_xfer(
            signer,
            config.default_chain_id,
            Tx.DEPOSIT,
            trader,
            pad_symbol(SOL_NATIVE_SYMBOL),
            amount,
            remaining_accounts,
            quote_accounts_len=quote_accounts_len,
        )

    async def deposit_airdrop(self, signer: Pubkey, amount: int) -> None:
        """Top up the airdrop vault. No message is sent."""
        self.check_quantity(amount)
        _, config = await self.load_config()
        self.check_not_paused(config)
        self._check_native_allowed(config)
        if not config.allow_deposit:
            raise StateGate(ErrorCode.DEPOSITS_PAUSED)
        await self.require_balance(signer, NATIVE_MINT, amount)

        await self.repo.transfer(
            signer, self.pda.airdrop_vault().address, NATIVE_MINT, amount, "deposit_airdrop"
        )
        await emit(
            self.repo,
            SolTransfer(
                amount=amount,
                transaction=SolTransferTransaction.DEPOSIT,
                transfer_type=SolTransferType.FUNDING,
            ),
        )

    # Rebalancing
    async def fund_sol(self, signer: Pubkey, amount: int) -> None:
        self.check_quantity(amount)
        _, config = await self.load_config()
        self.check_not_paused(config)
        await self.require_rebalancer(signer)
        await self.require_balance(signer, NATIVE_MINT, amount)
        await self.repo.transfer(
            signer, self.pda.sol_vault().address, NATIVE_MINT, amount, "fund_sol"
        )
        logger.info(f"Trading vault funded with {amount} lamports by {signer}")

    async def fund_spl(self, signer: Pubkey, mint: Pubkey, amount: int) -> None:
        self.check_quantity(amount)
        _, config = await self.load_config()
        self.check_not_paused(config)
        await self.require_rebalancer(signer)
        await self.require_balance(signer, mint, amount)
        await self.repo.transfer(signer, self.pda.spl_vault().address, mint, amount, "fund_spl")
        logger.info(f"Trading vault funded with {amount} {mint} by {signer}")

    async def claim_native_balance(self, signer: Pubkey, amount: int) -> None:
        """Withdraw native funds from the trading vault, keeping the threshold."""
        self.check_quantity(amount)
        _, config = await self.load_config()
        self.check_not_paused(config)
        await self.require_rebalancer(signer)
        await self.repo.transfer(
            self.pda.sol_vault().address,
            signer,
            NATIVE_MINT,
            amount,
            "claim_native",
            keep=self.native_threshold,
        )
        logger.info(f"{signer} claimed {amount} lamports from the trading vault")

    async def claim_spl_balance(self, signer: Pubkey, mint: Pubkey, amount: int) -> None:
        self.check_quantity(amount)
        _, config = await self.load_config()
        self.check_not_paused(config)
        await self.require_rebalancer(signer)
        await self.repo.transfer(self.pda.spl_vault().address, signer, mint, amount, "claim_spl")
        logger.info(f"{signer} claimed {amount} {mint} from the trading vault")

    async def claim_airdrop_balance(self, signer: Pubkey, amount: int) -> None:
        self.check_quantity(amount)
        _, config = await self.load_config()
        self.check_not_paused(config)
        await self.require_admin(signer)
        await self.repo.transfer(
            self.pda.airdrop_vault().address, signer, NATIVE_MINT, amount, "claim_airdrop"
        )
        logger.info(f"{signer} claimed {amount} lamports from the airdrop vault")
