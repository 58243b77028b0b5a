"""Inbound messages: withdrawals and the payout side of cross swaps."""

import logging
from typing import Sequence

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT, is_native
from rfqbridge.errors import AccessDenied, ErrorCode, InvalidInput, NotFound
from rfqbridge.events import (
    SolTransfer,
    SolTransferTransaction,
    SolTransferType,
    XChainFinalized,
    emit,
)
from rfqbridge.messaging.params import LzReceiveParams
from rfqbridge.program.queue import SwapQueue
from rfqbridge.state import GlobalConfig
from rfqbridge.xfer import XFERSolana, Tx

logger = logging.getLogger(__name__)


class ReceiveInstructions(SwapQueue):
    def payout_vault(self, xfer: XFERSolana) -> Pubkey:
        """Cross-swap payouts come from the trading vaults, withdrawals from user funds."""
        native = is_native(xfer.token_mint)
        if xfer.transaction == Tx.CC_TRADE:
            return self.pda.sol_vault().address if native else self.pda.spl_vault().address
        if native:
            return self.pda.sol_user_funds_vault().address
        return self.pda.spl_user_funds_vault().address

    async def _airdrop(self, config: GlobalConfig, trader: Pubkey) -> None:
        await self.repo.transfer(
            self.pda.airdrop_vault().address,
            trader,
            NATIVE_MINT,
            config.airdrop_amount,
            "airdrop",
            keep=self.native_threshold,
        )
        await emit(
            self.repo,
            SolTransfer(
                amount=config.airdrop_amount,
                transaction=SolTransferTransaction.WITHDRAW,
                transfer_type=SolTransferType.AIRDROP,
            ),
        )

    async def lz_receive(
        self, params: LzReceiveParams, remaining_accounts: Sequence[AccountMeta]
    ) -> XFERSolana:
        """Process a message delivered by the endpoint.

        The payload is decoded and validated first, then the packet is cleared
        on the endpoint before any funds move, so it can never be paid twice.
        The payout is made immediately when the source vault can cover it,
        otherwise it is queued as a pending swap. Run inside ``atomic()`` with
        the endpoint so a failure after the clear also restores the packet.

        Raises:
            NotFound: If no remote peer is configured for the source ledger
            AccessDenied: If the packet was not sent by that peer
            InvalidInput: If the payload is malformed, empty or has no trader
            InsufficientFunds: If a withdrawal exceeds the user-funds vault
        """
        _, config = await self.load_config()
        self.check_not_paused(config)

        remote = await self.load_remote(params.src_eid)
        if params.sender != remote.address_bytes:
            raise AccessDenied(
                ErrorCode.UNAUTHORIZED_SIGNER,
                f"sender 0x{params.sender.hex()} is not the peer of {params.src_eid}",
            )

        xfer = XFERSolana.unpack(params.message)
        native = is_native(xfer.token_mint)
        if not native and not await self.is_token_supported(xfer.token_mint):
            raise NotFound(ErrorCode.TOKEN_NOT_SUPPORTED, str(xfer.token_mint))
        if xfer.quantity <= 0:
            raise InvalidInput(ErrorCode.ZERO_TOKEN_QUANTITY)
        if xfer.trader == Pubkey.default():
            raise InvalidInput(ErrorCode.INVALID_TRADER)

        vault = self.payout_vault(xfer)
        balance = await self.repo.balance_of(vault, xfer.token_mint)
        if native:
            short = balance < xfer.quantity + self.native_threshold
        elif xfer.transaction == Tx.CC_TRADE:
            short = balance < xfer.quantity
        else:
            await self.require_balance(vault, xfer.token_mint, xfer.quantity)
            short = False

        await self.messenger.clear(self.portfolio, params, remaining_accounts)

        if xfer.wants_airdrop:
            await self._airdrop(config, xfer.trader)

        if short:
            logger.info(
                f"Vault {vault} holds {balance}, cannot pay {xfer.quantity}: queueing "
                f"{xfer.order_nonce.hex()}"
            )
            await self.enqueue(xfer.order_nonce, xfer.trader, xfer.token_mint, xfer.quantity)
            return xfer

        await self.repo.transfer(
            vault,
            xfer.trader,
            xfer.token_mint,
            xfer.quantity,
            f"lz_receive_{xfer.transaction.name.lower()}",
            keep=self.native_threshold if native else 0,
        )
        await emit(
            self.repo,
            XChainFinalized(
                nonce=xfer.nonce,
                trader=str(xfer.trader),
                token_mint=str(xfer.token_mint),
                amount=xfer.quantity,
                timestamp=xfer.timestamp,
            ),
        )
        return xfer
