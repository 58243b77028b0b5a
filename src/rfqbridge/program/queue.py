"""Swap queue: inbound payouts waiting for vault liquidity.

A pending swap exists exactly while an account sits at
``derive("PendingSwaps", keccak256(nonce || trader))``. It is created only by
the receive path and leaves the queue either finalized (paid, and a completed
marker written so the nonce cannot be reused) or removed (paid back to the
trader, optionally minus a penalty).

The payout destination is always re-derived from the stored trader and mint.
A destination supplied by the caller is only compared against it, never
used.
"""

import logging
from typing import Optional

from solders.pubkey import Pubkey

from rfqbridge.addressing import DerivedAddress, NATIVE_MINT, is_native
from rfqbridge.errors import AccessDenied, ErrorCode, ReplayRejected, StateGate
from rfqbridge.events import (
    SolTransfer,
    SolTransferTransaction,
    SolTransferType,
    SwapQueueAction,
    SwapQueueEvent,
    emit,
)
from rfqbridge.ledger.models import ProgramAccount
from rfqbridge.program.base import ProgramBase
from rfqbridge.state import CompletedSwap, ExpiredSwap, PendingSwap

logger = logging.getLogger(__name__)

BPS = 10_000


class SwapQueue(ProgramBase):
    def trading_vault(self, mint: Pubkey) -> Pubkey:
        if is_native(mint):
            return self.pda.sol_vault().address
        return self.pda.spl_vault().address

    def bound_destination(self, pending: PendingSwap) -> Pubkey:
        """Token account the entry may pay into: the trader's own for ``token_mint``."""
        return self.repo.token_account_address(pending.trader_pubkey, pending.mint_pubkey)

    def _check_destination(self, pending: PendingSwap, destination: Optional[Pubkey]) -> None:
        expected = self.bound_destination(pending)
        if destination is not None and destination != expected:
            logger.warning(
                f"Destination {destination} refused for pending swap {pending.nonce}: "
                f"bound to {expected}"
            )
            raise AccessDenied(
                ErrorCode.INVALID_DESTINATION_OWNER,
                f"expected {expected}, got {destination}",
            )

    async def _pay_out(self, pending: PendingSwap, amount: int, reason: str) -> None:
        mint = pending.mint_pubkey
        keep = self.native_threshold if is_native(mint) else 0
        await self.repo.transfer(
            self.trading_vault(mint), pending.trader_pubkey, mint, amount, reason, keep=keep
        )

    async def _load_pending(
        self, nonce: bytes, trader: Pubkey
    ) -> tuple[DerivedAddress, ProgramAccount, PendingSwap]:
        derived = self.pda.pending_swap(nonce, trader)
        account = await self.repo.require_account(derived)
        return derived, account, PendingSwap.from_account(account)

    async def _close_pending(self, derived: DerivedAddress) -> None:
        await self.repo.close_account(derived)
        rent = await self.repo.balance_of(derived.address, NATIVE_MINT)
        if rent:
            await self.repo.transfer(
                derived.address,
                self.pda.sol_vault().address,
                NATIVE_MINT,
                rent,
                "pending_swap_close",
            )

    async def enqueue(
        self, nonce: bytes, trader: Pubkey, mint: Pubkey, quantity: int
    ) -> PendingSwap:
        """Store a payout that cannot be made yet.

        Raises:
            ReplayRejected: If the entry exists or the swap already completed
            InsufficientFunds: If the airdrop vault cannot lock the rent above its
                rent-exempt minimum
        """
        completed = self.pda.completed_swap(nonce, trader)
        if await self.repo.exists(completed):
            raise ReplayRejected(
                ErrorCode.ORDER_ALREADY_COMPLETED,
                address=str(completed.address),
                seeds=completed.describe(),
            )

        pending = PendingSwap(
            trader=str(trader), quantity=quantity, token_mint=str(mint), nonce=nonce.hex()
        )
        derived = self.pda.pending_swap(nonce, trader)
        await self.create_record(derived, pending)

        rent = self.settings.pending_swap_rent
        if rent:
            await self.repo.transfer(
                self.pda.airdrop_vault().address,
                derived.address,
                NATIVE_MINT,
                rent,
                "pending_swap_rent",
                keep=self.native_threshold,
            )
        await emit(
            self.repo,
            SolTransfer(
                amount=rent,
                transaction=SolTransferTransaction.WITHDRAW,
                transfer_type=SolTransferType.PENDING_SWAP_CREATION,
            ),
        )
        logger.info(f"Queued {quantity} {mint} for {trader} (nonce {nonce.hex()})")
        await emit(
            self.repo,
            SwapQueueEvent(
                action=SwapQueueAction.ADD,
                nonce=nonce.hex(),
                trader=str(trader),
                token_mint=str(mint),
                quantity=quantity,
            ),
        )
        return pending

    async def get_pending_swap(self, nonce: bytes, trader: Pubkey) -> Optional[PendingSwap]:
        account = await self.repo.get_account(self.pda.pending_swap(nonce, trader))
        return PendingSwap.from_account(account) if account is not None else None

    async def finalize_pending_swap(
        self, signer: Pubkey, nonce: bytes, trader: Pubkey, destination: Optional[Pubkey] = None
    ) -> CompletedSwap:
        """Pay a pending swap from the trading vault and mark it completed.

        Anyone may finalize once the vault holds enough liquidity.
        """
        _, config = await self.load_config()
        self.check_not_paused(config)
        derived, _, pending = await self._load_pending(nonce, trader)
        self._check_destination(pending, destination)

        await self._pay_out(pending, pending.quantity, "finalize_pending_swap")
        await self._close_pending(derived)

        completed = CompletedSwap(expiry=self.clock() + self.settings.completed_swap_ttl_seconds)
        await self.create_record(self.pda.completed_swap(nonce, trader), completed)

        logger.info(f"Finalized pending swap {nonce.hex()} for {trader} (by {signer})")
        await emit(
            self.repo,
            SwapQueueEvent(
                action=SwapQueueAction.FINALIZE,
                nonce=nonce.hex(),
                trader=pending.trader,
                token_mint=pending.token_mint,
                quantity=pending.quantity,
            ),
        )
        return completed

    async def remove_from_swap_queue(
        self, signer: Pubkey, nonce: bytes, trader: Pubkey, destination: Optional[Pubkey] = None
    ) -> PendingSwap:
        """Unwind a pending swap, paying its quantity back to the trader.

        Callable by the trader, a rebalancer or an admin. When an operator
        removes the entry an expired-swap record is written, and
        ``queue_removal_penalty_bps`` of the quantity goes to the airdrop vault.

        Raises:
            NotFound: If there is no pending entry (e.g. already removed)
            AccessDenied: If ``destination`` is not the trader's own account
        """
        _, config = await self.load_config()
        self.check_not_paused(config)
        by_operator = signer != trader
        if by_operator and not (await self.is_rebalancer(signer) or await self.is_admin(signer)):
            raise AccessDenied(ErrorCode.UNAUTHORIZED_SIGNER, f"{signer} cannot remove swaps")

        derived, _, pending = await self._load_pending(nonce, trader)
        self._check_destination(pending, destination)

        penalty = 0
        if by_operator:
            penalty = pending.quantity * self.settings.queue_removal_penalty_bps // BPS
        await self._pay_out(pending, pending.quantity - penalty, "remove_from_swap_queue")
        if penalty:
            mint = pending.mint_pubkey
            await self.repo.transfer(
                self.trading_vault(mint),
                self.pda.airdrop_vault().address,
                mint,
                penalty,
                "queue_removal_penalty",
                keep=self.native_threshold if is_native(mint) else 0,
            )
        await self._close_pending(derived)

        if by_operator:
            expired = ExpiredSwap(
                trader=pending.trader,
                token_mint=pending.token_mint,
                quantity=pending.quantity,
                penalty=penalty,
                expired_at=self.clock(),
                removed_by=str(signer),
            )
            await self.create_record(self.pda.expired_swap(nonce, trader), expired)

        logger.info(
            f"Removed pending swap {nonce.hex()} for {trader} by {signer} (penalty {penalty})"
        )
        await emit(
            self.repo,
            SwapQueueEvent(
                action=SwapQueueAction.REMOVE,
                nonce=nonce.hex(),
                trader=pending.trader,
                token_mint=pending.token_mint,
                quantity=pending.quantity,
            ),
        )
        return pending

    async def update_swap_expiry(
        self, signer: Pubkey, nonce: bytes, trader: Pubkey, expiry: Optional[int] = None
    ) -> CompletedSwap:
        """Write (or move) the completed marker of ``(nonce, trader)``.

        Marking a nonce completed blocks it for later swaps. Refused while the
        swap is still queued.
        """
        await self.require_rebalancer(signer)
        if await self.repo.exists(self.pda.pending_swap(nonce, trader)):
            raise StateGate(ErrorCode.SWAP_STILL_PENDING, f"nonce {nonce.hex()}")

        completed = CompletedSwap(expiry=self.clock() if expiry is None else expiry)
        derived = self.pda.completed_swap(nonce, trader)
        account = await self.repo.get_account(derived)
        if account is None:
            await self.create_record(derived, completed)
        else:
            await self.save_record(account, completed)
        logger.info(f"Swap {nonce.hex()} for {trader} expires at {completed.expiry}")
        return completed
