"""Same-ledger and cross-ledger swap execution."""

import logging
from typing import Optional, Sequence

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.addressing import is_native
from rfqbridge.constants import QUOTE_REMAINING_ACCOUNTS_COUNT
from rfqbridge.errors import (
    AccessDenied,
    AuthenticationFailure,
    ErrorCode,
    InvalidInput,
    ReplayRejected,
    StateGate,
)
from rfqbridge.events import SwapExecuted, emit
from rfqbridge.messaging.params import MessagingReceipt
from rfqbridge.orders.codec import CrossOrder, Order
from rfqbridge.program.queue import SwapQueue
from rfqbridge.state import CompletedSwap, GlobalConfig
from rfqbridge.xfer import Tx, nonce_to_custom_data

logger = logging.getLogger(__name__)

U32_MASK = 0xFFFFFFFF


class SwapInstructions(SwapQueue):
    async def _validate_order(
        self,
        config: GlobalConfig,
        signer: Pubkey,
        message_hash: bytes,
        signature: bytes,
        taker: Pubkey,
        dest_trader: Pubkey,
        nonce: bytes,
        expiry: int,
        is_aggregator: bool,
    ) -> None:
        """Check expiry, signature, sender and replay, then mark the order completed.

        Raises:
            StateGate: If the order expired
            AuthenticationFailure: If the signature does not recover to the swap signer
            AccessDenied: If the signer is neither the taker nor an aggregator
            ReplayRejected: If the order completed before or is still queued
        """
        now = self.clock()
        if now > expiry:
            raise StateGate(ErrorCode.ORDER_EXPIRED, f"expiry {expiry} < now {now}")

        if not self.verifier.verify(message_hash, signature, config.swap_signer_bytes):
            logger.warning(f"Rejected order {nonce.hex()}: signature does not match swap signer")
            raise AuthenticationFailure(ErrorCode.INVALID_SIGNER, f"hash 0x{message_hash.hex()}")

        if taker != signer and not is_aggregator:
            raise AccessDenied(ErrorCode.INVALID_AGGREGATOR_FLOW, f"{signer} is not the taker")

        completed = self.pda.completed_swap(nonce, dest_trader)
        for derived in (completed, self.pda.pending_swap(nonce, dest_trader)):
            if await self.repo.exists(derived):
                raise ReplayRejected(
                    ErrorCode.ORDER_ALREADY_COMPLETED,
                    address=str(derived.address),
                    seeds=derived.describe(),
                )
        await self.create_record(completed, CompletedSwap(expiry=expiry))

    async def _take_funds(self, payer: Pubkey, asset: Pubkey, amount: int) -> None:
        await self.repo.transfer(payer, self.trading_vault(asset), asset, amount, "swap_take")

    async def _release_funds(self, dest_trader: Pubkey, asset: Pubkey, amount: int) -> None:
        keep = self.native_threshold if is_native(asset) else 0
        await self.repo.transfer(
            self.trading_vault(asset), dest_trader, asset, amount, "swap_release", keep=keep
        )

    async def swap(
        self,
        signer: Pubkey,
        order: Order,
        signature: bytes,
        taker_amount: Optional[int] = None,
        is_partial: bool = False,
        taker: Optional[Pubkey] = None,
    ) -> Order:
        """Execute a same-ledger order and return it as executed.

        With ``is_partial`` the taker fills ``taker_amount`` and receives the
        proportional maker amount, rounded down; the signature must cover the
        adjusted order. When the signer is the order's ``dest_trader``
        (aggregator flow) the taker funds come from the dest trader.
        """
        _, config = await self.load_config()
        self.check_not_paused(config)
        if taker is not None and taker != order.taker:
            raise InvalidInput(ErrorCode.INVALID_TAKER, f"{taker} != {order.taker}")

        paid = order.taker_amount
        executed = order
        if is_partial and taker_amount is not None:
            executed = order.with_partial_fill(taker_amount)
            paid = min(taker_amount, order.taker_amount)
        self.check_quantity(paid)

        is_aggregator = signer == order.dest_trader
        await self._validate_order(
            config,
            signer,
            executed.hash(),
            signature,
            executed.taker,
            executed.dest_trader,
            executed.nonce,
            executed.expiry,
            is_aggregator,
        )

        payer = executed.dest_trader if is_aggregator else signer
        await self._take_funds(payer, executed.taker_asset, paid)
        await self._release_funds(executed.dest_trader, executed.maker_asset, executed.maker_amount)

        logger.info(
            f"Swap {executed.nonce.hex()}: {paid} {executed.taker_asset} -> "
            f"{executed.maker_amount} {executed.maker_asset} for {executed.dest_trader}"
        )
        await emit(
            self.repo,
            SwapExecuted(
                taker=str(executed.taker),
                dest_trader=str(executed.dest_trader),
                src_asset=str(executed.taker_asset),
                dest_asset=str(executed.maker_asset),
                src_amount=paid,
                dest_amount=executed.maker_amount,
                dest_chain_id=self.settings.solana_chain_id,
                nonce=executed.nonce.hex(),
            ),
        )
        return executed

    async def cross_swap(
        self,
        signer: Pubkey,
        order: CrossOrder,
        signature: bytes,
        remaining_accounts: Sequence[AccountMeta],
        quote_accounts_len: int = QUOTE_REMAINING_ACCOUNTS_COUNT,
    ) -> MessagingReceipt:
        """Take the taker side here and relay the maker side to ``dest_chain_id``.

        ``remaining_accounts`` are the quote accounts followed by the send
        accounts; the signer pays the messaging fee.
        """
        _, config = await self.load_config()
        self.check_endpoint(config)
        self.check_not_paused(config)
        destination = self.pda.allowed_destination(order.dest_chain_id, order.maker_asset)
        if not await self.repo.exists(destination):
            raise AccessDenied(
                ErrorCode.DESTINATION_NOT_ALLOWED,
                address=str(destination.address),
                seeds=destination.describe(),
            )
        self.check_quantity(order.taker_amount)

        await self._validate_order(
            config,
            signer,
            order.hash(),
            signature,
            order.taker,
            order.dest_trader,
            order.nonce,
            order.expiry,
            is_aggregator=False,
        )
        await self._take_funds(signer, order.taker_asset, order.taker_amount)
        await emit(
            self.repo,
            SwapExecuted(
                taker=str(order.taker),
                dest_trader=str(order.dest_trader),
                src_asset=str(order.taker_asset),
                dest_asset=str(order.maker_asset),
                src_amount=order.taker_amount,
                dest_amount=order.maker_amount,
                dest_chain_id=order.dest_chain_id,
                nonce=order.nonce.hex(),
            ),
        )

        receipt = await self.send_xfer(
            signer,
            order.dest_chain_id,
            Tx.CC_TRADE,
            bytes(order.dest_trader),
            order.maker_symbol,
            order.maker_amount,
            remaining_accounts,
            custom_data=nonce_to_custom_data(order.nonce),
            timestamp=order.expiry & U32_MASK,
            quote_accounts_len=quote_accounts_len,
        )
        logger.info(
            f"Cross swap {order.nonce.hex()}: {order.taker_amount} {order.taker_asset} taken, "
            f"{order.maker_amount} relayed to {order.dest_chain_id}"
        )
        return receipt
