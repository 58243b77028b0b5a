"""Off-ledger order desk.

Builds and signs RFQ orders for takers and prepares everything a cross swap
submission needs: the nonce-keyed addresses the program will create and the
``quote || send`` remaining accounts for the configured send library.

Usage:
    desk = OrderDesk(get_signer(), RpcEndpointReader(rpc_url, endpoint_program))
    order = desk.build_cross_order(...)
    signature = await desk.sign_order(order)
    receipt = await desk.submit_cross_swap(order, payer, remote, submit)
"""

import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar, Union

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.addressing import DerivedAddress, PdaDeriver
from rfqbridge.config import Settings, get_settings
from rfqbridge.messaging.library import (
    WorkerPrograms,
    get_quote_accounts,
    get_send_accounts,
    resolve_send_library,
)
from rfqbridge.messaging.path import PacketPath
from rfqbridge.messaging.reader import EndpointStateReader
from rfqbridge.orders.codec import CrossOrder, Order, generate_nonce, pad_symbol
from rfqbridge.signing.base import OrderSigner
from rfqbridge.utils.locks import SwapLock

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (order, signature, remaining_accounts, quote_accounts_len) -> submission result
SubmitFn = Callable[[CrossOrder, bytes, list[AccountMeta], int], Awaitable[T]]

DEFAULT_ORDER_TTL = 60


class OrderDesk:
    """Quotes, signs and prepares RFQ orders for submission."""

    def __init__(
        self,
        signer: OrderSigner,
        reader: EndpointStateReader,
        settings: Optional[Settings] = None,
    ):
        self.signer = signer
        self.reader = reader
        self.settings = settings or get_settings()
        self.pda = PdaDeriver(self.settings.program_id)
        self.endpoint_program = Pubkey.from_string(self.settings.endpoint_program_id)
        self.workers = WorkerPrograms.from_settings(self.settings)

    @property
    def portfolio(self) -> Pubkey:
        return self.pda.portfolio().address

    @staticmethod
    def _expiry(ttl_seconds: int, now: Optional[int]) -> int:
        return (int(time.time()) if now is None else now) + ttl_seconds

    def build_order(
        self,
        maker_asset: Pubkey,
        taker_asset: Pubkey,
        taker: Pubkey,
        maker_amount: int,
        taker_amount: int,
        dest_trader: Optional[Pubkey] = None,
        ttl_seconds: int = DEFAULT_ORDER_TTL,
        nonce: Optional[bytes] = None,
        now: Optional[int] = None,
    ) -> Order:
        """Same-ledger order paying ``dest_trader`` (the taker by default)."""
        return Order(
            maker_asset=maker_asset,
            taker_asset=taker_asset,
            taker=taker,
            maker_amount=maker_amount,
            taker_amount=taker_amount,
            expiry=self._expiry(ttl_seconds, now),
            dest_trader=dest_trader or taker,
            nonce=nonce or generate_nonce(),
        )

    def build_cross_order(
        self,
        taker: Pubkey,
        dest_trader: Pubkey,
        maker_symbol: Union[str, bytes],
        maker_asset: Pubkey,
        taker_asset: Pubkey,
        maker_amount: int,
        taker_amount: int,
        dest_chain_id: int,
        ttl_seconds: int = DEFAULT_ORDER_TTL,
        nonce: Optional[bytes] = None,
        now: Optional[int] = None,
    ) -> CrossOrder:
        return CrossOrder(
            taker=taker,
            dest_trader=dest_trader,
            maker_symbol=pad_symbol(maker_symbol),
            maker_asset=maker_asset,
            taker_asset=taker_asset,
            maker_amount=maker_amount,
            taker_amount=taker_amount,
            nonce=nonce or generate_nonce(),
            expiry=self._expiry(ttl_seconds, now),
            dest_chain_id=dest_chain_id,
        )

    async def sign_order(self, order: Union[Order, CrossOrder]) -> bytes:
        """65-byte signature over the order hash."""
        result = await self.signer.sign_hash(order.hash())
        logger.info(f"Signed order {order.nonce.hex()} (hash 0x{order.hash().hex()[:16]}...)")
        return result.signature

    def swap_addresses(self, order: Union[Order, CrossOrder]) -> dict[str, DerivedAddress]:
        """Nonce-keyed addresses the settlement of ``order`` touches."""
        return {
            "completed": self.pda.completed_swap(order.nonce, order.dest_trader),
            "pending": self.pda.pending_swap(order.nonce, order.dest_trader),
        }

    async def build_remaining_accounts(
        self, dst_eid: int, remote: bytes, payer: Pubkey
    ) -> tuple[list[AccountMeta], int]:
        """``quote || send`` accounts for a message to ``dst_eid``.

        Returns the concatenated list and the length of its quote part.

        Raises:
            ConfigurationUnresolved: If the send library cannot be resolved
        """
        lib = await resolve_send_library(
            self.reader, self.portfolio, dst_eid, payer, self.workers
        )
        path = PacketPath.outbound(self.settings.solana_chain_id, dst_eid, self.portfolio, remote)
        quote_accounts = get_quote_accounts(self.endpoint_program, path, lib)
        send_accounts = get_send_accounts(self.endpoint_program, path, lib, payer)
        logger.debug(
            f"Remaining accounts for {dst_eid} via {lib.name}: "
            f"{len(quote_accounts)} quote + {len(send_accounts)} send"
        )
        return quote_accounts + send_accounts, len(quote_accounts)

    async def submit_cross_swap(
        self,
        order: CrossOrder,
        payer: Pubkey,
        remote: bytes,
        submit: SubmitFn,
        signature: Optional[bytes] = None,
    ) -> T:
        """Sign (unless ``signature`` is given), build the accounts and submit.

        Submissions of the same ``(nonce, dest_trader)`` are serialized;
        others run concurrently.
        """
        async with SwapLock(order.nonce, order.dest_trader, operation="cross_swap"):
            if signature is None:
                signature = await self.sign_order(order)
            accounts, quote_len = await self.build_remaining_accounts(
                order.dest_chain_id, remote, payer
            )
            logger.info(
                f"Submitting cross swap {order.nonce.hex()} to {order.dest_chain_id} "
                f"({len(accounts)} accounts)"
            )
            return await submit(order, signature, accounts, quote_len)
