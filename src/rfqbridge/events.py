"""Program events.

Instructions emit events through ``emit()``: the event is logged and stored
in the ``program_events`` table within the instruction's transaction, so a
rolled back instruction leaves no events behind.
"""

import logging
from enum import Enum

from pydantic import BaseModel

from rfqbridge.ledger.repository import LedgerRepository
from rfqbridge.state import BanReason
from rfqbridge.xfer import Tx

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """Base class for program events."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class BanStatusChanged(Event):
    account: str
    reason: BanReason
    banned: bool


class RoleGranted(Event):
    role: str
    account: str


class RoleRevoked(Event):
    role: str
    account: str


class PortfolioUpdated(Event):
    transaction: Tx
    wallet: str
    token_mint: str
    quantity: int
    fee_charged: int = 0
    total: int = 0
    available: int = 0
    wallet_other: str


class ParameterUpdated(Event):
    pair: str = ""
    parameter: str
    old_value: str
    new_value: str


class SwapExecuted(Event):
    taker: str
    dest_trader: str
    src_asset: str
    dest_asset: str
    src_amount: int
    dest_amount: int
    dest_chain_id: int
    nonce: str


class XChainFinalized(Event):
    nonce: int
    trader: str
    token_mint: str
    amount: int
    timestamp: int


class SwapQueueAction(str, Enum):
    ADD = "Add"
    REMOVE = "Remove"
    FINALIZE = "Finalize"


class SwapQueueEvent(Event):
    action: SwapQueueAction
    nonce: str
    trader: str
    token_mint: str
    quantity: int


class SolTransferTransaction(str, Enum):
    WITHDRAW = "Withdraw"
    DEPOSIT = "Deposit"


class SolTransferType(str, Enum):
    FUNDING = "Funding"
    AIRDROP = "Airdrop"
    PENDING_SWAP_CREATION = "PendingSwapCreation"


class SolTransfer(Event):
    amount: int
    transaction: SolTransferTransaction
    transfer_type: SolTransferType


async def emit(repo: LedgerRepository, event: Event) -> None:
    """Log ``event`` and persist it with the current instruction."""
    payload = event.model_dump(mode="json")
    logger.info(f"{event.name}: {payload}")
    await repo.record_event(event.name, payload)
