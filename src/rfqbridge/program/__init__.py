"""Settlement program model.

``SettlementProgram`` exposes every instruction of the on-ledger program as a
coroutine. Build one per database transaction; passing the endpoint lets a
failed instruction undo its sends and clears too::

    async with get_db("swap", endpoint) as session:
        repo = LedgerRepository(session)
        program = SettlementProgram(repo, CrossLedgerMessenger(endpoint, repo), verifier)
        await program.swap(signer, order, signature)
"""

from rfqbridge.program.access import AccessControl
from rfqbridge.program.admin import AdminInstructions
from rfqbridge.program.base import ProgramBase, unix_now
from rfqbridge.program.queue import SwapQueue
from rfqbridge.program.receive import ReceiveInstructions
from rfqbridge.program.swaps import SwapInstructions
from rfqbridge.program.tokens import TokenInstructions
from rfqbridge.program.vaults import VaultInstructions


class SettlementProgram(
    AdminInstructions,
    AccessControl,
    TokenInstructions,
    VaultInstructions,
    SwapInstructions,
    ReceiveInstructions,
):
    """All settlement instructions over one ledger transaction."""


__all__ = [
    "SettlementProgram",
    "ProgramBase",
    "SwapQueue",
    "unix_now",
]
