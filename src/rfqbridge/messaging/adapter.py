"""Cross-ledger message adapter used by the settlement program.

Outbound: quote, pay the native fee, send. The forwarded remaining accounts
are ``quote || send``; each list keeps the endpoint program as its first
entry, which must match the configured endpoint and is not passed on.
Inbound: clear the packet on the endpoint once its payload checks out, before
any funds move.
"""

import logging
from typing import Sequence

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT
from rfqbridge.constants import (
    CLEAR_MIN_ACCOUNTS_LEN,
    ENDPOINT_CLEAR,
    ENDPOINT_QUOTE,
    ENDPOINT_SEND,
    GAS_OPTIONS,
    QUOTE_REMAINING_ACCOUNTS_COUNT,
    REGISTER_OAPP,
)
from rfqbridge.errors import AccessDenied, ErrorCode, InvalidInput
from rfqbridge.ledger.repository import LedgerRepository
from rfqbridge.messaging.cpi import build_instruction, endpoint_accounts, split_remaining_accounts
from rfqbridge.messaging.endpoint import MessagingEndpoint
from rfqbridge.messaging.params import (
    ClearParams,
    EndpointQuoteParams,
    EndpointSendParams,
    LzReceiveParams,
    MessagingFee,
    MessagingReceipt,
    RegisterOAppParams,
)

logger = logging.getLogger(__name__)


class CrossLedgerMessenger:
    """Endpoint calls made by the program on behalf of its OApp (the portfolio)."""

    def __init__(self, endpoint: MessagingEndpoint, repo: LedgerRepository):
        self.endpoint = endpoint
        self.repo = repo

    def _check_endpoint(self, accounts: Sequence[AccountMeta]) -> None:
        if not accounts:
            raise InvalidInput(ErrorCode.ACCOUNTS_NOT_PROVIDED)
        if accounts[0].pubkey != self.endpoint.program_id:
            raise AccessDenied(ErrorCode.INVALID_LZ_PROGRAM, str(accounts[0].pubkey))

    async def register(self, oapp: Pubkey, payer: Pubkey) -> None:
        accounts = [
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(oapp, is_signer=True, is_writable=False),
        ]
        instruction = build_instruction(
            self.endpoint.program_id, REGISTER_OAPP, RegisterOAppParams(delegate=payer), accounts
        )
        await self.endpoint.invoke(instruction)

    async def quote(
        self,
        oapp: Pubkey,
        dst_eid: int,
        receiver: bytes,
        message: bytes,
        quote_accounts: Sequence[AccountMeta],
    ) -> MessagingFee:
        """Quote a send, paying in the native asset only.

        Raises:
            InvalidInput: If the endpoint asks for a LZ token fee
        """
        self._check_endpoint(quote_accounts)
        params = EndpointQuoteParams(
            sender=oapp,
            dst_eid=dst_eid,
            receiver=receiver,
            message=message,
            options=GAS_OPTIONS,
            pay_in_lz_token=False,
        )
        instruction = build_instruction(
            self.endpoint.program_id, ENDPOINT_QUOTE, params, endpoint_accounts(quote_accounts)
        )
        fee = MessagingFee.decode(await self.endpoint.invoke(instruction))
        if fee.lz_token_fee != 0:
            raise InvalidInput(ErrorCode.POSITIVE_LZ_TOKEN_FEE, f"lz_token_fee={fee.lz_token_fee}")
        return fee

    async def send(
        self,
        oapp: Pubkey,
        payer: Pubkey,
        dst_eid: int,
        receiver: bytes,
        message: bytes,
        remaining_accounts: Sequence[AccountMeta],
        quote_accounts_len: int = QUOTE_REMAINING_ACCOUNTS_COUNT,
    ) -> MessagingReceipt:
        """Quote and send ``message`` to ``receiver`` on ``dst_eid``.

        The quoted native fee is paid by ``payer``.
        """
        quote_accounts, send_accounts = split_remaining_accounts(
            remaining_accounts, quote_accounts_len
        )
        fee = await self.quote(oapp, dst_eid, receiver, message, quote_accounts)

        self._check_endpoint(send_accounts)
        if fee.native_fee:
            await self.repo.transfer(
                payer, self.endpoint.program_id, NATIVE_MINT, fee.native_fee, "messaging_fee"
            )

        params = EndpointSendParams(
            dst_eid=dst_eid,
            receiver=receiver,
            message=message,
            options=GAS_OPTIONS,
            native_fee=fee.native_fee,
            lz_token_fee=fee.lz_token_fee,
        )
        instruction = build_instruction(
            self.endpoint.program_id,
            ENDPOINT_SEND,
            params,
            endpoint_accounts(send_accounts, signer=oapp),
        )
        receipt = MessagingReceipt.decode(await self.endpoint.invoke(instruction))
        logger.info(
            f"Sent {len(message)} bytes to {dst_eid}: guid={receipt.guid.hex()} "
            f"nonce={receipt.nonce} fee={fee.native_fee}"
        )
        return receipt

    async def clear(
        self, oapp: Pubkey, params: LzReceiveParams, remaining_accounts: Sequence[AccountMeta]
    ) -> None:
        """Burn an inbound packet so it can never be delivered again."""
        if len(remaining_accounts) < CLEAR_MIN_ACCOUNTS_LEN:
            raise InvalidInput(
                ErrorCode.ACCOUNTS_NOT_PROVIDED,
                f"clear needs {CLEAR_MIN_ACCOUNTS_LEN} accounts, got {len(remaining_accounts)}",
            )
        clear_accounts = list(remaining_accounts[:CLEAR_MIN_ACCOUNTS_LEN])
        self._check_endpoint(clear_accounts)
        clear_params = ClearParams(
            receiver=oapp,
            src_eid=params.src_eid,
            sender=params.sender,
            nonce=params.nonce,
            guid=params.guid,
            message=params.message,
        )
        instruction = build_instruction(
            self.endpoint.program_id,
            ENDPOINT_CLEAR,
            clear_params,
            endpoint_accounts(clear_accounts, signer=oapp),
        )
        await self.endpoint.invoke(instruction)
