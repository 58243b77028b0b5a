"""Supported token registry."""

import logging

from solders.pubkey import Pubkey

from rfqbridge.addressing import is_native
from rfqbridge.errors import ErrorCode, InvalidInput, StateGate
from rfqbridge.events import ParameterUpdated, emit
from rfqbridge.orders.codec import pad_symbol, unpad_symbol
from rfqbridge.program.base import ProgramBase
from rfqbridge.state import TokenDetails

logger = logging.getLogger(__name__)


class TokenInstructions(ProgramBase):
    async def add_token(
        self, signer: Pubkey, mint: Pubkey, symbol: str, decimals: int
    ) -> TokenDetails:
        """List ``mint`` and open its accounts in both asset vaults."""
        await self.require_admin(signer)
        if is_native(mint):
            raise InvalidInput(ErrorCode.INVALID_MINT, "native asset is always supported")
        symbol = unpad_symbol(pad_symbol(symbol))

        details = TokenDetails(token_address=str(mint), symbol=symbol, decimals=decimals)
        await self.create_record(self.pda.token_details(mint), details)

        account, token_list = await self.load_token_list()
        if str(mint) not in token_list.tokens:
            token_list.tokens.append(str(mint))
            await self.save_record(account, token_list)

        await self.repo.open_token_account(self.pda.spl_vault().address, mint)
        await self.repo.open_token_account(self.pda.spl_user_funds_vault().address, mint)

        logger.info(f"Token {symbol} ({mint}) added with {decimals} decimals")
        await emit(
            self.repo,
            ParameterUpdated(pair=symbol, parameter="P-ADDTOKEN", old_value="0", new_value="1"),
        )
        return details

    async def remove_token(self, signer: Pubkey, mint: Pubkey) -> None:
        """Delist ``mint``. Only while the program is paused."""
        await self.require_admin(signer)
        _, config = await self.load_config()
        if not config.program_paused:
            raise StateGate(ErrorCode.PROGRAM_NOT_PAUSED)

        await self.repo.close_account(self.pda.token_details(mint))
        account, token_list = await self.load_token_list()
        if str(mint) in token_list.tokens:
            token_list.tokens.remove(str(mint))
            await self.save_record(account, token_list)

        logger.info(f"Token {mint} removed")
        await emit(
            self.repo,
            ParameterUpdated(
                pair=str(mint), parameter="P-REMOVETOKEN", old_value="1", new_value="0"
            ),
        )
