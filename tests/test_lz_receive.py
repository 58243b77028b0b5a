"""Tests for inbound message handling."""

import pytest
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT
from rfqbridge.errors import (
    AccessDenied,
    ErrorCode,
    InsufficientFunds,
    InvalidInput,
    NotFound,
    StateGate,
)
from rfqbridge.messaging.cpi import accounts_for_clear
from rfqbridge.xfer import Tx, XFERSolana, nonce_to_custom_data

SOL = 1_000_000_000
NONCE = bytes(8) + b"\x00\x00\x01\x00"


def make_xfer(
    trader: Pubkey,
    mint: Pubkey,
    quantity: int,
    transaction: Tx = Tx.WITHDRAW,
    airdrop: bool = False,
) -> XFERSolana:
    custom_data = bytearray(nonce_to_custom_data(NONCE))
    if airdrop:
        custom_data[0] |= 0x80
    return XFERSolana(
        transaction=transaction,
        trader=trader,
        token_mint=mint,
        quantity=quantity,
        timestamp=1_700_000_000,
        custom_data=bytes(custom_data),
        nonce=1,
    )


class TestWithdraw:
    """Tests for withdrawals paid from the user-funds vaults."""

    @pytest.mark.asyncio
    async def test_withdraw_asset(self, ready_program, deliver, trader, mint):
        vault = ready_program.pda.spl_user_funds_vault().address
        await ready_program.repo.credit(vault, mint, 10_000, "test_faucet")
        before = await ready_program.repo.balance_of(trader, mint)

        await deliver(make_xfer(trader, mint, 4_000))

        assert await ready_program.repo.balance_of(trader, mint) == before + 4_000
        assert await ready_program.repo.balance_of(vault, mint) == 6_000
        event = (await ready_program.repo.get_events("XChainFinalized"))[-1]
        assert event.payload["amount"] == 4_000
        assert event.payload["trader"] == str(trader)

    @pytest.mark.asyncio
    async def test_withdraw_native(self, ready_program, deliver, trader):
        vault = ready_program.pda.sol_user_funds_vault().address
        await ready_program.repo.credit(vault, NATIVE_MINT, SOL, "test_faucet")
        before = await ready_program.repo.balance_of(trader, NATIVE_MINT)

        await deliver(make_xfer(trader, NATIVE_MINT, SOL // 2))

        assert await ready_program.repo.balance_of(trader, NATIVE_MINT) == before + SOL // 2

    @pytest.mark.asyncio
    async def test_short_native_withdraw_is_queued(self, ready_program, deliver, trader, settings):
        vault = ready_program.pda.sol_user_funds_vault().address
        await ready_program.repo.credit(vault, NATIVE_MINT, SOL, "test_faucet")

        # The vault keeps its rent-exempt threshold
        await deliver(make_xfer(trader, NATIVE_MINT, SOL - settings.native_vault_min_threshold + 1))

        pending = await ready_program.get_pending_swap(NONCE, trader)
        assert pending is not None
        assert pending.token_mint == str(NATIVE_MINT)
        assert await ready_program.repo.balance_of(vault, NATIVE_MINT) == SOL

    @pytest.mark.asyncio
    async def test_short_asset_withdraw_fails(self, ready_program, deliver, trader, mint):
        with pytest.raises(InsufficientFunds) as exc:
            await deliver(make_xfer(trader, mint, 4_000))

        assert exc.value.code == ErrorCode.NOT_ENOUGH_SPL_TOKEN_BALANCE
        assert await ready_program.get_pending_swap(NONCE, trader) is None


class TestCrossTradePayout:
    """Tests for the payout side of cross swaps."""

    @pytest.mark.asyncio
    async def test_paid_from_trading_vault(self, ready_program, deliver, rebalancer, trader, mint):
        await ready_program.fund_spl(rebalancer, mint, 10_000)
        before = await ready_program.repo.balance_of(trader, mint)

        await deliver(make_xfer(trader, mint, 5_000, Tx.CC_TRADE))

        assert await ready_program.repo.balance_of(trader, mint) == before + 5_000
        assert await ready_program.repo.balance_of(ready_program.pda.spl_vault().address, mint) == (
            5_000
        )

    @pytest.mark.asyncio
    async def test_short_vault_queues(self, ready_program, deliver, trader, mint):
        await deliver(make_xfer(trader, mint, 5_000, Tx.CC_TRADE))

        pending = await ready_program.get_pending_swap(NONCE, trader)
        assert pending.quantity == 5_000
        assert pending.nonce == NONCE.hex()
        assert await ready_program.repo.get_events("XChainFinalized") == []

        event = (await ready_program.repo.get_events("SwapQueueEvent"))[-1]
        assert event.payload["action"] == "Add"


class TestReceiveChecks:
    """Tests for packet authentication and payload validation."""

    @pytest.mark.asyncio
    async def test_unknown_sender(self, ready_program, deliver, trader, mint, endpoint):
        with pytest.raises(AccessDenied) as exc:
            await deliver(make_xfer(trader, mint, 1), sender=bytes([9] * 32))

        assert exc.value.code == ErrorCode.UNAUTHORIZED_SIGNER
        assert endpoint.cleared == []

    @pytest.mark.asyncio
    async def test_no_remote_for_source(
        self, ready_program, endpoint, trader, mint, remote_address
    ):
        params = endpoint.inbound_packet(
            ready_program.portfolio, 40161, remote_address, make_xfer(trader, mint, 1).pack()
        )
        accounts = accounts_for_clear(
            endpoint.program_id, ready_program.portfolio, 40161, remote_address, params.nonce
        )

        with pytest.raises(NotFound):
            await ready_program.lz_receive(params, accounts)

    @pytest.mark.asyncio
    async def test_packet_delivered_once(
        self, ready_program, endpoint, rebalancer, trader, mint, settings, remote_address
    ):
        await ready_program.fund_spl(rebalancer, mint, 10_000)
        src_eid = settings.default_chain_id
        params = endpoint.inbound_packet(
            ready_program.portfolio,
            src_eid,
            remote_address,
            make_xfer(trader, mint, 1_000, Tx.CC_TRADE).pack(),
        )
        accounts = accounts_for_clear(
            endpoint.program_id, ready_program.portfolio, src_eid, remote_address, params.nonce
        )
        await ready_program.lz_receive(params, accounts)

        with pytest.raises(NotFound) as exc:
            await ready_program.lz_receive(params, accounts)

        assert exc.value.code == ErrorCode.PAYLOAD_NOT_VERIFIED
        assert len(endpoint.cleared) == 1

    @pytest.mark.asyncio
    async def test_clear_accounts_required(
        self, ready_program, endpoint, trader, mint, settings, remote_address
    ):
        src_eid = settings.default_chain_id
        payload = make_xfer(trader, mint, 1, Tx.CC_TRADE).pack()
        params = endpoint.inbound_packet(ready_program.portfolio, src_eid, remote_address, payload)
        accounts = accounts_for_clear(
            endpoint.program_id, ready_program.portfolio, src_eid, remote_address, params.nonce
        )

        with pytest.raises(InvalidInput) as exc:
            await ready_program.lz_receive(params, accounts[:7])

        assert exc.value.code == ErrorCode.ACCOUNTS_NOT_PROVIDED

    @pytest.mark.asyncio
    async def test_paused(self, ready_program, deliver, admin, trader, mint):
        await ready_program.set_paused(admin, True)

        with pytest.raises(StateGate):
            await deliver(make_xfer(trader, mint, 1))

    @pytest.mark.asyncio
    async def test_unsupported_token(self, ready_program, deliver, trader):
        with pytest.raises(NotFound) as exc:
            await deliver(make_xfer(trader, Pubkey.new_unique(), 1))

        assert exc.value.code == ErrorCode.TOKEN_NOT_SUPPORTED

    @pytest.mark.asyncio
    async def test_zero_quantity(self, ready_program, deliver, trader, mint):
        with pytest.raises(InvalidInput) as exc:
            await deliver(make_xfer(trader, mint, 0))

        assert exc.value.code == ErrorCode.ZERO_TOKEN_QUANTITY

    @pytest.mark.asyncio
    async def test_zero_trader(self, ready_program, deliver, mint):
        with pytest.raises(InvalidInput) as exc:
            await deliver(make_xfer(Pubkey.default(), mint, 1))

        assert exc.value.code == ErrorCode.INVALID_TRADER

    @pytest.mark.asyncio
    async def test_malformed_payload(
        self, ready_program, endpoint, trader, mint, settings, remote_address
    ):
        src_eid = settings.default_chain_id
        payload = make_xfer(trader, mint, 1).pack()[:-1]
        params = endpoint.inbound_packet(ready_program.portfolio, src_eid, remote_address, payload)
        accounts = accounts_for_clear(
            endpoint.program_id, ready_program.portfolio, src_eid, remote_address, params.nonce
        )

        with pytest.raises(InvalidInput) as exc:
            await ready_program.lz_receive(params, accounts)

        assert exc.value.code == ErrorCode.XFER_ERROR


class TestAirdrop:
    @pytest.mark.asyncio
    async def test_airdrop_requested(self, ready_program, deliver, admin, trader, mint):
        await ready_program.deposit_airdrop(admin, SOL)
        vault = ready_program.pda.spl_user_funds_vault().address
        await ready_program.repo.credit(vault, mint, 10_000, "test_faucet")
        config = await ready_program.get_global_config(admin)
        native_before = await ready_program.repo.balance_of(trader, NATIVE_MINT)

        await deliver(make_xfer(trader, mint, 1_000, airdrop=True))

        assert await ready_program.repo.balance_of(trader, NATIVE_MINT) == (
            native_before + config.airdrop_amount
        )
        airdrop_vault = ready_program.pda.airdrop_vault().address
        assert await ready_program.repo.balance_of(airdrop_vault, NATIVE_MINT) == (
            SOL - config.airdrop_amount
        )
        event = (await ready_program.repo.get_events("SolTransfer"))[-1]
        assert event.payload["transfer_type"] == "Airdrop"

    @pytest.mark.asyncio
    async def test_no_airdrop_by_default(self, ready_program, deliver, admin, trader, mint):
        await ready_program.deposit_airdrop(admin, SOL)
        vault = ready_program.pda.spl_user_funds_vault().address
        await ready_program.repo.credit(vault, mint, 10_000, "test_faucet")
        native_before = await ready_program.repo.balance_of(trader, NATIVE_MINT)

        await deliver(make_xfer(trader, mint, 1_000))

        assert await ready_program.repo.balance_of(trader, NATIVE_MINT) == native_before
