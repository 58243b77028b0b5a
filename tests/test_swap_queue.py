"""Tests for the swap queue: pending payouts, finalization and removal."""

import pytest
import pytest_asyncio
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT, associated_token_address
from rfqbridge.errors import (
    AccessDenied,
    ErrorCode,
    InsufficientFunds,
    NotFound,
    ReplayRejected,
    StateGate,
)
from rfqbridge.xfer import Tx, XFERSolana, nonce_to_custom_data

SOL = 1_000_000_000
NONCE = bytes(8) + b"\x00\x00\x02\x00"
NOW = 1_700_000_000


def cc_trade(trader: Pubkey, mint: Pubkey, quantity: int) -> XFERSolana:
    return XFERSolana(
        transaction=Tx.CC_TRADE,
        trader=trader,
        token_mint=mint,
        quantity=quantity,
        timestamp=NOW,
        custom_data=nonce_to_custom_data(NONCE),
        nonce=1,
    )


@pytest_asyncio.fixture
async def queued(ready_program, deliver, trader, mint):
    """A 5000-unit cross-trade payout queued against an empty trading vault."""
    await deliver(cc_trade(trader, mint, 5_000))
    return ready_program


class TestFinalize:
    """Tests for finalize_pending_swap."""

    @pytest.mark.asyncio
    async def test_fund_then_finalize(self, queued, rebalancer, trader, mint, settings):
        before = await queued.repo.balance_of(trader, mint)
        await queued.fund_spl(rebalancer, mint, 10_000)

        completed = await queued.finalize_pending_swap(Pubkey.new_unique(), NONCE, trader)

        assert completed.expiry == NOW + settings.completed_swap_ttl_seconds
        assert await queued.repo.balance_of(trader, mint) == before + 5_000
        assert await queued.repo.balance_of(queued.pda.spl_vault().address, mint) == 5_000
        assert await queued.get_pending_swap(NONCE, trader) is None
        assert await queued.repo.exists(queued.pda.completed_swap(NONCE, trader))

        actions = [e.payload["action"] for e in await queued.repo.get_events("SwapQueueEvent")]
        assert actions == ["Add", "Finalize"]

    @pytest.mark.asyncio
    async def test_finalize_while_short(self, queued, trader, mint):
        with pytest.raises(InsufficientFunds):
            await queued.finalize_pending_swap(trader, NONCE, trader)

        assert await queued.get_pending_swap(NONCE, trader) is not None

    @pytest.mark.asyncio
    async def test_finalize_twice(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)
        await queued.finalize_pending_swap(trader, NONCE, trader)

        with pytest.raises(NotFound) as exc:
            await queued.finalize_pending_swap(trader, NONCE, trader)

        assert exc.value.code == ErrorCode.MAP_ENTRY_NON_EXISTENT

    @pytest.mark.asyncio
    async def test_completed_nonce_cannot_queue_again(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 5_000)
        await queued.finalize_pending_swap(trader, NONCE, trader)

        with pytest.raises(ReplayRejected) as exc:
            await queued.enqueue(NONCE, trader, mint, 5_000)

        assert exc.value.code == ErrorCode.ORDER_ALREADY_COMPLETED

    @pytest.mark.asyncio
    async def test_paused(self, queued, admin, trader):
        await queued.set_paused(admin, True)

        with pytest.raises(StateGate):
            await queued.finalize_pending_swap(trader, NONCE, trader)


class TestDestinationBinding:
    """The payout always goes to the trader's own token account."""

    @pytest.mark.asyncio
    async def test_foreign_destination_refused(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)
        attacker = Pubkey.new_unique()

        with pytest.raises(AccessDenied) as exc:
            await queued.finalize_pending_swap(
                attacker, NONCE, trader, destination=associated_token_address(attacker, mint)
            )

        assert exc.value.code == ErrorCode.INVALID_DESTINATION_OWNER
        assert await queued.repo.balance_of(attacker, mint) == 0

    @pytest.mark.asyncio
    async def test_matching_destination_accepted(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)
        destination = associated_token_address(trader, mint)

        await queued.finalize_pending_swap(trader, NONCE, trader, destination=destination)

        pending_address = queued.pda.pending_swap(NONCE, trader).address
        assert not await queued.repo.exists(queued.pda.pending_swap(NONCE, trader))
        assert pending_address != destination

    @pytest.mark.asyncio
    async def test_removal_destination_refused(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)

        with pytest.raises(AccessDenied):
            await queued.remove_from_swap_queue(
                trader, NONCE, trader, destination=Pubkey.new_unique()
            )


class TestRemove:
    """Tests for remove_from_swap_queue."""

    @pytest.mark.asyncio
    async def test_trader_removes(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)
        before = await queued.repo.balance_of(trader, mint)

        pending = await queued.remove_from_swap_queue(trader, NONCE, trader)

        assert pending.quantity == 5_000
        assert await queued.repo.balance_of(trader, mint) == before + 5_000
        assert not await queued.repo.exists(queued.pda.expired_swap(NONCE, trader))

        with pytest.raises(NotFound):
            await queued.remove_from_swap_queue(trader, NONCE, trader)

    @pytest.mark.asyncio
    async def test_operator_removal_with_penalty(self, queued, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)
        queued.settings.queue_removal_penalty_bps = 100
        before = await queued.repo.balance_of(trader, mint)

        await queued.remove_from_swap_queue(rebalancer, NONCE, trader)

        assert await queued.repo.balance_of(trader, mint) == before + 4_950
        airdrop_vault = queued.pda.airdrop_vault().address
        assert await queued.repo.balance_of(airdrop_vault, mint) == 50

        expired = await queued.repo.get_account(queued.pda.expired_swap(NONCE, trader))
        assert expired.data["penalty"] == 50
        assert expired.data["removed_by"] == str(rebalancer)
        assert expired.data["expired_at"] == NOW

    @pytest.mark.asyncio
    async def test_admin_may_remove(self, queued, admin, rebalancer, trader, mint):
        await queued.fund_spl(rebalancer, mint, 10_000)

        await queued.remove_from_swap_queue(admin, NONCE, trader)

        assert await queued.repo.exists(queued.pda.expired_swap(NONCE, trader))

    @pytest.mark.asyncio
    async def test_stranger_cannot_remove(self, queued, trader):
        with pytest.raises(AccessDenied) as exc:
            await queued.remove_from_swap_queue(Pubkey.new_unique(), NONCE, trader)

        assert exc.value.code == ErrorCode.UNAUTHORIZED_SIGNER


class TestSwapExpiry:
    """Tests for update_swap_expiry."""

    @pytest.mark.asyncio
    async def test_refused_while_pending(self, queued, rebalancer, trader):
        with pytest.raises(StateGate) as exc:
            await queued.update_swap_expiry(rebalancer, NONCE, trader, NOW + 100)

        assert exc.value.code == ErrorCode.SWAP_STILL_PENDING

    @pytest.mark.asyncio
    async def test_rebalancer_only(self, ready_program, admin, trader):
        with pytest.raises(AccessDenied):
            await ready_program.update_swap_expiry(admin, NONCE, trader, NOW + 100)

    @pytest.mark.asyncio
    async def test_marks_and_moves_expiry(self, ready_program, rebalancer, trader):
        created = await ready_program.update_swap_expiry(rebalancer, NONCE, trader)
        assert created.expiry == NOW

        moved = await ready_program.update_swap_expiry(rebalancer, NONCE, trader, NOW + 500)
        assert moved.expiry == NOW + 500

        completed = ready_program.pda.completed_swap(NONCE, trader)
        account = await ready_program.repo.get_account(completed)
        assert account.data["expiry"] == NOW + 500


class TestPendingRent:
    @pytest.mark.asyncio
    async def test_rent_locked_and_returned(
        self, ready_program, deliver, admin, rebalancer, trader, mint
    ):
        rent = 2_000_000
        ready_program.settings.pending_swap_rent = rent
        await ready_program.deposit_airdrop(admin, SOL)
        airdrop_vault = ready_program.pda.airdrop_vault().address
        pending_address = ready_program.pda.pending_swap(NONCE, trader).address

        await deliver(cc_trade(trader, mint, 5_000))

        assert await ready_program.repo.balance_of(airdrop_vault, NATIVE_MINT) == SOL - rent
        assert await ready_program.repo.balance_of(pending_address, NATIVE_MINT) == rent

        await ready_program.fund_spl(rebalancer, mint, 5_000)
        await ready_program.finalize_pending_swap(trader, NONCE, trader)

        sol_vault = ready_program.pda.sol_vault().address
        assert await ready_program.repo.balance_of(pending_address, NATIVE_MINT) == 0
        assert await ready_program.repo.balance_of(sol_vault, NATIVE_MINT) == rent

    @pytest.mark.asyncio
    async def test_rent_keeps_airdrop_vault_floor(
        self, ready_program, deliver, admin, trader, mint, settings
    ):
        rent = 2_000_000
        ready_program.settings.pending_swap_rent = rent
        await ready_program.deposit_airdrop(admin, rent + settings.native_vault_min_threshold - 1)
        airdrop_vault = ready_program.pda.airdrop_vault().address

        with pytest.raises(InsufficientFunds) as exc:
            await deliver(cc_trade(trader, mint, 5_000))

        assert exc.value.code == ErrorCode.NOT_ENOUGH_NATIVE_BALANCE
        assert await ready_program.repo.balance_of(airdrop_vault, NATIVE_MINT) == (
            rent + settings.native_vault_min_threshold - 1
        )
