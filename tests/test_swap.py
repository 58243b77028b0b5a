"""Tests for same-ledger RFQ swaps."""

import pytest
import pytest_asyncio
from solders.pubkey import Pubkey

from rfqbridge.addressing import NATIVE_MINT
from rfqbridge.errors import (
    AccessDenied,
    AuthenticationFailure,
    ErrorCode,
    InsufficientFunds,
    InvalidInput,
    ReplayRejected,
    StateGate,
)
from rfqbridge.orders import Order
from rfqbridge.signing import LocalSigner

NOW = 1_700_000_000
SOL = 1_000_000_000
NONCE = bytes(8) + b"\x00\x00\x00\x01"


def make_order(trader: Pubkey, mint: Pubkey, **overrides) -> Order:
    """Trader pays 0.1 SOL for 100_000 units of ``mint``."""
    fields = dict(
        maker_asset=mint,
        taker_asset=NATIVE_MINT,
        taker=trader,
        maker_amount=100_000,
        taker_amount=SOL // 10,
        expiry=NOW + 60,
        dest_trader=trader,
        nonce=NONCE,
    )
    fields.update(overrides)
    return Order(**fields)


async def sign(signer: LocalSigner, order: Order) -> bytes:
    return (await signer.sign_hash(order.hash())).signature


@pytest_asyncio.fixture
async def funded_program(ready_program, rebalancer, mint):
    """Ready program with liquidity in both trading vaults."""
    await ready_program.fund_spl(rebalancer, mint, 1_000_000)
    await ready_program.fund_sol(rebalancer, 2 * SOL)
    return ready_program


class TestSwap:
    """Tests for the swap instruction."""

    @pytest.mark.asyncio
    async def test_swap(self, funded_program, order_signer, trader, mint):
        program = funded_program
        order = make_order(trader, mint)
        sol_before = await program.repo.balance_of(trader, NATIVE_MINT)
        mint_before = await program.repo.balance_of(trader, mint)

        executed = await program.swap(trader, order, await sign(order_signer, order))

        assert executed == order
        assert await program.repo.balance_of(trader, NATIVE_MINT) == sol_before - SOL // 10
        assert await program.repo.balance_of(trader, mint) == mint_before + 100_000
        assert await program.repo.balance_of(program.pda.sol_vault().address, NATIVE_MINT) == (
            2 * SOL + SOL // 10
        )
        assert await program.repo.balance_of(program.pda.spl_vault().address, mint) == 900_000

        completed = await program.repo.get_account(program.pda.completed_swap(NONCE, trader))
        assert completed is not None
        assert completed.data["expiry"] == NOW + 60

        event = (await program.repo.get_events("SwapExecuted"))[-1]
        assert event.payload["nonce"] == NONCE.hex()
        assert event.payload["src_amount"] == SOL // 10
        assert event.payload["dest_amount"] == 100_000

    @pytest.mark.asyncio
    async def test_replay_rejected(self, funded_program, order_signer, trader, mint):
        order = make_order(trader, mint)
        signature = await sign(order_signer, order)
        await funded_program.swap(trader, order, signature)

        with pytest.raises(ReplayRejected) as exc:
            await funded_program.swap(trader, order, signature)

        assert exc.value.code == ErrorCode.ORDER_ALREADY_COMPLETED
        assert exc.value.address == str(funded_program.pda.completed_swap(NONCE, trader).address)

    @pytest.mark.asyncio
    async def test_same_nonce_other_trader_allowed(
        self, funded_program, order_signer, trader, mint
    ):
        other = Pubkey.new_unique()
        await funded_program.repo.credit(other, NATIVE_MINT, SOL, "test_faucet")
        first = make_order(trader, mint)
        second = make_order(other, mint)

        await funded_program.swap(trader, first, await sign(order_signer, first))
        await funded_program.swap(other, second, await sign(order_signer, second))

        assert await funded_program.repo.balance_of(other, mint) == 100_000

    @pytest.mark.asyncio
    async def test_wrong_signer(self, funded_program, other_signer, trader, mint):
        order = make_order(trader, mint)

        with pytest.raises(AuthenticationFailure) as exc:
            await funded_program.swap(trader, order, await sign(other_signer, order))

        assert exc.value.code == ErrorCode.INVALID_SIGNER
        assert not await funded_program.repo.exists(funded_program.pda.completed_swap(NONCE, trader))

    @pytest.mark.asyncio
    async def test_tampered_order(self, funded_program, order_signer, trader, mint):
        signature = await sign(order_signer, make_order(trader, mint))

        with pytest.raises(AuthenticationFailure):
            await funded_program.swap(trader, make_order(trader, mint, maker_amount=200_000), signature)

    @pytest.mark.asyncio
    async def test_expiry(self, funded_program, order_signer, trader, mint, clock):
        order = make_order(trader, mint)
        signature = await sign(order_signer, order)
        clock.now = order.expiry + 1

        with pytest.raises(StateGate) as exc:
            await funded_program.swap(trader, order, signature)
        assert exc.value.code == ErrorCode.ORDER_EXPIRED

        # Still valid at the expiry second itself
        clock.now = order.expiry
        await funded_program.swap(trader, order, signature)

    @pytest.mark.asyncio
    async def test_paused(self, funded_program, order_signer, admin, trader, mint):
        order = make_order(trader, mint)
        await funded_program.set_paused(admin, True)

        with pytest.raises(StateGate) as exc:
            await funded_program.swap(trader, order, await sign(order_signer, order))

        assert exc.value.code == ErrorCode.PROGRAM_PAUSED

    @pytest.mark.asyncio
    async def test_taker_mismatch(self, funded_program, order_signer, trader, mint):
        order = make_order(trader, mint)

        with pytest.raises(InvalidInput) as exc:
            await funded_program.swap(
                trader, order, await sign(order_signer, order), taker=Pubkey.new_unique()
            )

        assert exc.value.code == ErrorCode.INVALID_TAKER

    @pytest.mark.asyncio
    async def test_native_payout_keeps_threshold(
        self, ready_program, order_signer, rebalancer, trader, mint, settings
    ):
        await ready_program.fund_sol(rebalancer, SOL)
        order = make_order(
            trader,
            NATIVE_MINT,
            taker_asset=mint,
            taker_amount=1_000,
            maker_amount=SOL - settings.native_vault_min_threshold + 1,
        )

        with pytest.raises(InsufficientFunds) as exc:
            await ready_program.swap(trader, order, await sign(order_signer, order))

        assert exc.value.code == ErrorCode.NOT_ENOUGH_NATIVE_BALANCE

    @pytest.mark.asyncio
    async def test_queued_nonce_blocks_swap(self, funded_program, order_signer, trader, mint):
        await funded_program.enqueue(NONCE, trader, mint, 500)
        order = make_order(trader, mint)

        with pytest.raises(ReplayRejected) as exc:
            await funded_program.swap(trader, order, await sign(order_signer, order))

        assert exc.value.address == str(funded_program.pda.pending_swap(NONCE, trader).address)


class TestAggregatorFlow:
    """Tests for swaps submitted by the destination trader on behalf of a taker."""

    @pytest.mark.asyncio
    async def test_dest_trader_pays(self, funded_program, order_signer, trader, mint):
        aggregator = Pubkey.new_unique()
        await funded_program.repo.credit(aggregator, NATIVE_MINT, SOL, "test_faucet")
        order = make_order(trader, mint, dest_trader=aggregator)
        trader_sol = await funded_program.repo.balance_of(trader, NATIVE_MINT)

        await funded_program.swap(aggregator, order, await sign(order_signer, order))

        assert await funded_program.repo.balance_of(aggregator, NATIVE_MINT) == SOL - SOL // 10
        assert await funded_program.repo.balance_of(aggregator, mint) == 100_000
        assert await funded_program.repo.balance_of(trader, NATIVE_MINT) == trader_sol

    @pytest.mark.asyncio
    async def test_third_party_refused(self, funded_program, order_signer, trader, mint):
        stranger = Pubkey.new_unique()
        order = make_order(trader, mint)

        with pytest.raises(AccessDenied) as exc:
            await funded_program.swap(stranger, order, await sign(order_signer, order))

        assert exc.value.code == ErrorCode.INVALID_AGGREGATOR_FLOW


class TestPartialFill:
    """Tests for partially filled orders."""

    @pytest.mark.asyncio
    async def test_partial_fill(self, funded_program, order_signer, trader, mint):
        order = make_order(trader, mint, maker_amount=100_000, taker_amount=50_000)
        adjusted = order.with_partial_fill(20_000)
        mint_before = await funded_program.repo.balance_of(trader, mint)
        sol_before = await funded_program.repo.balance_of(trader, NATIVE_MINT)

        executed = await funded_program.swap(
            trader, order, await sign(order_signer, adjusted), taker_amount=20_000, is_partial=True
        )

        assert executed.maker_amount == 40_000
        assert await funded_program.repo.balance_of(trader, mint) == mint_before + 40_000
        assert await funded_program.repo.balance_of(trader, NATIVE_MINT) == sol_before - 20_000

    @pytest.mark.asyncio
    async def test_signature_must_cover_adjusted_order(
        self, funded_program, order_signer, trader, mint
    ):
        order = make_order(trader, mint, maker_amount=100_000, taker_amount=50_000)

        with pytest.raises(AuthenticationFailure):
            await funded_program.swap(
                trader, order, await sign(order_signer, order), taker_amount=20_000, is_partial=True
            )

    @pytest.mark.asyncio
    async def test_overfill_pays_order_amount(self, funded_program, order_signer, trader, mint):
        order = make_order(trader, mint, maker_amount=100_000, taker_amount=50_000)
        sol_before = await funded_program.repo.balance_of(trader, NATIVE_MINT)

        executed = await funded_program.swap(
            trader, order, await sign(order_signer, order), taker_amount=80_000, is_partial=True
        )

        assert executed.maker_amount == 100_000
        assert await funded_program.repo.balance_of(trader, NATIVE_MINT) == sol_before - 50_000

    @pytest.mark.asyncio
    async def test_zero_fill_rejected(self, funded_program, order_signer, trader, mint):
        order = make_order(trader, mint)

        with pytest.raises(InvalidInput) as exc:
            await funded_program.swap(
                trader, order, await sign(order_signer, order), taker_amount=0, is_partial=True
            )

        assert exc.value.code == ErrorCode.ZERO_TOKEN_QUANTITY
