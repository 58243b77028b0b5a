"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from solders.instruction import AccountMeta
from solders.pubkey import Pubkey
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ.pop("SWAP_SIGNER_PRIVATE_KEY", None)
os.environ.pop("MASTER_KEY", None)

from rfqbridge.addressing import NATIVE_MINT
from rfqbridge.config import Settings, get_settings
from rfqbridge.ledger.models import Base
from rfqbridge.ledger.repository import LedgerRepository
from rfqbridge.messaging import (
    CrossLedgerMessenger,
    InMemoryEndpoint,
    PacketPath,
    UlnMessageLib,
    WorkerPrograms,
    get_quote_accounts,
    get_send_accounts,
)
from rfqbridge.messaging.cpi import accounts_for_clear
from rfqbridge.program import SettlementProgram
from rfqbridge.signing import LocalSigner, Secp256k1Verifier
from rfqbridge.xfer import XFERSolana

# Deterministic secp256k1 key for the swap signer
TEST_SIGNER_KEY = bytes.fromhex(
    "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
)
OTHER_SIGNER_KEY = bytes.fromhex(
    "8f2a55949038a9610f50fb23b5883af3b4ecb3c3bb792cbcefbd1542c692be63"
)
REMOTE_ADDRESS = bytes(range(1, 33))
NOW = 1_700_000_000
SOL = 1_000_000_000


class FixedClock:
    """Settable clock for the program."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest.fixture
def endpoint(settings: Settings) -> InMemoryEndpoint:
    endpoint = InMemoryEndpoint(
        Pubkey.from_string(settings.endpoint_program_id), settings.solana_chain_id
    )
    uln = Pubkey.from_string(settings.uln_program_id)
    endpoint.set_send_library(None, settings.default_chain_id, uln)
    endpoint.set_message_lib_version(uln, (3, 0, 2))
    return endpoint


@pytest.fixture
def messenger(endpoint: InMemoryEndpoint, ledger_repo: LedgerRepository) -> CrossLedgerMessenger:
    return CrossLedgerMessenger(endpoint, ledger_repo)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def order_signer() -> LocalSigner:
    return LocalSigner(TEST_SIGNER_KEY)


@pytest.fixture
def other_signer() -> LocalSigner:
    return LocalSigner(OTHER_SIGNER_KEY)


@pytest.fixture
def remote_address() -> bytes:
    return REMOTE_ADDRESS


@pytest.fixture
def program(ledger_repo, messenger, settings, clock) -> SettlementProgram:
    """Uninitialized program."""
    return SettlementProgram(ledger_repo, messenger, Secp256k1Verifier(), settings, clock)


@pytest.fixture
def admin() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def rebalancer() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def trader() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def mint() -> Pubkey:
    return Pubkey.new_unique()


@pytest_asyncio.fixture
async def ready_program(
    program: SettlementProgram,
    order_signer: LocalSigner,
    settings: Settings,
    admin: Pubkey,
    rebalancer: Pubkey,
    trader: Pubkey,
    mint: Pubkey,
) -> SettlementProgram:
    """Initialized program with vaults, a rebalancer, a remote peer and one listed token.

    Wallets: admin and rebalancer hold 100 SOL, the trader 10 SOL and
    1000 units of ``mint``.
    """
    dst_eid = settings.default_chain_id
    await program.initialize(admin, order_signer.address)
    await program.initialize_vaults(admin)
    await program.add_rebalancer(admin, rebalancer)
    await program.set_remote(admin, dst_eid, REMOTE_ADDRESS)
    await program.add_token(admin, mint, "USDC", 6)
    await program.add_destination(admin, dst_eid, mint)

    await program.repo.credit(admin, NATIVE_MINT, 100 * SOL, "test_faucet")
    await program.repo.credit(rebalancer, NATIVE_MINT, 100 * SOL, "test_faucet")
    await program.repo.credit(rebalancer, mint, 10_000_000_000, "test_faucet")
    await program.repo.credit(trader, NATIVE_MINT, 10 * SOL, "test_faucet")
    await program.repo.credit(trader, mint, 1_000_000_000, "test_faucet")
    return program


@pytest.fixture
def remaining_accounts(
    program: SettlementProgram, settings: Settings
) -> Callable[[Pubkey], list[AccountMeta]]:
    """``quote || send`` accounts for the default chain, paid by ``payer``."""

    def build(payer: Pubkey) -> list[AccountMeta]:
        dst_eid = settings.default_chain_id
        lib = UlnMessageLib(
            Pubkey.from_string(settings.uln_program_id), WorkerPrograms.from_settings(settings)
        )
        path = PacketPath.outbound(
            settings.solana_chain_id, dst_eid, program.portfolio, REMOTE_ADDRESS
        )
        endpoint_program = Pubkey.from_string(settings.endpoint_program_id)
        return get_quote_accounts(endpoint_program, path, lib) + get_send_accounts(
            endpoint_program, path, lib, payer
        )

    return build


@pytest.fixture
def deliver(
    program: SettlementProgram, endpoint: InMemoryEndpoint, settings: Settings
) -> Callable[[XFERSolana], Awaitable[XFERSolana]]:
    """Deliver an inbound XFER from the remote peer through ``lz_receive``."""

    async def run(xfer: XFERSolana, sender: bytes = REMOTE_ADDRESS) -> XFERSolana:
        src_eid = settings.default_chain_id
        params = endpoint.inbound_packet(program.portfolio, src_eid, sender, xfer.pack())
        accounts = accounts_for_clear(
            endpoint.program_id, program.portfolio, src_eid, sender, params.nonce
        )
        return await program.lz_receive(params, accounts)

    return run
