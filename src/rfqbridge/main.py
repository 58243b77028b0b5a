"""Command line driver.

Usage:
    rfqbridge init-db
    rfqbridge show-config
    rfqbridge derive [--nonce HEX --trader PUBKEY] [--eid N] [--mint PUBKEY]
    rfqbridge pending
    rfqbridge sign-order --maker-asset ... --taker-asset ... --taker ... \\
        --maker-amount N --taker-amount N
    rfqbridge gen-master-key
    rfqbridge encrypt-key HEX
    rfqbridge demo
"""

import argparse
import asyncio
import json
import logging
import secrets
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from dotenv import load_dotenv
from solders.pubkey import Pubkey
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rfqbridge.addressing import NATIVE_MINT, PdaDeriver
from rfqbridge.client import OrderDesk
from rfqbridge.config import Settings, get_settings
from rfqbridge.crypto import KeyEncryptor, generate_master_key
from rfqbridge.errors import SettlementError
from rfqbridge.ledger.database import atomic, close_db, get_db, init_db
from rfqbridge.ledger.models import AccountKind, Base
from rfqbridge.ledger.repository import LedgerRepository
from rfqbridge.messaging.adapter import CrossLedgerMessenger
from rfqbridge.messaging.cpi import accounts_for_clear
from rfqbridge.messaging.endpoint import InMemoryEndpoint
from rfqbridge.orders.codec import CrossOrder
from rfqbridge.program import SettlementProgram
from rfqbridge.signing import LocalSigner, Secp256k1Verifier, get_signer
from rfqbridge.state import PendingSwap
from rfqbridge.utils.locks import LockTimeoutError
from rfqbridge.xfer import Tx, XFERSolana, nonce_to_custom_data

logger = logging.getLogger(__name__)

LAMPORTS = 1_000_000_000


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def cmd_init_db(args: argparse.Namespace, settings: Settings) -> int:
    await init_db()
    logger.info(f"Ledger tables created at {settings.database_url}")
    await close_db()
    return 0


async def cmd_show_config(args: argparse.Namespace, settings: Settings) -> int:
    _print_json(settings.get_safe_dict())
    return 0


async def cmd_derive(args: argparse.Namespace, settings: Settings) -> int:
    pda = PdaDeriver(settings.program_id)
    derived = {
        "portfolio": pda.portfolio(),
        "token_list": pda.token_list(),
        "sol_vault": pda.sol_vault(),
        "sol_user_funds_vault": pda.sol_user_funds_vault(),
        "spl_vault": pda.spl_vault(),
        "spl_user_funds_vault": pda.spl_user_funds_vault(),
        "airdrop_vault": pda.airdrop_vault(),
    }
    if args.eid is not None:
        derived["remote"] = pda.remote(args.eid)
        if args.mint:
            derived["allowed_destination"] = pda.allowed_destination(
                args.eid, Pubkey.from_string(args.mint)
            )
    if args.mint:
        derived["token_details"] = pda.token_details(Pubkey.from_string(args.mint))
    if args.nonce and args.trader:
        nonce = bytes.fromhex(args.nonce)
        trader = Pubkey.from_string(args.trader)
        derived["completed_swap"] = pda.completed_swap(nonce, trader)
        derived["pending_swap"] = pda.pending_swap(nonce, trader)
        derived["expired_swap"] = pda.expired_swap(nonce, trader)

    _print_json(
        {
            name: {"address": str(d.address), "bump": d.bump, "seeds": d.describe()}
            for name, d in derived.items()
        }
    )
    return 0


async def cmd_pending(args: argparse.Namespace, settings: Settings) -> int:
    async with get_db() as session:
        repo = LedgerRepository(session)
        accounts = await repo.list_accounts(AccountKind.PENDING_SWAP)
        entries = []
        for account in accounts:
            pending = PendingSwap.from_account(account)
            entries.append({"address": account.address, **pending.to_data()})
    await close_db()
    _print_json(entries)
    print(f"{len(entries)} pending swap(s)")
    return 0


async def cmd_sign_order(args: argparse.Namespace, settings: Settings) -> int:
    endpoint = InMemoryEndpoint(
        Pubkey.from_string(settings.endpoint_program_id), settings.solana_chain_id
    )
    desk = OrderDesk(get_signer(), endpoint, settings)
    order = desk.build_order(
        maker_asset=Pubkey.from_string(args.maker_asset),
        taker_asset=Pubkey.from_string(args.taker_asset),
        taker=Pubkey.from_string(args.taker),
        maker_amount=args.maker_amount,
        taker_amount=args.taker_amount,
        dest_trader=Pubkey.from_string(args.dest_trader) if args.dest_trader else None,
        ttl_seconds=args.ttl,
    )
    signature = await desk.sign_order(order)
    _print_json(
        {
            "order": order.to_dict(),
            "hash": "0x" + order.hash().hex(),
            "signature": "0x" + signature.hex(),
            "completed_swap": str(desk.swap_addresses(order)["completed"]),
        }
    )
    return 0


async def cmd_gen_master_key(args: argparse.Namespace, settings: Settings) -> int:
    print(generate_master_key())
    return 0


async def cmd_encrypt_key(args: argparse.Namespace, settings: Settings) -> int:
    if not settings.master_key:
        print("MASTER_KEY is not set", file=sys.stderr)
        return 1
    print(KeyEncryptor(settings.master_key).encrypt(args.private_key))
    return 0


# ======================
# Dry-run demo
# ======================


class DemoLedger:
    """Runs instructions against a throwaway in-memory ledger."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        self.endpoint = InMemoryEndpoint(
            Pubkey.from_string(settings.endpoint_program_id), settings.solana_chain_id
        )
        self.verifier = Secp256k1Verifier()

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def instruction(self, name: str) -> AsyncGenerator[SettlementProgram, None]:
        async with self.session_factory() as session:
            async with atomic(session, name, self.endpoint):
                yield self._program(session)
        logger.info(f"{name}: ok")

    def _program(self, session: AsyncSession) -> SettlementProgram:
        repo = LedgerRepository(session)
        return SettlementProgram(
            repo, CrossLedgerMessenger(self.endpoint, repo), self.verifier, self.settings
        )

    async def balances(self, owners: dict[str, Pubkey], mints: dict[str, Pubkey]) -> dict:
        async with self.session_factory() as session:
            repo = LedgerRepository(session)
            result: dict[str, dict[str, int]] = {}
            for owner_name, owner in owners.items():
                result[owner_name] = {}
                for mint_name, mint in mints.items():
                    result[owner_name][mint_name] = await repo.balance_of(owner, mint)
            return result

    async def close(self) -> None:
        await self.engine.dispose()


async def cmd_demo(args: argparse.Namespace, settings: Settings) -> int:
    """Same-ledger swap, cross swap and a queued inbound payout, end to end."""
    ledger = DemoLedger(settings)
    await ledger.create_tables()

    signer = LocalSigner(secrets.token_bytes(32))
    admin = Pubkey.new_unique()
    trader = Pubkey.new_unique()
    usdc = Pubkey.new_unique()
    remote = secrets.token_bytes(32)
    uln = Pubkey.from_string(settings.uln_program_id)
    dst_eid = settings.default_chain_id

    ledger.endpoint.set_send_library(None, dst_eid, uln)
    ledger.endpoint.set_message_lib_version(uln, (3, 0, 2))
    desk = OrderDesk(signer, ledger.endpoint, settings)

    try:
        async with ledger.instruction("initialize") as program:
            await program.initialize(admin, signer.address, default_chain_id=dst_eid)
            await program.initialize_vaults(admin)
            await program.add_rebalancer(admin, admin)
            await program.set_remote(admin, dst_eid, remote)
            await program.add_token(admin, usdc, "USDC", 6)
            await program.add_destination(admin, dst_eid, usdc)
            await program.repo.credit(admin, NATIVE_MINT, 10 * LAMPORTS, "demo_faucet")
            await program.repo.credit(admin, usdc, 1_000_000_000, "demo_faucet")
            await program.repo.credit(trader, NATIVE_MINT, 5 * LAMPORTS, "demo_faucet")

        async with ledger.instruction("fund") as program:
            await program.fund_sol(admin, 2 * LAMPORTS)
            await program.fund_spl(admin, usdc, 100_000_000)

        order = desk.build_order(
            usdc, NATIVE_MINT, trader, 50_000_000, LAMPORTS, nonce=secrets.token_bytes(12)
        )
        signature = await desk.sign_order(order)
        async with ledger.instruction("swap") as program:
            await program.swap(trader, order, signature)

        cross_order = desk.build_cross_order(
            trader,
            trader,
            "USDC",
            usdc,
            NATIVE_MINT,
            25_000_000,
            LAMPORTS // 2,
            dst_eid,
            nonce=secrets.token_bytes(12),
        )

        async def submit(order: CrossOrder, signature: bytes, accounts, quote_len: int):
            async with ledger.instruction("cross_swap") as program:
                return await program.cross_swap(trader, order, signature, accounts, quote_len)

        receipt = await desk.submit_cross_swap(cross_order, trader, remote, submit)
        print(f"Cross swap relayed: guid=0x{receipt.guid.hex()} nonce={receipt.nonce}")

        # Inbound payout larger than the vault holds: queued, then finalized
        nonce = secrets.token_bytes(12)
        xfer = XFERSolana(
            transaction=Tx.CC_TRADE,
            trader=trader,
            token_mint=usdc,
            quantity=200_000_000,
            timestamp=0,
            custom_data=nonce_to_custom_data(nonce),
            nonce=0,
        )
        async with ledger.instruction("lz_receive") as program:
            params = ledger.endpoint.inbound_packet(program.portfolio, dst_eid, remote, xfer.pack())
            clear_accounts = accounts_for_clear(
                ledger.endpoint.program_id, program.portfolio, dst_eid, remote, params.nonce
            )
            await program.lz_receive(params, clear_accounts)
            pending = await program.get_pending_swap(nonce, trader)
            print(f"Queued inbound payout: {pending.quantity} USDC for {trader}")

        async with ledger.instruction("finalize") as program:
            await program.fund_spl(admin, usdc, 500_000_000)
            await program.finalize_pending_swap(admin, nonce, trader)

        pda = PdaDeriver(settings.program_id)
        owners = {
            "trader": trader,
            "sol_vault": pda.sol_vault().address,
            "spl_vault": pda.spl_vault().address,
        }
        _print_json(await ledger.balances(owners, {"SOL": NATIVE_MINT, "USDC": usdc}))
        print(f"Portfolio {pda.portfolio()}: {len(ledger.endpoint.sent)} message(s) sent")
    finally:
        await ledger.close()
    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "show-config": cmd_show_config,
    "derive": cmd_derive,
    "pending": cmd_pending,
    "sign-order": cmd_sign_order,
    "gen-master-key": cmd_gen_master_key,
    "encrypt-key": cmd_encrypt_key,
    "demo": cmd_demo,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rfqbridge", description="RFQ order authentication and cross-ledger settlement"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables")
    sub.add_parser("show-config", help="Print settings with secrets redacted")

    derive = sub.add_parser("derive", help="Print derived program addresses")
    derive.add_argument("--nonce", help="12-byte order nonce (hex)")
    derive.add_argument("--trader", help="Trader or dest trader public key")
    derive.add_argument("--eid", type=int, help="Remote endpoint id")
    derive.add_argument("--mint", help="Token mint")

    sub.add_parser("pending", help="List pending swaps in the ledger")

    sign = sub.add_parser("sign-order", help="Build and sign a same-ledger order")
    sign.add_argument("--maker-asset", required=True)
    sign.add_argument("--taker-asset", required=True)
    sign.add_argument("--taker", required=True)
    sign.add_argument("--dest-trader")
    sign.add_argument("--maker-amount", type=int, required=True)
    sign.add_argument("--taker-amount", type=int, required=True)
    sign.add_argument("--ttl", type=int, default=60, help="Seconds until the order expires")

    sub.add_parser("gen-master-key", help="Generate a Fernet MASTER_KEY")
    encrypt = sub.add_parser("encrypt-key", help="Encrypt a signer key with MASTER_KEY")
    encrypt.add_argument("private_key")

    sub.add_parser("demo", help="Run a dry-run settlement against an in-memory ledger")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    settings = get_settings()

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except (SettlementError, LockTimeoutError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid argument: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
