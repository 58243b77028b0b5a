#!/usr/bin/env python3
"""Ledger Reconciliation Script.

Replays the balance journal and compares the net flow of every token
account with its stored balance. Vault balances must equal settled in-flows
minus settled out-flows.

Usage:
    python scripts/reconcile.py [--owner PUBKEY] [--mint PUBKEY] [--json]

Options:
    --owner  Only check token accounts of this owner
    --mint   Only check token accounts of this mint
    --json   Print the report as JSON
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from rfqbridge.addressing import PdaDeriver
from rfqbridge.config import get_settings
from rfqbridge.ledger.database import close_db, get_db, init_db
from rfqbridge.ledger.repository import LedgerRepository

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def vault_names() -> dict[str, str]:
    """Owner address -> vault tag, for readable output."""
    pda = PdaDeriver(get_settings().program_id)
    vaults = [
        pda.sol_vault(),
        pda.sol_user_funds_vault(),
        pda.spl_vault(),
        pda.spl_user_funds_vault(),
        pda.airdrop_vault(),
    ]
    return {str(v.address): v.tag for v in vaults}


async def reconcile(owner: Optional[str] = None, mint: Optional[str] = None) -> list[dict]:
    """Compare journal net flow with the balance of each token account."""
    names = vault_names()
    results = []

    async with get_db() as session:
        repo = LedgerRepository(session)
        net = await repo.get_journal_net()
        accounts = await repo.get_all_token_accounts()

        for account in accounts:
            if owner and account.owner != owner:
                continue
            if mint and account.mint != mint:
                continue

            journal = net.get(account.address, 0)
            results.append(
                {
                    "address": account.address,
                    "owner": names.get(account.owner, account.owner),
                    "mint": account.mint,
                    "balance": account.amount,
                    "journal": journal,
                    "discrepancy": account.amount - journal,
                }
            )

        # Journaled addresses without a token account
        known = {a.address for a in accounts}
        for address, journal in net.items():
            if address not in known and journal != 0 and not (owner or mint):
                results.append(
                    {
                        "address": address,
                        "owner": None,
                        "mint": None,
                        "balance": 0,
                        "journal": journal,
                        "discrepancy": -journal,
                    }
                )

    return results


async def main() -> int:
    parser = argparse.ArgumentParser(description="Ledger Reconciliation")
    parser.add_argument("--owner", type=str, help="Only check this owner")
    parser.add_argument("--mint", type=str, help="Only check this mint")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    args = parser.parse_args()

    await init_db()

    logger.info("=" * 60)
    logger.info("LEDGER RECONCILIATION")
    logger.info("=" * 60)

    results = await reconcile(owner=args.owner, mint=args.mint)
    await close_db()

    if args.json:
        print(json.dumps(results, indent=2))

    mismatches = [r for r in results if r["discrepancy"] != 0]
    for r in results:
        status = "OK" if r["discrepancy"] == 0 else "DISCREPANCY"
        logger.info(f"{r['owner']} / {r['mint']}: {status}")
        logger.info(f"  Balance: {r['balance']}")
        logger.info(f"  Journal: {r['journal']}")

    logger.info("=" * 60)
    logger.info(f"{len(results)} account(s) checked, {len(mismatches)} discrepancy(ies)")
    return 1 if mismatches else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
