"""Ledger module: keyed program accounts, token balances and events."""

from rfqbridge.ledger.database import atomic, get_db, init_db
from rfqbridge.ledger.models import (
    AccountKind,
    BalanceMovement,
    ProgramAccount,
    ProgramEvent,
    TokenAccount,
)
from rfqbridge.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "ProgramAccount",
    "TokenAccount",
    "BalanceMovement",
    "ProgramEvent",
    # Enums
    "AccountKind",
    # Database
    "atomic",
    "get_db",
    "init_db",
    "LedgerRepository",
]
