"""SQLAlchemy models for the settlement ledger.

``ProgramAccount`` is the keyed store: one row per derived address, and the
primary key makes creation exclusive. Balances live in ``TokenAccount`` rows
(a native balance on the owner's own address, an asset balance on the
owner's associated token account). Every transfer is journaled in
``BalanceMovement`` so balances can be reconciled against their history.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class AccountKind(str, Enum):
    """Record type stored at a derived address."""

    PORTFOLIO = "portfolio"
    VAULT = "vault"
    TOKEN_LIST = "token_list"
    TOKEN_DETAILS = "token_details"
    REMOTE = "remote"
    ADMIN = "admin"
    REBALANCER = "rebalancer"
    BANNED = "banned"
    ALLOWED_DESTINATION = "allowed_destination"
    PENDING_SWAP = "pending_swap"
    COMPLETED_SWAP = "completed_swap"
    EXPIRED_SWAP = "expired_swap"


class ProgramAccount(Base):
    """An account owned by the settlement program at a derived address."""

    __tablename__ = "program_accounts"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    seed: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    seeds: Mapped[str] = mapped_column(Text, nullable=False)
    bump: Mapped[int] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<ProgramAccount {self.kind} {self.address}>"


class TokenAccount(Base):
    """Balance of one mint held by one owner."""

    __tablename__ = "token_accounts"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    owner: Mapped[str] = mapped_column(String(44), nullable=False, index=True)
    mint: Mapped[str] = mapped_column(String(44), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("ix_token_accounts_owner_mint", "owner", "mint", unique=True),)

    def __repr__(self) -> str:
        return f"<TokenAccount {self.owner}/{self.mint}: {self.amount}>"


class BalanceMovement(Base):
    """Journal entry for a balance change.

    ``source`` is NULL for funds entering the ledger from outside
    (wallet top-ups in dry-run and tests).
    """

    __tablename__ = "balance_movements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    source: Mapped[Optional[str]] = mapped_column(String(44), nullable=True, index=True)
    destination: Mapped[str] = mapped_column(String(44), nullable=False, index=True)
    mint: Mapped[str] = mapped_column(String(44), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ProgramEvent(Base):
    """Event emitted by an instruction."""

    __tablename__ = "program_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
