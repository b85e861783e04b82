"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts.
Architecture position: Kernel > Models. May import from db/base.py only.

Invariants enforced:
    - Account.code is unique and stable.
    - code, account_type and normal_balance are frozen once any posted
      journal line references the account (db/immutability.py).
    - Deactivated or soft-deleted accounts are invisible to the registry
      lookup, so new lines cannot reference them.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


DEFAULT_NORMAL_BALANCE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


class Account(TrackedBase):
    """Chart of accounts entry -- one ledger bucket."""

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[str] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT
