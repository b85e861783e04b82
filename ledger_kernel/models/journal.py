"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries, their lines and their
    status history.
Architecture position: Kernel > Models. May import from db/base.py and
    domain/lifecycle.py only.

Invariants enforced:
    - Lines are mutable only while the parent entry is DRAFT
      (db/immutability.py).
    - Every status change appends a JournalEntryStatusChange row; those rows
      are never updated or deleted.
    - ``version`` is a SQLAlchemy version counter, so two sessions that both
      read a DRAFT entry cannot both post it.
    - Entries are never physically deleted; DRAFT entries are soft-deleted.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.lifecycle import JournalEntryStatus
from ledger_kernel.domain.money import DEFAULT_TOLERANCE, ZERO

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account

__all__ = [
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "JournalEntryStatusChange",
]


class JournalEntry(TrackedBase):
    """
    A dated, described, balanced transaction.

    ``created_by_id`` is the preparer. ``module`` and ``reference_id``
    identify the record that produced the entry; ``reference`` is the
    combined ``"{module}:{reference_id}"`` form used for filtering.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("code", name="uq_journal_entry_code"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_reference", "reference"),
        Index("idx_journal_reversal_of", "reversal_of_id"),
        Index("idx_journal_adjustment_of", "adjustment_of_id"),
    )

    code: Mapped[str] = mapped_column(String(30), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    module: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    status: Mapped[str] = mapped_column(
        String(10),
        default=JournalEntryStatus.DRAFT.value,
        nullable=False,
    )

    adjustment_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalEntryLine.line_number",
    )

    status_history: Mapped[list["JournalEntryStatusChange"]] = relationship(
        back_populates="entry",
        cascade="all",
        lazy="selectin",
        order_by="JournalEntryStatusChange.sequence",
    )

    adjustment_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[adjustment_of_id],
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.code} status={self.status}>"

    @property
    def active_lines(self) -> list["JournalEntryLine"]:
        return [line for line in self.lines if not line.is_deleted]

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.active_lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.active_lines), ZERO)

    def is_balanced(self, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
        return abs(self.total_debits - self.total_credits) < tolerance

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED


class JournalEntryLine(Base):
    """
    One posting of a journal entry.

    Exactly one of ``debit``/``credit`` is strictly positive and the other
    is zero. ``account_code`` is copied from the account at creation so the
    line reads the same even if the account is later renamed.
    """

    __tablename__ = "journal_entry_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<JournalEntryLine #{self.line_number} {self.account_code} "
            f"Dr {self.debit} Cr {self.credit}>"
        )


class JournalEntryStatusChange(Base):
    """
    Append-only status history of a journal entry.

    ``status`` on the entry is a single column; this table keeps the full
    path (e.g. POSTED then ADJUSTED) with actor and timestamp for each step.
    """

    __tablename__ = "journal_entry_status_changes"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "sequence", name="uq_status_change_seq"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(10), nullable=True)

    to_status: Mapped[str] = mapped_column(String(10), nullable=False)

    changed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    changed_at: Mapped[datetime] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    related_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="status_history")
