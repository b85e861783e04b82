"""
Data transfer objects for the journal ledger.

Inputs (``LineInput``, ``EntryFilters``) arrive from callers; views
(``JournalEntryView`` and friends) are immutable snapshots handed back so
callers never hold live ORM rows across transactions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


@dataclass(frozen=True)
class LineInput:
    """One requested journal line. Amounts may be Decimal, int or str."""
    account_code: str
    debit: Decimal | int | str = Decimal("0")
    credit: Decimal | int | str = Decimal("0")
    description: str | None = None


@dataclass(frozen=True)
class JournalLineView:
    line_number: int
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str | None


@dataclass(frozen=True)
class StatusChangeView:
    sequence: int
    from_status: str | None
    to_status: str
    changed_by_id: UUID
    changed_at: datetime
    reason: str | None


@dataclass(frozen=True)
class EntryLink:
    """Short reference to a related entry."""
    id: UUID
    code: str
    status: str


@dataclass(frozen=True)
class JournalEntryView:
    id: UUID
    code: str
    entry_date: date
    description: str
    module: str | None
    reference_id: str | None
    reference: str | None
    status: str
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool
    prepared_by_id: UUID
    posted_by_id: UUID | None
    posted_at: datetime | None
    is_deleted: bool
    lines: tuple[JournalLineView, ...]
    adjustment_of: EntryLink | None = None
    reversal_of: EntryLink | None = None
    adjustments: tuple[EntryLink, ...] = ()
    reversals: tuple[EntryLink, ...] = ()
    status_history: tuple[StatusChangeView, ...] = ()


@dataclass(frozen=True)
class EntryFilters:
    status: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    module: str | None = None
    reference: str | None = None
    code: str | None = None
    include_deleted: bool = False


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class ValidatedLine:
    """A line after amount normalization and account resolution."""
    line_number: int
    account_id: UUID
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str | None = None


@dataclass(frozen=True)
class ValidatedLines:
    lines: tuple[ValidatedLine, ...]
    total_debit: Decimal
    total_credit: Decimal
