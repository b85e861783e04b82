"""
Revenue domain models.

Frozen dataclasses for revenue sources, revenue records and the result of
pushing a revenue into the journal ledger.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_modules.receivables.models import InstallmentPlan, ScheduleItem

__all__ = [
    "ApprovalStatus",
    "Revenue",
    "RevenueJournalResult",
    "RevenueSource",
    "RevenueStatus",
    "UnearnedRevenueTerms",
]


class RevenueStatus(str, Enum):
    PENDING = "PENDING"
    RECORDED = "RECORDED"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class RevenueSource:
    """A kind of revenue (rental, disposal sale, ...) and its GL account."""
    id: UUID
    code: str
    name: str
    account_code: str | None = None
    description: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class UnearnedRevenueTerms:
    """
    Terms for a revenue that is owed rather than received.

    An empty ``schedule`` means one installment for the whole amount,
    due on ``due_date``.
    """
    due_date: date
    debtor_ref: str | None = None
    debtor_name: str | None = None
    installment_plan: InstallmentPlan | None = None
    schedule: tuple[ScheduleItem, ...] = ()


@dataclass(frozen=True)
class Revenue:
    id: UUID
    code: str
    amount: Decimal
    date_recorded: date
    status: RevenueStatus
    approval_status: ApprovalStatus
    source_id: UUID | None = None
    description: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    is_unearned: bool = False
    receivable_id: UUID | None = None
    journal_entry_id: UUID | None = None
    is_deleted: bool = False


@dataclass(frozen=True)
class RevenueJournalResult:
    """Outcome of a bridge call: the revenue and the entry it now links."""
    revenue_id: UUID
    revenue_code: str
    journal_entry_id: UUID
    journal_entry_code: str
    journal_entry_status: str
    reversal_entry_id: UUID | None = None
    reversal_entry_code: str | None = None
