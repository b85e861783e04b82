"""
Receivables domain models.

Frozen dataclasses for receivables, their installment schedules and the
payments applied to them. The ORM layer (``orm.py``) converts rows to
these with ``to_dto()``; services hand only these back to callers.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.lifecycle import InstallmentStatus, ReceivableStatus
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.receivables.models")

__all__ = [
    "CascadePaymentResult",
    "Installment",
    "InstallmentPayment",
    "InstallmentPlan",
    "InstallmentStatus",
    "PaymentAllocation",
    "Receivable",
    "ReceivableStatus",
    "ScheduleItem",
]


class InstallmentPlan(str, Enum):
    WEEKLY = "WEEKLY"
    SEMI_MONTHLY = "SEMI_MONTHLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ONE_TIME = "ONE_TIME"


@dataclass(frozen=True)
class ScheduleItem:
    """One requested installment. ``amount_due`` may be Decimal, int or str."""
    installment_number: int
    due_date: date
    amount_due: Decimal | int | str


@dataclass(frozen=True)
class InstallmentPayment:
    """Cash applied to one installment by one payment event."""
    id: UUID
    installment_id: UUID
    receivable_id: UUID
    revenue_id: UUID
    amount_applied: Decimal
    payment_date: date
    payment_method: str | None = None
    payment_reference: str | None = None
    is_carried_over: bool = False


@dataclass(frozen=True)
class Installment:
    id: UUID
    receivable_id: UUID
    installment_number: int
    due_date: date
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal
    carried_over_amount: Decimal
    status: InstallmentStatus
    paid_date: date | None = None
    payments: tuple[InstallmentPayment, ...] = ()


@dataclass(frozen=True)
class Receivable:
    """An amount owed by a debtor, split into installments."""
    id: UUID
    code: str
    debtor_name: str
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: ReceivableStatus
    due_date: date | None = None
    debtor_ref: str | None = None
    description: str | None = None
    installment_plan: InstallmentPlan | None = None
    expected_installment: Decimal | None = None
    credit_balance: Decimal = Decimal("0")
    last_payment_date: date | None = None
    last_payment_amount: Decimal | None = None
    revenue_id: UUID | None = None
    installments: tuple[Installment, ...] = ()

    @property
    def payment_count(self) -> int:
        return sum(len(i.payments) for i in self.installments)


@dataclass(frozen=True)
class PaymentAllocation:
    """How much of a payment landed on one installment."""
    installment_id: UUID
    installment_number: int
    previous_balance: Decimal
    amount_applied: Decimal
    new_balance: Decimal
    new_status: InstallmentStatus
    is_carried_over: bool


@dataclass(frozen=True)
class CascadePaymentResult:
    success: bool
    total_amount_paid: Decimal
    allocations: tuple[PaymentAllocation, ...]
    remaining_amount: Decimal
    receivable_id: UUID
    receivable_new_status: ReceivableStatus
    receivable_new_balance: Decimal
    receivable_new_paid_amount: Decimal
    payment_record_ids: tuple[UUID, ...]
    revenue_id: UUID
    revenue_code: str

    @property
    def payment_records_created(self) -> int:
        return len(self.payment_record_ids)
