"""
Receivables Module.

Receivables with installment schedules, and cascading payments that
spill from a target installment into the ones after it.
"""

from ledger_modules.receivables.config import ReceivablesConfig
from ledger_modules.receivables.models import (
    CascadePaymentResult,
    Installment,
    InstallmentPayment,
    InstallmentPlan,
    PaymentAllocation,
    Receivable,
    ScheduleItem,
)
from ledger_modules.receivables.service import DebtorDirectory, ReceivableService

__all__ = [
    "CascadePaymentResult",
    "DebtorDirectory",
    "Installment",
    "InstallmentPayment",
    "InstallmentPlan",
    "PaymentAllocation",
    "Receivable",
    "ReceivableService",
    "ReceivablesConfig",
    "ScheduleItem",
]
