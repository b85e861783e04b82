"""
Module: ledger_engines.cascade
Responsibility:
    Plan how one cash payment is spread over a receivable's installments.
    The planner is a pure function over in-memory snapshots; the receivables
    service applies the resulting plan inside one transaction.

Algorithm:
    1. Eligible installments are those numbered at or after the target
       whose status still accepts payments (not PAID, CANCELLED or
       WRITTEN_OFF), in ascending installment number. Overflow never flows
       backwards to earlier installments.
    2. Walk the list applying ``min(remaining, balance)`` to each, until the
       amount is exhausted or the list ends.
    3. An installment reaching a zero balance becomes PAID; one with some
       payment and a positive balance becomes PARTIALLY_PAID.
    4. Amounts landing on any installment other than the target are
       carried-over amounts.

Invariants:
    - ``sum(applied) + remaining_amount == amount``.
    - No installment is given more than its balance.
    - Decimal arithmetic only.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.lifecycle import CLOSED_SETTLEMENT_STATUSES, SettlementStatus

ZERO = Decimal("0")


@dataclass(frozen=True)
class InstallmentSnapshot:
    """Read-only view of one installment row."""
    installment_id: Any
    installment_number: int
    amount_due: Decimal
    amount_paid: Decimal
    status: str

    @property
    def balance(self) -> Decimal:
        return max(self.amount_due - self.amount_paid, ZERO)

    @property
    def accepts_payment(self) -> bool:
        return self.status not in CLOSED_SETTLEMENT_STATUSES


@dataclass(frozen=True)
class InstallmentAllocation:
    """The share of a payment landing on one installment."""
    installment_id: Any
    installment_number: int
    previous_balance: Decimal
    amount_applied: Decimal
    new_amount_paid: Decimal
    new_balance: Decimal
    previous_status: str
    new_status: str
    is_carried_over: bool


@dataclass(frozen=True)
class CascadePlan:
    target_installment_number: int
    amount: Decimal
    allocations: tuple[InstallmentAllocation, ...]
    remaining_amount: Decimal

    @property
    def total_applied(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    @property
    def carried_over_amount(self) -> Decimal:
        return sum(
            (a.amount_applied for a in self.allocations if a.is_carried_over), ZERO
        )

    @property
    def is_fully_applied(self) -> bool:
        return self.remaining_amount == ZERO


@dataclass(frozen=True)
class ReceivableSettlement:
    """Receivable aggregates after a payment."""
    paid_amount: Decimal
    balance: Decimal
    status: str


def eligible_installments(
    installments: Sequence[InstallmentSnapshot],
    target_installment_number: int,
) -> list[InstallmentSnapshot]:
    """Installments that can absorb a payment aimed at the target, in order."""
    return sorted(
        (
            inst for inst in installments
            if inst.installment_number >= target_installment_number
            and inst.accepts_payment
        ),
        key=lambda inst: inst.installment_number,
    )


def _next_status(current: str, amount_paid: Decimal, balance: Decimal) -> str:
    if balance == ZERO:
        return SettlementStatus.PAID.value
    if amount_paid > ZERO:
        return SettlementStatus.PARTIALLY_PAID.value
    return current


@traced_engine(
    "cascade_payment",
    "1.0",
    fingerprint_fields=("installments", "target_installment_number", "amount"),
    summarize=lambda plan: {
        "installments_touched": len(plan.allocations),
        "total_applied": plan.total_applied,
        "remaining_amount": plan.remaining_amount,
    },
)
def plan_cascade(
    *,
    installments: Sequence[InstallmentSnapshot],
    target_installment_number: int,
    amount: Decimal,
) -> CascadePlan:
    """
    Spread ``amount`` over the target installment and the ones after it.

    Raises:
        ValueError: amount is not positive, or the target is missing or
            no longer accepts payments.
    """
    if amount <= ZERO:
        raise ValueError(f"Payment amount must be positive, got {amount}")

    target = next(
        (i for i in installments if i.installment_number == target_installment_number),
        None,
    )
    if target is None:
        raise ValueError(f"Installment #{target_installment_number} is not in the schedule")
    if not target.accepts_payment:
        raise ValueError(
            f"Installment #{target_installment_number} is {target.status} "
            f"and cannot accept payments"
        )

    remaining = amount
    allocations: list[InstallmentAllocation] = []

    for inst in eligible_installments(installments, target_installment_number):
        if remaining <= ZERO:
            break
        balance = inst.balance
        applied = min(remaining, balance)
        if applied <= ZERO:
            continue

        new_paid = inst.amount_paid + applied
        new_balance = max(inst.amount_due - new_paid, ZERO)
        allocations.append(
            InstallmentAllocation(
                installment_id=inst.installment_id,
                installment_number=inst.installment_number,
                previous_balance=balance,
                amount_applied=applied,
                new_amount_paid=new_paid,
                new_balance=new_balance,
                previous_status=inst.status,
                new_status=_next_status(inst.status, new_paid, new_balance),
                is_carried_over=inst.installment_number != target_installment_number,
            )
        )
        remaining -= applied

    return CascadePlan(
        target_installment_number=target_installment_number,
        amount=amount,
        allocations=tuple(allocations),
        remaining_amount=remaining,
    )


def settle_receivable(
    *,
    total_amount: Decimal,
    paid_amount: Decimal,
    amount_applied: Decimal,
    current_status: str,
) -> ReceivableSettlement:
    """
    Recompute receivable aggregates once after a payment.

    ``balance`` is clamped at zero; the status becomes PAID when nothing is
    left and PARTIALLY_PAID when something was paid.
    """
    new_paid = paid_amount + amount_applied
    balance = total_amount - new_paid
    if balance <= ZERO:
        status = SettlementStatus.PAID.value
    elif new_paid > ZERO:
        status = SettlementStatus.PARTIALLY_PAID.value
    else:
        status = current_status
    return ReceivableSettlement(
        paid_amount=new_paid,
        balance=max(balance, ZERO),
        status=status,
    )
