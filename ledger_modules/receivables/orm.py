"""
Receivables ORM Models (``ledger_modules.receivables.orm``).

Responsibility
--------------
SQLAlchemy persistence for receivables, their installment schedules and
the payment records applied to installments. Maps to the frozen
dataclasses in ``models.py``.

Architecture position
---------------------
**Modules layer** -- persistence. Imports from ``ledger_kernel.db.base``
and sibling ``models.py``. MUST NOT be imported by ``ledger_kernel``
except by the immutability listener registry.
"""

from datetime import date, datetime
from decimal import Decimal
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

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.lifecycle import SettlementStatus


# ---------------------------------------------------------------------------
# 1. ReceivableModel
# ---------------------------------------------------------------------------


class ReceivableModel(TrackedBase):
    """
    ORM model for receivables.

    Guarantees:
        - code is unique (uq_receivables_code), ``RCV-{YYYYMM}-{NNNN}``.
        - paid_amount + balance == total_amount while balance > 0.
        - balance never goes below zero; surplus cash lands in
          credit_balance when the overpayment policy allows it.
        - ``version`` guards concurrent payments.
    """

    __tablename__ = "receivables"

    __table_args__ = (
        UniqueConstraint("code", name="uq_receivables_code"),
        Index("idx_receivables_status", "status"),
        Index("idx_receivables_debtor_ref", "debtor_ref"),
    )

    code: Mapped[str] = mapped_column(String(30), nullable=False)
    debtor_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    debtor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    credit_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=SettlementStatus.PENDING.value, nullable=False
    )
    installment_plan: Mapped[str | None] = mapped_column(String(20), nullable=True)
    expected_installment: Mapped[Decimal | None] = mapped_column(nullable=True)
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_payment_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    # Plain column: revenues.receivable_id already holds the FK
    revenue_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    installments: Mapped[list["InstallmentScheduleModel"]] = relationship(
        back_populates="receivable",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InstallmentScheduleModel.installment_number",
    )

    @property
    def active_installments(self) -> list["InstallmentScheduleModel"]:
        return [i for i in self.installments if not i.is_deleted]

    def to_dto(self):
        from ledger_modules.receivables.models import InstallmentPlan, Receivable

        return Receivable(
            id=self.id,
            code=self.code,
            debtor_name=self.debtor_name,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            balance=self.balance,
            status=SettlementStatus(self.status),
            due_date=self.due_date,
            debtor_ref=self.debtor_ref,
            description=self.description,
            installment_plan=(
                InstallmentPlan(self.installment_plan) if self.installment_plan else None
            ),
            expected_installment=self.expected_installment,
            credit_balance=self.credit_balance,
            last_payment_date=self.last_payment_date,
            last_payment_amount=self.last_payment_amount,
            revenue_id=self.revenue_id,
            installments=tuple(i.to_dto() for i in self.active_installments),
        )

    def __repr__(self) -> str:
        return f"<ReceivableModel {self.code}: {self.balance}/{self.total_amount} {self.status}>"


# ---------------------------------------------------------------------------
# 2. InstallmentScheduleModel
# ---------------------------------------------------------------------------


class InstallmentScheduleModel(TrackedBase):
    """
    ORM model for one installment of a receivable.

    Guarantees:
        - (receivable_id, installment_number) is unique.
        - balance == amount_due - amount_paid, never negative.
        - carried_over_amount counts cash that overflowed onto this
          installment from a payment aimed at an earlier one.
    """

    __tablename__ = "installment_schedules"

    __table_args__ = (
        UniqueConstraint(
            "receivable_id", "installment_number", name="uq_installment_number"
        ),
        Index("idx_installment_schedules_status", "status"),
        Index("idx_installment_schedules_due_date", "due_date"),
    )

    receivable_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("receivables.id"), nullable=False
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    carried_over_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(
        String(20), default=SettlementStatus.PENDING.value, nullable=False
    )
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    receivable: Mapped["ReceivableModel"] = relationship(back_populates="installments")

    payments: Mapped[list["InstallmentPaymentModel"]] = relationship(
        back_populates="installment",
        lazy="selectin",
        order_by="InstallmentPaymentModel.created_at",
    )

    def to_dto(self):
        from ledger_modules.receivables.models import Installment

        return Installment(
            id=self.id,
            receivable_id=self.receivable_id,
            installment_number=self.installment_number,
            due_date=self.due_date,
            amount_due=self.amount_due,
            amount_paid=self.amount_paid,
            balance=self.balance,
            carried_over_amount=self.carried_over_amount,
            status=SettlementStatus(self.status),
            paid_date=self.paid_date,
            payments=tuple(p.to_dto() for p in self.payments),
        )

    def __repr__(self) -> str:
        return (
            f"<InstallmentScheduleModel #{self.installment_number}: "
            f"{self.amount_paid}/{self.amount_due} {self.status}>"
        )


# ---------------------------------------------------------------------------
# 3. InstallmentPaymentModel
# ---------------------------------------------------------------------------


class InstallmentPaymentModel(TrackedBase):
    """
    ORM model for cash applied to one installment.

    One payment event writes one row per installment it touched, all
    pointing at the same payment revenue.

    Guarantees:
        - Append-only: rows are never updated or deleted
          (ledger_kernel.db.immutability).
        - amount_applied > 0.
    """

    __tablename__ = "installment_payments"

    __table_args__ = (
        Index("idx_installment_payments_installment_id", "installment_id"),
        Index("idx_installment_payments_receivable_id", "receivable_id"),
        Index("idx_installment_payments_revenue_id", "revenue_id"),
    )

    installment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("installment_schedules.id"), nullable=False
    )
    receivable_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("receivables.id"), nullable=False
    )
    revenue_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("revenues.id"), nullable=False
    )
    amount_applied: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_carried_over: Mapped[bool] = mapped_column(Boolean, default=False)

    installment: Mapped["InstallmentScheduleModel"] = relationship(
        back_populates="payments"
    )

    def to_dto(self):
        from ledger_modules.receivables.models import InstallmentPayment

        return InstallmentPayment(
            id=self.id,
            installment_id=self.installment_id,
            receivable_id=self.receivable_id,
            revenue_id=self.revenue_id,
            amount_applied=self.amount_applied,
            payment_date=self.payment_date,
            payment_method=self.payment_method,
            payment_reference=self.payment_reference,
            is_carried_over=self.is_carried_over,
        )

    def __repr__(self) -> str:
        return f"<InstallmentPaymentModel {self.amount_applied} -> {self.installment_id}>"
