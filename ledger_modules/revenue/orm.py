"""
Revenue ORM Models (``ledger_modules.revenue.orm``).

Responsibility
--------------
SQLAlchemy persistence for revenue sources and revenue records. Maps to
the frozen dataclasses in ``models.py``.

Architecture position
---------------------
**Modules layer** -- persistence. Imports from ``ledger_kernel.db.base``
and sibling ``models.py``. MUST NOT be imported by ``ledger_kernel``.
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
from ledger_modules.revenue.models import ApprovalStatus, RevenueStatus


# ---------------------------------------------------------------------------
# 1. RevenueSourceModel
# ---------------------------------------------------------------------------


class RevenueSourceModel(TrackedBase):
    """
    ORM model for revenue sources.

    Guarantees:
        - code is unique (uq_revenue_sources_code).
        - account_code, when set, overrides the default revenue account.
    """

    __tablename__ = "revenue_sources"

    __table_args__ = (
        UniqueConstraint("code", name="uq_revenue_sources_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_dto(self):
        from ledger_modules.revenue.models import RevenueSource

        return RevenueSource(
            id=self.id,
            code=self.code,
            name=self.name,
            account_code=self.account_code,
            description=self.description,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<RevenueSourceModel {self.code}: {self.name}>"


# ---------------------------------------------------------------------------
# 2. RevenueModel
# ---------------------------------------------------------------------------


class RevenueModel(TrackedBase):
    """
    ORM model for revenue records.

    Ordinary revenues are coded ``REV-OTH-{YYYYMM}-{NNNN}``; revenues created
    by an installment payment are coded ``REV-PAY-{YYYYMM}-{NNNN}``.

    Guarantees:
        - code is unique (uq_revenues_code).
        - receivable_id is set only on unearned revenues, and each
          receivable backs at most one of them.
        - journal_entry_id points at the latest entry recognizing this
          revenue; ``version`` guards concurrent bridge calls.
        - Rows are soft-deleted only.
    """

    __tablename__ = "revenues"

    __table_args__ = (
        UniqueConstraint("code", name="uq_revenues_code"),
        Index("idx_revenues_source_id", "source_id"),
        Index("idx_revenues_receivable_id", "receivable_id"),
        Index("idx_revenues_date_recorded", "date_recorded"),
    )

    code: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("revenue_sources.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    date_recorded: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=RevenueStatus.PENDING.value, nullable=False
    )
    approval_status: Mapped[str] = mapped_column(
        String(20), default=ApprovalStatus.PENDING.value, nullable=False
    )
    is_unearned: Mapped[bool] = mapped_column(Boolean, default=False)
    receivable_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("receivables.id"), nullable=True
    )
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    source: Mapped["RevenueSourceModel | None"] = relationship(lazy="joined")

    def to_dto(self):
        from ledger_modules.revenue.models import Revenue

        return Revenue(
            id=self.id,
            code=self.code,
            amount=self.amount,
            date_recorded=self.date_recorded,
            status=RevenueStatus(self.status),
            approval_status=ApprovalStatus(self.approval_status),
            source_id=self.source_id,
            description=self.description,
            payment_method=self.payment_method,
            payment_reference=self.payment_reference,
            is_unearned=self.is_unearned,
            receivable_id=self.receivable_id,
            journal_entry_id=self.journal_entry_id,
            is_deleted=self.is_deleted,
        )

    def __repr__(self) -> str:
        return f"<RevenueModel {self.code}: {self.amount} {self.status}>"
