"""
RevenueService -- revenue sources and revenue records.

A revenue is either cash already received (status RECORDED) or unearned
(status PENDING), in which case it is backed by a receivable with an
installment schedule created in the same transaction. The unearned
revenue becomes RECORDED once its receivable is fully PAID.

Amount, installment plan and schedule are locked as soon as any
installment payment exists. A revenue whose amount already sits in a
live journal entry cannot change amount or be deleted; reverse or delete
the entry first.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.lifecycle import JournalEntryStatus
from ledger_kernel.domain.money import ZERO, to_money
from ledger_kernel.exceptions import (
    ConflictError,
    JournalEntryExistsError,
    RevenueNotFoundError,
    RevenueSourceNotFoundError,
    ScheduleLockedError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.audit_service import AuditAction, AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.receivables.config import ReceivablesConfig
from ledger_modules.receivables.models import InstallmentPlan, ScheduleItem
from ledger_modules.receivables.service import DebtorDirectory, ReceivableService
from ledger_modules.revenue.config import RevenueConfig
from ledger_modules.revenue.models import (
    ApprovalStatus,
    Revenue,
    RevenueSource,
    RevenueStatus,
    UnearnedRevenueTerms,
)
from ledger_modules.revenue.orm import RevenueModel, RevenueSourceModel

logger = get_logger("modules.revenue.service")

REVENUE_MODULE = "revenue"

# Entry statuses that still carry the revenue amount in the ledger
LIVE_ENTRY_STATUSES = frozenset({
    JournalEntryStatus.DRAFT.value,
    JournalEntryStatus.POSTED.value,
    JournalEntryStatus.ADJUSTED.value,
})


def linked_entry(session: Session, revenue: RevenueModel) -> JournalEntry | None:
    """The revenue's journal entry, unless it is missing or soft-deleted."""
    if revenue.journal_entry_id is None:
        return None
    entry = session.get(JournalEntry, revenue.journal_entry_id)
    if entry is None or entry.is_deleted:
        return None
    return entry


def live_entry(session: Session, revenue: RevenueModel) -> JournalEntry | None:
    """The linked entry while it still carries the revenue amount."""
    entry = linked_entry(session, revenue)
    if entry is None or entry.status not in LIVE_ENTRY_STATUSES:
        return None
    return entry


class RevenueService(BaseService):
    """Revenue record operations; one transaction per public method."""

    def __init__(
        self,
        session: Session,
        config: RevenueConfig | None = None,
        receivables_config: ReceivablesConfig | None = None,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        debtor_directory: DebtorDirectory | None = None,
        manage_transaction: bool = True,
    ):
        super().__init__(session, manage_transaction)
        self._config = config or RevenueConfig()
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._sequences = SequenceService(session)
        # Runs inside this service's transaction
        self._receivables = ReceivableService(
            session,
            config=receivables_config,
            clock=self._clock,
            audit=self._audit,
            debtor_directory=debtor_directory,
            manage_transaction=False,
        )

    # ------------------------------------------------------------------
    # Revenue sources
    # ------------------------------------------------------------------

    def create_source(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        account_code: str | None = None,
        description: str | None = None,
    ) -> RevenueSource:
        with self._unit_of_work("create_revenue_source"):
            existing = self.session.execute(
                select(RevenueSourceModel.id).where(RevenueSourceModel.code == code)
            ).scalar_one_or_none()
            if existing is not None:
                raise ConflictError(f"Revenue source {code} already exists")
            source = RevenueSourceModel(
                code=code,
                name=name,
                account_code=account_code,
                description=description,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(source)
            self.session.flush()
            logger.info(
                "revenue_source_created",
                extra={"source_code": code, "account_code": account_code},
            )
            result = source.to_dto()
        return result

    def get_source(self, source_id: UUID) -> RevenueSource:
        source = self.session.get(RevenueSourceModel, source_id)
        if source is None:
            raise RevenueSourceNotFoundError(str(source_id))
        return source.to_dto()

    # ------------------------------------------------------------------
    # Revenue records
    # ------------------------------------------------------------------

    def create_revenue(
        self,
        source_id: UUID,
        amount: Decimal | int | str,
        date_recorded: date,
        actor_id: UUID,
        description: str | None = None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
        unearned: UnearnedRevenueTerms | None = None,
    ) -> Revenue:
        """
        Record a revenue, optionally backed by an installment receivable.

        Raises:
            RevenueSourceNotFoundError: source missing or inactive.
            ValidationError: non-positive amount, or unearned terms without
                a debtor.
            ScheduleMismatchError: schedule does not sum to ``amount``.
        """
        value = self._positive_amount(amount)
        if unearned is not None and not (unearned.debtor_ref or unearned.debtor_name):
            raise ValidationError("Unearned revenue requires a debtor reference or name")

        with self._unit_of_work("create_revenue"):
            source = self.session.get(RevenueSourceModel, source_id)
            if source is None or not source.is_active:
                raise RevenueSourceNotFoundError(str(source_id))

            revenue = RevenueModel(
                code=self._next_code(),
                source_id=source.id,
                amount=value,
                date_recorded=date_recorded,
                description=description,
                payment_method=payment_method,
                payment_reference=payment_reference,
                status=(
                    RevenueStatus.PENDING.value if unearned else RevenueStatus.RECORDED.value
                ),
                approval_status=ApprovalStatus.PENDING.value,
                is_unearned=unearned is not None,
                is_deleted=False,
                created_by_id=actor_id,
            )
            self.session.add(revenue)
            self.session.flush()

            if unearned is not None:
                receivable = self._receivables.create_with_schedule(
                    total_amount=value,
                    due_date=unearned.due_date,
                    actor_id=actor_id,
                    schedule_items=list(unearned.schedule) or None,
                    debtor_ref=unearned.debtor_ref,
                    debtor_name=unearned.debtor_name,
                    description=description,
                    installment_plan=unearned.installment_plan,
                    revenue_id=revenue.id,
                )
                revenue.receivable_id = receivable.id
                self.session.flush()

            self._audit.record(
                AuditAction.REVENUE_CREATE,
                module=REVENUE_MODULE,
                record_id=revenue.id,
                actor_id=actor_id,
                after=_snapshot(revenue),
            )
            logger.info(
                "revenue_created",
                extra={
                    "revenue_code": revenue.code,
                    "amount": value,
                    "is_unearned": revenue.is_unearned,
                },
            )
            result = revenue.to_dto()
        return result

    def update_revenue(
        self,
        revenue_id: UUID,
        actor_id: UUID,
        description: str | None = None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
        amount: Decimal | int | str | None = None,
        installment_plan: InstallmentPlan | str | None = None,
        schedule: list[ScheduleItem] | None = None,
    ) -> Revenue:
        """
        Edit a revenue. Descriptive fields change freely; amount, plan and
        schedule changes are refused once a payment exists.

        Raises:
            ScheduleLockedError: payments were recorded against the receivable.
            JournalEntryExistsError: amount change while a live entry
                recognizes the old amount.
        """
        with self._unit_of_work("update_revenue"):
            revenue = self._load_for_update(revenue_id)
            before = _snapshot(revenue)

            new_amount = self._positive_amount(amount) if amount is not None else None
            amount_changed = new_amount is not None and new_amount != revenue.amount
            schedule_changed = schedule is not None or installment_plan is not None

            if amount_changed or schedule_changed:
                if revenue.receivable_id is not None:
                    payments = self._receivables.payment_count(revenue.receivable_id)
                    if payments:
                        receivable = self._receivables.get_receivable_details(
                            revenue.receivable_id
                        )
                        raise ScheduleLockedError(receivable.code, payments)
                if amount_changed:
                    entry = live_entry(self.session, revenue)
                    if entry is not None:
                        raise JournalEntryExistsError(revenue.code, entry.code)

            if revenue.receivable_id is not None and (amount_changed or schedule_changed):
                self._reschedule(revenue, new_amount, installment_plan, schedule, actor_id)
            elif schedule is not None:
                raise ValidationError(
                    f"Revenue {revenue.code} has no receivable to reschedule"
                )

            if amount_changed:
                revenue.amount = new_amount
            if description is not None:
                revenue.description = description
            if payment_method is not None:
                revenue.payment_method = payment_method
            if payment_reference is not None:
                revenue.payment_reference = payment_reference
            revenue.updated_by_id = actor_id
            self.session.flush()

            self._audit.record(
                AuditAction.REVENUE_UPDATE,
                module=REVENUE_MODULE,
                record_id=revenue.id,
                actor_id=actor_id,
                before=before,
                after=_snapshot(revenue),
            )
            logger.info(
                "revenue_updated",
                extra={
                    "revenue_code": revenue.code,
                    "amount_changed": amount_changed,
                    "schedule_changed": schedule_changed,
                },
            )
            result = revenue.to_dto()
        return result

    def soft_delete_revenue(
        self, revenue_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> Revenue:
        """
        Soft-delete a revenue and its receivable.

        Raises:
            ScheduleLockedError: payments were recorded.
            JournalEntryExistsError: a live entry still recognizes it.
        """
        with self._unit_of_work("soft_delete_revenue"):
            revenue = self._load_for_update(revenue_id)
            entry = live_entry(self.session, revenue)
            if entry is not None:
                raise JournalEntryExistsError(revenue.code, entry.code)
            if revenue.receivable_id is not None:
                self._receivables.soft_delete(revenue.receivable_id, actor_id, reason)

            revenue.is_deleted = True
            revenue.deleted_at = self._clock.now()
            revenue.deleted_by_id = actor_id
            self.session.flush()

            self._audit.record(
                AuditAction.REVENUE_DELETE,
                module=REVENUE_MODULE,
                record_id=revenue.id,
                actor_id=actor_id,
                after={"code": revenue.code, "reason": reason},
            )
            logger.info(
                "revenue_deleted",
                extra={"revenue_code": revenue.code, "reason": reason},
            )
            result = revenue.to_dto()
        return result

    def get_revenue(self, revenue_id: UUID) -> Revenue:
        revenue = self.session.execute(
            select(RevenueModel)
            .where(RevenueModel.id == revenue_id, RevenueModel.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if revenue is None:
            raise RevenueNotFoundError(str(revenue_id))
        return revenue.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_update(self, revenue_id: UUID) -> RevenueModel:
        revenue = self.session.execute(
            select(RevenueModel)
            .where(RevenueModel.id == revenue_id, RevenueModel.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if revenue is None:
            raise RevenueNotFoundError(str(revenue_id))
        return revenue

    def _reschedule(
        self,
        revenue: RevenueModel,
        new_amount: Decimal | None,
        installment_plan: InstallmentPlan | str | None,
        schedule: list[ScheduleItem] | None,
        actor_id: UUID,
    ) -> None:
        current = self._receivables.get_receivable_details(revenue.receivable_id)
        if schedule is None and new_amount is None:
            schedule = [
                ScheduleItem(i.installment_number, i.due_date, i.amount_due)
                for i in current.installments
            ]
        elif schedule is None:
            if len(current.installments) != 1:
                raise ValidationError(
                    f"Receivable {current.code} has {len(current.installments)} "
                    f"installments; changing the amount needs a new schedule"
                )
            only = current.installments[0]
            schedule = [
                ScheduleItem(
                    installment_number=only.installment_number,
                    due_date=only.due_date,
                    amount_due=new_amount,
                )
            ]
        self._receivables.update_schedule(
            revenue.receivable_id,
            schedule,
            actor_id,
            total_amount=new_amount,
            installment_plan=installment_plan,
        )

    def _positive_amount(self, value) -> Decimal:
        try:
            amount = to_money(value, "amount", self._config.decimal_places)
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
        if amount <= ZERO:
            raise ValidationError("amount must be greater than zero")
        return amount

    def _next_code(self) -> str:
        return self._sequences.next_code(
            self._config.revenue_code_prefix,
            self._clock.today().strftime("%Y%m"),
            self._config.sequence_width,
        )


def _snapshot(revenue: RevenueModel) -> dict:
    return {
        "code": revenue.code,
        "amount": revenue.amount,
        "status": revenue.status,
        "approval_status": revenue.approval_status,
        "receivable_id": revenue.receivable_id,
        "journal_entry_id": revenue.journal_entry_id,
    }
