"""
ReceivableService -- receivables, installment schedules and cascading
payments.

Responsibility:
    Creates receivables with their installment schedule, replaces a
    schedule while no payment exists, records payments and applies
    operator status changes.

Cascade payments:
    ``record_payment`` locks the receivable and its installments, asks the
    pure planner (``ledger_engines.cascade.plan_cascade``) how the cash
    spreads over the target installment and the ones after it, then
    applies the plan: installment rows, one InstallmentPayment row per
    touched installment, one payment revenue record for the cash and the
    receivable aggregates. All of it commits or none of it does.

Overpayment:
    Cash beyond the eligible balance is refused with ``OverpaymentError``
    under the REJECT policy. Under CREDIT the surplus is kept on
    ``receivable.credit_balance`` and returned as ``remaining_amount``.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import OverpaymentPolicy
from ledger_engines.cascade import InstallmentSnapshot, plan_cascade, settle_receivable
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.lifecycle import (
    CLOSED_SETTLEMENT_STATUSES,
    INSTALLMENT_LIFECYCLE,
    RECEIVABLE_LIFECYCLE,
    SettlementStatus,
)
from ledger_kernel.domain.money import ZERO, round_money, to_money
from ledger_kernel.exceptions import (
    InstallmentNotFoundError,
    OverpaymentError,
    PaymentNotAllowedError,
    ReceivableNotFoundError,
    ScheduleLockedError,
    ScheduleMismatchError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.audit_service import AuditAction, AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.receivables.config import ReceivablesConfig
from ledger_modules.receivables.models import (
    CascadePaymentResult,
    Installment,
    InstallmentPlan,
    PaymentAllocation,
    Receivable,
    ScheduleItem,
)
from ledger_modules.receivables.orm import (
    InstallmentPaymentModel,
    InstallmentScheduleModel,
    ReceivableModel,
)

# The revenue package builds on this service; its ORM is imported lazily.
if TYPE_CHECKING:
    from ledger_modules.revenue.orm import RevenueModel

logger = get_logger("modules.receivables.service")

RECEIVABLES_MODULE = "receivables"

# Statuses an operator may set directly; payments drive the rest
OPERATOR_STATUSES = frozenset({
    SettlementStatus.OVERDUE,
    SettlementStatus.CANCELLED,
    SettlementStatus.WRITTEN_OFF,
})


class DebtorDirectory(Protocol):
    """Resolves a debtor reference (employee id, customer id) to a name."""

    def lookup_name(self, debtor_ref: str) -> str | None:
        ...


class ReceivableService(BaseService):
    """
    Receivable and installment operations.

    Each public mutating method is one transaction (see ``BaseService``).
    """

    def __init__(
        self,
        session: Session,
        config: ReceivablesConfig | None = None,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        debtor_directory: DebtorDirectory | None = None,
        manage_transaction: bool = True,
    ):
        super().__init__(session, manage_transaction)
        self._config = config or ReceivablesConfig()
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._directory = debtor_directory
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Schedule management
    # ------------------------------------------------------------------

    def create_with_schedule(
        self,
        total_amount: Decimal | int | str,
        due_date: date,
        actor_id: UUID,
        schedule_items: list[ScheduleItem] | None = None,
        debtor_ref: str | None = None,
        debtor_name: str | None = None,
        description: str | None = None,
        installment_plan: InstallmentPlan | str | None = None,
        revenue_id: UUID | None = None,
    ) -> Receivable:
        """
        Create a PENDING receivable and its PENDING installments.

        Without ``schedule_items`` the receivable gets one installment for
        the whole amount, due on ``due_date``.

        Raises:
            ScheduleMismatchError: items do not sum to ``total_amount``.
            ValidationError: non-positive amounts or bad numbering.
        """
        total = self._positive_money(total_amount, "total_amount")
        items = list(schedule_items or [ScheduleItem(1, due_date, total)])
        validated = self._validate_schedule(total, items)
        plan = InstallmentPlan(installment_plan) if installment_plan else None

        with self._unit_of_work("create_with_schedule"):
            receivable = ReceivableModel(
                code=self._next_code(self._config.receivable_code_prefix),
                debtor_ref=debtor_ref,
                debtor_name=self._resolve_debtor_name(debtor_ref, debtor_name),
                description=description,
                total_amount=total,
                paid_amount=ZERO,
                balance=total,
                credit_balance=ZERO,
                due_date=due_date,
                status=SettlementStatus.PENDING.value,
                installment_plan=plan.value if plan else None,
                expected_installment=round_money(
                    total / len(validated), self._config.decimal_places
                ),
                revenue_id=revenue_id,
                is_deleted=False,
                created_by_id=actor_id,
            )
            receivable.installments = _build_installments(validated, actor_id)
            self.session.add(receivable)
            self.session.flush()

            self._audit.record(
                AuditAction.RECEIVABLE_CREATE,
                module=RECEIVABLES_MODULE,
                record_id=receivable.id,
                actor_id=actor_id,
                after=_snapshot(receivable),
            )
            logger.info(
                "receivable_created",
                extra={
                    "receivable_id": str(receivable.id),
                    "receivable_code": receivable.code,
                    "total_amount": total,
                    "installment_count": len(validated),
                },
            )
            result = receivable.to_dto()
        return result

    def update_schedule(
        self,
        receivable_id: UUID,
        new_items: list[ScheduleItem],
        actor_id: UUID,
        total_amount: Decimal | int | str | None = None,
        installment_plan: InstallmentPlan | str | None = None,
    ) -> Receivable:
        """
        Replace the whole schedule, optionally with a new total.

        Raises:
            ScheduleLockedError: a payment was already recorded.
            ScheduleMismatchError: new items do not sum to the total.
        """
        with self._unit_of_work("update_schedule"):
            receivable = self._load_receivable(receivable_id)
            payments = self.payment_count(receivable.id)
            if payments:
                raise ScheduleLockedError(receivable.code, payments)

            total = (
                self._positive_money(total_amount, "total_amount")
                if total_amount is not None
                else receivable.total_amount
            )
            validated = self._validate_schedule(total, list(new_items))
            before = _snapshot(receivable)

            # Old rows must be gone before new rows reuse their numbers
            receivable.installments.clear()
            self.session.flush()
            receivable.installments.extend(_build_installments(validated, actor_id))

            receivable.total_amount = total
            receivable.balance = total - receivable.paid_amount
            receivable.expected_installment = round_money(
                total / len(validated), self._config.decimal_places
            )
            if installment_plan is not None:
                receivable.installment_plan = InstallmentPlan(installment_plan).value
            receivable.due_date = max(item.due_date for item in validated)
            receivable.updated_by_id = actor_id
            self.session.flush()

            self._audit.record(
                AuditAction.RECEIVABLE_SCHEDULE_UPDATE,
                module=RECEIVABLES_MODULE,
                record_id=receivable.id,
                actor_id=actor_id,
                before=before,
                after=_snapshot(receivable),
            )
            logger.info(
                "receivable_schedule_replaced",
                extra={
                    "receivable_code": receivable.code,
                    "total_amount": total,
                    "installment_count": len(validated),
                },
            )
            result = receivable.to_dto()
        return result

    def change_status(
        self,
        receivable_id: UUID,
        status: SettlementStatus | str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Receivable:
        """
        Operator move to OVERDUE, CANCELLED or WRITTEN_OFF.

        Open installments follow the receivable; PAID installments keep
        their status.
        """
        try:
            target = SettlementStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown receivable status {status!r}") from exc
        if target not in OPERATOR_STATUSES:
            raise ValidationError(
                f"Status {target.value} is set by payments, not by operators"
            )

        with self._unit_of_work("change_status"):
            receivable = self._load_receivable(receivable_id)
            before_status = receivable.status
            RECEIVABLE_LIFECYCLE.require(receivable.status, target)
            receivable.status = target.value
            receivable.updated_by_id = actor_id

            for installment in receivable.active_installments:
                if INSTALLMENT_LIFECYCLE.can_transition(installment.status, target):
                    installment.status = target.value
            self.session.flush()

            self._audit.record(
                AuditAction.RECEIVABLE_STATUS_CHANGE,
                module=RECEIVABLES_MODULE,
                record_id=receivable.id,
                actor_id=actor_id,
                before={"status": before_status},
                after={"status": receivable.status, "reason": reason},
            )
            logger.info(
                "receivable_status_changed",
                extra={
                    "receivable_code": receivable.code,
                    "from_status": before_status,
                    "to_status": receivable.status,
                },
            )
            result = receivable.to_dto()
        return result

    def soft_delete(self, receivable_id: UUID, actor_id: UUID, reason: str | None = None) -> Receivable:
        """Soft-delete a receivable and its schedule; refused once paid into."""
        with self._unit_of_work("soft_delete_receivable"):
            receivable = self._load_receivable(receivable_id)
            self._mark_deleted(receivable, actor_id, reason)
            result = receivable.to_dto()
        return result

    # ------------------------------------------------------------------
    # Cascade payment
    # ------------------------------------------------------------------

    def record_payment(
        self,
        installment_id: UUID,
        amount_paid: Decimal | int | str,
        payment_date: date,
        actor_id: UUID,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ) -> CascadePaymentResult:
        """
        Apply one cash payment to an installment, overflowing forward.

        Raises:
            InstallmentNotFoundError: installment missing or deleted.
            PaymentNotAllowedError: installment or receivable is closed,
                or the amount is not positive.
            OverpaymentError: surplus cash under the REJECT policy.
        """
        try:
            amount = to_money(amount_paid, "amount_paid", self._config.decimal_places)
        except (TypeError, ValueError) as exc:
            raise PaymentNotAllowedError(str(exc)) from exc
        if amount <= ZERO:
            raise PaymentNotAllowedError("Payment amount must be greater than zero")

        with self._unit_of_work("record_payment"):
            target = self._load_installment(installment_id)
            receivable = self._load_receivable(target.receivable_id)

            with LogContext.bind(receivable_id=str(receivable.id), actor_id=str(actor_id)):
                if target.status == SettlementStatus.PAID:
                    raise PaymentNotAllowedError(
                        f"Installment #{target.installment_number} is already fully paid"
                    )
                if target.status in CLOSED_SETTLEMENT_STATUSES:
                    raise PaymentNotAllowedError(
                        f"Installment #{target.installment_number} is {target.status}"
                    )
                if receivable.status in CLOSED_SETTLEMENT_STATUSES:
                    raise PaymentNotAllowedError(
                        f"Receivable {receivable.code} is {receivable.status}"
                    )

                logger.info(
                    "cascade_payment_started",
                    extra={
                        "receivable_code": receivable.code,
                        "installment_number": target.installment_number,
                        "amount": amount,
                    },
                )

                rows = {row.id: row for row in self._lock_installments(receivable.id)}
                plan = plan_cascade(
                    installments=[_to_snapshot(row) for row in rows.values()],
                    target_installment_number=target.installment_number,
                    amount=amount,
                )
                if plan.remaining_amount > ZERO and (
                    self._config.overpayment_policy == OverpaymentPolicy.REJECT
                ):
                    raise OverpaymentError(amount, plan.total_applied)

                before = _snapshot(receivable)
                revenue = self._new_payment_revenue(
                    receivable, target, amount, payment_date,
                    payment_method, payment_reference, actor_id,
                )

                allocations: list[PaymentAllocation] = []
                payments: list[InstallmentPaymentModel] = []
                for allocation in plan.allocations:
                    row = rows[allocation.installment_id]
                    if allocation.new_status != row.status:
                        INSTALLMENT_LIFECYCLE.require(row.status, allocation.new_status)
                        row.status = allocation.new_status
                    row.amount_paid = allocation.new_amount_paid
                    row.balance = allocation.new_balance
                    if allocation.is_carried_over:
                        row.carried_over_amount += allocation.amount_applied
                    if row.status == SettlementStatus.PAID:
                        row.paid_date = payment_date
                    row.updated_by_id = actor_id

                    payment = InstallmentPaymentModel(
                        installment=row,
                        receivable_id=receivable.id,
                        revenue_id=revenue.id,
                        amount_applied=allocation.amount_applied,
                        payment_date=payment_date,
                        payment_method=payment_method,
                        payment_reference=payment_reference,
                        is_carried_over=allocation.is_carried_over,
                        created_by_id=actor_id,
                    )
                    self.session.add(payment)
                    payments.append(payment)
                    allocations.append(
                        PaymentAllocation(
                            installment_id=row.id,
                            installment_number=row.installment_number,
                            previous_balance=allocation.previous_balance,
                            amount_applied=allocation.amount_applied,
                            new_balance=allocation.new_balance,
                            new_status=SettlementStatus(allocation.new_status),
                            is_carried_over=allocation.is_carried_over,
                        )
                    )

                settlement = settle_receivable(
                    total_amount=receivable.total_amount,
                    paid_amount=receivable.paid_amount,
                    amount_applied=plan.total_applied,
                    current_status=receivable.status,
                )
                if settlement.status != receivable.status:
                    RECEIVABLE_LIFECYCLE.require(receivable.status, settlement.status)
                    receivable.status = settlement.status
                receivable.paid_amount = settlement.paid_amount
                receivable.balance = settlement.balance
                receivable.credit_balance += plan.remaining_amount
                receivable.last_payment_date = payment_date
                receivable.last_payment_amount = amount
                receivable.updated_by_id = actor_id

                if receivable.status == SettlementStatus.PAID and receivable.revenue_id:
                    self._mark_original_revenue_recorded(receivable.revenue_id, actor_id)

                self.session.flush()

                self._audit.record(
                    AuditAction.INSTALLMENT_PAYMENT_CASCADE,
                    module=RECEIVABLES_MODULE,
                    record_id=receivable.id,
                    actor_id=actor_id,
                    before=before,
                    after={
                        **_snapshot(receivable),
                        "payment_revenue_code": revenue.code,
                        "amount": amount,
                        "installments": [a.installment_number for a in allocations],
                        "carried_over_amount": plan.carried_over_amount,
                    },
                )
                logger.info(
                    "cascade_payment_committed",
                    extra={
                        "receivable_code": receivable.code,
                        "payment_revenue_code": revenue.code,
                        "amount": amount,
                        "installments_touched": len(allocations),
                        "carried_over_amount": plan.carried_over_amount,
                        "remaining_amount": plan.remaining_amount,
                        "receivable_status": receivable.status,
                    },
                )

                result = CascadePaymentResult(
                    success=True,
                    total_amount_paid=amount,
                    allocations=tuple(allocations),
                    remaining_amount=plan.remaining_amount,
                    receivable_id=receivable.id,
                    receivable_new_status=SettlementStatus(receivable.status),
                    receivable_new_balance=receivable.balance,
                    receivable_new_paid_amount=receivable.paid_amount,
                    payment_record_ids=tuple(p.id for p in payments),
                    revenue_id=revenue.id,
                    revenue_code=revenue.code,
                )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_receivable_details(self, receivable_id: UUID) -> Receivable:
        """Receivable with its installments and their payments."""
        receivable = self.session.execute(
            select(ReceivableModel)
            .where(ReceivableModel.id == receivable_id, ReceivableModel.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if receivable is None:
            raise ReceivableNotFoundError(str(receivable_id))
        return receivable.to_dto()

    def get_installment_schedule(self, receivable_id: UUID) -> tuple[Installment, ...]:
        return self.get_receivable_details(receivable_id).installments

    def payment_count(self, receivable_id: UUID) -> int:
        return len(
            self.session.execute(
                select(InstallmentPaymentModel.id).where(
                    InstallmentPaymentModel.receivable_id == receivable_id
                )
            ).all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_schedule(
        self, total: Decimal, items: list[ScheduleItem]
    ) -> list[ScheduleItem]:
        if not items:
            raise ValidationError("An installment schedule needs at least one item")

        validated: list[ScheduleItem] = []
        for item in items:
            if item.installment_number < 1:
                raise ValidationError(
                    f"Installment numbers start at 1, got {item.installment_number}"
                )
            validated.append(
                ScheduleItem(
                    installment_number=item.installment_number,
                    due_date=item.due_date,
                    amount_due=self._positive_money(
                        item.amount_due, f"installment #{item.installment_number} amount_due"
                    ),
                )
            )

        numbers = [item.installment_number for item in validated]
        if len(numbers) != len(set(numbers)):
            raise ValidationError("Installment numbers must be unique")

        schedule_total = sum((item.amount_due for item in validated), ZERO)
        if abs(schedule_total - total) > self._config.schedule_tolerance:
            logger.info(
                "schedule_total_mismatch",
                extra={"total_amount": total, "schedule_total": schedule_total},
            )
            raise ScheduleMismatchError(total, schedule_total)
        return sorted(validated, key=lambda item: item.installment_number)

    def _resolve_debtor_name(self, debtor_ref: str | None, debtor_name: str | None) -> str:
        if debtor_name:
            return debtor_name
        if debtor_ref and self._directory is not None:
            try:
                name = self._directory.lookup_name(debtor_ref)
            except Exception:
                logger.warning(
                    "debtor_lookup_failed",
                    extra={"debtor_ref": debtor_ref},
                    exc_info=True,
                )
                name = None
            if name:
                return name
        return self._config.placeholder_debtor_name

    def _positive_money(self, value, field_name: str) -> Decimal:
        try:
            amount = to_money(value, field_name, self._config.decimal_places)
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
        if amount <= ZERO:
            raise ValidationError(f"{field_name} must be greater than zero")
        return amount

    def _next_code(self, prefix: str) -> str:
        return self._sequences.next_code(
            prefix,
            self._clock.today().strftime("%Y%m"),
            self._config.sequence_width,
        )

    def _load_receivable(self, receivable_id: UUID) -> ReceivableModel:
        receivable = self.session.execute(
            select(ReceivableModel)
            .where(ReceivableModel.id == receivable_id, ReceivableModel.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if receivable is None:
            raise ReceivableNotFoundError(str(receivable_id))
        return receivable

    def _load_installment(self, installment_id: UUID) -> InstallmentScheduleModel:
        installment = self.session.execute(
            select(InstallmentScheduleModel)
            .where(
                InstallmentScheduleModel.id == installment_id,
                InstallmentScheduleModel.is_deleted.is_(False),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if installment is None:
            raise InstallmentNotFoundError(str(installment_id))
        return installment

    def _lock_installments(self, receivable_id: UUID) -> list[InstallmentScheduleModel]:
        return list(
            self.session.execute(
                select(InstallmentScheduleModel)
                .where(
                    InstallmentScheduleModel.receivable_id == receivable_id,
                    InstallmentScheduleModel.is_deleted.is_(False),
                )
                .order_by(InstallmentScheduleModel.installment_number)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def _new_payment_revenue(
        self,
        receivable: ReceivableModel,
        target: InstallmentScheduleModel,
        amount: Decimal,
        payment_date: date,
        payment_method: str | None,
        payment_reference: str | None,
        actor_id: UUID,
    ) -> "RevenueModel":
        from ledger_modules.revenue.models import ApprovalStatus, RevenueStatus
        from ledger_modules.revenue.orm import RevenueModel

        source_id = None
        if receivable.revenue_id:
            source_id = self.session.execute(
                select(RevenueModel.source_id).where(RevenueModel.id == receivable.revenue_id)
            ).scalar_one_or_none()

        revenue = RevenueModel(
            code=self._next_code(self._config.payment_revenue_code_prefix),
            source_id=source_id,
            amount=amount,
            date_recorded=payment_date,
            description=(
                f"Payment for {receivable.code} - Installment #{target.installment_number}"
            ),
            payment_method=payment_method,
            payment_reference=payment_reference,
            status=RevenueStatus.RECORDED.value,
            approval_status=ApprovalStatus.APPROVED.value,
            is_unearned=False,
            is_deleted=False,
            created_by_id=actor_id,
        )
        self.session.add(revenue)
        self.session.flush()
        return revenue

    def _mark_original_revenue_recorded(self, revenue_id: UUID, actor_id: UUID) -> None:
        from ledger_modules.revenue.models import RevenueStatus
        from ledger_modules.revenue.orm import RevenueModel

        revenue = self.session.get(RevenueModel, revenue_id)
        if revenue is not None and revenue.status != RevenueStatus.RECORDED:
            revenue.status = RevenueStatus.RECORDED.value
            revenue.updated_by_id = actor_id
            logger.info(
                "unearned_revenue_settled",
                extra={"revenue_code": revenue.code},
            )

    def _mark_deleted(
        self, receivable: ReceivableModel, actor_id: UUID, reason: str | None
    ) -> None:
        payments = self.payment_count(receivable.id)
        if payments:
            raise ScheduleLockedError(receivable.code, payments)

        now = self._clock.now()
        receivable.is_deleted = True
        receivable.deleted_at = now
        receivable.deleted_by_id = actor_id
        receivable.deletion_reason = reason
        for installment in receivable.installments:
            installment.is_deleted = True
            installment.deleted_at = now
        self.session.flush()

        self._audit.record(
            AuditAction.RECEIVABLE_DELETE,
            module=RECEIVABLES_MODULE,
            record_id=receivable.id,
            actor_id=actor_id,
            after={"code": receivable.code, "reason": reason},
        )
        logger.info(
            "receivable_deleted",
            extra={"receivable_code": receivable.code, "reason": reason},
        )


def _build_installments(
    items: list[ScheduleItem], actor_id: UUID
) -> list[InstallmentScheduleModel]:
    return [
        InstallmentScheduleModel(
            installment_number=item.installment_number,
            due_date=item.due_date,
            amount_due=item.amount_due,
            amount_paid=ZERO,
            balance=item.amount_due,
            carried_over_amount=ZERO,
            status=SettlementStatus.PENDING.value,
            is_deleted=False,
            created_by_id=actor_id,
        )
        for item in items
    ]


def _to_snapshot(row: InstallmentScheduleModel) -> InstallmentSnapshot:
    return InstallmentSnapshot(
        installment_id=row.id,
        installment_number=row.installment_number,
        amount_due=row.amount_due,
        amount_paid=row.amount_paid,
        status=row.status,
    )


def _snapshot(receivable: ReceivableModel) -> dict:
    return {
        "code": receivable.code,
        "status": receivable.status,
        "total_amount": receivable.total_amount,
        "paid_amount": receivable.paid_amount,
        "balance": receivable.balance,
    }
