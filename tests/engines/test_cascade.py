"""
Tests for the cascade payment planner.

Covers:
- Target-first allocation with forward overflow
- Carried-over flags and amounts
- Skipping closed installments, never allocating backwards
- Remaining amount on overpayment
- Receivable settlement aggregates
- Conservation properties (hypothesis)
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_engines.cascade import (
    InstallmentSnapshot,
    eligible_installments,
    plan_cascade,
    settle_receivable,
)


def _schedule(*amounts, paid=None, statuses=None):
    paid = paid or [Decimal("0")] * len(amounts)
    statuses = statuses or ["PENDING"] * len(amounts)
    return [
        InstallmentSnapshot(
            installment_id=f"inst-{n}",
            installment_number=n,
            amount_due=Decimal(str(amount)),
            amount_paid=Decimal(str(p)),
            status=status,
        )
        for n, (amount, p, status) in enumerate(zip(amounts, paid, statuses), start=1)
    ]


class TestInstallmentSnapshot:

    def test_balance_is_due_minus_paid(self):
        snap = _schedule(1000, paid=[Decimal("250")])[0]
        assert snap.balance == Decimal("750")

    def test_balance_never_negative(self):
        snap = _schedule(100, paid=[Decimal("150")])[0]
        assert snap.balance == Decimal("0")

    @pytest.mark.parametrize("status", ["PAID", "CANCELLED", "WRITTEN_OFF"])
    def test_closed_statuses_reject_payment(self, status):
        assert not _schedule(100, statuses=[status])[0].accepts_payment

    @pytest.mark.parametrize("status", ["PENDING", "PARTIALLY_PAID", "OVERDUE"])
    def test_open_statuses_accept_payment(self, status):
        assert _schedule(100, statuses=[status])[0].accepts_payment


class TestPlanCascade:

    def test_overflow_into_next_installment(self):
        """1500 against #1 of 3 x 1000 pays #1 and half of #2."""
        plan = plan_cascade(
            installments=_schedule(1000, 1000, 1000),
            target_installment_number=1,
            amount=Decimal("1500"),
        )

        assert [a.installment_number for a in plan.allocations] == [1, 2]
        first, second = plan.allocations
        assert first.amount_applied == Decimal("1000")
        assert first.new_balance == Decimal("0")
        assert first.new_status == "PAID"
        assert first.is_carried_over is False
        assert second.amount_applied == Decimal("500")
        assert second.new_balance == Decimal("500")
        assert second.new_status == "PARTIALLY_PAID"
        assert second.is_carried_over is True
        assert plan.carried_over_amount == Decimal("500")
        assert plan.remaining_amount == Decimal("0")
        assert plan.is_fully_applied

    def test_partial_payment_stays_on_target(self):
        plan = plan_cascade(
            installments=_schedule(1000, 1000),
            target_installment_number=1,
            amount=Decimal("400"),
        )

        assert len(plan.allocations) == 1
        assert plan.allocations[0].new_status == "PARTIALLY_PAID"
        assert plan.allocations[0].new_amount_paid == Decimal("400")
        assert plan.carried_over_amount == Decimal("0")

    def test_exact_payment_pays_target_only(self):
        plan = plan_cascade(
            installments=_schedule(1000, 1000),
            target_installment_number=1,
            amount=Decimal("1000"),
        )

        assert len(plan.allocations) == 1
        assert plan.allocations[0].new_status == "PAID"

    def test_no_backward_allocation(self):
        """Overflow from #2 never reaches the unpaid #1."""
        plan = plan_cascade(
            installments=_schedule(1000, 1000, 1000),
            target_installment_number=2,
            amount=Decimal("1500"),
        )

        assert [a.installment_number for a in plan.allocations] == [2, 3]
        assert plan.total_applied == Decimal("1500")

    def test_skips_paid_installments_in_the_walk(self):
        plan = plan_cascade(
            installments=_schedule(
                1000, 1000, 1000,
                paid=[Decimal("0"), Decimal("1000"), Decimal("0")],
                statuses=["PENDING", "PAID", "PENDING"],
            ),
            target_installment_number=1,
            amount=Decimal("1200"),
        )

        assert [a.installment_number for a in plan.allocations] == [1, 3]
        assert plan.allocations[1].amount_applied == Decimal("200")
        assert plan.allocations[1].is_carried_over is True

    def test_partially_paid_target_uses_its_balance(self):
        plan = plan_cascade(
            installments=_schedule(
                1000, 1000,
                paid=[Decimal("600"), Decimal("0")],
                statuses=["PARTIALLY_PAID", "PENDING"],
            ),
            target_installment_number=1,
            amount=Decimal("500"),
        )

        first, second = plan.allocations
        assert first.previous_balance == Decimal("400")
        assert first.amount_applied == Decimal("400")
        assert first.new_amount_paid == Decimal("1000")
        assert second.amount_applied == Decimal("100")

    def test_overdue_installment_can_be_paid(self):
        plan = plan_cascade(
            installments=_schedule(500, statuses=["OVERDUE"]),
            target_installment_number=1,
            amount=Decimal("200"),
        )

        assert plan.allocations[0].previous_status == "OVERDUE"
        assert plan.allocations[0].new_status == "PARTIALLY_PAID"

    def test_overpayment_returns_remaining(self):
        plan = plan_cascade(
            installments=_schedule(1000, 1000),
            target_installment_number=1,
            amount=Decimal("2500"),
        )

        assert plan.total_applied == Decimal("2000")
        assert plan.remaining_amount == Decimal("500")
        assert not plan.is_fully_applied
        assert all(a.new_status == "PAID" for a in plan.allocations)

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError, match="must be positive"):
            plan_cascade(
                installments=_schedule(1000),
                target_installment_number=1,
                amount=Decimal("0"),
            )

    def test_rejects_missing_target(self):
        with pytest.raises(ValueError, match="not in the schedule"):
            plan_cascade(
                installments=_schedule(1000),
                target_installment_number=5,
                amount=Decimal("10"),
            )

    def test_rejects_closed_target(self):
        with pytest.raises(ValueError, match="cannot accept payments"):
            plan_cascade(
                installments=_schedule(1000, paid=[Decimal("1000")], statuses=["PAID"]),
                target_installment_number=1,
                amount=Decimal("10"),
            )

    def test_inputs_are_not_mutated(self):
        schedule = _schedule(1000, 1000)
        before = list(schedule)
        plan_cascade(
            installments=schedule,
            target_installment_number=1,
            amount=Decimal("1500"),
        )
        assert schedule == before

    def test_emits_engine_trace(self, captured_logs):
        plan_cascade(
            installments=_schedule(1000),
            target_installment_number=1,
            amount=Decimal("10"),
        )

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "cascade_payment"
        assert len(traces[0]["input_fingerprint"]) == 16
        assert traces[0]["installments_touched"] == 1
        assert Decimal(traces[0]["total_applied"]) == Decimal("10")
        assert Decimal(traces[0]["remaining_amount"]) == Decimal("0")

    def test_fingerprint_is_deterministic(self, captured_logs):
        for _ in range(2):
            plan_cascade(
                installments=_schedule(1000, 1000),
                target_installment_number=1,
                amount=Decimal("1500"),
            )

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]


class TestEligibleInstallments:

    def test_sorted_from_target_onwards(self):
        schedule = list(reversed(_schedule(100, 100, 100, 100)))
        eligible = eligible_installments(schedule, 2)
        assert [i.installment_number for i in eligible] == [2, 3, 4]


class TestSettleReceivable:

    def test_partial(self):
        result = settle_receivable(
            total_amount=Decimal("3000"),
            paid_amount=Decimal("0"),
            amount_applied=Decimal("1500"),
            current_status="PENDING",
        )
        assert result.paid_amount == Decimal("1500")
        assert result.balance == Decimal("1500")
        assert result.status == "PARTIALLY_PAID"

    def test_paid_in_full(self):
        result = settle_receivable(
            total_amount=Decimal("3000"),
            paid_amount=Decimal("1500"),
            amount_applied=Decimal("1500"),
            current_status="PARTIALLY_PAID",
        )
        assert result.balance == Decimal("0")
        assert result.status == "PAID"

    def test_nothing_applied_keeps_status(self):
        result = settle_receivable(
            total_amount=Decimal("100"),
            paid_amount=Decimal("0"),
            amount_applied=Decimal("0"),
            current_status="OVERDUE",
        )
        assert result.status == "OVERDUE"


# =============================================================================
# Properties
# =============================================================================


amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def schedules(draw):
    dues = draw(st.lists(amounts, min_size=1, max_size=12))
    snapshots = []
    for n, due in enumerate(dues, start=1):
        paid = draw(st.sampled_from([Decimal("0"), due / 2, due])).quantize(Decimal("0.01"))
        if paid >= due:
            status = "PAID"
        elif paid > 0:
            status = "PARTIALLY_PAID"
        else:
            status = draw(st.sampled_from(["PENDING", "OVERDUE", "CANCELLED"]))
        snapshots.append(
            InstallmentSnapshot(
                installment_id=n,
                installment_number=n,
                amount_due=due,
                amount_paid=paid,
                status=status,
            )
        )
    return snapshots


class TestCascadeProperties:

    @given(schedule=schedules(), amount=amounts, data=st.data())
    @settings(
        max_examples=200,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_amount_is_conserved_and_bounded(self, schedule, amount, data):
        open_numbers = [s.installment_number for s in schedule if s.accepts_payment]
        if not open_numbers:
            return
        target = data.draw(st.sampled_from(open_numbers))

        plan = plan_cascade(
            installments=schedule,
            target_installment_number=target,
            amount=amount,
        )

        assert plan.total_applied + plan.remaining_amount == amount
        assert plan.remaining_amount >= 0
        by_number = {s.installment_number: s for s in schedule}
        for allocation in plan.allocations:
            snap = by_number[allocation.installment_number]
            assert allocation.installment_number >= target
            assert snap.accepts_payment
            assert Decimal("0") < allocation.amount_applied <= snap.balance
            assert allocation.new_balance == snap.amount_due - allocation.new_amount_paid
            assert (allocation.new_status == "PAID") == (allocation.new_balance == 0)
            assert allocation.is_carried_over == (allocation.installment_number != target)

    @given(schedule=schedules(), amount=amounts, data=st.data())
    @settings(
        max_examples=200,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_allocations_are_ascending_and_fill_in_order(self, schedule, amount, data):
        open_numbers = [s.installment_number for s in schedule if s.accepts_payment]
        if not open_numbers:
            return
        target = data.draw(st.sampled_from(open_numbers))

        plan = plan_cascade(
            installments=schedule,
            target_installment_number=target,
            amount=amount,
        )

        numbers = [a.installment_number for a in plan.allocations]
        assert numbers == sorted(numbers)
        # Every installment but the last touched one is filled completely
        for allocation in plan.allocations[:-1]:
            assert allocation.new_balance == 0
        if plan.remaining_amount > 0:
            assert all(a.new_balance == 0 for a in plan.allocations)
