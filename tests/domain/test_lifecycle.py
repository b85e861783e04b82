"""Tests for the status transition tables in ledger_kernel/domain/lifecycle.py."""

import pytest

from ledger_kernel.domain.lifecycle import (
    CLOSED_SETTLEMENT_STATUSES,
    INSTALLMENT_LIFECYCLE,
    JOURNAL_ENTRY_LIFECYCLE,
    RECEIVABLE_LIFECYCLE,
    JournalEntryStatus,
    Lifecycle,
    SettlementStatus,
    Transition,
)
from ledger_kernel.exceptions import (
    ConflictError,
    InvalidSettlementTransitionError,
    InvalidStatusTransitionError,
    ValidationError,
)


class TestJournalEntryLifecycle:

    @pytest.mark.parametrize(
        "from_status, to_status",
        [
            ("DRAFT", "POSTED"),
            ("DRAFT", "DELETED"),
            ("POSTED", "ADJUSTED"),
            ("POSTED", "REVERSED"),
        ],
    )
    def test_allowed(self, from_status, to_status):
        assert JOURNAL_ENTRY_LIFECYCLE.can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status, to_status",
        [
            ("DRAFT", "REVERSED"),
            ("POSTED", "DRAFT"),
            ("POSTED", "DELETED"),
            ("ADJUSTED", "REVERSED"),
            ("REVERSED", "ADJUSTED"),
            ("REVERSED", "POSTED"),
        ],
    )
    def test_forbidden(self, from_status, to_status):
        assert not JOURNAL_ENTRY_LIFECYCLE.can_transition(from_status, to_status)

    def test_accepts_enum_members(self):
        assert JOURNAL_ENTRY_LIFECYCLE.can_transition(
            JournalEntryStatus.DRAFT, JournalEntryStatus.POSTED
        )

    def test_require_raises_conflict(self):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            JOURNAL_ENTRY_LIFECYCLE.require("REVERSED", "POSTED")
        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.entity_type == "journal_entry"
        assert exc_info.value.from_status == "REVERSED"

    def test_require_returns_transition(self):
        assert JOURNAL_ENTRY_LIFECYCLE.require("DRAFT", "POSTED").action == "post"

    @pytest.mark.parametrize("status", ["ADJUSTED", "REVERSED", "DELETED"])
    def test_terminal_states(self, status):
        assert JOURNAL_ENTRY_LIFECYCLE.is_terminal(status)

    def test_draft_is_not_terminal(self):
        assert not JOURNAL_ENTRY_LIFECYCLE.is_terminal("DRAFT")


class TestSettlementLifecycles:

    @pytest.mark.parametrize("lifecycle", [RECEIVABLE_LIFECYCLE, INSTALLMENT_LIFECYCLE])
    def test_payment_moves_forward(self, lifecycle):
        assert lifecycle.can_transition("PENDING", "PARTIALLY_PAID")
        assert lifecycle.can_transition("PARTIALLY_PAID", "PAID")
        assert lifecycle.can_transition("OVERDUE", "PAID")

    @pytest.mark.parametrize("status", sorted(CLOSED_SETTLEMENT_STATUSES))
    def test_closed_statuses_are_terminal(self, status):
        assert RECEIVABLE_LIFECYCLE.is_terminal(status)

    def test_paid_cannot_reopen(self):
        with pytest.raises(InvalidSettlementTransitionError):
            INSTALLMENT_LIFECYCLE.require("PAID", "PENDING")

    @pytest.mark.parametrize("lifecycle", [RECEIVABLE_LIFECYCLE, INSTALLMENT_LIFECYCLE])
    def test_require_raises_validation_error(self, lifecycle):
        with pytest.raises(InvalidSettlementTransitionError) as exc_info:
            lifecycle.require("WRITTEN_OFF", "OVERDUE")
        assert isinstance(exc_info.value, ValidationError)
        assert not isinstance(exc_info.value, InvalidStatusTransitionError)
        assert exc_info.value.entity_type == lifecycle.name
        assert exc_info.value.to_status == "OVERDUE"

    def test_open_statuses_can_be_cancelled_or_written_off(self):
        for status in ("PENDING", "PARTIALLY_PAID", "OVERDUE"):
            assert RECEIVABLE_LIFECYCLE.can_transition(status, SettlementStatus.CANCELLED)
            assert RECEIVABLE_LIFECYCLE.can_transition(status, SettlementStatus.WRITTEN_OFF)


class TestLifecycleDefinition:

    def test_unknown_state_in_transition_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Lifecycle(
                name="broken",
                initial_state="A",
                states=("A", "B"),
                transitions=(Transition("A", "C", action="jump"),),
            )
