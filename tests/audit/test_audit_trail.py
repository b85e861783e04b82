"""
Audit records are emitted after commit and discarded on rollback.

Verifies:
- Records reach the sink only once the transaction commits
- A rolled-back operation leaves no audit trail
- A failing sink does not undo the financial change
"""

from datetime import date

import pytest
from sqlalchemy import text

from ledger_kernel.domain.dtos import LineInput
from ledger_kernel.exceptions import UnbalancedEntryError
from ledger_kernel.models.account import AccountType
from ledger_kernel.services.audit_service import (
    AuditAction,
    AuditService,
    InMemoryAuditSink,
    LoggingAuditSink,
)


class ExplodingSink:
    def emit(self, record):
        raise RuntimeError("audit store unavailable")


class TestAuditEmission:

    def test_staged_until_commit(self, session, deterministic_clock, test_actor_id):
        session.execute(text("SELECT 1"))
        sink = InMemoryAuditSink()
        audit = AuditService(session, deterministic_clock, sink)

        record = audit.record(
            AuditAction.ACCOUNT_CREATE, module="chart_of_accounts",
            record_id="abc", actor_id=test_actor_id, after={"code": "1010"},
        )

        assert sink.records == []
        assert audit.pending() == [record]
        session.commit()
        assert sink.records == [record]
        assert audit.pending() == []

    def test_record_fields(self, session, deterministic_clock, test_actor_id):
        audit = AuditService(session, deterministic_clock, InMemoryAuditSink())
        record = audit.record("CUSTOM_ACTION", "revenue", 42, test_actor_id)

        assert record.action == "CUSTOM_ACTION"
        assert record.record_id == "42"
        assert record.timestamp == deterministic_clock.now()
        assert record.after == {}
        assert record.before is None

    def test_discarded_on_rollback(self, session, deterministic_clock, test_actor_id):
        session.execute(text("SELECT 1"))
        sink = InMemoryAuditSink()
        audit = AuditService(session, deterministic_clock, sink)
        audit.record(AuditAction.ACCOUNT_CREATE, "chart_of_accounts", "abc", test_actor_id)

        session.rollback()

        assert audit.pending() == []
        assert sink.records == []

    def test_failed_service_call_leaves_no_record(
        self, ledger, audit_sink, seeded_accounts, test_actor_id,
    ):
        before = list(audit_sink.records)
        with pytest.raises(UnbalancedEntryError):
            ledger.journal.create_auto(
                "revenue", "R-1", "Broken", date(2024, 1, 15),
                [LineInput("1010", debit="10"), LineInput("4000", credit="9")],
                test_actor_id,
            )
        assert audit_sink.records == before


class TestSinkFailure:

    def test_failing_sink_is_logged_and_change_stands(
        self, session, deterministic_clock, captured_logs, test_actor_id,
    ):
        from ledger_kernel.services.chart_of_accounts import ChartOfAccounts

        audit = AuditService(session, deterministic_clock, ExplodingSink())
        chart = ChartOfAccounts(session, deterministic_clock, audit)

        chart.create_account("1010", "Cash on Hand", AccountType.ASSET, test_actor_id)

        assert chart.lookup_account("1010") is not None
        failures = [r for r in captured_logs() if r["message"] == "audit_emit_failed"]
        assert failures[0]["audit_action"] == "ACCOUNT_CREATE"
        assert failures[0]["exc_type"] == "RuntimeError"


class TestLoggingSink:

    def test_writes_structured_line(self, session, deterministic_clock, captured_logs, test_actor_id):
        session.execute(text("SELECT 1"))
        audit = AuditService(session, deterministic_clock, LoggingAuditSink())
        audit.record(
            AuditAction.REVENUE_POST_TO_GL, "revenue", "rev-1", test_actor_id,
            after={"entry_code": "JE-2024-0001"},
        )
        session.commit()

        line = next(r for r in captured_logs() if r["message"] == "audit_record")
        assert line["audit_action"] == "REVENUE_POST_TO_GL"
        assert line["audit_module"] == "revenue"
        assert line["after"] == {"entry_code": "JE-2024-0001"}
        assert line["actor_id"] == str(test_actor_id)
