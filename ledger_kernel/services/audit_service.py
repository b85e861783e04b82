"""
AuditService -- best-effort audit records for state-changing operations.

Services call ``AuditService.record(...)`` inside their unit of work. The
record is staged on the SQLAlchemy session and handed to the configured
``AuditSink`` only after the transaction commits; a rollback discards it,
so an audit trail never describes a change that did not happen.

Emission is fire-and-forget: a sink that raises is logged as
``audit_emit_failed`` and the financial transaction stands.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.audit")

_PENDING_KEY = "ledger_pending_audit_records"


class AuditAction(str, Enum):
    JOURNAL_ENTRY_CREATE = "JOURNAL_ENTRY_CREATE"
    JOURNAL_ENTRY_UPDATE = "JOURNAL_ENTRY_UPDATE"
    JOURNAL_ENTRY_DELETE = "JOURNAL_ENTRY_DELETE"
    JOURNAL_ENTRY_POST = "JOURNAL_ENTRY_POST"
    JOURNAL_ENTRY_ADJUST = "JOURNAL_ENTRY_ADJUST"
    JOURNAL_ENTRY_REVERSE = "JOURNAL_ENTRY_REVERSE"
    ACCOUNT_CREATE = "ACCOUNT_CREATE"
    ACCOUNT_DEACTIVATE = "ACCOUNT_DEACTIVATE"
    RECEIVABLE_CREATE = "RECEIVABLE_CREATE"
    RECEIVABLE_SCHEDULE_UPDATE = "RECEIVABLE_SCHEDULE_UPDATE"
    RECEIVABLE_STATUS_CHANGE = "RECEIVABLE_STATUS_CHANGE"
    RECEIVABLE_DELETE = "RECEIVABLE_DELETE"
    INSTALLMENT_PAYMENT_CASCADE = "INSTALLMENT_PAYMENT_CASCADE"
    REVENUE_CREATE = "REVENUE_CREATE"
    REVENUE_UPDATE = "REVENUE_UPDATE"
    REVENUE_DELETE = "REVENUE_DELETE"
    REVENUE_POST_TO_GL = "REVENUE_POST_TO_GL"
    REVENUE_REVERSE = "REVENUE_REVERSE"


@dataclass(frozen=True)
class AuditRecord:
    """What changed, where, by whom and when."""
    action: str
    module: str
    record_id: str
    actor_id: UUID
    timestamp: datetime
    after: dict[str, Any] = field(default_factory=dict)
    before: dict[str, Any] | None = None


class AuditSink(Protocol):
    def emit(self, record: AuditRecord) -> None:
        ...


class LoggingAuditSink:
    """Default sink: one structured log line per record."""

    def emit(self, record: AuditRecord) -> None:
        logger.info(
            "audit_record",
            extra={
                "audit_action": record.action,
                "audit_module": record.module,
                "record_id": record.record_id,
                "actor_id": str(record.actor_id),
                "audit_timestamp": record.timestamp,
                "before": record.before,
                "after": record.after,
            },
        )


class InMemoryAuditSink:
    """Collects records in a list. Used by tests."""

    def __init__(self):
        self.records: list[AuditRecord] = []

    def emit(self, record: AuditRecord) -> None:
        self.records.append(record)

    def actions(self) -> list[str]:
        return [r.action for r in self.records]


class AuditService:
    """Stages audit records on a session until its transaction commits."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sink = sink or LoggingAuditSink()

    def record(
        self,
        action: AuditAction | str,
        module: str,
        record_id: Any,
        actor_id: UUID,
        after: dict[str, Any] | None = None,
        before: dict[str, Any] | None = None,
    ) -> AuditRecord:
        audit_record = AuditRecord(
            action=action.value if isinstance(action, AuditAction) else action,
            module=module,
            record_id=str(record_id),
            actor_id=actor_id,
            timestamp=self._clock.now(),
            after=after or {},
            before=before,
        )
        self._session.info.setdefault(_PENDING_KEY, []).append(
            (self._sink, audit_record)
        )
        return audit_record

    def pending(self) -> list[AuditRecord]:
        return [r for _, r in self._session.info.get(_PENDING_KEY, [])]


@event.listens_for(Session, "after_commit")
def _emit_pending_audit_records(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for sink, audit_record in pending:
        try:
            sink.emit(audit_record)
        except Exception:
            logger.warning(
                "audit_emit_failed",
                extra={
                    "audit_action": audit_record.action,
                    "record_id": audit_record.record_id,
                },
                exc_info=True,
            )


@event.listens_for(Session, "after_rollback")
def _discard_pending_audit_records(session: Session) -> None:
    discarded = session.info.pop(_PENDING_KEY, [])
    if discarded:
        logger.debug(
            "audit_records_discarded",
            extra={"count": len(discarded)},
        )
