"""
Status lifecycles as explicit transition tables.

A ``Lifecycle`` lists every legal (from, to) pair for one entity type.
Services ask the lifecycle before touching a status column, so an illegal
transition fails before anything is flushed. Journal entries raise
``InvalidStatusTransitionError`` (a conflict); receivables and installments
raise ``InvalidSettlementTransitionError`` (a validation error).
"""

from dataclasses import dataclass
from enum import Enum

from ledger_kernel.exceptions import (
    InvalidSettlementTransitionError,
    InvalidStatusTransitionError,
    LedgerError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycle")


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str


@dataclass(frozen=True)
class Lifecycle:
    """A state machine definition."""
    name: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    error: type[LedgerError] = InvalidStatusTransitionError

    def __post_init__(self):
        for transition in self.transitions:
            for state in (transition.from_state, transition.to_state):
                if state not in self.states:
                    raise ValueError(
                        f"{self.name}: transition references unknown state {state!r}"
                    )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.to_state == to_state:
                return transition
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find(_value(from_state), _value(to_state)) is not None

    def require(self, from_state: str, to_state: str) -> Transition:
        """Return the transition or raise this lifecycle's ``error``."""
        transition = self.find(_value(from_state), _value(to_state))
        if transition is None:
            logger.warning(
                "invalid_status_transition",
                extra={
                    "lifecycle": self.name,
                    "from_status": _value(from_state),
                    "to_status": _value(to_state),
                },
            )
            raise self.error(self.name, _value(from_state), _value(to_state))
        return transition

    def is_terminal(self, state: str) -> bool:
        state = _value(state)
        return not any(t.from_state == state for t in self.transitions)


def _value(state: str) -> str:
    return state.value if isinstance(state, Enum) else state


# -----------------------------------------------------------------------------
# Journal entry lifecycle
# -----------------------------------------------------------------------------


class JournalEntryStatus(str, Enum):
    """Journal entry lifecycle states."""

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    ADJUSTED = "ADJUSTED"
    REVERSED = "REVERSED"
    DELETED = "DELETED"


JOURNAL_ENTRY_LIFECYCLE = Lifecycle(
    name="journal_entry",
    initial_state=JournalEntryStatus.DRAFT.value,
    states=tuple(s.value for s in JournalEntryStatus),
    transitions=(
        Transition("DRAFT", "POSTED", action="post"),
        Transition("DRAFT", "DELETED", action="delete"),
        Transition("POSTED", "ADJUSTED", action="adjust"),
        Transition("POSTED", "REVERSED", action="reverse"),
    ),
)


# -----------------------------------------------------------------------------
# Receivable and installment lifecycles
# -----------------------------------------------------------------------------


class SettlementStatus(str, Enum):
    """Shared status vocabulary of receivables and installments."""

    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    WRITTEN_OFF = "WRITTEN_OFF"


ReceivableStatus = SettlementStatus
InstallmentStatus = SettlementStatus

# Statuses that no longer accept payments
CLOSED_SETTLEMENT_STATUSES = frozenset({
    SettlementStatus.PAID.value,
    SettlementStatus.CANCELLED.value,
    SettlementStatus.WRITTEN_OFF.value,
})


def _settlement_transitions() -> tuple[Transition, ...]:
    open_states = ("PENDING", "PARTIALLY_PAID", "OVERDUE")
    transitions = [
        Transition("PENDING", "PARTIALLY_PAID", action="apply_payment"),
        Transition("PENDING", "PAID", action="apply_payment"),
        Transition("PARTIALLY_PAID", "PAID", action="apply_payment"),
        Transition("OVERDUE", "PARTIALLY_PAID", action="apply_payment"),
        Transition("OVERDUE", "PAID", action="apply_payment"),
    ]
    for state in open_states:
        if state != "OVERDUE":
            transitions.append(Transition(state, "OVERDUE", action="mark_overdue"))
        transitions.append(Transition(state, "CANCELLED", action="cancel"))
        transitions.append(Transition(state, "WRITTEN_OFF", action="write_off"))
    return tuple(transitions)


RECEIVABLE_LIFECYCLE = Lifecycle(
    name="receivable",
    initial_state=SettlementStatus.PENDING.value,
    states=tuple(s.value for s in SettlementStatus),
    transitions=_settlement_transitions(),
    error=InvalidSettlementTransitionError,
)

INSTALLMENT_LIFECYCLE = Lifecycle(
    name="installment",
    initial_state=SettlementStatus.PENDING.value,
    states=tuple(s.value for s in SettlementStatus),
    transitions=_settlement_transitions(),
    error=InvalidSettlementTransitionError,
)

logger.debug(
    "lifecycles_registered",
    extra={
        "lifecycles": [
            JOURNAL_ENTRY_LIFECYCLE.name,
            RECEIVABLE_LIFECYCLE.name,
            INSTALLMENT_LIFECYCLE.name,
        ],
    },
)
