"""
Module: ledger_engines
Responsibility:
    Pure calculation engines. No I/O, no clock, no session: every input is
    passed in and every result is a frozen dataclass.

Architecture position:
    Engines -- may import ledger_kernel.domain only. Services in
    ledger_kernel and ledger_modules apply engine results transactionally.
"""

from ledger_engines.cascade import (
    CascadePlan,
    InstallmentAllocation,
    InstallmentSnapshot,
    ReceivableSettlement,
    plan_cascade,
    settle_receivable,
)
from ledger_engines.tracer import traced_engine

__all__ = [
    "CascadePlan",
    "InstallmentAllocation",
    "InstallmentSnapshot",
    "ReceivableSettlement",
    "plan_cascade",
    "settle_receivable",
    "traced_engine",
]
