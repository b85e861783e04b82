"""
Typed configuration objects.

Every section of a settings file parses into a frozen dataclass; nothing
downstream reads raw YAML dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class OverpaymentPolicy(str, Enum):
    """What happens to cash beyond the eligible installment balance."""

    REJECT = "REJECT"
    CREDIT = "CREDIT"


@dataclass(frozen=True)
class JournalSettings:
    code_prefix: str = "JE"
    sequence_width: int = 4
    balance_tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class ReceivableSettings:
    receivable_code_prefix: str = "RCV"
    payment_revenue_code_prefix: str = "REV-PAY"
    sequence_width: int = 4
    schedule_tolerance: Decimal = Decimal("0.01")
    overpayment_policy: OverpaymentPolicy = OverpaymentPolicy.REJECT
    placeholder_debtor_name: str = "Unknown - Pending Sync"


@dataclass(frozen=True)
class RevenueSettings:
    revenue_code_prefix: str = "REV-OTH"
    module_name: str = "REVENUE"
    default_revenue_account: str = "4000"
    cash_account: str = "1010"
    bank_account: str = "1020"
    bank_payment_methods: tuple[str, ...] = ("BANK_TRANSFER", "CHECK")


@dataclass(frozen=True)
class LedgerSettings:
    """Root configuration object returned by ``get_active_config()``."""
    name: str
    version: int
    currency: str
    decimal_places: int
    journal: JournalSettings = field(default_factory=JournalSettings)
    receivables: ReceivableSettings = field(default_factory=ReceivableSettings)
    revenue: RevenueSettings = field(default_factory=RevenueSettings)
    checksum: str = ""
