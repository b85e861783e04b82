"""
Configuration loader.

Reads a YAML settings file with ``yaml.safe_load`` and parses it into the
frozen dataclasses of ``ledger_config.schema``. Amounts are written as
quoted strings in YAML and converted to ``Decimal`` here so no float ever
enters a tolerance.

Failure modes:
    * Missing file -> ``FileNotFoundError`` propagates.
    * Malformed YAML -> ``yaml.YAMLError`` propagates.
    * Missing required key -> ``KeyError`` propagates.
    * Invalid value -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    JournalSettings,
    LedgerSettings,
    OverpaymentPolicy,
    ReceivableSettings,
    RevenueSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if data is not None else {}


def _decimal(value: Any, key: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key} must be a decimal number, got {value!r}") from exc
    if result < 0:
        raise ValueError(f"{key} must not be negative, got {value!r}")
    return result


def parse_journal(data: dict[str, Any]) -> JournalSettings:
    defaults = JournalSettings()
    return JournalSettings(
        code_prefix=data.get("code_prefix", defaults.code_prefix),
        sequence_width=int(data.get("sequence_width", defaults.sequence_width)),
        balance_tolerance=_decimal(
            data.get("balance_tolerance", defaults.balance_tolerance),
            "journal.balance_tolerance",
        ),
    )


def parse_receivables(data: dict[str, Any]) -> ReceivableSettings:
    defaults = ReceivableSettings()
    policy = data.get("overpayment_policy", defaults.overpayment_policy.value)
    try:
        overpayment_policy = OverpaymentPolicy(str(policy).upper())
    except ValueError as exc:
        raise ValueError(
            f"receivables.overpayment_policy must be one of "
            f"{[p.value for p in OverpaymentPolicy]}, got {policy!r}"
        ) from exc
    return ReceivableSettings(
        receivable_code_prefix=data.get(
            "receivable_code_prefix", defaults.receivable_code_prefix
        ),
        payment_revenue_code_prefix=data.get(
            "payment_revenue_code_prefix", defaults.payment_revenue_code_prefix
        ),
        sequence_width=int(data.get("sequence_width", defaults.sequence_width)),
        schedule_tolerance=_decimal(
            data.get("schedule_tolerance", defaults.schedule_tolerance),
            "receivables.schedule_tolerance",
        ),
        overpayment_policy=overpayment_policy,
        placeholder_debtor_name=data.get(
            "placeholder_debtor_name", defaults.placeholder_debtor_name
        ),
    )


def parse_revenue(data: dict[str, Any]) -> RevenueSettings:
    defaults = RevenueSettings()
    return RevenueSettings(
        revenue_code_prefix=data.get("revenue_code_prefix", defaults.revenue_code_prefix),
        module_name=data.get("module_name", defaults.module_name),
        default_revenue_account=str(
            data.get("default_revenue_account", defaults.default_revenue_account)
        ),
        cash_account=str(data.get("cash_account", defaults.cash_account)),
        bank_account=str(data.get("bank_account", defaults.bank_account)),
        bank_payment_methods=tuple(
            str(m).upper()
            for m in data.get("bank_payment_methods", defaults.bank_payment_methods)
        ),
    )


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Parse a full settings dict. ``name``, ``version`` and ``currency`` are required."""
    decimal_places = int(data.get("decimal_places", 2))
    if decimal_places < 0:
        raise ValueError(f"decimal_places must not be negative, got {decimal_places}")
    return LedgerSettings(
        name=data["name"],
        version=int(data["version"]),
        currency=data["currency"],
        decimal_places=decimal_places,
        journal=parse_journal(data.get("journal") or {}),
        receivables=parse_receivables(data.get("receivables") or {}),
        revenue=parse_revenue(data.get("revenue") or {}),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> LedgerSettings:
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
