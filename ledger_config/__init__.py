"""
ledger_config -- public entrypoint for ledger settings.

``get_active_config()`` is the only way runtime code obtains settings. It
loads the YAML file named by ``LEDGER_CONFIG_PATH`` when that variable is
set, otherwise the packaged ``sets/default.yaml``, and logs a
``LEDGER_CONFIG_TRACE`` line tying the run to the file's checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_settings
from ledger_config.schema import (
    JournalSettings,
    LedgerSettings,
    OverpaymentPolicy,
    ReceivableSettings,
    RevenueSettings,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"
CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"


def get_active_config(config_path: Path | None = None) -> LedgerSettings:
    """Load and return the active settings (not cached)."""
    if config_path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    settings = load_settings(Path(config_path))

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_name": settings.name,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "currency": settings.currency,
            "config_path": str(config_path),
        },
    )
    return settings


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "JournalSettings",
    "LedgerSettings",
    "OverpaymentPolicy",
    "ReceivableSettings",
    "RevenueSettings",
    "get_active_config",
]
