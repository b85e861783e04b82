"""Database layer - engine, base classes and immutability listeners."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "UUID",
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
