"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy model is imported so that ``Base.metadata`` holds
all table definitions before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility. ``ledger_kernel.db.engine`` imports it lazily
inside ``create_tables()`` / ``drop_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``ledger_modules.*.orm`` module.

    Kernel tables come first; module tables reference accounts and
    journal entries. Idempotent.
    """
    import ledger_kernel.models  # noqa: F401
    import ledger_modules.revenue.orm  # noqa: F401
    import ledger_modules.receivables.orm  # noqa: F401
