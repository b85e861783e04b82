"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management
    and the transactional scope helper. Single point of database connection
    configuration.
Architecture position: Kernel > DB. May import from db/base.py. Imports
    models lazily inside create_tables/drop_tables only.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit ``FOR UPDATE`` row
      locks on every read-modify-write path.
    - SQLite (tests, local tooling) uses a single shared connection so an
      in-memory database survives across sessions.
    - session_scope() commits on success and rolls back on any exception.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Args:
        database_url: ``postgresql+psycopg2://...`` in production,
            ``sqlite://`` for an in-memory database.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()

    if dialect == "sqlite":
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "echo": echo},
    )

    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for callers that need one session per thread."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            service = JournalService(session, ...)
            ...
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every kernel and module table."""
    from ledger_kernel.db.base import Base
    from ledger_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from ledger_kernel.db.base import Base
    from ledger_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
