"""Engine initialization and the transactional scope helper."""

import pytest
from sqlalchemy import select

from ledger_kernel.db.engine import get_engine, get_session, reset_engine, session_scope
from ledger_kernel.models.sequence import SequenceCounter


def test_session_before_init_raises():
    reset_engine()
    with pytest.raises(RuntimeError, match="not initialized"):
        get_session()
    with pytest.raises(RuntimeError, match="not initialized"):
        get_engine()


class TestSessionScope:

    def test_commits_on_success(self, session):
        with session_scope() as scoped:
            scoped.add(SequenceCounter(name="JE-2024", current_value=7))

        with session_scope() as scoped:
            value = scoped.execute(
                select(SequenceCounter.current_value).where(SequenceCounter.name == "JE-2024")
            ).scalar_one()
        assert value == 7

    def test_rolls_back_on_error(self, session, captured_logs):
        with pytest.raises(RuntimeError, match="abort"):
            with session_scope() as scoped:
                scoped.add(SequenceCounter(name="JE-2024", current_value=7))
                scoped.flush()
                raise RuntimeError("abort")

        with session_scope() as scoped:
            assert scoped.execute(select(SequenceCounter)).first() is None
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
