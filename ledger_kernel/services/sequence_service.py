"""
SequenceService -- document numbers from locked counter rows.

Codes look like ``JE-2024-0001`` or ``RCV-202401-0007``: a prefix, a period
key and a zero-padded counter that restarts for each (prefix, period) pair.
The counter row is the only source of the next value; the increment becomes
visible when the caller's transaction commits and is returned on rollback.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Allocates strictly increasing values per sequence name.

    Does not commit. Two transactions creating the same counter for the
    first time race on the unique name; the loser gets an IntegrityError
    and its operation is rolled back by the caller.
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)

        counter.current_value += 1
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_code(self, prefix: str, period_key: str, width: int = 4) -> str:
        """Allocate the next ``{prefix}-{period_key}-{NNNN}`` code."""
        value = self.next_value(f"{prefix}-{period_key}")
        return f"{prefix}-{period_key}-{value:0{width}d}"

    def current_value(self, sequence_name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
