"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for human-readable references
    such as deployment transmittal numbers (``TN-2024-0001``) and
    transfer numbers (``TR-2024-0001``).  Uses a
    dedicated counter table with row-level locking (``SELECT ... FOR
    UPDATE``) so two concurrent requests never receive the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the TransactionCoordinator inside its atomic unit.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth
      for the next value; counting existing rows is never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from assetflow_kernel.db.base import Base
from assetflow_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next value.  The increment
        is committed only when the caller's transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def transmittal_sequence(prefix: str, year: int) -> str:
        """Counter name for transmittal numbers of one calendar year."""
        return f"transmittal:{prefix}:{year}"

    @staticmethod
    def transfer_sequence(prefix: str, year: int) -> str:
        """Counter name for business-unit transfer numbers of one calendar year."""
        return f"transfer:{prefix}:{year}"

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the
        new value (always > 0).
        """
        counter = self._lock(sequence_name)

        if counter is None:
            # Another session may create the same counter concurrently.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
