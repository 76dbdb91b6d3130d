"""
SequenceService -- gap-safe, strictly monotonic sequence allocation.

Responsibility:
    Allocates movement ``seq`` values and the counters behind reference
    numbers (``ADJ-000001``, ``TRF-000001``, ``OP-20240101-0001``) from
    named counter rows locked with ``SELECT ... FOR UPDATE``.

Architecture position:
    Kernel > Services -- imperative shell, owns the ``sequence_counters``
    table.

Invariants enforced:
    - Strictly monotonic values per name via a locked counter row.  The
      aggregate-max-plus-one pattern is never used.
    - Values are only consumed when the caller's transaction commits.

Lock ordering:
    Counters are the LAST locks any operation takes (after the opname
    session row and the stock rows).  Within one operation, reference
    counters are taken before the ``stock_movement`` counter.

Failure modes:
    - IntegrityError on concurrent first-use creation (retried internally
      via savepoint).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
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
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment is only committed when the caller's
        transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    # Well-known sequence names
    STOCK_MOVEMENT = "stock_movement"
    ADJUSTMENT_REF = "adjustment_ref"
    TRANSFER_REF = "transfer_ref"
    OPNAME_REF = "opname_ref"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), increments it,
        and returns the new value (always > 0).
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the row at the same
            # time; the savepoint keeps the caller's work intact on conflict.
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
                counter = self._locked_counter(sequence_name)
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
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def next_reference(self, sequence_name: str, prefix: str, width: int = 6) -> str:
        """Allocate the next value and render it as ``<prefix>-<zero padded>``."""
        value = self.next_value(sequence_name)
        return f"{prefix}-{value:0{width}d}"

    def next_daily_reference(self, sequence_name: str, prefix: str, day_key: str, width: int = 4) -> str:
        """
        Allocate a per-day reference such as ``OP-20240101-0001``.

        The counter is keyed by ``<sequence_name>:<day_key>`` so numbering
        restarts every day.
        """
        value = self.next_value(f"{sequence_name}:{day_key}")
        return f"{prefix}-{day_key}-{value:0{width}d}"
