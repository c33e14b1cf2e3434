"""
SequenceService -- per-year document numbering via locked counter rows.

Responsibility:
    Allocates citation and contest numbers (``TCT-2025-000001``,
    ``CON-2025-000001``).  Each (prefix, year) scope owns one counter row;
    allocation locks that row (``SELECT ... FOR UPDATE``), increments it and
    returns the new value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by CitationService and ContestService.

Invariants enforced:
    - Numbers are strictly increasing within a scope and restart at 1 for
      each new year (a new year is a new counter row).
    - The query-max-then-increment pattern is FORBIDDEN -- the locked
      counter row is the sole source of truth for the next value.
    - Transactional: the increment becomes visible only when the caller's
      transaction commits; a rollback returns the value.

Failure modes:
    - IntegrityError: concurrent first-use creation race (handled via
      savepoint rollback and re-read under lock).
    - SequenceContentionError (retryable) when the counter row cannot be
      locked or the creation race cannot be resolved.
    - SequenceExhaustedError when a scope runs past its digit width.

Audit relevance:
    Allocation is logged at DEBUG level with sequence_name and value.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Mapped, Session, mapped_column

from citation_kernel.db.base import Base
from citation_kernel.domain.values import DocumentNumber, counter_scope
from citation_kernel.exceptions import SequenceContentionError, SequenceExhaustedError
from citation_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named scope (e.g. ``TCT-2025``) with its current
    value.  Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
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
    Service for allocating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment is committed with the caller's
        transaction.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations for
          the same scope.
        - Gap-free under normal operation; a rolled-back transaction
          returns its value.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        try:
            return self._session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == sequence_name)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as exc:
            logger.warning(
                "sequence_lock_failed",
                extra={"sequence_name": sequence_name},
            )
            raise SequenceContentionError(sequence_name, str(exc.orig)) from exc

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the counter row (or creates it on first use)
        2. Increments the counter
        3. Returns the new value

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              returned value for this name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use of this scope. Another transaction may create it
            # simultaneously, so isolate the insert in a savepoint.
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
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise SequenceContentionError(
                        sequence_name, "counter row vanished after creation race"
                    )

        # Increment via locked row, never aggregate-max+1
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(self, prefix: str, year: int, width: int = 6) -> DocumentNumber:
        """Allocate the next ``<PREFIX>-<YEAR>-<NNNNNN>`` number for the year."""
        scope = counter_scope(prefix, year)
        value = self.next_value(scope)
        if value >= 10 ** width:
            raise SequenceExhaustedError(scope, width)
        return DocumentNumber(prefix=prefix, year=year, sequence=value, width=width)

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: Only for tests and data migrations.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()
