"""
OffenseLockService -- serializes offense-ordinal computation.

Responsibility:
    Before an issuance counts a driver's prior offenses, it locks one
    OffenseHistoryLock row per (driver, violation group) it is about to
    charge.  A concurrent issuance for the same key blocks on that row until
    the first transaction commits, and then counts the freshly committed
    citation, so two citations can never receive the same ordinal.

Architecture position:
    Kernel > Services -- imperative shell infrastructure used by
    CitationService.

Invariants enforced:
    - Locks are always taken in ascending (driver, group) order, so two
      multi-violation issuances cannot deadlock against each other.
    - First use of a key creates its row inside a savepoint; a concurrent
      creator's IntegrityError is resolved by re-reading under lock, the
      same way SequenceService handles counter creation.

Failure modes:
    - OffenseHistoryContentionError (retryable) on lock timeout, deadlock,
      or an unresolvable creation race.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from citation_kernel.exceptions import OffenseHistoryContentionError
from citation_kernel.logging_config import get_logger
from citation_kernel.models.offense_lock import OffenseHistoryLock

logger = get_logger("services.offense_lock")


class OffenseLockService:
    """
    Per-key locks for offense history.

    Non-goals:
        - Does NOT count offenses (see OffenseHistoryLookup).
        - Does NOT commit -- locks are released when the caller's
          transaction ends.
    """

    def __init__(self, session: Session):
        self._session = session

    def _select_locked(self, driver_id: UUID, group_id: UUID) -> OffenseHistoryLock | None:
        resource = f"offense_history:{driver_id}:{group_id}"
        try:
            return self._session.execute(
                select(OffenseHistoryLock)
                .where(
                    OffenseHistoryLock.driver_id == driver_id,
                    OffenseHistoryLock.violation_group_id == group_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as exc:
            logger.warning(
                "offense_lock_failed",
                extra={"driver_id": str(driver_id), "violation_group_id": str(group_id)},
            )
            raise OffenseHistoryContentionError(resource, str(exc.orig)) from exc

    def _acquire_one(self, driver_id: UUID, group_id: UUID) -> OffenseHistoryLock:
        lock = self._select_locked(driver_id, group_id)
        if lock is None:
            savepoint = self._session.begin_nested()
            try:
                lock = OffenseHistoryLock(
                    driver_id=driver_id, violation_group_id=group_id, acquisitions=1,
                )
                self._session.add(lock)
                self._session.flush()
                savepoint.commit()
                return lock
            except IntegrityError:
                logger.debug(
                    "offense_lock_race_retry",
                    extra={"driver_id": str(driver_id), "violation_group_id": str(group_id)},
                )
                savepoint.rollback()
                lock = self._select_locked(driver_id, group_id)
                if lock is None:
                    raise OffenseHistoryContentionError(
                        f"offense_history:{driver_id}:{group_id}",
                        "lock row vanished after creation race",
                    )

        lock.acquisitions += 1
        self._session.flush()
        return lock

    def acquire(self, driver_id: UUID, group_ids: Iterable[UUID]) -> list[OffenseHistoryLock]:
        """Lock every (driver, group) key, in a stable order."""
        ordered = sorted(set(group_ids), key=str)
        locks = [self._acquire_one(driver_id, group_id) for group_id in ordered]
        logger.debug(
            "offense_locks_acquired",
            extra={"driver_id": str(driver_id), "group_count": len(locks)},
        )
        return locks
