"""
Module: citation_kernel.selectors.offense_history
Responsibility: Count a driver's prior offenses for one violation group.
Architecture position: Kernel > Selectors.  Read-only; the serialization of
    concurrent issuances is done by OffenseLockService before counting.

Invariants enforced:
    - VOID citations never count.
    - Only statuses allowed by the OffenseCountingPolicy count.  By default
      that is PENDING, PARTIALLY_PAID, PAID and OVERDUE.
    - Identity is the violation group, so every version of a rule counts
      toward the same history.  A code is resolved to every group that
      ever used it.
    - History is derived from citation lines; there is no stored counter.

Failure modes:
    - Returns 0 for unknown drivers or violations.
"""

from uuid import UUID

from sqlalchemy import func, select

from citation_kernel.domain.policy import OffenseCountingPolicy
from citation_kernel.logging_config import get_logger
from citation_kernel.models.citation import Citation, CitationViolationLine
from citation_kernel.models.violation_rule import ViolationRule
from citation_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.offense_history")


class OffenseHistoryLookup(BaseSelector):
    """Prior-offense counting for progressive fines."""

    def __init__(self, session, policy: OffenseCountingPolicy | None = None):
        super().__init__(session)
        self._policy = policy or OffenseCountingPolicy()

    def _group_ids(self, group_id_or_code: UUID | str) -> list[UUID]:
        if isinstance(group_id_or_code, UUID):
            return [group_id_or_code]
        rows = self.session.execute(
            select(ViolationRule.group_id)
            .where(ViolationRule.code == group_id_or_code)
            .distinct()
        ).scalars().all()
        return list(rows)

    def count(self, driver_id: UUID, group_id_or_code: UUID | str) -> int:
        """Number of prior counted citations charging this violation."""
        group_ids = self._group_ids(group_id_or_code)
        if not group_ids:
            return 0

        statuses = [s.value for s in self._policy.counted_statuses()]
        total = self.session.execute(
            select(func.count(CitationViolationLine.id))
            .join(Citation, Citation.id == CitationViolationLine.citation_id)
            .where(
                Citation.driver_id == driver_id,
                Citation.is_void.is_(False),
                Citation.status.in_(statuses),
                CitationViolationLine.violation_group_id.in_(group_ids),
            )
        ).scalar_one()

        logger.debug(
            "offense_history_counted",
            extra={
                "driver_id": str(driver_id),
                "violation": str(group_id_or_code),
                "count": total,
            },
        )
        return total

    def next_ordinal(self, driver_id: UUID, group_id_or_code: UUID | str) -> int:
        """Offense ordinal for a new citation: prior count + 1."""
        return self.count(driver_id, group_id_or_code) + 1
