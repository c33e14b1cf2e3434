"""
Module: citation_kernel.selectors.contest_selector
Responsibility: Read-only queries over contests: the review worklist,
    lookups by citation and driver, status history, and statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.
    - The review worklist (SUBMITTED or UNDER_REVIEW) is ordered oldest
      first so reviewers work in arrival order.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from citation_kernel.domain.contest_workflow import (
    OPEN_CONTEST_STATUSES,
    ContestHistoryEntry,
    ContestStatus,
)
from citation_kernel.models.contest import Contest, ContestStatusEntry
from citation_kernel.selectors.base import BaseSelector


@dataclass
class ContestSummary:
    """Data transfer object for a contest listing row."""

    id: UUID
    contest_no: str
    citation_id: UUID
    driver_id: UUID
    status: ContestStatus
    reason: str
    submitted_at: datetime
    reviewed_by: UUID | None
    resolution: str | None


@dataclass
class ContestStatistics:
    total: int
    submitted: int
    under_review: int
    approved: int
    rejected: int
    withdrawn: int


class ContestSelector(BaseSelector):
    """Read side for contests."""

    @staticmethod
    def _to_dto(contest: Contest) -> ContestSummary:
        return ContestSummary(
            id=contest.id,
            contest_no=contest.contest_no,
            citation_id=contest.citation_id,
            driver_id=contest.driver_id,
            status=ContestStatus(contest.status),
            reason=contest.reason,
            submitted_at=contest.submitted_at,
            reviewed_by=contest.reviewed_by,
            resolution=contest.resolution,
        )

    def get_by_number(self, contest_no: str) -> ContestSummary | None:
        contest = self.session.execute(
            select(Contest).where(Contest.contest_no == contest_no)
        ).scalar_one_or_none()
        return self._to_dto(contest) if contest else None

    def list_by_citation(self, citation_id: UUID) -> list[ContestSummary]:
        """Every contest ever filed against the citation, oldest first."""
        rows = self.session.execute(
            select(Contest)
            .where(Contest.citation_id == citation_id)
            .order_by(Contest.submitted_at.asc(), Contest.contest_no.asc())
        ).scalars().all()
        return [self._to_dto(c) for c in rows]

    def get_open_for_citation(self, citation_id: UUID) -> ContestSummary | None:
        contest = self.session.execute(
            select(Contest).where(
                Contest.citation_id == citation_id,
                Contest.status.in_([s.value for s in OPEN_CONTEST_STATUSES]),
            )
        ).scalar_one_or_none()
        return self._to_dto(contest) if contest else None

    def list_by_driver(self, driver_id: UUID) -> list[ContestSummary]:
        rows = self.session.execute(
            select(Contest)
            .where(Contest.driver_id == driver_id)
            .order_by(Contest.submitted_at.desc(), Contest.contest_no.desc())
        ).scalars().all()
        return [self._to_dto(c) for c in rows]

    def list_pending(self) -> list[ContestSummary]:
        rows = self.session.execute(
            select(Contest)
            .where(Contest.status.in_([s.value for s in OPEN_CONTEST_STATUSES]))
            .order_by(Contest.submitted_at.asc(), Contest.contest_no.asc())
        ).scalars().all()
        return [self._to_dto(c) for c in rows]

    def history(self, contest_id: UUID) -> list[ContestHistoryEntry]:
        rows = self.session.execute(
            select(ContestStatusEntry)
            .where(ContestStatusEntry.contest_id == contest_id)
            .order_by(ContestStatusEntry.sequence.asc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def statistics(self) -> ContestStatistics:
        counts = dict(
            self.session.execute(
                select(Contest.status, func.count(Contest.id)).group_by(Contest.status)
            ).all()
        )
        return ContestStatistics(
            total=sum(counts.values()),
            submitted=counts.get(ContestStatus.SUBMITTED.value, 0),
            under_review=counts.get(ContestStatus.UNDER_REVIEW.value, 0),
            approved=counts.get(ContestStatus.APPROVED.value, 0),
            rejected=counts.get(ContestStatus.REJECTED.value, 0),
            withdrawn=counts.get(ContestStatus.WITHDRAWN.value, 0),
        )
