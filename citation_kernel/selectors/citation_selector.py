"""
Module: citation_kernel.selectors.citation_selector
Responsibility: Read-only queries over citations: lookup by public number,
    per-driver listings, the overdue worklist, and aggregate statistics.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Read-only.
    - Statistics exclude void citations entirely.  Given ``now`` they
      count lapsed PENDING citations as overdue.
    - The overdue worklist is evaluated against an explicit ``now``; it
      includes PARTIALLY_PAID citations past their due date, which never
      carry the OVERDUE status.

Failure modes:
    - Returns None / empty lists when nothing matches.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, case, false, func, not_, or_, select

from citation_kernel.db.types import ZERO
from citation_kernel.domain.citation_lifecycle import CitationStatus
from citation_kernel.models.citation import Citation
from citation_kernel.selectors.base import BaseSelector


@dataclass
class CitationSummary:
    """Data transfer object for a citation listing row."""

    id: UUID
    citation_no: str
    driver_id: UUID
    vehicle_id: UUID
    status: CitationStatus
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    due_date: datetime
    issued_at: datetime
    is_void: bool


@dataclass
class CitationStatistics:
    """Aggregate figures over all non-void citations."""

    total: int
    total_amount: Decimal
    collected: Decimal
    pending: int
    partially_paid: int
    paid: int
    overdue: int
    contested: int
    dismissed: int


_OVERDUE_CANDIDATES = (CitationStatus.PENDING.value, CitationStatus.PARTIALLY_PAID.value)


class CitationSelector(BaseSelector):
    """Read side for citations."""

    @staticmethod
    def _to_dto(citation: Citation) -> CitationSummary:
        return CitationSummary(
            id=citation.id,
            citation_no=citation.citation_no,
            driver_id=citation.driver_id,
            vehicle_id=citation.vehicle_id,
            status=CitationStatus(citation.status),
            total_amount=citation.total_amount,
            amount_paid=citation.amount_paid,
            amount_due=citation.amount_due,
            due_date=citation.due_date,
            issued_at=citation.issued_at,
            is_void=citation.is_void,
        )

    def get_by_number(self, citation_no: str) -> CitationSummary | None:
        citation = self.session.execute(
            select(Citation).where(Citation.citation_no == citation_no)
        ).scalar_one_or_none()
        return self._to_dto(citation) if citation else None

    def list_by_driver(self, driver_id: UUID, include_void: bool = False) -> list[CitationSummary]:
        """A driver's citations, newest first."""
        query = select(Citation).where(Citation.driver_id == driver_id)
        if not include_void:
            query = query.where(Citation.is_void.is_(False))
        rows = self.session.execute(
            query.order_by(Citation.issued_at.desc(), Citation.citation_no.desc())
        ).scalars().all()
        return [self._to_dto(c) for c in rows]

    def list_overdue(self, now: datetime) -> list[CitationSummary]:
        """Unpaid or partly paid, not void, due date passed. Oldest due first."""
        rows = self.session.execute(
            select(Citation)
            .where(
                Citation.due_date < now,
                Citation.status.in_(_OVERDUE_CANDIDATES + (CitationStatus.OVERDUE.value,)),
                Citation.is_void.is_(False),
            )
            .order_by(Citation.due_date.asc(), Citation.citation_no.asc())
        ).scalars().all()
        return [self._to_dto(c) for c in rows]

    def statistics(self, now: datetime | None = None) -> CitationStatistics:
        """
        Aggregate figures over non-void citations.

        With ``now``, a PENDING citation past its due date counts as overdue
        even if no read has moved it to OVERDUE yet.  Without it, counts
        follow the persisted status.
        """
        if now is None:
            lapsed = false()
        else:
            lapsed = and_(
                Citation.status == CitationStatus.PENDING.value,
                Citation.due_date < now,
            )

        def _count(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        def _status(status: CitationStatus):
            return Citation.status == status.value

        row = self.session.execute(
            select(
                func.count(Citation.id),
                func.coalesce(func.sum(Citation.total_amount), 0),
                func.coalesce(func.sum(Citation.amount_paid), 0),
                _count(and_(_status(CitationStatus.PENDING), not_(lapsed))),
                _count(_status(CitationStatus.PARTIALLY_PAID)),
                _count(_status(CitationStatus.PAID)),
                _count(or_(_status(CitationStatus.OVERDUE), lapsed)),
                _count(_status(CitationStatus.CONTESTED)),
                _count(_status(CitationStatus.DISMISSED)),
            ).where(Citation.is_void.is_(False))
        ).one()

        return CitationStatistics(
            total=int(row[0]),
            total_amount=Decimal(str(row[1] or ZERO)),
            collected=Decimal(str(row[2] or ZERO)),
            pending=int(row[3]),
            partially_paid=int(row[4]),
            paid=int(row[5]),
            overdue=int(row[6]),
            contested=int(row[7]),
            dismissed=int(row[8]),
        )
