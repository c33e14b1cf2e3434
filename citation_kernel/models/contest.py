"""
Module: citation_kernel.models.contest
Responsibility: ORM persistence for contests (appeals) and their
    append-only status history.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - contest_no is unique (CON-YYYY-NNNNNN).
    - Partial unique index on citation_id WHERE status is submitted or
      under_review: at most one open contest per citation, enforced by the
      database so concurrent submissions cannot both succeed.
    - UNIQUE(contest_id, sequence) on history; history rows are append-only.
    - Contests are never deleted.

Failure modes:
    - IntegrityError on a second open contest (converted to
      DuplicateOpenContestError by ContestService).
    - ImmutabilityViolationError on history UPDATE/DELETE or contest DELETE.

Audit relevance:
    ContestStatusEntry rows are the authoritative audit trail of the appeal.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from citation_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from citation_kernel.domain.contest_workflow import (
    OPEN_CONTEST_STATUSES,
    ActorKind,
    ContestHistoryEntry,
    ContestSnapshot,
    ContestStatus,
)
from citation_kernel.exceptions import ImmutabilityViolationError

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ContestStatus)
_OPEN_VALUES = ", ".join(f"'{s.value}'" for s in sorted(OPEN_CONTEST_STATUSES, key=lambda s: s.value))
_OPEN_PREDICATE = text(f"status IN ({_OPEN_VALUES})")

OPEN_CONTEST_INDEX = "uq_contests_open_citation"


class Contest(TrackedBase):
    """A driver's appeal against one citation."""

    __tablename__ = "contests"

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_contests_valid_status"),
        Index(
            OPEN_CONTEST_INDEX,
            "citation_id",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index("ix_contests_status_submitted", "status", "submitted_at"),
        Index("ix_contests_driver", "driver_id"),
    )

    contest_no: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    citation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("citations.id"), nullable=False,
    )
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    contested_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    supporting_documents: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    witnesses: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ContestStatus.SUBMITTED.value,
    )
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)

    history: Mapped[list["ContestStatusEntry"]] = relationship(
        "ContestStatusEntry",
        back_populates="contest",
        order_by="ContestStatusEntry.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Contest {self.contest_no} status={self.status}>"

    @property
    def status_enum(self) -> ContestStatus:
        return ContestStatus(self.status)

    def to_snapshot(self) -> ContestSnapshot:
        return ContestSnapshot(
            contest_no=self.contest_no,
            status=ContestStatus(self.status),
            contested_by=self.contested_by,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            resolution=self.resolution,
            review_notes=self.review_notes,
        )

    def apply_snapshot(self, snapshot: ContestSnapshot, actor_id: UUID) -> None:
        self.status = snapshot.status.value
        self.reviewed_by = snapshot.reviewed_by
        self.reviewed_at = snapshot.reviewed_at
        self.resolution = snapshot.resolution
        self.review_notes = snapshot.review_notes
        self.updated_by_id = actor_id

    def append_history(self, entry: ContestHistoryEntry) -> "ContestStatusEntry":
        row = ContestStatusEntry(
            sequence=len(self.history) + 1,
            status=entry.status.value,
            actor_id=entry.actor_id,
            actor_kind=entry.actor_kind.value,
            changed_at=entry.changed_at,
            note=entry.note,
        )
        self.history.append(row)
        return row


class ContestStatusEntry(Base):
    """One step of a contest's status history. Append-only."""

    __tablename__ = "contest_status_history"

    __table_args__ = (
        UniqueConstraint("contest_id", "sequence", name="uq_contest_history_sequence"),
        CheckConstraint("sequence >= 1", name="ck_contest_history_sequence_positive"),
    )

    contest_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contests.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    contest: Mapped["Contest"] = relationship("Contest", back_populates="history")

    def to_dto(self) -> ContestHistoryEntry:
        return ContestHistoryEntry(
            status=ContestStatus(self.status),
            actor_id=self.actor_id,
            actor_kind=ActorKind(self.actor_kind),
            changed_at=self.changed_at,
            note=self.note,
        )


@event.listens_for(ContestStatusEntry, "before_update")
def prevent_history_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ContestStatusEntry",
        entity_id=str(target.id),
        reason="Contest status history is append-only -- cannot modify",
    )


@event.listens_for(ContestStatusEntry, "before_delete")
def prevent_history_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ContestStatusEntry",
        entity_id=str(target.id),
        reason="Contest status history is append-only -- cannot delete",
    )


@event.listens_for(Contest, "before_delete")
def prevent_contest_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Contest",
        entity_id=str(target.id),
        reason="Contests are never deleted; withdrawal and rejection are statuses",
    )
