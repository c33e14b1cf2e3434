"""
Module: citation_kernel.models.offense_lock
Responsibility: Lock rows that serialize offense-ordinal computation per
    (driver, violation group).

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - UNIQUE(driver_id, violation_group_id): exactly one lock row per key.
    - acquisitions only increases; every issuance that locks the row bumps
      it, so the row is written (and therefore held) until commit on every
      backend, including SQLite where FOR UPDATE is a no-op.

Audit relevance:
    None directly; offense history itself is derived from citation lines.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import BigInteger, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from citation_kernel.db.base import Base, UUIDString


class OffenseHistoryLock(Base):
    """Per-(driver, violation group) lock row."""

    __tablename__ = "offense_history_locks"

    __table_args__ = (
        UniqueConstraint(
            "driver_id", "violation_group_id", name="uq_offense_history_locks_key",
        ),
    )

    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    violation_group_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    acquisitions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<OffenseHistoryLock driver={self.driver_id} "
            f"group={self.violation_group_id} n={self.acquisitions}>"
        )
