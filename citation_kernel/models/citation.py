"""
Module: citation_kernel.models.citation
Responsibility: ORM persistence for citations, their frozen violation
    lines and the payments recorded against them.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - citation_no is unique (TCT-YYYY-NNNNNN).
    - total_amount, amount_paid, amount_due are non-negative; amount_due is
      written only through apply_snapshot(), which derives it.
    - is_void is true exactly when status is 'void' (check constraint).
    - UNIQUE(citation_id, line_no) and UNIQUE(citation_id, violation_group_id).
    - CitationViolationLine and CitationPayment are append-only.
    - Citations are never deleted.

Failure modes:
    - IntegrityError on duplicate citation_no or duplicate line.
    - ImmutabilityViolationError on line/payment UPDATE or DELETE, and on
      citation DELETE.

Audit relevance:
    Lines snapshot the rule version, wording, tier and ordinal used at
    issuance, so later catalog changes never alter an issued citation.
    Payments form the ledger that amount_paid summarizes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from citation_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from citation_kernel.domain.citation_lifecycle import (
    CitationSnapshot,
    CitationStatus,
    compute_amount_due,
)
from citation_kernel.domain.values import Location
from citation_kernel.exceptions import ImmutabilityViolationError

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in CitationStatus)


class Citation(TrackedBase):
    """A traffic citation issued to a driver.

    Contract:
        Lifecycle fields change only via apply_snapshot() with a snapshot
        produced by citation_lifecycle.

    Guarantees:
        - total_amount equals the sum of line fine amounts (set at issuance).
        - amount_due == max(0, total_amount - amount_paid).
    """

    __tablename__ = "citations"

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_citations_valid_status"),
        CheckConstraint("total_amount >= 0", name="ck_citations_total_non_negative"),
        CheckConstraint("amount_paid >= 0", name="ck_citations_paid_non_negative"),
        CheckConstraint("amount_due >= 0", name="ck_citations_due_non_negative"),
        CheckConstraint(
            "(is_void AND status = 'void') OR (NOT is_void AND status <> 'void')",
            name="ck_citations_void_flag_matches_status",
        ),
        Index("ix_citations_driver", "driver_id", "issued_at"),
        Index("ix_citations_status_due", "status", "due_date"),
    )

    citation_no: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    vehicle_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    owner_class: Mapped[str] = mapped_column(String(20), nullable=False)
    offender_role: Mapped[str] = mapped_column(String(20), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    amount_due: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=CitationStatus.PENDING.value,
    )

    issued_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    violation_datetime: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    location: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_void: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    lines: Mapped[list["CitationViolationLine"]] = relationship(
        "CitationViolationLine",
        back_populates="citation",
        order_by="CitationViolationLine.line_no",
        lazy="selectin",
    )

    payments: Mapped[list["CitationPayment"]] = relationship(
        "CitationPayment",
        back_populates="citation",
        order_by="CitationPayment.recorded_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Citation {self.citation_no} status={self.status} due={self.amount_due}>"

    @property
    def status_enum(self) -> CitationStatus:
        return CitationStatus(self.status)

    @property
    def location_value(self) -> Location:
        return Location.from_dict(self.location)

    def to_snapshot(self) -> CitationSnapshot:
        return CitationSnapshot(
            citation_no=self.citation_no,
            status=CitationStatus(self.status),
            total_amount=self.total_amount,
            amount_paid=self.amount_paid,
            due_date=self.due_date,
            is_void=self.is_void,
            void_reason=self.void_reason,
            voided_by=self.voided_by,
            voided_at=self.voided_at,
        )

    def apply_snapshot(self, snapshot: CitationSnapshot, actor_id: UUID | None = None) -> bool:
        """Write lifecycle fields back. Returns True if anything changed."""
        before = self.to_snapshot()
        if before == snapshot:
            return False
        self.status = snapshot.status.value
        self.amount_paid = snapshot.amount_paid
        self.amount_due = compute_amount_due(self.total_amount, snapshot.amount_paid)
        self.is_void = snapshot.is_void
        self.void_reason = snapshot.void_reason
        self.voided_by = snapshot.voided_by
        self.voided_at = snapshot.voided_at
        if actor_id is not None:
            self.updated_by_id = actor_id
        return True


class CitationViolationLine(Base):
    """Frozen snapshot of one violation charged on a citation. Append-only."""

    __tablename__ = "citation_violation_lines"

    __table_args__ = (
        UniqueConstraint("citation_id", "line_no", name="uq_citation_lines_line_no"),
        UniqueConstraint(
            "citation_id", "violation_group_id", name="uq_citation_lines_group",
        ),
        CheckConstraint("fine_amount >= 0", name="ck_citation_lines_fine_non_negative"),
        CheckConstraint("offense_ordinal >= 1", name="ck_citation_lines_ordinal_positive"),
        Index("ix_citation_lines_group", "violation_group_id"),
    )

    citation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("citations.id"), nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    violation_rule_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("violation_rules.id"), nullable=False,
    )
    violation_group_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    rule_version: Mapped[int] = mapped_column(Integer, nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    fine_structure: Mapped[str] = mapped_column(String(20), nullable=False)
    tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fine_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    offense_ordinal: Mapped[int] = mapped_column(Integer, nullable=False)

    citation: Mapped["Citation"] = relationship("Citation", back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<CitationViolationLine {self.code} #{self.offense_ordinal} "
            f"fine={self.fine_amount}>"
        )


class CitationPayment(Base):
    """One payment recorded against a citation. Append-only."""

    __tablename__ = "citation_payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_citation_payments_positive"),
        Index("ix_citation_payments_citation", "citation_id"),
    )

    citation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("citations.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    recorded_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    citation: Mapped["Citation"] = relationship("Citation", back_populates="payments")


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(CitationViolationLine, "before_update")
def prevent_line_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CitationViolationLine",
        entity_id=str(target.id),
        reason="Citation violation lines are immutable -- cannot modify",
    )


@event.listens_for(CitationViolationLine, "before_delete")
def prevent_line_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CitationViolationLine",
        entity_id=str(target.id),
        reason="Citation violation lines are immutable -- cannot delete",
    )


@event.listens_for(CitationPayment, "before_update")
def prevent_payment_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CitationPayment",
        entity_id=str(target.id),
        reason="Recorded payments are immutable -- cannot modify",
    )


@event.listens_for(CitationPayment, "before_delete")
def prevent_payment_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CitationPayment",
        entity_id=str(target.id),
        reason="Recorded payments are immutable -- cannot delete",
    )


@event.listens_for(Citation, "before_delete")
def prevent_citation_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Citation",
        entity_id=str(target.id),
        reason="Citations are never deleted; void them instead",
    )
