"""
Module: citation_kernel.models.violation_rule
Responsibility: ORM persistence for versioned violation rules (the catalog).

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - UNIQUE(group_id, version): no version reuse inside a chain.
    - Partial unique index on group_id WHERE effective_until IS NULL: at
      most one open-ended version per group.  Retiring a version always sets
      effective_until, so this is the "one active head" guarantee.
    - Content immutability: once published, only the retirement fields
      (is_active, effective_until, superseded_by_id) and audit metadata may
      change, and only forward (active -> inactive, unset -> set).  A set
      effective_until may only move earlier, which cuts short a version
      whose pending successor is retired before its cutover.
    - Rules are never deleted.

Failure modes:
    - IntegrityError on a duplicate version or a second open head; the
      catalog service converts this into RuleVersionConflictError.
    - ImmutabilityViolationError on content UPDATE or any DELETE.

Audit relevance:
    The version chain (group_id, version, superseded_by_id) is the audit
    record of how a violation's fines evolved.  Issued citations snapshot
    the version they were priced from.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
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
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from citation_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from citation_kernel.domain.fine_schedule import (
    FineSchedule,
    FineStructure,
    parse_schedule,
    schedule_to_payload,
)
from citation_kernel.domain.violation import ViolationRuleRecord
from citation_kernel.exceptions import ImmutabilityViolationError
from citation_kernel.logging_config import get_logger

logger = get_logger("models.violation_rule")

_OPEN_HEAD = text("effective_until IS NULL")

# Fields that may change after publication.
RETIREMENT_FIELDS: frozenset[str] = frozenset({
    "is_active",
    "effective_until",
    "superseded_by_id",
    "updated_at",
    "updated_by_id",
})


class ViolationRule(TrackedBase):
    """One published version of a violation rule.

    Contract:
        Content fields are write-once.  A change in fines or wording is a
        new row in the same group with version + 1.

    Guarantees:
        - (group_id, version) is unique.
        - At most one row per group has effective_until unset.
    """

    __tablename__ = "violation_rules"

    __table_args__ = (
        UniqueConstraint("group_id", "version", name="uq_violation_rules_group_version"),
        CheckConstraint("version >= 1", name="ck_violation_rules_version_positive"),
        CheckConstraint(
            "fine_structure IN ('fixed', 'progressive')",
            name="ck_violation_rules_fine_structure",
        ),
        Index(
            "uq_violation_rules_open_head",
            "group_id",
            unique=True,
            postgresql_where=_OPEN_HEAD,
            sqlite_where=_OPEN_HEAD,
        ),
        Index("ix_violation_rules_code_effective", "code", "effective_from"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    group_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    legal_reference: Mapped[str | None] = mapped_column(String(300), nullable=True)
    fine_structure: Mapped[str] = mapped_column(String(20), nullable=False)
    fine_schedule: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    accessory_penalty: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    effective_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    superseded_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("violation_rules.id"),
        nullable=True,
        unique=True,
    )

    def __repr__(self) -> str:
        return f"<ViolationRule {self.code} v{self.version} group={self.group_id}>"

    @property
    def schedule(self) -> FineSchedule:
        return parse_schedule(FineStructure(self.fine_structure), self.fine_schedule)

    @schedule.setter
    def schedule(self, value: FineSchedule) -> None:
        self.fine_structure = value.structure.value
        self.fine_schedule = schedule_to_payload(value)

    def to_dto(self) -> ViolationRuleRecord:
        """Convert ORM model to frozen domain DTO."""
        return ViolationRuleRecord(
            id=self.id,
            code=self.code,
            group_id=self.group_id,
            version=self.version,
            title=self.title,
            schedule=self.schedule,
            is_active=self.is_active,
            effective_from=self.effective_from,
            description=self.description,
            legal_reference=self.legal_reference,
            accessory_penalty=self.accessory_penalty,
            remarks=self.remarks,
            effective_until=self.effective_until,
            superseded_by_id=self.superseded_by_id,
        )


def _block(target: ViolationRule, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ViolationRule",
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ViolationRule",
        entity_id=str(target.id),
        reason=reason,
    )


@event.listens_for(ViolationRule, "before_update")
def prevent_rule_content_update(mapper, connection, target):
    """Only retirement fields may change, and only in the retiring direction."""
    for attr in mapper.column_attrs:
        if attr.key in RETIREMENT_FIELDS:
            continue
        if get_history(target, attr.key).has_changes():
            _block(target, "UPDATE", f"Cannot modify field '{attr.key}' on a published rule")

    active = get_history(target, "is_active")
    if active.deleted and active.deleted[0] is False and target.is_active:
        _block(target, "UPDATE", "A retired rule cannot be reactivated")

    until = get_history(target, "effective_until")
    if until.deleted and until.deleted[0] is not None:
        previous, current = until.deleted[0], target.effective_until
        if current is None or current >= previous:
            _block(target, "UPDATE", "Field 'effective_until' may only move earlier once set")

    superseded = get_history(target, "superseded_by_id")
    if superseded.deleted and superseded.deleted[0] is not None:
        _block(target, "UPDATE", "Field 'superseded_by_id' is write-once")


@event.listens_for(ViolationRule, "before_delete")
def prevent_rule_delete(mapper, connection, target):
    _block(target, "DELETE", "Violation rules are never deleted")
