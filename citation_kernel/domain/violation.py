"""
Violation rule value objects.

ViolationRuleRecord is the immutable, ORM-free view of one published rule
version.  RuleDefinition and RuleChanges are the inputs for defining a new
rule group and for deriving the next version of an existing one.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from uuid import UUID

from citation_kernel.domain.fine_schedule import FineSchedule, FineStructure


@dataclass(frozen=True)
class ViolationRuleRecord:
    """One published version of a violation rule."""

    id: UUID
    code: str
    group_id: UUID
    version: int
    title: str
    schedule: FineSchedule
    is_active: bool
    effective_from: datetime
    description: str | None = None
    legal_reference: str | None = None
    accessory_penalty: str | None = None
    remarks: str | None = None
    effective_until: datetime | None = None
    superseded_by_id: UUID | None = None

    @property
    def fine_structure(self) -> FineStructure:
        return self.schedule.structure

    def is_effective_at(self, when: datetime) -> bool:
        if self.effective_from > when:
            return False
        return self.effective_until is None or when < self.effective_until

    @property
    def is_chain_head(self) -> bool:
        """True while no successor exists and the rule has not been retired."""
        return self.is_active and self.superseded_by_id is None


@dataclass(frozen=True)
class RuleDefinition:
    """Content of version 1 of a new violation rule group."""

    code: str
    title: str
    schedule: FineSchedule
    description: str | None = None
    legal_reference: str | None = None
    accessory_penalty: str | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class RuleChanges:
    """
    Field overrides for a new rule version.

    ``None`` means "copy from the predecessor".
    """

    code: str | None = None
    title: str | None = None
    schedule: FineSchedule | None = None
    description: str | None = None
    legal_reference: str | None = None
    accessory_penalty: str | None = None
    remarks: str | None = None

    def apply_to(self, base: ViolationRuleRecord) -> RuleDefinition:
        values = {
            f.name: getattr(self, f.name) if getattr(self, f.name) is not None else getattr(base, f.name)
            for f in fields(self)
        }
        return RuleDefinition(**values)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))
