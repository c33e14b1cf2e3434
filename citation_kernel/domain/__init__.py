"""
Pure domain layer.

Value objects, state machines and the fine calculator, with NO
dependencies on the ORM, the database, the system clock or I/O.
"""

from citation_kernel.domain.citation_lifecycle import (
    CITATION_TRANSITIONS,
    TERMINAL_CITATION_STATUSES,
    CitationSnapshot,
    CitationStatus,
)
from citation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from citation_kernel.domain.contest_workflow import (
    CONTEST_TRANSITIONS,
    TERMINAL_CONTEST_STATUSES,
    ActorKind,
    ContestHistoryEntry,
    ContestSnapshot,
    ContestStatus,
    ContestTransition,
)
from citation_kernel.domain.fine_calculator import FineQuote, calculate_fine, quote_schedule
from citation_kernel.domain.fine_schedule import (
    FineSchedule,
    FineStructure,
    FixedSchedule,
    OffenderRole,
    OffenseTier,
    OwnerClass,
    ProgressiveSchedule,
    TierAmounts,
    parse_offender_role,
    parse_owner_class,
    parse_schedule,
    schedule_to_payload,
)
from citation_kernel.domain.policy import IssuancePolicy, OffenseCountingPolicy
from citation_kernel.domain.registry import PartyRegistry
from citation_kernel.domain.values import DocumentNumber, Location, Witness
from citation_kernel.domain.violation import RuleChanges, RuleDefinition, ViolationRuleRecord

__all__ = [
    "ActorKind",
    "CITATION_TRANSITIONS",
    "CONTEST_TRANSITIONS",
    "CitationSnapshot",
    "CitationStatus",
    "Clock",
    "ContestHistoryEntry",
    "ContestSnapshot",
    "ContestStatus",
    "ContestTransition",
    "DeterministicClock",
    "DocumentNumber",
    "FineQuote",
    "FineSchedule",
    "FineStructure",
    "FixedSchedule",
    "IssuancePolicy",
    "Location",
    "OffenderRole",
    "OffenseCountingPolicy",
    "OffenseTier",
    "OwnerClass",
    "PartyRegistry",
    "ProgressiveSchedule",
    "RuleChanges",
    "RuleDefinition",
    "SystemClock",
    "TERMINAL_CITATION_STATUSES",
    "TERMINAL_CONTEST_STATUSES",
    "TierAmounts",
    "ViolationRuleRecord",
    "Witness",
    "calculate_fine",
    "parse_offender_role",
    "parse_owner_class",
    "parse_schedule",
    "quote_schedule",
    "schedule_to_payload",
]
