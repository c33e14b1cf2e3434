"""
FineCalculator -- pure fine determination for one violation instance.

Responsibility:
    Given a resolved violation rule, the vehicle's owner class, the offender
    role and the offense ordinal, return the amount owed.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The ordinal is supplied by the
    caller (OffenseHistoryLookup + 1); this module never queries history.

Invariants enforced:
    - FIXED schedules ignore the ordinal.
    - PROGRESSIVE schedules select first/second/third/subsequent by ordinal
      and fall back to the highest defined lower tier.  Never zero by
      default, never an error when ``first`` exists.

Failure modes:
    - InvalidScheduleError when the schedule defines nothing for the
      requested (owner class, offender role) axis.
    - ValueError for an ordinal < 1 (programming error).
"""

from dataclasses import dataclass
from decimal import Decimal

from citation_kernel.db.types import round_money
from citation_kernel.domain.fine_schedule import (
    FineSchedule,
    FineStructure,
    FixedSchedule,
    OffenderRole,
    OffenseTier,
    OwnerClass,
    tier_for_ordinal,
)
from citation_kernel.domain.violation import ViolationRuleRecord
from citation_kernel.exceptions import InvalidScheduleError


@dataclass(frozen=True)
class FineQuote:
    """Amount owed for one violation line, with how it was selected."""

    amount: Decimal
    offense_ordinal: int
    structure: FineStructure
    tier: OffenseTier | None = None
    fell_back: bool = False


def quote_schedule(
    schedule: FineSchedule,
    owner_class: OwnerClass,
    offender_role: OffenderRole,
    offense_ordinal: int,
    rule_code: str = "<unknown>",
) -> FineQuote:
    """Quote a fine directly from a schedule."""
    if offense_ordinal < 1:
        raise ValueError(f"Offense ordinal must be >= 1, got {offense_ordinal}")

    if isinstance(schedule, FixedSchedule):
        amount = schedule.amount_for(owner_class, offender_role)
        if amount is None:
            raise InvalidScheduleError(rule_code, owner_class.value, offender_role.value)
        return FineQuote(
            amount=round_money(amount),
            offense_ordinal=offense_ordinal,
            structure=FineStructure.FIXED,
        )

    tiers = schedule.tiers_for(owner_class, offender_role)
    if tiers is None:
        raise InvalidScheduleError(rule_code, owner_class.value, offender_role.value)

    wanted = tier_for_ordinal(offense_ordinal)
    tier, amount = tiers.resolve(wanted)
    return FineQuote(
        amount=round_money(amount),
        offense_ordinal=offense_ordinal,
        structure=FineStructure.PROGRESSIVE,
        tier=tier,
        fell_back=tier is not wanted,
    )


def calculate_fine(
    rule: ViolationRuleRecord,
    owner_class: OwnerClass,
    offender_role: OffenderRole,
    offense_ordinal: int,
) -> FineQuote:
    """Quote the fine for ``rule`` at the given axes and ordinal."""
    return quote_schedule(
        rule.schedule,
        owner_class,
        offender_role,
        offense_ordinal,
        rule_code=rule.code,
    )
