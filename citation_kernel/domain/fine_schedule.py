"""
Fine schedules -- tagged variant of fixed and progressive penalty tables.

Responsibility:
    Defines the two schedule shapes a violation rule can carry and the
    canonical (de)serialization used for persistence and YAML seeds.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - A schedule is exactly one of FixedSchedule or ProgressiveSchedule;
      the shape is resolved once at parse time, never by probing fields.
    - Every progressive axis defines the ``first`` tier.
    - Amounts are non-negative Decimals.  Zero is a defined amount.

Failure modes:
    - ScheduleValidationError with per-field messages for malformed payloads.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Union

from citation_kernel.exceptions import ScheduleValidationError, ValidationError


class FineStructure(str, Enum):
    FIXED = "fixed"
    PROGRESSIVE = "progressive"


class OwnerClass(str, Enum):
    """Vehicle ownership classification."""

    PRIVATE = "private"
    FOR_HIRE = "for_hire"


class OffenderRole(str, Enum):
    """Who is being charged: the driver, or the registered owner / operator."""

    DRIVER = "driver"
    OWNER_OPERATOR = "owner_operator"


class OffenseTier(str, Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    SUBSEQUENT = "subsequent"


TIER_ORDER: tuple[OffenseTier, ...] = (
    OffenseTier.FIRST,
    OffenseTier.SECOND,
    OffenseTier.THIRD,
    OffenseTier.SUBSEQUENT,
)

# Accepted spellings for axis keys in external payloads
_OWNER_CLASS_ALIASES: dict[str, OwnerClass] = {
    "private": OwnerClass.PRIVATE,
    "for_hire": OwnerClass.FOR_HIRE,
    "forHire": OwnerClass.FOR_HIRE,
}

_OFFENDER_ROLE_ALIASES: dict[str, OffenderRole] = {
    "driver": OffenderRole.DRIVER,
    "owner_operator": OffenderRole.OWNER_OPERATOR,
    "mvOwner": OffenderRole.OWNER_OPERATOR,
    "mv_owner": OffenderRole.OWNER_OPERATOR,
    "operator": OffenderRole.OWNER_OPERATOR,
}

_TIER_ALIASES: dict[str, OffenseTier] = {
    "first": OffenseTier.FIRST,
    "firstOffense": OffenseTier.FIRST,
    "second": OffenseTier.SECOND,
    "secondOffense": OffenseTier.SECOND,
    "third": OffenseTier.THIRD,
    "thirdOffense": OffenseTier.THIRD,
    "subsequent": OffenseTier.SUBSEQUENT,
    "subsequentOffense": OffenseTier.SUBSEQUENT,
}

Axis = tuple[OwnerClass, OffenderRole]


def tier_for_ordinal(offense_ordinal: int) -> OffenseTier:
    """Map a 1-based offense ordinal to its nominal tier."""
    if offense_ordinal < 1:
        raise ValueError(f"Offense ordinal must be >= 1, got {offense_ordinal}")
    if offense_ordinal >= len(TIER_ORDER):
        return OffenseTier.SUBSEQUENT
    return TIER_ORDER[offense_ordinal - 1]


def parse_owner_class(value: OwnerClass | str) -> OwnerClass:
    """Accept an OwnerClass or any of its external spellings."""
    if isinstance(value, OwnerClass):
        return value
    owner_class = _OWNER_CLASS_ALIASES.get(value)
    if owner_class is None:
        raise ValidationError({"owner_class": f"unknown owner class {value!r}"})
    return owner_class


def parse_offender_role(value: OffenderRole | str) -> OffenderRole:
    """Accept an OffenderRole or any of its external spellings."""
    if isinstance(value, OffenderRole):
        return value
    role = _OFFENDER_ROLE_ALIASES.get(value)
    if role is None:
        raise ValidationError({"offender_role": f"unknown offender role {value!r}"})
    return role


@dataclass(frozen=True)
class TierAmounts:
    """Escalating amounts for one (owner class, offender role) axis."""

    first: Decimal
    second: Decimal | None = None
    third: Decimal | None = None
    subsequent: Decimal | None = None

    def get(self, tier: OffenseTier) -> Decimal | None:
        return getattr(self, tier.value)

    def resolve(self, tier: OffenseTier) -> tuple[OffenseTier, Decimal]:
        """
        Return the amount for ``tier``, falling back to the highest defined
        lower tier.  ``first`` is always defined, so this never fails.
        """
        index = TIER_ORDER.index(tier)
        for candidate in reversed(TIER_ORDER[: index + 1]):
            amount = self.get(candidate)
            if amount is not None:
                return candidate, amount
        raise AssertionError("TierAmounts without a first tier")  # pragma: no cover


@dataclass(frozen=True)
class FixedSchedule:
    """Flat penalty, independent of offense history."""

    structure: ClassVar[FineStructure] = FineStructure.FIXED

    amounts: Mapping[Axis, Decimal] = field(default_factory=dict)

    def amount_for(self, owner_class: OwnerClass, offender_role: OffenderRole) -> Decimal | None:
        return self.amounts.get((owner_class, offender_role))


@dataclass(frozen=True)
class ProgressiveSchedule:
    """Penalty that escalates with the offender's prior offense count."""

    structure: ClassVar[FineStructure] = FineStructure.PROGRESSIVE

    tiers: Mapping[Axis, TierAmounts] = field(default_factory=dict)

    def tiers_for(self, owner_class: OwnerClass, offender_role: OffenderRole) -> TierAmounts | None:
        return self.tiers.get((owner_class, offender_role))


FineSchedule = Union[FixedSchedule, ProgressiveSchedule]


# ---------------------------------------------------------------------------
# Parsing / serialization
# ---------------------------------------------------------------------------


def _parse_amount(raw: Any, path: str, errors: dict[str, str]) -> Decimal | None:
    if raw is None:
        return None
    if isinstance(raw, (bool, float)):
        errors[path] = "amount must be an integer or a decimal string"
        return None
    try:
        amount = Decimal(str(raw))
    except InvalidOperation:
        errors[path] = f"not a number: {raw!r}"
        return None
    if not amount.is_finite() or amount < 0:
        errors[path] = "amount must be a non-negative number"
        return None
    return amount


def _iter_axes(payload: Mapping[str, Any], errors: dict[str, str]):
    for owner_key, roles in payload.items():
        owner_class = _OWNER_CLASS_ALIASES.get(owner_key)
        if owner_class is None:
            errors[owner_key] = "unknown owner class"
            continue
        if not isinstance(roles, Mapping):
            errors[owner_key] = "expected a mapping of offender roles"
            continue
        for role_key, value in roles.items():
            role = _OFFENDER_ROLE_ALIASES.get(role_key)
            if role is None:
                errors[f"{owner_key}.{role_key}"] = "unknown offender role"
                continue
            yield (owner_class, role), f"{owner_class.value}.{role.value}", value


def parse_schedule(structure: FineStructure | str, payload: Mapping[str, Any]) -> FineSchedule:
    """
    Build a schedule from its serialized form.

    Fixed payloads map ``owner_class -> offender_role -> amount``; progressive
    payloads map ``owner_class -> offender_role -> {tier: amount}``.

    Raises:
        ScheduleValidationError: with one entry per offending field.
    """
    try:
        structure = FineStructure(structure)
    except ValueError:
        raise ScheduleValidationError({"fine_structure": f"unknown structure {structure!r}"})

    if not isinstance(payload, Mapping) or not payload:
        raise ScheduleValidationError({"fine_schedule": "at least one owner class is required"})

    errors: dict[str, str] = {}

    if structure is FineStructure.FIXED:
        amounts: dict[Axis, Decimal] = {}
        for axis, path, value in _iter_axes(payload, errors):
            amount = _parse_amount(value, path, errors)
            if amount is not None:
                amounts[axis] = amount
            elif path not in errors:
                errors[path] = "amount is required"
        if errors:
            raise ScheduleValidationError(errors)
        return FixedSchedule(amounts=amounts)

    tiers: dict[Axis, TierAmounts] = {}
    for axis, path, value in _iter_axes(payload, errors):
        if not isinstance(value, Mapping):
            errors[path] = "expected a mapping of offense tiers"
            continue
        parsed: dict[str, Decimal | None] = {}
        for tier_key, raw in value.items():
            tier = _TIER_ALIASES.get(tier_key)
            if tier is None:
                errors[f"{path}.{tier_key}"] = "unknown offense tier"
                continue
            parsed[tier.value] = _parse_amount(raw, f"{path}.{tier.value}", errors)
        if parsed.get("first") is None:
            errors.setdefault(f"{path}.first", "first offense amount is required")
            continue
        tiers[axis] = TierAmounts(**parsed)
    if errors:
        raise ScheduleValidationError(errors)
    return ProgressiveSchedule(tiers=tiers)


def schedule_to_payload(schedule: FineSchedule) -> dict[str, Any]:
    """Serialize a schedule to JSON-safe primitives (amounts as strings)."""
    out: dict[str, Any] = {}
    if isinstance(schedule, FixedSchedule):
        for (owner_class, role), amount in schedule.amounts.items():
            out.setdefault(owner_class.value, {})[role.value] = str(amount)
        return out
    for (owner_class, role), tiers in schedule.tiers.items():
        out.setdefault(owner_class.value, {})[role.value] = {
            tier.value: str(tiers.get(tier))
            for tier in TIER_ORDER
            if tiers.get(tier) is not None
        }
    return out
