"""
Kernel-side policy objects.

These are the only knobs the kernel accepts.  They are plain frozen
dataclasses so that the kernel never depends on how configuration is
stored; citation_config translates its YAML into these types.
"""

from dataclasses import dataclass, field

from citation_kernel.domain.citation_lifecycle import CitationStatus

# Statuses that always count toward offense history.
BASE_COUNTED_STATUSES: frozenset[CitationStatus] = frozenset({
    CitationStatus.PENDING,
    CitationStatus.PARTIALLY_PAID,
    CitationStatus.PAID,
    CitationStatus.OVERDUE,
})


@dataclass(frozen=True)
class OffenseCountingPolicy:
    """
    Which prior citations count toward the offense ordinal.

    VOID citations never count.  CONTESTED and DISMISSED are policy flags.
    """

    count_contested: bool = False
    count_dismissed: bool = False

    def counted_statuses(self) -> frozenset[CitationStatus]:
        statuses = set(BASE_COUNTED_STATUSES)
        if self.count_contested:
            statuses.add(CitationStatus.CONTESTED)
        if self.count_dismissed:
            statuses.add(CitationStatus.DISMISSED)
        return frozenset(statuses)


@dataclass(frozen=True)
class IssuancePolicy:
    """Numbering and due-date rules for new citations and contests."""

    citation_prefix: str = "TCT"
    contest_prefix: str = "CON"
    number_width: int = 6
    default_due_days: int = 15
    offense_counting: OffenseCountingPolicy = field(default_factory=OffenseCountingPolicy)

    def __post_init__(self) -> None:
        if self.default_due_days < 0:
            raise ValueError("default_due_days must be >= 0")
        if not 1 <= self.number_width <= 12:
            raise ValueError("number_width must be between 1 and 12")
