"""ORM models for the citation kernel."""

from citation_kernel.models.citation import Citation, CitationPayment, CitationViolationLine
from citation_kernel.models.contest import Contest, ContestStatusEntry
from citation_kernel.models.offense_lock import OffenseHistoryLock
from citation_kernel.models.violation_rule import ViolationRule

__all__ = [
    "Citation",
    "CitationPayment",
    "CitationViolationLine",
    "Contest",
    "ContestStatusEntry",
    "OffenseHistoryLock",
    "ViolationRule",
]
