"""Selectors for the citation kernel (read side)."""

from citation_kernel.selectors.citation_selector import (
    CitationSelector,
    CitationStatistics,
    CitationSummary,
)
from citation_kernel.selectors.contest_selector import (
    ContestSelector,
    ContestStatistics,
    ContestSummary,
)
from citation_kernel.selectors.offense_history import OffenseHistoryLookup

__all__ = [
    "CitationSelector",
    "CitationStatistics",
    "CitationSummary",
    "ContestSelector",
    "ContestStatistics",
    "ContestSummary",
    "OffenseHistoryLookup",
]
