"""Services for the citation kernel (write side)."""

from citation_kernel.services.citation_service import CitationService
from citation_kernel.services.contest_service import ContestService
from citation_kernel.services.offense_lock_service import OffenseLockService
from citation_kernel.services.sequence_service import SequenceCounter, SequenceService
from citation_kernel.services.violation_catalog import ViolationCatalog

__all__ = [
    "CitationService",
    "ContestService",
    "OffenseLockService",
    "SequenceCounter",
    "SequenceService",
    "ViolationCatalog",
]
