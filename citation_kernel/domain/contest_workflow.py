"""
ContestWorkflow -- the contest (appeal) state machine.

Responsibility:
    Declares contest statuses and the transition table, and provides pure
    transition functions.  Every function takes BOTH the contest and the
    citation it appeals and returns both updated aggregates together with
    the status-history entry to append, so the coupling between the two
    state machines is explicit in every signature.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Delegates citation-side effects to
    citation_lifecycle.

State machine:
    SUBMITTED -> {UNDER_REVIEW, APPROVED, REJECTED, WITHDRAWN}
    UNDER_REVIEW -> {APPROVED, REJECTED, WITHDRAWN}
    APPROVED, REJECTED, WITHDRAWN are terminal.

Invariants enforced:
    - Each transition yields exactly one ContestHistoryEntry.
    - Approve and reject require a non-blank resolution.
    - Only the original submitter may withdraw.
    - Approve drives the citation to DISMISSED; reject and withdraw revert
      it to its payment-derived status.

Failure modes:
    - ContestAlreadyResolvedError when the contest is already terminal.
    - InvalidContestTransitionError for other illegal moves.
    - WithdrawalNotPermittedError for a withdrawal by someone else.
    - NotContestableError (via citation_lifecycle) on submission.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from uuid import UUID

from citation_kernel.domain.citation_lifecycle import (
    CitationSnapshot,
    apply_contest_opened,
    apply_contest_outcome,
)
from citation_kernel.exceptions import (
    ContestAlreadyResolvedError,
    InvalidContestTransitionError,
    ValidationError,
    WithdrawalNotPermittedError,
)


class ContestStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ActorKind(str, Enum):
    """Who performed a contest transition."""

    DRIVER = "driver"
    STAFF = "staff"


CONTEST_TRANSITIONS: dict[ContestStatus, frozenset[ContestStatus]] = {
    ContestStatus.SUBMITTED: frozenset({
        ContestStatus.UNDER_REVIEW,
        ContestStatus.APPROVED,
        ContestStatus.REJECTED,
        ContestStatus.WITHDRAWN,
    }),
    ContestStatus.UNDER_REVIEW: frozenset({
        ContestStatus.APPROVED,
        ContestStatus.REJECTED,
        ContestStatus.WITHDRAWN,
    }),
    ContestStatus.APPROVED: frozenset(),
    ContestStatus.REJECTED: frozenset(),
    ContestStatus.WITHDRAWN: frozenset(),
}

TERMINAL_CONTEST_STATUSES: frozenset[ContestStatus] = frozenset({
    ContestStatus.APPROVED,
    ContestStatus.REJECTED,
    ContestStatus.WITHDRAWN,
})

OPEN_CONTEST_STATUSES: frozenset[ContestStatus] = frozenset({
    ContestStatus.SUBMITTED,
    ContestStatus.UNDER_REVIEW,
})

NOTE_SUBMITTED = "Contest submitted"
NOTE_UNDER_REVIEW = "Moved to review"
NOTE_WITHDRAWN = "Withdrawn by driver"


@dataclass(frozen=True)
class ContestSnapshot:
    """Immutable view of the workflow-relevant fields of a contest."""

    contest_no: str
    status: ContestStatus
    contested_by: UUID
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    resolution: str | None = None
    review_notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_CONTEST_STATUSES


@dataclass(frozen=True)
class ContestHistoryEntry:
    status: ContestStatus
    actor_id: UUID
    actor_kind: ActorKind
    changed_at: datetime
    note: str | None = None


@dataclass(frozen=True)
class ContestTransition:
    """Result of one workflow step: both aggregates plus the audit entry."""

    contest: ContestSnapshot
    citation: CitationSnapshot
    history_entry: ContestHistoryEntry


def _check(contest: ContestSnapshot, target: ContestStatus) -> None:
    if contest.status in TERMINAL_CONTEST_STATUSES:
        raise ContestAlreadyResolvedError(contest.contest_no, contest.status.value)
    if target not in CONTEST_TRANSITIONS[contest.status]:
        raise InvalidContestTransitionError(contest.status.value, target.value)


def submit(
    contest_no: str,
    citation: CitationSnapshot,
    contested_by: UUID,
    now: datetime,
) -> ContestTransition:
    """Open a contest in SUBMITTED and move the citation to CONTESTED."""
    contested = apply_contest_opened(citation)
    contest = ContestSnapshot(
        contest_no=contest_no,
        status=ContestStatus.SUBMITTED,
        contested_by=contested_by,
    )
    return ContestTransition(
        contest=contest,
        citation=contested,
        history_entry=ContestHistoryEntry(
            status=ContestStatus.SUBMITTED,
            actor_id=contested_by,
            actor_kind=ActorKind.DRIVER,
            changed_at=now,
            note=NOTE_SUBMITTED,
        ),
    )


def move_to_review(
    contest: ContestSnapshot,
    citation: CitationSnapshot,
    reviewer_id: UUID,
    now: datetime,
    note: str | None = None,
) -> ContestTransition:
    """SUBMITTED -> UNDER_REVIEW. The citation is untouched."""
    _check(contest, ContestStatus.UNDER_REVIEW)
    return ContestTransition(
        contest=replace(
            contest,
            status=ContestStatus.UNDER_REVIEW,
            reviewed_by=reviewer_id,
            review_notes=note or contest.review_notes,
        ),
        citation=citation,
        history_entry=ContestHistoryEntry(
            status=ContestStatus.UNDER_REVIEW,
            actor_id=reviewer_id,
            actor_kind=ActorKind.STAFF,
            changed_at=now,
            note=note or NOTE_UNDER_REVIEW,
        ),
    )


def resolve(
    contest: ContestSnapshot,
    citation: CitationSnapshot,
    approve: bool,
    resolution: str,
    actor_id: UUID,
    now: datetime,
) -> ContestTransition:
    """Approve (citation DISMISSED) or reject (citation reverts)."""
    target = ContestStatus.APPROVED if approve else ContestStatus.REJECTED
    _check(contest, target)
    if not (resolution or "").strip():
        raise ValidationError({"resolution": "resolution is required"})
    resolution = resolution.strip()
    return ContestTransition(
        contest=replace(
            contest,
            status=target,
            reviewed_by=actor_id,
            reviewed_at=now,
            resolution=resolution,
        ),
        citation=apply_contest_outcome(citation, approved=approve),
        history_entry=ContestHistoryEntry(
            status=target,
            actor_id=actor_id,
            actor_kind=ActorKind.STAFF,
            changed_at=now,
            note=resolution,
        ),
    )


def withdraw(
    contest: ContestSnapshot,
    citation: CitationSnapshot,
    actor_id: UUID,
    now: datetime,
) -> ContestTransition:
    """Withdraw by the original submitter; the citation reverts."""
    _check(contest, ContestStatus.WITHDRAWN)
    if actor_id != contest.contested_by:
        raise WithdrawalNotPermittedError(contest.contest_no, str(actor_id))
    return ContestTransition(
        contest=replace(contest, status=ContestStatus.WITHDRAWN),
        citation=apply_contest_outcome(citation, approved=False),
        history_entry=ContestHistoryEntry(
            status=ContestStatus.WITHDRAWN,
            actor_id=actor_id,
            actor_kind=ActorKind.DRIVER,
            changed_at=now,
            note=NOTE_WITHDRAWN,
        ),
    )
