"""
CitationLifecycle -- the citation status state machine.

Responsibility:
    Declares citation statuses, the legal transition table, and pure
    transition functions over an immutable CitationSnapshot.  Services load
    a snapshot from the ORM, call one of these functions, and write the
    returned snapshot back.

Architecture position:
    Kernel > Domain -- pure, zero I/O, no clock access (``now`` is passed in).

State machine:
    PENDING -> {PARTIALLY_PAID, PAID, OVERDUE, CONTESTED}
    PARTIALLY_PAID / OVERDUE -> {PARTIALLY_PAID, PAID, CONTESTED}
    CONTESTED -> {DISMISSED, PENDING, PARTIALLY_PAID}
    any non-terminal -> VOID
    DISMISSED, VOID are terminal.

Invariants enforced:
    - amount_due == max(0, total_amount - amount_paid), always derived.
    - OVERDUE is entered only from PENDING.
    - A contest that closes without approval reverts the citation to
      PARTIALLY_PAID when anything was paid, else PENDING.  OVERDUE is not
      re-derived at that point.
    - VOID is irrevocable.

Failure modes:
    - CitationNotPayableError, CitationAlreadyVoidedError,
      CitationNotEditableError, InvalidCitationTransitionError (Conflict).
    - NotContestableError for PAID / VOID / DISMISSED citations.
    - ValidationError for non-positive payments or blank void reasons.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from citation_kernel.db.types import ZERO
from citation_kernel.exceptions import (
    CitationAlreadyVoidedError,
    CitationNotEditableError,
    CitationNotPayableError,
    InvalidCitationTransitionError,
    NotContestableError,
    ValidationError,
)


class CitationStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CONTESTED = "contested"
    DISMISSED = "dismissed"
    VOID = "void"


CITATION_TRANSITIONS: dict[CitationStatus, frozenset[CitationStatus]] = {
    CitationStatus.PENDING: frozenset({
        CitationStatus.PARTIALLY_PAID,
        CitationStatus.PAID,
        CitationStatus.OVERDUE,
        CitationStatus.CONTESTED,
        CitationStatus.VOID,
    }),
    CitationStatus.PARTIALLY_PAID: frozenset({
        CitationStatus.PARTIALLY_PAID,
        CitationStatus.PAID,
        CitationStatus.CONTESTED,
        CitationStatus.VOID,
    }),
    CitationStatus.OVERDUE: frozenset({
        CitationStatus.PARTIALLY_PAID,
        CitationStatus.PAID,
        CitationStatus.CONTESTED,
        CitationStatus.VOID,
    }),
    CitationStatus.CONTESTED: frozenset({
        CitationStatus.DISMISSED,
        CitationStatus.PENDING,
        CitationStatus.PARTIALLY_PAID,
        CitationStatus.VOID,
    }),
    CitationStatus.PAID: frozenset({CitationStatus.VOID}),
    CitationStatus.DISMISSED: frozenset(),
    CitationStatus.VOID: frozenset(),
}

TERMINAL_CITATION_STATUSES: frozenset[CitationStatus] = frozenset({
    CitationStatus.DISMISSED,
    CitationStatus.VOID,
})

PAYABLE_STATUSES: frozenset[CitationStatus] = frozenset({
    CitationStatus.PENDING,
    CitationStatus.PARTIALLY_PAID,
    CitationStatus.OVERDUE,
})

NOT_CONTESTABLE_STATUSES: frozenset[CitationStatus] = frozenset({
    CitationStatus.PAID,
    CitationStatus.VOID,
    CitationStatus.DISMISSED,
})

# Statuses whose debt is still unresolved; used by the past-due predicate.
UNRESOLVED_STATUSES: frozenset[CitationStatus] = frozenset({
    CitationStatus.PENDING,
    CitationStatus.PARTIALLY_PAID,
    CitationStatus.OVERDUE,
})


@dataclass(frozen=True)
class CitationSnapshot:
    """Immutable view of the lifecycle-relevant fields of a citation."""

    citation_no: str
    status: CitationStatus
    total_amount: Decimal
    amount_paid: Decimal
    due_date: datetime
    is_void: bool = False
    void_reason: str | None = None
    voided_by: UUID | None = None
    voided_at: datetime | None = None

    @property
    def amount_due(self) -> Decimal:
        return compute_amount_due(self.total_amount, self.amount_paid)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CITATION_STATUSES


def compute_amount_due(total_amount: Decimal, amount_paid: Decimal) -> Decimal:
    return max(ZERO, total_amount - amount_paid)


def assert_transition(from_status: CitationStatus, to_status: CitationStatus) -> None:
    if to_status not in CITATION_TRANSITIONS[from_status]:
        raise InvalidCitationTransitionError(from_status.value, to_status.value)


def _transition(snapshot: CitationSnapshot, to_status: CitationStatus, **changes) -> CitationSnapshot:
    assert_transition(snapshot.status, to_status)
    return replace(snapshot, status=to_status, **changes)


def apply_payment(snapshot: CitationSnapshot, amount: Decimal) -> CitationSnapshot:
    """Record a payment: PAID once fully covered, else PARTIALLY_PAID."""
    if amount <= ZERO:
        raise ValidationError({"amount": "payment amount must be greater than zero"})
    if snapshot.is_void or snapshot.status not in PAYABLE_STATUSES:
        raise CitationNotPayableError(snapshot.citation_no, snapshot.status.value)

    amount_paid = snapshot.amount_paid + amount
    if amount_paid >= snapshot.total_amount:
        target = CitationStatus.PAID
    else:
        target = CitationStatus.PARTIALLY_PAID
    return _transition(snapshot, target, amount_paid=amount_paid)


def apply_overdue_check(snapshot: CitationSnapshot, now: datetime) -> CitationSnapshot:
    """PENDING and past its due date -> OVERDUE; everything else unchanged."""
    if snapshot.status is CitationStatus.PENDING and now > snapshot.due_date:
        return _transition(snapshot, CitationStatus.OVERDUE)
    return snapshot


def is_past_due(snapshot: CitationSnapshot, now: datetime) -> bool:
    """
    Read-time predicate: money is still owed and the due date has passed.

    Unlike the OVERDUE status this also covers PARTIALLY_PAID citations.
    """
    return (
        not snapshot.is_void
        and snapshot.status in UNRESOLVED_STATUSES
        and now > snapshot.due_date
        and snapshot.amount_due > ZERO
    )


def ensure_contestable(snapshot: CitationSnapshot) -> None:
    if snapshot.is_void or snapshot.status in NOT_CONTESTABLE_STATUSES:
        raise NotContestableError(snapshot.citation_no, snapshot.status.value)


def apply_contest_opened(snapshot: CitationSnapshot) -> CitationSnapshot:
    ensure_contestable(snapshot)
    return _transition(snapshot, CitationStatus.CONTESTED)


def status_after_contest_closed(snapshot: CitationSnapshot) -> CitationStatus:
    """Payment-derived status a citation returns to when a contest fails."""
    if snapshot.amount_paid > ZERO:
        return CitationStatus.PARTIALLY_PAID
    return CitationStatus.PENDING


def apply_contest_outcome(snapshot: CitationSnapshot, approved: bool) -> CitationSnapshot:
    """
    Drive the citation after its contest closes.

    A citation voided while its contest was open stays VOID.
    """
    if snapshot.is_terminal:
        return snapshot
    if approved:
        return _transition(snapshot, CitationStatus.DISMISSED)
    return _transition(snapshot, status_after_contest_closed(snapshot))


def apply_void(
    snapshot: CitationSnapshot,
    reason: str,
    actor_id: UUID,
    now: datetime,
) -> CitationSnapshot:
    if snapshot.is_void:
        raise CitationAlreadyVoidedError(snapshot.citation_no)
    if not (reason or "").strip():
        raise ValidationError({"reason": "void reason is required"})
    return _transition(
        snapshot,
        CitationStatus.VOID,
        is_void=True,
        void_reason=reason.strip(),
        voided_by=actor_id,
        voided_at=now,
    )


def ensure_editable(snapshot: CitationSnapshot) -> None:
    if snapshot.is_void:
        raise CitationNotEditableError(snapshot.citation_no, "citation is void")
