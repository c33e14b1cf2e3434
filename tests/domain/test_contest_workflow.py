"""
Contest state machine.

Each transition returns the contest, the citation and one history entry
together.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from citation_kernel.domain import contest_workflow
from citation_kernel.domain.citation_lifecycle import CitationSnapshot, CitationStatus
from citation_kernel.domain.contest_workflow import (
    ActorKind,
    ContestSnapshot,
    ContestStatus,
)
from citation_kernel.exceptions import (
    ContestAlreadyResolvedError,
    InvalidContestTransitionError,
    NotContestableError,
    ValidationError,
    WithdrawalNotPermittedError,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
DRIVER = uuid4()
REVIEWER = uuid4()


def _citation(status=CitationStatus.PENDING, paid="0") -> CitationSnapshot:
    return CitationSnapshot(
        citation_no="TCT-2025-000001",
        status=status,
        total_amount=Decimal("1500"),
        amount_paid=Decimal(paid),
        due_date=NOW + timedelta(days=15),
    )


def _submitted(paid="0"):
    return contest_workflow.submit("CON-2025-000001", _citation(paid=paid), DRIVER, NOW)


class TestSubmit:
    def test_opens_contest_and_contests_citation(self):
        transition = _submitted()

        assert transition.contest.status is ContestStatus.SUBMITTED
        assert transition.contest.contested_by == DRIVER
        assert transition.citation.status is CitationStatus.CONTESTED
        assert transition.history_entry.status is ContestStatus.SUBMITTED
        assert transition.history_entry.actor_kind is ActorKind.DRIVER

    def test_paid_citation_not_contestable(self):
        with pytest.raises(NotContestableError):
            contest_workflow.submit("CON-2025-000001", _citation(CitationStatus.PAID, "1500"), DRIVER, NOW)


class TestReview:
    def test_move_to_review_leaves_citation_untouched(self):
        submitted = _submitted()

        review = contest_workflow.move_to_review(
            submitted.contest, submitted.citation, REVIEWER, NOW, note="checking CCTV",
        )

        assert review.contest.status is ContestStatus.UNDER_REVIEW
        assert review.contest.reviewed_by == REVIEWER
        assert review.citation is submitted.citation
        assert review.history_entry.actor_kind is ActorKind.STAFF
        assert review.history_entry.note == "checking CCTV"

    def test_review_twice_is_invalid(self):
        submitted = _submitted()
        review = contest_workflow.move_to_review(submitted.contest, submitted.citation, REVIEWER, NOW)

        with pytest.raises(InvalidContestTransitionError):
            contest_workflow.move_to_review(review.contest, review.citation, REVIEWER, NOW)


class TestResolve:
    def test_approve_dismisses_citation(self):
        submitted = _submitted()

        approved = contest_workflow.resolve(
            submitted.contest, submitted.citation, True, "valid exemption", REVIEWER, NOW,
        )

        assert approved.contest.status is ContestStatus.APPROVED
        assert approved.contest.resolution == "valid exemption"
        assert approved.contest.reviewed_at == NOW
        assert approved.citation.status is CitationStatus.DISMISSED

    def test_reject_reverts_to_pending(self):
        submitted = _submitted()

        rejected = contest_workflow.resolve(
            submitted.contest, submitted.citation, False, "no merit", REVIEWER, NOW,
        )

        assert rejected.contest.status is ContestStatus.REJECTED
        assert rejected.citation.status is CitationStatus.PENDING

    def test_reject_after_partial_payment_reverts_to_partially_paid(self):
        submitted = contest_workflow.submit(
            "CON-2025-000001", _citation(CitationStatus.PARTIALLY_PAID, "750"), DRIVER, NOW,
        )

        rejected = contest_workflow.resolve(
            submitted.contest, submitted.citation, False, "no merit", REVIEWER, NOW,
        )

        assert rejected.citation.status is CitationStatus.PARTIALLY_PAID

    def test_resolution_required(self):
        submitted = _submitted()

        with pytest.raises(ValidationError) as exc_info:
            contest_workflow.resolve(submitted.contest, submitted.citation, True, " ", REVIEWER, NOW)

        assert "resolution" in exc_info.value.field_errors

    def test_resolving_terminal_contest_is_already_resolved(self):
        submitted = _submitted()
        rejected = contest_workflow.resolve(
            submitted.contest, submitted.citation, False, "no merit", REVIEWER, NOW,
        )

        with pytest.raises(ContestAlreadyResolvedError) as exc_info:
            contest_workflow.resolve(rejected.contest, rejected.citation, True, "changed mind", REVIEWER, NOW)

        assert exc_info.value.status == "rejected"


class TestWithdraw:
    def test_submitter_withdraws(self):
        submitted = _submitted()

        withdrawn = contest_workflow.withdraw(submitted.contest, submitted.citation, DRIVER, NOW)

        assert withdrawn.contest.status is ContestStatus.WITHDRAWN
        assert withdrawn.citation.status is CitationStatus.PENDING
        assert withdrawn.history_entry.actor_kind is ActorKind.DRIVER

    def test_other_actor_is_forbidden(self):
        submitted = _submitted()

        with pytest.raises(WithdrawalNotPermittedError):
            contest_workflow.withdraw(submitted.contest, submitted.citation, REVIEWER, NOW)

    def test_withdraw_after_resolution_is_already_resolved(self):
        contest = ContestSnapshot("CON-2025-000001", ContestStatus.APPROVED, DRIVER)

        with pytest.raises(ContestAlreadyResolvedError):
            contest_workflow.withdraw(contest, _citation(CitationStatus.DISMISSED), DRIVER, NOW)
