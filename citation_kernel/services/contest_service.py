"""
ContestService -- persistence shell around the contest workflow.

Responsibility:
    Opens contests against citations and moves them through review,
    resolution and withdrawal.  Each command locks the citation and then
    the contest, runs the pure transition from contest_workflow, and writes
    the contest, the citation and one ContestStatusEntry together.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses CitationService for citation locking and lazy overdue evaluation.

Invariants enforced:
    - Lock order is citation, then contest, for every command.
    - At most one open contest per citation: checked under the citation
      lock and backed by a partial unique index; an IntegrityError on that
      index becomes DuplicateOpenContestError.
    - Each transition appends exactly one history row.

Failure modes:
    - ValidationError for a blank reason or malformed witnesses.
    - NotContestableError, DuplicateOpenContestError on submission.
    - ContestNotFoundError, ContestAlreadyResolvedError,
      InvalidContestTransitionError, WithdrawalNotPermittedError.

Audit relevance:
    The contest_status_history table is the reviewable record of who moved
    an appeal and when.
"""

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from citation_kernel.domain import contest_workflow
from citation_kernel.domain.citation_lifecycle import apply_overdue_check, ensure_contestable
from citation_kernel.domain.clock import Clock, SystemClock
from citation_kernel.domain.contest_workflow import ContestStatus, ContestTransition
from citation_kernel.domain.policy import IssuancePolicy
from citation_kernel.domain.values import Witness
from citation_kernel.exceptions import (
    CitationKernelError,
    ContestNotFoundError,
    DuplicateOpenContestError,
    ValidationError,
)
from citation_kernel.logging_config import LogContext, get_logger
from citation_kernel.models.citation import Citation
from citation_kernel.models.contest import OPEN_CONTEST_INDEX, Contest
from citation_kernel.selectors.contest_selector import ContestSelector
from citation_kernel.services.citation_service import CitationService
from citation_kernel.services.sequence_service import SequenceService

logger = get_logger("services.contest")


def _coerce_witnesses(witnesses: Iterable[Witness | Mapping[str, Any]]) -> list[Witness]:
    result = []
    for witness in witnesses:
        if isinstance(witness, Witness):
            result.append(witness)
        elif isinstance(witness, Mapping):
            result.append(Witness.from_dict(dict(witness)))
        else:
            raise ValidationError({"witnesses": f"unsupported witness entry {witness!r}"})
    return result


class ContestService:
    """
    Contest commands.

    Contract:
        Flushes but never commits.  The caller's transaction covers the
        contest, the citation status change and the history row.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: IssuancePolicy | None = None,
        citation_service: CitationService | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or IssuancePolicy()
        self._sequences = sequence_service or SequenceService(session)
        self._citations = citation_service or CitationService(
            session, self._clock, self._policy, sequence_service=self._sequences,
        )
        self._selector = ContestSelector(session)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def get_contest(self, contest_id: UUID) -> Contest:
        contest = self._session.get(Contest, contest_id)
        if contest is None:
            raise ContestNotFoundError(str(contest_id))
        return contest

    def get_by_number(self, contest_no: str) -> Contest:
        contest = self._session.execute(
            select(Contest).where(Contest.contest_no == contest_no)
        ).scalar_one_or_none()
        if contest is None:
            raise ContestNotFoundError(contest_no)
        return contest

    def _lock_pair(self, contest_id: UUID) -> tuple[Contest, Citation]:
        citation_id = self.get_contest(contest_id).citation_id
        citation = self._citations.lock_citation(citation_id)
        contest = self._session.execute(
            select(Contest)
            .where(Contest.id == contest_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        return contest, citation

    def _apply(
        self,
        contest: Contest,
        citation: Citation,
        transition: ContestTransition,
        actor_id: UUID,
    ) -> None:
        contest.apply_snapshot(transition.contest, actor_id)
        citation.apply_snapshot(transition.citation, actor_id)
        contest.append_history(transition.history_entry)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def submit_contest(
        self,
        citation_id: UUID,
        reason: str,
        contested_by: UUID,
        description: str | None = None,
        supporting_documents: Iterable[str] = (),
        witnesses: Iterable[Witness | Mapping[str, Any]] = (),
    ) -> Contest:
        """
        Open a contest and move the citation to CONTESTED.

        Preconditions:
            The citation is not PAID, VOID or DISMISSED and has no open
            contest.
        """
        if not (reason or "").strip():
            raise ValidationError({"reason": "contest reason is required"})
        witness_list = _coerce_witnesses(witnesses)

        citation = self._citations.lock_citation(citation_id)
        now = self._clock.now()
        snapshot = apply_overdue_check(citation.to_snapshot(), now)

        try:
            ensure_contestable(snapshot)
            open_contest = self._selector.get_open_for_citation(citation.id)
            if open_contest is not None:
                raise DuplicateOpenContestError(str(citation.id), open_contest.contest_no)
        except CitationKernelError as exc:
            logger.warning(
                "contest_submission_rejected",
                extra={
                    "citation_no": citation.citation_no,
                    "status": snapshot.status.value,
                    "error_code": exc.code,
                },
            )
            raise

        number = self._sequences.next_document_number(
            self._policy.contest_prefix, now.year, self._policy.number_width,
        )
        transition = contest_workflow.submit(str(number), snapshot, contested_by, now)

        contest = Contest(
            id=uuid4(),
            contest_no=str(number),
            citation_id=citation.id,
            driver_id=citation.driver_id,
            contested_by=contested_by,
            reason=reason.strip(),
            description=description,
            supporting_documents=list(supporting_documents),
            witnesses=[w.to_dict() for w in witness_list],
            status=ContestStatus.SUBMITTED.value,
            submitted_at=now,
            created_by_id=contested_by,
        )
        contest.append_history(transition.history_entry)
        citation.apply_snapshot(transition.citation, contested_by)

        try:
            with self._session.begin_nested():
                self._session.add(contest)
                self._session.flush()
        except IntegrityError as exc:
            if OPEN_CONTEST_INDEX not in str(exc.orig) and "contests.citation_id" not in str(exc.orig):
                raise
            logger.warning(
                "contest_open_race_lost",
                extra={"citation_no": citation.citation_no},
            )
            raise DuplicateOpenContestError(str(citation.id)) from exc

        with LogContext.bind(contest_no=contest.contest_no, citation_no=citation.citation_no):
            logger.info(
                "contest_submitted",
                extra={
                    "contested_by": str(contested_by),
                    "witness_count": len(witness_list),
                    "document_count": len(contest.supporting_documents),
                },
            )
        return contest

    def move_to_review(
        self,
        contest_id: UUID,
        reviewer_id: UUID,
        note: str | None = None,
    ) -> Contest:
        contest, citation = self._lock_pair(contest_id)
        now = self._clock.now()
        try:
            transition = contest_workflow.move_to_review(
                contest.to_snapshot(), citation.to_snapshot(), reviewer_id, now, note,
            )
        except CitationKernelError as exc:
            logger.warning(
                "contest_review_rejected",
                extra={"contest_no": contest.contest_no, "status": contest.status, "error_code": exc.code},
            )
            raise
        self._apply(contest, citation, transition, reviewer_id)
        self._session.flush()
        logger.info(
            "contest_under_review",
            extra={"contest_no": contest.contest_no, "reviewer_id": str(reviewer_id)},
        )
        return contest

    def resolve_contest(
        self,
        contest_id: UUID,
        approve: bool,
        resolution: str,
        actor_id: UUID,
    ) -> Contest:
        """
        Approve (citation DISMISSED) or reject (citation reverts to its
        payment-derived status).  A citation voided meanwhile stays VOID.
        """
        contest, citation = self._lock_pair(contest_id)
        now = self._clock.now()
        try:
            transition = contest_workflow.resolve(
                contest.to_snapshot(), citation.to_snapshot(), approve, resolution, actor_id, now,
            )
        except CitationKernelError as exc:
            logger.warning(
                "contest_resolution_rejected",
                extra={"contest_no": contest.contest_no, "status": contest.status, "error_code": exc.code},
            )
            raise
        self._apply(contest, citation, transition, actor_id)
        self._session.flush()
        logger.info(
            "contest_resolved",
            extra={
                "contest_no": contest.contest_no,
                "citation_no": citation.citation_no,
                "outcome": contest.status,
                "citation_status": citation.status,
                "actor_id": str(actor_id),
            },
        )
        return contest

    def withdraw_contest(self, contest_id: UUID, actor_id: UUID) -> Contest:
        """Withdraw a contest. Only the original submitter may do this."""
        contest, citation = self._lock_pair(contest_id)
        now = self._clock.now()
        try:
            transition = contest_workflow.withdraw(
                contest.to_snapshot(), citation.to_snapshot(), actor_id, now,
            )
        except CitationKernelError as exc:
            logger.warning(
                "contest_withdrawal_rejected",
                extra={
                    "contest_no": contest.contest_no,
                    "actor_id": str(actor_id),
                    "error_code": exc.code,
                },
            )
            raise
        self._apply(contest, citation, transition, actor_id)
        self._session.flush()
        logger.info(
            "contest_withdrawn",
            extra={
                "contest_no": contest.contest_no,
                "citation_no": citation.citation_no,
                "citation_status": citation.status,
            },
        )
        return contest
