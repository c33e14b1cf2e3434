"""
CitationService -- issuance, payment, voiding and lazy overdue evaluation.

Responsibility:
    Orchestrates the citation lifecycle against the database: resolves the
    charged violation rules, determines offense ordinals under lock, prices
    every line, allocates the citation number and persists the citation with
    its frozen line snapshots.  Later commands (payment, void, update) lock
    the citation row, run the pure transition from citation_lifecycle and
    write the resulting snapshot back.

Architecture position:
    Kernel > Services -- imperative shell.
    Pure logic lives in domain/citation_lifecycle.py and
    domain/fine_calculator.py; this module only loads, locks and persists.

Invariants enforced:
    - Offense ordinals are computed after the (driver, group) offense locks
      are held, so concurrent issuances for the same key are serialized.
    - A violation group appears at most once per citation.
    - total_amount is the sum of the line fines; amount_due is always
      derived from total_amount and amount_paid.
    - Lifecycle changes go through citation_lifecycle; this module never
      assigns a status directly.
    - OVERDUE is evaluated lazily whenever a citation is read or written.

Failure modes:
    - ValidationError: empty violation list, duplicate groups, bad
      location, non-positive or float payment amounts, bad dates.
    - DriverNotFoundError / VehicleNotFoundError when a registry is wired
      and rejects the party.
    - ViolationRuleNotFoundError / InvalidScheduleError from the catalog and
      the fine calculator.
    - CitationNotFoundError, CitationNotPayableError,
      CitationAlreadyVoidedError, CitationNotEditableError,
      InvalidCitationTransitionError from the lifecycle.
    - OffenseHistoryContentionError / SequenceContentionError (retryable).

Audit relevance:
    Every issuance, payment, void and overdue flip is logged with the
    citation number and actor.  Payments are persisted as immutable
    CitationPayment rows.
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from citation_kernel.db.types import ZERO, money_from_value, round_money
from citation_kernel.domain.citation_lifecycle import (
    CitationStatus,
    apply_overdue_check,
    apply_payment,
    apply_void,
    ensure_editable,
)
from citation_kernel.domain.clock import Clock, SystemClock
from citation_kernel.domain.fine_calculator import FineQuote, calculate_fine
from citation_kernel.domain.fine_schedule import (
    OffenderRole,
    OwnerClass,
    parse_offender_role,
    parse_owner_class,
)
from citation_kernel.domain.policy import IssuancePolicy
from citation_kernel.domain.registry import PartyRegistry
from citation_kernel.domain.values import Location, require_aware
from citation_kernel.exceptions import (
    CitationKernelError,
    CitationNotFoundError,
    DriverNotFoundError,
    ValidationError,
    VehicleNotFoundError,
)
from citation_kernel.logging_config import LogContext, get_logger
from citation_kernel.models.citation import Citation, CitationPayment, CitationViolationLine
from citation_kernel.models.violation_rule import ViolationRule
from citation_kernel.selectors.offense_history import OffenseHistoryLookup
from citation_kernel.services.offense_lock_service import OffenseLockService
from citation_kernel.services.sequence_service import SequenceService
from citation_kernel.services.violation_catalog import ViolationCatalog

logger = get_logger("services.citation")


def _coerce_location(location: Location | Mapping[str, Any]) -> Location:
    if isinstance(location, Location):
        return location
    if not isinstance(location, Mapping):
        raise ValidationError({"location": "location is required"})
    return Location.from_dict(dict(location))


def _coerce_amount(amount: Decimal | int | str) -> Decimal:
    try:
        value = money_from_value(amount)
    except (TypeError, InvalidOperation):
        raise ValidationError({"amount": f"not a valid money amount: {amount!r}"})
    if not value.is_finite():
        raise ValidationError({"amount": f"not a valid money amount: {amount!r}"})
    return round_money(value)


class CitationService:
    """
    Issues citations and applies payment / void / update commands.

    Contract:
        Every command flushes but never commits; the caller owns the
        transaction (see db.session_scope).

    Guarantees:
        - issue_citation() either persists the citation with all its lines
          or raises before anything is written except counter and lock rows,
          which roll back with the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: IssuancePolicy | None = None,
        registry: PartyRegistry | None = None,
        catalog: ViolationCatalog | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or IssuancePolicy()
        self._registry = registry
        self._catalog = catalog or ViolationCatalog(session, self._clock)
        self._sequences = sequence_service or SequenceService(session)
        self._offense_locks = OffenseLockService(session)
        self._history = OffenseHistoryLookup(session, self._policy.offense_counting)

    @property
    def policy(self) -> IssuancePolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def lock_citation(self, citation_id: UUID) -> Citation:
        """Load a citation under ``SELECT ... FOR UPDATE``."""
        citation = self._session.execute(
            select(Citation)
            .where(Citation.id == citation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if citation is None:
            raise CitationNotFoundError(str(citation_id))
        return citation

    def _refresh_overdue(self, citation: Citation, locked: bool = False) -> Citation:
        now = self._clock.now()
        snapshot = apply_overdue_check(citation.to_snapshot(), now)
        if snapshot.status is citation.status_enum:
            return citation
        if not locked:
            citation = self.lock_citation(citation.id)
            snapshot = apply_overdue_check(citation.to_snapshot(), now)
        if citation.apply_snapshot(snapshot):
            self._session.flush()
            logger.info(
                "citation_marked_overdue",
                extra={"citation_no": citation.citation_no, "due_date": citation.due_date},
            )
        return citation

    def get_citation(self, citation_id: UUID) -> Citation:
        citation = self._session.get(Citation, citation_id)
        if citation is None:
            raise CitationNotFoundError(str(citation_id))
        return self._refresh_overdue(citation)

    def get_by_number(self, citation_no: str) -> Citation:
        citation = self._session.execute(
            select(Citation).where(Citation.citation_no == citation_no)
        ).scalar_one_or_none()
        if citation is None:
            raise CitationNotFoundError(citation_no)
        return self._refresh_overdue(citation)

    def refresh_overdue(self, citation_id: UUID) -> Citation:
        """Apply the overdue rule to one citation and return it."""
        return self._refresh_overdue(self.lock_citation(citation_id), locked=True)

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def _check_parties(self, driver_id: UUID, vehicle_id: UUID) -> None:
        if self._registry is None:
            return
        if not self._registry.driver_exists(driver_id):
            raise DriverNotFoundError(str(driver_id))
        if not self._registry.vehicle_exists(vehicle_id):
            raise VehicleNotFoundError(str(vehicle_id))

    def _resolve_rules(self, violation_refs: Sequence[UUID | str]) -> list[ViolationRule]:
        if not violation_refs:
            raise ValidationError({"violations": "at least one violation is required"})
        rules = [self._catalog.resolve(ref) for ref in violation_refs]
        seen: set[UUID] = set()
        for rule in rules:
            if rule.group_id in seen:
                raise ValidationError({
                    "violations": f"violation {rule.code} is listed more than once",
                })
            seen.add(rule.group_id)
        return rules

    def issue_citation(
        self,
        driver_id: UUID,
        vehicle_id: UUID,
        owner_class: OwnerClass | str,
        violation_refs: Sequence[UUID | str],
        location: Location | Mapping[str, Any],
        issued_by: UUID,
        violation_datetime: datetime | None = None,
        due_date: datetime | None = None,
        offender_role: OffenderRole | str = OffenderRole.DRIVER,
        notes: str | None = None,
        images: Iterable[str] = (),
    ) -> Citation:
        """
        Issue a citation for one or more violations.

        Preconditions:
            Every violation ref resolves to a rule in force; the schedule of
            each defines the (owner_class, offender_role) axis.
        Postconditions:
            A PENDING citation with one line per violation, numbered
            ``<prefix>-<year>-<NNNNNN>``, amount_paid 0 and
            amount_due == total_amount.
        """
        require_aware(violation_datetime=violation_datetime, due_date=due_date)
        now = self._clock.now()
        owner_class = parse_owner_class(owner_class)
        offender_role = parse_offender_role(offender_role)
        location = _coerce_location(location)
        violation_datetime = violation_datetime or now
        if violation_datetime > now:
            raise ValidationError({"violation_datetime": "cannot be in the future"})
        due_date = due_date or now + timedelta(days=self._policy.default_due_days)
        if due_date < now:
            raise ValidationError({"due_date": "cannot be before issuance"})

        self._check_parties(driver_id, vehicle_id)
        rules = self._resolve_rules(violation_refs)

        # Ordinals are only meaningful while these locks are held.
        self._offense_locks.acquire(driver_id, [rule.group_id for rule in rules])

        quotes: list[FineQuote] = []
        for rule in rules:
            ordinal = self._history.next_ordinal(driver_id, rule.group_id)
            quotes.append(calculate_fine(rule.to_dto(), owner_class, offender_role, ordinal))

        number = self._sequences.next_document_number(
            self._policy.citation_prefix, now.year, self._policy.number_width,
        )
        total = round_money(sum((q.amount for q in quotes), ZERO))

        citation = Citation(
            id=uuid4(),
            citation_no=str(number),
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            owner_class=owner_class.value,
            offender_role=offender_role.value,
            total_amount=total,
            amount_paid=ZERO,
            amount_due=total,
            status=CitationStatus.PENDING.value,
            issued_by=issued_by,
            issued_at=now,
            violation_datetime=violation_datetime,
            due_date=due_date,
            location=location.to_dict(),
            images=list(images),
            notes=notes,
            is_void=False,
            created_by_id=issued_by,
        )
        for line_no, (rule, quote) in enumerate(zip(rules, quotes), start=1):
            citation.lines.append(
                CitationViolationLine(
                    line_no=line_no,
                    violation_rule_id=rule.id,
                    violation_group_id=rule.group_id,
                    rule_version=rule.version,
                    code=rule.code,
                    title=rule.title,
                    description=rule.description,
                    fine_structure=quote.structure.value,
                    tier=quote.tier.value if quote.tier is not None else None,
                    fine_amount=quote.amount,
                    offense_ordinal=quote.offense_ordinal,
                )
            )
        self._session.add(citation)
        self._session.flush()

        with LogContext.bind(citation_no=citation.citation_no, actor_id=str(issued_by)):
            logger.info(
                "citation_issued",
                extra={
                    "driver_id": str(driver_id),
                    "violation_codes": [rule.code for rule in rules],
                    "offense_ordinals": [q.offense_ordinal for q in quotes],
                    "total_amount": total,
                    "due_date": due_date,
                },
            )
        return citation

    # ------------------------------------------------------------------
    # Commands on issued citations
    # ------------------------------------------------------------------

    def record_payment(
        self,
        citation_id: UUID,
        amount: Decimal | int | str,
        actor_id: UUID,
        reference: str | None = None,
    ) -> Citation:
        """
        Record a (partial) payment.

        Overpayment is accepted; amount_due never goes below zero.
        """
        amount = _coerce_amount(amount)
        citation = self.lock_citation(citation_id)
        now = self._clock.now()

        try:
            snapshot = apply_payment(apply_overdue_check(citation.to_snapshot(), now), amount)
        except CitationKernelError as exc:
            logger.warning(
                "citation_payment_rejected",
                extra={
                    "citation_no": citation.citation_no,
                    "status": citation.status,
                    "error_code": exc.code,
                },
            )
            raise

        citation.apply_snapshot(snapshot, actor_id)
        citation.payments.append(
            CitationPayment(
                amount=amount,
                recorded_by=actor_id,
                recorded_at=now,
                reference=reference,
            )
        )
        self._session.flush()

        logger.info(
            "citation_payment_recorded",
            extra={
                "citation_no": citation.citation_no,
                "amount": amount,
                "amount_paid": citation.amount_paid,
                "amount_due": citation.amount_due,
                "status": citation.status,
                "actor_id": str(actor_id),
            },
        )
        return citation

    def void_citation(self, citation_id: UUID, reason: str, actor_id: UUID) -> Citation:
        """Void a citation. Irrevocable."""
        citation = self.lock_citation(citation_id)
        now = self._clock.now()

        try:
            snapshot = apply_void(citation.to_snapshot(), reason, actor_id, now)
        except CitationKernelError as exc:
            logger.warning(
                "citation_void_rejected",
                extra={
                    "citation_no": citation.citation_no,
                    "status": citation.status,
                    "error_code": exc.code,
                },
            )
            raise

        citation.apply_snapshot(snapshot, actor_id)
        self._session.flush()

        logger.info(
            "citation_voided",
            extra={
                "citation_no": citation.citation_no,
                "reason": citation.void_reason,
                "actor_id": str(actor_id),
            },
        )
        return citation

    def update_citation(
        self,
        citation_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
        images: Iterable[str] | None = None,
        due_date: datetime | None = None,
    ) -> Citation:
        """
        Edit the annotations of a citation that is not void.

        Lines and amounts are frozen at issuance and cannot be edited.
        """
        require_aware(due_date=due_date)
        citation = self.lock_citation(citation_id)
        ensure_editable(citation.to_snapshot())

        changed: list[str] = []
        if notes is not None:
            citation.notes = notes
            changed.append("notes")
        if images is not None:
            citation.images = list(images)
            changed.append("images")
        if due_date is not None:
            if due_date < citation.issued_at:
                raise ValidationError({"due_date": "cannot be before issuance"})
            citation.due_date = due_date
            changed.append("due_date")

        if changed:
            citation.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "citation_updated",
                extra={
                    "citation_no": citation.citation_no,
                    "fields": changed,
                    "actor_id": str(actor_id),
                },
            )
        return self._refresh_overdue(citation, locked=True)
