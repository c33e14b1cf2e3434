"""
citation_services.desk -- the citation desk facade.

Responsibility:
    The narrow call surface an HTTP layer consumes: issue citations, record
    payments, void, submit and decide contests, and publish violation rule
    versions.  Builds every kernel service exactly once from a session, a
    clock and the active configuration, and wires them together.

Architecture position:
    Services -- outermost layer.  May import citation_kernel and
    citation_config; nothing imports this package.

Invariants enforced:
    - Single-instance lifecycle: one SequenceService, ViolationCatalog and
      CitationService per desk, shared by the contest service.
    - The desk owns no transaction.  Callers wrap each call in
      ``session_scope()`` so every command commits or rolls back as a unit.

Failure modes:
    - Propagates every kernel error unchanged; see
      citation_kernel.exceptions for the taxonomy.

Usage:
    from citation_kernel.db import session_scope
    from citation_services import CitationDesk

    with session_scope() as session:
        desk = CitationDesk(session)
        citation = desk.issue_citation(
            driver_id, vehicle_id, "private", ["1h"], location, issued_by=officer_id,
        )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from citation_config import get_active_config, load_catalog_seed
from citation_config.bridges import build_issuance_policy
from citation_config.schema import CitationConfig
from citation_kernel.domain.clock import Clock, SystemClock
from citation_kernel.domain.contest_workflow import ContestHistoryEntry
from citation_kernel.domain.fine_calculator import FineQuote, calculate_fine
from citation_kernel.domain.fine_schedule import (
    FineSchedule,
    OffenderRole,
    OwnerClass,
    parse_offender_role,
    parse_owner_class,
)
from citation_kernel.domain.registry import PartyRegistry
from citation_kernel.domain.values import Location, Witness
from citation_kernel.domain.violation import RuleChanges, RuleDefinition
from citation_kernel.exceptions import ValidationError
from citation_kernel.logging_config import LogContext, get_logger
from citation_kernel.models.citation import Citation
from citation_kernel.models.contest import Contest
from citation_kernel.models.violation_rule import ViolationRule
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
from citation_kernel.services.citation_service import CitationService
from citation_kernel.services.contest_service import ContestService
from citation_kernel.services.sequence_service import SequenceService
from citation_kernel.services.violation_catalog import ViolationCatalog

logger = get_logger("services.desk")


class CitationDesk:
    """Central factory and facade for the citation kernel.

    Contract:
        Receives a SQLAlchemy Session and optional Clock, CitationConfig and
        PartyRegistry.  Constructs every kernel service once and exposes the
        external operations as methods.

    Guarantees:
        - All services share the same Session, Clock and IssuancePolicy.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
        - Does NOT authenticate actors; actor ids are taken as given.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: CitationConfig | None = None,
        registry: PartyRegistry | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._policy = build_issuance_policy(self._config)

        self.sequences = SequenceService(session)
        self.catalog = ViolationCatalog(session, self._clock)
        self.citations = CitationService(
            session,
            self._clock,
            self._policy,
            registry=registry,
            catalog=self.catalog,
            sequence_service=self.sequences,
        )
        self.contests = ContestService(
            session,
            self._clock,
            self._policy,
            citation_service=self.citations,
            sequence_service=self.sequences,
        )
        self.citation_selector = CitationSelector(session)
        self.contest_selector = ContestSelector(session)
        self.offense_history = OffenseHistoryLookup(session, self._policy.offense_counting)

    @property
    def config(self) -> CitationConfig:
        return self._config

    # ------------------------------------------------------------------
    # Citations
    # ------------------------------------------------------------------

    def issue_citation(
        self,
        driver_id: UUID,
        vehicle_id: UUID,
        owner_class: OwnerClass | str,
        violation_ids: Sequence[UUID | str],
        location: Location | Mapping[str, Any],
        issued_by: UUID,
        violation_datetime: datetime | None = None,
        due_date: datetime | None = None,
        offender_role: OffenderRole | str = OffenderRole.DRIVER,
        notes: str | None = None,
        images: Iterable[str] = (),
    ) -> Citation:
        """Issue a PENDING citation; each violation id may be a rule id or code."""
        with LogContext.bind(actor_id=str(issued_by)):
            return self.citations.issue_citation(
                driver_id=driver_id,
                vehicle_id=vehicle_id,
                owner_class=owner_class,
                violation_refs=violation_ids,
                location=location,
                issued_by=issued_by,
                violation_datetime=violation_datetime,
                due_date=due_date,
                offender_role=offender_role,
                notes=notes,
                images=images,
            )

    def record_payment(
        self,
        citation_id: UUID,
        amount: Decimal | int | str,
        actor_id: UUID,
        reference: str | None = None,
    ) -> Citation:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.citations.record_payment(citation_id, amount, actor_id, reference)

    def void_citation(self, citation_id: UUID, reason: str, actor_id: UUID) -> Citation:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.citations.void_citation(citation_id, reason, actor_id)

    def update_citation(
        self,
        citation_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
        images: Iterable[str] | None = None,
        due_date: datetime | None = None,
    ) -> Citation:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.citations.update_citation(
                citation_id, actor_id, notes=notes, images=images, due_date=due_date,
            )

    def get_citation(self, citation_id: UUID) -> Citation:
        return self.citations.get_citation(citation_id)

    def get_citation_by_number(self, citation_no: str) -> Citation:
        """Public lookup by ``TCT-YYYY-NNNNNN``."""
        return self.citations.get_by_number(citation_no)

    def citations_for_driver(self, driver_id: UUID, include_void: bool = False) -> list[CitationSummary]:
        return self.citation_selector.list_by_driver(driver_id, include_void=include_void)

    def list_overdue(self) -> list[CitationSummary]:
        return self.citation_selector.list_overdue(self._clock.now())

    def citation_statistics(self) -> CitationStatistics:
        return self.citation_selector.statistics(self._clock.now())

    def quote_fine(
        self,
        driver_id: UUID,
        violation_id: UUID | str,
        owner_class: OwnerClass | str,
        offender_role: OffenderRole | str = OffenderRole.DRIVER,
    ) -> FineQuote:
        """
        Preview the fine a new citation would carry for one violation.

        Nothing is locked or written, so a concurrent issuance may make the
        preview stale.
        """
        rule = self.catalog.resolve(violation_id)
        ordinal = self.offense_history.next_ordinal(driver_id, rule.group_id)
        return calculate_fine(
            rule.to_dto(),
            parse_owner_class(owner_class),
            parse_offender_role(offender_role),
            ordinal,
        )

    # ------------------------------------------------------------------
    # Contests
    # ------------------------------------------------------------------

    def submit_contest(
        self,
        citation_id: UUID,
        reason: str,
        actor_id: UUID,
        description: str | None = None,
        evidence: Iterable[str] = (),
        witnesses: Iterable[Witness | Mapping[str, Any]] = (),
    ) -> Contest:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.contests.submit_contest(
                citation_id,
                reason,
                actor_id,
                description=description,
                supporting_documents=evidence,
                witnesses=witnesses,
            )

    def move_contest_to_review(
        self,
        contest_id: UUID,
        reviewer_id: UUID,
        note: str | None = None,
    ) -> Contest:
        with LogContext.bind(actor_id=str(reviewer_id)):
            return self.contests.move_to_review(contest_id, reviewer_id, note)

    def resolve_contest(
        self,
        contest_id: UUID,
        approve: bool,
        resolution: str,
        actor_id: UUID,
    ) -> Contest:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.contests.resolve_contest(contest_id, approve, resolution, actor_id)

    def withdraw_contest(self, contest_id: UUID, actor_id: UUID) -> Contest:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.contests.withdraw_contest(contest_id, actor_id)

    def get_contest(self, contest_id: UUID) -> Contest:
        return self.contests.get_contest(contest_id)

    def get_contest_by_number(self, contest_no: str) -> Contest:
        return self.contests.get_by_number(contest_no)

    def pending_contests(self) -> list[ContestSummary]:
        return self.contest_selector.list_pending()

    def contest_history(self, contest_id: UUID) -> list[ContestHistoryEntry]:
        return self.contest_selector.history(contest_id)

    def contest_statistics(self) -> ContestStatistics:
        return self.contest_selector.statistics()

    # ------------------------------------------------------------------
    # Violation rules
    # ------------------------------------------------------------------

    def define_rule_version(
        self,
        schedule: FineSchedule | None,
        actor_id: UUID,
        group_id: UUID | None = None,
        effective_from: datetime | None = None,
        code: str | None = None,
        title: str | None = None,
        description: str | None = None,
        legal_reference: str | None = None,
        accessory_penalty: str | None = None,
        remarks: str | None = None,
    ) -> ViolationRule:
        """
        Publish a rule version.

        Without ``group_id`` this defines version 1 of a new rule and needs
        ``code``, ``title`` and ``schedule``.  With ``group_id`` it supersedes
        the head of that group; omitted fields are copied forward.
        """
        with LogContext.bind(actor_id=str(actor_id)):
            if group_id is None:
                missing = {
                    name: f"{name} is required for a new rule"
                    for name, value in (("code", code), ("title", title), ("schedule", schedule))
                    if value is None
                }
                if missing:
                    raise ValidationError(missing)
                definition = RuleDefinition(
                    code=code,
                    title=title,
                    schedule=schedule,
                    description=description,
                    legal_reference=legal_reference,
                    accessory_penalty=accessory_penalty,
                    remarks=remarks,
                )
                return self.catalog.define_rule(definition, actor_id, effective_from)

            changes = RuleChanges(
                code=code,
                title=title,
                schedule=schedule,
                description=description,
                legal_reference=legal_reference,
                accessory_penalty=accessory_penalty,
                remarks=remarks,
            )
            if changes.is_empty:
                raise ValidationError({"changes": "a new version must change at least one field"})
            head = self.catalog.get_head(group_id)
            return self.catalog.create_version(head, changes, actor_id, effective_from)

    def deactivate_rule(self, rule_id: UUID, actor_id: UUID) -> ViolationRule:
        with LogContext.bind(actor_id=str(actor_id)):
            return self.catalog.deactivate(self.catalog.get_by_id(rule_id), actor_id)

    def current_rule(self, code: str) -> ViolationRule:
        return self.catalog.get_current(code)

    def rule_history(self, group_id: UUID) -> list[ViolationRule]:
        return self.catalog.history(group_id)

    def list_active_rules(self) -> list[ViolationRule]:
        return self.catalog.list_active()

    def seed_catalog(self, actor_id: UUID) -> list[ViolationRule]:
        """Define every rule from the configured catalog seed that is missing."""
        if self._config.catalog_seed_path is None:
            raise ValidationError({"catalog_seed": "no catalog seed is configured"})
        definitions = load_catalog_seed(self._config.catalog_seed_path)
        return self.catalog.seed(definitions, actor_id)
