"""
ViolationCatalog -- append-only, effective-dated violation rule versions.

Responsibility:
    Defines new violation rules, derives new versions of existing ones,
    retires rules, and answers "which version of code X is in force now?".

Architecture position:
    Kernel > Services -- imperative shell.  Leaf component: depends only on
    the ViolationRule model and the clock.

Invariants enforced:
    - A published rule's content is never edited; a change is a new row
      with version + 1 in the same group, linked from its predecessor via
      superseded_by_id.
    - Retiring the predecessor and inserting the successor happen inside
      one SAVEPOINT under a row lock on the predecessor, so no reader ever
      sees two open-ended versions or none.
    - At most one version per group is open-ended (partial unique index).
    - Cutover instants are never in the past.

Failure modes:
    - ViolationRuleNotFoundError when no version is in force.
    - ValidationError for blank code/title or a past cutover.
    - RuleVersionConflictError when the predecessor is no longer the chain
      head (including a lost race detected by the unique constraints).
    - RuleAlreadyRetiredError on deactivating a retired rule.
    - DuplicateRuleCodeError when another group already uses the code.

Audit relevance:
    Every definition, version and retirement is logged with group_id,
    version and actor.  history() returns the full chain for audit.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from citation_kernel.domain.clock import Clock, SystemClock
from citation_kernel.domain.values import require_aware
from citation_kernel.domain.violation import RuleChanges, RuleDefinition
from citation_kernel.exceptions import (
    DuplicateRuleCodeError,
    RuleAlreadyRetiredError,
    RuleVersionConflictError,
    ValidationError,
    ViolationRuleNotFoundError,
)
from citation_kernel.logging_config import LogContext, get_logger
from citation_kernel.models.violation_rule import ViolationRule

logger = get_logger("services.violation_catalog")


def _validate_definition(definition: RuleDefinition) -> None:
    errors: dict[str, str] = {}
    if not (definition.code or "").strip():
        errors["code"] = "code is required"
    if not (definition.title or "").strip():
        errors["title"] = "title is required"
    if definition.schedule is None:
        errors["schedule"] = "fine schedule is required"
    if errors:
        raise ValidationError(errors)


class ViolationCatalog:
    """
    Versioned violation rule catalog.

    Contract:
        All writes flush but never commit; the caller owns the transaction.

    Guarantees:
        - get_current() considers only the effective window, so a version
          whose successor is future-dated keeps serving until cutover.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _in_force(self, now: datetime):
        return (
            ViolationRule.effective_from <= now,
            or_(ViolationRule.effective_until.is_(None), ViolationRule.effective_until > now),
        )

    def get_current(self, code: str) -> ViolationRule:
        """The version of ``code`` in force now."""
        now = self._clock.now()
        rule = self._session.execute(
            select(ViolationRule)
            .where(ViolationRule.code == code, *self._in_force(now))
            .order_by(ViolationRule.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        if rule is None:
            raise ViolationRuleNotFoundError(code)
        return rule

    def get_current_in_group(self, group_id: UUID) -> ViolationRule:
        now = self._clock.now()
        rule = self._session.execute(
            select(ViolationRule)
            .where(ViolationRule.group_id == group_id, *self._in_force(now))
            .order_by(ViolationRule.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        if rule is None:
            raise ViolationRuleNotFoundError(str(group_id))
        return rule

    def get_head(self, group_id: UUID) -> ViolationRule:
        """
        The newest version of a group that has no successor and is not
        retired.  Unlike get_current_in_group() this includes a version
        whose cutover is still in the future.
        """
        rule = self._session.execute(
            select(ViolationRule).where(
                ViolationRule.group_id == group_id,
                ViolationRule.is_active.is_(True),
                ViolationRule.superseded_by_id.is_(None),
            )
        ).scalar_one_or_none()
        if rule is None:
            raise ViolationRuleNotFoundError(str(group_id))
        return rule

    def get_by_id(self, rule_id: UUID) -> ViolationRule:
        rule = self._session.get(ViolationRule, rule_id)
        if rule is None:
            raise ViolationRuleNotFoundError(str(rule_id))
        return rule

    def resolve(self, ref: UUID | str) -> ViolationRule:
        """
        Resolve a violation reference to the version in force.

        A rule id resolves to the current version of that rule's group, so
        callers holding an id of a superseded version still price against
        today's schedule.
        """
        if isinstance(ref, UUID):
            return self.get_current_in_group(self.get_by_id(ref).group_id)
        return self.get_current(ref)

    def history(self, group_id: UUID) -> list[ViolationRule]:
        """Full version chain, newest first."""
        return list(
            self._session.execute(
                select(ViolationRule)
                .where(ViolationRule.group_id == group_id)
                .order_by(ViolationRule.version.desc())
            ).scalars().all()
        )

    def list_active(self) -> list[ViolationRule]:
        """Rules in force now, ordered by code then version (newest first)."""
        now = self._clock.now()
        return list(
            self._session.execute(
                select(ViolationRule)
                .where(*self._in_force(now))
                .order_by(ViolationRule.code.asc(), ViolationRule.version.desc())
            ).scalars().all()
        )

    def _open_head_for_code(self, code: str, exclude_group: UUID | None = None) -> ViolationRule | None:
        query = select(ViolationRule).where(
            ViolationRule.code == code,
            ViolationRule.is_active.is_(True),
            ViolationRule.superseded_by_id.is_(None),
        )
        if exclude_group is not None:
            query = query.where(ViolationRule.group_id != exclude_group)
        return self._session.execute(query.limit(1)).scalar_one_or_none()

    def _check_cutover(self, effective_from: datetime | None) -> datetime:
        require_aware(effective_from=effective_from)
        now = self._clock.now()
        if effective_from is None:
            return now
        if effective_from < now:
            raise ValidationError({"effective_from": "cutover cannot be in the past"})
        return effective_from

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def define_rule(
        self,
        definition: RuleDefinition,
        actor_id: UUID,
        effective_from: datetime | None = None,
    ) -> ViolationRule:
        """Create version 1 of a new rule group."""
        _validate_definition(definition)
        effective_from = self._check_cutover(effective_from)

        existing = self._open_head_for_code(definition.code)
        if existing is not None:
            raise DuplicateRuleCodeError(definition.code, str(existing.group_id))

        rule = ViolationRule(
            id=uuid4(),
            group_id=uuid4(),
            version=1,
            code=definition.code.strip(),
            title=definition.title.strip(),
            description=definition.description,
            legal_reference=definition.legal_reference,
            accessory_penalty=definition.accessory_penalty,
            remarks=definition.remarks,
            is_active=True,
            effective_from=effective_from,
            created_by_id=actor_id,
        )
        rule.schedule = definition.schedule
        self._session.add(rule)
        self._session.flush()

        logger.info(
            "violation_rule_defined",
            extra={
                "rule_id": str(rule.id),
                "group_id": str(rule.group_id),
                "code": rule.code,
                "fine_structure": rule.fine_structure,
                "actor_id": str(actor_id),
            },
        )
        return rule

    def create_version(
        self,
        existing: ViolationRule,
        changes: RuleChanges,
        actor_id: UUID,
        effective_from: datetime | None = None,
    ) -> ViolationRule:
        """
        Supersede ``existing`` with version + 1.

        Preconditions:
            ``existing`` is the head of its chain (active, no successor).
        Postconditions:
            ``existing`` is inactive with effective_until = cutover and
            superseded_by_id = successor.id; the successor is the new head.
        """
        cutover = self._check_cutover(effective_from)
        group_id = existing.group_id
        version = existing.version

        with LogContext.bind(rule_group_id=str(group_id)):
            try:
                with self._session.begin_nested():
                    predecessor = self._select_locked(existing.id)

                    if not predecessor.is_active or predecessor.superseded_by_id is not None:
                        raise RuleVersionConflictError(
                            str(group_id), version, "rule is no longer the head of its chain",
                        )
                    if cutover < predecessor.effective_from:
                        raise ValidationError({
                            "effective_from": "successor cannot take effect before its predecessor",
                        })

                    definition = changes.apply_to(predecessor.to_dto())
                    _validate_definition(definition)
                    if definition.code != predecessor.code:
                        clash = self._open_head_for_code(definition.code, exclude_group=group_id)
                        if clash is not None:
                            raise DuplicateRuleCodeError(definition.code, str(clash.group_id))

                    predecessor.is_active = False
                    predecessor.effective_until = cutover
                    predecessor.updated_by_id = actor_id
                    self._session.flush()

                    successor = ViolationRule(
                        id=uuid4(),
                        group_id=group_id,
                        version=predecessor.version + 1,
                        code=definition.code.strip(),
                        title=definition.title.strip(),
                        description=definition.description,
                        legal_reference=definition.legal_reference,
                        accessory_penalty=definition.accessory_penalty,
                        remarks=definition.remarks,
                        is_active=True,
                        effective_from=cutover,
                        created_by_id=actor_id,
                    )
                    successor.schedule = definition.schedule
                    self._session.add(successor)
                    self._session.flush()

                    predecessor.superseded_by_id = successor.id
                    self._session.flush()
            except IntegrityError as exc:
                logger.warning(
                    "rule_version_race_lost",
                    extra={"group_id": str(group_id), "version": version},
                )
                raise RuleVersionConflictError(
                    str(group_id), version, "a concurrent version was created",
                ) from exc

            logger.info(
                "violation_rule_versioned",
                extra={
                    "group_id": str(group_id),
                    "from_version": version,
                    "to_version": successor.version,
                    "rule_id": str(successor.id),
                    "effective_from": cutover,
                    "actor_id": str(actor_id),
                },
            )
        return successor

    def deactivate(self, rule: ViolationRule, actor_id: UUID) -> ViolationRule:
        """
        Retire ``rule`` without a successor.

        When ``rule`` is a head whose cutover is still in the future, the
        predecessor serving until that cutover is retired now as well, so
        the group has no version in force from this moment on.
        """
        now = self._clock.now()
        with self._session.begin_nested():
            locked = self._select_locked(rule.id)
            if not locked.is_active or locked.superseded_by_id is not None:
                raise RuleAlreadyRetiredError(str(locked.id), locked.code)

            serving = None
            if locked.effective_from > now:
                serving = self._session.execute(
                    select(ViolationRule)
                    .where(
                        ViolationRule.superseded_by_id == locked.id,
                        ViolationRule.effective_until > now,
                    )
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()

            locked.is_active = False
            locked.effective_until = now
            locked.updated_by_id = actor_id
            if serving is not None:
                serving.effective_until = now
                serving.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "violation_rule_deactivated",
            extra={
                "rule_id": str(locked.id),
                "group_id": str(locked.group_id),
                "code": locked.code,
                "version": locked.version,
                "cut_short_rule_id": str(serving.id) if serving is not None else None,
                "actor_id": str(actor_id),
            },
        )
        return locked

    def _select_locked(self, rule_id: UUID) -> ViolationRule:
        return self._session.execute(
            select(ViolationRule)
            .where(ViolationRule.id == rule_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    def seed(self, definitions: Iterable[RuleDefinition], actor_id: UUID) -> list[ViolationRule]:
        """
        Define every rule whose code is not yet in the catalog.

        Codes that already have an open-ended head are skipped, so seeding
        twice is harmless.
        """
        created: list[ViolationRule] = []
        skipped = 0
        for definition in definitions:
            if self._open_head_for_code(definition.code) is not None:
                skipped += 1
                continue
            created.append(self.define_rule(definition, actor_id))
        logger.info(
            "violation_catalog_seeded",
            extra={"created_count": len(created), "skipped": skipped},
        )
        return created
