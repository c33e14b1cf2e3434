"""
ViolationCatalog: append-only, effective-dated rule versions.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from citation_kernel.domain.fine_calculator import calculate_fine
from citation_kernel.domain.fine_schedule import OffenderRole, OwnerClass, parse_schedule
from citation_kernel.domain.violation import RuleChanges
from citation_kernel.exceptions import (
    DuplicateRuleCodeError,
    RuleAlreadyRetiredError,
    RuleVersionConflictError,
    ValidationError,
    ViolationRuleNotFoundError,
)
from citation_kernel.models.violation_rule import ViolationRule
from tests.conftest import HELMET_SCHEDULE, make_definition

RAISED_HELMET = {"private": {"driver": {"first": "2000", "second": "4000"}}}


def _open_heads(session, group_id):
    return session.execute(
        select(ViolationRule).where(
            ViolationRule.group_id == group_id,
            ViolationRule.is_active.is_(True),
            ViolationRule.effective_until.is_(None),
        )
    ).scalars().all()


class TestDefineRule:
    def test_version_one(self, helmet_rule, deterministic_clock, test_actor_id):
        assert helmet_rule.version == 1
        assert helmet_rule.is_active is True
        assert helmet_rule.effective_from == deterministic_clock.now()
        assert helmet_rule.effective_until is None
        assert helmet_rule.superseded_by_id is None
        assert helmet_rule.fine_structure == "progressive"
        assert helmet_rule.created_by_id == test_actor_id

    def test_schedule_round_trips_through_json(self, session, helmet_rule):
        session.expire(helmet_rule)

        quote = calculate_fine(helmet_rule.to_dto(), OwnerClass.PRIVATE, OffenderRole.DRIVER, 3)

        assert quote.amount == Decimal("5000")

    def test_blank_code_and_title_rejected(self, catalog, test_actor_id):
        definition = make_definition(" ", HELMET_SCHEDULE, title=" ")

        with pytest.raises(ValidationError) as exc_info:
            catalog.define_rule(definition, test_actor_id)

        assert {"code", "title"} <= set(exc_info.value.field_errors)

    def test_duplicate_code_rejected(self, catalog, helmet_rule, test_actor_id):
        with pytest.raises(DuplicateRuleCodeError) as exc_info:
            catalog.define_rule(make_definition("1h", HELMET_SCHEDULE), test_actor_id)

        assert exc_info.value.existing_group_id == str(helmet_rule.group_id)

    def test_past_effective_from_rejected(self, catalog, deterministic_clock, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            catalog.define_rule(
                make_definition("1j1", HELMET_SCHEDULE),
                test_actor_id,
                effective_from=deterministic_clock.now() - timedelta(days=1),
            )

        assert "effective_from" in exc_info.value.field_errors

    def test_naive_effective_from_rejected(self, catalog, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            catalog.define_rule(
                make_definition("1j1", HELMET_SCHEDULE), test_actor_id, effective_from=datetime(2099, 1, 1),
            )

        assert exc_info.value.field_errors == {"effective_from": "must be timezone-aware"}

    def test_logs_definition(self, catalog, test_actor_id, captured_logs):
        catalog.define_rule(make_definition("1j2", HELMET_SCHEDULE), test_actor_id)

        defined = [r for r in captured_logs() if r["message"] == "violation_rule_defined"]
        assert len(defined) == 1
        assert defined[0]["code"] == "1j2"


class TestGetCurrent:
    def test_by_code(self, catalog, helmet_rule):
        assert catalog.get_current("1h").id == helmet_rule.id

    def test_unknown_code(self, catalog):
        with pytest.raises(ViolationRuleNotFoundError):
            catalog.get_current("does-not-exist")

    def test_future_rule_not_yet_in_force(self, catalog, define_rule, deterministic_clock):
        define_rule("1j3", HELMET_SCHEDULE, effective_from=deterministic_clock.now() + timedelta(days=7))

        with pytest.raises(ViolationRuleNotFoundError):
            catalog.get_current("1j3")

        deterministic_clock.advance_days(7)
        assert catalog.get_current("1j3").version == 1

    def test_resolve_by_id_uses_current_version(self, catalog, helmet_rule, test_actor_id):
        successor = catalog.create_version(
            helmet_rule, RuleChanges(schedule=parse_schedule("progressive", RAISED_HELMET)), test_actor_id,
        )

        assert catalog.resolve(helmet_rule.id).id == successor.id
        assert catalog.resolve("1h").id == successor.id


class TestCreateVersion:
    """Superseding retires the predecessor and links it forward atomically."""

    def test_successor_and_retired_predecessor(self, session, catalog, helmet_rule, deterministic_clock, test_actor_id):
        new_schedule = parse_schedule("progressive", RAISED_HELMET)

        successor = catalog.create_version(helmet_rule, RuleChanges(schedule=new_schedule), test_actor_id)

        assert successor.version == 2
        assert successor.group_id == helmet_rule.group_id
        assert successor.code == "1h"
        assert successor.title == helmet_rule.title
        assert successor.legal_reference == "R.A. 10054"
        assert successor.schedule == new_schedule

        session.refresh(helmet_rule)
        assert helmet_rule.is_active is False
        assert helmet_rule.effective_until == deterministic_clock.now()
        assert helmet_rule.superseded_by_id == successor.id
        assert [r.id for r in _open_heads(session, helmet_rule.group_id)] == [successor.id]

    def test_published_schedule_is_untouched(self, session, catalog, helmet_rule, test_actor_id):
        catalog.create_version(
            helmet_rule, RuleChanges(schedule=parse_schedule("progressive", RAISED_HELMET)), test_actor_id,
        )
        session.refresh(helmet_rule)

        quote = calculate_fine(helmet_rule.to_dto(), OwnerClass.PRIVATE, OffenderRole.DRIVER, 1)
        assert quote.amount == Decimal("1500")

    def test_superseding_a_non_head_conflicts(self, catalog, helmet_rule, test_actor_id):
        catalog.create_version(helmet_rule, RuleChanges(title="Helmet rule v2"), test_actor_id)

        with pytest.raises(RuleVersionConflictError) as exc_info:
            catalog.create_version(helmet_rule, RuleChanges(title="Helmet rule v2b"), test_actor_id)

        assert exc_info.value.version == 1

    def test_future_cutover_keeps_old_version_in_force(self, catalog, helmet_rule, deterministic_clock, test_actor_id):
        cutover = deterministic_clock.now() + timedelta(days=30)

        successor = catalog.create_version(
            helmet_rule,
            RuleChanges(schedule=parse_schedule("progressive", RAISED_HELMET)),
            test_actor_id,
            effective_from=cutover,
        )

        assert catalog.get_current("1h").id == helmet_rule.id
        assert catalog.get_head(helmet_rule.group_id).id == successor.id

        deterministic_clock.advance_days(30)
        assert catalog.get_current("1h").id == successor.id

    def test_renaming_onto_existing_code_rejected(self, catalog, helmet_rule, registration_rule, test_actor_id):
        with pytest.raises(DuplicateRuleCodeError):
            catalog.create_version(helmet_rule, RuleChanges(code="1i"), test_actor_id)

        assert catalog.get_head(helmet_rule.group_id).id == helmet_rule.id

    def test_history_newest_first(self, catalog, helmet_rule, test_actor_id):
        v2 = catalog.create_version(helmet_rule, RuleChanges(title="v2"), test_actor_id)
        v3 = catalog.create_version(v2, RuleChanges(title="v3"), test_actor_id)

        assert [r.version for r in catalog.history(helmet_rule.group_id)] == [3, 2, 1]
        assert catalog.get_head(helmet_rule.group_id).id == v3.id

    def test_logs_version(self, catalog, helmet_rule, test_actor_id, captured_logs):
        catalog.create_version(helmet_rule, RuleChanges(title="v2"), test_actor_id)

        versioned = [r for r in captured_logs() if r["message"] == "violation_rule_versioned"]
        assert versioned[0]["from_version"] == 1
        assert versioned[0]["to_version"] == 2
        assert versioned[0]["rule_group_id"] == str(helmet_rule.group_id)


class TestDeactivate:
    def test_retires_rule(self, catalog, helmet_rule, test_actor_id):
        catalog.deactivate(helmet_rule, test_actor_id)

        with pytest.raises(ViolationRuleNotFoundError):
            catalog.get_current("1h")
        assert catalog.list_active() == []

    def test_retiring_twice_raises(self, catalog, helmet_rule, test_actor_id):
        catalog.deactivate(helmet_rule, test_actor_id)

        with pytest.raises(RuleAlreadyRetiredError):
            catalog.deactivate(helmet_rule, test_actor_id)

    def test_code_is_reusable_after_retirement(self, catalog, helmet_rule, test_actor_id):
        catalog.deactivate(helmet_rule, test_actor_id)

        replacement = catalog.define_rule(make_definition("1h", HELMET_SCHEDULE), test_actor_id)

        assert replacement.group_id != helmet_rule.group_id

    def test_retiring_pending_head_cuts_short_serving_version(
        self, catalog, helmet_rule, deterministic_clock, test_actor_id,
    ):
        now = deterministic_clock.now()
        successor = catalog.create_version(
            helmet_rule, RuleChanges(title="Helmet rule v2"), test_actor_id,
            effective_from=now + timedelta(days=30),
        )

        catalog.deactivate(successor, test_actor_id)

        assert helmet_rule.effective_until == now
        assert helmet_rule.superseded_by_id == successor.id
        assert successor.is_active is False
        with pytest.raises(ViolationRuleNotFoundError):
            catalog.get_current("1h")
        deterministic_clock.advance_days(31)
        with pytest.raises(ViolationRuleNotFoundError):
            catalog.get_current("1h")

    def test_superseded_version_cannot_be_retired_directly(
        self, catalog, helmet_rule, deterministic_clock, test_actor_id,
    ):
        catalog.create_version(
            helmet_rule, RuleChanges(title="Helmet rule v2"), test_actor_id,
            effective_from=deterministic_clock.now() + timedelta(days=30),
        )

        with pytest.raises(RuleAlreadyRetiredError):
            catalog.deactivate(helmet_rule, test_actor_id)

        assert catalog.get_current("1h").id == helmet_rule.id


class TestSeed:
    def test_seed_is_idempotent_by_code(self, catalog, helmet_rule, test_actor_id):
        definitions = [
            make_definition("1h", HELMET_SCHEDULE),
            make_definition("1j4", HELMET_SCHEDULE),
        ]

        created = catalog.seed(definitions, test_actor_id)
        again = catalog.seed(definitions, test_actor_id)

        assert [r.code for r in created] == ["1j4"]
        assert again == []
        assert [r.code for r in catalog.list_active()] == ["1h", "1j4"]

    def test_seed_logs_counts(self, catalog, helmet_rule, test_actor_id, captured_logs):
        catalog.seed(
            [make_definition("1h", HELMET_SCHEDULE), make_definition("1j4", HELMET_SCHEDULE)],
            test_actor_id,
        )

        [seeded] = [r for r in captured_logs() if r["message"] == "violation_catalog_seeded"]
        assert seeded["created_count"] == 1
        assert seeded["skipped"] == 1
