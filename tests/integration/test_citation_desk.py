"""
End-to-end scenarios through the CitationDesk facade.

Each test wires the real services from the shipped configuration and
catalog seed, then drives them the way the HTTP layer would.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from citation_kernel.domain.citation_lifecycle import CitationStatus
from citation_kernel.domain.contest_workflow import ContestStatus
from citation_kernel.domain.fine_schedule import OffenseTier, parse_schedule
from citation_kernel.exceptions import (
    CitationAlreadyVoidedError,
    ConflictError,
    DuplicateOpenContestError,
    NotContestableError,
    ValidationError,
    ViolationRuleNotFoundError,
)


@pytest.fixture
def seeded_desk(desk, test_actor_id):
    desk.seed_catalog(test_actor_id)
    return desk


@pytest.fixture
def issue_at_desk(seeded_desk, driver_id, vehicle_id, location, test_actor_id):
    def _issue(*codes, driver=None, owner_class="private"):
        return seeded_desk.issue_citation(
            driver or driver_id,
            vehicle_id,
            owner_class,
            list(codes),
            location,
            issued_by=test_actor_id,
        )

    return _issue


def _assert_totals(citation):
    assert citation.total_amount == sum(line.fine_amount for line in citation.lines)
    assert citation.amount_due == max(Decimal("0"), citation.total_amount - citation.amount_paid)


class TestSeedAndIssue:
    def test_seed_publishes_shipped_catalog(self, desk, test_actor_id):
        created = desk.seed_catalog(test_actor_id)

        assert len(created) == 8
        assert desk.current_rule("1h").version == 1
        assert desk.seed_catalog(test_actor_id) == []

    def test_first_and_second_helmet_citation(self, issue_at_desk):
        first = issue_at_desk("1h")

        assert first.citation_no == "TCT-2025-000001"
        assert first.status == CitationStatus.PENDING.value
        assert first.total_amount == Decimal("1500")
        assert first.amount_due == Decimal("1500")
        [line] = first.lines
        assert (line.fine_amount, line.offense_ordinal) == (Decimal("1500"), 1)

        second = issue_at_desk("1h")

        assert second.citation_no == "TCT-2025-000002"
        assert (second.lines[0].fine_amount, second.lines[0].offense_ordinal) == (Decimal("3000"), 2)

    def test_progressive_escalation_to_subsequent(self, issue_at_desk):
        fines = [issue_at_desk("1h").lines[0].fine_amount for _ in range(5)]

        assert fines == [Decimal(v) for v in ("1500", "3000", "5000", "10000", "10000")]

    def test_fixed_fine_ignores_ordinal(self, issue_at_desk):
        fines = [issue_at_desk("1i", owner_class="for_hire").lines[0].fine_amount for _ in range(5)]

        assert set(fines) == {Decimal("1000")}

    def test_multi_violation_totals(self, issue_at_desk):
        citation = issue_at_desk("1h", "1j1")

        assert [line.code for line in citation.lines] == ["1h", "1j1"]
        assert citation.total_amount == Decimal("2500")
        _assert_totals(citation)

    def test_quote_matches_issuance(self, seeded_desk, issue_at_desk, driver_id):
        issue_at_desk("1h")

        quote = seeded_desk.quote_fine(driver_id, "1h", "private")

        assert quote.amount == Decimal("3000")
        assert quote.offense_ordinal == 2
        assert quote.tier is OffenseTier.SECOND
        assert issue_at_desk("1h").lines[0].fine_amount == quote.amount


class TestVoidExclusion:
    def test_voided_prior_is_not_counted(self, seeded_desk, issue_at_desk, test_actor_id):
        voided = issue_at_desk("1h")
        issue_at_desk("1h")
        seeded_desk.void_citation(voided.id, "issued to wrong driver", test_actor_id)

        third = issue_at_desk("1h")

        assert third.lines[0].offense_ordinal == 2
        assert third.lines[0].fine_amount == Decimal("3000")

    def test_void_is_not_repeatable(self, seeded_desk, issue_at_desk, test_actor_id, deterministic_clock):
        citation = issue_at_desk("1h")
        seeded_desk.void_citation(citation.id, "duplicate", test_actor_id)
        voided_at = citation.voided_at
        deterministic_clock.advance(60)

        with pytest.raises(CitationAlreadyVoidedError):
            seeded_desk.void_citation(citation.id, "again", uuid4())

        assert citation.voided_at == voided_at
        assert citation.voided_by == test_actor_id
        assert citation.void_reason == "duplicate"


class TestPayments:
    def test_two_halves_settle(self, seeded_desk, issue_at_desk, test_actor_id):
        citation = issue_at_desk("1h")

        seeded_desk.record_payment(citation.id, Decimal("750"), test_actor_id)
        assert citation.status == CitationStatus.PARTIALLY_PAID.value
        assert citation.amount_due == Decimal("750")

        seeded_desk.record_payment(citation.id, Decimal("750"), test_actor_id)
        assert citation.status == CitationStatus.PAID.value
        assert citation.amount_due == Decimal("0")
        _assert_totals(citation)

        stats = seeded_desk.citation_statistics()
        assert stats.paid == 1
        assert stats.collected == Decimal("1500")


class TestContests:
    def test_second_open_contest_is_conflict(self, seeded_desk, issue_at_desk, driver_id):
        citation = issue_at_desk("1h")
        seeded_desk.submit_contest(citation.id, "helmet was worn", driver_id)

        with pytest.raises(DuplicateOpenContestError) as exc_info:
            seeded_desk.submit_contest(citation.id, "second attempt", driver_id)

        assert isinstance(exc_info.value, ConflictError)

    def test_full_review_approve(self, seeded_desk, issue_at_desk, driver_id, test_actor_id):
        citation = issue_at_desk("1h")
        contest = seeded_desk.submit_contest(
            citation.id, "helmet was worn", driver_id, evidence=["s3://evidence/cctv.mp4"],
        )
        assert seeded_desk.get_contest_by_number("CON-2025-000001").id == contest.id
        assert [c.id for c in seeded_desk.pending_contests()] == [contest.id]

        seeded_desk.move_contest_to_review(contest.id, test_actor_id, note="requesting CCTV")
        seeded_desk.resolve_contest(contest.id, True, "CCTV shows helmet", test_actor_id)

        assert citation.status == CitationStatus.DISMISSED.value
        assert seeded_desk.pending_contests() == []
        assert [e.status for e in seeded_desk.contest_history(contest.id)] == [
            ContestStatus.SUBMITTED, ContestStatus.UNDER_REVIEW, ContestStatus.APPROVED,
        ]
        with pytest.raises(NotContestableError):
            seeded_desk.submit_contest(citation.id, "again", driver_id)

    def test_reject_restores_pending_or_partial(self, seeded_desk, issue_at_desk, driver_id, test_actor_id):
        unpaid = issue_at_desk("1h", driver=uuid4())
        partial = issue_at_desk("1h", driver=uuid4())
        seeded_desk.record_payment(partial.id, "750", test_actor_id)

        for citation in (unpaid, partial):
            contest = seeded_desk.submit_contest(citation.id, "disputed", driver_id)
            seeded_desk.resolve_contest(contest.id, False, "no merit", test_actor_id)

        assert unpaid.status == CitationStatus.PENDING.value
        assert partial.status == CitationStatus.PARTIALLY_PAID.value
        assert partial.amount_due == Decimal("750")

    def test_withdraw_restores_pending(self, seeded_desk, issue_at_desk, driver_id):
        citation = issue_at_desk("1h")
        contest = seeded_desk.submit_contest(citation.id, "changed my mind", driver_id)

        seeded_desk.withdraw_contest(contest.id, driver_id)

        assert citation.status == CitationStatus.PENDING.value
        assert seeded_desk.contest_statistics().withdrawn == 1


class TestRuleVersions:
    def test_new_rule_needs_code_title_schedule(self, desk, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            desk.define_rule_version(None, test_actor_id)

        assert set(exc_info.value.field_errors) == {"code", "title", "schedule"}

    def test_new_version_reprices_future_citations_only(self, seeded_desk, issue_at_desk, test_actor_id):
        before = issue_at_desk("1h", driver=uuid4())
        head = seeded_desk.current_rule("1h")
        raised = parse_schedule("progressive", {"private": {"driver": {"first": "2000", "second": "4000"}}})

        successor = seeded_desk.define_rule_version(raised, test_actor_id, group_id=head.group_id)
        after = issue_at_desk("1h", driver=uuid4())

        assert successor.version == 2
        assert seeded_desk.current_rule("1h").id == successor.id
        assert [r.version for r in seeded_desk.rule_history(head.group_id)] == [2, 1]
        assert before.lines[0].fine_amount == Decimal("1500")
        assert before.lines[0].rule_version == 1
        assert after.lines[0].fine_amount == Decimal("2000")
        assert after.lines[0].rule_version == 2

    def test_empty_change_rejected(self, seeded_desk, test_actor_id):
        head = seeded_desk.current_rule("1h")

        with pytest.raises(ValidationError):
            seeded_desk.define_rule_version(None, test_actor_id, group_id=head.group_id)

    def test_define_then_issue_new_code(self, desk, issue_at_desk, test_actor_id):
        schedule = parse_schedule("fixed", {"private": {"driver": "500"}})
        desk.define_rule_version(schedule, test_actor_id, code="LOCAL-1", title="Local ordinance")

        citation = issue_at_desk("LOCAL-1")

        assert citation.total_amount == Decimal("500")

    def test_deactivated_rule_cannot_be_charged(self, seeded_desk, issue_at_desk, test_actor_id):
        rule = seeded_desk.current_rule("1j5")

        seeded_desk.deactivate_rule(rule.id, test_actor_id)

        assert "1j5" not in {r.code for r in seeded_desk.list_active_rules()}
        with pytest.raises(ViolationRuleNotFoundError):
            issue_at_desk("1j5")
