"""
CitationSelector and ContestSelector listings and statistics.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from citation_kernel.domain.citation_lifecycle import CitationStatus
from citation_kernel.domain.contest_workflow import ContestStatus
from citation_kernel.selectors.citation_selector import CitationSelector
from citation_kernel.selectors.contest_selector import ContestSelector


class TestCitationListings:
    def test_by_driver_newest_first_without_void(
        self, session, citation_service, issue, helmet_rule, driver_id, deterministic_clock, test_actor_id,
    ):
        first = issue("1h")
        deterministic_clock.advance(60)
        second = issue("1h")
        deterministic_clock.advance(60)
        voided = issue("1h")
        citation_service.void_citation(voided.id, "duplicate", test_actor_id)
        selector = CitationSelector(session)

        assert [c.citation_no for c in selector.list_by_driver(driver_id)] == [
            second.citation_no, first.citation_no,
        ]
        assert len(selector.list_by_driver(driver_id, include_void=True)) == 3

    def test_get_by_number(self, session, issue, helmet_rule):
        citation = issue("1h")
        selector = CitationSelector(session)

        summary = selector.get_by_number(citation.citation_no)

        assert summary.id == citation.id
        assert summary.status is CitationStatus.PENDING
        assert selector.get_by_number("TCT-1999-000001") is None

    def test_overdue_listing_includes_partially_paid(
        self, session, citation_service, issue, helmet_rule, deterministic_clock, past_due, test_actor_id,
    ):
        unpaid = issue("1h", driver=uuid4())
        partial = issue("1h", driver=uuid4())
        settled = issue("1h", driver=uuid4())
        citation_service.record_payment(partial.id, "100", test_actor_id)
        citation_service.record_payment(settled.id, "1500", test_actor_id)
        later = issue("1h", driver=uuid4(), due_date=deterministic_clock.now() + timedelta(days=60))
        past_due()

        overdue = CitationSelector(session).list_overdue(deterministic_clock.now())

        numbers = {c.citation_no for c in overdue}
        assert numbers == {unpaid.citation_no, partial.citation_no}
        assert later.citation_no not in numbers

    def test_statistics_exclude_void(self, session, citation_service, issue, helmet_rule, test_actor_id):
        pending = issue("1h", driver=uuid4())
        partial = issue("1h", driver=uuid4())
        paid = issue("1h", driver=uuid4())
        voided = issue("1h", driver=uuid4())
        citation_service.record_payment(partial.id, "500", test_actor_id)
        citation_service.record_payment(paid.id, "1500", test_actor_id)
        citation_service.void_citation(voided.id, "duplicate", test_actor_id)

        stats = CitationSelector(session).statistics()

        assert pending.status == CitationStatus.PENDING.value
        assert stats.total == 3
        assert stats.total_amount == Decimal("4500")
        assert stats.collected == Decimal("2000")
        assert (stats.pending, stats.partially_paid, stats.paid) == (1, 1, 1)
        assert stats.overdue == stats.contested == stats.dismissed == 0

    def test_statistics_count_lapsed_pending_as_overdue(
        self, session, citation_service, issue, helmet_rule, test_actor_id, deterministic_clock,
    ):
        lapsed = issue("1h", driver=uuid4())
        partial = issue("1h", driver=uuid4())
        citation_service.record_payment(partial.id, "500", test_actor_id)
        deterministic_clock.advance_days(30)
        selector = CitationSelector(session)

        stored = selector.statistics()
        evaluated = selector.statistics(deterministic_clock.now())

        assert lapsed.status == CitationStatus.PENDING.value
        assert (stored.pending, stored.overdue) == (1, 0)
        assert (evaluated.pending, evaluated.overdue) == (0, 1)
        assert evaluated.partially_paid == 1


class TestContestListings:
    def test_pending_history_and_statistics(
        self, session, contest_service, issue, helmet_rule, test_actor_id, deterministic_clock,
    ):
        driver_a, driver_b = uuid4(), uuid4()
        open_contest = contest_service.submit_contest(issue("1h", driver=driver_a).id, "not me", driver_a)
        deterministic_clock.advance(60)
        closed = contest_service.submit_contest(issue("1h", driver=driver_b).id, "not me", driver_b)
        contest_service.move_to_review(closed.id, test_actor_id)
        contest_service.resolve_contest(closed.id, False, "no merit", test_actor_id)
        selector = ContestSelector(session)

        assert [c.contest_no for c in selector.list_pending()] == [open_contest.contest_no]
        assert [e.status for e in selector.history(closed.id)] == [
            ContestStatus.SUBMITTED, ContestStatus.UNDER_REVIEW, ContestStatus.REJECTED,
        ]
        assert [c.id for c in selector.list_by_driver(driver_b)] == [closed.id]
        assert selector.get_open_for_citation(closed.citation_id) is None
        assert selector.get_open_for_citation(open_contest.citation_id).contest_no == open_contest.contest_no

        stats = selector.statistics()
        assert stats.total == 2
        assert stats.submitted == 1
        assert stats.rejected == 1
        assert stats.approved == stats.withdrawn == stats.under_review == 0

    def test_list_by_citation_keeps_resubmissions(
        self, session, contest_service, issue, helmet_rule, driver_id, test_actor_id, deterministic_clock,
    ):
        citation = issue("1h")
        first = contest_service.submit_contest(citation.id, "not me", driver_id)
        contest_service.resolve_contest(first.id, False, "no merit", test_actor_id)
        deterministic_clock.advance(60)
        second = contest_service.submit_contest(citation.id, "new evidence", driver_id)

        summaries = ContestSelector(session).list_by_citation(citation.id)

        assert [c.contest_no for c in summaries] == [first.contest_no, second.contest_no]
        assert summaries[0].resolution == "no merit"
