"""
Тесты лимитов открытых тикетов.
"""

from datetime import datetime, timezone

import pytest

from core.categories import TicketCategory
from core.exceptions import QuotaExceededError
from core.quota import CAP_CATEGORY, CAP_TOTAL, QuotaGuard
from database.models import TicketRecord


USER = "500000000000000001"


def tickets_of(category: TicketCategory, count: int, user_id: str = USER, closed: bool = False):
    return [
        TicketRecord(
            channel_id=f"{category.value}-{i}-{closed}",
            user_id=user_id,
            category=category,
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            closed=closed,
        )
        for i in range(count)
    ]


@pytest.fixture
def guard():
    return QuotaGuard(max_total=10, max_per_category=3)


class TestQuotaGuard:
    """Общий лимит и лимит на категорию."""

    def test_empty_registry_allows(self, guard):
        decision = guard.check(USER, TicketCategory.SUPPORT, [])

        assert decision.allowed
        assert decision.cap is None

    def test_total_cap_denies_any_category(self, guard):
        tickets = []
        for category in (TicketCategory.SUPPORT, TicketCategory.HR, TicketCategory.FOUNDERS):
            tickets += tickets_of(category, 3)
        tickets += tickets_of(TicketCategory.PARTNERSHIP, 1)

        for category in TicketCategory:
            decision = guard.check(USER, category, tickets)
            assert not decision.allowed
            assert decision.cap == CAP_TOTAL
            assert "maximum limit of 10" in decision.reason

    def test_category_cap_is_per_category(self, guard):
        tickets = tickets_of(TicketCategory.SUPPORT, 3)

        denied = guard.check(USER, TicketCategory.SUPPORT, tickets)
        allowed = guard.check(USER, TicketCategory.HR, tickets)

        assert not denied.allowed
        assert denied.cap == CAP_CATEGORY
        assert denied.limit == 3
        assert "3 open Support tickets" in denied.reason
        assert allowed.allowed

    def test_closed_tickets_do_not_count(self, guard):
        tickets = tickets_of(TicketCategory.SUPPORT, 5, closed=True)

        assert guard.check(USER, TicketCategory.SUPPORT, tickets).allowed

    def test_other_users_do_not_count(self, guard):
        tickets = tickets_of(TicketCategory.SUPPORT, 3, user_id="42")

        assert guard.check(USER, TicketCategory.SUPPORT, tickets).allowed

    def test_custom_caps(self):
        guard = QuotaGuard(max_total=2, max_per_category=5)
        tickets = tickets_of(TicketCategory.SUPPORT, 2)

        decision = guard.check(USER, TicketCategory.SUPPORT, tickets)

        assert decision.cap == CAP_TOTAL
        assert decision.limit == 2

    def test_enforce_raises_with_cap(self, guard):
        tickets = tickets_of(TicketCategory.BOOK_US, 3)

        with pytest.raises(QuotaExceededError) as exc_info:
            guard.enforce(USER, "bookUs", tickets)

        assert exc_info.value.cap == CAP_CATEGORY
        assert exc_info.value.limit == 3
        assert exc_info.value.category == "bookUs"

    def test_enforce_returns_decision(self, guard):
        decision = guard.enforce(USER, TicketCategory.HR, tickets_of(TicketCategory.HR, 2))

        assert decision.allowed
        assert decision.open_in_category == 2
