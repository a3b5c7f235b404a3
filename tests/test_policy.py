"""
Тесты политики авторизации.
"""

import pytest

from core.categories import TicketCategory
from core.exceptions import UnauthorizedError
from core.policy import ADMIN_ONLY_MESSAGE, STAFF_ONLY_MESSAGE, AuthorizationPolicy
from tests.conftest import BOOKINGS_ROLE, HR_ROLE, SUPPORT_ROLE, make_member


class TestRolesFor:
    """Роли персонала по категориям."""

    def test_single_role(self, policy):
        assert policy.roles_for(TicketCategory.SUPPORT) == frozenset({SUPPORT_ROLE})

    def test_invalid_ids_are_dropped(self, policy):
        assert policy.roles_for(TicketCategory.HR) == frozenset({HR_ROLE})

    def test_categories_share_staff_group(self, policy):
        assert policy.roles_for("joinTeam") == policy.roles_for(TicketCategory.HR)

    def test_duplicates_collapse(self):
        policy = AuthorizationPolicy({"bookings": [BOOKINGS_ROLE, str(BOOKINGS_ROLE)]})
        assert policy.roles_for(TicketCategory.BOOK_US) == frozenset({BOOKINGS_ROLE})

    def test_unconfigured_group_is_empty(self, policy):
        assert policy.roles_for(TicketCategory.FOUNDERS) == frozenset()


class TestIsStaff:
    """Проверка персонала."""

    def test_member_of_category_role(self, policy, support_staff):
        assert policy.is_staff(support_staff, TicketCategory.SUPPORT)

    def test_role_of_other_category(self, policy, support_staff):
        assert not policy.is_staff(support_staff, TicketCategory.HR)

    def test_admin_is_always_staff(self, policy, admin):
        for category in TicketCategory:
            assert policy.is_staff(admin, category)

    def test_regular_user(self, policy, requester):
        assert not policy.is_staff(requester, TicketCategory.SUPPORT)

    def test_actor_without_roles_attribute(self, policy):
        assert not policy.is_staff(object(), TicketCategory.SUPPORT)


class TestRequire:
    def test_require_staff_raises(self, policy, requester):
        with pytest.raises(UnauthorizedError) as exc_info:
            policy.require_staff(requester, TicketCategory.SUPPORT, action="close")

        assert str(exc_info.value) == STAFF_ONLY_MESSAGE
        assert exc_info.value.action == "close"

    def test_require_admin(self, policy, support_staff, admin):
        policy.require_admin(admin)

        with pytest.raises(UnauthorizedError, match=ADMIN_ONLY_MESSAGE):
            policy.require_admin(support_staff)

    def test_staff_role_is_not_admin(self, policy):
        member = make_member(1, role_ids=(SUPPORT_ROLE,))
        assert not policy.is_admin(member)
