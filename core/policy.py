"""
Политика авторизации персонала.

Определяет, какие роли видят тикеты категории и могут ими управлять:
- roles_for(category) - набор ID ролей персонала для категории
- is_staff(actor, category) - администратор или член роли категории

Закрытие, удаление и переоткрытие требуют is_staff.
Создание, просмотр подтверждения и транскрипты - нет.
"""

from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Union

import structlog

from core.categories import TicketCategory
from core.exceptions import UnauthorizedError
from core.validators import is_valid_snowflake, normalize_id_list


logger = structlog.get_logger()


STAFF_ONLY_MESSAGE = "Only staff members can close, delete, or reopen tickets."
ADMIN_ONLY_MESSAGE = "You need administrator permissions to do this."


class AuthorizationPolicy:
    """
    Отображение категория -> роли персонала.

    Конфиг staff_roles задаёт роли по группам (support, hr, bookings, ...),
    категория ссылается на группу через TicketCategory.staff_group.
    """

    def __init__(self, staff_roles: Mapping[str, Any]):
        """
        Args:
            staff_roles: Группа -> ID роли или список ID
        """
        self._staff_roles: Dict[str, List[str]] = {
            str(group): normalize_id_list(value) for group, value in staff_roles.items()
        }
        self._cache: Dict[TicketCategory, FrozenSet[int]] = {}

    def roles_for(self, category: Union[TicketCategory, str]) -> FrozenSet[int]:
        """
        Роли персонала для категории.

        Дубликаты схлопываются, невалидные ID отбрасываются с предупреждением.
        """
        category = TicketCategory.parse(category)
        cached = self._cache.get(category)
        if cached is not None:
            return cached

        roles = set()
        for role_id in self._staff_roles.get(category.staff_group, []):
            if not is_valid_snowflake(role_id):
                logger.warning(
                    "invalid_staff_role_id",
                    role_id=role_id,
                    category=category.value,
                    staff_group=category.staff_group,
                )
                continue
            roles.add(int(role_id))

        result = frozenset(roles)
        self._cache[category] = result
        return result

    @staticmethod
    def is_admin(actor: Any) -> bool:
        """Есть ли у участника право Administrator."""
        permissions = getattr(actor, "guild_permissions", None)
        return bool(getattr(permissions, "administrator", False))

    @staticmethod
    def _role_ids(actor: Any) -> Iterable[int]:
        return {int(role.id) for role in getattr(actor, "roles", None) or []}

    def is_staff(self, actor: Any, category: Union[TicketCategory, str]) -> bool:
        """
        Может ли участник управлять тикетом категории.

        Проверяется текущая категория тикета, а не заявленная роль.
        """
        if self.is_admin(actor):
            return True
        return bool(set(self._role_ids(actor)) & self.roles_for(category))

    def require_staff(self, actor: Any, category: Union[TicketCategory, str], action: str = "") -> None:
        """
        Raises:
            UnauthorizedError: участник не персонал категории
        """
        if not self.is_staff(actor, category):
            logger.info(
                "staff_check_denied",
                actor_id=getattr(actor, "id", None),
                category=TicketCategory.parse(category).value,
                action=action,
            )
            raise UnauthorizedError(STAFF_ONLY_MESSAGE, action=action)

    def require_admin(self, actor: Any, action: str = "") -> None:
        """
        Raises:
            UnauthorizedError: у участника нет права Administrator
        """
        if not self.is_admin(actor):
            logger.info(
                "admin_check_denied",
                actor_id=getattr(actor, "id", None),
                action=action,
            )
            raise UnauthorizedError(ADMIN_ONLY_MESSAGE, action=action)
