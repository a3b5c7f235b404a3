"""
Лимиты открытых тикетов.

Два независимых лимита на открытые (не закрытые) тикеты пользователя:
- Общий по всем категориям (по умолчанию 10)
- По одной категории (по умолчанию 3)

Проверяются только при создании тикета по текущему содержимому реестра.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

import structlog

from core.categories import TicketCategory
from core.exceptions import QuotaExceededError
from database.models import TicketRecord


logger = structlog.get_logger()


DEFAULT_MAX_TOTAL = 10
DEFAULT_MAX_PER_CATEGORY = 3

CAP_TOTAL = "total"
CAP_CATEGORY = "category"


@dataclass(frozen=True)
class QuotaDecision:
    """
    Результат проверки лимитов.

    Attributes:
        allowed: Можно ли создать тикет
        cap: Сработавший лимит (CAP_TOTAL / CAP_CATEGORY) или None
        limit: Значение сработавшего лимита
        reason: Сообщение для пользователя
        open_total: Открытых тикетов всего
        open_in_category: Открытых тикетов этой категории
    """
    allowed: bool
    open_total: int
    open_in_category: int
    cap: Optional[str] = None
    limit: Optional[int] = None
    reason: str = ""


class QuotaGuard:
    """Проверка лимитов при создании тикета."""

    def __init__(
        self,
        max_total: int = DEFAULT_MAX_TOTAL,
        max_per_category: int = DEFAULT_MAX_PER_CATEGORY,
    ):
        self.max_total = max_total
        self.max_per_category = max_per_category

    def check(
        self,
        user_id: str,
        category: Union[TicketCategory, str],
        tickets: Iterable[TicketRecord],
    ) -> QuotaDecision:
        """
        Проверить лимиты пользователя.

        Args:
            user_id: ID пользователя
            category: Категория создаваемого тикета
            tickets: Текущие тикеты реестра (учитываются только открытые)

        Returns:
            QuotaDecision
        """
        category = TicketCategory.parse(category)
        user_id = str(user_id)

        user_open = [t for t in tickets if t.user_id == user_id and t.is_open]
        of_category = [t for t in user_open if t.category == category]

        if len(user_open) >= self.max_total:
            return QuotaDecision(
                allowed=False,
                open_total=len(user_open),
                open_in_category=len(of_category),
                cap=CAP_TOTAL,
                limit=self.max_total,
                reason=(
                    f"You have reached the maximum limit of {self.max_total} open tickets. "
                    "Please close some of your existing tickets before creating more."
                ),
            )

        if len(of_category) >= self.max_per_category:
            return QuotaDecision(
                allowed=False,
                open_total=len(user_open),
                open_in_category=len(of_category),
                cap=CAP_CATEGORY,
                limit=self.max_per_category,
                reason=(
                    f"You can only have {self.max_per_category} open {category.label} tickets at once. "
                    f"Please close some of your existing {category.label} tickets before creating more."
                ),
            )

        return QuotaDecision(
            allowed=True,
            open_total=len(user_open),
            open_in_category=len(of_category),
        )

    def enforce(
        self,
        user_id: str,
        category: Union[TicketCategory, str],
        tickets: Iterable[TicketRecord],
    ) -> QuotaDecision:
        """
        Проверить лимиты и бросить исключение при превышении.

        Raises:
            QuotaExceededError: один из лимитов достигнут
        """
        decision = self.check(user_id, category, tickets)
        if not decision.allowed:
            logger.info(
                "ticket_quota_exceeded",
                user_id=str(user_id),
                category=TicketCategory.parse(category).value,
                cap=decision.cap,
                limit=decision.limit,
            )
            raise QuotaExceededError(
                decision.reason,
                cap=decision.cap or CAP_TOTAL,
                limit=decision.limit or 0,
                category=TicketCategory.parse(category).value,
            )
        return decision
