"""
Инициализация модуля handlers.

Экспортирует все роутеры для регистрации в диспетчере.
"""

from .router import (
    BotContext,
    InteractionDispatcher,
    InteractionRouter,
)
from .admin import router as admin_router
from .events import router as events_router
from .tickets import router as tickets_router


def get_main_router() -> InteractionRouter:
    """
    Создаёт и настраивает главный роутер.

    Точные custom_id проверяются раньше префиксов внутри каждого роутера,
    поэтому порядок дочерних роутеров влияет только на префиксы.

    Returns:
        InteractionRouter: Настроенный главный роутер
    """
    main_router = InteractionRouter(name="main")

    main_router.include_router(admin_router)
    main_router.include_router(tickets_router)
    main_router.include_router(events_router)

    return main_router


__all__ = [
    "get_main_router",
    "BotContext",
    "InteractionDispatcher",
    "InteractionRouter",
    "admin_router",
    "events_router",
    "tickets_router",
]
