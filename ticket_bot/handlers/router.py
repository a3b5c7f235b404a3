"""
Маршрутизация взаимодействий Discord.

Каждое входящее взаимодействие попадает ровно в один обработчик
по типу и идентификатору:
- command: имя slash-команды
- button: custom_id кнопки (точное совпадение или префикс)
- select: custom_id select-меню
- modal: custom_id модальной формы (точное совпадение или префикс)

Все обработчики выполняются через safe_dispatch: ошибка логируется
и превращается в ответ пользователю, процесс не падает.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Set, Tuple

import discord
import structlog

from core.lifecycle import TicketLifecycle
from core.policy import AuthorizationPolicy
from core.quota import QuotaGuard
from database.registry import TicketRegistry
from database.store import TicketStore
from ticket_bot.handlers.common import custom_id_of
from ticket_bot.handlers.error_handler import handle_interaction_error
from utils.truckersmp import TruckersMPClient


logger = structlog.get_logger()


KIND_COMMAND = "command"
KIND_BUTTON = "button"
KIND_SELECT = "select"
KIND_MODAL = "modal"

KINDS = (KIND_COMMAND, KIND_BUTTON, KIND_SELECT, KIND_MODAL)


# ============================================================
# ЗАВИСИМОСТИ ОБРАБОТЧИКОВ
# ============================================================

@dataclass
class BotContext:
    """
    Компоненты, доступные обработчикам.

    Передаётся в каждый обработчик вторым аргументом.
    """
    store: TicketStore
    registry: TicketRegistry
    lifecycle: TicketLifecycle
    policy: AuthorizationPolicy
    quota: QuotaGuard
    gateway: Any
    truckersmp: Optional[TruckersMPClient] = None
    _tasks: Set["asyncio.Task[Any]"] = field(default_factory=set, repr=False)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> "asyncio.Task[Any]":
        """Запустить фоновую задачу после ответа пользователю."""
        task = asyncio.get_running_loop().create_task(self._guarded(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guarded(coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except Exception as e:
            logger.error("background_task_failed", task=name, error=str(e), exc_info=True)

    async def drain(self) -> None:
        """Дождаться фоновых задач и отложенных удалений каналов."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.lifecycle.drain()


Handler = Callable[..., Awaitable[None]]


# ============================================================
# РОУТЕР
# ============================================================

class InteractionRouter:
    """
    Таблицы обработчиков.

    Роутеры вкладываются друг в друга через include_router:
    поиск идёт сначала по своим таблицам, затем по дочерним роутерам.
    """

    def __init__(self, name: str = "root"):
        self.name = name
        self._exact: Dict[str, Dict[str, Handler]] = {kind: {} for kind in KINDS}
        self._prefixes: Dict[str, List[Tuple[str, Handler]]] = {kind: [] for kind in KINDS}
        self._children: List["InteractionRouter"] = []

    def include_router(self, router: "InteractionRouter") -> "InteractionRouter":
        if router is self:
            raise ValueError("Router cannot include itself")
        self._children.append(router)
        return router

    def register(self, kind: str, handler: Handler, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        """
        Зарегистрировать обработчик.

        Raises:
            ValueError: не задан ключ или ключ уже занят
        """
        if kind not in KINDS:
            raise ValueError(f"Unknown interaction kind: {kind}")
        if (key is None) == (prefix is None):
            raise ValueError("Exactly one of key or prefix must be given")

        if key is not None:
            if key in self._exact[kind]:
                raise ValueError(f"{kind} handler for '{key}' is already registered")
            self._exact[kind][key] = handler
            return

        self._prefixes[kind].append((prefix, handler))
        # Длинные префиксы проверяются первыми
        self._prefixes[kind].sort(key=lambda item: len(item[0]), reverse=True)

    # ==================== DECORATORS ====================

    def _decorator(self, kind: str, key: Optional[str], prefix: Optional[str]) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.register(kind, handler, key=key, prefix=prefix)
            return handler
        return decorator

    def command(self, name: str) -> Callable[[Handler], Handler]:
        return self._decorator(KIND_COMMAND, name, None)

    def button(self, custom_id: Optional[str] = None, *, prefix: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self._decorator(KIND_BUTTON, custom_id, prefix)

    def select(self, custom_id: str) -> Callable[[Handler], Handler]:
        return self._decorator(KIND_SELECT, custom_id, None)

    def modal(self, custom_id: Optional[str] = None, *, prefix: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self._decorator(KIND_MODAL, custom_id, prefix)

    # ==================== LOOKUP ====================

    def resolve(self, kind: str, key: str) -> Optional[Handler]:
        """Найти обработчик: точное совпадение, префикс, дочерние роутеры."""
        handler = self._exact.get(kind, {}).get(key)
        if handler is not None:
            return handler

        for prefix, prefixed in self._prefixes.get(kind, []):
            if key.startswith(prefix):
                return prefixed

        for child in self._children:
            handler = child.resolve(kind, key)
            if handler is not None:
                return handler
        return None


# ============================================================
# ДИСПЕТЧЕР
# ============================================================

def interaction_kind(interaction: discord.Interaction) -> Optional[str]:
    """Тип взаимодействия в терминах роутера."""
    if interaction.type == discord.InteractionType.application_command:
        return KIND_COMMAND
    if interaction.type == discord.InteractionType.modal_submit:
        return KIND_MODAL
    if interaction.type == discord.InteractionType.component:
        component_type = (interaction.data or {}).get("component_type")
        if component_type == discord.ComponentType.button.value:
            return KIND_BUTTON
        return KIND_SELECT
    return None


class InteractionDispatcher:
    """Вызов обработчиков с изоляцией ошибок."""

    def __init__(self, router: InteractionRouter, context: BotContext):
        self.router = router
        self.context = context

    async def safe_dispatch(
        self,
        interaction: discord.Interaction,
        handler: Handler,
        context: str,
        **options: Any,
    ) -> bool:
        """
        Выполнить обработчик.

        Любая ошибка логируется и превращается в ответ пользователю.

        Returns:
            True если обработчик завершился без ошибок
        """
        try:
            await handler(interaction, self.context, **options)
            return True
        except Exception as e:
            await handle_interaction_error(interaction, e, context=context)
            return False

    async def dispatch(self, interaction: discord.Interaction) -> bool:
        """
        Направить компонент или модалку в обработчик.

        Slash-команды сюда не попадают: их вызывает CommandTree
        через run_command.

        Returns:
            True если обработчик найден
        """
        kind = interaction_kind(interaction)
        if kind is None or kind == KIND_COMMAND:
            return False

        key = custom_id_of(interaction)
        handler = self.router.resolve(kind, key)
        if handler is None:
            logger.debug("interaction_unhandled", kind=kind, custom_id=key)
            return False

        logger.debug(
            "interaction_dispatched",
            kind=kind,
            custom_id=key,
            user_id=str(interaction.user.id) if interaction.user else None,
            channel_id=str(interaction.channel_id),
        )
        await self.safe_dispatch(interaction, handler, context=f"{kind}:{key}")
        return True

    async def run_command(self, name: str, interaction: discord.Interaction, **options: Any) -> bool:
        """Выполнить обработчик slash-команды."""
        handler = self.router.resolve(KIND_COMMAND, name)
        if handler is None:
            logger.warning("command_unhandled", command=name)
            return False

        logger.debug(
            "command_dispatched",
            command=name,
            user_id=str(interaction.user.id) if interaction.user else None,
            channel_id=str(interaction.channel_id),
        )
        await self.safe_dispatch(interaction, handler, context=f"{KIND_COMMAND}:{name}", **options)
        return True
