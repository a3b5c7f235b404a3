"""
Машина состояний тикета.

Состояния:
- OPEN - тикет открыт
- PENDING_CLOSE - ожидает подтверждения закрытия (только в памяти,
  живёт в рамках одного диалога подтверждения)
- CLOSED - закрыт, автор не может писать
- DELETED - запись удалена (терминальное)

Переходы выполняют побочные эффекты через TicketGateway (Discord),
запись сохраняется через TicketRegistry. Проверки прав и лимитов
выполняет роутер до вызова машины состояний.

Отмены нет: начатый переход либо выполняется до конца, либо падает,
частично применённые изменения прав не откатываются.

Ошибка сохранения не прерывает переход: изменение уже в памяти,
уведомления в канале публикуются, и только после этого
PersistenceFailure пробрасывается дальше. Создание тикета ошибку
сохранения не пробрасывает: автору нужна ссылка на канал.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, NamedTuple, Optional, Protocol, Set, Tuple, Union

import structlog

from core.categories import TicketCategory
from core.exceptions import (
    AlreadyRegisteredError,
    CollaboratorFailure,
    InvalidTransitionError,
    PersistenceFailure,
)
from core.validators import build_ticket_channel_name, utc_now
from database.models import TicketRecord
from database.registry import TicketRegistry


logger = structlog.get_logger()


DEFAULT_DELETE_DELAY = 5.0


# ============================================================
# СОСТОЯНИЯ И ПЕРЕХОДЫ
# ============================================================

class TicketState(str, Enum):
    """Состояние тикета."""

    OPEN = "open"
    PENDING_CLOSE = "pending_close"
    CLOSED = "closed"
    DELETED = "deleted"


class TicketEvent(str, Enum):
    """Событие жизненного цикла."""

    CREATE = "create"
    CLOSE_REQUEST = "close-request"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    REOPEN = "reopen"
    DELETE = "delete"


class TicketStateMachine:
    """Таблица допустимых переходов."""

    _TRANSITIONS: Dict[Tuple[Optional[TicketState], TicketEvent], TicketState] = {
        (None, TicketEvent.CREATE): TicketState.OPEN,
        (TicketState.OPEN, TicketEvent.CLOSE_REQUEST): TicketState.PENDING_CLOSE,
        (TicketState.PENDING_CLOSE, TicketEvent.CLOSE_REQUEST): TicketState.PENDING_CLOSE,
        (TicketState.PENDING_CLOSE, TicketEvent.CONFIRM): TicketState.CLOSED,
        (TicketState.PENDING_CLOSE, TicketEvent.CANCEL): TicketState.OPEN,
        # Кнопка "Cancel" на устаревшем подтверждении (после рестарта)
        (TicketState.OPEN, TicketEvent.CANCEL): TicketState.OPEN,
        (TicketState.CLOSED, TicketEvent.REOPEN): TicketState.OPEN,
        (TicketState.OPEN, TicketEvent.DELETE): TicketState.DELETED,
        (TicketState.PENDING_CLOSE, TicketEvent.DELETE): TicketState.DELETED,
        (TicketState.CLOSED, TicketEvent.DELETE): TicketState.DELETED,
    }

    @classmethod
    def next_state(cls, current: Optional[TicketState], event: TicketEvent) -> TicketState:
        """
        Raises:
            InvalidTransitionError: переход не разрешён
        """
        try:
            return cls._TRANSITIONS[(current, event)]
        except KeyError:
            state = current.value if current is not None else "none"
            raise InvalidTransitionError(state, event.value) from None


# ============================================================
# ВНЕШНИЙ ИНТЕРФЕЙС ПЛАТФОРМЫ
# ============================================================

class TicketGateway(Protocol):
    """
    Побочные эффекты на стороне чат-платформы.

    Каналы, участники и гильдии передаются как непрозрачные объекты;
    от канала требуется только атрибут id. Ошибки платформы
    оборачиваются в CollaboratorFailure.
    """

    async def create_ticket_channel(
        self,
        guild: Any,
        requester: Any,
        category: TicketCategory,
        name: str,
        staff_role_ids: FrozenSet[int],
    ) -> Any: ...

    async def post_ticket_opened(
        self,
        channel: Any,
        requester: Any,
        record: TicketRecord,
        staff_role_ids: FrozenSet[int],
    ) -> None: ...

    async def post_ticket_registered(self, channel: Any, record: TicketRecord) -> None: ...

    async def set_requester_send(self, channel: Any, user_id: str, allowed: bool) -> None: ...

    async def post_ticket_closed(self, channel: Any, actor: Any) -> None: ...

    async def post_ticket_reopened(self, channel: Any, actor: Any) -> None: ...

    async def post_transcript(self, channel: Any, actor: Any, record: TicketRecord) -> None: ...

    async def archive_transcript(self, channel: Any, actor: Any, record: TicketRecord) -> None: ...

    async def delete_channel(self, channel: Any) -> None: ...

    async def log_action(self, actor: Any, record: TicketRecord, action: str) -> None: ...


class DeleteOutcome(NamedTuple):
    """Результат удаления тикета."""
    record: TicketRecord
    transcript_archived: bool


# ============================================================
# МАШИНА СОСТОЯНИЙ
# ============================================================

class TicketLifecycle:
    """
    Переходы жизненного цикла тикета и их побочные эффекты.

    PENDING_CLOSE хранится только в памяти (_pending_close)
    и не попадает в хранилище.
    """

    def __init__(
        self,
        registry: TicketRegistry,
        gateway: TicketGateway,
        staff_roles_for: Callable[[TicketCategory], FrozenSet[int]],
        delete_delay: float = DEFAULT_DELETE_DELAY,
        clock: Callable[[], Any] = utc_now,
    ):
        """
        Args:
            registry: Реестр тикетов
            gateway: Адаптер чат-платформы
            staff_roles_for: Роли персонала категории (AuthorizationPolicy.roles_for)
            delete_delay: Задержка удаления канала после удаления записи (сек)
            clock: Источник текущего времени (UTC)
        """
        self.registry = registry
        self.gateway = gateway
        self.staff_roles_for = staff_roles_for
        self.delete_delay = delete_delay
        self.clock = clock
        self._pending_close: Dict[str, str] = {}
        self._background: Set["asyncio.Task[None]"] = set()

    # ==================== STATE ====================

    def state_of(self, channel_id: str) -> TicketState:
        """
        Текущее состояние тикета.

        Raises:
            NotATicketError: записи нет (тикет удалён или не существовал)
        """
        record = self.registry.require(channel_id)
        if record.closed:
            return TicketState.CLOSED
        if record.channel_id in self._pending_close:
            return TicketState.PENDING_CLOSE
        return TicketState.OPEN

    def is_pending_close(self, channel_id: str) -> bool:
        return str(channel_id) in self._pending_close

    def _transition(self, channel_id: str, event: TicketEvent) -> TicketRecord:
        """
        Проверить допустимость перехода для текущей записи.

        Raises:
            NotATicketError: канал не тикет
            InvalidTransitionError: переход из текущего состояния запрещён
        """
        record = self.registry.require(channel_id)
        TicketStateMachine.next_state(self.state_of(channel_id), event)
        return record

    async def _save(self, record: TicketRecord) -> Optional[PersistenceFailure]:
        """Сохранить запись; ошибку записи вернуть, а не бросить."""
        try:
            await self.registry.set(record)
        except PersistenceFailure as e:
            return e
        return None

    # ==================== CREATE ====================

    async def create(
        self,
        guild: Any,
        requester: Any,
        category: Union[TicketCategory, str],
        form_data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[TicketRecord, Any]:
        """
        Создать тикет: канал, запись, права автора, уведомление персонала.

        Лимиты проверяются до вызова (QuotaGuard в роутере).

        Returns:
            (запись, канал)

        Raises:
            CollaboratorFailure: не удалось создать канал или отправить сообщения

        Канал рабочий, даже если запись не сохранилась на диск:
        ошибка сохранения уже залогирована реестром, пользователь
        получает ссылку на канал.
        """
        category = TicketCategory.parse(category)
        TicketStateMachine.next_state(None, TicketEvent.CREATE)

        user_id = str(requester.id)
        existing = [
            t for t in self.registry.open_tickets_for(user_id)
            if t.category == category
        ]
        name = build_ticket_channel_name(
            category.value,
            getattr(requester, "name", None) or user_id,
            len(existing),
        )
        staff_role_ids = self.staff_roles_for(category)

        channel = await self.gateway.create_ticket_channel(
            guild, requester, category, name, staff_role_ids,
        )

        record = TicketRecord(
            channel_id=str(channel.id),
            user_id=user_id,
            category=category,
            created_at=self.clock(),
            form_data=form_data,
        )
        failure = await self._save(record)

        await self.gateway.post_ticket_opened(channel, requester, record, staff_role_ids)
        await self.gateway.log_action(requester, record, "created")

        logger.info(
            "ticket_created",
            channel_id=record.channel_id,
            user_id=user_id,
            category=category.value,
            with_form=form_data is not None,
            persisted=failure is None,
        )
        return record, channel

    async def register_existing(
        self,
        channel: Any,
        user_id: str,
        category: Union[TicketCategory, str],
        actor: Any,
    ) -> TicketRecord:
        """
        Привязать существующий канал к системе тикетов.

        Raises:
            InvalidCategoryError: неизвестная категория
            AlreadyRegisteredError: канал уже тикет
        """
        category = TicketCategory.parse(category)
        channel_id = str(channel.id)

        existing = self.registry.get(channel_id)
        if existing is not None:
            raise AlreadyRegisteredError(channel_id, existing.category.value)

        record = TicketRecord(
            channel_id=channel_id,
            user_id=str(user_id),
            category=category,
            created_at=self.clock(),
            manually_registered=True,
        )
        failure = await self._save(record)

        await self.gateway.post_ticket_registered(channel, record)
        await self.gateway.log_action(actor, record, "manually-registered")
        if failure is not None:
            raise failure

        logger.info(
            "ticket_registered_manually",
            channel_id=channel_id,
            user_id=str(user_id),
            category=category.value,
            actor_id=str(actor.id),
        )
        return record

    # ==================== CLOSE ====================

    async def request_close(self, channel_id: str, actor: Any) -> TicketRecord:
        """
        Запрос на закрытие: OPEN -> PENDING_CLOSE.

        Запись не меняется; подтверждение показывает роутер.
        """
        channel_id = str(channel_id)
        record = self._transition(channel_id, TicketEvent.CLOSE_REQUEST)
        self._pending_close[channel_id] = str(actor.id)

        logger.info("ticket_close_requested", channel_id=channel_id, actor_id=str(actor.id))
        return record

    async def cancel_close(self, channel_id: str, actor: Any) -> TicketRecord:
        """Отмена закрытия: PENDING_CLOSE -> OPEN, запись не меняется."""
        channel_id = str(channel_id)
        record = self._transition(channel_id, TicketEvent.CANCEL)
        self._pending_close.pop(channel_id, None)

        logger.info("ticket_close_cancelled", channel_id=channel_id, actor_id=str(actor.id))
        return record

    async def confirm_close(self, channel: Any, actor: Any) -> TicketRecord:
        """
        Подтверждение закрытия: PENDING_CLOSE -> CLOSED.

        Отзывает право автора писать, отмечает closed/closed_at/closed_by,
        публикует уведомление с кнопками переоткрытия и удаления.
        """
        channel_id = str(channel.id)
        record = self._transition(channel_id, TicketEvent.CONFIRM)

        await self.gateway.set_requester_send(channel, record.user_id, False)

        updated = record.copy(
            closed=True,
            closed_at=self.clock(),
            closed_by=str(actor.id),
        )
        self._pending_close.pop(channel_id, None)
        failure = await self._save(updated)

        await self.gateway.post_ticket_closed(channel, actor)
        await self.gateway.log_action(actor, updated, "closed")
        if failure is not None:
            raise failure

        logger.info("ticket_closed", channel_id=channel_id, actor_id=str(actor.id))
        return updated

    # ==================== REOPEN ====================

    async def reopen(self, channel: Any, actor: Any) -> TicketRecord:
        """
        Переоткрытие: CLOSED -> OPEN.

        Возвращает автору право писать, снимает closed,
        отмечает reopened_at/reopened_by. closed_at не очищается.
        """
        channel_id = str(channel.id)
        record = self._transition(channel_id, TicketEvent.REOPEN)

        await self.gateway.set_requester_send(channel, record.user_id, True)

        updated = record.copy(
            closed=False,
            reopened_at=self.clock(),
            reopened_by=str(actor.id),
        )
        failure = await self._save(updated)

        await self.gateway.post_ticket_reopened(channel, actor)
        await self.gateway.log_action(actor, updated, "reopened")
        if failure is not None:
            raise failure

        logger.info("ticket_reopened", channel_id=channel_id, actor_id=str(actor.id))
        return updated

    # ==================== DELETE ====================

    async def delete(self, channel: Any, actor: Any) -> DeleteOutcome:
        """
        Удаление: OPEN/CLOSED -> DELETED.

        1. Транскрипт в архив (ошибка не фатальна)
        2. Удаление записи
        3. Удаление канала через delete_delay секунд

        Запись удаляется до канала: в окне задержки канал ещё виден,
        но любые события по нему получают NotATicket.
        """
        channel_id = str(channel.id)
        record = self._transition(channel_id, TicketEvent.DELETE)

        transcript_archived = True
        try:
            await self.gateway.archive_transcript(channel, actor, record)
        except CollaboratorFailure as e:
            transcript_archived = False
            logger.warning(
                "ticket_delete_transcript_failed",
                channel_id=channel_id,
                error=str(e),
            )

        await self.gateway.log_action(actor, record, "deleted")

        self._pending_close.pop(channel_id, None)
        try:
            await self.registry.delete(channel_id)
        finally:
            self._schedule_channel_delete(channel)

        logger.info(
            "ticket_deleted",
            channel_id=channel_id,
            actor_id=str(actor.id),
            transcript_archived=transcript_archived,
            delete_delay=self.delete_delay,
        )
        return DeleteOutcome(record=record, transcript_archived=transcript_archived)

    def _schedule_channel_delete(self, channel: Any) -> None:
        task = asyncio.get_running_loop().create_task(self._delete_channel_later(channel))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _delete_channel_later(self, channel: Any) -> None:
        await asyncio.sleep(self.delete_delay)
        try:
            await self.gateway.delete_channel(channel)
        except CollaboratorFailure as e:
            logger.error(
                "ticket_channel_delete_failed",
                channel_id=str(channel.id),
                error=str(e),
            )

    # ==================== TRANSCRIPT ====================

    async def transcript(self, channel: Any, actor: Any) -> TicketRecord:
        """
        Сохранить транскрипт тикета в канал и в архив.

        Не является переходом состояния; прав персонала не требует.

        Raises:
            NotATicketError: канал не тикет
            TranscriptError: не удалось сгенерировать транскрипт
        """
        record = self.registry.require(str(channel.id))
        await self.gateway.post_transcript(channel, actor, record)
        await self.gateway.log_action(actor, record, "transcript")
        return record

    # ==================== SHUTDOWN ====================

    async def drain(self) -> None:
        """Дождаться отложенных удалений каналов."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


__all__ = [
    "TicketState",
    "TicketEvent",
    "TicketStateMachine",
    "TicketGateway",
    "TicketLifecycle",
    "DeleteOutcome",
]
