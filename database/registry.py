"""
Реестр активных тикетов.

Кэш хранилища в памяти процесса:
- Ленивая загрузка при первом обращении (флаг loaded)
- Явная перезагрузка по требованию
- Чтение без инвалидации (файл не перечитывается на каждый запрос)
- Каждое изменение сохраняется через TicketStore до ответа пользователю

Изменения в памяти не изолированы между конкурентными обработчиками:
последовательности "проверка -> вставка" выполняются по принципу best effort.
"""

from collections import Counter
from typing import Callable, Dict, List, Optional

import structlog

from core.exceptions import NotATicketError, PersistenceFailure
from database.models import TicketRecord
from database.store import TicketStore


logger = structlog.get_logger()


class TicketRegistry:
    """
    Единственный владелец словаря тикетов в памяти.

    Никакой другой компонент не меняет словарь напрямую.
    """

    def __init__(self, store: TicketStore):
        self.store = store
        self.loaded = False
        self._tickets: Dict[str, TicketRecord] = {}

    # ==================== LOADING ====================

    def ensure_loaded(self) -> None:
        """Загрузить тикеты из хранилища, если это ещё не сделано."""
        if not self.loaded:
            self.reload()

    def reload(self) -> int:
        """
        Перечитать хранилище.

        Returns:
            Количество загруженных тикетов
        """
        self._tickets = dict(self.store.load())
        self.loaded = True
        logger.info("ticket_registry_loaded", count=len(self._tickets))
        return len(self._tickets)

    # ==================== READ ====================

    def get(self, channel_id: str) -> Optional[TicketRecord]:
        """Получить тикет по ID канала (None если не тикет)."""
        self.ensure_loaded()
        return self._tickets.get(str(channel_id))

    def require(self, channel_id: str) -> TicketRecord:
        """
        Получить тикет по ID канала.

        Raises:
            NotATicketError: канал не зарегистрирован как тикет
        """
        record = self.get(channel_id)
        if record is None:
            raise NotATicketError(str(channel_id))
        return record

    def contains(self, channel_id: str) -> bool:
        return self.get(channel_id) is not None

    def all(self) -> List[TicketRecord]:
        """Все тикеты в порядке добавления."""
        self.ensure_loaded()
        return list(self._tickets.values())

    def open_tickets_for(self, user_id: str) -> List[TicketRecord]:
        """Открытые тикеты пользователя."""
        user_id = str(user_id)
        return [t for t in self.all() if t.user_id == user_id and t.is_open]

    def snapshot(self) -> Dict[str, TicketRecord]:
        """Копия словаря для сохранения."""
        self.ensure_loaded()
        return dict(self._tickets)

    def __len__(self) -> int:
        self.ensure_loaded()
        return len(self._tickets)

    def stats(self) -> Dict[str, object]:
        """
        Сводная статистика реестра.

        Returns:
            total, open, closed, by_category
        """
        tickets = self.all()
        closed = sum(1 for t in tickets if t.closed)
        by_category = Counter(t.category.value for t in tickets)
        return {
            "total": len(tickets),
            "open": len(tickets) - closed,
            "closed": closed,
            "by_category": dict(by_category),
        }

    # ==================== WRITE ====================

    async def set(self, record: TicketRecord) -> None:
        """
        Вставить или перезаписать тикет и сохранить реестр.

        Запись по ключу channel_id: дубликатов не бывает.
        Если сохранение не удалось, изменение в памяти остаётся.

        Raises:
            PersistenceFailure: запись на диск не удалась
        """
        self.ensure_loaded()
        self._tickets[record.channel_id] = record
        await self._persist("set", record.channel_id)

    async def delete(self, channel_id: str) -> Optional[TicketRecord]:
        """
        Удалить тикет и сохранить реестр.

        Returns:
            Удалённая запись или None, если её не было

        Raises:
            PersistenceFailure: запись на диск не удалась
        """
        self.ensure_loaded()
        record = self._tickets.pop(str(channel_id), None)
        if record is None:
            return None
        await self._persist("delete", record.channel_id)
        return record

    async def prune(self, is_live: Callable[[str], bool]) -> int:
        """
        Удалить тикеты, чьи каналы больше не существуют.

        Вызывается при старте бота: каналы могли удалить вручную,
        пока бот был выключен.

        Args:
            is_live: Проверка существования канала по ID

        Returns:
            Количество удалённых записей
        """
        self.ensure_loaded()
        stale = [channel_id for channel_id in self._tickets if not is_live(channel_id)]

        for channel_id in stale:
            logger.info("ticket_pruned_missing_channel", channel_id=channel_id)
            del self._tickets[channel_id]

        await self._persist("prune", None)

        logger.info(
            "ticket_registry_pruned",
            removed=len(stale),
            remaining=len(self._tickets),
        )
        return len(stale)

    async def _persist(self, operation: str, channel_id: Optional[str]) -> None:
        try:
            await self.store.save(self.snapshot())
        except PersistenceFailure as e:
            logger.error(
                "ticket_registry_persist_failed",
                operation=operation,
                channel_id=channel_id,
                error=str(e),
            )
            raise
