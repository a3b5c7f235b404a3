"""
Кастомные исключения системы тикетов.

Иерархия исключений позволяет обрабатывать ошибки на разных уровнях:
- TicketSystemError - базовое исключение для всех ошибок системы
  - NotATicketError - канал не зарегистрирован как тикет
  - UnauthorizedError - у пользователя нет нужной роли
  - QuotaExceededError - превышен лимит открытых тикетов
  - InvalidCategoryError - неизвестная категория тикета
  - AlreadyRegisteredError - канал уже привязан к тикету
  - InvalidTransitionError - недопустимый переход состояния
  - CollaboratorFailure - ошибка Discord API или генератора транскриптов
    - TranscriptError - ошибка генерации транскрипта
  - PersistenceFailure - ошибка записи хранилища
  - ConfigurationError - ошибка конфигурации

Ошибки валидации (NotATicket, Unauthorized, QuotaExceeded) обрабатываются
на уровне роутера и никогда не доходят до машины состояний.
"""

from typing import Optional


class TicketSystemError(Exception):
    """
    Базовое исключение системы тикетов.

    Все кастомные исключения проекта наследуются от этого класса.
    Позволяет ловить все ошибки системы одним except блоком.
    """
    pass


class NotATicketError(TicketSystemError):
    """
    Канал не является тикетом.

    Возникает когда операция адресована каналу без записи в реестре:
    - Канал никогда не регистрировался
    - Тикет уже удалён, но канал ещё виден (окно задержки удаления)
    """

    def __init__(self, channel_id: str):
        super().__init__(f"Channel {channel_id} is not a ticket")
        self.channel_id = channel_id


class UnauthorizedError(TicketSystemError):
    """
    Недостаточно прав.

    Возникает когда у пользователя нет ни прав администратора,
    ни роли персонала для категории тикета.
    """

    def __init__(self, message: str = "Only staff members can perform this action", action: str = ""):
        super().__init__(message)
        self.action = action


class QuotaExceededError(TicketSystemError):
    """
    Превышен лимит открытых тикетов.

    Attributes:
        cap: Какой лимит сработал ("total" или "category")
        limit: Значение лимита
        category: Категория создаваемого тикета
    """

    def __init__(self, message: str, cap: str, limit: int, category: Optional[str] = None):
        super().__init__(message)
        self.cap = cap
        self.limit = limit
        self.category = category


class InvalidCategoryError(TicketSystemError):
    """Неизвестная категория тикета."""

    def __init__(self, value: object):
        super().__init__(f"Invalid ticket type: {value!r}")
        self.value = value


class AlreadyRegisteredError(TicketSystemError):
    """Канал уже зарегистрирован как тикет."""

    def __init__(self, channel_id: str, category: str):
        super().__init__(f"Channel {channel_id} is already registered as {category}")
        self.channel_id = channel_id
        self.category = category


class InvalidTransitionError(TicketSystemError):
    """
    Недопустимый переход состояния тикета.

    Например, повторное закрытие закрытого тикета
    или переоткрытие открытого.
    """

    def __init__(self, current: str, event: str):
        super().__init__(f"Cannot apply '{event}' to a ticket in state '{current}'")
        self.current = current
        self.event = event


class CollaboratorFailure(TicketSystemError):
    """
    Ошибка внешнего сервиса.

    Возникает при проблемах с Discord API (создание канала,
    изменение прав, отправка сообщений) или внешними API.
    Состояние тикета не меняется, если сбой произошёл до записи.
    """
    pass


class TranscriptError(CollaboratorFailure):
    """
    Ошибка генерации транскрипта.

    При удалении тикета не является фатальной:
    удаление продолжается без архива.
    """
    pass


class PersistenceFailure(TicketSystemError):
    """
    Ошибка записи хранилища.

    Изменение в памяти остаётся применённым (деградированный режим),
    но может расходиться с файлом до следующего успешного сохранения.
    """
    pass


class ConfigurationError(TicketSystemError):
    """
    Ошибка конфигурации.

    Возникает при отсутствии или неверных настройках:
    - Отсутствует токен бота
    - Невалидный JSON в staff_roles / ticket_categories
    """
    pass
