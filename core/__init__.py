"""
Ядро системы тикетов.

Содержит:
- categories.py - категории тикетов
- policy.py - проверка прав персонала
- quota.py - лимиты открытых тикетов
- lifecycle.py - машина состояний тикета
- exceptions.py - иерархия исключений
- validators.py - валидация ID и имён каналов
"""

from core.categories import TicketCategory, format_category
from core.exceptions import (
    AlreadyRegisteredError,
    CollaboratorFailure,
    ConfigurationError,
    InvalidCategoryError,
    InvalidTransitionError,
    NotATicketError,
    PersistenceFailure,
    QuotaExceededError,
    TicketSystemError,
    TranscriptError,
    UnauthorizedError,
)


__all__ = [
    "TicketCategory",
    "format_category",
    "TicketSystemError",
    "NotATicketError",
    "UnauthorizedError",
    "QuotaExceededError",
    "InvalidCategoryError",
    "AlreadyRegisteredError",
    "InvalidTransitionError",
    "CollaboratorFailure",
    "TranscriptError",
    "PersistenceFailure",
    "ConfigurationError",
]
