"""
Модуль хранения тикетов.

Содержит:
- models.py - TicketRecord и его сериализация
- store.py - файловое хранилище с очередью записи
- registry.py - реестр тикетов в памяти
"""

from database.models import TicketRecord
from database.registry import TicketRegistry
from database.store import StoreStats, TicketStore


__all__ = [
    "TicketRecord",
    "TicketRegistry",
    "TicketStore",
    "StoreStats",
]
