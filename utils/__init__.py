"""
Модуль утилит бота тикетов.

Содержит:
- logging_config.py - конфигурация логирования
- transcripts.py - транскрипты тикетов (PDF / текст)
- truckersmp.py - клиент TruckersMP API для тикетов "Book Us"
"""

from .logging_config import (
    setup_logging,
    log_api_call,
)
from .transcripts import (
    TranscriptEntry,
    TranscriptFile,
    TranscriptOptions,
    TranscriptRenderer,
)
from .truckersmp import TruckersMPClient, TruckersMPEvent, parse_event_id


__all__ = [
    # Logging
    "setup_logging",
    "log_api_call",
    # Transcripts
    "TranscriptEntry",
    "TranscriptFile",
    "TranscriptOptions",
    "TranscriptRenderer",
    # TruckersMP
    "TruckersMPClient",
    "TruckersMPEvent",
    "parse_event_id",
]
