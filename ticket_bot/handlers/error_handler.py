"""
Обработка ошибок обработчиков взаимодействий.

Модуль обеспечивает:
- Генерацию уникальных ID ошибок для отслеживания
- Сопоставление исключений и сообщений пользователю
- Логирование на уровнях INFO, WARNING, ERROR, CRITICAL
- Ответ пользователю, даже если обработчик уже отложил ответ

Ни одна ошибка обработчика не должна завершить процесс бота.
"""

import traceback
import uuid
from datetime import datetime
from typing import Dict, Optional, Tuple

import discord
import structlog

from core.categories import TicketCategory, get_all_categories
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
from ticket_bot.handlers.common import respond


logger = structlog.get_logger()


# ============================================================
# ХРАНИЛИЩЕ ОШИБОК
# ============================================================

MAX_STORED_ERRORS = 100

# error_id -> детали ошибки (последние MAX_STORED_ERRORS)
_error_storage: Dict[str, dict] = {}


def store_error(error_id: str, details: dict) -> None:
    """Сохранить детали ошибки для последующего доступа."""
    _error_storage[error_id] = details
    if len(_error_storage) > MAX_STORED_ERRORS:
        oldest_keys = list(_error_storage.keys())[:-MAX_STORED_ERRORS]
        for key in oldest_keys:
            _error_storage.pop(key, None)


def get_error(error_id: str) -> Optional[dict]:
    """Получить детали ошибки по ID."""
    return _error_storage.get(error_id)


# ============================================================
# СООБЩЕНИЯ ОБ ОШИБКАХ
# ============================================================

ERROR_MESSAGES = {
    "generic": "An error occurred while processing your request.",
    "not_a_ticket": (
        "This channel is not set up as a ticket. "
        "If this is an error, please contact an administrator."
    ),
    "invalid_category": "Invalid ticket type. Valid types: {types}",
    "already_registered": "This channel is already registered as a {label} ticket.",
    "close_expired": "This close request has expired. Press Close Ticket again.",
    "not_closed": "This ticket is not closed.",
    "already_closed": "This ticket is already closed.",
    "invalid_transition": "This action is not available for this ticket right now.",
    "transcript": "Failed to create the transcript. Please try again later.",
    "configuration": "The ticket system is not configured correctly. Please contact an administrator.",
}


def valid_types() -> str:
    return ", ".join(category.value for category in get_all_categories())


def _transition_message(exception: InvalidTransitionError) -> str:
    if exception.event == "confirm":
        return ERROR_MESSAGES["close_expired"]
    if exception.event == "reopen":
        return ERROR_MESSAGES["not_closed"]
    if exception.event == "close-request" and exception.current == "closed":
        return ERROR_MESSAGES["already_closed"]
    return ERROR_MESSAGES["invalid_transition"]


def user_message(exception: BaseException) -> str:
    """
    Сообщение пользователю для исключения.

    Для ошибок проверки (права, лимиты) используется текст исключения.
    """
    if isinstance(exception, NotATicketError):
        return ERROR_MESSAGES["not_a_ticket"]
    if isinstance(exception, (UnauthorizedError, QuotaExceededError)):
        return str(exception)
    if isinstance(exception, InvalidCategoryError):
        return ERROR_MESSAGES["invalid_category"].format(types=valid_types())
    if isinstance(exception, AlreadyRegisteredError):
        try:
            label = TicketCategory.parse(exception.category).label
        except InvalidCategoryError:
            label = exception.category
        return ERROR_MESSAGES["already_registered"].format(label=label)
    if isinstance(exception, InvalidTransitionError):
        return _transition_message(exception)
    if isinstance(exception, TranscriptError):
        return ERROR_MESSAGES["transcript"]
    if isinstance(exception, ConfigurationError):
        return ERROR_MESSAGES["configuration"]
    return ERROR_MESSAGES["generic"]


# ============================================================
# ГЕНЕРАЦИЯ ID ОШИБКИ
# ============================================================

def generate_error_id() -> str:
    """
    Генерация уникального ID ошибки.

    Формат: ERR-YYYYMMDD-XXXX (например ERR-20260204-A1B2)
    """
    date_part = datetime.now().strftime("%Y%m%d")
    unique_part = uuid.uuid4().hex[:4].upper()
    return f"ERR-{date_part}-{unique_part}"


# ============================================================
# КЛАССИФИКАЦИЯ
# ============================================================

def classify_error(exception: BaseException) -> Tuple[str, bool]:
    """
    Уровень логирования и нужен ли код ошибки в ответе.

    Returns:
        (log_level, show_error_id)
    """
    if isinstance(exception, (NotATicketError, UnauthorizedError, QuotaExceededError)):
        return "info", False
    if isinstance(exception, (InvalidCategoryError, AlreadyRegisteredError, InvalidTransitionError)):
        return "info", False
    if isinstance(exception, TranscriptError):
        return "warning", True
    if isinstance(exception, (CollaboratorFailure, PersistenceFailure, ConfigurationError)):
        return "error", True
    if isinstance(exception, TicketSystemError):
        return "error", True
    if isinstance(exception, discord.HTTPException):
        return "error", True
    return "critical", True


def format_user_error_message(exception: BaseException, error_id: str, show_error_id: bool) -> str:
    """Сообщение пользователю с кодом ошибки для обращения к администратору."""
    message = user_message(exception)
    if show_error_id:
        return f"{message}\nError code: `{error_id}`"
    return message


# ============================================================
# ОБРАБОТЧИК
# ============================================================

def _user_info(interaction: discord.Interaction) -> str:
    user = interaction.user
    if user is None:
        return "N/A"
    return f"ID: {user.id}, {user.name}"


async def handle_interaction_error(
    interaction: discord.Interaction,
    exception: BaseException,
    context: str = "",
) -> str:
    """
    Обработать ошибку обработчика.

    Классифицирует ошибку, логирует с уникальным ID
    и отвечает пользователю. Сама никогда не бросает исключений.

    Args:
        interaction: Взаимодействие, вызвавшее ошибку
        exception: Исключение
        context: Где произошла ошибка (например "button:ticket_close")

    Returns:
        ID ошибки
    """
    error_id = generate_error_id()
    log_level, show_error_id = classify_error(exception)

    log_data = {
        "error_id": error_id,
        "error_type": type(exception).__name__,
        "error_message": str(exception),
        "user_info": _user_info(interaction),
        "channel_id": str(interaction.channel_id),
        "context": context,
    }

    if log_level == "info":
        logger.info("interaction_rejected", **log_data)
    elif log_level == "warning":
        logger.warning("interaction_failed", **log_data)
    elif log_level == "error":
        logger.error("interaction_failed", **log_data, exc_info=exception)
    else:
        logger.critical("unhandled_critical_error", **log_data, exc_info=exception)

    if show_error_id:
        store_error(error_id, {
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "traceback": traceback.format_exception(type(exception), exception, exception.__traceback__),
            "user_info": log_data["user_info"],
            "context": context,
            "timestamp": datetime.now().isoformat(),
            "log_level": log_level,
        })

    try:
        await respond(interaction, format_user_error_message(exception, error_id, show_error_id))
    except discord.HTTPException as e:
        logger.warning("failed_to_send_error_to_user", error_id=error_id, error=str(e))

    return error_id
