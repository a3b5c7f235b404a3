"""
Валидация и нормализация данных тикетов.

Модуль обеспечивает:
- Проверку формы Discord ID (snowflake)
- Санитизацию имён каналов под требования Discord
- Ограничение длины текста для embed-полей
- Единый формат дат в UTC
"""

import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional


# ============================================================
# КОНСТАНТЫ
# ============================================================

# Длина snowflake в десятичной записи
SNOWFLAKE_MIN_LENGTH = 17
SNOWFLAKE_MAX_LENGTH = 19

# Лимиты Discord
MAX_CHANNEL_NAME_LENGTH = 90     # с запасом от лимита 100
MAX_EMBED_FIELD_LENGTH = 1024
MAX_MESSAGE_LENGTH = 2000

SNOWFLAKE_PATTERN = re.compile(r"^\d+$")


# ============================================================
# SNOWFLAKE
# ============================================================

def is_valid_snowflake(value: Any) -> bool:
    """
    Проверка формы Discord ID.

    Проверяется только форма (17-19 цифр), а не существование объекта.

    Args:
        value: Строка или число

    Returns:
        True если значение похоже на snowflake
    """
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not SNOWFLAKE_PATTERN.match(value):
        return False
    return SNOWFLAKE_MIN_LENGTH <= len(value) <= SNOWFLAKE_MAX_LENGTH


def normalize_id_list(value: Any) -> List[str]:
    """
    Привести значение конфига к списку строковых ID.

    Конфиг допускает как одиночный ID, так и список.

    Args:
        value: str | int | list | None

    Returns:
        Список строк (пустые значения отброшены)
    """
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        items: Iterable[Any] = value
    else:
        items = [value]
    return [str(item).strip() for item in items if item not in (None, "")]


# ============================================================
# ИМЕНА КАНАЛОВ
# ============================================================

def sanitize_channel_name(name: str) -> str:
    """
    Санитизация имени канала под требования Discord.

    - Нижний регистр
    - Удаление спецсимволов
    - Пробелы -> дефисы, схлопывание повторяющихся дефисов
    - Обрезка до MAX_CHANNEL_NAME_LENGTH

    Args:
        name: Исходное имя

    Returns:
        Безопасное имя канала
    """
    if not name:
        return ""

    result = name.lower()
    result = re.sub(r"[^\w\s-]", "", result)
    result = re.sub(r"\s+", "-", result)
    result = re.sub(r"-+", "-", result)

    return result[:MAX_CHANNEL_NAME_LENGTH]


def build_ticket_channel_name(category_value: str, username: str, existing_of_category: int) -> str:
    """
    Имя канала для нового тикета.

    Если у пользователя уже есть открытые тикеты этой категории,
    добавляется порядковый номер: support-john-2.
    """
    base = f"{category_value}-{username}"
    if existing_of_category > 0:
        base = f"{base}-{existing_of_category + 1}"
    return sanitize_channel_name(base)


# ============================================================
# ТЕКСТ И ДАТЫ
# ============================================================

def truncate_text(text: Optional[str], max_length: int = MAX_EMBED_FIELD_LENGTH) -> str:
    """
    Обрезание текста до максимальной длины.

    Args:
        text: Исходный текст
        max_length: Максимальная длина

    Returns:
        Обрезанный текст
    """
    if not text:
        return ""

    if len(text) <= max_length:
        return text

    return text[:max_length - 3] + "..."


def utc_now() -> datetime:
    """Текущее время в UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


def format_date_utc(value: Optional[datetime]) -> str:
    """
    Форматирование даты в виде YYYY-MM-DD HH:MM:SS (UTC).

    Naive datetime считается UTC.
    """
    if value is None:
        return "Unknown"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
