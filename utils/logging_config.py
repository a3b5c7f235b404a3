"""
Конфигурация логирования.

Модуль обеспечивает:
- Структурированное логирование через structlog
- Ротацию файлов логов
- Отдельные журналы событий тикетов (tickets.log) и ошибок (errors.log)
- Фильтрацию чувствительных данных (токен бота)
- Discord ID в логах всегда строками
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from structlog.processors import CallsiteParameter


# ============================================================
# КОНСТАНТЫ
# ============================================================

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

APP_NAME = "ticket-bot"
APP_VERSION = "1.0"

# Логгеры, чьи события попадают в tickets.log
TICKET_LOGGERS = ("core.lifecycle", "database.", "ticket_bot.handlers.")

SENSITIVE_FIELDS = {
    "token",
    "api_key",
    "password",
    "secret",
    "authorization",
}


# ============================================================
# ПРОЦЕССОРЫ ДЛЯ STRUCTLOG
# ============================================================

def _is_sensitive(key: Any) -> bool:
    key_lower = str(key).lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS)


def filter_sensitive_data(
    logger: Any,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Процессор для фильтрации чувствительных данных из логов.

    Заменяет значения полей с токенами на [REDACTED],
    в том числе во вложенных словарях (например, настройки).
    """
    for key, value in list(event_dict.items()):
        if _is_sensitive(key):
            event_dict[key] = "[REDACTED]"
        elif isinstance(value, dict):
            event_dict[key] = {
                nested_key: "[REDACTED]" if _is_sensitive(nested_key) else nested_value
                for nested_key, nested_value in value.items()
            }
    return event_dict


def stringify_snowflakes(
    logger: Any,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Поля *_id в виде строк.

    В реестре ID хранятся строками, из discord.py приходят числами;
    в логах одно и то же поле должно иметь один тип.
    """
    for key, value in list(event_dict.items()):
        if key.endswith("_id") and isinstance(value, int) and not isinstance(value, bool):
            event_dict[key] = str(value)
    return event_dict


def add_app_context(
    logger: Any,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    event_dict["app"] = APP_NAME
    event_dict["version"] = APP_VERSION
    return event_dict


# ============================================================
# НАСТРОЙКА ЛОГГЕРОВ
# ============================================================

class TicketEventFilter(logging.Filter):
    """Пропускает только записи логгеров жизненного цикла тикетов."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(TICKET_LOGGERS)


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_file_handlers(
    log_dir: Path = LOG_DIR,
    log_level: int = logging.INFO,
) -> List[logging.Handler]:
    """
    Создание файловых обработчиков с ротацией.

    - bot.log: всё
    - errors.log: только ERROR и выше
    - tickets.log: создание, закрытие, удаление тикетов и запись хранилища

    Returns:
        Список обработчиков логов
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    main_handler = _rotating_handler(log_dir / "bot.log", log_level, formatter)
    error_handler = _rotating_handler(log_dir / "errors.log", logging.ERROR, formatter)

    ticket_handler = _rotating_handler(log_dir / "tickets.log", logging.INFO, formatter)
    ticket_handler.addFilter(TicketEventFilter())

    return [main_handler, error_handler, ticket_handler]


def setup_logging(
    debug: bool = False,
    log_to_file: bool = True,
    log_dir: Optional[Path] = None,
) -> structlog.stdlib.BoundLogger:
    """
    Настройка логирования.

    Args:
        debug: Режим отладки (цветной консольный вывод)
        log_to_file: Записывать логи в файл
        log_dir: Каталог логов (по умолчанию ./logs)

    Returns:
        Настроенный логгер
    """
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_to_file:
        for handler in setup_file_handlers(log_dir or LOG_DIR, log_level):
            root_logger.addHandler(handler)

    # discord.py очень разговорчив на INFO
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if debug:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.CallsiteParameterAdder(
                [CallsiteParameter.MODULE, CallsiteParameter.FUNC_NAME]
            ),
            add_app_context,
            stringify_snowflakes,
            filter_sensitive_data,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def log_api_call(
    provider: str,
    endpoint: str,
    duration_ms: float,
    success: bool,
    error: Optional[str] = None,
) -> None:
    """
    Логирование вызова внешнего API.

    Args:
        provider: Название провайдера (truckersmp, ...)
        endpoint: Эндпоинт API
        duration_ms: Время выполнения в мс
        success: Успешен ли вызов
        error: Текст ошибки (если есть)
    """
    logger = structlog.get_logger()
    log_data = {
        "provider": provider,
        "endpoint": endpoint,
        "duration_ms": round(duration_ms, 1),
        "success": success,
    }

    if error:
        log_data["error"] = error
        logger.warning("api_call", **log_data)
    else:
        logger.info("api_call", **log_data)
