"""
Конфигурация приложения.

Загружает настройки из .env файла с использованием Pydantic Settings.
Все секреты и настройки должны храниться в .env файле.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.categories import TicketCategory
from core.exceptions import ConfigurationError, InvalidCategoryError


# Корневая директория проекта
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Настройки приложения.

    Загружает конфигурацию из переменных окружения и .env файла.
    Словари (ticket_categories, staff_roles) задаются JSON-строкой.
    """

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ========== Discord ==========
    discord_bot_token: str = ""
    guild_id: Optional[int] = None  # Для мгновенной синхронизации slash-команд

    # ========== Channels ==========
    log_channel_id: Optional[int] = None
    transcript_channel_id: Optional[int] = None
    # Категория тикета -> ID категории каналов Discord
    ticket_categories: Dict[str, int] = Field(default_factory=dict)
    # Группа персонала -> ID роли или список ID
    staff_roles: Dict[str, Union[int, str, List[Union[int, str]]]] = Field(default_factory=dict)

    # ========== Limits ==========
    max_tickets_per_user: int = 10
    max_tickets_per_user_per_type: int = 3
    delete_delay_seconds: float = 5.0
    transcript_message_limit: int = 1000

    # ========== Appearance ==========
    close_emoji: str = "🔒"
    delete_emoji: str = "🗑️"

    # ========== Integrations ==========
    truckersmp_api_url: str = "https://api.truckersmp.com/v2"
    http_timeout: float = 10.0
    transcript_font_path: Optional[Path] = None

    # ========== Application Settings ==========
    debug: bool = False
    log_to_file: bool = True
    data_dir: Path = BASE_DIR / "data"
    tickets_file: str = "active_tickets.json"

    @field_validator("max_tickets_per_user", "max_tickets_per_user_per_type")
    @classmethod
    def _positive_cap(cls, value: int) -> int:
        if value < 1:
            raise ValueError("ticket caps must be at least 1")
        return value

    @field_validator("delete_delay_seconds", "http_timeout")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    # ========== Computed Properties ==========
    @property
    def tickets_path(self) -> Path:
        """Путь к active_tickets.json."""
        return Path(self.data_dir) / self.tickets_file

    @property
    def logs_dir(self) -> Path:
        return BASE_DIR / "logs"

    def category_parent_id(self, category: TicketCategory) -> Optional[int]:
        """
        ID категории каналов Discord для тикетов категории.

        Если категория не настроена, используется категория support.
        """
        for key, value in self.ticket_categories.items():
            if key.lower() in (category.value.lower(), category.slug):
                return value
        if category is not TicketCategory.SUPPORT:
            return self.category_parent_id(TicketCategory.SUPPORT)
        return None

    def validate_runtime(self) -> None:
        """
        Проверка настроек перед запуском бота.

        Raises:
            ConfigurationError: нет токена или ключи ticket_categories неизвестны
        """
        if not self.discord_bot_token:
            raise ConfigurationError("DISCORD_BOT_TOKEN is not set")

        for key in self.ticket_categories:
            try:
                TicketCategory.parse(key)
            except InvalidCategoryError as e:
                raise ConfigurationError(f"Unknown ticket category in TICKET_CATEGORIES: {key}") from e


# Глобальный объект настроек (singleton)
settings = Settings()
