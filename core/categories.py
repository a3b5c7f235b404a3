"""
Категории тикетов.

Закрытое перечисление типов обращений и их метаданные:
- Отображаемое название
- Цвет embed
- Группа персонала (ключ в конфиге staff_roles)
- Короткое имя для slash-команд /setup-*

Значения перечисления совпадают с полем "type" в active_tickets.json,
поэтому старые файлы загружаются без миграции.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Union

from core.exceptions import ConfigurationError, InvalidCategoryError


class TicketCategory(str, Enum):
    """Тип тикета."""

    SUPPORT = "support"
    JOIN_TEAM = "joinTeam"
    PARTNERSHIP = "partnership"
    BOOK_US = "bookUs"
    FOUNDERS = "founders"
    HR = "hr"

    @classmethod
    def parse(cls, value: Union["TicketCategory", str, None]) -> "TicketCategory":
        """
        Разобрать категорию из строки.

        Принимает точное значение ("joinTeam"), значение без учёта регистра
        ("jointeam") или короткое имя панели.

        Raises:
            InvalidCategoryError: если категория неизвестна
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InvalidCategoryError(value)

        needle = value.strip()
        for category in cls:
            if category.value == needle:
                return category

        lowered = needle.lower()
        for category in cls:
            if category.value.lower() == lowered or CATEGORY_INFO[category].slug == lowered:
                return category

        raise InvalidCategoryError(value)

    @property
    def info(self) -> "CategoryInfo":
        return CATEGORY_INFO[self]

    @property
    def label(self) -> str:
        return CATEGORY_INFO[self].label

    @property
    def color(self) -> int:
        return CATEGORY_INFO[self].color

    @property
    def staff_group(self) -> str:
        return CATEGORY_INFO[self].staff_group

    @property
    def slug(self) -> str:
        return CATEGORY_INFO[self].slug


@dataclass(frozen=True)
class CategoryInfo:
    """
    Метаданные категории.

    Attributes:
        label: Название для отображения
        color: Цвет embed (0xRRGGBB)
        staff_group: Ключ группы ролей в конфиге staff_roles
        slug: Короткое имя (для /setup-<slug>)
    """
    label: str
    color: int
    staff_group: str
    slug: str


CATEGORY_INFO: Dict[TicketCategory, CategoryInfo] = {
    TicketCategory.SUPPORT: CategoryInfo(
        label="Support",
        color=0x2ECC71,
        staff_group="support",
        slug="support",
    ),
    TicketCategory.JOIN_TEAM: CategoryInfo(
        label="Join the Team",
        color=0x3498DB,
        staff_group="hr",
        slug="jointeam",
    ),
    TicketCategory.PARTNERSHIP: CategoryInfo(
        label="Partnership",
        color=0x9B59B6,
        staff_group="partnership",
        slug="partnership",
    ),
    TicketCategory.BOOK_US: CategoryInfo(
        label="Book Us",
        color=0xE74C3C,
        staff_group="bookings",
        slug="bookus",
    ),
    TicketCategory.FOUNDERS: CategoryInfo(
        label="Founders Manager",
        color=0xF1C40F,
        staff_group="founders",
        slug="founders",
    ),
    TicketCategory.HR: CategoryInfo(
        label="HR Department",
        color=0xE74C3C,
        staff_group="hr",
        slug="hr",
    ),
}

# Новая категория без метаданных должна падать при импорте, а не в рантайме
_missing = [category.value for category in TicketCategory if category not in CATEGORY_INFO]
if _missing:
    raise ConfigurationError(f"Categories without metadata: {', '.join(_missing)}")


def get_all_categories() -> List[TicketCategory]:
    """Все категории в порядке объявления."""
    return list(TicketCategory)


def format_category(value: Union[TicketCategory, str]) -> str:
    """
    Название категории для отображения.

    Неизвестные значения (старые записи) отображаются с заглавной буквы.
    """
    try:
        return TicketCategory.parse(value).label
    except InvalidCategoryError:
        text = str(value or "")
        return text[:1].upper() + text[1:]
