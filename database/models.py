"""
Модель записи тикета.

TicketRecord - одна запись на активный или недавно закрытый тикет.
Ключ - ID канала, в котором живёт тикет.

Сериализация использует ключи исходного формата active_tickets.json
(channelId, userId, type, createdAt, ...), даты хранятся в ISO-8601 с
UTC-смещением.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.categories import TicketCategory


def _parse_datetime(value: Any) -> Optional[datetime]:
    """
    Восстановить datetime из сериализованного значения.

    Принимает ISO-строки (включая суффикс "Z") и unix timestamp.
    Naive значения считаются UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # JS Date.now() пишет миллисекунды
        seconds = value / 1000 if value > 10**11 else value
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


@dataclass
class TicketRecord:
    """
    Запись тикета.

    Attributes:
        channel_id: ID канала тикета (первичный ключ, неизменяемый)
        user_id: ID автора тикета (неизменяемый)
        category: Категория тикета
        created_at: Время создания (UTC)
        closed: Флаг закрытия
        closed_at / closed_by: Кто и когда закрыл (не очищаются)
        reopened_at / reopened_by: Кто и когда переоткрыл (не очищаются)
        manually_registered: Привязан к существующему каналу через /register-ticket
        form_data: Данные формы, с которой был создан тикет
    """
    channel_id: str
    user_id: str
    category: TicketCategory
    created_at: datetime
    closed: bool = False
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    reopened_at: Optional[datetime] = None
    reopened_by: Optional[str] = None
    manually_registered: bool = False
    form_data: Optional[Dict[str, Any]] = field(default=None)

    @property
    def is_open(self) -> bool:
        return not self.closed

    def copy(self, **changes: Any) -> "TicketRecord":
        """Копия записи с изменёнными полями."""
        return replace(self, **changes)

    # ==================== SERIALIZATION ====================

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация в формат active_tickets.json."""
        data: Dict[str, Any] = {
            "channelId": self.channel_id,
            "userId": self.user_id,
            "type": self.category.value,
            "createdAt": _format_datetime(self.created_at),
        }

        if self.closed:
            data["closed"] = True
        elif self.closed_at is not None or self.reopened_at is not None:
            data["closed"] = False

        optional = {
            "closedAt": _format_datetime(self.closed_at),
            "closedBy": self.closed_by,
            "reopenedAt": _format_datetime(self.reopened_at),
            "reopenedBy": self.reopened_by,
        }
        data.update({key: value for key, value in optional.items() if value is not None})

        if self.manually_registered:
            data["manuallyRegistered"] = True
        if self.form_data is not None:
            data["formData"] = self.form_data

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: Optional[str] = None) -> "TicketRecord":
        """
        Десериализация записи.

        Args:
            data: Словарь из JSON
            key: Ключ записи в документе (используется если нет channelId)

        Raises:
            InvalidCategoryError: неизвестный type
            ValueError / KeyError: повреждённая запись
        """
        channel_id = data.get("channelId") or key
        if not channel_id:
            raise KeyError("channelId")

        created_at = _parse_datetime(data.get("createdAt"))
        if created_at is None:
            raise ValueError(f"Ticket {channel_id} has no createdAt")

        form_data = data.get("formData")

        return cls(
            channel_id=str(channel_id),
            user_id=str(data["userId"]),
            category=TicketCategory.parse(data.get("type")),
            created_at=created_at,
            closed=bool(data.get("closed", False)),
            closed_at=_parse_datetime(data.get("closedAt")),
            closed_by=str(data["closedBy"]) if data.get("closedBy") else None,
            reopened_at=_parse_datetime(data.get("reopenedAt")),
            reopened_by=str(data["reopenedBy"]) if data.get("reopenedBy") else None,
            manually_registered=bool(data.get("manuallyRegistered", False)),
            form_data=dict(form_data) if isinstance(form_data, dict) else None,
        )
