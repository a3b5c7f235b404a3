"""
Панели создания тикетов.

Каждая категория описывается данными:
- Embed панели и кнопка "Create Ticket" (/setup-<slug>)
- Модальная форма (до 5 полей)
- Поля для краткого содержания в журнале

Модалки не хранят состояние: значения читаются из interaction.data,
поэтому отправка формы работает и после перезапуска бота.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import discord

from core.categories import TicketCategory
from core.validators import truncate_text


MAX_MODAL_FIELDS = 5
MAX_FIELD_VALUE = 1024

PANEL_BUTTON_PREFIX = "panel_open_"
PANEL_FORM_PREFIX = "panel_form_"


# ============================================================
# МОДЕЛИ
# ============================================================

@dataclass(frozen=True)
class FormField:
    """
    Поле модальной формы.

    Attributes:
        key: Ключ в form_data (и custom_id поля)
        label: Подпись (до 45 символов)
        paragraph: Многострочное поле
        required: Обязательное
        max_length: Максимальная длина ответа
        placeholder: Подсказка
    """
    key: str
    label: str
    paragraph: bool = False
    required: bool = True
    max_length: int = 256
    placeholder: Optional[str] = None


@dataclass(frozen=True)
class Panel:
    """Панель категории тикета."""
    category: TicketCategory
    title: str
    description: str
    fields: Tuple[FormField, ...]
    summary_fields: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    button_label: str = "Create Ticket"
    button_emoji: str = "📩"

    def __post_init__(self):
        if len(self.fields) > MAX_MODAL_FIELDS:
            raise ValueError(f"{self.category.value}: modal supports at most {MAX_MODAL_FIELDS} fields")
        keys = {f.key for f in self.fields}
        for key, _ in self.summary_fields:
            if key not in keys:
                raise ValueError(f"{self.category.value}: summary field '{key}' is not a form field")

    @property
    def button_id(self) -> str:
        return f"{PANEL_BUTTON_PREFIX}{self.category.slug}"

    @property
    def modal_id(self) -> str:
        return f"{PANEL_FORM_PREFIX}{self.category.slug}"

    # ==================== PANEL ====================

    def panel_embed(self) -> discord.Embed:
        return discord.Embed(
            title=self.title,
            description=self.description,
            color=self.category.color,
        )

    def panel_view(self) -> discord.ui.View:
        view = discord.ui.View(timeout=None)
        view.add_item(discord.ui.Button(
            label=self.button_label,
            emoji=self.button_emoji,
            style=discord.ButtonStyle.primary,
            custom_id=self.button_id,
        ))
        return view

    # ==================== FORM ====================

    def build_modal(self) -> discord.ui.Modal:
        """Модальная форма категории."""
        modal = discord.ui.Modal(title=truncate_text(f"{self.category.label} Ticket", 45), custom_id=self.modal_id)
        for form_field in self.fields:
            modal.add_item(discord.ui.TextInput(
                label=form_field.label,
                custom_id=form_field.key,
                style=discord.TextStyle.paragraph if form_field.paragraph else discord.TextStyle.short,
                required=form_field.required,
                max_length=form_field.max_length,
                placeholder=form_field.placeholder,
            ))
        return modal

    def extract(self, interaction_data: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        """
        Извлечь значения формы из сырых данных взаимодействия.

        Поддерживает action row (type 1, components[]) и label (type 18, component).
        Неизвестные ключи отбрасываются, пустые значения не сохраняются.
        """
        known = {f.key for f in self.fields}
        values: Dict[str, str] = {}

        for row in (interaction_data or {}).get("components", []) or []:
            children = list(row.get("components") or [])
            if row.get("component"):
                children.append(row["component"])
            for child in children:
                key = child.get("custom_id")
                value = child.get("value")
                if key in known and isinstance(value, str) and value.strip():
                    values[key] = value.strip()

        return values

    # ==================== OUTPUT ====================

    def response_embed(self, user: Any, form_data: Mapping[str, Any], channel_id: str) -> discord.Embed:
        """Ответы формы в канале тикета."""
        embed = discord.Embed(
            title=f"{self.category.label} Application",
            color=self.category.color,
        )
        embed.set_author(name=str(getattr(user, "name", user.id)))
        for form_field in self.fields:
            value = form_data.get(form_field.key)
            if value:
                embed.add_field(
                    name=form_field.label,
                    value=truncate_text(str(value), MAX_FIELD_VALUE),
                    inline=not form_field.paragraph,
                )
        embed.set_footer(text=f"Ticket ID: {channel_id}")
        return embed

    def summary(self, form_data: Optional[Mapping[str, Any]]) -> Optional[str]:
        """
        Краткое содержание для журнала.

        Только объявленные поля, которые реально есть в форме.
        """
        if not form_data:
            return None
        parts = [
            f"{label}: {form_data[key]}"
            for key, label in self.summary_fields
            if form_data.get(key)
        ]
        return ", ".join(parts) or None


# ============================================================
# ПАНЕЛИ КАТЕГОРИЙ
# ============================================================

_DISCORD_NAME = FormField("discordName", "Discord Name", max_length=100)

PANELS: Dict[TicketCategory, Panel] = {
    TicketCategory.SUPPORT: Panel(
        category=TicketCategory.SUPPORT,
        title="Support",
        description="Need help? Press the button below and describe your issue.",
        fields=(
            _DISCORD_NAME,
            FormField("subject", "Subject", max_length=100),
            FormField("description", "Describe your issue", paragraph=True, max_length=1000),
        ),
        summary_fields=(("discordName", "Discord Name"),),
    ),
    TicketCategory.JOIN_TEAM: Panel(
        category=TicketCategory.JOIN_TEAM,
        title="Join the Team",
        description="Want to join us? Press the button below to apply.",
        fields=(
            _DISCORD_NAME,
            FormField("age", "Age", max_length=3),
            FormField("position", "Position you are applying for", max_length=100),
            FormField("experience", "Previous experience", paragraph=True, max_length=1000),
            FormField("whyJoin", "Why do you want to join?", paragraph=True, max_length=1000),
        ),
        summary_fields=(("position", "Position"),),
    ),
    TicketCategory.PARTNERSHIP: Panel(
        category=TicketCategory.PARTNERSHIP,
        title="Partnership",
        description="Interested in a partnership? Press the button below.",
        fields=(
            _DISCORD_NAME,
            FormField("vtcName", "VTC Name", max_length=100),
            FormField("vtcLink", "VTC Link (TruckersMP)", required=False, max_length=200),
            FormField("memberCount", "Member count", required=False, max_length=10),
            FormField("proposal", "Partnership proposal", paragraph=True, max_length=1000),
        ),
        summary_fields=(("vtcName", "VTC"),),
    ),
    TicketCategory.BOOK_US: Panel(
        category=TicketCategory.BOOK_US,
        title="Book Us",
        description="Want Real Ops at your event? Press the button below to book us.",
        fields=(
            _DISCORD_NAME,
            FormField("vtcRole", "Your role in the VTC", max_length=100),
            FormField(
                "eventLink",
                "TruckersMP event link",
                max_length=200,
                placeholder="https://truckersmp.com/events/12345",
            ),
            FormField("eventDate", "Event date", max_length=50),
            FormField("additionalInfo", "Additional information", paragraph=True, required=False, max_length=1000),
        ),
        summary_fields=(("discordName", "Discord Name"), ("vtcRole", "VTC Role")),
    ),
    TicketCategory.FOUNDERS: Panel(
        category=TicketCategory.FOUNDERS,
        title="Founders Manager",
        description="Need to reach the founders? Press the button below.",
        fields=(
            _DISCORD_NAME,
            FormField("subject", "Subject", max_length=100),
            FormField("message", "Message", paragraph=True, max_length=1000),
        ),
        summary_fields=(("discordName", "Discord Name"),),
    ),
    TicketCategory.HR: Panel(
        category=TicketCategory.HR,
        title="HR Department",
        description="Contact the HR department. Press the button below.",
        fields=(
            _DISCORD_NAME,
            FormField("reason", "Reason for contacting HR", max_length=100),
            FormField("details", "Details", paragraph=True, max_length=1000),
        ),
        summary_fields=(("reason", "Reason"),),
    ),
}


def get_panel(category: TicketCategory) -> Panel:
    return PANELS[category]


def panel_by_button(custom_id: str) -> Optional[Panel]:
    for panel in PANELS.values():
        if panel.button_id == custom_id:
            return panel
    return None


def panel_by_modal(custom_id: str) -> Optional[Panel]:
    for panel in PANELS.values():
        if panel.modal_id == custom_id:
            return panel
    return None


def all_panels() -> List[Panel]:
    return list(PANELS.values())
