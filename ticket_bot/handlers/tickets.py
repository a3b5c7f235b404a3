"""
Обработчики тикетов.

Содержит:
- Создание тикета: кнопка панели -> модалка -> канал,
  старая кнопка ticket_create_<category> без формы
- Закрытие с подтверждением, отмена, переоткрытие
- Удаление с транскриптом
- Сохранение транскрипта
"""

from typing import Any, Dict, Optional

import discord
import structlog

from core.categories import TicketCategory
from core.exceptions import CollaboratorFailure, InvalidCategoryError
from ticket_bot import templates
from ticket_bot.handlers.common import channel_id_of, custom_id_of, defer, respond
from ticket_bot.handlers.events import announce_event
from ticket_bot.handlers.router import BotContext, InteractionRouter
from ticket_bot.panels import PANEL_BUTTON_PREFIX, PANEL_FORM_PREFIX, panel_by_button, panel_by_modal
from ticket_bot.views import (
    TICKET_CLOSE,
    TICKET_CLOSE_CANCEL,
    TICKET_CLOSE_CONFIRM,
    TICKET_CREATE_PREFIX,
    TICKET_DELETE,
    TICKET_REOPEN,
    TICKET_TRANSCRIPT,
    close_confirmation_view,
)


logger = structlog.get_logger()

router = InteractionRouter(name="tickets")


CREATE_FAILED_MESSAGE = "An error occurred while creating your ticket. Please contact an administrator."


# ============================================================
# СОЗДАНИЕ
# ============================================================

def check_quota(context: BotContext, user: Any, category: TicketCategory) -> None:
    """
    Raises:
        QuotaExceededError: у пользователя слишком много открытых тикетов
    """
    context.registry.ensure_loaded()
    context.quota.enforce(str(user.id), category, context.registry.all())


async def create_ticket(
    interaction: discord.Interaction,
    context: BotContext,
    category: TicketCategory,
    form_data: Optional[Dict[str, str]] = None,
) -> Optional[discord.abc.GuildChannel]:
    """
    Общий путь создания тикета для кнопок и модалок.

    Лимиты проверяются здесь для любой точки входа.

    Returns:
        Канал тикета или None, если создать не удалось
    """
    user = interaction.user
    check_quota(context, user, category)

    await defer(interaction)

    try:
        record, channel = await context.lifecycle.create(interaction.guild, user, category, form_data)
    except CollaboratorFailure as e:
        logger.error(
            "ticket_create_failed",
            user_id=str(user.id),
            category=category.value,
            error=str(e),
            exc_info=True,
        )
        await respond(interaction, CREATE_FAILED_MESSAGE)
        return None

    if form_data is None:
        await respond(interaction, f"Your ticket has been created: <#{channel.id}>")
    else:
        await respond(interaction, f"Your {category.label} ticket has been created: <#{channel.id}>")

    if category is TicketCategory.BOOK_US and form_data and form_data.get("eventLink"):
        context.spawn(
            announce_event(context, channel, form_data["eventLink"]),
            name=f"event-lookup-{record.channel_id}",
        )

    return channel


@router.button(prefix=PANEL_BUTTON_PREFIX)
async def open_ticket_form(interaction: discord.Interaction, context: BotContext) -> None:
    """Кнопка панели: показать форму категории."""
    panel = panel_by_button(custom_id_of(interaction))
    if panel is None:
        raise InvalidCategoryError(custom_id_of(interaction))

    # Не заставляем заполнять форму, если тикет всё равно не создастся
    check_quota(context, interaction.user, panel.category)
    await interaction.response.send_modal(panel.build_modal())


@router.modal(prefix=PANEL_FORM_PREFIX)
async def submit_ticket_form(interaction: discord.Interaction, context: BotContext) -> None:
    """Отправка формы: создать тикет с ответами."""
    panel = panel_by_modal(custom_id_of(interaction))
    if panel is None:
        raise InvalidCategoryError(custom_id_of(interaction))

    form_data = panel.extract(interaction.data)
    await create_ticket(interaction, context, panel.category, form_data)


@router.button(prefix=TICKET_CREATE_PREFIX)
async def create_ticket_button(interaction: discord.Interaction, context: BotContext) -> None:
    """Старая кнопка ticket_create_<category>: тикет без формы."""
    category = TicketCategory.parse(custom_id_of(interaction)[len(TICKET_CREATE_PREFIX):])
    await create_ticket(interaction, context, category)


# ============================================================
# ЗАКРЫТИЕ
# ============================================================

@router.button(TICKET_CLOSE)
async def request_close(interaction: discord.Interaction, context: BotContext) -> None:
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="close")

    await context.lifecycle.request_close(record.channel_id, interaction.user)
    # Подтверждение видно всем в канале тикета
    await respond(
        interaction,
        ephemeral=False,
        embed=templates.close_confirmation_embed(interaction.user),
        view=close_confirmation_view(),
    )


@router.button(TICKET_CLOSE_CONFIRM)
async def confirm_close(interaction: discord.Interaction, context: BotContext) -> None:
    """Подтверждение закрытия: только персонал категории."""
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="confirm")

    await interaction.response.defer()
    await context.lifecycle.confirm_close(interaction.channel, interaction.user)
    await interaction.edit_original_response(content="Ticket has been closed.", embed=None, view=None)


@router.button(TICKET_CLOSE_CANCEL)
async def cancel_close(interaction: discord.Interaction, context: BotContext) -> None:
    record = context.registry.require(channel_id_of(interaction))

    await context.lifecycle.cancel_close(record.channel_id, interaction.user)
    await interaction.response.edit_message(content="Ticket closure cancelled.", embed=None, view=None)


# ============================================================
# ПЕРЕОТКРЫТИЕ
# ============================================================

@router.button(TICKET_REOPEN)
async def reopen_ticket(interaction: discord.Interaction, context: BotContext) -> None:
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="reopen")

    await defer(interaction)
    await context.lifecycle.reopen(interaction.channel, interaction.user)
    await respond(interaction, "Ticket has been reopened.")


# ============================================================
# УДАЛЕНИЕ
# ============================================================

def delete_notice(transcript_archived: bool, delay: float) -> str:
    prefix = "Transcript saved." if transcript_archived else "Failed to save transcript."
    return f"{prefix} Ticket will be deleted in {delay:g} seconds..."


@router.button(TICKET_DELETE)
async def delete_ticket(interaction: discord.Interaction, context: BotContext) -> None:
    """
    Удаление тикета.

    Ответ публичный: все участники канала видят, что он будет удалён.
    """
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="delete")

    await defer(interaction, ephemeral=False)
    outcome = await context.lifecycle.delete(interaction.channel, interaction.user)
    await respond(
        interaction,
        delete_notice(outcome.transcript_archived, context.lifecycle.delete_delay),
        ephemeral=False,
    )


# ============================================================
# ТРАНСКРИПТ
# ============================================================

@router.button(TICKET_TRANSCRIPT)
async def save_transcript(interaction: discord.Interaction, context: BotContext) -> None:
    context.registry.require(channel_id_of(interaction))

    await defer(interaction)
    await context.lifecycle.transcript(interaction.channel, interaction.user)
    await respond(interaction, "Transcript has been created and saved!")
