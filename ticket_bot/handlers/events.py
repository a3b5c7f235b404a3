"""
Обработчики заявок "Book Us".

После создания тикета бот ищет ивент TruckersMP по ссылке из формы
и публикует карточку с кнопками "Accept" / "Decline".
Решение принимает персонал категории тикета.
"""

from typing import Any

import discord
import structlog

from ticket_bot import templates
from ticket_bot.handlers.common import channel_id_of, respond, selected_values
from ticket_bot.handlers.router import BotContext, InteractionRouter
from ticket_bot.views import (
    DECLINE_REASON_SELECT,
    EVENT_ACCEPT,
    EVENT_DECLINE,
    decline_reason_view,
)


logger = structlog.get_logger()

router = InteractionRouter(name="events")


async def announce_event(context: BotContext, channel: Any, link: str) -> None:
    """
    Найти ивент по ссылке и опубликовать карточку в тикете.

    Если ивент не найден, кнопки решения всё равно публикуются.
    """
    event = None
    if context.truckersmp is not None:
        event = await context.truckersmp.fetch_event_by_link(link)

    await context.gateway.post_event_details(channel, event)
    logger.info(
        "event_details_posted",
        channel_id=str(channel.id),
        found=event is not None,
    )


@router.button(EVENT_ACCEPT)
async def accept_event(interaction: discord.Interaction, context: BotContext) -> None:
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="event_accept")

    await interaction.response.edit_message(view=None)
    await interaction.followup.send(
        content=f"✅ {templates.mention_user(record.user_id)}",
        embed=templates.event_accepted_embed(record.user_id),
    )

    logger.info(
        "event_booking_accepted",
        channel_id=record.channel_id,
        creator_id=record.user_id,
        actor_id=str(interaction.user.id),
    )


@router.button(EVENT_DECLINE)
async def decline_event(interaction: discord.Interaction, context: BotContext) -> None:
    """Показать меню выбора причины отказа."""
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="event_decline")

    await respond(
        interaction,
        "Please select the reason for declining this event booking:",
        view=decline_reason_view(),
    )


@router.select(DECLINE_REASON_SELECT)
async def decline_reason_selected(interaction: discord.Interaction, context: BotContext) -> None:
    record = context.registry.require(channel_id_of(interaction))
    context.policy.require_staff(interaction.user, record.category, action="event_decline")

    values = selected_values(interaction)
    reason_text = templates.decline_reason_text(values[0] if values else None)

    await interaction.response.edit_message(
        content="✅ Decline reason has been posted in the channel.",
        view=None,
    )
    await interaction.channel.send(
        content=f"❌ {templates.mention_user(record.user_id)}, your event booking has been **declined**.",
        embed=templates.event_declined_embed(record.user_id, reason_text),
    )

    logger.info(
        "event_booking_declined",
        channel_id=record.channel_id,
        creator_id=record.user_id,
        actor_id=str(interaction.user.id),
        reason=values[0] if values else None,
    )
