"""
Административные команды.

Содержит:
- /setup-<panel> - панель создания тикетов категории
- /register-ticket - привязать существующий канал к системе тикетов
- /debug-tickets - диагностика реестра и файла хранилища

Все команды требуют права Administrator.
"""

from typing import Any, Optional

import discord
import structlog

from core.categories import TicketCategory
from core.exceptions import UnauthorizedError
from core.validators import MAX_MESSAGE_LENGTH, truncate_text
from ticket_bot import templates
from ticket_bot.handlers.common import channel_id_of, defer, respond
from ticket_bot.handlers.router import KIND_COMMAND, BotContext, InteractionRouter
from ticket_bot.panels import Panel, all_panels


logger = structlog.get_logger()

router = InteractionRouter(name="admin")


REGISTER_ADMIN_MESSAGE = "You need administrator permissions to register tickets."
DEBUG_TICKET_LIMIT = 10


# ============================================================
# ПАНЕЛИ
# ============================================================

def setup_command_name(panel: Panel) -> str:
    return f"setup-{panel.category.slug}"


def make_setup_handler(panel: Panel):
    """Обработчик /setup-<slug> для панели."""

    async def setup_panel(interaction: discord.Interaction, context: BotContext) -> None:
        context.policy.require_admin(interaction.user, action=setup_command_name(panel))

        await interaction.channel.send(embed=panel.panel_embed(), view=panel.panel_view())
        await respond(interaction, f"{panel.category.label} panel has been set up!")

        logger.info(
            "ticket_panel_posted",
            category=panel.category.value,
            channel_id=channel_id_of(interaction),
            actor_id=str(interaction.user.id),
        )

    return setup_panel


for _panel in all_panels():
    router.register(KIND_COMMAND, make_setup_handler(_panel), key=setup_command_name(_panel))


# ============================================================
# РЕГИСТРАЦИЯ КАНАЛА
# ============================================================

@router.command("register-ticket")
async def register_ticket(
    interaction: discord.Interaction,
    context: BotContext,
    user: Any,
    ticket_type: str,
    channel: Optional[Any] = None,
) -> None:
    """
    Привязать существующий канал к системе тикетов.

    Args:
        user: Владелец тикета
        ticket_type: Категория (support, joinTeam, ...)
        channel: Канал (по умолчанию текущий)
    """
    if not context.policy.is_admin(interaction.user):
        raise UnauthorizedError(REGISTER_ADMIN_MESSAGE, action="register-ticket")

    category = TicketCategory.parse(ticket_type)
    target = channel or interaction.channel

    await defer(interaction)
    await context.lifecycle.register_existing(target, str(user.id), category, interaction.user)
    await respond(
        interaction,
        f"Successfully registered <#{target.id}> as a {category.label} ticket "
        f"for {templates.mention_user(user.id)}.",
    )


# ============================================================
# ДИАГНОСТИКА
# ============================================================

@router.command("debug-tickets")
async def debug_tickets(interaction: discord.Interaction, context: BotContext) -> None:
    """Состояние текущего канала, реестра и файла хранилища."""
    context.policy.require_admin(interaction.user, action="debug-tickets")

    context.registry.ensure_loaded()
    channel_id = channel_id_of(interaction)
    record = context.registry.get(channel_id)
    tickets = context.registry.all()
    exists = {
        ticket.channel_id: context.gateway.channel_exists(ticket.channel_id)
        for ticket in tickets[:DEBUG_TICKET_LIMIT]
    }

    report = templates.debug_report(
        interaction.channel,
        record,
        tickets,
        exists,
        context.registry.stats(),
        context.store.file_info(),
        limit=DEBUG_TICKET_LIMIT,
        pending_close=context.lifecycle.is_pending_close(channel_id),
    )
    await respond(interaction, truncate_text(report, MAX_MESSAGE_LENGTH))
