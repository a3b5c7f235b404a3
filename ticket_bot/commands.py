"""
Регистрация slash-команд.

Команды только собирают параметры и передают их в диспетчер:
вся логика и обработка ошибок находятся в ticket_bot.handlers.
"""

from typing import Optional

import discord
from discord import app_commands

from core.categories import get_all_categories
from ticket_bot.handlers import InteractionDispatcher
from ticket_bot.handlers.admin import setup_command_name
from ticket_bot.panels import Panel, all_panels


TICKET_TYPE_CHOICES = [
    app_commands.Choice(name=category.label, value=category.value)
    for category in get_all_categories()
]


def _setup_command(panel: Panel, dispatcher: InteractionDispatcher) -> app_commands.Command:
    name = setup_command_name(panel)

    @app_commands.guild_only()
    async def callback(interaction: discord.Interaction) -> None:
        await dispatcher.run_command(name, interaction)

    return app_commands.Command(
        name=name,
        description=f"Set up the {panel.category.label} ticket panel",
        callback=callback,
    )


def build_command_tree(client: discord.Client, dispatcher: InteractionDispatcher) -> app_commands.CommandTree:
    """
    Создать дерево команд бота.

    Команды доступны только на сервере; права проверяются в обработчиках.
    """
    tree = app_commands.CommandTree(client)

    for panel in all_panels():
        tree.add_command(_setup_command(panel, dispatcher))

    @tree.command(name="register-ticket", description="Register an existing channel as a ticket")
    @app_commands.describe(
        user="The user who owns this ticket",
        type="The type of ticket",
        channel="The channel to register (defaults to the current channel)",
    )
    @app_commands.choices(type=TICKET_TYPE_CHOICES)
    @app_commands.guild_only()
    async def register_ticket(
        interaction: discord.Interaction,
        user: discord.User,
        type: app_commands.Choice[str],
        channel: Optional[discord.TextChannel] = None,
    ) -> None:
        await dispatcher.run_command(
            "register-ticket",
            interaction,
            user=user,
            ticket_type=type.value,
            channel=channel,
        )

    @tree.command(name="debug-tickets", description="Show ticket system diagnostics")
    @app_commands.guild_only()
    async def debug_tickets(interaction: discord.Interaction) -> None:
        await dispatcher.run_command("debug-tickets", interaction)

    return tree
