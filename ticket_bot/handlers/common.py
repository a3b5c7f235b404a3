"""
Общие помощники обработчиков взаимодействий.
"""

from typing import Any, Optional

import discord


async def respond(
    interaction: discord.Interaction,
    content: Optional[str] = None,
    *,
    ephemeral: bool = True,
    **kwargs: Any,
) -> None:
    """
    Ответить на взаимодействие.

    Если ответ уже отправлен или отложен (defer), используется followup.
    По умолчанию ответ виден только автору.
    """
    if content is not None:
        kwargs["content"] = content

    if interaction.response.is_done():
        await interaction.followup.send(ephemeral=ephemeral, **kwargs)
    else:
        await interaction.response.send_message(ephemeral=ephemeral, **kwargs)


async def defer(interaction: discord.Interaction, ephemeral: bool = True) -> None:
    """Отложить ответ, если он ещё не отправлен."""
    if not interaction.response.is_done():
        await interaction.response.defer(ephemeral=ephemeral, thinking=True)


def custom_id_of(interaction: discord.Interaction) -> str:
    """custom_id кнопки, меню или модалки."""
    return str((interaction.data or {}).get("custom_id") or "")


def selected_values(interaction: discord.Interaction) -> list:
    """Выбранные значения select-меню."""
    return list((interaction.data or {}).get("values") or [])


def channel_id_of(interaction: discord.Interaction) -> str:
    return str(interaction.channel_id)
