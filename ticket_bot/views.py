"""
Компоненты сообщений (кнопки и меню).

Кнопки не имеют собственных обработчиков: все нажатия приходят
в InteractionRouter по custom_id. Поэтому сообщения, отправленные
до перезапуска бота, продолжают работать.
"""

import discord

from ticket_bot.templates import DECLINE_REASONS


# ============================================================
# CUSTOM ID
# ============================================================

TICKET_CLOSE = "ticket_close"
TICKET_CLOSE_CONFIRM = "ticket_close_confirm"
TICKET_CLOSE_CANCEL = "ticket_close_cancel"
TICKET_REOPEN = "ticket_reopen"
TICKET_DELETE = "ticket_delete"
TICKET_TRANSCRIPT = "ticket_transcript"
TICKET_CREATE_PREFIX = "ticket_create_"

EVENT_ACCEPT = "event_accept"
EVENT_DECLINE = "event_decline"
DECLINE_REASON_SELECT = "decline_reason_select"


# ============================================================
# ПОСТРОИТЕЛИ
# ============================================================

def ticket_controls_view(
    close_emoji: str = "🔒",
    delete_emoji: str = "🗑️",
    include_delete: bool = True,
) -> discord.ui.View:
    """Стандартные кнопки тикета: закрыть, транскрипт, удалить."""
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label="Close Ticket",
        style=discord.ButtonStyle.primary,
        emoji=close_emoji,
        custom_id=TICKET_CLOSE,
    ))
    view.add_item(discord.ui.Button(
        label="Save Transcript",
        style=discord.ButtonStyle.secondary,
        emoji="📑",
        custom_id=TICKET_TRANSCRIPT,
    ))
    if include_delete:
        view.add_item(discord.ui.Button(
            label="Delete Ticket",
            style=discord.ButtonStyle.danger,
            emoji=delete_emoji,
            custom_id=TICKET_DELETE,
        ))
    return view


def closed_ticket_view(delete_emoji: str = "🗑️") -> discord.ui.View:
    """Кнопки закрытого тикета: переоткрыть, удалить."""
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label="Reopen Ticket",
        style=discord.ButtonStyle.success,
        emoji="🔓",
        custom_id=TICKET_REOPEN,
    ))
    view.add_item(discord.ui.Button(
        label="Delete Ticket",
        style=discord.ButtonStyle.danger,
        emoji=delete_emoji,
        custom_id=TICKET_DELETE,
    ))
    return view


def close_confirmation_view() -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label="Yes, Close It",
        style=discord.ButtonStyle.danger,
        custom_id=TICKET_CLOSE_CONFIRM,
    ))
    view.add_item(discord.ui.Button(
        label="Cancel",
        style=discord.ButtonStyle.secondary,
        custom_id=TICKET_CLOSE_CANCEL,
    ))
    return view


def event_decision_view() -> discord.ui.View:
    """Кнопки решения по заявке "Book Us"."""
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label="Accept Event",
        style=discord.ButtonStyle.success,
        emoji="✅",
        custom_id=EVENT_ACCEPT,
    ))
    view.add_item(discord.ui.Button(
        label="Decline Event",
        style=discord.ButtonStyle.danger,
        emoji="❌",
        custom_id=EVENT_DECLINE,
    ))
    return view


def decline_reason_view() -> discord.ui.View:
    """Меню выбора причины отказа."""
    options = [
        discord.SelectOption(
            label=reason["label"],
            value=value,
            description=reason.get("description"),
        )
        for value, reason in DECLINE_REASONS.items()
    ]
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Select(
        custom_id=DECLINE_REASON_SELECT,
        placeholder="Select a reason for declining",
        options=options,
        min_values=1,
        max_values=1,
    ))
    return view
