"""
Шаблоны сообщений бота.

Содержит функции построения embed-сообщений и текстов,
обеспечивая согласованный стиль во всех частях бота.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import discord

from core.categories import TicketCategory, format_category
from core.validators import format_date_utc, truncate_text, utc_now
from database.models import TicketRecord


# ============================================================
# ЦВЕТА
# ============================================================

COLOR_PENDING = 0xF39C12
COLOR_OPEN = 0x2ECC71
COLOR_DANGER = 0xE74C3C
COLOR_INFO = 0x3498DB
COLOR_ACCEPTED = 0x00B894
COLOR_NEUTRAL = 0x95A5A6


# ============================================================
# ТЕКСТЫ
# ============================================================

DECLINE_REASONS: Dict[str, Dict[str, str]] = {
    "full_month": {
        "label": "Fully booked for that month",
        "text": "We are fully booked for that month.",
    },
    "not_available": {
        "label": "We are not available on this date",
        "text": "We are not available on this date.",
    },
    "not_requirements": {
        "label": "Requirements not met",
        "description": "You do not meet the requirements for Real Ops at your event",
        "text": "You do not meet the requirements to secure Real Ops at your event.",
    },
    "partner_event": {
        "label": "Partners event on this date",
        "text": "We have a partner's event scheduled on this date.",
    },
    "short_notice": {
        "label": "Less than 4 weeks from now",
        "text": "The event is scheduled less than 4 weeks from the date of this ticket.",
    },
}
DEFAULT_DECLINE_TEXT = "No specific reason provided."


def decline_reason_text(value: Optional[str]) -> str:
    """Текст причины отказа по значению из select-меню."""
    reason = DECLINE_REASONS.get(value or "")
    return reason["text"] if reason else DEFAULT_DECLINE_TEXT


def mention_user(user_id: Any) -> str:
    return f"<@{user_id}>"


def mention_role(role_id: Any) -> str:
    return f"<@&{role_id}>"


def discord_timestamp(value: datetime, style: str = "F") -> str:
    """Метка времени Discord (отображается в часовом поясе читателя)."""
    return f"<t:{int(value.timestamp())}:{style}>"


def user_tag(user: Any) -> str:
    """user#0000 для старых аккаунтов, имя - для новых."""
    name = getattr(user, "name", None) or str(getattr(user, "id", "unknown"))
    discriminator = getattr(user, "discriminator", None)
    if discriminator and discriminator != "0":
        return f"{name}#{discriminator}"
    return name


# ============================================================
# ТИКЕТ
# ============================================================

def ticket_topic(category: TicketCategory, user: Any) -> str:
    return f"{category.label} ticket for {user_tag(user)} | ID: {user.id}"


def welcome_embed(category: TicketCategory, user: Any, with_form: bool) -> discord.Embed:
    """
    Приветствие в новом тикете.

    Для тикета из формы - короткое, без формы - с полями User/Type/Created.
    """
    if with_form:
        embed = discord.Embed(
            title=f"{category.label} Ticket",
            description=f"Thank you for your submission, {mention_user(user.id)}!\nOur team will assist you shortly.",
            color=category.color,
            timestamp=utc_now(),
        )
        return embed

    embed = discord.Embed(
        title=f"{category.label} Ticket",
        description=(
            f"Hello {mention_user(user.id)}, thank you for creating a {category.label} ticket!\n"
            "Our staff will assist you shortly."
        ),
        color=category.color,
        timestamp=utc_now(),
    )
    embed.add_field(name="User", value=mention_user(user.id), inline=True)
    embed.add_field(name="Type", value=category.label, inline=True)
    embed.add_field(name="Created", value=format_date_utc(utc_now()), inline=True)
    return embed


def opening_mentions(user_id: Any, role_ids: Iterable[int]) -> str:
    """Пинг автора и ролей персонала (без дубликатов)."""
    parts = [mention_user(user_id)]
    parts.extend(mention_role(role_id) for role_id in sorted(set(role_ids)))
    return " ".join(parts)


def close_confirmation_embed(user: Any) -> discord.Embed:
    return discord.Embed(
        title="Confirm Ticket Closure",
        description=f"{mention_user(user.id)}, are you sure you want to close this ticket?",
        color=COLOR_PENDING,
        timestamp=utc_now(),
    )


def closed_embed(actor: Any) -> discord.Embed:
    return discord.Embed(
        title="Ticket Closed",
        description=f"This ticket was closed by {mention_user(actor.id)}",
        color=COLOR_PENDING,
        timestamp=utc_now(),
    )


def reopened_embed(actor: Any) -> discord.Embed:
    return discord.Embed(
        title="Ticket Reopened",
        description=f"This ticket was reopened by {mention_user(actor.id)}",
        color=COLOR_OPEN,
        timestamp=utc_now(),
    )


def registered_message(category: TicketCategory, user_id: str) -> str:
    return f"This channel has been registered as a {category.label} ticket for {mention_user(user_id)}."


# ============================================================
# ЖУРНАЛ
# ============================================================

def _log_color(action: str) -> int:
    if action == "created":
        return COLOR_OPEN
    if action == "closed":
        return COLOR_PENDING
    return COLOR_DANGER


def log_embed(
    actor: Any,
    record: TicketRecord,
    action: str,
    summary: Optional[str] = None,
) -> discord.Embed:
    """
    Запись в канал журнала.

    Args:
        actor: Кто выполнил действие
        record: Тикет
        action: created / closed / reopened / deleted / transcript / manually-registered
        summary: Краткое содержание формы (только для created)
    """
    embed = discord.Embed(
        title=f"Ticket {action[:1].upper()}{action[1:]}",
        color=_log_color(action),
        timestamp=utc_now(),
    )
    embed.add_field(name="User", value=f"{mention_user(actor.id)} ({user_tag(actor)})", inline=True)
    embed.add_field(name="Type", value=format_category(record.category), inline=True)
    embed.add_field(name="Ticket ID", value=record.channel_id, inline=True)
    embed.add_field(name="Action", value=action, inline=True)
    embed.add_field(name="Time", value=discord_timestamp(utc_now()), inline=True)
    if summary:
        embed.add_field(name="Summary", value=truncate_text(summary), inline=True)
    return embed


def transcript_archive_embed(
    channel_name: str,
    actor: Any,
    record: TicketRecord,
    deleted: bool,
) -> discord.Embed:
    """Embed в канал транскриптов."""
    embed = discord.Embed(
        title="Ticket Deleted - Transcript" if deleted else "Ticket Transcript Created",
        color=COLOR_DANGER if deleted else COLOR_INFO,
        timestamp=utc_now(),
    )
    embed.add_field(name="Ticket", value=channel_name, inline=True)
    embed.add_field(name="User", value=f"{mention_user(actor.id)} ({user_tag(actor)})", inline=True)
    embed.add_field(name="Type", value=format_category(record.category), inline=True)
    embed.add_field(
        name="Deleted At" if deleted else "Created At",
        value=format_date_utc(utc_now()),
        inline=True,
    )
    return embed


def transcript_header(record: TicketRecord, deleted: bool) -> str:
    header = f"Ticket Transcript - {format_category(record.category)}"
    return f"{header} (Deleted)" if deleted else header


def transcript_footer(actor: Any, deleted: bool) -> str:
    stamp = format_date_utc(utc_now())
    if deleted:
        return f"Transcript saved before deletion by {user_tag(actor)} | {stamp}"
    return f"Transcript saved by {user_tag(actor)} | {stamp}"


# ============================================================
# BOOK US
# ============================================================

def event_accepted_embed(creator_id: str) -> discord.Embed:
    return discord.Embed(
        title="Real Ops Request Accepted",
        description=(
            f"Hello {mention_user(creator_id)},\n\n"
            "Thank you for requesting our services at your event. Your request has been "
            "**accepted** and forwarded to our planning department.\n\n"
            "We will contact you again before finalizing documents. Please be patient."
        ),
        color=COLOR_ACCEPTED,
        timestamp=utc_now(),
    )


def event_declined_embed(creator_id: str, reason_text: str) -> discord.Embed:
    return discord.Embed(
        title="Real Ops Request Declined",
        description=(
            f"Hello {mention_user(creator_id)},\n\n"
            "Thank you for requesting our services. Unfortunately, we have **declined** "
            f"your request for the following reason:\n\n• {reason_text}\n\n"
            "We encourage you to consider us again in the future."
        ),
        color=COLOR_DANGER,
        timestamp=utc_now(),
    )


def event_details_embed(event: Any) -> discord.Embed:
    """Карточка ивента TruckersMP (utils.truckersmp.TruckersMPEvent)."""
    embed = discord.Embed(
        title=truncate_text(event.name, 256),
        url=event.url,
        color=COLOR_INFO,
    )
    if event.start_at is not None:
        embed.add_field(name="Start", value=discord_timestamp(event.start_at), inline=True)
    if event.server:
        embed.add_field(name="Server", value=event.server, inline=True)
    if event.confirmed_attendees is not None:
        embed.add_field(name="Attending", value=str(event.confirmed_attendees), inline=True)
    if event.departure:
        embed.add_field(name="Departure", value=event.departure, inline=True)
    if event.arrival:
        embed.add_field(name="Arrival", value=event.arrival, inline=True)
    if event.banner:
        embed.set_image(url=event.banner)
    embed.set_footer(text="Event details from TruckersMP")
    return embed


EVENT_DETAILS_FAILED = "There was an error fetching event details. Please provide the event details manually."


# ============================================================
# ДИАГНОСТИКА
# ============================================================

def _status(record: TicketRecord, pending_close: bool) -> str:
    if record.closed:
        return "Closed"
    return "Open (close pending)" if pending_close else "Open"


def debug_report(
    channel: Any,
    record: Optional[TicketRecord],
    tickets: Sequence[TicketRecord],
    channel_exists: Dict[str, bool],
    stats: Dict[str, Any],
    file_info: Dict[str, Any],
    limit: int = 10,
    pending_close: bool = False,
) -> str:
    """
    Отчёт /debug-tickets.

    Args:
        channel: Текущий канал
        record: Тикет текущего канала (или None)
        tickets: Все тикеты реестра
        channel_exists: channel_id -> существует ли канал
        stats: TicketRegistry.stats()
        file_info: TicketStore.file_info()
        limit: Сколько тикетов показать
        pending_close: Ожидает ли канал подтверждения закрытия
    """
    lines: List[str] = [
        "**Current Channel**",
        f"- ID: {channel.id}",
        f"- Name: {getattr(channel, 'name', '?')}",
        f"- Is Ticket: {'Yes' if record else 'No'}",
    ]

    if record is not None:
        lines.extend([
            f"- Type: {format_category(record.category)}",
            f"- User: {mention_user(record.user_id)}",
            f"- Created: {format_date_utc(record.created_at)}",
            f"- Status: {_status(record, pending_close)}",
        ])

    lines.extend(["", "**All Active Tickets**", f"Total: {len(tickets)}"])
    for index, ticket in enumerate(tickets[:limit], start=1):
        exists = "Yes" if channel_exists.get(ticket.channel_id) else "No"
        lines.append(f"{index}. {ticket.category.value} - <#{ticket.channel_id}> - Exists: {exists}")
    if len(tickets) > limit:
        lines.append(f"... and {len(tickets) - limit} more")

    by_category = stats.get("by_category") or {}
    lines.extend([
        "",
        "**Statistics**",
        f"Open: {stats.get('open', 0)} | Closed: {stats.get('closed', 0)}",
    ])
    for value, count in sorted(by_category.items()):
        lines.append(f"- {format_category(value)}: {count}")

    lines.extend([
        "",
        "**System Information**",
        f"Current Date (UTC): {format_date_utc(utc_now())}",
        f"Persistence File: {file_info.get('path')}",
        f"File Exists: {'Yes' if file_info.get('exists') else 'No'}",
    ])
    if file_info.get("exists"):
        lines.append(f"File Size: {file_info.get('size')} bytes")
        lines.append(f"Last Modified: {format_date_utc(file_info.get('modified_at'))}")

    return "\n".join(lines)
