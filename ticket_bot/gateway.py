"""
Адаптер Discord для машины состояний тикетов.

Реализует TicketGateway поверх discord.py:
- Создание канала тикета с правами автора и персонала
- Сообщения о смене состояния с кнопками управления
- Права автора на отправку сообщений
- Транскрипты (в канал тикета и в архив)
- Журнал действий в отдельном канале (best effort)

Ошибки Discord API оборачиваются в CollaboratorFailure.
"""

import io
from typing import Any, Callable, Dict, FrozenSet, List, Optional

import discord
import structlog

from core.categories import TicketCategory
from core.exceptions import CollaboratorFailure, TranscriptError
from database.models import TicketRecord
from ticket_bot import templates
from ticket_bot.panels import get_panel
from ticket_bot.views import (
    closed_ticket_view,
    event_decision_view,
    ticket_controls_view,
)
from utils.transcripts import TranscriptEntry, TranscriptFile, TranscriptOptions, TranscriptRenderer


logger = structlog.get_logger()


AUDIT_REASON = "Ticket system"


class DiscordGateway:
    """Побочные эффекты жизненного цикла тикета на стороне Discord."""

    def __init__(
        self,
        client: discord.Client,
        transcripts: TranscriptRenderer,
        category_parent_id: Callable[[TicketCategory], Optional[int]],
        log_channel_id: Optional[int] = None,
        transcript_channel_id: Optional[int] = None,
        close_emoji: str = "🔒",
        delete_emoji: str = "🗑️",
        transcript_message_limit: Optional[int] = 1000,
    ):
        """
        Args:
            client: Клиент discord.py
            transcripts: Генератор транскриптов
            category_parent_id: Категория тикета -> ID категории каналов
            log_channel_id: Канал журнала (None - журнал выключен)
            transcript_channel_id: Канал архива транскриптов
            close_emoji: Эмодзи кнопки закрытия
            delete_emoji: Эмодзи кнопки удаления
            transcript_message_limit: Сколько сообщений брать в транскрипт (None - все)
        """
        self.client = client
        self.transcripts = transcripts
        self.category_parent_id = category_parent_id
        self.log_channel_id = log_channel_id
        self.transcript_channel_id = transcript_channel_id
        self.close_emoji = close_emoji
        self.delete_emoji = delete_emoji
        self.transcript_message_limit = transcript_message_limit

    # ==================== HELPERS ====================

    def controls_view(self) -> discord.ui.View:
        return ticket_controls_view(self.close_emoji, self.delete_emoji)

    def channel_exists(self, channel_id: str) -> bool:
        """Есть ли канал в кэше клиента."""
        return self.client.get_channel(int(channel_id)) is not None

    def _configured_channel(self, channel_id: Optional[int], purpose: str) -> Optional[discord.abc.Messageable]:
        if not channel_id:
            return None
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            logger.warning("configured_channel_not_found", purpose=purpose, channel_id=channel_id)
        return channel

    async def _resolve_member(self, guild: discord.Guild, user_id: str) -> discord.abc.Snowflake:
        """Участник гильдии по ID; если он вышел - пользователь."""
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.NotFound:
            return await self.client.fetch_user(int(user_id))

    # ==================== CHANNEL ====================

    def _build_overwrites(
        self,
        guild: discord.Guild,
        requester: Any,
        staff_role_ids: FrozenSet[int],
    ) -> Dict[Any, discord.PermissionOverwrite]:
        overwrites: Dict[Any, discord.PermissionOverwrite] = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            requester: discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                attach_files=True,
                add_reactions=True,
                embed_links=True,
            ),
        }

        me = guild.me
        if me is not None:
            overwrites[me] = discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                manage_channels=True,
                embed_links=True,
                attach_files=True,
            )

        for role_id in sorted(staff_role_ids):
            role = guild.get_role(role_id)
            if role is None:
                logger.warning("staff_role_not_in_guild", role_id=role_id, guild_id=guild.id)
                continue
            overwrites[role] = discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
            )

        return overwrites

    async def create_ticket_channel(
        self,
        guild: discord.Guild,
        requester: Any,
        category: TicketCategory,
        name: str,
        staff_role_ids: FrozenSet[int],
    ) -> discord.TextChannel:
        parent = None
        parent_id = self.category_parent_id(category)
        if parent_id:
            parent = guild.get_channel(int(parent_id))
            if not isinstance(parent, discord.CategoryChannel):
                logger.warning("ticket_category_channel_not_found", category=category.value, parent_id=parent_id)
                parent = None

        try:
            return await guild.create_text_channel(
                name=name,
                category=parent,
                overwrites=self._build_overwrites(guild, requester, staff_role_ids),
                topic=templates.ticket_topic(category, requester),
                reason=f"{AUDIT_REASON}: {category.label} ticket for {requester.id}",
            )
        except discord.HTTPException as e:
            logger.error(
                "ticket_channel_create_failed",
                category=category.value,
                user_id=str(requester.id),
                status=getattr(e, "status", None),
                error=str(e),
            )
            raise CollaboratorFailure(f"Failed to create ticket channel: {e}") from e

    async def delete_channel(self, channel: discord.abc.GuildChannel) -> None:
        try:
            await channel.delete(reason=f"{AUDIT_REASON}: ticket deleted")
        except discord.NotFound:
            logger.info("ticket_channel_already_gone", channel_id=str(channel.id))
        except discord.HTTPException as e:
            raise CollaboratorFailure(f"Failed to delete channel {channel.id}: {e}") from e

    async def set_requester_send(self, channel: discord.TextChannel, user_id: str, allowed: bool) -> None:
        """Разрешить/запретить автору писать, не трогая остальные права."""
        try:
            target = await self._resolve_member(channel.guild, user_id)
            overwrite = channel.overwrites_for(target)
            overwrite.send_messages = allowed
            await channel.set_permissions(
                target,
                overwrite=overwrite,
                reason=f"{AUDIT_REASON}: ticket {'reopened' if allowed else 'closed'}",
            )
        except discord.HTTPException as e:
            logger.error(
                "ticket_permission_update_failed",
                channel_id=str(channel.id),
                user_id=user_id,
                allowed=allowed,
                error=str(e),
            )
            raise CollaboratorFailure(f"Failed to update permissions: {e}") from e

    # ==================== MESSAGES ====================

    async def _send(self, channel: discord.abc.Messageable, **kwargs) -> discord.Message:
        try:
            return await channel.send(**kwargs)
        except discord.HTTPException as e:
            logger.error("ticket_message_send_failed", channel_id=str(getattr(channel, "id", "")), error=str(e))
            raise CollaboratorFailure(f"Failed to send message: {e}") from e

    async def post_ticket_opened(
        self,
        channel: discord.TextChannel,
        requester: Any,
        record: TicketRecord,
        staff_role_ids: FrozenSet[int],
    ) -> None:
        """Приветствие, ответы формы, пинг персонала и кнопки управления."""
        embeds = [templates.welcome_embed(record.category, requester, with_form=bool(record.form_data))]
        if record.form_data:
            embeds.append(get_panel(record.category).response_embed(requester, record.form_data, record.channel_id))

        known_roles = [role_id for role_id in staff_role_ids if channel.guild.get_role(role_id) is not None]

        await self._send(
            channel,
            content=templates.opening_mentions(requester.id, known_roles),
            embeds=embeds,
            allowed_mentions=discord.AllowedMentions(users=True, roles=True),
        )
        await self._send(channel, view=self.controls_view())

    async def post_ticket_registered(self, channel: discord.TextChannel, record: TicketRecord) -> None:
        await self._send(
            channel,
            content=templates.registered_message(record.category, record.user_id),
            view=self.controls_view(),
        )

    async def post_ticket_closed(self, channel: discord.TextChannel, actor: Any) -> None:
        await self._send(
            channel,
            embed=templates.closed_embed(actor),
            view=closed_ticket_view(self.delete_emoji),
        )

    async def post_ticket_reopened(self, channel: discord.TextChannel, actor: Any) -> None:
        await self._send(
            channel,
            embed=templates.reopened_embed(actor),
            view=self.controls_view(),
        )

    async def post_event_details(self, channel: discord.TextChannel, event: Any) -> None:
        """
        Карточка ивента TruckersMP и кнопки решения.

        Если ивент не найден, просим прислать детали вручную.
        """
        if event is None:
            await self._send(channel, content=templates.EVENT_DETAILS_FAILED, view=event_decision_view())
            return
        await self._send(channel, embed=templates.event_details_embed(event), view=event_decision_view())

    # ==================== LOG ====================

    async def log_action(self, actor: Any, record: TicketRecord, action: str) -> None:
        """Запись в канал журнала. Ошибки только логируются."""
        log_channel = self._configured_channel(self.log_channel_id, "log")
        if log_channel is None:
            return

        summary = None
        if action == "created" and record.form_data:
            summary = get_panel(record.category).summary(record.form_data)

        try:
            await log_channel.send(embed=templates.log_embed(actor, record, action, summary))
        except discord.HTTPException as e:
            logger.warning(
                "ticket_log_send_failed",
                action=action,
                channel_id=record.channel_id,
                error=str(e),
            )

    # ==================== TRANSCRIPTS ====================

    async def _collect_entries(self, channel: discord.TextChannel) -> List[TranscriptEntry]:
        entries: List[TranscriptEntry] = []
        async for message in channel.history(limit=self.transcript_message_limit, oldest_first=True):
            content = message.content or ""
            if message.embeds and not content:
                content = "\n".join(
                    part for embed in message.embeds for part in (embed.title, embed.description) if part
                )
            entries.append(TranscriptEntry(
                author=templates.user_tag(message.author),
                content=content,
                created_at=message.created_at,
                attachments=tuple(a.url for a in message.attachments),
            ))
        return entries

    async def _render(self, channel: discord.TextChannel, actor: Any, record: TicketRecord, deleted: bool) -> TranscriptFile:
        try:
            entries = await self._collect_entries(channel)
        except discord.HTTPException as e:
            logger.error("transcript_history_failed", channel_id=record.channel_id, error=str(e))
            raise TranscriptError(f"Failed to read channel history: {e}") from e

        options = TranscriptOptions(
            channel_name=channel.name,
            header=templates.transcript_header(record, deleted),
            footer=templates.transcript_footer(actor, deleted),
            details=[
                f"Ticket ID: {record.channel_id}",
                f"Opened by: {record.user_id}",
                f"Messages: {len(entries)}",
            ],
        )
        return await self.transcripts.render(entries, options)

    @staticmethod
    def _as_file(transcript: TranscriptFile) -> discord.File:
        return discord.File(io.BytesIO(transcript.data), filename=transcript.filename)

    async def _archive(self, channel: discord.TextChannel, actor: Any, record: TicketRecord,
                       transcript: TranscriptFile, deleted: bool) -> None:
        archive = self._configured_channel(self.transcript_channel_id, "transcript")
        if archive is None:
            return
        try:
            await archive.send(
                embed=templates.transcript_archive_embed(channel.name, actor, record, deleted),
                file=self._as_file(transcript),
            )
        except discord.HTTPException as e:
            raise TranscriptError(f"Failed to archive transcript: {e}") from e

    async def post_transcript(self, channel: discord.TextChannel, actor: Any, record: TicketRecord) -> None:
        """Транскрипт в канал тикета и копия в архив."""
        transcript = await self._render(channel, actor, record, deleted=False)

        try:
            await channel.send(
                content=f"Transcript saved by {templates.mention_user(actor.id)}",
                file=self._as_file(transcript),
            )
        except discord.HTTPException as e:
            raise TranscriptError(f"Failed to post transcript: {e}") from e

        try:
            await self._archive(channel, actor, record, transcript, deleted=False)
        except TranscriptError as e:
            logger.warning("transcript_archive_failed", channel_id=record.channel_id, error=str(e))

        logger.info("transcript_posted", channel_id=record.channel_id, filename=transcript.filename)

    async def archive_transcript(self, channel: discord.TextChannel, actor: Any, record: TicketRecord) -> None:
        """Транскрипт перед удалением: только в архив."""
        transcript = await self._render(channel, actor, record, deleted=True)
        await self._archive(channel, actor, record, transcript, deleted=True)
        logger.info("transcript_archived", channel_id=record.channel_id, filename=transcript.filename)
