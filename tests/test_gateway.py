"""
Тесты адаптера Discord.

Гильдия, каналы и клиент заменены MagicMock.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from core.categories import TicketCategory
from core.exceptions import CollaboratorFailure
from database.models import TicketRecord
from ticket_bot import templates
from ticket_bot.gateway import DiscordGateway
from tests.conftest import SUPPORT_ROLE, make_member


MISSING_ROLE = 999999999999999999


def http_error(status: int = 403, reason: str = "Forbidden") -> discord.HTTPException:
    response = SimpleNamespace(status=status, reason=reason)
    return discord.HTTPException(response, "Missing Permissions")


def guild_object(object_id: int, name: str = "user") -> MagicMock:
    """Участник или роль: ключ словаря overwrites, поэтому hashable."""
    obj = MagicMock()
    obj.id = object_id
    obj.name = name
    obj.discriminator = "0"
    return obj


def make_guild(channels=None):
    roles = {SUPPORT_ROLE: guild_object(SUPPORT_ROLE, "Support")}
    guild = MagicMock()
    guild.id = 1
    guild.default_role = guild_object(1, "@everyone")
    guild.me = guild_object(2, "bot")
    guild.get_role = lambda role_id: roles.get(role_id)
    guild.get_channel = lambda channel_id: (channels or {}).get(channel_id)
    guild.create_text_channel = AsyncMock(return_value=SimpleNamespace(id=10, name="support-john"))
    return guild


def make_record(**changes):
    return TicketRecord(
        channel_id="10",
        user_id="7",
        category=TicketCategory.SUPPORT,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        **changes,
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.get_channel = MagicMock(return_value=None)
    return client


@pytest.fixture
def discord_gateway(client):
    return DiscordGateway(
        client=client,
        transcripts=MagicMock(),
        category_parent_id=lambda category: None,
        log_channel_id=555,
    )


class TestOverwrites:
    """Права канала тикета."""

    def test_requester_staff_and_bot(self, discord_gateway):
        guild = make_guild()
        requester = guild_object(7, "john")

        overwrites = discord_gateway._build_overwrites(guild, requester, frozenset({SUPPORT_ROLE, MISSING_ROLE}))

        assert overwrites[guild.default_role].view_channel is False
        assert overwrites[requester].send_messages is True
        assert overwrites[guild.me].manage_channels is True
        assert overwrites[guild.get_role(SUPPORT_ROLE)].view_channel is True
        assert len(overwrites) == 4


class TestCreateChannel:

    @pytest.mark.asyncio
    async def test_create(self, discord_gateway):
        guild = make_guild()
        requester = guild_object(7, "john")

        channel = await discord_gateway.create_ticket_channel(
            guild, requester, TicketCategory.SUPPORT, "support-john", frozenset({SUPPORT_ROLE}),
        )

        assert channel.id == 10
        kwargs = guild.create_text_channel.call_args.kwargs
        assert kwargs["name"] == "support-john"
        assert kwargs["category"] is None

    @pytest.mark.asyncio
    async def test_parent_category(self, client):
        parent = MagicMock(spec=discord.CategoryChannel)
        guild = make_guild(channels={42: parent})
        gateway = DiscordGateway(client=client, transcripts=MagicMock(), category_parent_id=lambda category: 42)

        await gateway.create_ticket_channel(guild, guild_object(7), TicketCategory.HR, "hr-john", frozenset())

        assert guild.create_text_channel.call_args.kwargs["category"] is parent

    @pytest.mark.asyncio
    async def test_discord_error_is_wrapped(self, discord_gateway):
        guild = make_guild()
        guild.create_text_channel = AsyncMock(side_effect=http_error())

        with pytest.raises(CollaboratorFailure):
            await discord_gateway.create_ticket_channel(
                guild, guild_object(7), TicketCategory.SUPPORT, "support-john", frozenset(),
            )


class TestLogAction:
    """Журнал действий."""

    @pytest.mark.asyncio
    async def test_log_disabled_without_channel(self, client):
        gateway = DiscordGateway(client=client, transcripts=MagicMock(), category_parent_id=lambda c: None)

        await gateway.log_action(make_member(7), make_record(), "closed")

        client.get_channel.assert_not_called()

    @pytest.mark.asyncio
    async def test_log_failure_is_swallowed(self, discord_gateway, client):
        log_channel = SimpleNamespace(send=AsyncMock(side_effect=http_error()))
        client.get_channel.return_value = log_channel

        await discord_gateway.log_action(make_member(7), make_record(), "closed")

        log_channel.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_created_log_has_summary(self, discord_gateway, client):
        log_channel = SimpleNamespace(send=AsyncMock())
        client.get_channel.return_value = log_channel

        record = make_record(form_data={"discordName": "john", "subject": "Login"})
        await discord_gateway.log_action(make_member(7), record, "created")

        embed = log_channel.send.call_args.kwargs["embed"]
        assert any("Discord Name: john" in str(field.value) for field in embed.fields)


class TestEventDetails:

    @pytest.mark.asyncio
    async def test_lookup_failed(self, discord_gateway):
        channel = SimpleNamespace(id=10, send=AsyncMock())

        await discord_gateway.post_event_details(channel, None)

        kwargs = channel.send.call_args.kwargs
        assert kwargs["content"] == templates.EVENT_DETAILS_FAILED
        assert kwargs["view"] is not None


class TestChannelExists:

    def test_uses_client_cache(self, discord_gateway, client):
        client.get_channel.return_value = object()

        assert discord_gateway.channel_exists("10") is True
        client.get_channel.assert_called_with(10)
