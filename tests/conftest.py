"""
Общие фикстуры тестов.

Платформа Discord заменена FakeGateway (записывает вызовы),
участники - SimpleNamespace с ролями и правами.
"""

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from core.exceptions import CollaboratorFailure, TranscriptError
from core.lifecycle import TicketLifecycle
from core.policy import AuthorizationPolicy
from core.quota import QuotaGuard
from database.registry import TicketRegistry
from database.store import TicketStore
from ticket_bot.handlers import BotContext, InteractionDispatcher, get_main_router


SUPPORT_ROLE = 111111111111111111
HR_ROLE = 222222222222222222
BOOKINGS_ROLE = 333333333333333333

STAFF_ROLES = {
    "support": str(SUPPORT_ROLE),
    "hr": [HR_ROLE, "not-a-role"],
    "bookings": BOOKINGS_ROLE,
}

TICKET_CHANNEL_ID = 900000000000000001


# ============================================================
# ПЛАТФОРМА
# ============================================================

class FakeGateway:
    """Записывает побочные эффекты вместо вызовов Discord."""

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []
        self.fail_archive = False
        self.fail_create = False
        self.deleted_channels: List[Any] = []
        self.live_channels = set()
        self._ids = itertools.count(TICKET_CHANNEL_ID + 1000)

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def channel_exists(self, channel_id: str) -> bool:
        return str(channel_id) in self.live_channels

    async def create_ticket_channel(self, guild, requester, category, name, staff_role_ids):
        if self.fail_create:
            raise CollaboratorFailure("Missing Permissions")
        channel = make_channel(next(self._ids), name=name)
        self.live_channels.add(str(channel.id))
        self.calls.append(("create_ticket_channel", (name, category, staff_role_ids)))
        return channel

    async def post_ticket_opened(self, channel, requester, record, staff_role_ids):
        self.calls.append(("post_ticket_opened", record.channel_id))

    async def post_ticket_registered(self, channel, record):
        self.calls.append(("post_ticket_registered", record.channel_id))

    async def set_requester_send(self, channel, user_id, allowed):
        self.calls.append(("set_requester_send", (str(channel.id), user_id, allowed)))

    async def post_ticket_closed(self, channel, actor):
        self.calls.append(("post_ticket_closed", str(channel.id)))

    async def post_ticket_reopened(self, channel, actor):
        self.calls.append(("post_ticket_reopened", str(channel.id)))

    async def post_transcript(self, channel, actor, record):
        self.calls.append(("post_transcript", record.channel_id))

    async def archive_transcript(self, channel, actor, record):
        if self.fail_archive:
            raise TranscriptError("history unavailable")
        self.calls.append(("archive_transcript", record.channel_id))

    async def delete_channel(self, channel):
        self.deleted_channels.append(channel)
        self.live_channels.discard(str(channel.id))
        self.calls.append(("delete_channel", str(channel.id)))

    async def log_action(self, actor, record, action):
        self.calls.append(("log_action", action))

    async def post_event_details(self, channel, event):
        self.calls.append(("post_event_details", (str(channel.id), event)))


def make_channel(channel_id: int = TICKET_CHANNEL_ID, name: str = "support-user") -> SimpleNamespace:
    return SimpleNamespace(id=channel_id, name=name, send=AsyncMock())


def make_member(
    user_id: int,
    name: str = "user",
    role_ids: Tuple[int, ...] = (),
    administrator: bool = False,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=user_id,
        name=name,
        discriminator="0",
        roles=[SimpleNamespace(id=role_id) for role_id in role_ids],
        guild_permissions=SimpleNamespace(administrator=administrator),
    )


class FakeResponse:
    """interaction.response: запоминает, был ли ответ."""

    def __init__(self):
        self.done = False
        self.send_message = AsyncMock(side_effect=self._mark)
        self.defer = AsyncMock(side_effect=self._mark)
        self.edit_message = AsyncMock(side_effect=self._mark)
        self.send_modal = AsyncMock(side_effect=self._mark)

    def is_done(self) -> bool:
        return self.done

    async def _mark(self, *args, **kwargs) -> None:
        self.done = True


def make_interaction(
    custom_id: str,
    user: Any,
    channel: Optional[Any] = None,
    interaction_type: discord.InteractionType = discord.InteractionType.component,
    component_type: int = discord.ComponentType.button.value,
    **data: Any,
) -> MagicMock:
    channel = channel or make_channel()
    interaction = MagicMock()
    interaction.type = interaction_type
    interaction.data = {"custom_id": custom_id, "component_type": component_type, **data}
    interaction.user = user
    interaction.channel = channel
    interaction.channel_id = channel.id
    interaction.guild = MagicMock()
    interaction.response = FakeResponse()
    interaction.followup = MagicMock()
    interaction.followup.send = AsyncMock()
    interaction.edit_original_response = AsyncMock()
    return interaction


def sent_text(interaction: MagicMock) -> str:
    """Все тексты, отправленные в ответ на взаимодействие."""
    texts = []
    for mock in (
        interaction.response.send_message,
        interaction.response.edit_message,
        interaction.followup.send,
        interaction.edit_original_response,
    ):
        for call in mock.call_args_list:
            content = call.kwargs.get("content")
            if content is None and call.args:
                content = call.args[0]
            if content:
                texts.append(str(content))
    return "\n".join(texts)


# ============================================================
# ФИКСТУРЫ
# ============================================================

@pytest.fixture
def tickets_path(tmp_path):
    return tmp_path / "data" / "active_tickets.json"


@pytest.fixture
def store(tickets_path):
    return TicketStore(tickets_path)


@pytest.fixture
def registry(store):
    return TicketRegistry(store)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def policy():
    return AuthorizationPolicy(STAFF_ROLES)


@pytest.fixture
def clock():
    """Часы, которые сдвигаются на минуту при каждом вызове."""
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(minutes=next(ticks))


@pytest.fixture
def lifecycle(registry, gateway, policy, clock):
    return TicketLifecycle(
        registry,
        gateway,
        staff_roles_for=policy.roles_for,
        delete_delay=0,
        clock=clock,
    )


@pytest.fixture
def requester():
    return make_member(500000000000000001, name="requester")


@pytest.fixture
def support_staff():
    return make_member(500000000000000002, name="helper", role_ids=(SUPPORT_ROLE,))


@pytest.fixture
def hr_staff():
    return make_member(500000000000000003, name="recruiter", role_ids=(HR_ROLE,))


@pytest.fixture
def admin():
    return make_member(500000000000000004, name="admin", administrator=True)


@pytest.fixture
def truckersmp():
    client = MagicMock()
    client.fetch_event_by_link = AsyncMock(return_value=None)
    return client


@pytest.fixture
def context(store, registry, lifecycle, policy, gateway, truckersmp):
    return BotContext(
        store=store,
        registry=registry,
        lifecycle=lifecycle,
        policy=policy,
        quota=QuotaGuard(max_total=10, max_per_category=3),
        gateway=gateway,
        truckersmp=truckersmp,
    )


@pytest.fixture
def dispatcher(context):
    return InteractionDispatcher(get_main_router(), context)
