"""
Тесты маршрутизации взаимодействий и обработчиков.

Discord заменён моками взаимодействий и FakeGateway.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import discord
import pytest

from core.categories import TicketCategory
from core.exceptions import PersistenceFailure
from core.policy import STAFF_ONLY_MESSAGE
from database.models import TicketRecord
from ticket_bot.handlers import InteractionDispatcher, InteractionRouter
from ticket_bot.handlers.admin import REGISTER_ADMIN_MESSAGE
from ticket_bot.handlers.router import KIND_BUTTON, KIND_MODAL
from ticket_bot.handlers.tickets import CREATE_FAILED_MESSAGE
from ticket_bot.views import (
    DECLINE_REASON_SELECT,
    EVENT_ACCEPT,
    EVENT_DECLINE,
    TICKET_CLOSE,
    TICKET_CLOSE_CANCEL,
    TICKET_CLOSE_CONFIRM,
    TICKET_DELETE,
    TICKET_REOPEN,
    TICKET_TRANSCRIPT,
)
from tests.conftest import TICKET_CHANNEL_ID, make_channel, make_interaction, make_member, sent_text


NOT_A_TICKET = "This channel is not set up as a ticket"


async def open_ticket(context, user, category=TicketCategory.SUPPORT, channel_id=TICKET_CHANNEL_ID, **changes):
    record = TicketRecord(
        channel_id=str(channel_id),
        user_id=str(user.id),
        category=category,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        **changes,
    )
    await context.registry.set(record)
    return record


# ============================================================
# РОУТЕР
# ============================================================

class TestInteractionRouter:
    """Таблицы обработчиков."""

    def test_exact_match_before_prefix(self):
        router = InteractionRouter()

        async def exact(interaction, context):
            pass

        async def prefixed(interaction, context):
            pass

        router.register(KIND_BUTTON, prefixed, prefix="ticket_")
        router.register(KIND_BUTTON, exact, key="ticket_close")

        assert router.resolve(KIND_BUTTON, "ticket_close") is exact
        assert router.resolve(KIND_BUTTON, "ticket_other") is prefixed
        assert router.resolve(KIND_MODAL, "ticket_close") is None

    def test_longest_prefix_wins(self):
        router = InteractionRouter()

        @router.button(prefix="a_")
        async def short(interaction, context):
            pass

        @router.button(prefix="a_b_")
        async def long(interaction, context):
            pass

        assert router.resolve(KIND_BUTTON, "a_b_c") is long
        assert router.resolve(KIND_BUTTON, "a_c") is short

    def test_child_routers(self):
        parent = InteractionRouter("parent")
        child = parent.include_router(InteractionRouter("child"))

        @child.select("menu")
        async def handler(interaction, context):
            pass

        assert parent.resolve("select", "menu") is handler

    def test_duplicate_key_rejected(self):
        router = InteractionRouter()

        @router.button("x")
        async def first(interaction, context):
            pass

        with pytest.raises(ValueError):
            router.register(KIND_BUTTON, first, key="x")

    def test_key_or_prefix_required(self):
        router = InteractionRouter()

        with pytest.raises(ValueError):
            router.register(KIND_BUTTON, lambda *a: None)


class TestDispatcher:
    """Изоляция ошибок."""

    @pytest.mark.asyncio
    async def test_handler_crash_is_answered(self, context, requester):
        router = InteractionRouter()

        @router.button("boom")
        async def boom(interaction, context):
            raise RuntimeError("kaboom")

        dispatcher = InteractionDispatcher(router, context)
        interaction = make_interaction("boom", requester)

        assert await dispatcher.dispatch(interaction) is True

        text = sent_text(interaction)
        assert "An error occurred while processing your request." in text
        assert "ERR-" in text

    @pytest.mark.asyncio
    async def test_crash_after_defer_uses_followup(self, context, requester):
        router = InteractionRouter()

        @router.button("late")
        async def late(interaction, context):
            await interaction.response.defer()
            raise RuntimeError("kaboom")

        interaction = make_interaction("late", requester)
        await InteractionDispatcher(router, context).dispatch(interaction)

        interaction.followup.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_component(self, dispatcher, requester):
        interaction = make_interaction("something_else", requester)

        assert await dispatcher.dispatch(interaction) is False
        interaction.response.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_command(self, dispatcher, requester):
        interaction = make_interaction("", requester)

        assert await dispatcher.run_command("nope", interaction) is False


# ============================================================
# ЗАКРЫТИЕ
# ============================================================

class TestCloseControls:
    """Кнопки закрытия тикета."""

    @pytest.mark.asyncio
    async def test_close_in_non_ticket_channel(self, dispatcher, support_staff):
        interaction = make_interaction(TICKET_CLOSE, support_staff)

        await dispatcher.dispatch(interaction)

        assert NOT_A_TICKET in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_close_by_non_staff(self, dispatcher, context, requester):
        await open_ticket(context, requester)
        interaction = make_interaction(TICKET_CLOSE, requester)

        await dispatcher.dispatch(interaction)

        assert STAFF_ONLY_MESSAGE in sent_text(interaction)
        assert not context.lifecycle.is_pending_close(str(TICKET_CHANNEL_ID))

        await context.store.close()

    @pytest.mark.asyncio
    async def test_staff_of_other_category_is_denied(self, dispatcher, context, requester, support_staff):
        await open_ticket(context, requester, category=TicketCategory.HR)
        interaction = make_interaction(TICKET_CLOSE, support_staff)

        await dispatcher.dispatch(interaction)

        assert STAFF_ONLY_MESSAGE in sent_text(interaction)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_close_confirm(self, dispatcher, context, gateway, requester, support_staff):
        await open_ticket(context, requester)

        prompt = make_interaction(TICKET_CLOSE, support_staff)
        await dispatcher.dispatch(prompt)

        kwargs = prompt.response.send_message.call_args.kwargs
        assert kwargs["ephemeral"] is False
        assert kwargs["embed"].title == "Confirm Ticket Closure"
        assert context.lifecycle.is_pending_close(str(TICKET_CHANNEL_ID))

        confirm = make_interaction(TICKET_CLOSE_CONFIRM, support_staff)
        await dispatcher.dispatch(confirm)

        assert context.registry.require(str(TICKET_CHANNEL_ID)).closed is True
        assert "Ticket has been closed." in sent_text(confirm)
        assert "post_ticket_closed" in gateway.names()

        await context.store.close()

    @pytest.mark.asyncio
    async def test_close_confirm_with_disk_failure(self, dispatcher, context, gateway, requester, support_staff):
        await open_ticket(context, requester)
        await dispatcher.dispatch(make_interaction(TICKET_CLOSE, support_staff))
        context.store.save = AsyncMock(side_effect=PersistenceFailure("disk full"))

        confirm = make_interaction(TICKET_CLOSE_CONFIRM, support_staff)
        await dispatcher.dispatch(confirm)

        assert context.registry.require(str(TICKET_CHANNEL_ID)).closed is True
        assert "post_ticket_closed" in gateway.names()
        assert "ERR-" in sent_text(confirm)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_non_staff_confirm_leaves_record_unchanged(self, dispatcher, context, requester, support_staff):
        record = await open_ticket(context, requester)
        await dispatcher.dispatch(make_interaction(TICKET_CLOSE, support_staff))

        confirm = make_interaction(TICKET_CLOSE_CONFIRM, requester)
        await dispatcher.dispatch(confirm)

        assert STAFF_ONLY_MESSAGE in sent_text(confirm)
        assert context.registry.require(record.channel_id) == record

        await context.store.close()

    @pytest.mark.asyncio
    async def test_cancel(self, dispatcher, context, requester, support_staff):
        await open_ticket(context, requester)
        await dispatcher.dispatch(make_interaction(TICKET_CLOSE, support_staff))

        cancel = make_interaction(TICKET_CLOSE_CANCEL, support_staff)
        await dispatcher.dispatch(cancel)

        record = context.registry.require(str(TICKET_CHANNEL_ID))
        assert record.closed is False
        assert record.closed_at is None
        assert "Ticket closure cancelled." in sent_text(cancel)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_stale_confirm(self, dispatcher, context, requester, support_staff):
        """Подтверждение без запроса (например, после перезапуска бота)."""
        await open_ticket(context, requester)

        confirm = make_interaction(TICKET_CLOSE_CONFIRM, support_staff)
        await dispatcher.dispatch(confirm)

        assert "This close request has expired" in sent_text(confirm)
        assert context.registry.require(str(TICKET_CHANNEL_ID)).closed is False

        await context.store.close()

    @pytest.mark.asyncio
    async def test_reopen(self, dispatcher, context, requester, support_staff):
        await open_ticket(context, requester, closed=True)

        denied = make_interaction(TICKET_REOPEN, requester)
        await dispatcher.dispatch(denied)
        assert STAFF_ONLY_MESSAGE in sent_text(denied)
        assert context.registry.require(str(TICKET_CHANNEL_ID)).closed is True

        reopen = make_interaction(TICKET_REOPEN, support_staff)
        await dispatcher.dispatch(reopen)

        record = context.registry.require(str(TICKET_CHANNEL_ID))
        assert record.closed is False
        assert record.reopened_by == str(support_staff.id)
        assert "Ticket has been reopened." in sent_text(reopen)

        await context.store.close()


# ============================================================
# УДАЛЕНИЕ И ТРАНСКРИПТ
# ============================================================

class TestDeleteControls:

    @pytest.mark.asyncio
    async def test_non_staff_delete(self, dispatcher, context, requester):
        await open_ticket(context, requester)
        interaction = make_interaction(TICKET_DELETE, requester)

        await dispatcher.dispatch(interaction)

        assert STAFF_ONLY_MESSAGE in sent_text(interaction)
        assert context.registry.contains(str(TICKET_CHANNEL_ID))

        await context.store.close()

    @pytest.mark.asyncio
    async def test_delete_then_late_event(self, dispatcher, context, gateway, requester, admin):
        await open_ticket(context, requester)

        delete = make_interaction(TICKET_DELETE, admin)
        await dispatcher.dispatch(delete)
        await context.drain()

        assert "Transcript saved. Ticket will be deleted in 0 seconds..." in sent_text(delete)
        assert delete.followup.send.call_args.kwargs["ephemeral"] is False
        assert len(gateway.deleted_channels) == 1

        late = make_interaction(TICKET_CLOSE, admin)
        await dispatcher.dispatch(late)
        assert NOT_A_TICKET in sent_text(late)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_delete_with_failed_transcript(self, dispatcher, context, gateway, requester, admin):
        await open_ticket(context, requester)
        gateway.fail_archive = True

        delete = make_interaction(TICKET_DELETE, admin)
        await dispatcher.dispatch(delete)
        await context.drain()

        assert "Failed to save transcript." in sent_text(delete)
        assert not context.registry.contains(str(TICKET_CHANNEL_ID))

        await context.store.close()

    @pytest.mark.asyncio
    async def test_transcript_by_requester(self, dispatcher, context, gateway, requester):
        await open_ticket(context, requester)
        interaction = make_interaction(TICKET_TRANSCRIPT, requester)

        await dispatcher.dispatch(interaction)

        assert "Transcript has been created and saved!" in sent_text(interaction)
        assert "post_transcript" in gateway.names()

        await context.store.close()


# ============================================================
# СОЗДАНИЕ
# ============================================================

def modal_submission(custom_id, user, values):
    rows = [
        {"type": 1, "components": [{"type": 4, "custom_id": key, "value": value}]}
        for key, value in values.items()
    ]
    return make_interaction(
        custom_id,
        user,
        interaction_type=discord.InteractionType.modal_submit,
        components=rows,
    )


class TestCreation:
    """Создание тикетов через кнопки и формы."""

    @pytest.mark.asyncio
    async def test_panel_button_shows_modal(self, dispatcher, requester):
        interaction = make_interaction("panel_open_support", requester)

        await dispatcher.dispatch(interaction)

        modal = interaction.response.send_modal.call_args.args[0]
        assert modal.custom_id == "panel_form_support"

    @pytest.mark.asyncio
    async def test_panel_button_over_quota(self, dispatcher, context, requester):
        for i in range(3):
            await open_ticket(context, requester, channel_id=TICKET_CHANNEL_ID + i)
        interaction = make_interaction("panel_open_support", requester)

        await dispatcher.dispatch(interaction)

        interaction.response.send_modal.assert_not_called()
        assert "3 open Support tickets" in sent_text(interaction)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_modal_creates_ticket_with_form_data(self, dispatcher, context, requester):
        interaction = modal_submission("panel_form_support", requester, {
            "discordName": "requester",
            "subject": "Login",
            "description": "Cannot log in",
            "unknown": "dropped",
        })

        await dispatcher.dispatch(interaction)

        [record] = context.registry.all()
        assert record.category is TicketCategory.SUPPORT
        assert record.form_data == {"discordName": "requester", "subject": "Login", "description": "Cannot log in"}
        assert f"Your Support ticket has been created: <#{record.channel_id}>" in sent_text(interaction)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_legacy_create_button(self, dispatcher, context, requester):
        interaction = make_interaction("ticket_create_joinTeam", requester)

        await dispatcher.dispatch(interaction)

        [record] = context.registry.all()
        assert record.category is TicketCategory.JOIN_TEAM
        assert record.form_data is None
        assert f"Your ticket has been created: <#{record.channel_id}>" in sent_text(interaction)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_disk_failure_still_links_channel(self, dispatcher, context, gateway, requester):
        context.store.save = AsyncMock(side_effect=PersistenceFailure("disk full"))
        interaction = make_interaction("ticket_create_support", requester)

        await dispatcher.dispatch(interaction)

        [record] = context.registry.all()
        assert f"Your ticket has been created: <#{record.channel_id}>" in sent_text(interaction)
        assert CREATE_FAILED_MESSAGE not in sent_text(interaction)
        assert "post_ticket_opened" in gateway.names()

        await context.store.close()

    @pytest.mark.asyncio
    async def test_legacy_create_unknown_category(self, dispatcher, context, requester):
        interaction = make_interaction("ticket_create_vip", requester)

        await dispatcher.dispatch(interaction)

        assert "Invalid ticket type" in sent_text(interaction)
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_total_quota_applies_to_every_entry_point(self, dispatcher, context, requester):
        categories = [TicketCategory.SUPPORT, TicketCategory.HR, TicketCategory.FOUNDERS, TicketCategory.PARTNERSHIP]
        channel_id = TICKET_CHANNEL_ID
        for index in range(10):
            await open_ticket(context, requester, category=categories[index % 4], channel_id=channel_id + index)

        interaction = make_interaction("ticket_create_bookUs", requester)
        await dispatcher.dispatch(interaction)

        assert "maximum limit of 10" in sent_text(interaction)
        assert len(context.registry) == 10

        await context.store.close()

    @pytest.mark.asyncio
    async def test_channel_failure(self, dispatcher, context, gateway, requester):
        gateway.fail_create = True
        interaction = make_interaction("ticket_create_support", requester)

        await dispatcher.dispatch(interaction)

        assert CREATE_FAILED_MESSAGE in sent_text(interaction)
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_book_us_event_lookup(self, dispatcher, context, gateway, truckersmp, requester):
        interaction = modal_submission("panel_form_bookus", requester, {
            "discordName": "requester",
            "vtcRole": "Event Manager",
            "eventLink": "https://truckersmp.com/events/12345",
            "eventDate": "2026-02-01",
        })

        await dispatcher.dispatch(interaction)
        await context.drain()

        [record] = context.registry.all()
        truckersmp.fetch_event_by_link.assert_awaited_once_with("https://truckersmp.com/events/12345")
        assert ("post_event_details", (record.channel_id, None)) in gateway.calls

        await context.store.close()


# ============================================================
# BOOK US
# ============================================================

class TestEventDecision:

    @pytest.mark.asyncio
    async def test_accept_requires_staff(self, dispatcher, context, requester):
        await open_ticket(context, requester, category=TicketCategory.BOOK_US)
        interaction = make_interaction(EVENT_ACCEPT, requester)

        await dispatcher.dispatch(interaction)

        assert STAFF_ONLY_MESSAGE in sent_text(interaction)
        interaction.response.edit_message.assert_not_called()

        await context.store.close()

    @pytest.mark.asyncio
    async def test_accept(self, dispatcher, context, admin, requester):
        await open_ticket(context, requester, category=TicketCategory.BOOK_US)
        interaction = make_interaction(EVENT_ACCEPT, admin)

        await dispatcher.dispatch(interaction)

        interaction.response.edit_message.assert_awaited_once_with(view=None)
        kwargs = interaction.followup.send.call_args.kwargs
        assert kwargs["content"] == f"✅ <@{requester.id}>"
        assert kwargs["embed"].title == "Real Ops Request Accepted"

        await context.store.close()

    @pytest.mark.asyncio
    async def test_decline_flow(self, dispatcher, context, requester):
        bookings = make_member(7, role_ids=(333333333333333333,))
        channel = make_channel()
        await open_ticket(context, requester, category=TicketCategory.BOOK_US)

        decline = make_interaction(EVENT_DECLINE, bookings, channel=channel)
        await dispatcher.dispatch(decline)
        assert "Please select the reason" in sent_text(decline)

        select = make_interaction(
            DECLINE_REASON_SELECT,
            bookings,
            channel=channel,
            component_type=discord.ComponentType.select.value,
            values=["short_notice"],
        )
        await dispatcher.dispatch(select)

        assert "Decline reason has been posted" in sent_text(select)
        posted = channel.send.call_args.kwargs
        assert posted["content"] == f"❌ <@{requester.id}>, your event booking has been **declined**."
        assert "less than 4 weeks" in posted["embed"].description

        await context.store.close()

    @pytest.mark.asyncio
    async def test_decline_in_non_ticket_channel(self, dispatcher, admin):
        interaction = make_interaction(EVENT_DECLINE, admin)

        await dispatcher.dispatch(interaction)

        assert NOT_A_TICKET in sent_text(interaction)


# ============================================================
# АДМИНИСТРИРОВАНИЕ
# ============================================================

class TestAdminCommands:

    @pytest.mark.asyncio
    async def test_setup_panel(self, dispatcher, admin):
        channel = make_channel(77)
        interaction = make_interaction("", admin, channel=channel)

        await dispatcher.run_command("setup-jointeam", interaction)

        posted = channel.send.call_args.kwargs
        assert posted["embed"].title == "Join the Team"
        assert "Join the Team panel has been set up!" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_setup_requires_admin(self, dispatcher, support_staff):
        channel = make_channel(77)
        interaction = make_interaction("", support_staff, channel=channel)

        await dispatcher.run_command("setup-support", interaction)

        channel.send.assert_not_called()
        assert "administrator permissions" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_register_ticket(self, dispatcher, context, admin, requester):
        channel = make_channel(88)
        interaction = make_interaction("", admin, channel=channel)

        await dispatcher.run_command("register-ticket", interaction, user=requester, ticket_type="hr")

        record = context.registry.require("88")
        assert record.manually_registered is True
        assert record.user_id == str(requester.id)
        assert (
            f"Successfully registered <#88> as a HR Department ticket for <@{requester.id}>."
            in sent_text(interaction)
        )

        again = make_interaction("", admin, channel=channel)
        await dispatcher.run_command("register-ticket", again, user=requester, ticket_type="support")
        assert "already registered as a HR Department ticket" in sent_text(again)

        await context.store.close()

    @pytest.mark.asyncio
    async def test_register_ticket_rejections(self, dispatcher, context, admin, support_staff, requester):
        denied = make_interaction("", support_staff)
        await dispatcher.run_command("register-ticket", denied, user=requester, ticket_type="hr")
        assert REGISTER_ADMIN_MESSAGE in sent_text(denied)

        invalid = make_interaction("", admin)
        await dispatcher.run_command("register-ticket", invalid, user=requester, ticket_type="vip")
        assert "Invalid ticket type. Valid types: support, joinTeam" in sent_text(invalid)

        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_debug_tickets(self, dispatcher, context, gateway, admin, requester):
        await open_ticket(context, requester)
        gateway.live_channels.add(str(TICKET_CHANNEL_ID))
        interaction = make_interaction("", admin)

        await dispatcher.run_command("debug-tickets", interaction)

        text = sent_text(interaction)
        assert "- Is Ticket: Yes" in text
        assert "Total: 1" in text
        assert "Exists: Yes" in text
        assert "File Exists: Yes" in text

        await context.store.close()

    @pytest.mark.asyncio
    async def test_debug_tickets_shows_pending_close(self, dispatcher, context, admin, requester, support_staff):
        await open_ticket(context, requester)
        await dispatcher.dispatch(make_interaction(TICKET_CLOSE, support_staff))
        interaction = make_interaction("", admin)

        await dispatcher.run_command("debug-tickets", interaction)

        assert "- Status: Open (close pending)" in sent_text(interaction)

        await context.store.close()
