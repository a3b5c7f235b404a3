"""
Точка входа Discord-бота тикетов.

Этот модуль инициализирует и запускает бота:
- Настраивает логирование
- Создаёт необходимые директории
- Собирает хранилище, реестр, политику, лимиты и машину состояний
- Регистрирует slash-команды и обработчик взаимодействий
- При старте удаляет тикеты удалённых каналов
- При остановке дожидается отложенных удалений и записи хранилища
"""

import asyncio
import sys
from typing import Optional

import discord
import structlog

from core.exceptions import PersistenceFailure
from core.lifecycle import TicketLifecycle
from core.policy import AuthorizationPolicy
from core.quota import QuotaGuard
from database.registry import TicketRegistry
from database.store import TicketStore
from ticket_bot.commands import build_command_tree
from ticket_bot.config import Settings, settings
from ticket_bot.gateway import DiscordGateway
from ticket_bot.handlers import BotContext, InteractionDispatcher, get_main_router
from utils.logging_config import setup_logging
from utils.transcripts import TranscriptRenderer
from utils.truckersmp import TruckersMPClient


logger = structlog.get_logger()


class TicketBot(discord.Client):
    """Клиент Discord с системой тикетов."""

    def __init__(self, config: Settings):
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(intents=intents)

        self.config = config
        self._pruned = False

        store = TicketStore(config.tickets_path)
        registry = TicketRegistry(store)
        policy = AuthorizationPolicy(config.staff_roles)

        self.gateway = DiscordGateway(
            client=self,
            transcripts=TranscriptRenderer(font_path=config.transcript_font_path),
            category_parent_id=config.category_parent_id,
            log_channel_id=config.log_channel_id,
            transcript_channel_id=config.transcript_channel_id,
            close_emoji=config.close_emoji,
            delete_emoji=config.delete_emoji,
            transcript_message_limit=config.transcript_message_limit,
        )

        self.context = BotContext(
            store=store,
            registry=registry,
            lifecycle=TicketLifecycle(
                registry,
                self.gateway,
                staff_roles_for=policy.roles_for,
                delete_delay=config.delete_delay_seconds,
            ),
            policy=policy,
            quota=QuotaGuard(
                max_total=config.max_tickets_per_user,
                max_per_category=config.max_tickets_per_user_per_type,
            ),
            gateway=self.gateway,
            truckersmp=TruckersMPClient(config.truckersmp_api_url, timeout=config.http_timeout),
        )

        self.dispatcher = InteractionDispatcher(get_main_router(), self.context)
        self.tree = build_command_tree(self, self.dispatcher)

    async def setup_hook(self) -> None:
        """Загрузка реестра и синхронизация slash-команд."""
        self.context.registry.ensure_loaded()

        if self.config.guild_id:
            guild = discord.Object(id=self.config.guild_id)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
        else:
            synced = await self.tree.sync()

        logger.info("commands_synced", count=len(synced), guild_id=self.config.guild_id)

    async def on_ready(self) -> None:
        """
        Бот подключился.

        Один раз за процесс удаляет записи тикетов, чьи каналы
        были удалены, пока бот был выключен.
        """
        logger.info(
            "bot_started",
            bot_username=str(self.user),
            bot_id=self.user.id if self.user else None,
            guilds=len(self.guilds),
            debug_mode=self.config.debug,
        )

        if self._pruned:
            return
        self._pruned = True

        try:
            removed = await self.context.registry.prune(self.gateway.channel_exists)
        except PersistenceFailure as e:
            logger.error("ticket_prune_failed", error=str(e), exc_info=True)
            return

        logger.info("tickets_reconciled", removed=removed, active=len(self.context.registry))

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        """Кнопки, меню и модалки. Slash-команды обрабатывает CommandTree."""
        if interaction.type in (discord.InteractionType.component, discord.InteractionType.modal_submit):
            await self.dispatcher.dispatch(interaction)

    async def close(self) -> None:
        """
        Остановка бота.

        Дожидается отложенных удалений каналов и записи хранилища.
        """
        logger.info("bot_stopping")
        await self.context.drain()
        await self.context.store.close()
        await super().close()
        logger.info("bot_stopped")


async def main(config: Optional[Settings] = None) -> None:
    """
    Главная функция запуска бота.

    Последовательность запуска:
    1. Настройка логирования
    2. Проверка настроек и создание директорий
    3. Инициализация бота
    4. Подключение к Discord
    """
    config = config or settings

    # 1. Настройка логирования
    setup_logging(debug=config.debug, log_to_file=config.log_to_file, log_dir=config.logs_dir)

    # 2. Проверка настроек
    config.validate_runtime()
    config.data_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "starting_bot",
        debug=config.debug,
        tickets_path=str(config.tickets_path),
        guild_id=config.guild_id,
    )

    # 3-4. Бот
    bot = TicketBot(config)
    async with bot:
        await bot.start(config.discord_bot_token)


def run() -> None:
    """Запуск из командной строки (ticket-bot / python -m ticket_bot)."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n⛔ Bot stopped by user")
    except Exception as e:
        print(f"\n❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
