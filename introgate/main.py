"""Application entrypoint."""

from __future__ import annotations

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import BotCommand, BotCommandScopeAllChatAdministrators
from telegram.error import TelegramError
from telegram.ext import ApplicationBuilder

from introgate.config import load_settings
from introgate.gate.engine import GateCaches, GatekeepEngine, GatePolicy
from introgate.gate.spaces import SpaceRegistry
from introgate.handlers.telegram import (
    DecisionExecutor,
    HandlerContext,
    membership_resolver,
    setup as setup_handlers,
)
from introgate.store.db import Database
from introgate.store.repository import Repository
from introgate.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

ADMIN_COMMANDS = [
    BotCommand("setgroup", "Use this chat as the main group"),
    BotCommand("setintro", "Use this chat as the intro channel"),
    BotCommand("approve", "Approve a user without an intro"),
    BotCommand("reset", "Require a user to introduce again"),
    BotCommand("status", "Show a user's intro status"),
    BotCommand("pending", "List users who have not introduced"),
]


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_file)

    db = Database(settings.database_url)
    db.connect()
    await db.init_models()

    spaces = SpaceRegistry.from_env(settings.main_group_id, settings.intro_channel_id)
    async with db.session() as session:
        await spaces.load(Repository(session))

    application = ApplicationBuilder().token(settings.bot_token).build()
    await application.initialize()

    try:
        await application.bot.set_my_commands(
            ADMIN_COMMANDS, scope=BotCommandScopeAllChatAdministrators()
        )
    except TelegramError as exc:
        logger.warning("telegram_command_menu_failed", error=str(exc))

    scheduler = AsyncIOScheduler()
    caches = GateCaches.from_settings(settings, scheduler=scheduler)
    engine = GatekeepEngine(
        db=db,
        spaces=spaces,
        caches=caches,
        resolver=membership_resolver(application.bot),
        policy=GatePolicy.from_settings(settings),
    )
    executor = DecisionExecutor(application.bot, scheduler)
    setup_handlers(application, HandlerContext(engine=engine, executor=executor))

    scheduler.start()

    try:
        await application.start()
        if application.updater:
            await application.updater.start_polling(
                allowed_updates=["message"]
            )

        logger.info(
            "bot_started",
            main_space_id=spaces.main_space_id,
            intro_space_id=spaces.intro_space_id,
        )

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def request_stop(signum: int) -> None:
            logger.info("shutdown_signal_received", signal=signum)
            stop_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, request_stop, signum)

        await stop_event.wait()

    finally:
        logger.info("bot_stopping")
        caches.destroy()
        # Pending reminder deletions are dropped here.
        scheduler.shutdown(wait=False)
        if application.updater:
            await application.updater.stop()
        await application.stop()
        await application.shutdown()
        await db.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
