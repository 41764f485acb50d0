"""Telegram transport: turn updates into events and carry out decisions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import LinkPreviewOptions, ReplyParameters, Update, User
from telegram.constants import ChatMemberStatus
from telegram.error import TelegramError
from telegram.ext import Application, CallbackContext, MessageHandler, filters

from introgate.gate.decisions import Blocked, Decision, Reply, replies_of
from introgate.gate.engine import GatekeepEngine
from introgate.gate.events import ChatEvent, EventKind, Participant, parse_command
from introgate.utils.admin_cache import AdminResolver
from introgate.utils.logging import bind_context, clear_context, get_logger

logger = get_logger(__name__)

ELEVATED_STATUSES = (ChatMemberStatus.OWNER, ChatMemberStatus.ADMINISTRATOR)
DELETE_MISFIRE_GRACE_SECONDS = 30


def membership_resolver(bot) -> AdminResolver:
    """Resolve admin standing through ``getChatMember``."""

    async def resolve(chat_id: int, user_id: int) -> bool:
        member = await bot.get_chat_member(chat_id=chat_id, user_id=user_id)
        return member.status in ELEVATED_STATUSES

    return resolve


def _participant(user: Optional[User]) -> Optional[Participant]:
    if user is None:
        return None
    return Participant(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        is_bot=bool(user.is_bot),
    )


def event_from_update(update: Update) -> Optional[ChatEvent]:
    message = update.message
    chat = update.effective_chat
    if message is None or chat is None:
        return None

    base = dict(
        chat_id=chat.id,
        chat_type=str(chat.type),
        sender=_participant(message.from_user),
        message_id=message.message_id,
    )

    if message.new_chat_members:
        members = tuple(_participant(m) for m in message.new_chat_members)
        return ChatEvent(kind=EventKind.JOIN, members=members, **base)

    text = message.text
    if text is None:
        return ChatEvent(kind=EventKind.MEDIA, **base)

    command, args = parse_command(text)
    if command is None:
        return ChatEvent(kind=EventKind.TEXT, text=text, **base)

    replied = message.reply_to_message
    return ChatEvent(
        kind=EventKind.COMMAND,
        text=text,
        command=command,
        args=args,
        reply_to=_participant(replied.from_user) if replied else None,
        **base,
    )


class DecisionExecutor:
    """Perform the deletes and replies a decision asks for.

    Delivery problems are logged and dropped; the decision's state change has
    already been committed by the time anything is sent. Ephemeral replies are
    removed by one-shot scheduler jobs, which are lost if the process stops
    first.
    """

    def __init__(self, bot, scheduler: AsyncIOScheduler) -> None:
        self.bot = bot
        self.scheduler = scheduler

    async def execute(
        self, decision: Decision, chat_id: int, message_id: Optional[int]
    ) -> None:
        if isinstance(decision, Blocked) and message_id is not None:
            await self.delete_message(chat_id, message_id)
        for reply in replies_of(decision):
            await self.send_reply(chat_id, reply)

    async def send_reply(self, chat_id: int, reply: Reply) -> None:
        kwargs = {}
        if reply.reply_to is not None:
            kwargs["reply_parameters"] = ReplyParameters(
                message_id=reply.reply_to, allow_sending_without_reply=True
            )
        try:
            sent = await self.bot.send_message(
                chat_id=chat_id,
                text=reply.text,
                parse_mode=None,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
                **kwargs,
            )
        except TelegramError as exc:
            logger.warning("reply_failed", chat_id=chat_id, error=str(exc))
            return

        if reply.delete_after is not None and sent is not None:
            self.schedule_delete(chat_id, sent.message_id, reply.delete_after)

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as exc:
            logger.warning(
                "delete_failed", chat_id=chat_id, message_id=message_id, error=str(exc)
            )
            return False
        return True

    def schedule_delete(self, chat_id: int, message_id: int, delay_seconds: float) -> None:
        self.scheduler.add_job(
            self.delete_message,
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=delay_seconds),
            args=[chat_id, message_id],
            misfire_grace_time=DELETE_MISFIRE_GRACE_SECONDS,
        )


@dataclass
class HandlerContext:
    engine: GatekeepEngine
    executor: DecisionExecutor


def setup(application: Application, handler_context: HandlerContext) -> None:
    """Register handlers on the Telegram application."""
    application.bot_data["ctx"] = handler_context
    application.add_handler(MessageHandler(filters.UpdateType.MESSAGE, gate_handler))
    application.add_error_handler(on_error)


def get_ctx(context: CallbackContext) -> HandlerContext:
    return context.application.bot_data["ctx"]


async def gate_handler(update: Update, context: CallbackContext) -> None:
    event = event_from_update(update)
    if event is None:
        return

    ctx = get_ctx(context)
    bind_context(update_id=update.update_id, chat_id=event.chat_id)
    try:
        decision = await ctx.engine.decide(event)
        await ctx.executor.execute(decision, event.chat_id, event.message_id)
    finally:
        clear_context()


async def on_error(update: object, context: CallbackContext) -> None:
    update_id = getattr(update, "update_id", "unknown")
    logger.error(
        "update_failed",
        update_id=update_id,
        error=str(context.error),
        exc_info=context.error,
    )


__all__ = [
    "DecisionExecutor",
    "HandlerContext",
    "event_from_update",
    "gate_handler",
    "membership_resolver",
    "on_error",
    "setup",
]
