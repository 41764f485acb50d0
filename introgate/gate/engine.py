"""Gatekeeping decisions for every inbound event.

The engine walks an ordered list of rules (admin commands, joins, chats the
bot does not manage, the intro channel, the main group). Each rule either
returns a :class:`Decision` or ``None`` when it does not apply; the first
decision wins. Persistent state changes are committed before the decision is
returned, so whatever happens to the replies afterwards cannot undo them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from introgate.config import Settings
from introgate.gate.decisions import (
    Accepted,
    Blocked,
    CommandReply,
    Decision,
    Ignored,
    Nudged,
    PassThrough,
    Reply,
    Welcomed,
)
from introgate.gate.events import ChatEvent, EventKind
from introgate.gate.spaces import INTRO_CHANNEL_KEY, MAIN_GROUP_KEY, SpaceRegistry
from introgate.gate.validator import IntroRules, is_valid_intro
from introgate.store.db import Database, User
from introgate.store.repository import Repository
from introgate.utils.admin_cache import AdminResolver, AdminStatusCache
from introgate.utils.logging import get_logger
from introgate.utils.messages import (
    INTRO_NUDGE_MESSAGE,
    MEDIA_NUDGE_MESSAGE,
    REMINDER_MESSAGE,
    intro_accepted_message,
    sanitize_name,
    welcome_message,
)
from introgate.utils.rate_limit import TimeWindowCache

logger = get_logger(__name__)

SETUP_COMMANDS = ("setgroup", "setintro")
MANAGEMENT_COMMANDS = ("approve", "reset", "status", "pending")
COMMANDS = SETUP_COMMANDS + MANAGEMENT_COMMANDS

Rule = Callable[[ChatEvent], Awaitable[Optional[Decision]]]


@dataclass(frozen=True)
class GatePolicy:
    """Tunables the rules read; cache windows live on the caches themselves."""

    intro_rules: IntroRules = field(default_factory=IntroRules)
    max_new_members_per_event: int = 10
    intro_rate_limit_max: int = 5
    reminder_auto_delete_seconds: float = 15
    ephemeral_reply_ttl_seconds: float = 30
    pending_page_size: int = 50
    community_name: str = "the community"

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatePolicy":
        return cls(
            intro_rules=IntroRules(
                min_length=settings.intro_min_length,
                max_length=settings.intro_max_length,
                keywords=tuple(settings.intro_keywords),
                bypass_length=settings.intro_keyword_bypass_length,
            ),
            max_new_members_per_event=settings.max_new_members_per_event,
            intro_rate_limit_max=settings.intro_rate_limit_max,
            reminder_auto_delete_seconds=settings.reminder_auto_delete_seconds,
            ephemeral_reply_ttl_seconds=settings.ephemeral_reply_ttl_seconds,
            pending_page_size=settings.pending_page_size,
            community_name=settings.community_name,
        )


@dataclass
class GateCaches:
    """The in-memory caches owned by one engine instance."""

    admin: AdminStatusCache
    welcome: TimeWindowCache
    intro_attempts: TimeWindowCache
    reminders: TimeWindowCache

    @classmethod
    def from_settings(
        cls, settings: Settings, scheduler: Optional[AsyncIOScheduler] = None
    ) -> "GateCaches":
        max_size = settings.cooldown_cache_max_size
        return cls(
            admin=AdminStatusCache(
                settings.admin_cache_ttl_seconds,
                max_size=settings.admin_cache_max_size,
                scheduler=scheduler,
            ),
            welcome=TimeWindowCache(
                settings.welcome_cooldown_seconds,
                max_size=max_size,
                cleanup_multiplier=20,
                scheduler=scheduler,
                name="welcome_cooldowns",
            ),
            intro_attempts=TimeWindowCache(
                settings.intro_rate_limit_window_seconds,
                max_size=max_size,
                cleanup_multiplier=2,
                scheduler=scheduler,
                name="intro_attempts",
            ),
            reminders=TimeWindowCache(
                settings.reminder_cooldown_seconds,
                max_size=max_size,
                cleanup_multiplier=4,
                scheduler=scheduler,
                name="reminder_cooldowns",
            ),
        )

    def destroy(self) -> None:
        for cache in (self.admin, self.welcome, self.intro_attempts, self.reminders):
            cache.destroy()


def resolve_target_id(event: ChatEvent) -> Optional[int]:
    """Pick the command target: the replied-to author, else the first argument."""
    if event.reply_to is not None:
        return None if event.reply_to.is_bot else event.reply_to.id
    if event.args:
        arg = event.args[0]
        if not (arg.isascii() and arg.isdigit()):
            return None
        value = int(arg)
        return value if value > 0 else None
    return None


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return value.strftime("%Y-%m-%d %H:%M:%S")


class GatekeepEngine:
    """Decide what happens to each event in the managed chats."""

    def __init__(
        self,
        db: Database,
        spaces: SpaceRegistry,
        caches: GateCaches,
        resolver: AdminResolver,
        policy: GatePolicy | None = None,
    ) -> None:
        self.db = db
        self.spaces = spaces
        self.caches = caches
        self.resolver = resolver
        self.policy = policy or GatePolicy()
        self._rules: Tuple[Rule, ...] = (
            self._command_rule,
            self._join_rule,
            self._unmanaged_rule,
            self._intro_rule,
            self._main_rule,
        )
        self._management: Dict[str, Callable[[ChatEvent, int], Awaitable[Decision]]] = {
            "approve": self._approve,
            "reset": self._reset,
            "status": self._status,
            "pending": self._pending,
        }

    async def decide(self, event: ChatEvent) -> Decision:
        for rule in self._rules:
            decision = await rule(event)
            if decision is not None:
                break
        else:
            decision = PassThrough()

        logger.debug(
            "gate_decision",
            chat_id=event.chat_id,
            kind=event.kind.value,
            sender_id=event.sender.id if event.sender else None,
            decision=type(decision).__name__,
        )
        return decision

    async def is_main_admin(self, user_id: int) -> bool:
        main = self.spaces.main_space_id
        if main is None:
            return False
        return await self.caches.admin.is_admin(self.resolver, main, user_id)

    # ---- Rules -----------------------------------------------------------

    async def _command_rule(self, event: ChatEvent) -> Optional[Decision]:
        if event.kind is not EventKind.COMMAND or event.command not in COMMANDS:
            return None
        if event.command == "setgroup":
            return await self._set_main_space(event)
        if event.command == "setintro":
            return await self._set_intro_space(event)

        if not self.spaces.is_main(event.chat_id):
            return Ignored("command_outside_main")
        sender = event.sender
        if sender is None or not await self.is_main_admin(sender.id):
            # Not an admin command after all; the main-group rule applies.
            return None

        target_id = resolve_target_id(event)
        if event.command != "pending" and target_id is None:
            return self._ephemeral(
                event.command,
                f"Usage: /{event.command} <user_id> or reply to a message",
            )
        return await self._management[event.command](event, target_id)

    async def _join_rule(self, event: ChatEvent) -> Optional[Decision]:
        if event.kind is not EventKind.JOIN:
            return None
        if not self.spaces.is_main(event.chat_id):
            return Ignored("join_outside_main")

        members = event.members
        mass_join = len(members) > self.policy.max_new_members_per_event
        if mass_join:
            logger.warning(
                "mass_join_detected", chat_id=event.chat_id, count=len(members)
            )

        registered: List[int] = []
        replies: List[Reply] = []
        async with self.db.session() as session:
            repo = Repository(session)
            for member in members:
                if member.is_bot:
                    continue
                await repo.upsert_user(member.id, member.username, member.first_name)
                registered.append(member.id)

                if mass_join or self.caches.welcome.is_limited(event.chat_id):
                    continue
                self.caches.welcome.touch(event.chat_id)
                replies.append(
                    Reply(
                        welcome_message(
                            member.first_name,
                            self.spaces.intro_space_id,
                            self.policy.community_name,
                        )
                    )
                )

        logger.info(
            "members_joined",
            chat_id=event.chat_id,
            registered=len(registered),
            welcomed=len(replies),
        )
        return Welcomed(tuple(registered), tuple(replies), mass_join)

    async def _unmanaged_rule(self, event: ChatEvent) -> Optional[Decision]:
        if self.spaces.is_main(event.chat_id) or self.spaces.is_intro(event.chat_id):
            return None
        return PassThrough()

    async def _intro_rule(self, event: ChatEvent) -> Optional[Decision]:
        if not self.spaces.is_intro(event.chat_id):
            return None

        sender = event.sender
        if sender is None:
            return Ignored("no_sender")
        # Posted "as the channel": not a real member.
        if sender.id == event.chat_id:
            return Ignored("channel_post")
        if sender.is_bot:
            return Ignored("bot")

        if not event.has_text:
            async with self.db.session() as session:
                user = await Repository(session).get_user(sender.id)
            if user and not user.introduced:
                return Nudged(
                    "media", Reply(MEDIA_NUDGE_MESSAGE, reply_to=event.message_id)
                )
            return Ignored("media")

        if self.caches.intro_attempts.increment(
            sender.id, self.policy.intro_rate_limit_max
        ):
            logger.info("intro_rate_limited", user_id=sender.id)
            return Ignored("rate_limited")

        async with self.db.session() as session:
            repo = Repository(session)
            user = await repo.get_user(sender.id)
            if user is None:
                user = await repo.upsert_user(
                    sender.id, sender.username, sender.first_name
                )
            if user.introduced:
                return PassThrough()

            if not is_valid_intro(event.text, self.policy.intro_rules):
                logger.info("intro_rejected", user_id=sender.id, length=len(event.text))
                return Nudged(
                    "insufficient",
                    Reply(INTRO_NUDGE_MESSAGE, reply_to=event.message_id),
                )

            await repo.mark_introduced(sender.id, event.message_id)

        logger.info("intro_accepted", user_id=sender.id, message_id=event.message_id)
        return Accepted(
            event.message_id,
            Reply(intro_accepted_message(sender.first_name), reply_to=event.message_id),
        )

    async def _main_rule(self, event: ChatEvent) -> Optional[Decision]:
        if not self.spaces.is_main(event.chat_id):
            return None

        sender = event.sender
        if sender is None or sender.is_bot:
            return PassThrough()
        if await self.is_main_admin(sender.id):
            return PassThrough()

        async with self.db.session() as session:
            user = await Repository(session).get_user(sender.id)
        # Members from before the bot have no record and are left alone.
        if user is None or user.introduced:
            return PassThrough()

        if self.caches.reminders.is_limited(sender.id):
            logger.info("gate_blocked", user_id=sender.id, reminder=False)
            return Blocked()
        self.caches.reminders.touch(sender.id)
        logger.info("gate_blocked", user_id=sender.id, reminder=True)
        return Blocked(
            Reply(REMINDER_MESSAGE, delete_after=self.policy.reminder_auto_delete_seconds)
        )

    # ---- Setup commands --------------------------------------------------

    async def _set_main_space(self, event: ChatEvent) -> Decision:
        if event.chat_type == "private":
            return self._ephemeral(
                "setgroup", "This command must be used in a group, not a private chat."
            )
        sender = event.sender
        if sender is None or not await self.caches.admin.is_admin(
            self.resolver, event.chat_id, sender.id
        ):
            return Ignored("not_chat_admin")

        current = self.spaces.main_space_id
        if current is not None and current != event.chat_id:
            if not await self.caches.admin.is_admin(self.resolver, current, sender.id):
                return self._ephemeral(
                    "setgroup",
                    "A main group is already configured. "
                    "Only admins of the existing main group can reassign it.",
                )
        if self.spaces.main_pinned:
            return self._ephemeral(
                "setgroup",
                "Main group is set via MAIN_GROUP_ID environment variable. "
                "Remove it from .env to use /setgroup instead.",
            )

        async with self.db.session() as session:
            await Repository(session).set_setting(MAIN_GROUP_KEY, event.chat_id)
        self.spaces.main_space_id = event.chat_id
        logger.info("main_space_set", chat_id=event.chat_id, by=sender.id)
        return self._ephemeral("setgroup", "Main group set to this chat.")

    async def _set_intro_space(self, event: ChatEvent) -> Decision:
        if event.chat_type == "private":
            return self._ephemeral(
                "setintro",
                "This command must be used in a group or channel, not a private chat.",
            )
        sender = event.sender
        if sender is None or not await self.caches.admin.is_admin(
            self.resolver, event.chat_id, sender.id
        ):
            return Ignored("not_chat_admin")

        current = self.spaces.intro_space_id
        if current is not None and current != event.chat_id:
            if self.spaces.main_space_id is None:
                return self._ephemeral(
                    "setintro",
                    "An intro channel is already configured. "
                    "Set up the main group with /setgroup first before reassigning.",
                )
            if not await self.is_main_admin(sender.id):
                return self._ephemeral(
                    "setintro",
                    "An intro channel is already configured. "
                    "Only admins of the main group can reassign it.",
                )
        if self.spaces.is_main(event.chat_id):
            return self._ephemeral(
                "setintro", "The intro channel cannot be the same as the main group."
            )
        if self.spaces.intro_pinned:
            return self._ephemeral(
                "setintro",
                "Intro channel is set via INTRO_CHANNEL_ID environment variable. "
                "Remove it from .env to use /setintro instead.",
            )

        async with self.db.session() as session:
            await Repository(session).set_setting(INTRO_CHANNEL_KEY, event.chat_id)
        self.spaces.intro_space_id = event.chat_id
        logger.info("intro_space_set", chat_id=event.chat_id, by=sender.id)
        return self._ephemeral("setintro", "Intro channel set to this chat.")

    # ---- Management commands ---------------------------------------------

    async def _approve(self, event: ChatEvent, target_id: int) -> Decision:
        async with self.db.session() as session:
            repo = Repository(session)
            if await repo.get_user(target_id) is None:
                await repo.upsert_user(target_id)
            await repo.mark_introduced(target_id)
        logger.info("user_approved", target_id=target_id, by=event.sender.id)
        return self._ephemeral("approve", "User has been manually approved.")

    async def _reset(self, event: ChatEvent, target_id: int) -> Decision:
        async with self.db.session() as session:
            repo = Repository(session)
            if await repo.get_user(target_id) is None:
                return self._ephemeral("reset", "User not found in database.")
            await repo.reset_user(target_id)
        logger.info("user_reset", target_id=target_id, by=event.sender.id)
        return self._ephemeral(
            "reset", "User has been reset. They will need to re-introduce themselves."
        )

    async def _status(self, event: ChatEvent, target_id: int) -> Decision:
        async with self.db.session() as session:
            user = await Repository(session).get_user(target_id)
        if user is None:
            return self._ephemeral("status", "User not found in database.")
        return self._ephemeral("status", "\n".join(_status_lines(user)))

    async def _pending(self, event: ChatEvent, target_id: Optional[int]) -> Decision:
        async with self.db.session() as session:
            pending = await Repository(session).get_pending()
        if not pending:
            return self._ephemeral("pending", "No pending users.")

        try:
            page_num = max(1, int(event.args[0])) if event.args else 1
        except ValueError:
            page_num = 1
        size = self.policy.pending_page_size
        total_pages = -(-len(pending) // size)
        page = pending[(page_num - 1) * size : page_num * size]
        if not page:
            return self._ephemeral(
                "pending", f"No results on page {page_num}. Total pages: {total_pages}."
            )

        lines = [
            f"- {sanitize_name(u.first_name)} (@{_display_username(u)}) -- ID: {u.user_id}"
            for u in page
        ]
        text = (
            f"Pending introductions ({len(pending)}) - page {page_num}/{total_pages}:\n\n"
            + "\n".join(lines)
        )
        if page_num < total_pages:
            text += f"\n\nUse /pending {page_num + 1} for next page."
        return self._ephemeral("pending", text)

    def _ephemeral(self, command: str, text: str) -> CommandReply:
        return CommandReply(
            command, Reply(text, delete_after=self.policy.ephemeral_reply_ttl_seconds)
        )


def _display_username(user: User) -> str:
    return sanitize_name(user.username) if user.username else "N/A"


def _status_lines(user: User) -> List[str]:
    name = sanitize_name(user.first_name) if user.first_name else "N/A"
    lines = [
        f"User: {name} (@{_display_username(user)})",
        f"ID: {user.user_id}",
        f"Status: {'Introduced' if user.introduced else 'Pending'}",
        f"Joined: {format_timestamp(user.joined_at)}",
    ]
    if user.introduced:
        lines.append(f"Introduced at: {format_timestamp(user.introduced_at)}")
    return lines


__all__ = [
    "COMMANDS",
    "GateCaches",
    "GatePolicy",
    "GatekeepEngine",
    "resolve_target_id",
]
