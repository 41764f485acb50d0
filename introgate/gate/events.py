"""Transport-neutral inbound events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class EventKind(str, Enum):
    JOIN = "join"
    TEXT = "text"
    MEDIA = "media"
    COMMAND = "command"


@dataclass(frozen=True)
class Participant:
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    is_bot: bool = False


@dataclass(frozen=True)
class ChatEvent:
    """One inbound update, reduced to what the gatekeeping rules look at.

    Attributes:
        kind: What happened.
        chat_id: Chat the event arrived in.
        chat_type: Telegram chat type ("private", "group", "supergroup", "channel").
        sender: Author of the message, if any.
        message_id: Id of the triggering message, used for replies and deletion.
        text: Message text (commands included); ``None`` for media and joins.
        members: Joining members for ``JOIN`` events.
        command: Lower-cased command name without slash or bot suffix.
        args: Whitespace-separated command arguments.
        reply_to: Author of the message a command replied to.
    """

    kind: EventKind
    chat_id: int
    chat_type: str = "supergroup"
    sender: Optional[Participant] = None
    message_id: Optional[int] = None
    text: Optional[str] = None
    members: Tuple[Participant, ...] = ()
    command: Optional[str] = None
    args: Tuple[str, ...] = ()
    reply_to: Optional[Participant] = None

    @property
    def has_text(self) -> bool:
        return self.text is not None


def parse_command(text: str) -> Tuple[Optional[str], Tuple[str, ...]]:
    """Split ``/name@bot arg1 arg2`` into ``("name", ("arg1", "arg2"))``."""
    parts = text.split()
    if not parts or not parts[0].startswith("/") or len(parts[0]) < 2:
        return None, ()
    name = parts[0][1:].split("@", 1)[0].lower()
    if not name:
        return None, ()
    return name, tuple(parts[1:])


__all__ = ["ChatEvent", "EventKind", "Participant", "parse_command"]
