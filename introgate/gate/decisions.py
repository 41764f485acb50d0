"""Outcomes produced by the gatekeeping engine, one per event."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Reply:
    """An outbound message.

    ``delete_after`` (seconds) marks the reply as ephemeral: the transport
    removes it again once the delay has passed.
    """

    text: str
    reply_to: Optional[int] = None
    delete_after: Optional[float] = None


@dataclass(frozen=True)
class PassThrough:
    """Let the event through untouched."""


@dataclass(frozen=True)
class Ignored:
    """Swallow the event without replying."""

    reason: str


@dataclass(frozen=True)
class Blocked:
    """Delete the event; optionally remind the sender to introduce themselves."""

    reminder: Optional[Reply] = None

    @property
    def reminder_sent(self) -> bool:
        return self.reminder is not None


@dataclass(frozen=True)
class Nudged:
    reason: str
    reply: Reply


@dataclass(frozen=True)
class Accepted:
    """The sender's intro was accepted and stored."""

    intro_msg_id: Optional[int]
    reply: Reply


@dataclass(frozen=True)
class Welcomed:
    registered: Tuple[int, ...]
    replies: Tuple[Reply, ...] = ()
    mass_join: bool = False


@dataclass(frozen=True)
class CommandReply:
    command: str
    reply: Reply


Decision = Union[
    PassThrough, Ignored, Blocked, Nudged, Accepted, Welcomed, CommandReply
]


def replies_of(decision: Decision) -> Tuple[Reply, ...]:
    """Return every outbound message a decision asks for."""
    if isinstance(decision, Blocked):
        return (decision.reminder,) if decision.reminder else ()
    if isinstance(decision, (Nudged, Accepted, CommandReply)):
        return (decision.reply,)
    if isinstance(decision, Welcomed):
        return decision.replies
    return ()


__all__ = [
    "Accepted",
    "Blocked",
    "CommandReply",
    "Decision",
    "Ignored",
    "Nudged",
    "PassThrough",
    "Reply",
    "Welcomed",
    "replies_of",
]
