"""User-facing message templates."""

from __future__ import annotations

import re
from typing import Optional

_UNSAFE_NAME_CHARS = re.compile(r"[<>&\r\n\t*_`\[\]()~\\]")
MAX_NAME_LENGTH = 64

REMINDER_MESSAGE = (
    "You need to introduce yourself in the intro channel before you can post here. "
    "Check the pinned message for the format!"
)

INTRO_NUDGE_MESSAGE = (
    "Thanks for posting! Could you tell us a bit more about yourself? "
    "Try including who you are, what you do, and how you want to contribute. "
    "A few more sentences would help the community get to know you!"
)

MEDIA_NUDGE_MESSAGE = (
    "Please post a text introduction - photos and media are not accepted as intros."
)


def sanitize_name(name: Optional[str]) -> str:
    """Strip markup-significant characters from a display name."""
    if not name:
        return "there"
    clean = _UNSAFE_NAME_CHARS.sub("", name).strip()[:MAX_NAME_LENGTH]
    return clean or "there"


def intro_link(intro_space_id: Optional[int]) -> Optional[str]:
    """Return a t.me deep link for a supergroup/channel id, if known."""
    if not intro_space_id:
        return None
    internal = str(intro_space_id)
    if internal.startswith("-100"):
        internal = internal[4:]
    return f"https://t.me/c/{internal.lstrip('-')}"


def welcome_message(
    first_name: Optional[str],
    intro_space_id: Optional[int],
    community: str = "the community",
) -> str:
    link = intro_link(intro_space_id)
    where = f"Post your intro here: {link}" if link else "Post your intro in the intro channel!"
    return (
        f"Hey {sanitize_name(first_name)}! Welcome to {community}!\n\n"
        "Before you can chat here, please introduce yourself in our intro channel.\n\n"
        "Here's a suggested format:\n"
        "- Who are you?\n"
        "- What do you do?\n"
        "- Where are you based?\n"
        "- A fun fact about you\n"
        f"- How would you like to contribute to {community}?\n\n"
        f"{where}"
    )


def intro_accepted_message(first_name: Optional[str]) -> str:
    return (
        f"Thanks for the intro, {sanitize_name(first_name)}! "
        "You can now chat in the main group. Welcome aboard!"
    )


__all__ = [
    "INTRO_NUDGE_MESSAGE",
    "MEDIA_NUDGE_MESSAGE",
    "REMINDER_MESSAGE",
    "intro_accepted_message",
    "intro_link",
    "sanitize_name",
    "welcome_message",
]
