"""Heuristic check for self-introductions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Tuple

from introgate.config import DEFAULT_INTRO_KEYWORDS


@dataclass(frozen=True)
class IntroRules:
    """Length bounds and prompts an introduction is measured against.

    Attributes:
        min_length: Shortest accepted text, inclusive.
        max_length: Longest accepted text, inclusive.
        keywords: Prompt phrases; two distinct hits make an intro acceptable.
        bypass_length: Texts at least this long are accepted without keywords.
    """

    min_length: int = 50
    max_length: int = 4000
    keywords: Tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_INTRO_KEYWORDS))
    bypass_length: int = 150


def count_keyword_matches(text: str, keywords: Tuple[str, ...]) -> int:
    lower = text.lower()
    distinct = {kw.lower() for kw in keywords if kw}
    return sum(1 for kw in distinct if kw in lower)


def is_valid_intro(text: Any, rules: IntroRules) -> bool:
    """Return whether ``text`` reads like a genuine introduction.

    Deliberately lenient: either two keyword hits or a long enough free-form
    text is enough.
    """
    if not isinstance(text, str):
        return False

    length = len(text)
    if length < rules.min_length or length > rules.max_length:
        return False

    return (
        count_keyword_matches(text, rules.keywords) >= 2
        or length >= rules.bypass_length
    )


__all__ = ["IntroRules", "count_keyword_matches", "is_valid_intro"]
