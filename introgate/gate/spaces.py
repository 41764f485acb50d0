"""Which chats act as the main group and the introduction channel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from introgate.store.repository import Repository
from introgate.utils.logging import get_logger

logger = get_logger(__name__)

MAIN_GROUP_KEY = "MAIN_GROUP_ID"
INTRO_CHANNEL_KEY = "INTRO_CHANNEL_ID"


def _parse_chat_id(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass
class SpaceRegistry:
    """Mutable main/intro chat ids.

    Ids supplied by the environment are pinned: the setup commands refuse to
    reassign them.
    """

    main_space_id: Optional[int] = None
    intro_space_id: Optional[int] = None
    main_pinned: bool = False
    intro_pinned: bool = False

    @classmethod
    def from_env(
        cls, main_space_id: Optional[int], intro_space_id: Optional[int]
    ) -> "SpaceRegistry":
        return cls(
            main_space_id=main_space_id,
            intro_space_id=intro_space_id,
            main_pinned=main_space_id is not None,
            intro_pinned=intro_space_id is not None,
        )

    async def load(self, repo: Repository) -> None:
        """Fill ids the environment left unset from saved settings."""
        if self.main_space_id is None:
            raw = await repo.get_setting(MAIN_GROUP_KEY)
            self.main_space_id = _parse_chat_id(raw)
            if raw and self.main_space_id is None:
                logger.warning("saved_setting_invalid", key=MAIN_GROUP_KEY, value=raw)
        if self.intro_space_id is None:
            raw = await repo.get_setting(INTRO_CHANNEL_KEY)
            self.intro_space_id = _parse_chat_id(raw)
            if raw and self.intro_space_id is None:
                logger.warning(
                    "saved_setting_invalid", key=INTRO_CHANNEL_KEY, value=raw
                )
        logger.info(
            "spaces_loaded",
            main_space_id=self.main_space_id,
            intro_space_id=self.intro_space_id,
        )

    def is_main(self, chat_id: int) -> bool:
        return self.main_space_id is not None and chat_id == self.main_space_id

    def is_intro(self, chat_id: int) -> bool:
        return self.intro_space_id is not None and chat_id == self.intro_space_id


__all__ = ["INTRO_CHANNEL_KEY", "MAIN_GROUP_KEY", "SpaceRegistry"]
