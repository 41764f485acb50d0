"""Application configuration management."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_INTRO_KEYWORDS = [
    "who are you",
    "what do you do",
    "where are you based",
    "fun fact",
    "contribute",
]


class Settings(BaseSettings):
    """Runtime configuration loaded from environment or `.env`."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    bot_token: str = Field(..., alias="BOT_TOKEN")
    main_group_id: Optional[int] = Field(default=None, alias="MAIN_GROUP_ID")
    intro_channel_id: Optional[int] = Field(default=None, alias="INTRO_CHANNEL_ID")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/bot.sqlite",
        alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")
    community_name: str = Field(default="the community", alias="COMMUNITY_NAME")

    welcome_cooldown_seconds: float = Field(
        default=5, alias="WELCOME_COOLDOWN_SECONDS", gt=0
    )
    max_new_members_per_event: int = Field(
        default=10, alias="MAX_NEW_MEMBERS_PER_EVENT", ge=1
    )
    intro_rate_limit_window_seconds: float = Field(
        default=60, alias="INTRO_RATE_LIMIT_WINDOW_SECONDS", gt=0
    )
    intro_rate_limit_max: int = Field(default=5, alias="INTRO_RATE_LIMIT_MAX", ge=1)

    intro_min_length: int = Field(default=50, alias="INTRO_MIN_LENGTH", ge=1)
    intro_max_length: int = Field(default=4000, alias="INTRO_MAX_LENGTH", ge=1)
    intro_keyword_bypass_length: int = Field(
        default=150, alias="INTRO_KEYWORD_BYPASS_LENGTH", ge=1
    )
    intro_keywords: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_INTRO_KEYWORDS),
        alias="INTRO_KEYWORDS",
    )

    reminder_cooldown_seconds: float = Field(
        default=30, alias="REMINDER_COOLDOWN_SECONDS", gt=0
    )
    reminder_auto_delete_seconds: float = Field(
        default=15, alias="REMINDER_AUTO_DELETE_SECONDS", gt=0
    )
    ephemeral_reply_ttl_seconds: float = Field(
        default=30, alias="EPHEMERAL_REPLY_TTL_SECONDS", gt=0
    )
    pending_page_size: int = Field(default=50, alias="PENDING_PAGE_SIZE", ge=1, le=200)

    admin_cache_ttl_seconds: float = Field(
        default=300, alias="ADMIN_CACHE_TTL_SECONDS", gt=0
    )
    admin_cache_max_size: int = Field(
        default=10_000, alias="ADMIN_CACHE_MAX_SIZE", ge=1
    )
    cooldown_cache_max_size: int = Field(
        default=10_000, alias="COOLDOWN_CACHE_MAX_SIZE", ge=1
    )

    @field_validator("intro_keywords", mode="before")
    @classmethod
    def _parse_keywords(cls, value: Any) -> List[str]:
        if value in (None, "", []):
            return list(DEFAULT_INTRO_KEYWORDS)
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [str(v).strip() for v in value if str(v).strip()]


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return cached Settings instance, raising a helpful message on failure."""
    try:
        return Settings()
    except (
        ValidationError
    ) as exc:  # pragma: no cover - configuration failure visible on boot
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["DEFAULT_INTRO_KEYWORDS", "Settings", "load_settings"]
