"""High-level database operations."""

from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import select

from .db import Setting, User, utcnow

MAX_PENDING_RESULTS = 200
MAX_USERNAME_LENGTH = 64
MAX_FIRST_NAME_LENGTH = 128

VALID_SETTING_KEYS = ("MAIN_GROUP_ID", "INTRO_CHANNEL_ID")


class InvalidUserIdError(ValueError):
    """Raised when an id is not a positive integer."""


class InvalidSettingKeyError(ValueError):
    """Raised for setting keys outside ``VALID_SETTING_KEYS``."""


def assert_positive_int(value: Any, label: str = "user_id") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidUserIdError(
            f"Invalid {label}: must be a positive integer, "
            f"got {type(value).__name__}({value!r})"
        )
    return value


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if not value:
        return None
    return str(value)[:limit]


class Repository:
    """CRUD utilities wrapping SQLModel sessions."""

    def __init__(self, session) -> None:
        self.session = session

    async def get_user(self, user_id: int) -> Optional[User]:
        assert_positive_int(user_id)
        result = await self.session.execute(select(User).where(User.user_id == user_id))
        return result.scalar_one_or_none()

    async def upsert_user(
        self,
        user_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
    ) -> User:
        """Create the user or refresh their names, leaving intro state untouched."""
        assert_positive_int(user_id)
        safe_username = _truncate(username, MAX_USERNAME_LENGTH)
        safe_first_name = _truncate(first_name, MAX_FIRST_NAME_LENGTH)

        user = await self.get_user(user_id)
        if user:
            user.username = safe_username
            user.first_name = safe_first_name
            user.updated_at = utcnow()
        else:
            user = User(
                user_id=user_id,
                username=safe_username,
                first_name=safe_first_name,
            )
            self.session.add(user)

        await self.session.commit()
        await self.session.refresh(user)
        return user

    async def mark_introduced(self, user_id: int, msg_id: Optional[int] = None) -> None:
        assert_positive_int(user_id)
        if msg_id is not None:
            assert_positive_int(msg_id, "msg_id")

        user = await self.get_user(user_id)
        if not user:
            return

        now = utcnow()
        user.introduced = True
        user.introduced_at = now
        user.intro_msg_id = msg_id
        user.updated_at = now
        await self.session.commit()

    async def reset_user(self, user_id: int) -> None:
        assert_positive_int(user_id)
        user = await self.get_user(user_id)
        if not user:
            return

        user.introduced = False
        user.introduced_at = None
        user.intro_msg_id = None
        user.updated_at = utcnow()
        await self.session.commit()

    async def get_pending(self, limit: int = MAX_PENDING_RESULTS) -> List[User]:
        """Return users still waiting on an intro, oldest join first."""
        limit = max(0, min(limit, MAX_PENDING_RESULTS))
        result = await self.session.execute(
            select(User)
            .where(User.introduced == False)  # noqa: E712
            .order_by(User.joined_at.asc(), User.user_id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_setting(self, key: str) -> Optional[str]:
        if key not in VALID_SETTING_KEYS:
            raise InvalidSettingKeyError(f"Invalid setting key: {key}")

        result = await self.session.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        return setting.value if setting else None

    async def set_setting(self, key: str, value: Any) -> None:
        if key not in VALID_SETTING_KEYS:
            raise InvalidSettingKeyError(f"Invalid setting key: {key}")

        result = await self.session.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        if setting:
            setting.value = str(value)
        else:
            self.session.add(Setting(key=key, value=str(value)))
        await self.session.commit()


__all__ = [
    "InvalidSettingKeyError",
    "InvalidUserIdError",
    "MAX_PENDING_RESULTS",
    "Repository",
    "VALID_SETTING_KEYS",
    "assert_positive_int",
]
