"""TTL cache of chat admin status lookups."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from introgate.utils.logging import get_logger
from introgate.utils.rate_limit import Clock, ScheduledPurge, evict_for_insert

logger = get_logger(__name__)

ADMIN_CACHE_TTL_SECONDS = 5 * 60
ADMIN_CACHE_MAX_SIZE = 10_000

AdminResolver = Callable[[int, int], Awaitable[bool]]


@dataclass
class AdminEntry:
    is_admin: bool
    expires_at: float


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class AdminStatusCache(ScheduledPurge):
    """Remember whether a user administers a chat for ``ttl_seconds``.

    Lookups that fail are reported as "not an admin" and are not cached, so
    the next call asks the resolver again.
    """

    def __init__(
        self,
        ttl_seconds: float = ADMIN_CACHE_TTL_SECONDS,
        *,
        max_size: Optional[int] = ADMIN_CACHE_MAX_SIZE,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl = float(ttl_seconds)
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[Tuple[int, int], AdminEntry] = {}
        self._schedule_purge(scheduler, self.ttl * 2, "purge_admin_cache")

    @property
    def size(self) -> int:
        return len(self._entries)

    async def is_admin(
        self, resolver: AdminResolver, scope_id: Any, subject_id: Any
    ) -> bool:
        if not _is_int(scope_id) or not _is_int(subject_id):
            return False

        key = (scope_id, subject_id)
        cached = self._entries.get(key)
        if cached is not None and self._clock() < cached.expires_at:
            return cached.is_admin

        try:
            result = bool(await resolver(scope_id, subject_id))
        except Exception as exc:
            logger.warning(
                "admin_lookup_failed",
                chat_id=scope_id,
                user_id=subject_id,
                error=str(exc),
            )
            return False

        evict_for_insert(self._entries, key, self.max_size)
        self._entries[key] = AdminEntry(
            is_admin=result, expires_at=self._clock() + self.ttl
        )
        return result

    def purge(self) -> int:
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items() if now >= entry.expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)


__all__ = [
    "ADMIN_CACHE_MAX_SIZE",
    "ADMIN_CACHE_TTL_SECONDS",
    "AdminEntry",
    "AdminResolver",
    "AdminStatusCache",
]
