"""Time-windowed cooldowns and counters shared by the gatekeeping rules."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, MutableMapping, Optional, Union

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from introgate.utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


def evict_for_insert(
    entries: MutableMapping[Hashable, object],
    key: Hashable,
    max_size: Optional[int],
) -> None:
    """Make room for ``key`` by dropping the oldest-inserted entries.

    Existing keys keep their slot, so only a brand new key can trigger eviction.
    """
    if max_size is None or key in entries:
        return
    while entries and len(entries) >= max_size:
        oldest = next(iter(entries))
        del entries[oldest]


class ScheduledPurge(ABC):
    """Run ``purge`` as an APScheduler interval job until ``destroy`` is called."""

    _job: Optional[Job] = None

    @abstractmethod
    def purge(self) -> int:
        """Drop expired entries and return how many were removed."""

    def _schedule_purge(
        self,
        scheduler: Optional[AsyncIOScheduler],
        interval_seconds: float,
        job_id: str,
    ) -> None:
        if scheduler is None:
            return
        # Coroutine jobs run on the event loop, never in an executor thread.
        self._job = scheduler.add_job(
            self._run_purge,
            trigger="interval",
            seconds=interval_seconds,
            id=job_id,
            replace_existing=True,
        )

    async def _run_purge(self) -> None:
        removed = self.purge()
        if removed:
            logger.debug("cache_purged", cache=type(self).__name__, removed=removed)

    def destroy(self) -> None:
        """Stop the periodic purge. Safe to call more than once."""
        job, self._job = self._job, None
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError:
            logger.debug("cache_purge_job_missing", job_id=job.id)


@dataclass
class Timestamp:
    """Cooldown entry: the instant the key was last touched."""

    at: float

    @property
    def anchor(self) -> float:
        return self.at


@dataclass
class Counter:
    """Counter entry: attempts seen since ``window_start``."""

    count: int
    window_start: float

    @property
    def anchor(self) -> float:
        return self.window_start


WindowEntry = Union[Timestamp, Counter]


class TimeWindowCache(ScheduledPurge):
    """Per-key cooldown (``touch``/``is_limited``) or windowed counter (``increment``).

    One instance serves one access pattern. Entries expire lazily on read and
    are swept by ``purge``, which runs every ``window * cleanup_multiplier``
    seconds when a scheduler is supplied. The cache never holds more than
    ``max_size`` keys; inserting past that drops the oldest-inserted key.
    """

    def __init__(
        self,
        window_seconds: float,
        *,
        max_size: Optional[int] = 10_000,
        cleanup_multiplier: int = 2,
        scheduler: Optional[AsyncIOScheduler] = None,
        name: str = "cooldown",
        clock: Clock = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.window = float(window_seconds)
        self.max_size = max_size
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, WindowEntry] = {}
        self._schedule_purge(
            scheduler, self.window * max(cleanup_multiplier, 1), f"purge_{name}"
        )

    @property
    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def touch(self, key: Hashable) -> None:
        """Start (or restart) the cooldown for ``key``."""
        self._put(key, Timestamp(self._clock()))

    def is_limited(self, key: Hashable) -> bool:
        """Return whether ``key`` is still inside its cooldown window."""
        entry = self._entries.get(key)
        if not isinstance(entry, Timestamp):
            return False
        return self._clock() - entry.at < self.window

    def increment(self, key: Hashable, max_count: int) -> bool:
        """Record one attempt and return whether the window's count exceeds ``max_count``."""
        now = self._clock()
        entry = self._entries.get(key)
        if not isinstance(entry, Counter) or now - entry.window_start > self.window:
            self._put(key, Counter(count=1, window_start=now))
            return 1 > max_count

        entry.count += 1
        return entry.count > max_count

    def purge(self) -> int:
        """Drop every entry whose window started more than ``window`` ago."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.anchor > self.window
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _put(self, key: Hashable, entry: WindowEntry) -> None:
        evict_for_insert(self._entries, key, self.max_size)
        self._entries[key] = entry


__all__ = [
    "Counter",
    "ScheduledPurge",
    "TimeWindowCache",
    "Timestamp",
    "evict_for_insert",
]
