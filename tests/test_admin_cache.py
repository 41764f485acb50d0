import pytest

from introgate.utils.admin_cache import AdminStatusCache


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DummyResolver:
    def __init__(self, admins=(), fail: bool = False) -> None:
        self.admins = set(admins)
        self.fail = fail
        self.calls = []

    async def __call__(self, chat_id: int, user_id: int) -> bool:
        self.calls.append((chat_id, user_id))
        if self.fail:
            raise RuntimeError("getChatMember failed")
        return (chat_id, user_id) in self.admins


@pytest.mark.asyncio
async def test_second_lookup_within_ttl_uses_cache() -> None:
    resolver = DummyResolver(admins={(-100, 1)})
    cache = AdminStatusCache(300, clock=FakeClock())

    assert await cache.is_admin(resolver, -100, 1) is True
    assert await cache.is_admin(resolver, -100, 1) is True
    assert resolver.calls == [(-100, 1)]


@pytest.mark.asyncio
async def test_negative_results_are_cached_too() -> None:
    resolver = DummyResolver()
    cache = AdminStatusCache(300, clock=FakeClock())

    assert await cache.is_admin(resolver, -100, 2) is False
    assert await cache.is_admin(resolver, -100, 2) is False
    assert len(resolver.calls) == 1


@pytest.mark.asyncio
async def test_pairs_are_resolved_independently() -> None:
    resolver = DummyResolver(admins={(-100, 1)})
    cache = AdminStatusCache(300, clock=FakeClock())

    assert await cache.is_admin(resolver, -100, 1) is True
    assert await cache.is_admin(resolver, -200, 1) is False
    assert await cache.is_admin(resolver, -100, 2) is False
    assert resolver.calls == [(-100, 1), (-200, 1), (-100, 2)]


@pytest.mark.asyncio
async def test_expired_entry_is_resolved_again() -> None:
    clock = FakeClock()
    resolver = DummyResolver(admins={(-100, 1)})
    cache = AdminStatusCache(300, clock=clock)

    await cache.is_admin(resolver, -100, 1)
    clock.advance(300)
    await cache.is_admin(resolver, -100, 1)

    assert len(resolver.calls) == 2


@pytest.mark.asyncio
async def test_failure_is_not_admin_and_not_cached() -> None:
    resolver = DummyResolver(admins={(-100, 1)}, fail=True)
    cache = AdminStatusCache(300, clock=FakeClock())

    assert await cache.is_admin(resolver, -100, 1) is False
    assert cache.size == 0

    resolver.fail = False
    assert await cache.is_admin(resolver, -100, 1) is True
    assert len(resolver.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "scope_id, subject_id",
    [("-100", 1), (-100, None), (-100, 1.5), (True, 1), (-100, False)],
)
async def test_non_integer_ids_skip_resolver(scope_id, subject_id) -> None:
    resolver = DummyResolver(admins={(-100, 1)})
    cache = AdminStatusCache(300, clock=FakeClock())

    assert await cache.is_admin(resolver, scope_id, subject_id) is False
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_capacity_evicts_oldest_pair() -> None:
    resolver = DummyResolver()
    cache = AdminStatusCache(300, max_size=2, clock=FakeClock())

    for user_id in (1, 2, 3):
        await cache.is_admin(resolver, -100, user_id)
    assert cache.size == 2

    await cache.is_admin(resolver, -100, 1)
    assert resolver.calls.count((-100, 1)) == 2


@pytest.mark.asyncio
async def test_purge_drops_expired_entries() -> None:
    clock = FakeClock()
    resolver = DummyResolver()
    cache = AdminStatusCache(300, clock=clock)

    await cache.is_admin(resolver, -100, 1)
    clock.advance(200)
    await cache.is_admin(resolver, -100, 2)
    clock.advance(100)

    assert cache.purge() == 1
    assert cache.size == 1
