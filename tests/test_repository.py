import pytest

from introgate.gate.spaces import SpaceRegistry
from introgate.store.db import Database
from introgate.store.repository import (
    MAX_PENDING_RESULTS,
    InvalidSettingKeyError,
    InvalidUserIdError,
    Repository,
)


async def _db(tmp_path, name: str) -> Database:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / name}")
    db.connect()
    await db.init_models()
    return db


@pytest.mark.asyncio
async def test_upsert_creates_pending_user(tmp_path):
    db = await _db(tmp_path, "users.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.upsert_user(101, "alice", "Alice")

        user = await repo.get_user(101)
        assert user.username == "alice"
        assert user.first_name == "Alice"
        assert user.introduced is False
        assert user.introduced_at is None
        assert user.intro_msg_id is None
        assert user.joined_at is not None


@pytest.mark.asyncio
async def test_upsert_refreshes_names_but_keeps_intro_state(tmp_path):
    db = await _db(tmp_path, "upsert.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.upsert_user(101, "alice", "Alice")
        await repo.mark_introduced(101, 555)
        await repo.upsert_user(101, "alice2", None)

        user = await repo.get_user(101)
        assert user.username == "alice2"
        assert user.first_name is None
        assert user.introduced is True
        assert user.intro_msg_id == 555


@pytest.mark.asyncio
async def test_upsert_truncates_names(tmp_path):
    db = await _db(tmp_path, "truncate.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.upsert_user(5, "u" * 100, "f" * 300)
        user = await repo.get_user(5)
        assert len(user.username) == 64
        assert len(user.first_name) == 128


@pytest.mark.asyncio
async def test_mark_introduced_and_reset(tmp_path):
    db = await _db(tmp_path, "intro.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.upsert_user(7)
        await repo.mark_introduced(7, 42)

        user = await repo.get_user(7)
        assert user.introduced is True
        assert user.introduced_at is not None
        assert user.intro_msg_id == 42

        await repo.reset_user(7)
        user = await repo.get_user(7)
        assert user.introduced is False
        assert user.introduced_at is None
        assert user.intro_msg_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", [0, -5, "12", 1.0, None, True])
async def test_invalid_user_ids_are_rejected(tmp_path, bad_id):
    db = await _db(tmp_path, "invalid.db")

    async with db.session() as session:
        repo = Repository(session)
        with pytest.raises(InvalidUserIdError):
            await repo.get_user(bad_id)
        with pytest.raises(InvalidUserIdError):
            await repo.upsert_user(bad_id)


@pytest.mark.asyncio
async def test_mark_introduced_rejects_bad_message_id(tmp_path):
    db = await _db(tmp_path, "msgid.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.upsert_user(3)
        with pytest.raises(InvalidUserIdError):
            await repo.mark_introduced(3, -1)


@pytest.mark.asyncio
async def test_get_pending_orders_by_join_and_caps(tmp_path):
    db = await _db(tmp_path, "pending.db")

    async with db.session() as session:
        repo = Repository(session)
        for user_id in range(1, 6):
            await repo.upsert_user(user_id, f"user{user_id}")
        await repo.mark_introduced(2)

        pending = await repo.get_pending()
        assert [u.user_id for u in pending] == [1, 3, 4, 5]

        limited = await repo.get_pending(limit=2)
        assert [u.user_id for u in limited] == [1, 3]

        capped = await repo.get_pending(limit=MAX_PENDING_RESULTS * 10)
        assert len(capped) == 4


@pytest.mark.asyncio
async def test_settings_allow_list(tmp_path):
    db = await _db(tmp_path, "settings.db")

    async with db.session() as session:
        repo = Repository(session)
        assert await repo.get_setting("MAIN_GROUP_ID") is None

        await repo.set_setting("MAIN_GROUP_ID", -100123)
        await repo.set_setting("MAIN_GROUP_ID", -100456)
        assert await repo.get_setting("MAIN_GROUP_ID") == "-100456"

        with pytest.raises(InvalidSettingKeyError):
            await repo.set_setting("BOT_TOKEN", "secret")
        with pytest.raises(InvalidSettingKeyError):
            await repo.get_setting("BOT_TOKEN")


@pytest.mark.asyncio
async def test_space_registry_prefers_env_and_loads_saved_ids(tmp_path):
    db = await _db(tmp_path, "spaces.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.set_setting("MAIN_GROUP_ID", -100111)
        await repo.set_setting("INTRO_CHANNEL_ID", -100999)

        spaces = SpaceRegistry.from_env(-100555, None)
        await spaces.load(repo)

    assert spaces.main_space_id == -100555
    assert spaces.main_pinned is True
    assert spaces.intro_space_id == -100999
    assert spaces.intro_pinned is False


@pytest.mark.asyncio
async def test_space_registry_ignores_garbage_setting(tmp_path):
    db = await _db(tmp_path, "garbage.db")

    async with db.session() as session:
        repo = Repository(session)
        await repo.set_setting("INTRO_CHANNEL_ID", "not-a-number")

        spaces = SpaceRegistry()
        await spaces.load(repo)

    assert spaces.intro_space_id is None
