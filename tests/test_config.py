import pytest
from pydantic import ValidationError

from introgate.config import DEFAULT_INTRO_KEYWORDS, Settings
from introgate.gate.engine import GateCaches, GatePolicy


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    for name in ("MAIN_GROUP_ID", "INTRO_CHANNEL_ID", "INTRO_KEYWORDS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(env):
    settings = Settings(_env_file=None)

    assert settings.main_group_id is None
    assert settings.intro_keywords == DEFAULT_INTRO_KEYWORDS
    assert settings.max_new_members_per_event == 10
    assert settings.admin_cache_ttl_seconds == 300


def test_env_overrides(env):
    env.setenv("MAIN_GROUP_ID", "-100123")
    env.setenv("INTRO_KEYWORDS", "hello, world ,")
    env.setenv("INTRO_MIN_LENGTH", "20")
    env.setenv("PENDING_PAGE_SIZE", "10")

    settings = Settings(_env_file=None)
    policy = GatePolicy.from_settings(settings)

    assert settings.main_group_id == -100123
    assert policy.intro_rules.keywords == ("hello", "world")
    assert policy.intro_rules.min_length == 20
    assert policy.pending_page_size == 10


def test_missing_token_is_rejected(monkeypatch):
    monkeypatch.delenv("BOT_TOKEN", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_caches_follow_settings(env):
    env.setenv("REMINDER_COOLDOWN_SECONDS", "45")
    env.setenv("COOLDOWN_CACHE_MAX_SIZE", "100")
    caches = GateCaches.from_settings(Settings(_env_file=None))

    assert caches.reminders.window == 45
    assert caches.reminders.max_size == 100
    assert caches.welcome.window == 5
    assert caches.intro_attempts.window == 60
    assert caches.admin.ttl == 300
    caches.destroy()


def test_log_file_setting(env, tmp_path):
    assert Settings(_env_file=None).log_file is None

    env.setenv("LOG_FILE", str(tmp_path / "bot.log"))
    assert Settings(_env_file=None).log_file == tmp_path / "bot.log"
