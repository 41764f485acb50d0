from introgate.utils.messages import (
    intro_accepted_message,
    intro_link,
    sanitize_name,
    welcome_message,
)


def test_sanitize_name_strips_markup():
    assert sanitize_name("*Bob*_<b>") == "Bobb"
    assert sanitize_name("  [Eve](http://x)  ") == "Evehttp://x"


def test_sanitize_name_falls_back():
    assert sanitize_name(None) == "there"
    assert sanitize_name("") == "there"
    assert sanitize_name("***") == "there"


def test_sanitize_name_truncates():
    assert len(sanitize_name("a" * 200)) == 64


def test_intro_link():
    assert intro_link(-1001234567) == "https://t.me/c/1234567"
    assert intro_link(None) is None


def test_welcome_without_intro_channel():
    text = welcome_message("Ann", None, "Superteam")
    assert text.startswith("Hey Ann! Welcome to Superteam!")
    assert text.endswith("Post your intro in the intro channel!")


def test_accepted_message_uses_clean_name():
    assert "Thanks for the intro, Ann!" in intro_accepted_message("_Ann_")
