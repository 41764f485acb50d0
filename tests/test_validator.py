from introgate.gate.validator import IntroRules, count_keyword_matches, is_valid_intro

RULES = IntroRules()


def _pad(text: str, length: int) -> str:
    return (text + " " + "x" * length)[:length]


def test_length_49_is_rejected_even_with_keywords():
    text = _pad("who are you, what do you do, fun fact", 49)
    assert len(text) == 49
    assert not is_valid_intro(text, RULES)


def test_min_length_with_two_keywords_is_accepted():
    text = _pad("who are you? what do you do?", 50)
    assert len(text) == 50
    assert is_valid_intro(text, RULES)


def test_one_keyword_below_bypass_is_rejected():
    text = _pad("fun fact: I like cats", 120)
    assert not is_valid_intro(text, RULES)


def test_bypass_length_without_keywords_is_accepted():
    assert is_valid_intro("x" * 150, RULES)
    assert not is_valid_intro("x" * 149, RULES)


def test_max_length_plus_one_is_rejected_regardless_of_keywords():
    text = _pad("who are you what do you do fun fact contribute", 4001)
    assert not is_valid_intro(text, RULES)
    assert is_valid_intro(text[:4000], RULES)


def test_keyword_matching_is_case_insensitive_substring():
    text = "WHO ARE YOUr friends? I'm a dev. Fun Factory owner, we contribute code."
    assert count_keyword_matches(text, RULES.keywords) == 3
    assert is_valid_intro(text, RULES)


def test_repeated_keyword_counts_once():
    text = "fun fact " * 10
    assert count_keyword_matches(text, RULES.keywords) == 1
    assert not is_valid_intro(text[:90], RULES)


def test_custom_rules():
    rules = IntroRules(min_length=5, max_length=20, keywords=("hi", "dev"), bypass_length=15)
    assert is_valid_intro("hi I'm a dev", rules)
    assert not is_valid_intro("hello there", rules)
    assert is_valid_intro("a" * 15, rules)


def test_non_string_input_is_rejected():
    assert not is_valid_intro(None, RULES)
    assert not is_valid_intro(12345, RULES)
