import pytest

from iptrap.escape import escape_default_except_lf


def test_printable_ascii_is_unchanged():
    text = "GET / HTTP/1.0 ~!@#$%^&*()_+{}|:<>?"
    assert escape_default_except_lf(text) == text


def test_line_breaks_and_tabs_are_kept():
    text = "a\tb\r\nc\n"
    assert escape_default_except_lf(text) == text


@pytest.mark.parametrize("char", ["\x00", "\x1b", "\x7f", "\x0b", "\x0c", "é", "\u20ac", "\U0001f600"])
def test_other_characters_become_question_marks(char):
    assert escape_default_except_lf(char) == "?"


def test_mixed_text():
    assert escape_default_except_lf("h\u00e9llo\x00") == "h?llo?"


def test_one_replacement_per_character():
    text = "\u00e9\U0001f600\x01"
    result = escape_default_except_lf(text)
    assert len(result) == len(text)
    assert set(result) == {"?"}


def test_empty_string():
    assert escape_default_except_lf("") == ""