"""
tests/test_metrics.py
"""
import pytest

from blogify.metrics import (
    MIN_READ_MINUTES,
    estimate_read_minutes,
    strip_tags,
    truncate_to_plain_text,
    word_count,
)


def _words(n: int) -> str:
    return " ".join(["word"] * n)


def test_strip_tags_removes_markup():
    assert strip_tags('<p>Hello <a href="/x">world</a></p>') == "Hello world"
    assert strip_tags(None) == ""


@pytest.mark.parametrize("n, minutes", [
    (1, 1),
    (200, 1),
    (201, 2),
    (401, 3),      # ceil(401 / 200)
])
def test_estimate_read_minutes(n, minutes):
    assert estimate_read_minutes(_words(n)) == minutes


def test_markup_is_not_counted():
    html = "<p>" + "</p><p>".join(["word"] * 200) + "</p>"
    # tags vanish, words glue together → far fewer than 200 space-separated pieces
    assert estimate_read_minutes(html) == 1
    assert estimate_read_minutes(f"<div>{_words(401)}</div>") == 3


def test_empty_content_is_floored():
    assert estimate_read_minutes("") == MIN_READ_MINUTES == 1
    assert estimate_read_minutes(None) == 1


def test_word_count_splits_on_single_spaces_only():
    # doubled spaces produce an empty piece; newlines do not split
    assert word_count("a  b") == 3
    assert word_count("a\nb") == 1
    assert word_count("") == 1


def test_truncate_cuts_and_appends_ellipsis():
    assert truncate_to_plain_text("<p>Hello world</p>", 5) == "Hello..."


def test_truncate_short_text_is_unchanged():
    assert truncate_to_plain_text("short", 150) == "short"
    assert truncate_to_plain_text("<b>exactly5</b>", 9) == "exactly5"


def test_truncate_is_a_raw_character_cut():
    text = "abcdefghij " * 20
    out = truncate_to_plain_text(text)
    assert out == text[:150] + "..."
    assert len(out) == 153
