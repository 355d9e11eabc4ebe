"""
Reading-time and preview helpers for post bodies.

Post content arrives as HTML from the editor, so every helper here strips
markup first and then works on the remaining plain text.
"""

import math
import re

WORDS_PER_MINUTE = 200
MIN_READ_MINUTES = 1
PREVIEW_LENGTH = 150
ELLIPSIS = "..."

TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(content: str | None) -> str:
    """Drop every ``<…>`` sequence from *content*."""
    if not content:
        return ""
    return TAG_RE.sub("", content)


def word_count(content: str | None) -> int:
    """
    Count words by splitting on the single space character.

    Runs of spaces and newlines are *not* collapsed, so ``"a  b"`` counts
    three pieces and ``""`` counts one. Reading-time figures depend on
    this exact method.
    """
    return len(strip_tags(content).split(" "))


def estimate_read_minutes(content: str | None) -> int:
    """Minutes to read *content* at 200 wpm, rounded up, never below 1."""
    minutes = math.ceil(word_count(content) / WORDS_PER_MINUTE)
    return max(minutes, MIN_READ_MINUTES)


def truncate_to_plain_text(content: str | None, max_length: int = PREVIEW_LENGTH) -> str:
    """
    Plain-text preview of *content*.

    The cut is a raw character slice (it may split a word); an ellipsis is
    appended only when something was actually cut off.
    """
    text = strip_tags(content)
    if len(text) > max_length:
        return text[:max_length] + ELLIPSIS
    return text
