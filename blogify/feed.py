"""
In-memory search / tag filtering for a page of posts.

The feed, the dashboard and the profile page all receive a list of posts
from the API and narrow it down here; nothing is sent back to the server.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from markupsafe import Markup, escape

from blogify.api import Post, PostStatus

STATUS_FILTERS = ("all", "published", "draft")


def matches_search(post: Post, search: str) -> bool:
    """Case-insensitive substring match on the title or the raw HTML body."""
    if not search:
        return True
    needle = search.lower()
    return needle in post.title.lower() or needle in post.content.lower()


def matches_tag(post: Post, tag: str | None) -> bool:
    return not tag or tag in post.tags


def filter_posts(posts: Iterable[Post], search: str = "", tag: str | None = "") -> list[Post]:
    """Posts that match *search* AND carry *tag*, in their original order."""
    return [p for p in posts if matches_search(p, search) and matches_tag(p, tag)]


def collect_tags(posts: Iterable[Post]) -> set[str]:
    """Every distinct tag used by *posts*."""
    return {tag for p in posts for tag in p.tags}


def sorted_tags(posts: Iterable[Post]) -> list[str]:
    # casefold first so "Python" and "python" sit together; exact order breaks ties
    return sorted(collect_tags(posts), key=lambda t: (t.casefold(), t))


def filter_by_status(posts: Sequence[Post], which: str | None) -> list[Post]:
    """Dashboard filter: ``all`` / ``published`` / ``draft`` (anything else = all)."""
    if which == "published":
        return [p for p in posts if p.status is PostStatus.PUBLISHED]
    if which == "draft":
        return [p for p in posts if p.status is PostStatus.DRAFT]
    return list(posts)


def highlight(text: str | None, search: str | None) -> Markup:
    """
    Escape *text* and wrap every case-insensitive occurrence of *search*
    in ``<mark>``. Returns a Jinja-safe ``Markup`` object.
    """
    if not text:
        return Markup("")
    if not search:
        return escape(text)
    pattern = re.compile(re.escape(search), re.I)
    out, last = [], 0
    for m in pattern.finditer(text):
        out.append(escape(text[last : m.start()]))
        out.append(Markup("<mark>%s</mark>") % m.group(0))
        last = m.end()
    out.append(escape(text[last:]))
    return Markup("").join(out)
