"""
tests/test_home.py
"""
from __future__ import annotations

import pytest

from conftest import BOB, make_post


@pytest.fixture
def feed(fake_api):
    fake_api.on("GET", "/api/posts", [
        make_post("1", title="Learning Flask", tags=["web", "Python", "flask", "api"]),
        make_post("2", title="Bread at home", content="<p><em>flour</em> and water</p>",
                  tags=["baking"], author=BOB, coverImage="https://img/bread.jpg"),
        make_post("3", title="Secret draft", tags=["zzz"], status="Draft"),
    ])
    fake_api.on("GET", "/api/posts/stats", {"posts": 2, "authors": 2, "tags": 5})
    return fake_api


def test_feed_lists_published_only(client, feed):
    body = client.get("/").data
    assert b"Learning Flask" in body and b"Bread at home" in body
    assert b"Secret draft" not in body
    assert b"2 stories found" in body
    assert b"<b>2+</b>" in body and b"<b>5+</b>" in body


def test_card_details(client, feed):
    body = client.get("/").data
    assert b'src="https://img/bread.jpg"' in body
    assert b"flour and water" in body and b"<em>" not in body   # plain-text preview
    assert b"+1 more" in body                                       # four tags, three shown
    assert b'href="/profile/u2"' in body
    assert b"1 min read" in body


def test_tag_dropdown_is_sorted_and_skips_drafts(client, feed):
    body = client.get("/").data.decode()
    options = [t for t in ("api", "baking", "flask", "Python", "web") if f'<option value="{t}"' in body]
    assert options == ["api", "baking", "flask", "Python", "web"]
    positions = [body.index(f'<option value="{t}"') for t in options]
    assert positions == sorted(positions)
    assert '<option value="zzz"' not in body


def test_search_highlights_matches(client, feed):
    body = client.get("/?q=flask").data
    assert b"1 story found" in body
    assert b"Learning <mark>Flask</mark>" in body
    assert b"Bread at home" not in body


def test_tag_filter(client, feed):
    body = client.get("/?tag=baking").data
    assert b"Bread at home" in body
    assert b"Learning Flask" not in body
    assert b'<option value="baking" selected>' in body


def test_no_match_empty_state(client, feed):
    body = client.get("/?q=nothing-like-this").data
    assert b"No stories found" in body
    assert b"Try adjusting your search or filter" in body


def test_empty_feed(client, fake_api):
    fake_api.on("GET", "/api/posts", [])
    body = client.get("/").data
    assert b"No stories found" in body
    assert b"Be the first to share your story!" in body


def test_stats_failure_does_not_hide_posts(client, fake_api):
    fake_api.on("GET", "/api/posts", [make_post("1", title="Still listed")])
    fake_api.fail("GET", "/api/posts/stats")
    rv = client.get("/")
    assert rv.status_code == 200
    assert b"Still listed" in rv.data
    assert b"<b>0+</b>" in rv.data


def test_search_term_is_used_as_typed(client, fake_api):
    fake_api.on("GET", "/api/posts", [
        make_post("1", title="Single", content="<p>one</p>"),
        make_post("2", title="Two words", content="<p>two</p>"),
    ])
    body = client.get("/?q=%20").data
    assert b"1 story found" in body
    assert b"Two<mark> </mark>words" in body
    assert b"Single" not in body
