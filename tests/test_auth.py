"""
tests/test_auth.py
"""
from __future__ import annotations

import time

import requests

from blogify import blog
from conftest import ALICE, login


def _login(client, email="alice@example.com", password="pw", follow=False, **extra):
    """POST /login with the given credentials and return the response."""
    return client.post(
        "/login",
        data={"email": email, "password": password, **extra},
        follow_redirects=follow,
    )


# ───────────────────────── login / logout ─────────────────────────────
def test_successful_login(client, fake_api):
    fake_api.on("POST", "/api/auth/login", {"token": "jwt-1", "user": ALICE})

    rv = _login(client)
    assert rv.status_code == 302
    assert rv.headers["Location"].endswith("/dashboard")
    with client.session_transaction() as sess:
        assert sess["token"] == "jwt-1"
        assert sess["user"]["name"] == "Alice"
        assert sess["csrf"]


def test_login_honours_safe_next_only(client, fake_api):
    fake_api.on("POST", "/api/auth/login", {"token": "jwt-1", "user": ALICE})
    rv = _login(client, next="/edit/p1")
    assert rv.headers["Location"].endswith("/edit/p1")

    client.get("/logout")
    rv = _login(client, next="//evil.example/x")
    assert rv.headers["Location"].endswith("/dashboard")


def test_empty_fields_never_hit_the_api(client, fake_api):
    rv = _login(client, password="", follow=True)
    assert rv.status_code == 200
    assert b"Please fill in all fields" in rv.data
    assert fake_api.calls == []


def test_bad_credentials_show_api_message(client, fake_api):
    fake_api.on("POST", "/api/auth/login", {"message": "Invalid credentials"}, status=401)
    rv = _login(client)
    assert rv.status_code == 200
    assert b"Invalid credentials" in rv.data
    with client.session_transaction() as sess:
        assert "token" not in sess


def test_api_down_during_login(client, fake_api):
    fake_api.fail("POST", "/api/auth/login")
    rv = _login(client)
    assert rv.status_code == 200
    assert b"Login failed" in rv.data


def test_register(client, fake_api):
    fake_api.on("POST", "/api/auth/register", {"token": "jwt-2", "user": ALICE})
    rv = client.post(
        "/register",
        data={"name": "Alice", "email": "alice@example.com", "password": "pw"},
        follow_redirects=False,
    )
    assert rv.status_code == 302
    (call,) = fake_api.called("POST", "/api/auth/register")
    assert call.json == {"name": "Alice", "email": "alice@example.com", "password": "pw"}
    with client.session_transaction() as sess:
        assert sess["token"] == "jwt-2"


def test_logout_clears_session_and_goes_home(client, fake_api):
    login(client)
    rv = client.get("/logout")
    assert rv.status_code == 302
    assert rv.headers["Location"].endswith("/")
    with client.session_transaction() as sess:
        assert "token" not in sess and "user" not in sess


def test_login_rate_limit(client, fake_api, monkeypatch):
    fake_api.on("POST", "/api/auth/login", {"message": "Invalid credentials"}, status=401)

    # freeze time so every call lands within the same 60 s window
    now = time.time()
    monkeypatch.setattr(blog, "time", lambda: now)

    for _ in range(5):
        assert _login(client).status_code == 200

    resp = _login(client)
    assert resp.status_code == 429
    assert b"Too many requests" in resp.data


# ───────────────────────── session gate ───────────────────────────────
def test_gated_view_redirects_anonymous(client, fake_api):
    rv = client.get("/dashboard")
    assert rv.status_code == 302
    loc = rv.headers["Location"]
    assert "/login" in loc and "dashboard" in loc
    assert fake_api.calls == []


def test_gated_view_renders_for_signed_in_user(client, fake_api):
    login(client)
    fake_api.on("GET", "/api/user/posts", [])
    fake_api.on("GET", "/api/user/stats", {"total": 0})
    rv = client.get("/dashboard")
    assert rv.status_code == 200
    assert b"Welcome back, Alice" in rv.data


def test_pending_while_session_cannot_be_resolved(client, fake_api):
    with client.session_transaction() as sess:
        sess["token"] = "tok"
        sess["csrf"] = "x"
    fake_api.fail("GET", "/api/auth/me", requests.ConnectionError("down"))

    rv = client.get("/dashboard")
    assert rv.status_code == 503
    assert rv.headers["Retry-After"]
    assert b"Checking your session" in rv.data
    assert fake_api.called("GET", "/api/user/posts") == []


def test_session_resolves_token_once(client, fake_api):
    with client.session_transaction() as sess:
        sess["token"] = "tok"
        sess["csrf"] = "x"
    fake_api.on("GET", "/api/auth/me", {"_id": "u1", "name": "Alice"})
    fake_api.on("GET", "/api/user/posts", [])

    assert client.get("/dashboard").status_code == 200
    assert client.get("/dashboard").status_code == 200
    assert len(fake_api.called("GET", "/api/auth/me")) == 1
    with client.session_transaction() as sess:
        assert sess["user"]["id"] == "u1"


def test_rejected_token_while_resolving_means_signed_out(client, fake_api):
    with client.session_transaction() as sess:
        sess["token"] = "stale"
    fake_api.on("GET", "/api/auth/me", {"message": "expired"}, status=401)

    rv = client.get("/dashboard")
    assert rv.status_code == 302
    assert "/login" in rv.headers["Location"]


def test_login_works_while_session_is_unresolved(client, fake_api):
    with client.session_transaction() as sess:
        sess["token"] = "stale"
    fake_api.fail("GET", "/api/auth/me")
    fake_api.on("POST", "/api/auth/login", {"token": "jwt-new", "user": ALICE})

    assert client.get("/dashboard").status_code == 503
    rv = _login(client)
    assert rv.status_code == 302
    with client.session_transaction() as sess:
        assert sess["token"] == "jwt-new"


def test_unknown_user_while_resolving_means_signed_out(client, fake_api):
    with client.session_transaction() as sess:
        sess["token"] = "orphan"
    fake_api.on("GET", "/api/auth/me", {"message": "User not found"}, status=404)

    rv = client.get("/dashboard")
    assert rv.status_code == 302
    assert "/login" in rv.headers["Location"]
    with client.session_transaction() as sess:
        assert "token" not in sess


def test_garbled_user_while_resolving_means_signed_out(client, fake_api):
    with client.session_transaction() as sess:
        sess["token"] = "tok"
    fake_api.on("GET", "/api/auth/me", {"user": {"name": "no id"}})

    rv = client.get("/dashboard")
    assert rv.status_code == 302
    assert "/login" in rv.headers["Location"]
