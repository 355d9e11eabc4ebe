"""
tests/conftest.py
"""
from __future__ import annotations

import itertools
import json
import os
from dataclasses import dataclass, field
from typing import Any, Generator
from urllib.parse import urlparse

import pytest
import requests
from flask.testing import FlaskClient

# keep the test run from writing blogify/.secret_key
os.environ.setdefault("BLOGIFY_SECRET_KEY", "test-secret")

from blogify import api as api_module  # noqa: E402
from blogify.blog import app  # noqa: E402

API_URL = "http://api.test"
CSRF = "test-token"
_ip_counter = itertools.count(1)


@pytest.fixture(scope="session", autouse=True)
def _configure_app() -> None:
    """Configure the Flask app *once* for the whole session."""
    app.config.update(
        TESTING=True,
        API_BASE_URL=API_URL,
        SESSION_COOKIE_SECURE=False,
    )


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    """
    A fresh test client with its own REMOTE_ADDR, so the per-IP rate
    limit on /login and /register never bleeds between tests.
    """
    with app.test_client() as c:
        n = next(_ip_counter)
        c.environ_base["REMOTE_ADDR"] = f"10.0.{n // 250}.{n % 250 + 1}"
        with app.app_context():
            yield c


# ───────────────────────── fake remote API ────────────────────────────
class FakeResponse:
    """The handful of `requests.Response` attributes ApiClient touches."""

    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


@dataclass
class Call:
    method: str
    path: str
    json: Any
    headers: dict[str, str] = field(default_factory=dict)


class FakeApi:
    """
    Stands in for ``requests.Session``: routes ``(METHOD, path)`` to canned
    answers and records every call. Unknown routes answer 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[Call] = []

    def on(self, method: str, path: str, payload: Any = None, *, status: int = 200):
        self.routes[(method, path)] = (status, payload)
        return self

    def fail(self, method: str, path: str, exc: Exception | None = None):
        self.routes[(method, path)] = exc or requests.ConnectionError("refused")
        return self

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = urlparse(url).path
        self.calls.append(Call(method, path, json, dict(headers or {})))
        route = self.routes.get((method, path))
        if route is None:
            return FakeResponse(404, {"message": "Not found"})
        if isinstance(route, Exception):
            raise route
        status, payload = route
        return FakeResponse(status, payload)

    def called(self, method: str, path: str) -> list[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]


@pytest.fixture
def fake_api(monkeypatch) -> FakeApi:
    fake = FakeApi()
    monkeypatch.setattr(api_module.requests, "Session", lambda: fake)
    return fake


# ───────────────────────── sample records ─────────────────────────────
ALICE = {"_id": "u1", "name": "Alice", "email": "alice@example.com"}
BOB = {"_id": "u2", "name": "Bob"}


def make_post(
    pid: str,
    *,
    title: str = "Untitled",
    content: str = "<p>Hello world</p>",
    tags: list[str] | None = None,
    author: dict | None = None,
    status: str = "Published",
    **extra,
) -> dict:
    return {
        "_id": pid,
        "title": title,
        "content": content,
        "tags": tags or [],
        "author": author or ALICE,
        "status": status,
        "createdAt": "2025-01-05T10:00:00Z",
        **extra,
    }


def login(client, user: dict = ALICE, token: str = "tok-alice") -> None:
    """Put a signed-in session into the test client's cookie."""
    with client.session_transaction() as sess:
        sess["token"] = token
        sess["user"] = {"id": user["_id"], "name": user["name"]}
        sess["csrf"] = CSRF
