"""
Who is looking at the page, and may they see it?

`Session` is built once per request and passed explicitly to whatever
needs it. `SessionGate` decides, for one navigation, whether guarded
content renders, waits, or redirects to the login page.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from blogify.api import User


class GateState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Session:
    user: User | None = None
    token: str | None = None
    loading: bool = False

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None

    def owns(self, author_id: str | None) -> bool:
        return bool(self.user and author_id and self.user.id == author_id)


ANONYMOUS = Session()


def state_of(session: Session) -> GateState:
    # loading wins: the user field is not trustworthy until resolved
    if session.loading:
        return GateState.LOADING
    if session.user is not None:
        return GateState.AUTHENTICATED
    return GateState.UNAUTHENTICATED


class SessionGate:
    """
    One gate per navigation.

    `evaluate()` may be called again as the session resolves; the redirect
    callback fires at most once, the first time the gate sees an
    unauthenticated session.
    """

    def __init__(self, on_redirect: Callable[[], object]):
        self._on_redirect = on_redirect
        self.redirected = False
        self.redirect_result: object = None

    def evaluate(self, session: Session) -> GateState:
        state = state_of(session)
        if state is GateState.UNAUTHENTICATED and not self.redirected:
            self.redirected = True
            self.redirect_result = self._on_redirect()
        return state

    def should_render(self, session: Session) -> bool:
        return self.evaluate(session) is GateState.AUTHENTICATED
