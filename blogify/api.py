"""
Client for the remote blogging API.

• Typed records (pydantic) for everything the API hands back; unknown
  fields are ignored, camelCase / ``_id`` names are accepted.
• One exception hierarchy for every way a call can fail, so views can
  catch ``ApiError`` at the call site and flash a message.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

import requests
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

DEFAULT_TIMEOUT = 10
EMPTY_EDITOR_HTML = "<p><br></p>"


################################################################################
# Errors
################################################################################
class ApiError(Exception):
    """A remote call failed; ``message`` is safe to show to the user."""

    def __init__(self, message: str = "Request failed", *, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class NetworkFailure(ApiError):
    """Request never got an HTTP answer (refused, DNS, timeout)."""


class NotFound(ApiError):
    pass


class Unauthorized(ApiError):
    """The bearer token was rejected."""


class BadResponse(ApiError):
    """Body is not JSON or does not look like the record we expected."""


class ValidationFailure(Exception):
    """Form input rejected locally; no request was sent."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


################################################################################
# Records
################################################################################
class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PostStatus(str, Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"


class Author(Record):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str = "Unknown author"


class User(Record):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str
    email: str | None = None
    bio: str | None = None
    website: str | None = None
    twitter: str | None = None
    linkedin: str | None = None
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )


def _author_ref(value: Any) -> Any:
    # unpopulated references arrive as a bare id
    if isinstance(value, str):
        return {"_id": value}
    return value


class Post(Record):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    title: str
    content: str = ""
    author: Author | None = None
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    cover_image: str | None = Field(
        None, validation_alias=AliasChoices("coverImage", "cover_image")
    )
    status: PostStatus = PostStatus.PUBLISHED
    views: int = 0
    likes: int = 0
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )

    @field_validator("author", mode="before")
    @classmethod
    def _author_from_id(cls, value):
        return _author_ref(value)

    @field_validator("cover_image", "category", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        return value or None

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value):
        return value or []

    @property
    def is_published(self) -> bool:
        return self.status is PostStatus.PUBLISHED


class Comment(Record):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    post: str | None = Field(None, validation_alias=AliasChoices("post", "postId"))
    author: Author | None = None
    text: str = Field(validation_alias=AliasChoices("comment", "text", "content"))
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )

    @field_validator("author", mode="before")
    @classmethod
    def _author_from_id(cls, value):
        return _author_ref(value)


class SiteStats(Record):
    posts: int = 0
    authors: int = 0
    tags: int = 0


class UserStats(Record):
    total: int = 0
    published: int = 0
    drafts: int = 0
    views: int = 0


class ProfileStats(Record):
    total_posts: int = Field(0, validation_alias=AliasChoices("totalPosts", "total_posts"))
    total_views: int = Field(0, validation_alias=AliasChoices("totalViews", "total_views"))
    total_likes: int = Field(0, validation_alias=AliasChoices("totalLikes", "total_likes"))


class PostDraft(Record):
    """Body of ``POST /api/posts`` and ``PUT /api/posts/:id``."""

    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    category: str = ""
    cover_image: str = Field("", serialization_alias="coverImage")
    status: PostStatus = PostStatus.DRAFT

    @classmethod
    def from_form(cls, form, *, status: str | None = None) -> "PostDraft":
        """Build a draft from submitted form fields (tags are comma-separated)."""
        tags = [t.strip() for t in form.get("tags", "").split(",") if t.strip()]
        try:
            return cls(
                title=form.get("title", ""),
                content=form.get("content", ""),
                tags=tags,
                category=form.get("category", ""),
                cover_image=form.get("coverImage", "").strip(),
                status=status or form.get("status") or PostStatus.DRAFT,
            )
        except ValidationError:
            raise ValidationFailure("Please choose Draft or Published") from None

    @classmethod
    def from_post(cls, post: Post) -> "PostDraft":
        return cls(
            title=post.title,
            content=post.content,
            tags=list(post.tags),
            category=post.category or "",
            cover_image=post.cover_image or "",
            status=post.status,
        )

    def check(self) -> None:
        """Raise ``ValidationFailure`` for a blank title or empty body."""
        if not self.title.strip():
            raise ValidationFailure("Please enter a title")
        if not self.content.strip() or self.content.strip() == EMPTY_EDITOR_HTML:
            raise ValidationFailure("Please enter some content")

    def payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


################################################################################
# Client
################################################################################
def _error_message(resp, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return fallback


def _parse(model, data):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BadResponse(f"Malformed {model.__name__} in response – {exc}") from None


def _parse_list(model, data) -> list:
    if not isinstance(data, list):
        raise BadResponse(f"Expected a list of {model.__name__}")
    return [_parse(model, item) for item in data]


class ApiClient:
    """
    One client per request: the base URL comes from config, the token
    from the viewer's session (``None`` for anonymous calls).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, *, payload: dict | None = None):
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            resp = self.http.request(
                method,
                self._url(path),
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise NetworkFailure(f"{method} {path} failed – {exc}") from None

        status = resp.status_code
        if status == 404:
            raise NotFound(_error_message(resp, "Not found"), status=status)
        if status == 401:
            raise Unauthorized(_error_message(resp, "Please log in again"), status=status)
        if status >= 400:
            raise ApiError(_error_message(resp, f"Request failed ({status})"), status=status)

        if status == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise BadResponse(f"{method} {path} did not return JSON") from None

    # ── posts ────────────────────────────────────────────────────────
    def list_posts(self) -> list[Post]:
        return _parse_list(Post, self._request("GET", "/api/posts"))

    def site_stats(self) -> SiteStats:
        return _parse(SiteStats, self._request("GET", "/api/posts/stats") or {})

    def get_post(self, post_id: str) -> Post:
        return _parse(Post, self._request("GET", f"/api/posts/{post_id}"))

    def create_post(self, draft: PostDraft) -> Post | None:
        data = self._request("POST", "/api/posts", payload=draft.payload())
        return _parse(Post, data) if data else None

    def update_post(self, post_id: str, draft: PostDraft) -> Post | None:
        data = self._request("PUT", f"/api/posts/{post_id}", payload=draft.payload())
        return _parse(Post, data) if data else None

    def delete_post(self, post_id: str) -> None:
        self._request("DELETE", f"/api/posts/{post_id}")

    # ── signed-in user ───────────────────────────────────────────────
    def my_posts(self) -> list[Post]:
        return _parse_list(Post, self._request("GET", "/api/user/posts"))

    def my_stats(self) -> UserStats:
        return _parse(UserStats, self._request("GET", "/api/user/stats") or {})

    # ── comments ─────────────────────────────────────────────────────
    def list_comments(self, post_id: str) -> list[Comment]:
        return _parse_list(Comment, self._request("GET", f"/api/comments/{post_id}"))

    def add_comment(self, post_id: str, text: str) -> Comment:
        data = self._request("POST", f"/api/comments/{post_id}", payload={"comment": text})
        return _parse(Comment, data)

    def delete_comment(self, comment_id: str) -> None:
        self._request("DELETE", f"/api/comments/{comment_id}")

    # ── public profiles ──────────────────────────────────────────────
    def get_user(self, user_id: str) -> User:
        return _parse(User, self._request("GET", f"/api/users/{user_id}"))

    def user_posts(self, user_id: str) -> tuple[list[Post], ProfileStats]:
        data = self._request("GET", f"/api/users/{user_id}/posts")
        if not isinstance(data, dict):
            raise BadResponse("Expected {posts, stats}")
        posts = _parse_list(Post, data.get("posts") or [])
        return posts, _parse(ProfileStats, data.get("stats") or {})

    # ── auth ─────────────────────────────────────────────────────────
    def _session_from(self, data) -> tuple[str, User]:
        if not isinstance(data, dict) or not data.get("token") or "user" not in data:
            raise BadResponse("Expected {token, user}")
        return str(data["token"]), _parse(User, data["user"])

    def login(self, email: str, password: str) -> tuple[str, User]:
        data = self._request(
            "POST", "/api/auth/login", payload={"email": email, "password": password}
        )
        return self._session_from(data)

    def register(self, name: str, email: str, password: str) -> tuple[str, User]:
        data = self._request(
            "POST",
            "/api/auth/register",
            payload={"name": name, "email": email, "password": password},
        )
        return self._session_from(data)

    def me(self) -> User:
        data = self._request("GET", "/api/auth/me")
        # some deployments wrap the user, some don't
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        return _parse(User, data)
