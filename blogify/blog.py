#!/usr/bin/env python3
"""
Blogify – a server-rendered front-end for the blogging API.

Every page is built here from calls to the remote REST API; this process
keeps no data of its own beyond the signed session cookie.
"""

import os
import secrets
from collections import defaultdict, deque
from datetime import datetime
from functools import wraps
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from time import time
from typing import DefaultDict
from urllib.parse import urlparse

import click
import markdown
from flask import (
    Flask,
    Response,
    abort,
    flash,
    redirect,
    render_template_string,
    request,
    session,
    url_for,
)
from pydantic import ValidationError
from werkzeug.middleware.proxy_fix import ProxyFix

from blogify.api import (
    ApiClient,
    ApiError,
    BadResponse,
    NotFound,
    PostDraft,
    PostStatus,
    ProfileStats,
    SiteStats,
    Unauthorized,
    User,
    UserStats,
    ValidationFailure,
)
from blogify.feed import (
    STATUS_FILTERS,
    filter_by_status,
    filter_posts,
    highlight,
    sorted_tags,
)
from blogify.gate import ANONYMOUS, GateState, Session, SessionGate
from blogify.metrics import estimate_read_minutes, truncate_to_plain_text

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
ENV_FILE = ROOT / ".env"
SECRET_FILE = ROOT / ".secret_key"


def _read_env_file() -> dict[str, str]:
    env = {}
    if not ENV_FILE.exists():
        return env
    for ln in ENV_FILE.read_text().splitlines():
        ln = ln.strip()
        if not ln or ln.startswith("#") or "=" not in ln:
            continue
        k, v = ln.split("=", 1)
        env[k.strip()] = v.strip()
    return env


_ENV_FILE_VALUES = _read_env_file()


def env(key: str, default: str = "") -> str:
    """Process environment first, then ``.env``, then *default*."""
    return (os.environ.get(key) or _ENV_FILE_VALUES.get(key) or default).strip()


def _load_secret_key() -> str:
    key = env("BLOGIFY_SECRET_KEY")
    if key:
        return key
    if SECRET_FILE.exists():
        return SECRET_FILE.read_text().strip()
    key = secrets.token_hex(32)
    SECRET_FILE.write_text(key)
    return key


SECRET_KEY = _load_secret_key()
API_BASE_URL = env("BLOGIFY_API_URL", "http://localhost:5000")
API_TIMEOUT = float(env("BLOGIFY_API_TIMEOUT", "10"))
SITE_NAME = env("BLOGIFY_SITE_NAME", "Blogify")
COOKIE_SECURE = env("BLOGIFY_COOKIE_SECURE", "1") != "0"

CATEGORIES = (
    "Technology",
    "Programming",
    "Web Development",
    "Mobile Development",
    "Data Science",
    "AI & Machine Learning",
    "Design",
    "Business",
    "Startup",
    "Career",
    "Lifestyle",
    "Travel",
    "Health",
    "Education",
    "Other",
)
FEED_PREVIEW = 150
DASHBOARD_PREVIEW = 100
CARD_TAGS = 3
ROW_TAGS = 2
LIKED_MAX = 200  # cookie space
PENDING_RETRY_SECONDS = 3
THEME = "#2563eb"

try:
    __version__ = version("blogify")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App + template filters
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(
    SECRET_KEY=SECRET_KEY,
    API_BASE_URL=API_BASE_URL,
    API_TIMEOUT=API_TIMEOUT,
    SITE_NAME=SITE_NAME,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SECURE=COOKIE_SECURE,
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)


def _as_datetime(value) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@app.template_filter("date")
def date_filter(value) -> str:
    """``January 5, 2025``"""
    dt = _as_datetime(value)
    if dt is None:
        return str(value or "")
    return f"{dt:%B} {dt.day}, {dt.year}"


@app.template_filter("shortdate")
def shortdate_filter(value) -> str:
    dt = _as_datetime(value)
    if dt is None:
        return str(value or "")
    return f"{dt:%b} {dt.day}, {dt.year}"


@app.template_filter("readtime")
def readtime_filter(content: str | None) -> int:
    return estimate_read_minutes(content)


@app.template_filter("preview")
def preview_filter(content: str | None, length: int = FEED_PREVIEW) -> str:
    return truncate_to_plain_text(content, length)


def render_markdown(text: str) -> str:
    return markdown.markdown(text, extensions=["extra", "sane_lists"])


################################################################################
# Session + API helpers
################################################################################
def api_client(viewer: Session | None = None) -> ApiClient:
    """A client for this request, carrying the viewer's token if any."""
    return ApiClient(
        app.config["API_BASE_URL"],
        token=viewer.token if viewer else None,
        timeout=app.config["API_TIMEOUT"],
    )


def sign_in(token: str, user: User) -> None:
    session.clear()
    session.permanent = True
    session["token"] = token
    session["user"] = user.model_dump(mode="json")
    session["csrf"] = secrets.token_hex(16)


def sign_out() -> None:
    session.clear()


def current_session(*, resolve: bool = True) -> Session:
    """
    Build the viewer's `Session` from the cookie.

    A token without a cached user is checked against ``/api/auth/me``; if
    the API cannot answer, the session stays *loading* instead of being
    treated as signed out. With ``resolve=False`` no request is made.
    """
    token = session.get("token")
    if not token:
        return ANONYMOUS

    cached = session.get("user")
    if cached:
        try:
            return Session(user=User.model_validate(cached), token=token)
        except ValidationError:
            session.pop("user", None)

    if not resolve:
        return Session(token=token, loading=True)

    try:
        user = api_client(Session(token=token)).me()
    except (Unauthorized, NotFound, BadResponse) as exc:
        # the API answered, and not with a user
        app.logger.info("Dropping unresolvable session: %s", exc)
        sign_out()
        return ANONYMOUS
    except ApiError as exc:
        app.logger.warning("Error resolving session: %s", exc)
        return Session(token=token, loading=True)

    session["user"] = user.model_dump(mode="json")
    return Session(user=user, token=token)


def fetch(label: str, call, default=None):
    """
    Run one read-only API *call*.

    Returns ``(value, None)`` or ``(default, exc)``; failures are logged,
    never raised, except a rejected token which the error handler turns
    into a fresh login.
    """
    try:
        return call(), None
    except Unauthorized:
        raise
    except ApiError as exc:
        app.logger.warning("Error fetching %s: %s", label, exc)
        return default, exc


def report_failure(exc: ApiError, message: str, *, prefer_api_message: bool = False):
    """Log + flash a failed mutation; prior state is left alone."""
    if isinstance(exc, Unauthorized):
        raise exc
    app.logger.warning("%s: %s", message, exc)
    if prefer_api_message and exc.status and exc.status < 500:
        flash(exc.message)
    else:
        flash(message)


def safe_next(target: str | None) -> str | None:
    """Only same-site paths are valid redirect targets."""
    if not target or not target.startswith("/") or target.startswith("//"):
        return None
    if urlparse(target).netloc or "\\" in target:
        return None
    return target


def render(template: str, viewer: Session, **ctx):
    return render_template_string(
        template, title=app.config["SITE_NAME"], viewer=viewer, **ctx
    )


def _csrf_token() -> str:
    """One token per session (rotates on sign-in)."""
    return session.get("csrf", "")


app.jinja_env.globals.update(
    csrf_token=_csrf_token,
    version=__version__,
    theme=THEME,
    highlight=highlight,
    categories=CATEGORIES,
    status_filters=STATUS_FILTERS,
    card_tags=CARD_TAGS,
    row_tags=ROW_TAGS,
)


###############################################################################
# Session gate
###############################################################################
def gated(view):
    """
    Guard a view behind sign-in.

    • loading          → pending page, nothing guarded is rendered
    • unauthenticated  → redirect to /login (once)
    • authenticated    → view(viewer, **kwargs)
    """

    @wraps(view)
    def wrapped(*args, **kwargs):
        viewer = current_session()
        gate = SessionGate(
            lambda: redirect(url_for("login", next=request.full_path.rstrip("?")))
        )
        state = gate.evaluate(viewer)

        if state is GateState.LOADING:
            return (
                render(TEMPL_PENDING, viewer, refresh=PENDING_RETRY_SECONDS),
                503,
                {"Retry-After": str(PENDING_RETRY_SECONDS)},
            )
        if state is GateState.UNAUTHENTICATED:
            return gate.redirect_result
        return view(viewer, *args, **kwargs)

    return wrapped


def rate_limit(max_requests: int, window: int = 60):
    hits: DefaultDict[str, deque] = defaultdict(deque)

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if request.method != "POST":
                return view(*args, **kwargs)

            now = time()
            ip = (
                request.access_route[0] if request.access_route else request.remote_addr
            ) or "unknown"

            dq = hits[ip]
            while dq and now - dq[0] > window:
                dq.popleft()

            if len(dq) >= max_requests:
                retry_after = int(window - (now - dq[0]))
                return Response(
                    "Too many requests – try again later.",
                    status=429,
                    headers={"Retry-After": str(retry_after)},
                )

            dq.append(now)
            return view(*args, **kwargs)

        return wrapped

    return decorator


SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}
CSRF_EXEMPT = {"login", "register"}


@app.before_request
def csrf_protect():
    if request.method in SAFE_METHODS:
        return

    # login and register carry no token yet, even when a stale session cookie does
    if not session.get("token") or request.endpoint in CSRF_EXEMPT:
        return

    token = session.get("csrf", "")
    sent = request.form.get("csrf") or request.headers.get("X-CSRFToken", "")
    if not token or not secrets.compare_digest(token, sent):
        abort(403)


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


@app.errorhandler(Unauthorized)
def token_rejected(exc):
    """The API no longer accepts our token: start over at the login page."""
    sign_out()
    flash("Your session has expired. Please log in again.")
    return redirect(url_for("login", next=safe_next(request.path)))


###############################################################################
# Templates
###############################################################################


def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


TEMPL_PROLOG = """
<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{% if page_title %}{{ page_title }} · {% endif %}{{ title }}</title>
{% if refresh %}<meta http-equiv="refresh" content="{{ refresh }}">{% endif %}
<style>
*{box-sizing:border-box}
body{margin:0;font-family:system-ui,-apple-system,"Segoe UI",Roboto,sans-serif;font-size:16px;line-height:1.6;color:#1f2937;background:#f9fafb}
a{color:{{ theme }};text-decoration:none}
a:hover{text-decoration:underline}
.wrap{max-width:72rem;margin:0 auto;padding:0 1.25rem}
header.top{background:#fff;border-bottom:1px solid #e5e7eb}
header.top .wrap{display:flex;align-items:center;justify-content:space-between;height:4rem}
.logo{font-size:1.5rem;font-weight:700;color:#111827}
nav.main a{margin-left:1.25rem;color:#374151}
nav.main a[aria-current=page]{color:{{ theme }};font-weight:600}
.toast{position:fixed;top:1rem;right:1rem;background:#111827;color:#fff;padding:.75rem 1rem;border-radius:.5rem;max-width:24rem;z-index:99;box-shadow:0 4px 12px rgba(0,0,0,.2)}
.card{background:#fff;border-radius:.5rem;box-shadow:0 1px 3px rgba(0,0,0,.08);overflow:hidden}
.card .body{padding:1.25rem}
.grid{display:grid;grid-template-columns:repeat(auto-fill,minmax(20rem,1fr));gap:1.5rem}
.cover{width:100%;height:12rem;object-fit:cover;display:block}
.meta{font-size:.85rem;color:#6b7280}
.pill{display:inline-block;padding:.1rem .6rem;margin:0 .3rem .3rem 0;border-radius:1rem;font-size:.75rem;background:#dbeafe;color:#1e40af}
.pill.muted{background:#f3f4f6;color:#4b5563}
.pill.draft{background:#fef3c7;color:#92400e}
.pill.published{background:#d1fae5;color:#065f46}
.stats{display:grid;grid-template-columns:repeat(auto-fit,minmax(10rem,1fr));gap:1rem;margin:1.5rem 0}
.stat{background:#fff;border-radius:.5rem;padding:1rem;text-align:center;box-shadow:0 1px 3px rgba(0,0,0,.08)}
.stat b{display:block;font-size:1.75rem;color:#111827}
.filters{display:flex;flex-wrap:wrap;gap:.75rem;margin:1rem 0}
input,select,textarea{font:inherit;padding:.55rem .75rem;border:1px solid #d1d5db;border-radius:.4rem;background:#fff}
input[type=search],input[type=text],input[type=url],input[type=email],input[type=password],textarea{width:100%}
.filters input{flex:1 1 16rem;width:auto}
label{display:block;font-weight:600;margin:1rem 0 .35rem}
button,.button{display:inline-block;font:inherit;padding:.55rem 1.1rem;border-radius:.4rem;border:1px solid {{ theme }};background:{{ theme }};color:#fff;cursor:pointer}
button.ghost,.button.ghost{background:#fff;color:{{ theme }}}
button.danger{background:#dc2626;border-color:#dc2626}
.row{display:flex;justify-content:space-between;align-items:center;gap:1rem}
.empty{text-align:center;padding:3rem 0;color:#6b7280}
.prose img{max-width:100%}
mark{background:#fde68a;padding:0 .1em}
footer.bottom{margin-top:4rem;padding:2rem 0;color:#9ca3af;font-size:.85rem;border-top:1px solid #e5e7eb}
</style>
</head>
<body>
{% macro post_card(p, q='') -%}
<article class="card">
    {% if p.cover_image %}<img class="cover" src="{{ p.cover_image }}" alt="{{ p.title }}">{% endif %}
    <div class="body">
        <p class="meta">
            {% if p.author %}
            <a href="{{ url_for('profile', user_id=p.author.id) }}">{{ p.author.name }}</a>
            {% else %}Unknown author{% endif %}
            · {{ p.created_at|date }}
        </p>
        <h3 style="margin:.25rem 0 .5rem;">
            <a href="{{ url_for('post_detail', post_id=p.id) }}" style="color:#111827;">{{ highlight(p.title, q) }}</a>
        </h3>
        <p>{{ p.content|preview }}</p>
        <div>
            {% for t in p.tags[:card_tags] %}
            <a class="pill" href="{{ url_for('index', tag=t) }}">{{ t }}</a>
            {% endfor %}
            {% if p.tags|length > card_tags %}
            <span class="pill muted">+{{ p.tags|length - card_tags }} more</span>
            {% endif %}
        </div>
        <div class="row meta" style="margin-top:.75rem;">
            <span>{{ p.content|readtime }} min read</span>
            <a href="{{ url_for('post_detail', post_id=p.id) }}">Read more →</a>
        </div>
    </div>
</article>
{%- endmacro %}
<header class="top">
    <div class="wrap">
        <a class="logo" href="{{ url_for('index') }}">{{ title }}</a>
        <nav class="main" aria-label="Primary">
            <a href="{{ url_for('index') }}"
               {% if request.endpoint=='index' %}aria-current="page"{% endif %}>Home</a>
            {% if viewer.user %}
                <a href="{{ url_for('dashboard') }}"
                   {% if request.endpoint=='dashboard' %}aria-current="page"{% endif %}>Dashboard</a>
                <a href="{{ url_for('create_post') }}"
                   {% if request.endpoint=='create_post' %}aria-current="page"{% endif %}>Write</a>
                <a href="{{ url_for('profile', user_id=viewer.user.id) }}">{{ viewer.user.name }}</a>
                <a href="{{ url_for('logout') }}">Logout</a>
            {% else %}
                <a href="{{ url_for('login') }}"
                   {% if request.endpoint=='login' %}aria-current="page"{% endif %}>Login</a>
                <a href="{{ url_for('register') }}"
                   {% if request.endpoint=='register' %}aria-current="page"{% endif %}>Sign up</a>
            {% endif %}
        </nav>
    </div>
</header>
{% with msgs = get_flashed_messages() %}
{% if msgs %}
<div class="toast" role="status" aria-live="polite">
    {% for m in msgs %}{{ m }}{% if not loop.last %}<br>{% endif %}{% endfor %}
</div>
{% endif %}
{% endwith %}
<main class="wrap" id="main-content">
"""

TEMPL_EPILOG = """
</main>
<footer class="bottom">
    <div class="wrap row">
        <span>{{ title }} · a place where stories come to life</span>
        <span>v{{ version }}</span>
    </div>
</footer>
</body>
</html>
"""


###############################################################################
# Authentication
###############################################################################
@app.route("/login", methods=["GET", "POST"])
@rate_limit(max_requests=5, window=60)
def login():
    viewer = current_session(resolve=False)
    nxt = safe_next(request.values.get("next"))
    if viewer.user:
        return redirect(nxt or url_for("dashboard"))

    email = request.form.get("email", "").strip()
    if request.method == "POST":
        password = request.form.get("password", "")
        if not email or not password:
            flash("Please fill in all fields")
        else:
            try:
                token, user = api_client().login(email, password)
            except ApiError as exc:
                app.logger.warning("Login failed for %s: %s", email, exc)
                flash(exc.message if exc.status and exc.status < 500 else "Login failed")
            else:
                sign_in(token, user)
                flash(f"Welcome back, {user.name}!")
                return redirect(nxt or url_for("dashboard"))

    return render(TEMPL_LOGIN, viewer, email=email, next=nxt, page_title="Login")


TEMPL_LOGIN = wrap("""
{% block body %}
<section class="card" style="max-width:28rem;margin:3rem auto;">
  <div class="body">
    <h2 style="margin-top:0">Welcome back</h2>
    <form method="post">
      {% if next %}<input type="hidden" name="next" value="{{ next }}">{% endif %}
      <label for="email">Email</label>
      <input id="email" name="email" type="email" value="{{ email }}" autocomplete="email">
      <label for="password">Password</label>
      <input id="password" name="password" type="password" autocomplete="current-password">
      <p><button type="submit" style="width:100%;">Sign in</button></p>
    </form>
    <p class="meta">No account yet? <a href="{{ url_for('register') }}">Sign up</a></p>
  </div>
</section>
{% endblock %}
""")


@app.route("/register", methods=["GET", "POST"])
@rate_limit(max_requests=5, window=60)
def register():
    viewer = current_session(resolve=False)
    if viewer.user:
        return redirect(url_for("dashboard"))

    name = request.form.get("name", "").strip()
    email = request.form.get("email", "").strip()
    if request.method == "POST":
        password = request.form.get("password", "")
        if not name or not email or not password:
            flash("Please fill in all fields")
        else:
            try:
                token, user = api_client().register(name, email, password)
            except ApiError as exc:
                app.logger.warning("Registration failed for %s: %s", email, exc)
                flash(
                    exc.message if exc.status and exc.status < 500 else "Registration failed"
                )
            else:
                sign_in(token, user)
                flash("Account created successfully!")
                return redirect(url_for("dashboard"))

    return render(TEMPL_REGISTER, viewer, name=name, email=email, page_title="Sign up")


TEMPL_REGISTER = wrap("""
<section class="card" style="max-width:28rem;margin:3rem auto;">
  <div class="body">
    <h2 style="margin-top:0">Start writing today</h2>
    <form method="post">
      <label for="name">Name</label>
      <input id="name" name="name" type="text" value="{{ name }}" autocomplete="name">
      <label for="email">Email</label>
      <input id="email" name="email" type="email" value="{{ email }}" autocomplete="email">
      <label for="password">Password</label>
      <input id="password" name="password" type="password" autocomplete="new-password">
      <p><button type="submit" style="width:100%;">Create account</button></p>
    </form>
    <p class="meta">Already have an account? <a href="{{ url_for('login') }}">Login</a></p>
  </div>
</section>
""")


@app.route("/logout")
def logout():
    sign_out()
    return redirect(url_for("index"))


###############################################################################
# Feed
###############################################################################
@app.route("/")
def index():
    viewer = current_session()
    client = api_client(viewer)
    q = request.args.get("q", "")
    tag = request.args.get("tag", "").strip()

    posts, _ = fetch("posts", client.list_posts, [])
    stats, _ = fetch("stats", client.site_stats, SiteStats())

    posts = [p for p in posts if p.is_published]
    hits = filter_posts(posts, q, tag)

    return render(
        TEMPL_INDEX,
        viewer,
        posts=hits,
        all_tags=sorted_tags(posts),
        stats=stats,
        q=q,
        tag=tag,
    )


TEMPL_INDEX = wrap("""
{% block body %}
<section style="text-align:center;padding:3rem 0 1rem;">
    <h1 style="font-size:2.5rem;margin:0;">Welcome to {{ title }}</h1>
    <p class="meta" style="font-size:1.1rem;">
        Discover amazing stories, share your thoughts, and connect with writers from around the world.
    </p>
    {% if not viewer.user %}
    <p><a class="button" href="{{ url_for('register') }}">Start writing today</a>
       <a class="button ghost" href="#posts">Explore stories</a></p>
    {% endif %}
</section>

<section class="stats">
    <div class="stat"><b>{{ stats.posts }}+</b>Published stories</div>
    <div class="stat"><b>{{ stats.authors }}+</b>Active writers</div>
    <div class="stat"><b>{{ stats.tags }}+</b>Topics covered</div>
</section>

<form id="posts" class="filters" method="get" action="{{ url_for('index') }}">
    <input type="search" name="q" value="{{ q }}" placeholder="Search stories..." aria-label="Search stories">
    <select name="tag" aria-label="Topic">
        <option value="">All topics</option>
        {% for t in all_tags %}
        <option value="{{ t }}" {% if t == tag %}selected{% endif %}>{{ t }}</option>
        {% endfor %}
    </select>
    <button type="submit">Filter</button>
</form>

<div class="row">
    <h2>Latest stories</h2>
    <span class="meta">{{ posts|length }} {{ 'story' if posts|length == 1 else 'stories' }} found</span>
</div>

{% if posts %}
<div class="grid">
    {% for p in posts %}{{ post_card(p, q) }}{% endfor %}
</div>
{% else %}
<div class="empty">
    <h3>No stories found</h3>
    <p>{% if q or tag %}Try adjusting your search or filter{% else %}Be the first to share your story!{% endif %}</p>
    <a class="button" href="{{ url_for('create_post') }}">Start writing</a>
</div>
{% endif %}
{% endblock %}
""")


###############################################################################
# Post detail, comments, likes
###############################################################################
@app.route("/blog/<post_id>")
def post_detail(post_id):
    viewer = current_session()
    client = api_client(viewer)

    # fetched independently: either may fail without hiding the other
    post, post_err = fetch("post", lambda: client.get_post(post_id))
    comments, comments_err = fetch("comments", lambda: client.list_comments(post_id), [])

    if post is None:
        if not isinstance(post_err, NotFound):
            flash("Failed to fetch post")
        status = 404 if isinstance(post_err, NotFound) else 502
        return render(TEMPL_MISSING, viewer, what="Post"), status

    liked = post.id in session.get("liked", [])
    return render(
        TEMPL_POST,
        viewer,
        post=post,
        comments=comments,
        comments_failed=comments_err is not None,
        liked=liked,
        likes=post.likes + (1 if liked else 0),
        is_author=viewer.owns(post.author.id if post.author else None),
        share_url=url_for("post_detail", post_id=post.id, _external=True),
        page_title=post.title,
    )


TEMPL_POST = wrap("""
{% block body %}
<p><a href="{{ url_for('index') }}">← Back to posts</a></p>
<article class="card">
    {% if post.cover_image %}<img class="cover" style="height:20rem" src="{{ post.cover_image }}" alt="{{ post.title }}">{% endif %}
    <div class="body">
        {% if post.category %}<span class="pill muted">{{ post.category }}</span>{% endif %}
        {% if post.status.value == 'Draft' %}<span class="pill draft">Draft</span>{% endif %}
        <h1 style="margin:.5rem 0;">{{ post.title }}</h1>
        <div class="row meta">
            <span>
                {% if post.author %}
                <a href="{{ url_for('profile', user_id=post.author.id) }}">{{ post.author.name }}</a>
                {% else %}Unknown author{% endif %}
                · {{ post.created_at|date }}
                · {{ post.content|readtime }} min read
                · {{ post.views }} views
            </span>
            {% if is_author %}
            <span>
                <a href="{{ url_for('edit_post', post_id=post.id) }}">Edit</a>
                · <a href="{{ url_for('delete_post', post_id=post.id) }}" style="color:#dc2626;">Delete</a>
            </span>
            {% endif %}
        </div>
        {% if post.tags %}
        <p>{% for t in post.tags %}<a class="pill" href="{{ url_for('index', tag=t) }}">#{{ t }}</a>{% endfor %}</p>
        {% endif %}
        <div class="prose">{{ post.content|safe }}</div>

        <div class="row" style="border-top:1px solid #e5e7eb;margin-top:2rem;padding-top:1rem;">
            <form method="post" action="{{ url_for('toggle_like', post_id=post.id) }}">
                {% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}
                <button type="submit" class="{{ '' if liked else 'ghost' }}" aria-pressed="{{ 'true' if liked else 'false' }}">
                    ♥ {{ likes }}
                </button>
            </form>
            <span class="meta">💬 {{ comments|length }}</span>
            <span style="flex:1 1 auto;max-width:24rem;">
                <input type="text" readonly value="{{ share_url }}" aria-label="Share link"
                       onclick="this.select();navigator.clipboard&&navigator.clipboard.writeText(this.value);">
            </span>
        </div>
    </div>
</article>

<section id="comments" style="margin-top:2rem;">
    <h2>Comments ({{ comments|length }})</h2>
    {% if viewer.user %}
    <form method="post" action="{{ url_for('add_comment', post_id=post.id) }}">
        {% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}
        <textarea name="comment" rows="3" placeholder="Share your thoughts..."></textarea>
        <p><button type="submit">Post comment</button></p>
    </form>
    {% else %}
    <p class="meta"><a href="{{ url_for('login', next=url_for('post_detail', post_id=post.id)) }}">Login</a> to join the conversation.</p>
    {% endif %}

    {% if comments_failed %}
    <p class="meta">Comments could not be loaded right now.</p>
    {% elif not comments %}
    <p class="meta">No comments yet. Be the first to comment!</p>
    {% endif %}
    {% for c in comments %}
    <div class="card" style="margin:.75rem 0;">
        <div class="body">
            <div class="row meta">
                <span>
                    {% if c.author %}
                    <a href="{{ url_for('profile', user_id=c.author.id) }}">{{ c.author.name }}</a>
                    {% else %}Unknown author{% endif %}
                    · {{ c.created_at|date }}
                </span>
                {% if c.author and viewer.owns(c.author.id) %}
                <form method="post" action="{{ url_for('remove_comment', comment_id=c.id) }}"
                      onsubmit="return confirm('Are you sure you want to delete this comment?');">
                    {% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}
                    <input type="hidden" name="post_id" value="{{ post.id }}">
                    <button type="submit" class="danger" style="padding:.2rem .6rem;font-size:.8rem;">Delete</button>
                </form>
                {% endif %}
            </div>
            <p style="margin-bottom:0;white-space:pre-line;">{{ c.text }}</p>
        </div>
    </div>
    {% endfor %}
</section>
{% endblock %}
""")

TEMPL_MISSING = wrap("""
{% block body %}
<div class="empty">
    <h2>{{ what }} not found</h2>
    <p>It may have been removed, or the link is wrong.</p>
    <a class="button" href="{{ url_for('index') }}">Go back to home</a>
</div>
{% endblock %}
""")


@app.route("/blog/<post_id>/comments", methods=["POST"])
def add_comment(post_id):
    viewer = current_session()
    back = url_for("post_detail", post_id=post_id, _anchor="comments")
    if not viewer.user:
        flash("Please login to comment")
        return redirect(back)

    text = request.form.get("comment", "").strip()
    if not text:
        return redirect(back)

    try:
        api_client(viewer).add_comment(post_id, text)
    except ApiError as exc:
        report_failure(exc, "Failed to add comment")
    else:
        flash("Comment added successfully")
    return redirect(back)


@app.route("/comments/<comment_id>/delete", methods=["POST"])
@gated
def remove_comment(viewer, comment_id):
    post_id = request.form.get("post_id", "")
    try:
        api_client(viewer).delete_comment(comment_id)
    except ApiError as exc:
        report_failure(exc, "Failed to delete comment")
    else:
        flash("Comment deleted successfully")
    if post_id:
        return redirect(url_for("post_detail", post_id=post_id, _anchor="comments"))
    return redirect(url_for("index"))


@app.route("/blog/<post_id>/like", methods=["POST"])
def toggle_like(post_id):
    """
    Likes live in the viewer's cookie only; the API's counter is never
    updated from here.
    """
    viewer = current_session()
    if not viewer.user:
        flash("Please login to like posts")
        return redirect(url_for("post_detail", post_id=post_id))

    liked = [pid for pid in session.get("liked", []) if pid != post_id]
    if len(liked) == len(session.get("liked", [])):
        liked.append(post_id)
    session["liked"] = liked[-LIKED_MAX:]
    return redirect(url_for("post_detail", post_id=post_id))


###############################################################################
# Authoring
###############################################################################
def _draft_from_request() -> PostDraft:
    """Validated draft from the editor form (Markdown converted to HTML)."""
    draft = PostDraft.from_form(request.form)
    draft.check()
    if request.form.get("format") == "markdown":
        draft = draft.model_copy(update={"content": render_markdown(draft.content)})
    return draft


def _saved_message(draft: PostDraft) -> str:
    if draft.status is PostStatus.PUBLISHED:
        return "Post published successfully!"
    return "Draft saved successfully!"


@app.route("/create", methods=["GET", "POST"])
@gated
def create_post(viewer):
    form = request.form if request.method == "POST" else {}
    if request.method == "POST":
        try:
            draft = _draft_from_request()
        except ValidationFailure as exc:
            flash(exc.message)
        else:
            try:
                api_client(viewer).create_post(draft)
            except ApiError as exc:
                report_failure(exc, "Failed to create post", prefer_api_message=True)
            else:
                flash(_saved_message(draft))
                return redirect(url_for("dashboard"))

    return render(TEMPL_EDITOR, viewer, form=form, editing=None, page_title="New post")


@app.route("/edit/<post_id>", methods=["GET", "POST"])
@gated
def edit_post(viewer, post_id):
    client = api_client(viewer)

    if request.method == "POST":
        form = request.form
        try:
            draft = _draft_from_request()
        except ValidationFailure as exc:
            flash(exc.message)
        else:
            try:
                client.update_post(post_id, draft)
            except ApiError as exc:
                report_failure(exc, "Failed to update post", prefer_api_message=True)
            else:
                flash(_saved_message(draft))
                return redirect(url_for("dashboard"))
    else:
        post, _ = fetch("post", lambda: client.get_post(post_id))
        if post is None:
            flash("Failed to fetch post")
            return redirect(url_for("dashboard"))
        draft = PostDraft.from_post(post)
        form = {
            "title": draft.title,
            "content": draft.content,
            "tags": ", ".join(draft.tags),
            "category": draft.category,
            "coverImage": draft.cover_image,
            "status": draft.status.value,
            "format": "html",
        }

    return render(TEMPL_EDITOR, viewer, form=form, editing=post_id, page_title="Edit post")


TEMPL_EDITOR = wrap("""
{% block body %}
<p><a href="{{ url_for('dashboard') }}">← Back to dashboard</a></p>
<h1>{{ 'Edit post' if editing else 'Create new post' }}</h1>
<form method="post" class="card">
  <div class="body">
    {% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}

    <label for="title">Title</label>
    <input id="title" name="title" type="text" value="{{ form.get('title', '') }}"
           placeholder="Enter an engaging title for your post...">

    <label for="coverImage">Cover image URL (optional)</label>
    <input id="coverImage" name="coverImage" type="url" value="{{ form.get('coverImage', '') }}"
           placeholder="https://example.com/image.jpg">
    {% if form.get('coverImage') %}
    <img class="cover" src="{{ form.get('coverImage') }}" alt="Cover preview" onerror="this.style.display='none'">
    {% endif %}

    <div class="filters">
      <div style="flex:1 1 14rem;">
        <label for="category">Category</label>
        <select id="category" name="category" style="width:100%;">
          <option value="">Select a category</option>
          {% for c in categories %}
          <option value="{{ c }}" {% if form.get('category') == c %}selected{% endif %}>{{ c }}</option>
          {% endfor %}
        </select>
      </div>
      <div style="flex:2 1 20rem;">
        <label for="tags">Tags</label>
        <input id="tags" name="tags" type="text" value="{{ form.get('tags', '') }}"
               placeholder="react, javascript, web development">
        <small class="meta">Separate tags with commas</small>
      </div>
    </div>

    <label for="content">Content</label>
    <div class="meta">
      {% set fmt = form.get('format', 'html') %}
      <label style="display:inline;font-weight:normal;margin-right:1rem;">
        <input type="radio" name="format" value="html" {% if fmt != 'markdown' %}checked{% endif %}> HTML
      </label>
      <label style="display:inline;font-weight:normal;">
        <input type="radio" name="format" value="markdown" {% if fmt == 'markdown' %}checked{% endif %}> Markdown
      </label>
    </div>
    <textarea id="content" name="content" rows="18"
              placeholder="Write your story...">{{ form.get('content', '') }}</textarea>

    <p class="row" style="justify-content:flex-end;">
      <button type="submit" name="status" value="Draft" class="ghost">Save draft</button>
      <button type="submit" name="status" value="Published">{{ 'Update & publish' if editing else 'Publish' }}</button>
    </p>
  </div>
</form>
{% endblock %}
""")


@app.route("/posts/<post_id>/delete", methods=["GET", "POST"])
@gated
def delete_post(viewer, post_id):
    client = api_client(viewer)

    if request.method == "POST":
        try:
            client.delete_post(post_id)
        except ApiError as exc:
            report_failure(exc, "Failed to delete post")
        else:
            flash("Post deleted successfully")
        return redirect(url_for("dashboard"))

    post, _ = fetch("post", lambda: client.get_post(post_id))
    if post is None:
        flash("Failed to fetch post")
        return redirect(url_for("dashboard"))
    return render(TEMPL_DELETE_POST, viewer, post=post, page_title="Delete post")


TEMPL_DELETE_POST = wrap("""
{% block body %}
<h2>Delete post?</h2>
<article class="card" style="border-left:4px solid #dc2626;">
    <div class="body">
        <h3 style="margin-top:0;">{{ post.title }}</h3>
        <p>{{ post.content|preview }}</p>
        <small class="meta">{{ post.created_at|date }}</small>
    </div>
</article>
<p>This action cannot be undone.</p>
<form method="post">
    {% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}
    <button class="danger">Yes – delete it</button>
    <a href="{{ url_for('dashboard') }}" style="margin-left:1rem;">Cancel</a>
</form>
{% endblock %}
""")


###############################################################################
# Dashboard
###############################################################################
@app.route("/dashboard")
@gated
def dashboard(viewer):
    client = api_client(viewer)
    which = request.args.get("filter", "all")
    if which not in STATUS_FILTERS:
        which = "all"
    q = request.args.get("q", "")
    tag = request.args.get("tag", "").strip()

    posts, posts_err = fetch("your posts", client.my_posts, [])
    if posts_err is not None:
        flash("Failed to fetch your posts")
    stats, _ = fetch("your stats", client.my_stats, UserStats())

    shown = filter_posts(filter_by_status(posts, which), q, tag)
    return render(
        TEMPL_DASHBOARD,
        viewer,
        posts=shown,
        stats=stats,
        which=which,
        all_tags=sorted_tags(posts),
        q=q,
        tag=tag,
        preview_len=DASHBOARD_PREVIEW,
        page_title="Dashboard",
    )


TEMPL_DASHBOARD = wrap("""
{% block body %}
<h1>Welcome back, {{ viewer.user.name }}!</h1>
<p class="meta">Manage your posts and track your writing progress.</p>

<section class="stats">
    <div class="stat"><b>{{ stats.total }}</b>Total posts</div>
    <div class="stat"><b>{{ stats.published }}</b>Published</div>
    <div class="stat"><b>{{ stats.drafts }}</b>Drafts</div>
    <div class="stat"><b>{{ stats.views }}</b>Total views</div>
</section>

<div class="row">
    <span class="meta">
        {{ posts|length }} {{ 'post' if posts|length == 1 else 'posts' }}{% if which != 'all' %} ({{ which }}){% endif %}
    </span>
    <a class="button" href="{{ url_for('create_post') }}">+ New post</a>
</div>

<form class="filters" method="get" action="{{ url_for('dashboard') }}">
    <input type="search" name="q" value="{{ q }}" placeholder="Search your posts..." aria-label="Search your posts">
    <select name="tag" aria-label="Topic">
        <option value="">All topics</option>
        {% for t in all_tags %}
        <option value="{{ t }}" {% if t == tag %}selected{% endif %}>{{ t }}</option>
        {% endfor %}
    </select>
    <select name="filter" aria-label="Status">
        {% for f in status_filters %}
        <option value="{{ f }}" {% if f == which %}selected{% endif %}>
            {{ {'all': 'All posts', 'published': 'Published', 'draft': 'Drafts'}[f] }}
        </option>
        {% endfor %}
    </select>
    <button type="submit">Apply</button>
</form>

{% if not posts %}
<div class="empty">
    <h3>{{ 'No posts yet' if which == 'all' else 'No ' ~ which ~ ' posts' }}</h3>
    <p>{% if which == 'all' %}Start your blogging journey by creating your first post!{% else %}You don't have any {{ which }} posts yet.{% endif %}</p>
    <a class="button" href="{{ url_for('create_post') }}">Create your first post</a>
</div>
{% endif %}

{% for p in posts %}
<article class="card" style="margin-bottom:1rem;">
    <div class="body row" style="align-items:flex-start;">
        <div style="flex:1 1 auto;">
            <span class="pill {{ 'published' if p.is_published else 'draft' }}">{{ p.status.value }}</span>
            <h3 style="margin:.35rem 0;">{{ highlight(p.title, q) }}</h3>
            <p style="margin:.25rem 0;">{{ p.content|preview(preview_len) }}</p>
            <p class="meta" style="margin:0;">
                {{ p.created_at|shortdate }} · {{ p.views }} views
                {% for t in p.tags[:row_tags] %}<span class="pill muted">{{ t }}</span>{% endfor %}
                {% if p.tags|length > row_tags %}<span>+{{ p.tags|length - row_tags }} more</span>{% endif %}
            </p>
        </div>
        <div style="white-space:nowrap;">
            {% if p.is_published %}
            <a href="{{ url_for('post_detail', post_id=p.id) }}" title="View post">View</a> ·
            {% endif %}
            <a href="{{ url_for('edit_post', post_id=p.id) }}" title="Edit post">Edit</a> ·
            <a href="{{ url_for('delete_post', post_id=p.id) }}" title="Delete post" style="color:#dc2626;">Delete</a>
        </div>
    </div>
</article>
{% endfor %}
{% endblock %}
""")


###############################################################################
# Profiles
###############################################################################
@app.route("/profile/<user_id>")
def profile(user_id):
    viewer = current_session()
    client = api_client(viewer)
    q = request.args.get("q", "")
    tag = request.args.get("tag", "").strip()

    person, person_err = fetch("profile", lambda: client.get_user(user_id))
    listing, _ = fetch(
        "profile posts", lambda: client.user_posts(user_id), ([], ProfileStats())
    )
    posts, stats = listing

    if person is None:
        if not isinstance(person_err, NotFound):
            flash("Failed to fetch profile")
        status = 404 if isinstance(person_err, NotFound) else 502
        return render(TEMPL_MISSING, viewer, what="User"), status

    return render(
        TEMPL_PROFILE,
        viewer,
        person=person,
        posts=filter_posts(posts, q, tag),
        all_tags=sorted_tags(posts),
        stats=stats,
        q=q,
        tag=tag,
        page_title=person.name,
    )


TEMPL_PROFILE = wrap("""
{% block body %}
<section class="card" style="margin-top:2rem;">
    <div class="body">
        <h1 style="margin:0;">{{ person.name }}</h1>
        {% if person.bio %}<p>{{ person.bio }}</p>{% endif %}
        <p class="meta">
            {% if person.email %}✉ {{ person.email }} · {% endif %}
            {% if person.created_at %}Joined {{ person.created_at|date }}{% endif %}
        </p>
        {% if person.website or person.twitter or person.linkedin %}
        <p>
            {% if person.website %}<a href="{{ person.website }}" target="_blank" rel="noopener noreferrer">Website</a>{% endif %}
            {% if person.twitter %}<a href="https://twitter.com/{{ person.twitter }}" target="_blank" rel="noopener noreferrer" style="margin-left:1rem;">Twitter</a>{% endif %}
            {% if person.linkedin %}<a href="{{ person.linkedin }}" target="_blank" rel="noopener noreferrer" style="margin-left:1rem;">LinkedIn</a>{% endif %}
        </p>
        {% endif %}
    </div>
</section>

<section class="stats">
    <div class="stat"><b>{{ stats.total_posts }}</b>Posts</div>
    <div class="stat"><b>{{ stats.total_views }}</b>Views</div>
    <div class="stat"><b>{{ stats.total_likes }}</b>Likes</div>
</section>

<h2>Stories by {{ person.name }}</h2>
<form class="filters" method="get" action="{{ url_for('profile', user_id=person.id) }}">
    <input type="search" name="q" value="{{ q }}" placeholder="Search stories..." aria-label="Search stories">
    <select name="tag" aria-label="Topic">
        <option value="">All topics</option>
        {% for t in all_tags %}
        <option value="{{ t }}" {% if t == tag %}selected{% endif %}>{{ t }}</option>
        {% endfor %}
    </select>
    <button type="submit">Filter</button>
</form>
{% if posts %}
<div class="grid">
    {% for p in posts %}{{ post_card(p, q) }}{% endfor %}
</div>
{% else %}
<div class="empty"><h3>No stories yet</h3></div>
{% endif %}
{% endblock %}
""")


###############################################################################
# Pending + error pages
###############################################################################
TEMPL_PENDING = wrap("""
{% block body %}
<div class="empty" role="status" aria-live="polite">
    <h2>Checking your session…</h2>
    <p>This page will reload by itself in a moment.</p>
</div>
{% endblock %}
""")


@app.errorhandler(404)
def not_found(exc):
    """Site-wide “Not Found” page."""
    return render(TEMPL_404, current_session(resolve=False)), 404


@app.errorhandler(500)
def internal_error(exc):
    app.logger.exception("Unhandled error on %s", request.path)
    return render(TEMPL_500, current_session(resolve=False)), 500


TEMPL_404 = wrap("""
{% block body %}
  <div class="empty">
    <h2>Page not found</h2>
    <p>The URL you asked for doesn’t exist.
       <a href="{{ url_for('index') }}">Back to the front page</a>.</p>
  </div>
{% endblock %}
""")

TEMPL_500 = wrap("""
{% block body %}
  <div class="empty">
    <h2>Internal Server Error</h2>
    <p>Our fault, not yours. Please try again in a minute.</p>
  </div>
{% endblock %}
""")


###############################################################################
# CLI
###############################################################################
def _published_posts():
    try:
        posts = api_client().list_posts()
    except ApiError as exc:
        raise click.ClickException(f"Cannot fetch posts – {exc.message}") from None
    return [p for p in posts if p.is_published]


@app.cli.command("feed")
@click.option("--search", "-s", default="", help="Text to look for in titles and bodies")
@click.option("--tag", "-t", default="", help="Only posts carrying this tag")
def cli_feed(search: str, tag: str):
    """Print the public feed, filtered the same way as the home page."""
    hits = filter_posts(_published_posts(), search, tag)
    for p in hits:
        author = p.author.name if p.author else "Unknown author"
        click.echo(f"{p.id}  {p.title}  – {author}, {estimate_read_minutes(p.content)} min read")
    click.secho(f"\n{len(hits)} stories found", fg="green")


@app.cli.command("tags")
def cli_tags():
    """Print every tag used in the public feed, sorted."""
    for t in sorted_tags(_published_posts()):
        click.echo(t)


@app.cli.command("ping")
def cli_ping():
    """Check that the API answers."""
    base = app.config["API_BASE_URL"]
    try:
        stats = api_client().site_stats()
    except ApiError as exc:
        click.secho(f"✗  {base} – {exc.message}", fg="red")
        raise SystemExit(1)
    click.secho(
        f"✓  {base} – {stats.posts} posts, {stats.authors} authors, {stats.tags} tags",
        fg="green",
    )


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    app.run(debug=True)
