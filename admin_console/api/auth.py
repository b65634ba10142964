"""Authentication routes.

Login is delegated to the auth service: ``POST {AUTH_SERVICE_URL}/login``
answers with ``access_token``/``refresh_token`` cookies, which are kept in
the console session and forwarded to the other backends.
"""
from __future__ import annotations

from flask import Blueprint, current_app, redirect, render_template, request, session, url_for

from admin_console.core.services import ServiceAPIError, UnauthorizedError
from admin_console.core.services.client import decode_json
from admin_console.core.session import (
    TOKEN_COOKIES,
    clear_session_tokens,
    current_username,
    get_registry,
    is_authenticated,
    service_cookies,
    store_login,
)

bp = Blueprint("auth", __name__)


def _safe_next(target: str) -> str:
    """Only same-site relative targets are followed after login."""
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("admin.admin_dashboard")


def _login_tokens(resp, body: dict) -> dict:
    tokens = {}
    for name in TOKEN_COOKIES:
        value = resp.cookies.get(name) or body.get(name)
        if value:
            tokens[name] = value
    return tokens


@bp.route("/login", methods=["GET", "POST"])
def login():
    """Show the login form; on POST, sign in through the auth service."""
    next_url = request.values.get("next", "")
    if request.method == "GET":
        if is_authenticated():
            return redirect(_safe_next(next_url))
        return render_template("login.html", title="Sign in", next=next_url, email="", error=None)

    email = (request.form.get("email") or "").strip()
    password = request.form.get("password") or ""
    if not email or not password:
        return render_template(
            "login.html", title="Sign in", next=next_url, email=email,
            error="Email and password are required",
        ), 400

    try:
        resp = get_registry().client("auth").post("/login", json={"email": email, "password": password})
    except UnauthorizedError:
        current_app.logger.info(f"[auth] Login rejected for {email}")
        return render_template(
            "login.html", title="Sign in", next=next_url, email=email,
            error="Invalid email or password",
        ), 401
    except ServiceAPIError as exc:
        current_app.logger.warning(f"[auth] Login failed for {email}: {exc}")
        return render_template(
            "login.html", title="Sign in", next=next_url, email=email,
            error=exc.detail,
        ), 502 if exc.status_code >= 500 else exc.status_code

    body = decode_json(resp) or {}
    body = body if isinstance(body, dict) else {}
    tokens = _login_tokens(resp, body)
    if not tokens.get("access_token"):
        current_app.logger.error("[auth] Auth service accepted login but returned no access_token")
        return render_template(
            "login.html", title="Sign in", next=next_url, email=email,
            error="Authentication service returned no session",
        ), 502

    store_login(tokens, body.get("user") or {"email": email})
    current_app.logger.info(f"[auth] {email} signed in")
    return redirect(_safe_next(next_url))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    """Drop the console session; tell the auth service (best effort)."""
    if is_authenticated():
        cookies = service_cookies()
        try:
            get_registry().client("auth").post("/logout", cookies=cookies)
        except ServiceAPIError as exc:
            current_app.logger.info(f"[auth] Remote logout skipped: {exc}")
    clear_session_tokens()
    session.pop("_flashes", None)
    return redirect(url_for("auth.login"))


@bp.route("/")
def index():
    """Home page."""
    if is_authenticated():
        return redirect(url_for("admin.admin_dashboard"))
    return render_template(
        "index.html",
        title="Welcome",
        demo_mode=current_app.config["APP_CONFIG"].demo_mode,
        username=current_username(),
    )
