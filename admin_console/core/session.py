"""Session helpers: login state and the backend cookies it carries.

The auth service answers a successful login with ``access_token`` and
``refresh_token`` cookies. They are kept server-side in the Flask session
and forwarded to every backend call.
"""
from __future__ import annotations
import time
from typing import Any, Mapping, Optional

import jwt
from flask import current_app, g, session

from .services import ServiceRegistry

TOKEN_COOKIES = ("access_token", "refresh_token")


def is_authenticated() -> bool:
    """Check if user is authenticated."""
    token = session.get("token") or {}
    return bool(token.get("access_token"))


def service_cookies() -> dict[str, str]:
    """Cookies to forward to the backends for the current user."""
    token = session.get("token") or {}
    return {name: value for name, value in token.items() if value}


def store_login(cookies: Mapping[str, str], user: Optional[dict] = None) -> None:
    """Remember the auth service cookies (and user profile) after login."""
    session["token"] = {name: cookies.get(name) for name in TOKEN_COOKIES if cookies.get(name)}
    session["user"] = dict(user or {})


def clear_session_tokens() -> None:
    """Forget login state, keeping the CSRF token."""
    for key in ("token", "user"):
        session.pop(key, None)


def access_token_claims() -> dict[str, Any]:
    """Decode the access token without verifying it.

    The backends verify the signature; the console only reads display claims
    and the expiry.
    """
    access_token = (session.get("token") or {}).get("access_token")
    if not access_token:
        return {}
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}


def access_token_expired(leeway: int = 0) -> bool:
    """True when the access token carries an ``exp`` claim in the past."""
    exp = access_token_claims().get("exp")
    if exp is None:
        return False
    try:
        return float(exp) <= time.time() + leeway
    except (TypeError, ValueError):
        return False


def current_username() -> str:
    """Get current user's display name."""
    sources = (session.get("user") or {}, access_token_claims())
    for source in sources:
        for key in ("email", "preferred_username", "username", "name", "sub"):
            value = source.get(key)
            if isinstance(value, str) and value:
                return value
    return ""


def get_registry() -> ServiceRegistry:
    """Per-request service registry bound to the current user's cookies."""
    if "service_registry" not in g:
        cfg = current_app.config["APP_CONFIG"]
        g.service_registry = ServiceRegistry(cfg, cookies=service_cookies())
    return g.service_registry
