"""Pytest shared fixtures: fake backends, Flask client, login helpers."""
import json
import os
import pathlib
import sys
import time
from typing import Any, Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")
os.environ["FLASK_SESSION_COOKIE_SECURE"] = "false"
os.environ["TRUSTED_PROXY_IPS"] = "127.0.0.1/32,::1/128"
os.environ["AUTH_SERVICE_URL"] = "http://auth.test"
os.environ["IDENTITY_SERVICE_URL"] = "http://identity.test"
os.environ["GUARDIAN_SERVICE_URL"] = "http://guardian.test"
os.environ["BASIC_IO_SERVICE_URL"] = "http://basic-io.test"
os.environ["BASIC_IO_IDENTITY_SERVICE_URL"] = "http://identity:5000"
os.environ["BASIC_IO_GUARDIAN_SERVICE_URL"] = "http://guardian:5000"

import jwt
import pytest
import requests

from admin_console.config import AppConfig
from admin_console.flask_app import create_app

AUTH = "http://auth.test"
IDENTITY = "http://identity.test"
GUARDIAN = "http://guardian.test"
BASIC_IO = "http://basic-io.test"


# ─────────────────────────────────────────────────────────────────────────────
# Fake backends
# ─────────────────────────────────────────────────────────────────────────────
def make_response(
    status_code: int = 200,
    payload: Any = None,
    content: Optional[bytes] = None,
    headers: Optional[dict] = None,
    cookies: Optional[dict] = None,
    url: str = "",
) -> requests.Response:
    """Build a real requests.Response for the fake backends."""
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = url
    resp.encoding = "utf-8"
    if payload is not None:
        resp._content = json.dumps(payload).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = content or b""
    for name, value in (headers or {}).items():
        resp.headers[name] = value
    for name, value in (cookies or {}).items():
        resp.cookies.set(name, value)
    return resp


class FakeBackend:
    """Routes ``requests.Session.request`` calls to canned responses.

    Routes are keyed by method and full URL (query string excluded, it is
    passed as ``params``). A route value is a Response, a list of Responses
    (consumed in order) or a callable ``(call) -> Response``.
    """

    def __init__(self):
        self.routes: dict = {}
        self.calls: list[dict] = []

    def add(self, method: str, url: str, status_code: int = 200, payload: Any = None, **kwargs):
        self.routes[(method.upper(), url)] = make_response(status_code, payload, url=url, **kwargs)
        return self

    def add_sequence(self, method: str, url: str, responses: list):
        self.routes[(method.upper(), url)] = list(responses)
        return self

    def add_handler(self, method: str, url: str, handler):
        self.routes[(method.upper(), url)] = handler
        return self

    def calls_to(self, method: str, url: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method.upper() and c["url"] == url]

    def __call__(self, method, url, **kwargs):
        call = {"method": method.upper(), "url": url, **kwargs}
        self.calls.append(call)
        route = self.routes.get((method.upper(), url))
        if route is None:
            raise RuntimeError(f"Unexpected HTTP {method} in test: {url}")
        if isinstance(route, requests.Response):
            return route
        if isinstance(route, list):
            if len(route) > 1:
                return route.pop(0)
            return route[0]
        return route(call)


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from hitting live services.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _blocked(self, method, url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")

    monkeypatch.setattr(requests.Session, "request", _blocked)


@pytest.fixture()
def backend(monkeypatch):
    """Fake identity/guardian/basic-io/auth services."""
    fake = FakeBackend()

    def _request(self, method, url, **kwargs):
        return fake(method, url, **kwargs)

    monkeypatch.setattr(requests.Session, "request", _request)
    return fake


# ─────────────────────────────────────────────────────────────────────────────
# Configuration & registry
# ─────────────────────────────────────────────────────────────────────────────
def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=False,
        secret_key="secret",
        secret_key_fallbacks=[],
        session_cookie_secure=False,
        trusted_proxy_ips="127.0.0.1/32",
        auth_service_url=AUTH,
        identity_service_url=IDENTITY,
        guardian_service_url=GUARDIAN,
        basic_io_service_url=BASIC_IO,
        basic_io_identity_service_url="http://identity:5000",
        basic_io_guardian_service_url="http://guardian:5000",
        service_request_timeout=5.0,
        service_max_retries=0,
        service_retry_backoff=0.0,
        table_page_size=20,
        date_locale="fr",
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def cfg():
    return make_config()


@pytest.fixture()
def registry(cfg):
    from admin_console.core.services import ServiceRegistry

    return ServiceRegistry(cfg, cookies={"access_token": "tok"})


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app():
    flask_app = create_app(make_config(demo_mode=True))
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    """Flask test client; backends are blocked unless ``backend`` is used."""
    with app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# Authentication Helpers
# ─────────────────────────────────────────────────────────────────────────────
def make_token(exp_offset: int = 3600, **claims) -> str:
    """HS256 token; the console never verifies signatures, only reads claims."""
    payload = {"sub": "user-1", "email": "alice@example.com", "exp": int(time.time()) + exp_offset}
    payload.update(claims)
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def login(client, token: Optional[str] = None, email: str = "alice@example.com"):
    """Put an authenticated console session in the test client."""
    with client.session_transaction() as session:
        session["token"] = {"access_token": token or make_token(email=email), "refresh_token": "refresh"}
        session["user"] = {"email": email}


def get_csrf_token(client) -> str:
    """Get CSRF token from session."""
    client.get("/health")
    with client.session_transaction() as session:
        return session.get("_csrf_token", "")


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running backends)"
    )
