import logging

import pytest

from admin_console.flask_app import create_app
from tests.conftest import make_config


@pytest.fixture()
def app():
    app = create_app(make_config(trusted_proxy_ips="10.0.0.0/8, bogus, ,::1/128"))

    @app.route("/test-form", methods=["POST"])
    def test_form():
        return "ok"

    return app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


def test_session_cookie_flags(app):
    assert app.config["SESSION_COOKIE_HTTPONLY"] is True
    assert app.config["SESSION_COOKIE_SAMESITE"] == "Lax"
    assert app.config["SESSION_COOKIE_SECURE"] is False
    assert app.config["SESSION_TYPE"] == "filesystem"
    assert app.config["SECRET_KEY"] == "secret"


def test_secret_key_fallbacks_are_applied():
    app = create_app(make_config(secret_key_fallbacks=["old-secret"]))
    assert app.config["SECRET_KEY_FALLBACKS"] == ["old-secret"]


def test_trusted_proxy_networks_skip_invalid_entries(app):
    networks = [str(n) for n in app.config["TRUSTED_PROXY_NETWORKS"]]
    assert networks == ["10.0.0.0/8", "::1/128"]


def test_app_config_is_exposed(app):
    assert app.config["APP_CONFIG"].guardian_service_url == "http://guardian.test"
    assert app.config["DEMO_MODE"] is False


def test_admin_tables_are_registered(app):
    endpoints = {rule.endpoint for rule in app.url_map.iter_rules()}
    for name in ("users", "roles", "policies", "customers"):
        assert f"admin.{name}_list" in endpoints
        assert f"admin.{name}_export" in endpoints
    assert "admin.admin_dashboard" in endpoints
    assert {"auth.login", "auth.logout", "health.health_check", "health.readiness_check"} <= endpoints


def test_package_logger_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    create_app(make_config())
    assert logging.getLogger("admin_console").level == logging.DEBUG


def test_health_endpoint_success(client):
    response = client.get("/health")
    assert response.status_code == 200


def test_x_forwarded_proto_enforced(client):
    response = client.get("/health", headers={"X-Forwarded-Proto": "http"})
    assert response.status_code == 400


def test_x_forwarded_proto_https_allowed(client):
    response = client.get("/health", headers={"X-Forwarded-Proto": "https"})
    assert response.status_code == 200


def test_csrf_missing_token_rejected(client):
    response = client.post("/test-form", data={"foo": "bar"})
    assert response.status_code == 400


def test_csrf_token_accepted(client):
    client.get("/health")
    with client.session_transaction() as session:
        token = session["_csrf_token"]
    response = client.post("/test-form", data={"csrf_token": token})
    assert response.status_code == 200
