import pytest
from flask import Blueprint, Flask

from admin_console.api import decorators
from tests.conftest import make_config, make_token


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test"
    app.config["APP_CONFIG"] = make_config()

    auth = Blueprint("auth", __name__)

    @auth.route("/login")
    def login():
        return "login"

    app.register_blueprint(auth)

    @app.route("/protected")
    @decorators.require_login
    def protected():
        return ("OK", 204)

    return app


def _set_token(client, token):
    with client.session_transaction() as session:
        session["token"] = {"access_token": token}
        session["user"] = {"email": "alice@example.com"}


def test_require_login_redirects_browser_to_login(app):
    with app.test_client() as client:
        response = client.get("/protected?page=2", headers={"Accept": "text/html"})
    assert response.status_code == 302
    assert "/login?next=" in response.headers["Location"]
    assert "page%3D2" in response.headers["Location"]


def test_require_login_returns_json_401(app):
    with app.test_client() as client:
        response = client.get("/protected", headers={"Accept": "application/json"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Unauthorized"


def test_require_login_allows_valid_session(app):
    with app.test_client() as client:
        _set_token(client, make_token())
        response = client.get("/protected")
    assert response.status_code == 204


def test_require_login_clears_expired_session(app):
    with app.test_client() as client:
        _set_token(client, make_token(exp_offset=-60))
        response = client.get("/protected", headers={"Accept": "text/html"})
        with client.session_transaction() as session:
            assert "token" not in session
            assert "user" not in session
    assert response.status_code == 302


def test_require_login_accepts_opaque_token(app):
    with app.test_client() as client:
        _set_token(client, "not-a-jwt")
        response = client.get("/protected")
    assert response.status_code == 204
