"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the admin console with its blueprints, middleware, and configuration.
"""
from __future__ import annotations
import hmac
import ipaddress
import logging
import os
import secrets
from tempfile import gettempdir
from typing import Optional

from flask import Flask, abort, g, request, session
from flask_session import Session
from werkzeug.middleware.proxy_fix import ProxyFix

from admin_console.config import AppConfig, load_settings


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None) -> Flask:
    """Create and configure Flask application."""
    cfg = cfg or load_settings()

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["DEMO_MODE"] = cfg.demo_mode

    # Flask session configuration
    app.config["SECRET_KEY"] = cfg.secret_key
    if cfg.secret_key_fallbacks:
        app.config["SECRET_KEY_FALLBACKS"] = cfg.secret_key_fallbacks

    app.config["SESSION_TYPE"] = os.environ.get("FLASK_SESSION_TYPE", "filesystem")
    if app.config["SESSION_TYPE"] == "filesystem":
        session_dir = os.environ.get("FLASK_SESSION_DIR") or os.path.join(gettempdir(), "admin_console_flask_session")
        os.makedirs(session_dir, exist_ok=True)
        app.config["SESSION_FILE_DIR"] = session_dir

    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = cfg.session_cookie_secure

    Session(app)

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    trusted_proxy_networks = []
    for entry in cfg.trusted_proxy_ips.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            trusted_proxy_networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue

    app.config["TRUSTED_PROXY_NETWORKS"] = trusted_proxy_networks
    app.config["CSRF_SESSION_KEY"] = "_csrf_token"

    _configure_logging(app)

    # Register blueprints
    from admin_console.api import admin, auth, errors, health

    app.register_blueprint(auth.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(admin.create_admin_blueprint(cfg), url_prefix="/admin")

    errors.register_error_handlers(app)
    _register_middleware(app, trusted_proxy_networks)
    _register_context_processors(app, cfg)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print(f"[flask_app] Admin tables registered at /admin")

    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo defaults")

    return app


def _configure_logging(app: Flask) -> None:
    """Route ``admin_console.*`` loggers through the app logger's handlers."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    package_logger = logging.getLogger("admin_console")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        for handler in app.logger.handlers:
            package_logger.addHandler(handler)


def _register_middleware(app: Flask, trusted_proxy_networks: list):
    """Register before_request middleware."""

    @app.before_request
    def enforce_proxy_headers() -> None:
        """Validate proxy headers from trusted sources only."""
        original_remote = request.environ.get("werkzeug.proxy_fix.orig_remote_addr")
        if original_remote:
            try:
                address = ipaddress.ip_address(original_remote)
                if not any(address in network for network in trusted_proxy_networks):
                    abort(400, description="Untrusted proxy")
            except ValueError:
                abort(400, description="Invalid proxy address")

        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto and forwarded_proto != "https":
            abort(400, description="Invalid forwarded protocol")

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for and "," in forwarded_for:
            abort(400, description="Multiple forwarded clients not permitted")

        g.csrf_token = _generate_csrf_token()

    @app.before_request
    def enforce_csrf() -> None:
        """Validate CSRF token for state-changing requests."""
        if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
            return

        submitted_token = request.form.get("csrf_token") or request.headers.get("X-CSRF-Token", "")

        csrf_session_key = app.config["CSRF_SESSION_KEY"]
        session_token = session.get(csrf_session_key, "")

        if not session_token or not submitted_token or not hmac.compare_digest(session_token, submitted_token):
            abort(400, description="CSRF validation failed")


def _register_context_processors(app: Flask, cfg):
    """Register context processors for templates."""

    @app.context_processor
    def inject_global_context():
        """Inject global variables into all templates."""
        from admin_console.core.session import current_username, is_authenticated

        authenticated = is_authenticated()
        return {
            "csrf_token": g.get("csrf_token") or _generate_csrf_token(),
            "is_authenticated": authenticated,
            "current_username": current_username() if authenticated else "",
            "demo_mode": cfg.demo_mode,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────
def _generate_csrf_token() -> str:
    """Generate or retrieve CSRF token for current session."""
    csrf_session_key = "_csrf_token"
    token = session.get(csrf_session_key)
    if not token:
        token = secrets.token_urlsafe(32)
        session[csrf_session_key] = token
    return token


# ─────────────────────────────────────────────────────────────────────────────
# Application Instance (for Gunicorn)
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
