"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            print(f"[settings] ✓ Loaded {env_var} from environment (fallback)")
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str
    secret_key_fallbacks: list[str] = field(default_factory=list)
    session_cookie_secure: bool = True
    trusted_proxy_ips: str = "127.0.0.1/32,::1/128"

    # Backend services (as reached from this console)
    auth_service_url: str = ""
    identity_service_url: str = ""
    guardian_service_url: str = ""
    basic_io_service_url: str = ""

    # Backend services (as reached from basic-io)
    basic_io_identity_service_url: str = ""
    basic_io_guardian_service_url: str = ""

    # HTTP client
    service_request_timeout: float = 5.0
    service_max_retries: int = 3
    service_retry_backoff: float = 0.5

    # Tables
    table_page_size: int = 20
    date_locale: str = "fr"

    def service_url(self, service: str) -> str:
        """Base URL used by the console to reach ``service``.

        Raises:
            KeyError: Unknown service name
        """
        urls = {
            "auth": self.auth_service_url,
            "identity": self.identity_service_url,
            "guardian": self.guardian_service_url,
            "basic_io": self.basic_io_service_url,
        }
        return urls[service]

    def basic_io_target_url(self, service: str) -> str:
        """Base URL basic-io must use to reach ``service`` (container network)."""
        urls = {
            "identity": self.basic_io_identity_service_url or self.identity_service_url,
            "guardian": self.basic_io_guardian_service_url or self.guardian_service_url,
        }
        return urls[service]


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default/generate."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _env_number(var_name: str, default, cast):
    """Parse a numeric environment variable, keeping the default on bad input."""
    raw = os.environ.get(var_name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        print(f"[settings] ✗ Ignoring invalid {var_name}={raw!r}, using {default}")
        return default
    if value < 0:
        print(f"[settings] ✗ Ignoring negative {var_name}={raw!r}, using {default}")
        return default
    return value


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    # Flask secret key
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if demo_mode:
            secret_key = secrets.token_urlsafe(48)
            os.environ["FLASK_SECRET_KEY"] = secret_key
            print("[demo-mode] Generated temporary FLASK_SECRET_KEY")
        else:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")

    secret_key_fallbacks = [
        key.strip()
        for key in os.environ.get("FLASK_SECRET_KEY_FALLBACKS", "").split(",")
        if key.strip()
    ]

    # Session cookie secure flag
    session_secure_str = os.environ.get("FLASK_SESSION_COOKIE_SECURE")
    if session_secure_str is None and demo_mode:
        os.environ["FLASK_SESSION_COOKIE_SECURE"] = "true"
        session_secure_str = "true"
    session_cookie_secure = (session_secure_str or "true").lower() == "true"

    # Trusted proxies
    trusted_proxy_ips = os.environ.get("TRUSTED_PROXY_IPS")
    if not trusted_proxy_ips:
        is_testing = os.environ.get("PYTEST_CURRENT_TEST") is not None
        if demo_mode or is_testing:
            trusted_proxy_ips = "127.0.0.1/32,::1/128"
            os.environ["TRUSTED_PROXY_IPS"] = trusted_proxy_ips
            if demo_mode:
                print("[demo-mode] Defaulted TRUSTED_PROXY_IPS to localhost ranges")
        else:
            raise RuntimeError("TRUSTED_PROXY_IPS is required when DEMO_MODE is false.")

    # Backend services
    auth_service_url = _get_or_generate("AUTH_SERVICE_URL", demo_default="http://localhost:5001", demo_mode=demo_mode)
    identity_service_url = _get_or_generate("IDENTITY_SERVICE_URL", demo_default="http://localhost:5002", demo_mode=demo_mode)
    guardian_service_url = _get_or_generate("GUARDIAN_SERVICE_URL", demo_default="http://localhost:5003", demo_mode=demo_mode)
    basic_io_service_url = _get_or_generate("BASIC_IO_SERVICE_URL", demo_default="http://localhost:5004", demo_mode=demo_mode)

    basic_io_identity_service_url = os.environ.get("BASIC_IO_IDENTITY_SERVICE_URL", identity_service_url)
    basic_io_guardian_service_url = os.environ.get("BASIC_IO_GUARDIAN_SERVICE_URL", guardian_service_url)

    # HTTP client tuning
    service_request_timeout = _env_number("SERVICE_REQUEST_TIMEOUT", 5.0, float)
    service_max_retries = _env_number("SERVICE_MAX_RETRIES", 3, int)
    service_retry_backoff = _env_number("SERVICE_RETRY_BACKOFF", 0.5, float)

    # Tables
    table_page_size = _env_number("TABLE_PAGE_SIZE", 20, int) or 20
    date_locale = os.environ.get("DATE_LOCALE", "fr").strip().lower()
    if date_locale not in {"fr", "en"}:
        print(f"[settings] ✗ Unsupported DATE_LOCALE={date_locale!r}, using fr")
        date_locale = "fr"

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(
        f"[settings] Mode={mode_label}; identity={identity_service_url}; "
        f"guardian={guardian_service_url}; basic_io={basic_io_service_url}"
    )

    if demo_mode:
        print("[settings] WARNING: Demo defaults in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        secret_key_fallbacks=secret_key_fallbacks,
        session_cookie_secure=session_cookie_secure,
        trusted_proxy_ips=trusted_proxy_ips,
        auth_service_url=auth_service_url,
        identity_service_url=identity_service_url,
        guardian_service_url=guardian_service_url,
        basic_io_service_url=basic_io_service_url,
        basic_io_identity_service_url=basic_io_identity_service_url,
        basic_io_guardian_service_url=basic_io_guardian_service_url,
        service_request_timeout=service_request_timeout,
        service_max_retries=service_max_retries,
        service_retry_backoff=service_retry_backoff,
        table_page_size=table_page_size,
        date_locale=date_locale,
    )
