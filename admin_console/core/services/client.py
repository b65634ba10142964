"""Low-level HTTP client for the backend REST services.

Handles cookie forwarding, retries, timeouts and error mapping.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import ServiceAPIError, ServiceUnavailableError, raise_for_response

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5
MAX_RETRIES = 3
RETRY_BACKOFF = 0.5
RETRY_STATUSES = (502, 503, 504)
# POST/PATCH are not idempotent on the backends (create, add link)
RETRY_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


def build_session(max_retries: int = MAX_RETRIES, backoff_factor: float = RETRY_BACKOFF) -> requests.Session:
    """Create a requests session with exponential backoff on transient failures."""
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=RETRY_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class ServiceClient:
    """HTTP client for one backend service.

    Features:
    - Forwards the console session cookies (access_token, refresh_token)
    - Retries idempotent calls on connection errors and 502/503/504
    - Maps HTTP errors to ServiceAPIError subclasses

    Usage:
        client = ServiceClient("guardian", "http://guardian:5000", cookies={"access_token": "..."})
        roles = client.get_json("/roles")
    """

    def __init__(
        self,
        service: str,
        base_url: str,
        *,
        cookies: Optional[Dict[str, str]] = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff_factor: float = RETRY_BACKOFF,
        session: Optional[requests.Session] = None,
    ):
        """Initialize service client.

        Args:
            service: Logical service name (identity, guardian, basic_io, auth)
            base_url: Service base URL
            cookies: Cookies forwarded on every request
            timeout: Per-request timeout in seconds
            max_retries: Retry budget for transient failures
            backoff_factor: Exponential backoff factor between retries
            session: Pre-built session (tests inject fakes here)
        """
        self.service = service
        self.base_url = base_url.rstrip("/")
        self.cookies = dict(cookies or {})
        self.timeout = timeout
        self.session = session or build_session(max_retries, backoff_factor)

    def url(self, path: str) -> str:
        if not path:
            return self.base_url
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str, *, raise_for_status: bool = True, **kwargs) -> requests.Response:
        """Execute an HTTP request against the service.

        Args:
            method: HTTP method
            path: API endpoint path (e.g., "/roles")
            raise_for_status: Map status >= 400 to ServiceAPIError
            **kwargs: Additional arguments for requests.Session.request

        Returns:
            Response object

        Raises:
            ServiceUnavailableError: Backend unreachable
            ServiceAPIError: On HTTP error (when raise_for_status is set)
        """
        url = self.url(path)
        kwargs.setdefault("timeout", self.timeout)
        if self.cookies:
            kwargs["cookies"] = {**self.cookies, **(kwargs.get("cookies") or {})}

        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(method, url, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise ServiceUnavailableError(self.service, url, exc.__class__.__name__) from exc
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise ServiceAPIError(502, "Upstream fetch failed", url) from exc

        if resp.status_code >= 500:
            logger.error("%s %s -> %s", method, url, resp.status_code)
        elif resp.status_code >= 400:
            logger.warning("%s %s -> %s", method, url, resp.status_code)

        if raise_for_status:
            self._handle_error(resp)
        return resp

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Any = None, **kwargs) -> requests.Response:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs) -> requests.Response:
        return self.request("PUT", path, json=json, **kwargs)

    def patch(self, path: str, json: Any = None, **kwargs) -> requests.Response:
        return self.request("PATCH", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> requests.Response:
        return self.request("DELETE", path, **kwargs)

    def get_json(self, path: str, params: Optional[Dict] = None) -> Any:
        return decode_json(self.get(path, params=params))

    def post_json(self, path: str, json: Any = None) -> Any:
        return decode_json(self.post(path, json=json))

    def put_json(self, path: str, json: Any = None) -> Any:
        return decode_json(self.put(path, json=json))

    def patch_json(self, path: str, json: Any = None) -> Any:
        return decode_json(self.patch(path, json=json))

    def health(self) -> bool:
        """Return True when the service answers its /health endpoint."""
        try:
            self.request("GET", "/health", timeout=min(self.timeout, 2))
        except ServiceAPIError:
            return False
        return True

    def _handle_error(self, resp: requests.Response) -> None:
        """Raise ServiceAPIError if response indicates error."""
        raise_for_response(resp)


def decode_json(resp: requests.Response) -> Any:
    """Decode a JSON body, returning None for 204 or empty responses."""
    if resp.status_code == 204 or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def extract_items(payload: Any, key: Optional[str] = None) -> list:
    """Normalize a list response.

    Backends answer either a bare list, ``{"data": [...]}`` or a dict keyed
    by the collection name (``{"roles": [...]}``).
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
        if key and isinstance(payload.get(key), list):
            return payload[key]
    return []
