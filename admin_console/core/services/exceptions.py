"""Backend service exceptions for error handling."""
from __future__ import annotations

from typing import Optional

import requests


class ServiceError(Exception):
    """Base exception for all backend service operations."""
    pass


class ServiceAPIError(ServiceError):
    """HTTP error from a backend REST service.

    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")

    @property
    def detail(self) -> str:
        """Message suitable for flashing to the operator."""
        return self.message or f"Request failed with status {self.status_code}"


class UnauthorizedError(ServiceAPIError):
    """Session cookie missing or rejected by the backend (401)."""
    pass


class ForbiddenError(ServiceAPIError):
    """Authenticated but not allowed to perform the operation (403)."""
    pass


class NotFoundError(ServiceAPIError):
    """Resource does not exist (404)."""
    pass


class ConflictError(ServiceAPIError):
    """Resource or link already exists (409)."""
    pass


class ServiceUnavailableError(ServiceAPIError):
    """Backend unreachable: connection refused, DNS failure or timeout."""

    def __init__(self, service: str, endpoint: str, reason: str = ""):
        self.service = service
        message = f"{service.upper()} unavailable"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(503, message, endpoint)


class ImportFileError(ValueError):
    """Uploaded import file cannot be parsed."""
    pass


_STATUS_ERRORS = {
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


def error_message(resp: requests.Response) -> str:
    """Extract the most useful error message from a backend response.

    Backends answer ``{"message": ...}`` (identity, guardian) or
    ``{"error": ...}`` (basic-io). Falls back to raw body text.
    """
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return (resp.text or "").strip() or (resp.reason or "")


def raise_for_response(resp: requests.Response, default_message: Optional[str] = None) -> None:
    """Raise the matching ServiceAPIError subclass when status >= 400."""
    if resp.status_code < 400:
        return

    message = error_message(resp) or default_message or ""
    error_cls = _STATUS_ERRORS.get(resp.status_code, ServiceAPIError)
    raise error_cls(resp.status_code, message, resp.url)
