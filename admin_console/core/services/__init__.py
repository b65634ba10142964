"""Backend service clients.

Usage:
    from admin_console.core.services import ServiceRegistry

    registry = ServiceRegistry(cfg, cookies=session_cookies)
    roles = registry.guardian.list_roles()
"""
from __future__ import annotations
from typing import Dict, Optional

import requests

from .basic_io import BasicIOService, ExportResult, ImportReport
from .client import REQUEST_TIMEOUT, ServiceClient, build_session, extract_items
from .exceptions import (
    ConflictError,
    ForbiddenError,
    ImportFileError,
    NotFoundError,
    ServiceAPIError,
    ServiceError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from .guardian import GuardianService
from .identity import IdentityService

BACKEND_SERVICES = ("identity", "guardian", "basic_io")


class ServiceRegistry:
    """One ServiceClient per backend, sharing cookies and a retrying session."""

    def __init__(self, cfg, cookies: Optional[Dict[str, str]] = None, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.cookies = dict(cookies or {})
        self.session = session or build_session(cfg.service_max_retries, cfg.service_retry_backoff)
        self._clients: Dict[str, ServiceClient] = {}

    def client(self, service: str) -> ServiceClient:
        """Return the client for ``service``.

        Raises:
            KeyError: Unknown service name
        """
        if service not in self._clients:
            self._clients[service] = ServiceClient(
                service,
                self.cfg.service_url(service),
                cookies=self.cookies,
                timeout=self.cfg.service_request_timeout,
                session=self.session,
            )
        return self._clients[service]

    @property
    def identity(self) -> IdentityService:
        return IdentityService(self.client("identity"))

    @property
    def guardian(self) -> GuardianService:
        return GuardianService(self.client("guardian"))

    @property
    def basic_io(self) -> BasicIOService:
        targets = {name: self.cfg.basic_io_target_url(name) for name in ("identity", "guardian")}
        return BasicIOService(self.client("basic_io"), targets)


__all__ = [
    "BACKEND_SERVICES",
    "REQUEST_TIMEOUT",
    "BasicIOService",
    "ConflictError",
    "ExportResult",
    "ForbiddenError",
    "GuardianService",
    "IdentityService",
    "ImportFileError",
    "ImportReport",
    "NotFoundError",
    "ServiceAPIError",
    "ServiceClient",
    "ServiceError",
    "ServiceRegistry",
    "ServiceUnavailableError",
    "UnauthorizedError",
    "extract_items",
]
