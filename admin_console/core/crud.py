"""CRUD helper for one REST collection backing a table."""
from __future__ import annotations
import logging
from typing import Any, Dict, Mapping, Optional

from .services.client import ServiceClient, decode_json, extract_items
from .services.exceptions import ServiceAPIError, ServiceUnavailableError, UnauthorizedError

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    401: "Unauthorized access",
    403: "Access forbidden",
    404: "Resource not found",
}
DEFAULT_MESSAGES = {
    "fetch": "An error occurred while loading data",
    "create": "Failed to create item",
    "update": "Failed to update item",
    "delete": "Failed to delete item",
}


class TableCrud:
    """List/create/update/delete against ``service`` + ``path``.

    The collection is fetched lazily and cached on the instance; every
    successful mutation drops the cache so the next ``list()`` re-fetches.

    Usage:
        crud = TableCrud(registry.client("guardian"), "/roles",
                         error_messages={"create": "Failed to create role"})
        crud.create({"name": "auditor"})
        roles = crud.list()
    """

    def __init__(
        self,
        client: ServiceClient,
        path: str,
        error_messages: Optional[Mapping[str, str]] = None,
        update_method: str = "PATCH",
        collection_key: Optional[str] = None,
    ):
        self.client = client
        self.path = "/" + path.strip("/")
        self.error_messages = {**DEFAULT_MESSAGES, **(error_messages or {})}
        self.update_method = update_method
        self.collection_key = collection_key or self.path.rsplit("/", 1)[-1]
        self._items: Optional[list[dict]] = None

    @property
    def api_url(self) -> str:
        return self.client.url(self.path)

    def item_path(self, item_id: Any) -> str:
        return f"{self.path}/{item_id}"

    def list(self) -> list[dict]:
        if self._items is None:
            payload = self._call("fetch", "GET", self.path)
            self._items = extract_items(payload, self.collection_key)
        return self._items

    def get(self, item_id: Any) -> Optional[dict]:
        """Find an item in the cached collection, falling back to a direct fetch."""
        for item in self.list():
            if str(item.get("id")) == str(item_id):
                return item
        return self._call("fetch", "GET", self.item_path(item_id))

    def create(self, payload: Dict[str, Any]) -> dict:
        created = self._call("create", "POST", self.path, json=payload) or {}
        self.refresh()
        return created

    def update(self, item_id: Any, payload: Dict[str, Any]) -> dict:
        updated = self._call("update", self.update_method, self.item_path(item_id), json=payload) or {}
        self.refresh()
        return updated

    def remove(self, item_id: Any) -> None:
        self._call("delete", "DELETE", self.item_path(item_id))
        self.refresh()

    def remove_many(self, item_ids) -> tuple[list[str], list[tuple[str, str]]]:
        """Delete each id in turn. Returns (deleted, [(id, error), ...])."""
        deleted: list[str] = []
        failed: list[tuple[str, str]] = []
        for item_id in item_ids:
            try:
                self.remove(item_id)
                deleted.append(str(item_id))
            except UnauthorizedError:
                raise
            except ServiceAPIError as exc:
                failed.append((str(item_id), exc.detail))
        return deleted, failed

    def refresh(self) -> None:
        self._items = None

    def _call(self, operation: str, method: str, path: str, **kwargs) -> Any:
        try:
            resp = self.client.request(method, path, **kwargs)
        except (UnauthorizedError, ServiceUnavailableError):
            raise
        except ServiceAPIError as exc:
            message = self._message_for(operation, exc)
            logger.warning("%s %s failed: %s", method, path, message)
            raise type(exc)(exc.status_code, message, exc.endpoint) from exc
        return decode_json(resp)

    def _message_for(self, operation: str, exc: ServiceAPIError) -> str:
        # HTML error pages from a reverse proxy are not worth showing
        if exc.message and not exc.message.lstrip().startswith("<"):
            return exc.message
        if operation == "fetch":
            return STATUS_MESSAGES.get(exc.status_code) or self.error_messages["fetch"]
        return self.error_messages[operation]
