"""Association (relationship) management for the entity tables.

Two relationship kinds are supported:

- many-to-many: links live in a junction endpoint, either nested under the
  parent (``/roles/{id}/policies``) or flat with a query parameter
  (``/user-roles?user_id=...``).
- one-to-many: children carry a foreign key to the parent and are read-only
  from the parent's table.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from .services.client import decode_json, extract_items
from .services.exceptions import ServiceAPIError, UnauthorizedError
from .tables import get_nested_value

logger = logging.getLogger(__name__)

MANY_TO_MANY = "many-to-many"
ONE_TO_MANY = "one-to-many"


def singular_name(name: str) -> str:
    """``policies`` → ``policy``, ``roles`` → ``role``."""
    if name.endswith("ies"):
        return name[:-3] + "y"
    if name.endswith("s"):
        return name[:-1]
    return name


@dataclass
class AssociationConfig:
    """Describes one relationship shown in a table's expanded rows.

    Example (role → policies):
        AssociationConfig(
            type="many-to-many",
            name="policies",
            service="guardian",
            path="/policies",
            junction_endpoint="/roles/{id}/policies",
        )
    """
    type: str
    name: str
    service: str
    path: str
    label: Optional[str] = None
    junction_endpoint: Optional[str] = None
    junction_query_param: Optional[str] = None
    foreign_key: Optional[str] = None
    display_field: str = "name"
    secondary_field: Optional[str] = None
    add_body_field: Optional[str] = None
    link_item_field: str = "id"
    delete_id_field: str = "id"
    exclude_from_export: bool = False
    merge_into_rows: bool = False
    group_by: Sequence[str] = field(default_factory=tuple)

    def __post_init__(self):
        if self.type not in (MANY_TO_MANY, ONE_TO_MANY):
            raise ValueError(f"Unknown association type: {self.type}")
        if self.type == ONE_TO_MANY and not self.foreign_key:
            raise ValueError(f"One-to-many association '{self.name}' needs a foreign_key")

    @property
    def title(self) -> str:
        return self.label or self.name.replace("_", " ").title()

    @property
    def body_field(self) -> str:
        return self.add_body_field or f"{singular_name(self.name)}_id"

    @property
    def is_many_to_many(self) -> bool:
        return self.type == MANY_TO_MANY and bool(self.junction_endpoint)

    @property
    def is_flat_junction(self) -> bool:
        """Junction filtered by query parameter (``/user-roles?user_id=``), not nested under the parent."""
        return bool(self.junction_query_param) and "{id}" not in (self.junction_endpoint or "")

    def junction_path(self, parent_id: Any) -> str:
        if not self.junction_endpoint:
            raise ValueError(f"Association '{self.name}' has no junction endpoint")
        return self.junction_endpoint.replace("{id}", str(parent_id))

    def display(self, item: dict) -> str:
        value = get_nested_value(item, self.display_field)
        if value is None:
            value = item.get("name") or item.get("id")
        return "" if value is None else str(value)

    def secondary(self, item: dict) -> str:
        if not self.secondary_field:
            return ""
        value = get_nested_value(item, self.secondary_field)
        return "" if value is None else str(value)

    def linked_id(self, row: dict) -> str:
        """Id of the associated item a junction row points at."""
        value = get_nested_value(row, self.link_item_field)
        return "" if value is None else str(value)


@dataclass
class AssociationResult:
    added: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


class AssociationManager:
    """Reads and edits one association for a given parent record."""

    def __init__(self, registry, config: AssociationConfig):
        """Initialize association manager.

        Args:
            registry: ServiceRegistry providing the per-service clients
            config: Association description
        """
        self.config = config
        self.client = registry.client(config.service)

    def fetch_all_items(self) -> list[dict]:
        """All candidate items (``config.path``). Errors propagate."""
        return extract_items(self.client.get_json(self.config.path), self.config.name)

    def fetch_associated_items(self, parent_id: Any) -> list[dict]:
        """Items (or junction rows) linked to ``parent_id``.

        Many-to-many lookups degrade to an empty list on backend errors so
        one broken junction does not break the whole table.
        """
        cfg = self.config
        if cfg.is_many_to_many:
            params = {cfg.junction_query_param: parent_id} if cfg.junction_query_param else None
            try:
                resp = self.client.get(cfg.junction_path(parent_id), params=params)
            except UnauthorizedError:
                raise
            except ServiceAPIError as exc:
                logger.warning("Failed to fetch %s for %s: %s", cfg.name, parent_id, exc)
                return []
            rows = extract_items(decode_json(resp), cfg.name)
            if cfg.junction_query_param:
                rows = [
                    r for r in rows
                    if str(r.get(cfg.junction_query_param, parent_id)) == str(parent_id)
                ]
            return rows

        if cfg.type == ONE_TO_MANY:
            return [
                item for item in self.fetch_all_items()
                if str(get_nested_value(item, cfg.foreign_key)) == str(parent_id)
            ]
        return []

    def fetch_junction_rows(self) -> list[dict]:
        """Every row of a flat junction, for all parents. Errors propagate."""
        return extract_items(self.client.get_json(self.config.junction_endpoint), self.config.name)

    def available_items(self, parent_id: Any, associated: Optional[list[dict]] = None) -> list[dict]:
        """Candidates not yet linked to ``parent_id``."""
        if associated is None:
            associated = self.fetch_associated_items(parent_id)
        linked = {self.config.linked_id(row) for row in associated}
        return [item for item in self.fetch_all_items() if str(item.get("id")) not in linked]

    def add_associations(self, parent_id: Any, item_ids: Iterable[Any]) -> AssociationResult:
        """Link each id to the parent, one POST per id.

        Individual failures are collected, not raised, so a partial add still
        links what it can. A 401 always propagates.
        """
        cfg = self.config
        self._require_many_to_many("add")
        result = AssociationResult()
        path = cfg.junction_path(parent_id)

        for item_id in item_ids:
            body = {cfg.body_field: item_id}
            if cfg.junction_query_param:
                body[cfg.junction_query_param] = parent_id
            try:
                self.client.post(path, json=body)
                result.added.append(str(item_id))
            except UnauthorizedError:
                raise
            except ServiceAPIError as exc:
                result.failed.append((str(item_id), exc.detail))

        if result.failed:
            logger.warning(
                "Failed to add some %s to %s: %s",
                cfg.name, parent_id, [item_id for item_id, _ in result.failed],
            )
        return result

    def remove_association(self, parent_id: Any, link_id: Any) -> None:
        """Unlink one item. ``link_id`` is the junction row's ``delete_id_field``.

        Raises:
            ServiceAPIError: Backend refused the removal
        """
        self._require_many_to_many("remove")
        path = f"{self.config.junction_path(parent_id)}/{link_id}"
        self.client.delete(path)

    def _require_many_to_many(self, operation: str) -> None:
        if not self.config.is_many_to_many:
            raise ValueError(
                f"Cannot {operation} '{self.config.name}': only many-to-many associations are editable"
            )


def load_associations(registry, configs: Sequence[AssociationConfig], parent_id: Any) -> dict[str, list[dict]]:
    """Associated items for every configured association of one record."""
    loaded: dict[str, list[dict]] = {}
    for cfg in configs:
        try:
            loaded[cfg.name] = AssociationManager(registry, cfg).fetch_associated_items(parent_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            logger.warning("Failed to load %s for %s: %s", cfg.name, parent_id, exc)
            loaded[cfg.name] = []
    return loaded


def merge_associations(registry, configs: Sequence[AssociationConfig], items: Iterable[dict]) -> list[dict]:
    """Copy the linked rows of each ``merge_into_rows`` association onto every item.

    Flat junctions are read once and grouped by parent id; nested ones are
    read per item. A failing association leaves empty lists on the rows.
    """
    merged = [dict(item) for item in items]
    for cfg in configs:
        if not (cfg.merge_into_rows and cfg.is_many_to_many):
            continue
        manager = AssociationManager(registry, cfg)
        if cfg.is_flat_junction:
            try:
                rows = manager.fetch_junction_rows()
            except UnauthorizedError:
                raise
            except ServiceAPIError as exc:
                logger.warning("Failed to load %s for the table: %s", cfg.name, exc)
                rows = []
            by_parent: dict[str, list[dict]] = {}
            for row in rows:
                by_parent.setdefault(str(row.get(cfg.junction_query_param)), []).append(row)
            for item in merged:
                item[cfg.name] = by_parent.get(str(item.get("id")), [])
        else:
            for item in merged:
                parent_id = item.get("id")
                item[cfg.name] = manager.fetch_associated_items(parent_id) if parent_id is not None else []
    return merged


def group_items(items: Iterable[dict], fields: Sequence[str]) -> list[tuple[str, list[dict]]]:
    """Group items by one or more (dot-notation) fields, keeping first-seen order."""
    items = list(items)
    if not fields:
        return [("", items)]
    groups: dict[str, list[dict]] = {}
    for item in items:
        parts = [get_nested_value(item, f) for f in fields]
        key = " / ".join("—" if p is None or p == "" else str(p) for p in parts)
        groups.setdefault(key, []).append(item)
    return list(groups.items())
