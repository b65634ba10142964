"""Many-to-many link reconciliation.

Given the links a record currently has and the links it should have,
compute and apply the minimal set of add/remove calls.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .services.exceptions import ServiceAPIError, UnauthorizedError
from .services.guardian import GuardianService

logger = logging.getLogger(__name__)


@dataclass
class LinkDiff:
    to_add: list[str] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


@dataclass
class LinkSyncResult:
    diff: LinkDiff
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _unique(ids: Iterable[Any]) -> list[str]:
    seen: list[str] = []
    for value in ids:
        if value is None or value == "":
            continue
        value = str(value)
        if value not in seen:
            seen.append(value)
    return seen


def diff_links(current_ids: Iterable[Any], desired_ids: Iterable[Any]) -> LinkDiff:
    """Compare two id collections as strings, preserving input order."""
    current = _unique(current_ids)
    desired = _unique(desired_ids)
    current_set, desired_set = set(current), set(desired)
    return LinkDiff(
        to_add=[i for i in desired if i not in current_set],
        to_remove=[i for i in current if i not in desired_set],
        unchanged=[i for i in current if i in desired_set],
    )


def sync_user_roles(guardian: GuardianService, user_id: Any, desired_role_ids: Iterable[Any]) -> LinkSyncResult:
    """Make the user's guardian roles exactly ``desired_role_ids``.

    Junction rows are ``{id, user_id, role_id}``; removal goes through the
    junction id, not the role id. Per-link failures are collected.
    """
    rows = guardian.list_user_roles(user_id)
    junction_by_role = {}
    for row in rows:
        role_id = row.get("role_id") or (row.get("role") or {}).get("id")
        if role_id is not None:
            junction_by_role.setdefault(str(role_id), row.get("id"))

    result = LinkSyncResult(diff=diff_links(junction_by_role.keys(), desired_role_ids))

    for role_id in result.diff.to_add:
        try:
            guardian.add_user_role(user_id, role_id)
            result.added.append(role_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            result.errors.append(f"Failed to assign role {role_id}: {exc.detail}")

    for role_id in result.diff.to_remove:
        junction_id = junction_by_role.get(role_id)
        if junction_id is None:
            result.errors.append(f"No junction entry found for role {role_id}")
            continue
        try:
            guardian.remove_user_role(junction_id)
            result.removed.append(role_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            result.errors.append(f"Failed to remove role {role_id}: {exc.detail}")

    if result.errors:
        logger.warning("Role sync for user %s incomplete: %s", user_id, result.errors)
    else:
        logger.info("Role sync for user %s: +%s -%s", user_id, result.added, result.removed)
    return result


def sync_role_policies(guardian: GuardianService, role_id: Any, desired_policy_ids: Iterable[Any]) -> LinkSyncResult:
    """Make the role's policies exactly ``desired_policy_ids``."""
    current = [p.get("id") for p in guardian.list_role_policies(role_id)]
    result = LinkSyncResult(diff=diff_links(current, desired_policy_ids))

    for policy_id in result.diff.to_add:
        try:
            guardian.add_role_policy(role_id, policy_id)
            result.added.append(policy_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            result.errors.append(f"Failed to attach policy {policy_id}: {exc.detail}")

    for policy_id in result.diff.to_remove:
        try:
            guardian.remove_role_policy(role_id, policy_id)
            result.removed.append(policy_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            result.errors.append(f"Failed to detach policy {policy_id}: {exc.detail}")

    return result
