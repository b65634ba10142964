"""Guardian (RBAC) service operations.

Roles, policies and permissions plus the three many-to-many junctions:
role↔policy, policy↔permission and user↔role.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from .client import ServiceClient, extract_items
from .exceptions import ConflictError

logger = logging.getLogger(__name__)


class GuardianService:
    """Service for the guardian REST API."""

    def __init__(self, client: ServiceClient):
        """Initialize guardian service.

        Args:
            client: Service client bound to the guardian base URL
        """
        self.client = client

    # ─────────────────────────────────────────────────────────────────────
    # Roles
    # ─────────────────────────────────────────────────────────────────────
    def list_roles(self) -> list[dict]:
        return extract_items(self.client.get_json("/roles"), "roles")

    def get_role(self, role_id: Any) -> dict:
        return self.client.get_json(f"/roles/{role_id}") or {}

    def create_role(self, payload: Dict[str, Any]) -> dict:
        return self.client.post_json("/roles", json=payload) or {}

    def update_role(self, role_id: Any, payload: Dict[str, Any]) -> dict:
        return self.client.patch_json(f"/roles/{role_id}", json=payload) or {}

    def delete_role(self, role_id: Any) -> None:
        self.client.delete(f"/roles/{role_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Policies
    # ─────────────────────────────────────────────────────────────────────
    def list_policies(self) -> list[dict]:
        return extract_items(self.client.get_json("/policies"), "policies")

    def get_policy(self, policy_id: Any) -> dict:
        return self.client.get_json(f"/policies/{policy_id}") or {}

    def create_policy(self, payload: Dict[str, Any]) -> dict:
        return self.client.post_json("/policies", json=payload) or {}

    def update_policy(self, policy_id: Any, payload: Dict[str, Any]) -> dict:
        return self.client.patch_json(f"/policies/{policy_id}", json=payload) or {}

    def delete_policy(self, policy_id: Any) -> None:
        self.client.delete(f"/policies/{policy_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Permissions (read-only)
    # ─────────────────────────────────────────────────────────────────────
    def list_permissions(self) -> list[dict]:
        return extract_items(self.client.get_json("/permissions"), "permissions")

    # ─────────────────────────────────────────────────────────────────────
    # Role ↔ Policy
    # ─────────────────────────────────────────────────────────────────────
    def list_role_policies(self, role_id: Any) -> list[dict]:
        return extract_items(self.client.get_json(f"/roles/{role_id}/policies"), "policies")

    def add_role_policy(self, role_id: Any, policy_id: Any) -> None:
        """Attach a policy to a role. An existing link is not an error."""
        try:
            self.client.post(f"/roles/{role_id}/policies", json={"policy_id": policy_id})
        except ConflictError:
            logger.info("Policy %s already attached to role %s", policy_id, role_id)

    def remove_role_policy(self, role_id: Any, policy_id: Any) -> None:
        self.client.delete(f"/roles/{role_id}/policies/{policy_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Policy ↔ Permission
    # ─────────────────────────────────────────────────────────────────────
    def list_policy_permissions(self, policy_id: Any) -> list[dict]:
        return extract_items(self.client.get_json(f"/policies/{policy_id}/permissions"), "permissions")

    def add_policy_permission(self, policy_id: Any, permission_id: Any) -> None:
        try:
            self.client.post(f"/policies/{policy_id}/permissions", json={"permission_id": permission_id})
        except ConflictError:
            logger.info("Permission %s already attached to policy %s", permission_id, policy_id)

    def remove_policy_permission(self, policy_id: Any, permission_id: Any) -> None:
        self.client.delete(f"/policies/{policy_id}/permissions/{permission_id}")

    # ─────────────────────────────────────────────────────────────────────
    # User ↔ Role
    # ─────────────────────────────────────────────────────────────────────
    def list_user_roles(self, user_id: Any) -> list[dict]:
        """Return junction rows ``{id, user_id, role_id}`` for a user.

        Rows for other users are dropped in case the backend ignores the
        ``user_id`` filter.
        """
        rows = extract_items(self.client.get_json("/user-roles", params={"user_id": user_id}), "user_roles")
        return [row for row in rows if str(row.get("user_id", user_id)) == str(user_id)]

    def add_user_role(self, user_id: Any, role_id: Any) -> None:
        """Grant a role to a user. 409 (already granted) is treated as success."""
        try:
            self.client.post("/user-roles", json={"user_id": user_id, "role_id": role_id})
        except ConflictError:
            logger.info("Role %s already granted to user %s", role_id, user_id)

    def remove_user_role(self, junction_id: Any) -> None:
        self.client.delete(f"/user-roles/{junction_id}")

    def version(self) -> Optional[dict]:
        return self.client.get_json("/version")

    def health(self) -> bool:
        return self.client.health()
