"""Identity service operations (users, customers, positions)."""
from __future__ import annotations
from typing import Any, Dict, Optional

from .client import ServiceClient, extract_items


class IdentityService:
    """Service for the identity REST API."""

    def __init__(self, client: ServiceClient):
        """Initialize identity service.

        Args:
            client: Service client bound to the identity base URL
        """
        self.client = client

    # ─────────────────────────────────────────────────────────────────────
    # Users
    # ─────────────────────────────────────────────────────────────────────
    def list_users(self) -> list[dict]:
        return extract_items(self.client.get_json("/users"), "users")

    def get_user(self, user_id: Any) -> dict:
        return self.client.get_json(f"/users/{user_id}") or {}

    def create_user(self, payload: Dict[str, Any]) -> dict:
        """Create a user.

        Args:
            payload: User fields (email, password, first_name, ...)

        Returns:
            Created user record (includes its ``id``)
        """
        return self.client.post_json("/users", json=payload) or {}

    def update_user(self, user_id: Any, payload: Dict[str, Any]) -> dict:
        return self.client.patch_json(f"/users/{user_id}", json=payload) or {}

    def delete_user(self, user_id: Any) -> None:
        self.client.delete(f"/users/{user_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Customers
    # ─────────────────────────────────────────────────────────────────────
    def list_customers(self) -> list[dict]:
        return extract_items(self.client.get_json("/customers"), "customers")

    def get_customer(self, customer_id: Any) -> dict:
        return self.client.get_json(f"/customers/{customer_id}") or {}

    def create_customer(self, payload: Dict[str, Any]) -> dict:
        return self.client.post_json("/customers", json=payload) or {}

    def update_customer(self, customer_id: Any, payload: Dict[str, Any]) -> dict:
        return self.client.patch_json(f"/customers/{customer_id}", json=payload) or {}

    def delete_customer(self, customer_id: Any) -> None:
        self.client.delete(f"/customers/{customer_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Positions (read-only, feeds the user form)
    # ─────────────────────────────────────────────────────────────────────
    def list_positions(self) -> list[dict]:
        return extract_items(self.client.get_json("/positions"), "positions")

    def position_lookup(self) -> dict[str, dict]:
        """Map position id (as string) to position record."""
        return {str(p.get("id")): p for p in self.list_positions() if p.get("id") is not None}

    def version(self) -> Optional[dict]:
        return self.client.get_json("/version")

    def health(self) -> bool:
        return self.client.health()
