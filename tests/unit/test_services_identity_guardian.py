"""Tests for the identity and guardian service wrappers."""
import pytest

from admin_console.core.services import NotFoundError, ServiceRegistry
from tests.conftest import GUARDIAN, IDENTITY, make_config


def test_registry_reuses_clients_and_forwards_cookies(registry):
    assert registry.client("guardian") is registry.client("guardian")
    assert registry.client("identity").cookies == {"access_token": "tok"}
    assert registry.client("guardian").base_url == GUARDIAN


def test_registry_rejects_unknown_service(registry):
    with pytest.raises(KeyError):
        registry.client("billing")


def test_registry_basic_io_targets_use_internal_urls(registry):
    assert registry.basic_io.targets == {
        "identity": "http://identity:5000",
        "guardian": "http://guardian:5000",
    }


def test_list_users_accepts_wrapped_payload(backend, registry):
    backend.add("GET", f"{IDENTITY}/users", payload={"users": [{"id": 1, "email": "a@x.io"}]})
    assert registry.identity.list_users() == [{"id": 1, "email": "a@x.io"}]


def test_update_user_uses_patch(backend, registry):
    backend.add("PATCH", f"{IDENTITY}/users/7", payload={"id": 7, "first_name": "Bob"})

    updated = registry.identity.update_user(7, {"first_name": "Bob"})

    assert updated["first_name"] == "Bob"
    assert backend.calls[0]["json"] == {"first_name": "Bob"}


def test_delete_customer_propagates_not_found(backend, registry):
    backend.add("DELETE", f"{IDENTITY}/customers/3", status_code=404, payload={"message": "Customer not found"})

    with pytest.raises(NotFoundError) as exc:
        registry.identity.delete_customer(3)

    assert exc.value.message == "Customer not found"


def test_position_lookup_keys_by_string_id(backend, registry):
    backend.add("GET", f"{IDENTITY}/positions", payload=[{"id": 2, "title": "CTO"}, {"title": "orphan"}])
    assert registry.identity.position_lookup() == {"2": {"id": 2, "title": "CTO"}}


def test_add_role_policy_tolerates_existing_link(backend, registry):
    backend.add("POST", f"{GUARDIAN}/roles/1/policies", status_code=409, payload={"message": "exists"})

    registry.guardian.add_role_policy(1, 5)

    assert backend.calls[0]["json"] == {"policy_id": 5}


def test_list_user_roles_filters_foreign_rows(backend, registry):
    backend.add(
        "GET",
        f"{GUARDIAN}/user-roles",
        payload=[
            {"id": 10, "user_id": 4, "role_id": 1},
            {"id": 11, "user_id": 5, "role_id": 2},
        ],
    )

    rows = registry.guardian.list_user_roles("4")

    assert rows == [{"id": 10, "user_id": 4, "role_id": 1}]
    assert backend.calls[0]["params"] == {"user_id": "4"}


def test_add_user_role_posts_junction_and_ignores_conflict(backend, registry):
    backend.add("POST", f"{GUARDIAN}/user-roles", status_code=409)
    registry.guardian.add_user_role(4, 2)
    assert backend.calls[0]["json"] == {"user_id": 4, "role_id": 2}


def test_remove_user_role_deletes_junction_row(backend, registry):
    backend.add("DELETE", f"{GUARDIAN}/user-roles/10", status_code=204)
    registry.guardian.remove_user_role(10)
    assert backend.calls_to("DELETE", f"{GUARDIAN}/user-roles/10")


def test_registry_uses_configured_timeout(backend):
    backend.add("GET", f"{GUARDIAN}/roles", payload=[])
    registry = ServiceRegistry(make_config(service_request_timeout=12.5))

    registry.guardian.list_roles()

    assert backend.calls[0]["timeout"] == 12.5
    assert "cookies" not in backend.calls[0]
