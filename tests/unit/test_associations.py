from dataclasses import replace

import pytest
import requests

from admin_console.core.associations import (
    AssociationConfig,
    AssociationManager,
    group_items,
    load_associations,
    merge_associations,
    singular_name,
)
from admin_console.core.services import UnauthorizedError
from tests.conftest import GUARDIAN, IDENTITY, make_response

ROLE_POLICIES = AssociationConfig(
    type="many-to-many",
    name="policies",
    service="guardian",
    path="/policies",
    junction_endpoint="/roles/{id}/policies",
)

USER_ROLES = AssociationConfig(
    type="many-to-many",
    name="roles",
    service="guardian",
    path="/roles",
    junction_endpoint="/user-roles",
    junction_query_param="user_id",
    add_body_field="role_id",
    link_item_field="role_id",
    display_field="role.name",
)

CUSTOMER_USERS = AssociationConfig(
    type="one-to-many",
    name="users",
    service="identity",
    path="/users",
    foreign_key="customer_id",
    display_field="email",
)


def test_singular_name():
    assert singular_name("policies") == "policy"
    assert singular_name("roles") == "role"
    assert singular_name("staff") == "staff"


def test_config_validation():
    with pytest.raises(ValueError):
        AssociationConfig(type="one-to-one", name="x", service="guardian", path="/x")
    with pytest.raises(ValueError):
        AssociationConfig(type="one-to-many", name="x", service="guardian", path="/x")


def test_config_helpers():
    assert ROLE_POLICIES.body_field == "policy_id"
    assert ROLE_POLICIES.junction_path(4) == "/roles/4/policies"
    assert ROLE_POLICIES.title == "Policies"
    assert USER_ROLES.display({"role": {"name": "admin"}, "id": 3}) == "admin"
    assert USER_ROLES.display({"id": 3}) == "3"
    assert USER_ROLES.linked_id({"id": 10, "role_id": 2}) == "2"
    assert not CUSTOMER_USERS.is_many_to_many


def test_fetch_nested_junction(backend, registry):
    backend.add("GET", f"{GUARDIAN}/roles/1/policies", payload={"policies": [{"id": 5, "name": "read"}]})
    rows = AssociationManager(registry, ROLE_POLICIES).fetch_associated_items(1)
    assert rows == [{"id": 5, "name": "read"}]


def test_fetch_flat_junction_filters_by_parent(backend, registry):
    backend.add("GET", f"{GUARDIAN}/user-roles", payload=[
        {"id": 10, "user_id": 1, "role_id": 2},
        {"id": 11, "user_id": 7, "role_id": 3},
    ])

    rows = AssociationManager(registry, USER_ROLES).fetch_associated_items(1)

    assert [r["id"] for r in rows] == [10]
    assert backend.calls[0]["params"] == {"user_id": 1}


def test_fetch_junction_degrades_on_error(backend, registry):
    backend.add("GET", f"{GUARDIAN}/roles/1/policies", status_code=500)
    assert AssociationManager(registry, ROLE_POLICIES).fetch_associated_items(1) == []


def test_fetch_junction_propagates_unauthorized(backend, registry):
    backend.add("GET", f"{GUARDIAN}/roles/1/policies", status_code=401)
    with pytest.raises(UnauthorizedError):
        AssociationManager(registry, ROLE_POLICIES).fetch_associated_items(1)


def test_one_to_many_filters_children(backend, registry):
    backend.add("GET", f"{IDENTITY}/users", payload=[
        {"id": 1, "email": "a@x.io", "customer_id": 3},
        {"id": 2, "email": "b@x.io", "customer_id": 4},
    ])
    rows = AssociationManager(registry, CUSTOMER_USERS).fetch_associated_items("3")
    assert [r["id"] for r in rows] == [1]


def test_available_items_excludes_linked(backend, registry):
    backend.add("GET", f"{GUARDIAN}/roles", payload=[{"id": 1}, {"id": 2}, {"id": 3}])
    manager = AssociationManager(registry, USER_ROLES)

    available = manager.available_items(9, associated=[{"id": 10, "role_id": 2}])

    assert [i["id"] for i in available] == [1, 3]


def test_add_associations_posts_one_link_per_id(backend, registry):
    calls = []

    def handler(call):
        calls.append(call["json"])
        if call["json"]["role_id"] == "3":
            return make_response(400, {"message": "Role is archived"})
        return make_response(201, {"id": 99})

    backend.add_handler("POST", f"{GUARDIAN}/user-roles", handler)

    result = AssociationManager(registry, USER_ROLES).add_associations(1, ["2", "3"])

    assert calls == [{"role_id": "2", "user_id": 1}, {"role_id": "3", "user_id": 1}]
    assert result.added == ["2"]
    assert result.failed == [("3", "Role is archived")]


def test_remove_association_deletes_junction_row(backend, registry):
    backend.add("DELETE", f"{GUARDIAN}/roles/1/policies/5", status_code=204)
    AssociationManager(registry, ROLE_POLICIES).remove_association(1, 5)
    assert backend.calls_to("DELETE", f"{GUARDIAN}/roles/1/policies/5")


def test_one_to_many_is_read_only(registry):
    with pytest.raises(ValueError):
        AssociationManager(registry, CUSTOMER_USERS).add_associations(1, ["2"])


def test_load_associations_isolates_failures(backend, registry):
    backend.add("GET", f"{GUARDIAN}/roles/1/policies", payload=[{"id": 5}])
    backend.add("GET", f"{IDENTITY}/users", status_code=500)

    loaded = load_associations(registry, [ROLE_POLICIES, CUSTOMER_USERS], 1)

    assert loaded == {"policies": [{"id": 5}], "users": []}


def test_load_associations_isolates_unreachable_backend(backend, registry):
    def refuse(call):
        raise requests.ConnectionError("connection refused")

    backend.add("GET", f"{GUARDIAN}/roles/1/policies", payload=[{"id": 5}])
    backend.add_handler("GET", f"{IDENTITY}/users", refuse)

    loaded = load_associations(registry, [ROLE_POLICIES, CUSTOMER_USERS], 1)

    assert loaded == {"policies": [{"id": 5}], "users": []}


def test_merge_associations_reads_flat_junction_once(backend, registry):
    config = replace(USER_ROLES, merge_into_rows=True)
    backend.add("GET", f"{GUARDIAN}/user-roles", payload=[
        {"id": 10, "user_id": 1, "role_id": 5},
        {"id": 11, "user_id": 1, "role_id": 6},
        {"id": 12, "user_id": 3, "role_id": 5},
    ])
    users = [{"id": 1}, {"id": 2}]

    merged = merge_associations(registry, [config, ROLE_POLICIES], users)

    assert [[r["id"] for r in u["roles"]] for u in merged] == [[10, 11], []]
    assert len(backend.calls) == 1
    assert "roles" not in users[0]


def test_merge_associations_nested_junction_per_item(backend, registry):
    config = replace(ROLE_POLICIES, merge_into_rows=True)
    backend.add("GET", f"{GUARDIAN}/roles/1/policies", payload=[{"id": 5}])
    backend.add("GET", f"{GUARDIAN}/roles/2/policies", status_code=500)

    merged = merge_associations(registry, [config], [{"id": 1}, {"id": 2}])

    assert [r["policies"] for r in merged] == [[{"id": 5}], []]


def test_merge_associations_failure_leaves_empty_lists(backend, registry):
    config = replace(USER_ROLES, merge_into_rows=True)
    backend.add("GET", f"{GUARDIAN}/user-roles", status_code=500)

    assert merge_associations(registry, [config], [{"id": 1}]) == [{"id": 1, "roles": []}]


def test_group_items():
    items = [
        {"service": "guardian", "name": "a"},
        {"service": "identity", "name": "b"},
        {"service": "guardian", "name": "c"},
        {"name": "d"},
    ]
    groups = group_items(items, ["service"])
    assert [(key, [i["name"] for i in rows]) for key, rows in groups] == [
        ("guardian", ["a", "c"]),
        ("identity", ["b"]),
        ("—", ["d"]),
    ]
    assert group_items(items, []) == [("", items)]
