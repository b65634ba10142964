import pytest

from admin_console.core.schemas import (
    CustomerForm,
    PermissionForm,
    PolicyPermissionAssignmentForm,
    RoleForm,
    UserCreateForm,
    UserRoleAssignmentForm,
    UserUpdateForm,
    payload,
    validate_form,
)


def test_role_form_strips_and_drops_blank_description():
    model, errors = validate_form(RoleForm, {"name": "  auditors ", "description": "   "})
    assert errors == {}
    assert payload(model) == {"name": "auditors"}


def test_role_form_reports_required_name():
    model, errors = validate_form(RoleForm, {"name": ""})
    assert model is None
    assert errors == {"name": "This field is required"}


def test_role_form_strips_value_error_prefix():
    _, errors = validate_form(RoleForm, {"name": "ab"})
    assert errors["name"] == "Name must be at least 3 characters"


def test_permission_form_normalizes_operation():
    model, errors = validate_form(PermissionForm, {"service": "identity", "resource_name": "user", "operation": "read"})
    assert errors == {}
    assert model.operation == "READ"

    _, errors = validate_form(PermissionForm, {"service": "Identity", "resource_name": "user", "operation": "PURGE"})
    assert set(errors) == {"service", "operation"}


def test_user_create_form_defaults_and_checkboxes():
    model, errors = validate_form(UserCreateForm, {
        "email": "Alice@Example.com",
        "password": "Secret123",
        "language": "",
        "is_active": "on",
        "role_ids": ["1", "2"],
        "position_id": "",
    })
    assert errors == {}
    assert model.email == "alice@example.com"
    assert model.language == "fr"
    assert model.is_active is True
    assert payload(model, exclude=("role_ids", "roles_loaded")) == {
        "email": "alice@example.com",
        "password": "Secret123",
        "language": "fr",
        "is_active": True,
        "is_verified": False,
    }


def test_user_create_form_collects_first_error_per_field():
    model, errors = validate_form(UserCreateForm, {"email": "nope", "password": "short", "avatar_url": "ftp://x"})
    assert model is None
    assert errors["email"] == "Invalid email format"
    assert errors["password"] == "Password must be at least 8 characters"
    assert errors["avatar_url"] == "Avatar URL must be a valid URL"


def test_user_update_form_is_partial():
    model, errors = validate_form(UserUpdateForm, {"first_name": "Bob", "role_ids": "3"})
    assert errors == {}
    assert model.role_ids == ["3"]
    assert payload(model, exclude=("role_ids", "roles_loaded")) == {"first_name": "Bob"}


@pytest.mark.parametrize("raw, expected", [("", True), ("true", True), ("false", False)])
def test_user_update_form_roles_loaded_flag(raw, expected):
    model, errors = validate_form(UserUpdateForm, {"roles_loaded": raw})
    assert errors == {}
    assert model.roles_loaded is expected


def test_user_update_form_rejects_bad_role_ids():
    _, errors = validate_form(UserUpdateForm, {"role_ids": ["1", "admin"]})
    assert errors == {"role_ids": "role_id must be a UUID or a positive integer"}


def test_customer_form_validates_contact_fields():
    _, errors = validate_form(CustomerForm, {"name": "A", "phone_number": "call me", "company_id": "x"})
    assert set(errors) == {"name", "phone_number", "company_id"}

    model, errors = validate_form(CustomerForm, {"name": "Acme", "email": "ops@acme.io", "company_id": "12"})
    assert errors == {}
    assert payload(model) == {"name": "Acme", "email": "ops@acme.io", "company_id": "12"}


def test_assignment_forms():
    model, errors = validate_form(UserRoleAssignmentForm, {"user_id": 4, "role_id": "2"})
    assert errors == {}
    assert (model.user_id, model.role_id) == ("4", "2")

    _, errors = validate_form(PolicyPermissionAssignmentForm, {"policy_id": "1", "permission_ids": []})
    assert errors == {"permission_ids": "Select at least one permission"}
